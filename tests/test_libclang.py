"""
End-to-end runs over real headers. Skipped when no libclang shared library
can be loaded.
"""

import pytest

cindex = pytest.importorskip("clang.cindex")

from denobindgen.build import generate, parse  # noqa: E402
from denobindgen.config import ClassImport, ExportConfiguration, FunctionImport  # noqa: E402
from denobindgen.libclang import configure_library  # noqa: E402

HEADER = """
struct Vec3 { float x, y, z; };
struct Node { Node* next; Vec3 pos; };
enum Color { Red = 1, Green = 2, Blue = 4 };

class Shape {
  public:
    int sides;
    Shape();
    ~Shape();
    float area();
    float area(float scale);
    Color color() const;
};

float length(const Vec3& v);
void visit(Node* node);
"""


@pytest.fixture(scope="module", autouse=True)
def libclang():
    configure_library()
    try:
        cindex.Index.create()
    except cindex.LibclangError as err:
        pytest.skip(f"libclang is not available: {err}")


@pytest.fixture
def outputs(tmp_path):
    include = tmp_path / "include"
    include.mkdir()
    (include / "shapes.h").write_text(HEADER)
    config = ExportConfiguration(
        base_path=include.resolve(),
        output_path=(tmp_path / "out").resolve(),
        files=["shapes.h"],
        imports=[ClassImport("Shape"), FunctionImport("length"), FunctionImport("visit")],
        target="x86_64-pc-linux-gnu",
    )
    return generate(config, parse(config))


def test_generated_files(outputs):
    assert {"shapes.h.ts", "shapes.h.classes.ts", "shapes.h.types.ts", "ffi.ts"} <= set(outputs)


def test_symbols(outputs):
    bindings = outputs["shapes.h.ts"]
    assert 'name: "_ZN5Shape4areaEv"' in bindings
    assert 'name: "_ZN5Shape4areaEf"' in bindings
    assert 'name: "_ZNK5Shape5colorEv"' in bindings
    assert 'name: "_ZN5ShapeC1Ev"' in bindings
    assert 'name: "_ZN5ShapeD1Ev"' in bindings
    assert 'name: "_Z6lengthRK4Vec3"' in bindings
    assert "parameters: [ptr(NodeT)]" in bindings


def test_layouts(outputs):
    types = outputs["shapes.h.types.ts"]
    assert "export const NODE_SIZE = 24 as const;\n" in types
    assert "export const VEC3_SIZE = 12 as const;\n" in types
    assert "  Red = 0x1,\n  Green = 0x2,\n  Blue = 0x4,\n" in types
