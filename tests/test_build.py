import importlib
import logging
from pathlib import Path

import pytest

from denobindgen.build import build, generate
from denobindgen.cli import main
from denobindgen.config import ClassImport, ExportConfiguration, FunctionImport
from denobindgen.errors import NotFoundError
from denobindgen.frontend import CursorKind
from denobindgen.writer import write_outputs

# The package re-exports the build function under the module name
build_module = importlib.import_module("denobindgen.build")


@pytest.fixture
def config(tmp_path):
    return ExportConfiguration(
        base_path=Path("/src/include"),
        output_path=tmp_path / "out",
        files=["shapes.h"],
        imports=[ClassImport("Shape"), FunctionImport("length"), FunctionImport("visit")],
    )


def test_output_files(shapes, config):
    outputs = generate(config, shapes.root)
    assert set(outputs) == {
        "shapes.h.ts",
        "shapes.h.classes.ts",
        "shapes.h.types.ts",
        "systemTypes.ts",
        "ffi.ts",
    }


def test_bindings(shapes, config):
    bindings = generate(config, shapes.root)["shapes.h.ts"]

    assert bindings.startswith(
        'import { ColorT, NodeT, ShapeT, Vec3T } from "./shapes.h.types.ts";\n'
        'import { buf, ptr } from "./systemTypes.ts";\n'
    )
    assert (
        'export const length = {\n  name: "length",\n  parameters: [ptr(Vec3T)],\n'
        '  result: "f32",\n} as const;\n'
    ) in bindings
    assert (
        'export const visit = {\n  name: "visit",\n  parameters: [ptr(NodeT)],\n'
        '  result: "void",\n} as const;\n'
    ) in bindings
    assert (
        'export const Shape__Constructor = {\n  name: "_ZN5ShapeC1E1",\n'
        '  parameters: [buf(ShapeT)],\n  result: "void",\n} as const;\n'
    ) in bindings
    assert 'name: "_ZN5ShapeD1Ev"' in bindings
    assert "Shape__Delete" not in bindings
    assert (
        'export const Shape__areaWithF32 = {\n  name: "_ZN5Shape4areaE4",\n'
        '  parameters: [buf(ShapeT), "f32"],\n  result: "f32",\n} as const;\n'
    ) in bindings
    assert "result: ColorT," in bindings


def test_types(shapes, config):
    types = generate(config, shapes.root)["shapes.h.types.ts"]

    assert "export const SHAPE_SIZE = 4 as const;\n" in types
    assert '"i32", // sides, offset 0, size 4, align 4' in types
    assert "export const NODE_SIZE = 24 as const;\n" in types
    assert '"pointer", // next, offset 0, size 8, align 8' in types
    assert '{ struct: ["f32", "f32", "f32"] }, // pos, offset 8, size 12, align 4' in types
    assert (
        'export const ColorT = "i32";\n'
        "export const enum Color {\n  Red = 0x1,\n  Green = 0x2,\n  Blue = 0x4,\n}\n"
    ) in types
    assert "declare const Shape: unique symbol;\n" in types
    assert "export type ShapePointer = NonNullable<Deno.PointerValue> & { [Shape]: unknown };" in types
    # Enums are declared before the classes using them
    assert types.index("export const enum Color") < types.index("export const SHAPE_SIZE")


def test_classes(shapes, config):
    classes = generate(config, shapes.root)["shapes.h.classes.ts"]

    assert "export class ShapeBuffer extends Uint8Array {" in classes
    assert (
        "  static Constructor(self = new ShapeBuffer()): ShapeBuffer {\n"
        "    Shape__Constructor(self);\n    return self;\n  }\n"
    ) in classes
    assert "  delete(): void {\n    Shape__Destructor(this);\n  }\n" in classes
    assert "  area(): number {\n    return Shape__area(this);\n  }\n" in classes
    assert (
        "  areaWithF32(scale: number): number {\n"
        "    return Shape__areaWithF32(this, scale);\n  }\n"
    ) in classes
    assert "  color(): Color {\n    return Shape__color(this);\n  }\n" in classes
    assert 'from "./ffi.ts";' in classes


def test_polymorphic_class(tu, config):
    widget = tu.struct("Widget", [("id", tu.int)], kind=CursorKind.CLASS_DECL)
    tu.destructor(widget, virtual=True)
    config.imports = [ClassImport("Widget")]

    outputs = generate(config, tu.root)

    bindings = outputs["shapes.h.ts"]
    assert (
        'export const Widget__Delete = {\n  name: "_ZN6WidgetD0Ev",\n'
        '  parameters: [ptr(WidgetT)],\n  result: "void",\n} as const;\n'
    ) in bindings
    assert 'name: "_ZN6WidgetD1Ev"' in bindings
    types = outputs["shapes.h.types.ts"]
    assert "export const WIDGET_SIZE = 16 as const;\n" in types
    assert '    "pointer", // vtable\n    "i32", // id, offset 8, size 4, align 4\n' in types
    classes = outputs["shapes.h.classes.ts"]
    assert "  delete(): void {\n    Widget__Destructor(this);\n  }\n" in classes
    assert "  static delete(self: WidgetPointer): void {\n    Widget__Delete(self);\n  }\n" in classes


def test_ffi_module(shapes, config):
    ffi = generate(config, shapes.root)["ffi.ts"]

    assert ffi.startswith('import * as SHAPES from "./shapes.h.ts";\n')
    for name in ("length", "visit", "Shape__Constructor", "Shape__Destructor", "Shape__color"):
        assert f"export const {name} = lib.symbols.{name};\n" in ffi


def test_system_types(shapes, config):
    system = generate(config, shapes.root)["systemTypes.ts"]
    assert 'export const buf = (_: unknown) => "buffer" as const;\n' in system
    assert 'export const ptr = (_: unknown) => "pointer" as const;\n' in system


def test_build_writes_files(shapes, config):
    written = build(config, shapes.root)

    out = config.output_path.resolve()
    assert sorted(written) == sorted(
        str(out / name)
        for name in (
            "shapes.h.ts",
            "shapes.h.classes.ts",
            "shapes.h.types.ts",
            "systemTypes.ts",
            "ffi.ts",
        )
    )
    assert (out / "ffi.ts").read_text().startswith("import * as SHAPES")


def test_failed_build_writes_nothing(shapes, config, tmp_path):
    config.imports.append(ClassImport("Missing"))
    with pytest.raises(NotFoundError):
        build(config, shapes.root)
    assert not config.output_path.exists()
    assert list(tmp_path.iterdir()) == []


def test_write_outputs(tmp_path):
    out = (tmp_path / "gen").resolve()
    written = write_outputs({"a.ts": "a\n", "nested/b.ts": "b\n"}, out)

    assert written == [out / "a.ts", out / "nested" / "b.ts"]
    assert (out / "nested" / "b.ts").read_text() == "b\n"
    # The staging directory is gone
    assert [p.name for p in tmp_path.iterdir()] == ["gen"]


def test_cli(shapes, tmp_path, monkeypatch):
    monkeypatch.setattr(build_module, "parse", lambda config: shapes.root)
    path = tmp_path / "bindgen.toml"
    path.write_text(
        'base_path = "/src/include"\n'
        'output_path = "out"\n'
        'files = ["shapes.h"]\n'
        "[[imports]]\n"
        'name = "Shape"\n'
    )

    assert main([str(path)]) == 0
    assert (tmp_path / "out" / "shapes.h.classes.ts").exists()

    assert main([str(path), "--output", str(tmp_path / "other")]) == 0
    assert (tmp_path / "other" / "ffi.ts").exists()


def test_cli_reports_errors(shapes, tmp_path, monkeypatch, caplog):
    monkeypatch.setattr(build_module, "parse", lambda config: shapes.root)
    path = tmp_path / "bindgen.toml"
    path.write_text(
        'base_path = "/src/include"\n'
        'output_path = "out"\n'
        'files = ["shapes.h"]\n'
        "[[imports]]\n"
        'name = "Missing"\n'
    )

    assert main([str(path)]) == 1
    assert "Could not find class 'Missing'" in caplog.text
    assert not (tmp_path / "out").exists()


# Deeper than the default interpreter recursion limit
DEPTH = 1200


def test_deep_pointer_parameter(tu, config):
    t = tu.int
    for _ in range(DEPTH):
        t = tu.pointer(t)
    tu.function("deref", tu.int, [("p", t)])
    config.imports = [FunctionImport("deref")]

    bindings = generate(config, tu.root)["shapes.h.ts"]

    expected = "buf(" * DEPTH + '"i32"' + ")" * DEPTH
    assert f"  parameters: [{expected}],\n" in bindings


def test_deep_array_field(tu, config):
    t = tu.int
    for _ in range(DEPTH):
        t = tu.array(t, 1)
    tu.struct("Grid", [("cells", t)])
    config.imports = [ClassImport("Grid")]

    types = generate(config, tu.root)["shapes.h.types.ts"]

    expected = "{ struct: [" * DEPTH + '"i32"' + "] }" * DEPTH
    assert f"    {expected}, // cells" in types


def test_multiple_inheritance_is_reported(tu, config, caplog):
    left = tu.struct("Left", [("a", tu.int)])
    right = tu.struct("Right", [("b", tu.int)])
    tu.struct("Both", [("c", tu.int)], bases=[left, right])
    config.imports = [ClassImport("Both")]

    with caplog.at_level(logging.WARNING, logger="denobindgen"):
        generate(config, tu.root)

    assert "Multi-inheritance detected, Both inherits from Left and Right" in caplog.text
