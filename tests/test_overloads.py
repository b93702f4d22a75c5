import pytest

from denobindgen.config import ClassImport
from denobindgen.entries import ClassEntry, Method, Parameter, PointerType, Primitive
from denobindgen.errors import DuplicateExportError
from denobindgen.expander import Expander
from denobindgen.overloads import assign_method_names, resolve_overload_name
from denobindgen.registry import SymbolTable
from denobindgen.walker import gather_entries


def method(name, *parameters, **flags):
    return Method(
        cursor=None,
        name=name,
        parameters=[Parameter(n, t) for n, t in parameters],
        **flags,
    )


def names(*methods):
    entry = ClassEntry(name="C", ns_name="C")
    entry.methods = list(methods)
    return [n for _, n in assign_method_names(entry)]


def test_shape_methods(shapes):
    table = SymbolTable()
    gather_entries(table, shapes.root)
    Expander(table).visit(ClassImport("Shape"))

    assigned = assign_method_names(table.find_class("Shape"))

    assert [n for _, n in assigned] == ["area", "areaWithF32", "color"]


def test_unique_method_keeps_its_name():
    assert names(method("draw")) == ["draw"]


def test_reserved_names_are_renamed():
    assert names(method("length"), method("fill", ("value", Primitive.U8))) == [
        "lengthFn",
        "fillValue",
    ]


def test_const_overload_is_dropped():
    mutable = method("get")
    const = method("get", is_const=True)
    assert names(mutable, const) == ["get"]
    assert resolve_overload_name(const, [mutable]) is None


def test_const_overload_with_different_signature_is_kept():
    mutable = method("get", result=PointerType(pointee=Primitive.I32))
    const = method("get", result=Primitive.I32, is_const=True)
    assert names(mutable, const) == ["get", "getAsConst"]


def test_same_arity_named_by_parameter_type():
    assert names(
        method("set", ("value", Primitive.I32)),
        method("set", ("value", Primitive.F64)),
    ) == ["setWithI32", "setWithF64"]


def test_same_arity_named_by_parameter_name():
    assert names(
        method("move", ("dx", Primitive.F32)),
        method("move", ("angle", Primitive.F64)),
    ) == ["moveWithDx", "moveWithAngle"]


def test_distinct_arities():
    assert names(
        method("draw"),
        method("draw", ("x", Primitive.I32)),
        method("draw", ("x", Primitive.I32), ("y", Primitive.I32)),
    ) == ["draw", "drawWithI32", "drawWithI32AndI32"]


def test_static_overload_among_instance_methods():
    assert names(
        method("make", ("size", Primitive.U32)),
        method("make", ("size", Primitive.U32), ("fill", Primitive.U8), is_static=True),
    ) == ["make", "staticMakeU32WithU8"]


def test_colliding_names_are_rejected():
    with pytest.raises(DuplicateExportError, match="C__draw"):
        names(method("draw"), method("draw"))
