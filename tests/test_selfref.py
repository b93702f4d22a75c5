import pytest

from denobindgen.config import FunctionImport
from denobindgen.entries import SELF, InlineClassType, PointerType
from denobindgen.errors import SelfContainmentError
from denobindgen.expander import Expander
from denobindgen.layout import size_of
from denobindgen.registry import SymbolTable
from denobindgen.selfref import resolve_self_references
from denobindgen.walker import gather_entries


def expand(tu, name):
    table = SymbolTable()
    gather_entries(table, tu.root)
    Expander(table).visit(FunctionImport(name))
    return table


def test_pointer_to_self(shapes):
    table = expand(shapes, "visit")
    node = table.find_class("Node")
    pointer = node.fields[0].type
    assert isinstance(pointer, PointerType) and pointer.pointee is node

    resolve_self_references(node)

    next_field, pos = node.fields
    assert next_field.type.pointee is SELF
    assert isinstance(pos.type, InlineClassType)
    assert size_of(pos.type) == 12
    assert size_of(next_field.type) + size_of(pos.type) == 20
    assert node.self_references_resolved
    # The shared pointer node is rewritten by copy
    assert pointer.pointee is node


def test_resolving_twice_is_a_no_op(shapes):
    node = expand(shapes, "visit").find_class("Node")
    resolve_self_references(node)
    fields = node.fields
    resolve_self_references(node)
    assert node.fields is fields


def test_other_classes_are_untouched(tu):
    leaf = tu.struct("Leaf", [("value", tu.int)])
    tree = tu.struct("Tree")
    tu.fields(tree, [("leaf", tu.pointer(leaf.type)), ("parent", tu.pointer(tree.type))])
    tu.function("walk", tu.void, [("tree", tu.pointer(tree.type))])

    table = expand(tu, "walk")
    tree_entry = table.find_class("Tree")
    resolve_self_references(tree_entry)

    leaf_field, parent = tree_entry.fields
    assert leaf_field.type.pointee is table.find_class("Leaf")
    assert parent.type.pointee is SELF


def test_self_pointers_inside_arrays(tu):
    ring = tu.struct("Ring")
    tu.fields(ring, [("links", tu.array(tu.pointer(ring.type), 2))])
    tu.function("spin", tu.void, [("ring", tu.pointer(ring.type))])

    ring_entry = expand(tu, "spin").find_class("Ring")
    resolve_self_references(ring_entry)

    (links,) = ring_entry.fields
    assert links.type.element.pointee is SELF
    assert links.type.length == 2


def test_self_containment_by_value_is_rejected(shapes):
    node = expand(shapes, "visit").find_class("Node")
    node.fields[1].type = node

    with pytest.raises(SelfContainmentError) as info:
        resolve_self_references(node)

    assert info.value.chain == ["Node", "field pos"]
