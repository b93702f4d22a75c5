"""
Byte layout and calling-convention decisions.
"""

import logging
from typing import Hashable, List, Optional, Sequence

from .entries import (
    PRIMITIVE_SIZES,
    SELF,
    ArrayType,
    ClassEntry,
    EnumConstant,
    EnumEntry,
    FunctionType,
    InlineClassType,
    InlineUnionType,
    MemberPointerType,
    PointerType,
    Primitive,
    Specialization,
    TemplateInstance,
    TemplateParameter,
    TypedefEntry,
    TypeEntry,
    UnionEntry,
    strip_typedefs,
)
from .errors import LayoutError
from .frontend import Cursor, CursorKind

logger = logging.getLogger(__name__)

POINTER_SIZE = 8

METHOD_KINDS = (CursorKind.CXX_METHOD, CursorKind.DESTRUCTOR)


def _base_definitions(cursor: Cursor) -> List[Cursor]:
    out = []
    for child in cursor.get_children():
        if child.kind != CursorKind.CXX_BASE_SPECIFIER:
            continue
        decl = child.type.get_declaration()
        definition = decl.get_definition() if decl is not None else None
        if definition is not None:
            out.append(definition)
    return out


def declares_virtual(cursor: Cursor) -> bool:
    return any(
        child.kind in METHOD_KINDS and child.is_virtual_method()
        for child in cursor.get_children()
    )


def has_virtual_bases(cursor: Cursor) -> bool:
    return any(
        child.kind == CursorKind.CXX_BASE_SPECIFIER and child.is_virtual_base()
        for child in cursor.get_children()
    )


def is_polymorphic(cursor: Cursor) -> bool:
    """True if the class or any of its bases carries a vtable."""
    stack = [cursor]
    while stack:
        current = stack.pop()
        if declares_virtual(current) or has_virtual_bases(current):
            return True
        stack.extend(_base_definitions(current))
    return False


def has_own_vtable(cursor: Cursor) -> bool:
    """
    The class needs a vtable pointer of its own at offset 0: it is dynamic and
    cannot reuse one from its primary base.
    """
    if not (declares_virtual(cursor) or has_virtual_bases(cursor)):
        return False
    bases = [
        child
        for child in cursor.get_children()
        if child.kind == CursorKind.CXX_BASE_SPECIFIER and not child.is_virtual_base()
    ]
    if not bases:
        return True
    decl = bases[0].type.get_declaration()
    first = decl.get_definition() if decl is not None else None
    return first is None or not is_polymorphic(first)


def class_passed_in_registers(cursor: Cursor) -> bool:
    """
    Itanium rules for trivially copyable records: no copy or move constructor,
    no destructor and no virtual methods, recursively through the bases.
    """
    stack = [cursor]
    while stack:
        current = stack.pop()
        for child in current.get_children():
            kind = child.kind
            if kind == CursorKind.CXX_BASE_SPECIFIER:
                decl = child.type.get_declaration()
                definition = decl.get_definition() if decl is not None else None
                if definition is not None:
                    stack.append(definition)
            elif kind == CursorKind.CONSTRUCTOR and (
                child.is_copy_constructor() or child.is_move_constructor()
            ):
                return False
            elif kind == CursorKind.DESTRUCTOR:
                return False
            elif kind == CursorKind.CXX_METHOD and child.is_virtual_method():
                return False
    return True


def passed_in_registers(t: Optional[TypeEntry]) -> bool:
    """Whether a value of type `t` crosses a call boundary by value."""
    seen = set()
    while isinstance(t, TypedefEntry) and t.handle not in seen:
        seen.add(t.handle)
        t = t.target
    if t is None or isinstance(t, (Primitive, EnumEntry, PointerType, FunctionType)):
        return True
    if isinstance(t, (ClassEntry, Specialization)):
        return class_passed_in_registers(t.cursor)
    if isinstance(t, InlineClassType):
        if t.declaration is not None:
            return class_passed_in_registers(t.declaration.cursor)
        decl = t.type.get_declaration() if t.type is not None else None
        definition = decl.get_definition() if decl is not None else None
        return definition is None or class_passed_in_registers(definition)
    if isinstance(t, TemplateInstance):
        decl = t.type.get_declaration() if t.type is not None else None
        definition = decl.get_definition() if decl is not None else None
        if definition is not None:
            return class_passed_in_registers(definition)
        return t.specialization is None or class_passed_in_registers(
            t.specialization.cursor
        )
    return True


def size_of(t: Optional[TypeEntry]) -> int:
    """Native size of a value of type `t` in bytes."""
    t = strip_typedefs(t)
    if t is None:
        return 1
    if isinstance(t, Primitive):
        return PRIMITIVE_SIZES[t]
    if isinstance(t, (PointerType, FunctionType)):
        return POINTER_SIZE
    if isinstance(t, (ClassEntry, Specialization, EnumEntry, UnionEntry)):
        return t.size
    if isinstance(t, InlineUnionType):
        return max((size_of(f.type) for f in t.fields), default=0)
    if isinstance(t, (ArrayType, InlineClassType, TemplateInstance, MemberPointerType)):
        if t.type is None:
            raise LayoutError("Structural type without a frontend type has no size")
        return max(t.type.get_size(), 0)
    if isinstance(t, TemplateParameter):
        raise LayoutError(f"Template parameter {t.name} has no size")
    raise LayoutError(f"Cannot compute size of {t!r}")


def structural_key(t: object) -> Hashable:
    """
    Equal for types that render to the same wire description. Keys are flat
    prefix encodings of the type tree.
    """
    tokens: List[Hashable] = []
    stack: List[object] = [t]
    while stack:
        t = stack.pop()
        children: List[object] = []
        if t is None or t is SELF:
            tokens.append(t)
        elif isinstance(t, Primitive):
            tokens.append(("primitive", t.value))
        elif isinstance(t, PointerType):
            tokens.append(("pointer",))
            children = [t.pointee]
        elif isinstance(t, ArrayType):
            tokens.append(("array", t.length))
            children = [t.element]
        elif isinstance(t, FunctionType):
            tokens.append(("function", len(t.parameters)))
            children = [p.type for p in t.parameters] + [t.result]
        elif isinstance(t, InlineClassType):
            tokens.append(("struct", len(t.bases), len(t.fields), t.vtable))
            children = list(t.bases) + [f.type for f in t.fields]
        elif isinstance(t, InlineUnionType):
            tokens.append(("union", len(t.fields)))
            children = [f.type for f in t.fields]
        elif isinstance(t, TemplateInstance):
            tokens.append(("instance", t.template.handle, len(t.arguments)))
            children = list(t.arguments)
        elif isinstance(t, MemberPointerType):
            tokens.append(("member pointer", size_of(t), t.type.get_align() if t.type else 0))
        else:
            tokens.append(("entry", t.handle))  # type: ignore[union-attr]
        stack.extend(reversed(children))
    return tuple(tokens)


def collapse_union(alternatives: Sequence[TypeEntry]) -> List[TypeEntry]:
    """Deduplicated alternatives, largest first; ties keep declaration order."""
    unique: List[TypeEntry] = []
    seen = set()
    for alternative in alternatives:
        key = structural_key(alternative)
        if key in seen:
            continue
        seen.add(key)
        unique.append(alternative)
    return sorted(unique, key=size_of, reverse=True)


def sized_struct(size: int, align: int) -> List[str]:
    """Opaque blob of the given size made of `u{align*8}` units plus trailing bytes."""
    if align not in (1, 2, 4, 8):
        raise LayoutError(f"Unexpected alignment {align}")
    unit = f"u{align * 8}"
    count, remainder = divmod(size, align)
    return [unit] * count + ["u8"] * remainder


def check_inheritance(name: str, bases: Sequence[TypeEntry]) -> None:
    if len(bases) > 1:
        names = " and ".join(getattr(b, "name", "?") for b in bases)
        logger.warning("Multi-inheritance detected, %s inherits from %s", name, names)


# Enums


def _hex_ready(value: int) -> bool:
    return value == 0 or (value > 0 and value & (value - 1) == 0) or value >= 0x1000


def enum_uses_hex(constants: Sequence[EnumConstant]) -> bool:
    values = [c.value for c in constants if c.reference is None]
    if len(constants) < 3 or not all(_hex_ready(v) for v in values):
        return False
    if len(constants) == 3 and len(values) == 3 and all(v == v & 0b11 for v in values):
        return False
    return True


def format_enum_values(entry: EnumEntry) -> List[str]:
    """Rendered initializer for each constant of `entry`, in order."""
    use_hex = enum_uses_hex(entry.constants)
    width = max(
        (len(f"{c.value:x}") for c in entry.constants if c.reference is None),
        default=1,
    )
    out = []
    for constant in entry.constants:
        if constant.reference is not None:
            out.append(f"{constant.reference.name}.{constant.reference_name}")
        elif use_hex:
            out.append(f"0x{constant.value:0{width}x}")
        else:
            out.append(str(constant.value))
    return out
