"""
Typed entries produced from frontend declarations.

Named declarations derive from `Entry`. Everything a type reference can
resolve to is a `TypeEntry`: a `Primitive` tag, a named entry, or one of the
structural nodes below. Every entry and node owns a unique integer `handle`,
and equality is identity.
"""

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Union

from .frontend import Cursor, Type

if TYPE_CHECKING:
    from .config import ClassCapabilities

SEP = "::"

_handles = itertools.count(1)


def _next_handle() -> int:
    return next(_handles)


class Primitive(str, Enum):
    BOOL = "bool"
    U8 = "u8"
    I8 = "i8"
    U16 = "u16"
    I16 = "i16"
    U32 = "u32"
    I32 = "i32"
    U64 = "u64"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"
    POINTER = "pointer"
    BUFFER = "buffer"
    CSTRING = "cstring"
    CSTRING_ARRAY = "cstringArray"


PRIMITIVE_SIZES = {
    Primitive.BOOL: 1,
    Primitive.U8: 1,
    Primitive.I8: 1,
    Primitive.U16: 2,
    Primitive.I16: 2,
    Primitive.U32: 4,
    Primitive.I32: 4,
    Primitive.F32: 4,
    Primitive.U64: 8,
    Primitive.I64: 8,
    Primitive.F64: 8,
    Primitive.POINTER: 8,
    Primitive.BUFFER: 8,
    Primitive.CSTRING: 8,
    Primitive.CSTRING_ARRAY: 8,
}


class SelfReference(Enum):
    SELF = "self"


SELF = SelfReference.SELF


@dataclass(eq=False)
class Node:
    handle: int = field(init=False, default_factory=_next_handle)


@dataclass(eq=False)
class Parameter:
    name: str
    type: "TypeEntry"
    cursor: Optional[Cursor] = None


@dataclass(eq=False)
class Field:
    name: str
    type: "TypeEntry"
    cursor: Optional[Cursor] = None


# Named entries


@dataclass(eq=False)
class Entry(Node):
    cursor: Cursor = None  # type: ignore[assignment]
    name: str = ""
    ns_name: str = ""
    file: str = ""
    used: bool = False

    @property
    def export_name(self) -> str:
        return self.ns_name.replace(SEP, "__")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.ns_name} #{self.handle}>"


@dataclass(eq=False)
class Constructor:
    cursor: Cursor
    parameters: List[Parameter] = field(default_factory=list)
    manglings: List[str] = field(default_factory=list)


@dataclass(eq=False)
class Destructor:
    cursor: Cursor
    manglings: List[str] = field(default_factory=list)


@dataclass(eq=False)
class Method:
    cursor: Cursor
    name: str
    parameters: List[Parameter] = field(default_factory=list)
    result: Optional["TypeEntry"] = None
    mangling: str = ""
    is_static: bool = False
    is_const: bool = False
    is_virtual: bool = False
    is_overriding: bool = False


@dataclass(eq=False)
class StructLikeEntry(Entry):
    """Shared shape of classes and template specializations."""

    bases: List["TypeEntry"] = field(default_factory=list)
    virtual_bases: List["TypeEntry"] = field(default_factory=list)
    fields: List[Field] = field(default_factory=list)
    size: int = 0
    align: int = 0
    expanded: bool = False
    self_references_resolved: bool = False
    used_as_buffer: bool = False
    used_as_pointer: bool = False
    pointer_form: bool = False


@dataclass(eq=False)
class ClassEntry(StructLikeEntry):
    constructors: List[Constructor] = field(default_factory=list)
    destructor: Optional[Destructor] = None
    methods: List[Method] = field(default_factory=list)
    requested: Optional["ClassCapabilities"] = None


@dataclass(eq=False)
class TemplateParameter(Node):
    name: str = ""
    is_spread: bool = False
    is_ref: bool = False

    def __repr__(self) -> str:
        return f"<TemplateParameter {self.name}>"


@dataclass(eq=False)
class Specialization(StructLikeEntry):
    template: Optional["ClassTemplateEntry"] = None
    index: Optional[int] = None
    parameters: List[TemplateParameter] = field(default_factory=list)
    application: List["TypeEntry"] = field(default_factory=list)

    @property
    def is_default(self) -> bool:
        return self.index is None


@dataclass(eq=False)
class ClassTemplateEntry(Entry):
    parameters: List[TemplateParameter] = field(default_factory=list)
    default_specialization: Optional[Specialization] = None
    partial_specializations: List[Specialization] = field(default_factory=list)

    def specialization_name(self, specialization: Specialization) -> str:
        if specialization is self.effective_default:
            return self.name
        return f"{self.name}_{specialization.index}"

    @property
    def effective_default(self) -> Optional[Specialization]:
        """A defined primary template wins; otherwise a sole partial specialization stands in."""
        default = self.default_specialization
        if default is not None and default.cursor.is_definition():
            return default
        if len(self.partial_specializations) == 1:
            return self.partial_specializations[0]
        return default


@dataclass(eq=False)
class EnumConstant:
    name: str
    value: int
    reference: Optional["EnumEntry"] = None
    reference_name: Optional[str] = None


@dataclass(eq=False)
class EnumEntry(Entry):
    underlying: Optional[Primitive] = None
    constants: List[EnumConstant] = field(default_factory=list)
    size: int = 0


@dataclass(eq=False)
class FunctionEntry(Entry):
    parameters: List[Parameter] = field(default_factory=list)
    result: Optional["TypeEntry"] = None
    mangling: str = ""
    expanded: bool = False


@dataclass(eq=False)
class VarEntry(Entry):
    type: Optional["TypeEntry"] = None
    mangling: str = ""


@dataclass(eq=False)
class TypedefEntry(Entry):
    target: Optional["TypeEntry"] = None
    resolved: bool = False


@dataclass(eq=False)
class UnionEntry(Entry):
    fields: List["TypeEntry"] = field(default_factory=list)
    size: int = 0
    expanded: bool = False


# Structural type nodes


@dataclass(eq=False)
class PointerType(Node):
    pointee: Union["TypeEntry", SelfReference] = None  # type: ignore[assignment]
    type: Optional[Type] = None


@dataclass(eq=False)
class ArrayType(Node):
    element: "TypeEntry" = None  # type: ignore[assignment]
    length: int = 0
    type: Optional[Type] = None


@dataclass(eq=False)
class FunctionType(Node):
    parameters: List[Parameter] = field(default_factory=list)
    result: Optional["TypeEntry"] = None
    type: Optional[Type] = None


@dataclass(eq=False)
class InlineClassType(Node):
    fields: List[Field] = field(default_factory=list)
    bases: List["TypeEntry"] = field(default_factory=list)
    vtable: bool = False
    type: Optional[Type] = None
    declaration: Optional[ClassEntry] = None


@dataclass(eq=False)
class InlineUnionType(Node):
    fields: List[Field] = field(default_factory=list)
    type: Optional[Type] = None


@dataclass(eq=False)
class TemplateInstance(Node):
    template: ClassTemplateEntry = None  # type: ignore[assignment]
    arguments: List["TypeEntry"] = field(default_factory=list)
    specialization: Optional[Specialization] = None
    type: Optional[Type] = None

    @property
    def name(self) -> str:
        assert self.specialization is not None
        return self.template.specialization_name(self.specialization)

    @property
    def file(self) -> str:
        return self.template.file


@dataclass(eq=False)
class MemberPointerType(Node):
    type: Optional[Type] = None


TypeEntry = Union[
    Primitive,
    ClassEntry,
    ClassTemplateEntry,
    EnumEntry,
    TypedefEntry,
    UnionEntry,
    PointerType,
    ArrayType,
    FunctionType,
    InlineClassType,
    InlineUnionType,
    TemplateInstance,
    TemplateParameter,
    MemberPointerType,
]

STRUCTURAL_TYPES = (
    PointerType,
    ArrayType,
    FunctionType,
    InlineClassType,
    InlineUnionType,
    TemplateInstance,
    MemberPointerType,
)


def is_struct(t: Optional[TypeEntry]) -> bool:
    return isinstance(t, ClassEntry)


def is_inline_struct(t: Optional[TypeEntry]) -> bool:
    return isinstance(t, (InlineClassType, InlineUnionType))


def is_function(t: Optional[TypeEntry]) -> bool:
    return isinstance(t, FunctionType)


def is_pointer(t: Optional[TypeEntry]) -> bool:
    return isinstance(t, PointerType) or t in (
        Primitive.POINTER,
        Primitive.CSTRING,
        Primitive.CSTRING_ARRAY,
    )


def is_function_pointer(t: Optional[TypeEntry]) -> bool:
    return isinstance(t, PointerType) and isinstance(t.pointee, FunctionType)


def is_struct_like(t: Optional[TypeEntry]) -> bool:
    """Values of these types are fixed-size byte blocks on the wire."""
    return isinstance(
        strip_typedefs(t),
        (
            ClassEntry,
            InlineClassType,
            InlineUnionType,
            ArrayType,
            TemplateInstance,
            UnionEntry,
        ),
    )


def strip_typedefs(t: Optional[TypeEntry]) -> Optional[TypeEntry]:
    seen = set()
    while isinstance(t, TypedefEntry) and t.handle not in seen:
        seen.add(t.handle)
        t = t.target
    return t


def usage_owner(t: Optional[TypeEntry]) -> Optional[StructLikeEntry]:
    """The entry whose usage flags decide how `t` crosses the call boundary."""
    t = strip_typedefs(t)
    if isinstance(t, ClassEntry):
        return t
    if isinstance(t, TemplateInstance):
        return t.specialization
    return None
