"""
In-memory frontend for tests: cursors and types built by hand, laid out with
the usual C rules for x86-64.
"""

from typing import Callable, Dict, Hashable, Iterator, List, Optional, Sequence, Tuple

import pytest

from denobindgen import frontend
from denobindgen.frontend import AccessSpecifier, CursorKind, TypeKind

HEADER = "/src/include/shapes.h"

BUILTINS = {
    TypeKind.VOID: ("void", -1),
    TypeKind.BOOL: ("bool", 1),
    TypeKind.CHAR_S: ("char", 1),
    TypeKind.UCHAR: ("unsigned char", 1),
    TypeKind.SHORT: ("short", 2),
    TypeKind.USHORT: ("unsigned short", 2),
    TypeKind.INT: ("int", 4),
    TypeKind.UINT: ("unsigned int", 4),
    TypeKind.LONG: ("long", 8),
    TypeKind.ULONG: ("unsigned long", 8),
    TypeKind.LONGLONG: ("long long", 8),
    TypeKind.FLOAT: ("float", 4),
    TypeKind.DOUBLE: ("double", 8),
}


class FakeType(frontend.Type):
    def __init__(
        self,
        kind: TypeKind,
        spelling: str,
        size: int = -1,
        align: int = -1,
        declaration: Optional["FakeCursor"] = None,
        pointee: Optional["FakeType"] = None,
        canonical: Optional["FakeType"] = None,
        named: Optional["FakeType"] = None,
        element: Optional["FakeType"] = None,
        count: int = -1,
        arguments: Sequence["FakeType"] = (),
        result: Optional["FakeType"] = None,
        template_arguments: Sequence["FakeType"] = (),
    ):
        self._kind = kind
        self._spelling = spelling
        self._size = size
        self._align = align
        self._declaration = declaration
        self._pointee = pointee
        self._canonical = canonical
        self._named = named
        self._element = element
        self._count = count
        self._arguments = list(arguments)
        self._result = result
        self._template_arguments = list(template_arguments)

    def __repr__(self) -> str:
        return f"<FakeType {self._kind.name} {self._spelling}>"

    @property
    def kind(self) -> TypeKind:
        return self._kind

    @property
    def spelling(self) -> str:
        return self._spelling

    @property
    def element_type(self) -> "FakeType":
        return self._element

    @property
    def element_count(self) -> int:
        return self._count

    def key(self) -> Hashable:
        return (self._kind, self._spelling, id(self._declaration))

    def get_canonical(self) -> "FakeType":
        return self._canonical if self._canonical is not None else self

    def get_pointee(self) -> "FakeType":
        return self._pointee

    def get_declaration(self) -> Optional["FakeCursor"]:
        return self._declaration

    def get_named_type(self) -> "FakeType":
        return self._named if self._named is not None else self

    def argument_types(self) -> List["FakeType"]:
        return list(self._arguments)

    def get_result(self) -> "FakeType":
        return self._result

    def get_size(self) -> int:
        if self._kind == TypeKind.RECORD and self._declaration is not None:
            definition = self._declaration.get_definition()
            return definition.layout()[0] if definition is not None else -2
        if self._kind == TypeKind.TYPEDEF:
            return self.get_canonical().get_size()
        return self._size

    def get_align(self) -> int:
        if self._kind == TypeKind.RECORD and self._declaration is not None:
            definition = self._declaration.get_definition()
            return definition.layout()[1] if definition is not None else -2
        if self._kind == TypeKind.TYPEDEF:
            return self.get_canonical().get_align()
        return self._align

    def get_num_template_arguments(self) -> int:
        return len(self._template_arguments) if self._template_arguments else -1

    def get_template_argument_type(self, index: int) -> "FakeType":
        return self._template_arguments[index]

    def is_pod(self) -> bool:
        return True


class FakeCursor(frontend.Cursor):
    def __init__(
        self,
        kind: CursorKind,
        spelling: str = "",
        file: str = HEADER,
        parent: Optional["FakeCursor"] = None,
        type: Optional[FakeType] = None,
        definition: bool = True,
        access: AccessSpecifier = AccessSpecifier.PUBLIC,
        **flags,
    ):
        self._kind = kind
        self._spelling = spelling
        self._file = file
        self._parent = parent
        self._type = type
        self._definition = definition
        self._access = access
        self.children: List["FakeCursor"] = []
        self.arguments: List["FakeCursor"] = []
        self.result: Optional[FakeType] = None
        self.underlying: Optional[FakeType] = None
        self.integer_type: Optional[FakeType] = None
        self.value = 0
        self.reference: Optional["FakeCursor"] = None
        self.mangled = ""
        self.symbols: List[str] = []
        self.template: Optional["FakeCursor"] = None
        self.definition_cursor: Optional["FakeCursor"] = None
        self.offset = -1
        self.flags = flags

    def __repr__(self) -> str:
        return f"<FakeCursor {self._kind.name} {self._spelling}>"

    # Layout of record definitions

    def layout(self) -> Tuple[int, int]:
        offset, align = 0, 1
        virtual = any(
            c.kind in (CursorKind.CXX_METHOD, CursorKind.DESTRUCTOR) and c.is_virtual_method()
            for c in self.children
        )
        bases = [c for c in self.children if c.kind == CursorKind.CXX_BASE_SPECIFIER]
        if virtual and not bases:
            offset, align = 8, 8
        members = [(None, b.type) for b in bases]
        members += [(c, c.type) for c in self.children if c.kind == CursorKind.FIELD_DECL]
        union = self._kind == CursorKind.UNION_DECL
        size = offset
        for cursor, t in members:
            member_size, member_align = t.get_size(), t.get_align()
            align = max(align, member_align)
            if union:
                if cursor is not None:
                    cursor.offset = 0
                size = max(size, member_size)
                continue
            offset = (offset + member_align - 1) // member_align * member_align
            if cursor is not None:
                cursor.offset = offset * 8
            offset += member_size
            size = offset
        size = max(size, 1)
        return (size + align - 1) // align * align, align

    # Cursor interface

    @property
    def kind(self) -> CursorKind:
        return self._kind

    @property
    def spelling(self) -> str:
        return self._spelling

    @property
    def file(self) -> str:
        return self._file

    @property
    def semantic_parent(self) -> Optional["FakeCursor"]:
        return self._parent

    @property
    def canonical(self) -> "FakeCursor":
        return self

    @property
    def access_specifier(self) -> AccessSpecifier:
        return self._access

    @property
    def type(self) -> FakeType:
        return self._type

    @property
    def result_type(self) -> FakeType:
        return self.result

    @property
    def underlying_typedef_type(self) -> FakeType:
        return self.underlying

    @property
    def enum_type(self) -> FakeType:
        return self.integer_type

    @property
    def enum_value(self) -> int:
        return self.value

    @property
    def mangled_name(self) -> str:
        return self.mangled

    @property
    def specialized_template(self) -> Optional["FakeCursor"]:
        return self.template

    def get_children(self) -> Iterator["FakeCursor"]:
        return iter(list(self.children))

    def get_arguments(self) -> Iterator["FakeCursor"]:
        return iter(list(self.arguments))

    def get_definition(self) -> Optional["FakeCursor"]:
        if self.definition_cursor is not None:
            return self.definition_cursor
        return self if self._definition else None

    def get_field_offsetof(self) -> int:
        if self._parent is not None and self.offset < 0:
            self._parent.layout()
        return self.offset

    def is_definition(self) -> bool:
        return self._definition

    def is_anonymous(self) -> bool:
        return self.flags.get("anonymous", False)

    def is_virtual_method(self) -> bool:
        return self.flags.get("virtual", False)

    def is_static_method(self) -> bool:
        return self.flags.get("static", False)

    def is_const_method(self) -> bool:
        return self.flags.get("const", False)

    def is_copy_constructor(self) -> bool:
        return self.flags.get("copy", False)

    def is_move_constructor(self) -> bool:
        return self.flags.get("move", False)

    def is_inlined(self) -> bool:
        return self.flags.get("inlined", False)

    def is_overriding(self) -> bool:
        return self.flags.get("overriding", False)

    def is_virtual_base(self) -> bool:
        return self.flags.get("virtual_base", False)

    def is_parameter_pack(self) -> bool:
        return self.flags.get("pack", False)

    def manglings(self) -> List[str]:
        return list(self.symbols)

    def enum_reference(self) -> Optional["FakeCursor"]:
        return self.reference


class FakeTU:
    """Builds a translation unit declaration by declaration."""

    def __init__(self, file: str = HEADER):
        self.file = file
        self.root = FakeCursor(CursorKind.TRANSLATION_UNIT, file="")
        self._builtins: Dict[TypeKind, FakeType] = {}
        self._pointers: Dict[Tuple[int, TypeKind], FakeType] = {}

    def _add(self, cursor: FakeCursor, parent: Optional[FakeCursor]) -> FakeCursor:
        (parent or self.root).children.append(cursor)
        return cursor

    # Types

    def builtin(self, kind: TypeKind) -> FakeType:
        if kind not in self._builtins:
            spelling, size = BUILTINS[kind]
            self._builtins[kind] = FakeType(kind, spelling, size=size, align=size)
        return self._builtins[kind]

    @property
    def void(self) -> FakeType:
        return self.builtin(TypeKind.VOID)

    @property
    def int(self) -> FakeType:
        return self.builtin(TypeKind.INT)

    @property
    def float(self) -> FakeType:
        return self.builtin(TypeKind.FLOAT)

    def pointer(self, t: FakeType, kind: TypeKind = TypeKind.POINTER) -> FakeType:
        key = (id(t), kind)
        if key not in self._pointers:
            suffix = {TypeKind.POINTER: " *", TypeKind.LVALUEREFERENCE: " &"}.get(kind, " &&")
            self._pointers[key] = FakeType(kind, t.spelling + suffix, size=8, align=8, pointee=t)
        return self._pointers[key]

    def reference(self, t: FakeType) -> FakeType:
        return self.pointer(t, TypeKind.LVALUEREFERENCE)

    def array(self, t: FakeType, count: int) -> FakeType:
        return FakeType(
            TypeKind.CONSTANTARRAY,
            f"{t.spelling}[{count}]",
            size=t.get_size() * count,
            align=t.get_align(),
            element=t,
            count=count,
        )

    def function_type(self, result: FakeType, parameters: Sequence[FakeType]) -> FakeType:
        spelling = f"{result.spelling} ({', '.join(p.spelling for p in parameters)})"
        return FakeType(
            TypeKind.FUNCTIONPROTO, spelling, size=1, align=4, arguments=parameters, result=result
        )

    # Declarations

    def namespace(self, name: str, parent: Optional[FakeCursor] = None) -> FakeCursor:
        return self._add(FakeCursor(CursorKind.NAMESPACE, name, self.file, parent), parent)

    def struct(
        self,
        name: str,
        fields: Optional[Sequence[Tuple[str, FakeType]]] = None,
        parent: Optional[FakeCursor] = None,
        kind: CursorKind = CursorKind.STRUCT_DECL,
        bases: Sequence[FakeCursor] = (),
        file: Optional[str] = None,
    ) -> FakeCursor:
        cursor = FakeCursor(kind, name, file or self.file, parent)
        cursor._type = FakeType(TypeKind.RECORD, name, declaration=cursor)
        self._add(cursor, parent)
        for base in bases:
            specifier = FakeCursor(CursorKind.CXX_BASE_SPECIFIER, f"struct {base.spelling}", cursor._file, cursor, base.type)
            cursor.children.append(specifier)
        if fields:
            self.fields(cursor, fields)
        return cursor

    def union(self, name: str, fields: Sequence[Tuple[str, FakeType]], parent=None) -> FakeCursor:
        return self.struct(name, fields, parent, kind=CursorKind.UNION_DECL)

    def forward(self, name: str, parent: Optional[FakeCursor] = None) -> FakeCursor:
        cursor = FakeCursor(CursorKind.STRUCT_DECL, name, self.file, parent, definition=False)
        cursor._type = FakeType(TypeKind.RECORD, name, declaration=cursor)
        return self._add(cursor, parent)

    def fields(self, record: FakeCursor, fields: Sequence[Tuple[str, FakeType]]) -> None:
        for name, t in fields:
            record.children.append(FakeCursor(CursorKind.FIELD_DECL, name, record._file, record, t))

    def _parameters(self, cursor: FakeCursor, parameters: Sequence[Tuple[str, FakeType]]) -> None:
        for name, t in parameters:
            cursor.arguments.append(FakeCursor(CursorKind.PARM_DECL, name, cursor._file, cursor, t))

    def method(
        self,
        record: FakeCursor,
        name: str,
        result: FakeType,
        parameters: Sequence[Tuple[str, FakeType]] = (),
        mangled: Optional[str] = None,
        **flags,
    ) -> FakeCursor:
        cursor = FakeCursor(CursorKind.CXX_METHOD, name, record._file, record, **flags)
        cursor.result = result
        self._parameters(cursor, parameters)
        cursor.mangled = mangled or f"_ZN{len(record.spelling)}{record.spelling}{len(name)}{name}E{len(record.children)}"
        record.children.append(cursor)
        return cursor

    def constructor(
        self,
        record: FakeCursor,
        parameters: Sequence[Tuple[str, FakeType]] = (),
        **flags,
    ) -> FakeCursor:
        cursor = FakeCursor(CursorKind.CONSTRUCTOR, record.spelling, record._file, record, **flags)
        self._parameters(cursor, parameters)
        tag = f"{len(record.spelling)}{record.spelling}"
        index = len(record.children)
        cursor.symbols = [f"_ZN{tag}C2E{index}", f"_ZN{tag}C1E{index}"]
        record.children.append(cursor)
        return cursor

    def destructor(self, record: FakeCursor, **flags) -> FakeCursor:
        cursor = FakeCursor(CursorKind.DESTRUCTOR, f"~{record.spelling}", record._file, record, **flags)
        tag = f"{len(record.spelling)}{record.spelling}"
        cursor.symbols = [f"_ZN{tag}D2Ev", f"_ZN{tag}D1Ev"]
        if flags.get("virtual"):
            # Deleting destructor
            cursor.symbols.append(f"_ZN{tag}D0Ev")
        record.children.append(cursor)
        return cursor

    def enum(
        self,
        name: str,
        constants: Sequence[Tuple[str, int]],
        underlying: Optional[FakeType] = None,
        parent: Optional[FakeCursor] = None,
    ) -> FakeCursor:
        integer = underlying or self.int
        cursor = FakeCursor(CursorKind.ENUM_DECL, name, self.file, parent)
        cursor._type = FakeType(
            TypeKind.ENUM, name, size=integer.get_size(), align=integer.get_align(), declaration=cursor
        )
        cursor.integer_type = integer
        for constant_name, value in constants:
            constant = FakeCursor(CursorKind.ENUM_CONSTANT_DECL, constant_name, self.file, cursor)
            constant.value = value
            cursor.children.append(constant)
        return self._add(cursor, parent)

    def typedef(self, name: str, target: FakeType, parent: Optional[FakeCursor] = None) -> FakeCursor:
        cursor = FakeCursor(CursorKind.TYPEDEF_DECL, name, self.file, parent)
        cursor.underlying = target
        cursor._type = FakeType(
            TypeKind.TYPEDEF, name, declaration=cursor, canonical=target.get_canonical()
        )
        return self._add(cursor, parent)

    def function(
        self,
        name: str,
        result: FakeType,
        parameters: Sequence[Tuple[str, FakeType]] = (),
        parent: Optional[FakeCursor] = None,
        mangled: Optional[str] = None,
    ) -> FakeCursor:
        cursor = FakeCursor(CursorKind.FUNCTION_DECL, name, self.file, parent)
        cursor.result = result
        self._parameters(cursor, parameters)
        cursor.mangled = mangled or name
        return self._add(cursor, parent)

    def var(self, name: str, t: FakeType, parent: Optional[FakeCursor] = None) -> FakeCursor:
        cursor = FakeCursor(CursorKind.VAR_DECL, name, self.file, parent, t)
        cursor.mangled = name
        return self._add(cursor, parent)

    def class_template(
        self,
        name: str,
        parameters: Sequence[str],
        fields: Optional[Callable[[Dict[str, FakeType]], Sequence[Tuple[str, FakeType]]]] = None,
        parent: Optional[FakeCursor] = None,
    ) -> Tuple[FakeCursor, Dict[str, FakeType]]:
        """A class template; `fields` maps each parameter's dependent type to members."""
        cursor = FakeCursor(CursorKind.CLASS_TEMPLATE, name, self.file, parent)
        cursor._type = FakeType(TypeKind.UNEXPOSED, name, declaration=cursor)
        parameter_types: Dict[str, FakeType] = {}
        for index, parameter in enumerate(parameters):
            spread = parameter.endswith("...")
            parameter_name = parameter[:-3] if spread else parameter
            declaration = FakeCursor(
                CursorKind.TEMPLATE_TYPE_PARAMETER, parameter_name, self.file, cursor, pack=spread
            )
            cursor.children.append(declaration)
            canonical = FakeType(TypeKind.UNEXPOSED, f"type-parameter-0-{index}")
            parameter_types[parameter_name] = FakeType(
                TypeKind.UNEXPOSED, parameter_name, declaration=declaration, canonical=canonical
            )
        if fields is not None:
            self.fields(cursor, fields(parameter_types))
        self._add(cursor, parent)
        return cursor, parameter_types

    def instance(self, template: FakeCursor, arguments: Sequence[FakeType]) -> FakeType:
        """The record type of `template<arguments...>` with its implicit instantiation."""
        spelling = f"{template.spelling}<{', '.join(a.spelling for a in arguments)}>"
        declaration = FakeCursor(CursorKind.STRUCT_DECL, template.spelling, template._file, template._parent)
        declaration.template = template
        declaration._type = FakeType(
            TypeKind.RECORD, spelling, declaration=declaration, template_arguments=arguments
        )
        substitutions = dict(zip((c.spelling for c in template.children if c.kind == CursorKind.TEMPLATE_TYPE_PARAMETER), arguments))
        for child in template.children:
            if child.kind != CursorKind.FIELD_DECL:
                continue
            t = child.type
            if t.get_declaration() is not None and t.get_declaration().kind == CursorKind.TEMPLATE_TYPE_PARAMETER:
                t = substitutions[t.get_declaration().spelling]
            declaration.children.append(FakeCursor(CursorKind.FIELD_DECL, child.spelling, template._file, declaration, t))
        return declaration._type


@pytest.fixture
def tu() -> FakeTU:
    return FakeTU()


@pytest.fixture
def shapes(tu: FakeTU) -> FakeTU:
    """
    struct Vec3 { float x, y, z; };
    struct Node { Node* next; Vec3 pos; };
    enum Color { Red = 1, Green = 2, Blue = 4 };
    class Shape {
      public:
        Shape();
        ~Shape();
        float area();
        float area(float scale);
        Color color() const;
    };
    float length(const Vec3& v);
    void visit(Node* node);
    """
    vec3 = tu.struct("Vec3", [("x", tu.float), ("y", tu.float), ("z", tu.float)])
    node = tu.struct("Node")
    tu.fields(node, [("next", tu.pointer(node.type)), ("pos", vec3.type)])
    color = tu.enum("Color", [("Red", 1), ("Green", 2), ("Blue", 4)])
    shape = tu.struct("Shape", kind=CursorKind.CLASS_DECL)
    tu.fields(shape, [("sides", tu.int)])
    tu.constructor(shape)
    tu.destructor(shape)
    tu.method(shape, "area", tu.float)
    tu.method(shape, "area", tu.float, [("scale", tu.float)])
    tu.method(shape, "color", color.type, const=True)
    tu.function("length", tu.float, [("v", tu.reference(vec3.type))])
    tu.function("visit", tu.void, [("node", tu.pointer(node.type))])
    return tu
