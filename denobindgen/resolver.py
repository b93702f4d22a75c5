"""
Maps frontend types to typed entries.

All entry points are `traversal` steps; structural results are interned so
resolving the same type twice yields the same object.
"""

import logging
from typing import TYPE_CHECKING, Dict, Hashable, List, Optional, Tuple

from . import layout, traversal
from .entries import (
    ArrayType,
    ClassEntry,
    Field,
    FunctionType,
    InlineClassType,
    InlineUnionType,
    MemberPointerType,
    Parameter,
    PointerType,
    Primitive,
    Specialization,
    TemplateInstance,
    TemplateParameter,
    TypedefEntry,
    TypeEntry,
    UnionEntry,
    EnumEntry,
    ClassTemplateEntry,
    strip_typedefs,
)
from .errors import BindgenError, LayoutError, NotFoundError, UnsupportedTypeError, VoidTypeError
from .frontend import Cursor, CursorKind, Type, TypeKind
from .registry import SymbolTable
from .traversal import Step

if TYPE_CHECKING:
    from .expander import Expander

logger = logging.getLogger(__name__)

POINTER_KINDS = (TypeKind.POINTER, TypeKind.LVALUEREFERENCE, TypeKind.RVALUEREFERENCE)
CHAR_KINDS = (TypeKind.CHAR_S, TypeKind.CHAR_U)

SIGNED_KINDS = (
    TypeKind.CHAR_S,
    TypeKind.SCHAR,
    TypeKind.WCHAR,
    TypeKind.SHORT,
    TypeKind.INT,
    TypeKind.LONG,
    TypeKind.LONGLONG,
    TypeKind.INT128,
)

UNSIGNED_KINDS = (
    TypeKind.CHAR_U,
    TypeKind.UCHAR,
    TypeKind.CHAR16,
    TypeKind.CHAR32,
    TypeKind.USHORT,
    TypeKind.UINT,
    TypeKind.ULONG,
    TypeKind.ULONGLONG,
    TypeKind.UINT128,
)

ARRAY_KINDS_UNSUPPORTED = (
    TypeKind.INCOMPLETEARRAY,
    TypeKind.VARIABLEARRAY,
    TypeKind.DEPENDENTSIZEDARRAY,
)

_SIGNED_BY_SIZE = {1: Primitive.I8, 2: Primitive.I16, 4: Primitive.I32, 8: Primitive.I64}
_UNSIGNED_BY_SIZE = {1: Primitive.U8, 2: Primitive.U16, 4: Primitive.U32, 8: Primitive.U64}

RECORD_DECL_KINDS = (CursorKind.CLASS_DECL, CursorKind.STRUCT_DECL, CursorKind.UNION_DECL)

# Canonical spelling of template type parameters
DEPENDENT_MARKER = "type-parameter-"


def primitive_for(t: Type) -> Optional[Primitive]:
    """The fixed-width tag for a builtin scalar type, or None if `t` is not one."""
    kind = t.kind
    if kind == TypeKind.BOOL:
        if t.get_size() != 1:
            raise LayoutError(f"Unexpected bool size {t.get_size()}")
        return Primitive.BOOL
    if kind == TypeKind.FLOAT:
        if t.get_size() != 4:
            raise LayoutError(f"Unexpected float size {t.get_size()}")
        return Primitive.F32
    if kind == TypeKind.DOUBLE:
        if t.get_size() != 8:
            raise LayoutError(f"Unexpected double size {t.get_size()}")
        return Primitive.F64
    if kind in SIGNED_KINDS or kind in UNSIGNED_KINDS:
        table = _SIGNED_BY_SIZE if kind in SIGNED_KINDS else _UNSIGNED_BY_SIZE
        size = t.get_size()
        if size not in table:
            raise LayoutError(f"Unexpected size {size} for integer type '{t.spelling}'")
        return table[size]
    return None


def field_cursors(record: Cursor) -> List[Tuple[str, Cursor]]:
    """
    Data members of a record in declaration order. Anonymous struct/union
    members are reported with an empty name and the record cursor itself.
    """
    out: List[Tuple[str, Cursor]] = []
    pending: Optional[Cursor] = None
    for child in record.get_children():
        if child.kind == CursorKind.FIELD_DECL:
            decl = child.type.get_declaration()
            if pending is not None and decl is not None and decl.canonical == pending.canonical:
                pending = None
            elif pending is not None:
                out.append(("", pending))
                pending = None
            out.append((child.spelling, child))
        elif child.kind in RECORD_DECL_KINDS and child.is_anonymous() and child.is_definition():
            if pending is not None:
                out.append(("", pending))
            pending = child
    if pending is not None:
        out.append(("", pending))
    return out


class TypeResolver:
    def __init__(self, table: SymbolTable):
        self.table = table
        self.expander: "Expander" = None  # type: ignore[assignment]
        self._memo: Dict[Hashable, TypeEntry] = {}
        self._scopes: List[Specialization] = []

    # Public, non-step API

    def resolve(self, t: Type) -> Optional[TypeEntry]:
        return traversal.run(self.resolve_step(t))

    def resolve_inline(self, t: Type) -> Optional[TypeEntry]:
        return traversal.run(self.resolve_inline_step(t))

    # Template scopes

    def push_scope(self, specialization: Specialization) -> None:
        self._scopes.append(specialization)

    def pop_scope(self) -> None:
        self._scopes.pop()

    def _memo_key(self, tag: str, t: Type) -> Hashable:
        # Dependent types only mean the same thing inside the same template
        scope = 0
        if self._scopes and DEPENDENT_MARKER in t.get_canonical().spelling:
            scope = self._scopes[-1].handle
        return (scope, tag, t.key())

    # Steps

    def resolve_step(self, t: Type) -> Step:
        kind = t.kind
        if kind == TypeKind.VOID:
            return None
        if kind == TypeKind.ELABORATED:
            return (yield self.resolve_step(t.get_named_type()))
        if kind == TypeKind.TYPEDEF:
            return (yield self._typedef_step(t))
        if kind in POINTER_KINDS:
            return (yield self._pointer_step(t))
        if kind == TypeKind.ENUM:
            return (yield self._enum_step(t))
        if kind == TypeKind.NULLPTR:
            return Primitive.POINTER
        primitive = primitive_for(t)
        if primitive is not None:
            return primitive
        if kind == TypeKind.RECORD:
            return (yield self._record_step(t))
        if kind == TypeKind.CONSTANTARRAY:
            return (yield self._array_step(t))
        if kind in (TypeKind.FUNCTIONPROTO, TypeKind.FUNCTIONNOPROTO):
            return (yield self._function_step(t))
        if kind == TypeKind.MEMBERPOINTER:
            return self._intern(self._memo_key("member", t), lambda: MemberPointerType(type=t))
        if kind in (TypeKind.UNEXPOSED, TypeKind.DEPENDENT):
            return (yield self._unexposed_step(t))
        if kind == TypeKind.AUTO:
            return (yield self.resolve_step(t.get_canonical()))
        raise UnsupportedTypeError(t.spelling, kind)

    def resolve_inline_step(self, t: Type) -> Step:
        """Resolve a by-value member: records become inline copies of their layout."""
        while t.kind == TypeKind.ELABORATED:
            t = t.get_named_type()
        if t.kind == TypeKind.TYPEDEF:
            decl = t.get_declaration()
            if isinstance(self.table.entry_for_cursor(decl), TypedefEntry):
                return (yield self.resolve_step(t))
            return (yield self.resolve_inline_step(t.get_canonical()))
        if t.kind == TypeKind.RECORD:
            decl = t.get_declaration()
            entry = self.table.entry_for_cursor(decl)
            if isinstance(entry, UnionEntry):
                return (yield self.expander.visit_union_step(entry))
            if not isinstance(entry, ClassEntry) and self._is_template_instance(t, decl):
                return (yield self._template_instance_step(t))
            return (yield self._inline_record_step(t))
        return (yield self.resolve_step(t))

    # Individual type categories

    def _intern(self, key: Hashable, make) -> TypeEntry:
        found = self._memo.get(key)
        if found is None:
            found = make()
            self._memo[key] = found
        return found

    def _typedef_step(self, t: Type) -> Step:
        decl = t.get_declaration()
        entry = self.table.entry_for_cursor(decl)
        if isinstance(entry, TypedefEntry):
            entry = yield self.expander.visit_typedef_step(entry)
            target = entry.target
            if (
                target is not None
                and getattr(target, "name", None) == entry.name
                and getattr(target, "file", None) == entry.file
            ):
                # `using Foo = Internal::Foo;` adds nothing of its own
                return target
            return entry
        logger.debug("Typedef '%s' is not registered, using its canonical type", t.spelling)
        return (yield self.resolve_step(t.get_canonical()))

    def _pointer_step(self, t: Type) -> Step:
        key = self._memo_key("pointer", t)
        found = self._memo.get(key)
        if found is not None:
            return found
        pointee = t.get_pointee()
        if pointee is None or pointee.kind == TypeKind.INVALID:
            raise BindgenError(f"Could not get pointee of '{t.spelling}'")
        if pointee.kind in CHAR_KINDS:
            return Primitive.CSTRING
        canonical_pointee = pointee.get_canonical()
        if canonical_pointee.kind == TypeKind.POINTER:
            inner = canonical_pointee.get_pointee()
            if inner is not None and inner.kind in CHAR_KINDS:
                return Primitive.CSTRING_ARRAY
        resolved = yield self.resolve_step(pointee)
        if resolved is None or (
            isinstance(resolved, TypedefEntry)
            and resolved.resolved
            and strip_typedefs(resolved) is None
        ):
            return Primitive.POINTER
        return self._intern(key, lambda: PointerType(pointee=resolved, type=t))

    def _enum_step(self, t: Type) -> Step:
        decl = t.get_declaration()
        entry = self.table.entry_for_cursor(decl)
        if not isinstance(entry, EnumEntry):
            raise NotFoundError(f"Could not find enum '{t.spelling}'")
        return (yield self.expander.visit_enum_step(entry))

    def _record_step(self, t: Type) -> Step:
        decl = t.get_declaration()
        entry = self.table.entry_for_cursor(decl)
        if isinstance(entry, ClassEntry):
            return (yield self.expander.expand_class_step(entry))
        if isinstance(entry, UnionEntry):
            return (yield self.expander.visit_union_step(entry))
        if self._is_template_instance(t, decl):
            return (yield self._template_instance_step(t))
        return (yield self._inline_record_step(t))

    @staticmethod
    def _is_template_instance(t: Type, decl: Optional[Cursor]) -> bool:
        return (
            decl is not None
            and decl.specialized_template is not None
            and t.get_num_template_arguments() > 0
        )

    def _inline_record_step(self, t: Type) -> Step:
        key = self._memo_key("inline", t)
        found = self._memo.get(key)
        if found is not None:
            return found
        decl = t.get_declaration()
        definition = decl.get_definition() if decl is not None else None
        if definition is None or t.get_size() < 0:
            # Only forward declared: opaque placeholder
            return self._intern(key, lambda: InlineClassType(type=t))

        entry = self.table.entry_for_cursor(definition)
        if definition.kind == CursorKind.UNION_DECL:
            node = InlineUnionType(type=t)
        else:
            node = InlineClassType(
                type=t,
                declaration=entry if isinstance(entry, ClassEntry) else None,
                vtable=layout.has_own_vtable(definition),
            )
        self._memo[key] = node
        if isinstance(node, InlineClassType):
            for child in definition.get_children():
                if child.kind == CursorKind.CXX_BASE_SPECIFIER:
                    base = yield self.resolve_inline_step(child.type)
                    node.bases.append(base)
        for name, cursor in field_cursors(definition):
            try:
                field_type = yield self.resolve_inline_step(cursor.type)
            except BindgenError as err:
                raise err.within(f"field {name or '<anonymous>'}")
            if field_type is None:
                raise VoidTypeError(f"Field '{name}' of '{t.spelling}' has void type")
            node.fields.append(Field(name=name, type=field_type, cursor=cursor))
        return node

    def _array_step(self, t: Type) -> Step:
        key = self._memo_key("array", t)
        found = self._memo.get(key)
        if found is not None:
            return found
        element = yield self.resolve_inline_step(t.element_type)
        if element is None:
            raise VoidTypeError(f"Array '{t.spelling}' has void elements")
        return self._intern(
            key, lambda: ArrayType(element=element, length=t.element_count, type=t)
        )

    def _function_step(self, t: Type) -> Step:
        key = self._memo_key("function", t)
        found = self._memo.get(key)
        if found is not None:
            return found
        parameters: List[Parameter] = []
        if t.kind == TypeKind.FUNCTIONPROTO:
            for index, arg_type in enumerate(t.argument_types()):
                name = f"arg_{index}"
                try:
                    arg = yield self.resolve_step(arg_type)
                except BindgenError as err:
                    raise err.within(f"parameter {name}")
                if arg is None:
                    raise VoidTypeError(f"Parameter {name} of '{t.spelling}' is void")
                parameters.append(Parameter(name=name, type=arg))
        result = yield self.resolve_step(t.get_result())
        return self._intern(
            key, lambda: FunctionType(parameters=parameters, result=result, type=t)
        )

    def _unexposed_step(self, t: Type) -> Step:
        decl = t.get_declaration()
        if decl is not None and decl.kind == CursorKind.TEMPLATE_TYPE_PARAMETER:
            return self._template_parameter(decl.spelling, decl.is_parameter_pack())
        if t.spelling.endswith("..."):
            return self._template_parameter(t.spelling[:-3].strip(), True)
        canonical = t.get_canonical()
        if canonical.kind not in (TypeKind.UNEXPOSED, TypeKind.DEPENDENT, TypeKind.INVALID):
            return (yield self.resolve_step(canonical))
        if self._is_template_instance(t, decl):
            return (yield self._template_instance_step(t))
        return Primitive.BUFFER

    def _template_parameter(self, name: str, spread: bool) -> TemplateParameter:
        for scope in reversed(self._scopes):
            for parameter in scope.parameters:
                if parameter.name == name:
                    return parameter
        return TemplateParameter(name=name, is_spread=spread)

    def _template_instance_step(self, t: Type) -> Step:
        key = self._memo_key("instance", t)
        found = self._memo.get(key)
        if found is not None:
            return found
        decl = t.get_declaration()
        selected = self.table.entry_for_cursor(decl.specialized_template)
        explicit: Optional[Specialization] = None
        if isinstance(selected, Specialization):
            template = selected.template
            explicit = selected
        elif isinstance(selected, ClassTemplateEntry):
            template = selected
        else:
            raise NotFoundError(f"Could not find class template of '{t.spelling}'")

        template = yield self.expander.expand_template_step(template)
        arguments: List[Optional[TypeEntry]] = []
        for index in range(t.get_num_template_arguments()):
            arg_type = t.get_template_argument_type(index)
            if arg_type is None or arg_type.kind == TypeKind.INVALID:
                # Non-type template argument
                arguments.append(None)
                continue
            try:
                argument = yield self.resolve_step(arg_type)
            except BindgenError as err:
                raise err.within(f"template argument {index} of {t.spelling}")
            arguments.append(argument)

        specialization = yield self.expander.select_specialization_step(
            template, arguments, explicit
        )
        return self._intern(
            key,
            lambda: TemplateInstance(
                template=template,
                arguments=arguments,
                specialization=specialization,
                type=t,
            ),
        )
