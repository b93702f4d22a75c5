"""
Demand-driven expansion of the entries an import list reaches.

Nothing is expanded up front: a class gets its fields, bases and bound members
only once an import or a reachable type asks for it.
"""

import logging
from typing import List, Optional, Sequence

from . import traversal
from .config import (
    NO_CAPABILITIES,
    ClassCapabilities,
    ClassImport,
    FunctionImport,
    ImportSpec,
    VarImport,
)
from .entries import (
    ArrayType,
    ClassEntry,
    ClassTemplateEntry,
    Constructor,
    Destructor,
    EnumConstant,
    EnumEntry,
    Field,
    FunctionEntry,
    FunctionType,
    InlineClassType,
    Method,
    Parameter,
    PointerType,
    Primitive,
    Specialization,
    StructLikeEntry,
    TemplateInstance,
    TemplateParameter,
    TypedefEntry,
    TypeEntry,
    UnionEntry,
    VarEntry,
    strip_typedefs,
)
from .errors import AmbiguousNameError, BindgenError, NotFoundError, VoidTypeError
from .frontend import AccessSpecifier, Cursor, CursorKind
from .layout import structural_key
from .registry import SymbolTable
from .resolver import TypeResolver, field_cursors
from .traversal import Step

logger = logging.getLogger(__name__)


def is_void(t: Optional[TypeEntry]) -> bool:
    if t is None:
        return True
    return isinstance(t, TypedefEntry) and t.resolved and strip_typedefs(t) is None


def is_bindable(cursor: Cursor) -> bool:
    """Public members with an emitted symbol."""
    return cursor.access_specifier == AccessSpecifier.PUBLIC and not cursor.is_inlined()


def pattern_matches(pattern: Optional[TypeEntry], argument: Optional[TypeEntry]) -> bool:
    """Match a partial specialization's argument pattern against a concrete type."""
    return traversal.run(pattern_matches_step(pattern, argument))


def pattern_matches_step(pattern: Optional[TypeEntry], argument: Optional[TypeEntry]) -> Step:
    if isinstance(pattern, TemplateParameter) or pattern is argument:
        return True
    if isinstance(pattern, PointerType) and isinstance(argument, PointerType):
        return (yield pattern_matches_step(pattern.pointee, argument.pointee))
    if isinstance(pattern, FunctionType) and isinstance(argument, FunctionType):
        if not (yield pattern_matches_step(pattern.result, argument.result)):
            return False
        return (
            yield sequence_matches_step(
                [p.type for p in pattern.parameters],
                [p.type for p in argument.parameters],
            )
        )
    if isinstance(pattern, ArrayType) and isinstance(argument, ArrayType):
        if pattern.length != argument.length:
            return False
        return (yield pattern_matches_step(pattern.element, argument.element))
    if isinstance(pattern, TemplateInstance) and isinstance(argument, TemplateInstance):
        if pattern.template is not argument.template:
            return False
        return (yield sequence_matches_step(pattern.arguments, argument.arguments))
    if isinstance(pattern, TypedefEntry) or isinstance(argument, TypedefEntry):
        stripped_pattern, stripped_argument = strip_typedefs(pattern), strip_typedefs(argument)
        if stripped_pattern is pattern and stripped_argument is argument:
            return False
        return (yield pattern_matches_step(stripped_pattern, stripped_argument))
    return structural_key(pattern) == structural_key(argument)


def sequence_matches(
    patterns: Sequence[Optional[TypeEntry]], arguments: Sequence[Optional[TypeEntry]]
) -> bool:
    return traversal.run(sequence_matches_step(patterns, arguments))


def sequence_matches_step(
    patterns: Sequence[Optional[TypeEntry]], arguments: Sequence[Optional[TypeEntry]]
) -> Step:
    """Positional match where a trailing parameter pack absorbs the rest."""
    if patterns and isinstance(patterns[-1], TemplateParameter) and patterns[-1].is_spread:
        head = len(patterns) - 1
        if len(arguments) < head:
            return False
        patterns = patterns[:head]
        arguments = arguments[:head]
    elif len(patterns) != len(arguments):
        return False
    for p, a in zip(patterns, arguments):
        if not (yield pattern_matches_step(p, a)):
            return False
    return True


class Expander:
    def __init__(self, table: SymbolTable):
        self.table = table
        self.resolver = TypeResolver(table)
        self.resolver.expander = self

    # Import-level entry points

    def visit(self, spec: ImportSpec) -> None:
        if isinstance(spec, ClassImport):
            self.visit_class(spec.name, spec.capabilities)
        elif isinstance(spec, FunctionImport):
            self.visit_function(spec.name)
        elif isinstance(spec, VarImport):
            self.visit_var(spec.name)
        else:
            raise TypeError(f"Unknown import {spec!r}")

    def visit_class(
        self, name: str, capabilities: ClassCapabilities = NO_CAPABILITIES
    ) -> object:
        """Expand a class, a typedef of a class or a class template by name."""
        try:
            entry = self.table.find_class(name)
            if entry is not None:
                return traversal.run(self.expand_class_step(entry, capabilities))
            typedef = self.table.find_typedef(name)
            if typedef is not None:
                traversal.run(self.visit_typedef_step(typedef))
                target = strip_typedefs(typedef.target)
                if isinstance(target, InlineClassType) and target.declaration is not None:
                    target = target.declaration
                if isinstance(target, ClassEntry):
                    traversal.run(self.expand_class_step(target, capabilities))
                    return typedef
                if isinstance(target, TemplateInstance):
                    return typedef
                if isinstance(target, InlineClassType):
                    return typedef
            template = self.table.find_class_template(name)
            if template is not None:
                traversal.run(self.expand_template_step(template))
                default = template.effective_default
                if default is None or not default.cursor.is_definition():
                    raise NotFoundError(f"Class template {template.ns_name} has no definition")
                return traversal.run(self.expand_specialization_step(default))
        except BindgenError as err:
            raise err.within(f"class {name}")
        raise NotFoundError(f"Could not find class '{name}'")

    def visit_function(self, name: str) -> FunctionEntry:
        entry = self.table.find_function(name)
        if entry is None:
            raise NotFoundError(f"Could not find function '{name}'")
        return traversal.run(self.function_step(entry))

    def visit_var(self, name: str) -> VarEntry:
        entry = self.table.find_var(name)
        if entry is None:
            raise NotFoundError(f"Could not find variable '{name}'")
        return traversal.run(self.var_step(entry))

    # Classes

    def expand_class_step(
        self, entry: ClassEntry, capabilities: ClassCapabilities = NO_CAPABILITIES
    ) -> Step:
        requested = entry.requested
        if entry.used and requested is not None and requested.covers(capabilities):
            logger.debug("Class %s already expanded", entry.ns_name)
            return entry
        first = not entry.used
        entry.used = True
        entry.requested = capabilities if requested is None else requested.merged(capabilities)
        try:
            yield self._bases_step(entry, capabilities.for_base(), first)
            if first:
                yield self._fields_step(entry)
            for child in entry.cursor.get_children():
                kind = child.kind
                if kind == CursorKind.CONSTRUCTOR:
                    yield self._constructor_step(entry, child, capabilities)
                elif kind == CursorKind.DESTRUCTOR:
                    self._destructor(entry, child, capabilities)
                elif kind == CursorKind.CXX_METHOD:
                    yield self._method_step(entry, child, capabilities)
        except BindgenError as err:
            raise err.within(f"class {entry.ns_name}")
        entry.expanded = True
        return entry

    def _bases_step(
        self, entry: StructLikeEntry, capabilities: ClassCapabilities, first: bool
    ) -> Step:
        for child in entry.cursor.get_children():
            if child.kind != CursorKind.CXX_BASE_SPECIFIER:
                continue
            try:
                base = yield self._base_step(child, capabilities)
            except BindgenError as err:
                raise err.within(f"base {child.type.spelling}")
            if first:
                target = entry.virtual_bases if child.is_virtual_base() else entry.bases
                target.append(base)

    def _base_step(self, specifier: Cursor, capabilities: ClassCapabilities) -> Step:
        base_type = specifier.type
        decl = base_type.get_declaration()
        base = self.table.entry_for_cursor(decl)
        if isinstance(base, ClassEntry):
            return (yield self.expand_class_step(base, capabilities))
        resolved = yield self.resolver.resolve_inline_step(base_type)
        if resolved is None:
            raise VoidTypeError(f"Base {base_type.spelling} is void")
        return resolved

    def _fields_step(self, entry: StructLikeEntry) -> Step:
        for name, cursor in field_cursors(entry.cursor):
            label = name or "<anonymous>"
            try:
                field_type = yield self.resolver.resolve_inline_step(cursor.type)
            except BindgenError as err:
                raise err.within(f"field {label}")
            if is_void(field_type):
                raise VoidTypeError(f"Field {label} of {entry.ns_name} has void type").within(
                    f"field {label}"
                )
            entry.fields.append(Field(name=name, type=field_type, cursor=cursor))

    def _parameters_step(self, cursor: Cursor) -> Step:
        parameters: List[Parameter] = []
        for index, argument in enumerate(cursor.get_arguments()):
            name = argument.spelling or f"arg_{index}"
            try:
                resolved = yield self.resolver.resolve_step(argument.type)
            except BindgenError as err:
                raise err.within(f"parameter {name}")
            if is_void(resolved):
                raise VoidTypeError(f"Parameter {name} has void type").within(f"parameter {name}")
            parameters.append(Parameter(name=name, type=resolved, cursor=argument))
        return parameters

    def _constructor_step(
        self, entry: ClassEntry, child: Cursor, capabilities: ClassCapabilities
    ) -> Step:
        if not is_bindable(child) or not capabilities.constructors.includes(entry.name, child):
            return
        manglings = child.manglings()
        if any(c.manglings == manglings for c in entry.constructors):
            return
        try:
            parameters = yield self._parameters_step(child)
        except BindgenError as err:
            raise err.within(f"constructor {child.spelling}")
        entry.constructors.append(
            Constructor(cursor=child, parameters=parameters, manglings=manglings)
        )

    @staticmethod
    def _destructor(entry: ClassEntry, child: Cursor, capabilities: ClassCapabilities) -> None:
        if entry.destructor is not None or not capabilities.destructors:
            return
        if not is_bindable(child):
            return
        entry.destructor = Destructor(cursor=child, manglings=child.manglings())

    def _method_step(
        self, entry: ClassEntry, child: Cursor, capabilities: ClassCapabilities
    ) -> Step:
        name = child.spelling
        if not name.isidentifier():
            # Operator overloads
            return
        if not is_bindable(child) or not capabilities.methods.includes(name, child):
            return
        mangling = child.mangled_name
        if any(m.mangling == mangling for m in entry.methods):
            return
        try:
            parameters = yield self._parameters_step(child)
            result = yield self.resolver.resolve_step(child.result_type)
        except BindgenError as err:
            raise err.within(f"method {name}")
        entry.methods.append(
            Method(
                cursor=child,
                name=name,
                parameters=parameters,
                result=result,
                mangling=mangling,
                is_static=child.is_static_method(),
                is_const=child.is_const_method(),
                is_virtual=child.is_virtual_method(),
                is_overriding=child.is_overriding(),
            )
        )

    # Class templates

    def expand_template_step(self, template: ClassTemplateEntry) -> Step:
        """Resolve every partial specialization's argument pattern once."""
        if template.used:
            return template
        template.used = True
        try:
            for specialization in template.partial_specializations:
                yield self._application_step(specialization)
        except BindgenError as err:
            raise err.within(f"class template {template.ns_name}")
        return template

    def _application_step(self, specialization: Specialization) -> Step:
        spec_type = specialization.cursor.type
        self.resolver.push_scope(specialization)
        try:
            application: List[TypeEntry] = []
            for index in range(spec_type.get_num_template_arguments()):
                argument = spec_type.get_template_argument_type(index)
                resolved = yield self.resolver.resolve_step(argument)
                application.append(resolved)
        finally:
            self.resolver.pop_scope()
        specialization.application = application

    def expand_specialization_step(self, specialization: Specialization) -> Step:
        if specialization.used:
            return specialization
        specialization.used = True
        if not specialization.cursor.is_definition():
            return specialization
        self.resolver.push_scope(specialization)
        try:
            yield self._bases_step(specialization, NO_CAPABILITIES, True)
            yield self._fields_step(specialization)
        except BindgenError as err:
            raise err.within(f"specialization {specialization.name}")
        finally:
            self.resolver.pop_scope()
        specialization.expanded = True
        return specialization

    def select_specialization_step(
        self,
        template: ClassTemplateEntry,
        arguments: Sequence[Optional[TypeEntry]],
        explicit: Optional[Specialization] = None,
    ) -> Step:
        specialization = explicit or self._match_specialization(template, arguments)
        return (yield self.expand_specialization_step(specialization))

    @staticmethod
    def _match_specialization(
        template: ClassTemplateEntry, arguments: Sequence[Optional[TypeEntry]]
    ) -> Specialization:
        matches = [
            spec
            for spec in template.partial_specializations
            if sequence_matches(spec.application, arguments)
        ]
        if len(matches) > 1:
            raise AmbiguousNameError(
                f"Multiple partial specializations of {template.ns_name} match "
                f"({', '.join(str(s.index) for s in matches)})"
            )
        if matches:
            return matches[0]
        default = template.effective_default
        if default is None or not default.cursor.is_definition():
            raise NotFoundError(f"No specialization of {template.ns_name} matches")
        return default

    # Other declarations

    def visit_typedef_step(self, entry: TypedefEntry) -> Step:
        if entry.resolved:
            return entry
        entry.resolved = True
        entry.used = True
        try:
            entry.target = yield self.resolver.resolve_step(entry.cursor.underlying_typedef_type)
        except BindgenError as err:
            raise err.within(f"typedef {entry.ns_name}")
        return entry

    def visit_enum_step(self, entry: EnumEntry) -> Step:
        if entry.used:
            return entry
        entry.used = True
        try:
            underlying = strip_typedefs((yield self.resolver.resolve_step(entry.cursor.enum_type)))
            if not isinstance(underlying, Primitive):
                raise BindgenError(f"Enum {entry.ns_name} has no integer underlying type")
            entry.underlying = underlying
            for child in entry.cursor.get_children():
                if child.kind != CursorKind.ENUM_CONSTANT_DECL:
                    continue
                constant = EnumConstant(name=child.spelling, value=child.enum_value)
                referenced = child.enum_reference()
                if referenced is not None:
                    owner = self.table.entry_for_cursor(referenced.semantic_parent)
                    if isinstance(owner, EnumEntry):
                        if owner is not entry:
                            yield self.visit_enum_step(owner)
                        constant.reference = owner
                        constant.reference_name = referenced.spelling
                entry.constants.append(constant)
        except BindgenError as err:
            raise err.within(f"enum {entry.ns_name}")
        return entry

    def visit_union_step(self, entry: UnionEntry) -> Step:
        if entry.used:
            return entry
        entry.used = True
        for name, cursor in field_cursors(entry.cursor):
            label = name or "<anonymous>"
            try:
                alternative = yield self.resolver.resolve_inline_step(cursor.type)
            except BindgenError as err:
                raise err.within(f"union {entry.ns_name}").within(f"field {label}")
            if is_void(alternative):
                raise VoidTypeError(f"Field {label} of {entry.ns_name} has void type")
            entry.fields.append(alternative)
        entry.expanded = True
        return entry

    def function_step(self, entry: FunctionEntry) -> Step:
        if entry.used:
            return entry
        entry.used = True
        try:
            entry.parameters = yield self._parameters_step(entry.cursor)
            entry.result = yield self.resolver.resolve_step(entry.cursor.result_type)
        except BindgenError as err:
            raise err.within(f"function {entry.ns_name}")
        entry.mangling = entry.cursor.mangled_name
        entry.expanded = True
        return entry

    def var_step(self, entry: VarEntry) -> Step:
        if entry.used:
            return entry
        entry.used = True
        try:
            resolved = yield self.resolver.resolve_step(entry.cursor.type)
        except BindgenError as err:
            raise err.within(f"variable {entry.ns_name}")
        if is_void(resolved):
            raise VoidTypeError(f"Variable {entry.ns_name} has void type")
        entry.type = resolved
        entry.mangling = entry.cursor.mangled_name
        return entry
