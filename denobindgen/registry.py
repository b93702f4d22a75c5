"""
Symbol table holding one registry per declaration kind.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Type, TypeVar

from .entries import (
    SEP,
    ClassEntry,
    ClassTemplateEntry,
    Entry,
    EnumEntry,
    FunctionEntry,
    Specialization,
    TemplateParameter,
    TypedefEntry,
    UnionEntry,
    VarEntry,
)
from .errors import AmbiguousNameError, NotFoundError
from .frontend import Cursor, CursorKind

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entry)

TEMPLATE_PARAMETER_KINDS = (
    CursorKind.TEMPLATE_TYPE_PARAMETER,
    CursorKind.TEMPLATE_NON_TYPE_PARAMETER,
    CursorKind.TEMPLATE_TEMPLATE_PARAMETER,
)


def template_name_part(cursor: Cursor) -> str:
    """`<int, float>` for an explicit specialization `Foo<int, float>`, else ''."""
    if cursor.specialized_template is None:
        return ""
    spelling = cursor.type.spelling
    start = spelling.find("<")
    if start == -1:
        return ""
    return spelling[start:]


def template_parameters(cursor: Cursor) -> List[TemplateParameter]:
    return [
        TemplateParameter(name=child.spelling, is_spread=child.is_parameter_pack())
        for child in cursor.get_children()
        if child.kind in TEMPLATE_PARAMETER_KINDS
    ]


class SymbolTable:
    def __init__(self) -> None:
        self.classes: Dict[str, ClassEntry] = {}
        self.class_templates: Dict[str, ClassTemplateEntry] = {}
        self.enums: Dict[str, EnumEntry] = {}
        self.functions: Dict[str, FunctionEntry] = {}
        self.typedefs: Dict[str, TypedefEntry] = {}
        self.unions: Dict[str, UnionEntry] = {}
        self.vars: Dict[str, VarEntry] = {}
        self.namespace_stack: List[str] = []
        self._by_cursor: Dict[Cursor, Entry] = {}
        self._order: List[Entry] = []

    # Namespace handling

    def push_namespace(self, name: str) -> None:
        self.namespace_stack.append(name)

    def pop_namespace(self) -> None:
        self.namespace_stack.pop()

    def qualified_name(self, name: str) -> str:
        return SEP.join(self.namespace_stack + [name])

    # Registration

    def _register(self, registry: Dict[str, E], entry: E) -> E:
        existing = registry.get(entry.ns_name)
        if existing is not None:
            logger.debug("Keeping first declaration of %s", entry.ns_name)
            self._by_cursor.setdefault(entry.cursor.canonical, existing)
            return existing
        registry[entry.ns_name] = entry
        self._by_cursor[entry.cursor.canonical] = entry
        self._order.append(entry)
        return entry

    def _make(self, cls: Type[E], cursor: Cursor, name: Optional[str] = None) -> E:
        name = name if name is not None else cursor.spelling
        return cls(
            cursor=cursor,
            name=name,
            ns_name=self.qualified_name(name),
            file=cursor.file,
        )

    def add_class(self, cursor: Cursor) -> Optional[ClassEntry]:
        if not cursor.is_definition() or cursor.is_anonymous():
            return None
        entry = self._make(
            ClassEntry, cursor, cursor.spelling + template_name_part(cursor)
        )
        entry.size = cursor.type.get_size()
        entry.align = cursor.type.get_align()
        return self._register(self.classes, entry)

    def add_class_template(self, cursor: Cursor) -> ClassTemplateEntry:
        entry = self._make(ClassTemplateEntry, cursor)
        existing = self.class_templates.get(entry.ns_name)
        if existing is not None:
            if cursor.is_definition() and not existing.cursor.is_definition():
                # A forward declaration was seen first: adopt the definition.
                existing.cursor = cursor
                existing.parameters = template_parameters(cursor)
                default = existing.default_specialization
                if default is not None:
                    default.cursor = cursor
                    default.parameters = existing.parameters
            self._by_cursor.setdefault(cursor.canonical, existing)
            return existing
        entry.parameters = template_parameters(cursor)
        entry.default_specialization = Specialization(
            cursor=cursor,
            name=entry.name,
            ns_name=entry.ns_name,
            file=entry.file,
            template=entry,
            parameters=entry.parameters,
        )
        return self._register(self.class_templates, entry)

    def add_partial_specialization(self, cursor: Cursor) -> Specialization:
        primary_cursor = cursor.specialized_template
        primary = self.entry_for_cursor(primary_cursor) if primary_cursor else None
        if not isinstance(primary, ClassTemplateEntry):
            raise NotFoundError(
                f"Could not find class template for partial specialization "
                f"{self.qualified_name(cursor.spelling)}"
            )
        known = self._by_cursor.get(cursor.canonical)
        if isinstance(known, Specialization):
            return known
        specialization = Specialization(
            cursor=cursor,
            name=primary.name,
            ns_name=primary.ns_name,
            file=cursor.file,
            template=primary,
            index=len(primary.partial_specializations),
            parameters=template_parameters(cursor),
        )
        primary.partial_specializations.append(specialization)
        self._by_cursor[cursor.canonical] = specialization
        return specialization

    def add_enum(self, cursor: Cursor) -> Optional[EnumEntry]:
        if not cursor.is_definition() or cursor.is_anonymous():
            return None
        entry = self._make(EnumEntry, cursor)
        entry.size = cursor.type.get_size()
        return self._register(self.enums, entry)

    def add_function(self, cursor: Cursor) -> FunctionEntry:
        return self._register(self.functions, self._make(FunctionEntry, cursor))

    def add_typedef(self, cursor: Cursor) -> TypedefEntry:
        return self._register(self.typedefs, self._make(TypedefEntry, cursor))

    def add_union(self, cursor: Cursor) -> Optional[UnionEntry]:
        if not cursor.is_definition() or cursor.is_anonymous():
            return None
        entry = self._make(UnionEntry, cursor)
        entry.size = cursor.type.get_size()
        return self._register(self.unions, entry)

    def add_var(self, cursor: Cursor) -> Optional[VarEntry]:
        if not cursor.is_definition():
            return None
        return self._register(self.vars, self._make(VarEntry, cursor))

    # Lookup

    def entry_for_cursor(self, cursor: Optional[Cursor]) -> Optional[Entry]:
        if cursor is None:
            return None
        return self._by_cursor.get(cursor.canonical)

    @staticmethod
    def _lookup(registry: Dict[str, E], kind: str, name: str) -> Optional[E]:
        found = registry.get(name)
        if found is not None:
            return found
        suffix = SEP + name
        candidates = [e for key, e in registry.items() if key.endswith(suffix)]
        if len(candidates) > 1:
            names = ", ".join(sorted(e.ns_name for e in candidates))
            raise AmbiguousNameError(
                f"Found multiple {kind} entries matching '{name}' ({names}), "
                f"use the qualified name"
            )
        return candidates[0] if candidates else None

    def find_class(self, name: str) -> Optional[ClassEntry]:
        return self._lookup(self.classes, "class", name)

    def find_class_template(self, name: str) -> Optional[ClassTemplateEntry]:
        return self._lookup(self.class_templates, "class template", name)

    def find_enum(self, name: str) -> Optional[EnumEntry]:
        return self._lookup(self.enums, "enum", name)

    def find_function(self, name: str) -> Optional[FunctionEntry]:
        return self._lookup(self.functions, "function", name)

    def find_typedef(self, name: str) -> Optional[TypedefEntry]:
        return self._lookup(self.typedefs, "typedef", name)

    def find_union(self, name: str) -> Optional[UnionEntry]:
        return self._lookup(self.unions, "union", name)

    def find_var(self, name: str) -> Optional[VarEntry]:
        return self._lookup(self.vars, "var", name)

    # Results

    def used_entries(self) -> Dict[str, List[Entry]]:
        """Used entries grouped by declaring file, in registration order."""
        by_file: Dict[str, List[Entry]] = defaultdict(list)
        for entry in self._order:
            if isinstance(entry, ClassTemplateEntry):
                specializations = [entry.default_specialization] + list(
                    entry.partial_specializations
                )
                if not any(s is not None and s.used for s in specializations):
                    continue
            elif not entry.used:
                continue
            by_file[entry.file].append(entry)
        return dict(by_file)

    def used_struct_likes(self) -> List[Entry]:
        """Used classes and template specializations."""
        out: List[Entry] = []
        for entry in self._order:
            if isinstance(entry, ClassEntry) and entry.used:
                out.append(entry)
            elif isinstance(entry, ClassTemplateEntry):
                for spec in [entry.default_specialization] + list(
                    entry.partial_specializations
                ):
                    if spec is not None and spec.used:
                        out.append(spec)
        return out
