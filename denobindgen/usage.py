"""
Two-phase usage analysis: how each class crosses the call boundary.
"""

import logging
from typing import Iterable, List, Optional, Set

from .entries import (
    SELF,
    ArrayType,
    ClassEntry,
    ClassTemplateEntry,
    Entry,
    FunctionEntry,
    FunctionType,
    InlineClassType,
    InlineUnionType,
    Parameter,
    PointerType,
    TemplateInstance,
    TypedefEntry,
    TypeEntry,
    UnionEntry,
    VarEntry,
    strip_typedefs,
    usage_owner,
)
from .registry import SymbolTable

logger = logging.getLogger(__name__)


class UsageCollector:
    def __init__(self) -> None:
        self._scanned: Set[int] = set()

    def value(self, t: Optional[TypeEntry]) -> None:
        """Record a value crossing the call boundary."""
        owner = usage_owner(t)
        if owner is not None:
            owner.used_as_buffer = True
            return
        stripped = strip_typedefs(t)
        if isinstance(stripped, PointerType) and stripped.pointee is not SELF:
            owner = usage_owner(stripped.pointee)
            if owner is not None:
                owner.used_as_pointer = True

    def signature(self, parameters: Iterable[Parameter], result: Optional[TypeEntry]) -> None:
        for parameter in parameters:
            self.value(parameter.type)
            self.scan(parameter.type)
        self.value(result)
        self.scan(result)

    def scan(self, root: object) -> None:
        """Find callback signatures nested anywhere below `root`."""
        stack: List[object] = [root]
        while stack:
            t = stack.pop()
            handle = getattr(t, "handle", None)
            if handle is None or handle in self._scanned:
                continue
            self._scanned.add(handle)
            if isinstance(t, FunctionType):
                for parameter in t.parameters:
                    self.value(parameter.type)
                    stack.append(parameter.type)
                self.value(t.result)
                stack.append(t.result)
            elif isinstance(t, TypedefEntry):
                stack.append(t.target)
            elif isinstance(t, PointerType):
                stack.append(t.pointee)
            elif isinstance(t, ArrayType):
                stack.append(t.element)
            elif isinstance(t, InlineClassType):
                stack.extend(t.bases)
                stack.extend(f.type for f in t.fields)
            elif isinstance(t, InlineUnionType):
                stack.extend(f.type for f in t.fields)
            elif isinstance(t, TemplateInstance):
                stack.extend(t.arguments)

    def entry(self, entry: Entry) -> None:
        if isinstance(entry, FunctionEntry):
            self.signature(entry.parameters, entry.result)
        elif isinstance(entry, VarEntry):
            self.value(entry.type)
            self.scan(entry.type)
        elif isinstance(entry, ClassEntry):
            if entry.constructors:
                entry.used_as_buffer = True
            for constructor in entry.constructors:
                self.signature(constructor.parameters, None)
            for method in entry.methods:
                self.signature(method.parameters, method.result)
            for t in entry.bases + entry.virtual_bases:
                self.scan(t)
            for field in entry.fields:
                self.scan(field.type)
        elif isinstance(entry, ClassTemplateEntry):
            specializations = [entry.default_specialization] + entry.partial_specializations
            for spec in specializations:
                if spec is None or not spec.used:
                    continue
                for field in spec.fields:
                    self.scan(field.type)
                for t in spec.bases + spec.virtual_bases:
                    self.scan(t)
        elif isinstance(entry, TypedefEntry):
            self.scan(entry.target)
        elif isinstance(entry, UnionEntry):
            for t in entry.fields:
                self.scan(t)


def collect_usage(table: SymbolTable) -> None:
    collector = UsageCollector()
    for entries in table.used_entries().values():
        for entry in entries:
            collector.entry(entry)


def finalize_usage(table: SymbolTable) -> None:
    for entry in table.used_struct_likes():
        entry.pointer_form = not entry.used_as_buffer and entry.used_as_pointer
        if entry.used_as_buffer or entry.used_as_pointer:
            logger.info(
                "%s: used as %s, passed as %s",
                entry.ns_name,
                " and ".join(
                    kind
                    for kind, flag in (
                        ("buffer", entry.used_as_buffer),
                        ("pointer", entry.used_as_pointer),
                    )
                    if flag
                ),
                "pointer" if entry.pointer_form else "buffer",
            )
