"""
One-pass ingestion of a translation unit into the symbol table.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional

from .frontend import Cursor, CursorKind
from .registry import SymbolTable

logger = logging.getLogger(__name__)

LINKAGE_KINDS = tuple(
    kind
    for kind in (
        getattr(CursorKind, "UNEXPOSED_DECL", None),
        getattr(CursorKind, "LINKAGE_SPEC", None),
    )
    if kind is not None
)

IGNORED_KINDS = (
    CursorKind.FUNCTION_TEMPLATE,
    CursorKind.TYPE_ALIAS_TEMPLATE_DECL,
)


@dataclass
class _Frame:
    children: Iterator[Cursor]
    pushed_namespace: bool = False
    # Class registered once its nested declarations have been walked
    finish: Optional[Cursor] = None


def gather_entries(table: SymbolTable, root: Cursor) -> None:
    stack: List[_Frame] = [_Frame(iter(root.get_children()))]
    while stack:
        frame = stack[-1]
        cursor = next(frame.children, None)
        if cursor is None:
            stack.pop()
            if frame.pushed_namespace:
                table.pop_namespace()
            if frame.finish is not None:
                table.add_class(frame.finish)
            continue

        kind = cursor.kind
        if kind == CursorKind.CLASS_TEMPLATE:
            table.add_class_template(cursor)
        elif kind == CursorKind.CLASS_TEMPLATE_PARTIAL_SPECIALIZATION:
            table.add_partial_specialization(cursor)
        elif kind == CursorKind.FUNCTION_DECL:
            if cursor.spelling:
                table.add_function(cursor)
        elif kind in IGNORED_KINDS:
            logger.debug("Skipping template %s", cursor.spelling)
        elif kind == CursorKind.UNION_DECL:
            table.add_union(cursor)
        elif kind == CursorKind.VAR_DECL:
            table.add_var(cursor)
        elif kind == CursorKind.NAMESPACE:
            if cursor.spelling:
                table.push_namespace(cursor.spelling)
            stack.append(
                _Frame(iter(cursor.get_children()), pushed_namespace=bool(cursor.spelling))
            )
        elif kind in (CursorKind.CLASS_DECL, CursorKind.STRUCT_DECL):
            if not cursor.is_definition() or cursor.is_anonymous():
                # Forward declarations and anonymous records are not addressable
                continue
            table.push_namespace(cursor.spelling)
            stack.append(
                _Frame(iter(cursor.get_children()), pushed_namespace=True, finish=cursor)
            )
        elif kind in (CursorKind.TYPEDEF_DECL, CursorKind.TYPE_ALIAS_DECL):
            table.add_typedef(cursor)
        elif kind == CursorKind.ENUM_DECL:
            table.add_enum(cursor)
        elif kind in LINKAGE_KINDS:
            # extern "C" does not open a namespace
            stack.append(_Frame(iter(cursor.get_children())))
