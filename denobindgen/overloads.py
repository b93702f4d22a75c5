"""
Deterministic names for overloaded methods.

TypeScript has no overloading by signature, so every bound method of a class
needs a distinct export name derived from its parameters.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from .entries import (
    SELF,
    ClassEntry,
    EnumEntry,
    Method,
    Parameter,
    PointerType,
    Primitive,
    TypedefEntry,
    TypeEntry,
    UnionEntry,
)
from .errors import DuplicateExportError
from .naming import pascal_case

logger = logging.getLogger(__name__)

# Names that would shadow Uint8Array members on the generated buffer classes
RESERVED_NAMES = ("at", "fill", "find", "findLast", "length", "toString")


def types_equal(a: Optional[TypeEntry], b: Optional[TypeEntry]) -> bool:
    while isinstance(a, PointerType) and isinstance(b, PointerType):
        a, b = a.pointee, b.pointee  # type: ignore[assignment]
    if a is b:
        return True
    if a is None or b is None or isinstance(a, Primitive) or isinstance(b, Primitive):
        return False
    if type(a) is not type(b):
        return False
    if isinstance(a, (TypedefEntry, EnumEntry)):
        return a.ns_name == b.ns_name  # type: ignore[union-attr]
    return False


def method_types_equal(a: Method, b: Method) -> bool:
    return (
        types_equal(a.result, b.result)
        and len(a.parameters) == len(b.parameters)
        and all(types_equal(p.type, q.type) for p, q in zip(a.parameters, b.parameters))
    )


def parameter_fragment(parameter: Parameter, t: object = None) -> str:
    """Short name for a parameter's type, used to build overload names."""
    if t is None:
        t = parameter.type
    while isinstance(t, PointerType) and t.pointee is not SELF:
        t = t.pointee
    if isinstance(t, Primitive):
        return pascal_case(t.value)
    if isinstance(t, (EnumEntry, ClassEntry, TypedefEntry, UnionEntry)):
        return pascal_case(t.name)
    return pascal_case(parameter.name)


def _fragments(parameters: Sequence[Parameter]) -> List[str]:
    return [parameter_fragment(p) for p in parameters]


def _with(name: str, parts: Sequence[str]) -> str:
    if not parts:
        return name
    return f"{name}With{'And'.join(parts)}"


def _distinct_types(types: Sequence[Optional[TypeEntry]]) -> int:
    distinct: List[Optional[TypeEntry]] = []
    for t in types:
        if not any(types_equal(t, d) for d in distinct):
            distinct.append(t)
    return len(distinct)


def rename_reserved(name: str, method: Method) -> str:
    if name not in RESERVED_NAMES:
        return name
    if method.parameters:
        return name + pascal_case(method.parameters[0].name)
    return name + "Fn"


def resolve_overload_name(method: Method, siblings: Sequence[Method]) -> Optional[str]:
    """
    Name for `method` among `siblings`, the other methods of the same class
    sharing its source name. None means the method is not bound.
    """
    name = method.name
    parameters = method.parameters
    if not siblings:
        return rename_reserved(name, method)

    if method.is_const and any(
        not s.is_static and not s.is_const and method_types_equal(method, s) for s in siblings
    ):
        return None

    if method.is_static and not all(s.is_static for s in siblings):
        fragments = _fragments(parameters)
        result = f"static{pascal_case(name)}"
        if fragments:
            result += fragments[0]
            if len(fragments) > 1:
                result += f"With{'And'.join(fragments[1:])}"
        return result

    if len(siblings) == 1:
        other = siblings[0]
        if len(parameters) > len(other.parameters):
            return _with(name, _fragments(parameters[len(other.parameters):]))
        if len(parameters) < len(other.parameters):
            return rename_reserved(name, method)
        parts = []
        for mine, theirs in zip(parameters, other.parameters):
            if types_equal(mine.type, theirs.type):
                continue
            if mine.name != theirs.name:
                parts.append(pascal_case(mine.name))
            else:
                parts.append(parameter_fragment(mine))
        if parts:
            return _with(name, parts)
        return f"{name}AsConst" if method.is_const else rename_reserved(name, method)

    arities = [len(parameters)] + [len(s.parameters) for s in siblings]
    if len(set(arities)) == len(arities):
        shortest = min(arities)
        if len(parameters) == shortest:
            return rename_reserved(name, method)
        return _with(name, _fragments(parameters[shortest:]))

    same_arity = [s for s in siblings if len(s.parameters) == len(parameters)]
    uniform = len(same_arity) == len(siblings)
    parts = []
    for index, parameter in enumerate(parameters):
        types_here = [parameter.type] + [s.parameters[index].type for s in same_arity]
        if _distinct_types(types_here) < 2:
            if not uniform:
                by_name = pascal_case(parameter.name)
                by_type = parameter_fragment(parameter)
                parts.append(by_type if len(by_type) < len(by_name) else by_name)
        elif all(s.parameters[index].name != parameter.name for s in same_arity):
            parts.append(pascal_case(parameter.name))
        else:
            parts.append(parameter_fragment(parameter))
    return _with(name, parts) if parts else rename_reserved(name, method)


def assign_method_names(entry: ClassEntry) -> List[Tuple[Method, str]]:
    """Bound methods of `entry` paired with their unique export names."""
    out: List[Tuple[Method, str]] = []
    taken = set()
    for method in entry.methods:
        siblings = [m for m in entry.methods if m is not method and m.name == method.name]
        name = resolve_overload_name(method, siblings)
        if name is None:
            logger.debug("Dropping const overload %s::%s", entry.ns_name, method.name)
            continue
        if name in taken:
            raise DuplicateExportError(f"{entry.export_name}__{name}")
        taken.add(name)
        out.append((method, name))
    return out
