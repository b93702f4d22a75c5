"""
Orders rendered declarations and assembles output files.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple

from .entries import (
    ClassEntry,
    ClassTemplateEntry,
    Entry,
    EnumEntry,
    FunctionEntry,
    TypedefEntry,
    UnionEntry,
    VarEntry,
)
from .errors import BindgenError, DependencyCycleError, DuplicateExportError
from .naming import constant_case
from .render import (
    RenderData,
    RenderDataEntry,
    render_enum,
    render_function,
    render_typedef,
    render_union,
    render_var,
)
from .render_class import render_class, render_class_template
from .render_types import FFI, SYSTEM_BINDINGS, SYSTEM_CLASSES, SYSTEM_TYPES
from .traversal import Step, run

logger = logging.getLogger(__name__)

FFI_FILE = "ffi.ts"
SYSTEM_FILES = {
    SYSTEM_BINDINGS: "systemBindings.ts",
    SYSTEM_CLASSES: "systemClasses.ts",
    SYSTEM_TYPES: "systemTypes.ts",
}

SYSTEM_CONSTANTS = {
    "buf": 'export const buf = (_: unknown) => "buffer" as const;\n',
    "ptr": 'export const ptr = (_: unknown) => "pointer" as const;\n',
    "func": 'export const func = (_?: unknown) => "function" as const;\n',
    "union2": "export const union2 = <const T, const U>(a: T, _b: U): T | U => a;\n",
    "union3": (
        "export const union3 = <const T, const U, const V>"
        "(a: T, _b: U, _c: V): T | U | V => a;\n"
    ),
    "union4": (
        "export const union4 = <const T, const U, const V, const W>"
        "(a: T, _b: U, _c: V, _d: W): T | U | V | W => a;\n"
    ),
    "union5": (
        "export const union5 = <const T, const U, const V, const W, const X>"
        "(a: T, _b: U, _c: V, _d: W, _e: X): T | U | V | W | X => a;\n"
    ),
    "cstringT": 'export const cstringT = "buffer";\n',
    "cstringArrayT": 'export const cstringArrayT = "buffer";\n',
}


def render_system_constant(name: str) -> Optional[RenderDataEntry]:
    contents = SYSTEM_CONSTANTS.get(name)
    if contents is None:
        if not (name.startswith("union") and name[5:].isdigit()):
            return None
        contents = (
            f"export const {name} = (...args: unknown[]) => "
            "args[0] as { struct: string[] };\n"
        )
    return RenderDataEntry([name], [], contents)


def render_file(file: str, entries: Iterable[Entry]) -> RenderData:
    data = RenderData(file)
    for entry in entries:
        try:
            if isinstance(entry, EnumEntry):
                render_enum(data, entry)
            elif isinstance(entry, FunctionEntry):
                render_function(data, entry)
            elif isinstance(entry, VarEntry):
                render_var(data, entry)
            elif isinstance(entry, ClassEntry):
                render_class(data, entry)
            elif isinstance(entry, ClassTemplateEntry):
                render_class_template(data, entry)
            elif isinstance(entry, TypedefEntry):
                render_typedef(data, entry)
            elif isinstance(entry, UnionEntry):
                render_union(data, entry)
        except BindgenError as err:
            raise err.within(entry.ns_name)
    return data


# Ordering


def _sort_name(name: str) -> str:
    """Case-insensitive key, casefolded in place of locale collation."""
    if name.startswith("type "):
        name = name[5:]
    return name.casefold()


def _entry_key(entry: RenderDataEntry) -> Tuple[str, ...]:
    return tuple(_sort_name(name) for name in entry.names)


def _dependency_graph(entries: List[RenderDataEntry]) -> List[List[int]]:
    defined: Dict[str, int] = {}
    for index, entry in enumerate(entries):
        for name in entry.names:
            defined.setdefault(name, index)
    graph = []
    for index, entry in enumerate(entries):
        targets = []
        for name in entry.dependencies:
            target = defined.get(name)
            if target is not None and target != index and target not in targets:
                targets.append(target)
        graph.append(targets)
    return graph


def check_cycles(entries: List[RenderDataEntry]) -> None:
    graph = _dependency_graph(entries)
    state = [0] * len(entries)  # 0 new, 1 on path, 2 finished
    path: List[int] = []

    def visit(index: int) -> Step:
        state[index] = 1
        path.append(index)
        for target in graph[index]:
            if state[target] == 1:
                cycle = path[path.index(target):] + [target]
                raise DependencyCycleError([entries[i].names[0] for i in cycle])
            if state[target] == 0:
                yield visit(target)
        path.pop()
        state[index] = 2

    for index in range(len(entries)):
        if state[index] == 0:
            run(visit(index))


def sort_entries(entries: List[RenderDataEntry]) -> None:
    """Sort lexically, then move every entry before the first entry needing it."""
    entries.sort(key=_entry_key)
    check_cycles(entries)
    budget = len(entries) * len(entries) + 1
    i = 0
    while i < len(entries):
        entry = entries[i]
        referrer = next(
            (
                j
                for j in range(i)
                if any(name in entries[j].dependencies for name in entry.names)
            ),
            None,
        )
        if referrer is None:
            i += 1
            continue
        budget -= 1
        if budget < 0:
            raise DependencyCycleError(entry.names[:1] + entries[referrer].names[:1])
        entries.insert(referrer, entries.pop(i))


# Imports


def handle_imports(imports: Dict[str, str], system_constants: List[str]) -> None:
    """Drop type-only imports shadowed by value imports, collect system constants."""
    for name, path in list(imports.items()):
        if name.startswith("type ") and name[5:] in imports:
            del imports[name]
            continue
        if not path.startswith("#") and not path.endswith(".ts"):
            raise BindgenError(f"Invalid import path: 'import {{ {name} }} from \"{path}\";'")
        if path == SYSTEM_TYPES and name not in system_constants:
            if render_system_constant(name) is not None:
                system_constants.append(name)


def _marker_for(path: str) -> str:
    if path.endswith(".classes.ts"):
        return SYSTEM_CLASSES
    if path.endswith(".types.ts"):
        return SYSTEM_TYPES
    return SYSTEM_BINDINGS


def _unit_paths(data: RenderData) -> Tuple[str, str, str]:
    return data.bindings_path, data.classes_path, data.types_path


def _import_lines(file_path: str, imports: Dict[str, str], paths: Dict[str, str]) -> List[str]:
    by_file: Dict[str, List[str]] = {}
    for name, path in imports.items():
        path = paths.get(path, path)
        if path == file_path:
            continue
        by_file.setdefault(path, []).append(name)
    lines = []
    for path in sorted(by_file, key=_sort_name):
        names = sorted(by_file[path], key=_sort_name)
        relative = os.path.relpath(path, os.path.dirname(file_path)).replace(os.sep, "/")
        if not relative.startswith("."):
            relative = f"./{relative}"
        lines.append(f"import {{ {', '.join(names)} }} from \"{relative}\";")
    return lines


def file_text(
    file_path: str, imports: Dict[str, str], entries: List[RenderDataEntry], paths: Dict[str, str]
) -> str:
    lines = _import_lines(file_path, imports, paths)
    if lines:
        lines.append("")
    return "\n".join(lines + [entry.contents for entry in entries])


class Emitter:
    """Assigns rendered units to output files and produces their text."""

    def __init__(self, base_path: str):
        self.base_path = os.path.abspath(base_path)
        self.units: List[RenderData] = []
        self.exports: List[str] = []

    def inside(self, path: str) -> bool:
        return path.startswith(self.base_path + os.sep)

    def add(self, data: RenderData) -> None:
        for name in data.bindings:
            if name in self.exports:
                raise DuplicateExportError(name).within(data.file)
            self.exports.append(name)
        self.units.append(data)

    def _referrers(self, unit: RenderData, candidates: List[RenderData]) -> List[RenderData]:
        paths = set(_unit_paths(unit))
        out = []
        for other in candidates:
            imports = [other.bindings_imports, other.classes_imports, other.types_imports]
            if any(path in paths for mapping in imports for path in mapping.values()):
                out.append(other)
        return out

    def assign_units(self) -> Tuple[List[RenderData], RenderData, Dict[str, str]]:
        """Merge units outside the base path into their only referrer or the system unit."""
        inside = [u for u in self.units if self.inside(u.file)]
        outside = [u for u in self.units if not self.inside(u.file)]
        system = RenderData(os.path.join(self.base_path, "system"))
        redirects: Dict[str, str] = {}
        for unit in outside:
            referrers = self._referrers(unit, inside)
            if len(referrers) == 1:
                target = referrers[0]
                logger.debug("Merging %s into %s", unit.file, target.file)
                target.absorb(unit)
                for old, new in zip(_unit_paths(unit), _unit_paths(target)):
                    redirects[old] = new
            else:
                logger.debug("Moving %s into the system unit", unit.file)
                system.absorb(unit)
                for old in _unit_paths(unit):
                    redirects[old] = _marker_for(old)
        for unit in inside + [system]:
            for imports in (unit.bindings_imports, unit.classes_imports, unit.types_imports):
                for name, path in list(imports.items()):
                    path = redirects.get(path, path)
                    if not path.startswith("#") and not self.inside(path):
                        path = _marker_for(path)
                    imports[name] = path
        return inside, system, redirects

    def render_outputs(self) -> Dict[str, str]:
        """Output text keyed by path relative to the output directory."""
        inside, system, _ = self.assign_units()
        system_constants: List[str] = []
        for unit in inside + [system]:
            for imports in (unit.bindings_imports, unit.classes_imports, unit.types_imports):
                handle_imports(imports, system_constants)
        for name in system_constants:
            constant = render_system_constant(name)
            if constant is not None:
                system.types_entries.append(constant)

        paths = {marker: os.path.join(self.base_path, f) for marker, f in SYSTEM_FILES.items()}
        paths[FFI] = os.path.join(self.base_path, FFI_FILE)

        outputs: Dict[str, str] = {}
        bindings_files: List[str] = []
        units = [(system, tuple(paths[m] for m in SYSTEM_FILES))]
        units += [(unit, _unit_paths(unit)) for unit in inside]
        for unit, (bindings_path, classes_path, types_path) in units:
            for file_path, imports, entries in (
                (bindings_path, unit.bindings_imports, unit.bindings_entries),
                (classes_path, unit.classes_imports, unit.classes_entries),
                (types_path, unit.types_imports, unit.types_entries),
            ):
                if not entries:
                    continue
                try:
                    sort_entries(entries)
                except BindgenError as err:
                    raise err.within(os.path.basename(file_path))
                outputs[self.relative(file_path)] = file_text(file_path, imports, entries, paths)
            if unit.bindings_entries:
                bindings_files.append(bindings_path)

        outputs[FFI_FILE] = self.ffi_text(bindings_files)
        return outputs

    def relative(self, path: str) -> str:
        return os.path.relpath(path, self.base_path).replace(os.sep, "/")

    def ffi_text(self, bindings_files: List[str]) -> str:
        modules = []
        for path in bindings_files:
            base = os.path.basename(path)
            for suffix in (".h.ts", ".hpp.ts", ".ts"):
                if base.endswith(suffix):
                    base = base[: -len(suffix)]
                    break
            modules.append((constant_case(base) or "BINDINGS", "./" + self.relative(path)))
        imports = "".join(f'import * as {name} from "{path}";\n' for name, path in modules)
        spreads = "".join(f"  ...{name},\n" for name, _ in modules)
        exports = "".join(f"export const {name} = lib.symbols.{name};\n" for name in self.exports)
        return f"""{imports}
const lib = Deno.dlopen("FFIPATH", {{
{spreads}}});

{exports}"""
