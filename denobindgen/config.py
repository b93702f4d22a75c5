"""
Build configuration: paths, headers, and the list of symbols to import.
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Union

from .errors import ConfigurationError
from .frontend import Cursor

# Capability filters


class All:
    """Include every member."""

    def includes(self, name: str, cursor: Optional[Cursor]) -> bool:
        return True

    def __repr__(self) -> str:
        return "All()"


class Nothing:
    """Include no member."""

    def includes(self, name: str, cursor: Optional[Cursor]) -> bool:
        return False

    def __repr__(self) -> str:
        return "Nothing()"


@dataclass(frozen=True)
class ByNames:
    names: FrozenSet[str]

    def includes(self, name: str, cursor: Optional[Cursor]) -> bool:
        return name in self.names


@dataclass(frozen=True)
class ByPredicate:
    """Include members for which `predicate(name, cursor)` is true."""

    predicate: Callable[[str, Optional[Cursor]], bool]

    def includes(self, name: str, cursor: Optional[Cursor]) -> bool:
        return bool(self.predicate(name, cursor))


Filter = Union[All, Nothing, ByNames, ByPredicate]

ALL = All()
NOTHING = Nothing()


def as_filter(value: Any, allow_names: bool = True) -> Filter:
    """Build a filter from a bool, a list of names, a callable or a filter."""
    if isinstance(value, (All, Nothing, ByNames, ByPredicate)):
        if isinstance(value, ByNames) and not allow_names:
            raise ConfigurationError("Name lists are only accepted for methods")
        return value
    if value is True:
        return ALL
    if value is False or value is None:
        return NOTHING
    if isinstance(value, (list, tuple, set, frozenset)):
        if not allow_names:
            raise ConfigurationError("Name lists are only accepted for methods")
        if not all(isinstance(name, str) for name in value):
            raise ConfigurationError(f"Invalid name list {value!r}")
        return ByNames(frozenset(value))
    if callable(value):
        return ByPredicate(value)
    raise ConfigurationError(f"Invalid filter value {value!r}")


def filter_covers(wide: Filter, narrow: Filter) -> bool:
    """True when everything `narrow` may select is already selected by `wide`."""
    if isinstance(narrow, Nothing) or isinstance(wide, All):
        return True
    if isinstance(narrow, ByNames) and isinstance(wide, ByNames):
        return narrow.names <= wide.names
    if isinstance(narrow, ByPredicate) and isinstance(wide, ByPredicate):
        return narrow.predicate is wide.predicate
    return False


def merge_filters(a: Filter, b: Filter) -> Filter:
    if filter_covers(a, b):
        return a
    if filter_covers(b, a):
        return b
    if isinstance(a, ByNames) and isinstance(b, ByNames):
        return ByNames(a.names | b.names)
    return ByPredicate(lambda name, cursor: a.includes(name, cursor) or b.includes(name, cursor))


@dataclass(frozen=True)
class ClassCapabilities:
    constructors: Filter = NOTHING
    destructors: bool = False
    methods: Filter = NOTHING

    def covers(self, other: "ClassCapabilities") -> bool:
        return (
            filter_covers(self.constructors, other.constructors)
            and (self.destructors or not other.destructors)
            and filter_covers(self.methods, other.methods)
        )

    def merged(self, other: "ClassCapabilities") -> "ClassCapabilities":
        return ClassCapabilities(
            constructors=merge_filters(self.constructors, other.constructors),
            destructors=self.destructors or other.destructors,
            methods=merge_filters(self.methods, other.methods),
        )

    def for_base(self) -> "ClassCapabilities":
        return ClassCapabilities(NOTHING, self.destructors, self.methods)


NO_CAPABILITIES = ClassCapabilities()


# Import specifications


@dataclass
class ClassImport:
    name: str
    constructors: Filter = ALL
    destructors: bool = True
    methods: Filter = ALL

    @property
    def capabilities(self) -> ClassCapabilities:
        return ClassCapabilities(self.constructors, self.destructors, self.methods)


@dataclass
class FunctionImport:
    name: str


@dataclass
class VarImport:
    name: str


ImportSpec = Union[ClassImport, FunctionImport, VarImport]


@dataclass
class ExportConfiguration:
    base_path: Path
    output_path: Path
    files: List[str] = field(default_factory=list)
    include: List[str] = field(default_factory=list)
    imports: List[ImportSpec] = field(default_factory=list)
    target: Optional[str] = None
    format_command: Optional[List[str]] = None

    def validate(self) -> None:
        base = os.path.abspath(self.base_path)
        output = os.path.abspath(self.output_path)
        if base == output or base.startswith(output + os.sep):
            raise ConfigurationError("Base path is inside the output path")
        if len(set(self.include)) != len(self.include):
            raise ConfigurationError("Found duplicate include entries")
        if len(set(self.files)) != len(self.files):
            raise ConfigurationError("Found duplicate file entries")
        if not self.files:
            raise ConfigurationError("No header files configured")


def _load_toml(path: Path) -> Dict[str, Any]:
    if sys.version_info >= (3, 11):
        import tomllib
    else:
        import tomli as tomllib

    with open(path, "rb") as f:
        return tomllib.load(f)


def parse_import(raw: Dict[str, Any]) -> ImportSpec:
    kind = raw.get("kind", "class")
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigurationError(f"Import entry without a name: {raw!r}")
    if kind == "class":
        destructors = raw.get("destructors", True)
        if not isinstance(destructors, bool):
            raise ConfigurationError(f"'destructors' of {name} must be a boolean")
        return ClassImport(
            name=name,
            constructors=as_filter(raw.get("constructors", True), allow_names=False),
            destructors=destructors,
            methods=as_filter(raw.get("methods", True)),
        )
    if kind == "function":
        return FunctionImport(name)
    if kind == "var":
        return VarImport(name)
    raise ConfigurationError(f"Unknown import kind '{kind}' for {name}")


def load_configuration(path: Union[str, Path]) -> ExportConfiguration:
    path = Path(path)
    data = _load_toml(path)
    root = path.parent

    def _path(key: str) -> Path:
        value = data.get(key)
        if not isinstance(value, str):
            raise ConfigurationError(f"'{key}' must be a path string")
        return (root / value).resolve()

    def _strings(key: str) -> List[str]:
        value = data.get(key, [])
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigurationError(f"'{key}' must be a list of strings")
        return value

    format_command = data.get("format_command")
    if format_command is not None and not isinstance(format_command, list):
        raise ConfigurationError("'format_command' must be a list of strings")

    config = ExportConfiguration(
        base_path=_path("base_path"),
        output_path=_path("output_path"),
        files=_strings("files"),
        include=[str((root / inc).resolve()) for inc in _strings("include")],
        imports=[parse_import(raw) for raw in data.get("imports", [])],
        target=data.get("target"),
        format_command=format_command,
    )
    config.validate()
    return config
