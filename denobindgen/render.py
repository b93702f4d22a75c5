"""
Renders used entries of one source header into RenderData.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .entries import (
    ArrayType,
    ClassEntry,
    Entry,
    EnumEntry,
    FunctionEntry,
    FunctionType,
    InlineClassType,
    InlineUnionType,
    PointerType,
    Primitive,
    TemplateInstance,
    TypedefEntry,
    UnionEntry,
    VarEntry,
    strip_typedefs,
)
from .errors import DuplicateExportError
from .layout import format_enum_values, size_of
from .naming import constant_case
from .render_types import (
    References,
    bindings_file,
    classes_file,
    render_call,
    render_ffi,
    render_signature,
    render_union as render_alternatives,
    types_file,
)

logger = logging.getLogger(__name__)

# Typedef targets rendered with a size, a layout and a buffer class of their own
STRUCT_TARGETS = (TemplateInstance, InlineClassType, InlineUnionType, ArrayType)


@dataclass
class RenderDataEntry:
    names: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    contents: str = ""


@dataclass
class RenderData:
    file: str
    bindings: List[str] = field(default_factory=list)
    bindings_entries: List[RenderDataEntry] = field(default_factory=list)
    classes_entries: List[RenderDataEntry] = field(default_factory=list)
    types_entries: List[RenderDataEntry] = field(default_factory=list)
    bindings_imports: Dict[str, str] = field(default_factory=dict)
    classes_imports: Dict[str, str] = field(default_factory=dict)
    types_imports: Dict[str, str] = field(default_factory=dict)

    @property
    def bindings_path(self) -> str:
        return bindings_file(self.file)

    @property
    def classes_path(self) -> str:
        return classes_file(self.file)

    @property
    def types_path(self) -> str:
        return types_file(self.file)

    def claim(self, name: str) -> str:
        if name in self.bindings:
            raise DuplicateExportError(name)
        self.bindings.append(name)
        return name

    def absorb(self, other: "RenderData") -> None:
        """Take over the output of another unit."""
        for name in other.bindings:
            self.claim(name)
        self.bindings_entries.extend(other.bindings_entries)
        self.classes_entries.extend(other.classes_entries)
        self.types_entries.extend(other.types_entries)
        self.bindings_imports.update(other.bindings_imports)
        self.classes_imports.update(other.classes_imports)
        self.types_imports.update(other.types_imports)


def function_export(name: str, mangling: str, parameters: Sequence[str], result: str) -> str:
    return f"""export const {name} = {{
  name: "{mangling}",
  parameters: [{", ".join(parameters)}],
  result: {result},
}} as const;
"""


def size_constant(name: str) -> str:
    return f"{constant_case(name)}_SIZE"


def branded_pointer(name: str, brand: str, bases: Sequence[str] = ()) -> str:
    parts = list(bases) or ["NonNullable<Deno.PointerValue>"]
    parts.append(f"{{ [{brand}]: unknown }}")
    return f"""declare const {brand}: unique symbol;
export type {name} = {" & ".join(parts)};
"""


def buffer_class(name: str, size: str, base: str = "Uint8Array", body: str = "") -> str:
    return f"""export class {name} extends {base} {{
  constructor(arg?: ArrayBufferLike | number) {{
    if (typeof arg === "undefined") {{
      super({size});
      return;
    }} else if (typeof arg === "number") {{
      if (!Number.isFinite(arg) || arg < {size}) {{
        throw new Error(
          "Invalid construction of {name}: Size is not finite or is too small",
        );
      }}
      super(arg);
      return;
    }}
    if (arg.byteLength < {size}) {{
      throw new Error(
        "Invalid construction of {name}: Buffer size is too small",
      );
    }}
    super(arg);
  }}
{body}}}
"""


# Entry renderers


def render_function(data: RenderData, entry: FunctionEntry) -> None:
    refs = References(data.bindings_imports)
    parameters, result, _ = render_call(refs, entry.parameters, entry.result)
    name = data.claim(entry.export_name)
    data.bindings_entries.append(
        RenderDataEntry([name], [], function_export(name, entry.mangling, parameters, result))
    )


def render_var(data: RenderData, entry: VarEntry) -> None:
    refs = References(data.bindings_imports)
    name = data.claim(entry.export_name)
    data.bindings_entries.append(
        RenderDataEntry(
            [name],
            [],
            f"""export const {name} = {{
  name: "{entry.mangling}",
  type: {render_ffi(refs, entry.type)},
}} as const;
""",
        )
    )


def render_enum(data: RenderData, entry: EnumEntry) -> None:
    refs = References(data.types_imports)
    underlying = render_ffi(refs, entry.underlying)
    values = format_enum_values(entry)
    lines = "\n".join(
        f"  {constant.name} = {value}," for constant, value in zip(entry.constants, values)
    )
    # Other enums referenced by initializers must come first
    for constant in entry.constants:
        if constant.reference is not None and constant.reference is not entry:
            refs.use(constant.reference.name, types_file(constant.reference.file))
    data.types_entries.append(
        RenderDataEntry(
            [f"{entry.name}T", entry.name],
            refs.dependencies,
            f"""export const {entry.name}T = {underlying};
export const enum {entry.name} {{
{lines}
}}
""",
        )
    )


def render_union(data: RenderData, entry: UnionEntry) -> None:
    refs = References(data.types_imports)
    alternatives = render_alternatives(refs, list(entry.fields))
    data.types_entries.append(
        RenderDataEntry(
            [f"{entry.name}T"],
            refs.dependencies,
            f"export const {entry.name}T = {alternatives};\n",
        )
    )


def _is_alias_of(entry: TypedefEntry, target: object) -> bool:
    """`typedef ns::Foo Foo;` style re-exports add nothing."""
    return (
        isinstance(target, Entry)
        and target.name == entry.name
        and target.file == entry.file
    )


def _sized_typedef(data: RenderData, entry: TypedefEntry, target: object) -> None:
    refs = References(data.types_imports)
    size = size_constant(entry.name)
    layout = render_ffi(refs, target)
    data.types_entries.append(
        RenderDataEntry(
            [size, f"{entry.name}T", f"{entry.name}Pointer"],
            refs.dependencies,
            f"export const {size} = {size_of(target)} as const;\n"
            f"export const {entry.name}T = {layout};\n"
            + branded_pointer(f"{entry.name}Pointer", entry.name),
        )
    )
    data.classes_imports[size] = data.types_path
    data.classes_entries.append(
        RenderDataEntry([f"{entry.name}Buffer"], [], buffer_class(f"{entry.name}Buffer", size))
    )


def render_typedef(data: RenderData, entry: TypedefEntry) -> None:
    target = entry.target
    name = entry.name
    if target is None or _is_alias_of(entry, target):
        logger.debug("Skipping typedef %s", entry.ns_name)
        return

    refs = References(data.types_imports)
    stripped = strip_typedefs(target)
    if isinstance(target, Primitive):
        text = f"export const {name}T = {render_ffi(refs, target)};\n"
        data.types_entries.append(RenderDataEntry([f"{name}T"], refs.dependencies, text))
        return

    function = None
    if isinstance(target, FunctionType):
        function = target
    elif isinstance(target, PointerType) and isinstance(strip_typedefs(target.pointee), FunctionType):
        function = strip_typedefs(target.pointee)
    if function is not None:
        signature = render_signature(refs, function.parameters, function.result)
        text = f"export const {name}T = {signature} as const;\n" + branded_pointer(
            name, f"{name}_"
        )
        data.types_entries.append(RenderDataEntry([f"{name}T", name], refs.dependencies, text))
        return

    if isinstance(target, (TypedefEntry, ClassEntry)):
        aliased = render_ffi(refs, target)
        names = [f"{name}T"]
        text = f"export const {name}T = {aliased};\n"
        if isinstance(stripped, ClassEntry) or (
            isinstance(target, TypedefEntry) and isinstance(stripped, STRUCT_TARGETS)
        ):
            pointer = refs.use(f"{target.name}Pointer", types_file(target.file), type_only=True)
            text += f"export type {name}Pointer = {pointer};\n"
            names.append(f"{name}Pointer")
            class_refs = References(data.classes_imports)
            buffer = class_refs.use(f"{target.name}Buffer", classes_file(target.file))
            data.classes_entries.append(
                RenderDataEntry(
                    [f"{name}Buffer"],
                    class_refs.dependencies,
                    f"export const {name}Buffer = {buffer};\n"
                    f"export type {name}Buffer = {buffer};\n",
                )
            )
        data.types_entries.append(RenderDataEntry(names, refs.dependencies, text))
        return

    if isinstance(target, STRUCT_TARGETS):
        _sized_typedef(data, entry, target)
        return

    text = f"export const {name}T = {render_ffi(refs, target)};\n"
    data.types_entries.append(RenderDataEntry([f"{name}T"], refs.dependencies, text))
