"""
Type references rendered as Deno FFI descriptors and as TypeScript types.
"""

from typing import Dict, List, Optional, Sequence

from . import traversal
from .entries import (
    SELF,
    ArrayType,
    ClassEntry,
    EnumEntry,
    FunctionType,
    InlineClassType,
    InlineUnionType,
    MemberPointerType,
    Parameter,
    PointerType,
    Primitive,
    TemplateInstance,
    TemplateParameter,
    TypedefEntry,
    TypeEntry,
    UnionEntry,
    is_struct_like,
    strip_typedefs,
    usage_owner,
)
from .errors import BindgenError
from .layout import collapse_union, passed_in_registers, sized_struct
from .naming import camel_case
from .traversal import Step

# Import markers resolved by the emitter
SYSTEM_BINDINGS = "#SYSTEM_B"
SYSTEM_CLASSES = "#SYSTEM_C"
SYSTEM_TYPES = "#SYSTEM_T"
FFI = "#FFI"


def bindings_file(path: str) -> str:
    """Symbol descriptions for `Deno.dlopen`."""
    return f"{path}.ts"


def classes_file(path: str) -> str:
    """Buffer classes wrapping the bound symbols."""
    return f"{path}.classes.ts"


def types_file(path: str) -> str:
    """Wire layouts and branded pointer types."""
    return f"{path}.types.ts"


class References:
    """Imports and same-file dependencies collected while rendering one entry."""

    def __init__(self, imports: Dict[str, str]):
        self.imports = imports
        self.dependencies: List[str] = []

    def use(self, name: str, path: str, type_only: bool = False) -> str:
        self.imports[f"type {name}" if type_only else name] = path
        if name not in self.dependencies:
            self.dependencies.append(name)
        return name

    def system(self, name: str) -> str:
        self.imports[name] = SYSTEM_TYPES
        return name


def _is_function_like(t: Optional[TypeEntry]) -> bool:
    t = strip_typedefs(t)
    return isinstance(t, FunctionType) or (
        isinstance(t, PointerType) and isinstance(strip_typedefs(t.pointee), FunctionType)
    )


def template_value_name(parameter: TemplateParameter) -> str:
    return camel_case(parameter.name) or f"p{parameter.handle}"


def render_ffi(
    refs: References,
    t: object,
    layout: bool = False,
) -> str:
    """
    Deno FFI descriptor for `t`. With `layout` set the result is embedded in
    a struct layout, where pointers never need the pointee's definition.
    """
    return traversal.run(render_ffi_step(refs, t, layout))


def _render_all_step(refs: References, types: Sequence[object], layout: bool = False) -> Step:
    rendered = []
    for t in types:
        rendered.append((yield render_ffi_step(refs, t, layout)))
    return rendered


def render_ffi_step(refs: References, t: object, layout: bool = False) -> Step:
    if t is None:
        return '"void"'
    if t is SELF:
        return '"self"'
    if isinstance(t, Primitive):
        if t in (Primitive.CSTRING, Primitive.CSTRING_ARRAY):
            return refs.use(f"{t.value}T", SYSTEM_TYPES)
        return f'"{t.value}"'
    if isinstance(t, (EnumEntry, ClassEntry, UnionEntry)):
        return refs.use(f"{t.name}T", types_file(t.file))
    if isinstance(t, TypedefEntry):
        name = refs.use(f"{t.name}T", types_file(t.file))
        if _is_function_like(t.target):
            return f"{refs.system('func')}({name})"
        return name
    if isinstance(t, PointerType):
        return (yield _render_pointer_step(refs, t.pointee, layout))
    if isinstance(t, FunctionType):
        return (yield render_signature_step(refs, t.parameters, t.result))
    if isinstance(t, TemplateInstance):
        if t.specialization is None:
            raise BindgenError(f"Template instance of {t.template.ns_name} has no specialization")
        name = refs.use(f"{t.name}T", types_file(t.file))
        arguments = yield _render_all_step(refs, t.arguments)
        return f"{name}({', '.join(arguments)})"
    if isinstance(t, InlineClassType):
        items = ['"pointer"'] if t.vtable else []
        items += yield _render_all_step(refs, t.bases, layout=True)
        items += yield _render_all_step(refs, [f.type for f in t.fields], layout=True)
        return f"{{ struct: [{', '.join(items)}] }}"
    if isinstance(t, ArrayType):
        element = yield render_ffi_step(refs, t.element, layout=True)
        return f"{{ struct: [{', '.join([element] * t.length)}] }}"
    if isinstance(t, InlineUnionType):
        return (yield render_union_step(refs, [f.type for f in t.fields]))
    if isinstance(t, MemberPointerType):
        units = sized_struct(t.type.get_size(), t.type.get_align())
        return f"{{ struct: [{', '.join(repr_str(u) for u in units)}] }}"
    if isinstance(t, TemplateParameter):
        name = template_value_name(t)
        return f"...{name}" if t.is_spread else name
    raise BindgenError(f"Cannot render {t!r} as an FFI type")


def repr_str(value: str) -> str:
    return f'"{value}"'


def render_union(refs: References, alternatives: List[TypeEntry]) -> str:
    return traversal.run(render_union_step(refs, alternatives))


def render_union_step(refs: References, alternatives: List[TypeEntry]) -> Step:
    rendered: List[str] = []
    for alternative in collapse_union(alternatives):
        text = yield render_ffi_step(refs, alternative, layout=True)
        if text not in rendered:
            rendered.append(text)
    if len(rendered) == 1:
        return rendered[0]
    helper = refs.system(f"union{len(rendered)}")
    return f"{helper}({', '.join(rendered)})"


def render_signature(
    refs: References, parameters: List[Parameter], result: Optional[TypeEntry]
) -> str:
    return traversal.run(render_signature_step(refs, parameters, result))


def render_signature_step(
    refs: References, parameters: List[Parameter], result: Optional[TypeEntry]
) -> Step:
    rendered = yield _render_all_step(refs, [p.type for p in parameters])
    result_text = yield render_ffi_step(refs, result)
    if len(rendered) == 1 and rendered[0].startswith("..."):
        return f"{{ parameters: {rendered[0][3:]}, result: {result_text} }}"
    return f"{{ parameters: [{', '.join(rendered)}], result: {result_text} }}"


def _points_to_named_struct(pointee: object) -> bool:
    if pointee is SELF:
        return True
    if usage_owner(pointee) is not None:
        return True
    stripped = strip_typedefs(pointee)
    return isinstance(stripped, UnionEntry) or (
        isinstance(pointee, TypedefEntry) and is_struct_like(pointee)
    )


def _render_pointer_step(refs: References, pointee: object, layout: bool) -> Step:
    if layout and _points_to_named_struct(pointee):
        return '"pointer"'
    if pointee is SELF:
        return f'{refs.system("buf")}("self")'
    stripped = strip_typedefs(pointee)
    if isinstance(stripped, FunctionType):
        helper = "func"
    else:
        owner = usage_owner(pointee)
        if owner is not None:
            helper = "ptr" if owner.pointer_form else "buf"
        elif isinstance(stripped, (InlineClassType, ArrayType)) and not isinstance(
            pointee, TypedefEntry
        ):
            return '"pointer"' if passed_in_registers(stripped) else '"buffer"'
        elif isinstance(
            stripped, (Primitive, PointerType, EnumEntry, UnionEntry, InlineUnionType)
        ) or isinstance(pointee, (TypedefEntry, TemplateParameter)):
            helper = "buf"
        else:
            helper = "ptr"
    helper = refs.system(helper)
    rendered = yield render_ffi_step(refs, pointee)
    return f"{helper}({rendered})"


# Call boundary


def render_parameter(refs: References, t: Optional[TypeEntry]) -> str:
    """FFI descriptor of a parameter, honoring by-value passing rules."""
    rendered = render_ffi(refs, t)
    if passed_in_registers(t):
        return rendered
    owner = usage_owner(t)
    if owner is not None and owner.pointer_form:
        return f"{refs.system('ptr')}({rendered})"
    return f"{refs.system('buf')}({rendered})"


def render_call(
    refs: References,
    parameters: List[Parameter],
    result: Optional[TypeEntry],
    leading: Optional[List[str]] = None,
):
    """
    Parameter descriptors and result descriptor of a bound symbol. A result
    that is not returned in registers becomes a leading out-buffer.
    """
    rendered = [render_parameter(refs, p.type) for p in parameters]
    prefix = list(leading or [])
    if result is not None and not passed_in_registers(result):
        out = f"{refs.system('buf')}({render_ffi(refs, result)})"
        return [out] + prefix + rendered, '"void"', True
    return prefix + rendered, render_ffi(refs, result), False


# TypeScript surface types


def render_ts(refs: References, t: object, into_js: bool = False) -> str:
    """TypeScript type of a value passed to or returned from a wrapper method."""
    seen = set()
    while (
        isinstance(t, TypedefEntry)
        and not is_struct_like(t)
        and not _is_function_like(t.target)
        and t.handle not in seen
    ):
        seen.add(t.handle)
        t = t.target
    if t is None:
        return "void"
    if isinstance(t, Primitive):
        if t is Primitive.BOOL:
            return "boolean"
        if t in (Primitive.U64, Primitive.I64):
            return "number | bigint"
        if t is Primitive.POINTER:
            return "Deno.PointerValue"
        if t in (Primitive.BUFFER, Primitive.CSTRING, Primitive.CSTRING_ARRAY):
            return "Deno.PointerValue" if into_js else "Uint8Array"
        return "number"
    if isinstance(t, EnumEntry):
        return refs.use(t.name, types_file(t.file), type_only=True)
    if isinstance(t, TypedefEntry):
        if is_struct_like(t):
            return refs.use(f"{t.name}Buffer", classes_file(t.file))
        if _is_function_like(t.target):
            return refs.use(t.name, types_file(t.file), type_only=True)
        raise BindgenError(f"Typedef {t.ns_name} refers to itself")
    if isinstance(t, FunctionType):
        return "Deno.PointerValue"
    if isinstance(t, PointerType):
        return _render_pointer_ts(refs, t.pointee, into_js)
    if isinstance(t, ClassEntry):
        return refs.use(f"{t.name}Buffer", classes_file(t.file))
    if isinstance(t, TemplateInstance):
        return refs.use(f"{t.name}Buffer", classes_file(t.file))
    if isinstance(t, (InlineClassType, InlineUnionType, ArrayType, UnionEntry)):
        return "Uint8Array"
    if isinstance(t, MemberPointerType):
        return "Uint8Array"
    raise BindgenError(f"Cannot render {t!r} as a TypeScript type")


def _render_pointer_ts(refs: References, pointee: object, into_js: bool) -> str:
    if pointee is SELF:
        return "Deno.PointerValue"
    owner = usage_owner(pointee)
    if owner is not None:
        stripped = strip_typedefs(pointee)
        name = stripped.name if isinstance(stripped, (ClassEntry, TemplateInstance)) else owner.name
        file = stripped.file if isinstance(stripped, (ClassEntry, TemplateInstance)) else owner.file
        if into_js or owner.pointer_form:
            return refs.use(f"{name}Pointer", types_file(file), type_only=True)
        return refs.use(f"{name}Buffer", classes_file(file), type_only=True)
    if _is_function_like(pointee):
        return "Deno.PointerValue"
    stripped = strip_typedefs(pointee)
    if isinstance(stripped, (Primitive, EnumEntry, PointerType)) and not into_js:
        return "Uint8Array"
    return "Deno.PointerValue"

