"""
Renders classes and class template specializations.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from .entries import (
    SELF,
    ClassEntry,
    ClassTemplateEntry,
    Constructor,
    Field,
    FunctionType,
    Method,
    Parameter,
    PointerType,
    Specialization,
    TemplateInstance,
    TemplateParameter,
    TypeEntry,
    is_struct_like,
    strip_typedefs,
    usage_owner,
)
from .errors import BindgenError
from .layout import check_inheritance, has_own_vtable, size_of
from .naming import pascal_case
from .overloads import assign_method_names, parameter_fragment
from .render import (
    RenderData,
    RenderDataEntry,
    branded_pointer,
    buffer_class,
    function_export,
    size_constant,
)
from .render_types import (
    FFI,
    References,
    classes_file,
    render_call,
    render_ffi,
    render_ts,
    template_value_name,
    types_file,
)

logger = logging.getLogger(__name__)


def _field_comment(field: Field) -> str:
    label = field.name or "<anonymous>"
    t = field.cursor.type if field.cursor is not None else None
    if t is None:
        return label
    details = []
    offset = field.cursor.get_field_offsetof() if field.name else -1
    if offset >= 0:
        details.append(f"offset {offset // 8}")
    size, align = t.get_size(), t.get_align()
    if size >= 0:
        details.append(f"size {size}")
    if align >= 0:
        details.append(f"align {align}")
    return ", ".join([label] + details)


def _base_comment(base: TypeEntry) -> str:
    if isinstance(base, ClassEntry):
        size, align = base.size, base.align
    else:
        t = getattr(base, "type", None)
        if t is None:
            return "base class"
        size, align = t.get_size(), t.get_align()
    if size < 0:
        return "base class"
    return f"base class, size {size}, align {align}"


def _base_pointer(refs: References, base: TypeEntry) -> Optional[str]:
    if isinstance(base, (ClassEntry, TemplateInstance)):
        return refs.use(f"{base.name}Pointer", types_file(base.file), type_only=True)
    return None


def struct_items(
    refs: References,
    bases: Sequence[TypeEntry],
    fields: Sequence[Field],
    virtual_bases: Sequence[TypeEntry],
    vtable: bool,
) -> Tuple[List[str], List[str]]:
    """Layout lines of a struct and the pointer types it may stand in for."""
    items: List[str] = []
    inherited: List[str] = []
    if vtable:
        items.append('"pointer", // vtable')
    for base in bases:
        if not items:
            # Only a base at offset 0 shares its address with the derived object
            pointer = _base_pointer(refs, base)
            if pointer is not None:
                inherited.append(pointer)
        items.append(f"{render_ffi(refs, base, layout=True)}, // {_base_comment(base)}")
    for field in fields:
        items.append(f"{render_ffi(refs, field.type, layout=True)}, // {_field_comment(field)}")
    for base in virtual_bases:
        if not items:
            pointer = _base_pointer(refs, base)
            if pointer is not None:
                inherited.append(pointer)
        items.append(f"{render_ffi(refs, base, layout=True)}, // {_base_comment(base)}")
    return items, inherited


def _struct_literal(items: Sequence[str], indent: str = "") -> str:
    body = "".join(f"{indent}    {item}\n" for item in items)
    return f"{{\n{indent}  struct: [\n{body}{indent}  ],\n{indent}}}"


def _class_method(
    name: str,
    parameters: Sequence[str],
    result: str,
    body: Sequence[str],
    static: bool = False,
    override: bool = False,
) -> str:
    modifiers = ("static " if static else "") + ("override " if override else "")
    lines = "".join(f"    {line}\n" for line in body)
    return f"""
  {modifiers}{name}({", ".join(parameters)}): {result} {{
{lines}  }}
"""


def constructor_name(entry: ClassEntry, constructor: Constructor) -> str:
    cursor = constructor.cursor
    parameters = constructor.parameters
    if cursor.is_copy_constructor() or cursor.is_move_constructor():
        name = "CopyConstructor" if cursor.is_copy_constructor() else "MoveConstructor"
        first = parameters[0].type if parameters else None
        if not isinstance(first, PointerType):
            raise BindgenError(f"Copy or move constructor of {entry.ns_name} takes no reference")
        parts = []
        pointee = strip_typedefs(first.pointee) if first.pointee is not SELF else entry
        if pointee is not entry:
            parts.append(pascal_case(getattr(pointee, "name", parameters[0].name)))
        parts += [parameter_fragment(p) for p in parameters[1:]]
        return f"{name}With{'And'.join(parts)}" if parts else name
    if parameters:
        return f"ConstructorWith{'And'.join(parameter_fragment(p) for p in parameters)}"
    return "Constructor"


def _complete_symbol(manglings: Sequence[str]) -> str:
    # Itanium order: base object, complete object, deleting
    if not manglings:
        raise BindgenError("Constructor or destructor without a symbol")
    return manglings[1] if len(manglings) > 1 else manglings[0]


def _is_overriding(entry: ClassEntry, method: Method) -> bool:
    if not method.is_overriding or not entry.bases:
        return False
    base = entry.bases[0]
    return isinstance(base, ClassEntry) and any(m.name == method.name for m in base.methods)


def _argument_names(parameters: Sequence[Parameter]) -> List[str]:
    return [p.name for p in parameters]


def render_class(data: RenderData, entry: ClassEntry) -> None:
    name = entry.name
    class_t = f"{name}T"
    class_pointer = f"{name}Pointer"
    class_buffer = f"{name}Buffer"
    size = size_constant(name)
    lib_name = entry.export_name

    check_inheritance(name, list(entry.bases) + list(entry.virtual_bases))

    # Types file: size, layout and branded pointer
    refs = References(data.types_imports)
    items, inherited = struct_items(
        refs, entry.bases, entry.fields, entry.virtual_bases, has_own_vtable(entry.cursor)
    )
    data.types_entries.append(
        RenderDataEntry(
            [size, class_t, name, class_pointer],
            refs.dependencies,
            f"export const {size} = {entry.size} as const;\n"
            f"export const {class_t} = {_struct_literal(items)} as const;\n"
            + branded_pointer(class_pointer, name, inherited),
        )
    )

    # Bindings file and buffer class members
    bindings = References(data.bindings_imports)
    members = References(data.classes_imports)
    members.use(size, data.types_path)
    buf_self = f"{bindings.system('buf')}({bindings.use(class_t, data.types_path)})"
    body: List[str] = []

    for constructor in entry.constructors:
        ctor = constructor_name(entry, constructor)
        symbol = data.claim(f"{lib_name}__{ctor}")
        parameters, _, _ = render_call(bindings, constructor.parameters, None, leading=[buf_self])
        data.bindings_entries.append(
            RenderDataEntry(
                [symbol],
                [],
                function_export(symbol, _complete_symbol(constructor.manglings), parameters, '"void"'),
            )
        )
        members.use(symbol, FFI)
        body.append(
            _class_method(
                ctor,
                [f"{p.name}: {render_ts(members, p.type)}" for p in constructor.parameters]
                + [f"self = new {class_buffer}()"],
                class_buffer,
                [
                    f"{symbol}({', '.join(['self'] + _argument_names(constructor.parameters))});",
                    "return self;",
                ],
                static=True,
            )
        )

    if entry.destructor is not None:
        manglings = entry.destructor.manglings
        symbol = data.claim(f"{lib_name}__Destructor")
        data.bindings_entries.append(
            RenderDataEntry(
                [symbol], [], function_export(symbol, _complete_symbol(manglings), [buf_self], '"void"')
            )
        )
        members.use(symbol, FFI)
        body.append(_class_method("delete", [], "void", [f"{symbol}(this);"]))
        if len(manglings) > 2:
            deleting = data.claim(f"{lib_name}__Delete")
            ptr_self = f"{bindings.system('ptr')}({class_t})"
            data.bindings_entries.append(
                RenderDataEntry([deleting], [], function_export(deleting, manglings[2], [ptr_self], '"void"'))
            )
            members.use(deleting, FFI)
            members.use(class_pointer, data.types_path, type_only=True)
            body.append(
                _class_method(
                    "delete", [f"self: {class_pointer}"], "void", [f"{deleting}(self);"], static=True
                )
            )

    for method, method_name in assign_method_names(entry):
        body.append(_render_method(data, entry, method, method_name, bindings, members, buf_self))

    base_buffer = "Uint8Array"
    dependencies: List[str] = []
    if entry.bases and isinstance(entry.bases[0], (ClassEntry, TemplateInstance)):
        first = entry.bases[0]
        base_buffer = f"{first.name}Buffer"
        data.classes_imports[base_buffer] = classes_file(first.file)
        dependencies.append(base_buffer)
    data.classes_entries.append(
        RenderDataEntry(
            [class_buffer],
            dependencies,
            buffer_class(class_buffer, size, base_buffer, "".join(body)),
        )
    )


def _render_method(
    data: RenderData,
    entry: ClassEntry,
    method: Method,
    method_name: str,
    bindings: References,
    members: References,
    buf_self: str,
) -> str:
    symbol = data.claim(f"{entry.export_name}__{method_name}")
    leading = [] if method.is_static else [buf_self]
    parameters, result, out_parameter = render_call(
        bindings, method.parameters, method.result, leading=leading
    )
    data.bindings_entries.append(
        RenderDataEntry([symbol], [], function_export(symbol, method.mangling, parameters, result))
    )
    members.use(symbol, FFI)

    arguments = [] if method.is_static else ["this"]
    arguments += _argument_names(method.parameters)
    signature = [f"{p.name}: {render_ts(members, p.type)}" for p in method.parameters]
    override = _is_overriding(entry, method)

    if out_parameter:
        result_ts = render_ts(members, method.result)
        constructor = (
            f"new Uint8Array({size_of(method.result)})"
            if result_ts == "Uint8Array"
            else f"new {result_ts}()"
        )
        return _class_method(
            method_name,
            signature + [f"result = {constructor}"],
            result_ts,
            [f"{symbol}({', '.join(['result'] + arguments)});", "return result;"],
            static=method.is_static,
            override=override,
        )

    call = f"{symbol}({', '.join(arguments)})"
    result_ts = render_ts(members, method.result, into_js=True)
    stripped = strip_typedefs(method.result)
    if is_struct_like(method.result):
        struct_ts = render_ts(members, method.result)
        if struct_ts == "Uint8Array":
            statement = f"return new Uint8Array({call}.buffer);"
        else:
            statement = f"return new {struct_ts}({call}.buffer);"
        result_ts = struct_ts
    elif isinstance(stripped, PointerType) and usage_owner(stripped.pointee) is not None:
        result_ts = f"null | {result_ts}"
        statement = f"return {call} as {result_ts};"
    elif method.result is None:
        statement = f"{call};"
    else:
        statement = f"return {call};"
    return _class_method(
        method_name,
        signature,
        result_ts,
        [statement],
        static=method.is_static,
        override=override,
    )


# Class templates


def _destructure(pattern: object, source: str) -> Optional[str]:
    """Bind a partial specialization's own parameters from a primary argument."""
    if isinstance(pattern, PointerType) and isinstance(pattern.pointee, TemplateParameter):
        pattern = pattern.pointee
    if isinstance(pattern, TemplateParameter):
        return f"const {template_value_name(pattern)} = {source};"
    if isinstance(pattern, FunctionType):
        parameters = []
        for parameter in pattern.parameters:
            t = parameter.type
            if isinstance(t, TemplateParameter):
                prefix = "..." if t.is_spread else ""
                parameters.append(prefix + template_value_name(t))
            else:
                parameters.append("")
        parts = []
        if any(parameters):
            if len(parameters) == 1 and parameters[0].startswith("..."):
                parts.append(f"parameters: {parameters[0][3:]}")
            else:
                parts.append(f"parameters: [{', '.join(parameters)}]")
        if isinstance(pattern.result, TemplateParameter):
            parts.append(f"result: {template_value_name(pattern.result)}")
        if parts:
            return f"const {{ {', '.join(parts)} }} = {source};"
    return None


def render_specialization(
    data: RenderData, template: ClassTemplateEntry, specialization: Specialization
) -> None:
    name = template.specialization_name(specialization)
    refs = References(data.types_imports)
    items, _ = struct_items(
        refs,
        specialization.bases,
        specialization.fields,
        specialization.virtual_bases,
        has_own_vtable(specialization.cursor),
    )

    generics = []
    arguments = []
    statements = []
    for index, parameter in enumerate(template.parameters):
        type_name = pascal_case(parameter.name) or f"P{index}"
        if specialization.is_default:
            value = template_value_name(parameter)
        else:
            value = f"arg{index}"
        if parameter.is_spread:
            generics.append(f"const {type_name} extends readonly unknown[]")
            arguments.append(f"...{value}: {type_name}")
        else:
            generics.append(f"const {type_name}")
            arguments.append(f"{value}: {type_name}")
        if not specialization.is_default and index < len(specialization.application):
            statement = _destructure(specialization.application[index], value)
            if statement is not None:
                statements.append(statement)

    generic_list = f"<{', '.join(generics)}>" if generics else ""
    body = "".join(f"  {s}\n" for s in statements)
    contents = (
        f"export const {name}T = {generic_list}(\n"
        + "".join(f"  {a},\n" for a in arguments)
        + f") => {{\n{body}  return {_struct_literal(items, '  ')} as const;\n}};\n"
        + branded_pointer(f"{name}Pointer", name)
    )
    data.types_entries.append(
        RenderDataEntry([f"{name}T", name, f"{name}Pointer"], refs.dependencies, contents)
    )
    data.classes_entries.append(
        RenderDataEntry([f"{name}Buffer"], [], f"export class {name}Buffer extends Uint8Array {{}}\n")
    )


def render_class_template(data: RenderData, template: ClassTemplateEntry) -> None:
    specializations = list(template.partial_specializations)
    if template.default_specialization is not None:
        specializations.append(template.default_specialization)
    for specialization in specializations:
        if not specialization.used:
            continue
        if not specialization.cursor.is_definition():
            logger.debug("Skipping undefined specialization of %s", template.ns_name)
            continue
        render_specialization(data, template, specialization)
