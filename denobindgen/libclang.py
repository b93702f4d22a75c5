"""
Frontend implementation over the `clang.cindex` bindings.
"""

import ctypes
import logging
import os
import tempfile
from typing import Hashable, Iterator, List, Optional

from clang import cindex
from clang.cindex import AccessSpecifier, Config, CursorKind, Index, TranslationUnit, TypeKind, conf

from . import frontend

logger = logging.getLogger(__name__)


def configure_library() -> None:
    """Point `clang.cindex` at the shared library named by LIBCLANG_PATH."""
    if "LIBCLANG_PATH" not in os.environ or Config.loaded:
        return
    libclang_path = os.environ["LIBCLANG_PATH"]
    if os.path.isfile(libclang_path):
        Config.set_library_file(libclang_path)
    elif os.path.isdir(libclang_path):
        Config.set_library_path(libclang_path)
    else:
        logger.warning("LIBCLANG_PATH=%s is not a file or directory", libclang_path)


class _CXStringSet(ctypes.Structure):
    _fields_ = [("strings", ctypes.POINTER(cindex._CXString)), ("count", ctypes.c_uint)]


_registered = False


def _register_functions() -> None:
    """Library functions `clang.cindex` does not wrap."""
    global _registered
    if _registered:
        return
    lib = conf.lib
    lib.clang_Cursor_getCXXManglings.argtypes = [cindex.Cursor]
    lib.clang_Cursor_getCXXManglings.restype = ctypes.POINTER(_CXStringSet)
    lib.clang_disposeStringSet.argtypes = [ctypes.POINTER(_CXStringSet)]
    lib.clang_disposeStringSet.restype = None
    lib.clang_getCString.argtypes = [cindex._CXString]
    lib.clang_getCString.restype = ctypes.c_char_p
    lib.clang_Cursor_isFunctionInlined.argtypes = [cindex.Cursor]
    lib.clang_Cursor_isFunctionInlined.restype = ctypes.c_uint
    lib.clang_isVirtualBase.argtypes = [cindex.Cursor]
    lib.clang_isVirtualBase.restype = ctypes.c_uint
    lib.clang_getSpecializedCursorTemplate.argtypes = [cindex.Cursor]
    lib.clang_getSpecializedCursorTemplate.restype = cindex.Cursor
    lib.clang_getOverriddenCursors.argtypes = [
        cindex.Cursor,
        ctypes.POINTER(ctypes.POINTER(cindex.Cursor)),
        ctypes.POINTER(ctypes.c_uint),
    ]
    lib.clang_getOverriddenCursors.restype = None
    lib.clang_disposeOverriddenCursors.argtypes = [ctypes.POINTER(cindex.Cursor)]
    lib.clang_disposeOverriddenCursors.restype = None
    _registered = True


def _null(cursor: Optional[cindex.Cursor]) -> bool:
    return cursor is None or cursor.kind.is_invalid()


def _wrap_cursor(cursor: Optional[cindex.Cursor]) -> Optional["ClangCursor"]:
    if _null(cursor):
        return None
    return ClangCursor(cursor)


class ClangCursor(frontend.Cursor):
    def __init__(self, cursor: cindex.Cursor):
        self._cursor = cursor

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ClangCursor) and self._cursor == other._cursor

    def __hash__(self) -> int:
        return self._cursor.hash

    def __repr__(self) -> str:
        return f"<ClangCursor {self._cursor.kind.name} {self._cursor.spelling}>"

    @property
    def kind(self) -> CursorKind:
        return self._cursor.kind

    @property
    def spelling(self) -> str:
        return self._cursor.spelling

    @property
    def file(self) -> str:
        location = self._cursor.location
        if location.file is None:
            return ""
        return os.path.abspath(location.file.name)

    @property
    def semantic_parent(self) -> Optional["ClangCursor"]:
        return _wrap_cursor(self._cursor.semantic_parent)

    @property
    def canonical(self) -> "ClangCursor":
        return ClangCursor(self._cursor.canonical)

    @property
    def access_specifier(self) -> AccessSpecifier:
        return self._cursor.access_specifier

    @property
    def type(self) -> "ClangType":
        return ClangType(self._cursor.type)

    @property
    def result_type(self) -> "ClangType":
        return ClangType(self._cursor.result_type)

    @property
    def underlying_typedef_type(self) -> "ClangType":
        return ClangType(self._cursor.underlying_typedef_type)

    @property
    def enum_type(self) -> "ClangType":
        return ClangType(self._cursor.enum_type)

    @property
    def enum_value(self) -> int:
        return self._cursor.enum_value

    @property
    def mangled_name(self) -> str:
        return self._cursor.mangled_name or ""

    @property
    def specialized_template(self) -> Optional["ClangCursor"]:
        _register_functions()
        return _wrap_cursor(conf.lib.clang_getSpecializedCursorTemplate(self._cursor))

    def get_children(self) -> Iterator["ClangCursor"]:
        for child in self._cursor.get_children():
            yield ClangCursor(child)

    def get_arguments(self) -> Iterator["ClangCursor"]:
        for argument in self._cursor.get_arguments():
            yield ClangCursor(argument)

    def get_definition(self) -> Optional["ClangCursor"]:
        return _wrap_cursor(self._cursor.get_definition())

    def get_field_offsetof(self) -> int:
        return self._cursor.get_field_offsetof()

    def is_definition(self) -> bool:
        return self._cursor.is_definition()

    def is_anonymous(self) -> bool:
        return self._cursor.is_anonymous()

    def is_virtual_method(self) -> bool:
        return self._cursor.is_virtual_method()

    def is_static_method(self) -> bool:
        return self._cursor.is_static_method()

    def is_const_method(self) -> bool:
        return self._cursor.is_const_method()

    def is_copy_constructor(self) -> bool:
        return self._cursor.is_copy_constructor()

    def is_move_constructor(self) -> bool:
        return self._cursor.is_move_constructor()

    def is_inlined(self) -> bool:
        _register_functions()
        return bool(conf.lib.clang_Cursor_isFunctionInlined(self._cursor))

    def is_overriding(self) -> bool:
        _register_functions()
        overridden = ctypes.POINTER(cindex.Cursor)()
        count = ctypes.c_uint(0)
        conf.lib.clang_getOverriddenCursors(self._cursor, ctypes.byref(overridden), ctypes.byref(count))
        if count.value:
            conf.lib.clang_disposeOverriddenCursors(overridden)
        return count.value > 0

    def is_virtual_base(self) -> bool:
        _register_functions()
        return bool(conf.lib.clang_isVirtualBase(self._cursor))

    def is_parameter_pack(self) -> bool:
        return any(token.spelling == "..." for token in self._cursor.get_tokens())

    def manglings(self) -> List[str]:
        _register_functions()
        strings = conf.lib.clang_Cursor_getCXXManglings(self._cursor)
        if not strings:
            return []
        try:
            result = strings.contents
            return [
                conf.lib.clang_getCString(result.strings[i]).decode()
                for i in range(result.count)
            ]
        finally:
            conf.lib.clang_disposeStringSet(strings)

    def enum_reference(self) -> Optional["ClangCursor"]:
        for child in self._cursor.walk_preorder():
            if child.kind == CursorKind.DECL_REF_EXPR:
                referenced = child.referenced
                if referenced is not None and referenced.kind == CursorKind.ENUM_CONSTANT_DECL:
                    return ClangCursor(referenced)
        return None


class ClangType(frontend.Type):
    def __init__(self, t: cindex.Type):
        self._type = t

    def __repr__(self) -> str:
        return f"<ClangType {self._type.kind.name} {self._type.spelling}>"

    @property
    def kind(self) -> TypeKind:
        return self._type.kind

    @property
    def spelling(self) -> str:
        return self._type.spelling

    @property
    def element_type(self) -> "ClangType":
        return ClangType(self._type.element_type)

    @property
    def element_count(self) -> int:
        return self._type.element_count

    def key(self) -> Hashable:
        declaration = self._type.get_declaration()
        decl_hash = None if _null(declaration) else declaration.hash
        return (self._type.kind.value, self._type.spelling, decl_hash)

    def get_canonical(self) -> "ClangType":
        return ClangType(self._type.get_canonical())

    def get_pointee(self) -> "ClangType":
        return ClangType(self._type.get_pointee())

    def get_declaration(self) -> Optional[ClangCursor]:
        return _wrap_cursor(self._type.get_declaration())

    def get_named_type(self) -> "ClangType":
        return ClangType(self._type.get_named_type())

    def argument_types(self) -> List["ClangType"]:
        return [ClangType(t) for t in self._type.argument_types()]

    def get_result(self) -> "ClangType":
        return ClangType(self._type.get_result())

    def get_size(self) -> int:
        return self._type.get_size()

    def get_align(self) -> int:
        return self._type.get_align()

    def get_num_template_arguments(self) -> int:
        return self._type.get_num_template_arguments()

    def get_template_argument_type(self, index: int) -> "ClangType":
        return ClangType(self._type.get_template_argument_type(index))

    def is_pod(self) -> bool:
        return self._type.is_pod()


def parse_tu(headers: List[str], include_dirs: List[str], target: Optional[str]) -> ClangCursor:
    """Parse a translation unit including every header and return its root cursor."""
    configure_library()
    tu_source = "".join(f"#include <{h}>\n" for h in headers)
    with tempfile.NamedTemporaryFile("w", suffix=".cpp") as tf:
        tf.write(tu_source)
        tf.flush()
        args = ["-x", "c++", "-std=c++20"]
        if target:
            args += ["-target", target]
        args += [arg for inc in include_dirs for arg in ("-I", inc)]

        index = Index.create()
        tu = index.parse(tf.name, args=args, options=TranslationUnit.PARSE_SKIP_FUNCTION_BODIES)
        for d in tu.diagnostics:
            if d.severity >= d.Warning:
                logger.warning("%s", d)
        return ClangCursor(tu.cursor)
