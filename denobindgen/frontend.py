"""
Query surface the binding engine expects from a C++ frontend.

Names follow `clang.cindex` so the libclang adapter stays thin; the kind
enumerations are the ones defined by `clang.cindex` itself.
"""

from abc import ABC, abstractmethod
from typing import Hashable, Iterator, List, Optional

from clang.cindex import AccessSpecifier, CursorKind, TypeKind

__all__ = ["AccessSpecifier", "Cursor", "CursorKind", "Type", "TypeKind"]


class Cursor(ABC):
    @property
    @abstractmethod
    def kind(self) -> CursorKind: ...

    @property
    @abstractmethod
    def spelling(self) -> str: ...

    @property
    @abstractmethod
    def file(self) -> str:
        """Absolute path of the file declaring this cursor, or ''."""

    @property
    @abstractmethod
    def semantic_parent(self) -> Optional["Cursor"]: ...

    @property
    @abstractmethod
    def canonical(self) -> "Cursor": ...

    @property
    @abstractmethod
    def access_specifier(self) -> AccessSpecifier: ...

    @property
    @abstractmethod
    def type(self) -> "Type": ...

    @property
    @abstractmethod
    def result_type(self) -> "Type": ...

    @property
    @abstractmethod
    def underlying_typedef_type(self) -> "Type": ...

    @property
    @abstractmethod
    def enum_type(self) -> "Type": ...

    @property
    @abstractmethod
    def enum_value(self) -> int: ...

    @property
    @abstractmethod
    def mangled_name(self) -> str: ...

    @property
    @abstractmethod
    def specialized_template(self) -> Optional["Cursor"]: ...

    @abstractmethod
    def get_children(self) -> Iterator["Cursor"]: ...

    @abstractmethod
    def get_arguments(self) -> Iterator["Cursor"]: ...

    @abstractmethod
    def get_definition(self) -> Optional["Cursor"]: ...

    @abstractmethod
    def get_field_offsetof(self) -> int:
        """Offset of a field in bits."""

    @abstractmethod
    def is_definition(self) -> bool: ...

    @abstractmethod
    def is_anonymous(self) -> bool: ...

    @abstractmethod
    def is_virtual_method(self) -> bool: ...

    @abstractmethod
    def is_static_method(self) -> bool: ...

    @abstractmethod
    def is_const_method(self) -> bool: ...

    @abstractmethod
    def is_copy_constructor(self) -> bool: ...

    @abstractmethod
    def is_move_constructor(self) -> bool: ...

    @abstractmethod
    def is_inlined(self) -> bool:
        """True when the function body is available inline and no symbol is emitted."""

    @abstractmethod
    def is_overriding(self) -> bool: ...

    @abstractmethod
    def is_virtual_base(self) -> bool: ...

    @abstractmethod
    def is_parameter_pack(self) -> bool: ...

    @abstractmethod
    def manglings(self) -> List[str]:
        """All linker names of a constructor or destructor (base, complete, deleting)."""

    @abstractmethod
    def enum_reference(self) -> Optional["Cursor"]:
        """The enumerator an enum constant's initializer refers to, if any."""


class Type(ABC):
    @property
    @abstractmethod
    def kind(self) -> TypeKind: ...

    @property
    @abstractmethod
    def spelling(self) -> str: ...

    @property
    @abstractmethod
    def element_type(self) -> "Type": ...

    @property
    @abstractmethod
    def element_count(self) -> int: ...

    @abstractmethod
    def key(self) -> Hashable:
        """A hashable value equal for types the frontend considers identical."""

    @abstractmethod
    def get_canonical(self) -> "Type": ...

    @abstractmethod
    def get_pointee(self) -> "Type": ...

    @abstractmethod
    def get_declaration(self) -> Optional[Cursor]: ...

    @abstractmethod
    def get_named_type(self) -> "Type": ...

    @abstractmethod
    def argument_types(self) -> List["Type"]: ...

    @abstractmethod
    def get_result(self) -> "Type": ...

    @abstractmethod
    def get_size(self) -> int: ...

    @abstractmethod
    def get_align(self) -> int: ...

    @abstractmethod
    def get_num_template_arguments(self) -> int: ...

    @abstractmethod
    def get_template_argument_type(self, index: int) -> "Type": ...

    @abstractmethod
    def is_pod(self) -> bool: ...


RECORD_KINDS = (CursorKind.CLASS_DECL, CursorKind.STRUCT_DECL)
