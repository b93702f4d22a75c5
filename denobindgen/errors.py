"""
Error types raised while resolving and emitting bindings.

Every fatal error carries a chain of frames naming the symbol, field or
parameter that was being processed when it surfaced, outermost first.
"""

from typing import List


class BindgenError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.chain: List[str] = []

    def within(self, frame: str) -> "BindgenError":
        """Record that the error surfaced while processing `frame`."""
        if not self.chain or self.chain[0] != frame:
            self.chain.insert(0, frame)
        return self

    def __str__(self) -> str:
        if not self.chain:
            return self.message
        return f"{self.message} (in {' > '.join(self.chain)})"


class NotFoundError(BindgenError):
    pass


class AmbiguousNameError(BindgenError):
    pass


class UnsupportedTypeError(BindgenError):
    def __init__(self, spelling: str, kind: object):
        kind_name = getattr(kind, "name", kind)
        super().__init__(f"Unsupported type '{spelling}' of kind {kind_name}")
        self.spelling = spelling
        self.kind = kind


class VoidTypeError(BindgenError):
    pass


class SelfContainmentError(BindgenError):
    pass


class DuplicateExportError(BindgenError):
    def __init__(self, name: str):
        super().__init__(f"Duplicate export name '{name}'")
        self.name = name


class DependencyCycleError(BindgenError):
    def __init__(self, names: List[str]):
        super().__init__(f"Cyclic dependency between {' -> '.join(names)}")
        self.names = names


class LayoutError(BindgenError):
    pass


class ConfigurationError(BindgenError):
    pass
