"""
Deno FFI binding generator for C++ headers.
"""

from .build import build, generate
from .config import (
    ClassImport,
    ExportConfiguration,
    FunctionImport,
    VarImport,
    load_configuration,
)
from .errors import BindgenError

__all__ = [
    "BindgenError",
    "ClassImport",
    "ExportConfiguration",
    "FunctionImport",
    "VarImport",
    "build",
    "generate",
    "load_configuration",
]
