import re
from typing import List

_WORD_RE = re.compile(r"[A-Z]?[a-z]+\d*|[A-Z]+\d*(?![a-z])|\d+")


def words(name: str) -> List[str]:
    """Split an identifier on underscores, case changes and digits."""
    return _WORD_RE.findall(name.replace("_", " "))


def pascal_case(name: str) -> str:
    """
    Examples:
        f32 -> F32
        scale_factor -> ScaleFactor
        cstringArray -> CstringArray
    """
    return "".join(w[:1].upper() + w[1:].lower() for w in words(name))


def camel_case(name: str) -> str:
    pascal = pascal_case(name)
    return pascal[:1].lower() + pascal[1:]


def constant_case(name: str) -> str:
    """MyClass -> MY_CLASS"""
    return "_".join(w.upper() for w in words(name))

