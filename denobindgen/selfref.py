"""
Rewrites pointers back to the enclosing class into the SELF sentinel.
"""

import dataclasses
import logging
from typing import Dict, Set

from . import traversal
from .entries import (
    SELF,
    ArrayType,
    Field,
    FunctionType,
    InlineClassType,
    InlineUnionType,
    Parameter,
    PointerType,
    StructLikeEntry,
    TemplateInstance,
    TypedefEntry,
    strip_typedefs,
)
from .errors import BindgenError, SelfContainmentError
from .traversal import Step

logger = logging.getLogger(__name__)


def _refers_to(owner: StructLikeEntry, t: object) -> bool:
    if isinstance(t, TypedefEntry):
        t = strip_typedefs(t)
    if t is owner:
        return True
    if isinstance(t, InlineClassType):
        return t.declaration is owner
    if isinstance(t, TemplateInstance):
        return t.specialization is owner
    return False


class _SelfReferenceWalk:
    def __init__(self, owner: StructLikeEntry):
        self.owner = owner
        self.active: Set[int] = set()
        # Results per (handle, through_pointer), so shared subtrees are walked once
        self.done: Dict[tuple, object] = {}

    def rewrite_step(self, t: object, through_pointer: bool) -> Step:
        if t is None or t is SELF:
            return t
        if _refers_to(self.owner, t):
            if through_pointer:
                return SELF
            raise SelfContainmentError(f"{self.owner.ns_name} contains itself by value")
        handle = getattr(t, "handle", None)
        if handle is None or handle in self.active:
            return t
        key = (handle, through_pointer)
        if key in self.done:
            return self.done[key]
        self.active.add(handle)
        try:
            result = yield self._children_step(t, through_pointer)
        finally:
            self.active.discard(handle)
        self.done[key] = result
        return result

    def _children_step(self, t: object, through_pointer: bool) -> Step:
        if isinstance(t, TypedefEntry):
            target = yield self.rewrite_step(t.target, through_pointer)
            if target is not t.target:
                # Typedefs are named: update in place
                t.target = target
            return t
        if isinstance(t, PointerType):
            pointee = yield self.rewrite_step(t.pointee, True)
            if pointee is t.pointee:
                return t
            return dataclasses.replace(t, pointee=pointee)
        if isinstance(t, ArrayType):
            element = yield self.rewrite_step(t.element, through_pointer)
            if element is t.element:
                return t
            return dataclasses.replace(t, element=element)
        if isinstance(t, FunctionType):
            parameters = yield self._parameters_step(t.parameters, through_pointer)
            result = yield self.rewrite_step(t.result, through_pointer)
            if parameters is t.parameters and result is t.result:
                return t
            return dataclasses.replace(t, parameters=parameters, result=result)
        if isinstance(t, (InlineClassType, InlineUnionType)):
            fields = yield self._fields_step(t.fields, through_pointer)
            bases = getattr(t, "bases", None)
            new_bases = bases
            if bases:
                new_bases = []
                for base in bases:
                    new_bases.append((yield self.rewrite_step(base, through_pointer)))
                if all(a is b for a, b in zip(new_bases, bases)):
                    new_bases = bases
            if fields is t.fields and new_bases is bases:
                return t
            if isinstance(t, InlineClassType):
                return dataclasses.replace(t, fields=fields, bases=new_bases)
            return dataclasses.replace(t, fields=fields)
        if isinstance(t, TemplateInstance):
            arguments = []
            for argument in t.arguments:
                arguments.append((yield self.rewrite_step(argument, through_pointer)))
            if all(a is b for a, b in zip(arguments, t.arguments)):
                return t
            return dataclasses.replace(t, arguments=arguments)
        # Named entries are walked from their own pass
        return t

    def _parameters_step(self, parameters, through_pointer: bool) -> Step:
        changed = False
        out = []
        for parameter in parameters:
            new_type = yield self.rewrite_step(parameter.type, through_pointer)
            if new_type is not parameter.type:
                changed = True
                parameter = Parameter(parameter.name, new_type, parameter.cursor)
            out.append(parameter)
        return out if changed else parameters

    def _fields_step(self, fields, through_pointer: bool) -> Step:
        changed = False
        out = []
        for field in fields:
            try:
                new_type = yield self.rewrite_step(field.type, through_pointer)
            except BindgenError as err:
                raise err.within(f"field {field.name or '<anonymous>'}")
            if new_type is not field.type:
                changed = True
                field = Field(field.name, new_type, field.cursor)
            out.append(field)
        return out if changed else fields


def resolve_self_references(entry: StructLikeEntry) -> None:
    """Replace pointers to `entry` within its own fields with SELF."""
    if entry.self_references_resolved:
        return
    walk = _SelfReferenceWalk(entry)
    try:
        entry.fields = traversal.run(walk._fields_step(entry.fields, False))
    except BindgenError as err:
        raise err.within(entry.ns_name)
    entry.self_references_resolved = True
    logger.debug("Resolved self references of %s", entry.ns_name)
