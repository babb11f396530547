"""
Explicit parameter descriptors for loaders and actions.

A callback's parameters decide its HTTP verb, its action URI and how the
generated handler binds arguments. Instead of reflecting on the callback each
time, registration captures a `Signature` once (either given explicitly or
read from annotations) and everything downstream inspects that value.
"""

from __future__ import annotations

import inspect
import logging
import typing
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable

from fastapi import Request

from serverpages.entities import EntityBackend

logger = logging.getLogger(__name__)


class ParamRole(str, Enum):
    ENTITY = "entity"     # bound from a route path parameter
    PAYLOAD = "payload"   # the incoming request
    VALUE = "value"       # passed through as-is


@dataclass(frozen=True)
class Param:
    name: str
    annotation: Any = None
    role: ParamRole | None = None  # None -> derived from annotation


@dataclass(frozen=True)
class Signature:
    params: tuple[Param, ...] = ()

    @classmethod
    def of(cls, fn: Callable[..., Any]) -> Signature:
        """Read parameter names and resolved annotations from a callable."""
        try:
            sig = inspect.signature(fn)
        except (TypeError, ValueError):
            return cls()
        try:
            hints = typing.get_type_hints(fn)
        except Exception as e:
            # unresolvable forward references: fall back to raw annotations
            logger.debug("Cannot resolve annotations of %r: %s", fn, e)
            hints = {}

        params: list[Param] = []
        for p in sig.parameters.values():
            if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
                continue
            annotation = hints.get(p.name, p.annotation)
            if annotation is inspect.Parameter.empty:
                annotation = None
            params.append(Param(name=p.name, annotation=annotation))
        return cls(tuple(params))

    @classmethod
    def explicit(cls, params: Iterable[Param]) -> Signature:
        return cls(tuple(params))


def is_payload_type(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, Request)


def role_of(param: Param, backend: EntityBackend) -> ParamRole:
    if param.role is not None:
        return param.role
    if backend.is_entity_type(param.annotation):
        return ParamRole.ENTITY
    if is_payload_type(param.annotation):
        return ParamRole.PAYLOAD
    return ParamRole.VALUE


@dataclass(frozen=True)
class ClassifiedParam:
    name: str
    role: ParamRole
    annotation: Any = None


def classify(signature: Signature, backend: EntityBackend) -> list[ClassifiedParam]:
    return [ClassifiedParam(p.name, role_of(p, backend), p.annotation) for p in signature.params]


def entity_params(signature: Signature, backend: EntityBackend) -> list[ClassifiedParam]:
    return [p for p in classify(signature, backend) if p.role is ParamRole.ENTITY]


def has_entity_param(signature: Signature, backend: EntityBackend) -> bool:
    return bool(entity_params(signature, backend))
