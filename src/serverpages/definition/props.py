from __future__ import annotations

from enum import Enum
from typing import Any, Callable


class PropKind(str, Enum):
    """When the client runtime should fetch a prop relative to the first render."""

    DEFER = "defer"
    OPTIONAL = "optional"
    MERGE = "merge"
    DEEP_MERGE = "deepMerge"
    ALWAYS = "always"


class Prop:
    """
    A loader value whose delivery is deferred, optional or merged.

    The callback runs only when a handler resolves the prop for a response or
    when type generation samples it; constructing a Prop never calls it.
    """

    __slots__ = ("_kind", "_callback", "_group")

    def __init__(self, kind: PropKind, callback: Callable[[], Any], group: str | None = None):
        if not callable(callback):
            raise TypeError("Prop callback must be callable")
        self._kind = PropKind(kind)
        self._callback = callback
        self._group = group

    @classmethod
    def defer(cls, callback: Callable[[], Any], group: str | None = None) -> Prop:
        return cls(PropKind.DEFER, callback, group)

    @classmethod
    def optional(cls, callback: Callable[[], Any]) -> Prop:
        return cls(PropKind.OPTIONAL, callback)

    @classmethod
    def merge(cls, callback: Callable[[], Any]) -> Prop:
        return cls(PropKind.MERGE, callback)

    @classmethod
    def deep_merge(cls, callback: Callable[[], Any]) -> Prop:
        return cls(PropKind.DEEP_MERGE, callback)

    @classmethod
    def always(cls, callback: Callable[[], Any]) -> Prop:
        return cls(PropKind.ALWAYS, callback)

    def group(self, group: str) -> Prop:
        self._group = group
        return self

    @property
    def kind(self) -> PropKind:
        return self._kind

    @property
    def callback(self) -> Callable[[], Any]:
        return self._callback

    @property
    def group_name(self) -> str | None:
        return self._group

    def resolve(self) -> Any:
        return self._callback()

    def __repr__(self) -> str:
        group = f", group={self._group!r}" if self._group else ""
        return f"Prop.{self._kind.value}({self._callback!r}{group})"
