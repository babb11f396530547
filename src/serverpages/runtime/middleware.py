from __future__ import annotations

from typing import Any, Callable

from fastapi import Depends

_groups: dict[str, list[Callable[..., Any]]] = {"web": []}


def register_middleware(name: str, *dependencies: Callable[..., Any]) -> None:
    """
    Bind a middleware name used by page definitions (e.g. "auth") to FastAPI
    dependencies. Must run before the generated route table is imported.
    """
    _groups[name] = list(dependencies)


def reset_middleware() -> None:
    _groups.clear()
    _groups["web"] = []


def middleware(*names: str) -> list[Any]:
    out: list[Any] = []
    for name in names:
        if name not in _groups:
            raise LookupError(f"Unknown middleware {name!r}; register it with register_middleware()")
        out.extend(Depends(dep) for dep in _groups[name])
    return out
