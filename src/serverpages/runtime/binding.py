from __future__ import annotations

import inspect
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable

from fastapi import HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse, Response

from serverpages.definition.loader import evaluate_definition
from serverpages.definition.page import ServerPage
from serverpages.entities import EntityBackend, ModelBackend

logger = logging.getLogger(__name__)

_backend: EntityBackend = ModelBackend()


def use_backend(backend: EntityBackend) -> None:
    """Set the backend generated handlers use for route-model binding."""
    global _backend
    _backend = backend


def get_backend() -> EntityBackend:
    return _backend


def bound_entity(entity_type: type, param: str) -> Callable[[Request], Any]:
    """FastAPI dependency resolving path parameter `param` to an `entity_type` instance (404 if absent)."""

    def dependency(request: Request) -> Any:
        key = request.path_params.get(param)
        if key is None:
            raise HTTPException(status_code=404)
        entity = get_backend().find(entity_type, str(key))
        if entity is None:
            raise HTTPException(status_code=404, detail=f"{entity_type.__name__} not found")
        return entity

    dependency.__name__ = f"bind_{param}"
    return dependency


@lru_cache(maxsize=None)
def _load(path: str) -> ServerPage:
    logger.debug("Loading page definition %s", path)
    _, page = evaluate_definition(Path(path))
    return page


def load_page(path: Path | str) -> ServerPage:
    """The ServerPage of a definition file, evaluated once per process."""
    return _load(str(Path(path).resolve()))


def clear_page_cache() -> None:
    _load.cache_clear()


async def invoke(callback: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call a loader or action; plain functions run in the threadpool so they may block."""
    if inspect.iscoroutinefunction(callback):
        return await callback(*args, **kwargs)
    result = await run_in_threadpool(callback, *args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def is_renderable(value: Any) -> bool:
    return isinstance(value, Response)


def redirect_back(request: Request) -> RedirectResponse:
    return RedirectResponse(request.headers.get("referer") or "/", status_code=303)
