"""
Client page protocol used by generated index handlers.

A loader's `Prop` values become one of five wrappers. `render` decides per
request which props are evaluated and sent:

- full visit: everything except `OptionalProp` and `DeferProp`; deferred keys
  are announced under `deferredProps[group]` so the client fetches them after
  the first paint
- partial reload (`X-Inertia-Partial-Component` equals the component): only
  the keys named in `X-Inertia-Partial-Data`, minus `X-Inertia-Partial-Except`,
  plus every `AlwaysProp`

Keys of `MergeProp` / `DeepMergeProp` are listed so the client merges them into
what it already holds instead of replacing it (unless named in `X-Inertia-Reset`).
"""

from __future__ import annotations

import html
import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping, assert_never

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse, Response

from serverpages.definition.props import Prop, PropKind

DEFAULT_GROUP = "default"

_asset_version: str | None = None


@dataclass(frozen=True)
class DeferProp:
    callback: Callable[[], Any]
    group: str = DEFAULT_GROUP


@dataclass(frozen=True)
class OptionalProp:
    callback: Callable[[], Any]


@dataclass(frozen=True)
class MergeProp:
    callback: Callable[[], Any]


@dataclass(frozen=True)
class DeepMergeProp:
    callback: Callable[[], Any]


@dataclass(frozen=True)
class AlwaysProp:
    callback: Callable[[], Any]


ClientProp = DeferProp | OptionalProp | MergeProp | DeepMergeProp | AlwaysProp


def set_asset_version(version: str | None) -> None:
    global _asset_version
    _asset_version = version


def wrap_prop(prop: Prop) -> ClientProp:
    kind = prop.kind
    if kind is PropKind.DEFER:
        return DeferProp(prop.callback, prop.group_name or DEFAULT_GROUP)
    elif kind is PropKind.OPTIONAL:
        return OptionalProp(prop.callback)
    elif kind is PropKind.MERGE:
        return MergeProp(prop.callback)
    elif kind is PropKind.DEEP_MERGE:
        return DeepMergeProp(prop.callback)
    elif kind is PropKind.ALWAYS:
        return AlwaysProp(prop.callback)
    else:
        assert_never(kind)


def resolve_props(raw: Mapping[str, Any] | None) -> dict[str, Any]:
    """Plain values pass through; Prop values become their client wrapper (never called here)."""
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise TypeError(f"loader must return a mapping, got {type(raw).__name__}")
    return {key: wrap_prop(value) if isinstance(value, Prop) else value for key, value in raw.items()}


def _header_list(request: Request, name: str) -> list[str]:
    value = request.headers.get(name, "")
    return [part.strip() for part in value.split(",") if part.strip()]


def _evaluate(value: Any) -> Any:
    if isinstance(value, (DeferProp, OptionalProp, MergeProp, DeepMergeProp, AlwaysProp)):
        return value.callback()
    return value


def build_page(request: Request, component: str, props: Mapping[str, Any]) -> dict[str, Any]:
    partial = request.headers.get("X-Inertia-Partial-Component") == component
    only = _header_list(request, "X-Inertia-Partial-Data") if partial else []
    excluded = _header_list(request, "X-Inertia-Partial-Except") if partial else []
    reset = set(_header_list(request, "X-Inertia-Reset"))

    page_props: dict[str, Any] = {}
    deferred: dict[str, list[str]] = {}
    merge_keys: list[str] = []
    deep_merge_keys: list[str] = []

    for key, value in props.items():
        if partial:
            if not isinstance(value, AlwaysProp):
                if only and key not in only:
                    continue
                if key in excluded:
                    continue
        else:
            if isinstance(value, DeferProp):
                deferred.setdefault(value.group, []).append(key)
                continue
            if isinstance(value, OptionalProp):
                continue

        if isinstance(value, MergeProp) and key not in reset:
            merge_keys.append(key)
        if isinstance(value, DeepMergeProp) and key not in reset:
            deep_merge_keys.append(key)
        page_props[key] = _evaluate(value)

    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"

    page: dict[str, Any] = {
        "component": component,
        "props": jsonable_encoder(page_props),
        "url": url,
        "version": _asset_version,
    }
    if deferred:
        page["deferredProps"] = deferred
    if merge_keys:
        page["mergeProps"] = merge_keys
    if deep_merge_keys:
        page["deepMergeProps"] = deep_merge_keys
    return page


def root_html(page: dict[str, Any]) -> str:
    data = html.escape(json.dumps(page), quote=True)
    return (
        "<!DOCTYPE html>\n"
        "<html>\n<head>\n<meta charset=\"utf-8\">\n</head>\n<body>\n"
        f"<div id=\"app\" data-page=\"{data}\"></div>\n"
        "</body>\n</html>\n"
    )


def render(request: Request, component: str, props: Mapping[str, Any]) -> Response:
    if request.headers.get("X-Inertia"):
        client_version = request.headers.get("X-Inertia-Version")
        if request.method == "GET" and _asset_version and client_version != _asset_version:
            # stale assets: ask the client to do a full visit
            return Response(status_code=409, headers={"X-Inertia-Location": str(request.url)})
        page = build_page(request, component, props)
        return JSONResponse(page, headers={"X-Inertia": "true", "Vary": "X-Inertia"})

    page = build_page(request, component, props)
    return HTMLResponse(root_html(page), headers={"Vary": "X-Inertia"})
