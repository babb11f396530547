from __future__ import annotations

import hashlib
import keyword
import re
from typing import Iterable

from serverpages.codegen.banner import py_str, python_banner
from serverpages.definition.page import ServerPage
from serverpages.definition.signature import ParamRole, Signature, classify, entity_params
from serverpages.domain.models import PageRoutes, RouteEntry
from serverpages.entities import EntityBackend
from serverpages.repo.scanner import PageBase

# Route names are consumed by client-side route helpers, so they must not
# collide with JavaScript reserved words.
JS_RESERVED = frozenset(
    {
        "break", "case", "class", "const", "continue", "debugger", "default",
        "delete", "do", "else", "export", "extends", "finally", "for",
        "function", "if", "import", "in", "instanceof", "let", "new",
        "return", "super", "switch", "this", "throw", "try", "typeof",
        "var", "void", "while", "with",
    }
)

_SAFE = re.compile(r"[^a-zA-Z0-9_]+")


def _sha1_short(text: str, n: int = 6) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:n]


def parse_segments(base: PageBase) -> tuple[list[str], list[str]]:
    """
    Returns (uri_segments, clean_parts).

    `[user]` -> ("{user}", "user"); plain segments pass through to both.
    """
    uri_segs: list[str] = []
    clean: list[str] = []
    for seg in base.segments:
        param = PageBase.param_name(seg)
        if param is not None:
            uri_segs.append("{" + param + "}")
            clean.append(param)
        else:
            uri_segs.append(seg)
            clean.append(seg)
    return uri_segs, clean


def page_uri(base: PageBase) -> str:
    uri_segs, _ = parse_segments(base)
    if base.is_index:
        # todos/index -> /todos ; the name keeps "index"
        uri_segs = uri_segs[:-1]
    return "/" + "/".join(uri_segs)


def route_name(base: PageBase) -> str:
    _, clean = parse_segments(base)
    return ".".join(f"{p}_" if p in JS_RESERVED else p for p in clean)


def module_name(base: PageBase) -> str:
    """Python module name of a page's handler stub, e.g. users/[user]/edit -> users_user_edit."""
    _, clean = parse_segments(base)
    name = _SAFE.sub("_", "_".join(clean)).strip("_").lower() or "home"
    if name[0].isdigit():
        name = f"page_{name}"
    if keyword.iskeyword(name):
        name = f"{name}_"
    return name


def module_names(bases: Iterable[PageBase]) -> dict[str, str]:
    """base path -> module name, collision-safe and deterministic."""
    used: dict[str, str] = {}
    out: dict[str, str] = {}
    for base in bases:
        name = module_name(base)
        if name in used and used[name] != base.path:
            name = f"{name}__{_sha1_short(base.path)}"
        used[name] = base.path
        out[base.path] = name
    return out


def detect_action_method(signature: Signature, backend: EntityBackend) -> str:
    """Entity + payload -> PUT, entity only -> DELETE, anything else -> POST."""
    roles = {p.role for p in classify(signature, backend)}
    has_entity = ParamRole.ENTITY in roles
    has_payload = ParamRole.PAYLOAD in roles
    if has_entity and has_payload:
        return "PUT"
    if has_entity:
        return "DELETE"
    return "POST"


def _join_uri(base_uri: str, *parts: str) -> str:
    return base_uri.rstrip("/") + "/" + "/".join(parts)


def action_uri(base_uri: str, action: str, signature: Signature, backend: EntityBackend) -> str:
    bound = entity_params(signature, backend)
    if bound:
        placeholder = "{" + bound[0].name + "}"
        # already bound by the page URI (users/{user}/edit); a path parameter may appear once
        if placeholder not in base_uri:
            return _join_uri(base_uri, action, placeholder)
    return _join_uri(base_uri, action)


def page_middleware(page: ServerPage | None, web: str = "web") -> list[str]:
    out = [web]
    for m in page.get_middleware() if page else []:
        if m not in out:
            out.append(m)
    return out


def synthesize_page_routes(
    base: PageBase,
    page: ServerPage | None,
    backend: EntityBackend,
    module: str | None = None,
    web_middleware: str = "web",
) -> PageRoutes:
    uri = page_uri(base)
    name = route_name(base)
    module = module or module_name(base)
    middleware = page_middleware(page, web_middleware)

    index = RouteEntry(
        method="GET",
        uri=uri,
        name=name,
        handler_module=module,
        handler_function="index",
        page=base.path,
        middleware=middleware,
    )

    actions: list[RouteEntry] = []
    for action in (page.get_raw_actions() if page else {}).values():
        method = action.method.upper() if action.method else detect_action_method(action.signature, backend)
        actions.append(
            RouteEntry(
                method=method,
                uri=action_uri(uri, action.name, action.signature, backend),
                name=f"{name}.{action.name}",
                handler_module=module,
                handler_function=action.name,
                page=base.path,
                middleware=middleware,
            )
        )

    return PageRoutes(page=base.path, uri=uri, route_name=name, module=module, index=index, actions=actions)


def _route_statement(entry: RouteEntry, alias: str) -> str:
    deps = ", ".join(py_str(m) for m in entry.middleware)
    return (
        f"router.add_api_route({py_str(entry.uri)}, {alias}.{entry.handler_function}, "
        f"methods=[{py_str(entry.method)}], name={py_str(entry.name)}, "
        f"dependencies=middleware({deps}))"
    )


def render_routes_module(pages: Iterable[PageRoutes], handlers_module: str) -> str:
    """The route table: one add_api_route per index/action, in discovery order."""
    pages = list(pages)
    out = [python_banner(), "from fastapi import APIRouter", "", "from serverpages.runtime.middleware import middleware", ""]

    for p in pages:
        prefix = f"{handlers_module}." if handlers_module else ""
        out.append(f"import {prefix}{p.module} as {p.module}_page")
    if pages:
        out.append("")

    out.append("router = APIRouter()")
    out.append("")

    for p in pages:
        out.append("")
        for entry in p.entries:
            out.append(_route_statement(entry, f"{p.module}_page"))

    return "\n".join(out).rstrip("\n") + "\n"
