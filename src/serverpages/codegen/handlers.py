from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

from serverpages.codegen.banner import py_str, python_banner
from serverpages.definition.page import ServerPage
from serverpages.definition.signature import ClassifiedParam, ParamRole, Signature, classify, has_entity_param
from serverpages.domain.models import PageRoutes
from serverpages.entities import EntityBackend
from serverpages.errors import DefinitionError
from serverpages.repo.scanner import PageBase

_MARKER_RE = re.compile(r"^# page: (.+)$", re.MULTILINE)

# names the stub itself defines or imports
_STUB_NAMES = frozenset(
    {
        "Path", "Depends", "Request", "PAGE_SOURCE", "index", "render", "resolve_props",
        "bound_entity", "invoke", "is_renderable", "load_page", "redirect_back",
    }
)

# locals of the generated functions
_LOCAL_NAMES = frozenset({"page", "props", "actions", "result"})

_BUILTIN_ANNOTATIONS = {int: "int", str: "str", float: "float", bool: "bool"}


@dataclass(frozen=True)
class HandlerStub:
    page: str
    module: str
    source: str


def read_page_marker(text: str) -> str | None:
    m = _MARKER_RE.search(text)
    return m.group(1).strip() if m else None


class _Imports:
    """Entity imports for one stub, aliased when a name is already taken."""

    def __init__(self, source: Path | str):
        self.source = source
        self.by_class: dict[type, str] = {}
        self.taken: set[str] = set(_STUB_NAMES)

    def name_for(self, cls: type) -> str:
        if cls in self.by_class:
            return self.by_class[cls]
        module = getattr(cls, "__module__", "") or ""
        if not module or module.startswith("_serverpages_def_") or module == "__main__":
            raise DefinitionError(
                self.source,
                f"entity {cls.__qualname__} must be defined in an importable module to be bound in a route",
            )
        name = cls.__name__
        alias = name
        n = 2
        while alias in self.taken:
            alias = f"{name}{n}"
            n += 1
        self.taken.add(alias)
        self.by_class[cls] = alias
        return alias

    def lines(self) -> list[str]:
        out = []
        for cls, alias in self.by_class.items():
            suffix = f" as {alias}" if alias != cls.__name__ else ""
            out.append(f"from {cls.__module__} import {cls.__name__}{suffix}")
        return sorted(out)


def _request_name(params: list[ClassifiedParam]) -> str:
    for p in params:
        if p.role is ParamRole.PAYLOAD:
            return p.name
    names = {p.name for p in params}
    return "request" if "request" not in names else "_request"


def _handler_params(params: list[ClassifiedParam], request_name: str, imports: _Imports) -> tuple[str, list[str]]:
    """Returns (signature text, call arguments)."""
    sig = [f"{request_name}: Request"]
    call: list[str] = []
    for p in params:
        if p.name in _LOCAL_NAMES or p.name in _STUB_NAMES:
            raise DefinitionError(imports.source, f"parameter name {p.name!r} is reserved in generated handlers")
        if p.role is ParamRole.PAYLOAD:
            call.append(request_name)
            continue
        if p.role is ParamRole.ENTITY:
            if not isinstance(p.annotation, type):
                raise DefinitionError(imports.source, f"entity parameter {p.name!r} needs an entity class annotation")
            cls = imports.name_for(p.annotation)
            sig.append(f"{p.name}: {cls} = Depends(bound_entity({cls}, {py_str(p.name)}))")
        else:
            annotation = _BUILTIN_ANNOTATIONS.get(p.annotation)
            sig.append(f"{p.name}: {annotation}" if annotation else p.name)
        call.append(p.name)
    return ", ".join(sig), call


def _index_lines(
    page: ServerPage | None,
    component: str,
    routes: PageRoutes,
    backend: EntityBackend,
    imports: _Imports,
) -> list[str]:
    if page is None:
        return [
            "async def index(request: Request):",
            "    props = {}",
            '    props["actions"] = {}',
            f"    return render(request, {py_str(component)}, props)",
        ]

    # a visit carries only the URL, so value parameters keep the loader's own defaults
    params = [
        p
        for p in (classify(page.get_loader_signature(), backend) if page.get_loader() else [])
        if p.role in (ParamRole.ENTITY, ParamRole.PAYLOAD)
    ]
    req = _request_name(params)
    sig, call = _handler_params(params, req, imports)

    out = [f"async def index({sig}):", "    page = load_page(PAGE_SOURCE)"]
    if page.get_loader() is not None:
        args = "".join(f", {p.name}={a}" for p, a in zip(params, call))
        out.append(f"    props = resolve_props(await invoke(page.get_loader(){args}))")
    else:
        out.append("    props = {}")

    out.append("    actions = {}")
    by_name = {e.handler_function: e for e in routes.actions}
    for action in page.get_raw_actions().values():
        if has_entity_param(action.signature, backend):
            # needs a concrete entity in the URL, so the client builds it itself
            continue
        route = by_name[action.name]
        out.append(f"    actions[{py_str(action.name)}] = str({req}.url_for({py_str(route.name)}, **{req}.path_params))")
    out.append('    props["actions"] = actions')
    out.append(f"    return render({req}, {py_str(page.get_component())}, props)")
    return out


def _action_lines(name: str, signature: Signature, backend: EntityBackend, imports: _Imports) -> list[str]:
    params = classify(signature, backend)
    req = _request_name(params)
    sig, call = _handler_params(params, req, imports)
    args = "".join(f", {a}" for a in call)
    return [
        f"async def {name}({sig}):",
        "    page = load_page(PAGE_SOURCE)",
        f"    result = await invoke(page.get_action_callback({py_str(name)}){args})",
        f"    return result if is_renderable(result) else redirect_back({req})",
    ]


def render_handler_module(
    base: PageBase,
    page: ServerPage | None,
    routes: PageRoutes,
    backend: EntityBackend,
    stub_path: Path,
) -> HandlerStub:
    """
    Source of one page's handler module: `index` plus one function per action.

    Parameter binding is decided here, once, from the recorded signatures;
    the stub never reflects on callbacks at request time.
    """
    source = base.definition_file or base.path
    imports = _Imports(source)
    component = base.path

    if page is not None:
        clashes = sorted(set(page.get_raw_actions()) & _STUB_NAMES)
        if clashes:
            raise DefinitionError(source, f"action names clash with generated handler names: {', '.join(clashes)}")
        imports.taken.update(page.get_raw_actions())

    functions: list[list[str]] = [_index_lines(page, component, routes, backend, imports)]
    if page is not None:
        for action in page.get_raw_actions().values():
            functions.append(_action_lines(action.name, action.signature, backend, imports))

    uses_depends = bool(imports.by_class)
    runtime_binding = ["invoke", "is_renderable", "load_page", "redirect_back"] if page is not None else []
    if uses_depends:
        runtime_binding.insert(0, "bound_entity")
    runtime_inertia = ["render", "resolve_props"] if page is not None and page.get_loader() is not None else ["render"]

    head: list[str] = [python_banner(f"page: {base.path}")]
    if page is not None:
        head.append("from pathlib import Path")
        head.append("")
    head.append("from fastapi import Depends, Request" if uses_depends else "from fastapi import Request")
    head.append("")
    head.extend(imports.lines())
    if runtime_binding:
        head.append(f"from serverpages.runtime.binding import {', '.join(runtime_binding)}")
    head.append(f"from serverpages.runtime.inertia import {', '.join(runtime_inertia)}")

    if page is not None and base.definition_file is not None:
        rel = Path(os.path.relpath(base.definition_file, stub_path.parent)).as_posix()
        head.append("")
        head.append(f"PAGE_SOURCE = Path(__file__).parent / {py_str(rel)}")

    body = "\n\n\n".join("\n".join(fn) for fn in functions)
    text = "\n".join(head) + "\n\n\n" + body + "\n"
    return HandlerStub(page=base.path, module=routes.module, source=text)
