from __future__ import annotations

import keyword
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from serverpages.definition.signature import Param, Signature

HTTP_METHODS = ("get", "post", "put", "patch", "delete")

# the generated handler module defines `index` for the page itself
_RESERVED_ACTION_NAMES = frozenset({"index"})


@dataclass(frozen=True)
class Action:
    name: str
    callback: Callable[..., Any]
    method: str | None
    signature: Signature


def _signature_for(callback: Callable[..., Any], params: Iterable[Param] | None) -> Signature:
    if params is not None:
        return Signature.explicit(params)
    return Signature.of(callback)


class ServerPage:
    """
    One page's behaviour: the component it renders, the loader that feeds it,
    the actions it exposes, the middleware in front of it and optional
    explicit prop types.

    Definition files build one with the fluent methods and bind it to the
    module attribute `page`:

        page = (
            ServerPage.make("Todos/Index")
            .middleware("auth")
            .loader(lambda: {"todos": Todo.all()})
            .post("addTodo", add_todo)
        )

    Loaders are sampled during type generation, so they must be side-effect
    free when called without arguments.
    """

    def __init__(self, component: str):
        if not component:
            raise ValueError("ServerPage component must be a non-empty string")
        self._component = component
        self._loader: Callable[..., Any] | None = None
        self._loader_signature = Signature()
        self._actions: dict[str, Action] = {}
        self._middleware: list[str] = []
        self._types: dict[str, Any] = {}
        self._frozen = False

    @classmethod
    def make(cls, component: str) -> ServerPage:
        return cls(component)

    # ----------------------------
    # Builder
    # ----------------------------

    def middleware(self, middleware: str | Iterable[str]) -> ServerPage:
        self._check_mutable()
        self._middleware = [middleware] if isinstance(middleware, str) else list(middleware)
        return self

    def loader(self, callback: Callable[..., Any], params: Iterable[Param] | None = None) -> ServerPage:
        self._check_mutable()
        if not callable(callback):
            raise TypeError("loader must be callable")
        self._loader = callback
        self._loader_signature = _signature_for(callback, params)
        return self

    def action(
        self,
        name: str,
        callback: Callable[..., Any],
        method: str | None = None,
        params: Iterable[Param] | None = None,
    ) -> ServerPage:
        self._check_mutable()
        if not callable(callback):
            raise TypeError(f"action {name!r} must be callable")
        if not name.isidentifier() or keyword.iskeyword(name) or name in _RESERVED_ACTION_NAMES:
            raise ValueError(f"action name {name!r} must be a Python identifier other than 'index'")
        if name in self._actions:
            raise ValueError(f"action {name!r} is already defined")
        if method is not None:
            method = method.lower()
            if method not in HTTP_METHODS:
                raise ValueError(f"action {name!r}: unsupported HTTP method {method!r}")

        self._actions[name] = Action(
            name=name,
            callback=callback,
            method=method,
            signature=_signature_for(callback, params),
        )
        return self

    def get(self, name: str, callback: Callable[..., Any], params: Iterable[Param] | None = None) -> ServerPage:
        return self.action(name, callback, "get", params)

    def post(self, name: str, callback: Callable[..., Any], params: Iterable[Param] | None = None) -> ServerPage:
        return self.action(name, callback, "post", params)

    def put(self, name: str, callback: Callable[..., Any], params: Iterable[Param] | None = None) -> ServerPage:
        return self.action(name, callback, "put", params)

    def patch(self, name: str, callback: Callable[..., Any], params: Iterable[Param] | None = None) -> ServerPage:
        return self.action(name, callback, "patch", params)

    def delete(self, name: str, callback: Callable[..., Any], params: Iterable[Param] | None = None) -> ServerPage:
        return self.action(name, callback, "delete", params)

    def types(self, types: Mapping[str, Any]) -> ServerPage:
        """Explicit prop types: an entity class, `list[Entity]`, or a dotted / `Name[]` string."""
        self._check_mutable()
        self._types = dict(types)
        return self

    def freeze(self) -> ServerPage:
        self._frozen = True
        return self

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError(f"ServerPage {self._component!r} is frozen")

    # ----------------------------
    # Accessors
    # ----------------------------

    def get_component(self) -> str:
        return self._component

    def get_middleware(self) -> list[str]:
        return list(self._middleware)

    def get_loader(self) -> Callable[..., Any] | None:
        return self._loader

    def get_loader_signature(self) -> Signature:
        return self._loader_signature

    def get_actions(self) -> dict[str, Callable[..., Any]]:
        return {name: a.callback for name, a in self._actions.items()}

    def get_raw_actions(self) -> dict[str, Action]:
        return dict(self._actions)

    def get_action_callback(self, name: str) -> Callable[..., Any] | None:
        action = self._actions.get(name)
        return action.callback if action else None

    def get_action_method(self, name: str) -> str | None:
        action = self._actions.get(name)
        return action.method if action else None

    def get_types(self) -> dict[str, Any]:
        return dict(self._types)

    def __repr__(self) -> str:
        return f"ServerPage({self._component!r}, actions={list(self._actions)})"
