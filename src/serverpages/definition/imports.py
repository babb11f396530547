from __future__ import annotations

import ast
from types import ModuleType
from typing import Any

from serverpages.entities import EntityBackend


def imported_names(source: str) -> list[str]:
    """
    Names bound at module level by `from x import Name [as Alias]`.

    Plain `import pkg` binds modules, which never name entities, so those are
    skipped. Star imports are ignored.
    """
    try:
        tree = ast.parse(source)
    except SyntaxError:
        return []

    out: list[str] = []
    for node in tree.body:
        if isinstance(node, ast.ImportFrom):
            for alias in node.names:
                if alias.name == "*":
                    continue
                out.append(alias.asname or alias.name)
    return out


def imported_entities(source: str, module: ModuleType, backend: EntityBackend) -> dict[str, type]:
    """
    Map each imported name that refers to an entity class to that class,
    e.g. {"Todo": app.models.Todo}.

    Used as the best-effort signal for typing empty entity collections.
    """
    namespace: dict[str, Any] = vars(module)
    out: dict[str, type] = {}
    for name in imported_names(source):
        obj = namespace.get(name)
        if backend.is_entity_type(obj):
            out[name] = obj
    return out
