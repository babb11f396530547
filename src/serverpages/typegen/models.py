from __future__ import annotations

import datetime as dt
import decimal
import logging
import types
import typing
import uuid
from collections import abc, deque
from typing import Any, Iterable, Mapping

from serverpages.codegen.banner import ts_banner
from serverpages.entities import EntityBackend, entity_name
from serverpages.typegen.infer import ts_key

logger = logging.getLogger(__name__)

_STRING_TYPES = (str, dt.date, dt.time, uuid.UUID)
_NUMBER_TYPES = (int, float, decimal.Decimal)
_ARRAY_ORIGINS = (list, set, frozenset, tuple, abc.Sequence, abc.Set)


def entity_fields(entity_type: type) -> list[tuple[str, Any]]:
    """(serialised name, annotation) for every field, in declaration order."""
    model_fields = getattr(entity_type, "model_fields", None)
    if isinstance(model_fields, Mapping):
        return [(info.alias or name, info.annotation) for name, info in model_fields.items()]
    try:
        return list(typing.get_type_hints(entity_type).items())
    except Exception as e:
        logger.warning("Cannot read annotations of %s: %s", entity_type.__qualname__, e)
        return []


def _array(expression: str) -> str:
    return f"({expression})[]" if " | " in expression else f"{expression}[]"


def annotation_to_ts(annotation: Any, backend: EntityBackend, referenced: set[type] | None = None) -> str:
    """
    Map a field annotation to TypeScript. Entities referenced by the
    annotation are added to `referenced` so their interfaces get emitted too.
    """
    if annotation is None or annotation is type(None):
        return "null"
    if annotation is Any:
        return "unknown"

    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)

    if origin is typing.Union or origin is types.UnionType:
        parts = [annotation_to_ts(a, backend, referenced) for a in args if a is not type(None)]
        if type(None) in args:
            parts.append("null")
        return " | ".join(dict.fromkeys(parts))
    if origin in _ARRAY_ORIGINS or annotation in (list, set, frozenset, tuple):
        return _array(annotation_to_ts(args[0], backend, referenced)) if args else "unknown[]"
    if origin in (dict, abc.Mapping) or annotation is dict:
        return "Record<string, unknown>"

    if isinstance(annotation, type):
        if backend.is_entity_type(annotation):
            if referenced is not None:
                referenced.add(annotation)
            return entity_name(annotation)
        if issubclass(annotation, bool):
            return "boolean"
        if issubclass(annotation, _NUMBER_TYPES):
            return "number"
        if issubclass(annotation, _STRING_TYPES):
            return "string"
    return "unknown"


def render_entity_interface(entity_type: type, backend: EntityBackend, referenced: set[type]) -> str:
    lines = [f"export interface {entity_name(entity_type)} {{"]
    for name, annotation in entity_fields(entity_type):
        lines.append(f"  {ts_key(name)}: {annotation_to_ts(annotation, backend, referenced)};")
    lines.append("}")
    return "\n".join(lines) + "\n"


def render_models_module(entities: Iterable[type], backend: EntityBackend) -> str | None:
    """
    models.d.ts: one interface per entity (plus entities they reference),
    sorted by name. None when there is nothing to describe.
    """
    pending = deque(entities)
    rendered: dict[str, str] = {}
    seen: set[type] = set()
    while pending:
        entity_type = pending.popleft()
        if entity_type in seen:
            continue
        seen.add(entity_type)
        name = entity_name(entity_type)
        if name in rendered:
            logger.warning("Two entities named %s; keeping the first for models.d.ts", name)
            continue
        referenced: set[type] = set()
        rendered[name] = render_entity_interface(entity_type, backend, referenced)
        pending.extend(sorted(referenced - seen, key=entity_name))

    if not rendered:
        return None
    body = "\n".join(rendered[name] for name in sorted(rendered))
    return ts_banner() + "\n" + body
