"""
Prop type inference for one page.

The loader is sampled once (called with no arguments) and every field of the
result gets a TypeScript expression:

1. an explicit hint from `ServerPage.types()` always wins;
2. entities become their class name, entity collections `Name[]`;
3. an empty entity collection is matched against the entities the definition
   file imports (`todos` -> `Todo`), else `unknown[]` with a WARN comment;
4. anything else is normalised to plain data and inferred structurally.

Loaders bound to an entity in the URL cannot be sampled, so those pages use
explicit hints only. Every failure here is per page: the page is skipped (or
the field widened to `unknown`) and a warning recorded.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import decimal
import enum
import inspect
import logging
import re
import typing
import uuid
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any, Mapping, assert_never

from fastapi.encoders import jsonable_encoder

from serverpages.definition.loader import LoadedDefinition
from serverpages.definition.props import Prop, PropKind
from serverpages.definition.signature import has_entity_param
from serverpages.entities import EntityBackend, entity_name, first_entity, import_object
from serverpages.repo.scanner import PageBase
from serverpages.typegen.naming import singular_candidates, studly

logger = logging.getLogger(__name__)

EMPTY_COLLECTION_COMMENT = "WARN: Could not infer type for empty collection"

_TS_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_PRIMITIVE_HINTS: dict[Any, str] = {str: "string", int: "number", float: "number", bool: "boolean", type(None): "null"}
_TS_PRIMITIVES = frozenset({"string", "number", "boolean", "null", "unknown"})
# serialised to JSON scalars by the runtime, so inferred from their encoded form
_ENCODED_SCALARS = (dt.date, dt.time, uuid.UUID, decimal.Decimal, enum.Enum, PurePath)


class UnresolvedHint(ValueError):
    pass


@dataclass(frozen=True)
class InferredType:
    key: str
    expression: str
    optional: bool = False
    comment: str | None = None


@dataclass
class PageTypes:
    page: str
    interface_name: str
    fields: list[InferredType] = field(default_factory=list)
    # action name -> omitted from the index response (entity-bound)
    actions: dict[str, bool] = field(default_factory=dict)
    # entity name -> import path
    imports: dict[str, str] = field(default_factory=dict)
    entities: dict[str, type] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    skipped: str | None = None

    @property
    def emitted(self) -> bool:
        return self.skipped is None

    def use_entity(self, entity_type: type, import_path: str) -> str:
        name = entity_name(entity_type)
        self.imports[name] = import_path
        self.entities[name] = entity_type
        return name

    def warn(self, message: str) -> None:
        logger.warning("%s: %s", self.page, message)
        self.warnings.append(message)


def interface_name(base: PageBase) -> str:
    name = studly(base.path) or "Home"
    if name[0].isdigit():
        name = f"Page{name}"
    return f"{name}Props"


def ts_key(key: str) -> str:
    if _TS_IDENTIFIER.match(key):
        return key
    return "'" + key.replace("\\", "\\\\").replace("'", "\\'") + "'"


def absent_from_first_response(kind: PropKind) -> bool:
    """True when the prop is absent from the first response, so the client type must allow undefined."""
    if kind is PropKind.DEFER:
        return True
    elif kind is PropKind.OPTIONAL:
        return True
    elif kind is PropKind.MERGE:
        return False
    elif kind is PropKind.DEEP_MERGE:
        return False
    elif kind is PropKind.ALWAYS:
        return False
    else:
        assert_never(kind)


def normalize(value: Any, backend: EntityBackend) -> Any:
    """Entities -> attribute maps, collections -> lists, recursively."""
    if backend.is_entity(value):
        return normalize(backend.attributes(value), backend)
    if backend.is_collection(value):
        return [normalize(member, backend) for member in backend.members(value)]
    if isinstance(value, Mapping):
        return {str(k): normalize(v, backend) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize(v, backend) for v in value]
    if isinstance(value, _ENCODED_SCALARS) and not isinstance(value, (str, int)):
        return jsonable_encoder(value)
    return value


def infer_ts_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        # first element only; mixed lists are not unioned
        return f"{infer_ts_type(value[0])}[]" if value else "unknown[]"
    if isinstance(value, Mapping):
        if not value:
            return "Record<string, unknown>"
        fields = [f"{ts_key(str(k))}: {infer_ts_type(v)}" for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))]
        return "{ " + "; ".join(fields) + " }"
    return "unknown"


def _hint_entity(name: str, entity_imports: Mapping[str, type], backend: EntityBackend) -> type | None:
    if name in entity_imports:
        return entity_imports[name]
    if "." in name or ":" in name:
        try:
            obj = import_object(name)
        except Exception as e:
            # import failures leave the hint unresolved
            logger.debug("Cannot import type hint %r: %s: %s", name, type(e).__name__, e)
            return None
        return obj if backend.is_entity_type(obj) else None
    return None


def resolve_hint(hint: Any, entity_imports: Mapping[str, type], backend: EntityBackend) -> tuple[str, list[type]]:
    """
    Returns (expression, entities referenced).

    Accepted hints: an entity class, `list[Entity]`, str/int/float/bool, a
    TypeScript primitive name, or a string naming an imported entity
    (`"Todo"`, `"Todo[]"`, `"app.models.Todo"`).
    """
    if isinstance(hint, str):
        text = hint.strip()
        array = text.endswith("[]")
        inner = text[:-2].strip() if array else text
        suffix = "[]" if array else ""
        if inner in _TS_PRIMITIVES:
            return inner + suffix, []
        entity = _hint_entity(inner, entity_imports, backend)
        if entity is None:
            raise UnresolvedHint(hint)
        return entity_name(entity) + suffix, [entity]

    if typing.get_origin(hint) is list:
        args = typing.get_args(hint)
        if len(args) == 1:
            expression, entities = resolve_hint(args[0], entity_imports, backend)
            return f"{expression}[]", entities
        raise UnresolvedHint(hint)

    if isinstance(hint, type):
        if hint in _PRIMITIVE_HINTS:
            return _PRIMITIVE_HINTS[hint], []
        if backend.is_entity_type(hint):
            return entity_name(hint), [hint]
    elif hint is None:
        return "null", []
    raise UnresolvedHint(hint)


def _is_array_hint(hint: Any) -> bool:
    if isinstance(hint, str):
        return hint.strip().endswith("[]")
    return typing.get_origin(hint) is list


def _resolve_hints(
    types: PageTypes,
    hints: Mapping[str, Any],
    loaded: LoadedDefinition,
    backend: EntityBackend,
    models_import: str,
) -> dict[str, str]:
    out: dict[str, str] = {}
    for key, hint in hints.items():
        try:
            expression, entities = resolve_hint(hint, loaded.entity_imports, backend)
        except UnresolvedHint:
            expression = "unknown[]" if _is_array_hint(hint) else "unknown"
            types.warn(f"unresolvable type hint {hint!r} for {key!r}; using {expression}")
            entities = []
        for entity in entities:
            types.use_entity(entity, models_import)
        out[str(key)] = expression
    return out


def _empty_collection_entity(key: str, loaded: LoadedDefinition) -> type | None:
    for candidate in singular_candidates(key):
        entity = loaded.entity_imports.get(studly(candidate))
        if entity is not None:
            return entity
    return None


def _infer_field(
    types: PageTypes,
    key: str,
    value: Any,
    optional: bool,
    loaded: LoadedDefinition,
    backend: EntityBackend,
    models_import: str,
) -> InferredType:
    if backend.is_entity(value):
        return InferredType(key, types.use_entity(type(value), models_import), optional)

    if backend.is_collection(value):
        first = first_entity(backend, value)
        if first is not None:
            return InferredType(key, f"{types.use_entity(type(first), models_import)}[]", optional)
        if not backend.members(value):
            entity = _empty_collection_entity(key, loaded)
            if entity is not None:
                logger.info("%s: typed empty collection %r as %s[] from imports", types.page, key, entity.__name__)
                return InferredType(key, f"{types.use_entity(entity, models_import)}[]", optional)
            types.warn(f"could not infer type for empty collection {key!r}; add a type hint or seed data")
            return InferredType(key, "unknown[]", optional, EMPTY_COLLECTION_COMMENT)

    return InferredType(key, infer_ts_type(normalize(value, backend)), optional)


async def _awaited(awaitable: Any) -> Any:
    return await awaitable


def infer_page(
    base: PageBase,
    loaded: LoadedDefinition | None,
    backend: EntityBackend,
    models_import: str = "./models",
) -> PageTypes:
    """Infer one page's prop types. Never raises for page-level problems; see `PageTypes.skipped`."""
    types = PageTypes(page=base.path, interface_name=interface_name(base))

    if loaded is None:
        types.skipped = "no definition file"
        return types
    page = loaded.page
    loader = page.get_loader()
    if loader is None:
        logger.debug("%s: no loader, no interface", base.path)
        types.skipped = "no loader"
        return types

    types.actions = {name: has_entity_param(a.signature, backend) for name, a in page.get_raw_actions().items()}
    hints = _resolve_hints(types, page.get_types(), loaded, backend, models_import)

    if has_entity_param(page.get_loader_signature(), backend):
        if not hints:
            types.skipped = "route-model bound loader without explicit types"
            types.warn("loader takes an entity parameter and has no .types(); add .types() to generate its interface")
            return types
        logger.info("%s: using explicit types for route-model bound loader", base.path)
        types.fields = [InferredType(key, expression) for key, expression in hints.items()]
        return types

    try:
        sample = loader()
        if inspect.isawaitable(sample):
            sample = asyncio.run(_awaited(sample))
    except Exception as e:
        types.skipped = "loader raised"
        types.warn(f"loader raised {type(e).__name__}: {e}")
        return types
    if not isinstance(sample, Mapping):
        types.skipped = "loader result is not a mapping"
        types.warn(f"loader must return a dict, got {type(sample).__name__}")
        return types

    seen: set[str] = set()
    for raw_key, value in sample.items():
        key = str(raw_key)
        seen.add(key)
        optional = False
        if isinstance(value, Prop):
            optional = absent_from_first_response(value.kind)
            if key in hints:
                types.fields.append(InferredType(key, hints[key], optional))
                continue
            try:
                value = value.resolve()
            except Exception as e:
                types.warn(f"could not resolve prop {key!r} for type inference: {type(e).__name__}: {e}")
                types.fields.append(InferredType(key, "unknown", optional))
                continue

        if key in hints:
            types.fields.append(InferredType(key, hints[key], optional))
        else:
            types.fields.append(_infer_field(types, key, value, optional, loaded, backend, models_import))

    for key, expression in hints.items():
        if key not in seen:
            types.fields.append(InferredType(key, expression))
    return types
