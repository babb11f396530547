from __future__ import annotations

import importlib
from typing import Any, Iterable, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from serverpages.errors import ConfigError


@runtime_checkable
class EntityBackend(Protocol):
    """
    The only view serverpages has of the persistence layer.

    Type generation needs to recognise entity types and values, flatten an
    entity to its attribute map and a collection to its members. Generated
    handlers need `find` for route-model binding.
    """

    def is_entity_type(self, tp: Any) -> bool: ...

    def is_entity(self, value: Any) -> bool: ...

    def attributes(self, entity: Any) -> dict[str, Any]: ...

    def is_collection(self, value: Any) -> bool: ...

    def members(self, collection: Any) -> list[Any]: ...

    def find(self, entity_type: type, key: str) -> Any | None: ...


class Entity(BaseModel):
    """Base class for domain entities understood by the default backend."""

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def find(cls, key: str) -> Entity | None:
        raise NotImplementedError(f"{cls.__name__}.find() is not implemented; route-model binding needs it")


class EntityCollection(list):
    """A list of entities, as returned by a query. May be empty."""

    def first(self) -> Any | None:
        return self[0] if self else None


class ModelBackend:
    """Default backend: entities are subclasses of `base` (pydantic models)."""

    def __init__(self, base: type = Entity):
        self.base = base

    def is_entity_type(self, tp: Any) -> bool:
        return isinstance(tp, type) and issubclass(tp, self.base)

    def is_entity(self, value: Any) -> bool:
        return isinstance(value, self.base)

    def attributes(self, entity: Any) -> dict[str, Any]:
        return entity.model_dump(mode="json", by_alias=True)

    def is_collection(self, value: Any) -> bool:
        return isinstance(value, EntityCollection)

    def members(self, collection: Any) -> list[Any]:
        return list(collection)

    def find(self, entity_type: type, key: str) -> Any | None:
        return entity_type.find(key)


def entity_name(tp: type) -> str:
    return tp.__name__


def first_entity(backend: EntityBackend, collection: Any) -> Any | None:
    for member in backend.members(collection):
        return member if backend.is_entity(member) else None
    return None


def import_object(dotted: str) -> Any:
    """Import `pkg.mod.Name` (or `pkg.mod:Name`) and return the attribute."""
    if ":" in dotted:
        module_name, _, attr = dotted.partition(":")
    else:
        module_name, _, attr = dotted.rpartition(".")
    if not module_name or not attr:
        raise ImportError(f"Not a dotted path: {dotted!r}")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise ImportError(f"{module_name} has no attribute {attr!r}") from e


def load_backend(dotted: str | None) -> EntityBackend:
    if not dotted:
        return ModelBackend()
    try:
        factory = import_object(dotted)
    except ImportError as e:
        raise ConfigError(f"Cannot import entity backend {dotted!r}: {e}") from e
    backend = factory()
    if not isinstance(backend, EntityBackend):
        raise ConfigError(f"{dotted!r} did not produce an EntityBackend")
    return backend


def resolve_entities(backend: EntityBackend, dotted_names: Iterable[str]) -> list[type]:
    out: list[type] = []
    for dotted in dotted_names:
        try:
            obj = import_object(dotted)
        except ImportError as e:
            raise ConfigError(f"Cannot import model {dotted!r}: {e}") from e
        if not backend.is_entity_type(obj):
            raise ConfigError(f"{dotted!r} is not an entity class")
        out.append(obj)
    return out
