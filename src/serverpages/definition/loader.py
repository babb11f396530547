from __future__ import annotations

import importlib.util
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path

from serverpages.definition.imports import imported_entities
from serverpages.definition.page import ServerPage
from serverpages.entities import EntityBackend, ModelBackend
from serverpages.errors import DefinitionError

logger = logging.getLogger(__name__)

_SAFE = re.compile(r"[^a-zA-Z0-9_]+")


@dataclass(frozen=True)
class LoadedDefinition:
    path: Path
    page: ServerPage
    # imported name -> entity class, from the definition's own imports
    entity_imports: dict[str, type] = field(default_factory=dict)


def _module_name(path: Path) -> str:
    stem = _SAFE.sub("_", path.with_suffix("").as_posix()).strip("_")
    return f"_serverpages_def_{stem}"


def evaluate_definition(path: Path, attr: str = "page"):
    """
    Execute a definition file and return (module, page).

    Raises DefinitionError if the file cannot be executed or does not bind
    a ServerPage to `attr`.
    """
    path = path.resolve()
    module_name = _module_name(path)
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise DefinitionError(path, "cannot be loaded as a Python module")

    module = importlib.util.module_from_spec(spec)
    # registered so dataclasses / pydantic models declared inside can resolve their module
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(module_name, None)
        raise DefinitionError(path, f"failed to evaluate: {type(e).__name__}: {e}") from e

    page = getattr(module, attr, None)
    if not isinstance(page, ServerPage):
        sys.modules.pop(module_name, None)
        got = "nothing" if page is None else type(page).__name__
        raise DefinitionError(path, f"must bind a ServerPage to `{attr}` (got {got})")

    return module, page.freeze()


def load_definition(path: Path, attr: str = "page", backend: EntityBackend | None = None) -> LoadedDefinition:
    backend = backend or ModelBackend()
    module, page = evaluate_definition(path, attr)
    source = path.read_text(encoding="utf-8")
    entities = imported_entities(source, module, backend)
    logger.debug("Loaded %s (%s), imported entities: %s", path, page.get_component(), sorted(entities))
    return LoadedDefinition(path=path.resolve(), page=page, entity_imports=entities)
