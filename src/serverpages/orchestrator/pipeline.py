from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from serverpages.codegen.handlers import HandlerStub, read_page_marker, render_handler_module
from serverpages.codegen.routes import module_names, render_routes_module, synthesize_page_routes
from serverpages.config import GeneratorConfig, load_config
from serverpages.definition.loader import LoadedDefinition, load_definition
from serverpages.domain.models import PageRoutes, RouteEntry
from serverpages.entities import EntityBackend, load_backend, resolve_entities
from serverpages.errors import OutputError
from serverpages.repo.scanner import PageBase, discover_bases
from serverpages.typegen.emit import render_page_types_module
from serverpages.typegen.infer import PageTypes, infer_page
from serverpages.typegen.models import render_models_module

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Project:
    root: Path
    config: GeneratorConfig
    backend: EntityBackend
    bases: list[PageBase]
    # base path -> evaluated definition; pages with only a component are absent
    definitions: dict[str, LoadedDefinition]
    # entity classes named by `models` in the config
    models: list[type] = field(default_factory=list)

    def definition_for(self, base: PageBase) -> LoadedDefinition | None:
        return self.definitions.get(base.path)


@dataclass
class GenerateResult:
    pages: list[str] = field(default_factory=list)
    routes: list[RouteEntry] = field(default_factory=list)
    written: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    removed_stubs: list[str] = field(default_factory=list)
    typed_pages: list[str] = field(default_factory=list)
    skipped_pages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _ensure_importable(root: Path) -> None:
    # definition files import the application's own modules (app.models, ...)
    entry = str(root)
    if entry not in sys.path:
        sys.path.insert(0, entry)


def load_project(project_root: Path, config: GeneratorConfig | None = None) -> Project:
    """
    Discover pages and evaluate every definition file.

    Any DefinitionError propagates from here, before a single file is written.
    """
    root = project_root.resolve()
    config = config or load_config(root)
    _ensure_importable(root)
    backend = load_backend(config.entity_backend)

    bases = discover_bases(
        config.pages_path(root),
        definition_suffix=config.definition_suffix,
        component_suffixes=config.component_suffixes,
        ignore=config.ignore,
    )
    definitions: dict[str, LoadedDefinition] = {}
    for base in bases:
        if base.definition_file is not None:
            definitions[base.path] = load_definition(base.definition_file, config.definition_attr, backend)

    models = resolve_entities(backend, config.models)

    logger.debug("Discovered %d pages (%d with definitions)", len(bases), len(definitions))
    return Project(root=root, config=config, backend=backend, bases=bases, definitions=definitions, models=models)


def _page_of(project: Project, base: PageBase):
    loaded = project.definition_for(base)
    return loaded.page if loaded else None


def plan_routes(project: Project) -> list[PageRoutes]:
    modules = module_names(project.bases)
    return [
        synthesize_page_routes(
            base,
            _page_of(project, base),
            project.backend,
            module=modules[base.path],
            web_middleware=project.config.web_middleware,
        )
        for base in project.bases
    ]


def plan_handlers(project: Project, routes: list[PageRoutes]) -> list[HandlerStub]:
    handlers_dir = project.root / project.config.handlers_dir
    return [
        render_handler_module(base, _page_of(project, base), page_routes, project.backend, handlers_dir / f"{page_routes.module}.py")
        for base, page_routes in zip(project.bases, routes)
    ]


def plan_page_types(project: Project) -> list[PageTypes]:
    return [
        infer_page(base, project.definition_for(base), project.backend, project.config.models_import)
        for base in project.bases
    ]


def collect_entities(project: Project, page_types: list[PageTypes]) -> list[type]:
    entities: dict[str, type] = {}
    for p in page_types:
        if p.emitted:
            entities.update(p.entities)
    for entity_type in project.models:
        entities.setdefault(entity_type.__name__, entity_type)
    return [entities[name] for name in sorted(entities)]


def write_if_changed(path: Path, text: str) -> bool:
    """Returns True when the file was (re)written."""
    try:
        if path.is_file() and path.read_text(encoding="utf-8") == text:
            return False
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise OutputError(path, e.strerror or str(e)) from e
    return True


def _record_write(project: Project, result: GenerateResult, path: Path, text: str) -> None:
    rel = path.relative_to(project.root).as_posix() if path.is_relative_to(project.root) else str(path)
    if write_if_changed(path, text):
        logger.info("Wrote %s", rel)
        result.written.append(rel)
    else:
        logger.debug("Unchanged %s", rel)
        result.unchanged.append(rel)


def remove_stale_stubs(handlers_dir: Path, emitted: set[str], keep: Iterable[Path] = ()) -> list[str]:
    """Delete handler modules whose `# page:` marker names no emitted page. Paths in `keep` are left alone."""
    kept = {p.resolve() for p in keep}
    removed: list[str] = []
    if not handlers_dir.is_dir():
        return removed
    for path in sorted(handlers_dir.glob("*.py")):
        if path.resolve() in kept:
            continue
        try:
            marker = read_page_marker(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise OutputError(path, e.strerror or str(e)) from e
        if marker in emitted:
            continue
        try:
            path.unlink()
        except OSError as e:
            raise OutputError(path, e.strerror or str(e)) from e
        logger.info("Removed stale handler %s (page %s)", path.name, marker or "unknown")
        removed.append(path.name)
    return removed


def _write_types(project: Project, result: GenerateResult, page_types: list[PageTypes]) -> None:
    config = project.config
    for p in page_types:
        result.warnings.extend(f"{p.page}: {w}" for w in p.warnings)
        if p.emitted:
            result.typed_pages.append(p.page)
        elif p.warnings:
            result.skipped_pages.append(p.page)

    text = render_page_types_module(page_types, config.shared_data_import)
    if text is None:
        logger.info("No page produced prop types; %s not written", config.page_types_output)
    else:
        _record_write(project, result, project.root / config.page_types_output, text)

    _write_models(project, result, collect_entities(project, page_types))


def _write_models(project: Project, result: GenerateResult, entities: list[type]) -> None:
    text = render_models_module(entities, project.backend)
    if text is None:
        logger.debug("No entities referenced; %s not written", project.config.model_types_output)
        return
    _record_write(project, result, project.root / project.config.model_types_output, text)


def run_generate(
    project_root: Path,
    config: GeneratorConfig | None = None,
    *,
    routes: bool = True,
    types: bool = True,
) -> GenerateResult:
    """
    One batch: discover, load every definition, synthesize in memory, then write.

    Only files whose content changed are touched, so re-running on unchanged
    input leaves every artifact byte-identical.
    """
    project = load_project(project_root, config)
    result = GenerateResult(pages=[b.path for b in project.bases])

    page_routes = plan_routes(project)
    result.routes = [entry for p in page_routes for entry in p.entries]
    stubs = plan_handlers(project, page_routes) if routes else []
    page_types = plan_page_types(project) if types else []

    if routes:
        handlers_dir = project.root / project.config.handlers_dir
        for stub in stubs:
            _record_write(project, result, handlers_dir / f"{stub.module}.py", stub.source)
        routes_path = project.root / project.config.routes_file
        _record_write(project, result, routes_path, render_routes_module(page_routes, project.config.handlers_module()))
        result.removed_stubs = remove_stale_stubs(handlers_dir, {s.page for s in stubs}, keep=[routes_path])

    if types:
        _write_types(project, result, page_types)

    return result


def run_model_types(project_root: Path, config: GeneratorConfig | None = None) -> GenerateResult:
    """models.d.ts alone: entities referenced by page props plus the configured `models`."""
    project = load_project(project_root, config)
    result = GenerateResult(pages=[b.path for b in project.bases])
    page_types = plan_page_types(project)
    result.warnings.extend(f"{p.page}: {w}" for p in page_types for w in p.warnings)
    _write_models(project, result, collect_entities(project, page_types))
    return result
