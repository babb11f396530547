from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from serverpages.errors import ConfigError


class GeneratorConfig(BaseModel):
    """
    Project settings, read from [tool.serverpages] in the project's pyproject.toml.

    Every path is relative to the project root.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    pages_dir: str = "resources/js/pages"
    definition_suffix: str = ".page.py"
    component_suffixes: tuple[str, ...] = (".tsx", ".jsx", ".vue", ".svelte")
    definition_attr: str = "page"

    # Globs matched against the page base (e.g. "auth/*", "welcome"). '*' spans '/'.
    ignore: list[str] = Field(default_factory=list)

    routes_file: str = "app/routes/pages.py"
    handlers_dir: str = "app/http/pages"
    page_types_output: str = "resources/js/types/page-props.d.ts"
    model_types_output: str = "resources/js/types/models.d.ts"

    shared_data_import: str = "./index"
    models_import: str = "./models"

    # Dotted entity classes to always include in models.d.ts
    models: list[str] = Field(default_factory=list)

    web_middleware: str = "web"

    # Dotted path to a zero-argument factory returning an EntityBackend
    entity_backend: str | None = None

    def pages_path(self, root: Path) -> Path:
        return root / self.pages_dir

    def handlers_module(self) -> str:
        # app/http/pages -> app.http.pages
        parts = [p for p in Path(self.handlers_dir).as_posix().split("/") if p and p != "."]
        return ".".join(parts)


def load_config(project_root: Path, **overrides: Any) -> GeneratorConfig:
    """
    Read [tool.serverpages] from project_root/pyproject.toml (if any) and
    apply non-None overrides on top.
    """
    data: dict[str, Any] = {}
    pyproject = project_root / "pyproject.toml"
    if pyproject.is_file():
        try:
            doc = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"{pyproject}: {e}") from e
        data.update(doc.get("tool", {}).get("serverpages", {}))

    for key, value in overrides.items():
        if value is not None:
            data[key] = value

    try:
        return GeneratorConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid serverpages configuration:\n{e}") from e
