from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from serverpages.errors import PagesDirectoryNotFound
from serverpages.repo.ignore import matches_ignore, should_ignore_dir

logger = logging.getLogger(__name__)

_PARAM_SEGMENT = re.compile(r"^\[(.+)\]$")


@dataclass(frozen=True)
class PageBase:
    """A page path relative to the pages directory, e.g. users/[user]/edit."""

    segments: tuple[str, ...]
    definition_file: Path | None = None
    component_file: Path | None = None

    @property
    def path(self) -> str:
        return "/".join(self.segments)

    @property
    def is_index(self) -> bool:
        return bool(self.segments) and self.segments[-1] == "index"

    @property
    def has_definition(self) -> bool:
        return self.definition_file is not None

    @staticmethod
    def param_name(segment: str) -> str | None:
        m = _PARAM_SEGMENT.match(segment)
        return m.group(1) if m else None


def _walk(pages_dir: Path):
    # Separate helper to make unit testing easier (can be mocked)
    return os.walk(pages_dir)


def scan_page_files(pages_dir: Path) -> list[str]:
    """Relative POSIX paths of every file under pages_dir, sorted."""
    out: list[str] = []
    for root, dirs, files in _walk(pages_dir):
        root_p = Path(root)
        dirs[:] = [d for d in dirs if not should_ignore_dir(root_p / d)]
        for f in files:
            out.append((root_p / f).relative_to(pages_dir).as_posix())
    out.sort()
    return out


def _strip_suffix(rel: str, suffixes: Iterable[str]) -> str | None:
    for suffix in suffixes:
        if rel.endswith(suffix) and len(rel) > len(suffix):
            return rel[: -len(suffix)]
    return None


def _route_order(path: str) -> tuple[tuple[bool, str], ...]:
    # static segments before [param] ones, so users/create is routed ahead of users/[user]
    return tuple((PageBase.param_name(seg) is not None, seg) for seg in path.split("/"))


def discover_bases(
    pages_dir: Path,
    definition_suffix: str = ".page.py",
    component_suffixes: Iterable[str] = (".tsx", ".jsx", ".vue", ".svelte"),
    ignore: Iterable[str] = (),
) -> list[PageBase]:
    """
    Pair definition files with view components by their shared base.

    A base exists if either file exists. Bases matching an ignore pattern are
    dropped entirely. Result is sorted by base path, static segments before
    parameter segments, so every run sees the same order.
    """
    pages_dir = pages_dir.resolve()
    if not pages_dir.is_dir():
        raise PagesDirectoryNotFound(pages_dir)

    # longest first so ".page.tsx"-style suffixes win over ".tsx"
    component_suffixes = sorted(component_suffixes, key=len, reverse=True)
    ignore = list(ignore)

    definitions: dict[str, Path] = {}
    components: dict[str, Path] = {}
    for rel in scan_page_files(pages_dir):
        base = _strip_suffix(rel, [definition_suffix])
        if base is not None:
            definitions[base] = pages_dir / rel
            continue
        base = _strip_suffix(rel, component_suffixes)
        if base is not None:
            components.setdefault(base, pages_dir / rel)

    bases: list[PageBase] = []
    for path in sorted(set(definitions) | set(components), key=_route_order):
        if matches_ignore(path, ignore):
            logger.debug("Ignoring page %s", path)
            continue
        bases.append(
            PageBase(
                segments=tuple(path.split("/")),
                definition_file=definitions.get(path),
                component_file=components.get(path),
            )
        )
    return bases
