from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable

DEFAULT_IGNORES = {
    ".git",
    "__pycache__",
    "node_modules",
    ".mypy_cache",
    ".ruff_cache",
    ".pytest_cache",
}


def should_ignore_dir(dir_path: Path) -> bool:
    return dir_path.name in DEFAULT_IGNORES


@lru_cache(maxsize=256)
def _pattern_regex(pattern: str) -> re.Pattern[str]:
    # only '*' is special, and it spans '/' so "auth/*" covers nested pages too
    parts = [re.escape(chunk) for chunk in pattern.split("*")]
    return re.compile("^" + ".*".join(parts) + r"\Z")


def matches_ignore(base_path: str, patterns: Iterable[str]) -> bool:
    return any(_pattern_regex(p).match(base_path) for p in patterns if p)
