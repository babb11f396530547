from __future__ import annotations

from pathlib import Path


class ServerPagesError(Exception):
    """Base class for errors that abort a generation run."""


class ConfigError(ServerPagesError):
    pass


class PagesDirectoryNotFound(ServerPagesError):
    def __init__(self, path: Path):
        super().__init__(f"Pages directory not found: {path}")
        self.path = path


class DefinitionError(ServerPagesError):
    """
    A definition file did not evaluate to a ServerPage.

    Fatal for the whole run: emitting routes for some pages and not others
    would leave the route table and handler stubs out of sync.
    """

    def __init__(self, source: Path | str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = str(source)
        self.reason = reason


class OutputError(ServerPagesError):
    def __init__(self, path: Path, reason: str):
        super().__init__(f"Cannot write {path}: {reason}")
        self.path = path
