from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Route library log records through rich. INFO by default, DEBUG with verbose."""
    level = logging.DEBUG if verbose else logging.INFO
    handler = RichHandler(
        console=console,
        show_time=False,
        show_path=verbose,
        markup=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)

    # watchfiles logs every batch of changes at INFO
    logging.getLogger("watchfiles").setLevel(logging.WARNING)
