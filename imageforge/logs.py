"""Logging setup for command-line use.

Library modules only create ``logging.getLogger(__name__)`` loggers; the
CLI installs a Rich handler once at startup.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "INFO", *, console: Console | None = None) -> None:
    """Route ``imageforge`` log records through a Rich handler on stderr."""
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger("imageforge")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
