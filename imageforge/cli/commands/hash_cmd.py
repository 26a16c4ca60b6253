"""``imageforge hash PATH``: content hash of a file or directory tree."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from imageforge.core.hasher import hash_tree

console = Console()


def hash_cmd(
    path: Path = typer.Argument(..., help="File or directory to hash.", exists=True),
    length: int = typer.Option(
        None,
        "--length",
        "-n",
        min=1,
        help="Truncate the hex digest to this many characters.",
    ),
) -> None:
    """Print the content hash used for FILE versioning."""
    console.print(hash_tree(path, length))
