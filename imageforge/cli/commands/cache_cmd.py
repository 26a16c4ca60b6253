"""``imageforge cache``: inspect and prune the archive cache."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import typer
from rich.console import Console
from rich.table import Table

from imageforge.config import ForgeConfig
from imageforge.core.source_archiver import SourceArchiver

console = Console()

cache_app = typer.Typer(help="Inspect and prune cached build-context archives.", no_args_is_help=True)


@cache_app.command(name="list", help="List cached archives.")
def list_cmd() -> None:
    archiver = SourceArchiver(ForgeConfig())
    entries = archiver.list_cached()
    if not entries:
        console.print(f"[dim]No cached archives in {archiver.cache_dir}.[/dim]")
        return

    now = datetime.now(timezone.utc)
    table = Table(title=f"Cached archives ({archiver.cache_dir})")
    table.add_column("Archive", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Age", justify="right")
    for entry in entries:
        age = now - entry.modified_at
        table.add_row(entry.unique_id, f"{entry.size_bytes:,}", f"{age.days}d")
    console.print(table)


@cache_app.command(name="prune", help="Delete archives older than a number of days.")
def prune_cmd(
    older_than_days: int = typer.Option(
        30, "--older-than-days", "-d", min=0, help="Age threshold in days."
    ),
) -> None:
    archiver = SourceArchiver(ForgeConfig())
    removed = archiver.prune(timedelta(days=older_than_days))
    console.print(f"Removed {len(removed)} archive(s).")
