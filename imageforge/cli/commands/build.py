"""``imageforge build SPEC`` and ``imageforge resolve SPEC``."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console

from imageforge.cli.commands._spec import err_console, load_spec
from imageforge.config import ForgeConfig
from imageforge.core.errors import ImageForgeError
from imageforge.core.facade import BuildFacade

console = Console()


def build_cmd(
    spec_path: Path = typer.Argument(..., help="JSON build specification.", exists=True),
) -> None:
    """Build, push and pin the image described by SPEC_PATH (local backend)."""
    spec = load_spec(spec_path)
    if spec.is_remote:
        err_console.print(
            "[red]Remote targets need service clients and cannot be built from the CLI.[/red]"
        )
        raise typer.Exit(code=2)

    facade = BuildFacade(config=ForgeConfig())
    try:
        result = asyncio.run(facade.build(spec))
    except ImageForgeError as exc:
        err_console.print(f"[bold red]Build failed:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(result.uri)


def resolve_cmd(
    spec_path: Path = typer.Argument(..., help="JSON build specification.", exists=True),
) -> None:
    """Print the image reference SPEC_PATH resolves to, without building."""
    spec = load_spec(spec_path)
    facade = BuildFacade(config=ForgeConfig())
    try:
        reference = asyncio.run(facade.resolve(spec))
    except ImageForgeError as exc:
        err_console.print(f"[bold red]Cannot resolve version:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(reference.uri)
