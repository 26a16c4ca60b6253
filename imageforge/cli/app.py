"""Main Typer application: imports and registers all CLI commands.

Entry point: ``imageforge`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer

from imageforge.cli.commands.build import build_cmd, resolve_cmd
from imageforge.cli.commands.cache_cmd import cache_app
from imageforge.cli.commands.hash_cmd import hash_cmd
from imageforge.config import ForgeConfig
from imageforge.logs import configure_logging

app = typer.Typer(
    name="imageforge",
    help="Imageforge: container-image builds with content-addressed caching.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def _setup(
    log_level: str = typer.Option(None, "--log-level", help="Override IMAGEFORGE_LOG_LEVEL."),
) -> None:
    configure_logging(log_level or ForgeConfig().log_level)


# Register subcommands
app.command(name="build", help="Build and push an image from a JSON specification.")(build_cmd)
app.command(name="resolve", help="Print the image reference a specification resolves to.")(resolve_cmd)
app.command(name="hash", help="Print the content hash of a file or directory.")(hash_cmd)
app.add_typer(cache_app, name="cache")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
