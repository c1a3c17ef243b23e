"""Stats command for CLI."""

from __future__ import annotations

from pathlib import Path

import typer

from fhircache.cli.formatting import format_size
from fhircache.cli.main import CACHE_DIR_OPTION, app, open_cache


@app.command()
def stats(
    cache_dir: Path | None = CACHE_DIR_OPTION,
) -> None:
    """Show the number of cached packages and their size on disk."""
    cache = open_cache(cache_dir)
    statistics = cache.statistics()

    typer.echo(f"Cache: {cache.root}")
    typer.echo(f"  Packages: {statistics['package_count']}")
    typer.echo(f"  Files: {statistics['file_count']}")
    typer.echo(f"  Size: {format_size(statistics['total_size'])}")
