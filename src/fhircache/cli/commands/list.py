"""List command for CLI."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from fhircache.cli.formatting import format_size
from fhircache.cli.main import CACHE_DIR_OPTION, app, open_cache


@app.command(name="list")
def list_packages(
    cache_dir: Path | None = CACHE_DIR_OPTION,
) -> None:
    """List all packages in the cache."""
    cache = open_cache(cache_dir)
    refs = cache.list_packages()

    if not refs:
        typer.echo(f"No packages cached in {cache.root}.")
        return

    # Build Rich table
    table = Table()
    table.add_column("Registry")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right")

    for ref in refs:
        entry = cache.entry_dir(ref)
        files = [p for p in entry.iterdir() if p.is_file()]
        size = sum(p.stat().st_size for p in files)
        table.add_row(ref.registry, ref.name, ref.version, str(len(files)), format_size(size))

    Console().print(table)
