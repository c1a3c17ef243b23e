"""CLI commands for fhircache."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler

from fhircache.config import CACHE_ENV, REGISTRY_ENV, TOKEN_ENV, CacheSettings
from fhircache.core.exceptions import FhirCacheError, PackageNotFoundError
from fhircache.core.models import PackageRef


if TYPE_CHECKING:
    from fhircache.adapters.cache import PackageCache


app = typer.Typer(
    name="fhircache",
    help="Download FHIR packages and their dependencies into a local cache.",
    no_args_is_help=True,
)

CACHE_DIR_OPTION = typer.Option(
    None,
    "--cache-dir",
    "-d",
    envvar=CACHE_ENV,
    help="Cache root directory. Defaults to ~/.fhir.",
)


def configure_logging(verbose: bool) -> None:
    """Send fhircache log records to a RichHandler on stderr."""
    logger = logging.getLogger("fhircache")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(console=Console(stderr=True), show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO if verbose else logging.WARNING)


def fail(error: Exception) -> NoReturn:
    """Print an error (and its recovery hint) to stderr and exit with status 1."""
    typer.echo(f"Error: {error}", err=True)
    hint = getattr(error, "recovery_hint", None)
    if hint:
        typer.echo(f"Hint: {hint}", err=True)
    raise typer.Exit(1)


def load_settings(cache_dir: Path | None, **overrides: object) -> CacheSettings:
    """Build settings from the environment and command-line overrides.

    Raises:
        typer.Exit: If the settings are invalid.
    """
    try:
        return CacheSettings.from_env(cache_dir=cache_dir, **overrides)
    except FhirCacheError as e:
        fail(e)


def parse_ref(text: str) -> PackageRef:
    """Parse a ``[registry::]name@version`` argument.

    Raises:
        typer.Exit: If the reference is malformed.
    """
    try:
        return PackageRef.parse(text)
    except ValueError as e:
        fail(e)


def open_cache(cache_dir: Path | None) -> PackageCache:
    """Open the cache without registry clients, for offline commands."""
    from fhircache.adapters.cache import PackageCache

    return PackageCache(load_settings(cache_dir).cache_dir)


@app.command()
def download(
    refs: list[str] = typer.Argument(
        ..., help="Packages to download, as [registry::]name@version."
    ),
    registry: str | None = typer.Option(
        None,
        "--registry",
        "-r",
        envvar=REGISTRY_ENV,
        help="URL of the default registry.",
    ),
    cache_dir: Path | None = CACHE_DIR_OPTION,
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Re-download packages that are already cached.",
    ),
    no_deps: bool = typer.Option(
        False,
        "--no-deps",
        help="Do not download dependencies.",
    ),
    workers: int = typer.Option(
        0,
        "--workers",
        "-w",
        help="Concurrent downloads. 0 uses the CPU count.",
    ),
    token: str | None = typer.Option(
        None,
        "--token",
        envvar=TOKEN_ENV,
        help="Bearer token sent to the registry.",
    ),
    timeout: float = typer.Option(
        60.0,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log each fetch.",
    ),
) -> None:
    """Download packages, and their dependencies, into the cache."""
    from fhircache.adapters.cache import PackageCache
    from fhircache.core.services import Downloader
    from fhircache.progress import LoggingCacheListener, RichCacheListener

    configure_logging(verbose)
    settings = load_settings(
        cache_dir,
        registries={"default": registry} if registry else None,
        token=token,
        workers=workers,
        timeout=timeout,
    )
    parsed = [parse_ref(text) for text in refs]

    try:
        with PackageCache.from_settings(settings) as cache, RichCacheListener() as progress:
            cache.add_listener(progress)
            if verbose:
                cache.add_listener(LoggingCacheListener())
            downloader = Downloader(cache).force(force).workers(settings.workers)
            for ref in parsed:
                downloader.add(
                    ref.registry,
                    ref.name,
                    ref.version,
                    include_dependencies=not no_deps,
                )
            count = downloader.start()
    except FhirCacheError as e:
        fail(e)
    except httpx.HTTPError as e:
        fail(e)

    typer.echo(f"Fetched {count} package(s) into {settings.cache_dir}")


@app.command()
def show(
    ref: str = typer.Argument(help="Package to inspect, as [registry::]name@version."),
    cache_dir: Path | None = CACHE_DIR_OPTION,
    files: bool = typer.Option(
        False,
        "--files",
        help="List every resource file.",
    ),
) -> None:
    """Show the manifest, dependencies and files of a cached package."""
    package_ref = parse_ref(ref)
    cache = open_cache(cache_dir)
    try:
        package = cache.get(package_ref)
    except FhirCacheError as e:
        fail(e)

    manifest = package.manifest
    resource_files = package.files()
    typer.echo(f"Package: {manifest.name}@{manifest.version}")
    typer.echo(f"  Registry: {package_ref.registry}")
    typer.echo(f"  Path: {package.path}")
    if manifest.title:
        typer.echo(f"  Title: {manifest.title}")
    if manifest.canonical:
        typer.echo(f"  Canonical: {manifest.canonical}")
    if manifest.fhir_versions:
        typer.echo(f"  FHIR versions: {', '.join(manifest.fhir_versions)}")
    if manifest.description:
        typer.echo(f"  Description: {manifest.description}")

    dependencies = package.dependencies()
    if dependencies:
        typer.echo("  Dependencies:")
        for name, version in sorted(dependencies.items()):
            typer.echo(f"    {name}@{version}")
    typer.echo(f"  Files: {len(resource_files)}")
    if files:
        for path in resource_files:
            typer.echo(f"    {path.name}")


@app.command()
def delete(
    ref: str = typer.Argument(help="Package to remove, as [registry::]name@version."),
    cache_dir: Path | None = CACHE_DIR_OPTION,
) -> None:
    """Remove a package from the cache."""
    package_ref = parse_ref(ref)
    cache = open_cache(cache_dir)
    if not cache.entry_dir(package_ref).exists():
        fail(PackageNotFoundError(package_ref))

    cache.delete(package_ref)
    typer.echo(f"Deleted {package_ref}")


def main() -> None:
    """Entry point for the CLI."""
    app()
