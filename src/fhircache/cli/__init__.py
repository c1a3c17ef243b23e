"""CLI for fhircache."""

# Import commands to register them with the app
# These imports have side effects (registering commands with @app.command())
from fhircache.cli.commands import list as _list_module  # noqa: F401
from fhircache.cli.commands import stats as _stats_module  # noqa: F401
from fhircache.cli.main import app, main


__all__ = ["app", "main"]
