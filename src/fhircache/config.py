"""Configuration for fhircache.

Settings are passed explicitly to the objects that need them. The only
environment variables consulted are the ones read by from_env() and
default_cache_dir():

- ``FHIR_CACHE``: cache root directory
- ``FHIR_REGISTRY``: URL of the default registry
- ``FHIR_REGISTRY_TOKEN``: bearer token sent to the registries
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Self

from fhircache.adapters.cache.cache import DEFAULT_RESOURCE_PREFIXES
from fhircache.adapters.registry.client import DEFAULT_REGISTRY_URL
from fhircache.core.exceptions import ConfigurationError
from fhircache.core.models import DEFAULT_REGISTRY, LOCAL_REGISTRY


if TYPE_CHECKING:
    from collections.abc import Mapping


CACHE_ENV = "FHIR_CACHE"
REGISTRY_ENV = "FHIR_REGISTRY"
TOKEN_ENV = "FHIR_REGISTRY_TOKEN"


def default_cache_dir(environ: Mapping[str, str] | None = None) -> Path:
    """Return the cache root: ``$FHIR_CACHE`` if set, else ``~/.fhir``.

    Args:
        environ: Environment mapping to read. Defaults to os.environ.

    Example:
        >>> default_cache_dir({"FHIR_CACHE": "/tmp/fhir"})
        PosixPath('/tmp/fhir')
    """
    env = os.environ if environ is None else environ
    path = env.get(CACHE_ENV)
    if path:
        return Path(path).expanduser()
    return Path.home() / ".fhir"


def _default_registries() -> dict[str, str]:
    return {DEFAULT_REGISTRY: DEFAULT_REGISTRY_URL}


@dataclass(frozen=True)
class CacheSettings:
    """Everything needed to build a PackageCache and run a Downloader.

    Attributes:
        cache_dir: Cache root directory.
        registries: Registry name to base URL.
        token: Bearer token sent to every registry, if any.
        workers: Download workers; 0 uses the CPU count.
        timeout: Per-request HTTP timeout in seconds.
        resource_prefixes: File name prefixes of resources kept in the cache.
    """

    cache_dir: Path = field(default_factory=default_cache_dir)
    registries: dict[str, str] = field(default_factory=_default_registries)
    token: str | None = None
    workers: int = 0
    timeout: float = 60.0
    resource_prefixes: tuple[str, ...] = DEFAULT_RESOURCE_PREFIXES

    def __post_init__(self) -> None:
        """Validate settings."""
        if not self.registries:
            raise ConfigurationError("At least one registry must be configured")
        if LOCAL_REGISTRY in self.registries:
            raise ConfigurationError(
                f"'{LOCAL_REGISTRY}' is reserved for packages added with add_local_package()"
            )
        for name, url in self.registries.items():
            if not url.startswith(("http://", "https://")):
                raise ConfigurationError(f"Registry '{name}' has an invalid URL: {url!r}")
        if self.timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive, got {self.timeout}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> Self:
        """Build settings from ``FHIR_CACHE``, ``FHIR_REGISTRY`` and ``FHIR_REGISTRY_TOKEN``.

        Args:
            environ: Environment mapping to read. Defaults to os.environ.
            **overrides: Field values that take precedence over the environment.
                None values are ignored.

        Returns:
            The settings.

        Raises:
            ConfigurationError: If the resulting settings are invalid.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {"cache_dir": default_cache_dir(env)}
        registry = env.get(REGISTRY_ENV)
        if registry:
            values["registries"] = {DEFAULT_REGISTRY: registry}
        token = env.get(TOKEN_ENV)
        if token:
            values["token"] = token
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]
