"""Domain exceptions for fhircache.

All library errors inherit from FhirCacheError, allowing users to catch
any library exception with a single except clause. Each exception provides
a recovery_hint property with guidance on resolving the error.

Transport failures (httpx.HTTPError) and filesystem failures (OSError) are
deliberately not wrapped and reach the caller unchanged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from pathlib import Path

    from fhircache.core.models import PackageRef


class FhirCacheError(Exception):
    """Base class for all fhircache exceptions.

    Catch this to handle any error from the library.
    """

    @property
    def recovery_hint(self) -> str | None:
        """Optional guidance on how to resolve this error."""
        return None


class PackageNotFoundError(FhirCacheError):
    """Raised when a package is requested from the cache but is not present.

    Attributes:
        ref: The package reference (or entry path) that was not found.
    """

    def __init__(self, ref: PackageRef | Path) -> None:
        self.ref = ref
        super().__init__(f"Package '{ref}' is not in the cache")

    @property
    def recovery_hint(self) -> str | None:
        """Suggest fetching the package first."""
        from fhircache.core.models import PackageRef

        if isinstance(self.ref, PackageRef):
            return f"Fetch it first: fhircache download {self.ref}"
        return None


class UnknownRegistryError(FhirCacheError):
    """Raised when a package names a registry with no configured client.

    Attributes:
        registry: The registry name that was not found.
        available: Registry names that do have clients.
    """

    def __init__(self, registry: str, available: list[str] | None = None) -> None:
        self.registry = registry
        self.available = available if available is not None else []
        super().__init__(f"Unknown registry '{registry}'")

    @property
    def recovery_hint(self) -> str:
        """List the configured registries."""
        if self.available:
            return f"Configured registries: {', '.join(self.available)}"
        return "Register a client with PackageCache.add_client()"


class RegistryError(FhirCacheError):
    """Base class for registry response errors.

    Raised when the registry answers, but not with something that can be
    turned into a package archive.

    Attributes:
        url: The URL that produced the bad response.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        url: str,
        cause: Exception | None = None,
    ) -> None:
        self.url = url
        self.cause = cause
        super().__init__(message)


class StatusCodeError(RegistryError):
    """Raised when the registry responds with a status other than 200."""

    def __init__(self, status_code: int, url: str, reason: str = "") -> None:
        self.status_code = status_code
        message = f"Unexpected status code {status_code} from {url}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, url=url)

    @property
    def recovery_hint(self) -> str:
        """Suggest checking the package coordinates or credentials."""
        if self.status_code in (401, 403):
            return "Check the registry token (--token / FHIR_REGISTRY_TOKEN)"
        if self.status_code == 404:
            return "Verify the package name and version exist in the registry"
        return "Retry later; the registry may be unavailable"


class BadContentTypeError(RegistryError):
    """Raised when the registry responds with an unsupported content type."""

    def __init__(self, content_type: str, url: str) -> None:
        self.content_type = content_type
        super().__init__(
            f"Unexpected content-type '{content_type}' from {url}", url=url
        )

    @property
    def recovery_hint(self) -> str:
        """Suggest checking the registry URL."""
        return "Check that the registry URL points at a FHIR package registry"


class BadContentError(RegistryError):
    """Raised when a registry or archive payload is malformed or incomplete."""

    pass


class ArchiveError(FhirCacheError):
    """Raised when an archive has corrupt gzip or tar framing.

    Attributes:
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)

    @property
    def recovery_hint(self) -> str:
        """Suggest re-downloading."""
        return "The package archive is corrupt; retry the download with --force"


class CacheError(FhirCacheError):
    """Base class for cache-related errors."""

    pass


class ManifestError(CacheError):
    """Raised when a package manifest is corrupt or unreadable.

    Attributes:
        path: The path to the manifest, if it was read from disk.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.path = path
        self.cause = cause
        super().__init__(message)

    @property
    def recovery_hint(self) -> str:
        """Suggest deleting the corrupt cache entry."""
        if self.path is not None:
            return f"Delete {self.path.parent} and re-fetch the package"
        return "The package manifest is not valid JSON"


class CancelledError(FhirCacheError):
    """Raised when an operation observes a cancelled CancellationToken."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message)


class ConfigurationError(FhirCacheError):
    """Raised for configuration problems (missing or invalid settings)."""

    pass
