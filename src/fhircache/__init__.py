"""fhircache - A versioned FHIR package cache with a concurrent downloader.

This library fetches FHIR packages (``name@version``) from NPM-style
registries, unpacks their conformance resources into an on-disk cache, and
follows manifest dependencies on a bounded worker pool.

Example:
    >>> from fhircache import CacheSettings, Downloader, PackageCache
    >>> with PackageCache.from_settings(CacheSettings()) as cache:
    ...     downloader = Downloader(cache)
    ...     downloader.add("default", "hl7.fhir.us.core", "6.1.0", include_dependencies=True)
    ...     downloader.start()
"""

from fhircache.adapters.archive import Archive, DiskSink, MemorySink
from fhircache.adapters.cache import Package, PackageCache, PackageFileFilter
from fhircache.adapters.executor import TaskRunner
from fhircache.adapters.registry import BearerTokenAuth, RegistryClient
from fhircache.config import CacheSettings, default_cache_dir
from fhircache.core.cancellation import CancellationToken
from fhircache.core.exceptions import (
    ArchiveError,
    BadContentError,
    BadContentTypeError,
    CacheError,
    CancelledError,
    ConfigurationError,
    FhirCacheError,
    ManifestError,
    PackageNotFoundError,
    RegistryError,
    StatusCodeError,
    UnknownRegistryError,
)
from fhircache.core.models import (
    DEFAULT_REGISTRY,
    LOCAL_REGISTRY,
    PackageManifest,
    PackageRef,
    RunResult,
)
from fhircache.core.ports import CacheListener, CacheListeners, NullCacheListener
from fhircache.core.services import Downloader
from fhircache.progress import LoggingCacheListener, RichCacheListener


__version__ = "0.1.0"

__all__ = [
    "DEFAULT_REGISTRY",
    "LOCAL_REGISTRY",
    "Archive",
    "ArchiveError",
    "BadContentError",
    "BadContentTypeError",
    "BearerTokenAuth",
    "CacheError",
    "CacheListener",
    "CacheListeners",
    "CacheSettings",
    "CancellationToken",
    "CancelledError",
    "ConfigurationError",
    "DiskSink",
    "Downloader",
    "FhirCacheError",
    "LoggingCacheListener",
    "ManifestError",
    "MemorySink",
    "NullCacheListener",
    "Package",
    "PackageCache",
    "PackageFileFilter",
    "PackageManifest",
    "PackageNotFoundError",
    "PackageRef",
    "RegistryClient",
    "RegistryError",
    "RichCacheListener",
    "RunResult",
    "StatusCodeError",
    "TaskRunner",
    "UnknownRegistryError",
    "__version__",
    "default_cache_dir",
]
