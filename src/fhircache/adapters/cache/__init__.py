"""On-disk package cache adapters."""

from fhircache.adapters.cache.cache import (
    DEFAULT_RESOURCE_PREFIXES,
    INDEX_NAME,
    PackageCache,
    PackageFileFilter,
)
from fhircache.adapters.cache.package import MANIFEST_NAME, SENTINEL_NAME, Package


__all__ = [
    "DEFAULT_RESOURCE_PREFIXES",
    "INDEX_NAME",
    "MANIFEST_NAME",
    "SENTINEL_NAME",
    "Package",
    "PackageCache",
    "PackageFileFilter",
]
