"""Core domain module for fhircache.

This module contains pure Python domain models, port definitions and the
Downloader service. Concrete I/O lives in fhircache.adapters.
"""

from fhircache.core.cancellation import CancellationToken
from fhircache.core.models import PackageManifest, PackageRef, RunResult
from fhircache.core.ports import (
    CacheListener,
    CacheListeners,
    NullCacheListener,
    PackageStorePort,
    RegistryClientPort,
    RunnerPort,
    TaskContext,
)
from fhircache.core.services import Downloader


__all__ = [
    "CacheListener",
    "CacheListeners",
    "CancellationToken",
    "Downloader",
    "NullCacheListener",
    "PackageManifest",
    "PackageRef",
    "PackageStorePort",
    "RegistryClientPort",
    "RunResult",
    "RunnerPort",
    "TaskContext",
]
