"""On-disk package cache.

Layout::

    <root>/<registry>/<name>/<version>/
        package.json
        StructureDefinition-*.json, ValueSet-*.json, ...
        package.tar.gz

``package.tar.gz`` holds the raw archive bytes as received from the
registry. It is renamed into place only after every extracted file has been
written and the manifest has been validated, so its presence alone means the
entry is complete.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from fhircache.adapters.archive import (
    Archive,
    DiskSink,
    drain,
    open_chunks,
)
from fhircache.adapters.cache.package import (
    MANIFEST_NAME,
    PART_SUFFIX,
    SENTINEL_NAME,
    Package,
)
from fhircache.core.exceptions import (
    BadContentError,
    PackageNotFoundError,
    UnknownRegistryError,
)
from fhircache.core.models import LOCAL_REGISTRY, PackageManifest, PackageRef
from fhircache.core.ports import CacheListeners


if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping
    from types import TracebackType
    from typing import IO

    from fhircache.adapters.archive import NameFilter
    from fhircache.config import CacheSettings
    from fhircache.core.cancellation import CancellationToken
    from fhircache.core.ports import CacheListener, RegistryClientPort


logger = logging.getLogger(__name__)

DEFAULT_RESOURCE_PREFIXES: tuple[str, ...] = (
    "StructureDefinition-",
    "ValueSet-",
    "CodeSystem-",
    "ConceptMap-",
    "NamingSystem-",
    "SearchParameter-",
    "OperationDefinition-",
    "CapabilityStatement-",
    "ImplementationGuide-",
)
INDEX_NAME = ".index.json"


class PackageFileFilter:
    """Selects the archive entries that are kept in a cache entry.

    An entry is kept if it sits directly under the archive's top-level
    directory (usually ``package/``), is a ``.json`` file, and is either the
    manifest or starts with one of the resource prefixes. The ``.index.json``
    sidecar and anything in nested directories (``package/other/``,
    ``package/example/``, ...) are dropped.
    """

    def __init__(
        self,
        manifest_name: str = MANIFEST_NAME,
        resource_prefixes: Iterable[str] = DEFAULT_RESOURCE_PREFIXES,
    ) -> None:
        self.manifest_name = manifest_name
        self.resource_prefixes = tuple(resource_prefixes)

    def __call__(self, name: str) -> bool:
        parts = [p for p in name.split("/") if p not in ("", ".")]
        if not parts or len(parts) > 2:
            return False
        base = parts[-1]
        if base == INDEX_NAME or not base.endswith(".json"):
            return False
        return base == self.manifest_name or base.startswith(self.resource_prefixes)


def _basename(name: str) -> str:
    return name.rstrip("/").rsplit("/", 1)[-1]


class PackageCache:
    """Versioned store of FHIR packages fetched from registries.

    Each registry name maps to a client; the ``local`` registry instead maps
    packages to directories registered with add_local_package().

    Example:
        >>> cache = PackageCache(Path("~/.fhir").expanduser(),
        ...                      clients={"default": RegistryClient()})
        >>> ref = PackageRef("default", "hl7.fhir.r4.core", "4.0.1")
        >>> package = cache.get_or_fetch(ref)
        >>> package.files()[:1]
    """

    def __init__(
        self,
        root: Path,
        *,
        clients: Mapping[str, RegistryClientPort] | None = None,
        listeners: Iterable[CacheListener] | None = None,
        file_filter: NameFilter | None = None,
        manifest_name: str = MANIFEST_NAME,
    ) -> None:
        """Initialize the cache.

        Args:
            root: Cache root directory; created on first fetch.
            clients: Registry clients by registry name.
            listeners: Observers notified of cache events.
            file_filter: Predicate on archive entry names. Defaults to
                PackageFileFilter for manifest_name.
            manifest_name: File name of the package manifest.
        """
        self.root = Path(root)
        self.manifest_name = manifest_name
        self._clients: dict[str, RegistryClientPort] = dict(clients or {})
        self._listeners = CacheListeners(listeners or [])
        self._filter = file_filter or PackageFileFilter(manifest_name)
        self._local: dict[tuple[str, str], Path] = {}
        self._locks: dict[PackageRef, tuple[threading.Lock, int]] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: CacheSettings,
        *,
        listeners: Iterable[CacheListener] | None = None,
    ) -> PackageCache:
        """Create a cache with a RegistryClient for every configured registry.

        Args:
            settings: Cache directory, registries, credentials and timeouts.
            listeners: Observers notified of cache events.

        Returns:
            The configured cache. Close it to release the HTTP clients.
        """
        from fhircache.adapters.registry import BearerTokenAuth, RegistryClient

        auth = BearerTokenAuth(settings.token) if settings.token else None
        clients = {
            name: RegistryClient(url, auth=auth, timeout=settings.timeout)
            for name, url in settings.registries.items()
        }
        return cls(
            settings.cache_dir,
            clients=clients,
            listeners=listeners,
            file_filter=PackageFileFilter(resource_prefixes=settings.resource_prefixes),
        )

    @property
    def registries(self) -> list[str]:
        """Names of the registries that have a client."""
        return sorted(self._clients)

    def add_client(self, registry: str, client: RegistryClientPort) -> None:
        """Register (or replace) the client used for a registry name."""
        self._clients[registry] = client

    def add_listener(self, listener: CacheListener) -> None:
        """Add an observer for cache events."""
        self._listeners.append(listener)

    def add_local_package(self, name: str, version: str, path: Path) -> PackageRef:
        """Make an unpacked package directory available under the local registry.

        Local packages are never downloaded or written; fetching one is always
        a cache hit, and deleting one only forgets the mapping.

        Returns:
            The reference to use for the package.
        """
        ref = PackageRef(LOCAL_REGISTRY, name, version)
        self._local[(name, version)] = Path(path)
        return ref

    def entry_dir(self, ref: PackageRef) -> Path:
        """Directory that holds (or would hold) the entry for ref."""
        if ref.registry == LOCAL_REGISTRY and (ref.name, ref.version) in self._local:
            return self._local[(ref.name, ref.version)]
        return self.root / ref.registry / ref.name / ref.version

    def has(self, ref: PackageRef) -> bool:
        """Whether a complete entry for ref exists."""
        if ref.registry == LOCAL_REGISTRY:
            local = self._local.get((ref.name, ref.version))
            return local is not None and (local / self.manifest_name).is_file()
        return (self.entry_dir(ref) / SENTINEL_NAME).is_file()

    def path(self, ref: PackageRef) -> Path:
        """Directory of the complete entry for ref.

        Raises:
            PackageNotFoundError: If the package is not cached.
        """
        if not self.has(ref):
            raise PackageNotFoundError(ref)
        return self.entry_dir(ref)

    def get(self, ref: PackageRef) -> Package:
        """Open the cached package for ref.

        Raises:
            PackageNotFoundError: If the package is not cached.
            ManifestError: If the cached manifest cannot be parsed.
        """
        return Package(self.path(ref), self.manifest_name)

    def fetch(
        self, ref: PackageRef, cancellation: CancellationToken | None = None
    ) -> None:
        """Download ref into the cache unless it is already present.

        Raises:
            UnknownRegistryError: If no client is registered for ref.registry.
            RegistryError: If the registry response is unusable.
            ArchiveError: If the archive is corrupt.
            ManifestError: If the package manifest cannot be parsed.
            CancelledError: If cancellation is requested mid-download.
        """
        with self._locked(ref):
            if self.has(ref):
                logger.debug("Cache hit for %s", ref)
                self._listeners.on_cache_hit(ref.registry, ref.name, ref.version)
                return
            self._download(ref, cancellation)

    def force_fetch(
        self, ref: PackageRef, cancellation: CancellationToken | None = None
    ) -> None:
        """Download ref, replacing any existing entry.

        Raises the same errors as fetch().
        """
        if ref.registry == LOCAL_REGISTRY:
            self.fetch(ref, cancellation)
            return
        with self._locked(ref):
            self._download(ref, cancellation)

    def get_or_fetch(
        self, ref: PackageRef, cancellation: CancellationToken | None = None
    ) -> Package:
        """Open the cached package for ref, downloading it first if needed."""
        self.fetch(ref, cancellation)
        return self.get(ref)

    def delete(self, ref: PackageRef) -> None:
        """Remove the entry for ref; does nothing if it is not cached."""
        if ref.registry == LOCAL_REGISTRY:
            self._local.pop((ref.name, ref.version), None)
            return

        with self._locked(ref):
            entry = self.entry_dir(ref)
            if not entry.exists():
                return
            self._listeners.on_delete(ref.registry, ref.name, ref.version)
            shutil.rmtree(entry)
            self._cleanup_empty_dirs(entry.parent)
        logger.info("Deleted %s", ref)

    def list_packages(self) -> list[PackageRef]:
        """Return every complete entry in the cache, plus local packages, sorted."""
        refs: list[PackageRef] = []
        if self.root.is_dir():
            for sentinel in self.root.glob(f"*/*/*/{SENTINEL_NAME}"):
                version_dir = sentinel.parent
                with contextlib.suppress(ValueError):
                    refs.append(
                        PackageRef(
                            version_dir.parent.parent.name,
                            version_dir.parent.name,
                            version_dir.name,
                        )
                    )
        refs.extend(
            PackageRef(LOCAL_REGISTRY, name, version)
            for (name, version) in self._local
            if self.has(PackageRef(LOCAL_REGISTRY, name, version))
        )
        return sorted(set(refs), key=lambda r: (r.registry, r.name, r.version))

    def statistics(self) -> dict[str, int]:
        """Get cache statistics.

        Returns:
            Dictionary with 'package_count', 'file_count' (number of files)
            and 'total_size' (bytes), counted over complete entries under root.
        """
        package_count = 0
        file_count = 0
        total_size = 0

        for ref in self.list_packages():
            if ref.registry == LOCAL_REGISTRY:
                continue
            package_count += 1
            for file_path in self.entry_dir(ref).iterdir():
                if file_path.is_file():
                    with contextlib.suppress(OSError):
                        total_size += file_path.stat().st_size
                        file_count += 1

        return {
            "package_count": package_count,
            "file_count": file_count,
            "total_size": total_size,
        }

    def close(self) -> None:
        """Close every registry client that supports it."""
        for client in self._clients.values():
            close = getattr(client, "close", None)
            if callable(close):
                close()

    def __enter__(self) -> PackageCache:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the registry clients."""
        self.close()

    @contextlib.contextmanager
    def _locked(self, ref: PackageRef) -> Iterator[None]:
        """Hold the per-ref lock; the entry is dropped once nobody uses it."""
        with self._locks_guard:
            held = self._locks.get(ref)
            lock, users = held if held is not None else (threading.Lock(), 0)
            self._locks[ref] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                users = self._locks[ref][1] - 1
                if users:
                    self._locks[ref] = (lock, users)
                else:
                    del self._locks[ref]

    def _download(
        self, ref: PackageRef, cancellation: CancellationToken | None
    ) -> None:
        client = self._clients.get(ref.registry)
        if client is None:
            raise UnknownRegistryError(ref.registry, self.registries)
        if cancellation is not None:
            cancellation.raise_if_cancelled()

        entry = self.entry_dir(ref)
        if entry.exists():
            logger.debug("Removing existing entry %s", entry)
            shutil.rmtree(entry)

        self._listeners.before_fetch(ref.registry, ref.name, ref.version)
        try:
            self._unpack_into(entry, ref, client, cancellation)
        except Exception as e:
            shutil.rmtree(entry, ignore_errors=True)
            self._listeners.after_fetch(ref.registry, ref.name, ref.version, e)
            raise
        self._listeners.after_fetch(ref.registry, ref.name, ref.version, None)
        logger.info("Fetched %s into %s", ref, entry)

    def _unpack_into(
        self,
        entry: Path,
        ref: PackageRef,
        client: RegistryClientPort,
        cancellation: CancellationToken | None,
    ) -> None:
        registry, name, version = ref.registry, ref.name, ref.version
        listeners = self._listeners
        entry.mkdir(parents=True, exist_ok=True)
        part = entry / f"{SENTINEL_NAME}{PART_SUFFIX}"
        disk = DiskSink(
            entry,
            tee=lambda file, chunk: listeners.on_unpack_write(
                registry, name, version, file, chunk
            ),
        )

        def unpacked(file: str, size: int, reader: IO[bytes]) -> None:
            listeners.on_unpack(registry, name, version, file, size)
            disk(file, size, reader)

        with client.fetch(name, version) as response, part.open("wb") as raw:
            listeners.on_fetch(registry, name, version, response.size)

            def received(chunk: bytes) -> None:
                if cancellation is not None:
                    cancellation.raise_if_cancelled()
                raw.write(chunk)
                listeners.on_fetch_write(registry, name, version, chunk)

            stream = open_chunks(response.iter_bytes(), on_read=received)
            count = Archive(
                stream, name_filter=self._filter, transform=_basename
            ).unpack(unpacked)
            drain(stream)
            url = response.url

        manifest = entry / self.manifest_name
        if not manifest.is_file():
            raise BadContentError(
                f"Package {ref.spec} has no {self.manifest_name}", url
            )
        PackageManifest.from_json(manifest.read_bytes())

        logger.debug("Extracted %d file(s) for %s", count, ref)
        os.replace(part, entry / SENTINEL_NAME)

    def _cleanup_empty_dirs(self, path: Path) -> None:
        """Remove empty directories recursively up to root."""
        try:
            while path != self.root and path.is_dir():
                if any(path.iterdir()):
                    break
                path.rmdir()
                path = path.parent
        except OSError:
            logger.debug("Could not remove %s", path)
