"""Port interfaces for hexagonal architecture.

Ports define contracts that adapters must implement. The core domain
depends only on these protocols, never on concrete implementations.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable


if TYPE_CHECKING:
    from types import TracebackType

    from fhircache.core.cancellation import CancellationToken
    from fhircache.core.models import PackageRef, RunResult


logger = logging.getLogger(__name__)


@runtime_checkable
class RegistryResponse(Protocol):
    """A streamed package archive returned by a registry client."""

    url: str
    size: int | None

    def iter_bytes(self, chunk_size: int | None = None) -> Iterator[bytes]:
        """Iterate over the raw archive bytes."""
        ...

    def close(self) -> None:
        """Release the underlying connection."""
        ...

    def __enter__(self) -> RegistryResponse:
        """Enter context manager."""
        ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the response."""
        ...


@runtime_checkable
class RegistryClientPort(Protocol):
    """Remote package registry (Simplifier, packages.fhir.org, ...)."""

    def fetch(self, name: str, version: str) -> RegistryResponse:
        """Fetch the archive of one package version.

        Args:
            name: Package name.
            version: Package version.

        Returns:
            A streamed response; the caller must close it.

        Raises:
            StatusCodeError: If the registry answers with a non-200 status.
            BadContentTypeError: If the content type is not an archive or JSON.
            BadContentError: If a JSON envelope is malformed or has no tarball.
        """
        ...


@runtime_checkable
class CacheListener(Protocol):
    """Observer for events occurring while populating the cache.

    All methods are fire-and-forget notifications; they have no effect on
    control flow. Subclass NullCacheListener to implement only some of them.
    """

    def before_fetch(self, registry: str, name: str, version: str) -> None:
        """Called before the registry is contacted."""
        ...

    def on_fetch(
        self, registry: str, name: str, version: str, total: int | None
    ) -> None:
        """Called once the archive response is available (total may be unknown)."""
        ...

    def on_fetch_write(
        self, registry: str, name: str, version: str, chunk: bytes
    ) -> None:
        """Called for every chunk of archive bytes received."""
        ...

    def on_unpack(
        self, registry: str, name: str, version: str, file: str, size: int
    ) -> None:
        """Called when an archive entry is about to be extracted."""
        ...

    def on_unpack_write(
        self, registry: str, name: str, version: str, file: str, chunk: bytes
    ) -> None:
        """Called for every chunk written while extracting an entry."""
        ...

    def after_fetch(
        self, registry: str, name: str, version: str, error: BaseException | None
    ) -> None:
        """Called when a fetch finishes, with the error if it failed."""
        ...

    def on_cache_hit(self, registry: str, name: str, version: str) -> None:
        """Called when a fetch is satisfied from the cache."""
        ...

    def on_delete(self, registry: str, name: str, version: str) -> None:
        """Called when a package is removed from the cache."""
        ...


class NullCacheListener:
    """A CacheListener that ignores every event.

    Used as the default when no listener is installed, and as a base class
    for listeners interested in a subset of events.
    """

    def before_fetch(self, registry: str, name: str, version: str) -> None:
        """Do nothing."""

    def on_fetch(
        self, registry: str, name: str, version: str, total: int | None
    ) -> None:
        """Do nothing."""

    def on_fetch_write(
        self, registry: str, name: str, version: str, chunk: bytes
    ) -> None:
        """Do nothing."""

    def on_unpack(
        self, registry: str, name: str, version: str, file: str, size: int
    ) -> None:
        """Do nothing."""

    def on_unpack_write(
        self, registry: str, name: str, version: str, file: str, chunk: bytes
    ) -> None:
        """Do nothing."""

    def after_fetch(
        self, registry: str, name: str, version: str, error: BaseException | None
    ) -> None:
        """Do nothing."""

    def on_cache_hit(self, registry: str, name: str, version: str) -> None:
        """Do nothing."""

    def on_delete(self, registry: str, name: str, version: str) -> None:
        """Do nothing."""


class CacheListeners(list[CacheListener]):
    """A collection of CacheListeners that is itself a CacheListener.

    Events are notifications only: an exception raised by one listener is
    logged and the remaining listeners still receive the event.
    """

    def _notify(self, event: str, *args: object) -> None:
        for listener in self:
            try:
                getattr(listener, event)(*args)
            except Exception:
                logger.exception("Cache listener %r failed in %s", listener, event)

    def before_fetch(self, registry: str, name: str, version: str) -> None:
        self._notify("before_fetch", registry, name, version)

    def on_fetch(
        self, registry: str, name: str, version: str, total: int | None
    ) -> None:
        self._notify("on_fetch", registry, name, version, total)

    def on_fetch_write(
        self, registry: str, name: str, version: str, chunk: bytes
    ) -> None:
        self._notify("on_fetch_write", registry, name, version, chunk)

    def on_unpack(
        self, registry: str, name: str, version: str, file: str, size: int
    ) -> None:
        self._notify("on_unpack", registry, name, version, file, size)

    def on_unpack_write(
        self, registry: str, name: str, version: str, file: str, chunk: bytes
    ) -> None:
        self._notify("on_unpack_write", registry, name, version, file, chunk)

    def after_fetch(
        self, registry: str, name: str, version: str, error: BaseException | None
    ) -> None:
        self._notify("after_fetch", registry, name, version, error)

    def on_cache_hit(self, registry: str, name: str, version: str) -> None:
        self._notify("on_cache_hit", registry, name, version)

    def on_delete(self, registry: str, name: str, version: str) -> None:
        self._notify("on_delete", registry, name, version)


@runtime_checkable
class PackageView(Protocol):
    """A package available in the store."""

    def dependencies(self) -> dict[str, str]:
        """Return the package's ``name -> version`` dependencies."""
        ...


@runtime_checkable
class PackageStorePort(Protocol):
    """Package store that the Downloader populates (see PackageCache)."""

    def fetch(
        self, ref: PackageRef, cancellation: CancellationToken | None = None
    ) -> None:
        """Ensure ref is present, downloading it if needed."""
        ...

    def force_fetch(
        self, ref: PackageRef, cancellation: CancellationToken | None = None
    ) -> None:
        """Download ref, replacing any existing copy."""
        ...

    def get(self, ref: PackageRef) -> PackageView:
        """Open a stored package."""
        ...


@dataclass(frozen=True, slots=True)
class TaskContext:
    """Execution context handed to every task by the runner.

    Attributes:
        runner: The runner executing the task; tasks may add more work to it.
        cancellation: The run's cancellation token.
    """

    runner: RunnerPort
    cancellation: CancellationToken


Task = Callable[[TaskContext], None]
"""A unit of work: raises to fail, returns None on success."""


@runtime_checkable
class RunnerPort(Protocol):
    """Bounded worker pool that drains a dynamically growing set of tasks."""

    def add(self, task: Task) -> None:
        """Schedule a task; safe to call from inside a running task."""
        ...

    def run(self, cancellation: CancellationToken | None = None) -> RunResult:
        """Execute tasks until the work graph drains, errors, or is cancelled."""
        ...
