"""Core domain services for fhircache."""

from __future__ import annotations

import logging
import os
import threading
from typing import TYPE_CHECKING, Self

from fhircache.core.models import DEFAULT_REGISTRY, LOCAL_REGISTRY, PackageRef


if TYPE_CHECKING:
    from collections.abc import Callable

    from fhircache.core.cancellation import CancellationToken
    from fhircache.core.ports import (
        PackageStorePort,
        RunnerPort,
        Task,
        TaskContext,
    )


logger = logging.getLogger(__name__)


def _default_runner(workers: int) -> RunnerPort:
    from fhircache.adapters.executor import TaskRunner

    return TaskRunner(workers)


class _Visited:
    """Packages scheduled during one Downloader run."""

    def __init__(self) -> None:
        self._refs: set[PackageRef] = set()
        self._lock = threading.Lock()

    def claim(self, ref: PackageRef) -> bool:
        """Mark ref as scheduled; False if it already was."""
        with self._lock:
            if ref in self._refs:
                return False
            self._refs.add(ref)
            return True


class Downloader:
    """Fetches requested packages, and optionally their dependencies, into a store.

    Requests are collected with add() and executed by start() on a bounded
    worker pool. Within a run every package is fetched at most once, no
    matter how many dependents reference it.

    Example:
        >>> downloader = Downloader(cache).workers(8)
        >>> downloader.add("default", "hl7.fhir.us.core", "6.1.0", include_dependencies=True)
        >>> downloader.start()
        4
    """

    def __init__(
        self,
        cache: PackageStorePort,
        runner_factory: Callable[[int], RunnerPort] | None = None,
    ) -> None:
        """Initialize the downloader.

        Args:
            cache: Store that packages are fetched into.
            runner_factory: Builds the runner for a run from a worker count.
                Defaults to TaskRunner.
        """
        self._cache = cache
        self._runner_factory = runner_factory or _default_runner
        self._requests: dict[PackageRef, bool] = {}
        self._force = False
        self._workers = os.cpu_count() or 1
        self._lock = threading.Lock()

    @property
    def requests(self) -> dict[PackageRef, bool]:
        """Requested packages mapped to whether dependencies are included."""
        with self._lock:
            return dict(self._requests)

    def add(
        self,
        registry: str,
        name: str,
        version: str,
        include_dependencies: bool = False,
    ) -> PackageRef:
        """Request a package.

        Adding the same package twice is a no-op, except that a later add
        with include_dependencies=True upgrades the earlier request.

        Returns:
            The reference of the requested package.

        Raises:
            ValueError: If registry, name or version is not a valid ref part.
        """
        ref = PackageRef(registry, name, version)
        with self._lock:
            self._requests[ref] = self._requests.get(ref, False) or include_dependencies
        return ref

    def force(self, flag: bool = True) -> Self:
        """Re-download packages even if they are already cached."""
        with self._lock:
            self._force = flag
        return self

    def workers(self, n: int) -> Self:
        """Set the worker count; values below 1 use the CPU count."""
        with self._lock:
            self._workers = n if n >= 1 else (os.cpu_count() or 1)
        return self

    def start(self, cancellation: CancellationToken | None = None) -> int:
        """Download every requested package and block until done.

        Args:
            cancellation: Token that stops the run early when cancelled.

        Returns:
            Number of fetch tasks that completed.

        Raises:
            FhirCacheError: The first error of the run, e.g. StatusCodeError.
            httpx.HTTPError: On transport failures.
        """
        with self._lock:
            requests = dict(self._requests)
            force = self._force
            workers = self._workers

        runner = self._runner_factory(workers)
        visited = _Visited()
        for ref, include_dependencies in requests.items():
            if visited.claim(ref):
                runner.add(self._task(ref, include_dependencies, force, visited))

        logger.info(
            "Downloading %d package(s) with %d worker(s)%s",
            len(requests),
            workers,
            " (forced)" if force else "",
        )
        result = runner.run(cancellation)
        for error in result.errors[1:]:
            logger.warning("Additional download failure: %s", error)
        result.raise_for_error()
        return result.completed

    def _task(
        self,
        ref: PackageRef,
        include_dependencies: bool,
        force: bool,
        visited: _Visited,
    ) -> Task:
        def fetch(ctx: TaskContext) -> None:
            if force:
                self._cache.force_fetch(ref, ctx.cancellation)
            else:
                self._cache.fetch(ref, ctx.cancellation)
            if not include_dependencies:
                return

            dependencies = self._cache.get(ref).dependencies()
            # Dependencies of a local package come from the default registry
            registry = DEFAULT_REGISTRY if ref.registry == LOCAL_REGISTRY else ref.registry
            for name, version in sorted(dependencies.items()):
                dependency = PackageRef(registry, name, version)
                if visited.claim(dependency):
                    logger.debug("Scheduling %s (required by %s)", dependency, ref)
                    ctx.runner.add(self._task(dependency, True, force, visited))

        return fetch
