"""Pytest configuration and shared fixtures.

This module registers custom markers for CI job separation and provides
shared fixtures for the test suite.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import pytest

from fhircache.core.ports import NullCacheListener


if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from fhircache.adapters.cache import PackageCache
    from fhircache.testing import FakeRegistry


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "core: Core models, ports, and services")
    config.addinivalue_line("markers", "archive: Archive reader and sinks")
    config.addinivalue_line("markers", "registry: Registry client adapter")
    config.addinivalue_line("markers", "cache: Package cache adapter")
    config.addinivalue_line("markers", "scheduler: Task runner")
    config.addinivalue_line("markers", "downloader: Dependency downloader")
    config.addinivalue_line("markers", "progress: Rich progress integration")
    config.addinivalue_line("markers", "cli: CLI tests")
    config.addinivalue_line("markers", "property: Property-based tests (hypothesis)")
    config.addinivalue_line(
        "markers",
        "tier: Test tier for CI job separation (0=instant, 1=fast, 2=standard, 3=slow, 4=manual)",
    )


class RecordingListener(NullCacheListener):
    """CacheListener that records every event as a tuple."""

    def __init__(self) -> None:
        self.events: list[tuple[object, ...]] = []
        self._lock = threading.Lock()

    def _record(self, *event: object) -> None:
        with self._lock:
            self.events.append(event)

    def names(self) -> list[str]:
        """Event names in arrival order."""
        with self._lock:
            return [str(e[0]) for e in self.events]

    def before_fetch(self, registry: str, name: str, version: str) -> None:
        self._record("before_fetch", registry, name, version)

    def on_fetch(
        self, registry: str, name: str, version: str, total: int | None
    ) -> None:
        self._record("on_fetch", registry, name, version, total)

    def on_fetch_write(
        self, registry: str, name: str, version: str, chunk: bytes
    ) -> None:
        self._record("on_fetch_write", registry, name, version, len(chunk))

    def on_unpack(
        self, registry: str, name: str, version: str, file: str, size: int
    ) -> None:
        self._record("on_unpack", registry, name, version, file, size)

    def on_unpack_write(
        self, registry: str, name: str, version: str, file: str, chunk: bytes
    ) -> None:
        self._record("on_unpack_write", registry, name, version, file, len(chunk))

    def after_fetch(
        self, registry: str, name: str, version: str, error: BaseException | None
    ) -> None:
        self._record("after_fetch", registry, name, version, error)

    def on_cache_hit(self, registry: str, name: str, version: str) -> None:
        self._record("on_cache_hit", registry, name, version)

    def on_delete(self, registry: str, name: str, version: str) -> None:
        self._record("on_delete", registry, name, version)


@pytest.fixture
def recorder() -> RecordingListener:
    """A listener that records cache events."""
    return RecordingListener()


@pytest.fixture
def fake_registry() -> FakeRegistry:
    """An in-memory registry served through httpx.MockTransport."""
    from fhircache.testing import FakeRegistry

    return FakeRegistry()


@pytest.fixture
def cache(
    tmp_path: Path, fake_registry: FakeRegistry, recorder: RecordingListener
) -> Iterator[PackageCache]:
    """A PackageCache under tmp_path whose default registry is fake_registry."""
    from fhircache.adapters.cache import PackageCache

    with PackageCache(
        tmp_path / "cache",
        clients={"default": fake_registry.client()},
        listeners=[recorder],
    ) as package_cache:
        yield package_cache
