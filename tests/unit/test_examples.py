"""Tests validating that example code patterns work correctly.

These tests ensure the examples in the examples/ directory represent
working, copy-pasteable code patterns.
"""

from pathlib import Path

import pytest

from fhircache import Downloader, PackageCache, PackageRef
from fhircache.testing import FakeRegistry, manifest_json


@pytest.mark.core
class TestBasicUsage:
    """Tests for basic_usage.py example pattern."""

    def test_get_or_fetch(self, tmp_path: Path, fake_registry: FakeRegistry) -> None:
        """A package can be fetched and then inspected offline."""
        fake_registry.set_package("hl7.fhir.r4.core", "4.0.1")
        cache = PackageCache(tmp_path, clients={"default": fake_registry.client()})
        ref = PackageRef("default", "hl7.fhir.r4.core", "4.0.1")

        with cache:
            package = cache.get_or_fetch(ref)

        assert package.name == "hl7.fhir.r4.core"
        assert len(package.files()) == 1
        assert cache.has(ref)


@pytest.mark.core
class TestDependencyDownload:
    """Tests for dependency_download.py example pattern."""

    def test_shared_dependency(self, tmp_path: Path, fake_registry: FakeRegistry) -> None:
        """Two requested packages sharing a dependency fetch it once."""
        fake_registry.set_package("hl7.fhir.us.core", "6.1.0", {"hl7.fhir.r4.core": "4.0.1"})
        fake_registry.set_package("hl7.fhir.uv.ips", "1.1.0", {"hl7.fhir.r4.core": "4.0.1"})
        fake_registry.set_package("hl7.fhir.r4.core", "4.0.1")

        with PackageCache(tmp_path, clients={"default": fake_registry.client()}) as cache:
            downloader = Downloader(cache).workers(4)
            downloader.add("default", "hl7.fhir.us.core", "6.1.0", include_dependencies=True)
            downloader.add("default", "hl7.fhir.uv.ips", "1.1.0", include_dependencies=True)
            count = downloader.start()

        assert count == 3
        assert fake_registry.requests("/hl7.fhir.r4.core/4.0.1") == 1


@pytest.mark.core
class TestLocalDevelopment:
    """Tests for local_development.py example pattern."""

    def test_local_package_dependencies(
        self, tmp_path: Path, fake_registry: FakeRegistry
    ) -> None:
        """Dependencies of a local package are fetched from the registry."""
        ig = tmp_path / "my-ig"
        ig.mkdir()
        (ig / "package.json").write_text(
            manifest_json("my.ig", "0.1.0", {"hl7.fhir.r4.core": "4.0.1"})
        )
        fake_registry.set_package("hl7.fhir.r4.core", "4.0.1")
        cache = PackageCache(tmp_path / "cache", clients={"default": fake_registry.client()})

        ref = cache.add_local_package("my.ig", "0.1.0", ig)
        downloader = Downloader(cache)
        for name, version in cache.get(ref).dependencies().items():
            downloader.add("default", name, version, include_dependencies=True)
        downloader.start()

        assert cache.list_packages() == [
            PackageRef("default", "hl7.fhir.r4.core", "4.0.1"),
            ref,
        ]
