"""Tests for the CLI commands."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from fhircache.cli import app
from fhircache.testing import FakeRegistry, manifest_json


runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("FHIR_CACHE", "FHIR_REGISTRY", "FHIR_REGISTRY_TOKEN"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def registry(monkeypatch: pytest.MonkeyPatch) -> FakeRegistry:
    """Route every cache built by the CLI to an in-memory registry."""
    from fhircache.adapters.cache import PackageCache

    fake = FakeRegistry()

    def from_settings(cls, settings, *, listeners=None):  # type: ignore[no-untyped-def]
        return cls(
            settings.cache_dir,
            clients={"default": fake.client()},
            listeners=listeners,
        )

    monkeypatch.setattr(PackageCache, "from_settings", classmethod(from_settings))
    return fake


def _download(cache_dir: Path, *args: str) -> object:
    return runner.invoke(app, ["download", "--cache-dir", str(cache_dir), *args])


@pytest.mark.cli
@pytest.mark.tier(1)
class TestDownload:
    """Tests for the download command."""

    def test_downloads_with_dependencies(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """download fetches packages and their dependencies by default."""
        registry.set_package("us.core", "1.0.0", {"r4.core": "4.0.1"})
        registry.set_package("r4.core", "4.0.1")

        result = _download(tmp_path, "us.core@1.0.0")

        assert result.exit_code == 0, result.output
        assert "Fetched 2 package(s)" in result.output
        assert (tmp_path / "default" / "r4.core" / "4.0.1" / "package.tar.gz").is_file()

    def test_no_deps(self, tmp_path: Path, registry: FakeRegistry) -> None:
        """--no-deps fetches only the named packages."""
        registry.set_package("us.core", "1.0.0", {"r4.core": "4.0.1"})

        result = _download(tmp_path, "us.core@1.0.0", "--no-deps", "-w", "1")

        assert result.exit_code == 0, result.output
        assert "Fetched 1 package(s)" in result.output
        assert registry.requests("/r4.core/4.0.1") == 0

    def test_force_redownloads(self, tmp_path: Path, registry: FakeRegistry) -> None:
        """--force replaces cached packages."""
        registry.set_package("a", "1")

        _download(tmp_path, "a@1")
        result = _download(tmp_path, "a@1", "--force")

        assert result.exit_code == 0, result.output
        assert registry.requests("/a/1") == 2

    def test_missing_package_fails(self, tmp_path: Path, registry: FakeRegistry) -> None:
        """A registry error is printed and exits with status 1."""
        result = _download(tmp_path, "missing@1")

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "404" in result.output

    def test_bad_reference_fails(self, tmp_path: Path, registry: FakeRegistry) -> None:
        """A malformed reference exits with status 1 before any request."""
        result = _download(tmp_path, "no-version")

        assert result.exit_code == 1
        assert "Error: Invalid package reference" in result.output
        assert registry.received == []

    def test_invalid_registry_url_fails(self, tmp_path: Path) -> None:
        """An invalid --registry is reported as a configuration error."""
        result = _download(tmp_path, "a@1", "--registry", "not-a-url")

        assert result.exit_code == 1
        assert "invalid URL" in result.output


@pytest.mark.cli
@pytest.mark.tier(1)
class TestInspect:
    """Tests for the list, show, stats and delete commands."""

    @pytest.fixture
    def cache_dir(self, tmp_path: Path, registry: FakeRegistry) -> Path:
        registry.set_package("app", "1", {"lib": "2"})
        registry.set_package("lib", "2")
        result = _download(tmp_path, "app@1")
        assert result.exit_code == 0, result.output
        return tmp_path

    def test_list(self, cache_dir: Path) -> None:
        """list shows a row per cached package."""
        result = runner.invoke(app, ["list", "--cache-dir", str(cache_dir)])

        assert result.exit_code == 0
        assert "app" in result.output
        assert "lib" in result.output

    def test_list_empty(self, tmp_path: Path) -> None:
        """list on an empty cache says so."""
        result = runner.invoke(app, ["list", "--cache-dir", str(tmp_path)])

        assert result.exit_code == 0
        assert "No packages cached" in result.output

    def test_show(self, cache_dir: Path) -> None:
        """show prints the manifest, dependencies and file count."""
        result = runner.invoke(
            app, ["show", "app@1", "--cache-dir", str(cache_dir), "--files"]
        )

        assert result.exit_code == 0, result.output
        assert "Package: app@1" in result.output
        assert "lib@2" in result.output
        assert "Files: 1" in result.output
        assert "StructureDefinition-app.json" in result.output

    def test_show_manifest_metadata(self, tmp_path: Path) -> None:
        """Optional manifest fields are printed when present."""
        entry = tmp_path / "default" / "ig" / "1"
        entry.mkdir(parents=True)
        (entry / "package.json").write_text(
            manifest_json("ig", "1", title="My IG", fhirVersions=["4.0.1"])
        )
        (entry / "package.tar.gz").write_bytes(b"")

        result = runner.invoke(app, ["show", "ig@1", "--cache-dir", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "Title: My IG" in result.output
        assert "FHIR versions: 4.0.1" in result.output

    def test_show_missing_package_hints_download(self, tmp_path: Path) -> None:
        """show on an absent package suggests downloading it."""
        result = runner.invoke(app, ["show", "nope@1", "--cache-dir", str(tmp_path)])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "Hint: Fetch it first: fhircache download default::nope@1" in result.output

    def test_stats(self, cache_dir: Path) -> None:
        """stats counts packages and files."""
        result = runner.invoke(app, ["stats", "--cache-dir", str(cache_dir)])

        assert result.exit_code == 0
        assert "Packages: 2" in result.output
        assert "Files: 6" in result.output

    def test_delete(self, cache_dir: Path) -> None:
        """delete removes the entry."""
        result = runner.invoke(app, ["delete", "lib@2", "--cache-dir", str(cache_dir)])

        assert result.exit_code == 0, result.output
        assert "Deleted default::lib@2" in result.output
        assert not (cache_dir / "default" / "lib").exists()

    def test_delete_missing(self, tmp_path: Path) -> None:
        """delete on an absent package exits with status 1."""
        result = runner.invoke(app, ["delete", "lib@2", "--cache-dir", str(tmp_path)])

        assert result.exit_code == 1
        assert "is not in the cache" in result.output
