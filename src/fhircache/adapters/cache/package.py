"""Read-only view of a package that has been unpacked on disk."""

from __future__ import annotations

from pathlib import Path

from fhircache.core.exceptions import ManifestError, PackageNotFoundError
from fhircache.core.models import PackageManifest


MANIFEST_NAME = "package.json"
SENTINEL_NAME = "package.tar.gz"
PART_SUFFIX = ".part"


class Package:
    """A FHIR package unpacked into a cache entry directory.

    Attributes:
        path: The entry directory.
        manifest: The parsed package manifest.
    """

    def __init__(self, path: Path, manifest_name: str = MANIFEST_NAME) -> None:
        """Load the package at path.

        Args:
            path: Directory containing the manifest and resource files.
            manifest_name: File name of the manifest inside the directory.

        Raises:
            PackageNotFoundError: If the manifest does not exist.
            ManifestError: If the manifest cannot be parsed.
        """
        self.path = Path(path)
        self._manifest_name = manifest_name
        manifest_path = self.path / manifest_name
        try:
            content = manifest_path.read_bytes()
        except FileNotFoundError:
            raise PackageNotFoundError(self.path) from None

        try:
            self.manifest = PackageManifest.from_json(content)
        except ManifestError as e:
            raise ManifestError(str(e), path=manifest_path, cause=e.cause) from e

    @property
    def name(self) -> str:
        return self.manifest.name

    @property
    def version(self) -> str:
        return self.manifest.version

    @property
    def fhir_versions(self) -> list[str]:
        return list(self.manifest.fhir_versions)

    @property
    def canonical(self) -> str:
        return self.manifest.canonical

    def dependencies(self) -> dict[str, str]:
        """Return a copy of the package's ``name -> version`` dependencies."""
        return dict(self.manifest.dependencies)

    def files(self) -> list[Path]:
        """Return the resource files of the package, sorted by name.

        The manifest, the archive sentinel and partial downloads are excluded.
        """
        excluded = {self._manifest_name, SENTINEL_NAME}
        return sorted(
            p
            for p in self.path.iterdir()
            if p.is_file() and p.name not in excluded and not p.name.endswith(PART_SUFFIX)
        )

    def __repr__(self) -> str:
        return f"Package({self.name}@{self.version}, path={str(self.path)!r})"
