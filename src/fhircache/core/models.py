"""Core domain models for fhircache.

These models are pure Python dataclasses with no I/O dependencies.
They represent the identity of a package, the contents of its manifest,
and the outcome of a scheduler run.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Self

from fhircache.core.exceptions import ManifestError


DEFAULT_REGISTRY = "default"
LOCAL_REGISTRY = "local"


@dataclass(frozen=True, slots=True)
class PackageRef:
    """The (registry, name, version) identity of a fetchable package.

    Equality and hashing are structural, so a PackageRef is the
    deduplication key for "already requested, in flight, or cached".

    Attributes:
        registry: Name of the registry the package is fetched from.
        name: Package name (e.g., "hl7.fhir.r4.core").
        version: Package version (e.g., "4.0.1").

    Example:
        >>> ref = PackageRef("default", "hl7.fhir.r4.core", "4.0.1")
        >>> str(ref)
        'default::hl7.fhir.r4.core@4.0.1'
    """

    registry: str
    name: str
    version: str

    def __post_init__(self) -> None:
        """Reject values that cannot be used as cache path segments."""
        for label, value in (
            ("registry", self.registry),
            ("name", self.name),
            ("version", self.version),
        ):
            if not value:
                raise ValueError(f"Package {label} cannot be empty")
            if "/" in value or "\\" in value or value in (".", ".."):
                raise ValueError(f"Invalid package {label}: {value!r}")

    def __str__(self) -> str:
        return f"{self.registry}::{self.name}@{self.version}"

    @classmethod
    def parse(cls, text: str, default_registry: str = DEFAULT_REGISTRY) -> Self:
        """Parse a reference in the form ``[registry::]name@version``.

        Args:
            text: The reference string.
            default_registry: Registry used when the string names none.

        Returns:
            The parsed PackageRef.

        Raises:
            ValueError: If the name or version is missing.
        """
        registry, sep, rest = text.partition("::")
        if not sep:
            registry, rest = default_registry, text
        name, sep, version = rest.rpartition("@")
        if not sep or not name:
            raise ValueError(
                f"Invalid package reference {text!r}; expected [registry::]name@version"
            )
        return cls(registry=registry, name=name, version=version)

    @property
    def spec(self) -> str:
        """The ``name@version`` form, without the registry."""
        return f"{self.name}@{self.version}"


@dataclass(frozen=True, slots=True)
class PackageManifest:
    """Manifest of a FHIR package, in NPM ``package.json`` format.

    Unknown fields are ignored so that newer manifests remain readable.
    """

    name: str
    version: str
    dependencies: dict[str, str] = field(default_factory=dict)
    fhir_versions: list[str] = field(default_factory=list)
    type: str = ""
    title: str = ""
    description: str = ""
    license: str = ""
    author: str = ""
    url: str = ""
    canonical: str = ""
    homepage: str = ""
    tools_version: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Build a manifest from a decoded ``package.json`` document.

        Args:
            data: The decoded JSON object.

        Returns:
            The manifest.

        Raises:
            ManifestError: If name or version is missing or not a string.
        """
        name = data.get("name")
        version = data.get("version")
        if not isinstance(name, str) or not isinstance(version, str):
            raise ManifestError("Package manifest must declare a name and version")

        dependencies = data.get("dependencies") or {}
        if not isinstance(dependencies, dict):
            raise ManifestError(f"Package '{name}' has malformed dependencies")

        fhir_versions = data.get("fhirVersions") or data.get("fhir-version-list") or []
        tools_version = data.get("tools-version")

        return cls(
            name=name,
            version=version,
            dependencies={str(k): str(v) for k, v in dependencies.items()},
            fhir_versions=[str(v) for v in fhir_versions],
            type=_text(data.get("type")),
            title=_text(data.get("title")),
            description=_text(data.get("description")),
            license=_text(data.get("license")),
            author=_text(data.get("author")),
            url=_text(data.get("url")),
            canonical=_text(data.get("canonical")),
            homepage=_text(data.get("homepage")),
            tools_version=tools_version if isinstance(tools_version, int) else None,
        )

    @classmethod
    def from_json(cls, content: bytes | str) -> Self:
        """Parse a manifest from raw ``package.json`` content.

        Raises:
            ManifestError: If the content is not a JSON object.
        """
        try:
            data = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ManifestError(f"Package manifest is not valid JSON: {e}", cause=e) from e
        if not isinstance(data, dict):
            raise ManifestError("Package manifest must be a JSON object")
        return cls.from_dict(data)


def _text(value: object) -> str:
    # author may be an NPM person object: {"name": ..., "email": ...}
    if isinstance(value, dict):
        value = value.get("name", "")
    return value if isinstance(value, str) else ""


@dataclass(frozen=True, slots=True)
class RunResult:
    """Outcome of a TaskRunner run.

    Attributes:
        completed: Number of tasks that finished executing, failed or not.
        error: The first error encountered, or None.
        errors: Every task error, in the order the tasks failed.
    """

    completed: int
    error: BaseException | None = None
    errors: tuple[BaseException, ...] = ()

    @property
    def ok(self) -> bool:
        """True if the run drained without error."""
        return self.error is None

    def raise_for_error(self) -> None:
        """Re-raise the first error of the run, if any."""
        if self.error is not None:
            raise self.error
