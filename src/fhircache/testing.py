"""Test helpers: an in-memory package registry and archive builders.

Example:
    >>> registry = FakeRegistry()
    >>> registry.set_package("hl7.fhir.r4.core", "4.0.1")
    >>> cache = PackageCache(tmp_path, clients={"default": registry.client()})
    >>> cache.fetch(PackageRef("default", "hl7.fhir.r4.core", "4.0.1"))
    >>> registry.requests("/hl7.fhir.r4.core/4.0.1")
    1
"""

from __future__ import annotations

import gzip as gzip_module
import io
import json
import tarfile
import threading
from collections import Counter
from typing import TYPE_CHECKING

import httpx

from fhircache.adapters.registry import RegistryClient


if TYPE_CHECKING:
    from collections.abc import Mapping


BASE_URL = "https://registry.test"


def tarball_bytes(
    files: Mapping[str, bytes | str],
    *,
    gzip: bool = True,
    directories: list[str] | None = None,
) -> bytes:
    """Build a tar (optionally gzip-compressed) archive in memory.

    Args:
        files: Entry name to content.
        gzip: Compress the archive with gzip.
        directories: Directory entries to add before the files.
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for name in directories or []:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)
        for name, content in files.items():
            data = content.encode() if isinstance(content, str) else content
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    data = buffer.getvalue()
    return gzip_module.compress(data) if gzip else data


def manifest_json(
    name: str,
    version: str,
    dependencies: Mapping[str, str] | None = None,
    **fields: object,
) -> str:
    """Render a ``package.json`` manifest."""
    document: dict[str, object] = {"name": name, "version": version}
    if dependencies:
        document["dependencies"] = dict(dependencies)
    document.update(fields)
    return json.dumps(document)


def package_tarball(
    name: str,
    version: str,
    dependencies: Mapping[str, str] | None = None,
    *,
    resources: Mapping[str, bytes | str] | None = None,
    gzip: bool = True,
) -> bytes:
    """Build a FHIR package archive with a manifest under ``package/``."""
    files: dict[str, bytes | str] = {
        "package/package.json": manifest_json(name, version, dependencies)
    }
    if resources is None:
        resources = {
            f"StructureDefinition-{name}.json": json.dumps(
                {"resourceType": "StructureDefinition", "id": name}
            )
        }
    for file_name, content in resources.items():
        files[f"package/{file_name}"] = content
    return tarball_bytes(files, gzip=gzip)


class FakeRegistry:
    """An NPM-style package registry served through httpx.MockTransport.

    Routes are keyed by URL path. Every request is counted, so tests can
    assert how often each package was downloaded.
    """

    def __init__(self, base_url: str = BASE_URL) -> None:
        self.base_url = base_url.rstrip("/")
        self._routes: dict[str, httpx.Response] = {}
        self._counts: Counter[str] = Counter()
        self._lock = threading.Lock()
        self.received: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def set_response(self, path: str, response: httpx.Response) -> None:
        """Answer requests for path with a fixed response."""
        self._routes[path] = response

    def set_content(
        self,
        path: str,
        content: bytes,
        content_type: str,
        *,
        status_code: int = 200,
    ) -> None:
        """Answer requests for path with raw content."""
        self.set_response(
            path,
            httpx.Response(
                status_code, content=content, headers={"Content-Type": content_type}
            ),
        )

    def set_tarball(
        self, name: str, version: str, archive: bytes, *, content_type: str = "application/tar"
    ) -> None:
        """Serve archive directly at ``/{name}/{version}``."""
        self.set_content(f"/{name}/{version}", archive, content_type)

    def set_gzip_tarball(self, name: str, version: str, archive: bytes) -> None:
        """Serve a gzip-compressed archive at ``/{name}/{version}``."""
        self.set_tarball(name, version, archive, content_type="application/gzip")

    def set_indirect(
        self,
        name: str,
        version: str,
        archive: bytes,
        *,
        tarball_path: str | None = None,
    ) -> None:
        """Serve a JSON envelope whose ``dist.tarball`` points at the archive."""
        tarball_path = tarball_path or f"/tarballs/{name}-{version}.tgz"
        envelope = {
            "name": name,
            "version": version,
            "dist": {"tarball": self.url(tarball_path)},
        }
        self.set_content(
            f"/{name}/{version}", json.dumps(envelope).encode(), "application/json"
        )
        self.set_content(tarball_path, archive, "application/gzip")

    def set_package(
        self,
        name: str,
        version: str,
        dependencies: Mapping[str, str] | None = None,
        **kwargs: object,
    ) -> bytes:
        """Serve a generated FHIR package; returns the archive bytes."""
        archive = package_tarball(name, version, dependencies, **kwargs)  # type: ignore[arg-type]
        self.set_gzip_tarball(name, version, archive)
        return archive

    def set_status(self, path: str, status_code: int) -> None:
        """Answer requests for path with an empty response of the given status."""
        self.set_response(path, httpx.Response(status_code))

    def requests(self, path: str) -> int:
        """Number of requests received for path."""
        with self._lock:
            return self._counts[path]

    def client(self, **kwargs: object) -> RegistryClient:
        """Create a RegistryClient bound to this registry."""
        return RegistryClient(self.base_url, transport=self.transport, **kwargs)  # type: ignore[arg-type]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        with self._lock:
            self._counts[path] += 1
            self.received.append(request)
        response = self._routes.get(path)
        if response is None:
            return httpx.Response(404, text=f"No route for {path}")
        return httpx.Response(
            response.status_code,
            headers=response.headers,
            content=response.content,
        )
