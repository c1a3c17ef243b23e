"""HTTP registry client implementing RegistryClientPort."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING
from urllib.parse import urljoin

import httpx

from fhircache.core.exceptions import (
    BadContentError,
    BadContentTypeError,
    StatusCodeError,
)


if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping
    from types import TracebackType


logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_URL = "https://packages.simplifier.net"

# Media types whose body is the package archive itself
ARCHIVE_MEDIA_TYPES = frozenset(
    {
        "application/tar",
        "application/x-tar",
        "application/gzip",
        "application/x-gzip",
        "application/tar+gzip",
    }
)
JSON_MEDIA_TYPE = "application/json"


class RegistryResponse:
    """Streamed archive body from a registry.

    Attributes:
        url: Final URL the archive was read from.
        size: Content-Length of the archive, or None when unknown.
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self.url = str(response.url)
        self.size = _content_length(response)

    def iter_bytes(self, chunk_size: int | None = None) -> Iterator[bytes]:
        """Iterate over the archive bytes as they arrive."""
        return self._response.iter_bytes(chunk_size)

    def close(self) -> None:
        """Release the underlying connection."""
        self._response.close()

    def __enter__(self) -> RegistryResponse:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the response."""
        self.close()


class RegistryClient:
    """Client for an NPM-style FHIR package registry.

    Packages are requested with ``GET {base_url}/{name}/{version}``. The
    registry may answer with the archive directly, or with a JSON envelope
    whose ``dist.tarball`` field points at it.

    Example:
        >>> with RegistryClient("https://packages.fhir.org") as client:
        ...     with client.fetch("hl7.fhir.r4.core", "4.0.1") as response:
        ...         data = b"".join(response.iter_bytes())
    """

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        *,
        auth: httpx.Auth | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 60.0,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Registry root URL.
            auth: Credentials applied to every request (see BearerTokenAuth).
            transport: Custom httpx transport, e.g. httpx.MockTransport in tests.
            timeout: Per-request timeout in seconds.
            headers: Extra headers sent with every request.
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            auth=auth,
            transport=transport,
            timeout=timeout,
            headers=headers,
            follow_redirects=True,
        )

    def fetch(self, name: str, version: str) -> RegistryResponse:
        """Fetch the archive of one package version.

        Args:
            name: Package name.
            version: Package version.

        Returns:
            The streamed archive; the caller must close it.

        Raises:
            StatusCodeError: If the registry answers with a non-200 status.
            BadContentTypeError: If the content type is not an archive or JSON.
            BadContentError: If a JSON envelope is malformed or has no tarball.
            httpx.HTTPError: On transport failures.
        """
        url = f"{self.base_url}/{name}/{version}"
        response = self._get(url)

        media_type = _media_type(response)
        if media_type in ARCHIVE_MEDIA_TYPES:
            return RegistryResponse(response)

        try:
            if media_type != JSON_MEDIA_TYPE:
                raise BadContentTypeError(
                    response.headers.get("content-type", ""), str(response.url)
                )
            tarball = _tarball_url(response)
        finally:
            response.close()

        logger.debug("Following tarball link for %s@%s: %s", name, version, tarball)
        return RegistryResponse(self._get(tarball))

    def _get(self, url: str) -> httpx.Response:
        logger.debug("GET %s", url)
        request = self._client.build_request("GET", url)
        response = self._client.send(request, stream=True)
        for redirect in response.history:
            logger.debug("Redirected from %s", redirect.url)

        if response.status_code != httpx.codes.OK:
            response.close()
            raise StatusCodeError(
                response.status_code, str(response.url), response.reason_phrase
            )
        return response

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> RegistryClient:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the client."""
        self.close()


def _media_type(response: httpx.Response) -> str:
    content_type = response.headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower()


def _content_length(response: httpx.Response) -> int | None:
    value = response.headers.get("content-length")
    if value is None or not value.isdigit():
        return None
    return int(value)


def _tarball_url(response: httpx.Response) -> str:
    """Extract ``dist.tarball`` from a JSON envelope, resolved against its URL."""
    url = str(response.url)
    try:
        data = json.loads(response.read())
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise BadContentError(f"Malformed package envelope from {url}: {e}", url, e) from e

    dist = data.get("dist") if isinstance(data, dict) else None
    tarball = dist.get("tarball") if isinstance(dist, dict) else None
    if not isinstance(tarball, str) or not tarball:
        raise BadContentError(f"Package envelope from {url} has no tarball URL", url)
    return urljoin(url, tarball)
