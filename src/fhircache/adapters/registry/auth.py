"""Credential injection for registry clients."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx


if TYPE_CHECKING:
    from collections.abc import Generator


class BearerTokenAuth(httpx.Auth):
    """Send ``Authorization: Bearer <token>`` with every request.

    Example:
        >>> client = RegistryClient(url, auth=BearerTokenAuth("s3cr3t"))
    """

    def __init__(self, token: str) -> None:
        if not token:
            raise ValueError("Bearer token cannot be empty")
        self._token = token

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request

    def __repr__(self) -> str:
        return "BearerTokenAuth(token=***)"
