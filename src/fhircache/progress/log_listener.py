"""Cache listener that reports events through logging."""

from __future__ import annotations

import logging

from fhircache.core.ports import NullCacheListener


class LoggingCacheListener(NullCacheListener):
    """Logs cache events.

    Fetch outcomes, cache hits and deletions are logged at INFO (failures at
    WARNING); every extracted file is logged at DEBUG.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("fhircache.cache")

    def before_fetch(self, registry: str, name: str, version: str) -> None:
        self._logger.info("Fetching %s@%s from %s", name, version, registry)

    def on_unpack(
        self, registry: str, name: str, version: str, file: str, size: int
    ) -> None:
        self._logger.debug(
            "[%s@%s] %s (from %s): %d bytes", name, version, file, registry, size
        )

    def after_fetch(
        self, registry: str, name: str, version: str, error: BaseException | None
    ) -> None:
        if error is not None:
            self._logger.warning("Fetching %s@%s failed: %s", name, version, error)
        else:
            self._logger.info("Fetched %s@%s", name, version)

    def on_cache_hit(self, registry: str, name: str, version: str) -> None:
        self._logger.info("%s@%s is already cached", name, version)

    def on_delete(self, registry: str, name: str, version: str) -> None:
        self._logger.info("Deleting %s@%s from %s", name, version, registry)
