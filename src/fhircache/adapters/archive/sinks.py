"""Sinks that receive the entries visited by an Archive."""

from __future__ import annotations

import io
import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import IO, Protocol

from fhircache.core.exceptions import ArchiveError


logger = logging.getLogger(__name__)

# Chunk size for copying entry bodies (64KB)
_CHUNK_SIZE = 64 * 1024


class Sink(Protocol):
    """Receives one archive entry: its (transformed) name, size and body."""

    def __call__(self, name: str, size: int, reader: IO[bytes]) -> None: ...


class DiskSink:
    """Writes each entry to ``<root>/<name>``, creating parent directories.

    Attributes:
        root: Directory that entries are written under.
    """

    def __init__(
        self,
        root: Path,
        tee: Callable[[str, bytes], None] | None = None,
    ) -> None:
        """Initialize the sink.

        Args:
            root: Directory that entries are written under.
            tee: Optional observer called with (name, chunk) for written bytes.
        """
        self.root = root
        self._tee = tee
        self.written: list[Path] = []

    def __call__(self, name: str, size: int, reader: IO[bytes]) -> None:
        target = self._target(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Writing %s (%d bytes)", target, size)

        with target.open("wb") as f:
            for chunk in iter(lambda: reader.read(_CHUNK_SIZE), b""):
                f.write(chunk)
                if self._tee is not None:
                    self._tee(name, chunk)
        self.written.append(target)

    def _target(self, name: str) -> Path:
        root = self.root.resolve()
        target = (root / name).resolve()
        if not target.is_relative_to(root) or target == root:
            raise ArchiveError(f"Archive entry escapes the extraction root: {name}")
        return target


class MemorySink:
    """Collects entry contents in memory without touching disk.

    Attributes:
        files: Mapping of entry name to content.
    """

    def __init__(self, names: Iterable[str] | None = None) -> None:
        """Initialize the sink.

        Args:
            names: If given, only these entry names are kept.
        """
        self._names = frozenset(names) if names is not None else None
        self.files: dict[str, bytes] = {}

    def __call__(self, name: str, size: int, reader: IO[bytes]) -> None:  # noqa: ARG002
        if self._names is None or name in self._names:
            self.files[name] = reader.read()


class CallbackSink:
    """Reports (name, size) for each entry without reading its body."""

    def __init__(self, callback: Callable[[str, int], None]) -> None:
        self._callback = callback

    def __call__(self, name: str, size: int, reader: IO[bytes]) -> None:  # noqa: ARG002
        self._callback(name, size)


class Sinks(list[Sink]):
    """Fans each entry out to several sinks.

    The entry body is read once into memory and replayed to every sink in
    order, so prefer a single streaming sink for large entries.
    """

    def __call__(self, name: str, size: int, reader: IO[bytes]) -> None:
        if len(self) == 1:
            self[0](name, size, reader)
            return
        content = reader.read()
        for sink in self:
            sink(name, size, io.BytesIO(content))
