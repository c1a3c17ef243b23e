"""Format-agnostic visitor over tar and gzip-compressed tar streams."""

from __future__ import annotations

import gzip
import io
import logging
import tarfile
import zlib
from collections.abc import Callable, Iterable, Iterator
from typing import IO, TYPE_CHECKING

from fhircache.core.exceptions import ArchiveError


if TYPE_CHECKING:
    from fhircache.adapters.archive.sinks import Sink


logger = logging.getLogger(__name__)

NameFilter = Callable[[str], bool]
NameTransform = Callable[[str], str]

# Exceptions raised by tarfile/gzip/zlib for corrupt framing
_FRAMING_ERRORS = (tarfile.TarError, gzip.BadGzipFile, zlib.error, EOFError)

_GZIP_MAGIC = b"\x1f\x8b"


class ChunkReader(io.RawIOBase):
    """Read-only binary file object over an iterator of byte chunks.

    Lets a streamed HTTP body be consumed by tarfile while every chunk is
    observed exactly once through on_read, in arrival order.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        on_read: Callable[[bytes], None] | None = None,
    ) -> None:
        super().__init__()
        self._chunks: Iterator[bytes] = iter(chunks)
        self._on_read = on_read
        self._buffer = b""
        self._exhausted = False

    def readable(self) -> bool:
        return True

    def readinto(self, b: bytearray | memoryview) -> int:  # type: ignore[override]
        while not self._buffer and not self._exhausted:
            try:
                chunk = next(self._chunks)
            except StopIteration:
                self._exhausted = True
                break
            if chunk:
                if self._on_read is not None:
                    self._on_read(chunk)
                self._buffer = chunk

        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return n


def open_chunks(
    chunks: Iterable[bytes],
    on_read: Callable[[bytes], None] | None = None,
) -> io.BufferedReader:
    """Wrap a chunk iterator in a buffered binary stream.

    Buffered reads return full blocks, which tarfile's compression
    detection relies on.
    """
    return io.BufferedReader(ChunkReader(chunks, on_read))


def drain(stream: IO[bytes]) -> None:
    """Consume the rest of a stream so every chunk is observed."""
    while stream.read(io.DEFAULT_BUFFER_SIZE):
        pass


class Archive:
    """A package archive in tar or tar.gz format.

    Compression is detected from the stream itself, so callers never need
    to know which of the two they were handed.

    Example:
        >>> archive = Archive(stream, name_filter=lambda n: n.endswith(".json"))
        >>> archive.unpack(MemorySink())
    """

    def __init__(
        self,
        stream: IO[bytes],
        *,
        name_filter: NameFilter | None = None,
        transform: NameTransform | None = None,
    ) -> None:
        """Initialize the archive over a binary stream.

        Args:
            stream: Readable binary stream positioned at the archive start.
            name_filter: Predicate on entry names; entries returning False are skipped.
            transform: Rewrites entry names before they reach the sink.
        """
        self._stream = stream
        self._filter = name_filter or (lambda _name: True)
        self._transform = transform or (lambda name: name)

    def unpack(self, sink: Sink) -> int:
        """Visit each regular file in the archive.

        Args:
            sink: Receives (name, size, reader) for every accepted entry.

        Returns:
            Number of entries handed to the sink.

        Raises:
            ArchiveError: If the gzip or tar framing is corrupt.
        """
        count = 0
        try:
            with tarfile.open(fileobj=self._tar_stream(), mode="r|") as tar:
                for member in tar:
                    if not member.isfile():
                        continue
                    if not self._filter(member.name):
                        logger.debug("Skipping archive entry %s", member.name)
                        continue
                    reader = tar.extractfile(member)
                    if reader is None:
                        continue
                    sink(self._transform(member.name), member.size, _Guarded(reader))
                    count += 1
        except _FRAMING_ERRORS as e:
            raise ArchiveError(f"Corrupt package archive: {e}", cause=e) from e
        return count

    def _tar_stream(self) -> IO[bytes]:
        # tarfile's own "r|*" detection ends silently on a truncated gzip
        # stream; GzipFile raises EOFError instead.
        stream = self._stream
        peek = getattr(stream, "peek", None)
        if peek is None:
            stream = open_chunks(iter(lambda: self._stream.read(io.DEFAULT_BUFFER_SIZE), b""))
            peek = stream.peek
        if peek(2)[:2] == _GZIP_MAGIC:
            return gzip.GzipFile(fileobj=stream, mode="rb")
        return stream


class _Guarded(io.RawIOBase):
    """Entry reader that reports framing errors as ArchiveError.

    Corruption inside an entry body only surfaces while the sink reads it,
    so the sink must not see raw zlib/tarfile exceptions.
    """

    def __init__(self, inner: IO[bytes]) -> None:
        super().__init__()
        self._inner = inner

    def readable(self) -> bool:
        return True

    def readinto(self, b: bytearray | memoryview) -> int:  # type: ignore[override]
        try:
            data = self._inner.read(len(b))
        except _FRAMING_ERRORS as e:
            raise ArchiveError(f"Corrupt package archive: {e}", cause=e) from e
        n = len(data)
        b[:n] = data
        return n
