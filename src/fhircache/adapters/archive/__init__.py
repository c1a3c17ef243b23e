"""Archive reader and sinks for package tarballs."""

from fhircache.adapters.archive.reader import (
    Archive,
    ChunkReader,
    NameFilter,
    NameTransform,
    drain,
    open_chunks,
)
from fhircache.adapters.archive.sinks import (
    CallbackSink,
    DiskSink,
    MemorySink,
    Sink,
    Sinks,
)


__all__ = [
    "Archive",
    "CallbackSink",
    "ChunkReader",
    "DiskSink",
    "MemorySink",
    "NameFilter",
    "NameTransform",
    "Sink",
    "Sinks",
    "drain",
    "open_chunks",
]
