"""Streaming I/O stages used by the fetch pipeline.

This subpackage bundles the digesting reader that hashes the raw download,
the gzip and tar stages that decode it lazily, and the filesystem helpers
that confine and materialise archive entries.  Re-exporting the common
symbols keeps imports short for the rest of the codebase.
"""

from .archive import ArchiveEntry, ArchiveReader, EntryType, GzipStage, ReaderState
from .filesystem import (
    MaterializedEntry,
    extraction_root,
    is_within_root,
    materialize,
    resolve_entry_path,
    resolve_link_target,
)
from .hashing import DigestingReader

__all__ = [
    "ArchiveEntry",
    "ArchiveReader",
    "DigestingReader",
    "EntryType",
    "GzipStage",
    "MaterializedEntry",
    "ReaderState",
    "extraction_root",
    "is_within_root",
    "materialize",
    "resolve_entry_path",
    "resolve_link_target",
]
