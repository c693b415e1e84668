# === NAVMAP v1 ===
# {
#   "module": "GoReleases.io.filesystem",
#   "purpose": "Confine archive entry paths to the extraction root and materialise entries on disk",
#   "sections": [
#     {"id": "paths", "name": "Path Sanitisation", "anchor": "PTH", "kind": "helpers"},
#     {"id": "materialize", "name": "Entry Materialisation", "anchor": "MAT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Path confinement and on-disk materialisation of archive entries.

Entry paths are interpreted relative to the destination directory, the way
release tarballs are laid out (``go/bin/go`` lands in ``<dest>/go/bin/go``).
Absolute entry paths are re-rooted under the destination rather than
honoured.  Every resolved path must fall inside the extraction root
(``<dest>/go``) before anything is written for the entry.

Lexical checks are paired with real-path checks on parent directories and
symlink targets, so a symlink created by an earlier entry cannot be used to
step outside the extraction root.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, Optional

from ..errors import (
    FilesystemError,
    MissingLinkTargetError,
    PathTraversalError,
    SizeMismatchError,
    UnsupportedEntryError,
)
from .archive import ArchiveEntry, EntryType

__all__ = [
    "MaterializedEntry",
    "extraction_root",
    "is_within_root",
    "resolve_entry_path",
    "resolve_link_target",
    "materialize",
]

LOGGER = logging.getLogger("GoReleases.io.filesystem")

_DEFAULT_CHUNK_SIZE = 64 * 1024
_OPEN_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, "O_NOFOLLOW", 0) | getattr(os, "O_BINARY", 0)


@dataclass(frozen=True)
class MaterializedEntry:
    """Result of writing one archive entry."""

    path: str
    type: EntryType
    bytes_written: int = 0
    link_target: Optional[str] = None


def extraction_root(destination: str, root_name: str = "go") -> str:
    """Return the extraction root for ``destination`` with symlinks resolved."""
    return os.path.join(os.path.realpath(destination), root_name)


def is_within_root(path: str, root: str, *, allow_root: bool = False) -> bool:
    """Return ``True`` when ``path`` is strictly inside ``root`` (or equal, if allowed)."""
    if path == root:
        return allow_root
    return path.startswith(root.rstrip(os.sep) + os.sep)


def _confine(raw_path: str, resolved: str, root: str, *, allow_root: bool, what: str) -> str:
    if not is_within_root(resolved, root, allow_root=allow_root):
        raise PathTraversalError(
            f"{what} {raw_path!r} resolves to {resolved!r}, outside extraction root {root!r}",
            raw_path=raw_path,
            resolved=resolved,
            root=root,
        )
    return resolved


def _join_under(base: str, raw_path: str) -> str:
    # Absolute member names are re-rooted under ``base``.
    return os.path.normpath(os.path.join(base, raw_path.lstrip("/")))


def resolve_entry_path(
    raw_path: str, destination: str, root: str, *, allow_root: bool = False
) -> str:
    """Resolve an archive member name to a confined absolute path.

    Args:
        raw_path: Member name exactly as stored in the archive.
        destination: Real path of the destination directory.
        root: Extraction root inside ``destination``.
        allow_root: Accept a result equal to ``root`` (directory entries).

    Raises:
        PathTraversalError: If the resolved path is not inside ``root``.
    """
    if "\x00" in raw_path:
        raise PathTraversalError(
            f"entry path {raw_path!r} contains a NUL byte",
            raw_path=raw_path,
            resolved="",
            root=root,
        )
    return _confine(
        raw_path, _join_under(destination, raw_path), root, allow_root=allow_root, what="entry path"
    )


def resolve_link_target(entry: ArchiveEntry, entry_path: str, destination: str, root: str) -> str:
    """Resolve and confine the target of a link entry.

    Hard-link targets name another archive member and resolve like entry
    paths.  Symbolic-link targets resolve relative to the directory holding
    the link; absolute targets are re-rooted under ``destination``.

    Raises:
        PathTraversalError: If the target is not inside ``root``.
    """
    target = entry.link_target
    if "\x00" in target:
        raise PathTraversalError(
            f"link target {target!r} contains a NUL byte", raw_path=target, resolved="", root=root
        )
    if entry.type is EntryType.HARD_LINK:
        resolved = _join_under(destination, target)
        return _confine(target, resolved, root, allow_root=False, what="hard link target")
    if entry.type is EntryType.SYMBOLIC_LINK:
        if os.path.isabs(target):
            resolved = _join_under(destination, target)
        else:
            resolved = os.path.normpath(os.path.join(os.path.dirname(entry_path), target))
        _confine(target, resolved, root, allow_root=True, what="symlink target")
        _confine(
            target, os.path.realpath(resolved), root, allow_root=True, what="symlink target"
        )
        return resolved
    raise ValueError(f"entry {entry.raw_path!r} is not a link")


def _prepare_parent(path: str, raw_path: str, root: str) -> None:
    parent = os.path.dirname(path)
    real_parent = os.path.realpath(parent)
    _confine(raw_path, real_parent, root, allow_root=True, what="parent directory of")
    try:
        os.makedirs(parent, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(
            f"cannot create parent directory {parent!r}: {exc}", path=parent
        ) from exc


def _write_regular(entry: ArchiveEntry, path: str, chunk_size: int) -> int:
    written = 0
    try:
        fd = os.open(path, _OPEN_FLAGS, 0o600)
        with os.fdopen(fd, "wb") as target, entry.open() as source:
            written = _copy_bounded(source, target, entry.size, chunk_size)
            # ArchiveReader streams raise on short content first; other sources may not.
            if written != entry.size:
                raise SizeMismatchError(
                    f"extracted {written} bytes for {entry.raw_path!r}, header declares {entry.size}",
                    path=entry.raw_path,
                    expected=entry.size,
                    actual=written,
                )
            os.fchmod(target.fileno(), entry.mode & 0o777)
    except OSError as exc:
        raise FilesystemError(f"cannot write {path!r}: {exc}", path=path) from exc
    return written


def _copy_bounded(source: BinaryIO, target: BinaryIO, size: int, chunk_size: int) -> int:
    remaining = size
    copied = 0
    while remaining > 0:
        chunk = source.read(min(chunk_size, remaining))
        if not chunk:
            break
        target.write(chunk)
        copied += len(chunk)
        remaining -= len(chunk)
    return copied


def materialize(
    entry: ArchiveEntry,
    destination: str,
    root: str,
    *,
    chunk_size: int = _DEFAULT_CHUNK_SIZE,
    logger: Optional[logging.Logger] = None,
) -> Optional[MaterializedEntry]:
    """Write ``entry`` below ``root``.

    Args:
        entry: Entry produced by :class:`~GoReleases.io.archive.ArchiveReader`.
        destination: Real path of the destination directory.
        root: Extraction root (``destination`` joined with the root name).
        chunk_size: Copy buffer size for regular files.
        logger: Logger for per-entry debug records.

    Returns:
        The materialised entry, or ``None`` for entries that are skipped.

    Raises:
        PathTraversalError: If the entry or its link target escapes ``root``.
        SizeMismatchError: If a regular file's content is shorter than declared.
        MissingLinkTargetError: If a hard link refers to a missing path.
        UnsupportedEntryError: For device nodes, FIFOs, and unknown types.
        FilesystemError: If the filesystem operation itself fails.
    """
    log = logger or LOGGER
    if entry.type is EntryType.SKIPPED:
        log.debug(
            "skipping archive entry",
            extra={"stage": "extract", "entry": entry.raw_path, "entry_type": entry.type_name},
        )
        return None
    if entry.type is EntryType.OTHER:
        raise UnsupportedEntryError(
            f"unsupported archive entry type ({entry.type_name}) for {entry.raw_path!r}",
            path=entry.raw_path,
            entry_type=entry.type_name,
        )

    path = resolve_entry_path(
        entry.raw_path, destination, root, allow_root=entry.type is EntryType.DIRECTORY
    )
    link_target: Optional[str] = None
    if entry.type in (EntryType.HARD_LINK, EntryType.SYMBOLIC_LINK):
        link_target = resolve_link_target(entry, path, destination, root)

    if entry.type is EntryType.DIRECTORY:
        if path != root:
            _prepare_parent(path, entry.raw_path, root)
        try:
            os.mkdir(path, 0o777)
        except OSError as exc:
            raise FilesystemError(f"cannot create directory {path!r}: {exc}", path=path) from exc
        result = MaterializedEntry(path=path, type=entry.type)
    elif entry.type is EntryType.REGULAR_FILE:
        _prepare_parent(path, entry.raw_path, root)
        written = _write_regular(entry, path, chunk_size)
        result = MaterializedEntry(path=path, type=entry.type, bytes_written=written)
    elif entry.type is EntryType.HARD_LINK:
        assert link_target is not None
        _confine(
            entry.link_target,
            os.path.realpath(os.path.dirname(link_target)),
            root,
            allow_root=True,
            what="hard link target directory of",
        )
        if not os.path.lexists(link_target):
            raise MissingLinkTargetError(
                f"hard link {entry.raw_path!r} refers to {entry.link_target!r}, "
                "which has not been extracted",
                path=entry.raw_path,
                target=entry.link_target,
            )
        _prepare_parent(path, entry.raw_path, root)
        try:
            os.link(link_target, path, follow_symlinks=False)
        except OSError as exc:
            raise FilesystemError(f"cannot create hard link {path!r}: {exc}", path=path) from exc
        result = MaterializedEntry(path=path, type=entry.type, link_target=link_target)
    else:
        assert link_target is not None
        _prepare_parent(path, entry.raw_path, root)
        relative = os.path.relpath(link_target, os.path.dirname(path))
        try:
            os.symlink(relative, path)
        except OSError as exc:
            raise FilesystemError(f"cannot create symlink {path!r}: {exc}", path=path) from exc
        result = MaterializedEntry(path=path, type=entry.type, link_target=relative)

    log.debug(
        "materialized archive entry",
        extra={
            "stage": "extract",
            "entry": entry.raw_path,
            "entry_type": entry.type.value,
            "bytes": result.bytes_written,
        },
    )
    return result
