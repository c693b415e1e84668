# === NAVMAP v1 ===
# {
#   "module": "GoReleases.io.archive",
#   "purpose": "Streaming gzip decompression and forward-only tar entry iteration",
#   "sections": [
#     {"id": "types", "name": "EntryType / ReaderState / ArchiveEntry", "anchor": "TYP", "kind": "api"},
#     {"id": "gzip", "name": "GzipStage", "anchor": "GZP", "kind": "class"},
#     {"id": "reader", "name": "ArchiveReader", "anchor": "RDR", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Streaming decompression and archive parsing for release tarballs.

Both stages are lazy and forward-only.  :class:`GzipStage` decodes one block
at a time from whatever it wraps (normally a
:class:`~GoReleases.io.hashing.DigestingReader`), and :class:`ArchiveReader`
walks the decoded stream with :mod:`tarfile` in pipe mode (``"r|"``), so
nothing is ever seeked or buffered beyond a single tar record.

Decoder and parser failures are translated into the
:class:`~GoReleases.errors.FormatError` family at this boundary; callers never
see :mod:`gzip`, :mod:`zlib` or :mod:`tarfile` exceptions.
"""

from __future__ import annotations

import enum
import gzip
import io
import logging
import tarfile
import zlib
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Iterator, Optional

from ..errors import ArchiveParseError, CorruptArchiveError, TruncatedArchiveError

__all__ = [
    "EntryType",
    "ReaderState",
    "ArchiveEntry",
    "GzipStage",
    "ArchiveReader",
]

LOGGER = logging.getLogger("GoReleases.io.archive")


class EntryType(str, enum.Enum):
    """Kinds of archive entry the materializer distinguishes."""

    REGULAR_FILE = "file"
    DIRECTORY = "directory"
    HARD_LINK = "hardlink"
    SYMBOLIC_LINK = "symlink"
    SKIPPED = "skipped"
    OTHER = "other"


class ReaderState(str, enum.Enum):
    """Lifecycle of an :class:`ArchiveReader`.

    ``EXHAUSTED`` means the entry stream ended without error; ``FAILED`` means
    it ended through an exception or was abandoned before the end.
    """

    PENDING = "pending"
    ITERATING = "iterating"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


_TAR_TYPE_NAMES = {
    tarfile.REGTYPE: "regular file",
    tarfile.AREGTYPE: "regular file",
    tarfile.CONTTYPE: "contiguous file",
    tarfile.LNKTYPE: "hard link",
    tarfile.SYMTYPE: "symbolic link",
    tarfile.CHRTYPE: "character device",
    tarfile.BLKTYPE: "block device",
    tarfile.DIRTYPE: "directory",
    tarfile.FIFOTYPE: "fifo",
    tarfile.GNUTYPE_SPARSE: "sparse file",
    tarfile.XGLTYPE: "global header",
}


def describe_tar_type(type_flag: bytes) -> str:
    """Return a readable name for a raw tar type flag."""
    return _TAR_TYPE_NAMES.get(type_flag, f"type {type_flag!r}")


@dataclass(frozen=True)
class ArchiveEntry:
    """One archive member as seen by the materializer.

    ``open()`` is only meaningful for regular files and only while the
    reader is positioned on this entry; advancing the iterator invalidates
    the previous entry's content stream.
    """

    raw_path: str
    type: EntryType
    size: int = 0
    mode: int = 0o644
    link_target: str = ""
    type_name: str = ""
    _opener: Optional[Callable[[], BinaryIO]] = field(default=None, repr=False, compare=False)

    def open(self) -> BinaryIO:
        """Return a stream yielding exactly ``size`` content bytes."""
        if self.type is not EntryType.REGULAR_FILE or self._opener is None:
            raise ValueError(f"entry {self.raw_path!r} has no content stream")
        return self._opener()


class GzipStage(io.RawIOBase):
    """Lazy gzip decoder over a readable byte stream.

    Closing the stage releases the decoder state but leaves ``source`` open.
    """

    def __init__(self, source: BinaryIO) -> None:
        super().__init__()
        self._decoder = gzip.GzipFile(fileobj=source, mode="rb")

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:  # type: ignore[override]
        try:
            return self._decoder.readinto(buffer)
        except EOFError as exc:
            raise TruncatedArchiveError(f"compressed stream ended unexpectedly: {exc}") from exc
        except (gzip.BadGzipFile, zlib.error) as exc:
            raise CorruptArchiveError(f"compressed stream is corrupt: {exc}") from exc

    def drain(self, chunk_size: int = 64 * 1024) -> int:
        """Decode and discard the remainder of the stream; return bytes discarded."""
        discarded = 0
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                return discarded
            discarded += len(chunk)

    def close(self) -> None:
        if not self.closed:
            self._decoder.close()
        super().close()


class _StrictTarInfo(tarfile.TarInfo):
    """TarInfo that reports damaged headers instead of ending the archive.

    :mod:`tarfile` treats a bad checksum or a short header block after the
    first member as the end of the archive.  Those are surfaced as format
    errors here.  A zero block or a clean end of stream still ends iteration.
    """

    @classmethod
    def fromtarfile(cls, tarfile_):  # type: ignore[override]
        try:
            return super().fromtarfile(tarfile_)
        except (tarfile.EOFHeaderError, tarfile.EmptyHeaderError):
            raise
        except tarfile.TruncatedHeaderError as exc:
            raise TruncatedArchiveError(f"archive header truncated: {exc}") from exc
        except tarfile.HeaderError as exc:
            raise ArchiveParseError(f"malformed archive header: {exc}") from exc


class _EntryStream(io.RawIOBase):
    """Bounded member stream translating short reads into format errors."""

    def __init__(self, member_file: BinaryIO, raw_path: str) -> None:
        super().__init__()
        self._member_file = member_file
        self._raw_path = raw_path

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:  # type: ignore[override]
        try:
            data = self._member_file.read(len(buffer))
        except tarfile.ReadError as exc:
            raise TruncatedArchiveError(
                f"archive ended inside the content of {self._raw_path!r}: {exc}"
            ) from exc
        size = len(data)
        buffer[:size] = data
        return size


class ArchiveReader:
    """Forward-only iterator over the members of a decoded tar stream.

    Examples:
        >>> reader = ArchiveReader(io.BytesIO(b"\\0" * 1024))
        >>> list(reader.entries())
        []
        >>> reader.state
        <ReaderState.EXHAUSTED: 'exhausted'>
    """

    def __init__(self, stream: BinaryIO, *, logger: Optional[logging.Logger] = None) -> None:
        self._stream = stream
        self._logger = logger or LOGGER
        self._state = ReaderState.PENDING
        self._entries_read = 0

    @property
    def state(self) -> ReaderState:
        return self._state

    @property
    def entries_read(self) -> int:
        return self._entries_read

    def entries(self) -> Iterator[ArchiveEntry]:
        """Yield archive entries in on-disk order.

        Raises:
            RuntimeError: If called more than once.
            ArchiveParseError: If a header is malformed.
            TruncatedArchiveError: If the archive ends inside a header.
        """
        if self._state is not ReaderState.PENDING:
            raise RuntimeError("archive entries can only be iterated once")
        self._state = ReaderState.ITERATING
        return self._iterate()

    def _iterate(self) -> Iterator[ArchiveEntry]:
        try:
            try:
                archive = tarfile.open(fileobj=self._stream, mode="r|", tarinfo=_StrictTarInfo)
            except tarfile.ReadError as exc:
                raise ArchiveParseError(f"not a tar archive: {exc}") from exc
            with archive:
                while True:
                    try:
                        member = archive.next()
                    except tarfile.ReadError as exc:
                        # header errors are already translated by _StrictTarInfo
                        raise TruncatedArchiveError(
                            f"archive ended between members: {exc}"
                        ) from exc
                    if member is None:
                        break
                    # Stream mode appends every header to ``members``; nothing reads it back.
                    archive.members.clear()
                    self._entries_read += 1
                    yield self._to_entry(archive, member)
        except BaseException:
            self._state = ReaderState.FAILED
            raise
        self._state = ReaderState.EXHAUSTED
        self._logger.debug(
            "archive entries exhausted",
            extra={"stage": "extract", "entries": self._entries_read},
        )

    def _to_entry(self, archive: tarfile.TarFile, member: tarfile.TarInfo) -> ArchiveEntry:
        type_name = describe_tar_type(member.type)
        common = {
            "raw_path": member.name,
            "size": member.size,
            "mode": member.mode,
            "type_name": type_name,
        }
        # Sparse members also answer isreg(); check them first.
        if member.type == tarfile.GNUTYPE_SPARSE or member.issparse():
            return ArchiveEntry(type=EntryType.SKIPPED, **common)
        if member.isreg():

            def _open(member: tarfile.TarInfo = member) -> BinaryIO:
                member_file = archive.extractfile(member)
                if member_file is None:
                    raise ArchiveParseError(f"no content available for {member.name!r}")
                return io.BufferedReader(_EntryStream(member_file, member.name))

            return ArchiveEntry(type=EntryType.REGULAR_FILE, _opener=_open, **common)
        if member.isdir():
            return ArchiveEntry(type=EntryType.DIRECTORY, **common)
        if member.islnk():
            return ArchiveEntry(type=EntryType.HARD_LINK, link_target=member.linkname, **common)
        if member.issym():
            return ArchiveEntry(
                type=EntryType.SYMBOLIC_LINK, link_target=member.linkname, **common
            )
        return ArchiveEntry(type=EntryType.OTHER, **common)
