"""Exception hierarchy shared across release lookup, download, and extraction.

The release pipeline spans configuration parsing, HTTP retrieval, streaming
decompression, archive materialisation, and digest verification.  This module
groups the failure modes into a small hierarchy so caller code can react to
high-level categories (for example, a bad destination vs. a tampered
download) while still having access to the offending path, status code, or
digest pair when finer-grained diagnostics are required.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "GoReleasesError",
    "ConfigError",
    "PreconditionError",
    "NetworkError",
    "FormatError",
    "CorruptArchiveError",
    "TruncatedArchiveError",
    "ArchiveParseError",
    "SizeMismatchError",
    "UnsupportedEntryError",
    "MissingLinkTargetError",
    "PathTraversalError",
    "IntegrityError",
    "FilesystemError",
    "FetchCancelled",
    "CatalogError",
    "ReleaseNotFoundError",
]


class GoReleasesError(RuntimeError):
    """Base exception for release lookup, download, or extraction failures."""


class ConfigError(GoReleasesError):
    """Raised when settings files or environment overrides are invalid."""


class PreconditionError(GoReleasesError):
    """Raised before any side effect when the fetch request cannot proceed.

    Covers a missing or non-directory destination, an extraction root that
    already exists, and unsupported container extensions.
    """


class NetworkError(GoReleasesError):
    """Raised when an HTTP request fails to connect or returns a bad status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class FormatError(GoReleasesError):
    """Raised when the downloaded bytes are not a well-formed gzip tar stream."""


class CorruptArchiveError(FormatError):
    """Raised when the compressed stream cannot be decoded."""


class TruncatedArchiveError(FormatError):
    """Raised when the compressed or archive stream ends unexpectedly."""


class ArchiveParseError(FormatError):
    """Raised when a tar header is malformed."""


class SizeMismatchError(FormatError):
    """Raised when a regular file's copied byte count differs from its header."""

    def __init__(self, message: str, *, path: str, expected: int, actual: int) -> None:
        super().__init__(message)
        self.path = path
        self.expected = expected
        self.actual = actual


class UnsupportedEntryError(FormatError):
    """Raised for archive entry types that cannot be materialised."""

    def __init__(self, message: str, *, path: str, entry_type: str) -> None:
        super().__init__(message)
        self.path = path
        self.entry_type = entry_type


class MissingLinkTargetError(FormatError):
    """Raised when a hard link refers to an entry that was not extracted earlier."""

    def __init__(self, message: str, *, path: str, target: str) -> None:
        super().__init__(message)
        self.path = path
        self.target = target


class PathTraversalError(GoReleasesError):
    """Raised when an entry path or link target resolves outside the extraction root."""

    def __init__(self, message: str, *, raw_path: str, resolved: str, root: str) -> None:
        super().__init__(message)
        self.raw_path = raw_path
        self.resolved = resolved
        self.root = root


class IntegrityError(GoReleasesError):
    """Raised when the digest of the downloaded bytes does not match the catalog."""

    def __init__(self, message: str, *, expected: str, actual: str) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class FilesystemError(GoReleasesError):
    """Raised when creating a filesystem object under the extraction root fails."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class FetchCancelled(GoReleasesError):
    """Raised when a caller cancels an in-flight fetch through its token."""


class CatalogError(GoReleasesError):
    """Raised when the release catalog cannot be decoded."""


class ReleaseNotFoundError(GoReleasesError):
    """Raised when no release or file matches the requested selection."""
# === NAVMAP v1 ===
# {
#   "module": "GoReleases.errors",
#   "purpose": "Define the exception hierarchy used across release lookup, download, and extraction",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "preconditions", "name": "Precondition & Network Errors", "anchor": "PRE", "kind": "api"},
#     {"id": "format", "name": "Archive Format Errors", "anchor": "FMT", "kind": "api"},
#     {"id": "safety", "name": "Traversal, Integrity & Filesystem Errors", "anchor": "SAF", "kind": "api"},
#     {"id": "catalog", "name": "Catalog Errors", "anchor": "CAT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
