"""Release catalog lookup and platform file selection.

The download site publishes its release list as JSON (``?mode=json``).  By
default only the currently supported releases are listed; ``include=all``
returns every release ever published, including unstable ones.
"""

from __future__ import annotations

import enum
import logging
import platform
from typing import Any, List, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import CatalogError, ReleaseNotFoundError
from .net import get_json
from .settings import FetchSettings, get_default_settings

__all__ = [
    "FileKind",
    "File",
    "Release",
    "list_supported_releases",
    "list_all_releases",
    "find_release",
    "find_file",
    "host_platform",
]

LOGGER = logging.getLogger("GoReleases.catalog")


class FileKind(str, enum.Enum):
    """Kind of file published for a release."""

    ARCHIVE = "archive"
    INSTALLER = "installer"
    SOURCE = "source"


class File(BaseModel):
    """One downloadable file of a release."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    filename: str
    os: str = ""
    arch: str = ""
    version: str = ""
    sha256: str = ""
    size: int = Field(default=0, ge=0)
    kind: FileKind


class Release(BaseModel):
    """A published release and its files."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    version: str
    stable: bool = False
    files: List[File] = Field(default_factory=list)


_RELEASES_ADAPTER = TypeAdapter(List[Release])


def _list_releases(
    params: dict,
    *,
    settings: Optional[FetchSettings],
    client: Optional[httpx.Client],
) -> List[Release]:
    cfg = settings or get_default_settings()
    try:
        payload: Any = get_json(cfg.catalog_url, params=params, settings=cfg, client=client)
    except ValueError as exc:
        raise CatalogError(f"release catalog at {cfg.catalog_url} is not valid JSON: {exc}") from exc
    try:
        releases = _RELEASES_ADAPTER.validate_python(payload)
    except PydanticValidationError as exc:
        raise CatalogError(f"release catalog at {cfg.catalog_url} is malformed: {exc}") from exc
    LOGGER.debug(
        "release catalog loaded",
        extra={"stage": "catalog", "url": cfg.catalog_url, "releases": len(releases)},
    )
    return releases


def list_supported_releases(
    *, settings: Optional[FetchSettings] = None, client: Optional[httpx.Client] = None
) -> List[Release]:
    """Return the currently supported releases, newest first.

    Raises:
        NetworkError: If the catalog cannot be retrieved.
        CatalogError: If the catalog cannot be decoded.
    """
    return _list_releases({}, settings=settings, client=client)


def list_all_releases(
    *, settings: Optional[FetchSettings] = None, client: Optional[httpx.Client] = None
) -> List[Release]:
    """Return every published release, including unstable and unsupported ones."""
    return _list_releases({"include": "all"}, settings=settings, client=client)


def find_release(releases: List[Release], version: Optional[str] = None) -> Release:
    """Return the release named ``version``, or the newest stable one when omitted.

    ``version`` may be given with or without the ``go`` prefix.

    Raises:
        ReleaseNotFoundError: If no release matches.
    """
    if version is None:
        for release in releases:
            if release.stable:
                return release
        raise ReleaseNotFoundError("no stable release listed")
    wanted = version if version.startswith("go") else f"go{version}"
    for release in releases:
        if release.version == wanted:
            return release
    raise ReleaseNotFoundError(f"release {wanted!r} not found")


def find_file(
    release: Release, os: str, arch: str, kind: FileKind = FileKind.ARCHIVE
) -> File:
    """Return the file of ``release`` built for ``os``/``arch`` of the given kind.

    Raises:
        ReleaseNotFoundError: If the release has no such file.
    """
    for candidate in release.files:
        if candidate.os == os and candidate.arch == arch and candidate.kind == kind:
            return candidate
    raise ReleaseNotFoundError(
        f"release {release.version} has no {kind.value} file for {os}/{arch}"
    )


_OS_NAMES = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
    "netbsd": "netbsd",
}

_ARCH_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv6l": "armv6l",
    "armv7l": "armv6l",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
    "loongarch64": "loong64",
}


def host_platform() -> Tuple[str, str]:
    """Return the Go ``(os, arch)`` names for the running machine.

    Raises:
        ReleaseNotFoundError: If the platform has no Go equivalent.
    """
    system = platform.system().lower()
    machine = platform.machine().lower()
    try:
        return _OS_NAMES[system], _ARCH_NAMES[machine]
    except KeyError:
        raise ReleaseNotFoundError(f"no release builds for platform {system}/{machine}") from None
