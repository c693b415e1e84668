# === NAVMAP v1 ===
# {
#   "module": "GoReleases",
#   "purpose": "Package initialization for GoReleases",
#   "sections": [
#     {"id": "getattr", "name": "__getattr__", "anchor": "function-getattr", "kind": "function"},
#     {"id": "dir", "name": "__dir__", "anchor": "function-dir", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Public API for fetching, verifying, and extracting Go release archives.

This facade exposes the catalog lookups used to pick a release file and the
fetcher types.  The single-pass :func:`GoReleases.fetch.fetch` downloads a
file, checks its digest, and unpacks it below a destination directory with
rollback on failure.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any, Dict, Tuple

from .version import __version__

_EXPORTS: Dict[str, Tuple[str, str]] = {
    "FetchResult": ("GoReleases.fetch", "FetchResult"),
    "FetchState": ("GoReleases.fetch", "FetchState"),
    "ReleaseFetcher": ("GoReleases.fetch", "ReleaseFetcher"),
    "File": ("GoReleases.catalog", "File"),
    "FileKind": ("GoReleases.catalog", "FileKind"),
    "Release": ("GoReleases.catalog", "Release"),
    "list_supported_releases": ("GoReleases.catalog", "list_supported_releases"),
    "list_all_releases": ("GoReleases.catalog", "list_all_releases"),
    "find_release": ("GoReleases.catalog", "find_release"),
    "find_file": ("GoReleases.catalog", "find_file"),
    "FetchSettings": ("GoReleases.settings", "FetchSettings"),
    "load_settings": ("GoReleases.settings", "load_settings"),
    "CancellationToken": ("GoReleases.cancellation", "CancellationToken"),
    "GoReleasesError": ("GoReleases.errors", "GoReleasesError"),
}

__all__ = [*_EXPORTS, "__version__"]

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .cancellation import CancellationToken
    from .catalog import (
        File,
        FileKind,
        Release,
        find_file,
        find_release,
        list_all_releases,
        list_supported_releases,
    )
    from .errors import GoReleasesError
    from .fetch import FetchResult, FetchState, ReleaseFetcher
    from .settings import FetchSettings, load_settings


def __getattr__(name: str) -> Any:
    """Lazily import API exports so ``import GoReleases`` stays cheap."""

    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    module_name, attribute = target
    value = getattr(import_module(module_name), attribute)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    """Expose lazily-populated attributes in ``dir()`` results."""

    return sorted({*globals(), *__all__})
