# === NAVMAP v1 ===
# {
#   "module": "GoReleases.cli",
#   "purpose": "Typer command-line interface for listing and fetching releases",
#   "sections": [
#     {"id": "clicontext", "name": "CliContext", "anchor": "class-clicontext", "kind": "class"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"},
#     {"id": "list-cmd", "name": "list_cmd", "anchor": "function-list-cmd", "kind": "function"},
#     {"id": "fetch-cmd", "name": "fetch_cmd", "anchor": "function-fetch-cmd", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command-line interface for the release fetcher.

Example:
    $ goreleases list --all --format json
    $ goreleases fetch /usr/local --version 1.22.1
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import catalog
from .errors import GoReleasesError, PreconditionError
from .fetch import fetch
from .logging_utils import setup_logging
from .settings import FetchSettings, get_default_settings, load_settings
from .version import __version__

__all__ = ["app", "CliContext", "get_context", "main"]

_console = Console()
_err_console = Console(stderr=True)

_OUTPUT_FORMATS = ("table", "json")


class CliContext:
    """Shared state for one CLI invocation."""

    def __init__(
        self,
        config: Optional[Path] = None,
        verbosity: int = 0,
        log_dir: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.verbosity = verbosity
        self.console = _console
        self.settings: FetchSettings = (
            load_settings(config) if config is not None else get_default_settings()
        )
        self.log_dir = log_dir or self.settings.log_dir

    @property
    def log_level(self) -> str:
        if self.verbosity >= 2:
            return "DEBUG"
        if self.verbosity == 1:
            return "INFO"
        return self.settings.log_level


app = typer.Typer(
    name="goreleases",
    help="Fetch, verify, and extract Go release archives",
    no_args_is_help=True,
)

_context: Optional[CliContext] = None


def get_context() -> CliContext:
    """Return the context built by the global callback.

    Raises:
        RuntimeError: If no command callback has run yet.
    """
    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


def _fail(exc: GoReleasesError) -> NoReturn:
    _err_console.print(f"error: {exc}", style="bold red", markup=False, highlight=False, soft_wrap=True)
    raise typer.Exit(2 if isinstance(exc, PreconditionError) else 1)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="GORELEASES_CONFIG",
        help="Path to a YAML settings file",
    ),
    verbosity: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    ),
    log_dir: Optional[Path] = typer.Option(
        None,
        "--log-dir",
        help="Also write JSON log lines to this directory",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
) -> None:
    """Fetch, verify, and extract Go release archives.

        goreleases list
        goreleases fetch ~/sdk --version 1.22.1
    """
    global _context

    if version:
        typer.echo(f"goreleases {__version__}")
        raise typer.Exit(0)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)

    try:
        _context = CliContext(config=config, verbosity=verbosity, log_dir=log_dir)
    except GoReleasesError as exc:
        _fail(exc)
    setup_logging(level=_context.log_level, log_dir=_context.log_dir)


@app.command("list")
def list_cmd(
    include_all: bool = typer.Option(
        False, "--all", "-a", help="Include unstable and unsupported releases"
    ),
    output_format: str = typer.Option(
        "table", "--format", "-f", help="Output format: table or json"
    ),
) -> None:
    """List releases from the release catalog."""
    ctx = get_context()
    if output_format not in _OUTPUT_FORMATS:
        raise typer.BadParameter(
            f"expected one of {', '.join(_OUTPUT_FORMATS)}", param_hint="--format"
        )
    try:
        if include_all:
            releases = catalog.list_all_releases(settings=ctx.settings)
        else:
            releases = catalog.list_supported_releases(settings=ctx.settings)
    except GoReleasesError as exc:
        _fail(exc)

    if output_format == "json":
        typer.echo(json.dumps([release.model_dump(mode="json") for release in releases], indent=2))
        return
    table = Table(title="Go releases")
    table.add_column("Version")
    table.add_column("Stable")
    table.add_column("Files", justify="right")
    for release in releases:
        table.add_row(release.version, "yes" if release.stable else "no", str(len(release.files)))
    ctx.console.print(table)


def _select_file(
    releases: List[catalog.Release],
    version: Optional[str],
    os_name: Optional[str],
    arch: Optional[str],
) -> catalog.File:
    release = catalog.find_release(releases, version)
    if os_name is None or arch is None:
        host_os, host_arch = catalog.host_platform()
        os_name = os_name or host_os
        arch = arch or host_arch
    return catalog.find_file(release, os_name, arch, catalog.FileKind.ARCHIVE)


@app.command("fetch")
def fetch_cmd(
    destination: Path = typer.Argument(
        ..., help="Existing directory that will receive the 'go' directory"
    ),
    version: Optional[str] = typer.Option(
        None, "--version", "-r", help="Release to fetch, e.g. 1.22.1 (default: latest stable)"
    ),
    os_name: Optional[str] = typer.Option(None, "--os", help="Target OS (default: this machine)"),
    arch: Optional[str] = typer.Option(
        None, "--arch", help="Target architecture (default: this machine)"
    ),
) -> None:
    """Download, verify, and extract a release archive into DESTINATION."""
    ctx = get_context()
    try:
        if version is None:
            releases = catalog.list_supported_releases(settings=ctx.settings)
        else:
            releases = catalog.list_all_releases(settings=ctx.settings)
        file = _select_file(releases, version, os_name, arch)
        ctx.console.print(f"Fetching {file.filename}", markup=False, highlight=False, soft_wrap=True)
        result = fetch(file, destination, settings=ctx.settings)
    except GoReleasesError as exc:
        _fail(exc)
    except KeyboardInterrupt:
        _err_console.print("interrupted, extraction rolled back", style="yellow", soft_wrap=True)
        raise typer.Exit(130)

    ctx.console.print(
        f"Extracted {file.version or file.filename} into {result.root}",
        markup=False,
        highlight=False,
        soft_wrap=True,
    )
    ctx.console.print(
        f"{result.digest_algorithm} {result.digest} ({result.bytes_downloaded} bytes, "
        f"{result.entries} entries)",
        markup=False,
        highlight=False,
        soft_wrap=True,
    )
