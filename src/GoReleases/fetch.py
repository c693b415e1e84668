# === NAVMAP v1 ===
# {
#   "module": "GoReleases.fetch",
#   "purpose": "Single-pass download, digest, and extraction of a release archive with rollback",
#   "sections": [
#     {"id": "state", "name": "FetchState / FetchResult", "anchor": "STA", "kind": "api"},
#     {"id": "guard", "name": "ExtractionGuard", "anchor": "GRD", "kind": "class"},
#     {"id": "fetcher", "name": "ReleaseFetcher", "anchor": "FET", "kind": "class"},
#     {"id": "fetch", "name": "fetch", "anchor": "FN", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Fetch, verify, and extract a release archive in one streaming pass.

The pipeline chains four stages over the HTTP body::

    ResponseReader -> DigestingReader -> GzipStage -> ArchiveReader -> materialize

Bytes are digested exactly as they arrive, decompressed lazily, and written
entry by entry below ``<destination>/go``.  Only once the entry stream has
ended cleanly is the digest compared with the expected one.  Any failure after
validation removes the extraction root, so callers either get a complete,
verified tree or nothing at all.

Examples:
    >>> from GoReleases import catalog, fetch  # doctest: +SKIP
    >>> release = catalog.find_release(catalog.list_supported_releases(), "go1.22.1")  # doctest: +SKIP
    >>> file = catalog.find_file(release, "linux", "amd64", catalog.FileKind.ARCHIVE)  # doctest: +SKIP
    >>> fetch.fetch(file, "/opt")  # doctest: +SKIP
"""

from __future__ import annotations

import contextlib
import enum
import logging
import os
import shutil
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, MutableMapping, Optional, Tuple, Union

import httpx

from .cancellation import CancellationToken
from .catalog import File
from .errors import IntegrityError, PreconditionError
from .io.archive import ArchiveReader, GzipStage
from .io.filesystem import extraction_root, materialize
from .io.hashing import DigestingReader
from .logging_utils import generate_correlation_id
from .net import open_download_stream
from .settings import FetchSettings, get_default_settings

__all__ = [
    "SUPPORTED_EXTENSION",
    "FetchState",
    "FetchResult",
    "ExtractionGuard",
    "ReleaseFetcher",
    "fetch",
]

LOGGER = logging.getLogger("GoReleases.fetch")

SUPPORTED_EXTENSION = ".tar.gz"

PathLike = Union[str, "os.PathLike[str]"]


class FetchState(str, enum.Enum):
    """Lifecycle of a :class:`ReleaseFetcher`."""

    IDLE = "idle"
    VALIDATING = "validating"
    ABORTED = "aborted"
    EXTRACTING = "extracting"
    VERIFYING = "verifying"
    FINALIZED = "finalized"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a successful fetch."""

    root: Path
    url: str
    digest: str
    digest_algorithm: str
    bytes_downloaded: int
    entry_counts: Dict[str, int] = field(default_factory=dict)
    correlation_id: str = ""
    elapsed_sec: float = 0.0

    @property
    def entries(self) -> int:
        return sum(self.entry_counts.values())


class _FetchLogAdapter(logging.LoggerAdapter):
    """Adapter attaching the fetch correlation id to every record."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


class ExtractionGuard:
    """Scoped guard that removes the extraction root unless committed.

    Removal problems are logged and never raised, so the exception that
    triggered the rollback is the one the caller sees.
    """

    def __init__(self, root: PathLike, *, logger: Optional[Any] = None) -> None:
        self._root = os.fspath(root)
        self._logger = logger or LOGGER
        self._committed = False
        self._rolled_back = False

    @property
    def committed(self) -> bool:
        return self._committed

    @property
    def rolled_back(self) -> bool:
        return self._rolled_back

    def commit(self) -> None:
        """Keep the extraction root when the guard exits."""
        self._committed = True

    def __enter__(self) -> "ExtractionGuard":
        self._committed = False
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not self._committed:
            self.rollback(reason=exc)
        return False

    def rollback(self, reason: Optional[BaseException] = None) -> bool:
        """Remove the extraction root; return ``True`` when nothing is left behind."""
        root = self._root
        try:
            if os.path.islink(root) or os.path.isfile(root):
                os.unlink(root)
            elif os.path.isdir(root):
                shutil.rmtree(root)
        except OSError as err:
            self._logger.warning(
                "rollback could not remove extraction root",
                extra={"stage": "rollback", "root": root, "error": str(err)},
            )
            return False
        self._rolled_back = True
        self._logger.info(
            "extraction rolled back",
            extra={
                "stage": "rollback",
                "root": root,
                "reason": type(reason).__name__ if reason is not None else None,
            },
        )
        return True


class ReleaseFetcher:
    """Download, verify, and extract one release file into a destination.

    A fetcher owns its digest, its state, and its rollback guard, and runs
    once.  Use :func:`fetch` for the common one-shot call.

    Args:
        file: Catalog entry describing the archive and its expected digest.
        destination: Existing directory that receives the extraction root.
        settings: Fetch settings; defaults to :func:`get_default_settings`.
        client: HTTPX client; defaults to the shared client in :mod:`GoReleases.net`.
        cancellation_token: Token checked between entries and on every read.
        logger: Logger for structured records.
        sleep: Sleep function used between connection retries.
    """

    def __init__(
        self,
        file: File,
        destination: PathLike,
        *,
        settings: Optional[FetchSettings] = None,
        client: Optional[httpx.Client] = None,
        cancellation_token: Optional[CancellationToken] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.file = file
        self.destination = os.fspath(destination)
        self.settings = settings or get_default_settings()
        self.correlation_id = generate_correlation_id()
        self._client = client
        self._token = cancellation_token
        self._sleep = sleep
        self._log = _FetchLogAdapter(
            logger or LOGGER,
            {"correlation_id": self.correlation_id, "release_file": file.filename},
        )
        self._state = FetchState.IDLE

    @property
    def state(self) -> FetchState:
        return self._state

    @property
    def url(self) -> str:
        return self.settings.download_url(self.file.filename)

    def run(self) -> FetchResult:
        """Execute the pipeline.

        Raises:
            RuntimeError: If this fetcher has already run.
            PreconditionError: If validation fails; nothing was touched.
            NetworkError: If the download fails or returns a non-200 status.
            FormatError: If the archive is corrupt, truncated, or unsupported.
            PathTraversalError: If an entry escapes the extraction root.
            IntegrityError: If the digest does not match.
            FilesystemError: If writing an entry fails.
            FetchCancelled: If the cancellation token fires.
        """
        if self._state is not FetchState.IDLE:
            raise RuntimeError(f"fetcher already ran (state={self._state.value})")
        root = self._validate()
        return self._extract_and_verify(root)

    def _validate(self) -> str:
        self._state = FetchState.VALIDATING
        try:
            root = self._check_preconditions()
        except PreconditionError as exc:
            self._state = FetchState.ABORTED
            self._log.error("fetch rejected", extra={"stage": "validate", "error": str(exc)})
            raise
        self._log.debug("preconditions satisfied", extra={"stage": "validate", "root": root})
        return root

    def _check_preconditions(self) -> str:
        filename = self.file.filename
        if not filename.endswith(SUPPORTED_EXTENSION):
            raise PreconditionError(
                f"unsupported archive {filename!r}: only {SUPPORTED_EXTENSION} files can be extracted"
            )
        if not self.file.sha256:
            raise PreconditionError(f"no expected digest recorded for {filename!r}")
        if not os.path.exists(self.destination):
            raise PreconditionError(f"destination {self.destination!r} does not exist")
        if not os.path.isdir(self.destination):
            raise PreconditionError(f"destination {self.destination!r} is not a directory")
        root = extraction_root(self.destination, self.settings.extraction_root_name)
        if os.path.lexists(root):
            raise PreconditionError(f"extraction root {root!r} already exists")
        return root

    def _extract_and_verify(self, root: str) -> FetchResult:
        cfg = self.settings
        real_destination = os.path.dirname(root)
        url = self.url
        counts: Counter = Counter()
        started = time.perf_counter()
        self._state = FetchState.EXTRACTING
        self._log.info("fetch started", extra={"stage": "download", "url": url, "root": root})

        guard = ExtractionGuard(root, logger=self._log)
        try:
            with guard:
                with open_download_stream(
                    url,
                    settings=cfg,
                    client=self._client,
                    cancellation_token=self._token,
                    sleep=self._sleep,
                ) as body:
                    digesting = DigestingReader(body, cfg.digest_algorithm)
                    with GzipStage(digesting) as decoded:
                        reader = ArchiveReader(decoded, logger=self._log)
                        with contextlib.closing(reader.entries()) as entries:
                            for entry in entries:
                                if self._token is not None:
                                    self._token.raise_if_cancelled("extract")
                                materialize(
                                    entry,
                                    real_destination,
                                    root,
                                    chunk_size=cfg.chunk_size,
                                    logger=self._log,
                                )
                                counts[entry.type.value] += 1
                        self._state = FetchState.VERIFYING
                        decoded.drain(cfg.chunk_size)
                    digesting.drain(cfg.chunk_size)
                self._verify(digesting)
                guard.commit()
        except BaseException as exc:
            self._state = FetchState.ROLLED_BACK
            if isinstance(exc, Exception):
                self._log.error(
                    "fetch failed",
                    extra={"stage": "rollback", "error": str(exc), "error_type": type(exc).__name__},
                )
            raise

        self._state = FetchState.FINALIZED
        elapsed = time.perf_counter() - started
        result = FetchResult(
            root=Path(root),
            url=url,
            digest=digesting.hexdigest(),
            digest_algorithm=digesting.algorithm,
            bytes_downloaded=digesting.bytes_read,
            entry_counts=dict(counts),
            correlation_id=self.correlation_id,
            elapsed_sec=elapsed,
        )
        self._log.info(
            "fetch complete",
            extra={
                "stage": "verify",
                "root": root,
                "bytes": result.bytes_downloaded,
                "entries": result.entries,
                "elapsed_sec": round(elapsed, 3),
            },
        )
        return result

    def _verify(self, digesting: DigestingReader) -> None:
        expected = self.file.sha256.strip().lower()
        actual = digesting.hexdigest().lower()
        if actual != expected:
            raise IntegrityError(
                f"{digesting.algorithm} mismatch for {self.file.filename}: "
                f"expected {expected}, got {actual}",
                expected=expected,
                actual=actual,
            )
        self._log.debug(
            "digest verified",
            extra={"stage": "verify", "algorithm": digesting.algorithm, "bytes": digesting.bytes_read},
        )


def fetch(
    file: File,
    destination: PathLike,
    *,
    settings: Optional[FetchSettings] = None,
    client: Optional[httpx.Client] = None,
    cancellation_token: Optional[CancellationToken] = None,
    logger: Optional[logging.Logger] = None,
) -> FetchResult:
    """Download ``file``, verify its digest, and extract it below ``destination``.

    On success ``<destination>/go`` holds the complete archive contents.  On
    any failure after validation it does not exist.  See
    :meth:`ReleaseFetcher.run` for the exceptions raised.
    """
    return ReleaseFetcher(
        file,
        destination,
        settings=settings,
        client=client,
        cancellation_token=cancellation_token,
        logger=logger,
    ).run()
