"""Shared HTTPX client and streaming download helpers.

The fetch pipeline is single pass: bytes flow from the socket through the
digest into the decompressor and onto disk without ever being stored as a
whole.  :func:`open_download_stream` therefore retries only the establishment
of the connection; once the body starts flowing any transport failure is
final and surfaces as :class:`~GoReleases.errors.NetworkError`.
"""

from __future__ import annotations

import contextlib
import io
import logging
import random
import ssl
import threading
import time
from typing import Any, Callable, Iterator, Mapping, Optional, TypeVar

import certifi
import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from .cancellation import CancellationToken
from .errors import NetworkError
from .settings import FetchSettings, get_default_settings

__all__ = [
    "ResponseReader",
    "configure_http_client",
    "get_http_client",
    "get_json",
    "is_retryable_error",
    "open_download_stream",
    "reset_http_client",
    "retry_with_backoff",
]

LOGGER = logging.getLogger("GoReleases.net")

T = TypeVar("T")

_CLIENT_LOCK = threading.RLock()
_HTTP_CLIENT: Optional[httpx.Client] = None


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _request_hook(request: httpx.Request) -> None:
    request.extensions.setdefault("goreleases_start", time.perf_counter())


def _response_hook(response: httpx.Response) -> None:
    start = response.request.extensions.get("goreleases_start")
    elapsed = time.perf_counter() - start if isinstance(start, float) else None
    LOGGER.debug(
        "http-response",
        extra={
            "stage": "download",
            "url": str(response.request.url),
            "status": response.status_code,
            "elapsed_sec": elapsed,
        },
    )


def _timeout_for(settings: FetchSettings) -> httpx.Timeout:
    return httpx.Timeout(
        connect=settings.timeout_connect,
        read=settings.timeout_read,
        write=settings.timeout_read,
        pool=settings.timeout_connect,
    )


def _build_http_client(settings: FetchSettings) -> httpx.Client:
    return httpx.Client(
        transport=httpx.HTTPTransport(retries=0),
        timeout=_timeout_for(settings),
        verify=_build_ssl_context(),
        trust_env=True,
        follow_redirects=settings.follow_redirects,
        headers={"User-Agent": settings.user_agent},
        event_hooks={"request": [_request_hook], "response": [_response_hook]},
    )


def _close_client_unlocked() -> None:
    global _HTTP_CLIENT
    if _HTTP_CLIENT is not None:
        _HTTP_CLIENT.close()
    _HTTP_CLIENT = None


def configure_http_client(client: Optional[httpx.Client] = None) -> None:
    """Override the shared HTTPX client (``None`` closes the current one)."""

    global _HTTP_CLIENT
    with _CLIENT_LOCK:
        if _HTTP_CLIENT is not client:
            _close_client_unlocked()
        _HTTP_CLIENT = client


def reset_http_client() -> None:
    """Close the shared client so the next call builds a fresh default one."""

    with _CLIENT_LOCK:
        _close_client_unlocked()


def get_http_client(settings: Optional[FetchSettings] = None) -> httpx.Client:
    """Return the shared HTTPX client, creating it if necessary."""

    global _HTTP_CLIENT
    with _CLIENT_LOCK:
        if _HTTP_CLIENT is None:
            _HTTP_CLIENT = _build_http_client(settings or get_default_settings())
        return _HTTP_CLIENT


def is_retryable_error(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` is a transport failure worth retrying."""

    return isinstance(exc, (httpx.TransportError, ssl.SSLError))


def retry_with_backoff(
    func: Callable[[], T],
    *,
    retryable: Callable[[BaseException], bool] = is_retryable_error,
    max_attempts: int = 3,
    backoff_base: float = 0.5,
    jitter: float = 0.25,
    callback: Optional[Callable[[int, BaseException, float], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Execute ``func`` with exponential backoff until it succeeds."""

    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    class _BackoffWait(wait_base):
        def __call__(self, retry_state) -> float:  # type: ignore[override]
            attempt_number = max(retry_state.attempt_number, 1)
            delay = backoff_base * (2 ** (attempt_number - 1))
            if jitter > 0:
                delay += random.uniform(0.0, jitter)
            return max(delay, 0.0)

    def _before_sleep(retry_state) -> None:
        if callback is None or retry_state.outcome is None:
            return
        exc = retry_state.outcome.exception()
        if exc is None:
            return
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        callback(retry_state.attempt_number, exc, delay)

    retry_controller = Retrying(
        retry=retry_if_exception(retryable),
        wait=_BackoffWait(),
        stop=stop_after_attempt(max_attempts),
        sleep=sleep,
        reraise=True,
        before_sleep=_before_sleep,
    )
    return retry_controller(func)


class ResponseReader(io.RawIOBase):
    """Read-only file object over the raw body of a streamed response.

    Cancellation is checked on every read.  Transport failures mid-body are
    raised as :class:`NetworkError`.
    """

    def __init__(
        self,
        response: httpx.Response,
        *,
        chunk_size: int = 64 * 1024,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> None:
        super().__init__()
        self._response = response
        self._chunks = response.iter_raw(chunk_size)
        self._pending = b""
        self._eof = False
        self._token = cancellation_token

    @property
    def url(self) -> str:
        return str(self._response.url)

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:  # type: ignore[override]
        if self._token is not None:
            self._token.raise_if_cancelled("download")
        while not self._pending and not self._eof:
            try:
                chunk = next(self._chunks, None)
            except httpx.HTTPError as exc:
                raise NetworkError(
                    f"download of {self.url} failed mid-stream: {exc}", url=self.url
                ) from exc
            if chunk is None:
                self._eof = True
            else:
                self._pending = chunk
        if not self._pending:
            return 0
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size


def _log_retry(url: str) -> Callable[[int, BaseException, float], None]:
    def _callback(attempt: int, exc: BaseException, delay: float) -> None:
        LOGGER.warning(
            "connection attempt failed, retrying",
            extra={
                "stage": "download",
                "url": url,
                "attempt": attempt,
                "error": str(exc),
                "delay_sec": round(delay, 3),
            },
        )

    return _callback


@contextlib.contextmanager
def open_download_stream(
    url: str,
    *,
    settings: Optional[FetchSettings] = None,
    client: Optional[httpx.Client] = None,
    cancellation_token: Optional[CancellationToken] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[ResponseReader]:
    """Open ``url`` for streaming and yield a reader over its raw body.

    Raises:
        NetworkError: If the connection cannot be established after the
            configured retries, or the final response status is not 200.
        FetchCancelled: If ``cancellation_token`` is cancelled.
    """

    cfg = settings or get_default_settings()
    http = client or get_http_client(cfg)

    def _connect() -> httpx.Response:
        if cancellation_token is not None:
            cancellation_token.raise_if_cancelled("download")
        request = http.build_request(
            "GET",
            url,
            headers={"User-Agent": cfg.user_agent, "Accept-Encoding": "identity"},
            timeout=_timeout_for(cfg),
        )
        return http.send(request, stream=True, follow_redirects=cfg.follow_redirects)

    try:
        response = retry_with_backoff(
            _connect,
            max_attempts=cfg.connect_retries + 1,
            backoff_base=cfg.backoff_base,
            callback=_log_retry(url),
            sleep=sleep,
        )
    except httpx.HTTPError as exc:
        raise NetworkError(f"GET {url} failed: {exc}", url=url) from exc

    try:
        if response.status_code != 200:
            raise NetworkError(
                f"GET {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
                url=url,
            )
        LOGGER.info(
            "download started",
            extra={
                "stage": "download",
                "url": url,
                "final_url": str(response.url),
                "content_length": response.headers.get("Content-Length"),
            },
        )
        yield ResponseReader(
            response, chunk_size=cfg.chunk_size, cancellation_token=cancellation_token
        )
    finally:
        response.close()


def get_json(
    url: str,
    *,
    params: Optional[Mapping[str, str]] = None,
    settings: Optional[FetchSettings] = None,
    client: Optional[httpx.Client] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """GET ``url`` and return the decoded JSON body.

    Raises:
        NetworkError: On transport failure or a non-200 status.
        ValueError: If the body is not valid JSON.
    """

    cfg = settings or get_default_settings()
    http = client or get_http_client(cfg)

    # Passing ``params=`` to the client would replace the query already in ``url``.
    request_url = httpx.URL(url).copy_merge_params(dict(params or {}))

    def _get() -> httpx.Response:
        return http.get(
            request_url,
            headers={"User-Agent": cfg.user_agent, "Accept": "application/json"},
            timeout=_timeout_for(cfg),
            follow_redirects=cfg.follow_redirects,
        )

    try:
        response = retry_with_backoff(
            _get,
            max_attempts=cfg.connect_retries + 1,
            backoff_base=cfg.backoff_base,
            callback=_log_retry(url),
            sleep=sleep,
        )
    except httpx.HTTPError as exc:
        raise NetworkError(f"GET {url} failed: {exc}", url=url) from exc
    if response.status_code != 200:
        raise NetworkError(
            f"GET {url} returned HTTP {response.status_code}",
            status_code=response.status_code,
            url=str(response.request.url),
        )
    return response.json()


# === NAVMAP v1 ===
# {
#   "module": "GoReleases.net",
#   "purpose": "Shared HTTPX client, connection retries, and streaming response readers",
#   "sections": [
#     {"id": "client", "name": "Shared client", "anchor": "CLI", "kind": "api"},
#     {"id": "retry", "name": "retry_with_backoff", "anchor": "RTY", "kind": "function"},
#     {"id": "reader", "name": "ResponseReader", "anchor": "RDR", "kind": "class"},
#     {"id": "stream", "name": "open_download_stream", "anchor": "STR", "kind": "function"},
#     {"id": "json", "name": "get_json", "anchor": "JSN", "kind": "function"}
#   ]
# }
# === /NAVMAP ===
