"""HTTPX MockTransport coverage for the download stream and shared client."""

from __future__ import annotations

import httpx
import pytest

from GoReleases import net
from GoReleases.cancellation import CancellationToken
from GoReleases.errors import FetchCancelled, NetworkError
from GoReleases.net import get_json, open_download_stream, retry_with_backoff
from GoReleases.testing import stream_response, use_mock_http_client


def _no_sleep(_: float) -> None:
    return None


def test_stream_yields_raw_body(settings):
    payload = b"\x1f\x8b" + b"z" * 5000

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Accept-Encoding"] == "identity"
        assert request.headers["User-Agent"].startswith("goreleases/")
        return stream_response(200, payload)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with open_download_stream("https://dl.example.test/dl/x.tar.gz", settings=settings, client=client) as body:
            assert body.read() == payload


def test_redirects_are_followed(settings):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if request.url.host == "dl.example.test":
            return httpx.Response(302, headers={"Location": "https://cdn.example.test/x.tar.gz"})
        return stream_response(200, b"archive")

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with open_download_stream("https://dl.example.test/dl/x.tar.gz", settings=settings, client=client) as body:
            assert body.read() == b"archive"

    assert seen == ["https://dl.example.test/dl/x.tar.gz", "https://cdn.example.test/x.tar.gz"]


@pytest.mark.parametrize("status", [304, 403, 404, 500])
def test_non_200_status_raises_network_error(settings, status):
    def handler(request: httpx.Request) -> httpx.Response:
        return stream_response(status, b"nope")

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(NetworkError) as excinfo:
            with open_download_stream("https://dl.example.test/dl/x.tar.gz", settings=settings, client=client):
                pytest.fail("body should not be yielded")

    assert excinfo.value.status_code == status
    assert excinfo.value.url == "https://dl.example.test/dl/x.tar.gz"


def test_connect_errors_exhaust_retries(settings):
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    retrying = settings.model_copy(update={"connect_retries": 2})
    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(NetworkError) as excinfo:
            with open_download_stream(
                "https://dl.example.test/dl/x.tar.gz", settings=retrying, client=client, sleep=_no_sleep
            ):
                pass

    assert len(attempts) == 3
    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_mid_body_failures_are_not_retried(settings):
    attempts = []

    def body():
        yield b"f" * 2048
        raise httpx.ReadError("connection reset")

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return stream_response(200, body())

    retrying = settings.model_copy(update={"connect_retries": 3})
    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with open_download_stream(
            "https://dl.example.test/dl/x.tar.gz", settings=retrying, client=client, sleep=_no_sleep
        ) as reader:
            assert reader.read(5) == b"fffff"
            with pytest.raises(NetworkError):
                reader.read()

    assert len(attempts) == 1


def test_cancelled_token_stops_reads(settings):
    token = CancellationToken()

    def handler(request: httpx.Request) -> httpx.Response:
        return stream_response(200, b"x" * 4096)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with open_download_stream(
            "https://dl.example.test/dl/x.tar.gz", settings=settings, client=client, cancellation_token=token
        ) as reader:
            reader.read(10)
            token.cancel()
            with pytest.raises(FetchCancelled):
                reader.read(10)


def test_retry_with_backoff_reports_attempts():
    calls = []
    reported = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise httpx.ConnectTimeout("slow")
        return "ok"

    result = retry_with_backoff(
        flaky,
        max_attempts=3,
        backoff_base=0.0,
        jitter=0.0,
        callback=lambda attempt, exc, delay: reported.append((attempt, type(exc).__name__)),
        sleep=_no_sleep,
    )

    assert result == "ok"
    assert reported == [(1, "ConnectTimeout"), (2, "ConnectTimeout")]


def test_retry_with_backoff_does_not_retry_other_errors():
    calls = []

    def broken():
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        retry_with_backoff(broken, max_attempts=5, sleep=_no_sleep)
    assert len(calls) == 1


def test_get_json_uses_shared_client(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["mode"] == "json"
        assert request.url.params["include"] == "all"
        return httpx.Response(200, json=[{"version": "go1.21.0"}])

    with use_mock_http_client(httpx.MockTransport(handler)) as client:
        assert net.get_http_client() is client
        payload = get_json(settings.catalog_url, params={"include": "all"}, settings=settings)

    assert payload == [{"version": "go1.21.0"}]


@pytest.mark.parametrize(
    "params, expected",
    [
        (None, "https://dl.example.test/dl/?mode=json"),
        ({}, "https://dl.example.test/dl/?mode=json"),
        ({"include": "all"}, "https://dl.example.test/dl/?mode=json&include=all"),
    ],
)
def test_get_json_keeps_query_already_in_url(settings, params, expected):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=[])

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        get_json(settings.catalog_url, params=params, settings=settings, client=client)

    assert seen == [expected]


def test_reset_builds_a_fresh_default_client():
    with use_mock_http_client(httpx.MockTransport(lambda request: httpx.Response(200))) as client:
        assert net.get_http_client() is client

    fresh = net.get_http_client()
    try:
        assert fresh is not client
        assert fresh.follow_redirects is True
    finally:
        net.reset_http_client()
