"""Shared fixtures for the release fetcher test suite."""

from __future__ import annotations

import logging
import os
import tarfile
from typing import Callable, Iterable, List, Optional, Union

import httpx
import pytest

from GoReleases.catalog import File, FileKind
from GoReleases.net import reset_http_client
from GoReleases.settings import FetchSettings, invalidate_default_settings_cache
from GoReleases.testing import TarMember, build_tar_gz, sha256_hex, stream_response

BASE_URL = "https://dl.example.test/dl/"
CATALOG_URL = "https://dl.example.test/dl/?mode=json"
FILENAME = "go1.21.0.linux-amd64.tar.gz"


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch):
    """Keep environment overrides, shared clients, and log handlers per test."""

    for key in list(os.environ):
        if key.startswith("GORELEASES_"):
            monkeypatch.delenv(key, raising=False)
    invalidate_default_settings_cache()
    yield
    invalidate_default_settings_cache()
    reset_http_client()
    logger = logging.getLogger("GoReleases")
    for handler in list(logger.handlers):
        if getattr(handler, "_goreleases_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.FileHandler):
                handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def settings() -> FetchSettings:
    return FetchSettings(
        download_base_url=BASE_URL,
        catalog_url=CATALOG_URL,
        connect_retries=0,
        backoff_base=0.0,
        chunk_size=1024,
    )


def go_members() -> List[TarMember]:
    """Members of a minimal release tarball."""

    return [
        TarMember("go/", type=tarfile.DIRTYPE, mode=0o755),
        TarMember("go/VERSION", data=b"go1.21.0", mode=0o644),
        TarMember("go/bin/go", type=tarfile.SYMTYPE, linkname="../pkg/tool/go", mode=0o777),
    ]


@pytest.fixture
def go_archive() -> bytes:
    return build_tar_gz(go_members())


def make_file(archive: bytes, *, filename: str = FILENAME, digest: Optional[str] = None) -> File:
    return File(
        filename=filename,
        os="linux",
        arch="amd64",
        version="go1.21.0",
        sha256=sha256_hex(archive) if digest is None else digest,
        size=len(archive),
        kind=FileKind.ARCHIVE,
    )


class ArchiveServer:
    """MockTransport handler serving one body and recording requests."""

    def __init__(
        self,
        body: Union[bytes, Callable[[], Iterable[bytes]]] = b"",
        *,
        status: int = 200,
    ) -> None:
        self.body = body
        self.status = status
        self.requests: List[httpx.Request] = []
        self._clients: List[httpx.Client] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        content = self.body() if callable(self.body) else self.body
        return stream_response(self.status, content)

    def client(self) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(self.handler))
        self._clients.append(client)
        return client

    def close(self) -> None:
        for client in self._clients:
            client.close()


@pytest.fixture
def archive_server():
    servers: List[ArchiveServer] = []

    def _factory(body=b"", *, status: int = 200) -> ArchiveServer:
        server = ArchiveServer(body, status=status)
        servers.append(server)
        return server

    yield _factory
    for server in servers:
        server.close()


@pytest.fixture
def failing_client():
    """Client whose transport fails the test if any request is sent."""

    def handler(request: httpx.Request) -> httpx.Response:
        pytest.fail(f"unexpected HTTP request to {request.url}")

    client = httpx.Client(transport=httpx.MockTransport(handler))
    yield client
    client.close()


@pytest.fixture
def file_for() -> Callable[..., File]:
    """Factory building a catalog entry whose digest matches an archive."""
    return make_file
