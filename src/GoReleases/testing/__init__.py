"""Testing utilities for exercising the release fetcher without a network.

Helpers here install an HTTPX client backed by an ``httpx.MockTransport`` as
the shared client, and build small gzip tarballs in memory.
"""

from __future__ import annotations

import contextlib
import gzip
import hashlib
import io
import tarfile
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Sequence, Union

import httpx

from ..net import configure_http_client, reset_http_client

__all__ = [
    "TarMember",
    "build_tar_gz",
    "sha256_hex",
    "stream_response",
    "use_mock_http_client",
]


@contextlib.contextmanager
def use_mock_http_client(transport: httpx.BaseTransport, **client_kwargs) -> Iterator[httpx.Client]:
    """Temporarily install an HTTPX client backed by ``transport``."""

    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client)
    try:
        yield client
    finally:
        reset_http_client()


def stream_response(
    status_code: int, body: Union[bytes, Iterable[bytes]] = b"", **kwargs
) -> httpx.Response:
    """Build a response whose body is still unread, like one from a real server.

    ``httpx.Response(content=b"...")`` reads its body eagerly, which leaves
    nothing for :meth:`httpx.Response.iter_raw` to stream.
    """

    if isinstance(body, (bytes, bytearray)):
        return httpx.Response(status_code, stream=httpx.ByteStream(bytes(body)), **kwargs)
    return httpx.Response(status_code, content=body, **kwargs)


@dataclass
class TarMember:
    """Declarative description of one member of a test archive.

    ``type`` is a raw tar type flag such as :data:`tarfile.SYMTYPE`.  When
    ``declared_size`` is set it replaces the header size while ``data`` is
    written as-is, which produces archives whose content is shorter or
    longer than advertised.
    """

    name: str
    data: bytes = b""
    type: bytes = tarfile.REGTYPE
    mode: int = 0o644
    linkname: str = ""
    declared_size: Optional[int] = None


def _header_bytes(member: TarMember, fmt: int) -> bytes:
    info = tarfile.TarInfo(member.name)
    info.type = member.type
    info.mode = member.mode
    info.linkname = member.linkname
    info.size = len(member.data) if member.type in (tarfile.REGTYPE, tarfile.AREGTYPE) else 0
    if member.declared_size is not None:
        info.size = member.declared_size
    return info.tobuf(format=fmt)


def build_tar_gz(members: Sequence[TarMember], *, fmt: int = tarfile.GNU_FORMAT) -> bytes:
    """Return a gzip-compressed tar stream holding ``members`` in order.

    Headers are written by hand so malformed archives (size mismatches,
    escaping names) can be produced as easily as well-formed ones.
    """

    raw = io.BytesIO()
    for member in members:
        raw.write(_header_bytes(member, fmt))
        if member.data:
            raw.write(member.data)
            remainder = len(member.data) % tarfile.BLOCKSIZE
            if remainder:
                raw.write(b"\0" * (tarfile.BLOCKSIZE - remainder))
    raw.write(b"\0" * (tarfile.BLOCKSIZE * 2))
    return gzip.compress(raw.getvalue())


def sha256_hex(data: bytes) -> str:
    """Return the hex SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()
