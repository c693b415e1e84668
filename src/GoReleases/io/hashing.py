"""Digest accumulation over a byte stream as it is consumed."""

from __future__ import annotations

import hashlib
import io
from typing import BinaryIO

__all__ = ["DigestingReader"]


class DigestingReader(io.RawIOBase):
    """Pass-through reader that feeds every byte it returns into a digest.

    Reads are delegated to ``source`` unchanged.  Bytes returned by a read
    are hashed before they are handed to the caller, so the digest always
    covers exactly the bytes observed downstream, even when a later read
    raises.  Source exceptions propagate as-is.

    Examples:
        >>> reader = DigestingReader(io.BytesIO(b"abc"))
        >>> reader.read()
        b'abc'
        >>> reader.hexdigest()[:12]
        'ba7816bf8f01'
    """

    def __init__(self, source: BinaryIO, algorithm: str = "sha256") -> None:
        super().__init__()
        self._source = source
        self._hasher = hashlib.new(algorithm)
        self._bytes_read = 0

    @property
    def algorithm(self) -> str:
        return self._hasher.name

    @property
    def bytes_read(self) -> int:
        """Number of bytes consumed from the source so far."""
        return self._bytes_read

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:  # type: ignore[override]
        data = self._source.read(len(buffer))
        if not data:
            return 0
        size = len(data)
        buffer[:size] = data
        self._hasher.update(data)
        self._bytes_read += size
        return size

    def drain(self, chunk_size: int = 64 * 1024) -> int:
        """Consume the source to EOF, digesting everything; return bytes drained."""
        drained = 0
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                return drained
            drained += len(chunk)

    def hexdigest(self) -> str:
        """Return the lowercase hex digest of all bytes read so far."""
        return self._hasher.hexdigest()
