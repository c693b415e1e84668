"""Cooperative cancellation primitives shared by long-running fetches.

A fetch streams a release archive from the network straight onto disk.  This
module offers the light-weight :class:`CancellationToken` a caller hands to
:func:`GoReleases.fetch.fetch` to stop that work from another thread.
The pipeline checks the token between archive entries and inside every network
read; a cancelled fetch takes the same rollback path as any other failure, so
the partially populated extraction root is removed.
"""

from __future__ import annotations

import threading

from .errors import FetchCancelled

__all__ = ["CancellationToken"]


class CancellationToken:
    """Thread-safe cancellation token for cooperative task cancellation.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._is_cancelled.is_set()

    def raise_if_cancelled(self, stage: str = "fetch") -> None:
        """Raise :class:`FetchCancelled` when cancellation has been requested.

        Args:
            stage: Pipeline stage named in the error message.
        """
        if self._is_cancelled.is_set():
            raise FetchCancelled(f"{stage} was cancelled")


# === NAVMAP v1 ===
# {
#   "module": "GoReleases.cancellation",
#   "purpose": "Provide cooperative cancellation tokens for in-flight release fetches",
#   "sections": [
#     {"id": "token", "name": "CancellationToken", "anchor": "TOK", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
