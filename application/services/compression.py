"""Pluggable compression step used when media is moved to long-term storage."""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Compressor(Protocol):
    """Re-encodes an object body for long-term storage.

    Implementations are synchronous and may be CPU bound; the lifecycle
    service runs them in a worker thread.
    """

    def compress(self, data: bytes, content_type: Optional[str]) -> bytes: ...


class IdentityCompressor:
    """Keeps the bytes as they are.

    Archived images are still renamed to the long-term extension and tagged
    ``compressed``; the reported saving is therefore zero.
    """

    def compress(self, data: bytes, content_type: Optional[str]) -> bytes:
        return data
