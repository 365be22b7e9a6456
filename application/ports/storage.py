"""Application-owned object store port (hexagonal architecture).

The lifecycle use cases need exactly four capabilities from the bucket:
paged listing, get, put and delete. Keeping the port this small lets the
pipeline run against any provider, or an in-memory fake in tests.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable
from dataclasses import dataclass, field

from domain.lifecycle import StoredObject


@dataclass
class ObjectPage:
    objects: list[StoredObject] = field(default_factory=list)
    next_cursor: Optional[str] = None


@dataclass
class StoredBody:
    key: str
    body: bytes
    content_type: Optional[str] = None
    custom_metadata: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class ObjectStorePort(Protocol):
    async def list(
        self,
        prefix: str = "",
        cursor: Optional[str] = None,
        limit: int = 1000,
    ) -> ObjectPage: ...

    async def get(self, key: str) -> StoredBody: ...

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: Optional[str] = None,
        custom_metadata: Optional[dict[str, str]] = None,
    ) -> None: ...

    async def delete(self, key: str) -> None: ...


class ObjectNotFoundError(LookupError):
    """Raised by ``ObjectStorePort.get`` when the key does not exist."""

    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key
