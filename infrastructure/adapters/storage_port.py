"""Infrastructure adapter that implements the application ObjectStorePort
by delegating to the concrete StorageProvider and translating models.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from application.ports.storage import (
    ObjectNotFoundError,
    ObjectPage,
    ObjectStorePort,
    StoredBody,
)
from domain.lifecycle import StoredObject
from infrastructure.external.storage import NotFoundError, StorageProvider, StorageObject


def _to_stored_object(obj: StorageObject) -> StoredObject:
    uploaded_at = obj.last_modified
    if uploaded_at is None:
        # Providers that cannot report an instant make the object look new
        uploaded_at = datetime.now(timezone.utc)
    return StoredObject(
        key=obj.key,
        size=int(obj.size or 0),
        uploaded_at=uploaded_at,
        content_type=obj.content_type,
    )


class StorageProviderPortAdapter(ObjectStorePort):
    def __init__(self, provider: StorageProvider):
        self.provider = provider

    async def list(
        self,
        prefix: str = "",
        cursor: Optional[str] = None,
        limit: int = 1000,
    ) -> ObjectPage:
        listing = await self.provider.list_objects(prefix, cursor, limit)
        return ObjectPage(
            objects=[_to_stored_object(o) for o in listing.objects],
            next_cursor=listing.next_cursor,
        )

    async def get(self, key: str) -> StoredBody:
        try:
            body = await self.provider.download(key)
            meta = await self.provider.get_metadata(key)
        except NotFoundError as e:
            raise ObjectNotFoundError(key) from e
        return StoredBody(
            key=key,
            body=body,
            content_type=meta.content_type,
            custom_metadata=dict(meta.custom_metadata or {}),
        )

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: Optional[str] = None,
        custom_metadata: Optional[dict[str, str]] = None,
    ) -> None:
        await self.provider.upload(body, key, metadata=custom_metadata, content_type=content_type)

    async def delete(self, key: str) -> None:
        await self.provider.delete(key)
