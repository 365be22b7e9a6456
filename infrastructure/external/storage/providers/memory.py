"""In-memory storage provider.

Holds every object in a dictionary keyed by object key. Nothing survives a
restart; used for tests, local demos and dry runs of the lifecycle worker.
"""
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from core.logging_config import get_logger
from ..base import StorageProvider
from ..config import StorageConfig
from ..models import (
    UploadResult,
    StorageObject,
    ObjectListing,
    StorageMetadata,
)
from ..exceptions import NotFoundError
from ..utils import guess_content_type

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _MemoryObject:
    data: bytes
    last_modified: datetime
    content_type: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def etag(self) -> str:
        return hashlib.md5(self.data).hexdigest()


class MemoryProvider(StorageProvider):
    """Dictionary-backed storage provider.

    Attributes:
        clock: Source of ``last_modified`` for uploads.
    """

    def __init__(
        self,
        config: Optional[StorageConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or StorageConfig(type="memory", bucket="memory")
        self.clock = clock
        self._objects: dict[str, _MemoryObject] = {}

    def seed(
        self,
        key: str,
        data: bytes,
        *,
        last_modified: datetime,
        content_type: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        """Insert an object with an explicit upload instant (fixtures, backfills)."""
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=timezone.utc)
        self._objects[key] = _MemoryObject(
            data=bytes(data),
            last_modified=last_modified,
            content_type=content_type,
            metadata={str(k): str(v) for k, v in (metadata or {}).items()},
        )

    def keys(self) -> list[str]:
        return sorted(self._objects)

    async def upload(
        self,
        file: bytes,
        key: str,
        metadata: Optional[dict] = None,
        content_type: Optional[str] = None
    ) -> UploadResult:
        self.seed(
            key,
            file,
            last_modified=self.clock(),
            content_type=content_type,
            metadata=metadata,
        )
        return UploadResult(
            key=key,
            etag=self._objects[key].etag,
            size=len(file),
            content_type=content_type or guess_content_type(key),
        )

    async def download(self, key: str) -> bytes:
        return self._get(key, "download").data

    async def delete(self, key: str) -> bool:
        return self._objects.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        return key in self._objects

    async def list_objects(
        self,
        prefix: str = "",
        cursor: Optional[str] = None,
        limit: int = 1000
    ) -> ObjectListing:
        keys = [
            key for key in sorted(self._objects)
            if key.startswith(prefix) and (cursor is None or key > cursor)
        ]
        page = keys[:limit]
        objects = [
            StorageObject(
                key=key,
                size=len(self._objects[key].data),
                etag=self._objects[key].etag,
                last_modified=self._objects[key].last_modified,
                content_type=self._objects[key].content_type,
            )
            for key in page
        ]
        next_cursor = page[-1] if len(keys) > limit else None
        return ObjectListing(objects=objects, next_cursor=next_cursor)

    async def get_metadata(self, key: str) -> StorageMetadata:
        obj = self._get(key, "get_metadata")
        return StorageMetadata(
            etag=obj.etag,
            content_type=obj.content_type or guess_content_type(key),
            size=len(obj.data),
            last_modified=obj.last_modified,
            custom_metadata=dict(obj.metadata),
        )

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    def _get(self, key: str, operation: str) -> _MemoryObject:
        try:
            return self._objects[key]
        except KeyError:
            raise NotFoundError(f"Object not found: {key}", key=key, operation=operation)


async def build_memory_provider(config: StorageConfig) -> MemoryProvider:
    """Build in-memory storage provider."""
    logger.warning("memory_storage_selected", message="Objects are not persisted across restarts")
    return MemoryProvider(config)
