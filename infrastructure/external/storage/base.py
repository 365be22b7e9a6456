"""Storage provider protocol definitions."""
from typing import Protocol, Optional, runtime_checkable

from .models import (
    UploadResult,
    ObjectListing,
    StorageMetadata,
)


@runtime_checkable
class StorageProvider(Protocol):
    """Core storage provider protocol for duck typing."""

    async def upload(
        self,
        file: bytes,
        key: str,
        metadata: Optional[dict] = None,
        content_type: Optional[str] = None
    ) -> UploadResult:
        """Upload file to storage."""
        ...

    async def download(self, key: str) -> bytes:
        """Download file from storage."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete file from storage."""
        ...

    async def exists(self, key: str) -> bool:
        """Check if file exists in storage."""
        ...

    async def list_objects(
        self,
        prefix: str = "",
        cursor: Optional[str] = None,
        limit: int = 1000
    ) -> ObjectListing:
        """List one page of objects; pass ``next_cursor`` back to continue."""
        ...

    async def get_metadata(self, key: str) -> StorageMetadata:
        """Get file metadata."""
        ...

    async def health_check(self) -> bool:
        """Check storage connectivity and permissions."""
        ...

    async def close(self) -> None:
        """Release connections held by the provider."""
        ...
