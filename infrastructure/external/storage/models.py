"""Storage data transfer objects."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class StorageObject(BaseModel):
    """One entry of a bucket listing."""
    key: str
    size: int
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    content_type: Optional[str] = None


class ObjectListing(BaseModel):
    """A single page of a listing plus the cursor for the next page."""
    objects: list[StorageObject] = Field(default_factory=list)
    next_cursor: Optional[str] = None


class UploadResult(BaseModel):
    """Upload operation result."""
    key: str
    etag: Optional[str] = None
    size: int
    content_type: Optional[str] = None


class StorageMetadata(BaseModel):
    """File metadata in storage."""
    etag: Optional[str] = None
    content_type: Optional[str] = None
    size: int
    last_modified: Optional[datetime] = None
    custom_metadata: dict[str, str] = Field(default_factory=dict)
