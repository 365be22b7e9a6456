"""Local file system storage provider implementation."""
import hashlib
import json
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone
import aiofiles
import aiofiles.os

from core.logging_config import get_logger
from ..base import StorageProvider
from ..config import StorageConfig
from ..models import (
    UploadResult,
    StorageObject,
    ObjectListing,
    StorageMetadata,
)
from ..exceptions import (
    StorageError,
    NotFoundError,
    ValidationError
)
from ..utils import guess_content_type

logger = get_logger(__name__)

_META_SUFFIX = ".meta"
_HEALTH_CHECK_FILE = ".health_check"


class LocalProvider(StorageProvider):
    """Local file system storage provider.

    Objects are plain files below ``local_base_path``; content type and
    custom metadata live in a JSON sidecar ``<name>.meta``. The object's
    modification time doubles as its upload instant.
    """

    def __init__(self, config: StorageConfig):
        self.config = config
        self.base_path = Path(config.local_base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    async def upload(
        self,
        file: bytes,
        key: str,
        metadata: Optional[dict] = None,
        content_type: Optional[str] = None
    ) -> UploadResult:
        """Upload file to local storage."""
        file_path = self._safe_path(key)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)

            async with aiofiles.open(file_path, 'wb') as f:
                await f.write(file)

            meta_path = self._metadata_path(file_path)
            if metadata or content_type:
                await self._save_metadata(file_path, metadata, content_type)
            elif meta_path.exists():
                # Overwrite semantics: stale sidecar must not survive a re-upload
                await aiofiles.os.remove(meta_path)
        except Exception as e:
            raise StorageError(f"Failed to upload {key}: {e}", key=key, operation="upload") from e

        logger.debug("local_uploaded", key=key, size=len(file))
        return UploadResult(
            key=key,
            etag=hashlib.md5(file).hexdigest(),
            size=len(file),
            content_type=content_type or guess_content_type(key)
        )

    async def download(self, key: str) -> bytes:
        """Download file from local storage."""
        file_path = self._safe_path(key)
        if not file_path.is_file():
            raise NotFoundError(f"File not found: {key}", key=key, operation="download")

        try:
            async with aiofiles.open(file_path, 'rb') as f:
                return await f.read()
        except Exception as e:
            raise StorageError(f"Failed to download {key}: {e}", key=key, operation="download") from e

    async def delete(self, key: str) -> bool:
        """Delete file from local storage."""
        file_path = self._safe_path(key)
        if not file_path.is_file():
            return False

        try:
            await aiofiles.os.remove(file_path)
            meta_path = self._metadata_path(file_path)
            if meta_path.exists():
                await aiofiles.os.remove(meta_path)
        except Exception as e:
            raise StorageError(f"Failed to delete {key}: {e}", key=key, operation="delete") from e

        logger.debug("local_deleted", key=key)
        return True

    async def exists(self, key: str) -> bool:
        """Check if file exists in local storage."""
        try:
            return self._safe_path(key).is_file()
        except ValidationError:
            return False

    async def list_objects(
        self,
        prefix: str = "",
        cursor: Optional[str] = None,
        limit: int = 1000
    ) -> ObjectListing:
        """List objects in key order; ``cursor`` is the last key already returned."""
        clean_prefix = prefix.lstrip("/") if prefix else ""
        try:
            keys = sorted(
                key for key in self._iter_keys()
                if key.startswith(clean_prefix) and (cursor is None or key > cursor)
            )

            page = keys[:limit]
            objects = []
            for key in page:
                path = self.base_path / key
                stat = path.stat()
                meta = await self._load_metadata(path)
                objects.append(
                    StorageObject(
                        key=key,
                        size=stat.st_size,
                        last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                        content_type=meta.get("content_type") or guess_content_type(key),
                    )
                )
        except Exception as e:
            raise StorageError(
                f"Failed to list objects with prefix '{prefix}': {e}",
                operation="list_objects",
            ) from e

        next_cursor = page[-1] if len(keys) > limit else None
        return ObjectListing(objects=objects, next_cursor=next_cursor)

    async def get_metadata(self, key: str) -> StorageMetadata:
        """Get file metadata from local storage."""
        file_path = self._safe_path(key)
        if not file_path.is_file():
            raise NotFoundError(f"File not found: {key}", key=key, operation="get_metadata")

        try:
            stat = file_path.stat()
            meta = await self._load_metadata(file_path)
            return StorageMetadata(
                etag=await self._calculate_etag(file_path),
                content_type=meta.get("content_type") or guess_content_type(key),
                size=stat.st_size,
                last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                custom_metadata=meta.get("metadata", {})
            )
        except Exception as e:
            raise StorageError(f"Failed to get metadata for {key}: {e}", key=key, operation="get_metadata") from e

    async def health_check(self) -> bool:
        """Check local storage accessibility."""
        try:
            test_file = self.base_path / _HEALTH_CHECK_FILE
            test_file.touch()
            test_file.unlink()
            return True
        except Exception as e:
            logger.error("local_health_check_failed", path=str(self.base_path), error=str(e))
            return False

    async def close(self) -> None:
        return None

    def _iter_keys(self):
        for path in self.base_path.rglob("*"):
            if not path.is_file():
                continue
            if path.name.endswith(_META_SUFFIX) or path.name == _HEALTH_CHECK_FILE:
                continue
            yield path.relative_to(self.base_path).as_posix()

    def _safe_path(self, key: str) -> Path:
        """Build safe path preventing directory traversal.

        Raises:
            ValidationError: If path is unsafe
        """
        clean_key = key.lstrip("/")
        path = (self.base_path / clean_key).resolve()

        try:
            path.relative_to(self.base_path)
        except ValueError:
            raise ValidationError(f"Invalid path: {key}", key=key)

        if path.name.endswith(_META_SUFFIX):
            raise ValidationError(f"Reserved suffix in key: {key}", key=key)
        return path

    def _metadata_path(self, file_path: Path) -> Path:
        return file_path.parent / f"{file_path.name}{_META_SUFFIX}"

    async def _save_metadata(
        self,
        file_path: Path,
        metadata: Optional[dict],
        content_type: Optional[str]
    ) -> None:
        """Save metadata to sidecar file."""
        meta_data = {}
        if metadata:
            meta_data["metadata"] = {str(k): str(v) for k, v in metadata.items()}
        if content_type:
            meta_data["content_type"] = content_type

        async with aiofiles.open(self._metadata_path(file_path), 'w') as f:
            await f.write(json.dumps(meta_data))

    async def _load_metadata(self, file_path: Path) -> dict:
        """Load metadata from sidecar file; a missing sidecar means no metadata."""
        meta_path = self._metadata_path(file_path)
        if not meta_path.exists():
            return {}

        async with aiofiles.open(meta_path, 'r') as f:
            content = await f.read()
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            logger.warning("local_metadata_corrupt", path=str(meta_path))
            return {}

    async def _calculate_etag(self, file_path: Path) -> str:
        hasher = hashlib.md5()
        async with aiofiles.open(file_path, 'rb') as f:
            while True:
                chunk = await f.read(8192)
                if not chunk:
                    break
                hasher.update(chunk)
        return hasher.hexdigest()


async def build_local_provider(config: StorageConfig) -> LocalProvider:
    """Build local storage provider.

    Args:
        config: Storage configuration

    Returns:
        Configured local provider instance
    """
    provider = LocalProvider(config)

    if not await provider.health_check():
        raise StorageError("Failed to access local storage")

    return provider
