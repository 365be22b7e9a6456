"""AWS S3 (and S3-compatible, e.g. R2/MinIO) storage provider implementation."""
import hashlib
from typing import Optional, Any
from datetime import timezone
import anyio
from functools import partial

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
    PermissionDeniedError,
    TransientError,
    ConfigurationError,
)

logger = get_logger(__name__)


class S3Provider(StorageProvider):
    """AWS S3 storage provider."""

    def __init__(
        self,
        client: Any,  # boto3 S3 client
        config: StorageConfig
    ):
        """Initialize S3 provider.

        Args:
            client: Boto3 S3 client instance
            config: Storage configuration
        """
        self.client = client
        self.config = config
        self.bucket = config.bucket

    async def upload(
        self,
        file: bytes,
        key: str,
        metadata: Optional[dict] = None,
        content_type: Optional[str] = None
    ) -> UploadResult:
        """Upload file to S3."""
        extra_args = {}
        if content_type:
            extra_args["ContentType"] = content_type
        if metadata:
            # S3 user metadata values must be strings
            extra_args["Metadata"] = {str(k): str(v) for k, v in metadata.items()}

        try:
            # Upload using thread pool for sync SDK
            response = await anyio.to_thread.run_sync(
                partial(
                    self.client.put_object,
                    Bucket=self.bucket,
                    Key=key,
                    Body=file,
                    **extra_args
                )
            )
        except Exception as e:
            self._handle_exception(e, "upload", key)

        etag = (response or {}).get("ETag", "").strip('"') or hashlib.md5(file).hexdigest()
        logger.debug("s3_uploaded", key=key, size=len(file))
        return UploadResult(
            key=key,
            etag=etag,
            size=len(file),
            content_type=content_type
        )

    async def download(self, key: str) -> bytes:
        """Download file from S3."""
        try:
            response = await anyio.to_thread.run_sync(
                partial(
                    self.client.get_object,
                    Bucket=self.bucket,
                    Key=key
                )
            )
            body = response["Body"]
            try:
                return await anyio.to_thread.run_sync(body.read)
            finally:
                # Ensure underlying stream is closed even if read fails
                await anyio.to_thread.run_sync(body.close)
        except StorageError:
            raise
        except Exception as e:
            self._handle_exception(e, "download", key)

    async def delete(self, key: str) -> bool:
        """Delete file from S3."""
        try:
            await anyio.to_thread.run_sync(
                partial(
                    self.client.delete_object,
                    Bucket=self.bucket,
                    Key=key
                )
            )
        except Exception as e:
            self._handle_exception(e, "delete", key)
        logger.debug("s3_deleted", key=key)
        return True

    async def exists(self, key: str) -> bool:
        """Check if file exists in S3."""
        try:
            await anyio.to_thread.run_sync(
                partial(
                    self.client.head_object,
                    Bucket=self.bucket,
                    Key=key
                )
            )
            return True
        except Exception as e:
            if self._error_code(e) in ("404", "NoSuchKey", "NotFound"):
                return False
            self._handle_exception(e, "exists", key)

    async def list_objects(
        self,
        prefix: str = "",
        cursor: Optional[str] = None,
        limit: int = 1000
    ) -> ObjectListing:
        """List one page of objects using ``list_objects_v2`` continuation tokens."""
        kwargs = {"Bucket": self.bucket, "Prefix": prefix, "MaxKeys": limit}
        if cursor:
            kwargs["ContinuationToken"] = cursor

        try:
            response = await anyio.to_thread.run_sync(
                partial(self.client.list_objects_v2, **kwargs)
            )
        except Exception as e:
            self._handle_exception(e, "list_objects", prefix)

        objects = []
        for obj in response.get("Contents", []):
            last_modified = obj.get("LastModified")
            if last_modified is not None and last_modified.tzinfo is None:
                last_modified = last_modified.replace(tzinfo=timezone.utc)
            objects.append(StorageObject(
                key=obj["Key"],
                size=obj["Size"],
                etag=obj.get("ETag", "").strip('"'),
                last_modified=last_modified
            ))

        next_cursor = None
        if response.get("IsTruncated"):
            next_cursor = response.get("NextContinuationToken")
        return ObjectListing(objects=objects, next_cursor=next_cursor)

    async def get_metadata(self, key: str) -> StorageMetadata:
        """Get file metadata from S3."""
        try:
            response = await anyio.to_thread.run_sync(
                partial(
                    self.client.head_object,
                    Bucket=self.bucket,
                    Key=key
                )
            )
        except Exception as e:
            self._handle_exception(e, "get_metadata", key)

        return StorageMetadata(
            etag=response.get("ETag", "").strip('"'),
            content_type=response.get("ContentType"),
            size=response.get("ContentLength", 0),
            last_modified=response.get("LastModified"),
            custom_metadata=response.get("Metadata", {})
        )

    async def health_check(self) -> bool:
        """Check S3 connectivity."""
        try:
            await anyio.to_thread.run_sync(
                partial(
                    self.client.head_bucket,
                    Bucket=self.bucket
                )
            )
            logger.info("s3_health_check_passed", bucket=self.bucket)
            return True
        except Exception as e:
            logger.error("s3_health_check_failed", bucket=self.bucket, error=str(e))
            return False

    async def close(self) -> None:
        await anyio.to_thread.run_sync(self.client.close)
        logger.debug("s3_client_closed", bucket=self.bucket)

    @staticmethod
    def _error_code(e: Exception) -> str:
        return str(getattr(e, "response", {}).get("Error", {}).get("Code", ""))

    def _handle_exception(self, e: Exception, operation: str, key: str) -> None:
        """Map S3 exceptions to storage exceptions."""
        error_code = self._error_code(e)

        if error_code in ("NoSuchKey", "404", "NotFound"):
            raise NotFoundError(f"Object not found: {key}", key=key, operation=operation) from e
        elif error_code in ("AccessDenied", "403"):
            raise PermissionDeniedError(f"Access denied: {operation} {key}", key=key, operation=operation) from e
        elif error_code in ("RequestTimeout", "SlowDown", "ServiceUnavailable", "InternalError", "500", "503"):
            raise TransientError(f"Transient error: {operation} {key}: {e}", key=key, operation=operation) from e
        else:
            raise StorageError(f"S3 error during {operation} {key}: {e}", key=key, operation=operation) from e


async def build_s3_provider(config: StorageConfig) -> S3Provider:
    """Build S3 storage provider.

    Args:
        config: Storage configuration

    Returns:
        Configured S3 provider instance
    """
    if not config.bucket:
        raise ConfigurationError("S3 bucket name is required")

    import boto3
    from botocore.config import Config as BotoConfig

    boto_config = BotoConfig(
        region_name=config.region,
        signature_version="s3v4",
        retries={
            "max_attempts": config.max_retry_attempts,
            "mode": "standard"
        },
        connect_timeout=config.timeout,
        read_timeout=config.timeout
    )

    client_args = {
        "service_name": "s3",
        "config": boto_config
    }

    if config.aws_access_key_id and config.aws_secret_access_key:
        client_args.update({
            "aws_access_key_id": config.aws_access_key_id,
            "aws_secret_access_key": config.aws_secret_access_key
        })

    if config.endpoint:
        client_args["endpoint_url"] = config.endpoint
        client_args["use_ssl"] = config.enable_ssl

    client = boto3.client(**client_args)
    provider = S3Provider(client, config)

    if not await provider.health_check():
        raise ConfigurationError("Failed to connect to S3")

    return provider
