"""Storage utility functions and middleware support."""
import mimetypes
import time
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from core.logging_config import get_logger
from .base import StorageProvider
from .exceptions import TransientError
from .models import ObjectListing, StorageMetadata, UploadResult

logger = get_logger(__name__)


def guess_content_type(filename: str) -> str:
    """Guess content type from filename.

    Args:
        filename: File name or path

    Returns:
        MIME type string
    """
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or "application/octet-stream"


def retrying(
    max_attempts: int = 3,
    wait_multiplier: float = 0.5,
    wait_max: float = 10
) -> AsyncRetrying:
    """Retry controller for transient storage errors.

    Args:
        max_attempts: Maximum number of attempts
        wait_multiplier: Exponential backoff multiplier
        wait_max: Maximum wait time between retries
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=wait_multiplier, max=wait_max),
        retry=retry_if_exception_type(TransientError),
        reraise=True
    )


# Middleware support
class StorageMiddleware:
    """Base class for storage middleware."""

    async def after_operation(
        self,
        operation: str,
        elapsed_ms: float,
        **kwargs: Any
    ) -> None:
        """Called after each successful provider call."""
        pass

    async def on_error(
        self,
        error: Exception,
        operation: str,
        **kwargs: Any
    ) -> None:
        """Handle errors during operations."""
        pass


class LoggingMiddleware(StorageMiddleware):
    """Middleware for structured logging of storage operations."""

    async def after_operation(
        self,
        operation: str,
        elapsed_ms: float,
        **kwargs: Any
    ) -> None:
        logger.debug(
            "storage_operation",
            operation=operation,
            elapsed_ms=f"{elapsed_ms:.2f}",
            **kwargs
        )

    async def on_error(
        self,
        error: Exception,
        operation: str,
        **kwargs: Any
    ) -> None:
        logger.warning(
            "storage_operation_failed",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            **kwargs
        )


class MiddlewareStorage(StorageProvider):
    """Storage provider wrapper adding middleware hooks and transient retries."""

    def __init__(
        self,
        provider: StorageProvider,
        middlewares: list[StorageMiddleware],
        max_attempts: int = 1
    ):
        self.provider = provider
        self.middlewares = middlewares
        self.max_attempts = max_attempts

    @property
    def config(self):
        return getattr(self.provider, "config", None)

    async def _call(
        self,
        operation: str,
        fn: Callable[[], Awaitable[Any]],
        **context: Any
    ) -> Any:
        start_time = time.perf_counter()
        try:
            async for attempt in retrying(self.max_attempts):
                with attempt:
                    result = await fn()
        except Exception as e:
            for middleware in self.middlewares:
                await middleware.on_error(e, operation, **context)
            raise

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        for middleware in self.middlewares:
            await middleware.after_operation(operation, elapsed_ms, **context)
        return result

    async def upload(
        self,
        file: bytes,
        key: str,
        metadata: Optional[dict] = None,
        content_type: Optional[str] = None
    ) -> UploadResult:
        return await self._call(
            "upload",
            lambda: self.provider.upload(file, key, metadata, content_type),
            key=key,
            size=len(file),
        )

    async def download(self, key: str) -> bytes:
        return await self._call("download", lambda: self.provider.download(key), key=key)

    async def delete(self, key: str) -> bool:
        return await self._call("delete", lambda: self.provider.delete(key), key=key)

    async def exists(self, key: str) -> bool:
        return await self._call("exists", lambda: self.provider.exists(key), key=key)

    async def list_objects(
        self,
        prefix: str = "",
        cursor: Optional[str] = None,
        limit: int = 1000
    ) -> ObjectListing:
        return await self._call(
            "list_objects",
            lambda: self.provider.list_objects(prefix, cursor, limit),
            prefix=prefix,
        )

    async def get_metadata(self, key: str) -> StorageMetadata:
        return await self._call("get_metadata", lambda: self.provider.get_metadata(key), key=key)

    async def health_check(self) -> bool:
        return await self.provider.health_check()

    async def close(self) -> None:
        await self.provider.close()


def apply_middleware(
    provider: StorageProvider,
    middlewares: list[StorageMiddleware],
    max_attempts: int = 1
) -> StorageProvider:
    """Apply middleware to a storage provider.

    Args:
        provider: Base storage provider
        middlewares: List of middleware to apply
        max_attempts: Attempts per call for ``TransientError``

    Returns:
        Provider wrapped with middleware
    """
    if not middlewares and max_attempts <= 1:
        return provider

    return MiddlewareStorage(provider, middlewares, max_attempts)
