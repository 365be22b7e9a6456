"""Storage service entry point and lifecycle management."""
from typing import Optional
from functools import lru_cache

from core.config import settings
from core.logging_config import get_logger
from .base import StorageProvider
from .config import StorageConfig, StorageType
from .factory import create_provider
from .utils import LoggingMiddleware, apply_middleware

logger = get_logger(__name__)

# Global storage client instance
_storage_client: Optional[StorageProvider] = None


@lru_cache
def get_storage_config() -> StorageConfig:
    """Get storage configuration from settings.

    Assembles StorageConfig from core.config.settings to maintain
    single source of truth for configuration.
    """
    s = settings.storage
    return StorageConfig(
        type=s.type or StorageType.LOCAL,
        bucket=s.bucket,
        region=s.region,
        endpoint=s.endpoint,
        aws_access_key_id=s.aws_access_key_id,
        aws_secret_access_key=s.aws_secret_access_key,
        local_base_path=s.local_base_path,
        max_retry_attempts=s.max_retry_attempts,
        timeout=s.timeout,
        enable_ssl=s.enable_ssl,
    )


async def build_storage_client(config: Optional[StorageConfig] = None) -> StorageProvider:
    """Create a provider wrapped with logging and transient-error retries.

    Used by the API lifespan (shared client) and by Celery tasks, which run
    outside the API process and build their own.
    """
    config = config or get_storage_config()
    provider = await create_provider(config)
    return apply_middleware(
        provider,
        [LoggingMiddleware()],
        max_attempts=config.max_retry_attempts,
    )


async def init_storage_client() -> None:
    """Initialize storage client."""
    global _storage_client

    if _storage_client is not None:
        logger.warning("storage_client_already_initialized")
        return

    config = get_storage_config()
    try:
        _storage_client = await build_storage_client(config)
    except Exception as e:
        logger.error("storage_client_init_failed", error=str(e))
        raise

    logger.info(
        "storage_client_initialized",
        provider=config.type,
        bucket=config.bucket
    )


def get_storage_client() -> Optional[StorageProvider]:
    """Get storage client instance, or None if not initialized."""
    return _storage_client


async def shutdown_storage_client() -> None:
    """Shutdown storage client."""
    global _storage_client

    if _storage_client is None:
        return

    client, _storage_client = _storage_client, None
    await client.close()
    logger.info("storage_client_shutdown")


async def get_storage() -> StorageProvider:
    """FastAPI dependency for storage service.

    Raises:
        RuntimeError: If storage not initialized
    """
    client = get_storage_client()
    if client is None:
        raise RuntimeError(
            "Storage client not initialized. "
            "Call init_storage_client() during startup."
        )
    return client


# Export public interface
__all__ = [
    # Lifecycle
    "build_storage_client",
    "init_storage_client",
    "get_storage_client",
    "shutdown_storage_client",
    "get_storage",

    # Configuration
    "get_storage_config",
    "StorageConfig",
    "StorageType",

    # Base types
    "StorageProvider",

    # Models
    "UploadResult",
    "StorageObject",
    "ObjectListing",
    "StorageMetadata",

    # Exceptions
    "StorageError",
    "NotFoundError",
    "PermissionDeniedError",
    "TransientError",
    "ConfigurationError",
    "ValidationError",

    # Utils
    "guess_content_type",
]

from .models import (
    UploadResult,
    StorageObject,
    ObjectListing,
    StorageMetadata,
)
from .exceptions import (
    StorageError,
    NotFoundError,
    PermissionDeniedError,
    TransientError,
    ConfigurationError,
    ValidationError
)
from .utils import guess_content_type
