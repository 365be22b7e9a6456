"""
API依赖项 - 存储端口、生命周期服务与管理员认证
"""
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import secrets

from application.ports.storage import ObjectStorePort
from application.services.lifecycle_service import LifecycleService
from core.config import settings
from core.exceptions import UnauthorizedException
from infrastructure.adapters.storage_port import StorageProviderPortAdapter
from infrastructure.external.storage import StorageProvider, get_storage

# HTTP Bearer for the admin routes
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="Admin token for POST /run and GET /overview",
    auto_error=False,
)


async def get_storage_port(provider: StorageProvider = Depends(get_storage)) -> ObjectStorePort:
    return StorageProviderPortAdapter(provider)


async def get_lifecycle_service(
    store: ObjectStorePort = Depends(get_storage_port),
) -> LifecycleService:
    return LifecycleService.from_settings(store, settings.lifecycle)


async def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> None:
    """Guard the admin routes when ``lifecycle.admin_token`` is configured."""
    expected = settings.lifecycle.admin_token
    if not expected:
        return
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException("Missing bearer token")
    if not secrets.compare_digest(credentials.credentials, expected):
        raise UnauthorizedException("Invalid bearer token")
