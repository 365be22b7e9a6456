"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import lifecycle as lifecycle_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.external.storage import (
    get_storage_client,
    get_storage_config,
    init_storage_client,
    shutdown_storage_client,
)

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    await init_storage_client()
    config = get_storage_config()
    logger.info(
        "storage_initialized",
        provider=config.type,
        bucket=config.bucket,
        compress_after_days=settings.lifecycle.compress_after_days,
        delete_after_days=settings.lifecycle.delete_after_days,
    )
    storage = get_storage_client()
    if storage is not None and not await storage.health_check():
        logger.warning("storage_health_check_failed", provider=config.type)

    yield

    await shutdown_storage_client()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Retention lifecycle for a media object bucket: archive, delete, report.",
)

# 中间件从下往上执行：RequestID 最先，为日志提供 request_id
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)

app.include_router(lifecycle_routes.router)


@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(data={"status": "healthy"})


# Must stay last: answers every path not matched above
app.include_router(lifecycle_routes.fallback_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
