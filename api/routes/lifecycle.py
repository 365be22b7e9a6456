"""存储生命周期相关路由：手动触发、运行状态、历史、实时统计与管理概览。"""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from api.dependencies import get_lifecycle_service, require_admin
from application.dto import (
    LifecycleConfigDTO,
    LifecycleOverviewDTO,
    LifecycleRunResultDTO,
    StorageStatsDTO,
)
from application.services.lifecycle_service import LifecycleService
from core.config import settings
from core.logging_config import get_logger
from core.response import Response as ApiResponse, success_response

logger = get_logger(__name__)

router = APIRouter(tags=["Storage lifecycle"])

OVERVIEW_HISTORY_SIZE = 10

ENDPOINTS = (
    ("GET", "/status"),
    ("GET", "/history"),
    ("GET", "/stats"),
    ("GET", "/overview"),
    ("POST", "/run"),
)


def usage_banner() -> str:
    lines = [settings.PROJECT_NAME, "", "Endpoints:"]
    lines.extend(f"  {method} {path}" for method, path in ENDPOINTS)
    return "\n".join(lines)


@router.post(
    "/run",
    summary="Run the lifecycle now",
    response_model=ApiResponse[LifecycleRunResultDTO],
    dependencies=[Depends(require_admin)],
)
async def run_lifecycle(service: LifecycleService = Depends(get_lifecycle_service)):
    logger.info("lifecycle_manual_trigger")
    result = await service.run()
    message = "Lifecycle run completed"
    if result.errors:
        message = f"Lifecycle run completed with {result.errors} error(s)"
    return success_response(data=LifecycleRunResultDTO.from_domain(result), message=message)


@router.get(
    "/status",
    summary="Last lifecycle run",
    response_model=ApiResponse[LifecycleRunResultDTO],
)
async def lifecycle_status(service: LifecycleService = Depends(get_lifecycle_service)):
    result = await service.get_status()
    return success_response(data=LifecycleRunResultDTO.from_domain(result))


@router.get(
    "/history",
    summary="Recent lifecycle runs, oldest first",
    response_model=ApiResponse[list[LifecycleRunResultDTO]],
)
async def lifecycle_history(service: LifecycleService = Depends(get_lifecycle_service)):
    history = await service.get_history()
    return success_response(data=[LifecycleRunResultDTO.from_domain(r) for r in history])


@router.get(
    "/stats",
    summary="Live storage usage",
    response_model=ApiResponse[StorageStatsDTO],
)
async def storage_stats(service: LifecycleService = Depends(get_lifecycle_service)):
    stats = await service.compute_stats()
    return success_response(
        data=StorageStatsDTO.from_domain(stats, generated_at=datetime.now(timezone.utc))
    )


@router.get(
    "/overview",
    summary="Admin overview: last run, recent history, live stats and config",
    response_model=ApiResponse[LifecycleOverviewDTO],
    dependencies=[Depends(require_admin)],
)
async def lifecycle_overview(service: LifecycleService = Depends(get_lifecycle_service)):
    overview = await service.get_overview(recent=OVERVIEW_HISTORY_SIZE)
    config = LifecycleConfigDTO(
        compress_after_days=service.policy.compress_after_days,
        delete_after_days=service.policy.delete_after_days,
        cron_schedule=settings.lifecycle.cron_schedule,
    )
    return success_response(
        data=LifecycleOverviewDTO.from_domain(overview, config, generated_at=datetime.now(timezone.utc))
    )


# Registered after every other route so it only sees unmatched paths
fallback_router = APIRouter(include_in_schema=False)


@fallback_router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
    response_class=PlainTextResponse,
)
async def usage(path: str) -> PlainTextResponse:
    return PlainTextResponse(usage_banner())
