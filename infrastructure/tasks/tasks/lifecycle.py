"""Scheduled storage lifecycle run."""
from __future__ import annotations

import asyncio
from typing import Any

from celery import shared_task

from ..utils.base_task import BaseTask
from application.services.lifecycle_service import LifecycleService
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import LifecycleListingException, LifecycleRunInProgressException
from infrastructure.adapters.storage_port import StorageProviderPortAdapter
from infrastructure.external.storage import build_storage_client

logger = get_logger(__name__)

RUN_TASK_NAME = "lifecycle.run"


async def run_lifecycle_once() -> dict[str, Any]:
    """Build a storage client for this process and execute one run."""
    provider = await build_storage_client()
    try:
        service = LifecycleService.from_settings(StorageProviderPortAdapter(provider), settings.lifecycle)
        result = await service.run()
    finally:
        await provider.close()
    logger.info(
        "lifecycle_run_completed",
        trigger="schedule",
        scanned=result.scanned,
        compressed=result.compressed,
        deleted=result.deleted,
        errors=result.errors,
    )
    return result.to_dict()


@shared_task(
    name=RUN_TASK_NAME,
    bind=True,
    base=BaseTask,
    # a failed listing has not touched any object, so the whole run can be retried
    autoretry_for=(LifecycleListingException,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": 3},
)
def run_storage_lifecycle(self) -> dict[str, Any]:
    try:
        return asyncio.run(run_lifecycle_once())
    except LifecycleRunInProgressException as exc:
        logger.warning("lifecycle_run_skipped", reason="run_in_progress", details=exc.details)
        return {"skipped": True, "reason": exc.message}
