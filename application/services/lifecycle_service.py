"""Application service running the storage lifecycle over one bucket.

A run lists the whole bucket, classifies every object against the retention
policy, archives or deletes the eligible ones (each independently, a failing
object never aborts the run) and finally records the outcome inside the
bucket. The store is injected, so the same pipeline runs against S3, the
local filesystem or the in-memory provider.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Optional

import anyio

from application.ports.storage import ObjectStorePort
from application.services.compression import Compressor, IdentityCompressor
from application.services.lifecycle_lease import LEASE_NAME, RunLease
from application.services.lifecycle_records import LifecycleRecorder
from core.logging_config import get_logger
from domain.common.exceptions import (
    LifecycleListingException,
    LifecycleReportException,
    NoLifecycleRunsException,
)
from domain.lifecycle import (
    LifecycleOverview,
    LifecycleRunResult,
    RetentionClass,
    RetentionPolicy,
    StorageStats,
    StoredObject,
    age_in_days,
    whole_days,
)
from domain.lifecycle.policy import ACTION_COMPRESSED, top_level_namespace

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _Outcome:
    status: str  # skipped | untouched | compressed | deleted | error
    detail: Optional[str] = None
    saved_bytes: int = 0


class LifecycleService:
    """Lister, classifier, transitioner and reporter for one bucket."""

    def __init__(
        self,
        store: ObjectStorePort,
        policy: Optional[RetentionPolicy] = None,
        *,
        compressor: Optional[Compressor] = None,
        history_limit: int = 30,
        page_size: int = 500,
        max_concurrency: int = 1,
        lease_ttl_seconds: int = 3600,
        lease_owner: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self.policy = policy or RetentionPolicy()
        self._compressor = compressor or IdentityCompressor()
        self._page_size = page_size
        self._max_concurrency = max(1, max_concurrency)
        self._clock = clock
        self.recorder = LifecycleRecorder(store, self.policy, history_limit=history_limit)
        self.lease = RunLease(
            store,
            self.policy.control_key(LEASE_NAME),
            ttl_seconds=lease_ttl_seconds,
            owner=lease_owner,
            clock=clock,
        )

    @classmethod
    def from_settings(cls, store: ObjectStorePort, lifecycle: Any, **overrides: Any) -> "LifecycleService":
        options = dict(
            history_limit=lifecycle.history_limit,
            page_size=lifecycle.list_page_size,
            max_concurrency=lifecycle.max_concurrency,
            lease_ttl_seconds=lifecycle.lease_ttl_seconds,
        )
        options.update(overrides)
        return cls(store, RetentionPolicy.from_settings(lifecycle), **options)

    # ------------------------------------------------------------------
    # Lister
    # ------------------------------------------------------------------
    async def iter_objects(self, prefix: str = "") -> AsyncIterator[StoredObject]:
        """Yield every object page by page until the store stops returning a cursor.

        Keys in the control namespace are dropped here; they would classify
        as ``control`` and are never transitioned.
        """
        cursor: Optional[str] = None
        while True:
            page = await self._store.list(prefix=prefix, cursor=cursor, limit=self._page_size)
            for obj in page.objects:
                if not self.policy.is_control(obj.key):
                    yield obj
            if not page.next_cursor:
                return
            if page.next_cursor == cursor:
                raise RuntimeError(f"store returned the same cursor twice: {cursor!r}")
            cursor = page.next_cursor

    async def list_objects(self, prefix: str = "") -> list[StoredObject]:
        try:
            return [obj async for obj in self.iter_objects(prefix)]
        except Exception as exc:
            logger.error("lifecycle_listing_failed", prefix=prefix, error=str(exc))
            raise LifecycleListingException(str(exc)) from exc

    # ------------------------------------------------------------------
    # Transitioner
    # ------------------------------------------------------------------
    async def archive(self, obj: StoredObject, now: datetime) -> tuple[str, int]:
        """Move ``obj`` into the long-term namespace. Returns (new_key, saved_bytes).

        The new object is written before the old key is deleted.
        """
        stored = await self._store.get(obj.key)
        source_type = stored.content_type or obj.content_type
        plan = self.policy.archive_plan(obj.key, source_type)

        original_size = len(stored.body)
        body = stored.body
        if plan.kind is not None:
            body = await anyio.to_thread.run_sync(self._compressor.compress, body, source_type)

        await self._store.put(
            plan.target_key,
            body,
            content_type=plan.content_type,
            custom_metadata=plan.custom_metadata(now, original_size),
        )
        await self._store.delete(obj.key)
        return plan.target_key, max(original_size - len(body), 0)

    async def delete(self, obj: StoredObject) -> None:
        await self._store.delete(obj.key)

    async def _process(self, obj: StoredObject, now: datetime) -> _Outcome:
        retention = self.policy.classify(obj, now)
        if retention in (RetentionClass.CONTROL, RetentionClass.ARCHIVED):
            return _Outcome("skipped")
        if retention is RetentionClass.ACTIVE:
            return _Outcome("untouched")

        age = whole_days(obj.uploaded_at, now)
        try:
            if retention is RetentionClass.ELIGIBLE_DELETE:
                await self.delete(obj)
                return _Outcome("deleted", f"Deleted: {obj.key} ({age}d old)")

            new_key, saved = await self.archive(obj, now)
            action = self.policy.archive_plan(obj.key).action
            verb = "Compressed" if action == ACTION_COMPRESSED else "Archived"
            return _Outcome("compressed", f"{verb}: {obj.key} → {new_key} ({age}d old)", saved)
        except Exception as exc:
            logger.warning(
                "lifecycle_object_failed",
                key=obj.key,
                retention=retention.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return _Outcome("error", f"Error processing {obj.key}: {exc}")

    async def _process_all(self, objects: list[StoredObject], now: datetime) -> list[_Outcome]:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def guarded(obj: StoredObject) -> _Outcome:
            async with semaphore:
                return await self._process(obj, now)

        # gather keeps listing order, so details read the same at any concurrency
        return list(await asyncio.gather(*(guarded(obj) for obj in objects)))

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    async def run(self) -> LifecycleRunResult:
        """Execute one full lifecycle run under the run lease."""
        async with self.lease.hold():
            return await self._run_once()

    async def _run_once(self) -> LifecycleRunResult:
        started = time.perf_counter()
        now = self._clock()
        logger.info(
            "lifecycle_run_started",
            compress_after_days=self.policy.compress_after_days,
            delete_after_days=self.policy.delete_after_days,
        )

        objects = await self.list_objects()
        # listing a large bucket can eat into the TTL
        await self.lease.renew()
        outcomes = await self._process_all(objects, now)

        counts = {"skipped": 0, "untouched": 0, "compressed": 0, "deleted": 0, "error": 0}
        details: list[str] = []
        saved_bytes = 0
        for outcome in outcomes:
            counts[outcome.status] += 1
            saved_bytes += outcome.saved_bytes
            if outcome.detail:
                details.append(outcome.detail)

        result = LifecycleRunResult(
            timestamp=now,
            scanned=len(objects),
            compressed=counts["compressed"],
            deleted=counts["deleted"],
            errors=counts["error"],
            skipped=counts["skipped"],
            untouched=counts["untouched"],
            saved_bytes=saved_bytes,
            duration_ms=int((time.perf_counter() - started) * 1000),
            details=details,
        )

        try:
            await self.recorder.publish(result)
        except Exception as exc:
            logger.error(
                "lifecycle_report_failed",
                error=str(exc),
                scanned=result.scanned,
                compressed=result.compressed,
                deleted=result.deleted,
            )
            raise LifecycleReportException(str(exc), result=result.to_dict()) from exc

        logger.info(
            "lifecycle_run_completed",
            scanned=result.scanned,
            compressed=result.compressed,
            deleted=result.deleted,
            errors=result.errors,
            skipped=result.skipped,
            duration_ms=result.duration_ms,
        )
        return result

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    async def get_status(self) -> LifecycleRunResult:
        result = await self.recorder.load_last_run()
        if result is None:
            raise NoLifecycleRunsException()
        return result

    async def get_history(self) -> list[LifecycleRunResult]:
        return await self.recorder.load_history()

    async def compute_stats(self) -> StorageStats:
        """Re-list the bucket and aggregate current usage. Read-only."""
        now = self._clock()
        stats = StorageStats()
        for obj in await self.list_objects():
            age = age_in_days(obj.uploaded_at, now)
            stats.add(
                top_level_namespace(obj.key),
                obj.size,
                age,
                long_term=obj.key.startswith(self.policy.long_term_prefix),
            )
        return stats

    async def get_overview(self, recent: int = 10) -> LifecycleOverview:
        history = await self.get_history()
        return LifecycleOverview(
            last_run=await self.recorder.load_last_run(),
            history=history[-recent:],
            stats=await self.compute_stats(),
        )
