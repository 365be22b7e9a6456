"""Single-run lease stored in the bucket's control namespace.

The lease is a small JSON document with an owner and an expiry. It is not a
compare-and-swap lock (the store offers no conditional writes); it turns an
overlapping manual + scheduled trigger into a clean rejection instead of two
runs racing on ``history.json``.
"""
from __future__ import annotations

import json
import os
import socket
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Optional

from application.ports.storage import ObjectNotFoundError, ObjectStorePort
from core.logging_config import get_logger
from domain.common.exceptions import LifecycleRunInProgressException
from domain.lifecycle.entity import to_iso_z, parse_iso_datetime

logger = get_logger(__name__)

LEASE_NAME = "lease.json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class LeaseRecord:
    owner: str
    acquired_at: datetime
    expires_at: datetime

    def to_json(self) -> bytes:
        return json.dumps({
            "owner": self.owner,
            "acquired_at": to_iso_z(self.acquired_at),
            "expires_at": to_iso_z(self.expires_at),
        }).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> "LeaseRecord":
        data = json.loads(raw.decode("utf-8"))
        return cls(
            owner=str(data["owner"]),
            acquired_at=parse_iso_datetime(data["acquired_at"]),
            expires_at=parse_iso_datetime(data["expires_at"]),
        )


class RunLease:
    def __init__(
        self,
        store: ObjectStorePort,
        key: str,
        ttl_seconds: int = 3600,
        owner: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self.key = key
        self.ttl = timedelta(seconds=ttl_seconds)
        self.owner = owner or default_owner()
        self._clock = clock

    async def current(self) -> Optional[LeaseRecord]:
        try:
            stored = await self._store.get(self.key)
        except ObjectNotFoundError:
            return None
        try:
            return LeaseRecord.from_json(stored.body)
        except (KeyError, TypeError, ValueError) as exc:
            # json.JSONDecodeError is a ValueError
            logger.warning("lifecycle_lease_corrupt", key=self.key, error=str(exc))
            return None

    async def acquire(self) -> LeaseRecord:
        now = self._clock()
        existing = await self.current()
        if existing is not None and existing.owner != self.owner:
            if existing.expires_at > now:
                raise LifecycleRunInProgressException(
                    owner=existing.owner,
                    expires_at=to_iso_z(existing.expires_at),
                )
            logger.warning(
                "lifecycle_lease_expired_takeover",
                previous_owner=existing.owner,
                expired_at=to_iso_z(existing.expires_at),
            )

        record = LeaseRecord(owner=self.owner, acquired_at=now, expires_at=now + self.ttl)
        await self._store.put(self.key, record.to_json(), content_type="application/json")
        logger.debug("lifecycle_lease_acquired", owner=self.owner)
        return record

    async def renew(self) -> LeaseRecord:
        """Push ``expires_at`` one TTL past now; fails if another owner took the lease."""
        now = self._clock()
        existing = await self.current()
        if existing is not None and existing.owner != self.owner:
            raise LifecycleRunInProgressException(
                owner=existing.owner,
                expires_at=to_iso_z(existing.expires_at),
            )
        acquired_at = existing.acquired_at if existing is not None else now
        record = LeaseRecord(owner=self.owner, acquired_at=acquired_at, expires_at=now + self.ttl)
        await self._store.put(self.key, record.to_json(), content_type="application/json")
        logger.debug("lifecycle_lease_renewed", owner=self.owner, expires_at=to_iso_z(record.expires_at))
        return record

    async def release(self) -> None:
        existing = await self.current()
        if existing is None or existing.owner != self.owner:
            logger.warning("lifecycle_lease_lost", owner=self.owner)
            return
        await self._store.delete(self.key)
        logger.debug("lifecycle_lease_released", owner=self.owner)

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[LeaseRecord]:
        record = await self.acquire()
        try:
            yield record
        finally:
            try:
                await self.release()
            except Exception as exc:
                # lease expires after its TTL
                logger.error("lifecycle_lease_release_failed", owner=self.owner, error=str(exc))
