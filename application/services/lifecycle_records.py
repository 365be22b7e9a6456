"""Run records kept inside the bucket's control namespace.

``last-run.json`` holds the latest ``LifecycleRunResult`` (overwritten each
run); ``history.json`` holds the most recent runs, oldest first.
"""
from __future__ import annotations

import json
from typing import Any, Optional

from application.ports.storage import ObjectNotFoundError, ObjectStorePort
from core.logging_config import get_logger
from domain.lifecycle import LifecycleRunResult, RetentionPolicy

logger = get_logger(__name__)

LAST_RUN_NAME = "last-run.json"
HISTORY_NAME = "history.json"
JSON_CONTENT_TYPE = "application/json"


class LifecycleRecorder:
    def __init__(
        self,
        store: ObjectStorePort,
        policy: RetentionPolicy,
        history_limit: int = 30,
    ):
        self._store = store
        self.last_run_key = policy.control_key(LAST_RUN_NAME)
        self.history_key = policy.control_key(HISTORY_NAME)
        self.history_limit = history_limit

    async def publish(self, result: LifecycleRunResult) -> list[LifecycleRunResult]:
        """Write the run as last-run and append it to the capped history.

        The history update is a plain read-modify-write; callers serialise
        runs with the run lease.
        """
        await self._write_json(self.last_run_key, result.to_dict())

        history = await self.load_history()
        history.append(result)
        history = history[-self.history_limit:]
        await self._write_json(self.history_key, [r.to_dict() for r in history])
        return history

    async def load_last_run(self) -> Optional[LifecycleRunResult]:
        data = await self._read_json(self.last_run_key)
        if not isinstance(data, dict):
            return None
        try:
            return LifecycleRunResult.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("lifecycle_record_invalid", key=self.last_run_key, error=str(exc))
            return None

    async def load_history(self) -> list[LifecycleRunResult]:
        data = await self._read_json(self.history_key)
        if not isinstance(data, list):
            return []

        history = []
        for entry in data:
            try:
                history.append(LifecycleRunResult.from_dict(entry))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("lifecycle_history_entry_dropped", error=str(exc))
        return history

    async def _read_json(self, key: str) -> Any:
        """Return the decoded document, or None when absent or unparsable."""
        try:
            stored = await self._store.get(key)
        except ObjectNotFoundError:
            return None

        try:
            return json.loads(stored.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("lifecycle_record_corrupt", key=key, error=str(exc))
            return None

    async def _write_json(self, key: str, payload: Any) -> None:
        body = json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")
        await self._store.put(key, body, content_type=JSON_CONTENT_TYPE)
