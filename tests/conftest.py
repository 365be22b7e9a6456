"""Pytest bootstrap configuration.

Environment defaults are set before application modules import settings.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STORAGE__TYPE", "memory")
os.environ.setdefault("STORAGE__BUCKET", "test-bucket")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402

from application.services.lifecycle_service import LifecycleService  # noqa: E402
from infrastructure.adapters.storage_port import StorageProviderPortAdapter  # noqa: E402
from infrastructure.external.storage.providers.memory import MemoryProvider  # noqa: E402

NOW = datetime(2026, 3, 1, 3, 0, tzinfo=timezone.utc)


def days_ago(days: float, now: datetime = NOW) -> datetime:
    return now - timedelta(days=days)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def memory_provider() -> MemoryProvider:
    return MemoryProvider(clock=lambda: NOW)


@pytest.fixture
def store(memory_provider):
    return StorageProviderPortAdapter(memory_provider)


@pytest.fixture
def make_service(store):
    def _make(target=None, **kwargs) -> LifecycleService:
        kwargs.setdefault("clock", lambda: NOW)
        kwargs.setdefault("lease_owner", "test-runner")
        return LifecycleService(target or store, **kwargs)

    return _make


@pytest.fixture
def service(make_service) -> LifecycleService:
    return make_service()


@pytest.fixture
def seed(memory_provider):
    """Put an object uploaded ``age_days`` before NOW."""

    def _seed(key: str, age_days: float, data: bytes = b"payload", content_type=None) -> None:
        memory_provider.seed(key, data, last_modified=days_ago(age_days), content_type=content_type)

    return _seed
