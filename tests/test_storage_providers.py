import os
from datetime import datetime, timezone

import pytest

from application.ports.storage import ObjectNotFoundError
from infrastructure.adapters.storage_port import StorageProviderPortAdapter
import infrastructure.external.storage as storage_module
from infrastructure.external.storage import StorageConfig, build_storage_client
from infrastructure.external.storage.exceptions import TransientError
from infrastructure.external.storage.providers.local import LocalProvider
from infrastructure.external.storage.providers.memory import MemoryProvider
from infrastructure.external.storage.utils import MiddlewareStorage


async def _all_keys(provider, limit):
    keys, cursor = [], None
    while True:
        listing = await provider.list_objects("", cursor, limit)
        keys.extend(o.key for o in listing.objects)
        if not listing.next_cursor:
            return keys
        cursor = listing.next_cursor


@pytest.mark.asyncio
async def test_memory_pagination_visits_every_key_once():
    provider = MemoryProvider()
    for i in range(5):
        await provider.upload(b"x", f"k{i}")

    assert await _all_keys(provider, 2) == ["k0", "k1", "k2", "k3", "k4"]


@pytest.mark.asyncio
async def test_local_provider_round_trip(tmp_path):
    provider = LocalProvider(StorageConfig(type="local", local_base_path=str(tmp_path)))
    await provider.upload(b"img", "photos/evt1/a.jpg", metadata={"originalKey": "x"}, content_type="image/webp")
    await provider.upload(b"vid", "videos/c.mp4")
    await provider.upload(b"doc", "docs/d.txt")

    assert await _all_keys(provider, 2) == ["docs/d.txt", "photos/evt1/a.jpg", "videos/c.mp4"]

    meta = await provider.get_metadata("photos/evt1/a.jpg")
    assert meta.content_type == "image/webp"
    assert meta.custom_metadata == {"originalKey": "x"}

    assert await provider.delete("photos/evt1/a.jpg") is True
    assert not (tmp_path / "photos/evt1/a.jpg.meta").exists()


@pytest.mark.asyncio
async def test_local_listing_reports_mtime(tmp_path):
    provider = LocalProvider(StorageConfig(type="local", local_base_path=str(tmp_path)))
    await provider.upload(b"old", "photos/old.jpg")
    stamp = datetime(2025, 1, 1, tzinfo=timezone.utc).timestamp()
    os.utime(tmp_path / "photos/old.jpg", (stamp, stamp))

    listing = await provider.list_objects()

    assert listing.objects[0].last_modified == datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_adapter_translates_missing_key():
    adapter = StorageProviderPortAdapter(MemoryProvider())
    with pytest.raises(ObjectNotFoundError) as excinfo:
        await adapter.get("nope")
    assert excinfo.value.key == "nope"


@pytest.mark.asyncio
async def test_factory_builds_memory_client():
    client = await build_storage_client(StorageConfig(type="memory", bucket="b"))
    await client.upload(b"1", "a.txt")
    assert await client.exists("a.txt")


class _FlakyProvider(MemoryProvider):
    def __init__(self, failures):
        super().__init__()
        self.failures = failures

    async def download(self, key):
        if self.failures:
            self.failures -= 1
            raise TransientError("throttled", key=key, operation="download")
        return await super().download(key)


@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    inner = _FlakyProvider(failures=2)
    await inner.upload(b"data", "a.bin")
    storage = MiddlewareStorage(inner, [], max_attempts=3)

    assert await storage.download("a.bin") == b"data"


class _ClosingProvider(MemoryProvider):
    closed = False

    async def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_shutdown_closes_shared_client(monkeypatch):
    inner = _ClosingProvider()
    monkeypatch.setattr(storage_module, "_storage_client", MiddlewareStorage(inner, []))

    await storage_module.shutdown_storage_client()

    assert inner.closed
    assert storage_module.get_storage_client() is None
