import json
from datetime import timedelta
from itertools import count

import pytest

from domain.common.exceptions import (
    LifecycleListingException,
    LifecycleReportException,
    NoLifecycleRunsException,
)


class DelegatingStore:
    """Wraps the port and lets a test break individual calls."""

    def __init__(self, inner, *, fail_get=(), fail_put_prefix=None, fail_list=False):
        self.inner = inner
        self.fail_get = set(fail_get)
        self.fail_put_prefix = fail_put_prefix
        self.fail_list = fail_list
        self.list_calls = 0

    async def list(self, prefix="", cursor=None, limit=1000):
        self.list_calls += 1
        if self.fail_list:
            raise ConnectionError("listing unavailable")
        return await self.inner.list(prefix, cursor, limit)

    async def get(self, key):
        if key in self.fail_get:
            raise RuntimeError("read timed out")
        return await self.inner.get(key)

    async def put(self, key, body, content_type=None, custom_metadata=None):
        if self.fail_put_prefix and key.startswith(self.fail_put_prefix):
            raise RuntimeError("write refused")
        return await self.inner.put(key, body, content_type, custom_metadata)

    async def delete(self, key):
        return await self.inner.delete(key)


class HalvingCompressor:
    def compress(self, data: bytes, content_type):
        return data[: len(data) // 2]


def _seed_scenario(seed, memory_provider):
    seed("photos/evt1/a.jpg", 10, b"a" * 100, "image/jpeg")
    seed("photos/evt1/b.jpg", 40, b"b" * 200, "image/jpeg")
    seed("videos/evt1/c.mp4", 400, b"c" * 300, "video/mp4")
    memory_provider.seed(
        "_lifecycle/last-run.json",
        b"{}",
        last_modified=memory_provider.clock() - timedelta(days=500),
    )


@pytest.mark.asyncio
async def test_scenario_run(service, seed, memory_provider):
    _seed_scenario(seed, memory_provider)

    result = await service.run()

    assert result.scanned == 3
    assert result.untouched == 1
    assert result.compressed == 1
    assert result.deleted == 1
    assert result.errors == 0
    assert result.skipped == 0
    assert result.details == (
        "Compressed: photos/evt1/b.jpg → long-term/photos/evt1/b.webp (40d old)",
        "Deleted: videos/evt1/c.mp4 (400d old)",
    )
    assert memory_provider.keys() == [
        "_lifecycle/history.json",
        "_lifecycle/last-run.json",
        "long-term/photos/evt1/b.webp",
        "photos/evt1/a.jpg",
    ]


@pytest.mark.asyncio
async def test_archived_object_carries_metadata(service, seed, memory_provider):
    seed("photos/evt1/b.jpg", 40, b"b" * 200, "image/jpeg")

    await service.run()

    meta = await memory_provider.get_metadata("long-term/photos/evt1/b.webp")
    assert meta.content_type == "image/webp"
    assert meta.custom_metadata == {
        "originalKey": "photos/evt1/b.jpg",
        "lifecycleAction": "compressed",
        "lifecycleDate": "2026-03-01T03:00:00Z",
        "originalSize": "200",
    }


@pytest.mark.asyncio
async def test_video_archive_keeps_key(service, seed, memory_provider):
    seed("videos/evt1/clip.mp4", 45, b"v" * 10, "video/mp4")

    result = await service.run()

    assert result.compressed == 1
    assert result.details == ("Archived: videos/evt1/clip.mp4 → long-term/videos/evt1/clip.mp4 (45d old)",)
    meta = await memory_provider.get_metadata("long-term/videos/evt1/clip.mp4")
    assert meta.custom_metadata["lifecycleAction"] == "archived"


@pytest.mark.asyncio
async def test_second_run_is_idempotent(service, seed, memory_provider):
    _seed_scenario(seed, memory_provider)
    await service.run()
    keys_after_first = memory_provider.keys()

    second = await service.run()

    assert second.compressed == 0
    assert second.deleted == 0
    assert second.errors == 0
    assert second.skipped == 1
    assert second.untouched == 1
    assert memory_provider.keys() == keys_after_first


@pytest.mark.asyncio
async def test_counts_partition_scanned(service, seed):
    for i in range(5):
        seed(f"photos/new{i}.jpg", i)
    for i in range(3):
        seed(f"photos/old{i}.png", 100 + i)
    seed("long-term/photos/x.webp", 900)
    seed("docs/ancient.pdf", 800)

    result = await service.run()

    assert result.scanned == 10
    assert result.scanned == (
        result.skipped + result.untouched + result.compressed + result.deleted + result.errors
    )
    assert (result.untouched, result.compressed, result.deleted, result.skipped) == (5, 3, 1, 1)


@pytest.mark.asyncio
async def test_failing_object_does_not_abort_run(make_service, store, seed, memory_provider):
    seed("photos/a.jpg", 40)
    seed("photos/b.jpg", 40)
    seed("photos/c.jpg", 40)
    service = make_service(DelegatingStore(store, fail_get={"photos/b.jpg"}))

    result = await service.run()

    assert result.compressed == 2
    assert result.errors == 1
    assert "Error processing photos/b.jpg: read timed out" in result.details
    # the failed object stays where it was
    assert "photos/b.jpg" in memory_provider.keys()
    assert "long-term/photos/a.webp" in memory_provider.keys()
    assert "long-term/photos/c.webp" in memory_provider.keys()


@pytest.mark.asyncio
async def test_listing_failure_aborts_before_any_transition(make_service, store, seed, memory_provider):
    seed("videos/old.mp4", 500)
    service = make_service(DelegatingStore(store, fail_list=True))

    with pytest.raises(LifecycleListingException) as excinfo:
        await service.run()

    assert excinfo.value.details["reason"] == "listing unavailable"
    assert memory_provider.keys() == ["videos/old.mp4"]


@pytest.mark.asyncio
async def test_report_failure_is_distinct(make_service, store, seed, memory_provider):
    seed("videos/old.mp4", 500)
    service = make_service(DelegatingStore(store, fail_put_prefix="_lifecycle/last-run"))

    with pytest.raises(LifecycleReportException) as excinfo:
        await service.run()

    # the transition already happened and the outcome travels with the error
    assert "videos/old.mp4" not in memory_provider.keys()
    assert excinfo.value.details["result"]["deleted"] == 1
    assert "_lifecycle/lease.json" not in memory_provider.keys()


@pytest.mark.asyncio
async def test_history_is_capped_and_oldest_first(make_service, now):
    ticks = count()
    service = make_service(clock=lambda: now + timedelta(minutes=next(ticks)))

    for _ in range(35):
        await service.run()

    history = await service.get_history()
    assert len(history) == 30
    timestamps = [r.timestamp for r in history]
    assert timestamps == sorted(timestamps)
    last = await service.get_status()
    assert history[-1] == last


@pytest.mark.asyncio
async def test_records_are_json_documents(service, seed, memory_provider):
    seed("photos/a.jpg", 40)
    await service.run()

    last_run = json.loads(await memory_provider.download("_lifecycle/last-run.json"))
    history = json.loads(await memory_provider.download("_lifecycle/history.json"))
    assert last_run["timestamp"] == "2026-03-01T03:00:00Z"
    assert last_run["compressed"] == 1
    assert isinstance(last_run["details"], list)
    assert history == [last_run]


@pytest.mark.asyncio
async def test_corrupt_history_starts_fresh(service, memory_provider, now):
    memory_provider.seed("_lifecycle/history.json", b"not json", last_modified=now)

    await service.run()

    assert len(await service.get_history()) == 1


@pytest.mark.asyncio
async def test_status_without_runs(service):
    with pytest.raises(NoLifecycleRunsException):
        await service.get_status()
    assert await service.get_history() == []


@pytest.mark.asyncio
async def test_listing_follows_cursor(make_service, store, seed):
    for i in range(7):
        seed(f"photos/p{i}.jpg", 1)
    counting = DelegatingStore(store)
    service = make_service(counting, page_size=2)

    result = await service.run()

    assert result.scanned == 7
    assert counting.list_calls == 4


@pytest.mark.asyncio
async def test_bounded_concurrency_matches_sequential(make_service, seed):
    for i in range(12):
        seed(f"photos/p{i:02d}.jpg", 40 if i % 2 else 400)

    result = await make_service(max_concurrency=4).run()

    assert (result.compressed, result.deleted, result.errors) == (6, 6, 0)
    assert result.details[0] == "Deleted: photos/p00.jpg (400d old)"
    assert result.details[1] == "Compressed: photos/p01.jpg → long-term/photos/p01.webp (40d old)"


@pytest.mark.asyncio
async def test_compressor_savings_are_reported(make_service, seed, memory_provider):
    seed("photos/big.jpg", 40, b"x" * 1000, "image/jpeg")

    result = await make_service(compressor=HalvingCompressor()).run()

    assert result.saved_bytes == 500
    assert len(await memory_provider.download("long-term/photos/big.webp")) == 500


@pytest.mark.asyncio
async def test_half_day_past_threshold_is_archived(service, seed, memory_provider):
    seed("photos/evt2/late.jpg", 30.5)
    seed("photos/evt2/fresh.jpg", 29.9)

    result = await service.run()

    assert (result.compressed, result.untouched) == (1, 1)
    assert result.details == ("Compressed: photos/evt2/late.jpg → long-term/photos/evt2/late.webp (30d old)",)
    assert "long-term/photos/evt2/late.webp" in memory_provider.keys()


@pytest.mark.asyncio
async def test_lease_is_renewed_after_listing(make_service, store, seed, now):
    ticks = count()
    # every clock read moves forward ten minutes
    service = make_service(clock=lambda: now + timedelta(minutes=10 * next(ticks)))
    seed("photos/a.jpg", 40)
    renewals = []
    renew = service.lease.renew

    async def recording_renew():
        record = await renew()
        renewals.append(record)
        return record

    service.lease.renew = recording_renew

    await service.run()

    assert len(renewals) == 1
    assert renewals[0].acquired_at == now
    assert renewals[0].expires_at > now + timedelta(hours=1)
