from datetime import timedelta

import pytest

from application.services.lifecycle_lease import LeaseRecord, RunLease
from domain.common.exceptions import LifecycleRunInProgressException

LEASE_KEY = "_lifecycle/lease.json"


@pytest.mark.asyncio
async def test_overlapping_run_is_rejected(make_service, store, memory_provider, now):
    holder = RunLease(store, LEASE_KEY, ttl_seconds=600, owner="scheduled-worker", clock=lambda: now)
    await holder.acquire()
    memory_provider.seed("videos/old.mp4", b"v", last_modified=now - timedelta(days=500))

    with pytest.raises(LifecycleRunInProgressException) as excinfo:
        await make_service().run()

    assert excinfo.value.details["owner"] == "scheduled-worker"
    # nothing was transitioned and the other owner's lease is intact
    assert "videos/old.mp4" in memory_provider.keys()
    assert (await holder.current()).owner == "scheduled-worker"


@pytest.mark.asyncio
async def test_expired_lease_is_taken_over(service, store, memory_provider, now):
    stale = LeaseRecord(
        owner="crashed-worker",
        acquired_at=now - timedelta(hours=3),
        expires_at=now - timedelta(hours=2),
    )
    memory_provider.seed(LEASE_KEY, stale.to_json(), last_modified=now - timedelta(hours=3))

    result = await service.run()

    assert result.scanned == 0
    assert LEASE_KEY not in memory_provider.keys()


@pytest.mark.asyncio
async def test_lease_is_released_after_failure(store, memory_provider, now):
    lease = RunLease(store, LEASE_KEY, owner="me", clock=lambda: now)

    with pytest.raises(ValueError):
        async with lease.hold():
            assert LEASE_KEY in memory_provider.keys()
            raise ValueError("boom")

    assert LEASE_KEY not in memory_provider.keys()


@pytest.mark.asyncio
async def test_release_leaves_foreign_lease(store, memory_provider, now):
    mine = RunLease(store, LEASE_KEY, owner="me", clock=lambda: now)
    theirs = RunLease(store, LEASE_KEY, owner="them", clock=lambda: now + timedelta(hours=2))
    await mine.acquire()
    # mine expired at now + 1h; theirs takes over
    await theirs.acquire()

    await mine.release()

    assert (await theirs.current()).owner == "them"


@pytest.mark.asyncio
async def test_corrupt_lease_is_ignored(store, memory_provider, now):
    memory_provider.seed(LEASE_KEY, b"{broken", last_modified=now)
    lease = RunLease(store, LEASE_KEY, owner="me", clock=lambda: now)

    assert await lease.current() is None
    record = await lease.acquire()
    assert record.expires_at == now + timedelta(hours=1)


@pytest.mark.asyncio
async def test_renew_extends_expiry(store, now):
    clock = [now]
    lease = RunLease(store, LEASE_KEY, ttl_seconds=600, owner="me", clock=lambda: clock[0])
    first = await lease.acquire()
    clock[0] = now + timedelta(minutes=8)

    renewed = await lease.renew()

    assert renewed.acquired_at == first.acquired_at
    assert renewed.expires_at == now + timedelta(minutes=18)
    assert (await lease.current()).expires_at == renewed.expires_at


@pytest.mark.asyncio
async def test_renew_after_takeover_stops_the_run(make_service, store, memory_provider, now):
    memory_provider.seed("videos/old.mp4", b"v", last_modified=now - timedelta(days=500))
    service = make_service()
    list_objects = service.list_objects

    async def list_then_lose_lease(prefix=""):
        objects = await list_objects(prefix)
        # another worker takes the lease while the bucket is being listed
        intruder = LeaseRecord(owner="other-worker", acquired_at=now, expires_at=now + timedelta(hours=1))
        memory_provider.seed(LEASE_KEY, intruder.to_json(), last_modified=now)
        return objects

    service.list_objects = list_then_lose_lease

    with pytest.raises(LifecycleRunInProgressException) as excinfo:
        await service.run()

    assert excinfo.value.details["owner"] == "other-worker"
    assert "videos/old.mp4" in memory_provider.keys()
    # the other owner's lease is left alone
    assert (await RunLease(store, LEASE_KEY, owner="x", clock=lambda: now).current()).owner == "other-worker"
