from datetime import timedelta
from itertools import count

import pytest
from httpx import ASGITransport, AsyncClient

from api.dependencies import get_lifecycle_service
from application.services.lifecycle_lease import RunLease
from core.config import settings
from main import app
from shared.codes import BusinessCode


@pytest.fixture
def client_for():
    """Build an HTTP client whose routes use the given lifecycle service."""

    def _client(service) -> AsyncClient:
        app.dependency_overrides[get_lifecycle_service] = lambda: service
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    yield _client
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_status_before_first_run(client_for, service):
    async with client_for(service) as client:
        resp = await client.get("/status")

    assert resp.status_code == 404
    body = resp.json()
    assert body["code"] == BusinessCode.LIFECYCLE_NO_RUNS
    assert body["message"] == "No lifecycle runs yet"
    assert resp.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_run_then_introspect(client_for, service, seed):
    seed("photos/evt1/a.jpg", 10)
    seed("photos/evt1/b.jpg", 40)
    seed("videos/evt1/c.mp4", 400)

    async with client_for(service) as client:
        run = await client.post("/run")
        status = await client.get("/status")
        history = await client.get("/history")

    assert run.status_code == 200
    data = run.json()["data"]
    assert (data["scanned"], data["compressed"], data["deleted"], data["errors"]) == (3, 1, 1, 0)
    assert data["timestamp"] == "2026-03-01T03:00:00Z"

    assert status.status_code == 200
    assert status.json()["data"] == data
    assert history.json()["data"] == [data]


@pytest.mark.asyncio
async def test_history_empty(client_for, service):
    async with client_for(service) as client:
        resp = await client.get("/history")

    assert resp.status_code == 200
    assert resp.json()["data"] == []


@pytest.mark.asyncio
async def test_stats_endpoint(client_for, service, seed):
    seed("photos/a.jpg", 3, b"x" * 5)
    seed("long-term/photos/b.webp", 50, b"y" * 7)

    async with client_for(service) as client:
        resp = await client.get("/stats")

    data = resp.json()["data"]
    assert data["total_count"] == 2
    assert data["long_term_size"] == 7
    assert data["by_prefix"]["photos/"] == {"count": 1, "size": 5}
    assert data["age_distribution"]["recent"] == 1


@pytest.mark.asyncio
async def test_overview_before_first_run(client_for, service, seed):
    seed("photos/a.jpg", 3, b"x" * 5)

    async with client_for(service) as client:
        resp = await client.get("/overview")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["last_run"] is None
    assert data["history"] == []
    assert data["stats"]["total_count"] == 1
    assert data["config"] == {
        "compress_after_days": 30,
        "delete_after_days": 365,
        "cron_schedule": "0 3 * * *",
    }


@pytest.mark.asyncio
async def test_overview_keeps_last_ten_runs(client_for, make_service, now):
    ticks = count()
    service = make_service(clock=lambda: now + timedelta(minutes=next(ticks)))
    for _ in range(12):
        await service.run()

    async with client_for(service) as client:
        overview = await client.get("/overview")
        history = await client.get("/history")

    data = overview.json()["data"]
    assert len(history.json()["data"]) == 12
    assert data["history"] == history.json()["data"][-10:]
    assert data["last_run"] == data["history"][-1]


@pytest.mark.asyncio
async def test_overview_requires_admin_token_when_configured(client_for, service, monkeypatch):
    monkeypatch.setattr(settings.lifecycle, "admin_token", "s3cret")

    async with client_for(service) as client:
        missing = await client.get("/overview")
        wrong = await client.get("/overview", headers={"Authorization": "Bearer nope"})
        ok = await client.get("/overview", headers={"Authorization": "Bearer s3cret"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert ok.status_code == 200
    assert ok.json()["data"]["last_run"] is None

@pytest.mark.asyncio
async def test_run_with_object_errors_still_succeeds(client_for, make_service, store, seed):
    class BrokenReads:
        def __getattr__(self, name):
            return getattr(store, name)

        async def get(self, key):
            if key.startswith("photos/"):
                raise RuntimeError("read failed")
            return await store.get(key)

    seed("photos/a.jpg", 40)

    async with client_for(make_service(BrokenReads())) as client:
        resp = await client.post("/run")

    assert resp.status_code == 200
    assert resp.json()["data"]["errors"] == 1


@pytest.mark.asyncio
async def test_overlapping_run_conflict(client_for, service, store, now):
    await RunLease(store, "_lifecycle/lease.json", owner="other", clock=lambda: now).acquire()

    async with client_for(service) as client:
        resp = await client.post("/run")

    assert resp.status_code == 409
    assert resp.json()["code"] == BusinessCode.LIFECYCLE_RUN_IN_PROGRESS


@pytest.mark.asyncio
async def test_listing_failure_is_service_unavailable(client_for, make_service, store):
    class NoListing:
        def __getattr__(self, name):
            return getattr(store, name)

        async def list(self, prefix="", cursor=None, limit=1000):
            raise ConnectionError("bucket unreachable")

    async with client_for(make_service(NoListing())) as client:
        resp = await client.post("/run")

    assert resp.status_code == 503
    assert resp.json()["error"]["details"]["reason"] == "bucket unreachable"


@pytest.mark.asyncio
async def test_run_requires_admin_token_when_configured(client_for, service, monkeypatch):
    monkeypatch.setattr(settings.lifecycle, "admin_token", "s3cret")

    async with client_for(service) as client:
        missing = await client.post("/run")
        wrong = await client.post("/run", headers={"Authorization": "Bearer nope"})
        ok = await client.post("/run", headers={"Authorization": "Bearer s3cret"})
        status = await client.get("/history")

    assert missing.status_code == 401
    assert missing.headers["WWW-Authenticate"] == "Bearer"
    assert wrong.status_code == 401
    assert ok.status_code == 200
    # read-only endpoints stay open
    assert status.status_code == 200


@pytest.mark.asyncio
async def test_unmatched_path_returns_banner(client_for, service):
    async with client_for(service) as client:
        resp = await client.get("/whatever/else")
        wrong_method = await client.get("/run")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert "Endpoints:" in resp.text
    assert "POST /run" in resp.text
    assert "GET /overview" in resp.text
    assert wrong_method.text == resp.text


@pytest.mark.asyncio
async def test_health(client_for, service):
    async with client_for(service) as client:
        resp = await client.get("/health")

    assert resp.json()["data"] == {"status": "healthy"}
