import pytest

from domain.lifecycle import AgeDistribution


@pytest.mark.asyncio
async def test_stats_before_any_run(service, seed, memory_provider):
    seed("photos/evt1/a.jpg", 3, b"a" * 10)
    seed("photos/evt1/b.jpg", 20, b"b" * 20)
    seed("long-term/photos/evt0/c.webp", 100, b"c" * 30)
    seed("readme.txt", 400, b"r" * 40)
    seed("_lifecycle/history.json", 1, b"[]")
    keys_before = memory_provider.keys()

    stats = await service.compute_stats()

    assert stats.total_count == 4
    assert stats.total_size == 100
    assert (stats.active_count, stats.active_size) == (3, 70)
    assert (stats.long_term_count, stats.long_term_size) == (1, 30)
    assert {k: (v.count, v.size) for k, v in stats.by_prefix.items()} == {
        "photos/": (2, 30),
        "long-term/": (1, 30),
        "/": (1, 40),
    }
    assert stats.age_distribution == AgeDistribution(recent=1, month=1, quarter=0, year=1, old=1)
    # read-only
    assert memory_provider.keys() == keys_before


@pytest.mark.asyncio
async def test_stats_on_empty_bucket(service):
    stats = await service.compute_stats()
    assert stats.total_count == 0
    assert stats.by_prefix == {}


def test_age_buckets_use_fractional_days():
    dist = AgeDistribution()
    for age in (6.99, 7.0, 29.5, 89.9, 364.99, 365.0):
        dist.add(age)
    assert dist == AgeDistribution(recent=1, month=2, quarter=1, year=1, old=1)
