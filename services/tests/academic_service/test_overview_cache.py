import json

import pytest
from prometheus_client import REGISTRY

from services.academic_service.app.overview_cache import OverviewCache


class _StubRedis:
    def __init__(self, *, fail_get: bool = False, fail_set: bool = False, fail_delete: bool = False) -> None:
        self._store: dict[str, str] = {}
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.fail_delete = fail_delete
        self.set_calls: list[tuple[str, int | None]] = []

    async def get(self, key: str) -> str | None:
        if self.fail_get:
            raise RuntimeError("get failure")
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.set_calls.append((key, ex))
        if self.fail_set:
            raise RuntimeError("set failure")
        self._store[key] = value
        return True

    async def delete(self, key: str) -> int:
        if self.fail_delete:
            raise RuntimeError("delete failure")
        return 1 if self._store.pop(key, None) is not None else 0


class _MetricTracker:
    def __init__(self, name: str, labels: dict[str, str] | None = None) -> None:
        self.name = name
        self.labels = labels or {}
        baseline = REGISTRY.get_sample_value(name, self.labels)
        self._baseline = baseline if baseline is not None else 0.0

    def delta(self) -> float:
        current = REGISTRY.get_sample_value(self.name, self.labels)
        value = current if current is not None else 0.0
        return value - self._baseline


OVERVIEW = {"studentCount": 3, "reportingCount": 2, "statusCounts": {"At Risk": 1}, "meanAverage": 55.5}


@pytest.mark.asyncio
async def test_overview_cache_round_trip_counts_hits_and_misses() -> None:
    redis = _StubRedis()
    cache = OverviewCache(redis, ttl_seconds=60)
    misses = _MetricTracker("academic_overview_cache_events_total", {"outcome": "miss"})
    hits = _MetricTracker("academic_overview_cache_events_total", {"outcome": "hit"})

    assert await cache.get() is None
    await cache.set(OVERVIEW)
    assert await cache.get() == OVERVIEW

    assert redis.set_calls == [("academic:coordinator_overview", 60)]
    assert misses.delta() == 1
    assert hits.delta() == 1


@pytest.mark.asyncio
async def test_overview_cache_invalidate_forces_miss() -> None:
    redis = _StubRedis()
    cache = OverviewCache(redis, ttl_seconds=60)

    await cache.set(OVERVIEW)
    await cache.invalidate()

    assert await cache.get() is None


@pytest.mark.asyncio
async def test_overview_cache_is_inactive_without_redis_or_ttl() -> None:
    redis = _StubRedis()
    disabled = OverviewCache(redis, ttl_seconds=0)
    missing = OverviewCache(None)

    await disabled.set(OVERVIEW)
    await missing.set(OVERVIEW)

    assert disabled.active is False
    assert missing.active is False
    assert await disabled.get() is None
    assert await missing.get() is None
    assert redis.set_calls == []


@pytest.mark.asyncio
async def test_overview_cache_treats_read_failure_as_miss() -> None:
    cache = OverviewCache(_StubRedis(fail_get=True), ttl_seconds=60)
    errors = _MetricTracker("academic_overview_cache_errors_total", {"operation": "get"})

    assert await cache.get() is None
    assert errors.delta() == 1


@pytest.mark.asyncio
async def test_overview_cache_tolerates_write_and_delete_failures() -> None:
    cache = OverviewCache(_StubRedis(fail_set=True, fail_delete=True), ttl_seconds=60)
    set_errors = _MetricTracker("academic_overview_cache_errors_total", {"operation": "set"})
    delete_errors = _MetricTracker("academic_overview_cache_errors_total", {"operation": "delete"})

    await cache.set(OVERVIEW)
    await cache.invalidate()

    assert set_errors.delta() == 1
    assert delete_errors.delta() == 1


@pytest.mark.asyncio
async def test_overview_cache_drops_corrupt_payload() -> None:
    redis = _StubRedis()
    redis._store["academic:coordinator_overview"] = "{not json"
    cache = OverviewCache(redis, ttl_seconds=60)
    decode_errors = _MetricTracker("academic_overview_cache_errors_total", {"operation": "decode"})

    assert await cache.get() is None
    assert decode_errors.delta() == 1
    assert "academic:coordinator_overview" not in redis._store

    redis._store["academic:coordinator_overview"] = json.dumps(OVERVIEW)
    assert await cache.get() == OVERVIEW
