"""Redis-backed cache for the coordinator overview."""

from __future__ import annotations

import json
import logging
from typing import Any

from .metrics import OVERVIEW_CACHE_ERRORS_TOTAL, OVERVIEW_CACHE_EVENTS_TOTAL

logger = logging.getLogger(__name__)


class OverviewCache:
    """Caches the overview payload; Redis failures degrade to a cache miss."""

    def __init__(
        self,
        redis_client: Any | None,
        *,
        ttl_seconds: int = 120,
        key: str = "academic:coordinator_overview",
    ) -> None:
        self._redis = redis_client
        self._ttl = ttl_seconds
        self._key = key

    @property
    def active(self) -> bool:
        return self._redis is not None and self._ttl > 0

    async def get(self) -> dict[str, Any] | None:
        if not self.active:
            return None
        try:
            cached = await self._redis.get(self._key)
        except Exception:
            OVERVIEW_CACHE_ERRORS_TOTAL.labels(operation="get").inc()
            logger.warning("Overview cache read failed", exc_info=True)
            return None
        if not cached:
            OVERVIEW_CACHE_EVENTS_TOTAL.labels(outcome="miss").inc()
            return None
        try:
            payload = json.loads(cached)
        except ValueError:
            OVERVIEW_CACHE_ERRORS_TOTAL.labels(operation="decode").inc()
            await self.invalidate()
            return None
        OVERVIEW_CACHE_EVENTS_TOTAL.labels(outcome="hit").inc()
        return payload

    async def set(self, payload: dict[str, Any]) -> None:
        if not self.active:
            return
        try:
            await self._redis.set(self._key, json.dumps(payload), ex=self._ttl)
        except Exception:
            OVERVIEW_CACHE_ERRORS_TOTAL.labels(operation="set").inc()
            logger.warning("Overview cache write failed", exc_info=True)

    async def invalidate(self) -> None:
        if not self.active:
            return
        try:
            await self._redis.delete(self._key)
        except Exception:
            OVERVIEW_CACHE_ERRORS_TOTAL.labels(operation="delete").inc()
            logger.warning("Overview cache invalidation failed", exc_info=True)
