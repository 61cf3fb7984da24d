"""
Discovery scheduler — queues freshly added devices for their first
discovery run, relays UI cache-clear requests and tracks cancelled
add requests.  Uses Redis for cross-process coordination.
"""

from __future__ import annotations

import orjson
import redis.asyncio as aioredis

from device_inventory.config import settings
from device_inventory.utils.logging import get_logger

log = get_logger("scheduler")

DISCOVERY_QUEUE_KEY = "inventory:discovery_queue"
CANCEL_SET_KEY = "inventory:add_cancel"
CACHE_CLEAR_CHANNEL = "inventory:cache_clear"
EVENT_CHANNEL = "inventory:events"


class DiscoveryScheduler:
    """Thin async wrapper over the Redis keys shared by API, CLI and worker."""

    def __init__(self, redis_url: str | None = None):
        self._redis_url = redis_url or settings.redis_url
        self._redis: aioredis.Redis | None = None

    async def _get_redis(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url, decode_responses=True)
        return self._redis

    async def stop(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        log.info("scheduler_stopped")

    # ── Discovery queue ─────────────────────────

    async def enqueue_discovery(self, device_id: int):
        """Ask the discovery process to run on this device as soon as possible."""
        r = await self._get_redis()
        await r.rpush(DISCOVERY_QUEUE_KEY, str(device_id))
        log.info("discovery_enqueued", device_id=device_id)

    # ── UI cache ────────────────────────────────

    async def request_cache_clear(self, target: str = "wui"):
        r = await self._get_redis()
        await r.publish(CACHE_CLEAR_CHANNEL, target)
        log.debug("cache_clear_requested", target=target)

    # ── Add-request cancellation ────────────────

    async def cancel_request(self, request_id: str):
        r = await self._get_redis()
        await r.sadd(CANCEL_SET_KEY, request_id)
        log.info("add_request_cancelled", request_id=request_id)

    async def is_cancelled(self, request_id: str) -> bool:
        r = await self._get_redis()
        return bool(await r.sismember(CANCEL_SET_KEY, request_id))

    async def clear_cancel(self, request_id: str):
        r = await self._get_redis()
        await r.srem(CANCEL_SET_KEY, request_id)

    async def publish_event(self, data: dict):
        """Fan out device lifecycle events (added / deleted) to subscribers."""
        r = await self._get_redis()
        await r.publish(EVENT_CHANNEL, orjson.dumps(data).decode())


# Module-level singleton
scheduler = DiscoveryScheduler()
