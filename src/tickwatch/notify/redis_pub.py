from __future__ import annotations

import asyncio
import json
from typing import Optional

import redis.asyncio as redis
import structlog

from tickwatch.utils.types import EngineEffect

log = structlog.get_logger("redis_pub")


def channel_for(prefix: str, feed: str) -> str:
    # {prefix}:{feed}:alerts
    return f"{prefix}:{feed}:alerts"


class RedisEffectPublisher:
    """
    Optional Redis pub/sub fan-out of alert effects for external dashboards.
    Best-effort and non-blocking: PUBLISH retains nothing, and effects are
    dropped when the local queue is full or Redis errors.
    """
    def __init__(self, url: str, prefix: str = "tickwatch", enabled: bool = False, maxsize: int = 5000):
        self.enabled = enabled
        self.url = url
        self.prefix = prefix
        self._r: Optional[redis.Redis] = None
        self._q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None
        self.published = 0
        self.dropped = 0
        self.errors = 0

    async def start(self):
        if not self.enabled:
            return
        self._r = redis.from_url(self.url, decode_responses=True)
        self._task = asyncio.create_task(self._writer_loop(), name="redis-effects")

    async def stop(self):
        if not self.enabled:
            return
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._r:
            await self._r.aclose()

    def publish(self, feed: str, effect: EngineEffect) -> None:
        if not self.enabled:
            return
        try:
            self._q.put_nowait((feed, effect))
        except asyncio.QueueFull:
            self.dropped += 1

    async def _writer_loop(self):
        assert self._r is not None
        r = self._r
        try:
            while True:
                feed, effect = await self._q.get()
                payload = dict(effect.to_dict(), feed=feed)
                try:
                    await r.publish(channel_for(self.prefix, feed), json.dumps(payload))
                    self.published += 1
                except Exception as e:
                    # it's a mirror; keep going
                    self.errors += 1
                    log.warning("redis_publish_failed", err=str(e), feed=feed)
        except asyncio.CancelledError:
            return
