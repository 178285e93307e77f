from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Tuple

from tickwatch.utils.types import EngineEffect

@dataclass(slots=True)
class QueueStats:
    enq_ok: int = 0
    enq_drop: int = 0
    deq_ok: int = 0

class NotifyQueue:
    """
    Bounded, non-blocking hand-off of (feed_name, effect) pairs from the tick
    path to notifiers.
    - try_put() never waits: on full it drops and counts
    - get() awaits like a normal queue
    """
    def __init__(self, maxsize: int = 2000):
        self._q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.stats = QueueStats()

    def try_put(self, feed: str, effect: EngineEffect) -> bool:
        try:
            self._q.put_nowait((feed, effect))
            self.stats.enq_ok += 1
            return True
        except asyncio.QueueFull:
            self.stats.enq_drop += 1
            return False

    async def get(self) -> Tuple[str, EngineEffect]:
        item = await self._q.get()
        self.stats.deq_ok += 1
        return item

    def qsize(self) -> int:
        return self._q.qsize()
