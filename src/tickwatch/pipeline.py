from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional

import structlog

from tickwatch.alerts.engine import InactivityEngine
from tickwatch.data.ring_buffer import TickRingBuffer
from tickwatch.data.smoothing import MovementPoints, ring_movement_points
from tickwatch.ingest.feed import BaseFeed
from tickwatch.notify.queue import NotifyQueue
from tickwatch.utils.types import EngineEffect, Tick


@dataclass(slots=True)
class PipelineConfig:
    name: str
    ring_capacity: int = 1000


class FeedPipeline:
    """
    One feed's tick path: q_ticks -> InactivityEngine (+ per-instrument ring).

    A single consumer task drains the queue so the engine sees ticks strictly
    in arrival order. Engine effects (including ones caused by configure())
    are handed to an optional NotifyQueue without blocking.
    """
    def __init__(
        self,
        cfg: PipelineConfig,
        q_ticks: asyncio.Queue,
        engine: InactivityEngine,
        feed: Optional[BaseFeed] = None,
        notify: Optional[NotifyQueue] = None,
    ):
        self.cfg = cfg
        self.q_ticks = q_ticks
        self.engine = engine
        self.feed = feed
        self.notify = notify
        self._rings: Dict[str, TickRingBuffer] = {}
        self._task: Optional[asyncio.Task] = None
        self._log = structlog.get_logger("pipeline").bind(feed=cfg.name)
        engine.listeners.append(self._on_effect)

    @property
    def name(self) -> str:
        return self.cfg.name

    async def start(self) -> None:
        self._task = asyncio.create_task(self._loop(), name=f"pipeline-{self.cfg.name}")

    async def stop(self) -> None:
        if self.feed is not None:
            await self.feed.stop()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._log.info("pipeline_stopped", **self.engine.diagnostics())

    async def _loop(self) -> None:
        try:
            while True:
                tick = await self.q_ticks.get()
                self.process(tick)
        except asyncio.CancelledError:
            return

    def process(self, tick: Tick) -> list[EngineEffect]:
        """Fold one tick. Synchronous; used by the consumer loop and by tests."""
        effects = self.engine.on_tick(tick)
        if self.engine.is_valid(tick):
            self.ring_for(tick.instrument_key).append(tick)
        return effects

    def _on_effect(self, effect: EngineEffect) -> None:
        if self.notify is not None:
            self.notify.try_put(self.cfg.name, effect)

    # ---- read side for the presentation layer ----

    def ring_for(self, instrument_key: str) -> TickRingBuffer:
        ring = self._rings.get(instrument_key)
        if ring is None:
            ring = TickRingBuffer(self.cfg.ring_capacity)
            self._rings[instrument_key] = ring
        return ring

    def movement(self, instrument_key: str, group: int = 3) -> MovementPoints:
        return ring_movement_points(self.ring_for(instrument_key), group=group)

    def snapshot(self) -> dict:
        feed = self.feed
        return {
            "feed": self.cfg.name,
            "status": feed.status if feed else None,
            "frozen": feed.is_frozen if feed else False,
            "freezing_incidents": feed.freezing_incidents if feed else 0,
            "average_delay_s": feed.average_delay_s if feed else 0.0,
            "alerts": [a.to_dict() for a in self.engine.alerts()],
            "inactive": sorted(self.engine.inactive_instrument_keys()),
            "configurations": {
                k: {"enabled": c.enabled, "deviation": c.deviation,
                    "duration_s": c.duration_s, "respect_market_hours": c.respect_market_hours}
                for k, c in self.engine.configurations().items()
            },
            "diagnostics": self.engine.diagnostics(),
        }
