from __future__ import annotations

import asyncio
import random
import uuid
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

import structlog

from tickwatch.utils.backoff import jitter, reconnect_delay
from tickwatch.utils.instruments import InstrumentResolver
from tickwatch.utils.time import utc_now_s
from tickwatch.utils.types import ConnectionStatus, FeedAlert, FeedAlertType, Severity, Tick


@dataclass(slots=True)
class FeedConfig:
    name: str
    url: str
    # freeze detection: no message at all for this long => frozen
    freeze_timeout_s: float = 30.0
    # reconnect behavior
    initial_backoff_s: float = 1.0
    max_backoff_s: float = 30.0
    # timeouts
    open_timeout_s: float = 10.0
    ping_interval_s: float = 20.0
    # bounded list of connection/data/freeze alerts
    max_feed_alerts: int = 50
    # websocket only: instrument keys to subscribe after connecting
    subscribe: list[str] = field(default_factory=list)


@dataclass(slots=True)
class FeedStats:
    messages: int = 0
    ticks: int = 0
    parse_errors: int = 0
    dropped: int = 0
    freezing_incidents: int = 0


class BaseFeed:
    """
    Shared lifecycle for a live tick feed.

    Lifecycle:
      - connect (status "connecting") -> stream (status "connected")
      - on error: status "error", connection alert, reconnect after
        min(initial * 2**attempt, max) seconds with ±20% jitter
      - every received message re-arms the freeze timer; if it fires the feed
        is marked frozen and a high-severity "freeze" alert is recorded

    Subclasses implement _connect_and_stream() and _close_transport(), and
    call _on_connected(), _on_message() and _enqueue_ticks().
    """

    def __init__(
        self,
        cfg: FeedConfig,
        ticks_queue: asyncio.Queue,
        resolver: Optional[InstrumentResolver] = None,
        clock: Callable[[], float] = utc_now_s,
    ):
        self.cfg = cfg
        self.q_ticks = ticks_queue
        self.resolver = resolver
        self.clock = clock

        self._log = structlog.get_logger("feed").bind(feed=cfg.name)
        self._stop = asyncio.Event()
        self._freeze_handle: Optional[asyncio.TimerHandle] = None
        self._last_msg_ts: float = 0.0
        self._last_event_by_key: dict[str, float] = {}
        self._delay_sum = 0.0
        self._delay_n = 0

        self.status: ConnectionStatus = "disconnected"
        self.is_frozen: bool = False
        self.reconnect_attempts: int = 0
        self.feed_alerts: list[FeedAlert] = []   # most-recent-first
        self.stats = FeedStats()

    # ---------------------------- public API ---------------------------- #

    async def start(self) -> None:
        while not self._stop.is_set():
            try:
                self._set_status("connecting")
                await self._connect_and_stream()
            except asyncio.CancelledError:
                break
            except Exception as e:
                if self._stop.is_set():
                    break
                self._set_status("error")
                self.add_alert("connection", f"{self.cfg.name} connection error", "medium")
                self._log.warning("feed_error", err=str(e))
            else:
                if self._stop.is_set():
                    break
                self._set_status("disconnected")
                self._log.info("feed_stream_ended")

            self.reconnect_attempts += 1
            delay = jitter(reconnect_delay(
                self.reconnect_attempts, base=self.cfg.initial_backoff_s, cap=self.cfg.max_backoff_s
            ))
            self._log.info("feed_reconnect_scheduled", attempt=self.reconnect_attempts, backoff_s=round(delay, 3))
            if await self._sleep_or_stop(delay):
                break

        self._cancel_freeze()
        self._set_status("disconnected")
        self._log.info("feed_loop_exit")

    async def stop(self) -> None:
        self._stop.set()
        self._cancel_freeze()
        try:
            await self._close_transport()
        except Exception as e:
            self._log.debug("feed_close_failed", err=str(e))

    def clear_alerts(self) -> None:
        self.feed_alerts.clear()

    def add_alert(self, type_: FeedAlertType, message: str, severity: Severity = "medium") -> FeedAlert:
        alert = FeedAlert(id=uuid.uuid4().hex, type=type_, message=message, severity=severity, ts=self.clock())
        self.feed_alerts.insert(0, alert)
        del self.feed_alerts[self.cfg.max_feed_alerts:]
        return alert

    def add_test_tick(self, instrument_key: str = "DEV_TOKEN") -> Tick:
        """Inject a synthetic tick (development aid)."""
        now = self.clock()
        tick = Tick(
            instrument_key=instrument_key,
            price=500.0 + random.random() * 200.0,
            quantity=float(random.randint(0, 99)),
            volume=float(random.randint(0, 9_999)),
            event_time=now,
            received_time=now,
        )
        self._enqueue_ticks([tick])
        self.add_alert("data", "Test tick injected", "low")
        return tick

    @property
    def is_connected(self) -> bool:
        return self.status == "connected"

    @property
    def average_delay_s(self) -> float:
        """Mean gap between consecutive ticks of the same instrument (event time)."""
        return self._delay_sum / self._delay_n if self._delay_n else 0.0

    @property
    def freezing_incidents(self) -> int:
        return self.stats.freezing_incidents

    def healthy(self) -> bool:
        return self.is_connected and not self.is_frozen

    def last_message_age_s(self) -> float:
        return max(0.0, self.clock() - self._last_msg_ts) if self._last_msg_ts else float("inf")

    # --------------------------- subclass hooks ------------------------- #

    async def _connect_and_stream(self) -> None:
        raise NotImplementedError

    async def _close_transport(self) -> None:
        return None

    # --------------------------- helpers -------------------------------- #

    def _set_status(self, status: ConnectionStatus) -> None:
        if status != self.status:
            self._log.debug("feed_status", status=status, prev=self.status)
        self.status = status

    def _on_connected(self) -> None:
        self._set_status("connected")
        self.reconnect_attempts = 0
        self.add_alert("connection", f"{self.cfg.name} connected", "low")
        self._log.info("feed_connected", url=self.cfg.url)
        self._arm_freeze()

    def _on_message(self) -> None:
        self.stats.messages += 1
        self._last_msg_ts = self.clock()
        if self.is_frozen:
            self.is_frozen = False
            self._log.info("feed_unfrozen")
        self._arm_freeze()

    def _on_parse_error(self, err: Exception, snippet: str = "") -> None:
        self.stats.parse_errors += 1
        self.add_alert("data", f"Parse error: {err}", "medium")
        self._log.warning("feed_parse_error", err=str(err), snippet=snippet[:200])

    def _enqueue_ticks(self, ticks: Iterable[Tick]) -> None:
        for t in ticks:
            prev = self._last_event_by_key.get(t.instrument_key)
            if prev is not None:
                self._delay_sum += max(0.0, t.event_time - prev)
                self._delay_n += 1
            self._last_event_by_key[t.instrument_key] = t.event_time
            try:
                self.q_ticks.put_nowait(t)
                self.stats.ticks += 1
            except asyncio.QueueFull:
                # hot path must not block; the consumer is behind
                self.stats.dropped += 1
                self._log.info("ticks_queue_full_drop", instrument=t.instrument_key)

    def _learn_name(self, instrument_key: str, name) -> None:
        if self.resolver is not None and isinstance(name, str) and name:
            self.resolver.learn(instrument_key, name)

    def _arm_freeze(self) -> None:
        self._cancel_freeze()
        if self._stop.is_set():
            return
        loop = asyncio.get_running_loop()
        self._freeze_handle = loop.call_later(self.cfg.freeze_timeout_s, self._on_freeze)

    def _cancel_freeze(self) -> None:
        if self._freeze_handle is not None:
            self._freeze_handle.cancel()
            self._freeze_handle = None

    def _on_freeze(self) -> None:
        self._freeze_handle = None
        self.is_frozen = True
        self.stats.freezing_incidents += 1
        self.add_alert("freeze", f"No {self.cfg.name} data for {self.cfg.freeze_timeout_s:.0f} s", "high")
        self._log.warning("feed_frozen", timeout_s=self.cfg.freeze_timeout_s)

    async def _sleep_or_stop(self, delay: float) -> bool:
        """Sleep up to `delay`; True if stop() was called meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False
