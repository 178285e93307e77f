from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional

import structlog

from tickwatch.alerts.config_store import ConfigResult, ConfigStore
from tickwatch.alerts.log import AlertLog, AlertQuery, AlertStats
from tickwatch.alerts.state import InstrumentMonitorState
from tickwatch.utils.instruments import InstrumentResolver
from tickwatch.utils.market_calendar import MarketSessionOracle
from tickwatch.utils.time import utc_now_s
from tickwatch.utils.types import AlertConfig, AlertEvent, CloseReason, EngineEffect, Tick

log = structlog.get_logger("engine")


@dataclass(slots=True)
class EngineConfig:
    alert_log_capacity: int = 50
    # Session oracle raised: treat market as open (True) or closed (False).
    oracle_fail_open: bool = True


@dataclass(slots=True)
class EngineDiagnostics:
    ticks_processed: int = 0
    dropped_ticks: int = 0
    oracle_errors: int = 0
    alerts_opened: int = 0
    alerts_closed: int = 0


class InactivityEngine:
    """
    Per-instrument price-inactivity state machine for one feed.

    on_tick() folds a single tick into the instrument's state and returns the
    alert transitions it caused:
      - a tick outside baseline ± deviation re-anchors the baseline at that
        price (closing any open alert with reason "breach");
      - a tick inside the band extends the run; once the run has lasted
        duration_s (event time) an alert is opened, then updated on every
        further in-band tick;
      - a disabled instrument closes its alert and forgets the run;
      - with respect_market_hours, a closed session closes the alert and
        suppresses new ones, while still tracking the run.

    Synchronous and I/O free. Must be driven by a single consumer per feed.
    Effects are applied to the engine's AlertLog and passed to listeners.
    """

    def __init__(
        self,
        store: Optional[ConfigStore] = None,
        oracle: Optional[MarketSessionOracle] = None,
        resolver: Optional[InstrumentResolver] = None,
        cfg: Optional[EngineConfig] = None,
        *,
        feed: str = "feed",
        clock: Callable[[], float] = utc_now_s,
    ):
        self.cfg = cfg or EngineConfig()
        self.store = store or ConfigStore()
        self.oracle = oracle or MarketSessionOracle()
        self.resolver = resolver or InstrumentResolver()
        self.feed = feed
        self.clock = clock
        self.alert_log = AlertLog(capacity=self.cfg.alert_log_capacity)
        self.diag = EngineDiagnostics()
        self.listeners: List[Callable[[EngineEffect], None]] = []
        self._states: Dict[str, InstrumentMonitorState] = {}
        self._inactive: set[str] = set()
        self._log = log.bind(feed=feed)

    # ---------------------------- input ---------------------------- #

    def on_tick(self, tick: Tick) -> List[EngineEffect]:
        if not self.is_valid(tick):
            self.diag.dropped_ticks += 1
            return []

        key = tick.instrument_key
        px = float(tick.price)
        et = float(tick.event_time)
        now = float(tick.received_time)

        st = self.state_for(key)
        st.last_tick_time = now
        st.last_event_time = et
        st.tick_count += 1
        self.diag.ticks_processed += 1

        cfg = self.store.get(key)
        effects: List[EngineEffect] = []

        if not cfg.enabled:
            if st.active_alert is not None:
                effects.append(self._close(key, st, "disabled", now))
            st.clear_episode()
            return effects

        gated = cfg.respect_market_hours and not self._market_open(key, et)
        if gated and st.active_alert is not None:
            effects.append(self._close(key, st, "market_closed", now))

        if not st.contains(px, cfg.deviation):
            if st.active_alert is not None:
                effects.append(self._close(key, st, "breach", now))
            st.reset(px, et, cfg.deviation)
            return effects

        st.extend(px)
        if gated:
            return effects

        elapsed = max(0.0, et - (st.episode_start if st.episode_start is not None else et))
        if elapsed < cfg.duration_s:
            return effects

        if st.active_alert is None:
            effects.append(self._open(key, st, px, elapsed, now))
        else:
            alert = st.active_alert
            alert.current_price = px
            alert.price_range = (st.observed_min, st.observed_max)
            alert.duration = elapsed
            effects.append(self._emit(EngineEffect("updated", key, replace(alert))))
        return effects

    def configure(self, instrument_key: str, cfg: AlertConfig) -> ConfigResult:
        res = self.store.set(instrument_key, cfg)
        if res.ok and not cfg.enabled:
            self._disable([instrument_key])
        return res

    def configure_many(self, instrument_keys: Iterable[str], cfg: AlertConfig) -> ConfigResult:
        res = self.store.set_many(instrument_keys, cfg)
        if res.ok and not cfg.enabled:
            self._disable(res.keys)
        return res

    def clear_alerts(self) -> None:
        self.alert_log.clear()

    # ---------------------------- output ---------------------------- #

    def alerts(self) -> List[AlertEvent]:
        return self.alert_log.entries()

    def inactive_instrument_keys(self) -> FrozenSet[str]:
        return frozenset(self._inactive)

    def configurations(self) -> Dict[str, AlertConfig]:
        return self.store.overrides()

    def query(self, q: Optional[AlertQuery] = None) -> List[AlertEvent]:
        return self.alert_log.query(q)

    def stats(self, q: Optional[AlertQuery] = None) -> AlertStats:
        return self.alert_log.summary(q)

    def open_alert(self, instrument_key: str) -> Optional[AlertEvent]:
        st = self._states.get(instrument_key)
        if st is None or st.active_alert is None:
            return None
        return replace(st.active_alert)

    def last_seen(self, instrument_key: str) -> Optional[float]:
        st = self._states.get(instrument_key)
        return st.last_tick_time if st is not None else None

    def instrument_keys(self) -> List[str]:
        return list(self._states)

    def diagnostics(self) -> dict:
        d = self.diag
        return {
            "ticks_processed": d.ticks_processed,
            "dropped_ticks": d.dropped_ticks,
            "oracle_errors": d.oracle_errors,
            "alerts_opened": d.alerts_opened,
            "alerts_closed": d.alerts_closed,
            "instruments": len(self._states),
            "inactive": len(self._inactive),
        }

    # --------------------------- internals -------------------------- #

    def state_for(self, instrument_key: str) -> InstrumentMonitorState:
        st = self._states.get(instrument_key)
        if st is None:
            st = InstrumentMonitorState()
            self._states[instrument_key] = st
        return st

    @staticmethod
    def is_valid(tick: Tick) -> bool:
        """Well-formed tick: key present, finite times, finite positive price."""
        if not tick.instrument_key:
            return False
        try:
            px = float(tick.price)
            et = float(tick.event_time)
            rt = float(tick.received_time)
        except (TypeError, ValueError):
            return False
        if not (math.isfinite(px) and math.isfinite(et) and math.isfinite(rt)):
            return False
        return px > 0.0

    def _market_open(self, key: str, event_time: float) -> bool:
        name = self.resolver.resolve_name(key)
        try:
            return bool(self.oracle.is_open(name, event_time).is_open)
        except Exception as e:
            self.diag.oracle_errors += 1
            self._log.warning("session_oracle_failed", instrument=key, err=str(e),
                              fail_open=self.cfg.oracle_fail_open)
            return self.cfg.oracle_fail_open

    def _open(self, key: str, st: InstrumentMonitorState, px: float, elapsed: float, now: float) -> EngineEffect:
        name = self.resolver.resolve_name(key)
        alert = AlertEvent(
            id=uuid.uuid4().hex,
            instrument_key=key,
            instrument_name=name,
            exchange=self.resolver.resolve_exchange(name),
            baseline_price=float(st.baseline_price),
            current_price=px,
            price_range=(st.observed_min, st.observed_max),
            duration=elapsed,
            deviation=st.episode_deviation,
            timestamp=float(st.episode_start),
            opened_at=now,
        )
        st.active_alert = alert
        self._inactive.add(key)
        self.diag.alerts_opened += 1
        self._log.info("inactivity_alert_opened", instrument=key, name=name,
                       baseline=alert.baseline_price, duration_s=round(elapsed, 3))
        return self._emit(EngineEffect("opened", key, replace(alert)))

    def _close(self, key: str, st: InstrumentMonitorState, reason: CloseReason, now: float) -> EngineEffect:
        alert = st.active_alert
        assert alert is not None
        alert.status = "closed"
        alert.closed_at = now
        alert.close_reason = reason
        st.active_alert = None
        self._inactive.discard(key)
        self.diag.alerts_closed += 1
        self._log.info("inactivity_alert_closed", instrument=key, reason=reason,
                       duration_s=round(alert.duration, 3))
        return self._emit(EngineEffect("closed", key, replace(alert), reason))

    def _disable(self, keys: Iterable[str]) -> None:
        now = self.clock()
        for k in keys:
            st = self._states.get(k)
            if st is None:
                continue
            if st.active_alert is not None:
                self._close(k, st, "disabled", now)
            st.clear_episode()

    def _emit(self, effect: EngineEffect) -> EngineEffect:
        self.alert_log.record(effect)
        for fn in self.listeners:
            try:
                fn(effect)
            except Exception as e:
                self._log.warning("effect_listener_failed", err=str(e), kind=effect.kind)
        return effect
