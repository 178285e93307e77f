from __future__ import annotations
from dataclasses import dataclass

from tickwatch.utils.types import AlertEvent

@dataclass(slots=True)
class InstrumentMonitorState:
    # episode (current run of in-band ticks)
    baseline_price: float | None = None
    band_min: float = 0.0
    band_max: float = 0.0
    episode_start: float | None = None
    episode_deviation: float = 0.0      # deviation in force when the episode began
    observed_min: float = 0.0
    observed_max: float = 0.0

    # diagnostics
    last_tick_time: float | None = None   # received_time of the last tick
    last_event_time: float | None = None
    tick_count: int = 0

    # alert currently open for this instrument, if any
    active_alert: AlertEvent | None = None

    @property
    def is_alerting(self) -> bool:
        return self.active_alert is not None

    @property
    def active_alert_id(self) -> str | None:
        return self.active_alert.id if self.active_alert is not None else None

    def contains(self, price: float, deviation: float) -> bool:
        """
        Re-derive the band from `deviation` around the current baseline, then
        test `price` against it (closed interval). A run whose observed range
        no longer fits the re-derived band is broken as well.
        """
        if self.baseline_price is None:
            return False
        self.band_min = self.baseline_price - deviation
        self.band_max = self.baseline_price + deviation
        if self.observed_min < self.band_min or self.observed_max > self.band_max:
            return False
        return self.band_min <= price <= self.band_max

    def reset(self, price: float, event_time: float, deviation: float) -> None:
        self.baseline_price = price
        self.band_min = price - deviation
        self.band_max = price + deviation
        self.episode_start = event_time
        self.episode_deviation = deviation
        self.observed_min = price
        self.observed_max = price

    def extend(self, price: float) -> None:
        if price < self.observed_min:
            self.observed_min = price
        if price > self.observed_max:
            self.observed_max = price

    def clear_episode(self) -> None:
        self.baseline_price = None
        self.band_min = 0.0
        self.band_max = 0.0
        self.episode_start = None
        self.episode_deviation = 0.0
        self.observed_min = 0.0
        self.observed_max = 0.0
