from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Tuple

# ---- ingest-level primitives ----

@dataclass(frozen=True, slots=True)
class Tick:
    instrument_key: str
    price: float
    quantity: float
    volume: float
    event_time: float     # epoch seconds, source clock
    received_time: float  # epoch seconds, local ingest clock


ConnectionStatus = Literal["disconnected", "connecting", "connected", "error"]
FeedAlertType = Literal["connection", "data", "freeze"]
Severity = Literal["low", "medium", "high"]


@dataclass(frozen=True, slots=True)
class FeedAlert:
    """
    Connection-level event raised by a feed adapter (not an inactivity alert).
    """
    id: str
    type: FeedAlertType
    message: str
    severity: Severity
    ts: float


# ---- alerting domain ----

AlertStatus = Literal["open", "closed"]
CloseReason = Literal["breach", "disabled", "market_closed"]
EffectKind = Literal["opened", "updated", "closed"]


@dataclass(frozen=True, slots=True)
class AlertConfig:
    enabled: bool = True
    deviation: float = 0.1
    duration_s: int = 30
    respect_market_hours: bool = True


@dataclass(slots=True)
class AlertEvent:
    id: str
    instrument_key: str
    instrument_name: str
    exchange: str
    baseline_price: float
    current_price: float
    price_range: Tuple[float, float]
    duration: float
    deviation: float
    timestamp: float  # episode start (event time)
    status: AlertStatus = "open"
    opened_at: float = 0.0
    closed_at: Optional[float] = None
    close_reason: Optional[CloseReason] = None

    @property
    def range_width(self) -> float:
        return self.price_range[1] - self.price_range[0]

    @property
    def price_change(self) -> float:
        return abs(self.current_price - self.baseline_price)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instrument_key": self.instrument_key,
            "instrument_name": self.instrument_name,
            "exchange": self.exchange,
            "baseline_price": self.baseline_price,
            "current_price": self.current_price,
            "price_range": {"min": self.price_range[0], "max": self.price_range[1]},
            "duration": self.duration,
            "deviation": self.deviation,
            "timestamp": self.timestamp,
            "status": self.status,
            "opened_at": self.opened_at,
            "closed_at": self.closed_at,
            "close_reason": self.close_reason,
        }


@dataclass(frozen=True, slots=True)
class EngineEffect:
    """
    One state transition produced by the engine for a single tick.
    `alert` is a snapshot taken at emission time.
    """
    kind: EffectKind
    instrument_key: str
    alert: AlertEvent
    reason: Optional[CloseReason] = None

    def to_dict(self) -> dict:
        d = {"kind": self.kind, "instrument_key": self.instrument_key, "alert": self.alert.to_dict()}
        if self.reason is not None:
            d["reason"] = self.reason
        return d
