from __future__ import annotations
from datetime import datetime
from zoneinfo import ZoneInfo

from tickwatch.alerts.log import severity_of
from tickwatch.utils.types import AlertEvent, EngineEffect

def _fmt_ts(ts_s: float, tz_name: str) -> str:
    tz = ZoneInfo(tz_name)
    return datetime.fromtimestamp(ts_s, tz).strftime("%H:%M:%S %Z")  # e.g., 14:05:09 IST

def format_price(px: float) -> str:
    return f"{px:,.2f}"

def format_range(lo: float, hi: float) -> str:
    if lo == hi:
        return f"₹{format_price(lo)}"
    return f"₹{format_price(lo)} - ₹{format_price(hi)}"

def format_alert(alert: AlertEvent, tz_name: str = "Asia/Kolkata") -> str:
    lo, hi = alert.price_range
    return (
        f"{alert.instrument_name} ({alert.exchange}) flat since {_fmt_ts(alert.timestamp, tz_name)} "
        f"for {alert.duration:.0f}s  |  base ₹{format_price(alert.baseline_price)} "
        f"±{alert.deviation:.2f}  range {format_range(lo, hi)}  [{severity_of(alert).upper()}]"
    )

def format_effect_pretty(effect: EngineEffect, tz_name: str = "Asia/Kolkata") -> str:
    a = effect.alert
    if effect.kind == "opened":
        return f"[INACTIVE] {format_alert(a, tz_name)}"
    if effect.kind == "closed":
        reason = {
            "breach": "price moved",
            "disabled": "alerts disabled",
            "market_closed": "market closed",
        }.get(effect.reason or "", effect.reason or "?")
        return (
            f"[RESUMED] {a.instrument_name} after {a.duration:.0f}s ({reason}) "
            f"last ₹{format_price(a.current_price)}"
        )
    return f"[STILL INACTIVE] {format_alert(a, tz_name)}"
