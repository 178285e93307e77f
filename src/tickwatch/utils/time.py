from __future__ import annotations

import time
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

IST = ZoneInfo("Asia/Kolkata")

# --- fast, allocation-free time helpers ---

def utc_now_s() -> float:
    """Unix epoch seconds (float)."""
    return time.time()

def to_epoch_s(ts: float | int) -> float:
    """
    Normalize an epoch timestamp that may be in s, ms or ns to seconds.
    Feeds disagree on units; magnitude decides.
    """
    ts = float(ts)
    if ts > 1e17:   # ns
        return ts / 1e9
    if ts > 1e14:   # us
        return ts / 1e6
    if ts > 1e11:   # ms
        return ts / 1e3
    return ts

def utc_dt(ts: float | int) -> datetime:
    """Epoch seconds -> timezone-aware UTC datetime."""
    return datetime.fromtimestamp(float(ts), tz=timezone.utc)

def local_dt(ts: float | int, tz: ZoneInfo = IST) -> datetime:
    """Epoch seconds -> aware datetime in `tz` (exchange local time)."""
    return datetime.fromtimestamp(float(ts), tz=tz)

def seconds_since(ts_past: float, now: float | None = None) -> float:
    """Non-negative time since past (clamped at 0)."""
    now = utc_now_s() if now is None else now
    return max(0.0, now - ts_past)
