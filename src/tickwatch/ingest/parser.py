from __future__ import annotations
import datetime
from typing import Optional
from tickwatch.utils.types import Tick
from tickwatch.utils.time import to_epoch_s, utc_now_s

def _num(v, default: float = 0.0) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return default

def parse_tick_msg(m: dict, received_s: Optional[float] = None) -> Optional[Tick]:
    """
    Return Tick if `m` looks like a price tick from the primary (websocket) feed; else None.

    Common fields:
      - "instrument_token": 256265        (instrument key)
      - "last_price": 24510.35
      - "last_quantity" / "last_traded_quantity": 75
      - "volume" / "volume_traded": 1234567
      - "timestamp" / "exchange_timestamp": epoch (s, ms or ns) or ISO string
      - "tradingsymbol": "NIFTY"          (optional display name)
    """
    if not isinstance(m, dict):
        return None
    token = m.get("instrument_token")
    if token is None:
        token = m.get("token")
    px = m.get("last_price")
    if px is None:
        px = m.get("ltp")
    if token is None or px is None:
        return None

    received_s = utc_now_s() if received_s is None else received_s
    qty = m.get("last_quantity") or m.get("last_traded_quantity") or 0
    vol = m.get("volume") or m.get("volume_traded") or 0
    ts = m.get("exchange_timestamp") or m.get("timestamp")

    # normalize timestamp to epoch seconds
    if isinstance(ts, str):
        try:
            ts = datetime.datetime.fromisoformat(ts.replace("Z", "+00:00")).timestamp()
        except ValueError:
            ts = received_s
    elif isinstance(ts, (int, float)):
        ts = to_epoch_s(ts)
    else:
        ts = received_s

    # price is passed through as-is; the engine decides what is malformed
    return Tick(
        instrument_key=str(token),
        price=_num(px, float("nan")),
        quantity=_num(qty),
        volume=_num(vol),
        event_time=float(ts),
        received_time=float(received_s),
    )

def parse_live_feed(payload: dict, received_s: Optional[float] = None) -> list[Tick]:
    """
    Expand one SSE "live_feed" payload into ticks.

      {"type": "live_feed",
       "feeds": {"NSE_INDEX|Nifty 50": {"ff": {"marketFF": {
            "ltpc": {"ltp": 24510.3, "ltq": 75, "ltt": 1717000000000, "cp": 24480.1},
            "marketOHLC": {"ohlc": [..., {"volume": 1234}]}}}}}}

    Entries without a usable ltp are skipped. ltt is epoch milliseconds and
    falls back to the receive time when absent.
    """
    if not isinstance(payload, dict) or payload.get("type") != "live_feed":
        return []
    feeds = payload.get("feeds")
    if not isinstance(feeds, dict):
        return []

    received_s = utc_now_s() if received_s is None else received_s
    out: list[Tick] = []
    for token, item in feeds.items():
        if not isinstance(item, dict):
            continue
        market = (item.get("ff") or {}).get("marketFF") or {}
        ltpc = market.get("ltpc") or {}
        ltp = ltpc.get("ltp")
        if not ltp:
            continue

        ltt = ltpc.get("ltt")
        ts = to_epoch_s(_num(ltt)) if ltt is not None else received_s

        vol = None
        ohlc = (market.get("marketOHLC") or {}).get("ohlc") or []
        if ohlc and isinstance(ohlc[-1], dict):
            vol = ohlc[-1].get("volume")
        if vol is None:
            vol = item.get("volume", 0)

        out.append(Tick(
            instrument_key=str(token),
            price=_num(ltp, float("nan")),
            quantity=_num(ltpc.get("ltq")),
            volume=_num(vol),
            event_time=ts,
            received_time=float(received_s),
        ))
    return out
