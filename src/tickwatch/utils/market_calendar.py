from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time as dtime
from typing import Iterable, Literal, Optional, Tuple
from zoneinfo import ZoneInfo

from tickwatch.utils.time import IST, local_dt, utc_now_s

MarketType = Literal["equity", "currency", "commodity"]
SessionLabel = Literal["pre_open", "regular", "closed"]

# Session windows in exchange local time (IST). [start, end)
EQUITY_PRE_OPEN = (dtime(9, 0), dtime(9, 15))
EQUITY_REGULAR = (dtime(9, 15), dtime(15, 30))
CURRENCY_REGULAR = (dtime(9, 0), dtime(17, 0))
COMMODITY_REGULAR = (dtime(9, 0), dtime(23, 30))

CURRENCY_NAMES = {"USDINR", "EURINR", "GBPINR", "JPYINR"}
COMMODITY_PREFIXES = (
    "CRUDEOIL", "NATURALGAS", "GOLD", "SILVER", "COPPER", "ZINC",
    "LEAD", "NICKEL", "ALUMINIUM", "COTTON", "MENTHAOIL",
)

# Trading holidays (extend as needed)
HOLIDAYS = {
    "2025-02-26", "2025-03-14", "2025-03-31", "2025-04-10", "2025-04-14",
    "2025-04-18", "2025-05-01", "2025-08-15", "2025-08-27", "2025-10-02",
    "2025-10-21", "2025-10-22", "2025-11-05", "2025-12-25",
}


def market_type_for(instrument_name: str) -> MarketType:
    name = (instrument_name or "").upper()
    if name in CURRENCY_NAMES or (len(name) == 6 and name.endswith("INR")):
        return "currency"
    if name.startswith(COMMODITY_PREFIXES):
        return "commodity"
    return "equity"


@dataclass(frozen=True, slots=True)
class SessionStatus:
    is_open: bool
    session: SessionLabel
    market_type: MarketType


def _within(t: dtime, window: Tuple[dtime, dtime]) -> bool:
    return window[0] <= t < window[1]


class MarketSessionOracle:
    """
    Pure session predicate: is the market for `instrument_name` open at epoch `ts`?

    Only the regular session counts as open. Equity pre-open (09:00-09:15 IST)
    is labelled but reported closed, since its prints are auction indications.
    """

    def __init__(self, tz: ZoneInfo = IST, holidays: Optional[Iterable[str]] = None):
        self.tz = tz
        self.holidays = set(HOLIDAYS if holidays is None else holidays)

    def _is_trading_day(self, d: date) -> bool:
        return d.weekday() < 5 and d.isoformat() not in self.holidays

    def is_open(self, instrument_name: str, ts: float) -> SessionStatus:
        mtype = market_type_for(instrument_name)
        now = local_dt(ts, self.tz)
        if not self._is_trading_day(now.date()):
            return SessionStatus(False, "closed", mtype)

        t = now.time()
        if mtype == "currency":
            regular = CURRENCY_REGULAR
        elif mtype == "commodity":
            regular = COMMODITY_REGULAR
        else:
            if _within(t, EQUITY_PRE_OPEN):
                return SessionStatus(False, "pre_open", mtype)
            regular = EQUITY_REGULAR

        if _within(t, regular):
            return SessionStatus(True, "regular", mtype)
        return SessionStatus(False, "closed", mtype)

    def next_open(self, instrument_name: str, ts: float) -> Optional[datetime]:
        """
        Next regular-session open strictly after `ts`, looking at most 10 days ahead.
        Returns None when nothing is found in that horizon.
        """
        mtype = market_type_for(instrument_name)
        start = {
            "currency": CURRENCY_REGULAR[0],
            "commodity": COMMODITY_REGULAR[0],
        }.get(mtype, EQUITY_REGULAR[0])
        now = local_dt(ts, self.tz)
        d = now.date()
        for _ in range(11):
            candidate = datetime.combine(d, start, tzinfo=self.tz)
            if candidate > now and self._is_trading_day(d):
                return candidate
            d = date.fromordinal(d.toordinal() + 1)
        return None


_DEFAULT_ORACLE = MarketSessionOracle()

def is_market_open_now(instrument_name: str) -> bool:
    """True if the instrument's market is in its regular session right now."""
    return _DEFAULT_ORACLE.is_open(instrument_name, utc_now_s()).is_open

def session_status_now(instrument_name: str) -> SessionStatus:
    return _DEFAULT_ORACLE.is_open(instrument_name, utc_now_s())
