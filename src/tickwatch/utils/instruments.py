from __future__ import annotations

from typing import Dict, Mapping, Optional

from tickwatch.utils.market_calendar import market_type_for

# instrument token -> trading symbol
KNOWN_INSTRUMENTS: Dict[str, str] = {
    "256265": "NIFTY",
    "265": "SENSEX",
    "128083204": "RELIANCE",
    "281836549": "BHEL",
    "408065": "USDINR",
    "134657": "CRUDEOIL",
}


class InstrumentResolver:
    """
    Maps instrument keys to display names and exchanges.

    Names announced by the feed itself (e.g. a `tradingsymbol` field) take
    precedence over the static table; unknown keys render as TOKEN_<key>.
    """

    def __init__(self, names: Optional[Mapping[str, str]] = None):
        self._static: Dict[str, str] = dict(KNOWN_INSTRUMENTS if names is None else names)
        self._learned: Dict[str, str] = {}

    def learn(self, instrument_key: str, name: str) -> None:
        if name:
            self._learned[instrument_key] = name

    def resolve_name(self, instrument_key: str) -> str:
        name = self._learned.get(instrument_key) or self._static.get(instrument_key)
        return name or f"TOKEN_{instrument_key}"

    @staticmethod
    def resolve_exchange(name: str) -> str:
        mtype = market_type_for(name)
        if mtype == "currency":
            return "CDS"
        if mtype == "commodity":
            return "MCX"
        if "NIFTY" in name:
            return "NFO"
        if "SENSEX" in name:
            return "BFO"
        return "NSE"
