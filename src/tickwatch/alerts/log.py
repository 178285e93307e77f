from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Literal, Optional

from tickwatch.utils.types import AlertEvent, EngineEffect, Severity

SeverityFilter = Literal["all", "high", "medium", "low"]
StatusFilter = Literal["all", "open", "closed"]
SortField = Literal["timestamp", "symbol", "severity", "duration", "price_change"]
SortDirection = Literal["asc", "desc"]

SEVERITY_ORDER: Dict[str, int] = {"high": 3, "medium": 2, "low": 1}


def severity_of(alert: AlertEvent) -> Severity:
    """
    Read-time classification: the tighter the observed range relative to the
    configured deviation, the more severe the stall.
    """
    width = alert.range_width
    if width < alert.deviation * 0.5:
        return "high"
    if width < alert.deviation * 0.8:
        return "medium"
    return "low"


@dataclass(frozen=True, slots=True)
class AlertQuery:
    severity: SeverityFilter = "all"
    status: StatusFilter = "all"
    search: str = ""
    sort_field: SortField = "timestamp"
    direction: SortDirection = "desc"


@dataclass(frozen=True, slots=True)
class AlertStats:
    total: int
    severity_counts: Dict[str, int]
    avg_duration: float


@dataclass(slots=True)
class LogStats:
    opened: int = 0
    updated: int = 0
    closed: int = 0
    evicted: int = 0
    orphaned: int = 0   # updates/closes for entries no longer in the log
    restored: int = 0   # open entries re-inserted after clear()


def _sort_key(field_name: SortField):
    if field_name == "symbol":
        return lambda a: a.instrument_name
    if field_name == "severity":
        return lambda a: SEVERITY_ORDER[severity_of(a)]
    if field_name == "duration":
        return lambda a: a.duration
    if field_name == "price_change":
        return lambda a: a.price_change
    return lambda a: a.timestamp


def summarize(alerts: Iterable[AlertEvent]) -> AlertStats:
    counts = {"high": 0, "medium": 0, "low": 0}
    total = 0
    dur_sum = 0.0
    for a in alerts:
        counts[severity_of(a)] += 1
        total += 1
        dur_sum += a.duration
    return AlertStats(total=total, severity_counts=counts, avg_duration=(dur_sum / total) if total else 0.0)


class AlertLog:
    """
    Bounded, most-recent-first history of inactivity alerts.

    Entries are created by "opened" effects, mutated in place by "updated"
    effects while open, and frozen by "closed" effects. When over capacity the
    entry that closed earliest is dropped; open entries are only dropped when
    nothing in the log is closed.

    clear() remembers which entries were still open; the next effect for one
    of them puts it back so the log agrees with the engine's open alerts.
    """

    def __init__(self, capacity: int = 50):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = int(capacity)
        self._entries: List[AlertEvent] = []
        self._by_id: Dict[str, AlertEvent] = {}
        self._close_seq: Dict[str, int] = {}
        self._seq = 0
        self._cleared_open: set[str] = set()
        self.stats = LogStats()

    def __len__(self) -> int:
        return len(self._entries)

    # ---- write side ----

    def record(self, effect: EngineEffect) -> None:
        if effect.kind == "opened":
            self._open(effect.alert)
            return

        entry = self._by_id.get(effect.alert.id)
        if entry is None and effect.alert.id in self._cleared_open:
            entry = self._restore(effect.alert)
        if entry is None:
            self.stats.orphaned += 1
            return
        if entry.status == "closed":
            return

        entry.current_price = effect.alert.current_price
        entry.price_range = effect.alert.price_range
        entry.duration = effect.alert.duration
        if effect.kind == "updated":
            self.stats.updated += 1
            return

        entry.status = "closed"
        entry.closed_at = effect.alert.closed_at
        entry.close_reason = effect.reason or effect.alert.close_reason
        self._seq += 1
        self._close_seq[entry.id] = self._seq
        self.stats.closed += 1

    def _open(self, alert: AlertEvent) -> None:
        if alert.id in self._by_id:
            return
        self._insert(replace(alert))
        self.stats.opened += 1

    def _insert(self, entry: AlertEvent) -> None:
        self._entries.insert(0, entry)
        self._by_id[entry.id] = entry
        while len(self._entries) > self.capacity:
            self._evict_one()

    def _restore(self, alert: AlertEvent) -> Optional[AlertEvent]:
        self._cleared_open.discard(alert.id)
        self._insert(replace(alert, status="open", closed_at=None, close_reason=None))
        self.stats.restored += 1
        return self._by_id.get(alert.id)

    def _evict_one(self) -> None:
        victim: Optional[AlertEvent] = None
        if self._close_seq:
            victim_id = min(self._close_seq, key=self._close_seq.__getitem__)
            victim = self._by_id[victim_id]
        else:
            victim = self._entries[-1]
        self._entries.remove(victim)
        self._by_id.pop(victim.id, None)
        self._close_seq.pop(victim.id, None)
        self.stats.evicted += 1

    def clear(self) -> None:
        self._cleared_open.update(a.id for a in self._entries if a.status == "open")
        self._entries.clear()
        self._by_id.clear()
        self._close_seq.clear()

    # ---- read side (never mutates) ----

    def get(self, alert_id: str) -> Optional[AlertEvent]:
        entry = self._by_id.get(alert_id)
        return replace(entry) if entry is not None else None

    def entries(self) -> List[AlertEvent]:
        return [replace(a) for a in self._entries]

    def query(self, q: Optional[AlertQuery] = None) -> List[AlertEvent]:
        q = q or AlertQuery()
        needle = q.search.strip().lower()
        out: List[AlertEvent] = []
        for a in self._entries:
            if q.severity != "all" and severity_of(a) != q.severity:
                continue
            if q.status != "all" and a.status != q.status:
                continue
            if needle and needle not in a.instrument_name.lower():
                continue
            out.append(replace(a))
        out.sort(key=_sort_key(q.sort_field), reverse=(q.direction == "desc"))
        return out

    def summary(self, q: Optional[AlertQuery] = None) -> AlertStats:
        return summarize(self.query(q))
