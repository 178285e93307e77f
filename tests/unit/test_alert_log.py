from dataclasses import replace

import pytest

from tickwatch.alerts.log import AlertLog, AlertQuery, severity_of, summarize
from tickwatch.utils.types import AlertEvent, EngineEffect


def mk_alert(id_, name="NIFTY", *, ts=0.0, rng=(100.0, 100.0), dev=1.0, dur=30.0,
             base=100.0, cur=100.0):
    return AlertEvent(
        id=id_,
        instrument_key=f"key-{name}",
        instrument_name=name,
        exchange="NSE",
        baseline_price=base,
        current_price=cur,
        price_range=rng,
        duration=dur,
        deviation=dev,
        timestamp=ts,
    )


def opened(a):
    return EngineEffect("opened", a.instrument_key, a)


def closed(a, reason="breach", at=1.0):
    c = replace(a, status="closed", closed_at=at, close_reason=reason)
    return EngineEffect("closed", a.instrument_key, c, reason)


@pytest.mark.parametrize("width,expected", [
    (0.0, "high"),
    (0.49, "high"),
    (0.5, "medium"),
    (0.79, "medium"),
    (0.8, "low"),
    (1.0, "low"),
])
def test_severity_thresholds(width, expected):
    a = mk_alert("x", rng=(0.0, width), dev=1.0)
    assert severity_of(a) == expected


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        AlertLog(capacity=0)


def test_open_update_close_lifecycle():
    log = AlertLog()
    a = mk_alert("a")
    log.record(opened(a))
    assert log.get("a").status == "open"

    log.record(EngineEffect("updated", a.instrument_key, replace(a, current_price=100.4,
                                                                  price_range=(100.0, 100.4), duration=45.0)))
    e = log.get("a")
    assert (e.current_price, e.price_range, e.duration) == (100.4, (100.0, 100.4), 45.0)

    log.record(closed(a, reason="disabled", at=99.0))
    e = log.get("a")
    assert e.status == "closed"
    assert e.close_reason == "disabled"
    assert e.closed_at == 99.0

    # closed entries are frozen
    log.record(EngineEffect("updated", a.instrument_key, replace(a, current_price=1.0)))
    assert log.get("a").current_price == 100.0
    assert log.stats.opened == 1 and log.stats.updated == 1 and log.stats.closed == 1


def test_duplicate_open_is_ignored():
    log = AlertLog()
    a = mk_alert("a")
    log.record(opened(a))
    log.record(opened(a))
    assert len(log) == 1


def test_unknown_ids_count_as_orphaned():
    log = AlertLog()
    log.record(closed(mk_alert("ghost")))
    assert len(log) == 0
    assert log.stats.orphaned == 1


def test_most_recent_first():
    log = AlertLog()
    for i in range(3):
        log.record(opened(mk_alert(str(i))))
    assert [a.id for a in log.entries()] == ["2", "1", "0"]


def test_eviction_prefers_earliest_closed():
    log = AlertLog(capacity=3)
    a, b, c = mk_alert("a"), mk_alert("b"), mk_alert("c")
    for x in (a, b, c):
        log.record(opened(x))
    # close out of insertion order: c first, then a
    log.record(closed(c))
    log.record(closed(a))

    log.record(opened(mk_alert("d")))
    assert [e.id for e in log.entries()] == ["d", "b", "a"]
    log.record(opened(mk_alert("e")))
    assert [e.id for e in log.entries()] == ["e", "d", "b"]
    assert log.stats.evicted == 2


def test_eviction_falls_back_to_oldest_open():
    log = AlertLog(capacity=2)
    for i in range(3):
        log.record(opened(mk_alert(str(i))))
    assert [e.id for e in log.entries()] == ["2", "1"]


def test_clear():
    log = AlertLog()
    log.record(opened(mk_alert("a")))
    log.clear()
    assert len(log) == 0
    assert log.get("a") is None


def test_query_filters():
    log = AlertLog()
    log.record(opened(mk_alert("1", "NIFTY", rng=(100.0, 100.1))))     # high
    log.record(opened(mk_alert("2", "RELIANCE", rng=(100.0, 100.6))))  # medium
    log.record(opened(mk_alert("3", "BANKNIFTY", rng=(100.0, 100.9)))) # low
    log.record(closed(mk_alert("3", "BANKNIFTY", rng=(100.0, 100.9))))

    assert [a.id for a in log.query(AlertQuery(severity="high"))] == ["1"]
    assert [a.id for a in log.query(AlertQuery(status="closed"))] == ["3"]
    assert sorted(a.id for a in log.query(AlertQuery(status="open"))) == ["1", "2"]
    assert sorted(a.id for a in log.query(AlertQuery(search="  nifty "))) == ["1", "3"]
    assert log.query(AlertQuery(search="TCS")) == []


@pytest.mark.parametrize("field,direction,expected", [
    ("timestamp", "desc", ["c", "b", "a"]),
    ("timestamp", "asc", ["a", "b", "c"]),
    ("symbol", "asc", ["b", "c", "a"]),
    ("duration", "desc", ["a", "c", "b"]),
    ("price_change", "asc", ["c", "a", "b"]),
    ("severity", "desc", ["b", "a", "c"]),
])
def test_query_sorting(field, direction, expected):
    log = AlertLog()
    log.record(opened(mk_alert("a", "ZEE", ts=1.0, dur=90.0, cur=100.3, rng=(100.0, 100.6))))  # medium
    log.record(opened(mk_alert("b", "AXIS", ts=2.0, dur=30.0, cur=100.5, rng=(100.0, 100.1))))  # high
    log.record(opened(mk_alert("c", "BHEL", ts=3.0, dur=60.0, cur=100.1, rng=(100.0, 100.9))))  # low
    got = [a.id for a in log.query(AlertQuery(sort_field=field, direction=direction))]
    assert got == expected


def test_summary_and_summarize():
    log = AlertLog()
    log.record(opened(mk_alert("a", dur=30.0, rng=(1.0, 1.0))))
    log.record(opened(mk_alert("b", dur=90.0, rng=(1.0, 2.0))))
    s = log.summary()
    assert s.total == 2
    assert s.severity_counts == {"high": 1, "medium": 0, "low": 1}
    assert s.avg_duration == 60.0

    empty = summarize([])
    assert empty.total == 0 and empty.avg_duration == 0.0


def test_clear_then_update_restores_open_entry():
    log = AlertLog()
    a, b = mk_alert("a"), mk_alert("b")
    log.record(opened(a))
    log.record(opened(b))
    log.record(closed(b))
    log.clear()

    log.record(EngineEffect("updated", a.instrument_key, replace(a, current_price=100.3, duration=50.0)))
    [entry] = log.entries()
    assert entry.id == "a" and entry.status == "open"
    assert entry.current_price == 100.3 and entry.duration == 50.0
    assert log.stats.restored == 1

    # a closed entry stays gone
    log.record(closed(b))
    assert log.get("b") is None
    assert log.stats.orphaned == 1


def test_clear_then_close_restores_as_closed():
    log = AlertLog()
    a = mk_alert("a")
    log.record(opened(a))
    log.clear()
    log.record(closed(a, reason="market_closed", at=7.0))
    e = log.get("a")
    assert e.status == "closed" and e.close_reason == "market_closed" and e.closed_at == 7.0
    # only restored once
    log.clear()
    log.record(closed(a))
    assert log.get("a") is None
