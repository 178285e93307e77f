import pytest

from tickwatch.alerts.formatting import format_effect_pretty, format_range
from tickwatch.alerts.notifiers import ConsoleNotifier
from tickwatch.utils.types import AlertEvent, EngineEffect


def mk_alert(**kw):
    base = dict(id="abc", instrument_key="256265", instrument_name="NIFTY", exchange="NFO",
                baseline_price=24510.0, current_price=24510.1, price_range=(24510.0, 24510.1),
                duration=42.0, deviation=0.5, timestamp=1748838600.0)  # 10:00 IST
    base.update(kw)
    return AlertEvent(**base)


def test_format_range():
    assert format_range(100.0, 100.0) == "₹100.00"
    assert format_range(1000.0, 1234.5) == "₹1,000.00 - ₹1,234.50"


def test_opened_line():
    line = format_effect_pretty(EngineEffect("opened", "256265", mk_alert()))
    assert line.startswith("[INACTIVE] NIFTY (NFO) flat since 10:00:00 IST for 42s")
    assert "base ₹24,510.00 ±0.50" in line
    assert line.endswith("[HIGH]")


def test_closed_and_updated_lines():
    closed = format_effect_pretty(EngineEffect("closed", "256265", mk_alert(status="closed"), "market_closed"))
    assert closed == "[RESUMED] NIFTY after 42s (market closed) last ₹24,510.10"
    upd = format_effect_pretty(EngineEffect("updated", "256265", mk_alert()))
    assert upd.startswith("[STILL INACTIVE] NIFTY")


@pytest.mark.asyncio
async def test_console_notifier_skips_updates(capsys):
    n = ConsoleNotifier(format_fn=lambda e: f"fmt {e.kind}")
    await n.send(EngineEffect("updated", "256265", mk_alert()))
    await n.send(EngineEffect("opened", "256265", mk_alert()))
    out = capsys.readouterr().out
    assert out == "fmt opened\n"


@pytest.mark.asyncio
async def test_console_notifier_falls_back_on_format_error(capsys):
    def broken(effect):
        raise KeyError("boom")

    n = ConsoleNotifier(format_fn=broken, include_updates=True)
    await n.send(EngineEffect("updated", "256265", mk_alert()))
    out = capsys.readouterr().out
    assert "[ALERT] 256265 updated" in out
