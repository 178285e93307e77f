import asyncio
import json

import pytest

import tickwatch.notify.redis_pub as rp
from tickwatch.utils.types import AlertEvent, EngineEffect
from tests.helpers.fake_redis import FakeRedisModule


def mk_effect(kind="opened", reason=None):
    a = AlertEvent(id="abc", instrument_key="256265", instrument_name="NIFTY", exchange="NFO",
                   baseline_price=100.0, current_price=100.1, price_range=(100.0, 100.1),
                   duration=31.0, deviation=0.5, timestamp=1000.0)
    return EngineEffect(kind, "256265", a, reason)


def test_channel_for():
    assert rp.channel_for("tickwatch", "primary") == "tickwatch:primary:alerts"


@pytest.mark.asyncio
async def test_publish_enabled(monkeypatch):
    fake_mod = FakeRedisModule()
    monkeypatch.setattr(rp, "redis", fake_mod)

    pub = rp.RedisEffectPublisher(url="redis://localhost:6379/0", enabled=True)
    await pub.start()
    pub.publish("primary", mk_effect())
    pub.publish("upstox", mk_effect("closed", "breach"))

    # give writer loop time to flush
    await asyncio.sleep(0.05)
    await pub.stop()

    assert fake_mod.last_url == "redis://localhost:6379/0"
    sent = fake_mod.instance.published
    assert [ch for ch, _ in sent] == ["tickwatch:primary:alerts", "tickwatch:upstox:alerts"]
    first = json.loads(sent[0][1])
    assert first["kind"] == "opened"
    assert first["feed"] == "primary"
    assert first["alert"]["price_range"] == {"min": 100.0, "max": 100.1}
    assert json.loads(sent[1][1])["reason"] == "breach"
    assert pub.published == 2
    assert fake_mod.instance.closed


@pytest.mark.asyncio
async def test_publish_errors_are_counted(monkeypatch):
    fake_mod = FakeRedisModule(fail=True)
    monkeypatch.setattr(rp, "redis", fake_mod)

    pub = rp.RedisEffectPublisher(url="redis://x", enabled=True)
    await pub.start()
    pub.publish("primary", mk_effect())
    await asyncio.sleep(0.05)
    await pub.stop()
    assert pub.errors == 1
    assert pub.published == 0


@pytest.mark.asyncio
async def test_disabled_is_noop(monkeypatch):
    fake_mod = FakeRedisModule()
    monkeypatch.setattr(rp, "redis", fake_mod)

    pub = rp.RedisEffectPublisher(url="redis://x", enabled=False)
    await pub.start()
    pub.publish("primary", mk_effect())
    await pub.stop()
    assert fake_mod.last_url is None
    assert fake_mod.instance.published == []


@pytest.mark.asyncio
async def test_full_queue_drops(monkeypatch):
    monkeypatch.setattr(rp, "redis", FakeRedisModule())
    pub = rp.RedisEffectPublisher(url="redis://x", enabled=True, maxsize=1)
    # not started: nothing drains the queue
    pub.publish("primary", mk_effect())
    pub.publish("primary", mk_effect())
    assert pub.dropped == 1
