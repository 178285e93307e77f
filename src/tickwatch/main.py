# src/tickwatch/main.py
import asyncio
from zoneinfo import ZoneInfo

import structlog
from dotenv import load_dotenv

from tickwatch.config import Settings
from tickwatch.alerts.config_store import ConfigStore
from tickwatch.alerts.engine import EngineConfig, InactivityEngine
from tickwatch.alerts.formatting import format_effect_pretty
from tickwatch.alerts.notifiers import ConsoleNotifier
from tickwatch.ingest.feed import BaseFeed, FeedConfig
from tickwatch.ingest.sse_feed import SSEFeed
from tickwatch.ingest.ws_feed import WebSocketFeed
from tickwatch.notify.queue import NotifyQueue
from tickwatch.notify.redis_pub import RedisEffectPublisher
from tickwatch.pipeline import FeedPipeline, PipelineConfig
from tickwatch.utils.instruments import InstrumentResolver
from tickwatch.utils.log_setup import configure_logging
from tickwatch.utils.market_calendar import MarketSessionOracle

log = structlog.get_logger()


def build_pipeline(name: str, feed_cls: type[BaseFeed], url: str, settings: Settings,
                   notify: NotifyQueue, oracle: MarketSessionOracle,
                   subscribe: list[str] | None = None) -> FeedPipeline:
    """
    Wire one feed: its own queue, resolver, config store, engine and log.
    Feeds share nothing mutable except the notify queue.
    """
    q_ticks: asyncio.Queue = asyncio.Queue(maxsize=10_000)
    resolver = InstrumentResolver()
    feed = feed_cls(
        FeedConfig(name=name, url=url, freeze_timeout_s=settings.freeze_timeout_s,
                   subscribe=list(subscribe or [])),
        q_ticks,
        resolver=resolver,
    )
    engine = InactivityEngine(
        store=ConfigStore(settings.default_alert),
        oracle=oracle,
        resolver=resolver,
        cfg=EngineConfig(alert_log_capacity=settings.alert_log_capacity,
                         oracle_fail_open=settings.oracle_fail_open),
        feed=name,
    )
    return FeedPipeline(PipelineConfig(name=name, ring_capacity=settings.ring_capacity),
                        q_ticks, engine, feed=feed, notify=notify)


async def main():
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    oracle = MarketSessionOracle(tz=ZoneInfo(settings.tz_name))
    notify_q = NotifyQueue(maxsize=2000)

    pipelines: list[FeedPipeline] = []
    if settings.ws_url:
        pipelines.append(build_pipeline("primary", WebSocketFeed, settings.ws_url, settings,
                                        notify_q, oracle, subscribe=settings.ws_subscribe))
    if settings.sse_url:
        pipelines.append(build_pipeline("upstox", SSEFeed, settings.sse_url, settings, notify_q, oracle))
    if not pipelines:
        log.error("no_feeds_configured", hint="set TICKWATCH_WS_URL and/or TICKWATCH_SSE_URL")
        return

    console_notifier = ConsoleNotifier(format_fn=lambda e: format_effect_pretty(e, settings.tz_name))
    publisher = RedisEffectPublisher(settings.redis_url, enabled=settings.publish_redis)
    await publisher.start()
    if settings.publish_redis:
        log.info("redis_publish_enabled", url=settings.redis_url)

    async def notifier_router_loop():
        """
        Drain engine effects from every feed:
          - print transitions to the console
          - mirror to Redis pub/sub when enabled (drop if full)
        """
        while True:
            feed_name, effect = await notify_q.get()
            await console_notifier.send(effect)
            publisher.publish(feed_name, effect)

    for p in pipelines:
        await p.start()
    log.info("tickwatch_started", feeds=[p.name for p in pipelines])

    tasks = [p.feed.start() for p in pipelines if p.feed is not None]
    tasks.append(notifier_router_loop())

    try:
        await asyncio.gather(*tasks)
    finally:
        for p in pipelines:
            try:
                await p.stop()
            except Exception as e:
                log.warning("pipeline_stop_failed", feed=p.name, err=str(e))
        await publisher.stop()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
