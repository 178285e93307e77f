from __future__ import annotations

import asyncio
import json

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from tickwatch.ingest import parser
from tickwatch.ingest.feed import BaseFeed


class WebSocketFeed(BaseFeed):
    """
    Primary tick feed over a JSON websocket.

    Messages are a single tick object, a JSON array of them, or an envelope
    {"type": "ticks", "data": [...]}. Anything that does not parse as a tick
    (acks, heartbeats) still counts as traffic for freeze detection.

    Usage:
        feed = WebSocketFeed(FeedConfig(name="primary", url="wss://..."), q_ticks, resolver)
        await feed.start()   # runs until stop()
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._ws = None

    async def _connect_and_stream(self) -> None:
        self._log.info("ws_connecting", url=self.cfg.url)
        async with ws_connect(
            self.cfg.url,
            open_timeout=self.cfg.open_timeout_s,
            ping_interval=self.cfg.ping_interval_s,
            ping_timeout=None,
            max_queue=None,  # don't buffer internally; the tick queue is the backpressure point
        ) as ws:
            self._ws = ws
            self._on_connected()
            if self.cfg.subscribe:
                await ws.send(json.dumps({"a": "subscribe", "v": self.cfg.subscribe}))
                self._log.info("ws_subscribed", instruments=self.cfg.subscribe)
            try:
                await self._stream_loop(ws)
            finally:
                self._ws = None

    async def _stream_loop(self, ws) -> None:
        while not self._stop.is_set():
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=self._recv_timeout())
            except asyncio.TimeoutError:
                # silence is handled by the freeze timer; just re-check stop
                continue
            except ConnectionClosed as e:
                self._log.warning("ws_closed", code=getattr(e, "code", None), reason=str(e))
                raise
            except asyncio.CancelledError:
                self._log.info("ws_recv_cancelled")
                return

            self._on_message()
            self._handle_raw(raw)

        self._log.info("ws_stream_loop_exit")

    def _handle_raw(self, raw) -> None:
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                self._on_parse_error(e)
                return
        try:
            msg = json.loads(raw)
        except ValueError as e:
            self._on_parse_error(e, str(raw))
            return

        if isinstance(msg, dict) and isinstance(msg.get("data"), list):
            batch = msg["data"]
        else:
            batch = msg if isinstance(msg, list) else [msg]

        received = self.clock()
        ticks = []
        for m in batch:
            tick = parser.parse_tick_msg(m, received)
            if tick is None:
                continue
            self._learn_name(tick.instrument_key, m.get("tradingsymbol"))
            ticks.append(tick)
        if ticks:
            self._enqueue_ticks(ticks)

    async def _close_transport(self) -> None:
        if self._ws is not None and hasattr(self._ws, "close"):
            await self._ws.close()

    def _recv_timeout(self) -> float:
        return max(0.5, min(self.cfg.freeze_timeout_s, 1.0))
