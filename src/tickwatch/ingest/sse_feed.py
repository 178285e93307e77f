from __future__ import annotations

import json
from typing import AsyncIterator, Callable, Optional

import aiohttp

from tickwatch.ingest import parser
from tickwatch.ingest.feed import BaseFeed


class SSEDecoder:
    """
    Incremental text/event-stream decoder. feed() one line at a time; returns
    the event's data when a blank line completes a default ("message") event.
    """
    __slots__ = ("_data", "_event")

    def __init__(self):
        self._data: list[str] = []
        self._event: Optional[str] = None

    def feed(self, line: str) -> Optional[str]:
        line = line.rstrip("\r\n")
        if not line:
            data = "\n".join(self._data) if self._data else None
            event = self._event
            self._data = []
            self._event = None
            if data is None or event not in (None, "message"):
                return None
            return data
        if line.startswith(":"):
            return None  # comment / keep-alive
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value or None
        return None


async def iter_sse_data(lines: AsyncIterator[bytes]) -> AsyncIterator[str]:
    dec = SSEDecoder()
    async for raw in lines:
        data = dec.feed(raw.decode("utf-8", errors="replace"))
        if data is not None:
            yield data


class SSEFeed(BaseFeed):
    """
    Secondary tick feed over Server-Sent Events (aiohttp).

    Every event resets the freeze timer, whatever its content; only
    {"type": "live_feed", ...} payloads yield ticks (see parser.parse_live_feed).
    """

    def __init__(self, *args, session_factory: Optional[Callable[..., aiohttp.ClientSession]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._session_factory = session_factory or aiohttp.ClientSession
        self._resp = None

    async def _connect_and_stream(self) -> None:
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self.cfg.open_timeout_s)
        self._log.info("sse_connecting", url=self.cfg.url)
        async with self._session_factory(timeout=timeout) as session:
            async with session.get(self.cfg.url, headers={"Accept": "text/event-stream"}) as resp:
                if resp.status != 200:
                    raise ConnectionError(f"{self.cfg.name} HTTP {resp.status}")
                self._resp = resp
                self._on_connected()
                try:
                    async for data in iter_sse_data(resp.content):
                        if self._stop.is_set():
                            break
                        self._on_message()
                        self._handle_data(data)
                finally:
                    self._resp = None

    def _handle_data(self, data: str) -> None:
        try:
            payload = json.loads(data)
        except ValueError as e:
            self._on_parse_error(e, data)
            return
        ticks = parser.parse_live_feed(payload, self.clock())
        if ticks:
            self._enqueue_ticks(ticks)

    async def _close_transport(self) -> None:
        if self._resp is not None:
            self._resp.close()
