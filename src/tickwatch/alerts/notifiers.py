# src/tickwatch/alerts/notifiers.py
from __future__ import annotations
import structlog
from typing import Callable, Optional

from tickwatch.utils.types import EngineEffect

log = structlog.get_logger("notifier")

class ConsoleNotifier:
    """
    Prints alert transitions. "updated" effects are skipped unless
    include_updates is set, since they arrive on every in-band tick.
    """
    def __init__(self, format_fn: Optional[Callable[[EngineEffect], str]] = None, include_updates: bool = False):
        self._format_fn = format_fn
        self.include_updates = include_updates

    async def send(self, effect: EngineEffect):
        if effect.kind == "updated" and not self.include_updates:
            return
        if self._format_fn:
            try:
                text = self._format_fn(effect)
                print(text, flush=True)
                return
            except Exception as e:
                log.warning("console_format_failed", err=str(e))
        # fallback (raw)
        a = effect.alert
        print(f"[ALERT] {a.instrument_key} {effect.kind} reason={effect.reason} "
              f"duration={a.duration:.0f}s price={a.current_price}", flush=True)
