from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from tickwatch.utils.types import AlertConfig


def _flag(v: Optional[str], default: bool) -> bool:
    if v is None or v.strip() == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


def _csv(v: Optional[str]) -> list[str]:
    return [s.strip() for s in (v or "").split(",") if s.strip()]


@dataclass(slots=True)
class Settings:
    ws_url: str = ""
    ws_subscribe: list[str] = field(default_factory=list)
    sse_url: str = ""
    freeze_timeout_s: float = 30.0
    alert_log_capacity: int = 50
    ring_capacity: int = 1000
    default_alert: AlertConfig = field(default_factory=AlertConfig)
    oracle_fail_open: bool = True
    tz_name: str = "Asia/Kolkata"
    redis_url: str = "redis://localhost:6379/0"
    publish_redis: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Read TICKWATCH_* variables (see .env.example). Call load_dotenv() first
        if a .env file should be honored. Missing or blank values keep defaults.
        """
        env = os.environ if env is None else env
        d = cls()
        return cls(
            ws_url=env.get("TICKWATCH_WS_URL", d.ws_url),
            ws_subscribe=_csv(env.get("TICKWATCH_WS_SUBSCRIBE")),
            sse_url=env.get("TICKWATCH_SSE_URL", d.sse_url),
            freeze_timeout_s=float(env.get("TICKWATCH_FREEZE_TIMEOUT_S") or d.freeze_timeout_s),
            alert_log_capacity=int(env.get("TICKWATCH_ALERT_LOG_CAPACITY") or d.alert_log_capacity),
            ring_capacity=int(env.get("TICKWATCH_RING_CAPACITY") or d.ring_capacity),
            default_alert=AlertConfig(
                enabled=True,
                deviation=float(env.get("TICKWATCH_DEFAULT_DEVIATION") or d.default_alert.deviation),
                duration_s=int(env.get("TICKWATCH_DEFAULT_DURATION_S") or d.default_alert.duration_s),
                respect_market_hours=_flag(env.get("TICKWATCH_DEFAULT_RESPECT_MARKET_HOURS"),
                                           d.default_alert.respect_market_hours),
            ),
            oracle_fail_open=_flag(env.get("TICKWATCH_ORACLE_FAIL_OPEN"), d.oracle_fail_open),
            tz_name=env.get("TICKWATCH_TZ") or d.tz_name,
            redis_url=env.get("REDIS_URL") or d.redis_url,
            publish_redis=_flag(env.get("TICKWATCH_PUBLISH_REDIS"), d.publish_redis),
            log_level=env.get("LOG_LEVEL") or d.log_level,
        )
