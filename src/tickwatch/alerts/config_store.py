from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from tickwatch.utils.types import AlertConfig


class InvalidConfigError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class ConfigResult:
    ok: bool
    error: Optional[str] = None
    keys: tuple[str, ...] = ()


def validate_config(cfg: AlertConfig) -> None:
    """Raise InvalidConfigError unless deviation and duration are finite and positive."""
    try:
        dev = float(cfg.deviation)
        dur = float(cfg.duration_s)
    except (TypeError, ValueError) as e:
        raise InvalidConfigError(f"non-numeric threshold: {e}") from e
    if not math.isfinite(dev) or dev <= 0.0:
        raise InvalidConfigError(f"deviation must be > 0, got {cfg.deviation!r}")
    if not math.isfinite(dur) or dur <= 0.0:
        raise InvalidConfigError(f"duration_s must be > 0, got {cfg.duration_s!r}")


class ConfigStore:
    """
    Per-instrument AlertConfig overrides on top of a process-wide default.

    Writes never raise on bad values: they return a ConfigResult and leave the
    previous configuration in place. Keys need not have been seen on a feed yet.
    """

    def __init__(self, default: Optional[AlertConfig] = None):
        default = default or AlertConfig()
        validate_config(default)
        self._default = default
        self._overrides: Dict[str, AlertConfig] = {}

    @property
    def default(self) -> AlertConfig:
        return self._default

    def set_default(self, cfg: AlertConfig) -> ConfigResult:
        try:
            validate_config(cfg)
        except InvalidConfigError as e:
            return ConfigResult(False, str(e))
        self._default = cfg
        return ConfigResult(True)

    def get(self, instrument_key: str) -> AlertConfig:
        return self._overrides.get(instrument_key, self._default)

    def is_configured(self, instrument_key: str) -> bool:
        return instrument_key in self._overrides

    def set(self, instrument_key: str, cfg: AlertConfig) -> ConfigResult:
        try:
            validate_config(cfg)
        except InvalidConfigError as e:
            return ConfigResult(False, str(e), (instrument_key,))
        self._overrides[instrument_key] = cfg
        return ConfigResult(True, None, (instrument_key,))

    def set_many(self, instrument_keys: Iterable[str], cfg: AlertConfig) -> ConfigResult:
        keys = tuple(dict.fromkeys(instrument_keys))  # de-dupe, keep order
        try:
            validate_config(cfg)
        except InvalidConfigError as e:
            return ConfigResult(False, str(e), keys)
        for k in keys:
            self._overrides[k] = cfg
        return ConfigResult(True, None, keys)

    def reset(self, instrument_key: str) -> bool:
        """Drop an override; the key falls back to the default. True if one existed."""
        return self._overrides.pop(instrument_key, None) is not None

    def overrides(self) -> Dict[str, AlertConfig]:
        return dict(self._overrides)
