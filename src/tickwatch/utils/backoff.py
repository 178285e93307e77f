from __future__ import annotations

import random
from typing import Iterator

def reconnect_delay(attempt: int, *, base: float = 1.0, cap: float = 30.0) -> float:
    """
    Delay before reconnect attempt `attempt` (1-based): base * 2**attempt, capped.
    attempt=1 -> 2s, 2 -> 4s, ... 5+ -> 30s with the defaults.
    """
    if attempt <= 0:
        return 0.0
    return min(base * (2.0 ** attempt), cap)

def jitter(v: float, *, ratio: float = 0.2) -> float:
    """
    Add ±ratio jitter. ratio=0.2 -> multiply by [0.8, 1.2].
    """
    lo = 1.0 - ratio
    hi = 1.0 + ratio
    return v * (lo + (hi - lo) * random.random())

def backoff_iter(base: float = 1.0, cap: float = 30.0) -> Iterator[float]:
    """
    Deterministic (no jitter) iterator of reconnect delays for attempts 1, 2, 3, ...
    """
    attempt = 1
    while True:
        yield reconnect_delay(attempt, base=base, cap=cap)
        attempt += 1
