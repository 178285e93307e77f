from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from tickwatch.data.ring_buffer import TickRingBuffer


@dataclass(slots=True)
class MovementPoints:
    times: np.ndarray
    prices: np.ndarray

    def __len__(self) -> int:
        return int(self.prices.size)


def movement_points(times: np.ndarray, prices: np.ndarray, group: int = 3) -> MovementPoints:
    """
    Collapse every `group` consecutive ticks into one point: mean price,
    middle tick's timestamp. Ticks are ordered by time first; non-positive
    prices are ignored and a trailing partial group is dropped.

    Chart-only transform. It never feeds the inactivity engine.
    """
    if group <= 0:
        raise ValueError("group must be > 0")
    times = np.asarray(times, dtype=np.float64)
    prices = np.asarray(prices, dtype=np.float64)
    keep = prices > 0.0
    times, prices = times[keep], prices[keep]
    order = np.argsort(times, kind="stable")
    times, prices = times[order], prices[order]

    n = (prices.size // group) * group
    if n == 0:
        return MovementPoints(np.empty(0), np.empty(0))
    p = prices[:n].reshape(-1, group).mean(axis=1)
    t = times[:n].reshape(-1, group)[:, group // 2]
    return MovementPoints(t, p)


def ring_movement_points(ring: TickRingBuffer, n: int | None = None, group: int = 3) -> MovementPoints:
    view = ring.view_last(ring.size if n is None else n)
    return movement_points(view.times(), view.prices(), group=group)
