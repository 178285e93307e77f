from __future__ import annotations

import numpy as np

from tickwatch.utils.types import Tick

class RingView:
    """
    Zero-copy view of the last N ticks.
    - If the buffer hasn't wrapped, slices is [one segment].
    - If it has wrapped, slices is [segment1, segment2] in arrival order.
    Each segment is a tuple (event_time, price, quantity, volume).
    """
    __slots__ = ("slices", "length")
    def __init__(self, slices: list[tuple[np.ndarray, ...]] | None, length: int):
        self.slices = slices or []
        self.length = length

    def column(self, idx: int) -> np.ndarray:
        """Concatenate one column across segments (copies only when wrapped)."""
        if not self.slices:
            return np.empty(0, dtype=np.float64)
        if len(self.slices) == 1:
            return self.slices[0][idx]
        return np.concatenate([seg[idx] for seg in self.slices])

    def times(self) -> np.ndarray:
        return self.column(0)

    def prices(self) -> np.ndarray:
        return self.column(1)

class TickRingBuffer:
    """
    Fixed-size circular buffer of recent ticks for one instrument.
    Arrays:
      event_time, price, quantity, volume [float64]
    """
    __slots__ = ("capacity","size","head","event_time","price","quantity","volume")
    def __init__(self, capacity: int):
        self.capacity = int(capacity)
        if self.capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.size = 0
        self.head = 0  # next write index
        self.event_time = np.empty(self.capacity, dtype=np.float64)
        self.price = np.empty(self.capacity, dtype=np.float64)
        self.quantity = np.empty(self.capacity, dtype=np.float64)
        self.volume = np.empty(self.capacity, dtype=np.float64)

    def append(self, tick: Tick) -> None:
        i = self.head
        self.event_time[i] = tick.event_time
        self.price[i] = tick.price
        self.quantity[i] = tick.quantity
        self.volume[i] = tick.volume
        self.head = (i + 1) % self.capacity
        if self.size < self.capacity:
            self.size += 1

    def last_price(self) -> float | None:
        if self.size == 0:
            return None
        idx = (self.head - 1) % self.capacity
        return float(self.price[idx])

    def view_last(self, n: int) -> RingView:
        """
        Return up to last n ticks as zero-copy slices in arrival order.
        """
        if self.size == 0:
            return RingView([], 0)
        n = int(n)
        if n <= 0:
            return RingView([], 0)
        n = min(n, self.size)

        end = self.head  # exclusive
        start = (end - n) % self.capacity

        if start < end:
            sl = slice(start, end)
            return RingView(
                [(self.event_time[sl], self.price[sl], self.quantity[sl], self.volume[sl])],
                n,
            )
        # wrapped: [start..cap) + [0..end)
        sl1 = slice(start, self.capacity)
        sl2 = slice(0, end)
        return RingView(
            [
                (self.event_time[sl1], self.price[sl1], self.quantity[sl1], self.volume[sl1]),
                (self.event_time[sl2], self.price[sl2], self.quantity[sl2], self.volume[sl2]),
            ],
            n,
        )
