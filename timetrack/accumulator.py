"""
Chunked flush accumulator.

Collects the small per-tick deltas of a running timer and releases them in
fixed-size chunks, so storage sees one write per threshold window instead of
one per tick. A forced flush drains whatever is left below the threshold.
"""

from dataclasses import dataclass
from typing import List, Optional

DEFAULT_THRESHOLD_MS = 10_000


@dataclass(frozen=True)
class Flush:
    """
    One unit of time leaving the accumulator.

    Attributes:
        amount_ms: Milliseconds moved into the durable aggregate.
        forced: True for pause/stop/expiry flushes.
    """
    amount_ms: int
    forced: bool = False


class FlushAccumulator:
    """
    Buffers elapsed time for one timer run.

    Invariants:
        ``buffered_ms < threshold_ms`` after every ``add``.
        ``total_flushed_ms`` only grows until ``reset``.
    """

    def __init__(self, threshold_ms: int = DEFAULT_THRESHOLD_MS):
        if threshold_ms <= 0:
            raise ValueError(f"threshold_ms must be positive, got {threshold_ms}")
        self.threshold_ms = int(threshold_ms)
        self._buffered_ms = 0
        self._total_flushed_ms = 0
        self._unmirrored_ms = 0

    @property
    def buffered_ms(self) -> int:
        return self._buffered_ms

    @property
    def total_flushed_ms(self) -> int:
        return self._total_flushed_ms

    @property
    def unmirrored_ms(self) -> int:
        return self._unmirrored_ms

    def add(self, delta_ms: int) -> List[Flush]:
        """
        Buffer ``delta_ms`` and return the threshold flushes it triggers.

        Usually zero or one flush; a large delta yields one flush per
        full threshold it contains.
        """
        if delta_ms <= 0:
            return []
        self._buffered_ms += int(delta_ms)
        flushes = []
        while self._buffered_ms >= self.threshold_ms:
            self._buffered_ms -= self.threshold_ms
            flushes.append(self._emit(self.threshold_ms))
        return flushes

    def force_flush(self) -> Optional[Flush]:
        """
        Drain the whole buffer as one final flush.

        Returns None when nothing is buffered; a zero flush is never emitted.
        """
        amount = self._buffered_ms
        self._buffered_ms = 0
        if amount <= 0:
            return None
        return self._emit(amount, forced=True)

    def take_unmirrored(self) -> int:
        """
        Return everything flushed since the last call and start a new window.

        Called once per forced flush so each remote mirror call covers a
        distinct, non-overlapping stretch of the run.
        """
        amount = self._unmirrored_ms
        self._unmirrored_ms = 0
        return amount

    def reset(self) -> int:
        """
        Discard buffered time without flushing.

        Returns the number of milliseconds dropped.
        """
        dropped = self._buffered_ms
        self._buffered_ms = 0
        self._total_flushed_ms = 0
        self._unmirrored_ms = 0
        return dropped

    def _emit(self, amount_ms: int, forced: bool = False) -> Flush:
        self._total_flushed_ms += amount_ms
        self._unmirrored_ms += amount_ms
        return Flush(amount_ms, forced)
