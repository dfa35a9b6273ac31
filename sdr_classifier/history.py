"""
Pattern History

Bounded record of the most recent input patterns, keyed by learning
iteration. Implemented as a fixed-capacity ring buffer: slots are reused
in place and the newest entry sits at the logical front.
"""

from __future__ import annotations

from typing import Callable, Iterable, Iterator, List, Optional, Tuple

import numpy as np


class PatternHistory:
    """
    Ring buffer of (iteration, pattern) entries, newest first.

    Once more than `capacity` entries have been recorded the oldest one is
    overwritten.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._iterations = np.zeros(capacity, dtype=np.int64)
        self._patterns: List[Optional[np.ndarray]] = [None] * capacity
        self._head = 0      # slot of the newest entry
        self._size = 0

    def record(self, iteration: int, pattern: np.ndarray) -> None:
        """Push an entry to the front, evicting the oldest past capacity."""
        self._head = (self._head - 1) % self.capacity
        self._iterations[self._head] = iteration
        self._patterns[self._head] = pattern
        self._size = min(self._size + 1, self.capacity)

    def clear(self) -> None:
        self._patterns = [None] * self.capacity
        self._head = 0
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[Tuple[int, np.ndarray]]:
        """Yield (iteration, pattern), newest to oldest."""
        for offset in range(self._size):
            slot = (self._head + offset) % self.capacity
            yield int(self._iterations[slot]), self._patterns[slot]

    def retained(self, current_iteration: int) -> Iterator[Tuple[np.ndarray, int]]:
        """Yield (pattern, elapsed) for every entry, newest first."""
        for iteration, pattern in self:
            yield pattern, current_iteration - iteration

    def for_each_retained(self,
                          current_iteration: int,
                          fn: Callable[[np.ndarray, int], None]) -> None:
        """Call fn(pattern, elapsed) for every retained entry."""
        for pattern, elapsed in self.retained(current_iteration):
            fn(pattern, elapsed)

    @property
    def iterations(self) -> List[int]:
        return [iteration for iteration, _ in self]

    @property
    def patterns(self) -> List[np.ndarray]:
        return [pattern for _, pattern in self]

    def load(self, entries: Iterable[Tuple[int, np.ndarray]]) -> None:
        """
        Replace the contents with entries given newest first.

        Raises:
            ValueError: if there are more entries than capacity
        """
        entries = list(entries)
        if len(entries) > self.capacity:
            raise ValueError(
                f"{len(entries)} history entries exceed capacity {self.capacity}"
            )
        self.clear()
        for iteration, pattern in reversed(entries):
            self.record(iteration, pattern)

    def equals(self, other: PatternHistory) -> bool:
        """Exact comparison of iterations and pattern contents, in order."""
        if len(self) != len(other):
            return False
        for (it_a, pat_a), (it_b, pat_b) in zip(self, other):
            if it_a != it_b or not np.array_equal(pat_a, pat_b):
                return False
        return True

    def __repr__(self) -> str:
        return f"PatternHistory(size={self._size}, capacity={self.capacity})"
