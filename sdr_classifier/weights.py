"""
Weight Matrix Store

Dense per-step weight matrices sharing one contiguous row-major buffer.

Layout:
    buffer[position, input_bit, bucket]

- position: index of the step in the sorted step tuple (resolved once)
- input_bit: row, one per active-bit index seen so far
- bucket: column, one per bucket index seen so far

The logical shape (max_input_idx + 1, max_bucket_idx + 1) only grows. The
allocated buffer grows geometrically ahead of it; cells outside the logical
shape are never written, so they stay zero and newly exposed cells read as
zero-padding.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterator, Sequence, Tuple

import numpy as np

from .constants import GROWTH_FACTOR

logger = logging.getLogger(__name__)


class WeightMatrixStore:
    """
    Growable weight matrices, one per prediction step.

    Every growth event resizes all matrices uniformly, so the shape is
    shared across steps even for steps that have never learned.
    """

    def __init__(self,
                 steps: Sequence[int],
                 max_input_idx: int = 0,
                 max_bucket_idx: int = 0,
                 growth_factor: float = GROWTH_FACTOR):
        if not steps:
            raise ValueError("WeightMatrixStore needs at least one step")
        if growth_factor < 1.0:
            raise ValueError(f"growth_factor must be >= 1.0, got {growth_factor}")

        self.steps: Tuple[int, ...] = tuple(steps)
        self._positions: Dict[int, int] = {step: i for i, step in enumerate(self.steps)}
        self.growth_factor = growth_factor
        self.max_input_idx = max_input_idx
        self.max_bucket_idx = max_bucket_idx
        self._buffer = np.zeros(
            (len(self.steps), max_input_idx + 1, max_bucket_idx + 1),
            dtype=np.float64
        )

    # -------------------------------------------------------------------------
    # Shape
    # -------------------------------------------------------------------------

    @property
    def shape(self) -> Tuple[int, int]:
        """Logical (rows, cols) of every matrix."""
        return (self.max_input_idx + 1, self.max_bucket_idx + 1)

    @property
    def capacity(self) -> Tuple[int, int]:
        """Allocated (rows, cols) of the underlying buffer."""
        return (self._buffer.shape[1], self._buffer.shape[2])

    def position(self, step: int) -> int:
        """Buffer position of a configured step."""
        try:
            return self._positions[step]
        except KeyError:
            raise KeyError(f"Step {step} is not configured (steps={self.steps})") from None

    def ensure_capacity(self, max_input_idx: int, max_bucket_idx: int) -> bool:
        """
        Raise the logical bounds to at least the requested ones.

        Existing cells are preserved and new cells are zero. Bounds never
        shrink, so a request inside the current bounds is a no-op.

        Args:
            max_input_idx: Largest input bit index that must be addressable
            max_bucket_idx: Largest bucket index that must be addressable

        Returns:
            True if the logical shape changed
        """
        new_input_idx = max(self.max_input_idx, int(max_input_idx))
        new_bucket_idx = max(self.max_bucket_idx, int(max_bucket_idx))
        if new_input_idx == self.max_input_idx and new_bucket_idx == self.max_bucket_idx:
            return False

        rows, cols = self.capacity
        if new_input_idx >= rows or new_bucket_idx >= cols:
            self._reallocate(
                self._grown(rows, new_input_idx + 1),
                self._grown(cols, new_bucket_idx + 1)
            )

        logger.debug(
            "Weight matrices grown from %s to %s (capacity %s)",
            self.shape, (new_input_idx + 1, new_bucket_idx + 1), self.capacity
        )
        self.max_input_idx = new_input_idx
        self.max_bucket_idx = new_bucket_idx
        return True

    def _grown(self, current: int, required: int) -> int:
        if required <= current:
            return current
        return max(required, int(math.ceil(current * self.growth_factor)))

    def _reallocate(self, rows: int, cols: int) -> None:
        n_rows, n_cols = self.shape
        buffer = np.zeros((len(self.steps), rows, cols), dtype=np.float64)
        buffer[:, :n_rows, :n_cols] = self._buffer[:, :n_rows, :n_cols]
        self._buffer = buffer

    # -------------------------------------------------------------------------
    # Cell access
    # -------------------------------------------------------------------------

    def accumulate(self, step: int, input_bit: int, bucket: int, delta: float) -> None:
        """Add delta to a single cell."""
        if not (0 <= input_bit <= self.max_input_idx and 0 <= bucket <= self.max_bucket_idx):
            raise IndexError(
                f"Cell ({input_bit}, {bucket}) outside weight shape {self.shape}"
            )
        self._buffer[self.position(step), input_bit, bucket] += delta

    def row(self, step: int, input_bit: int) -> np.ndarray:
        """View of one input bit's weights across all buckets."""
        if not 0 <= input_bit <= self.max_input_idx:
            raise IndexError(f"Input bit {input_bit} outside weight shape {self.shape}")
        return self._buffer[self.position(step), input_bit, :self.max_bucket_idx + 1]

    def project(self, step: int, pattern: Sequence[int]) -> np.ndarray:
        """
        Sum of the weight rows of the active bits.

        Equivalent to multiplying the dense binary input vector by the weight
        matrix. Bits beyond max_input_idx have no row and contribute nothing.
        """
        bits = np.asarray(pattern, dtype=np.intp)
        bits = bits[bits <= self.max_input_idx]
        return self._buffer[self.position(step), bits, :self.max_bucket_idx + 1].sum(axis=0)

    def update_rows(self, step: int, pattern: Sequence[int], deltas: np.ndarray) -> None:
        """Add a per-bucket delta vector to the row of every active bit."""
        n_cols = self.max_bucket_idx + 1
        deltas = np.asarray(deltas, dtype=np.float64)
        if deltas.shape != (n_cols,):
            raise ValueError(f"Expected {n_cols} deltas, got shape {deltas.shape}")

        bits, counts = np.unique(np.asarray(pattern, dtype=np.intp), return_counts=True)
        if bits.size and (bits[0] < 0 or bits[-1] > self.max_input_idx):
            raise IndexError(f"Pattern bits outside weight shape {self.shape}")
        self._buffer[self.position(step), bits, :n_cols] += counts[:, None] * deltas

    # -------------------------------------------------------------------------
    # Whole-matrix access
    # -------------------------------------------------------------------------

    def matrix(self, step: int) -> np.ndarray:
        """View of the logical matrix of a step."""
        n_rows, n_cols = self.shape
        return self._buffer[self.position(step), :n_rows, :n_cols]

    def flat(self, step: int) -> np.ndarray:
        """Row-major copy of a step's matrix, length rows * cols."""
        return self.matrix(step).flatten()

    def set_matrix(self, step: int, values: np.ndarray) -> None:
        """Overwrite a step's matrix; values must match the logical shape."""
        values = np.asarray(values, dtype=np.float64)
        if values.shape != self.shape:
            raise ValueError(f"Shape mismatch: {values.shape} vs {self.shape}")
        n_rows, n_cols = self.shape
        self._buffer[self.position(step), :n_rows, :n_cols] = values

    def equals(self, other: WeightMatrixStore) -> bool:
        """Exact cell-by-cell comparison of the logical matrices."""
        if self.steps != other.steps or self.shape != other.shape:
            return False
        return all(
            np.array_equal(self.matrix(step), other.matrix(step))
            for step in self.steps
        )

    def __iter__(self) -> Iterator[Tuple[int, np.ndarray]]:
        for step in self.steps:
            yield step, self.matrix(step)

    def __len__(self) -> int:
        return len(self.steps)

    def __repr__(self) -> str:
        return (f"WeightMatrixStore(steps={list(self.steps)}, shape={self.shape}, "
                f"capacity={self.capacity})")
