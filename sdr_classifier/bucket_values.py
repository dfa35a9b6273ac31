"""
Bucket Value Tracker

Keeps one representative scalar per bucket so bucket indices can be mapped
back to real values. Continuous targets are exponentially smoothed;
categorical targets overwrite, since each observation is authoritative.
"""

from __future__ import annotations

import numpy as np

from .constants import SCALAR_TOLERANCE


class BucketValueTracker:
    """Smoothed value estimate and seen flag per bucket index."""

    def __init__(self, act_value_alpha: float):
        self.act_value_alpha = act_value_alpha
        # One unseen bucket exists from the start, matching max_bucket_idx = 0
        self._values = np.zeros(1, dtype=np.float64)
        self._seen = np.zeros(1, dtype=bool)

    def __len__(self) -> int:
        return len(self._values)

    @property
    def values(self) -> np.ndarray:
        return self._values.copy()

    @property
    def seen(self) -> np.ndarray:
        return self._seen.copy()

    def ensure_capacity(self, max_bucket_idx: int) -> None:
        """Extend both arrays with (0.0, unseen) up to max_bucket_idx."""
        missing = max_bucket_idx + 1 - len(self._values)
        if missing > 0:
            self._values = np.concatenate([self._values, np.zeros(missing)])
            self._seen = np.concatenate([self._seen, np.zeros(missing, dtype=bool)])

    def observe(self, bucket: int, value: float, is_categorical: bool = False) -> float:
        """
        Fold an observed value into a bucket's estimate.

        Args:
            bucket: Bucket index of the observation
            value: Observed scalar value
            is_categorical: Overwrite instead of smoothing

        Returns:
            The updated estimate
        """
        self.ensure_capacity(bucket)
        if not self._seen[bucket] or is_categorical:
            self._values[bucket] = value
            self._seen[bucket] = True
        else:
            self._values[bucket] = ((1.0 - self.act_value_alpha) * self._values[bucket]
                                    + self.act_value_alpha * value)
        return float(self._values[bucket])

    def estimates(self, fallback: float) -> np.ndarray:
        """Tracked value for seen buckets, fallback for the rest."""
        return np.where(self._seen, self._values, fallback)

    def load(self, values: np.ndarray, seen: np.ndarray) -> None:
        values = np.asarray(values, dtype=np.float64)
        seen = np.asarray(seen, dtype=bool)
        if values.shape != seen.shape or values.ndim != 1:
            raise ValueError(
                f"Bucket values and seen flags differ: {values.shape} vs {seen.shape}"
            )
        self._values = values.copy()
        self._seen = seen.copy()

    def equals(self, other: BucketValueTracker, tolerance: float = SCALAR_TOLERANCE) -> bool:
        """Values within tolerance, seen flags exactly."""
        if len(self) != len(other):
            return False
        if not np.array_equal(self._seen, other._seen):
            return False
        return bool(np.all(np.abs(self._values - other._values) <= tolerance))

    def __repr__(self) -> str:
        return f"BucketValueTracker(buckets={len(self)}, seen={int(self._seen.sum())})"
