"""
Classifier Result

Container for inference output: one likelihood vector per prediction step
plus the per-bucket actual values stored under the ACTUAL_VALUES key.
"""

from typing import Dict, Iterator, List, Optional

import numpy as np

from .constants import ACTUAL_VALUES


class ClassifierResult:
    """
    Mapping of result key to a mutable float vector.

    The classifier asks for a vector with create_vector() and writes into it
    in place.
    """

    def __init__(self):
        self._vectors: Dict[int, np.ndarray] = {}

    def create_vector(self, key: int, length: int, fill_value: float) -> np.ndarray:
        """
        Create (or replace) the vector for a key.

        Args:
            key: Prediction step, or ACTUAL_VALUES
            length: Number of entries
            fill_value: Initial value of every entry

        Returns:
            The new vector, owned by this result
        """
        vector = np.full(length, fill_value, dtype=np.float64)
        self._vectors[key] = vector
        return vector

    def get_vector(self, key: int) -> Optional[np.ndarray]:
        return self._vectors.get(key)

    def keys(self) -> List[int]:
        return sorted(self._vectors)

    @property
    def actual_values(self) -> Optional[np.ndarray]:
        return self._vectors.get(ACTUAL_VALUES)

    def most_likely_bucket(self, step: int) -> int:
        """Index of the highest-probability bucket for a step."""
        likelihoods = self._vectors.get(step)
        if likelihoods is None:
            raise KeyError(f"No likelihoods for step {step}")
        return int(np.argmax(likelihoods))

    def predicted_value(self, step: int) -> float:
        """Actual value of the most likely bucket for a step."""
        actual_values = self.actual_values
        if actual_values is None:
            raise KeyError("Result holds no actual values")
        bucket = self.most_likely_bucket(step)
        if bucket >= len(actual_values):
            raise IndexError(f"Bucket {bucket} has no actual value")
        return float(actual_values[bucket])

    def __contains__(self, key: int) -> bool:
        return key in self._vectors

    def __iter__(self) -> Iterator[int]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._vectors)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ClassifierResult):
            return NotImplemented
        if self.keys() != other.keys():
            return False
        return all(
            np.array_equal(self._vectors[key], other._vectors[key])
            for key in self._vectors
        )

    def __repr__(self) -> str:
        return f"ClassifierResult(keys={self.keys()})"
