"""
Classifier State

Canonical snapshot of everything a classifier persists. Both serialization
formats encode and decode this one record, so they cannot drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np


class PersistenceError(ValueError):
    """Persisted classifier state is malformed or unsupported."""


@dataclass
class ClassifierState:
    """
    Full classifier state in transfer form.

    Attributes:
        version: Format version the state was produced with
        steps: Sorted prediction steps
        alpha: Weight learning rate
        act_value_alpha: Bucket value smoothing rate
        learn_iteration: Internal iteration counter
        record_num_minus_learn_iteration: Offset captured on the first call
        record_num_minus_learn_iteration_set: Whether the offset is captured
        max_steps: History capacity, max(steps) + 1
        max_bucket_idx: Largest bucket index seen
        max_input_idx: Largest input bit index seen
        verbosity: Logging verbosity
        iteration_history: Iteration of each history entry, newest first
        pattern_history: Active bits of each history entry, newest first
        weights: Step -> (max_input_idx + 1, max_bucket_idx + 1) matrix
        actual_values: Tracked value per bucket
        actual_values_set: Seen flag per bucket
    """
    version: int
    steps: List[int]
    alpha: float
    act_value_alpha: float
    learn_iteration: int
    record_num_minus_learn_iteration: int
    record_num_minus_learn_iteration_set: bool
    max_steps: int
    max_bucket_idx: int
    max_input_idx: int
    verbosity: int
    iteration_history: List[int] = field(default_factory=list)
    pattern_history: List[np.ndarray] = field(default_factory=list)
    weights: Dict[int, np.ndarray] = field(default_factory=dict)
    actual_values: np.ndarray = field(default_factory=lambda: np.zeros(1))
    actual_values_set: np.ndarray = field(default_factory=lambda: np.zeros(1, dtype=bool))

    @property
    def weight_shape(self):
        return (self.max_input_idx + 1, self.max_bucket_idx + 1)

    def validate(self) -> ClassifierState:
        """
        Check structural consistency.

        Raises:
            PersistenceError: on the first inconsistency found

        Returns:
            self, for chaining
        """
        if not self.steps:
            raise PersistenceError("State has no prediction steps")
        if list(self.steps) != sorted(set(self.steps)) or min(self.steps) < 0:
            raise PersistenceError(f"Steps must be sorted, unique and non-negative: {self.steps}")
        if self.max_steps != max(self.steps) + 1:
            raise PersistenceError(
                f"max_steps {self.max_steps} does not match steps {self.steps}"
            )
        if self.max_input_idx < 0 or self.max_bucket_idx < 0:
            raise PersistenceError("Maximum indices must be non-negative")

        if len(self.iteration_history) != len(self.pattern_history):
            raise PersistenceError(
                f"{len(self.iteration_history)} iterations for "
                f"{len(self.pattern_history)} history patterns"
            )
        if len(self.pattern_history) > self.max_steps:
            raise PersistenceError(
                f"History of {len(self.pattern_history)} exceeds max_steps {self.max_steps}"
            )
        iterations = list(self.iteration_history)
        if any(newer < older for newer, older in zip(iterations, iterations[1:])):
            raise PersistenceError(f"Iteration history is not newest first: {iterations}")
        if iterations and iterations[0] > self.learn_iteration:
            raise PersistenceError(
                f"Newest history iteration {iterations[0]} is after "
                f"learn_iteration {self.learn_iteration}"
            )
        for pattern in self.pattern_history:
            if pattern.size and (pattern.min() < 0 or pattern.max() > self.max_input_idx):
                raise PersistenceError(
                    f"History pattern bits outside [0, {self.max_input_idx}]"
                )

        if sorted(self.weights) != list(self.steps):
            raise PersistenceError(
                f"Weight matrix steps {sorted(self.weights)} do not match steps {self.steps}"
            )
        for step, matrix in self.weights.items():
            if matrix.shape != self.weight_shape:
                raise PersistenceError(
                    f"Weight matrix for step {step} has shape {matrix.shape}, "
                    f"expected {self.weight_shape}"
                )

        if len(self.actual_values) != len(self.actual_values_set):
            raise PersistenceError(
                f"{len(self.actual_values)} bucket values but "
                f"{len(self.actual_values_set)} seen flags"
            )
        if len(self.actual_values) < self.max_bucket_idx + 1:
            raise PersistenceError(
                f"{len(self.actual_values)} bucket values for max_bucket_idx "
                f"{self.max_bucket_idx}"
            )
        return self
