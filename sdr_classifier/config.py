"""
Classifier Configuration
"""

from dataclasses import dataclass
from typing import Sequence

from .constants import DEFAULT_ACT_VALUE_ALPHA, DEFAULT_ALPHA, DEFAULT_STEPS


@dataclass(frozen=True)
class SDRClassifierConfig:
    """
    Configuration for an SDR classifier.

    steps: Prediction steps (horizons), normalized to a sorted unique tuple
    alpha: Learning rate of the weight update
    act_value_alpha: Smoothing rate of the per-bucket actual values
    verbosity: 0 = silent, >= 1 logs every compute() call
    """
    steps: Sequence[int] = DEFAULT_STEPS
    alpha: float = DEFAULT_ALPHA
    act_value_alpha: float = DEFAULT_ACT_VALUE_ALPHA
    verbosity: int = 0

    def __post_init__(self):
        """Validate configuration."""
        steps = tuple(sorted(set(int(step) for step in self.steps)))
        if not steps:
            raise ValueError("At least one prediction step is required")
        if steps[0] < 0:
            raise ValueError(f"Steps must be non-negative, got {list(steps)}")
        if self.alpha < 0:
            raise ValueError(f"alpha must be >= 0, got {self.alpha}")
        if not (0 <= self.act_value_alpha <= 1):
            raise ValueError(f"act_value_alpha must satisfy 0 ≤ α ≤ 1, got {self.act_value_alpha}")
        if self.verbosity < 0:
            raise ValueError(f"verbosity must be >= 0, got {self.verbosity}")
        # Normalize steps
        object.__setattr__(self, 'steps', steps)

    @property
    def max_steps(self) -> int:
        """History span needed for the largest step = max(steps) + 1."""
        return self.steps[-1] + 1
