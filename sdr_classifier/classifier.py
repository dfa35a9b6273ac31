"""
SDR Classifier - Online Multi-Step Bucket Prediction

Maps the active bits of a sparse distributed representation to a
probability distribution over output buckets, one distribution per
configured prediction step.

Per compute() call:
    1. learn_iteration = record_num - offset (offset fixed on the first call)
    2. Record the pattern in the history ring buffer
    3. Grow the input dimension of the weights if a larger bit is active
    4. infer: softmax(prior + sum of active weight rows) for every step
    5. learn: grow the bucket dimension, track the bucket's actual value,
       then for every history entry exactly `step` iterations old move
       the weights of its active bits toward the current bucket

Learning rule (for a history pattern x and step h):
    p = softmax(prior + W_h[x].sum(axis=0))
    W_h[x] += alpha * (onehot(bucket_idx) - p)
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence, TextIO

import numpy as np

from .bucket_values import BucketValueTracker
from .config import SDRClassifierConfig
from .constants import (
    ACTUAL_VALUES,
    DEFAULT_ACT_VALUE_ALPHA,
    DEFAULT_ALPHA,
    DEFAULT_STEPS,
    SCALAR_TOLERANCE,
    VERSION,
)
from .history import PatternHistory
from .persistence import SchemaCodec, TextStreamCodec
from .result import ClassifierResult
from .state import ClassifierState
from .weights import WeightMatrixStore

logger = logging.getLogger(__name__)


def softmax(scores: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Exponentiate and L1-normalize a score vector.

    The maximum score is subtracted before exponentiating so large scores
    cannot overflow; the result is otherwise the plain exponential softmax.

    Args:
        scores: Raw scores, one per bucket
        out: Optional output array (may be scores itself)

    Returns:
        Probability vector summing to 1
    """
    if out is None:
        out = np.empty(len(scores), dtype=np.float64)
    np.subtract(scores, np.max(scores), out=out)
    np.exp(out, out=out)
    out /= out.sum()
    return out


class SDRClassifier:
    """
    Online, incremental classifier over sparse binary patterns.

    Keeps one growable weight matrix per prediction step, a bounded history
    of recent patterns, and a smoothed actual value per bucket.

    Example:
        >>> classifier = SDRClassifier(steps=[1], alpha=0.1)
        >>> result = classifier.compute(0, [2, 5], bucket_idx=3, act_value=10.0)
        >>> result.get_vector(1)      # bucket distribution one step ahead
    """

    VERSION = VERSION

    def __init__(self,
                 steps: Sequence[int] = DEFAULT_STEPS,
                 alpha: float = DEFAULT_ALPHA,
                 act_value_alpha: float = DEFAULT_ACT_VALUE_ALPHA,
                 verbosity: int = 0):
        config = SDRClassifierConfig(
            steps=steps,
            alpha=alpha,
            act_value_alpha=act_value_alpha,
            verbosity=verbosity
        )
        self.steps = tuple(config.steps)
        self._step_set = frozenset(self.steps)
        self.alpha = config.alpha
        self.verbosity = config.verbosity
        self.version = VERSION
        self.max_steps = config.max_steps

        self.learn_iteration = 0
        self.record_num_minus_learn_iteration = 0
        self.record_num_minus_learn_iteration_set = False

        self.weights = WeightMatrixStore(self.steps)
        self.history = PatternHistory(self.max_steps)
        self.bucket_values = BucketValueTracker(config.act_value_alpha)

    @classmethod
    def from_config(cls, config: SDRClassifierConfig) -> SDRClassifier:
        return cls(
            steps=config.steps,
            alpha=config.alpha,
            act_value_alpha=config.act_value_alpha,
            verbosity=config.verbosity
        )

    @property
    def config(self) -> SDRClassifierConfig:
        return SDRClassifierConfig(
            steps=self.steps,
            alpha=self.alpha,
            act_value_alpha=self.act_value_alpha,
            verbosity=self.verbosity
        )

    @property
    def act_value_alpha(self) -> float:
        return self.bucket_values.act_value_alpha

    @property
    def max_input_idx(self) -> int:
        return self.weights.max_input_idx

    @property
    def max_bucket_idx(self) -> int:
        return self.weights.max_bucket_idx

    # -------------------------------------------------------------------------
    # Compute
    # -------------------------------------------------------------------------

    @staticmethod
    def _normalize_pattern(pattern: Iterable[int]) -> np.ndarray:
        """Sorted unique int64 active bits; rejects empty, non-integer or negative input."""
        if not isinstance(pattern, np.ndarray):
            pattern = np.asarray(list(pattern))
        bits = pattern.ravel()
        if bits.size == 0:
            raise ValueError("Pattern must contain at least one active bit")
        if not np.issubdtype(bits.dtype, np.integer):
            raise ValueError(f"Pattern bits must be integers, got dtype {bits.dtype}")
        bits = np.unique(bits.astype(np.int64))
        if bits[0] < 0:
            raise ValueError(f"Pattern bits must be non-negative, got {int(bits[0])}")
        return bits

    def compute(self,
                record_num: int,
                pattern: Iterable[int],
                bucket_idx: int,
                act_value: float,
                category: bool = False,
                learn: bool = True,
                infer: bool = True,
                result: Optional[ClassifierResult] = None) -> Optional[ClassifierResult]:
        """
        Process one record: optionally infer, then optionally learn.

        Args:
            record_num: Caller's record number, non-decreasing across calls
            pattern: Active bit indices of the input
            bucket_idx: Bucket of the current actual value
            act_value: Current actual value
            category: Treat act_value as a category (no smoothing)
            learn: Update weights and bucket values
            infer: Write predictions into result
            result: Container to fill; a new one is created if omitted

        Returns:
            The filled result when infer is set, otherwise `result` unchanged

        Raises:
            ValueError: on an empty pattern or negative indices
        """
        pattern_nz = self._normalize_pattern(pattern)
        if bucket_idx < 0:
            raise ValueError(f"bucket_idx must be non-negative, got {bucket_idx}")

        if not self.record_num_minus_learn_iteration_set:
            self.record_num_minus_learn_iteration = record_num - self.learn_iteration
            self.record_num_minus_learn_iteration_set = True
        self.learn_iteration = record_num - self.record_num_minus_learn_iteration

        if self.verbosity >= 1:
            logger.info(
                "Record %d (learn iteration %d): %d active bits, bucket %d, value %r",
                record_num, self.learn_iteration, pattern_nz.size, bucket_idx, act_value
            )

        self.history.record(self.learn_iteration, pattern_nz)
        self.weights.ensure_capacity(int(pattern_nz[-1]), self.weights.max_bucket_idx)

        if infer:
            if result is None:
                result = ClassifierResult()
            self._infer(pattern_nz, act_value, result)

        if learn:
            self._learn(bucket_idx, act_value, category)

        return result

    def infer(self,
              pattern: Iterable[int],
              act_value: float = 0.0,
              result: Optional[ClassifierResult] = None) -> ClassifierResult:
        """
        Predict without touching any state.

        Bits beyond the largest input index seen so far have no weights
        and contribute nothing.
        """
        if result is None:
            result = ClassifierResult()
        self._infer(self._normalize_pattern(pattern), act_value, result)
        return result

    def _likelihoods(self,
                     pattern: np.ndarray,
                     step: int,
                     out: Optional[np.ndarray] = None) -> np.ndarray:
        """Bucket distribution of one step for one pattern."""
        if out is None:
            out = np.full(self.max_bucket_idx + 1, 1.0 / len(self.bucket_values))
        out += self.weights.project(step, pattern)
        return softmax(out, out=out)

    def _infer(self, pattern: np.ndarray, act_value: float, result: ClassifierResult) -> None:
        # A zero-step prediction must not see the label it is predicting
        fallback = 0.0 if self.steps[0] == 0 else act_value
        act_values = result.create_vector(ACTUAL_VALUES, len(self.bucket_values), 0.0)
        act_values[:] = self.bucket_values.estimates(fallback)

        for step in self.steps:
            likelihoods = result.create_vector(
                step, self.max_bucket_idx + 1, 1.0 / len(self.bucket_values)
            )
            self._likelihoods(pattern, step, out=likelihoods)
            if self.verbosity >= 2:
                logger.info("  step %d: most likely bucket %d (p=%.4f)",
                            step, int(np.argmax(likelihoods)), float(likelihoods.max()))

    def _calculate_error(self, bucket_idx: int, pattern: np.ndarray, step: int) -> np.ndarray:
        """One-hot target minus predicted distribution for a history pattern."""
        likelihoods = self._likelihoods(pattern, step)
        target = np.zeros_like(likelihoods)
        target[bucket_idx] = 1.0
        return target - likelihoods

    def _learn(self, bucket_idx: int, act_value: float, category: bool) -> None:
        self.weights.ensure_capacity(self.weights.max_input_idx, bucket_idx)
        self.bucket_values.ensure_capacity(self.max_bucket_idx)
        self.bucket_values.observe(bucket_idx, act_value, category)

        for pattern, n_steps in self.history.retained(self.learn_iteration):
            if n_steps in self._step_set:
                error = self._calculate_error(bucket_idx, pattern, n_steps)
                # Covers every bucket up to and including max_bucket_idx
                self.weights.update_rows(n_steps, pattern, self.alpha * error)

    # -------------------------------------------------------------------------
    # State Transfer
    # -------------------------------------------------------------------------

    def to_state(self) -> ClassifierState:
        """Snapshot the full state; arrays are copies."""
        return ClassifierState(
            version=self.version,
            steps=list(self.steps),
            alpha=self.alpha,
            act_value_alpha=self.act_value_alpha,
            learn_iteration=self.learn_iteration,
            record_num_minus_learn_iteration=self.record_num_minus_learn_iteration,
            record_num_minus_learn_iteration_set=self.record_num_minus_learn_iteration_set,
            max_steps=self.max_steps,
            max_bucket_idx=self.max_bucket_idx,
            max_input_idx=self.max_input_idx,
            verbosity=self.verbosity,
            iteration_history=self.history.iterations,
            pattern_history=[pattern.copy() for pattern in self.history.patterns],
            weights={step: matrix.copy() for step, matrix in self.weights},
            actual_values=self.bucket_values.values,
            actual_values_set=self.bucket_values.seen,
        )

    def set_state(self, state: ClassifierState) -> None:
        """
        Replace the full state.

        The state is validated first; on PersistenceError nothing changes.
        """
        state.validate()

        weights = WeightMatrixStore(state.steps, state.max_input_idx, state.max_bucket_idx)
        for step, matrix in state.weights.items():
            weights.set_matrix(step, matrix)

        history = PatternHistory(state.max_steps)
        history.load(zip(state.iteration_history, state.pattern_history))

        bucket_values = BucketValueTracker(state.act_value_alpha)
        bucket_values.load(state.actual_values, state.actual_values_set)

        self.steps = tuple(state.steps)
        self._step_set = frozenset(self.steps)
        self.alpha = state.alpha
        self.verbosity = state.verbosity
        self.version = state.version
        self.max_steps = state.max_steps
        self.learn_iteration = state.learn_iteration
        self.record_num_minus_learn_iteration = state.record_num_minus_learn_iteration
        self.record_num_minus_learn_iteration_set = state.record_num_minus_learn_iteration_set
        self.weights = weights
        self.history = history
        self.bucket_values = bucket_values

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save(self, stream: TextIO) -> None:
        """Write the text stream format."""
        TextStreamCodec().encode(self.to_state(), stream)
        logger.debug("Saved classifier at learn iteration %d", self.learn_iteration)

    def load(self, stream: TextIO) -> None:
        """
        Replace this classifier's state from the text stream format.

        Raises:
            PersistenceError: on bad markers, unsupported versions or
                inconsistent content
        """
        self.set_state(TextStreamCodec().decode(stream))
        logger.debug("Loaded classifier at learn iteration %d", self.learn_iteration)

    def write(self, proto) -> None:
        """Fill a mutable mapping with the schema-typed record."""
        SchemaCodec().encode(self.to_state(), proto)

    def read(self, proto) -> None:
        """Replace this classifier's state from a schema-typed record."""
        self.set_state(SchemaCodec().decode(proto))

    def to_bytes(self) -> bytes:
        return SchemaCodec().to_bytes(self.to_state())

    @classmethod
    def from_bytes(cls, data: bytes) -> SDRClassifier:
        state = SchemaCodec().from_bytes(data)
        classifier = cls(steps=state.steps)
        classifier.set_state(state)
        return classifier

    @classmethod
    def from_stream(cls, stream: TextIO) -> SDRClassifier:
        state = TextStreamCodec().decode(stream)
        classifier = cls(steps=state.steps)
        classifier.set_state(state)
        return classifier

    def persistent_size(self) -> int:
        """Byte length of the text stream serialization."""
        return len(TextStreamCodec().dumps(self.to_state()).encode("utf-8"))

    # -------------------------------------------------------------------------
    # Python Protocols
    # -------------------------------------------------------------------------

    def __eq__(self, other) -> bool:
        """
        Deep comparison.

        alpha, act_value_alpha and bucket values compare within 1e-6;
        counters, history and weight cells compare exactly.
        """
        if not isinstance(other, SDRClassifier):
            return NotImplemented

        if self.steps != other.steps:
            return False

        if (abs(self.alpha - other.alpha) > SCALAR_TOLERANCE or
                abs(self.act_value_alpha - other.act_value_alpha) > SCALAR_TOLERANCE or
                self.learn_iteration != other.learn_iteration or
                self.record_num_minus_learn_iteration != other.record_num_minus_learn_iteration or
                self.record_num_minus_learn_iteration_set != other.record_num_minus_learn_iteration_set or
                self.max_steps != other.max_steps):
            return False

        if not self.history.equals(other.history):
            return False

        if (self.max_bucket_idx != other.max_bucket_idx or
                self.max_input_idx != other.max_input_idx):
            return False

        if not self.weights.equals(other.weights):
            return False

        if not self.bucket_values.equals(other.bucket_values, SCALAR_TOLERANCE):
            return False

        return self.version == other.version and self.verbosity == other.verbosity

    __hash__ = None

    def __repr__(self) -> str:
        return (f"SDRClassifier(steps={list(self.steps)}, alpha={self.alpha}, "
                f"learn_iteration={self.learn_iteration}, "
                f"weights={self.max_input_idx + 1}x{self.max_bucket_idx + 1})")
