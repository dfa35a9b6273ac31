"""
Persistence - Two Codecs for One Classifier State

Design Principles:
1. Both formats encode the same ClassifierState record
2. Decoding builds a fresh state and validates it before anyone applies it
3. Every structural mismatch raises PersistenceError

Formats:
- TextStreamCodec: versioned, whitespace-delimited, self-describing text
  with start/end markers. Reads version 0 (no iteration history) and 1.
- SchemaCodec: flat mapping of field name -> typed numpy array, following
  SCHEMA. Weight matrices are stored as one flat row-major list per step.
  Serialized to bytes as an uncompressed .npz archive. Current version only.

Text layout (version 1):
    SDRClassifier
    <version>
    <version> <alpha> <act_value_alpha> <learn_iteration> <max_steps> <max_bucket_idx> <max_input_idx> <verbosity>
    <offset> <offset_set> <n> <iteration>...
    <n> <step>...
    <n> (<len> <bit>...)...
    <n> (<step> <cell>...)...
    <n> (<value> <seen>)...
    ~SDRClassifier
"""

from __future__ import annotations

import io
import logging
import zipfile
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Deque, Dict, List, Mapping, MutableMapping, TextIO, Tuple

import numpy as np

from .constants import MIN_STREAM_VERSION, STREAM_END_MARKER, STREAM_START_MARKER, VERSION
from .state import ClassifierState, PersistenceError

logger = logging.getLogger(__name__)


# =============================================================================
# SECTION 1: Abstract Codec Interface
# =============================================================================

class StateCodec(ABC):
    """
    Abstract interface for classifier state serialization.

    encode() writes a state into a target; decode() reads a validated
    state back from a source.
    """

    @abstractmethod
    def encode(self, state: ClassifierState, target: Any) -> None:
        """Write state into target."""
        pass

    @abstractmethod
    def decode(self, source: Any) -> ClassifierState:
        """Read and validate a state from source."""
        pass


# =============================================================================
# SECTION 2: Text Stream Codec
# =============================================================================

def _float_token(value: float) -> str:
    # repr round-trips float64 exactly
    return repr(float(value))


def _line(tokens) -> str:
    return " ".join(str(token) for token in tokens) + "\n"


class _TokenReader:
    """Pulls whitespace-delimited tokens from a text stream, line by line."""

    def __init__(self, stream: TextIO):
        self._stream = stream
        self._tokens: Deque[str] = deque()

    def token(self, what: str) -> str:
        while not self._tokens:
            line = self._stream.readline()
            if not line:
                raise PersistenceError(f"Stream ended while reading {what}")
            self._tokens.extend(line.split())
        return self._tokens.popleft()

    def integer(self, what: str) -> int:
        token = self.token(what)
        try:
            return int(token)
        except ValueError:
            raise PersistenceError(f"Expected integer for {what}, got {token!r}") from None

    def count(self, what: str) -> int:
        value = self.integer(what)
        if value < 0:
            raise PersistenceError(f"Negative value {value} for {what}")
        return value

    def real(self, what: str) -> float:
        token = self.token(what)
        try:
            return float(token)
        except ValueError:
            raise PersistenceError(f"Expected number for {what}, got {token!r}") from None

    def flag(self, what: str) -> bool:
        token = self.token(what)
        if token not in ("0", "1"):
            raise PersistenceError(f"Expected 0 or 1 for {what}, got {token!r}")
        return token == "1"


class TextStreamCodec(StateCodec):
    """Versioned whitespace-delimited text format."""

    def encode(self, state: ClassifierState, stream: TextIO) -> None:
        if state.version != VERSION:
            raise PersistenceError(
                f"Can only write version {VERSION}, state has version {state.version}"
            )

        stream.write(f"{STREAM_START_MARKER}\n")
        stream.write(f"{state.version}\n")

        stream.write(_line([
            state.version,
            _float_token(state.alpha),
            _float_token(state.act_value_alpha),
            state.learn_iteration,
            state.max_steps,
            state.max_bucket_idx,
            state.max_input_idx,
            state.verbosity,
        ]))

        stream.write(_line(
            [state.record_num_minus_learn_iteration,
             int(state.record_num_minus_learn_iteration_set),
             len(state.iteration_history)]
            + list(state.iteration_history)
        ))

        stream.write(_line([len(state.steps)] + list(state.steps)))

        tokens: List[Any] = [len(state.pattern_history)]
        for pattern in state.pattern_history:
            tokens.append(len(pattern))
            tokens.extend(int(bit) for bit in pattern)
        stream.write(_line(tokens))

        stream.write(f"{len(state.weights)}\n")
        for step in state.steps:
            cells = state.weights[step].ravel()
            stream.write(_line([step] + [_float_token(cell) for cell in cells]))

        tokens = [len(state.actual_values)]
        for value, seen in zip(state.actual_values, state.actual_values_set):
            tokens.append(_float_token(value))
            tokens.append(int(bool(seen)))
        stream.write(_line(tokens))

        stream.write(f"{STREAM_END_MARKER}\n")

    def decode(self, stream: TextIO) -> ClassifierState:
        reader = _TokenReader(stream)

        marker = reader.token("start marker")
        if marker != STREAM_START_MARKER:
            raise PersistenceError(
                f"Expected start marker {STREAM_START_MARKER!r}, got {marker!r}"
            )

        version = reader.integer("version")
        if not MIN_STREAM_VERSION <= version <= VERSION:
            raise PersistenceError(
                f"Unsupported version {version} "
                f"(supported {MIN_STREAM_VERSION}..{VERSION})"
            )

        reader.integer("stored version")
        alpha = reader.real("alpha")
        act_value_alpha = reader.real("act_value_alpha")
        learn_iteration = reader.integer("learn_iteration")
        max_steps = reader.count("max_steps")
        max_bucket_idx = reader.count("max_bucket_idx")
        max_input_idx = reader.count("max_input_idx")
        verbosity = reader.count("verbosity")

        offset, offset_set = 0, False
        iterations: List[int] = []
        if version >= 1:
            offset = reader.integer("record_num_minus_learn_iteration")
            offset_set = reader.flag("record_num_minus_learn_iteration_set")
            iterations = [
                reader.integer("iteration history")
                for _ in range(reader.count("iteration history size"))
            ]

        steps = [reader.count("step") for _ in range(reader.count("number of steps"))]

        patterns: List[np.ndarray] = []
        for _ in range(reader.count("pattern history size")):
            size = reader.count("pattern size")
            patterns.append(np.array(
                [reader.count("pattern bit") for _ in range(size)], dtype=np.int64
            ))

        if version == 0:
            # Version 0 kept no iterations; history is stored oldest first
            # and spaced one iteration apart, ending just before learn_iteration.
            size = len(patterns)
            iterations = [learn_iteration - (size - position) for position in range(size)]
            iterations.reverse()
            patterns.reverse()
            logger.debug("Upgrading version 0 stream to version %d", VERSION)

        rows, cols = max_input_idx + 1, max_bucket_idx + 1
        weights: Dict[int, np.ndarray] = {}
        for _ in range(reader.count("number of weight matrices")):
            step = reader.count("weight matrix step")
            if step in weights:
                raise PersistenceError(f"Duplicate weight matrix for step {step}")
            cells = [reader.real("weight") for _ in range(rows * cols)]
            weights[step] = np.array(cells, dtype=np.float64).reshape(rows, cols)

        values: List[float] = []
        seen: List[bool] = []
        for _ in range(reader.count("number of buckets")):
            values.append(reader.real("bucket value"))
            seen.append(reader.flag("bucket seen flag"))

        marker = reader.token("end marker")
        if marker != STREAM_END_MARKER:
            raise PersistenceError(
                f"Expected end marker {STREAM_END_MARKER!r}, got {marker!r}"
            )

        return ClassifierState(
            version=VERSION,
            steps=steps,
            alpha=alpha,
            act_value_alpha=act_value_alpha,
            learn_iteration=learn_iteration,
            record_num_minus_learn_iteration=offset,
            record_num_minus_learn_iteration_set=offset_set,
            max_steps=max_steps,
            max_bucket_idx=max_bucket_idx,
            max_input_idx=max_input_idx,
            verbosity=verbosity,
            iteration_history=iterations,
            pattern_history=patterns,
            weights=weights,
            actual_values=np.array(values, dtype=np.float64),
            actual_values_set=np.array(seen, dtype=bool),
        ).validate()

    def dumps(self, state: ClassifierState) -> str:
        buffer = io.StringIO()
        self.encode(state, buffer)
        return buffer.getvalue()

    def loads(self, text: str) -> ClassifierState:
        return self.decode(io.StringIO(text))


# =============================================================================
# SECTION 3: Schema Codec
# =============================================================================

# field -> (dtype, rank); weight_matrix_<k> entries are added per step
SCHEMA: Dict[str, Tuple[type, int]] = {
    "version": (np.uint32, 0),
    "steps": (np.uint32, 1),
    "alpha": (np.float64, 0),
    "act_value_alpha": (np.float64, 0),
    "learn_iteration": (np.int64, 0),
    "record_num_minus_learn_iteration": (np.int64, 0),
    "record_num_minus_learn_iteration_set": (np.bool_, 0),
    "max_steps": (np.uint32, 0),
    "pattern_nz_history": (np.uint32, 1),
    "pattern_nz_history_lengths": (np.uint32, 1),
    "iteration_num_history": (np.int64, 1),
    "max_bucket_idx": (np.uint32, 0),
    "max_input_idx": (np.uint32, 0),
    "weight_matrix_steps": (np.uint32, 1),
    "actual_values": (np.float64, 1),
    "actual_values_set": (np.bool_, 1),
    "verbosity": (np.uint32, 0),
}

WEIGHT_MATRIX_FIELD = "weight_matrix_{}"
WEIGHT_MATRIX_SCHEMA: Tuple[type, int] = (np.float64, 1)


class SchemaCodec(StateCodec):
    """Flat, typed record format; one flat weight list per step."""

    def to_record(self, state: ClassifierState) -> Dict[str, np.ndarray]:
        """Flatten a state into schema-typed arrays."""
        patterns = state.pattern_history
        record = {
            "version": state.version,
            "steps": state.steps,
            "alpha": state.alpha,
            "act_value_alpha": state.act_value_alpha,
            "learn_iteration": state.learn_iteration,
            "record_num_minus_learn_iteration": state.record_num_minus_learn_iteration,
            "record_num_minus_learn_iteration_set": state.record_num_minus_learn_iteration_set,
            "max_steps": state.max_steps,
            "pattern_nz_history": np.concatenate(patterns) if patterns else [],
            "pattern_nz_history_lengths": [len(pattern) for pattern in patterns],
            "iteration_num_history": state.iteration_history,
            "max_bucket_idx": state.max_bucket_idx,
            "max_input_idx": state.max_input_idx,
            "weight_matrix_steps": state.steps,
            "actual_values": state.actual_values,
            "actual_values_set": state.actual_values_set,
            "verbosity": state.verbosity,
        }
        typed = {
            name: np.asarray(record[name], dtype=dtype)
            for name, (dtype, _) in SCHEMA.items()
        }
        for k, step in enumerate(state.steps):
            typed[WEIGHT_MATRIX_FIELD.format(k)] = np.asarray(
                state.weights[step], dtype=np.float64
            ).flatten()
        return typed

    @staticmethod
    def _field(record: Mapping[str, Any], name: str, dtype: type, rank: int) -> np.ndarray:
        if name not in record:
            raise PersistenceError(f"Missing field {name!r}")
        value = np.asarray(record[name])
        if value.dtype != np.dtype(dtype):
            raise PersistenceError(
                f"Field {name!r} has dtype {value.dtype}, expected {np.dtype(dtype)}"
            )
        if value.ndim != rank:
            raise PersistenceError(f"Field {name!r} has rank {value.ndim}, expected {rank}")
        return value

    def from_record(self, record: Mapping[str, Any]) -> ClassifierState:
        """Rebuild and validate a state from schema-typed arrays."""
        fields = {
            name: self._field(record, name, dtype, rank)
            for name, (dtype, rank) in SCHEMA.items()
        }

        version = int(fields["version"])
        if version != VERSION:
            raise PersistenceError(f"Unsupported version {version}, expected {VERSION}")

        flat_patterns = fields["pattern_nz_history"].astype(np.int64)
        lengths = fields["pattern_nz_history_lengths"].astype(np.int64)
        if int(lengths.sum()) != flat_patterns.size:
            raise PersistenceError(
                f"Pattern lengths sum to {int(lengths.sum())}, "
                f"but {flat_patterns.size} bits are stored"
            )
        patterns: List[np.ndarray] = []
        if lengths.size:
            patterns = list(np.split(flat_patterns, np.cumsum(lengths)[:-1]))

        max_input_idx = int(fields["max_input_idx"])
        max_bucket_idx = int(fields["max_bucket_idx"])
        rows, cols = max_input_idx + 1, max_bucket_idx + 1
        weights: Dict[int, np.ndarray] = {}
        for k, step in enumerate(fields["weight_matrix_steps"]):
            flat = self._field(record, WEIGHT_MATRIX_FIELD.format(k), *WEIGHT_MATRIX_SCHEMA)
            if flat.size != rows * cols:
                raise PersistenceError(
                    f"Weight matrix for step {int(step)} has {flat.size} cells, "
                    f"expected {rows * cols}"
                )
            if int(step) in weights:
                raise PersistenceError(f"Duplicate weight matrix for step {int(step)}")
            weights[int(step)] = flat.reshape(rows, cols).copy()

        return ClassifierState(
            version=version,
            steps=[int(step) for step in fields["steps"]],
            alpha=float(fields["alpha"]),
            act_value_alpha=float(fields["act_value_alpha"]),
            learn_iteration=int(fields["learn_iteration"]),
            record_num_minus_learn_iteration=int(fields["record_num_minus_learn_iteration"]),
            record_num_minus_learn_iteration_set=bool(fields["record_num_minus_learn_iteration_set"]),
            max_steps=int(fields["max_steps"]),
            max_bucket_idx=max_bucket_idx,
            max_input_idx=max_input_idx,
            verbosity=int(fields["verbosity"]),
            iteration_history=[int(it) for it in fields["iteration_num_history"]],
            pattern_history=patterns,
            weights=weights,
            actual_values=fields["actual_values"].copy(),
            actual_values_set=fields["actual_values_set"].copy(),
        ).validate()

    def encode(self, state: ClassifierState, proto: MutableMapping[str, Any]) -> None:
        proto.update(self.to_record(state))

    def decode(self, proto: Mapping[str, Any]) -> ClassifierState:
        return self.from_record(proto)

    def to_bytes(self, state: ClassifierState) -> bytes:
        """Serialize a state as an uncompressed .npz archive."""
        buffer = io.BytesIO()
        np.savez(buffer, **self.to_record(state))
        return buffer.getvalue()

    def from_bytes(self, data: bytes) -> ClassifierState:
        """Read a state written by to_bytes()."""
        try:
            archive = np.load(io.BytesIO(data), allow_pickle=False)
        except (ValueError, OSError, EOFError, zipfile.BadZipFile) as e:
            raise PersistenceError(f"Not a classifier archive: {e}") from e
        if not hasattr(archive, "files"):
            raise PersistenceError("Not a classifier archive: found a single array")
        try:
            with archive:
                record = {name: archive[name] for name in archive.files}
        except (ValueError, OSError, EOFError, zipfile.BadZipFile) as e:
            raise PersistenceError(f"Unreadable classifier archive: {e}") from e
        return self.from_record(record)
