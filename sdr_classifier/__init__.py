"""
SDR Classifier - Online Multi-Step Prediction from Sparse Patterns

Converts the active bits of a sparse distributed representation into a
probability distribution over output buckets for several prediction steps,
learning online from every record.
"""

__version__ = "0.1.0"

from .constants import ACTUAL_VALUES, VERSION
from .config import SDRClassifierConfig
from .weights import WeightMatrixStore
from .history import PatternHistory
from .bucket_values import BucketValueTracker
from .result import ClassifierResult
from .state import ClassifierState, PersistenceError
from .persistence import StateCodec, TextStreamCodec, SchemaCodec
from .classifier import SDRClassifier, softmax

__all__ = [
    "ACTUAL_VALUES",
    "VERSION",
    "SDRClassifierConfig",
    "WeightMatrixStore",
    "PatternHistory",
    "BucketValueTracker",
    "ClassifierResult",
    "ClassifierState",
    "PersistenceError",
    "StateCodec",
    "TextStreamCodec",
    "SchemaCodec",
    "SDRClassifier",
    "softmax",
]
