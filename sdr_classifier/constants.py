# sdr_classifier/constants.py
"""
SDR Classifier Constants

This module defines constants used throughout the classifier:

LAYER 1: Learning Defaults
- DEFAULT_STEPS: Prediction steps tracked when none are given
- DEFAULT_ALPHA: Learning rate of the weight update
- DEFAULT_ACT_VALUE_ALPHA: Smoothing rate of the bucket values

LAYER 2: Storage
- GROWTH_FACTOR: Geometric reallocation factor of the weight buffer
- ACTUAL_VALUES: Result key of the actual-value vector

LAYER 3: Persistence
- VERSION: Current serialization version
- STREAM_START_MARKER / STREAM_END_MARKER: Text stream delimiters
- SCALAR_TOLERANCE: Absolute tolerance for scalar equality
"""


# =============================================================================
# LAYER 1: Learning Defaults
# =============================================================================

DEFAULT_STEPS = (1,)
DEFAULT_ALPHA = 0.001          # Weight learning rate
DEFAULT_ACT_VALUE_ALPHA = 0.3  # Exponential smoothing of bucket values


# =============================================================================
# LAYER 2: Storage
# =============================================================================

# Capacity multiplier applied when the weight buffer must be reallocated
GROWTH_FACTOR = 2.0

# Key under which the per-bucket actual values are stored in a result
ACTUAL_VALUES = -1


# =============================================================================
# LAYER 3: Persistence
# =============================================================================

VERSION = 1                    # Version 1 added explicit iteration history
MIN_STREAM_VERSION = 0

STREAM_START_MARKER = "SDRClassifier"
STREAM_END_MARKER = "~SDRClassifier"

SCALAR_TOLERANCE = 1e-6

assert MIN_STREAM_VERSION <= VERSION, "Current version must be loadable"
