"""
Tests for the Classifier Result container
"""

import pytest
import numpy as np

from sdr_classifier import ACTUAL_VALUES, ClassifierResult


class TestClassifierResult:
    def test_create_vector(self):
        result = ClassifierResult()
        vector = result.create_vector(1, 4, 0.25)
        np.testing.assert_array_equal(vector, [0.25] * 4)
        assert 1 in result
        assert len(result) == 1

    def test_vector_is_mutable_in_place(self):
        result = ClassifierResult()
        vector = result.create_vector(0, 3, 0.0)
        vector[2] = 9.0
        assert result.get_vector(0)[2] == 9.0

    def test_create_replaces(self):
        result = ClassifierResult()
        result.create_vector(1, 2, 1.0)
        result.create_vector(1, 5, 0.0)
        assert len(result.get_vector(1)) == 5

    def test_keys_sorted(self):
        result = ClassifierResult()
        result.create_vector(5, 1, 0.0)
        result.create_vector(ACTUAL_VALUES, 1, 0.0)
        result.create_vector(1, 1, 0.0)
        assert result.keys() == [ACTUAL_VALUES, 1, 5]
        assert list(result) == [ACTUAL_VALUES, 1, 5]

    def test_missing_vector(self):
        result = ClassifierResult()
        assert result.get_vector(3) is None
        assert result.actual_values is None

    def test_predicted_value(self):
        result = ClassifierResult()
        result.create_vector(ACTUAL_VALUES, 3, 0.0)[:] = [1.0, 2.0, 3.0]
        result.create_vector(1, 3, 0.0)[:] = [0.1, 0.7, 0.2]
        assert result.most_likely_bucket(1) == 1
        assert result.predicted_value(1) == 2.0

    def test_predicted_value_without_step(self):
        result = ClassifierResult()
        result.create_vector(ACTUAL_VALUES, 1, 0.0)
        with pytest.raises(KeyError):
            result.predicted_value(1)

    def test_equality(self):
        a = ClassifierResult()
        b = ClassifierResult()
        a.create_vector(1, 2, 0.5)
        b.create_vector(1, 2, 0.5)
        assert a == b
        b.get_vector(1)[0] = 0.6
        assert a != b


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
