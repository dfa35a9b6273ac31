"""
Tests for the SDR Classifier
"""

import logging

import pytest
import numpy as np

from sdr_classifier import (
    ACTUAL_VALUES,
    ClassifierResult,
    SDRClassifier,
    SDRClassifierConfig,
    softmax,
)


def _random_records(n, seed=0, n_inputs=64, n_buckets=12):
    rng = np.random.default_rng(seed)
    for record_num in range(n):
        pattern = rng.choice(n_inputs, size=rng.integers(3, 10), replace=False)
        bucket = int(rng.integers(0, n_buckets))
        yield record_num, pattern, bucket, float(bucket * 2.5 + rng.normal())


class TestConstruction:
    def test_create_classifier(self):
        classifier = SDRClassifier(steps=[5, 1, 1], alpha=0.1, act_value_alpha=0.2)
        assert classifier.steps == (1, 5)
        assert classifier.max_steps == 6
        assert classifier.learn_iteration == 0
        assert classifier.max_input_idx == 0
        assert classifier.max_bucket_idx == 0
        assert classifier.version == SDRClassifier.VERSION

    def test_empty_steps(self):
        with pytest.raises(ValueError):
            SDRClassifier(steps=[])

    def test_negative_steps(self):
        with pytest.raises(ValueError):
            SDRClassifier(steps=[-1, 2])

    def test_invalid_act_value_alpha(self):
        with pytest.raises(ValueError):
            SDRClassifierConfig(steps=(1,), act_value_alpha=1.5)

    def test_from_config(self):
        config = SDRClassifierConfig(steps=(3, 0), alpha=0.05, verbosity=1)
        classifier = SDRClassifier.from_config(config)
        assert classifier.steps == (0, 3)
        assert classifier.alpha == 0.05
        assert classifier.config == config


class TestPreconditions:
    def test_empty_pattern(self):
        classifier = SDRClassifier(steps=[1])
        with pytest.raises(ValueError):
            classifier.compute(0, [], 0, 1.0)

    def test_negative_bit(self):
        classifier = SDRClassifier(steps=[1])
        with pytest.raises(ValueError):
            classifier.compute(0, [3, -1], 0, 1.0)

    def test_negative_bucket(self):
        classifier = SDRClassifier(steps=[1])
        with pytest.raises(ValueError):
            classifier.compute(0, [3], -2, 1.0)

    def test_float_bits_rejected(self):
        classifier = SDRClassifier(steps=[1])
        with pytest.raises(ValueError):
            classifier.compute(0, np.array([2.7, 5.2]), 0, 1.0)
        with pytest.raises(ValueError):
            classifier.infer([1, 2.5])
        assert len(classifier.history) == 0

    def test_pattern_is_normalized(self):
        classifier = SDRClassifier(steps=[1])
        classifier.compute(0, {7, 2, 5}, 0, 1.0)
        assert classifier.history.patterns[0].tolist() == [2, 5, 7]


class TestInference:
    def test_first_call(self):
        classifier = SDRClassifier(steps=[1])
        result = classifier.compute(0, [1, 5], 0, 1.0)
        np.testing.assert_array_equal(result.get_vector(1), [1.0])
        np.testing.assert_array_equal(result.actual_values, [1.0])

    def test_infer_false_returns_nothing(self):
        classifier = SDRClassifier(steps=[1])
        assert classifier.compute(0, [1], 0, 1.0, infer=False) is None

    def test_fills_given_result(self):
        classifier = SDRClassifier(steps=[1, 2])
        result = ClassifierResult()
        returned = classifier.compute(0, [1], 0, 1.0, result=result)
        assert returned is result
        assert result.keys() == [ACTUAL_VALUES, 1, 2]

    def test_distribution_validity(self):
        classifier = SDRClassifier(steps=[0, 1, 3], alpha=0.3)
        for record_num, pattern, bucket, value in _random_records(150, seed=1):
            result = classifier.compute(record_num, pattern, bucket, value)
            for step in classifier.steps:
                likelihoods = result.get_vector(step)
                assert np.all(likelihoods >= 0.0)
                assert abs(likelihoods.sum() - 1.0) <= 1e-9

    def test_zero_step_label_isolation(self):
        classifier = SDRClassifier(steps=[0, 1])
        classifier.compute(0, [1], 0, 5.0)
        classifier.compute(1, [2], 4, 99.0)
        result = classifier.compute(2, [3], 2, 42.0)
        actual = result.actual_values
        assert actual[0] == 5.0
        assert actual[4] == 99.0
        # Buckets 1..3 were never observed
        assert actual[1:4].tolist() == [0.0, 0.0, 0.0]
        assert 42.0 not in actual.tolist()

    def test_unseen_buckets_use_current_value(self):
        classifier = SDRClassifier(steps=[1, 2])
        classifier.compute(0, [1], 0, 5.0)
        classifier.compute(1, [2], 4, 99.0)
        result = classifier.compute(2, [3], 2, 42.0)
        assert result.actual_values.tolist() == [5.0, 42.0, 42.0, 42.0, 99.0]

    def test_infer_has_no_side_effects(self):
        classifier = SDRClassifier(steps=[1, 2], alpha=0.2)
        for record_num, pattern, bucket, value in _random_records(30, seed=2):
            classifier.compute(record_num, pattern, bucket, value)
        before = classifier.to_state()
        result = classifier.infer([1, 2, 300], act_value=3.0)
        assert result.get_vector(2).sum() == pytest.approx(1.0)
        restored = SDRClassifier(steps=[1])
        restored.set_state(before)
        assert classifier == restored
        assert classifier.max_input_idx < 300

    def test_inference_does_not_see_new_bucket(self):
        classifier = SDRClassifier(steps=[1])
        classifier.compute(0, [1], 0, 1.0)
        result = classifier.compute(1, [1], 6, 1.0)
        # Bucket 6 only exists after this call has learned
        assert len(result.get_vector(1)) == 1
        assert classifier.max_bucket_idx == 6


class TestLearning:
    def test_input_growth_uses_input_bound(self):
        classifier = SDRClassifier(steps=[1])
        classifier.compute(0, [3], 5, 1.0)
        classifier.compute(1, [4], 0, 1.0)
        assert classifier.max_input_idx == 4
        assert classifier.weights.shape == (5, 6)

    def test_indices_never_decrease(self):
        classifier = SDRClassifier(steps=[1])
        classifier.compute(0, [40], 9, 1.0)
        classifier.compute(1, [2], 1, 1.0)
        assert classifier.max_input_idx == 40
        assert classifier.max_bucket_idx == 9
        assert len(classifier.bucket_values) == 10

    def test_learn_false_skips_bucket_growth(self):
        classifier = SDRClassifier(steps=[1])
        classifier.compute(0, [2], 3, 1.0, learn=False)
        assert classifier.max_bucket_idx == 0
        assert classifier.max_input_idx == 2
        assert len(classifier.history) == 1

    def test_update_includes_last_bucket(self):
        classifier = SDRClassifier(steps=[0], alpha=0.1)
        classifier.compute(0, [1], 2, 1.0)
        np.testing.assert_allclose(
            classifier.weights.row(0, 1),
            0.1 * np.array([-1.0 / 3, -1.0 / 3, 2.0 / 3])
        )

    def test_update_uses_historical_pattern(self):
        classifier = SDRClassifier(steps=[1], alpha=0.1)
        classifier.compute(0, [1], 0, 1.0)
        assert np.all(classifier.weights.matrix(1) == 0.0)
        classifier.compute(1, [2], 1, 1.0)
        np.testing.assert_allclose(classifier.weights.row(1, 1), [-0.05, 0.05])
        assert np.all(classifier.weights.row(1, 2) == 0.0)

    def test_only_matching_elapsed_counts_learn(self):
        classifier = SDRClassifier(steps=[2], alpha=0.1)
        classifier.compute(0, [1], 0, 1.0)
        classifier.compute(1, [2], 1, 1.0)
        assert np.all(classifier.weights.matrix(2) == 0.0)
        classifier.compute(2, [3], 1, 1.0)
        assert np.any(classifier.weights.row(2, 1) != 0.0)
        assert np.all(classifier.weights.row(2, 2) == 0.0)

    def test_categorical_values(self):
        classifier = SDRClassifier(steps=[1])
        classifier.compute(0, [1], 0, 3.0, category=True)
        classifier.compute(1, [1], 0, 7.0, category=True)
        assert classifier.bucket_values.values[0] == 7.0

    def test_convergence(self):
        classifier = SDRClassifier(steps=[0, 1], alpha=0.1, act_value_alpha=0.3)
        probabilities = []
        for record_num in range(200):
            result = classifier.compute(record_num, [2, 5], 3, 10.0, learn=True, infer=True)
            likelihoods = result.get_vector(1)
            if len(likelihoods) > 3:
                probabilities.append(likelihoods[3])

        probabilities = np.array(probabilities)
        assert np.all(np.diff(probabilities) > 0)
        assert probabilities[-20:].mean() > probabilities[:20].mean()
        assert probabilities[-1] > 0.9

    def test_predicted_value_after_training(self):
        classifier = SDRClassifier(steps=[1], alpha=0.5)
        for record_num in range(60):
            bucket = record_num % 2
            classifier.compute(record_num, [bucket * 10], bucket, bucket * 100.0)
        # Pattern {0} is always followed by bucket 1
        result = classifier.infer([0])
        assert result.most_likely_bucket(1) == 1
        assert result.predicted_value(1) == pytest.approx(100.0)

    def test_non_contiguous_record_numbers(self):
        a = SDRClassifier(steps=[1, 5], alpha=0.1)
        b = SDRClassifier(steps=[1, 5], alpha=0.1)
        patterns = [[1, 4], [2], [3, 7], [4]]
        buckets = [0, 2, 1, 3]
        for record_num, pattern, bucket in zip([100, 105, 106, 200], patterns, buckets):
            a.compute(record_num, pattern, bucket, float(bucket))
        for record_num, pattern, bucket in zip([0, 5, 6, 100], patterns, buckets):
            b.compute(record_num, pattern, bucket, float(bucket))

        assert a.learn_iteration == b.learn_iteration == 100
        assert a.history.iterations == b.history.iterations == [100, 6, 5, 0]
        assert a.weights.equals(b.weights)
        assert np.any(a.weights.matrix(5) != 0.0)
        assert np.any(a.weights.matrix(1) != 0.0)
        assert a.record_num_minus_learn_iteration == 100
        assert b.record_num_minus_learn_iteration == 0


class TestEquality:
    def test_fresh_instances_equal(self):
        assert SDRClassifier(steps=[1, 2]) == SDRClassifier(steps=[2, 1])

    def test_different_steps(self):
        assert SDRClassifier(steps=[1]) != SDRClassifier(steps=[1, 2])

    def test_scalar_tolerance(self):
        a = SDRClassifier(steps=[1], alpha=0.1)
        b = SDRClassifier(steps=[1], alpha=0.1 + 5e-7)
        assert a == b
        c = SDRClassifier(steps=[1], alpha=0.1 + 5e-6)
        assert a != c

    def test_weights_compare_exactly(self):
        a = SDRClassifier(steps=[1])
        b = SDRClassifier(steps=[1])
        b.weights.accumulate(1, 0, 0, 1e-12)
        assert a != b

    def test_not_equal_to_other_types(self):
        assert SDRClassifier(steps=[1]) != "SDRClassifier"


class TestSoftmax:
    def test_matches_plain_exponential(self):
        scores = np.array([0.1, -0.4, 1.2])
        expected = np.exp(scores) / np.exp(scores).sum()
        np.testing.assert_allclose(softmax(scores), expected)

    def test_large_scores_stay_finite(self):
        likelihoods = softmax(np.array([1000.0, 0.0, 999.0]))
        assert np.all(np.isfinite(likelihoods))
        assert likelihoods.sum() == pytest.approx(1.0)
        assert likelihoods[0] > likelihoods[2] > likelihoods[1]


class TestLogging:
    def test_verbose_compute_logs(self, caplog):
        classifier = SDRClassifier(steps=[1], verbosity=1)
        with caplog.at_level(logging.INFO, logger="sdr_classifier.classifier"):
            classifier.compute(7, [1, 2], 0, 1.0)
        assert any("learn iteration 0" in record.getMessage() for record in caplog.records)

    def test_silent_by_default(self, caplog):
        classifier = SDRClassifier(steps=[1])
        with caplog.at_level(logging.INFO, logger="sdr_classifier.classifier"):
            classifier.compute(0, [1], 0, 1.0)
        assert not caplog.records


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
