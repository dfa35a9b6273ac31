"""
Online Prediction Demonstration of the SDR Classifier

This script walks through the life of a classifier:
1. Learning a repeating sequence one record at a time
2. Reading multi-step predictions and actual value estimates
3. Saving, restoring and continuing from both persistence formats
"""

import io
import logging

import numpy as np
from sdr_classifier import ACTUAL_VALUES, SDRClassifier


SEQUENCE = [0, 3, 7, 3, 5, 1]
BITS_PER_BUCKET = 4


def print_section(title):
    """Print a formatted section header."""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


def encode(bucket, rng):
    """A sparse pattern for a bucket, plus a little noise."""
    bits = list(range(bucket * 10, bucket * 10 + BITS_PER_BUCKET))
    bits.append(int(rng.integers(100, 120)))
    return bits


def train(classifier, n_records, rng, start=0):
    """Feed the sequence to the classifier; returns the last result."""
    result = None
    for record_num in range(start, start + n_records):
        bucket = SEQUENCE[record_num % len(SEQUENCE)]
        value = bucket * 1.5 + rng.normal(0.0, 0.05)
        result = classifier.compute(record_num, encode(bucket, rng), bucket, value)
    return result


def demonstrate_learning():
    """Show the one-step prediction sharpening as records arrive."""
    print_section("LEARNING A REPEATING SEQUENCE")

    rng = np.random.default_rng(7)
    classifier = SDRClassifier(steps=[1, 2], alpha=0.1, act_value_alpha=0.3)

    print(f"\nSequence of buckets: {SEQUENCE}")
    print("-" * 70)
    seen = 0
    for checkpoint in (6, 30, 120, 300):
        result = train(classifier, checkpoint - seen, rng, start=seen)
        seen = checkpoint
        likelihoods = result.get_vector(1)
        print(f"  after {checkpoint:4d} records: "
              f"p(next) max = {likelihoods.max():.3f} "
              f"for bucket {int(np.argmax(likelihoods))}")

    print(f"\n✓ {classifier}")
    return classifier


def demonstrate_predictions(classifier):
    """Show multi-step predictions and value estimates for each bucket."""
    print_section("MULTI-STEP PREDICTIONS")

    rng = np.random.default_rng(11)
    for bucket in SEQUENCE:
        result = classifier.infer(encode(bucket, rng))
        one = result.most_likely_bucket(1)
        two = result.most_likely_bucket(2)
        print(f"  bucket {bucket}: next -> {one} ({result.predicted_value(1):.2f}), "
              f"two ahead -> {two} ({result.predicted_value(2):.2f})")

    values = result.get_vector(ACTUAL_VALUES)
    print(f"\n  Tracked actual values: {np.round(values, 2).tolist()}")
    print("\n✓ Predictions follow the sequence")


def demonstrate_persistence(classifier):
    """Round-trip through both formats and keep learning."""
    print_section("PERSISTENCE")

    stream = io.StringIO()
    classifier.save(stream)
    print(f"\nText stream: {classifier.persistent_size()} bytes")
    stream.seek(0)
    restored = SDRClassifier.from_stream(stream)
    print(f"  Restored equal to original: {restored == classifier}")

    data = classifier.to_bytes()
    print(f"Schema archive: {len(data)} bytes")
    from_archive = SDRClassifier.from_bytes(data)
    print(f"  Restored equal to original: {from_archive == classifier}")

    rng_a = np.random.default_rng(3)
    rng_b = np.random.default_rng(3)
    start = classifier.learn_iteration + 1
    train(classifier, 12, rng_a, start=start)
    train(restored, 12, rng_b, start=start)
    print(f"  Still equal after 12 more records: {restored == classifier}")

    print("\n✓ Both formats restore an identical classifier")


def main():
    """Run the complete demonstration."""
    logging.basicConfig(level=logging.WARNING)

    print("\n" + "=" * 70)
    print("  SDR CLASSIFIER - ONLINE PREDICTION DEMONSTRATION")
    print("=" * 70)

    classifier = demonstrate_learning()
    demonstrate_predictions(classifier)
    demonstrate_persistence(classifier)

    print("\n" + "=" * 70 + "\n")


if __name__ == "__main__":
    main()
