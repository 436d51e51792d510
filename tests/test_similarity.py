"""
Tests for cosine similarity.
"""

import numpy as np
import pytest

from entitydb.core.errors import IncompatibleVector, LengthMismatch
from entitydb.vector.similarity import cosine


def test_cosine_self_is_one():
    """cosine(v, v) ~= 1 for non-zero vectors."""
    rng = np.random.default_rng(3)
    for _ in range(20):
        v = rng.normal(size=32)
        assert cosine(v, v) == pytest.approx(1.0)


def test_cosine_negation_is_minus_one():
    rng = np.random.default_rng(4)
    for _ in range(20):
        v = rng.normal(size=32)
        assert cosine(v, -v) == pytest.approx(-1.0)


def test_cosine_orthogonal_is_zero():
    assert cosine([1.0, 0.0, 0.0], [0.0, 1.0, 0.0]) == pytest.approx(0.0)


def test_cosine_known_value():
    assert cosine([1.0, 0.0, 0.0], [1.0, 1.0, 0.0]) == pytest.approx(0.7071, abs=1e-4)


def test_cosine_zero_vector_scores_zero():
    """Zero-magnitude operands are defined to score 0.0, never NaN."""
    assert cosine([0.0, 0.0], [1.0, 2.0]) == 0.0
    assert cosine([0.0, 0.0], [0.0, 0.0]) == 0.0


def test_cosine_length_mismatch():
    with pytest.raises(LengthMismatch):
        cosine([1.0, 2.0], [1.0, 2.0, 3.0])


def test_cosine_is_bounded():
    rng = np.random.default_rng(11)
    for _ in range(50):
        a, b = rng.normal(size=16), rng.normal(size=16)
        assert -1.0 <= cosine(a, b) <= 1.0


def test_cosine_rejects_non_finite_components():
    """NaN or infinite components never score as a match."""
    with pytest.raises(IncompatibleVector):
        cosine([float("nan"), 1.0], [1.0, 1.0])
    with pytest.raises(IncompatibleVector):
        cosine([float("inf"), 1.0], [1.0, 1.0])
    with pytest.raises(IncompatibleVector):
        cosine([1.0, 1.0], [1.0, float("-inf")])


def test_cosine_rejects_overflowing_magnitude():
    with pytest.raises(IncompatibleVector):
        cosine([1e200, 1e200], [1e200, 1e200])
