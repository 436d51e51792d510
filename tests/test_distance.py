"""
Tests for Hamming distance: scalar path, accelerated kernel path and their parity.
"""

import numpy as np
import pytest

from entitydb.core.errors import AccelerationUnavailable, LengthMismatch
from entitydb.vector import _kernel
from entitydb.vector.distance import AcceleratedHamming, DistanceEngine, hamming
from entitydb.vector.quantize import pack
from entitydb.vector.types import PackedVector


def _random_packed(rng, bit_length):
    n_words = (bit_length + 63) // 64
    words = rng.integers(0, 2**63, size=n_words, dtype=np.uint64) * np.uint64(2) + \
        rng.integers(0, 2, size=n_words, dtype=np.uint64)
    return PackedVector(words, bit_length)


@pytest.fixture
def accelerator():
    return AcceleratedHamming(_kernel.instantiate(1))


def test_hamming_identity_is_zero():
    a = pack([1, 0, 1, 1, 0] * 40)
    assert hamming(a, a) == 0


def test_hamming_counts_differing_bits():
    a = pack([1, 0, 1, 1])
    b = pack([0, 0, 1, 0])
    assert hamming(a, b) == 2


def test_hamming_is_symmetric():
    rng = np.random.default_rng(1)
    a = _random_packed(rng, 384)
    b = _random_packed(rng, 384)
    assert hamming(a, b) == hamming(b, a)


def test_hamming_length_mismatch():
    """Different bit lengths fail rather than truncate."""
    with pytest.raises(LengthMismatch) as exc:
        hamming(pack([1] * 64), pack([1] * 65))
    assert exc.value.left == 64
    assert exc.value.right == 65


def test_hamming_ignores_padding_bits():
    a = PackedVector([0b1111], 2)
    b = PackedVector([0b0000], 2)
    assert hamming(a, b) == 2


def test_accelerated_matches_scalar_on_simple_input(accelerator):
    a = pack([1, 0, 1, 1] * 96)
    b = pack([0, 1, 1, 0] * 96)
    assert accelerator.distance(a, b) == hamming(a, b)


def test_accelerated_matches_scalar_for_random_pairs(accelerator):
    """1,000 random equal-length pairs give identical distances on both paths."""
    rng = np.random.default_rng(1234)
    for _ in range(1000):
        bit_length = int(rng.integers(1, 1025))
        a = _random_packed(rng, bit_length)
        b = _random_packed(rng, bit_length)
        assert accelerator.distance(a, b) == hamming(a, b)


def test_accelerated_length_mismatch(accelerator):
    with pytest.raises(LengthMismatch):
        accelerator.distance(pack([1] * 10), pack([1] * 100))


def test_accelerated_grows_memory_for_large_operands():
    instance = _kernel.instantiate(1)
    accel = AcceleratedHamming(instance)
    rng = np.random.default_rng(5)

    # Two operands of 40 KiB each do not fit in one 64 KiB page
    bit_length = 40 * 1024 * 8
    a = _random_packed(rng, bit_length)
    b = _random_packed(rng, bit_length)

    assert accel.distance(a, b) == hamming(a, b)
    assert instance.pages >= 2


def test_accelerated_stale_memory_does_not_leak(accelerator):
    """A short query after a long one only reads its own bytes."""
    rng = np.random.default_rng(9)
    long_a, long_b = _random_packed(rng, 4096), _random_packed(rng, 4096)
    accelerator.distance(long_a, long_b)

    a = pack([1, 0, 1])
    b = pack([0, 0, 1])
    assert accelerator.distance(a, b) == 1


def test_distance_engine_scalar_by_default():
    engine = DistanceEngine()
    assert engine.distance(pack([1, 1]), pack([0, 0])) == 2


def test_distance_engine_accelerated_requires_kernel():
    """Callers can catch AccelerationUnavailable and retry on the scalar path."""
    engine = DistanceEngine()
    a, b = pack([1, 0]), pack([0, 1])
    with pytest.raises(AccelerationUnavailable):
        engine.distance(a, b, accelerated=True)
    assert engine.distance(a, b) == 2


def test_distance_engine_accelerated_path(accelerator):
    engine = DistanceEngine(accelerator)
    assert engine.accelerated_available
    assert engine.distance(pack([1, 0, 0]), pack([0, 1, 1]), accelerated=True) == 3
