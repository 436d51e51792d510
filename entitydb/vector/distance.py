"""
Hamming distance between packed bit-vectors: a scalar word loop and an
accelerated path that delegates to a loaded kernel instance.
"""

import threading
from typing import Any, Optional

import numpy as np

from ..core.errors import AccelerationUnavailable, LengthMismatch
from .types import WORD_BITS, PackedVector

_ALIGN = 16


def _popcount(word: int) -> int:
    return bin(word).count("1")


def _check_lengths(a: PackedVector, b: PackedVector) -> None:
    if a.bit_length != b.bit_length or len(a.words) != len(b.words):
        raise LengthMismatch(a.bit_length, b.bit_length, operation="hamming")


def hamming(a: PackedVector, b: PackedVector) -> int:
    """Sum over words of popcount(a XOR b), counting only the first bit_length bits."""
    _check_lengths(a, b)
    distance = 0
    for wa, wb in zip(a.words, b.words):
        distance += _popcount(int(wa) ^ int(wb))

    tail = a.bit_length % WORD_BITS
    if tail and len(a.words):
        # Bits past bit_length in the last word are padding
        last = (int(a.words[-1]) ^ int(b.words[-1])) >> tail
        distance -= _popcount(last)
    return distance


class AcceleratedHamming:
    """Hamming distance through a kernel instance's linear memory.

    Operand A goes at offset 0, operand B at the first 16-byte boundary past
    A's extent. The memory is not synchronized, so one instance serves one
    computation at a time.
    """

    def __init__(self, instance: Any):
        self.instance = instance
        self._lock = threading.Lock()

    def _ensure_capacity(self, needed: int) -> None:
        memory = np.frombuffer(self.instance.memory, dtype=np.uint8)
        if needed <= memory.size:
            return
        page = getattr(self.instance, "PAGE_SIZE", 65536)
        missing = needed - memory.size
        self.instance.grow((missing + page - 1) // page)

    def distance(self, a: PackedVector, b: PackedVector) -> int:
        _check_lengths(a, b)
        if a.bit_length == 0:
            return 0

        data_a = a.to_bytes()
        data_b = b.to_bytes()
        offset_b = (len(data_a) + _ALIGN - 1) // _ALIGN * _ALIGN

        with self._lock:
            self._ensure_capacity(offset_b + len(data_b))
            memory = np.frombuffer(self.instance.memory, dtype=np.uint8)
            memory[:len(data_a)] = np.frombuffer(data_a, dtype=np.uint8)
            memory[offset_b:offset_b + len(data_b)] = np.frombuffer(data_b, dtype=np.uint8)
            return int(self.instance.hamming_distance(0, offset_b, a.bit_length))


class DistanceEngine:
    """Chooses between the scalar and the accelerated Hamming path."""

    def __init__(self, accelerator: Optional[AcceleratedHamming] = None):
        self.accelerator = accelerator

    @property
    def accelerated_available(self) -> bool:
        return self.accelerator is not None

    def distance(self, a: PackedVector, b: PackedVector, accelerated: bool = False) -> int:
        if not accelerated:
            return hamming(a, b)
        if self.accelerator is None:
            raise AccelerationUnavailable("No accelerated kernel is loaded", operation="hamming")
        return self.accelerator.distance(a, b)
