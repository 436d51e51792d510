"""
Binary quantization: threshold a dense vector to one bit per component and pack
the bits into 64-bit words.
"""

from typing import List, Optional, Sequence

import numpy as np

from .types import WORD_BITS, PackedVector


def median(values: Sequence[float]) -> float:
    """Middle value for odd lengths, mean of the two middle values for even lengths."""
    arr = np.sort(np.asarray(values, dtype=np.float64).reshape(-1))
    if arr.size == 0:
        raise ValueError("Cannot take the median of an empty vector")
    mid = arr.size // 2
    if arr.size % 2 == 0:
        return float((arr[mid - 1] + arr[mid]) / 2)
    return float(arr[mid])


def binarize(vector: Sequence[float], threshold: Optional[float] = None) -> np.ndarray:
    """
    Map each component to 1 if it is >= threshold, else 0.

    Args:
        vector: Dense float vector
        threshold: Cut-off value; defaults to the median of the vector

    Returns:
        uint8 array of 0/1 bits with the same length as the input
    """
    arr = np.asarray(vector, dtype=np.float64).reshape(-1)
    if arr.size == 0:
        return np.zeros(0, dtype=np.uint8)
    if threshold is None:
        threshold = median(arr)
    return (arr >= threshold).astype(np.uint8)


def pack(bits: Sequence[int]) -> PackedVector:
    """Pack bits into ceil(len/64) words; bit i lands in word i//64 at position i%64."""
    bits = np.asarray(bits, dtype=np.uint8).reshape(-1)
    n_words = (bits.size + WORD_BITS - 1) // WORD_BITS

    # Pad to a whole number of words, then let packbits do LSB-first bytes
    padded = np.zeros(n_words * WORD_BITS, dtype=np.uint8)
    padded[:bits.size] = bits != 0
    packed_bytes = np.packbits(padded, bitorder="little")

    return PackedVector.from_bytes(packed_bytes.tobytes(), bits.size)


def unpack(packed: PackedVector, length: Optional[int] = None) -> List[int]:
    """Inverse of pack for any length <= words*64."""
    if length is None:
        length = packed.bit_length
    capacity = len(packed.words) * WORD_BITS
    if length < 0 or length > capacity:
        raise ValueError(f"Cannot unpack {length} bits from {len(packed.words)} words")

    raw = np.frombuffer(packed.to_bytes(), dtype=np.uint8)
    bits = np.unpackbits(raw, bitorder="little")[:length]
    return [int(b) for b in bits]


def quantize(vector: Sequence[float], threshold: Optional[float] = None) -> PackedVector:
    """Binarize then pack a dense vector."""
    return pack(binarize(vector, threshold))
