"""
Cosine similarity between dense vectors.
"""

from typing import Sequence

import numpy as np

from ..core.errors import IncompatibleVector, LengthMismatch


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|); a zero-magnitude operand scores 0.0.

    Raises:
        LengthMismatch: if the vectors differ in length
        IncompatibleVector: if either vector holds NaN or infinity
    """
    va = np.asarray(a, dtype=np.float64).reshape(-1)
    vb = np.asarray(b, dtype=np.float64).reshape(-1)
    if va.size != vb.size:
        raise LengthMismatch(va.size, vb.size, operation="cosine")
    if not (np.isfinite(va).all() and np.isfinite(vb).all()):
        raise IncompatibleVector("Vector components must be finite", operation="cosine")

    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:  # Zero vectors have no direction
        return 0.0

    score = float(np.dot(va, vb) / denom)
    if not np.isfinite(score):
        # Finite components whose norms overflow float64
        raise IncompatibleVector("Vector magnitude overflows float64", operation="cosine")
    # Clamp rounding noise so identical vectors never exceed 1
    return max(-1.0, min(1.0, score))
