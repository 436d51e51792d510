"""
Hamming distance kernel over a linear memory region.

Loaded through entitydb.vector.accel.load_kernel, which checks the ABI
constants and the exports of an instance before first use. Operands are
written into `memory` by the caller; `hamming_distance` reads them in
128-bit lanes (two uint64 words per lane) and popcounts the XOR with a
SWAR reduction.
"""

import numpy as np

KERNEL_NAME = "hamming-swar128"
KERNEL_VERSION = "1.0.0"
KERNEL_ABI_VERSION = 1

PAGE_SIZE = 65536
LANE_BYTES = 16

_M1 = np.uint64(0x5555555555555555)
_M2 = np.uint64(0x3333333333333333)
_M4 = np.uint64(0x0F0F0F0F0F0F0F0F)
_H01 = np.uint64(0x0101010101010101)


def _popcount64(x: np.ndarray) -> np.ndarray:
    x = x - ((x >> np.uint64(1)) & _M1)
    x = (x & _M2) + ((x >> np.uint64(2)) & _M2)
    x = (x + (x >> np.uint64(4))) & _M4
    return ((x * _H01) >> np.uint64(56)).astype(np.int64)


class KernelInstance:
    """One instantiated kernel with its own, unsynchronized linear memory."""

    PAGE_SIZE = PAGE_SIZE

    def __init__(self, pages: int = 1):
        if pages < 1:
            raise ValueError("pages must be >= 1")
        self._memory = np.zeros(pages * PAGE_SIZE, dtype=np.uint8)

    @property
    def memory(self) -> np.ndarray:
        return self._memory

    @property
    def pages(self) -> int:
        return self._memory.size // PAGE_SIZE

    def grow(self, delta_pages: int) -> int:
        """Grow memory by delta_pages; returns the previous page count."""
        previous = self.pages
        if delta_pages > 0:
            grown = np.zeros((previous + delta_pages) * PAGE_SIZE, dtype=np.uint8)
            grown[:self._memory.size] = self._memory
            self._memory = grown
        return previous

    def hamming_distance(self, offset_a: int, offset_b: int, bit_length: int) -> int:
        n_bytes = (bit_length + 7) // 8
        size = self._memory.size
        if min(offset_a, offset_b) < 0 or max(offset_a, offset_b) + n_bytes > size:
            raise IndexError("out of bounds memory access")
        if n_bytes == 0:
            return 0

        a = self._memory[offset_a:offset_a + n_bytes]
        b = self._memory[offset_b:offset_b + n_bytes]

        # Zero-padded to whole lanes so trailing bytes never count
        n_lanes = (n_bytes + LANE_BYTES - 1) // LANE_BYTES
        xor = np.zeros(n_lanes * LANE_BYTES, dtype=np.uint8)
        np.bitwise_xor(a, b, out=xor[:n_bytes])

        tail = bit_length % 8
        if tail:
            xor[n_bytes - 1] &= np.uint8((1 << tail) - 1)

        lanes = xor.view("<u8").reshape(n_lanes, 2)
        return int(_popcount64(lanes).sum())


def instantiate(pages: int = 1) -> KernelInstance:
    return KernelInstance(pages)
