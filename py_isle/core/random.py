"""
Seeded pseudo-random number generator.

A string seed is reduced to a 32-bit integer with a rolling hash and fed to
a Park-Miller multiplicative congruential generator (modulus 2^31 - 1).
Identical seeds always reproduce identical maps.
"""

import math
from typing import MutableSequence, Sequence, TypeVar

T = TypeVar("T")

MODULUS = 2147483647  # 2^31 - 1
MULTIPLIER = 16807


def _int32(n: int) -> int:
    """Wrap to a signed 32-bit integer."""
    n &= 0xFFFFFFFF
    return n - 0x100000000 if n & 0x80000000 else n


def hash_seed(seed: str) -> int:
    """
    Reduce a seed string to a non-negative integer.

    Hashes UTF-16 code units with ``h = h * 31 + c`` in 32-bit arithmetic
    and returns the absolute value.
    """
    data = str(seed).encode("utf-16-le")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = _int32((h << 5) - h + unit)
    return abs(h)


class SeededRandom:
    """
    Deterministic random stream built from a string seed.

    The generator state is a single integer in ``[1, 2^31 - 2]``. A hash that
    reduces to zero would lock the stream, so it is replaced by 1.
    """

    def __init__(self, seed: str):
        self.seed = str(seed)
        state = hash_seed(self.seed) % MODULUS
        self._initial = state or 1
        self._state = self._initial
        self.call_count = 0

    def uniform(self) -> float:
        """Next value in [0, 1)."""
        self.call_count += 1
        self._state = (self._state * MULTIPLIER) % MODULUS
        return (self._state - 1) / (MODULUS - 1)

    def range(self, min_val: float = 0.0, max_val: float = 1.0) -> float:
        """Random float in ``[min_val, max_val)``."""
        return min_val + self.uniform() * (max_val - min_val)

    def int_range(self, min_val: int, max_val: int) -> int:
        """Random integer in ``[min_val, max_val]`` inclusive."""
        return math.floor(self.range(min_val, max_val + 1))

    def choice(self, seq: Sequence[T]) -> T:
        """Choose a random element from a non-empty sequence."""
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[int(self.uniform() * len(seq))]

    def shuffle(self, seq: MutableSequence) -> None:
        """Fisher-Yates shuffle in place, walking down from the last element."""
        for i in range(len(seq) - 1, 0, -1):
            j = int(self.uniform() * (i + 1))
            seq[i], seq[j] = seq[j], seq[i]

    def reset(self) -> None:
        """Rewind the stream to its initial state."""
        self._state = self._initial
        self.call_count = 0

    def __repr__(self) -> str:
        return f"SeededRandom(seed={self.seed!r}, calls={self.call_count})"
