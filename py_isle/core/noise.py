"""
Coherent 2D gradient noise.

The permutation table is shuffled once from a ``SeededRandom`` and never
changes afterwards, so evaluation is a pure function of the coordinates.
Both functions accept scalars or numpy arrays; array inputs are evaluated
element-wise in one vectorized pass.
"""

from typing import Union

import numpy as np

from .random import SeededRandom

ArrayLike = Union[float, np.ndarray]


class NoiseGenerator:
    """Perlin-style gradient noise over a 512-entry permutation table."""

    def __init__(self, random: SeededRandom):
        self.random = random
        self.permutation = self._generate_permutation()

    def _generate_permutation(self) -> np.ndarray:
        perm = list(range(256))
        self.random.shuffle(perm)
        # Duplicated so corner lookups never wrap
        return np.array(perm + perm, dtype=np.int64)

    @staticmethod
    def fade(t: ArrayLike) -> ArrayLike:
        return t * t * t * (t * (t * 6 - 15) + 10)

    @staticmethod
    def lerp(t: ArrayLike, a: ArrayLike, b: ArrayLike) -> ArrayLike:
        return a + t * (b - a)

    @staticmethod
    def grad(hash_value: np.ndarray, x: ArrayLike, y: ArrayLike) -> np.ndarray:
        h = hash_value & 3
        u = np.where(h < 2, x, y)
        v = np.where(h < 2, y, x)
        return np.where((h & 1) == 0, u, -u) + np.where((h & 2) == 0, v, -v)

    def noise2d(self, x: ArrayLike, y: ArrayLike) -> ArrayLike:
        """
        Evaluate noise at ``(x, y)``.

        Returns:
            Value in approximately [-1, 1]; a float for scalar input,
            otherwise an array shaped like the broadcast inputs.
        """
        scalar = np.ndim(x) == 0 and np.ndim(y) == 0
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)

        x_floor = np.floor(x)
        y_floor = np.floor(y)
        X = x_floor.astype(np.int64) & 255
        Y = y_floor.astype(np.int64) & 255

        x = x - x_floor
        y = y - y_floor

        u = self.fade(x)
        v = self.fade(y)

        perm = self.permutation
        A = perm[X] + Y
        B = perm[X + 1] + Y

        result = self.lerp(
            v,
            self.lerp(u, self.grad(perm[A], x, y), self.grad(perm[B], x - 1, y)),
            self.lerp(
                u,
                self.grad(perm[A + 1], x, y - 1),
                self.grad(perm[B + 1], x - 1, y - 1),
            ),
        )
        return float(result) if scalar else result

    def octave_noise2d(
        self,
        x: ArrayLike,
        y: ArrayLike,
        octaves: int,
        persistence: float = 0.5,
        scale: float = 0.1,
    ) -> ArrayLike:
        """
        Sum ``octaves`` layers of noise at doubling frequency.

        Amplitude decays by ``persistence`` per layer and the sum is divided
        by the total amplitude, keeping the result within [-1, 1].
        """
        total = 0.0
        frequency = scale
        amplitude = 1.0
        max_value = 0.0

        for _ in range(octaves):
            total = total + self.noise2d(x * frequency, y * frequency) * amplitude
            max_value += amplitude
            amplitude *= persistence
            frequency *= 2

        return total / max_value
