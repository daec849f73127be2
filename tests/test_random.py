"""Tests for the seeded PRNG."""

import pytest

from py_isle.core.random import MODULUS, SeededRandom, hash_seed


class TestHashSeed:
    """Test seed string hashing."""

    def test_known_values(self):
        """Test the rolling hash on short strings."""
        assert hash_seed("") == 0
        assert hash_seed("a") == 97
        assert hash_seed("ab") == 97 * 31 + 98

    def test_utf16_code_units(self):
        """Test that characters outside the BMP hash as surrogate pairs."""
        assert hash_seed("\U0001F600") == 0xD83D * 31 + 0xDE00

    def test_result_is_non_negative(self):
        """Test hashes of long strings wrap to 32 bits and stay positive."""
        for seed in ["test123", "a much longer seed string than usual", "zzzzzzzzzzzzzzzz"]:
            value = hash_seed(seed)
            assert 0 <= value <= 2**31


class TestSeededRandom:
    """Test the random stream."""

    def test_first_value(self):
        """Test the first draw matches one Park-Miller step."""
        rng = SeededRandom("a")
        expected_state = (97 * 16807) % MODULUS
        assert rng.uniform() == (expected_state - 1) / (MODULUS - 1)

    def test_deterministic(self):
        """Test identical seeds produce identical sequences."""
        rng1 = SeededRandom("test123")
        rng2 = SeededRandom("test123")
        assert [rng1.uniform() for _ in range(100)] == [rng2.uniform() for _ in range(100)]

    def test_different_seeds_differ(self):
        """Test different seeds diverge."""
        rng1 = SeededRandom("test123")
        rng2 = SeededRandom("test124")
        assert [rng1.uniform() for _ in range(10)] != [rng2.uniform() for _ in range(10)]

    def test_uniform_range(self):
        """Test values stay within [0, 1)."""
        rng = SeededRandom("range")
        values = [rng.uniform() for _ in range(5000)]
        assert min(values) >= 0.0
        assert max(values) < 1.0

    def test_zero_hash_does_not_lock(self):
        """Test an empty seed still produces a varying stream."""
        rng = SeededRandom("")
        values = {rng.uniform() for _ in range(20)}
        assert len(values) == 20
        assert all(0.0 <= v < 1.0 for v in values)

    def test_float_range(self):
        """Test range() scales into the requested interval."""
        rng = SeededRandom("floats")
        for _ in range(1000):
            value = rng.range(-50, 50)
            assert -50 <= value < 50

    def test_int_range_inclusive(self):
        """Test int_range() covers both bounds and nothing else."""
        rng = SeededRandom("ints")
        values = {rng.int_range(2, 3) for _ in range(500)}
        assert values == {2, 3}

    def test_reset(self):
        """Test reset() rewinds the stream."""
        rng = SeededRandom("reset")
        first = [rng.uniform() for _ in range(5)]
        rng.reset()
        assert rng.call_count == 0
        assert [rng.uniform() for _ in range(5)] == first

    def test_call_count(self):
        """Test every draw is counted."""
        rng = SeededRandom("count")
        rng.uniform()
        rng.range(0, 10)
        rng.int_range(0, 10)
        assert rng.call_count == 3

    def test_choice(self):
        """Test choice() returns members and rejects empty sequences."""
        rng = SeededRandom("choice")
        items = ["a", "b", "c"]
        assert all(rng.choice(items) in items for _ in range(50))
        with pytest.raises(IndexError):
            rng.choice([])

    def test_shuffle_is_permutation(self):
        """Test shuffle() keeps every element exactly once."""
        rng = SeededRandom("shuffle")
        items = list(range(100))
        rng.shuffle(items)
        assert sorted(items) == list(range(100))
        assert items != list(range(100))
