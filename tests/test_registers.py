from __future__ import annotations
import pytest # type: ignore
import numpy as np # type: ignore

from cardinal.lib.config import Configuration
from cardinal.lib.errors import MalformedSerializedData
from cardinal.lib.registers import RegisterArray


@pytest.fixture
def small_config():
    """16 registers of 5 bits: 80 bits in two words."""
    return Configuration(0.3)


@pytest.mark.quick
class TestRegisterArrayQuick:
    """Quick tests for the packed register array."""

    def test_init(self, small_config):
        registers = RegisterArray(small_config)
        assert len(registers) == 16
        assert registers.width == 5
        assert registers.max_value == 31
        assert registers.words.shape == (2,)
        assert registers.memory_bytes() == 16
        assert all(registers.get(i) == 0 for i in range(16))
        assert registers.count_zeros() == 16

    def test_bit_layout(self, small_config):
        """Register i occupies bits [5i, 5i + 5), least significant first."""
        registers = RegisterArray(small_config)
        registers.set_max(0, 1)
        assert int(registers.words[0]) == 1
        registers.set_max(1, 3)
        assert int(registers.words[0]) == 1 | (3 << 5)
        assert int(registers.words[1]) == 0

    def test_register_straddling_words(self, small_config):
        """Register 12 spans bits 60-64: four bits in word 0 and one in word 1."""
        registers = RegisterArray(small_config)
        registers.set_max(12, 31)
        assert int(registers.words[0]) == 0xF << 60
        assert int(registers.words[1]) == 1
        assert registers.get(12) == 31
        assert registers.get(11) == 0
        assert registers.get(13) == 0

    def test_neighbours_untouched(self, small_config):
        registers = RegisterArray(small_config)
        values = [(7 * i + 3) % 32 for i in range(16)]
        for i, value in enumerate(values):
            registers.set_max(i, value)
        assert [registers.get(i) for i in range(16)] == values
        np.testing.assert_array_equal(registers.to_numpy(), values)
        assert list(registers) == values

    def test_set_max_only_increases(self, small_config):
        registers = RegisterArray(small_config)
        assert registers.set_max(5, 10) is True
        assert registers.set_max(5, 4) is False
        assert registers.set_max(5, 10) is False
        assert registers.get(5) == 10
        assert registers.set_max(5, 11) is True
        assert registers.get(5) == 11

    def test_set_max_saturates(self, small_config):
        registers = RegisterArray(small_config)
        registers.set_max(3, 1000)
        assert registers.get(3) == 31
        assert registers.get(2) == 0
        assert registers.get(4) == 0

    @pytest.mark.parametrize("index", [-1, 16, 100])
    def test_out_of_range(self, small_config, index):
        registers = RegisterArray(small_config)
        with pytest.raises(IndexError):
            registers.get(index)
        with pytest.raises(IndexError):
            registers.set_max(index, 1)


@pytest.mark.quick
class TestRegisterArrayBulk:
    """Bulk construction and replacement."""

    def test_from_values(self):
        config = Configuration(0.05)
        values = np.arange(config.register_count) % 32
        registers = RegisterArray.from_values(config, values)
        np.testing.assert_array_equal(registers.to_numpy(), values)
        for i in (0, 12, 25, 511):
            assert registers.get(i) == values[i]

    def test_from_values_matches_set_max(self):
        config = Configuration(0.05, 2 ** 40)  # 6-bit registers
        rng = np.random.default_rng(7)
        values = rng.integers(0, 64, size=config.register_count)
        packed = RegisterArray.from_values(config, values)
        incremental = RegisterArray(config)
        for i, value in enumerate(values):
            incremental.set_max(i, int(value))
        assert packed == incremental

    def test_from_values_rejects_bad_shape(self, small_config):
        with pytest.raises(ValueError):
            RegisterArray.from_values(small_config, [1, 2, 3])
        with pytest.raises(ValueError):
            RegisterArray.from_values(small_config, [-1] * 16)

    def test_bytes_round_trip(self, small_config):
        registers = RegisterArray(small_config)
        registers.set_max(12, 17)
        registers.set_max(15, 9)
        data = registers.to_bytes()
        assert len(data) == small_config.byte_length
        restored = RegisterArray.from_bytes(small_config, data)
        assert restored == registers
        np.testing.assert_array_equal(restored.words, registers.words)

    def test_bytes_are_big_endian_words(self, small_config):
        registers = RegisterArray(small_config)
        registers.set_max(0, 1)
        assert registers.to_bytes()[:8] == b'\x00' * 7 + b'\x01'

    def test_from_bytes_wrong_length(self, small_config):
        with pytest.raises(MalformedSerializedData):
            RegisterArray.from_bytes(small_config, b'\x00' * 8)
        with pytest.raises(MalformedSerializedData):
            RegisterArray.from_bytes(small_config, b'\x00' * 24)

    def test_failed_replace_leaves_contents(self, small_config):
        registers = RegisterArray(small_config)
        registers.set_max(4, 6)
        before = registers.to_bytes()
        with pytest.raises(MalformedSerializedData):
            registers.replace_words(np.zeros(3, dtype=np.uint64))
        assert registers.to_bytes() == before

    def test_copy_is_independent(self, small_config):
        registers = RegisterArray(small_config)
        registers.set_max(1, 2)
        clone = registers.copy()
        assert clone == registers
        clone.set_max(1, 5)
        assert registers.get(1) == 2
        assert clone != registers

    def test_words_view_is_read_only(self, small_config):
        registers = RegisterArray(small_config)
        with pytest.raises(ValueError):
            registers.words[0] = 1


@pytest.mark.quick
class TestRegisterArrayChunked:
    """Bulk operations on arrays larger than one decoding chunk."""

    @pytest.fixture(params=[1_000_000, 2 ** 40], ids=["5-bit", "6-bit"])
    def large_config(self, request):
        config = Configuration(0.003, request.param)
        assert config.register_count == 2 ** 18
        return config

    def test_values_across_chunk_boundaries(self, large_config):
        rng = np.random.default_rng(11)
        values = rng.integers(0, large_config.max_register_value + 1, size=large_config.register_count)
        registers = RegisterArray.from_values(large_config, values)
        np.testing.assert_array_equal(registers.to_numpy(), values)
        for i in (0, 65535, 65536, 65537, 131071, 131072, large_config.register_count - 1):
            assert registers.get(i) == values[i]

    def test_histogram(self, large_config):
        rng = np.random.default_rng(12)
        values = rng.integers(0, 20, size=large_config.register_count)
        registers = RegisterArray.from_values(large_config, values)
        expected = np.bincount(values, minlength=large_config.max_register_value + 1)
        np.testing.assert_array_equal(registers.histogram(), expected)
        assert registers.count_zeros() == int(np.count_nonzero(values == 0))

    def test_maximum(self, large_config):
        rng = np.random.default_rng(13)
        first = rng.integers(0, 30, size=large_config.register_count)
        second = rng.integers(0, 30, size=large_config.register_count)
        merged = RegisterArray.maximum(large_config, [RegisterArray.from_values(large_config, first),
                                                      RegisterArray.from_values(large_config, second)])
        np.testing.assert_array_equal(merged.to_numpy(), np.maximum(first, second))

    def test_iteration(self, small_config):
        registers = RegisterArray(small_config)
        registers.set_max(12, 9)
        assert list(registers)[12] == 9
        assert sum(1 for _ in registers) == 16
