from __future__ import annotations
import logging
import math
import struct
from typing import Any, Optional

import numpy as np # type: ignore

from cardinal.lib.abstractsketch import AbstractSketch, HashFunction, XXHash64
from cardinal.lib.config import (Configuration, DEFAULT_MAX_CARDINALITY,
                                 DEFAULT_RELATIVE_STD_DEV)
from cardinal.lib.errors import (ConfigurationMismatch, InvalidConfiguration,
                                 MalformedSerializedData)
from cardinal.lib.registers import RegisterArray

logger = logging.getLogger(__name__)

# max_cardinality (int64), relative_std_dev (float64), register byte length (int32)
_HEADER = struct.Struct('>qdi')
HEADER_SIZE = _HEADER.size
_WORD_BYTES = 8
_HASH_MASK = (1 << 64) - 1


def get_alpha(m: int) -> float:
    """Bias-correction constant alpha_m for `m` registers."""
    if m == 16:
        return 0.673
    elif m == 32:
        return 0.697
    elif m == 64:
        return 0.709
    else:
        return 0.7213 / (1.0 + 1.079 / m)


def _lowest_set_bit(x: int) -> int:
    """Zero-based position of the least significant 1-bit of a non-zero int."""
    return (x & -x).bit_length() - 1


class HyperLogLog(AbstractSketch):
    def __init__(self,
                 relative_std_dev: float = DEFAULT_RELATIVE_STD_DEV,
                 max_cardinality: int = DEFAULT_MAX_CARDINALITY,
                 hash_function: Optional[HashFunction] = None,
                 config: Optional[Configuration] = None):
        """Initialize HyperLogLog sketch.

        Args:
            relative_std_dev: Target relative standard deviation of the estimate,
                              in (0, 1). 0.05 gives 512 registers, 0.03 gives 2048.
            max_cardinality: Expected upper bound on the number of distinct items.
                             Sizes the registers so ranks never overflow.
            hash_function: Callable mapping an element to a 64-bit integer.
                           Defaults to seeded xxh64 over the element's string form.
            config: Prebuilt configuration. Overrides relative_std_dev and max_cardinality.

        Raises:
            InvalidConfiguration: If relative_std_dev or max_cardinality is out of range
        """
        super().__init__()
        if config is None:
            config = Configuration(relative_std_dev, max_cardinality)
        self._config = config
        self._registers = RegisterArray(config)
        self.hash_function = hash_function if hash_function is not None else XXHash64()

        self._precision = config.register_count_log2
        self._bucket_mask = config.bucket_mask
        self._sentinel = config.sentinel_mask
        self.alpha_mm = get_alpha(config.register_count)

    @classmethod
    def _with_registers(cls, config: Configuration, registers: RegisterArray,
                        hash_function: HashFunction) -> 'HyperLogLog':
        sketch = cls(hash_function=hash_function, config=config)
        sketch._registers = registers
        return sketch

    @property
    def configuration(self) -> Configuration:
        return self._config

    @property
    def registers(self) -> RegisterArray:
        return self._registers

    @property
    def relative_std_dev(self) -> float:
        return self._config.relative_std_dev

    @property
    def max_cardinality(self) -> int:
        return self._config.max_cardinality

    @property
    def num_registers(self) -> int:
        return self._config.register_count

    @property
    def register_width(self) -> int:
        return self._config.register_width

    def _rank(self, hash_val: int) -> int:
        """Rank of a digest: 1 + position of the lowest set bit above the bucket bits."""
        guarded = (hash_val >> self._precision) | self._sentinel
        return _lowest_set_bit(guarded) + 1

    def update(self, element: Any) -> bool:
        """Offer an element to the sketch.

        Args:
            element: Item to count. Non-bytes values are hashed by their string form.

        Returns:
            True if a register was raised, False if the sketch is unchanged
        """
        hash_val = self.hash_function(element) & _HASH_MASK
        idx = hash_val & self._bucket_mask
        return self._registers.set_max(idx, self._rank(hash_val))

    def _raw_estimate(self, histogram: np.ndarray) -> float:
        m = float(self.num_registers)
        weights = np.exp2(-np.arange(histogram.size, dtype=np.float64))
        sum_inv = float(np.dot(histogram, weights))
        return float(self.alpha_mm * m * m / sum_inv)

    def raw_estimate(self) -> float:
        """Calculate the raw cardinality estimate before corrections.

        Returns:
            alpha_m * m^2 / sum(2^-register)
        """
        return self._raw_estimate(self._registers.histogram())

    def estimate(self) -> int:
        """Estimate the number of distinct elements offered so far.

        Uses linear counting while the raw estimate is at most 2.5 * m and
        some registers are still empty. No large-range correction is applied
        because digests are 64 bits wide.
        """
        histogram = self._registers.histogram()
        m = float(self.num_registers)
        estimate = self._raw_estimate(histogram)

        if estimate <= 2.5 * m:
            zeros = int(histogram[0])
            if zeros > 0:
                estimate = m * math.log(m / zeros)

        return max(0, int(round(estimate)))

    def is_empty(self) -> bool:
        """Check if sketch is empty."""
        return not np.any(self._registers.words)

    def _check_mergeable(self, other) -> None:
        if not isinstance(other, HyperLogLog):
            raise TypeError("Can only merge with another HyperLogLog sketch")
        if not self._config.same_shape(other._config):
            raise ConfigurationMismatch(
                f"Cannot merge HyperLogLog sketches with different layouts: "
                f"{self.num_registers}x{self.register_width} bits vs "
                f"{other.num_registers}x{other.register_width} bits")
        # Arbitrary callables cannot be compared, but two seeded xxHash functions can.
        if (isinstance(self.hash_function, XXHash64) and isinstance(other.hash_function, XXHash64)
                and self.hash_function != other.hash_function):
            raise ConfigurationMismatch(
                f"Cannot merge HyperLogLog sketches built with different hash functions: "
                f"{self.hash_function!r} vs {other.hash_function!r}")

    def merge(self, *others: 'HyperLogLog') -> 'HyperLogLog':
        """Union of this sketch with `others`, as a new sketch.

        Takes the element-wise maximum of the registers, which is the state a
        single sketch would reach after seeing every input stream. None of
        the inputs is modified.

        Inputs may differ in max_cardinality or relative_std_dev as long as
        the register layout matches. The result takes the configuration with
        the largest max_cardinality (then the smallest relative_std_dev), so
        the outcome does not depend on argument order.

        Args:
            others: HyperLogLog sketches with the same register layout

        Returns:
            New sketch with this sketch's hash function

        Raises:
            TypeError: If any input is not a HyperLogLog sketch
            ConfigurationMismatch: If register count or width differ, or the
                sketches use xxHash with different seeds
        """
        for other in others:
            self._check_mergeable(other)

        if not others:
            return self.copy()

        sketches = (self,) + others
        config = max((sketch._config for sketch in sketches),
                     key=lambda c: (c.max_cardinality, -c.relative_std_dev))
        registers = RegisterArray.maximum(config, [sketch._registers for sketch in sketches])
        logger.debug("Merged %d sketches of %d registers", len(sketches), self.num_registers)
        return self._with_registers(config, registers, self.hash_function)

    def estimate_union(self, other: 'HyperLogLog') -> int:
        """Estimate union cardinality with another HyperLogLog sketch."""
        return self.merge(other).estimate()

    def estimate_intersection(self, other: 'HyperLogLog') -> int:
        """Estimate intersection cardinality with another HLL.

        Uses inclusion-exclusion principle with union estimate.
        """
        union = self.estimate_union(other)
        return max(0, self.estimate() + other.estimate() - union)

    def estimate_jaccard(self, other: 'HyperLogLog') -> float:
        """Estimate Jaccard similarity using inclusion-exclusion principle."""
        union = self.estimate_union(other)
        if union == 0:
            return 0.0
        intersection = max(0, self.estimate() + other.estimate() - union)
        return min(1.0, intersection / union)

    def serialize(self) -> bytes:
        """Encode the sketch as bytes.

        Layout (big-endian): max_cardinality int64, relative_std_dev float64,
        register byte length int32, then the packed register words.
        """
        payload = self._registers.to_bytes()
        header = _HEADER.pack(self.max_cardinality, self.relative_std_dev, len(payload))
        return header + payload

    @classmethod
    def deserialize(cls, data: bytes, hash_function: Optional[HashFunction] = None) -> 'HyperLogLog':
        """Rebuild a sketch from `serialize` output.

        The stored register bits are installed as-is. Bytes past the declared
        register payload are ignored.

        Args:
            data: Serialized sketch
            hash_function: Hash the serialized sketch was built with, if not the default

        Raises:
            MalformedSerializedData: If `data` is truncated or inconsistent
        """
        data = bytes(data)
        if len(data) < HEADER_SIZE:
            raise MalformedSerializedData(
                f"Serialized sketch needs at least {HEADER_SIZE} header bytes, got {len(data)}")

        max_cardinality, relative_std_dev, length = _HEADER.unpack_from(data, 0)
        if length < 0 or length % _WORD_BYTES != 0:
            raise MalformedSerializedData(
                f"Register byte length {length} is not a non-negative multiple of {_WORD_BYTES}")
        if len(data) < HEADER_SIZE + length:
            raise MalformedSerializedData(
                f"Serialized sketch declares {length} register bytes but only "
                f"{len(data) - HEADER_SIZE} follow the header")

        try:
            config = Configuration(relative_std_dev, max_cardinality)
        except InvalidConfiguration as e:
            raise MalformedSerializedData(f"Serialized header is not a valid configuration: {e}") from e

        registers = RegisterArray.from_bytes(config, data[HEADER_SIZE:HEADER_SIZE + length])
        logger.debug("Deserialized sketch: rsd=%s n=%d, %d register bytes",
                     relative_std_dev, max_cardinality, length)
        return cls._with_registers(config, registers, hash_function or XXHash64())

    @classmethod
    def load(cls, filepath: str, hash_function: Optional[HashFunction] = None) -> 'HyperLogLog':
        """Load sketch from file in binary format.

        Args:
            filepath: Path to input file

        Returns:
            HyperLogLog object loaded from file
        """
        with open(filepath, 'rb') as f:
            return cls.deserialize(f.read(), hash_function=hash_function)

    def copy(self) -> 'HyperLogLog':
        return self._with_registers(self._config, self._registers.copy(), self.hash_function)

    def memory_bytes(self) -> int:
        """Bytes used by the packed registers."""
        return self._registers.memory_bytes()

    def standard_error(self) -> float:
        """Theoretical standard error for this register count."""
        return self._config.standard_error

    def __eq__(self, other) -> bool:
        if not isinstance(other, HyperLogLog):
            return NotImplemented
        return self._config == other._config and self._registers == other._registers

    def __repr__(self) -> str:
        return (f"HyperLogLog(relative_std_dev={self.relative_std_dev}, "
                f"max_cardinality={self.max_cardinality}, m={self.num_registers}, "
                f"width={self.register_width})")
