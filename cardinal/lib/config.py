from __future__ import annotations
import logging
import math
import numbers
from dataclasses import dataclass, field

from cardinal.lib.errors import InvalidConfiguration

logger = logging.getLogger(__name__)

# A bucket width of 5 bits holds until the expected cardinality passes 2^32,
# so one million is a safe default for most streams.
DEFAULT_MAX_CARDINALITY = 1_000_000
DEFAULT_RELATIVE_STD_DEV = 0.05

MIN_REGISTER_COUNT_LOG2 = 4
MAX_REGISTER_COUNT_LOG2 = 30
MIN_REGISTER_WIDTH = 5
INT64_MAX = (1 << 63) - 1
WORD_BITS = 64


def register_count_log2_for(relative_std_dev: float) -> int:
    """Number of index bits needed to reach the requested relative error.

    Args:
        relative_std_dev: Target relative standard deviation, in (0, 1)

    Returns:
        log2 of the register count, never below 4
    """
    ratio = 1.106 / relative_std_dev
    squared = ratio * ratio
    if math.isinf(squared):
        return WORD_BITS
    log2m = math.ceil(math.log2(squared))
    return max(MIN_REGISTER_COUNT_LOG2, log2m)


def register_count_for(relative_std_dev: float) -> int:
    """Register count an estimator with this relative error would allocate."""
    _check_relative_std_dev(relative_std_dev)
    return 1 << register_count_log2_for(relative_std_dev)


def register_width_for(max_cardinality: int) -> int:
    """Smallest register width (in bits) that holds ranks for `max_cardinality` items."""
    if max_cardinality <= 2:
        return MIN_REGISTER_WIDTH
    return max(MIN_REGISTER_WIDTH, math.ceil(math.log2(math.log2(max_cardinality))))


def _check_relative_std_dev(relative_std_dev) -> None:
    if isinstance(relative_std_dev, bool) or not isinstance(relative_std_dev, numbers.Real):
        raise InvalidConfiguration(f"relative_std_dev must be a number, got {relative_std_dev!r}")
    if not 0.0 < relative_std_dev < 1.0:
        raise InvalidConfiguration(f"relative_std_dev must be in (0, 1), got {relative_std_dev}")


def _check_max_cardinality(max_cardinality) -> None:
    if isinstance(max_cardinality, bool) or not isinstance(max_cardinality, numbers.Integral):
        raise InvalidConfiguration(f"max_cardinality must be an integer, got {max_cardinality!r}")
    if max_cardinality <= 0:
        raise InvalidConfiguration(f"max_cardinality must be positive, got {max_cardinality}")
    if max_cardinality > INT64_MAX:
        raise InvalidConfiguration(f"max_cardinality must fit in a signed 64-bit integer, got {max_cardinality}")


@dataclass(frozen=True)
class Configuration:
    """Fixed parameters of a HyperLogLog sketch.

    Derived from the target relative standard deviation and the largest
    cardinality the sketch is expected to see. Two configurations compare
    equal when both inputs match, which implies identical register layouts.

    Args:
        relative_std_dev: Target relative standard deviation, in (0, 1).
                          Smaller values allocate more registers.
        max_cardinality: Expected upper bound on distinct items. Only affects
                         the register width.

    Raises:
        InvalidConfiguration: If either argument is out of range
    """
    relative_std_dev: float = DEFAULT_RELATIVE_STD_DEV
    max_cardinality: int = DEFAULT_MAX_CARDINALITY
    register_count_log2: int = field(init=False)
    register_count: int = field(init=False)
    register_width: int = field(init=False)

    def __post_init__(self):
        _check_relative_std_dev(self.relative_std_dev)
        _check_max_cardinality(self.max_cardinality)

        log2m = register_count_log2_for(self.relative_std_dev)
        if log2m > MAX_REGISTER_COUNT_LOG2:
            raise InvalidConfiguration(
                f"relative_std_dev {self.relative_std_dev} needs 2^{log2m} registers "
                f"(at most 2^{MAX_REGISTER_COUNT_LOG2} supported)")

        object.__setattr__(self, 'relative_std_dev', float(self.relative_std_dev))
        object.__setattr__(self, 'max_cardinality', int(self.max_cardinality))
        object.__setattr__(self, 'register_count_log2', log2m)
        object.__setattr__(self, 'register_count', 1 << log2m)
        object.__setattr__(self, 'register_width', register_width_for(self.max_cardinality))
        logger.debug("Configuration rsd=%s n=%d -> m=%d, width=%d",
                     self.relative_std_dev, self.max_cardinality,
                     self.register_count, self.register_width)

    @property
    def max_register_value(self) -> int:
        return (1 << self.register_width) - 1

    @property
    def sentinel_mask(self) -> int:
        # Highest rank position representable in a register; bounds the bit scan.
        return 1 << ((1 << self.register_width) - 2)

    @property
    def bucket_mask(self) -> int:
        return self.register_count - 1

    @property
    def word_count(self) -> int:
        """Number of 64-bit words backing the packed registers."""
        total_bits = self.register_count * self.register_width
        return (total_bits + WORD_BITS - 1) // WORD_BITS

    @property
    def byte_length(self) -> int:
        return self.word_count * (WORD_BITS // 8)

    @property
    def standard_error(self) -> float:
        """Theoretical relative standard error, 1.04 / sqrt(m)."""
        return 1.04 / math.sqrt(self.register_count)

    def same_shape(self, other: 'Configuration') -> bool:
        """True when both configurations lay out registers identically."""
        return (self.register_count == other.register_count
                and self.register_width == other.register_width)
