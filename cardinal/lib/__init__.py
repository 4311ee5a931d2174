from .hyperloglog import HyperLogLog
from .config import Configuration, register_count_for
from .registers import RegisterArray
from .abstractsketch import AbstractSketch, XXHash64
from .errors import (CardinalityError, ConfigurationMismatch,
                     InvalidConfiguration, MalformedSerializedData)

__all__ = [
    'HyperLogLog',
    'Configuration',
    'register_count_for',
    'RegisterArray',
    'AbstractSketch',
    'XXHash64',
    'CardinalityError',
    'ConfigurationMismatch',
    'InvalidConfiguration',
    'MalformedSerializedData',
]
