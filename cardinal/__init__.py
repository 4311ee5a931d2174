"""
cardinal - Bit-packed HyperLogLog cardinality estimation
"""
import logging

from cardinal.lib.hyperloglog import HyperLogLog
from cardinal.lib.config import Configuration, register_count_for
from cardinal.lib.registers import RegisterArray
from cardinal.lib.abstractsketch import AbstractSketch, XXHash64
from cardinal.lib.errors import (CardinalityError, ConfigurationMismatch,
                                 InvalidConfiguration, MalformedSerializedData)

# Silent unless the application configures logging
logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = '0.1.0'

__all__ = [
    'HyperLogLog',
    'Configuration',
    'RegisterArray',
    'AbstractSketch',
    'XXHash64',
    'register_count_for',
    'CardinalityError',
    'ConfigurationMismatch',
    'InvalidConfiguration',
    'MalformedSerializedData',
]
