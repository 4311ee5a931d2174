"""Exceptions raised by cardinal sketches."""


class CardinalityError(ValueError):
    """Base class for all errors raised by the estimator."""


class InvalidConfiguration(CardinalityError):
    """Relative standard deviation or maximum cardinality out of range."""


class ConfigurationMismatch(CardinalityError):
    """Sketches with different register layouts cannot be combined."""


class MalformedSerializedData(CardinalityError):
    """Serialized sketch bytes are truncated or internally inconsistent."""
