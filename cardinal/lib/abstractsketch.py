from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable
import xxhash # type: ignore

# Any callable mapping an element to an unsigned 64-bit integer.
HashFunction = Callable[[Any], int]

DEFAULT_SEED = 42


def to_bytes(element: Any) -> bytes:
    """Byte form of an element as seen by the hash function.

    bytes-like objects are used as-is, strings are UTF-8 encoded and
    anything else goes through ``str()`` first, so ``19`` and ``"19"``
    hash to the same value.
    """
    if isinstance(element, (bytes, bytearray, memoryview)):
        return bytes(element)
    if not isinstance(element, str):
        element = str(element)
    return element.encode('utf-8')


class XXHash64:
    """Seeded 64-bit xxHash over the byte form of an element."""

    def __init__(self, seed: int = DEFAULT_SEED):
        self.seed = seed

    def __call__(self, element: Any) -> int:
        hasher = xxhash.xxh64(seed=self.seed)
        hasher.update(to_bytes(element))
        return hasher.intdigest()

    def __eq__(self, other) -> bool:
        if not isinstance(other, XXHash64):
            return NotImplemented
        return self.seed == other.seed

    def __hash__(self) -> int:
        return hash((XXHash64, self.seed))

    def __repr__(self) -> str:
        return f"XXHash64(seed={self.seed})"


class AbstractSketch(ABC):
    """Base class for cardinality sketches."""

    @abstractmethod
    def update(self, element: Any) -> bool:
        """Add an element to the sketch.

        Returns:
            True if the sketch state changed
        """
        pass

    def add_batch(self, elements: Iterable[Any]) -> None:
        """Add multiple elements to the sketch.

        Args:
            elements: Iterable of elements to add to the sketch
        """
        for element in elements:
            self.update(element)

    @abstractmethod
    def estimate(self) -> int:
        """Estimated number of distinct elements added so far."""
        pass

    @abstractmethod
    def merge(self, *others: 'AbstractSketch') -> 'AbstractSketch':
        """Return a new sketch covering the union of this sketch and `others`."""
        pass

    @abstractmethod
    def serialize(self) -> bytes:
        """Compact byte representation of the sketch."""
        pass

    def write(self, filepath: str) -> None:
        """Write sketch to file in binary format.

        Args:
            filepath: Path to output file
        """
        with open(filepath, 'wb') as f:
            f.write(self.serialize())
