from __future__ import annotations
from typing import Iterator, List, Tuple

import numpy as np # type: ignore

from cardinal.lib.config import Configuration, WORD_BITS
from cardinal.lib.errors import MalformedSerializedData

_WORD_MASK = (1 << WORD_BITS) - 1

# Bulk operations decode this many registers at a time. A multiple of 64, so
# every chunk starts on a word boundary whatever the register width.
_CHUNK_REGISTERS = 1 << 16


class RegisterArray:
    """Fixed-width counters packed into a contiguous buffer of 64-bit words.

    Register ``i`` occupies bits ``[i * w, (i + 1) * w)`` of the buffer,
    counting from the least significant bit of word 0. With ``w = 5`` a
    register can straddle two words. Memory use is ``m * w`` bits rounded
    up to whole words, rather than one machine word per register.
    """

    def __init__(self, config: Configuration):
        self.config = config
        self.num_registers = config.register_count
        self.width = config.register_width
        self.max_value = config.max_register_value
        self._words = np.zeros(config.word_count, dtype=np.uint64)

    @classmethod
    def from_words(cls, config: Configuration, words: np.ndarray) -> 'RegisterArray':
        """Build an array that takes ownership of a copy of `words`."""
        array = cls(config)
        array.replace_words(words)
        return array

    @classmethod
    def from_bytes(cls, config: Configuration, data: bytes) -> 'RegisterArray':
        """Build an array from big-endian packed words, as written by `to_bytes`.

        Raises:
            MalformedSerializedData: If `data` is not exactly `config.byte_length` long
        """
        if len(data) != config.byte_length:
            raise MalformedSerializedData(
                f"Register buffer is {len(data)} bytes, expected {config.byte_length} "
                f"for {config.register_count} registers of {config.register_width} bits")
        words = np.frombuffer(data, dtype='>u8').astype(np.uint64)
        return cls.from_words(config, words)

    @classmethod
    def from_values(cls, config: Configuration, values) -> 'RegisterArray':
        """Pack a vector of register values.

        Values above the register maximum saturate.
        """
        values = np.asarray(values)
        if values.shape != (config.register_count,):
            raise ValueError(f"Expected {config.register_count} register values, got shape {values.shape}")
        if np.any(values < 0):
            raise ValueError("Register values must be non-negative")

        array = cls(config)
        for chunk in array._chunks():
            start, stop = chunk[0], chunk[1]
            array._encode(chunk, np.minimum(values[start:stop], config.max_register_value).astype(np.uint8))
        return array

    @classmethod
    def maximum(cls, config: Configuration, arrays: List['RegisterArray']) -> 'RegisterArray':
        """Register-wise maximum of arrays that share `config`'s layout.

        Works one chunk at a time, so the only full-size allocation is the
        packed result.
        """
        result = cls(config)
        for chunk in result._chunks():
            merged = arrays[0]._decode(chunk)
            for other in arrays[1:]:
                np.maximum(merged, other._decode(chunk), out=merged)
            result._encode(chunk, merged)
        return result

    def replace_words(self, words: np.ndarray) -> None:
        """Overwrite the whole buffer.

        Raises:
            MalformedSerializedData: If `words` has the wrong length. The
                current contents are left untouched in that case.
        """
        words = np.asarray(words)
        if words.shape != self._words.shape:
            raise MalformedSerializedData(
                f"Register buffer has {words.size} words, expected {self._words.size}")
        self._words = words.astype(np.uint64, copy=True)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.num_registers:
            raise IndexError(f"Register index {index} out of range [0, {self.num_registers})")

    def get(self, index: int) -> int:
        """Value of register `index`."""
        self._check_index(index)
        bit = index * self.width
        word, offset = divmod(bit, WORD_BITS)
        value = int(self._words[word]) >> offset
        if offset + self.width > WORD_BITS:
            value |= int(self._words[word + 1]) << (WORD_BITS - offset)
        return value & self.max_value

    def _put(self, index: int, value: int) -> None:
        bit = index * self.width
        word, offset = divmod(bit, WORD_BITS)
        low_bits = min(self.width, WORD_BITS - offset)
        low_mask = (1 << low_bits) - 1

        current = int(self._words[word])
        current &= ~(low_mask << offset) & _WORD_MASK
        current |= (value & low_mask) << offset
        self._words[word] = np.uint64(current)

        if low_bits < self.width:
            high_mask = (1 << (self.width - low_bits)) - 1
            current = int(self._words[word + 1]) & ~high_mask & _WORD_MASK
            self._words[word + 1] = np.uint64(current | (value >> low_bits))

    def set_max(self, index: int, value: int) -> bool:
        """Raise register `index` to `value` if that is larger.

        Values above the register maximum saturate instead of wrapping.

        Returns:
            True if the register changed
        """
        value = min(value, self.max_value)
        if value <= self.get(index):
            return False
        self._put(index, value)
        return True

    def _chunks(self) -> Iterator[Tuple[int, int, int, int]]:
        """(first register, end register, first word, end word) of each chunk."""
        for start in range(0, self.num_registers, _CHUNK_REGISTERS):
            stop = min(start + _CHUNK_REGISTERS, self.num_registers)
            first_word = start * self.width // WORD_BITS
            end_word = -(-stop * self.width // WORD_BITS)
            yield start, stop, first_word, end_word

    def _decode(self, chunk: Tuple[int, int, int, int]) -> np.ndarray:
        # Register widths never exceed 8 bits, so each field packs into one byte.
        start, stop, first_word, end_word = chunk
        raw = self._words[first_word:end_word].astype('<u8').view(np.uint8)
        bits = np.unpackbits(raw, bitorder='little')[:(stop - start) * self.width]
        fields = bits.reshape(stop - start, self.width)
        return np.packbits(fields, axis=1, bitorder='little')[:, 0]

    def _encode(self, chunk: Tuple[int, int, int, int], values: np.ndarray) -> None:
        start, stop, first_word, end_word = chunk
        bits = np.unpackbits(values[:, None], axis=1, count=self.width, bitorder='little')
        padded = np.zeros((end_word - first_word) * WORD_BITS, dtype=np.uint8)
        padded[:bits.size] = bits.ravel()
        self._words[first_word:end_word] = np.packbits(padded, bitorder='little').view('<u8')

    def to_numpy(self) -> np.ndarray:
        """Decode every register into a uint8 array of length m."""
        values = np.empty(self.num_registers, dtype=np.uint8)
        for chunk in self._chunks():
            values[chunk[0]:chunk[1]] = self._decode(chunk)
        return values

    def histogram(self) -> np.ndarray:
        """Number of registers holding each value 0 .. max_value.

        Decodes chunk by chunk, so memory stays bounded by the chunk size
        rather than the register count.
        """
        counts = np.zeros(self.max_value + 1, dtype=np.int64)
        for chunk in self._chunks():
            counts += np.bincount(self._decode(chunk), minlength=self.max_value + 1)
        return counts

    def to_bytes(self) -> bytes:
        """Packed words as big-endian 64-bit integers."""
        return self._words.astype('>u8').tobytes()

    @property
    def words(self) -> np.ndarray:
        """Read-only view of the packed buffer."""
        view = self._words.view()
        view.flags.writeable = False
        return view

    def count_zeros(self) -> int:
        return int(self.histogram()[0])

    def memory_bytes(self) -> int:
        return int(self._words.nbytes)

    def copy(self) -> 'RegisterArray':
        return RegisterArray.from_words(self.config, self._words)

    def __len__(self) -> int:
        return self.num_registers

    def __iter__(self) -> Iterator[int]:
        for chunk in self._chunks():
            yield from self._decode(chunk).tolist()

    def __eq__(self, other) -> bool:
        if not isinstance(other, RegisterArray):
            return NotImplemented
        return (self.num_registers == other.num_registers
                and self.width == other.width
                and np.array_equal(self._words, other._words))

    def __repr__(self) -> str:
        return f"RegisterArray(m={self.num_registers}, width={self.width}, words={self._words.size})"
