"""A list of unsigned integers packed at an arbitrary bit width."""

from __future__ import annotations

_WORD_BITS = 16
_WORD_MASK = (1 << _WORD_BITS) - 1
_INITIAL_CAPACITY = 8


class CompactBitList:
    """Stores unsigned values of ``unit_bit_size`` bits each, packed into 16-bit words."""

    def __init__(self, unit_bit_size: int) -> None:
        if unit_bit_size <= 0:
            raise ValueError(f"unit bit size must be positive: {unit_bit_size}")
        self._unit = unit_bit_size
        self._words: list[int] = [0] * _INITIAL_CAPACITY
        self._used = 0
        self._units = 0

    def __len__(self) -> int:
        return self._units

    def _grow_for(self, index: int) -> None:
        bit_boundary = (index + 1) * self._unit
        needed = -(-bit_boundary // _WORD_BITS)
        if needed <= self._used:
            return
        if needed > len(self._words):
            capacity = max(needed, 2 * len(self._words))
            self._words.extend([0] * (capacity - len(self._words)))
        self._used = needed

    def set(self, index: int, value: int) -> None:
        """Store ``value`` at unit ``index``, growing the storage as needed."""
        if index < 0:
            raise IndexError(f"negative index: {index}")
        if value < 0 or value.bit_length() > self._unit:
            raise ValueError(f"value {value} exceeds unit bit size")
        self._grow_for(index)
        start = index * self._unit
        for k in range(self._unit):
            word, offset = divmod(start + k, _WORD_BITS)
            if (value >> k) & 1:
                self._words[word] |= 1 << offset
            else:
                self._words[word] &= ~(1 << offset) & _WORD_MASK
        self._units = max(self._units, index + 1)

    def get(self, index: int) -> int:
        """Return the value at unit ``index``; units beyond the storage read as 0."""
        if index < 0:
            raise IndexError(f"negative index: {index}")
        if self._used * _WORD_BITS < (index + 1) * self._unit:
            return 0
        start = index * self._unit
        value = 0
        for k in range(self._unit):
            word, offset = divmod(start + k, _WORD_BITS)
            value |= ((self._words[word] >> offset) & 1) << k
        return value

    def append(self, value: int) -> None:
        """Store ``value`` right after the highest unit set so far."""
        self.set(self._units, value)

    def tighten(self) -> None:
        """Release spare capacity kept for future growth."""
        self._words = self._words[: self._used]