"""
Logical memory accounting for simulated runs.

The host offers no memory introspection, so allocations are charged from
declared sizes: the encoded length of the source and of the produced result.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

_LOG10_2 = math.log10(2)


@dataclass(frozen=True)
class LedgerUsage:
    current: int
    peak: int
    limit: int


class MemoryLedger:
    def __init__(self, limit: int) -> None:
        if limit < 0:
            raise ValueError(f"Ledger limit must be non-negative, got {limit}")
        self.limit = limit
        self._current = 0
        self._peak = 0

    def allocate(self, size: int) -> bool:
        """Charge `size` bytes; returns False and leaves state untouched if it would exceed the limit."""
        if size < 0:
            raise ValueError(f"Cannot allocate a negative size: {size}")
        if self._current + size > self.limit:
            return False
        self._current += size
        self._peak = max(self._peak, self._current)
        return True

    def deallocate(self, size: int) -> None:
        if size < 0:
            raise ValueError(f"Cannot deallocate a negative size: {size}")
        self._current = max(0, self._current - size)

    def usage(self) -> LedgerUsage:
        return LedgerUsage(current=self._current, peak=self._peak, limit=self.limit)

    def reset(self) -> None:
        self._current = 0
        self._peak = 0


def measure_bytes(value: object) -> int:
    """
    Declared size of a value in bytes.

    Ints are sized from their bit length, within one digit of their decimal
    form, so huge results never go through string conversion. Values whose
    repr raises get the size of a short type placeholder.
    """
    if value is None:
        return 0
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return int(abs(value).bit_length() * _LOG10_2) + 1 + (1 if value < 0 else 0)
    try:
        return len(repr(value).encode("utf-8"))
    except Exception:
        return len(f"<{type(value).__name__} object>")
