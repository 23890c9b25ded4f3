"""Sortable identifier generation."""

from __future__ import annotations

import threading

from ulid import ULID


class MonotonicULID:
    """
    Strictly increasing ULID source.

    A plain ``ULID()`` only orders across milliseconds; two values minted in
    the same millisecond carry random suffixes and may sort either way. Part
    order is reconstructed purely from identifiers, so this generator bumps
    the previous value by one whenever the fresh ULID does not sort after it
    (same millisecond, or the wall clock stepped backwards).
    """

    def __init__(self) -> None:
        self._last: int = 0
        self._lock = threading.Lock()

    def next(self) -> ULID:
        with self._lock:
            candidate = ULID()
            value = int(candidate)
            if value <= self._last:
                value = self._last + 1
                candidate = ULID.from_int(value)
            self._last = value
            return candidate


_generator = MonotonicULID()


def make_id(prefix: str) -> str:
    """
    Generate a ULID-based sortable identifier.

    Identifiers sharing a prefix sort by plain string comparison in the order
    they were generated within this process.

    Args:
        prefix: Short prefix for readability (e.g. ``"msg"``, ``"part"``).

    Returns:
        ID string in the format ``"{prefix}_{ulid}"``.
    """
    return f"{prefix}_{_generator.next()}"
