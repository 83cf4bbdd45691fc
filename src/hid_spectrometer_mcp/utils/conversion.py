"""Byte helpers shared by the protocol layer."""

from __future__ import annotations

from typing import Iterable


def combine_big_endian(data: Iterable[int]) -> int:
    """Combine a byte sequence into an unsigned integer, first byte most significant.

    ``combine_big_endian([0x01, 0x02]) == 0x0102``. An empty sequence
    yields 0.
    """
    values = list(data)
    length = len(values)
    total = 0
    for i, byte in enumerate(values):
        total += (byte & 0xFF) << (8 * (length - 1 - i))
    return total


def hexify(data: Iterable[int]) -> str:
    """Render bytes as space-separated lower-case hex for log output."""
    return " ".join(f"{b & 0xFF:02x}" for b in data)
