"""Interpretation of assembled response payloads."""

from __future__ import annotations

from ..models.configuration import DeviceConfiguration
from ..utils.conversion import combine_big_endian


def decode_configuration(payload: bytes) -> DeviceConfiguration:
    """Decode an active-configuration response.

    Raises:
        UnderflowError: If the payload is shorter than 5 bytes.
    """
    return DeviceConfiguration.from_bytes(payload)


def parse_file_size(announcement: bytes) -> int:
    """Turn a file size announcement into a byte count.

    The device sends the size least significant byte first. The bytes are
    reversed and then combined most-significant-first.
    """
    return combine_big_endian(bytes(reversed(announcement)))
