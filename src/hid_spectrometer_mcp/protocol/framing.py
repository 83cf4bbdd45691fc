"""Command frame builder and response header parser.

Outbound frame layout::

    +-------+----------+---------+---------+---------+-------+------------------+
    | Flags | Sequence | Len LSB | Len MSB | Command | Group |     Payload      |
    | 1 B   | 1 B (00) | 1 B     | 1 B     | 1 B     | 1 B   |  variable length |
    +-------+----------+---------+---------+---------+-------+------------------+

- Flags: 0x40 for a write that wants a reply, 0xC0 for a read that wants a reply
- Sequence: always 0x00; the device protocol reserves it but nothing uses it
- Length: little-endian ``len(payload) + 2`` (command and group bytes count
  as payload)

Inbound responses start with a 4-byte header ``[flags, sequence, len_lsb,
len_msb]``; the declared length counts the payload bytes after the header.
The frame is sent unpadded here; the transport pads it to the HID report size.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from ..errors import TruncatedHeaderError

HID_REPORT_SIZE = 64
REPORT_ID = 0x00
FRAME_HEADER_SIZE = 6
HEADER_SIZE = 4
MAX_CHUNK_PAYLOAD = HID_REPORT_SIZE - HEADER_SIZE  # 60
MAX_COMMAND_PAYLOAD = HID_REPORT_SIZE - FRAME_HEADER_SIZE  # 58


class Direction(IntEnum):
    """Command direction; the value is the frame's flags byte."""

    WRITE = 0x40
    READ = 0xC0


@dataclass(frozen=True)
class Command:
    """A single host-to-device command."""

    direction: Direction
    group: int
    command: int
    payload: bytes = b""

    def __post_init__(self) -> None:
        if not 0 <= self.group <= 0xFF:
            raise ValueError(f"Group byte must be 0-255, got {self.group}")
        if not 0 <= self.command <= 0xFF:
            raise ValueError(f"Command byte must be 0-255, got {self.command}")
        object.__setattr__(self, "payload", bytes(self.payload))

    def __repr__(self) -> str:
        return (
            f"Command({self.direction.name}, group=0x{self.group:02X}, "
            f"command=0x{self.command:02X}, "
            f"payload={self.payload.hex(' ') if self.payload else '(empty)'})"
        )


@dataclass(frozen=True)
class ResponseHeader:
    """The 4-byte header at the start of every device response."""

    flags: int
    sequence: int
    declared_length: int

    @property
    def is_multi_chunk(self) -> bool:
        """True when the payload does not fit in the first inbound chunk."""
        return self.declared_length > MAX_CHUNK_PAYLOAD


def build_frame(command: Command) -> bytes:
    """Encode a command into its wire frame.

    Args:
        command: The command to encode.

    Returns:
        ``6 + len(command.payload)`` bytes, without report padding.
    """
    length = (len(command.payload) + 2).to_bytes(2, "little")
    return (
        bytes([command.direction.value, 0x00])
        + length
        + bytes([command.command, command.group])
        + command.payload
    )


def parse_header(data: bytes) -> ResponseHeader:
    """Parse the response header from the first bytes of a response.

    Raises:
        TruncatedHeaderError: If fewer than 4 bytes are available.
    """
    if len(data) < HEADER_SIZE:
        raise TruncatedHeaderError(
            f"Response header needs {HEADER_SIZE} bytes, got {len(data)}"
        )
    return ResponseHeader(
        flags=data[0],
        sequence=data[1],
        declared_length=(data[3] << 8) | data[2],
    )
