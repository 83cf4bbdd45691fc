"""Command catalogue and high-level command builders.

Each device command is addressed by a (group, command) byte pair and is
either a write (the host does not read the reply payload) or a read (the
host assembles the reply).
"""

from __future__ import annotations

from enum import IntEnum

from .framing import Command, Direction


class Group(IntEnum):
    """Command group identifiers."""

    FILE = 0x00
    SCAN = 0x02


class Opcode(IntEnum):
    """Command byte identifiers within their group."""

    START_SCAN = 0x18
    READ_ACTIVE_CONFIG = 0x23
    FILE_SIZE = 0x2D
    FILE_CHUNK = 0x2E


def build_write(group: int, command: int, data: bytes = b"") -> Command:
    """Build a write command (flags 0x40)."""
    return Command(Direction.WRITE, group, command, bytes(data))


def build_read(group: int, command: int, data: bytes = b"") -> Command:
    """Build a read command (flags 0xC0)."""
    return Command(Direction.READ, group, command, bytes(data))


def build_start_scan() -> Command:
    """Build the command that starts a scan with the active configuration."""
    return build_write(Group.SCAN, Opcode.START_SCAN, b"\x00")


def build_read_configuration() -> Command:
    """Build the command that reads the active scan configuration."""
    return build_read(Group.SCAN, Opcode.READ_ACTIVE_CONFIG)


def build_file_size_request(file_id: int) -> Command:
    """Build the command that announces the size of a device file.

    Args:
        file_id: Device file identifier 0-255.
    """
    if not 0 <= file_id <= 0xFF:
        raise ValueError(f"File id must be 0-255, got {file_id}")
    return build_read(Group.FILE, Opcode.FILE_SIZE, bytes([file_id]))


def build_file_chunk_request() -> Command:
    """Build the command that fetches the next chunk of the announced file."""
    return build_read(Group.FILE, Opcode.FILE_CHUNK)
