"""State of one in-progress device file download."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class FileTransferSession:
    """Bytes collected so far for one ``get_file`` call."""

    file_id: int
    expected_total_size: int
    bytes_received: int = 0
    requests_issued: int = 0
    accumulated: bytearray = field(default_factory=bytearray)

    @property
    def complete(self) -> bool:
        return self.bytes_received >= self.expected_total_size

    def add_chunk(self, chunk: bytes) -> None:
        self.accumulated.extend(chunk)
        self.bytes_received += len(chunk)

    def __repr__(self) -> str:
        return (
            f"FileTransferSession(file_id={self.file_id}, "
            f"received={self.bytes_received}/{self.expected_total_size}, "
            f"requests={self.requests_issued})"
        )
