"""Active scan configuration model."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from ..errors import UnderflowError

CONFIGURATION_SIZE = 5


@dataclass(frozen=True)
class DeviceConfiguration:
    """The five leading fields of the active scan configuration.

    Each field is one byte on the wire. Wider encodings (e.g. wavelengths
    above 255 nm) are not decoded.
    """

    scan_type: int
    num_repeats: int
    exposure_time: int
    wavelength_start: int
    wavelength_end: int

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_bytes(cls, data: bytes) -> DeviceConfiguration:
        """Decode the fields positionally from a response payload.

        Raises:
            UnderflowError: If fewer than 5 bytes are given.
        """
        if len(data) < CONFIGURATION_SIZE:
            raise UnderflowError(
                f"Configuration payload needs {CONFIGURATION_SIZE} bytes, got {len(data)}"
            )
        return cls(*(b & 0xFF for b in data[:CONFIGURATION_SIZE]))
