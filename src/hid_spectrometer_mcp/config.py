"""Runtime settings for the protocol engine and the server.

Defaults match the reference NIRscan-class device. The server builds its
settings with :meth:`ProtocolSettings.from_env` so timeouts and USB ids
can be changed without code edits::

    HID_SPECTROMETER_VENDOR_ID=0x0451
    HID_SPECTROMETER_PRODUCT_ID=0x4200
    HID_SPECTROMETER_FIRST_CHUNK_TIMEOUT=10
    HID_SPECTROMETER_CONTINUATION_TIMEOUT=5
    HID_SPECTROMETER_SETTLE_DELAY=0.01
    HID_SPECTROMETER_MAX_FILE_CHUNKS=65536
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Mapping, TypeVar

VENDOR_ID = 0x0451
PRODUCT_ID = 0x4200

FIRST_CHUNK_TIMEOUT_S = 10.0
CONTINUATION_TIMEOUT_S = 5.0
SETTLE_DELAY_S = 0.010
MAX_FILE_CHUNK_REQUESTS = 65536

ENV_PREFIX = "HID_SPECTROMETER_"
RAW_QUIET_TIMEOUT_S = 0.2

T = TypeVar("T")


def parse_usb_id(text: str) -> int:
    """Parse a USB vendor or product id.

    Prefixed literals (``0x0451``, ``0o2121``) and plain decimals (``1105``)
    follow Python integer syntax. Anything else, such as the leading-zero
    ``0451`` that ``lsusb`` prints, is read as hex.
    """
    try:
        return int(text, 0)
    except ValueError:
        return int(text, 16)


@dataclass(frozen=True)
class ProtocolSettings:
    """Timing and identification parameters for one device session."""

    vendor_id: int = VENDOR_ID
    product_id: int = PRODUCT_ID
    first_chunk_timeout: float = FIRST_CHUNK_TIMEOUT_S
    continuation_timeout: float = CONTINUATION_TIMEOUT_S
    settle_delay: float = SETTLE_DELAY_S
    max_file_chunk_requests: int = MAX_FILE_CHUNK_REQUESTS

    def __post_init__(self) -> None:
        if self.first_chunk_timeout <= 0 or self.continuation_timeout <= 0:
            raise ValueError("Response timeouts must be positive")
        if self.settle_delay < 0:
            raise ValueError(f"Settle delay must be >= 0, got {self.settle_delay}")
        if self.max_file_chunk_requests < 1:
            raise ValueError(
                f"max_file_chunk_requests must be >= 1, got {self.max_file_chunk_requests}"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ProtocolSettings:
        """Build settings from ``HID_SPECTROMETER_*`` environment variables.

        Unset variables keep their defaults. USB ids are parsed with
        :func:`parse_usb_id`.
        """
        env = os.environ if environ is None else environ

        def _get(name: str, convert: Callable[[str], T], default: T) -> T:
            raw = env.get(ENV_PREFIX + name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return convert(raw.strip())
            except ValueError as e:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}") from e

        return cls(
            vendor_id=_get("VENDOR_ID", parse_usb_id, VENDOR_ID),
            product_id=_get("PRODUCT_ID", parse_usb_id, PRODUCT_ID),
            first_chunk_timeout=_get("FIRST_CHUNK_TIMEOUT", float, FIRST_CHUNK_TIMEOUT_S),
            continuation_timeout=_get("CONTINUATION_TIMEOUT", float, CONTINUATION_TIMEOUT_S),
            settle_delay=_get("SETTLE_DELAY", float, SETTLE_DELAY_S),
            max_file_chunk_requests=_get("MAX_FILE_CHUNKS", int, MAX_FILE_CHUNK_REQUESTS),
        )
