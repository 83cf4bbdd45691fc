"""Exception hierarchy for the spectrometer protocol engine.

Every failure the engine can produce is one of these types. Where a
builtin exception already describes the situation (``ConnectionError``,
``TimeoutError``, ``ValueError``) the class derives from it as well, so
callers that only know the builtins still catch them.
"""

from __future__ import annotations

from enum import Enum


class SpectrometerError(Exception):
    """Base class for all spectrometer protocol errors."""


class NotConnectedError(SpectrometerError, ConnectionError):
    """A command was issued before the device connection was established."""


class DeviceUnavailableError(SpectrometerError, ConnectionError):
    """The device could not be found or opened."""


class WriteFailedError(SpectrometerError, IOError):
    """The transport rejected an outbound report."""


class TruncatedHeaderError(SpectrometerError):
    """Fewer than the 4 response header bytes were available."""


class IncompleteResponseError(SpectrometerError):
    """The inbound stream closed after the header but before the payload completed."""


class TimeoutStage(str, Enum):
    """Which wait of the response assembler expired."""

    FIRST_CHUNK = "first_chunk"
    CONTINUATION = "continuation"


class ResponseTimeoutError(SpectrometerError, TimeoutError):
    """No response data arrived within the configured bound."""

    def __init__(self, stage: TimeoutStage, timeout: float) -> None:
        self.stage = stage
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:g}s waiting for {stage.value.replace('_', ' ')} data"
        )


class UnderflowError(SpectrometerError, ValueError):
    """A response payload was shorter than its decoder requires."""


class TransferStalledError(SpectrometerError):
    """A file transfer issued more chunk requests than allowed without completing."""


class TransportBusyError(SpectrometerError):
    """Another consumer is already subscribed to the inbound report stream."""


class StreamClosedError(SpectrometerError):
    """The inbound report stream ended because the connection was closed."""
