"""Reassembly of one device response from inbound HID report chunks.

A response is a 4-byte header followed by ``declared_length`` payload
bytes. Payloads of up to 60 bytes fit in the first 64-byte report; longer
payloads continue in further reports that carry no header of their own.

The assembler is an explicit two-state machine::

    Pending  --(header + first chunk's payload collected)-->  Completing
       |                                                          |
       +--(declared_length <= 60)--> done <--(remaining <= 0)------+

Chunks are consumed strictly in arrival order; their identity is never
checked.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol, Union

from ..errors import (
    IncompleteResponseError,
    ResponseTimeoutError,
    StreamClosedError,
    TimeoutStage,
    TruncatedHeaderError,
)
from ..utils.conversion import hexify
from .framing import HEADER_SIZE, MAX_CHUNK_PAYLOAD, ResponseHeader, parse_header

logger = logging.getLogger(__name__)


class ChunkSource(Protocol):
    """Anything that hands out inbound chunks one at a time."""

    def next_chunk(self, timeout: float) -> Optional[bytes]:
        """Return the next chunk, or ``None`` if none arrived within ``timeout`` seconds.

        Raises:
            StreamClosedError: If the stream ended.
        """
        ...


@dataclass
class Pending:
    """Collecting the header and the first chunk's worth of payload."""

    buffer: bytearray = field(default_factory=bytearray)
    header: Optional[ResponseHeader] = None


@dataclass
class Completing:
    """Collecting headerless continuation chunks of a large payload."""

    header: ResponseHeader
    payload: bytearray
    remaining: int


AssemblerState = Union[Pending, Completing]


class ResponseAssembler:
    """Incrementally rebuilds one response payload from raw chunks.

    Usage::

        assembler = ResponseAssembler()
        for chunk in chunks:
            payload = assembler.feed(chunk)
            if payload is not None:
                break
    """

    def __init__(self) -> None:
        self._state: AssemblerState = Pending()
        self._result: Optional[bytes] = None

    @property
    def state(self) -> AssemblerState:
        return self._state

    @property
    def header(self) -> Optional[ResponseHeader]:
        return self._state.header

    @property
    def done(self) -> bool:
        return self._result is not None

    @property
    def stage(self) -> TimeoutStage:
        """The wait stage the next chunk belongs to."""
        if isinstance(self._state, Completing):
            return TimeoutStage.CONTINUATION
        return TimeoutStage.FIRST_CHUNK

    def feed(self, chunk: bytes) -> Optional[bytes]:
        """Consume one chunk.

        Returns:
            The complete payload once it has been assembled, else ``None``.
        """
        if self._result is not None:
            raise RuntimeError("Response already assembled")

        state = self._state
        if isinstance(state, Pending):
            self._feed_pending(state, chunk)
        else:
            self._feed_completing(state, chunk)
        return self._result

    def _feed_pending(self, state: Pending, chunk: bytes) -> None:
        state.buffer.extend(chunk)
        if state.header is None:
            if len(state.buffer) < HEADER_SIZE:
                return
            state.header = parse_header(bytes(state.buffer[:HEADER_SIZE]))
            logger.debug("Response declares %d payload bytes", state.header.declared_length)

        declared = state.header.declared_length
        if declared <= MAX_CHUNK_PAYLOAD:
            if len(state.buffer) >= declared + HEADER_SIZE:
                self._finish(bytes(state.buffer[HEADER_SIZE : HEADER_SIZE + declared]))
            return

        # Large payload: the first stage ends once a full first report is in.
        if len(state.buffer) < MAX_CHUNK_PAYLOAD + HEADER_SIZE:
            return
        payload = bytearray(state.buffer[HEADER_SIZE:])
        remaining = declared - len(payload)
        if remaining <= 0:
            self._finish(bytes(payload[:declared]))
            return
        self._state = Completing(header=state.header, payload=payload, remaining=remaining)

    def _feed_completing(self, state: Completing, chunk: bytes) -> None:
        state.payload.extend(chunk)
        state.remaining -= len(chunk)
        if state.remaining <= 0:
            state.remaining = 0
            self._finish(bytes(state.payload[: state.header.declared_length]))

    def _finish(self, payload: bytes) -> None:
        self._result = payload


def assemble_response(
    source: ChunkSource,
    first_chunk_timeout: float,
    continuation_timeout: float,
) -> bytes:
    """Read chunks from ``source`` until one full response payload is assembled.

    The whole first stage (header plus the first report's payload) shares
    one deadline of ``first_chunk_timeout`` seconds, which covers on-device
    command processing. Each continuation chunk gets its own
    ``continuation_timeout``.

    Raises:
        ResponseTimeoutError: If a wait expires. No partial payload is returned.
        TruncatedHeaderError: If the stream closes before 4 bytes arrived.
        IncompleteResponseError: If the stream closes mid-payload.
    """
    assembler = ResponseAssembler()
    deadline = time.monotonic() + first_chunk_timeout

    while True:
        stage = assembler.stage
        if stage is TimeoutStage.FIRST_CHUNK:
            timeout = first_chunk_timeout
            wait = deadline - time.monotonic()
            if wait <= 0:
                raise ResponseTimeoutError(stage, timeout)
        else:
            timeout = wait = continuation_timeout

        try:
            chunk = source.next_chunk(wait)
        except StreamClosedError as e:
            if assembler.header is None:
                raise TruncatedHeaderError(
                    "Inbound stream closed before a response header arrived"
                ) from e
            raise IncompleteResponseError(
                "Inbound stream closed before the response payload completed"
            ) from e

        if chunk is None:
            raise ResponseTimeoutError(stage, timeout)

        payload = assembler.feed(chunk)
        if payload is not None:
            logger.debug("Received payload: %s", hexify(payload))
            return payload
