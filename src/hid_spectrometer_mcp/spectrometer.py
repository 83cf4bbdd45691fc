"""Command engine and high-level operations for the spectrometer.

One command is outstanding at a time: every call blocks until its
response is assembled or its wait times out. A timed-out command leaves
the device in an unknown state; reconnect before issuing more commands.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from .config import RAW_QUIET_TIMEOUT_S, ProtocolSettings
from .errors import NotConnectedError, TransferStalledError
from .models.configuration import DeviceConfiguration
from .models.file_transfer import FileTransferSession
from .protocol.assembler import assemble_response
from .protocol.commands import (
    build_file_chunk_request,
    build_file_size_request,
    build_read,
    build_read_configuration,
    build_start_scan,
    build_write,
)
from .protocol.framing import REPORT_ID, Command, build_frame
from .protocol.parser import decode_configuration, parse_file_size
from .transport.hid_connection import ChunkSubscription, DeviceInfo, HIDConnection
from .utils.conversion import hexify

logger = logging.getLogger(__name__)


class Spectrometer:
    """A connected spectrometer.

    Usage::

        spec = Spectrometer()
        spec.connect()
        spec.perform_scan()
        config = spec.get_configuration()
        data = spec.get_file(0x00)
        spec.disconnect()
    """

    def __init__(
        self,
        transport: Optional[HIDConnection] = None,
        settings: Optional[ProtocolSettings] = None,
    ) -> None:
        self._settings = settings or ProtocolSettings()
        self._transport = transport or HIDConnection(
            self._settings.vendor_id, self._settings.product_id
        )

    @property
    def settings(self) -> ProtocolSettings:
        return self._settings

    @property
    def transport(self) -> HIDConnection:
        return self._transport

    @property
    def connected(self) -> bool:
        return self._transport.connected

    def connect(self) -> DeviceInfo:
        """Open the device.

        Raises:
            DeviceUnavailableError: If the device cannot be opened.
        """
        logger.info(
            "Connecting to spectrometer %#06x:%#06x",
            self._settings.vendor_id,
            self._settings.product_id,
        )
        return self._transport.open()

    def disconnect(self) -> None:
        self._transport.close()

    def _require_connection(self) -> None:
        if not self._transport.connected:
            raise NotConnectedError("Device is not connected")

    def _send_frame(self, command: Command) -> None:
        frame = build_frame(command)
        logger.debug("Sending command: %s", hexify(frame))
        self._transport.send(REPORT_ID, frame)
        # Give the device time to start processing before expecting a reply
        time.sleep(self._settings.settle_delay)

    def execute_write(self, command: Command) -> None:
        """Send a write command without reading its reply payload."""
        self._require_connection()
        self._send_frame(command)

    def execute_read(self, command: Command) -> bytes:
        """Send a read command and return its assembled response payload.

        The inbound subscription is opened before the frame goes out and
        is released however the read ends.
        """
        self._require_connection()
        with self._transport.subscribe() as inbound:
            self._send_frame(command)
            return assemble_response(
                inbound,
                self._settings.first_chunk_timeout,
                self._settings.continuation_timeout,
            )

    def send_write(self, group: int, command: int, data: bytes = b"") -> None:
        """Send a write command.

        Raises:
            NotConnectedError: If the device is not connected. No I/O happens.
            WriteFailedError: If the transport rejects the report.
        """
        self.execute_write(build_write(group, command, bytes(data)))

    def send_read(self, group: int, command: int, data: bytes = b"") -> bytes:
        """Send a read command and return the response payload.

        Raises:
            NotConnectedError: If the device is not connected. No I/O happens.
            WriteFailedError: If the transport rejects the report.
            ResponseTimeoutError: If the response does not arrive in time.
        """
        return self.execute_read(build_read(group, command, bytes(data)))

    def send_raw(
        self,
        data: bytes,
        read_back: bool = False,
        quiet_timeout: float = RAW_QUIET_TIMEOUT_S,
    ) -> list[bytes]:
        """Send caller-supplied bytes as one report, bypassing the frame codec.

        With ``read_back`` the inbound stream is subscribed before sending
        and every report that arrives is collected until the stream stays
        quiet for ``quiet_timeout`` seconds. Collection never runs longer
        than ``first_chunk_timeout``.

        Returns:
            The inbound reports in arrival order; empty without ``read_back``.

        Raises:
            StreamClosedError: If the connection closes while collecting.
        """
        self._require_connection()
        if not read_back:
            self._send_raw_report(data)
            return []

        with self._transport.subscribe() as inbound:
            self._send_raw_report(data)
            return self._collect_reports(inbound, quiet_timeout)

    def _send_raw_report(self, data: bytes) -> None:
        logger.debug("Sending raw report: %s", hexify(data))
        self._transport.send(REPORT_ID, bytes(data))

    def _collect_reports(self, inbound: ChunkSubscription, quiet_timeout: float) -> list[bytes]:
        reports: list[bytes] = []
        deadline = time.monotonic() + self._settings.first_chunk_timeout
        while True:
            wait = min(quiet_timeout, deadline - time.monotonic())
            if wait <= 0:
                break
            report = inbound.next_chunk(wait)
            if report is None:
                break
            logger.debug("Raw reply: %s", hexify(report))
            reports.append(report)
        return reports

    def perform_scan(self) -> None:
        """Start a scan with the active configuration."""
        self._require_connection()
        logger.info("Starting scan")
        self.execute_write(build_start_scan())
        logger.info("Scan started")

    def get_configuration(self) -> DeviceConfiguration:
        """Read and decode the active scan configuration.

        Raises:
            UnderflowError: If the device returns fewer than 5 bytes.
        """
        self._require_connection()
        payload = self.execute_read(build_read_configuration())
        config = decode_configuration(payload)
        logger.debug("Active configuration: %s", config)
        return config

    def get_file(self, file_id: int) -> bytes:
        """Download a device file.

        Requests the file size, then fetches chunks until at least that
        many bytes have arrived. Any failure abandons the download.

        Raises:
            TransferStalledError: If the chunk request limit is reached
                before the announced size is satisfied.
        """
        self._require_connection()
        announcement = self.execute_read(build_file_size_request(file_id))
        session = FileTransferSession(
            file_id=file_id,
            expected_total_size=parse_file_size(announcement),
        )
        logger.info(
            "Fetching file %d: %d bytes announced (%s)",
            file_id,
            session.expected_total_size,
            hexify(announcement),
        )

        limit = self._settings.max_file_chunk_requests
        chunk_request = build_file_chunk_request()
        while not session.complete:
            if session.requests_issued >= limit:
                raise TransferStalledError(
                    f"File {file_id} incomplete after {limit} chunk requests "
                    f"({session.bytes_received}/{session.expected_total_size} bytes)"
                )
            chunk = self.execute_read(chunk_request)
            session.requests_issued += 1
            session.add_chunk(chunk)
            logger.debug("Received chunk, %r", session)

        logger.info("File %d received: %d bytes", file_id, session.bytes_received)
        return bytes(session.accumulated)
