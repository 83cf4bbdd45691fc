"""USB HID connection to the spectrometer.

Supports both ``hidapi`` (preferred) and ``pyusb`` backends. Inbound
reports are read on a background thread and handed to the one consumer
currently subscribed; reports that arrive while nobody is subscribed
(e.g. the acknowledgement of a write command) are dropped.
"""

from __future__ import annotations

import logging
import queue
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from ..config import PRODUCT_ID, VENDOR_ID
from ..errors import (
    DeviceUnavailableError,
    NotConnectedError,
    StreamClosedError,
    TransportBusyError,
    WriteFailedError,
)
from ..protocol.framing import HID_REPORT_SIZE
from ..utils.conversion import hexify

logger = logging.getLogger(__name__)

HID_INTERFACE = 0
EP_IN = 0x81
EP_OUT = 0x01
READ_POLL_MS = 100
WRITE_TIMEOUT_MS = 1000

_CLOSED = object()


@dataclass
class DeviceInfo:
    """Basic device identification from USB descriptors."""

    vendor_id: int = VENDOR_ID
    product_id: int = PRODUCT_ID
    manufacturer: str = ""
    product: str = ""
    serial_number: str = ""


class ChunkSubscription:
    """Single-consumer view of the inbound report stream."""

    def __init__(self) -> None:
        self._queue: queue.Queue = queue.Queue()

    def push(self, chunk: bytes) -> None:
        self._queue.put(chunk)

    def close_stream(self) -> None:
        self._queue.put(_CLOSED)

    def next_chunk(self, timeout: float) -> Optional[bytes]:
        """Wait up to ``timeout`` seconds for the next inbound report.

        Returns:
            The report bytes, or ``None`` on timeout.

        Raises:
            StreamClosedError: If the connection was closed.
        """
        try:
            item = self._queue.get(timeout=max(timeout, 0))
        except queue.Empty:
            return None
        if item is _CLOSED:
            # Leave the marker for any later wait on this subscription.
            self._queue.put(_CLOSED)
            raise StreamClosedError("Connection closed")
        return item


class HIDConnection:
    """Manages the USB HID connection to the spectrometer.

    Usage::

        conn = HIDConnection()
        conn.open()
        with conn.subscribe() as inbound:
            conn.send(0x00, frame_bytes)
            chunk = inbound.next_chunk(timeout=10.0)
        conn.close()
    """

    def __init__(
        self,
        vendor_id: int = VENDOR_ID,
        product_id: int = PRODUCT_ID,
    ) -> None:
        self._vendor_id = vendor_id
        self._product_id = product_id
        self._device = None
        self._backend: str = ""
        self._connected = False
        self._device_info = DeviceInfo(vendor_id=vendor_id, product_id=product_id)
        self._lock = threading.Lock()
        self._subscription: Optional[ChunkSubscription] = None
        self._stop = threading.Event()
        self._reader: Optional[threading.Thread] = None
        self._read_error: Optional[Exception] = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def read_error(self) -> Optional[Exception]:
        """The failure that ended the inbound stream, if the connection died."""
        return self._read_error

    @property
    def device_info(self) -> DeviceInfo:
        return self._device_info

    def open(self) -> DeviceInfo:
        """Open a connection to the device, trying hidapi first, then pyusb.

        Returns:
            DeviceInfo with USB descriptor information.

        Raises:
            DeviceUnavailableError: If the device cannot be found or opened.
        """
        if self._connected:
            return self._device_info

        self._read_error = None
        try:
            info = self._open_hidapi()
        except Exception as e:
            logger.debug("hidapi backend failed: %s, trying pyusb", e)
            try:
                info = self._open_pyusb()
            except Exception as e2:
                raise DeviceUnavailableError(
                    f"Could not connect to spectrometer "
                    f"({self._vendor_id:#06x}:{self._product_id:#06x}). "
                    f"Ensure the device is connected and you have permissions. "
                    f"Last error: {e2}"
                ) from e2

        self._start_reader()
        return info

    def _open_hidapi(self) -> DeviceInfo:
        """Open using the hidapi library."""
        import hid

        device = hid.device()
        device.open(self._vendor_id, self._product_id)
        device.set_nonblocking(False)

        self._device = device
        self._backend = "hidapi"
        self._connected = True
        self._device_info = DeviceInfo(
            vendor_id=self._vendor_id,
            product_id=self._product_id,
            manufacturer=device.get_manufacturer_string() or "",
            product=device.get_product_string() or "",
            serial_number=device.get_serial_number_string() or "",
        )

        logger.info(
            "Connected via hidapi: %s %s",
            self._device_info.manufacturer,
            self._device_info.product,
        )
        return self._device_info

    def _open_pyusb(self) -> DeviceInfo:
        """Open using pyusb + libusb."""
        import usb.core
        import usb.util

        dev = usb.core.find(idVendor=self._vendor_id, idProduct=self._product_id)
        if dev is None:
            raise DeviceUnavailableError("Device not found via pyusb")

        # Detach kernel driver if needed
        if dev.is_kernel_driver_active(HID_INTERFACE):
            dev.detach_kernel_driver(HID_INTERFACE)

        usb.util.claim_interface(dev, HID_INTERFACE)

        self._device = dev
        self._backend = "pyusb"
        self._connected = True
        self._device_info = DeviceInfo(
            vendor_id=self._vendor_id,
            product_id=self._product_id,
            manufacturer=usb.util.get_string(dev, dev.iManufacturer) or "",
            product=usb.util.get_string(dev, dev.iProduct) or "",
            serial_number=usb.util.get_string(dev, dev.iSerialNumber) or "",
        )

        logger.info(
            "Connected via pyusb: %s %s",
            self._device_info.manufacturer,
            self._device_info.product,
        )
        return self._device_info

    def close(self) -> None:
        """Close the USB connection and end any active subscription."""
        if not self._connected:
            return

        self._stop.set()
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=1.0)
        self._reader = None

        self._release_device()
        logger.info("Disconnected")

    def _release_device(self) -> None:
        """Drop the device handle and end any active subscription."""
        with self._lock:
            self._connected = False
        try:
            if self._backend == "hidapi":
                self._device.close()
            elif self._backend == "pyusb":
                import usb.util
                usb.util.release_interface(self._device, HID_INTERFACE)
                usb.util.dispose_resources(self._device)
        except Exception as e:
            logger.warning("Error closing device: %s", e)
        finally:
            self._device = None
            self._end_subscription()

    def _not_connected(self) -> NotConnectedError:
        if self._read_error is not None:
            return NotConnectedError(
                f"Connection lost: inbound read failed ({self._read_error}). Reconnect first."
            )
        return NotConnectedError("Not connected to device")

    def send(self, report_id: int, data: bytes) -> int:
        """Write one output report, zero-padded to the HID report size.

        Args:
            report_id: HID report id (always 0x00 for this device).
            data: Report content, at most 64 bytes.

        Returns:
            Number of bytes written.

        Raises:
            NotConnectedError: If not connected.
            WriteFailedError: If the transport rejects the write.
        """
        if not self._connected:
            raise self._not_connected()

        if len(data) > HID_REPORT_SIZE:
            raise ValueError(
                f"HID report must be at most {HID_REPORT_SIZE} bytes, got {len(data)}"
            )
        report = bytes(data) + b"\x00" * (HID_REPORT_SIZE - len(data))

        if self._backend not in ("hidapi", "pyusb"):
            raise RuntimeError(f"Unknown backend: {self._backend}")

        logger.debug("Sending report 0x%02X: %s", report_id, hexify(data))
        try:
            if self._backend == "hidapi":
                # hidapi expects the report id as the first byte
                written = self._device.write(bytes([report_id]) + report)
            else:
                written = self._device.write(EP_OUT, report, timeout=WRITE_TIMEOUT_MS)
        except Exception as e:
            # hidapi raises OSError/ValueError, pyusb raises usb.core.USBError
            raise WriteFailedError(f"Write failed: {e}") from e

        if written is None or written < 0:
            raise WriteFailedError(f"Write failed: transport returned {written}")
        return written

    @contextmanager
    def subscribe(self) -> Iterator[ChunkSubscription]:
        """Receive inbound reports for the duration of the ``with`` block.

        Only one subscription may be active at a time. The subscription is
        released on normal exit and on any exception.

        Raises:
            NotConnectedError: If not connected.
            TransportBusyError: If another subscription is active.
        """
        with self._lock:
            if not self._connected:
                raise self._not_connected()
            if self._subscription is not None:
                raise TransportBusyError("Inbound report stream already has a consumer")
            subscription = ChunkSubscription()
            self._subscription = subscription
        try:
            yield subscription
        finally:
            with self._lock:
                if self._subscription is subscription:
                    self._subscription = None

    def _dispatch(self, chunk: bytes) -> None:
        """Hand one inbound report to the active subscriber, if any."""
        with self._lock:
            subscription = self._subscription
        if subscription is None:
            logger.debug("Dropping unsolicited report: %s", hexify(chunk))
            return
        subscription.push(bytes(chunk))

    def _end_subscription(self) -> None:
        with self._lock:
            subscription = self._subscription
        if subscription is not None:
            subscription.close_stream()

    def _start_reader(self) -> None:
        self._stop.clear()
        self._reader = threading.Thread(
            target=self._read_loop, name="hid-spectrometer-reader", daemon=True
        )
        self._reader.start()

    def _read_loop(self) -> None:
        while not self._stop.is_set():
            try:
                data = self._read_report(READ_POLL_MS)
            except Exception as e:
                if not self._stop.is_set():
                    self._handle_read_failure(e)
                return
            if data:
                self._dispatch(data)

    def _handle_read_failure(self, error: Exception) -> None:
        """Mark the connection dead after the reader thread lost the device."""
        logger.warning("Inbound read failed, closing connection: %s", error)
        self._read_error = error
        self._reader = None
        self._release_device()

    def _read_report(self, timeout_ms: int) -> Optional[bytes]:
        """Read one inbound report, returning ``None`` if the poll timed out."""
        if self._backend == "hidapi":
            data = self._device.read(HID_REPORT_SIZE, timeout_ms)
            return bytes(data) if data else None
        elif self._backend == "pyusb":
            import usb.core
            try:
                data = self._device.read(EP_IN, HID_REPORT_SIZE, timeout=timeout_ms)
            except usb.core.USBTimeoutError:
                return None
            return bytes(data)
        raise RuntimeError(f"Unknown backend: {self._backend}")
