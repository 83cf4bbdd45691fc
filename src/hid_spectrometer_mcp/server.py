"""MCP server entry point for USB HID spectrometers.

Exposes tools and resources via the Model Context Protocol using the
official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import ENV_PREFIX, ProtocolSettings
from .errors import NotConnectedError, SpectrometerError
from .spectrometer import Spectrometer
from .utils.conversion import hexify

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "hid-spectrometer",
    instructions="Control a USB HID spectrometer: scans, configuration, and file downloads.",
)

# Global connection state
_spectrometer: Spectrometer | None = None


def _get_spectrometer() -> Spectrometer:
    """Get the connected spectrometer, raising if not connected."""
    if _spectrometer is None or not _spectrometer.connected:
        raise NotConnectedError(
            "Not connected to device. Use the 'connect' tool first."
        )
    return _spectrometer


def _parse_hex_bytes(text: str) -> bytes:
    """Parse ``"c0, 00, 02"`` or ``"0xc0 0x00 0x02"`` into bytes."""
    tokens = [t for t in re.split(r"[,\s]+", text.strip()) if t]
    if not tokens:
        raise ValueError("No bytes given")
    values = []
    for token in tokens:
        value = int(token, 16)
        if not 0 <= value <= 0xFF:
            raise ValueError(f"Byte value out of range: {token}")
        values.append(value)
    return bytes(values)


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect() -> dict[str, Any]:
    """Open the USB HID connection to the spectrometer.

    The device is located by vendor/product ID (default 0x0451:0x4200,
    overridable with HID_SPECTROMETER_VENDOR_ID / _PRODUCT_ID).
    """
    global _spectrometer
    if _spectrometer is not None and _spectrometer.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "product": _spectrometer.transport.device_info.product,
        }

    _spectrometer = Spectrometer(settings=ProtocolSettings.from_env())
    try:
        info = _spectrometer.connect()
    except SpectrometerError as e:
        _spectrometer = None
        return {"connected": False, "error": str(e)}

    return {
        "connected": True,
        "product": info.product,
        "manufacturer": info.manufacturer,
        "serial_number": info.serial_number,
    }


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the USB connection to the spectrometer."""
    global _spectrometer
    if _spectrometer is None:
        return {"disconnected": True}
    _spectrometer.disconnect()
    _spectrometer = None
    return {"disconnected": True}


@mcp.tool()
def get_device_info() -> dict[str, Any]:
    """Return USB descriptor information for the connected device."""
    try:
        spec = _get_spectrometer()
    except SpectrometerError as e:
        return {"error": str(e)}
    info = spec.transport.device_info
    return {
        "vendor_id": f"0x{info.vendor_id:04X}",
        "product_id": f"0x{info.product_id:04X}",
        "manufacturer": info.manufacturer,
        "product": info.product,
        "serial_number": info.serial_number,
    }


# ─── SCAN TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
def perform_scan() -> dict[str, Any]:
    """Start a scan using the device's active scan configuration."""
    try:
        _get_spectrometer().perform_scan()
    except SpectrometerError as e:
        return {"error": str(e)}
    return {"started": True}


@mcp.tool()
def get_configuration() -> dict[str, Any]:
    """Read the active scan configuration.

    Returns scan type, number of repeats, exposure time, and the
    wavelength range.
    """
    try:
        config = _get_spectrometer().get_configuration()
    except SpectrometerError as e:
        return {"error": str(e)}
    return config.to_dict()


# ─── FILE TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
def get_file(file_id: int) -> dict[str, Any]:
    """Download a file from the device.

    Args:
        file_id: Device file identifier (0-255).
    """
    if not 0 <= file_id <= 0xFF:
        return {"error": f"File id must be 0-255, got {file_id}"}
    try:
        data = _get_spectrometer().get_file(file_id)
    except SpectrometerError as e:
        return {"error": str(e)}
    return {"file_id": file_id, "length": len(data), "data_hex": data.hex(" ")}


# ─── RAW ACCESS ──────────────────────────────────────────────────────

@mcp.tool()
def send_raw(hex_bytes: str, read_back: bool = True) -> dict[str, Any]:
    """Send a raw output report to the device and show what it answers.

    Args:
        hex_bytes: Comma or space separated hex bytes, e.g. "c0, 00, 02, 00, 23, 02".
        read_back: Collect the inbound reports that follow until the device
            goes quiet (default True).
    """
    try:
        data = _parse_hex_bytes(hex_bytes)
    except ValueError as e:
        return {"error": f"Invalid hex input: {e}"}
    try:
        replies = _get_spectrometer().send_raw(data, read_back=read_back)
    except (SpectrometerError, ValueError) as e:
        return {"error": str(e)}
    return {
        "sent": True,
        "length": len(data),
        "data_hex": hexify(data),
        "responses": [hexify(report) for report in replies],
    }


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("spectrometer://device/status")
def resource_device_status() -> str:
    """Connection status and active protocol settings."""
    connected = _spectrometer is not None and _spectrometer.connected
    settings = _spectrometer.settings if _spectrometer else ProtocolSettings.from_env()
    return json.dumps({
        "connected": connected,
        "vendor_id": f"0x{settings.vendor_id:04X}",
        "product_id": f"0x{settings.product_id:04X}",
        "first_chunk_timeout": settings.first_chunk_timeout,
        "continuation_timeout": settings.continuation_timeout,
    })


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    level = os.environ.get(ENV_PREFIX + "LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO))
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
