"""Tests for the MCP tool layer."""

from __future__ import annotations

import json
import sys
from unittest.mock import MagicMock, patch

import pytest

from hid_spectrometer_mcp.errors import DeviceUnavailableError, ResponseTimeoutError, TimeoutStage
from hid_spectrometer_mcp.models.configuration import DeviceConfiguration
from hid_spectrometer_mcp.transport.hid_connection import DeviceInfo


def _get_server_module():
    """Import server module with FastMCP mocked to avoid init issues."""
    mock_fastmcp_cls = MagicMock()
    mock_fastmcp_instance = MagicMock()
    # Make the @mcp.tool() decorator a no-op that returns the function unchanged
    mock_fastmcp_instance.tool.return_value = lambda fn: fn
    mock_fastmcp_instance.resource.return_value = lambda fn: fn
    mock_fastmcp_cls.return_value = mock_fastmcp_instance

    with patch("mcp.server.fastmcp.FastMCP", mock_fastmcp_cls):
        # Remove cached server module so it re-imports with our mock
        sys.modules.pop("hid_spectrometer_mcp.server", None)
        import hid_spectrometer_mcp.server as server_mod

    return server_mod


@pytest.fixture
def server():
    server_mod = _get_server_module()
    yield server_mod
    server_mod._spectrometer = None


def _mock_spectrometer() -> MagicMock:
    spec = MagicMock()
    spec.connected = True
    spec.transport.device_info = DeviceInfo(
        manufacturer="Texas Instruments", product="NIRscan Nano", serial_number="42"
    )
    return spec


def test_tools_require_connection(server):
    assert "error" in server.perform_scan()
    assert "error" in server.get_configuration()
    assert "error" in server.get_file(0)
    assert "error" in server.get_device_info()
    assert "error" in server.send_raw("c0 00")


def test_connect(server):
    spec = _mock_spectrometer()
    spec.connect.return_value = spec.transport.device_info
    with patch.object(server, "Spectrometer", return_value=spec):
        result = server.connect()
    assert result["connected"] is True
    assert result["product"] == "NIRscan Nano"

    again = server.connect()
    assert again["message"] == "Already connected"


def test_connect_failure(server):
    spec = _mock_spectrometer()
    spec.connect.side_effect = DeviceUnavailableError("no device")
    with patch.object(server, "Spectrometer", return_value=spec):
        result = server.connect()
    assert result == {"connected": False, "error": "no device"}
    assert server._spectrometer is None


def test_disconnect(server):
    spec = _mock_spectrometer()
    server._spectrometer = spec
    assert server.disconnect() == {"disconnected": True}
    spec.disconnect.assert_called_once()
    assert server._spectrometer is None


def test_get_configuration(server):
    spec = _mock_spectrometer()
    spec.get_configuration.return_value = DeviceConfiguration(1, 2, 3, 4, 5)
    server._spectrometer = spec
    assert server.get_configuration()["wavelength_end"] == 5


def test_get_file(server):
    spec = _mock_spectrometer()
    spec.get_file.return_value = b"\x01\x02\xff"
    server._spectrometer = spec
    result = server.get_file(7)
    assert result == {"file_id": 7, "length": 3, "data_hex": "01 02 ff"}
    spec.get_file.assert_called_once_with(7)


def test_get_file_reports_timeout(server):
    spec = _mock_spectrometer()
    spec.get_file.side_effect = ResponseTimeoutError(TimeoutStage.CONTINUATION, 5.0)
    server._spectrometer = spec
    assert "continuation" in server.get_file(1)["error"]


def test_get_file_rejects_bad_id(server):
    server._spectrometer = _mock_spectrometer()
    assert "error" in server.get_file(256)


def test_perform_scan(server):
    spec = _mock_spectrometer()
    server._spectrometer = spec
    assert server.perform_scan() == {"started": True}
    spec.perform_scan.assert_called_once()


def test_send_raw_parses_hex(server):
    spec = _mock_spectrometer()
    server._spectrometer = spec
    spec.send_raw.return_value = []
    result = server.send_raw("c0, 00, 0x02 00 23,02")
    spec.send_raw.assert_called_once_with(
        bytes([0xC0, 0x00, 0x02, 0x00, 0x23, 0x02]), read_back=True
    )
    assert result["length"] == 6
    assert result["responses"] == []


def test_send_raw_returns_device_replies(server):
    spec = _mock_spectrometer()
    spec.send_raw.return_value = [bytes([0xC0, 0x00, 0x05, 0x00, 1, 2, 3, 4, 5])]
    server._spectrometer = spec
    result = server.send_raw("c0 00 02 00 23 02")
    assert result["responses"] == ["c0 00 05 00 01 02 03 04 05"]


def test_send_raw_without_read_back(server):
    spec = _mock_spectrometer()
    spec.send_raw.return_value = []
    server._spectrometer = spec
    server.send_raw("01", read_back=False)
    spec.send_raw.assert_called_once_with(b"\x01", read_back=False)


def test_send_raw_invalid_hex(server):
    server._spectrometer = _mock_spectrometer()
    assert "error" in server.send_raw("zz")
    assert "error" in server.send_raw("100")
    assert "error" in server.send_raw("   ")


def test_device_status_resource(server):
    status = json.loads(server.resource_device_status())
    assert status["connected"] is False
    assert status["vendor_id"] == "0x0451"
