"""Tests for configuration decoding and file size announcements."""

import pytest

from hid_spectrometer_mcp.errors import UnderflowError
from hid_spectrometer_mcp.models.configuration import DeviceConfiguration
from hid_spectrometer_mcp.protocol.parser import decode_configuration, parse_file_size


def test_decode_configuration_positional():
    config = decode_configuration(bytes([1, 2, 3, 4, 5, 99, 100]))
    assert config == DeviceConfiguration(
        scan_type=1,
        num_repeats=2,
        exposure_time=3,
        wavelength_start=4,
        wavelength_end=5,
    )


def test_decode_configuration_exact_size():
    config = decode_configuration(bytes([0x01, 0x06, 0xFF, 0x84, 0xA5]))
    assert config.exposure_time == 0xFF
    assert config.wavelength_end == 0xA5


def test_decode_configuration_underflow():
    with pytest.raises(UnderflowError):
        decode_configuration(bytes([1, 2]))


def test_underflow_is_value_error():
    with pytest.raises(ValueError):
        decode_configuration(b"")


def test_configuration_to_dict():
    d = DeviceConfiguration(1, 2, 3, 4, 5).to_dict()
    assert d == {
        "scan_type": 1,
        "num_repeats": 2,
        "exposure_time": 3,
        "wavelength_start": 4,
        "wavelength_end": 5,
    }


def test_parse_file_size_little_endian_announcement():
    """The device sends the size LSB first."""
    assert parse_file_size(bytes([0xC8, 0x00, 0x00, 0x00])) == 200
    assert parse_file_size(bytes([0x34, 0x12])) == 0x1234


def test_parse_file_size_empty():
    assert parse_file_size(b"") == 0
