"""Host-side control of USB HID spectrometers, with an MCP server front end."""

from .config import ProtocolSettings
from .errors import SpectrometerError
from .spectrometer import Spectrometer
