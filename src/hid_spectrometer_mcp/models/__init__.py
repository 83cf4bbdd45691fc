"""Data models for device configuration and file transfers."""

from .configuration import DeviceConfiguration
from .file_transfer import FileTransferSession
