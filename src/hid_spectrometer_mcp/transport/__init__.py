"""Transport layer: USB HID connection and inbound report subscriptions."""

from .hid_connection import ChunkSubscription, DeviceInfo, HIDConnection
