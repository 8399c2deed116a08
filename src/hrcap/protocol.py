"""Morpheus heart-rate monitor BLE channels and protocol constants.

The monitor exposes the standard Heart Rate (0x180D), Battery (0x180F) and
Device Information (0x180A) services plus two vendor services:

    FC00  FC20 notify  — realtime vendor stream (14-byte frames)
          FC21 write   — command interface (suspected)
    FD00  FD09 notify  — data transfer channel 1
          FD0A write   — control channel 1
          FD15 notify  — data transfer channel 2
          FD16 write   — control channel 2

Channel ids arrive either in short 16-bit form ("2A37") or as full 128-bit
UUIDs built on the Bluetooth base UUID; both normalize to the same channel.
"""

from __future__ import annotations

import re
from enum import Enum

# ---------------------------------------------------------------------------
# Service / characteristic UUIDs (short form)
# ---------------------------------------------------------------------------
HR_SERVICE = "180D"
BATTERY_SERVICE = "180F"
DEVICE_INFO_SERVICE = "180A"

HR_MEASUREMENT = "2A37"
BODY_SENSOR_LOCATION = "2A38"
BATTERY_LEVEL = "2A19"
VENDOR_STREAM = "FC20"
VENDOR_COMMAND = "FC21"

# Device Information Service string characteristics
DEVICE_INFO_CHARS = {
    "2A23": "System ID",
    "2A24": "Model Number",
    "2A25": "Serial Number",
    "2A26": "Firmware Revision",
    "2A27": "Hardware Revision",
    "2A28": "Software Revision",
    "2A29": "Manufacturer Name",
}

# Vendor characteristics seen on the device and what we believe they do
VENDOR_CHARS = {
    "FC20": "Real-time data stream",
    "FC21": "Command interface (suspected)",
    "FD09": "Data transfer channel 1",
    "FD0A": "Control channel 1",
    "FD15": "Data transfer channel 2",
    "FD16": "Control channel 2",
}

HR_SERVICE_UUID = "0000180d-0000-1000-8000-00805f9b34fb"

_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"
_SHORT_RE = re.compile(r"^(?:0x)?([0-9a-fA-F]{4})$")


class ChannelKind(Enum):
    """Closed set of channel layouts the frame decoder knows about."""

    HEART_RATE_MEASUREMENT = "heart_rate_measurement"
    BATTERY_LEVEL = "battery_level"
    VENDOR_STREAM = "vendor_stream"
    BODY_SENSOR_LOCATION = "body_sensor_location"
    DEVICE_INFO = "device_info"
    UNRECOGNIZED = "unrecognized"


_KINDS = {
    HR_MEASUREMENT: ChannelKind.HEART_RATE_MEASUREMENT,
    BATTERY_LEVEL: ChannelKind.BATTERY_LEVEL,
    VENDOR_STREAM: ChannelKind.VENDOR_STREAM,
    BODY_SENSOR_LOCATION: ChannelKind.BODY_SENSOR_LOCATION,
    **{uuid: ChannelKind.DEVICE_INFO for uuid in DEVICE_INFO_CHARS},
}


def short_uuid(channel: str) -> str:
    """Normalize a channel id to its upper-case short form when possible.

    "00002a37-0000-1000-8000-00805f9b34fb" -> "2A37", "0x2a37" -> "2A37".
    Vendor 128-bit UUIDs that are not on the Bluetooth base are returned
    upper-cased but otherwise untouched.
    """
    value = channel.strip()
    match = _SHORT_RE.match(value)
    if match:
        return match.group(1).upper()
    lowered = value.lower()
    if lowered.endswith(_BASE_UUID_SUFFIX) and lowered.startswith("0000"):
        return lowered[4:8].upper()
    return value.upper()


def classify_channel(channel: str) -> ChannelKind:
    """Map a channel id onto the decoder's closed set of layouts."""
    return _KINDS.get(short_uuid(channel), ChannelKind.UNRECOGNIZED)


def channel_role(channel: str) -> str | None:
    """Get a friendly name for a known channel, or None."""
    uuid = short_uuid(channel)
    if uuid in VENDOR_CHARS:
        return VENDOR_CHARS[uuid]
    if uuid in DEVICE_INFO_CHARS:
        return DEVICE_INFO_CHARS[uuid]
    return {
        HR_MEASUREMENT: "Heart Rate Measurement",
        BODY_SENSOR_LOCATION: "Body Sensor Location",
        BATTERY_LEVEL: "Battery Level",
    }.get(uuid)


def format_hex(data: bytes | bytearray) -> str:
    """Format bytes as space-separated upper-case hex: "01 0A C6"."""
    return " ".join(f"{b:02X}" for b in data)


def hex_to_bytes(hex_str: str) -> bytes:
    """Parse a hex string, tolerating spaces, colons and a 0x prefix."""
    cleaned = hex_str.replace(" ", "").replace(":", "")
    if cleaned.lower().startswith("0x"):
        cleaned = cleaned[2:]
    return bytes.fromhex(cleaned)
