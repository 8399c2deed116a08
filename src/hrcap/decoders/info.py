"""Helpers for the descriptive channels (Device Information, Body Sensor Location).

These channels carry no physiological data, so the frame decoder passes them
through raw-only; the helpers here only turn them into readable text for the
analysis narrative.
"""

from __future__ import annotations

BODY_LOCATIONS = {
    0: "Other",
    1: "Chest",
    2: "Wrist",
    3: "Finger",
    4: "Hand",
    5: "Ear Lobe",
    6: "Foot",
}


def describe_body_location(payload: bytes) -> str | None:
    """Parse a Body Sensor Location (0x2A38) value."""
    if len(payload) < 1:
        return None
    location = payload[0]
    return BODY_LOCATIONS.get(location, f"Unknown ({location})")


def decode_info_string(payload: bytes) -> str | None:
    """Decode a Device Information string characteristic (0x2A24-0x2A29)."""
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        return None
    return text.rstrip("\x00")
