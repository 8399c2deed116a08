"""Shared fixtures and helpers for the hrcap test suite."""

from __future__ import annotations

import struct
from datetime import datetime, timezone
from pathlib import Path

import pytest

from hrcap.errors import SinkRejection
from hrcap.journal import SessionJournal
from hrcap.protocol import hex_to_bytes

# The frame captured from a real Morpheus M7 on FC20
SAMPLE_FC20_FRAME = hex_to_bytes("01 0A C6 4E 4D 2C FB 02 8A 1E AF 3C 00 28")

FIXED_TIME = datetime(2024, 2, 13, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Frame-building helpers
# ---------------------------------------------------------------------------


def make_vendor_frame(
    packet_counter: int = 1,
    status_flag: int = 0x0A,
    device_timestamp: int = 0x2C4D4EC6,
    rr_interval_ms: int = 763,
    extra: bytes = b"\x8a\x1e\xaf\x3c",
    tail: bytes = b"\x00\x28",
) -> bytes:
    """Build a 14-byte FC20 frame."""
    return (
        bytes([packet_counter, status_flag])
        + struct.pack("<I", device_timestamp)
        + struct.pack("<H", rr_interval_ms)
        + extra
        + tail
    )


def make_hr_measurement(
    hr_bpm: int = 72,
    uint16: bool = False,
    rr_raw: list[int] | None = None,
    energy_kj: int | None = None,
) -> bytes:
    """Build a standard 0x2A37 Heart Rate Measurement value."""
    flags = 0
    if uint16:
        flags |= 0x01
    if energy_kj is not None:
        flags |= 0x08
    if rr_raw:
        flags |= 0x10

    buf = bytearray([flags])
    buf += struct.pack("<H", hr_bpm) if uint16 else bytes([hr_bpm])
    if energy_kj is not None:
        buf += struct.pack("<H", energy_kj)
    for rr in rr_raw or []:
        buf += struct.pack("<H", rr)
    return bytes(buf)


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


class RecordingSink:
    """Health sink that remembers every sample it accepts."""

    def __init__(self) -> None:
        self.samples: list[tuple[int, datetime]] = []

    async def submit(self, heart_rate: int, timestamp: datetime) -> None:
        self.samples.append((heart_rate, timestamp))


class RejectingSink:
    """Health sink that refuses everything, like an unauthorized store."""

    def __init__(self) -> None:
        self.attempts = 0

    async def submit(self, heart_rate: int, timestamp: datetime) -> None:
        self.attempts += 1
        raise SinkRejection("not authorized")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def journal(data_dir: Path) -> SessionJournal:
    return SessionJournal(data_dir)
