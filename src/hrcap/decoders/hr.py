"""Standard BLE Heart Rate Measurement (0x2A37) decoder.

Per Bluetooth SIG spec:
    Byte 0: Flags
      - Bit 0: HR format (0 = uint8, 1 = uint16 LE)
      - Bit 1-2: Sensor contact status
      - Bit 3: Energy expended present (uint16)
      - Bit 4: RR-interval present (uint16 each, 1/1024 s units)
    Byte 1(+2): Heart rate value
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from datetime import datetime

from hrcap.decoders.observation import Observation

logger = logging.getLogger(__name__)

FLAG_HR_UINT16 = 0x01
FLAG_CONTACT_SUPPORTED = 0x02
FLAG_CONTACT_DETECTED = 0x04
FLAG_ENERGY_PRESENT = 0x08
FLAG_RR_PRESENT = 0x10


@dataclass
class HeartRateMeasurement:
    """Every field of a 0x2A37 value, for callers that want more than the observation."""

    hr_bpm: int
    sensor_contact: bool | None = None
    energy_expended_kj: int | None = None
    rr_intervals_ms: list[float] = field(default_factory=list)


def parse_heart_rate(data: bytes | bytearray) -> HeartRateMeasurement | None:
    """Parse a Heart Rate Measurement value.

    Returns None if the value is shorter than its flags say it should be.
    """
    if len(data) < 2:
        return None

    flags = data[0]
    offset = 1

    if flags & FLAG_HR_UINT16:
        if len(data) < 3:
            return None
        hr_value = struct.unpack_from("<H", data, offset)[0]
        offset += 2
    else:
        hr_value = data[offset]
        offset += 1

    sensor_contact = None
    if flags & FLAG_CONTACT_SUPPORTED:
        sensor_contact = bool(flags & FLAG_CONTACT_DETECTED)

    energy_expended = None
    if flags & FLAG_ENERGY_PRESENT and offset + 1 < len(data):
        energy_expended = struct.unpack_from("<H", data, offset)[0]
        offset += 2

    rr_intervals: list[float] = []
    if flags & FLAG_RR_PRESENT:
        while offset + 1 < len(data):
            rr_raw = struct.unpack_from("<H", data, offset)[0]
            rr_intervals.append(round(rr_raw / 1024.0 * 1000.0, 1))
            offset += 2

    return HeartRateMeasurement(
        hr_bpm=hr_value,
        sensor_contact=sensor_contact,
        energy_expended_kj=energy_expended,
        rr_intervals_ms=rr_intervals,
    )


class HeartRateMeasurementDecoder:
    """Decode 0x2A37 frames into observations."""

    @staticmethod
    def decode(channel: str, raw: bytes, timestamp: datetime) -> Observation:
        measurement = parse_heart_rate(raw)
        if measurement is None:
            logger.debug("2A37 frame too short (%d bytes): %s", len(raw), raw.hex())
            return Observation(
                channel=channel,
                raw=raw,
                timestamp=timestamp,
                anomaly=f"heart rate measurement too short: {len(raw)} bytes",
            )

        rr_ms = None
        if measurement.rr_intervals_ms:
            rr_ms = round(measurement.rr_intervals_ms[0])

        return Observation(
            channel=channel,
            raw=raw,
            timestamp=timestamp,
            heart_rate=measurement.hr_bpm,
            rr_interval_ms=rr_ms,
        )
