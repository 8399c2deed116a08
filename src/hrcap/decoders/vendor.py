"""Decoder for the Morpheus vendor stream (FC20).

Frame layout, inferred from captures (e.g. 01 0A C6 4E 4D 2C FB 02 8A 1E AF 3C 00 28):
    [0]      Packet counter
    [1]      Status / mode flag
    [2:6]    Device timestamp (uint32, little-endian as observed)
    [6:8]    RR interval in milliseconds (uint16 LE)
    [8:12]   Unknown — kept as opaque extra payload
    [12:14]  Unassigned — not decoded

Nothing in the frame is a heart-rate field; heart rate is inferred from the RR
interval by the metric deriver. None of these offsets are confirmed, so the
raw table stays the source of truth.
"""

from __future__ import annotations

import logging
import struct
from datetime import datetime

from hrcap.decoders.observation import Observation

logger = logging.getLogger(__name__)

VENDOR_FRAME_SIZE = 14


class VendorFrameDecoder:
    """Decode 14-byte FC20 frames into observations."""

    @staticmethod
    def decode(channel: str, raw: bytes, timestamp: datetime) -> Observation:
        """Decode a vendor frame.

        Frames shorter than 14 bytes come back raw-only with a length anomaly.
        Longer frames are decoded from the first 14 bytes.
        """
        if len(raw) < VENDOR_FRAME_SIZE:
            logger.debug("FC20 frame too short: %d bytes (%s)", len(raw), raw.hex())
            return Observation(
                channel=channel,
                raw=raw,
                timestamp=timestamp,
                anomaly=f"vendor frame too short: {len(raw)} bytes, expected {VENDOR_FRAME_SIZE}",
            )

        packet_counter = raw[0]
        status_flag = raw[1]
        device_timestamp = struct.unpack_from("<I", raw, 2)[0]
        rr_interval = struct.unpack_from("<H", raw, 6)[0]
        extra = bytes(raw[8:12])

        logger.debug(
            "FC20 counter=%d status=0x%02X ts=%d rr=%dms",
            packet_counter, status_flag, device_timestamp, rr_interval,
        )

        return Observation(
            channel=channel,
            raw=raw,
            timestamp=timestamp,
            packet_counter=packet_counter,
            status_flag=status_flag,
            device_timestamp=device_timestamp,
            rr_interval_ms=rr_interval,
            extra_payload=extra,
        )
