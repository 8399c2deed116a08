"""Route raw frames to the decoder for their channel.

The frame decoder never raises: a frame that doesn't fit its channel's layout
comes back as a raw-only observation, optionally carrying an ``anomaly``.
The raw bytes are re-decoded later, once the protocol is better understood.
"""

from __future__ import annotations

import logging
import struct
from datetime import datetime, timezone

from hrcap.decoders.battery import BatteryDecoder
from hrcap.decoders.hr import HeartRateMeasurementDecoder
from hrcap.decoders.info import decode_info_string, describe_body_location
from hrcap.decoders.observation import Observation, RawEvent, utc_now
from hrcap.decoders.vendor import VendorFrameDecoder
from hrcap.protocol import ChannelKind, channel_role, classify_channel, format_hex

logger = logging.getLogger(__name__)


class FrameDecoder:
    """Decode ``(channel, payload)`` pairs into observations."""

    @staticmethod
    def decode(
        channel: str,
        payload: bytes | bytearray,
        timestamp: datetime | None = None,
    ) -> Observation:
        raw = bytes(payload)
        if timestamp is None:
            timestamp = utc_now()

        kind = classify_channel(channel)
        try:
            if kind is ChannelKind.HEART_RATE_MEASUREMENT:
                return HeartRateMeasurementDecoder.decode(channel, raw, timestamp)
            elif kind is ChannelKind.BATTERY_LEVEL:
                return BatteryDecoder.decode(channel, raw, timestamp)
            elif kind is ChannelKind.VENDOR_STREAM:
                return VendorFrameDecoder.decode(channel, raw, timestamp)
            elif kind in (ChannelKind.BODY_SENSOR_LOCATION, ChannelKind.DEVICE_INFO):
                return Observation(channel=channel, raw=raw, timestamp=timestamp)
            else:
                logger.debug("Unknown characteristic %s, storing raw data", channel)
                return Observation(channel=channel, raw=raw, timestamp=timestamp)
        except (struct.error, IndexError, ValueError) as e:
            logger.debug("Decode of %s failed (%s): %s", channel, e, raw.hex())
            return Observation(
                channel=channel,
                raw=raw,
                timestamp=timestamp,
                anomaly=f"decode error: {e}",
            )

    @staticmethod
    def decode_event(event: RawEvent) -> Observation:
        return FrameDecoder.decode(event.channel, event.payload, event.timestamp)


def analysis_report(obs: Observation) -> str:
    """Render every populated field of an observation as a multi-line report."""
    ts = obs.timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    lines = [
        "=== Morpheus Data Analysis ===",
        f"Timestamp: {ts}",
        f"Characteristic: {obs.channel}",
        f"Raw Data: {format_hex(obs.raw)}",
    ]

    if obs.heart_rate is not None:
        lines.append(f"Heart Rate: {obs.heart_rate} bpm")
    if obs.rr_interval_ms is not None:
        lines.append(f"RR Interval: {obs.rr_interval_ms} ms")
    if obs.battery_percent is not None:
        lines.append(f"Battery Level: {obs.battery_percent}%")
    if obs.packet_counter is not None:
        lines.append(f"Packet Counter: {obs.packet_counter}")
    if obs.status_flag is not None:
        lines.append(f"Status Flag: 0x{obs.status_flag:02X}")
    if obs.device_timestamp is not None:
        lines.append(f"Device Timestamp: {obs.device_timestamp}")
    if obs.extra_payload is not None:
        lines.append(f"Additional Data: {format_hex(obs.extra_payload)}")

    kind = classify_channel(obs.channel)
    if kind is ChannelKind.BODY_SENSOR_LOCATION:
        location = describe_body_location(obs.raw)
        if location is not None:
            lines.append(f"Body Sensor Location: {location}")
    elif kind is ChannelKind.DEVICE_INFO:
        text = decode_info_string(obs.raw)
        if text:
            lines.append(f"{channel_role(obs.channel)}: {text}")

    if obs.anomaly:
        lines.append(f"Anomaly: {obs.anomaly}")

    return "\n".join(lines) + "\n"
