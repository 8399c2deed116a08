"""Battery Level (0x2A19) decoder — a single byte, 0-100 %."""

from __future__ import annotations

import logging
from datetime import datetime

from hrcap.decoders.observation import Observation

logger = logging.getLogger(__name__)


class BatteryDecoder:
    @staticmethod
    def decode(channel: str, raw: bytes, timestamp: datetime) -> Observation:
        if len(raw) < 1:
            logger.debug("2A19 frame empty")
            return Observation(
                channel=channel,
                raw=raw,
                timestamp=timestamp,
                anomaly="battery level frame is empty",
            )
        return Observation(
            channel=channel,
            raw=raw,
            timestamp=timestamp,
            battery_percent=raw[0],
        )
