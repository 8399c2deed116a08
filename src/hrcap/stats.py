"""Summary statistics for a single recorded session.

Works on the observations produced by replaying a session, so numbers
always reflect the current decoder, not the one that ran during capture.

RR intervals are only comparable within one channel: a monitor streaming
both FC20 and 2A37 interleaves two beat series, so HRV is computed per
channel and the session-level figures come from one primary channel.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Sequence

import numpy as np

from hrcap.decoders.observation import Observation
from hrcap.metrics import heart_rate_is_plausible, rr_interval_is_plausible
from hrcap.protocol import HR_MEASUREMENT, VENDOR_STREAM, short_uuid

# Preferred RR source when a session carries several
RR_SOURCE_PRIORITY = (VENDOR_STREAM, HR_MEASUREMENT)


@dataclass
class ChannelHrv:
    """HRV of the RR series received on one channel."""

    channel: str
    rr_count: int
    mean_rr_ms: float | None = None
    rmssd_ms: float | None = None
    sdnn_ms: float | None = None


def channel_hrv(channel: str, rr_intervals: Sequence[float]) -> ChannelHrv:
    """Mean RR, RMSSD and SDNN (all ms) of one channel's intervals, in order.

    RMSSD and SDNN need at least two intervals and are None otherwise.
    """
    hrv = ChannelHrv(channel=channel, rr_count=len(rr_intervals))
    if not rr_intervals:
        return hrv
    series = np.asarray(rr_intervals, dtype=np.float64)
    hrv.mean_rr_ms = round(float(series.mean()), 1)
    if series.size >= 2:
        successive = np.diff(series)
        hrv.rmssd_ms = round(float(np.sqrt(np.mean(np.square(successive)))), 2)
        hrv.sdnn_ms = round(float(series.std(ddof=1)), 2)
    return hrv


def primary_rr_channel(channels: Sequence[str]) -> str | None:
    """Pick the channel whose RR series represents the session."""
    for preferred in RR_SOURCE_PRIORITY:
        if preferred in channels:
            return preferred
    return channels[0] if channels else None


@dataclass
class SessionStats:
    observations: int
    raw_only: int
    anomalies: int
    heart_rate_samples: int
    mean_hr: float | None = None
    min_hr: int | None = None
    max_hr: int | None = None
    rr_count: int = 0
    rr_channel: str | None = None
    rmssd_ms: float | None = None
    sdnn_ms: float | None = None
    last_battery_percent: int | None = None
    hrv_by_channel: dict[str, ChannelHrv] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)


def summarize(observations: Sequence[Observation]) -> SessionStats:
    """Summarize plausible heart rates and per-channel RR intervals of one session."""
    hrs = [o.heart_rate for o in observations if heart_rate_is_plausible(o.heart_rate)]
    batteries = [o.battery_percent for o in observations if o.battery_percent is not None]

    rr_by_channel: dict[str, list[int]] = {}
    for obs in observations:
        if rr_interval_is_plausible(obs.rr_interval_ms):
            rr_by_channel.setdefault(short_uuid(obs.channel), []).append(obs.rr_interval_ms)
    hrv_by_channel = {ch: channel_hrv(ch, rrs) for ch, rrs in rr_by_channel.items()}

    stats = SessionStats(
        observations=len(observations),
        raw_only=sum(1 for o in observations if o.is_raw_only),
        anomalies=sum(1 for o in observations if o.anomaly),
        heart_rate_samples=len(hrs),
        last_battery_percent=batteries[-1] if batteries else None,
        hrv_by_channel=hrv_by_channel,
    )

    primary = primary_rr_channel(list(hrv_by_channel))
    if primary is not None:
        hrv = hrv_by_channel[primary]
        stats.rr_channel = primary
        stats.rr_count = hrv.rr_count
        stats.rmssd_ms = hrv.rmssd_ms
        stats.sdnn_ms = hrv.sdnn_ms

    if hrs:
        arr = np.asarray(hrs, dtype=np.float64)
        stats.mean_hr = round(float(np.mean(arr)), 1)
        stats.min_hr = int(np.min(arr))
        stats.max_hr = int(np.max(arr))
    return stats
