"""Physiological values derived from decoded observations.

Bounds:
    heart rate   30-220 bpm    (anything else is never forwarded)
    RR interval  250-2000 ms   (30-240 bpm)
"""

from __future__ import annotations

from hrcap.decoders.observation import Observation

HR_MIN_BPM = 30
HR_MAX_BPM = 220
RR_MIN_MS = 250
RR_MAX_MS = 2000


def heart_rate_is_plausible(heart_rate: int | None) -> bool:
    return heart_rate is not None and HR_MIN_BPM <= heart_rate <= HR_MAX_BPM


def rr_interval_is_plausible(rr_interval_ms: int | None) -> bool:
    return rr_interval_ms is not None and RR_MIN_MS <= rr_interval_ms <= RR_MAX_MS


def rr_to_heart_rate(rr_interval_ms: int | None) -> int | None:
    """Convert an RR interval to BPM, or None if the interval is out of range."""
    if not rr_interval_is_plausible(rr_interval_ms):
        return None
    return round(60000 / rr_interval_ms)


def derive(obs: Observation) -> Observation:
    """Fill in heart rate from the RR interval when the frame carried none.

    Total and idempotent: observations that already have a heart rate, or
    whose RR interval is missing or out of range, come back unchanged.
    """
    if obs.heart_rate is not None:
        return obs
    heart_rate = rr_to_heart_rate(obs.rr_interval_ms)
    if heart_rate is None:
        return obs
    return obs.with_heart_rate(heart_rate)
