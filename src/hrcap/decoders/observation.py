"""Raw transport events and the decoded observations built from them."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RawEvent:
    """One notification (or read value) received on a channel."""

    channel: str
    payload: bytes
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        # bleak hands us bytearrays; keep the event immutable
        if not isinstance(self.payload, bytes):
            object.__setattr__(self, "payload", bytes(self.payload))


@dataclass(frozen=True)
class Observation:
    """A best-effort decode of one frame.

    Every physiological field is optional: channel layouts are only partially
    understood, and an observation with nothing populated is still recorded
    so the raw bytes can be re-decoded later. ``anomaly`` is set when the
    decoder recognized the channel but could not trust the frame (e.g. it was
    too short for the expected layout).
    """

    channel: str
    raw: bytes
    timestamp: datetime
    heart_rate: int | None = None
    rr_interval_ms: int | None = None
    battery_percent: int | None = None
    packet_counter: int | None = None
    status_flag: int | None = None
    device_timestamp: int | None = None
    extra_payload: bytes | None = None
    anomaly: str | None = None

    @property
    def is_raw_only(self) -> bool:
        return all(
            value is None
            for value in (
                self.heart_rate,
                self.rr_interval_ms,
                self.battery_percent,
                self.packet_counter,
                self.status_flag,
                self.device_timestamp,
                self.extra_payload,
            )
        )

    def with_heart_rate(self, heart_rate: int) -> Observation:
        return replace(self, heart_rate=heart_rate)

    def __repr__(self) -> str:
        parts = [f"channel={self.channel}", f"raw={self.raw.hex()}"]
        if self.heart_rate is not None:
            parts.append(f"hr={self.heart_rate}bpm")
        if self.rr_interval_ms is not None:
            parts.append(f"rr={self.rr_interval_ms}ms")
        if self.battery_percent is not None:
            parts.append(f"battery={self.battery_percent}%")
        if self.packet_counter is not None:
            parts.append(f"counter={self.packet_counter}")
        if self.anomaly:
            parts.append(f"anomaly={self.anomaly!r}")
        return f"Observation({', '.join(parts)})"
