"""Replay a recorded session's binary tables through the current decoders.

The binary tables hold every frame exactly as received, so a session can be
re-decoded whenever the frame layouts are revised.
"""

from __future__ import annotations

import json
from pathlib import Path

from hrcap.decoders.frame import FrameDecoder
from hrcap.decoders.observation import Observation
from hrcap.journal import format_timestamp, iter_binary_records
from hrcap.metrics import derive
from hrcap.registry import SessionRegistry


def load_observations(registry: SessionRegistry, session_id: str) -> list[Observation]:
    """Decode every stored frame of a session, ordered by receive time."""
    observations: list[Observation] = []
    for channel, path in registry.binary_tables(session_id).items():
        for timestamp, payload in iter_binary_records(path):
            observations.append(derive(FrameDecoder.decode(channel, payload, timestamp)))
    observations.sort(key=lambda o: o.timestamp)
    return observations


def observation_to_dict(obs: Observation) -> dict:
    record = {
        "timestamp": format_timestamp(obs.timestamp),
        "channel": obs.channel,
        "raw_hex": obs.raw.hex(),
    }
    for name in (
        "heart_rate",
        "rr_interval_ms",
        "battery_percent",
        "packet_counter",
        "status_flag",
        "device_timestamp",
    ):
        value = getattr(obs, name)
        if value is not None:
            record[name] = value
    if obs.extra_payload is not None:
        record["extra_payload_hex"] = obs.extra_payload.hex()
    if obs.anomaly:
        record["anomaly"] = obs.anomaly
    return record


def replay_session(
    registry: SessionRegistry,
    session_id: str,
    output_path: str | None = None,
    verbose: bool = False,
) -> list[Observation]:
    """Replay a session and print what the decoders make of it.

    Args:
        registry: Registry over the data directory holding the session.
        session_id: Session to replay.
        output_path: Optional path to write the decoded records as JSON.
        verbose: If True, print raw-only frames too.

    Returns:
        The decoded observations.
    """
    if not registry.binary_tables(session_id):
        print(f"No binary tables for session {session_id}")
        return []

    print(f"Replaying {session_id}...\n")
    observations = load_observations(registry, session_id)

    decoded = 0
    for obs in observations:
        ts = format_timestamp(obs.timestamp)
        if obs.is_raw_only:
            if verbose:
                note = f" ({obs.anomaly})" if obs.anomaly else ""
                print(f"  [{ts}] {obs.channel} raw={obs.raw.hex()}{note}")
            continue
        decoded += 1
        print(f"  [{ts}] {obs!r}")

    print(f"\nSummary: {len(observations)} total frames, {decoded} decoded")

    if output_path:
        with open(Path(output_path), "w") as out:
            json.dump([observation_to_dict(o) for o in observations], out, indent=2)
        print(f"Output written to {output_path}")

    return observations
