"""Probe the monitor's write characteristics with candidate commands.

Used to hunt for the workout-download protocol: every command in
``EXPLORATION_COMMANDS`` is written to every writable characteristic, one at
a time, while the capture coordinator keeps recording. Any response arrives
as an ordinary frame on a notify characteristic and lands in the session's
raw table, so the probe itself only has to send and take notes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from bleak import BleakClient
from bleak.exc import BleakError

from hrcap.coordinator import CaptureCoordinator
from hrcap.decoders.observation import utc_now
from hrcap.journal import SessionJournal
from hrcap.protocol import VENDOR_CHARS, format_hex, short_uuid
from hrcap.registry import new_session_id
from hrcap.transport import writable_chars

logger = logging.getLogger(__name__)

EXPLORATION_SESSION_NAME = "WorkoutExploration"


@dataclass(frozen=True)
class ProbeCommand:
    name: str
    data: bytes
    description: str

    @property
    def hex(self) -> str:
        return format_hex(self.data)


EXPLORATION_COMMANDS = (
    # Workout enumeration
    ProbeCommand("List Workouts", b"\x01", "Request workout list"),
    ProbeCommand("Workout Count", b"\x02", "Get number of stored workouts"),
    ProbeCommand("Status Query", b"\x00", "General status request"),
    ProbeCommand("Device Info", b"\x03", "Extended device information"),
    # Download
    ProbeCommand("Download Start", b"\x10\x00", "Start download session"),
    ProbeCommand("Download Workout 1", b"\x11\x01", "Download first workout"),
    ProbeCommand("Download Workout 2", b"\x11\x02", "Download second workout"),
    ProbeCommand("Download End", b"\x12", "End download session"),
    # Sync and memory
    ProbeCommand("Sync Request", b"\x20", "Sync workout data"),
    ProbeCommand("Memory Status", b"\x21", "Check memory usage"),
    ProbeCommand("Clear Memory", b"\x22", "Clear workout memory"),
    # Protocol discovery
    ProbeCommand("Protocol Version", b"\xf0", "Get protocol version"),
    ProbeCommand("Capabilities", b"\xf1", "Get device capabilities"),
    # Common BLE patterns
    ProbeCommand("Handshake", b"\xff\x00", "Initiate communication"),
    ProbeCommand("Keep Alive", b"\xfe", "Keep connection alive"),
    # Data format
    ProbeCommand("Data Format", b"\x30", "Query data format"),
    ProbeCommand("Time Sync", b"\x31\x00\x00\x00\x00", "Sync device time"),
    # Guesses based on the FC20 status byte (0x0A)
    ProbeCommand("Morpheus List", b"\x0a\x01", "List workouts (Morpheus style)"),
    ProbeCommand("Morpheus Download", b"\x0a\x02\x01", "Download workout (Morpheus style)"),
    ProbeCommand("Morpheus Status", b"\x0a\x00", "Get status (Morpheus style)"),
)


async def explore(
    client: BleakClient,
    coordinator: CaptureCoordinator,
    commands: tuple[ProbeCommand, ...] = EXPLORATION_COMMANDS,
    command_delay: float = 1.0,
    channel_pause: float = 2.0,
) -> list[tuple[str, ProbeCommand, bool]]:
    """Write every command to every writable characteristic.

    Returns (characteristic, command, sent) for each attempt.
    """
    attempts: list[tuple[str, ProbeCommand, bool]] = []
    targets = writable_chars(client)
    await coordinator.note(f"Probe: testing {len(commands)} commands on {len(targets)} write characteristics")

    for char in targets:
        uuid = short_uuid(char.uuid)
        await coordinator.note(f"Probe: testing commands on characteristic {uuid}")

        for command in commands:
            print(f"  -> {uuid}: {command.name} ({command.hex})")
            try:
                await client.write_gatt_char(char, command.data, response="write" in char.properties)
                sent = True
                await coordinator.note(f"Probe: sent {command.name} ({command.hex}) to {uuid}")
            except (BleakError, OSError) as e:
                sent = False
                logger.warning("Write of %s to %s failed: %s", command.name, uuid, e)
                await coordinator.note(f"Probe: {command.name} to {uuid} failed: {e}")
            attempts.append((uuid, command, sent))
            # Responses are captured by the coordinator as ordinary frames
            await asyncio.sleep(command_delay)

        await asyncio.sleep(channel_pause)

    return attempts


def exploration_report(
    device_name: str,
    commands: tuple[ProbeCommand, ...] = EXPLORATION_COMMANDS,
    when: datetime | None = None,
) -> str:
    when = (when or utc_now()).astimezone(timezone.utc)
    chars = "\n".join(f"- {uuid}: {purpose}" for uuid, purpose in VENDOR_CHARS.items())
    tested = "\n".join(f"{i}. {c.name}: {c.hex}" for i, c in enumerate(commands, 1))
    rule = "=" * 37
    return (
        f"\n{rule}\n"
        "MORPHEUS WORKOUT EXPLORATION REPORT\n"
        f"{rule}\n"
        f"Device: {device_name}\n"
        f"Timestamp: {when.strftime('%Y-%m-%dT%H:%M:%SZ')}\n\n"
        f"TESTED CHARACTERISTICS:\n{chars}\n\n"
        f"TESTED COMMANDS:\n{tested}\n\n"
        "ANALYSIS NOTES:\n"
        "- Check the session raw table for responses to these commands\n"
        "- Look for changes in the FC20 real-time data stream\n"
        "- Check for new data on FD09/FD15 notification characteristics\n"
        f"{rule}\n"
    )


def save_report(journal: SessionJournal, report: str, when: datetime | None = None) -> str:
    """Write a report to its own WorkoutExploration session. Returns the session id."""
    session_id = new_session_id(EXPLORATION_SESSION_NAME, when)
    journal.append_note(session_id, report)
    return session_id
