"""Append-only, per-session capture artifacts.

Every session owns four kinds of file under the data directory, all named
with the session id as prefix:

    {session}_raw.csv               one row per received frame, three encodings
    {session}_{channel}_binary.dat  length-prefixed frames, one file per channel
    {session}_heartrates.csv        accepted heart-rate samples
    {session}_analysis.txt          timestamped free-text narrative

Files are created on first write (with a header row for the CSVs) and only
ever appended to. Write failures are logged and reported as ``False`` — the
journal never raises into the capture loop.
"""

from __future__ import annotations

import logging
import struct
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterator

from hrcap.decoders.observation import utc_now
from hrcap.errors import StorageWriteFailure
from hrcap.protocol import format_hex

logger = logging.getLogger(__name__)

RAW_HEADER = "Timestamp,CharacteristicUUID,DataLength,HexData,ASCIIData,BinaryData\n"
DERIVED_HEADER = "Timestamp,HeartRate\n"

# Binary record: float64 seconds since the Unix epoch, then a big-endian
# uint32 payload length, then the payload.
BINARY_TIMESTAMP_FMT = "<d"
BINARY_LENGTH_FMT = ">I"
BINARY_RECORD_HEADER_SIZE = struct.calcsize(BINARY_TIMESTAMP_FMT) + struct.calcsize(BINARY_LENGTH_FMT)


class ArtifactKind(Enum):
    RAW = "raw"
    BINARY = "binary"
    DERIVED = "heartrates"
    ANALYSIS = "analysis"


ARTIFACT_SUFFIXES = {
    ArtifactKind.RAW: "_raw.csv",
    ArtifactKind.BINARY: "_binary.dat",
    ArtifactKind.DERIVED: "_heartrates.csv",
    ArtifactKind.ANALYSIS: "_analysis.txt",
}


def safe_component(value: str) -> str:
    """Make a string usable inside an artifact name.

    '_' separates the parts of an artifact name, so it is replaced along with
    path separators and anything else that isn't filename-friendly.
    """
    cleaned = "".join(c if c.isalnum() or c in "-." else "-" for c in value.strip())
    return cleaned.strip(".") or "unknown"


def artifact_name(session_id: str, kind: ArtifactKind, channel: str | None = None) -> str:
    if kind is ArtifactKind.BINARY:
        if channel is None:
            raise ValueError("binary artifacts are per channel")
        return f"{session_id}_{safe_component(channel)}{ARTIFACT_SUFFIXES[kind]}"
    return f"{session_id}{ARTIFACT_SUFFIXES[kind]}"


# ---------------------------------------------------------------------------
# Row / record formatting
# ---------------------------------------------------------------------------


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 UTC with millisecond precision: 2024-02-13T12:00:00.123Z."""
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ascii_text(payload: bytes) -> str:
    """Best-effort ASCII rendering of a payload for the raw table.

    Returns "N/A" when the payload isn't ASCII. Commas are escaped as "\\,"
    and control characters as "\\xNN" so a row always stays one line.
    """
    try:
        text = payload.decode("ascii")
    except UnicodeDecodeError:
        return "N/A"
    out = []
    for ch in text:
        if ch == ",":
            out.append("\\,")
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f"\\x{ord(ch):02X}")
        else:
            out.append(ch)
    return "".join(out)


def binary_digits(payload: bytes) -> str:
    return " ".join(f"{b:08b}" for b in payload)


def format_raw_row(timestamp: datetime, channel: str, payload: bytes) -> str:
    return (
        f"{format_timestamp(timestamp)},{channel},{len(payload)},"
        f"{format_hex(payload)},{ascii_text(payload)},{binary_digits(payload)}\n"
    )


def format_binary_record(timestamp: datetime, payload: bytes) -> bytes:
    return (
        struct.pack(BINARY_TIMESTAMP_FMT, timestamp.timestamp())
        + struct.pack(BINARY_LENGTH_FMT, len(payload))
        + bytes(payload)
    )


def format_derived_row(timestamp: datetime, heart_rate: int) -> str:
    return f"{format_timestamp(timestamp)},{heart_rate}\n"


def format_note(message: str, when: datetime | None = None) -> str:
    if when is None:
        when = utc_now()
    local = when.astimezone().isoformat(timespec="seconds")
    return f"[{local}] {message}\n"


def iter_binary_records(path: str | Path) -> Iterator[tuple[datetime, bytes]]:
    """Read a binary table back as (timestamp, payload) tuples.

    A truncated record at the end of the file (e.g. a capture killed
    mid-write) ends iteration rather than raising.
    """
    data = Path(path).read_bytes()
    offset = 0
    while offset + BINARY_RECORD_HEADER_SIZE <= len(data):
        (seconds,) = struct.unpack_from(BINARY_TIMESTAMP_FMT, data, offset)
        (length,) = struct.unpack_from(BINARY_LENGTH_FMT, data, offset + 8)
        start = offset + BINARY_RECORD_HEADER_SIZE
        end = start + length
        if end > len(data):
            logger.warning("Truncated record at offset %d in %s", offset, path)
            return
        yield datetime.fromtimestamp(seconds, tz=timezone.utc), data[start:end]
        offset = end


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------


class SessionJournal:
    """Owns the on-disk artifacts of every session under ``data_dir``."""

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)
        self._locks: dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def path_for(self, session_id: str, kind: ArtifactKind, channel: str | None = None) -> Path:
        return self.data_dir / artifact_name(session_id, kind, channel)

    def append_raw(
        self,
        session_id: str,
        channel: str,
        payload: bytes,
        timestamp: datetime | None = None,
    ) -> bool:
        row = format_raw_row(timestamp or utc_now(), channel, payload)
        return self._append(
            self.path_for(session_id, ArtifactKind.RAW),
            row.encode("utf-8"),
            header=RAW_HEADER.encode("utf-8"),
        )

    def append_binary(
        self,
        session_id: str,
        channel: str,
        payload: bytes,
        timestamp: datetime | None = None,
    ) -> bool:
        record = format_binary_record(timestamp or utc_now(), payload)
        return self._append(self.path_for(session_id, ArtifactKind.BINARY, channel), record)

    def append_derived(
        self,
        session_id: str,
        heart_rate: int,
        timestamp: datetime | None = None,
    ) -> bool:
        row = format_derived_row(timestamp or utc_now(), heart_rate)
        return self._append(
            self.path_for(session_id, ArtifactKind.DERIVED),
            row.encode("utf-8"),
            header=DERIVED_HEADER.encode("utf-8"),
        )

    def append_note(self, session_id: str, message: str, when: datetime | None = None) -> bool:
        line = format_note(message, when)
        return self._append(self.path_for(session_id, ArtifactKind.ANALYSIS), line.encode("utf-8"))

    # -- internals ---------------------------------------------------------

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(path)
            if lock is None:
                lock = self._locks[path] = threading.Lock()
            return lock

    def _append(self, path: Path, content: bytes, header: bytes | None = None) -> bool:
        try:
            with self._lock_for(path):
                self._write(path, content, header)
        except StorageWriteFailure as e:
            logger.error("%s", e)
            return False
        return True

    @staticmethod
    def _write(path: Path, content: bytes, header: bytes | None) -> None:
        try:
            created = not path.exists() or path.stat().st_size == 0
            if created:
                path.parent.mkdir(parents=True, exist_ok=True)
                if header:
                    content = header + content
            with open(path, "ab") as f:
                f.write(content)
        except OSError as e:
            raise StorageWriteFailure(path, e) from e
        if created:
            logger.info("Created new data file: %s", path.name)
