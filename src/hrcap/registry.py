"""Enumerate, name and delete recording sessions.

A session has no file of its own: it exists as the shared prefix of its
artifact names, ``{device}_{created}``, e.g.
``Morpheus-M7_2024-02-13T12-00-00.000Z_raw.csv``. The creation timestamp is
ISO-8601 UTC with '-' in place of ':' so names are path-safe and sessions
for the same device sort by creation time.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from hrcap.decoders.observation import utc_now
from hrcap.journal import ARTIFACT_SUFFIXES, ArtifactKind, artifact_name, safe_component

logger = logging.getLogger(__name__)

SESSION_SEPARATOR = "_"
SESSION_TIME_FORMAT = "%Y-%m-%dT%H-%M-%S.%fZ"


def format_session_time(ts: datetime) -> str:
    ts = ts.astimezone(timezone.utc)
    # %f is microseconds; keep milliseconds
    return ts.strftime(SESSION_TIME_FORMAT)[:-4] + "Z"


def new_session_id(device_name: str, now: datetime | None = None) -> str:
    """Build a session id from a device name and a creation time."""
    created = format_session_time(now or utc_now())
    return f"{safe_component(device_name)}{SESSION_SEPARATOR}{created}"


def parse_session_id(session_id: str) -> tuple[str, datetime]:
    """Split a session id back into (device_name, created_at).

    Raises ValueError if the id wasn't produced by ``new_session_id``.
    """
    name, sep, created = session_id.partition(SESSION_SEPARATOR)
    if not sep or not name:
        raise ValueError(f"not a session id: {session_id!r}")
    when = datetime.strptime(created, SESSION_TIME_FORMAT).replace(tzinfo=timezone.utc)
    return name, when


def _session_of(filename: str) -> str | None:
    if not any(filename.endswith(suffix) for suffix in ARTIFACT_SUFFIXES.values()):
        return None
    parts = filename.split(SESSION_SEPARATOR)
    if len(parts) < 3:
        return None
    return SESSION_SEPARATOR.join(parts[:2])


class SessionRegistry:
    """Session bookkeeping over the journal's data directory."""

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)

    def _filenames(self) -> list[str]:
        try:
            return [p.name for p in self.data_dir.iterdir() if p.is_file()]
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error("Failed to list sessions in %s: %s", self.data_dir, e)
            return []

    def list_sessions(self) -> list[str]:
        """All session ids with at least one artifact, deduplicated and sorted."""
        sessions = {s for s in map(_session_of, self._filenames()) if s is not None}
        return sorted(sessions)

    def _artifacts(self, session_id: str) -> list[Path]:
        prefix = session_id + SESSION_SEPARATOR
        return [
            self.data_dir / name
            for name in self._filenames()
            if name.startswith(prefix) and _session_of(name) == session_id
        ]

    def session_files(self, session_id: str) -> list[Path]:
        """Existing artifacts of a session, for export.

        Fixed-name artifacts come first (raw, analysis, heart rates), then
        the per-channel binary tables in name order.
        """
        files: list[Path] = []
        for kind in (ArtifactKind.RAW, ArtifactKind.ANALYSIS, ArtifactKind.DERIVED):
            path = self.data_dir / artifact_name(session_id, kind)
            if path.is_file():
                files.append(path)
        binary_suffix = ARTIFACT_SUFFIXES[ArtifactKind.BINARY]
        files.extend(sorted(p for p in self._artifacts(session_id) if p.name.endswith(binary_suffix)))
        return files

    def binary_tables(self, session_id: str) -> dict[str, Path]:
        """Map channel id -> binary table path for a session."""
        prefix = session_id + SESSION_SEPARATOR
        suffix = ARTIFACT_SUFFIXES[ArtifactKind.BINARY]
        tables: dict[str, Path] = {}
        for path in self._artifacts(session_id):
            if path.name.endswith(suffix):
                tables[path.name[len(prefix):-len(suffix)]] = path
        return dict(sorted(tables.items()))

    def delete_session(self, session_id: str) -> list[Path]:
        """Remove every artifact of a session. Missing files are not an error.

        Returns the paths that were removed.
        """
        removed: list[Path] = []
        for path in self._artifacts(session_id):
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error("Failed to delete %s: %s", path.name, e)
                continue
            logger.info("Deleted file: %s", path.name)
            removed.append(path)
        return removed
