"""Health-store sinks that receive validated heart-rate samples.

The real health store (authorization, sample storage) lives outside this
package; anything with an async ``submit(heart_rate, timestamp)`` can stand
in for it. A sink signals refusal by raising ``SinkRejection``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Protocol

from hrcap.errors import SinkRejection

logger = logging.getLogger(__name__)


class HealthSink(Protocol):
    async def submit(self, heart_rate: int, timestamp: datetime) -> None:
        ...


class NullHealthSink:
    """Accepts and discards every sample."""

    async def submit(self, heart_rate: int, timestamp: datetime) -> None:
        return None


class JsonlHealthSink:
    """Append samples to a JSONL file, one ``{"timestamp", "heart_rate"}`` per line."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def submit(self, heart_rate: int, timestamp: datetime) -> None:
        record = {"timestamp": timestamp.isoformat(), "heart_rate": heart_rate}
        try:
            await asyncio.to_thread(self._append, json.dumps(record) + "\n")
        except OSError as e:
            raise SinkRejection(f"cannot write {self.path}: {e}") from e
        logger.debug("Saved heart rate %d bpm to %s", heart_rate, self.path)

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a") as f:
            f.write(line)
