"""Capture configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DATA_DIR_ENV = "HRCAP_DATA_DIR"
SINK_PATH_ENV = "HRCAP_HEALTH_SINK"


def default_data_dir() -> Path:
    return Path.home() / "HRCapData"


@dataclass
class CaptureConfig:
    """
    Settings shared by the capture, probe and session-management commands.

    Paths come from the environment (``HRCAP_DATA_DIR``, ``HRCAP_HEALTH_SINK``)
    when set; CLI options override individual fields.
    """

    # Storage
    data_dir: Path = field(default_factory=default_data_dir)
    health_sink_path: Path | None = None

    # Live state
    log_buffer_size: int = 500  # Recent frames kept for the presentation layer

    # Transport
    scan_timeout: float = 10.0
    device_name_hints: tuple[str, ...] = ("morpheus", "hrm")

    # Command probing
    probe_command_delay: float = 1.0  # Wait for a response after each command
    probe_channel_pause: float = 2.0  # Break between write characteristics

    @classmethod
    def from_env(cls) -> CaptureConfig:
        config = cls()
        data_dir = os.environ.get(DATA_DIR_ENV)
        if data_dir:
            config.data_dir = Path(data_dir).expanduser()
        sink_path = os.environ.get(SINK_PATH_ENV)
        if sink_path:
            config.health_sink_path = Path(sink_path).expanduser()
        return config
