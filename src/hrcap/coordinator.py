"""Capture coordinator: the single writer behind a live capture.

Transport callbacks, session start/stop requests and connection lifecycle
events are all turned into messages on one ``asyncio.Queue`` and handled
one at a time by a single consumer task, so the live state and the active
session id are never mutated concurrently. For every frame the coordinator:

    1. appends the frame to the session's raw and binary tables
    2. decodes it and derives heart rate from the RR interval if needed
    3. for a plausible heart rate, updates the live value, appends to the
       heart-rate table and writes a narrative note
    4. writes the frame's analysis report to the narrative
    5. hands the heart rate to the health sink, without waiting for it

Nothing that goes wrong in steps 1-5 stops the capture.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Union

from hrcap.decoders.frame import FrameDecoder, analysis_report
from hrcap.decoders.observation import Observation, RawEvent, utc_now
from hrcap.journal import SessionJournal, ascii_text, format_timestamp
from hrcap.metrics import derive, heart_rate_is_plausible
from hrcap.protocol import format_hex
from hrcap.registry import new_session_id
from hrcap.sink import HealthSink, NullHealthSink

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StartSession:
    device_name: str


@dataclass(frozen=True)
class StopSession:
    pass


@dataclass(frozen=True)
class Connected:
    device_name: str


@dataclass(frozen=True)
class Disconnected:
    reason: str | None = None


@dataclass(frozen=True)
class Note:
    message: str


Message = Union[RawEvent, StartSession, StopSession, Connected, Disconnected, Note]

_SHUTDOWN = object()


# ---------------------------------------------------------------------------
# Live state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    channel: str
    payload: bytes

    @property
    def hex(self) -> str:
        return format_hex(self.payload)


@dataclass(frozen=True)
class LiveState:
    """Immutable snapshot of what the coordinator currently knows."""

    recording: bool = False
    session_id: str | None = None
    device_name: str | None = None
    last_heart_rate: int | None = None
    last_battery_percent: int | None = None
    event_count: int = 0
    write_failures: int = 0
    log: tuple[LogEntry, ...] = field(default_factory=tuple)


class CaptureCoordinator:
    """Serialize capture events into the journal, live state and health sink.

    Use as an async context manager (or call ``start()``/``close()``) from
    inside a running event loop.
    """

    def __init__(
        self,
        journal: SessionJournal,
        sink: HealthSink | None = None,
        log_buffer_size: int = 500,
    ):
        self.journal = journal
        self.sink = sink if sink is not None else NullHealthSink()

        self._queue: asyncio.Queue | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._worker: asyncio.Task | None = None
        self._closing = False
        self._sink_tasks: set[asyncio.Task] = set()
        self._listeners: list[Callable[[LiveState], None]] = []

        # Owned by the consumer task only
        self._session_id: str | None = None
        self._previous_session_id: str | None = None
        self._device_name: str | None = None
        self._last_heart_rate: int | None = None
        self._last_battery: int | None = None
        self._event_count = 0
        self._write_failures = 0
        self._log: deque[LogEntry] = deque(maxlen=log_buffer_size)

        self._state = LiveState()

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        if self._worker is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._closing = False
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run())

    async def close(self) -> None:
        """Drain queued messages, stop the consumer and wait for sink calls."""
        if self._worker is None:
            return
        # Requests arriving after this point would queue behind the sentinel
        self._closing = True
        self._queue.put_nowait(_SHUTDOWN)
        await self._worker
        self._worker = None
        if self._sink_tasks:
            await asyncio.gather(*self._sink_tasks, return_exceptions=True)

    async def __aenter__(self) -> CaptureCoordinator:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # -- inputs ------------------------------------------------------------

    def post(self, message: Message) -> None:
        """Queue a message without waiting for it (event-loop thread only)."""
        if self._closing:
            logger.warning("Coordinator is closing, dropping %r", message)
            return
        self._require_running()
        self._queue.put_nowait((message, None))

    def post_threadsafe(self, message: Message) -> None:
        """Queue a message from a thread other than the event loop's."""
        self._require_running()
        self._loop.call_soon_threadsafe(self.post, message)

    async def start_session(self, device_name: str) -> str:
        """Start recording a new session, ending the current one first."""
        return await self._request(StartSession(device_name))

    async def stop_session(self) -> None:
        """Close the current session. No-op when idle."""
        await self._request(StopSession())

    async def on_event(self, event: RawEvent) -> Observation | None:
        """Process one frame and return its derived observation."""
        return await self._request(event)

    async def connected(self, device_name: str) -> str:
        return await self._request(Connected(device_name))

    async def disconnected(self, reason: str | None = None) -> None:
        await self._request(Disconnected(reason))

    async def note(self, message: str) -> bool:
        """Append a line to the current session's narrative. False when idle."""
        return await self._request(Note(message))

    # -- observable state --------------------------------------------------

    def snapshot(self) -> LiveState:
        return self._state

    def subscribe(self, listener: Callable[[LiveState], None]) -> None:
        """Call ``listener`` with a fresh snapshot after every handled message."""
        self._listeners.append(listener)

    def export_log_csv(self) -> str:
        """Render the recent-frame buffer as CSV for sharing."""
        header = "Timestamp,Characteristic UUID,Hex Data,ASCII\n"
        rows = [
            f"{format_timestamp(e.timestamp)},{e.channel},{e.hex},{ascii_text(e.payload)}"
            for e in self._state.log
        ]
        return header + "\n".join(rows)

    # -- consumer ----------------------------------------------------------

    def _require_running(self) -> None:
        if self._worker is None:
            raise RuntimeError("CaptureCoordinator is not running; call start() first")

    async def _request(self, message: Message) -> Any:
        self._require_running()
        if self._closing:
            logger.warning("Coordinator is closing, ignoring %r", message)
            return None
        future = self._loop.create_future()
        self._queue.put_nowait((message, future))
        return await future

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _SHUTDOWN:
                break
            message, future = item
            result = None
            try:
                result = await self._handle(message)
            except Exception:
                logger.exception("Failed to handle %r", message)
            self._publish()
            if future is not None and not future.done():
                future.set_result(result)

    async def _handle(self, message: Message) -> Any:
        if isinstance(message, RawEvent):
            return await self._handle_event(message)
        if isinstance(message, StartSession):
            return await self._start_session(message.device_name)
        if isinstance(message, StopSession):
            return await self._stop_session()
        if isinstance(message, Connected):
            session_id = await self._start_session(message.device_name)
            await self._note(session_id, f"Connected to device: {message.device_name}")
            return session_id
        if isinstance(message, Disconnected):
            return await self._handle_disconnect(message.reason)
        if isinstance(message, Note):
            if self._session_id is None:
                return False
            return await self._note(self._session_id, message.message)
        raise TypeError(f"unknown message: {message!r}")

    async def _start_session(self, device_name: str) -> str:
        if self._session_id is not None:
            await self._stop_session()
        created = utc_now()
        session_id = new_session_id(device_name, created)
        # Ids have millisecond resolution; a restart must not reopen the last session
        while session_id == self._previous_session_id:
            created += timedelta(milliseconds=1)
            session_id = new_session_id(device_name, created)
        self._session_id = self._previous_session_id = session_id
        self._device_name = device_name
        await self._note(session_id, f"Session started for device: {device_name}")
        logger.info("Started new data collection session: %s", session_id)
        return session_id

    async def _stop_session(self) -> None:
        session_id = self._session_id
        if session_id is None:
            return
        await self._note(session_id, "Session ended")
        self._session_id = None
        logger.info("Stopped data collection session: %s", session_id)

    async def _handle_disconnect(self, reason: str | None) -> None:
        if self._session_id is not None:
            await self._note(self._session_id, f"Disconnected: {reason or 'Normal disconnect'}")
            await self._stop_session()
        self._device_name = None
        self._last_heart_rate = None
        if reason:
            logger.error("Disconnected with error: %s", reason)
        else:
            logger.info("Disconnected from device")

    async def _handle_event(self, event: RawEvent) -> Observation:
        session_id = self._session_id
        self._event_count += 1
        self._log.append(LogEntry(event.timestamp, event.channel, event.payload))
        logger.debug("Logged data from %s: %s", event.channel, format_hex(event.payload))

        if session_id is not None:
            await self._record(self.journal.append_raw, session_id, event.channel, event.payload, event.timestamp)
            await self._record(self.journal.append_binary, session_id, event.channel, event.payload, event.timestamp)

        obs = derive(FrameDecoder.decode_event(event))

        if obs.battery_percent is not None:
            self._last_battery = obs.battery_percent

        forward = False
        if obs.heart_rate is not None:
            if heart_rate_is_plausible(obs.heart_rate):
                forward = True
                self._last_heart_rate = obs.heart_rate
                logger.info("Updated heart rate: %d bpm from %s", obs.heart_rate, obs.channel)
                if session_id is not None:
                    await self._record(self.journal.append_derived, session_id, obs.heart_rate, event.timestamp)
                    await self._note(session_id, f"Heart rate: {obs.heart_rate} bpm from {obs.channel}")
            else:
                logger.info("Ignoring implausible heart rate %d bpm from %s", obs.heart_rate, obs.channel)
                if session_id is not None:
                    await self._note(
                        session_id,
                        f"Implausible heart rate {obs.heart_rate} bpm from {obs.channel}, not forwarded",
                    )

        if session_id is not None:
            await self._note(session_id, analysis_report(obs))

        if forward:
            self._forward(obs.heart_rate, event.timestamp, session_id)
        return obs

    # -- side effects ------------------------------------------------------

    async def _record(self, append: Callable[..., bool], *args: Any) -> bool:
        ok = await asyncio.to_thread(append, *args)
        if not ok:
            self._write_failures += 1
        return ok

    async def _note(self, session_id: str, message: str) -> bool:
        return await self._record(self.journal.append_note, session_id, message)

    def _forward(self, heart_rate: int, timestamp: datetime, session_id: str | None) -> None:
        task = asyncio.create_task(self._notify_sink(heart_rate, timestamp, session_id))
        self._sink_tasks.add(task)
        task.add_done_callback(self._sink_tasks.discard)

    async def _notify_sink(self, heart_rate: int, timestamp: datetime, session_id: str | None) -> None:
        try:
            await self.sink.submit(heart_rate, timestamp)
        except Exception as e:
            logger.warning("Health store rejected %d bpm: %s", heart_rate, e)
            if session_id is not None:
                await asyncio.to_thread(
                    self.journal.append_note,
                    session_id,
                    f"Health store rejected heart rate {heart_rate} bpm: {e}",
                )

    def _publish(self) -> None:
        self._state = LiveState(
            recording=self._session_id is not None,
            session_id=self._session_id,
            device_name=self._device_name,
            last_heart_rate=self._last_heart_rate,
            last_battery_percent=self._last_battery,
            event_count=self._event_count,
            write_failures=self._write_failures,
            log=tuple(self._log),
        )
        for listener in self._listeners:
            try:
                listener(self._state)
            except Exception:
                logger.exception("State listener %r failed", listener)
