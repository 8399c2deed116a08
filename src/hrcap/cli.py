"""CLI for the hrcap Morpheus capture toolkit."""

import asyncio
import logging
from pathlib import Path

import click

from hrcap.config import CaptureConfig


@click.group()
@click.option("--data-dir", "-D", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Session data directory (default: $HRCAP_DATA_DIR or ~/HRCapData).")
@click.option("--verbose", "-v", is_flag=True, help="Log per-frame detail.")
@click.pass_context
def main(ctx: click.Context, data_dir: Path | None, verbose: bool) -> None:
    """hrcap — Morpheus heart-rate monitor capture and protocol decoding toolkit."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = CaptureConfig.from_env()
    if data_dir is not None:
        config.data_dir = data_dir
    ctx.obj = config


@main.command()
@click.option("--timeout", "-t", default=None, type=float, help="Scan timeout in seconds.")
@click.pass_obj
def scan(config: CaptureConfig, timeout: float | None) -> None:
    """Scan for nearby heart-rate monitors."""
    from hrcap.transport import scan as do_scan

    asyncio.run(do_scan(timeout or config.scan_timeout, config.device_name_hints))


@main.command()
@click.option("--address", "-a", default=None, help="BLE address to connect to.")
@click.option("--duration", "-d", default=None, type=float, help="Capture duration in seconds.")
@click.option("--health-sink", default=None, type=click.Path(dir_okay=False, path_type=Path),
              help="Append validated heart rates to this JSONL file.")
@click.pass_obj
def capture(config: CaptureConfig, address: str | None, duration: float | None,
            health_sink: Path | None) -> None:
    """Connect to a monitor and record a session."""
    from hrcap.coordinator import CaptureCoordinator
    from hrcap.errors import TransportUnavailable
    from hrcap.journal import SessionJournal
    from hrcap.sink import JsonlHealthSink
    from hrcap.transport import capture as do_capture

    sink_path = health_sink or config.health_sink_path
    sink = JsonlHealthSink(sink_path) if sink_path else None

    async def _capture() -> None:
        journal = SessionJournal(config.data_dir)
        async with CaptureCoordinator(journal, sink, config.log_buffer_size) as coordinator:
            coordinator.subscribe(_print_heart_rate())
            await do_capture(
                coordinator,
                address,
                duration,
                scan_timeout=config.scan_timeout,
                name_hints=config.device_name_hints,
            )
            state = coordinator.snapshot()
        click.echo(f"\nCapture complete. {state.event_count} frames, "
                   f"{state.write_failures} write failure(s).")

    try:
        asyncio.run(_capture())
    except TransportUnavailable as e:
        raise click.ClickException(str(e))
    except KeyboardInterrupt:
        click.echo("\nStopped.")


def _print_heart_rate():
    last = None

    def _listener(state) -> None:
        nonlocal last
        if state.last_heart_rate is not None and state.last_heart_rate != last:
            click.echo(f"  HR: {state.last_heart_rate} bpm")
        last = state.last_heart_rate

    return _listener


@main.command()
@click.pass_obj
def sessions(config: CaptureConfig) -> None:
    """List recorded sessions."""
    from hrcap.registry import SessionRegistry, parse_session_id

    found = SessionRegistry(config.data_dir).list_sessions()
    if not found:
        click.echo(f"No sessions in {config.data_dir}")
        return
    for session_id in found:
        try:
            name, created = parse_session_id(session_id)
            click.echo(f"  {session_id}  ({name}, {created:%Y-%m-%d %H:%M:%S} UTC)")
        except ValueError:
            click.echo(f"  {session_id}")


@main.command()
@click.argument("session")
@click.pass_obj
def files(config: CaptureConfig, session: str) -> None:
    """Print the files belonging to a session (for export)."""
    from hrcap.registry import SessionRegistry

    paths = SessionRegistry(config.data_dir).session_files(session)
    if not paths:
        raise click.ClickException(f"No files for session {session}")
    for path in paths:
        click.echo(str(path))


@main.command()
@click.argument("session")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_obj
def delete(config: CaptureConfig, session: str, yes: bool) -> None:
    """Delete every file of a session."""
    from hrcap.registry import SessionRegistry

    if not yes:
        click.confirm(f"Delete session {session}? This cannot be undone", abort=True)
    removed = SessionRegistry(config.data_dir).delete_session(session)
    click.echo(f"Removed {len(removed)} file(s).")


@main.command()
@click.argument("session")
@click.option("--output", "-o", default=None, help="Write decoded frames as JSON.")
@click.option("--verbose", "-v", is_flag=True, help="Show raw-only frames too.")
@click.option("--stats", is_flag=True, help="Print session statistics after replay.")
@click.pass_obj
def replay(config: CaptureConfig, session: str, output: str | None, verbose: bool,
           stats: bool) -> None:
    """Re-decode a recorded session with the current decoders."""
    from hrcap.registry import SessionRegistry
    from hrcap.replay import replay_session

    observations = replay_session(SessionRegistry(config.data_dir), session, output, verbose)

    if stats:
        from hrcap.stats import summarize

        click.echo("\n--- Session Statistics ---")
        click.echo(summarize(observations).to_json())


@main.command()
@click.argument("channel")
@click.argument("hex_data")
def decode(channel: str, hex_data: str) -> None:
    """Decode one frame, e.g. `hrcap decode FC20 "01 0A C6 4E 4D 2C FB 02 8A 1E AF 3C 00 28"`."""
    from hrcap.decoders.frame import FrameDecoder, analysis_report
    from hrcap.metrics import derive, heart_rate_is_plausible
    from hrcap.protocol import hex_to_bytes

    try:
        payload = hex_to_bytes(hex_data)
    except ValueError as e:
        raise click.BadParameter(f"invalid hex: {e}", param_hint="HEX_DATA")

    obs = derive(FrameDecoder.decode(channel, payload))
    click.echo(analysis_report(obs), nl=False)
    if obs.heart_rate is not None and not heart_rate_is_plausible(obs.heart_rate):
        click.echo("(heart rate outside 30-220 bpm; would not be forwarded)")


@main.command()
@click.option("--address", "-a", default=None, help="BLE address to connect to.")
@click.pass_obj
def probe(config: CaptureConfig, address: str | None) -> None:
    """Send exploration commands to every write characteristic while recording."""
    from hrcap.coordinator import CaptureCoordinator
    from hrcap.errors import TransportUnavailable
    from hrcap.journal import SessionJournal
    from hrcap.probe import explore, exploration_report, save_report
    from hrcap.transport import capture as do_capture

    async def _probe() -> None:
        journal = SessionJournal(config.data_dir)
        async with CaptureCoordinator(journal, log_buffer_size=config.log_buffer_size) as coordinator:

            async def _explore(client) -> None:
                attempts = await explore(
                    client,
                    coordinator,
                    command_delay=config.probe_command_delay,
                    channel_pause=config.probe_channel_pause,
                )
                sent = sum(1 for _, _, ok in attempts if ok)
                click.echo(f"\nSent {sent}/{len(attempts)} command(s).")
                report = exploration_report(client.address)
                session_id = save_report(journal, report)
                click.echo(f"Report saved to session: {session_id}")

            await do_capture(
                coordinator,
                address,
                scan_timeout=config.scan_timeout,
                name_hints=config.device_name_hints,
                action=_explore,
            )

    try:
        asyncio.run(_probe())
    except TransportUnavailable as e:
        raise click.ClickException(str(e))
    except KeyboardInterrupt:
        click.echo("\nStopped.")


if __name__ == "__main__":
    main()
