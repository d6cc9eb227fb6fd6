"""Command-line interface for stereovu."""

import argparse
import logging
import signal
import sys
import threading
from functools import partial
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from stereovu.audio_meter import LevelState
from stereovu.config import Settings, get_settings
from stereovu.devices import AudioDevice, get_device_by_id, list_input_devices, select_best_device
from stereovu.exceptions import ConfigError, StereoVUError
from stereovu.extractor import LevelExtractor
from stereovu.meter_view import MeterView
from stereovu.needle import PeakIndicator
from stereovu.scheduler import FrameScheduler
from stereovu.session import SessionState
from stereovu.sources import AudioSource, DeviceSource, FileSource

console = Console()


def _configure_logging(verbose: bool) -> None:
    """Route log records through rich on the shared console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )


def _report(error: Exception) -> None:
    console.print(f"[red]error:[/red] {error}")


def _get_audio_device(device_id: int | None) -> AudioDevice | None:
    """Resolve the device to meter, or None after reporting why not."""
    try:
        if device_id is not None:
            return get_device_by_id(device_id)
        return select_best_device()
    except StereoVUError as e:
        _report(e)
        return None


def _build_source(args: argparse.Namespace, settings: Settings) -> AudioSource | None:
    """Create the source named on the command line (error already printed on None)."""
    block_size = settings.audio.block_size
    if args.file:
        try:
            return FileSource(Path(args.file), loop=args.loop, block_size=block_size)
        except StereoVUError as e:
            _report(e)
            return None

    device_id = args.device if args.device is not None else settings.audio.device_id
    device = _get_audio_device(device_id)
    if device is None:
        return None
    return DeviceSource(device, sample_rate=settings.audio.sample_rate, block_size=block_size)


def _load_settings(args: argparse.Namespace) -> Settings | None:
    try:
        return get_settings(args.config)
    except ConfigError as e:
        _report(e)
        return None


class StopSignal:
    """Set by SIGINT or SIGTERM; the redraw loop waits on it."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def __call__(self, signum: int, frame: object) -> None:
        self._event.set()

    def install(self) -> None:
        for signum in (signal.SIGINT, signal.SIGTERM):
            signal.signal(signum, self)

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds; return True once a stop was requested."""
        return self._event.wait(timeout)


def _source_info(source: AudioSource) -> str:
    info = f"{source.channels}ch @ {source.sample_rate} Hz"
    if source.channels < 2:
        return f"{info}, mono (right follows left)"
    return info


def _status_for(extractor: LevelExtractor) -> str:
    session = extractor.session
    if session is None:
        return "No signal"
    if session.state is SessionState.SUSPENDED:
        return "Suspended (press Enter)" if session.awaiting_gesture else "Suspended"
    return "Running"


def _watch_for_key(scheduler: FrameScheduler, extractor: LevelExtractor) -> None:
    """Treat the first Enter on stdin as the user gesture."""

    def wait() -> None:
        try:
            sys.stdin.readline()
        except (OSError, ValueError):
            return
        # Resume on the frame thread, next to every other session call
        scheduler.set_timeout(extractor.notify_gesture, 0)

    threading.Thread(target=wait, name="stereovu-gesture", daemon=True).start()


def cmd_list_devices(args: argparse.Namespace) -> int:
    """Print input devices, best metering candidate first."""
    try:
        devices = list_input_devices()
    except StereoVUError as e:
        _report(e)
        return 1

    if not devices:
        console.print("[yellow]No input devices.[/yellow]")
        return 0

    chosen = select_best_device(devices)
    table = Table(title="Input devices", title_justify="left")
    table.add_column("", width=1)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Device")
    table.add_column("Role", style="magenta")
    table.add_column("Format", justify="right")
    table.add_column("Score", justify="right", style="dim")
    for dev in sorted(devices, key=lambda d: (-d.priority, d.id)):
        table.add_row(
            "[green]>[/green]" if dev.id == chosen.id else "",
            str(dev.id),
            dev.name,
            dev.role.value,
            Text(f"{dev.channels}ch / {dev.sample_rate:.0f} Hz", style="" if dev.is_stereo else "dim"),
            str(dev.priority),
        )

    console.print(table)
    console.print("[dim]> marks the device `monitor` uses when no --device is given[/dim]")
    return 0


def cmd_monitor(args: argparse.Namespace) -> int:
    """Show live stereo VU needles for a device or WAV file."""
    settings = _load_settings(args)
    if settings is None:
        return 1

    settings = settings.model_copy(deep=True)
    if args.fps is not None:
        settings.display.fps = args.fps
    if args.wait_for_key:
        settings.audio.require_gesture = True

    source = _build_source(args, settings)
    if source is None:
        return 1

    scheduler = FrameScheduler(fps=settings.display.fps)
    view = MeterView(source.name, settings, console=console)
    view.update(extra_info=_source_info(source))
    peaks = [
        PeakIndicator(scheduler, settings.peak, on_change=partial(view.set_peak, channel))
        for channel in (0, 1)
    ]

    def on_levels(levels: LevelState) -> None:
        view.set_levels(levels)
        peaks[0].update(levels.left)
        peaks[1].update(levels.right)

    extractor = LevelExtractor(settings, scheduler, on_levels=on_levels)

    stop = StopSignal()
    stop.install()

    extractor.bind(source)
    if extractor.session is None:
        console.print("[yellow]Metering unavailable; needles stay at rest.[/yellow]")
    if args.wait_for_key:
        _watch_for_key(scheduler, extractor)

    redraw_interval = 1.0 / min(30.0, settings.display.fps)
    try:
        with scheduler, view:
            while not stop.wait(redraw_interval):
                if isinstance(source, FileSource) and source.finished:
                    break
                view.update(status=_status_for(extractor))
    finally:
        scheduler.stop()
        extractor.close()
        for peak in peaks:
            peak.close()

    return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stereovu",
        description="Stereo VU meter with analog needle ballistics",
    )
    parser.add_argument("-c", "--config", type=Path, help="settings.yml to load (default: ./settings.yml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log at DEBUG level")
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    devices = commands.add_parser("list-devices", help="show input devices and the auto-selected one")
    devices.set_defaults(func=cmd_list_devices)

    monitor = commands.add_parser("monitor", help="show live VU needles")
    source = monitor.add_mutually_exclusive_group()
    source.add_argument("--device", type=int, metavar="ID", help="input device id from list-devices")
    source.add_argument("-f", "--file", metavar="WAV", help="play a WAV file and meter it")
    monitor.add_argument("--loop", action="store_true", help="restart the WAV file at its end")
    monitor.add_argument("--fps", type=float, help="frame rate of the meter loop (default: display.fps)")
    monitor.add_argument(
        "--wait-for-key",
        action="store_true",
        help="start suspended and resume on the first Enter",
    )
    monitor.set_defaults(func=cmd_monitor)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    if args.command is None:
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
