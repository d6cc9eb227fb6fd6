"""Live terminal rendering of the stereo needles and peak LEDs."""

from threading import Lock

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from stereovu.audio_meter import LevelState
from stereovu.config import Settings
from stereovu.needle import NeedleRenderer

# Share of the scale drawn as the red zone
RED_ZONE = 0.75


class MeterView:
    """Draws each channel as a horizontal scale with the needle position marked.

    Levels arrive from the frame thread and the panel is redrawn from the
    CLI loop, so shared state sits behind one lock.
    """

    def __init__(self, source_name: str, settings: Settings, console: Console | None = None) -> None:
        self._source_name = source_name
        self._settings = settings
        self._width = settings.display.meter_width
        self._needles = (NeedleRenderer(settings.needle), NeedleRenderer(settings.needle))
        self._peaks = [False, False]
        self._status = "Waiting"
        self._extra_info = ""
        self._lock = Lock()
        self._console = console or Console()
        self._live: Live | None = None

    @property
    def angles(self) -> tuple[float, float]:
        return (self._needles[0].angle, self._needles[1].angle)

    def set_levels(self, levels: LevelState) -> bool:
        """Move both needles; returns True if either moved."""
        with self._lock:
            moved_left = self._needles[0].update(levels.left)
            moved_right = self._needles[1].update(levels.right)
        return moved_left or moved_right

    def set_peak(self, channel: int, active: bool) -> None:
        with self._lock:
            self._peaks[channel] = active

    def update(self, status: str | None = None, extra_info: str | None = None) -> None:
        with self._lock:
            if status is not None:
                self._status = status
            if extra_info is not None:
                self._extra_info = extra_info
        self.refresh()

    def _sweep_position(self, needle: NeedleRenderer) -> int:
        """Column of the needle on the scale, 0 at rest."""
        config = needle.config
        span = config.max_angle - config.min_angle
        fraction = (needle.angle - config.min_angle) / span if span else 0.0
        return max(0, min(self._width - 1, round(fraction * (self._width - 1))))

    def _create_needle_line(self, label: str, needle: NeedleRenderer, peak: bool) -> Text:
        position = self._sweep_position(needle)
        red_from = round(self._width * RED_ZONE)

        line = Text(f"{label} [")
        for column in range(self._width):
            if column == position:
                line.append("┃", style="bold red")
            else:
                line.append("─", style="red" if column >= red_from else "dim")
        line.append("] ")
        line.append("●", style="bold red" if peak else "dim")
        line.append(f" {needle.level:4.2f} {needle.angle:+7.1f}°")
        return line

    def _header(self, status: str, extra_info: str) -> Table:
        grid = Table.grid(padding=(0, 1))
        grid.add_column(style="bold", justify="right")
        grid.add_column()
        grid.add_row("Source", Text(self._source_name))
        grid.add_row("Status", Text(status, style="green" if status == "Running" else "yellow"))
        if extra_info:
            grid.add_row("Info", Text(extra_info, style="cyan"))
        return grid

    def _render(self) -> Panel:
        with self._lock:
            peaks = tuple(self._peaks)
            status = self._status
            extra_info = self._extra_info
            needles = Text("\n").join(
                self._create_needle_line(label, needle, peak)
                for label, needle, peak in zip("LR", self._needles, peaks)
            )

        return Panel(
            Group(self._header(status, extra_info), Text(), needles),
            title="stereovu",
            title_align="left",
            border_style="cyan",
            padding=(0, 1),
        )

    def refresh(self) -> None:
        if self._live is not None:
            self._live.update(self._render())

    def start(self) -> None:
        self._live = Live(
            self._render(),
            console=self._console,
            refresh_per_second=min(30.0, self._settings.display.fps),
            transient=True,
        )
        self._live.start()

    def stop(self) -> None:
        if self._live is None:
            return
        self._live.stop()
        self._live = None

    def __enter__(self) -> "MeterView":
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()
