"""hoststat - Textual dashboard and command line entry point."""

import logging
import sys
import time
from queue import Empty, Queue

import click
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from hoststat.models import CoreFrequencyReport
from hoststat.monitor import SystemMonitor, SystemSnapshot
from hoststat.platform import PlatformMonitor, UnsupportedPlatformError, create_platform_monitor
from hoststat.render import format_bytes, format_report, format_temperature

logger = logging.getLogger(__name__)


def usage_bar(percent: float, color: str, width: int = 20) -> str:
    """Markup for a fixed-width usage bar."""
    filled = min(width, max(0, int(percent / (100 / width))))
    return f"[{color}]" + "█" * filled + f"[/{color}]" + "[dim]░[/dim]" * (width - filled)


class HeaderStats(Static):
    """Header widget showing CPU, memory and process figures."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._snapshot: SystemSnapshot | None = None

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_mem_info(), id="mem-info"),
        )

    def update_stats(self, snapshot: SystemSnapshot) -> None:
        """Update the statistics from a system snapshot."""
        self._snapshot = snapshot
        self._refresh_display()

    def _refresh_display(self) -> None:
        """Refresh the display with current data."""
        try:
            cpu_info = self.query_one("#cpu-info", Static)
            mem_info = self.query_one("#mem-info", Static)
            cpu_info.update(self._get_cpu_info())
            mem_info.update(self._get_mem_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_cpu_info(self) -> str:
        """Get CPU info display."""
        if self._snapshot is None:
            return "Loading CPU info..."

        cpu = self._snapshot.cpu
        census = self._snapshot.census
        clock = f"{cpu.clock_mhz:.0f} MHz" if cpu.clock_mhz > 0 else "N/A"
        # Use escaped brackets for the bar container
        return (
            f"CPU \\[{usage_bar(cpu.usage_percent, 'green')}] {cpu.usage_percent:5.1f}%\n"
            f"Clock: {clock} | Cores: {cpu.cores.total_cores}\n"
            f"Temp: {format_temperature(cpu.temperature_celsius)}\n"
            f"Processes: {census.process_count} | Threads: {census.thread_count}"
        )

    def _get_mem_info(self) -> str:
        """Get memory info display."""
        if self._snapshot is None or self._snapshot.memory.total_bytes == 0:
            return "Loading memory info..."

        mem = self._snapshot.memory
        mem_percent = 100.0 * mem.used_bytes / mem.total_bytes
        swap_percent = 100.0 * mem.swap_used_bytes / mem.swap_total_bytes if mem.swap_total_bytes else 0.0

        return (
            f"Mem\\[{usage_bar(mem_percent, 'cyan')}] "
            f"{format_bytes(mem.used_bytes)}/{format_bytes(mem.total_bytes)}\n"
            f"Swp\\[{usage_bar(swap_percent, 'yellow')}] "
            f"{format_bytes(mem.swap_used_bytes)}/{format_bytes(mem.swap_total_bytes)}"
        )


class CoreTable(Container):
    """Container for the per-core frequency table."""

    DEFAULT_CSS = """
    CoreTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize CoreTable."""
        super().__init__(*args, **kwargs)
        self._current_cores: set[int] = set()

    def compose(self) -> ComposeResult:
        """Compose the core table."""
        yield DataTable(id="core-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#core-table", DataTable)
        table.cursor_type = "row"
        table.add_column("CORE", key="core", width=6)
        table.add_column("MHz", key="mhz", width=10)

    def update_cores(self, report: CoreFrequencyReport) -> None:
        """
        Update the table with a new frequency report.

        Uses update_cell for existing rows to avoid re-rendering the whole table.
        """
        table = self.query_one("#core-table", DataTable)
        new_cores = set(report.per_core_mhz)

        for core_id in self._current_cores - new_cores:
            try:
                table.remove_row(str(core_id))
            except Exception:
                pass  # Row may not exist

        for core_id, mhz in sorted(report.per_core_mhz.items()):
            row_key = str(core_id)
            try:
                if core_id in self._current_cores:
                    table.update_cell(row_key, "mhz", f"{mhz:8.0f}")
                else:
                    table.add_row(str(core_id), f"{mhz:8.0f}", key=row_key)
            except Exception:
                pass  # Row changed underneath us

        self._current_cores = new_cores


class HoststatApp(App):
    """Main hoststat application."""

    TITLE = "hoststat"
    SUB_TITLE = "Host Telemetry"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #mem-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(self, platform_monitor: PlatformMonitor | None = None, poll_rate: float = 3.0) -> None:
        """Initialize the HoststatApp."""
        super().__init__()
        self._update_queue: Queue[SystemSnapshot] = Queue()
        self._monitor = SystemMonitor(self._update_queue, platform_monitor, poll_rate=poll_rate)

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield CoreTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the system monitor when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Check the queue for system updates and refresh the UI."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: SystemSnapshot) -> None:
        """Update the UI with the new system snapshot."""
        try:
            self.query_one("#header-stats", HeaderStats).update_stats(snapshot)
            self.query_one(CoreTable).update_cores(snapshot.cpu.cores)
        except Exception:
            logger.debug("UI refresh skipped", exc_info=True)

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def run_plain(monitor: SystemMonitor, once: bool = False, sleep=time.sleep) -> None:
    """Print a report per tick to stdout until interrupted."""
    # First CPU reading only seeds the baseline
    monitor.collect_snapshot()
    while True:
        sleep(monitor.poll_rate)
        click.echo(format_report(monitor.collect_snapshot()))
        if once:
            return


@click.command()
@click.option("--interval", default=3.0, show_default=True, type=float, help="Seconds between samples.")
@click.option("--once", is_flag=True, help="Print a single report and exit.")
@click.option("--plain", is_flag=True, help="Print reports to stdout instead of the dashboard.")
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
)
def main(interval: float, once: bool, plain: bool, log_level: str) -> None:
    """Sample CPU, memory and process figures for this host."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        platform_monitor = create_platform_monitor()
    except UnsupportedPlatformError as e:
        raise click.ClickException(str(e)) from e

    if once or plain:
        monitor = SystemMonitor(Queue(), platform_monitor, poll_rate=interval)
        try:
            run_plain(monitor, once=once)
        except KeyboardInterrupt:
            pass
        return

    HoststatApp(platform_monitor, poll_rate=interval).run()


if __name__ == "__main__":
    main()
