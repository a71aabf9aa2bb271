"""Sampling driver for hoststat."""

import logging
import threading
import time
from dataclasses import dataclass
from queue import Queue

from hoststat.models import CpuSnapshot, MemorySnapshot, ProcessCensus
from hoststat.platform import PlatformMonitor, create_platform_monitor

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SystemSnapshot:
    """Everything collected in one tick."""

    cpu: CpuSnapshot
    memory: MemorySnapshot
    census: ProcessCensus
    timestamp: float


class SystemMonitor:
    """
    Polls a PlatformMonitor on a fixed cadence.

    Runs in a separate daemon thread and pushes updates to a thread-safe Queue.
    Ticks run strictly one after another, so the CPU rate always covers
    exactly the time since the previous tick.
    """

    def __init__(
        self,
        update_queue: Queue[SystemSnapshot],
        platform_monitor: PlatformMonitor | None = None,
        poll_rate: float = 3.0,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            update_queue: Thread-safe queue to push updates to.
            platform_monitor: Source of the figures. Defaults to the one for this OS.
            poll_rate: How often to poll the system (in seconds). Default 3.0s.
        """
        self._queue = update_queue
        self._platform = platform_monitor or create_platform_monitor()
        self._poll_rate = max(0.1, poll_rate)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_lock = threading.Lock()

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SystemMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def collect_snapshot(self) -> SystemSnapshot:
        """Run one tick synchronously."""
        with self._tick_lock:
            cpu = self._platform.get_cpu_stats()
            memory = self._platform.get_mem_stats()
            census = self._platform.get_process_thread_count()
        return SystemSnapshot(cpu=cpu, memory=memory, census=census, timestamp=time.time())

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self.collect_snapshot())
            except Exception:
                # Keep the loop alive; the next tick may succeed
                logger.exception("Sampling tick failed")

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)
