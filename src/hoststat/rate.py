"""CPU utilization from cumulative tick counters."""

import logging
import threading
from collections.abc import Callable, Iterable, Mapping

logger = logging.getLogger(__name__)

TickReader = Callable[[], Mapping[str, float]]


class RateAccumulator:
    """
    Turns two consecutive tick counter readings into a busy percentage.

    The previous reading is owned by the instance. The first call only seeds
    it and returns 0.0, since there is nothing to diff against yet.
    """

    def __init__(self, read_ticks: TickReader, idle_fields: Iterable[str] = ("idle",)) -> None:
        """
        Initialize the accumulator.

        Args:
            read_ticks: Returns the current cumulative counters by component name.
            idle_fields: Components that count as not busy.
        """
        self._read_ticks = read_ticks
        self._idle_fields = tuple(idle_fields)
        self._previous: dict[str, float] | None = None
        self._lock = threading.Lock()

    def measure(self) -> float:
        """Return busy time since the previous call as a percentage."""
        with self._lock:
            try:
                current = dict(self._read_ticks())
            except (OSError, ValueError) as e:
                logger.debug(f"CPU tick counters unavailable: {e}")
                return 0.0

            previous, self._previous = self._previous, current
            if previous is None:
                return 0.0

            return busy_percent(previous, current, self._idle_fields)


def busy_percent(
    previous: Mapping[str, float],
    current: Mapping[str, float],
    idle_fields: Iterable[str] = ("idle",),
) -> float:
    """
    Percentage of non-idle time between two counter readings.

    A component that went backwards (reset or wraparound) contributes 0.
    """
    deltas = {name: max(0, value - previous.get(name, value)) for name, value in current.items()}
    total = sum(deltas.values())
    if total == 0:
        return 0.0

    idle = sum(deltas.get(name, 0) for name in idle_fields)
    return 100.0 * (total - idle) / total
