"""macOS monitor backed by psutil and powermetrics."""

from collections.abc import Sequence

import psutil

from hoststat.frequency import (
    HELPER_TIMEOUT,
    discover,
    parse_core_frequencies,
    psutil_clock_mhz,
    run_helper,
)
from hoststat.models import CpuSnapshot, MemorySnapshot, ProcessCensus
from hoststat.platform import PlatformMonitor, count_process_threads
from hoststat.rate import RateAccumulator

# One cpu_power sample; needs root, otherwise exits non-zero straight away.
POWERMETRICS_ARGV = ("/usr/bin/powermetrics", "--samplers", "cpu_power", "-n", "1")


class MacMonitor(PlatformMonitor):
    """
    System monitor for macOS.

    CPU ticks, page statistics and swap usage come from psutil, which wraps
    host_statistics and sysctl. Per-core clocks are only published by
    powermetrics, so that tool is run under a hard timeout each poll.
    """

    def __init__(
        self,
        helper_argv: Sequence[str] = POWERMETRICS_ARGV,
        helper_timeout: float = HELPER_TIMEOUT,
    ) -> None:
        self._helper_argv = tuple(helper_argv)
        self._helper_timeout = helper_timeout
        self._cpu_rate = RateAccumulator(read_cpu_ticks)

    def get_cpu_stats(self) -> CpuSnapshot:
        usage = self._cpu_rate.measure()
        cores = discover([self._powermetrics_frequencies])
        clock = cores.average_freq_mhz if cores.per_core_mhz else psutil_clock_mhz()
        # No public temperature API
        return CpuSnapshot(usage_percent=usage, clock_mhz=clock, cores=cores)

    def get_mem_stats(self) -> MemorySnapshot:
        vm = psutil.virtual_memory()
        swap = psutil.swap_memory()

        # The OS has no single "used" field; derive it from page counts.
        used = vm.active + vm.inactive + vm.wired
        return MemorySnapshot(
            total_bytes=vm.total,
            used_bytes=used,
            free_bytes=vm.free,
            swap_used_bytes=swap.used,
            swap_total_bytes=swap.total,
        )

    def get_process_thread_count(self) -> ProcessCensus:
        return count_process_threads()

    def _powermetrics_frequencies(self) -> list[tuple[int, float]]:
        out = run_helper(self._helper_argv, timeout=self._helper_timeout)
        if out is None:
            return []
        return parse_core_frequencies(out)


def read_cpu_ticks() -> dict[str, float]:
    times = psutil.cpu_times()
    return {
        "user": times.user,
        "nice": times.nice,
        "system": times.system,
        "idle": times.idle,
    }
