"""Windows monitor backed by psutil, the registry and psapi."""

import ctypes
import logging

import psutil

from hoststat.frequency import discover, psutil_clock_mhz
from hoststat.models import CpuSnapshot, MemorySnapshot, ProcessCensus
from hoststat.platform import PlatformMonitor, count_process_threads
from hoststat.rate import RateAccumulator

logger = logging.getLogger(__name__)

PROCESSOR_KEY = r"HARDWARE\DESCRIPTION\System\CentralProcessor"


class PERFORMANCE_INFORMATION(ctypes.Structure):
    _fields_ = [
        ("cb", ctypes.c_uint32),
        ("CommitTotal", ctypes.c_size_t),
        ("CommitLimit", ctypes.c_size_t),
        ("CommitPeak", ctypes.c_size_t),
        ("PhysicalTotal", ctypes.c_size_t),
        ("PhysicalAvailable", ctypes.c_size_t),
        ("SystemCache", ctypes.c_size_t),
        ("KernelTotal", ctypes.c_size_t),
        ("KernelPaged", ctypes.c_size_t),
        ("KernelNonpaged", ctypes.c_size_t),
        ("PageSize", ctypes.c_size_t),
        ("HandleCount", ctypes.c_uint32),
        ("ProcessCount", ctypes.c_uint32),
        ("ThreadCount", ctypes.c_uint32),
    ]


class WindowsMonitor(PlatformMonitor):
    """
    System monitor for Windows.

    Only nominal clocks are public (registry ~MHz per logical processor);
    live clocks and temperature need vendor drivers, so clock is nominal and
    temperature is always unavailable.
    """

    def __init__(self) -> None:
        self._cpu_rate = RateAccumulator(read_cpu_ticks)

    def get_cpu_stats(self) -> CpuSnapshot:
        usage = self._cpu_rate.measure()
        cores = discover([read_processor_mhz])
        return CpuSnapshot(usage_percent=usage, clock_mhz=nominal_clock_mhz(), cores=cores)

    def get_mem_stats(self) -> MemorySnapshot:
        vm = psutil.virtual_memory()
        total = vm.total
        available = vm.available

        # Windows has no "swap used". Commit charge above physical RAM is the
        # closest public figure, so this is an approximation.
        swap_used = 0
        swap_total = 0
        commit = read_commit_charge()
        if commit is not None:
            commit_total, commit_limit = commit
            swap_total = commit_limit
            swap_used = max(0, commit_total - total)

        return MemorySnapshot(
            total_bytes=total,
            used_bytes=max(0, total - available),
            free_bytes=available,
            swap_used_bytes=swap_used,
            swap_total_bytes=swap_total,
        )

    def get_process_thread_count(self) -> ProcessCensus:
        return count_process_threads()


def read_cpu_ticks() -> dict[str, float]:
    # psutil already subtracts idle from GetSystemTimes' kernel time.
    times = psutil.cpu_times()
    return {"user": times.user, "system": times.system, "idle": times.idle}


def read_processor_mhz() -> list[tuple[int, float]]:
    """Nominal ~MHz of every CentralProcessor\\<N> registry key."""
    import winreg

    readings: list[tuple[int, float]] = []
    with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, PROCESSOR_KEY) as root:
        index = 0
        while True:
            try:
                name = winreg.EnumKey(root, index)
            except OSError:
                break
            index += 1
            if not name.isdigit():
                continue
            try:
                with winreg.OpenKey(root, name) as key:
                    mhz, _ = winreg.QueryValueEx(key, "~MHz")
            except OSError:
                continue
            readings.append((int(name), float(mhz)))
    return readings


def nominal_clock_mhz() -> float:
    """~MHz of processor 0, falling back to psutil's figure."""
    try:
        import winreg

        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, PROCESSOR_KEY + r"\0") as key:
            mhz, _ = winreg.QueryValueEx(key, "~MHz")
        if mhz > 0:
            return float(mhz)
    except (ImportError, OSError) as e:
        logger.debug(f"Registry clock unavailable: {e}")

    return psutil_clock_mhz()


def read_commit_charge() -> tuple[int, int] | None:
    """(commit total, commit limit) in bytes, or None if psapi is unavailable."""
    try:
        psapi = ctypes.WinDLL("psapi", use_last_error=True)
    except (AttributeError, OSError) as e:
        logger.debug(f"psapi unavailable: {e}")
        return None

    psapi.GetPerformanceInfo.argtypes = [ctypes.POINTER(PERFORMANCE_INFORMATION), ctypes.c_uint32]
    psapi.GetPerformanceInfo.restype = ctypes.c_int

    pi = PERFORMANCE_INFORMATION()
    pi.cb = ctypes.sizeof(PERFORMANCE_INFORMATION)
    if not psapi.GetPerformanceInfo(ctypes.byref(pi), pi.cb):
        logger.debug(f"GetPerformanceInfo failed: {ctypes.get_last_error()}")
        return None

    page = int(pi.PageSize)
    return int(pi.CommitTotal) * page, int(pi.CommitLimit) * page
