"""Platform monitor interface and per-OS selection."""

import sys
from abc import ABC, abstractmethod

import psutil

from hoststat.models import CpuSnapshot, MemorySnapshot, ProcessCensus


class UnsupportedPlatformError(RuntimeError):
    """Raised when no monitor implementation exists for the host OS."""


class PlatformMonitor(ABC):
    """
    One OS's way of producing CPU, memory and process figures.

    Each instance owns the CPU rate baseline, so an instance should be
    polled by one caller at a time. Use separate instances for independent
    callers.
    """

    @abstractmethod
    def get_cpu_stats(self) -> CpuSnapshot:
        """CPU usage since the previous call, clock and temperature."""

    @abstractmethod
    def get_mem_stats(self) -> MemorySnapshot:
        """RAM and swap usage."""

    @abstractmethod
    def get_process_thread_count(self) -> ProcessCensus:
        """Visible processes and their summed thread counts."""


def count_process_threads() -> ProcessCensus:
    """
    Census over psutil's process listing.

    Processes that exit mid-enumeration or deny access are left out of both
    totals.
    """
    process_count = 0
    thread_count = 0

    for proc in psutil.process_iter():
        try:
            threads = proc.num_threads()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
        process_count += 1
        thread_count += threads

    return ProcessCensus(process_count=process_count, thread_count=thread_count)


def create_platform_monitor(platform: str | None = None) -> PlatformMonitor:
    """Pick the monitor implementation for the given (or current) platform."""
    platform = platform or sys.platform

    if platform.startswith("linux"):
        from hoststat.linux import LinuxMonitor

        return LinuxMonitor()
    if platform == "darwin":
        from hoststat.macos import MacMonitor

        return MacMonitor()
    if platform == "win32":
        from hoststat.windows import WindowsMonitor

        return WindowsMonitor()

    raise UnsupportedPlatformError(f"No system monitor for platform {platform!r}")
