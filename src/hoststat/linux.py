"""Linux monitor backed by procfs and sysfs."""

import logging
import re
from pathlib import Path

from hoststat.frequency import discover
from hoststat.models import (
    TEMPERATURE_UNAVAILABLE,
    CpuSnapshot,
    MemorySnapshot,
    ProcessCensus,
)
from hoststat.platform import PlatformMonitor
from hoststat.rate import RateAccumulator

logger = logging.getLogger(__name__)

_CPU_DIR_RE = re.compile(r"cpu(\d+)")

# hwmon chip names that belong to the CPU package
CPU_SENSOR_CHIPS = ("coretemp", "k10temp", "cpu")
# thermal zone types used by SoCs and laptops without a CPU hwmon chip
CPU_THERMAL_ZONES = ("x86_pkg_temp", "cpu", "soc")


class LinuxMonitor(PlatformMonitor):
    """
    System monitor for Linux.

    Reads /proc and /sys directly. Both roots can be pointed elsewhere, which
    is how the tests feed it a synthetic tree.
    """

    def __init__(self, proc_root: str | Path = "/proc", sys_root: str | Path = "/sys") -> None:
        self._proc = Path(proc_root)
        self._sys = Path(sys_root)
        self._cpu_rate = RateAccumulator(self.read_cpu_ticks)

    def get_cpu_stats(self) -> CpuSnapshot:
        cores = discover([self._sysfs_frequencies, self._cpuinfo_frequencies])
        return CpuSnapshot(
            usage_percent=self._cpu_rate.measure(),
            clock_mhz=cores.average_freq_mhz,
            temperature_celsius=self.read_temperature(),
            cores=cores,
        )

    def get_mem_stats(self) -> MemorySnapshot:
        try:
            meminfo = self._read_meminfo()
        except OSError as e:
            logger.debug(f"meminfo unavailable: {e}")
            return MemorySnapshot()

        total = meminfo.get("MemTotal", 0)
        # Buffers and page cache can be reclaimed, so they count as free.
        free = (
            meminfo.get("MemFree", 0)
            + meminfo.get("Buffers", 0)
            + meminfo.get("Cached", 0)
            + meminfo.get("SReclaimable", 0)
        )
        swap_total = meminfo.get("SwapTotal", 0)
        swap_free = meminfo.get("SwapFree", 0)

        return MemorySnapshot(
            total_bytes=total,
            used_bytes=max(0, total - free),
            free_bytes=min(free, total),
            swap_used_bytes=max(0, swap_total - swap_free),
            swap_total_bytes=swap_total,
        )

    def get_process_thread_count(self) -> ProcessCensus:
        process_count = 0
        thread_count = 0

        try:
            entries = list(self._proc.iterdir())
        except OSError as e:
            logger.debug(f"Cannot list {self._proc}: {e}")
            return ProcessCensus()

        for entry in entries:
            if not entry.name.isdigit() or int(entry.name) <= 0:
                continue
            threads = self._read_thread_count(entry / "status")
            if threads is None:
                continue
            process_count += 1
            thread_count += threads

        return ProcessCensus(process_count=process_count, thread_count=thread_count)

    def read_cpu_ticks(self) -> dict[str, int]:
        """Aggregate user/nice/system/idle jiffies from the first /proc/stat line."""
        with open(self._proc / "stat", encoding="utf-8") as f:
            fields = f.readline().split()

        if not fields or fields[0] != "cpu" or len(fields) < 5:
            raise ValueError("unexpected /proc/stat layout")

        user, nice, system, idle = (int(v) for v in fields[1:5])
        return {"user": user, "nice": nice, "system": system, "idle": idle}

    def read_temperature(self) -> float:
        """CPU temperature in Celsius, or -1.0 if no sensor is found."""
        temp = self._hwmon_temperature()
        if temp is None:
            temp = self._thermal_zone_temperature()
        return TEMPERATURE_UNAVAILABLE if temp is None else temp

    def _hwmon_temperature(self) -> float | None:
        hwmon = self._sys / "class" / "hwmon"
        if not hwmon.is_dir():
            return None

        for chip in sorted(hwmon.iterdir()):
            name = _read_text(chip / "name")
            if name is None or not any(key in name for key in CPU_SENSOR_CHIPS):
                continue
            # Chips expose several temp<N>_input files; the first is the package
            for i in range(1, 10):
                value = _read_text(chip / f"temp{i}_input")
                if value is None:
                    continue
                try:
                    return int(value) / 1000.0
                except ValueError:
                    continue
        return None

    def _thermal_zone_temperature(self) -> float | None:
        thermal = self._sys / "class" / "thermal"
        if not thermal.is_dir():
            return None

        for zone in sorted(thermal.glob("thermal_zone*")):
            zone_type = _read_text(zone / "type")
            if zone_type is None or not any(key in zone_type.lower() for key in CPU_THERMAL_ZONES):
                continue
            value = _read_text(zone / "temp")
            if value is None:
                continue
            try:
                return int(value) / 1000.0
            except ValueError:
                continue
        return None

    def _sysfs_frequencies(self) -> list[tuple[int, float]]:
        """Live per-core frequency from cpufreq (kHz)."""
        readings: list[tuple[int, float]] = []
        cpu_root = self._sys / "devices" / "system" / "cpu"
        if not cpu_root.is_dir():
            return readings

        for entry in cpu_root.iterdir():
            match = _CPU_DIR_RE.fullmatch(entry.name)
            if match is None:
                continue
            value = _read_text(entry / "cpufreq" / "scaling_cur_freq")
            if value is None:
                continue
            try:
                readings.append((int(match.group(1)), int(value) / 1000.0))
            except ValueError:
                continue
        return readings

    def _cpuinfo_frequencies(self) -> list[tuple[int, float]]:
        """The "cpu MHz" line of each /proc/cpuinfo processor block."""
        readings: list[tuple[int, float]] = []
        core_id: int | None = None
        next_id = 0

        with open(self._proc / "cpuinfo", encoding="utf-8") as f:
            for line in f:
                key, sep, value = line.partition(":")
                if not sep:
                    continue
                key = key.strip()
                if key == "processor":
                    try:
                        core_id = int(value)
                    except ValueError:
                        core_id = None
                elif key == "cpu MHz":
                    if core_id is None:
                        core_id = next_id
                    next_id = core_id + 1
                    try:
                        mhz = float(value)
                    except ValueError:
                        # Non-positive readings are dropped from the report
                        mhz = 0.0
                    readings.append((core_id, mhz))
                    core_id = None
        return readings

    def _read_meminfo(self) -> dict[str, int]:
        """/proc/meminfo values in bytes."""
        values: dict[str, int] = {}
        with open(self._proc / "meminfo", encoding="utf-8") as f:
            for line in f:
                key, sep, rest = line.partition(":")
                parts = rest.split()
                if not sep or not parts:
                    continue
                try:
                    amount = int(parts[0])
                except ValueError:
                    continue
                if len(parts) > 1 and parts[1] == "kB":
                    amount *= 1024
                values[key.strip()] = amount
        return values

    def _read_thread_count(self, status_path: Path) -> int | None:
        try:
            with open(status_path, encoding="utf-8") as f:
                for line in f:
                    if line.startswith("Threads:"):
                        return int(line.split()[1])
        except (OSError, ValueError, IndexError):
            # Process exited or is not readable
            return None
        return None


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
