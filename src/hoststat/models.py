"""Data models for hoststat."""

from collections.abc import Iterable
from dataclasses import dataclass, field

TEMPERATURE_UNAVAILABLE = -1.0


@dataclass(slots=True, frozen=True)
class CoreFrequencyReport:
    """Per-core clock readings for one discovery pass."""

    total_cores: int = 0
    average_freq_mhz: float = 0.0
    per_core_mhz: dict[int, float] = field(default_factory=dict)

    @classmethod
    def from_readings(cls, readings: Iterable[tuple[int, float]]) -> "CoreFrequencyReport":
        """
        Build a report from (core_id, mhz) pairs.

        A core id seen twice keeps its last valid reading. Readings <= 0 are
        discarded and do not count toward the average.
        """
        per_core: dict[int, float] = {}
        for core_id, mhz in readings:
            if mhz <= 0:
                continue
            per_core[int(core_id)] = float(mhz)

        if not per_core:
            return cls()

        return cls(
            total_cores=len(per_core),
            average_freq_mhz=sum(per_core.values()) / len(per_core),
            per_core_mhz=per_core,
        )


@dataclass(slots=True, frozen=True)
class CpuSnapshot:
    """CPU usage, clock and temperature at one point in time."""

    usage_percent: float = 0.0
    clock_mhz: float = 0.0
    temperature_celsius: float = TEMPERATURE_UNAVAILABLE  # -1.0 when no sensor
    cores: CoreFrequencyReport = field(default_factory=CoreFrequencyReport)

    @property
    def has_temperature(self) -> bool:
        return self.temperature_celsius >= 0.0


@dataclass(slots=True, frozen=True)
class MemorySnapshot:
    """RAM and swap figures, all in bytes."""

    total_bytes: int = 0
    used_bytes: int = 0
    free_bytes: int = 0
    swap_used_bytes: int = 0
    swap_total_bytes: int = 0


@dataclass(slots=True, frozen=True)
class ProcessCensus:
    """Number of visible processes and the sum of their threads."""

    process_count: int = 0
    thread_count: int = 0
