"""Plain-text rendering of snapshots."""

from hoststat.monitor import SystemSnapshot

MB = 1024 * 1024


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_temperature(celsius: float) -> str:
    return f"{celsius:.1f} °C" if celsius >= 0.0 else "N/A"


def format_report(snapshot: SystemSnapshot) -> str:
    """Render one snapshot as the multi-line console report."""
    cpu = snapshot.cpu
    mem = snapshot.memory
    census = snapshot.census

    lines = [f"CPU Usage: {cpu.usage_percent:.1f}% | Avg Freq: {cpu.cores.average_freq_mhz:.0f} MHz"]
    if cpu.clock_mhz > 0 and not cpu.cores.per_core_mhz:
        lines.append(f"Clock: {cpu.clock_mhz:.0f} MHz")

    if cpu.cores.per_core_mhz:
        per_core = ", ".join(
            f"Core {core_id}: {mhz:.0f} MHz" for core_id, mhz in sorted(cpu.cores.per_core_mhz.items())
        )
        lines.append(f"Per-core: {per_core}")

    lines.extend(
        [
            f"Temp: {format_temperature(cpu.temperature_celsius)}",
            f"RAM used: {mem.used_bytes // MB} MB / {mem.total_bytes // MB} MB",
            f"Swap used: {mem.swap_used_bytes // MB} MB / {mem.swap_total_bytes // MB} MB",
            f"Processes: {census.process_count} | Threads: {census.thread_count}",
            f"Core count: {cpu.cores.total_cores} Cores",
            "-" * 29,
        ]
    )
    return "\n".join(lines)
