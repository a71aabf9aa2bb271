"""Per-core clock frequency discovery."""

import logging
import os
import re
import signal
import subprocess
from collections.abc import Callable, Iterable, Sequence

import psutil

from hoststat.models import CoreFrequencyReport

logger = logging.getLogger(__name__)

# Upper bound for any external sampling tool, in seconds.
HELPER_TIMEOUT = 6.0
# How long to drain a killed helper's pipe before giving up on it
_REAP_TIMEOUT = 1.0

# Matches lines like "CPU 0 frequency: 1273 MHz"
_CORE_FREQ_RE = re.compile(r"CPU\s+(\d+)\s+frequency:\s+(\d+(?:\.\d+)?)\s+MHz", re.IGNORECASE)

FrequencyStrategy = Callable[[], Iterable[tuple[int, float]]]


def hardware_concurrency() -> int:
    """Number of logical CPUs, or 0 if the OS won't say."""
    return psutil.cpu_count(logical=True) or 0


def discover(
    strategies: Sequence[FrequencyStrategy],
    fallback_cores: Callable[[], int] = hardware_concurrency,
) -> CoreFrequencyReport:
    """
    Run frequency strategies in order and return the first non-empty report.

    When no strategy produces a valid reading, the report carries only the
    logical CPU count with an average of 0.
    """
    for strategy in strategies:
        name = getattr(strategy, "__name__", repr(strategy))
        try:
            report = CoreFrequencyReport.from_readings(strategy())
        except (ImportError, OSError, ValueError, subprocess.SubprocessError) as e:
            logger.debug(f"Frequency source {name} failed: {e}")
            continue

        if report.per_core_mhz:
            return report
        logger.debug(f"Frequency source {name} returned no readings")

    return CoreFrequencyReport(total_cores=fallback_cores())


def parse_core_frequencies(text: str) -> list[tuple[int, float]]:
    """Extract (core_id, mhz) pairs from a sampling tool's text output."""
    return [(int(m.group(1)), float(m.group(2))) for m in _CORE_FREQ_RE.finditer(text)]


def run_helper(argv: Sequence[str], timeout: float = HELPER_TIMEOUT) -> str | None:
    """
    Run an external tool and return its stdout.

    Returns None if the tool can't be started, exits non-zero, or runs past
    the timeout. The tool runs in its own session, so on timeout everything
    it spawned is killed along with it. Undecodable output bytes are
    replaced rather than raised.
    """
    try:
        proc = subprocess.Popen(
            list(argv),
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
            encoding="utf-8",
            errors="replace",
            start_new_session=True,
        )
    except OSError as e:
        logger.debug(f"Could not start {argv[0]}: {e}")
        return None

    with proc:
        try:
            out, _ = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_session(proc)
            try:
                proc.communicate(timeout=_REAP_TIMEOUT)
            except subprocess.TimeoutExpired:
                # Something left the session and still holds stdout
                logger.debug(f"{argv[0]} output pipe still open after kill")
            logger.debug(f"{argv[0]} did not finish within {timeout}s, killed")
            return None

    if proc.returncode != 0:
        logger.debug(f"{argv[0]} exited with status {proc.returncode}")
        return None

    return out


def _kill_session(proc: subprocess.Popen) -> None:
    if os.name != "posix":
        proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        # Whole group already gone
        pass


def psutil_clock_mhz() -> float:
    """Max, then current, clock reported by psutil; 0.0 if neither is."""
    try:
        freq = psutil.cpu_freq()
    except (OSError, NotImplementedError) as e:
        logger.debug(f"cpu_freq unavailable: {e}")
        return 0.0

    if freq is None:
        return 0.0
    for value in (freq.max, freq.current):
        if value and value > 0:
            return float(value)
    return 0.0
