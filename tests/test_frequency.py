"""Tests for per-core frequency discovery."""

import sys
import time

import psutil
import pytest

from hoststat import frequency
from hoststat.frequency import discover, parse_core_frequencies, psutil_clock_mhz, run_helper

POWERMETRICS_SAMPLE = """
**** Processor usage ****

E-Cluster HW active frequency: 1020 MHz
CPU 0 frequency: 1273 MHz
CPU 0 active residency:  12.50%
CPU 1 frequency: 1187 MHz
P-Cluster HW active frequency: 2100 MHz
CPU 4 frequency: 3204.5 MHz
cpu 5 FREQUENCY: 600 mhz
"""


class TestDiscover:
    """Tests for the strategy chain."""

    def test_first_strategy_with_data_wins(self):
        """Test later strategies are not consulted once one succeeds."""
        called = []

        def preferred():
            called.append("preferred")
            return [(0, 1200.0), (1, 1300.0), (2, 1250.0)]

        def fallback():
            called.append("fallback")
            return [(0, 999.0)]

        report = discover([preferred, fallback], fallback_cores=lambda: 64)

        assert called == ["preferred"]
        assert report.total_cores == 3
        assert report.average_freq_mhz == pytest.approx(1250.0)

    def test_falls_through_empty_strategy(self):
        """Test an empty or all-invalid result moves on to the next source."""
        report = discover(
            [lambda: [], lambda: [(0, 0.0)], lambda: [(3, 2400.0)]],
            fallback_cores=lambda: 64,
        )

        assert report.per_core_mhz == {3: 2400.0}

    def test_falls_through_failing_strategy(self):
        """Test a strategy raising OSError or ValueError is skipped."""

        def missing():
            raise FileNotFoundError("/sys/devices/system/cpu")

        def garbled():
            raise ValueError("could not convert string to float")

        def no_module():
            raise ImportError("No module named 'winreg'")

        report = discover([missing, garbled, no_module, lambda: [(0, 1000.0)]])

        assert report.per_core_mhz == {0: 1000.0}

    def test_hardware_concurrency_fallback(self):
        """Test only the core count is reported when no source has data."""
        report = discover([lambda: []], fallback_cores=lambda: 8)

        assert report.total_cores == 8
        assert report.average_freq_mhz == 0.0
        assert report.per_core_mhz == {}

    def test_default_fallback_uses_psutil(self, monkeypatch):
        """Test the default core count comes from psutil."""
        monkeypatch.setattr(frequency.psutil, "cpu_count", lambda logical=True: 12)

        assert discover([]).total_cores == 12

    def test_default_fallback_unknown_count(self, monkeypatch):
        """Test psutil returning None gives a count of 0."""
        monkeypatch.setattr(frequency.psutil, "cpu_count", lambda logical=True: None)

        assert discover([]).total_cores == 0


def test_parse_core_frequencies():
    """Test CPU lines are extracted and cluster lines ignored."""
    readings = parse_core_frequencies(POWERMETRICS_SAMPLE)

    assert readings == [(0, 1273.0), (1, 1187.0), (4, 3204.5), (5, 600.0)]


def test_parse_core_frequencies_no_match():
    """Test unrelated output yields nothing."""
    assert parse_core_frequencies("powermetrics must be invoked as the superuser") == []


class TestRunHelper:
    """Tests for bounded helper process execution."""

    def test_returns_stdout(self):
        """Test stdout of a successful run is returned."""
        out = run_helper([sys.executable, "-c", "print('CPU 0 frequency: 1500 MHz')"], timeout=10.0)

        assert out is not None
        assert parse_core_frequencies(out) == [(0, 1500.0)]

    def test_nonzero_exit(self):
        """Test a failing tool yields None."""
        assert run_helper([sys.executable, "-c", "raise SystemExit(3)"], timeout=10.0) is None

    def test_missing_executable(self):
        """Test a tool that does not exist yields None."""
        assert run_helper(["/nonexistent/powermetrics", "-n", "1"], timeout=1.0) is None

    def test_timeout_kills_child(self):
        """Test a hung tool is killed within the timeout window."""
        start = time.monotonic()
        out = run_helper([sys.executable, "-c", "import time; time.sleep(60)"], timeout=0.5)
        elapsed = time.monotonic() - start

        assert out is None
        assert elapsed < 10.0

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    def test_timeout_covers_grandchildren(self):
        """Test a tool whose own child holds stdout still returns on time."""
        start = time.monotonic()
        out = run_helper(["sh", "-c", "sleep 8; true"], timeout=0.5)
        elapsed = time.monotonic() - start

        assert out is None
        assert elapsed < 3.0

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    def test_timeout_kills_grandchildren(self, tmp_path):
        """Test processes started by a timed-out tool do not outlive it."""
        pid_file = tmp_path / "pid"

        out = run_helper(["sh", "-c", f"sleep 30 & echo $! > {pid_file}; wait"], timeout=0.5)

        assert out is None
        pid = int(pid_file.read_text())
        deadline = time.monotonic() + 2.0
        while not _gone(pid) and time.monotonic() < deadline:
            time.sleep(0.05)
        assert _gone(pid)

    def test_undecodable_output(self):
        """Test invalid UTF-8 from a tool is replaced, not raised."""
        script = (
            "import sys; "
            "sys.stdout.buffer.write(b'CPU 0 frequency: \\xff 1 MHz\\nCPU 1 frequency: 1500 MHz\\n')"
        )

        out = run_helper([sys.executable, "-c", script], timeout=10.0)

        assert out is not None
        assert "\ufffd" in out
        assert parse_core_frequencies(out) == [(1, 1500.0)]

    def test_timeout_falls_through_to_core_count(self):
        """Test a hung helper leaves discovery with the concurrency fallback."""

        def hung_helper():
            out = run_helper([sys.executable, "-c", "import time; time.sleep(60)"], timeout=0.5)
            return parse_core_frequencies(out) if out is not None else []

        report = discover([hung_helper], fallback_cores=lambda: 0)

        assert report.total_cores == 0
        assert report.average_freq_mhz == 0.0


def _gone(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


class FakeFreq:
    def __init__(self, current, max_):
        self.current = current
        self.min = 0.0
        self.max = max_


class TestPsutilClock:
    """Tests for psutil_clock_mhz."""

    def test_prefers_max(self, monkeypatch):
        monkeypatch.setattr(frequency.psutil, "cpu_freq", lambda: FakeFreq(2200.0, 3200.0))

        assert psutil_clock_mhz() == 3200.0

    def test_current_when_no_max(self, monkeypatch):
        monkeypatch.setattr(frequency.psutil, "cpu_freq", lambda: FakeFreq(2200.0, 0.0))

        assert psutil_clock_mhz() == 2200.0

    def test_unavailable(self, monkeypatch):
        monkeypatch.setattr(frequency.psutil, "cpu_freq", lambda: None)

        assert psutil_clock_mhz() == 0.0

    def test_not_implemented(self, monkeypatch):
        def raise_not_implemented():
            raise NotImplementedError("can't find current frequency file")

        monkeypatch.setattr(frequency.psutil, "cpu_freq", raise_not_implemented)

        assert psutil_clock_mhz() == 0.0
