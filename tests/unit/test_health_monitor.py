"""Unit tests for the health monitor and its result types."""

import threading
from datetime import datetime, timezone

import pytest

from pgfleet.core.exceptions import HealthCheckError
from pgfleet.health.monitor import HealthMonitor
from pgfleet.health.result import (
    CheckFailed,
    CheckState,
    CheckStatus,
    RecordStatus,
    TextStatus,
)


FIXED_TIME = datetime(2025, 10, 29, 8, 0, 54, tzinfo=timezone.utc)


class StaticCheck:
    """A check whose outcome is set by the test."""

    def __init__(self, result=None, error=None):
        self.result = result or TextStatus("healthy")
        self.error = error
        self.calls = 0

    def status(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def monitor():
    return HealthMonitor(clock=lambda: FIXED_TIME)


class TestResultTypes:
    """Tests for check result payloads."""

    def test_record_status_rejects_non_scalars(self):
        """Nested values should be rejected."""
        with pytest.raises(TypeError, match="'nested'"):
            RecordStatus({"nested": {"a": 1}})

    def test_record_status_is_read_only(self):
        """RecordStatus fields should not be mutable after creation."""
        source = {"a": 1}
        record = RecordStatus(source)
        source["a"] = 2
        assert record["a"] == 1
        with pytest.raises(TypeError):
            record.fields["b"] = 2

    def test_to_json(self):
        """Both payload shapes should serialize."""
        assert TextStatus("healthy").to_json() == "healthy"
        assert RecordStatus({"a": 1, "b": "x"}).to_json() == {"a": 1, "b": "x"}

    def test_state_to_json(self):
        """Detailed entries should carry status, time, details and error."""
        state = CheckState(
            name="disk-space",
            status=CheckStatus.UNHEALTHY,
            last_check=FIXED_TIME,
            result=RecordStatus({"usage_percent": 95.0}),
            error="disk usage 95.00% exceeds threshold 90.00%",
        )
        assert state.to_json() == {
            "status": "unhealthy",
            "last_check": "2025-10-29T08:00:54+00:00",
            "details": {"usage_percent": 95.0},
            "error": "disk usage 95.00% exceeds threshold 90.00%",
        }

    def test_pending_state_to_json(self):
        """A pending state should have no details or error."""
        assert CheckState(name="x").to_json() == {"status": "pending", "last_check": None}


class TestRegistration:
    """Tests for HealthMonitor.register."""

    def test_registered_check_starts_pending(self, monitor):
        """A new check should be pending with its fatality recorded."""
        monitor.register("postgres-db", StaticCheck(), interval=30, fatal=True)
        state = monitor.state("postgres-db")
        assert state.status == CheckStatus.PENDING
        assert state.fatal is True
        assert state.last_check is None

    def test_duplicate_name(self, monitor):
        """A name may only be registered once."""
        monitor.register("a", StaticCheck(), interval=1)
        with pytest.raises(HealthCheckError, match="already registered"):
            monitor.register("a", StaticCheck(), interval=1)

    @pytest.mark.parametrize("interval", [0, -1])
    def test_non_positive_interval(self, monitor, interval):
        """Intervals must be positive."""
        with pytest.raises(HealthCheckError, match="must be positive"):
            monitor.register("a", StaticCheck(), interval=interval)

    def test_unknown_state(self, monitor):
        """Unknown names should raise KeyError."""
        with pytest.raises(KeyError):
            monitor.state("nope")


class TestRunOnce:
    """Tests for synchronous check execution."""

    def test_healthy_result(self, monitor):
        """A passing check should store its result and time."""
        monitor.register("a", StaticCheck(RecordStatus({"x": 1})), interval=1)

        states = monitor.run_once()

        assert states["a"].status == CheckStatus.HEALTHY
        assert states["a"].last_check == FIXED_TIME
        assert states["a"].result["x"] == 1
        assert states["a"].error is None

    def test_check_failed_keeps_figures(self, monitor):
        """CheckFailed should mark unhealthy but keep the measured record."""
        record = RecordStatus({"usage_percent": 97.5})
        monitor.register("disk", StaticCheck(error=CheckFailed("too full", result=record)), interval=1)

        state = monitor.run_once()["disk"]

        assert state.status == CheckStatus.UNHEALTHY
        assert state.result is record
        assert state.error == "too full"

    def test_unexpected_exception(self, monitor):
        """Any exception should make the check unhealthy without escaping."""
        monitor.register("a", StaticCheck(error=RuntimeError()), interval=1)
        state = monitor.run_once()["a"]
        assert state.is_unhealthy
        assert state.error == "RuntimeError"

    def test_single_check(self, monitor):
        """A named run should only execute that check."""
        first, second = StaticCheck(), StaticCheck()
        monitor.register("first", first, interval=1)
        monitor.register("second", second, interval=1)

        states = monitor.run_once("first")

        assert first.calls == 1
        assert second.calls == 0
        assert states["second"].status == CheckStatus.PENDING

    def test_unknown_name(self, monitor):
        """Running an unknown check should raise."""
        with pytest.raises(HealthCheckError, match="Unknown health check"):
            monitor.run_once("nope")

    def test_recovery(self, monitor):
        """A check should go back to healthy once it passes again."""
        check = StaticCheck(error=HealthCheckError("down"))
        monitor.register("a", check, interval=1)
        assert monitor.run_once()["a"].is_unhealthy

        check.error = None
        assert monitor.run_once()["a"].status == CheckStatus.HEALTHY


class TestAggregate:
    """Tests for the aggregate health decision."""

    def test_only_fatal_checks_count(self, monitor):
        """Non-fatal failures should not make the host unhealthy."""
        monitor.register("postgres-db", StaticCheck(), interval=30, fatal=True)
        monitor.register("disk-space", StaticCheck(error=HealthCheckError("full")), interval=60)

        monitor.run_once()

        assert monitor.is_healthy() is True

    def test_fatal_failure(self, monitor):
        """A failing fatal check should make the host unhealthy."""
        monitor.register("postgres-db", StaticCheck(error=HealthCheckError("down")),
                         interval=30, fatal=True)
        monitor.run_once()
        assert monitor.is_healthy() is False

    def test_pending_is_healthy(self, monitor):
        """Checks that have not run yet should not fail the host."""
        monitor.register("postgres-db", StaticCheck(), interval=30, fatal=True)
        assert monitor.is_healthy() is True

    def test_reset(self, monitor):
        """reset should put every check back to pending."""
        monitor.register("postgres-db", StaticCheck(error=HealthCheckError("down")),
                         interval=30, fatal=True)
        monitor.run_once()
        monitor.reset()
        state = monitor.state("postgres-db")
        assert state.status == CheckStatus.PENDING
        assert state.error is None
        assert state.fatal is True
        assert monitor.is_healthy()

    def test_snapshot_is_a_copy(self, monitor):
        """Modifying a snapshot should not affect the monitor."""
        monitor.register("a", StaticCheck(), interval=1)
        snapshot = monitor.snapshot()
        snapshot.clear()
        assert "a" in monitor.snapshot()


class TestThreads:
    """Tests for background execution."""

    def test_start_runs_checks_and_stop_joins(self, monitor):
        """start should run every check promptly; stop should end the threads."""
        ran = threading.Event()

        class SignallingCheck:
            def status(self):
                ran.set()
                return TextStatus("healthy")

        monitor.register("a", SignallingCheck(), interval=60)
        monitor.start()
        try:
            assert monitor.running
            assert ran.wait(5)
        finally:
            monitor.stop()

        assert not monitor.running
        assert monitor.state("a").status == CheckStatus.HEALTHY

    def test_register_after_start(self, monitor):
        """Registration is closed once the monitor runs."""
        monitor.register("a", StaticCheck(), interval=60)
        monitor.start()
        try:
            with pytest.raises(HealthCheckError, match="already started"):
                monitor.register("b", StaticCheck(), interval=60)
        finally:
            monitor.stop()

    def test_restart_refused_while_check_still_running(self, monitor):
        """A loop stuck in a check after stop() blocks a second start."""
        entered = threading.Event()
        release = threading.Event()

        class BlockingCheck:
            def status(self):
                entered.set()
                release.wait(5)
                return TextStatus("healthy")

        monitor.register("slow", BlockingCheck(), interval=60)
        monitor.start()
        try:
            assert entered.wait(5)
            monitor.stop(timeout=0.05)

            assert not monitor.running
            with pytest.raises(HealthCheckError, match="still running"):
                monitor.start()
        finally:
            release.set()
            monitor.stop()

        monitor.start()
        try:
            assert monitor.running
        finally:
            monitor.stop()
