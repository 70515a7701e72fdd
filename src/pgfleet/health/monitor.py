"""Periodic health check runner.

Each registered check runs on its own thread at its own interval and
writes only its own entry in the shared state map. Readers get a copy of
the map, so a slow check never blocks the HTTP views.

Stopping the monitor prevents new cycles. A check already in flight is not
interrupted; it finishes (bounded by its own timeout) and its thread exits.
"""

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from pgfleet.core.exceptions import HealthCheckError
from pgfleet.core.output import console
from pgfleet.health.result import (
    CheckFailed,
    CheckResult,
    CheckState,
    CheckStatus,
)


class HealthCheck(Protocol):
    def status(self) -> CheckResult:
        """Return the current status, or raise if unhealthy."""
        ...


@dataclass(frozen=True)
class Registration:
    name: str
    check: HealthCheck
    interval: float
    fatal: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthMonitor:
    """Runs registered checks and keeps their last known state."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._registrations: dict[str, Registration] = {}
        self._states: dict[str, CheckState] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def registrations(self) -> list[Registration]:
        return list(self._registrations.values())

    @property
    def running(self) -> bool:
        return bool(self._threads) and not self._stop.is_set()

    def register(
        self,
        name: str,
        check: HealthCheck,
        *,
        interval: float,
        fatal: bool = False,
    ) -> None:
        """Add a check. Registration is closed once the monitor has started.

        Raises:
            HealthCheckError: On a duplicate name, a non-positive interval,
                or registration after start
        """
        if self._threads:
            raise HealthCheckError(f"Cannot register {name!r}: monitor already started")
        if name in self._registrations:
            raise HealthCheckError(f"Health check already registered: {name}")
        if interval <= 0:
            raise HealthCheckError(f"Interval for {name!r} must be positive, got {interval}")

        self._registrations[name] = Registration(name, check, interval, fatal)
        with self._lock:
            self._states[name] = CheckState(name=name, fatal=fatal)

    def _execute(self, reg: Registration) -> CheckState:
        checked_at = self._clock()
        try:
            result = reg.check.status()
        except CheckFailed as e:
            state = CheckState(
                name=reg.name,
                fatal=reg.fatal,
                status=CheckStatus.UNHEALTHY,
                last_check=checked_at,
                result=e.result,
                error=str(e),
            )
        except Exception as e:
            # A broken check is an unhealthy check; the monitor keeps running
            state = CheckState(
                name=reg.name,
                fatal=reg.fatal,
                status=CheckStatus.UNHEALTHY,
                last_check=checked_at,
                error=str(e) or type(e).__name__,
            )
        else:
            state = CheckState(
                name=reg.name,
                fatal=reg.fatal,
                status=CheckStatus.HEALTHY,
                last_check=checked_at,
                result=result,
            )

        with self._lock:
            previous = self._states.get(reg.name)
            self._states[reg.name] = state

        if previous is None or previous.status != state.status:
            if state.is_unhealthy:
                console.warn(f"Health check {reg.name} is unhealthy: {state.error}")
            else:
                console.debug(f"Health check {reg.name} is {state.status.value}")
        return state

    def run_once(self, name: Optional[str] = None) -> dict[str, CheckState]:
        """Run one check (or all of them) synchronously on this thread.

        Raises:
            HealthCheckError: If name is not registered
        """
        if name is not None:
            if name not in self._registrations:
                raise HealthCheckError(f"Unknown health check: {name}")
            targets = [self._registrations[name]]
        else:
            targets = list(self._registrations.values())

        for reg in targets:
            self._execute(reg)
        return self.snapshot()

    def _loop(self, reg: Registration) -> None:
        while not self._stop.is_set():
            self._execute(reg)
            if self._stop.wait(reg.interval):
                break

    def start(self) -> None:
        """Start one daemon thread per check. Checks run immediately.

        Raises:
            HealthCheckError: If loops from an earlier stop() are still
                finishing a check
        """
        if self._threads:
            if not self._stop.is_set():
                return
            self._threads = [t for t in self._threads if t.is_alive()]
            if self._threads:
                names = ", ".join(t.name for t in self._threads)
                raise HealthCheckError(
                    f"Cannot start: previous check loops still running ({names})",
                    hint="Call stop() again once the running checks return",
                )
        self._stop.clear()
        for reg in self._registrations.values():
            thread = threading.Thread(
                target=self._loop,
                args=(reg,),
                name=f"health-{reg.name}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()
        console.debug(f"Started {len(self._threads)} health checks")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal every check loop to exit and wait for idle threads.

        Threads still inside a check after timeout are kept, so start()
        cannot run a second loop for the same check.
        """
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = [t for t in self._threads if t.is_alive()]
        for thread in self._threads:
            console.warn(f"{thread.name} did not stop within {timeout}s")

    def snapshot(self) -> dict[str, CheckState]:
        """Copy of the current state map."""
        with self._lock:
            return dict(self._states)

    def state(self, name: str) -> CheckState:
        """Raises KeyError for unknown names."""
        with self._lock:
            return self._states[name]

    def is_healthy(self, states: Optional[dict[str, CheckState]] = None) -> bool:
        """True unless a fatal check is currently unhealthy."""
        states = self.snapshot() if states is None else states
        return not any(s.fatal and s.is_unhealthy for s in states.values())

    def reset(self) -> None:
        """Put every check back to pending."""
        with self._lock:
            self._states = {
                name: replace(state, status=CheckStatus.PENDING, last_check=None,
                              result=None, error=None)
                for name, state in self._states.items()
            }
