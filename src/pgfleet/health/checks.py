"""Concrete health checks.

Every check exposes ``status()`` returning a TextStatus or RecordStatus, and
raises when unhealthy. Threshold breaches raise CheckFailed so the measured
figures still reach the detailed view.
"""

import os
import stat
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional, Protocol

import httpx
import psutil

from pgfleet.core.exceptions import ExecutionError, HealthCheckError, TokenError
from pgfleet.core.executor import CommandExecutor
from pgfleet.health.result import CheckFailed, RecordStatus, TextStatus
from pgfleet.health.token import JWTGenerator


BACKUP_SUFFIXES = (".sql", ".dump", ".backup")
MAX_THREADS = 1000
SUPERVISOR_TIMEOUT = 10.0
HEALTHY_PROCESS_STATES = ("RUNNING",)


class ServiceHealth(Protocol):
    def health(self) -> None:
        ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ServiceCheck:
    """Delegates to a service's ``health()`` method."""

    def __init__(self, service: Optional[ServiceHealth], label: str) -> None:
        self.service = service
        self.label = label

    def status(self) -> TextStatus:
        if self.service is None:
            raise CheckFailed(
                f"{self.label} service not configured",
                result=TextStatus("unknown"),
            )
        self.service.health()
        return TextStatus("healthy")


class PostgresCheck(ServiceCheck):
    def __init__(self, service: Optional[ServiceHealth]) -> None:
        super().__init__(service, "PostgreSQL")


class PgBouncerCheck(ServiceCheck):
    def __init__(self, service: Optional[ServiceHealth]) -> None:
        super().__init__(service, "PgBouncer")


class WalgCheck(ServiceCheck):
    def __init__(self, service: Optional[ServiceHealth]) -> None:
        super().__init__(service, "WAL-G")

    def status(self) -> RecordStatus:
        try:
            super().status()
        except CheckFailed as e:
            raise CheckFailed(
                str(e),
                result=RecordStatus({"status": "unknown", "service": "walg"}),
            ) from e
        except Exception as e:
            raise CheckFailed(
                str(e),
                result=RecordStatus({"status": "unhealthy", "service": "walg"}),
            ) from e
        return RecordStatus({"status": "healthy", "service": "walg"})


class PostgrestCheck:
    """Authenticated GET against the PostgREST root.

    A short-lived token for the admin role is minted for every request.
    """

    def __init__(
        self,
        url: str,
        generator: Optional[JWTGenerator],
        admin_role: str,
        timeout: float = 10.0,
        client_factory: Callable[..., httpx.Client] = httpx.Client,
    ) -> None:
        self.url = url.rstrip("/")
        self.generator = generator
        self.admin_role = admin_role
        self.timeout = timeout
        self.client_factory = client_factory

    def status(self) -> RecordStatus:
        if self.generator is None:
            raise HealthCheckError("JWT generator not configured")
        try:
            token = self.generator.generate_health_check_token(self.admin_role)
        except TokenError as e:
            raise HealthCheckError(f"failed to generate JWT token: {e}") from e

        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        try:
            with self.client_factory(timeout=self.timeout) as client:
                response = client.get(self.url + "/", headers=headers)
        except httpx.HTTPError as e:
            raise HealthCheckError(f"PostgREST request failed: {e}") from e

        if response.status_code != 200:
            raise HealthCheckError(
                f"PostgREST returned status {response.status_code}: {response.text[:200]}"
            )
        return RecordStatus({
            "status": "healthy",
            "url": self.url,
            "auth_test": "passed",
            "timestamp": _now_iso(),
        })


class DiskSpaceCheck:
    def __init__(self, path: Path, threshold_percent: float) -> None:
        self.path = path
        self.threshold = threshold_percent

    def status(self) -> RecordStatus:
        try:
            usage = psutil.disk_usage(str(self.path))
        except OSError as e:
            raise HealthCheckError(f"failed to get disk stats for {self.path}: {e}") from e

        # Reserved blocks count as used
        used = usage.total - usage.free
        percent = used / usage.total * 100 if usage.total else 0.0
        record = RecordStatus({
            "path": str(self.path),
            "total_bytes": usage.total,
            "used_bytes": used,
            "available_bytes": usage.free,
            "usage_percent": round(percent, 2),
            "threshold_percent": self.threshold,
            "timestamp": _now_iso(),
        })
        if percent > self.threshold:
            raise CheckFailed(
                f"disk usage {percent:.2f}% exceeds threshold {self.threshold:.2f}%",
                result=record,
            )
        return record


class WalSizeCheck:
    def __init__(self, wal_dir: Path, threshold_bytes: int) -> None:
        self.wal_dir = wal_dir
        self.threshold = threshold_bytes

    def _total_size(self) -> int:
        if not self.wal_dir.is_dir():
            raise HealthCheckError(f"WAL directory does not exist: {self.wal_dir}")
        total = 0

        def on_error(e: OSError) -> None:
            raise e

        for root, _dirs, files in os.walk(self.wal_dir, onerror=on_error):
            for name in files:
                total += os.lstat(os.path.join(root, name)).st_size
        return total

    def status(self) -> RecordStatus:
        try:
            total = self._total_size()
        except OSError as e:
            raise HealthCheckError(f"failed to calculate WAL directory size: {e}") from e

        record = RecordStatus({
            "wal_dir": str(self.wal_dir),
            "total_size": total,
            "threshold_size": self.threshold,
            "timestamp": _now_iso(),
        })
        if total > self.threshold:
            raise CheckFailed(
                f"WAL size {total} bytes exceeds threshold {self.threshold} bytes",
                result=record,
            )
        return record


class MemoryCheck:
    """System memory usage.

    Linux figures come from /proc/meminfo (MemTotal, MemAvailable);
    elsewhere psutil's approximation is used.
    """

    def __init__(self, threshold_percent: float, meminfo: Path = Path("/proc/meminfo")) -> None:
        self.threshold = threshold_percent
        self.meminfo = meminfo

    def _read_meminfo(self) -> Optional[tuple[int, int]]:
        try:
            text = self.meminfo.read_text()
        except OSError:
            return None
        values = {}
        for line in text.splitlines():
            fields = line.split()
            if len(fields) >= 3 and fields[0] in ("MemTotal:", "MemAvailable:"):
                try:
                    values[fields[0]] = int(fields[1]) * 1024
                except ValueError:
                    continue
        if "MemTotal:" not in values:
            return None
        return values["MemTotal:"], values.get("MemAvailable:", 0)

    def status(self) -> RecordStatus:
        figures = self._read_meminfo()
        if figures is None:
            vm = psutil.virtual_memory()
            figures = (vm.total, vm.available)
        total, available = figures
        if total <= 0:
            raise HealthCheckError("unable to determine system memory")

        used = total - available
        percent = used / total * 100
        record = RecordStatus({
            "total_memory": total,
            "used_memory": used,
            "available_memory": available,
            "usage_percent": round(percent, 2),
            "threshold_percent": self.threshold,
            "timestamp": _now_iso(),
        })
        if percent > self.threshold:
            raise CheckFailed(
                f"memory usage {percent:.2f}% exceeds threshold {self.threshold:.2f}%",
                result=record,
            )
        return record


class CpuCheck:
    """Coarse load proxy: the number of live threads in this process.

    This is not a CPU percentage; the threshold is reported but not used.
    """

    def __init__(
        self,
        threshold_percent: float,
        max_threads: int = MAX_THREADS,
        thread_count: Callable[[], int] = threading.active_count,
    ) -> None:
        self.threshold = threshold_percent
        self.max_threads = max_threads
        self.thread_count = thread_count

    def status(self) -> RecordStatus:
        threads = self.thread_count()
        record = RecordStatus({
            "cpus": os.cpu_count() or 1,
            "threads": threads,
            "threshold_percent": self.threshold,
            "timestamp": _now_iso(),
        })
        if threads > self.max_threads:
            raise CheckFailed(f"high thread count: {threads}", result=record)
        return record


class SecurityCheck:
    """Permission and ownership audit of the data directory.

    Expects the directory at 0700 owned by the current user, and no
    group/other bits on postgresql.conf or pg_hba.conf.
    """

    def __init__(self, data_dir: Optional[Path]) -> None:
        self.data_dir = data_dir

    def find_issues(self) -> list[str]:
        if self.data_dir is None:
            return []

        issues = []
        try:
            st = self.data_dir.stat()
        except OSError as e:
            raise HealthCheckError(f"cannot access data directory: {e}") from e

        mode = stat.S_IMODE(st.st_mode)
        if mode != 0o700:
            issues.append(
                f"data directory has insecure permissions: {mode:o} (should be 0700)"
            )
        if hasattr(os, "getuid") and st.st_uid != os.getuid():
            issues.append("data directory not owned by current user")

        for name in ("postgresql.conf", "pg_hba.conf"):
            path = self.data_dir / name
            try:
                file_mode = stat.S_IMODE(path.stat().st_mode)
            except OSError:
                continue
            if file_mode & 0o077:
                issues.append(f"{path} has insecure permissions: {file_mode:o}")
        return issues

    def status(self) -> RecordStatus:
        issues = self.find_issues()
        record = RecordStatus({
            "data_dir": str(self.data_dir or ""),
            "issue_count": len(issues),
            "issues": "; ".join(issues),
            "timestamp": _now_iso(),
        })
        if issues:
            raise CheckFailed(f"security issues found: {'; '.join(issues)}", result=record)
        return record


class BackupCheck:
    """Age of the newest backup file under a directory tree."""

    def __init__(
        self,
        location: Optional[Path],
        max_age: timedelta = timedelta(hours=24),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.location = location
        self.max_age = max_age
        self.clock = clock

    def find_latest(self) -> Optional[tuple[Path, float]]:
        latest: Optional[tuple[Path, float]] = None
        # Unreadable entries are skipped
        for root, _dirs, files in os.walk(self.location):
            for name in files:
                if not name.endswith(BACKUP_SUFFIXES):
                    continue
                path = Path(root) / name
                try:
                    mtime = path.stat().st_mtime
                except OSError:
                    continue
                if latest is None or mtime > latest[1]:
                    latest = (path, mtime)
        return latest

    def status(self) -> RecordStatus:
        if not self.location:
            raise HealthCheckError("backup location not configured")

        fields: dict[str, int | float | str | bool] = {
            "backup_location": str(self.location),
            "max_age_seconds": int(self.max_age.total_seconds()),
            "timestamp": _now_iso(),
        }
        latest = self.find_latest()
        if latest is None:
            raise CheckFailed(
                f"no backup files found in {self.location}",
                result=RecordStatus(fields),
            )

        path, mtime = latest
        age = self.clock() - mtime
        fields.update({
            "latest_backup": path.name,
            "latest_backup_time": datetime.fromtimestamp(mtime, timezone.utc).isoformat(),
            "backup_age_seconds": int(age),
        })
        record = RecordStatus(fields)
        if age > self.max_age.total_seconds():
            raise CheckFailed(
                f"latest backup is {timedelta(seconds=int(age))} old "
                f"(max allowed: {self.max_age})",
                result=record,
            )
        return record


def parse_supervisor_status(output: str) -> dict[str, str]:
    """Map process name to state from ``supervisorctl status`` output."""
    states = {}
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 2:
            states[parts[0]] = parts[1]
    return states


class SupervisorCheck:
    """Every required service must be RUNNING under supervisord."""

    def __init__(self, executor: CommandExecutor, enabled_services: list[str]) -> None:
        self.executor = executor
        self.enabled_services = list(enabled_services)

    def status(self) -> RecordStatus:
        fields: dict[str, int | float | str | bool] = {
            "supervisor_running": False,
            "enabled_services": ", ".join(self.enabled_services),
            "timestamp": _now_iso(),
        }
        if self.executor.which("supervisorctl") is None:
            raise CheckFailed("supervisorctl not available", result=RecordStatus(fields))

        # supervisorctl exits non-zero whenever a process is not running
        try:
            result = self.executor.run(
                ["supervisorctl", "status"],
                check=False,
                read_only=True,
                timeout=SUPERVISOR_TIMEOUT,
            )
        except ExecutionError as e:
            raise CheckFailed(
                f"supervisorctl status failed: {e}", result=RecordStatus(fields)
            ) from e

        states = parse_supervisor_status(result.stdout)
        if not states and not result.success:
            raise CheckFailed(
                f"supervisorctl status failed: {(result.stderr or result.stdout).strip()}",
                result=RecordStatus(fields),
            )

        fields["supervisor_running"] = True
        fields["process_count"] = len(states)
        for name, state in states.items():
            fields[f"process.{name}"] = state

        unhealthy = []
        for service in self.enabled_services:
            state = states.get(service)
            if state is None:
                unhealthy.append(f"{service} (not found)")
            elif state not in HEALTHY_PROCESS_STATES:
                unhealthy.append(f"{service} ({state})")

        record = RecordStatus(fields)
        if unhealthy:
            raise CheckFailed(f"unhealthy services: {', '.join(unhealthy)}", result=record)
        return record
