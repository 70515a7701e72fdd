"""Standard check registrations for a PostgreSQL host."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from pgfleet.core.config import AppConfig
from pgfleet.core.executor import CommandExecutor
from pgfleet.health.checks import (
    BackupCheck,
    CpuCheck,
    DiskSpaceCheck,
    MemoryCheck,
    PgBouncerCheck,
    PostgresCheck,
    PostgrestCheck,
    SecurityCheck,
    SupervisorCheck,
    ServiceHealth,
    WalgCheck,
    WalSizeCheck,
)
from pgfleet.health.monitor import HealthMonitor
from pgfleet.health.token import JWTGenerator


@dataclass(frozen=True)
class CheckSchedule:
    interval: float
    fatal: bool = False


# name -> schedule; only postgres-db can fail the aggregate
SCHEDULES: dict[str, CheckSchedule] = {
    "postgres-db": CheckSchedule(30, fatal=True),
    "postgrest-api": CheckSchedule(60),
    "pgbouncer": CheckSchedule(30),
    "disk-space": CheckSchedule(60),
    "wal-size": CheckSchedule(300),
    "memory-usage": CheckSchedule(30),
    "cpu-usage": CheckSchedule(30),
    "security-config": CheckSchedule(300),
    "backup-status": CheckSchedule(600),
    "walg-service": CheckSchedule(300),
    "supervisor": CheckSchedule(60),
}


def build_monitor(
    config: AppConfig,
    executor: CommandExecutor,
    *,
    postgres: Optional[ServiceHealth] = None,
    pgbouncer: Optional[ServiceHealth] = None,
    walg: Optional[ServiceHealth] = None,
    jwt_generator: Optional[JWTGenerator] = None,
) -> HealthMonitor:
    """Register every check the configuration and services allow.

    Service checks are added only for services passed in. Memory, CPU and
    the security audit are always registered.
    """
    monitor = HealthMonitor()
    health = config.health
    thresholds = health.thresholds

    def add(name: str, check) -> None:
        schedule = SCHEDULES[name]
        monitor.register(name, check, interval=schedule.interval, fatal=schedule.fatal)

    if postgres is not None:
        add("postgres-db", PostgresCheck(postgres))

    if config.postgrest.url:
        generator = jwt_generator or JWTGenerator(config.secrets.jwt_secret)
        add("postgrest-api", PostgrestCheck(
            config.postgrest.url,
            generator,
            config.postgrest.admin_role,
            timeout=config.postgrest.timeout,
        ))

    if pgbouncer is not None:
        add("pgbouncer", PgBouncerCheck(pgbouncer))

    data_dir = health.data_dir or config.postgres.data_dir
    if data_dir:
        add("disk-space", DiskSpaceCheck(data_dir, thresholds.disk_percent))

    if health.wal_dir:
        add("wal-size", WalSizeCheck(health.wal_dir, thresholds.wal_size_bytes))

    add("memory-usage", MemoryCheck(thresholds.memory_percent))
    add("cpu-usage", CpuCheck(thresholds.cpu_percent))
    add("security-config", SecurityCheck(data_dir))

    backup_location = health.backup_location or config.walg.backup_location
    if backup_location:
        add("backup-status", BackupCheck(
            backup_location, timedelta(hours=health.backup_max_age_hours)
        ))

    if walg is not None:
        add("walg-service", WalgCheck(walg))

    if health.supervisor_enabled:
        add("supervisor", SupervisorCheck(executor, health.enabled_services))

    return monitor
