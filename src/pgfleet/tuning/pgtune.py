"""PostgreSQL tuning engine.

Derives recommended settings from system facts and a workload class using
the pgtune formulas. All memory figures are computed in kibibytes and only
given a unit suffix when rendered.

Provides:
- calculate_optimal_config: the pure formula engine
- PgTune: the engine behind a runtime on/off switch
- PostProcessorRegistry: ordered hooks that adjust a Conf after tuning
"""

import math
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from pgfleet.core.exceptions import TuningError, ValidationError
from pgfleet.core.output import console
from pgfleet.pgconf.conf import Conf
from pgfleet.tuning.sysinfo import DBType, DiskType, OSType, SystemInfo
from pgfleet.utils.units import KB, MB, GB, format_kb


# Memory constants in KB
_MB_KB = MB // KB
_GB_KB = GB // KB

MAINTENANCE_WORK_MEM_CAP_KB = 2 * _GB_KB
WAL_BUFFERS_MAX_KB = 16 * _MB_KB
WAL_BUFFERS_SNAP_FROM_KB = 14 * _MB_KB
WAL_BUFFERS_MIN_KB = 32
WORK_MEM_MIN_KB = 512
HUGE_PAGES_FROM_KB = 32 * _GB_KB

LOW_MEMORY_BYTES = 256 * MB
HIGH_MEMORY_BYTES = 100 * GB
LOW_MEMORY_WARNING = "WARNING: This tool is not optimal for low memory systems (< 256MB)"
HIGH_MEMORY_WARNING = "WARNING: This tool is not optimal for very high memory systems (> 100GB)"

DEFAULT_MAX_CONNECTIONS = 100

# (min_wal_size, max_wal_size) in KB
WAL_SIZES_KB: dict[DBType, tuple[int, int]] = {
    DBType.WEB: (1024 * _MB_KB, 4096 * _MB_KB),
    DBType.OLTP: (2048 * _MB_KB, 8192 * _MB_KB),
    DBType.DW: (4096 * _MB_KB, 16384 * _MB_KB),
    DBType.DESKTOP: (100 * _MB_KB, 2048 * _MB_KB),
    DBType.MIXED: (1024 * _MB_KB, 4096 * _MB_KB),
}

RECOMMENDED_MAX_CONNECTIONS: dict[DBType, int] = {
    DBType.WEB: 200,
    DBType.OLTP: 300,
    DBType.DW: 40,
    DBType.DESKTOP: 20,
    DBType.MIXED: 100,
}

IO_CONCURRENCY: dict[DiskType, int] = {
    DiskType.HDD: 2,
    DiskType.SSD: 200,
    DiskType.SAN: 300,
}

# Parameters pg_tune owns, in the order they are written to auto.conf
MANAGED_PARAMS = (
    "max_connections",
    "shared_buffers",
    "effective_cache_size",
    "maintenance_work_mem",
    "work_mem",
    "wal_buffers",
    "min_wal_size",
    "max_wal_size",
    "checkpoint_completion_target",
    "random_page_cost",
    "effective_io_concurrency",
    "default_statistics_target",
    "max_worker_processes",
    "max_parallel_workers",
    "max_parallel_workers_per_gather",
    "max_parallel_maintenance_workers",
    "wal_level",
    "max_wal_senders",
    "huge_pages",
)


@dataclass
class TuningConfig:
    """Input to the tuning engine."""

    system_info: Optional[SystemInfo]
    max_connections: int
    db_type: DBType = DBType.MIXED
    disk_type: Optional[DiskType] = None  # Overrides the detected disk type


@dataclass(frozen=True)
class TunedParameters:
    """Recommended settings. Memory values are in KB."""

    max_connections: int
    shared_buffers: int
    effective_cache_size: int
    maintenance_work_mem: int
    work_mem: int
    wal_buffers: int
    min_wal_size: int
    max_wal_size: int
    checkpoint_completion_target: float
    random_page_cost: float
    effective_io_concurrency: Optional[int]
    default_statistics_target: int
    max_worker_processes: int
    max_parallel_workers: int
    max_parallel_workers_per_gather: int
    max_parallel_maintenance_workers: Optional[int]
    wal_level: str
    max_wal_senders: Optional[int]
    huge_pages: str
    warnings: tuple[str, ...] = ()

    def managed_values(self, quote_strings: bool = False) -> dict[str, str]:
        """Rendered values for every managed parameter that has one.

        Keys follow MANAGED_PARAMS order. Unset optional values are left
        out. With quote_strings, enum values are single-quoted as
        postgresql.conf expects.
        """
        def q(value: str) -> str:
            return f"'{value}'" if quote_strings else value

        rendered: dict[str, Optional[str]] = {
            "max_connections": str(self.max_connections),
            "shared_buffers": format_kb(self.shared_buffers),
            "effective_cache_size": format_kb(self.effective_cache_size),
            "maintenance_work_mem": format_kb(self.maintenance_work_mem),
            "work_mem": format_kb(self.work_mem),
            "wal_buffers": format_kb(self.wal_buffers),
            "min_wal_size": format_kb(self.min_wal_size),
            "max_wal_size": format_kb(self.max_wal_size),
            "checkpoint_completion_target": f"{self.checkpoint_completion_target:.2f}",
            "random_page_cost": f"{self.random_page_cost:.1f}",
            "effective_io_concurrency": _opt(self.effective_io_concurrency),
            "default_statistics_target": str(self.default_statistics_target),
            "max_worker_processes": str(self.max_worker_processes),
            "max_parallel_workers": str(self.max_parallel_workers),
            "max_parallel_workers_per_gather": str(self.max_parallel_workers_per_gather),
            "max_parallel_maintenance_workers": _opt(self.max_parallel_maintenance_workers),
            "wal_level": q(self.wal_level),
            "max_wal_senders": _opt(self.max_wal_senders),
            "huge_pages": q(self.huge_pages),
        }
        return {name: rendered[name] for name in MANAGED_PARAMS if rendered[name] is not None}

    def to_conf(self) -> Conf:
        """Managed values as an unquoted Conf."""
        return Conf(self.managed_values())

    def as_rows(self) -> list[tuple[str, str]]:
        """(name, value) pairs in managed order, for table display."""
        return list(self.managed_values().items())


def _opt(value: Optional[int]) -> Optional[str]:
    return None if value is None else str(value)


# Formulas

def calculate_shared_buffers(total_kb: int) -> int:
    return total_kb // 4


def calculate_effective_cache_size(total_kb: int, db_type: DBType) -> int:
    if db_type == DBType.DESKTOP:
        return total_kb // 4
    return total_kb * 3 // 4


def calculate_maintenance_work_mem(total_kb: int, db_type: DBType, os_type: OSType) -> int:
    value = total_kb // 8 if db_type == DBType.DW else total_kb // 16
    if value >= MAINTENANCE_WORK_MEM_CAP_KB:
        # Windows fails to allocate exactly 2GB
        if os_type == OSType.WINDOWS:
            return MAINTENANCE_WORK_MEM_CAP_KB - _MB_KB
        return MAINTENANCE_WORK_MEM_CAP_KB
    return value


def calculate_work_mem(
    total_kb: int,
    shared_buffers_kb: int,
    max_connections: int,
    max_worker_processes: int,
    db_type: DBType,
) -> int:
    base = (total_kb - shared_buffers_kb) // ((max_connections + max_worker_processes) * 3)
    if db_type in (DBType.DW, DBType.MIXED):
        base //= 2
    elif db_type == DBType.DESKTOP:
        base //= 6
    return max(base, WORK_MEM_MIN_KB)


def calculate_wal_buffers(shared_buffers_kb: int) -> int:
    value = min(3 * shared_buffers_kb // 100, WAL_BUFFERS_MAX_KB)
    if WAL_BUFFERS_SNAP_FROM_KB < value < WAL_BUFFERS_MAX_KB:
        value = WAL_BUFFERS_MAX_KB
    return max(value, WAL_BUFFERS_MIN_KB)


def calculate_random_page_cost(disk_type: DiskType) -> float:
    return 4.0 if disk_type == DiskType.HDD else 1.1


def calculate_effective_io_concurrency(os_type: OSType, disk_type: DiskType) -> Optional[int]:
    # Only honoured on Linux (posix_fadvise)
    if os_type != OSType.LINUX:
        return None
    return IO_CONCURRENCY.get(disk_type, 200)


def calculate_default_statistics_target(db_type: DBType) -> int:
    return 500 if db_type == DBType.DW else 100


def calculate_parallel_settings(
    cpu_count: int, db_type: DBType, pg_version: float
) -> tuple[int, int, int, Optional[int]]:
    """Return (max_worker_processes, max_parallel_workers_per_gather,
    max_parallel_workers, max_parallel_maintenance_workers)."""
    if cpu_count < 4:
        return 8, 2, 8, None

    half = math.ceil(cpu_count / 2)
    per_gather = half if db_type == DBType.DW else min(half, 4)
    max_parallel = cpu_count if pg_version >= 10 else 8
    maintenance = min(half, 4) if pg_version >= 11 else None
    return cpu_count, per_gather, max_parallel, maintenance


def calculate_wal_level(db_type: DBType) -> tuple[str, Optional[int]]:
    if db_type == DBType.DESKTOP:
        return "minimal", 0
    return "replica", None


def calculate_huge_pages(total_kb: int) -> str:
    return "try" if total_kb >= HUGE_PAGES_FROM_KB else "off"


def memory_warnings(total_bytes: int) -> tuple[str, ...]:
    warnings = []
    if total_bytes < LOW_MEMORY_BYTES:
        warnings.append(LOW_MEMORY_WARNING)
    if total_bytes > HIGH_MEMORY_BYTES:
        warnings.append(HIGH_MEMORY_WARNING)
    return tuple(warnings)


def get_recommended_max_connections(db_type: DBType) -> int:
    return RECOMMENDED_MAX_CONNECTIONS.get(db_type, DEFAULT_MAX_CONNECTIONS)


def calculate_optimal_config(config: TuningConfig) -> TunedParameters:
    """Compute recommended settings.

    Raises:
        ValidationError: If system info is missing or max_connections is
            not positive
    """
    if config.system_info is None:
        raise ValidationError("system info is required")
    if config.max_connections <= 0:
        raise ValidationError(
            "max_connections must be positive",
            details=[f"Got: {config.max_connections}"],
        )

    info = config.system_info
    db_type = DBType(config.db_type)
    disk_type = config.disk_type or info.disk_type
    total_kb = info.total_memory_kb

    shared_buffers = calculate_shared_buffers(total_kb)
    min_wal, max_wal = WAL_SIZES_KB[db_type]
    workers, per_gather, max_parallel, maintenance_workers = calculate_parallel_settings(
        info.effective_cpu_count, db_type, info.postgres_version
    )
    wal_level, max_wal_senders = calculate_wal_level(db_type)

    return TunedParameters(
        max_connections=config.max_connections,
        shared_buffers=shared_buffers,
        effective_cache_size=calculate_effective_cache_size(total_kb, db_type),
        maintenance_work_mem=calculate_maintenance_work_mem(total_kb, db_type, info.os_type),
        work_mem=calculate_work_mem(
            total_kb, shared_buffers, config.max_connections, workers, db_type
        ),
        wal_buffers=calculate_wal_buffers(shared_buffers),
        min_wal_size=min_wal,
        max_wal_size=max_wal,
        checkpoint_completion_target=0.9,
        random_page_cost=calculate_random_page_cost(disk_type),
        effective_io_concurrency=calculate_effective_io_concurrency(info.os_type, disk_type),
        default_statistics_target=calculate_default_statistics_target(db_type),
        max_worker_processes=workers,
        max_parallel_workers=max_parallel,
        max_parallel_workers_per_gather=per_gather,
        max_parallel_maintenance_workers=maintenance_workers,
        wal_level=wal_level,
        max_wal_senders=max_wal_senders,
        huge_pages=calculate_huge_pages(total_kb),
        warnings=memory_warnings(info.effective_memory),
    )


# Post-processing

PostProcessor = Callable[[Conf, SystemInfo], Conf]


class PostProcessorRegistry:
    """Ordered list of Conf transformations applied after tuning.

    Build one, register processors, apply it, and drop it. Nothing is
    shared between registries.
    """

    def __init__(self, processors: Optional[list[PostProcessor]] = None) -> None:
        self._processors: list[PostProcessor] = list(processors or [])

    def register(self, processor: PostProcessor) -> PostProcessor:
        """Append a processor. Returns it so this can be used as a decorator."""
        self._processors.append(processor)
        return processor

    def __iter__(self) -> Iterator[PostProcessor]:
        return iter(self._processors)

    def __len__(self) -> int:
        return len(self._processors)

    def apply(self, conf: Conf, sys_info: SystemInfo) -> Conf:
        """Run every processor in registration order.

        Raises:
            TuningError: If a processor fails
        """
        for processor in self._processors:
            name = getattr(processor, "__name__", repr(processor))
            console.debug(f"Applying post-processor {name}")
            try:
                conf = processor(conf, sys_info)
            except TuningError:
                raise
            except Exception as e:
                raise TuningError(
                    f"Post-processor {name} failed",
                    details=[str(e)],
                ) from e
        return conf


def tuning_post_processor(conf: Conf, sys_info: SystemInfo) -> Conf:
    """Merge mixed-workload recommendations into conf.

    Uses conf's max_connections when it is a positive integer, else 100.
    """
    try:
        max_connections = int(conf.get("max_connections", ""))
    except ValueError:
        max_connections = DEFAULT_MAX_CONNECTIONS
    if max_connections <= 0:
        max_connections = DEFAULT_MAX_CONNECTIONS

    params = calculate_optimal_config(
        TuningConfig(system_info=sys_info, max_connections=max_connections)
    )
    return conf.merge_from(params.to_conf())


def default_post_processors() -> PostProcessorRegistry:
    """A fresh registry holding the standard tuning post-processor."""
    return PostProcessorRegistry([tuning_post_processor])


@dataclass
class PgTune:
    """The tuning engine behind a runtime enable switch."""

    enabled: bool = True
    post_processors: PostProcessorRegistry = field(default_factory=default_post_processors)

    def _require_enabled(self) -> None:
        if not self.enabled:
            raise TuningError(
                "pgtune is disabled",
                hint="Set tuning.enabled: true in the configuration file",
            )

    def calculate(self, config: TuningConfig) -> TunedParameters:
        """Compute recommendations, failing if the engine is disabled.

        Raises:
            TuningError: If disabled
            ValidationError: If the input is invalid
        """
        self._require_enabled()
        params = calculate_optimal_config(config)
        for warning in params.warnings:
            console.warn(warning)
        return params

    def apply_post_processors(
        self,
        conf: Conf,
        sys_info: SystemInfo,
        post_processors: Optional[list[PostProcessor]] = None,
    ) -> Conf:
        """Run post-processors over conf.

        An explicit list replaces the engine's registry for this call.

        Raises:
            TuningError: If disabled or a processor fails
        """
        self._require_enabled()
        registry = (
            PostProcessorRegistry(post_processors)
            if post_processors is not None
            else self.post_processors
        )
        return registry.apply(conf, sys_info)
