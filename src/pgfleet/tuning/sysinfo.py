"""System resource detection for tuning.

Provides:
- Memory and CPU detection, honouring container cgroup limits
- OS and disk type detection
- Target PostgreSQL version from the environment
"""

import os
import platform
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import psutil

from pgfleet.core.context import ExecutionContext
from pgfleet.core.exceptions import ExecutionError
from pgfleet.core.executor import CommandExecutor
from pgfleet.utils.units import KB, MB, GB


class OSType(str, Enum):
    LINUX = "linux"
    WINDOWS = "windows"
    MAC = "mac"


class DiskType(str, Enum):
    SSD = "ssd"
    HDD = "hdd"
    SAN = "san"


class DBType(str, Enum):
    """Workload classes the tuning formulas distinguish."""

    WEB = "web"
    OLTP = "oltp"
    DW = "dw"
    DESKTOP = "desktop"
    MIXED = "mixed"

    @property
    def description(self) -> str:
        descriptions = {
            "web": "Web application: many short, simple queries",
            "oltp": "Online transaction processing: high concurrency writes",
            "dw": "Data warehouse: few large analytical queries",
            "desktop": "Desktop / developer machine: minimal footprint",
            "mixed": "Mixed workload (general purpose)",
        }
        return descriptions[self.value]


DEFAULT_PG_VERSION = 17.0
DEFAULT_MEMORY_BYTES = 1 * GB
PG_VERSION_ENV_VARS = ("TARGET_VERSION", "PG_VERSION", "POSTGRES_VERSION")

# cgroup v1 reports "no limit" as a huge value near max int64
_CGROUP_V1_UNLIMITED = 9223372036854771712


@dataclass
class Resources:
    """CPU and memory of either the host or the container."""

    cpus: int = 0
    memory: int = 0  # bytes
    millis: int = 0  # CPU quota in millicores

    def __str__(self) -> str:
        text = f"CPU: {self.cpus}"
        if self.millis:
            text += f" Quota: {self.millis} millis"
        if self.memory:
            text += f" Memory: {self.memory / GB:.1f}GB"
        return text


@dataclass
class SystemInfo:
    """Facts about the machine PostgreSQL will run on."""

    system: Resources = field(default_factory=Resources)
    container: Resources = field(default_factory=Resources)
    os_type: OSType = OSType.LINUX
    postgres_version: float = DEFAULT_PG_VERSION
    disk_type: DiskType = DiskType.SSD
    is_container: bool = False

    @classmethod
    def from_values(
        cls,
        memory_bytes: int,
        cpus: int,
        *,
        os_type: OSType = OSType.LINUX,
        disk_type: DiskType = DiskType.SSD,
        postgres_version: float = DEFAULT_PG_VERSION,
    ) -> "SystemInfo":
        """Build from explicit figures instead of detection."""
        return cls(
            system=Resources(cpus=cpus, memory=memory_bytes),
            os_type=os_type,
            disk_type=disk_type,
            postgres_version=postgres_version,
        )

    @property
    def effective_cpu_count(self) -> int:
        """Container CPU limit if set, else host CPUs."""
        return self.container.cpus or self.system.cpus

    @property
    def effective_memory(self) -> int:
        """Container memory limit if set, else host memory (bytes)."""
        return self.container.memory or self.system.memory

    @property
    def total_memory_kb(self) -> int:
        return self.effective_memory // KB

    @property
    def total_memory_mb(self) -> float:
        return self.effective_memory / MB

    @property
    def total_memory_gb(self) -> float:
        """Effective memory in GB, never below 1.0 for display."""
        return max(self.effective_memory / GB, 1.0)


def detect_os_type() -> OSType:
    system = platform.system().lower()
    if system == "windows":
        return OSType.WINDOWS
    if system == "darwin":
        return OSType.MAC
    return OSType.LINUX


def detect_postgres_version(env: Optional[dict[str, str]] = None) -> float:
    """Target version from TARGET_VERSION, PG_VERSION or POSTGRES_VERSION."""
    env = os.environ if env is None else env
    for name in PG_VERSION_ENV_VARS:
        value = env.get(name, "")
        if not value:
            continue
        try:
            return float(value)
        except ValueError:
            continue
    return DEFAULT_PG_VERSION


def extract_base_device(device: str) -> Optional[str]:
    """Extract base block device name from a device path.

    Handles:
    - /dev/sda1 -> sda
    - /dev/nvme0n1p1 -> nvme0n1
    - /dev/mapper/* -> None (would need dm-X lookup)
    """
    device = device.replace("/dev/", "")

    if device.startswith("mapper/") or device.startswith("dm-"):
        return None

    nvme_match = re.match(r"(nvme\d+n\d+)", device)
    if nvme_match:
        return nvme_match.group(1)

    trad_match = re.match(r"([a-z]+)", device)
    if trad_match:
        return trad_match.group(1)

    return None


class SystemInfoDetector:
    """Detects SystemInfo for the current host.

    Filesystem roots are constructor arguments so detection can be run
    against a fake /proc and /sys tree.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        *,
        proc_root: Path = Path("/proc"),
        sys_root: Path = Path("/sys"),
        root: Path = Path("/"),
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.proc_root = proc_root
        self.sys_root = sys_root
        self.root = root

    @property
    def cgroup_root(self) -> Path:
        return self.sys_root / "fs" / "cgroup"

    def detect(self, data_dir: Optional[Path] = None) -> SystemInfo:
        """Detect all system facts.

        Args:
            data_dir: PostgreSQL data directory used to find the backing disk
        """
        info = SystemInfo(
            is_container=self.detect_container(),
            os_type=detect_os_type(),
            postgres_version=detect_postgres_version(),
            disk_type=self.detect_disk_type(data_dir),
        )

        info.system.memory = self.detect_total_memory()
        info.system.cpus = os.cpu_count() or 1

        container_mem = self.detect_container_memory_limit()
        if container_mem:
            info.container.memory = container_mem

        quota = self.detect_container_cpu_quota()
        if quota > 0:
            info.container.millis = int(quota * 1000)
            info.container.cpus = max(1, int(quota + 0.5))

        self.ctx.console.debug(
            f"Detected system: {info.system}; container: {info.container}; "
            f"os={info.os_type.value} disk={info.disk_type.value} "
            f"pg={info.postgres_version}"
        )
        return info

    # Memory

    def detect_total_memory(self) -> int:
        """Host memory in bytes: /proc/meminfo, then psutil, then 1GB."""
        meminfo = self.proc_root / "meminfo"
        try:
            with open(meminfo) as f:
                for line in f:
                    if line.startswith("MemTotal:"):
                        return int(line.split()[1]) * KB
        except (OSError, ValueError, IndexError):
            pass

        total = psutil.virtual_memory().total
        return total if total > 0 else DEFAULT_MEMORY_BYTES

    def detect_container_memory_limit(self) -> int:
        """Container memory limit in bytes, or 0 when unlimited."""
        return self._read_cgroup_v2_memory_limit() or self._read_cgroup_v1_memory_limit()

    def _self_cgroup_lines(self) -> list[str]:
        try:
            return (self.proc_root / "self" / "cgroup").read_text().splitlines()
        except OSError:
            return []

    def _cgroup_v2_path(self) -> str:
        for line in self._self_cgroup_lines():
            if line.startswith("0::"):
                return line[3:]
        return ""

    def _cgroup_v1_path(self, *controllers: str) -> str:
        for line in self._self_cgroup_lines():
            parts = line.split(":")
            if len(parts) >= 3 and parts[1] in controllers:
                return parts[2].lstrip("/")
        return ""

    @staticmethod
    def _read_limit_file(path: Path) -> int:
        try:
            content = path.read_text().strip()
        except OSError:
            return 0
        if content == "max":
            return 0
        try:
            return max(int(content), 0)
        except ValueError:
            return 0

    def _read_memory_limit(self, cgroup_dir: Path) -> int:
        # memory.high (soft limit) takes precedence over memory.max
        return (
            self._read_limit_file(cgroup_dir / "memory.high")
            or self._read_limit_file(cgroup_dir / "memory.max")
        )

    def _read_cgroup_v2_memory_limit(self) -> int:
        if not (self.cgroup_root / "cgroup.controllers").exists():
            return 0

        # The most restrictive limit anywhere between root and our cgroup wins
        current = self.cgroup_root
        min_limit = self._read_memory_limit(current)
        for part in self._cgroup_v2_path().strip("/").split("/"):
            if not part:
                continue
            current = current / part
            limit = self._read_memory_limit(current)
            if limit and (not min_limit or limit < min_limit):
                min_limit = limit
        return min_limit

    def _read_cgroup_v1_memory_limit(self) -> int:
        path = self._cgroup_v1_path("memory")
        if not path:
            return 0
        limit = self._read_limit_file(
            self.cgroup_root / "memory" / path / "memory.limit_in_bytes"
        )
        return limit if limit < _CGROUP_V1_UNLIMITED else 0

    # CPU

    def detect_container_cpu_quota(self) -> float:
        """CPU quota as fractional CPUs, or 0 when unlimited."""
        return self._read_cgroup_v2_cpu_quota() or self._read_cgroup_v1_cpu_quota()

    def _read_cgroup_v2_cpu_quota(self) -> float:
        if not (self.cgroup_root / "cgroup.controllers").exists():
            return 0.0
        try:
            fields = (self.cgroup_root / "cpu.max").read_text().split()
        except OSError:
            return 0.0
        if len(fields) < 2 or fields[0] == "max":
            return 0.0
        try:
            quota, period = int(fields[0]), int(fields[1])
        except ValueError:
            return 0.0
        return quota / period if period else 0.0

    def _read_cgroup_v1_cpu_quota(self) -> float:
        path = self._cgroup_v1_path("cpu", "cpu,cpuacct", "cpuacct,cpu")
        if not path:
            return 0.0
        base = self.cgroup_root / "cpu" / path
        try:
            quota = int((base / "cpu.cfs_quota_us").read_text().strip())
            period = int((base / "cpu.cfs_period_us").read_text().strip())
        except (OSError, ValueError):
            return 0.0
        if quota == -1 or period == 0:
            return 0.0
        return quota / period

    # Container and disk

    def detect_container(self) -> bool:
        if (self.root / ".dockerenv").exists():
            return True
        if (self.root / "run" / "secrets" / "kubernetes.io").exists():
            return True
        if os.environ.get("KUBERNETES_SERVICE_HOST"):
            return True
        try:
            cgroup = (self.proc_root / "1" / "cgroup").read_text()
        except OSError:
            cgroup = ""
        return any(m in cgroup for m in ("/docker/", "/kubepods/", "/k8s.io/"))

    def detect_disk_type(self, data_dir: Optional[Path] = None) -> DiskType:
        """Rotational flag of the disk backing data_dir (default sda).

        Anything undeterminable is treated as SSD.
        """
        device = "sda"
        if data_dir is not None and data_dir.exists():
            try:
                result = self.executor.run(
                    ["df", "--output=source", str(data_dir)],
                    read_only=True,
                    timeout=5,
                )
                base = extract_base_device(result.stdout.strip().split("\n")[-1])
                if base:
                    device = base
            except ExecutionError as e:
                self.ctx.console.debug(f"Could not resolve device for {data_dir}: {e}")

        rotational = self.sys_root / "block" / device / "queue" / "rotational"
        try:
            flag = rotational.read_text().strip()
        except OSError:
            return DiskType.SSD
        return DiskType.HDD if flag == "1" else DiskType.SSD
