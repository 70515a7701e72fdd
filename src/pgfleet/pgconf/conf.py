"""Flattened PostgreSQL configuration and its derived views.

A ``Conf`` maps parameter names to string values. Empty values mean
"unset" and never appear in rendered output. Rendering is always sorted by
key so generated command lines and files are deterministic.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from pgfleet.core.exceptions import ValidationError
from pgfleet.utils.units import KB, MB, GB


# Parameters owned by the tuning engine
PERFORMANCE_PARAMS = frozenset({
    "checkpoint_completion_target",
    "default_statistics_target",
    "effective_cache_size",
    "effective_io_concurrency",
    "huge_pages",
    "maintenance_work_mem",
    "max_connections",
    "max_parallel_maintenance_workers",
    "max_parallel_workers_per_gather",
    "max_parallel_workers",
    "max_wal_senders",
    "max_wal_size",
    "max_worker_processes",
    "min_wal_size",
    "random_page_cost",
    "shared_buffers",
    "wal_buffers",
    "wal_level",
    "work_mem",
})

# Parameters that must be given to the postmaster at startup
STARTUP_PARAMS = frozenset({
    "listen_addresses",
    "port",
    "max_wal_size",
    "shared_buffers",
    "wal_level",
    "config-file",
    "D",
    "data-directory",
    "ssl",
})

LOCALE_PARAMS = (
    "lc_collate",
    "lc_ctype",
    "lc_messages",
    "lc_monetary",
    "lc_numeric",
    "lc_time",
)

INITDB_FLAGS = {
    "encoding": "--encoding",
    "lc_collate": "--lc-collate",
    "lc_ctype": "--lc-ctype",
    "lc_messages": "--lc-messages",
    "lc_monetary": "--lc-monetary",
    "lc_numeric": "--lc-numeric",
    "lc_time": "--lc-time",
}


class Conf(dict[str, str]):
    """Parameter name to string value.

    Derived views return new objects and never modify the receiver.
    """

    def sorted_items(self) -> list[tuple[str, str]]:
        """Non-empty entries sorted by key."""
        return sorted((k, v) for k, v in self.items() if v != "")

    def as_args(self) -> list[str]:
        """Render as ``--key=value`` tokens, quoting values with whitespace."""
        args = []
        for key, value in self.sorted_items():
            if any(c.isspace() for c in value):
                value = f"'{value}'"
            args.append(f"--{key}={value}")
        return args

    def as_file(self) -> str:
        """Render as ``key = value`` lines."""
        return "".join(f"{key} = {value}\n" for key, value in self.sorted_items())

    def merge_from(self, other: "dict[str, str]") -> "Conf":
        """Return a new Conf with other's values winning on conflict."""
        merged = Conf(self)
        merged.update(other)
        return merged

    def core(self) -> "Conf":
        """Everything except tuning, startup and ``*_log`` parameters."""
        return Conf({
            k: v for k, v in self.items()
            if k not in PERFORMANCE_PARAMS
            and k not in STARTUP_PARAMS
            and not k.endswith("_log")
        })

    def for_initdb(self) -> "Conf":
        """Locale settings plus ``encoding`` (from server_encoding)."""
        result = Conf({k: self[k] for k in LOCALE_PARAMS if self.get(k)})
        if self.get("server_encoding"):
            result["encoding"] = self["server_encoding"]
        return result

    def for_temp_server(self) -> "Conf":
        """Startup parameters for a temporary server that accepts no TCP connections."""
        result = Conf({k: v for k, v in self.items() if k in STARTUP_PARAMS})
        result["listen_addresses"] = ""
        return result

    def as_initdb_args(self) -> list[str]:
        """Render initdb-applicable keys as initdb flags."""
        return [
            f"{INITDB_FLAGS[key]}={value}"
            for key, value in self.sorted_items()
            if key in INITDB_FLAGS
        ]


_UNIT_MULTIPLIERS = {
    "8kB": 8 * KB,
    "8kb": 8 * KB,
    "kB": KB,
    "KB": KB,
    "MB": MB,
    "GB": GB,
}


@dataclass
class ConfigSetting:
    """One row of the ``pg_settings`` view."""

    name: str
    setting: str = ""
    unit: Optional[str] = None
    category: str = ""
    short_desc: str = ""
    extra_desc: Optional[str] = None
    context: str = ""
    vartype: str = ""
    source: str = ""
    min_val: Optional[str] = None
    max_val: Optional[str] = None
    enumvals: list[str] = field(default_factory=list)
    boot_val: str = ""
    reset_val: str = ""
    sourcefile: Optional[str] = None
    sourceline: Optional[int] = None
    pending_restart: bool = False

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ConfigSetting":
        """Build from a pg_settings row, ignoring unknown columns."""
        known = cls.__dataclass_fields__
        values = {k: v for k, v in row.items() if k in known}
        if values.get("enumvals") is None:
            values["enumvals"] = []
        for key in ("setting", "boot_val", "reset_val", "source", "category",
                    "short_desc", "context", "vartype"):
            if values.get(key) is None:
                values.pop(key, None)
        return cls(**values)

    @property
    def is_bytes(self) -> bool:
        return self.unit in _UNIT_MULTIPLIERS

    def get_int(self) -> int:
        """Integer value scaled to bytes for memory units.

        Raises:
            ValidationError: If the setting is not an integer
        """
        try:
            num = int(self.setting)
        except ValueError:
            raise ValidationError(f"{self.name} is not an integer: {self.setting!r}")
        return num * _UNIT_MULTIPLIERS.get(self.unit or "", 1)

    def get_bool(self) -> bool:
        """Boolean value; empty means False.

        Raises:
            ValidationError: If the setting is not a recognized boolean
        """
        if self.setting == "":
            return False
        lower = self.setting.lower()
        if lower in ("on", "true", "yes"):
            return True
        if lower in ("off", "false", "no"):
            return False
        raise ValidationError(f"Unknown bool value for {self.name}: {self.setting}")

    def __str__(self) -> str:
        if not self.is_bytes:
            return self.setting
        try:
            val = self.get_int()
        except ValidationError:
            return self.setting
        if val >= GB and val % GB == 0:
            return f"{val // GB}GB"
        if val >= MB and val % MB == 0:
            return f"{val // MB}MB"
        return f"{val // KB}kB"


class ConfSettings(list[ConfigSetting]):
    """A list of pg_settings rows."""

    @classmethod
    def from_rows(cls, rows: Iterable[dict[str, Any]]) -> "ConfSettings":
        return cls(ConfigSetting.from_row(row) for row in rows)

    def as_map(self) -> dict[str, ConfigSetting]:
        return {s.name: s for s in self}

    def to_conf(self) -> Conf:
        """Rendered values keyed by name, skipping unset settings."""
        return Conf({s.name: str(s) for s in self if s.setting != ""})
