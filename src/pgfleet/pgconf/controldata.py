"""Parser for ``pg_controldata`` output.

pg_controldata prints one ``Key: Value`` pair per line. Only a fixed set
of keys is kept; everything else is ignored. Parsing never fails: a value
that cannot be converted leaves its field at 0 (or None for timestamps)
and is listed in ``parse_warnings``.
"""

import re
from dataclasses import dataclass, fields
from datetime import datetime
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from pgfleet.core.output import console

if TYPE_CHECKING:
    from pgfleet.core.executor import CommandExecutor


# Month and weekday names are always English in pg_controldata's C-locale
# output, so timestamps are matched explicitly instead of via strptime.
_MONTHS = {
    "Jan": 1, "Feb": 2, "Mar": 3, "Apr": 4, "May": 5, "Jun": 6,
    "Jul": 7, "Aug": 8, "Sep": 9, "Oct": 10, "Nov": 11, "Dec": 12,
}
_TIMESTAMP_RE = re.compile(
    r"^(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun)\s+([A-Z][a-z]{2})\s+(\d{1,2})\s+"
    r"(\d{2}):(\d{2}):(\d{2})\s+(\d{4})$"
)

# key -> (field name, kind)
_FIELDS: dict[str, tuple[str, str]] = {
    "pg_control version number": ("pg_control_version", "int"),
    "Catalog version number": ("catalog_version", "int"),
    "Database system identifier": ("database_system_identifier", "str"),
    "Database cluster state": ("database_cluster_state", "str"),
    "pg_control last modified": ("pg_control_last_modified", "time"),
    "Latest checkpoint location": ("latest_checkpoint_location", "str"),
    "Latest checkpoint's REDO location": ("latest_checkpoint_redo_location", "str"),
    "Latest checkpoint's REDO WAL file": ("latest_checkpoint_redo_wal_file", "str"),
    "Latest checkpoint's TimeLineID": ("latest_checkpoint_timeline_id", "int"),
    "Time of latest checkpoint": ("latest_checkpoint_time", "time"),
    "wal_level setting": ("wal_level", "str"),
    "wal_log_hints setting": ("wal_log_hints", "str"),
    "max_connections setting": ("max_connections", "int"),
    "max_worker_processes setting": ("max_worker_processes", "int"),
    "max_wal_senders setting": ("max_wal_senders", "int"),
    "max_prepared_xacts setting": ("max_prepared_xacts", "int"),
    "max_locks_per_xact setting": ("max_locks_per_xact", "int"),
    "track_commit_timestamp setting": ("track_commit_timestamp", "str"),
    "Database block size": ("database_block_size", "int"),
    "WAL block size": ("wal_block_size", "int"),
    "Bytes per WAL segment": ("bytes_per_wal_segment", "int"),
    "Maximum length of identifiers": ("max_identifier_length", "int"),
    "Data page checksum version": ("data_page_checksum_version", "int"),
}


def parse_controldata_time(value: str) -> Optional[datetime]:
    """Parse a ``Wed Oct 29 08:00:54 2025`` style timestamp, or None."""
    match = _TIMESTAMP_RE.match(value.strip())
    if not match:
        return None
    month = _MONTHS.get(match.group(1))
    if month is None:
        return None
    day, hour, minute, second, year = (int(g) for g in match.group(2, 3, 4, 5, 6))
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


@dataclass(frozen=True)
class ControlData:
    """One pg_controldata snapshot.

    LSNs and the system identifier are kept as opaque strings.
    """

    pg_control_version: int = 0
    catalog_version: int = 0
    database_system_identifier: str = ""
    database_cluster_state: str = ""
    pg_control_last_modified: Optional[datetime] = None
    latest_checkpoint_location: str = ""
    latest_checkpoint_redo_location: str = ""
    latest_checkpoint_redo_wal_file: str = ""
    latest_checkpoint_timeline_id: int = 0
    latest_checkpoint_time: Optional[datetime] = None
    wal_level: str = ""
    wal_log_hints: str = ""
    max_connections: int = 0
    max_worker_processes: int = 0
    max_wal_senders: int = 0
    max_prepared_xacts: int = 0
    max_locks_per_xact: int = 0
    track_commit_timestamp: str = ""
    database_block_size: int = 0
    wal_block_size: int = 0
    bytes_per_wal_segment: int = 0
    max_identifier_length: int = 0
    data_page_checksum_version: int = 0
    parse_warnings: tuple[str, ...] = ()

    @property
    def is_in_production(self) -> bool:
        return self.database_cluster_state == "in production"

    @property
    def checksums_enabled(self) -> bool:
        return self.data_page_checksum_version > 0

    def as_dict(self) -> dict[str, object]:
        """Field values keyed by field name, timestamps as ISO strings."""
        result: dict[str, object] = {}
        for f in fields(self):
            if f.name == "parse_warnings":
                continue
            value = getattr(self, f.name)
            result[f.name] = value.isoformat() if isinstance(value, datetime) else value
        return result

    @classmethod
    def parse(cls, output: str) -> "ControlData":
        """Parse pg_controldata text. Never raises on malformed content."""
        values: dict[str, object] = {}
        warnings: list[str] = []

        for raw in output.split("\n"):
            line = raw.strip()
            if not line or ":" not in line:
                continue

            key, _, value = line.partition(":")
            key = key.strip()
            value = value.strip()

            spec = _FIELDS.get(key)
            if spec is None:
                continue
            name, kind = spec

            if kind == "str":
                values[name] = value
            elif kind == "int":
                try:
                    values[name] = int(value)
                except ValueError:
                    warnings.append(f"{key}: {value}")
            else:
                parsed = parse_controldata_time(value)
                if parsed is None:
                    warnings.append(f"{key}: {value}")
                else:
                    values[name] = parsed

        for warning in warnings:
            console.debug(f"pg_controldata field not parsed: {warning}")

        return cls(**values, parse_warnings=tuple(warnings))

    @classmethod
    def from_pg_controldata(
        cls,
        executor: "CommandExecutor",
        data_dir: Path,
        *,
        bin_dir: Optional[Path] = None,
    ) -> "ControlData":
        """Run pg_controldata against a data directory and parse its output.

        Raises:
            ExecutionError: If pg_controldata fails
        """
        binary = str(bin_dir / "pg_controldata") if bin_dir else "pg_controldata"
        result = executor.run(
            [binary, "-D", str(data_dir)],
            description=f"Reading control data from {data_dir}",
            read_only=True,
            timeout=30,
            env={"LC_ALL": "C"},
        )
        return cls.parse(result.stdout)


def parse_controldata(output: str) -> ControlData:
    """Parse pg_controldata output into a ControlData record."""
    return ControlData.parse(output)
