"""PostgreSQL service abstraction.

Wraps the server binaries and psql for the operations the rest of the
toolkit needs: parameter metadata, version detection, control data and
simple queries.
"""

import json
import re
from pathlib import Path
from typing import Any, Optional

from pgfleet.core.config import PostgresConfig
from pgfleet.core.context import ExecutionContext
from pgfleet.core.exceptions import ExecutionError, PostgresError
from pgfleet.core.executor import CommandExecutor
from pgfleet.pgconf.conf import ConfSettings
from pgfleet.pgconf.controldata import ControlData
from pgfleet.pgconf.describe import Param, parse_describe_config


_VERSION_RE = re.compile(r"\(PostgreSQL\)\s+(\d+)(?:\.(\d+))?")

SETTINGS_QUERY = (
    "SELECT name, setting, unit, category, short_desc, extra_desc, context, "
    "vartype, source, min_val, max_val, enumvals, boot_val, reset_val, "
    "sourcefile, sourceline, pending_restart FROM pg_settings"
)


class PostgreSQLService:
    """Interface to a local PostgreSQL installation."""

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        config: PostgresConfig,
        *,
        password: Optional[str] = None,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.config = config
        self.password = password

    def binary(self, name: str) -> str:
        """Path to a server binary, honouring bin_dir."""
        if self.config.bin_dir:
            return str(self.config.bin_dir / name)
        return name

    def describe_config(self) -> list[Param]:
        """Run ``postgres --describe-config`` and parse the result.

        Raises:
            PostgresError: If the binary fails
            ParseError: If the output is malformed
        """
        try:
            result = self.executor.run(
                [self.binary("postgres"), "--describe-config"],
                description="Reading parameter metadata",
                read_only=True,
                timeout=60,
            )
        except ExecutionError as e:
            raise PostgresError(
                "Failed to run postgres --describe-config",
                details=[e.message] + e.details,
                hint="Set postgres.bin_dir in the configuration file",
            ) from e
        return parse_describe_config(result.stdout)

    def detect_version(self) -> Optional[float]:
        """Major (and minor, for pre-10) version of the server binary."""
        try:
            result = self.executor.run(
                [self.binary("postgres"), "--version"],
                read_only=True,
                timeout=10,
            )
        except ExecutionError as e:
            self.ctx.console.debug(f"Could not detect PostgreSQL version: {e}")
            return None

        match = _VERSION_RE.search(result.stdout)
        if not match:
            return None
        major = int(match.group(1))
        if major < 10 and match.group(2):
            return float(f"{major}.{match.group(2)}")
        return float(major)

    def controldata(self, data_dir: Optional[Path] = None) -> ControlData:
        """Raises PostgresError if pg_controldata fails."""
        try:
            return ControlData.from_pg_controldata(
                self.executor,
                data_dir or self.config.data_dir,
                bin_dir=self.config.bin_dir,
            )
        except ExecutionError as e:
            raise PostgresError(
                "Failed to read control data",
                details=[e.message] + e.details,
            ) from e

    def sql(self, query: str) -> list[dict[str, Any]]:
        """Run a query and return its rows as dicts.

        Raises:
            PostgresError: If the query fails or returns invalid JSON
        """
        wrapped = f"SELECT coalesce(json_agg(t), '[]'::json) FROM ({query}) t"
        try:
            output = self.executor.run_sql(
                wrapped,
                host=self.config.host,
                port=self.config.port,
                user=self.config.user,
                database=self.config.database,
                password=self.password,
            )
        except ExecutionError as e:
            raise PostgresError(
                f"Query failed: {query[:80]}",
                details=[e.message] + e.details,
            ) from e

        try:
            rows = json.loads(output or "[]")
        except json.JSONDecodeError as e:
            raise PostgresError("Query returned invalid JSON", details=[str(e)]) from e
        return rows

    def read_settings(self) -> ConfSettings:
        """Current pg_settings rows."""
        return ConfSettings.from_rows(self.sql(SETTINGS_QUERY))

    def health(self) -> None:
        """Raises PostgresError unless ``SELECT 1`` succeeds."""
        self.sql("SELECT 1 AS ok")
