"""PgBouncer admin console access."""

from dataclasses import dataclass
from typing import Optional

from pgfleet.core.config import PgBouncerConfig
from pgfleet.core.context import ExecutionContext
from pgfleet.core.exceptions import ExecutionError, PgBouncerError
from pgfleet.core.executor import CommandExecutor


ADMIN_DATABASE = "pgbouncer"


@dataclass
class PoolInfo:
    """One row of ``SHOW POOLS``."""
    database: str
    user: str
    cl_active: int
    cl_waiting: int
    sv_active: int
    sv_idle: int
    pool_mode: str


def _to_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


class PgBouncerService:
    """Queries the PgBouncer admin console through psql."""

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        config: PgBouncerConfig,
        *,
        password: Optional[str] = None,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.config = config
        self.password = password

    def _admin(self, command: str, *, headers: bool = False) -> str:
        try:
            return self.executor.run_sql(
                command,
                host=self.config.host,
                port=self.config.port,
                user=self.config.admin_user,
                database=ADMIN_DATABASE,
                password=self.password,
                headers=headers,
            )
        except ExecutionError as e:
            raise PgBouncerError(
                f"PgBouncer {command} failed",
                details=[e.message] + e.details,
                hint=f"Check that PgBouncer listens on {self.config.host}:{self.config.port}",
            ) from e

    def show_pools(self) -> list[PoolInfo]:
        """Parse ``SHOW POOLS``.

        Columns are looked up by header name; PgBouncer 1.18 and later
        insert cancel-request counters ahead of sv_active. Missing counters
        read as zero.

        Raises:
            PgBouncerError: If the output has no database/user header
        """
        lines = self._admin("SHOW POOLS", headers=True).splitlines()
        if not lines:
            return []
        header = lines[0].split("|")
        if "database" not in header or "user" not in header:
            raise PgBouncerError(
                "Unexpected SHOW POOLS output",
                details=[f"Header: {lines[0]!r}"],
            )

        pools = []
        for line in lines[1:]:
            cols = line.split("|")
            if len(cols) != len(header):
                continue
            row = dict(zip(header, cols))
            pools.append(PoolInfo(
                database=row["database"],
                user=row["user"],
                cl_active=_to_int(row.get("cl_active", "")),
                cl_waiting=_to_int(row.get("cl_waiting", "")),
                sv_active=_to_int(row.get("sv_active", "")),
                sv_idle=_to_int(row.get("sv_idle", "")),
                pool_mode=row.get("pool_mode", ""),
            ))
        return pools

    def health(self) -> None:
        """Raises PgBouncerError unless the admin console answers SHOW POOLS."""
        self._admin("SHOW POOLS")
