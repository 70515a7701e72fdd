"""WAL-G backup agent access."""

import json
from pathlib import Path
from typing import Any, Optional

from pgfleet.core.config import WalgConfig
from pgfleet.core.context import ExecutionContext
from pgfleet.core.exceptions import BackupError, ExecutionError
from pgfleet.core.executor import CommandExecutor


class WalGService:
    """Runs wal-g with storage settings taken from the configuration."""

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        config: WalgConfig,
        *,
        data_dir: Optional[Path] = None,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.config = config
        self.data_dir = data_dir

    @property
    def storage_type(self) -> str:
        if self.config.s3_prefix:
            return "S3"
        if self.config.gs_prefix:
            return "GCS"
        if self.config.az_prefix:
            return "Azure"
        if self.config.file_prefix:
            return "File"
        return "None"

    def build_environment(self) -> dict[str, str]:
        env = {}
        if self.data_dir:
            env["WALG_POSTGRESQL_DATA_DIR"] = str(self.data_dir)
        prefixes = {
            "WALG_S3_PREFIX": self.config.s3_prefix,
            "WALG_GS_PREFIX": self.config.gs_prefix,
            "WALG_AZ_PREFIX": self.config.az_prefix,
            "WALG_FILE_PREFIX": self.config.file_prefix,
        }
        env.update({k: v for k, v in prefixes.items() if v})
        return env

    def _check_ready(self) -> None:
        if not self.config.enabled:
            raise BackupError("WAL-G is disabled")
        if not self.config.has_storage:
            raise BackupError(
                "WAL-G storage configuration required",
                hint="Set one of walg.s3_prefix, gs_prefix, az_prefix or file_prefix",
            )
        if self.executor.which("wal-g") is None:
            raise BackupError("wal-g binary not found in PATH")

    def backup_list(self) -> list[dict[str, Any]]:
        """Backups as reported by ``wal-g backup-list --json``.

        Raises:
            BackupError: If wal-g is unavailable, fails, or prints invalid JSON
        """
        self._check_ready()
        try:
            result = self.executor.run(
                ["wal-g", "backup-list", "--json"],
                read_only=True,
                timeout=60,
                env=self.build_environment(),
            )
        except ExecutionError as e:
            raise BackupError(
                "WAL-G backup-list failed",
                details=[e.message] + e.details,
            ) from e

        output = result.stdout.strip()
        if not output:
            return []
        try:
            backups = json.loads(output)
        except json.JSONDecodeError as e:
            raise BackupError("WAL-G returned invalid JSON", details=[str(e)]) from e
        return backups if isinstance(backups, list) else []

    def health(self) -> None:
        """Raises BackupError unless wal-g can list backups."""
        self.backup_list()
