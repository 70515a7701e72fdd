"""Unit tests for the PostgreSQL, PgBouncer and WAL-G services."""

import json
from pathlib import Path
from unittest.mock import Mock

import pytest

from pgfleet.core.config import PgBouncerConfig, PostgresConfig, WalgConfig
from pgfleet.core.exceptions import (
    BackupError,
    ExecutionError,
    ParseError,
    PgBouncerError,
    PostgresError,
)
from pgfleet.core.executor import CommandResult
from pgfleet.services import PgBouncerService, PostgreSQLService, WalGService


def _result(stdout="", return_code=0):
    return CommandResult(command=["cmd"], return_code=return_code, stdout=stdout, stderr="")


@pytest.fixture
def mock_ctx():
    """Create a mock execution context."""
    ctx = Mock()
    ctx.dry_run = False
    return ctx


@pytest.fixture
def mock_executor():
    """Create a mock command executor."""
    return Mock()


class TestPostgreSQLService:
    """Tests for PostgreSQLService."""

    @pytest.fixture
    def service(self, mock_ctx, mock_executor):
        config = PostgresConfig(bin_dir="/usr/lib/postgresql/17/bin", port=5433)
        return PostgreSQLService(mock_ctx, mock_executor, config, password="pw")

    def test_binary_honours_bin_dir(self, service, mock_ctx, mock_executor):
        """Binaries should be resolved inside bin_dir when set."""
        assert service.binary("postgres") == "/usr/lib/postgresql/17/bin/postgres"
        bare = PostgreSQLService(mock_ctx, mock_executor, PostgresConfig())
        assert bare.binary("postgres") == "postgres"

    def test_describe_config(self, service, mock_executor):
        """describe-config output should be parsed into Params."""
        mock_executor.run.return_value = _result(
            "work_mem\tuser\tResource Usage / Memory\tINTEGER\t4096\t64\t2147483647\t"
            "Sets the maximum memory to be used for query workspaces.\t\n"
        )

        params = service.describe_config()

        assert [p.name for p in params] == ["work_mem"]
        args, kwargs = mock_executor.run.call_args
        assert args[0] == ["/usr/lib/postgresql/17/bin/postgres", "--describe-config"]
        assert kwargs["read_only"] is True

    def test_describe_config_failure(self, service, mock_executor):
        """A failing binary should raise PostgresError."""
        mock_executor.run.side_effect = ExecutionError("boom", return_code=1)
        with pytest.raises(PostgresError, match="describe-config") as exc_info:
            service.describe_config()
        assert "Exit code: 1" in exc_info.value.details

    def test_describe_config_malformed(self, service, mock_executor):
        """Malformed output should raise ParseError."""
        mock_executor.run.return_value = _result("just\ttwo\n")
        with pytest.raises(ParseError):
            service.describe_config()

    @pytest.mark.parametrize("output,expected", [
        ("postgres (PostgreSQL) 17.2", 17.0),
        ("postgres (PostgreSQL) 16.4 (Debian 16.4-1.pgdg120+2)", 16.0),
        ("postgres (PostgreSQL) 9.6.24", 9.6),
        ("garbage", None),
    ])
    def test_detect_version(self, service, mock_executor, output, expected):
        """Version output should give the major version."""
        mock_executor.run.return_value = _result(output + "\n")
        assert service.detect_version() == expected

    def test_detect_version_failure(self, service, mock_executor):
        """A missing binary should give None."""
        mock_executor.run.side_effect = ExecutionError("not found")
        assert service.detect_version() is None

    def test_sql_wraps_query_as_json(self, service, mock_executor):
        """Queries should be wrapped in json_agg and decoded."""
        mock_executor.run_sql.return_value = json.dumps([{"ok": 1}])

        assert service.sql("SELECT 1 AS ok") == [{"ok": 1}]

        args, kwargs = mock_executor.run_sql.call_args
        assert args[0] == "SELECT coalesce(json_agg(t), '[]'::json) FROM (SELECT 1 AS ok) t"
        assert kwargs["port"] == 5433
        assert kwargs["password"] == "pw"

    def test_sql_invalid_json(self, service, mock_executor):
        """Non-JSON output should raise PostgresError."""
        mock_executor.run_sql.return_value = "oops"
        with pytest.raises(PostgresError, match="invalid JSON"):
            service.sql("SELECT 1")

    def test_read_settings(self, service, mock_executor):
        """pg_settings rows should become ConfSettings."""
        mock_executor.run_sql.return_value = json.dumps([
            {"name": "work_mem", "setting": "4096", "unit": "kB", "enumvals": None},
        ])
        settings = service.read_settings()
        assert settings.to_conf() == {"work_mem": "4MB"}

    def test_health(self, service, mock_executor):
        """health should raise PostgresError when the server is down."""
        mock_executor.run_sql.return_value = '[{"ok": 1}]'
        service.health()

        mock_executor.run_sql.side_effect = ExecutionError("connection refused")
        with pytest.raises(PostgresError):
            service.health()

    def test_controldata_uses_config_data_dir(self, service, mock_executor):
        """controldata should default to the configured data directory."""
        mock_executor.run.return_value = _result("max_connections setting: 100\n")

        data = service.controldata()

        assert data.max_connections == 100
        assert mock_executor.run.call_args[0][0][-1] == str(Path("/var/lib/postgresql/data"))


class TestPgBouncerService:
    """Tests for PgBouncerService."""

    @pytest.fixture
    def service(self, mock_ctx, mock_executor):
        return PgBouncerService(mock_ctx, mock_executor, PgBouncerConfig(enabled=True))

    def test_show_pools(self, service, mock_executor):
        """SHOW POOLS rows should be parsed by column name; short rows skipped."""
        mock_executor.run_sql.return_value = (
            "database|user|cl_active|cl_waiting|sv_active|sv_idle|sv_used|sv_tested|"
            "sv_login|maxwait|maxwait_us|pool_mode\n"
            "app|app_user|5|0|3|2|0|0|0|0|0|transaction\n"
            "pgbouncer|pgbouncer|1|0|0|0|0|0|0|0|0|statement\n"
            "broken|row\n"
        )

        pools = service.show_pools()

        assert len(pools) == 2
        assert pools[0].database == "app"
        assert pools[0].cl_active == 5
        assert pools[0].sv_active == 3
        assert pools[0].sv_idle == 2
        assert pools[0].pool_mode == "transaction"
        kwargs = mock_executor.run_sql.call_args.kwargs
        assert kwargs["database"] == "pgbouncer"
        assert kwargs["port"] == 6432
        assert kwargs["headers"] is True

    def test_show_pools_with_cancel_columns(self, service, mock_executor):
        """Newer releases add cancel-request counters before sv_active."""
        mock_executor.run_sql.return_value = (
            "database|user|cl_active|cl_waiting|cl_active_cancel_req|cl_waiting_cancel_req|"
            "sv_active|sv_active_cancel|sv_being_canceled|sv_idle|sv_used|sv_tested|"
            "sv_login|maxwait|maxwait_us|pool_mode|load_balance_hosts\n"
            "app|app_user|7|1|9|9|4|0|0|6|0|0|0|0|0|session|\n"
        )

        pool = service.show_pools()[0]

        assert (pool.cl_active, pool.cl_waiting) == (7, 1)
        assert (pool.sv_active, pool.sv_idle) == (4, 6)
        assert pool.pool_mode == "session"

    def test_show_pools_without_header(self, service, mock_executor):
        """Output with no recognisable header should raise PgBouncerError."""
        mock_executor.run_sql.return_value = "app|app_user|5|0|3|2|transaction\n"
        with pytest.raises(PgBouncerError, match="Unexpected SHOW POOLS"):
            service.show_pools()

    def test_health_failure(self, service, mock_executor):
        """An unreachable admin console should raise PgBouncerError."""
        mock_executor.run_sql.side_effect = ExecutionError("refused")
        with pytest.raises(PgBouncerError) as exc_info:
            service.health()
        assert "6432" in exc_info.value.hint


class TestWalGService:
    """Tests for WalGService."""

    @pytest.fixture
    def config(self):
        return WalgConfig(enabled=True, s3_prefix="s3://bucket/pg")

    def test_storage_type(self, mock_ctx, mock_executor):
        """The first configured prefix decides the storage type."""
        assert WalGService(mock_ctx, mock_executor, WalgConfig()).storage_type == "None"
        assert WalGService(
            mock_ctx, mock_executor, WalgConfig(gs_prefix="gs://b")
        ).storage_type == "GCS"

    def test_environment(self, mock_ctx, mock_executor, config):
        """Only set prefixes and the data dir should be exported."""
        service = WalGService(mock_ctx, mock_executor, config, data_dir=Path("/data"))
        assert service.build_environment() == {
            "WALG_POSTGRESQL_DATA_DIR": "/data",
            "WALG_S3_PREFIX": "s3://bucket/pg",
        }

    def test_backup_list(self, mock_ctx, mock_executor, config):
        """backup-list JSON should be returned as a list."""
        mock_executor.which.return_value = "/usr/local/bin/wal-g"
        mock_executor.run.return_value = _result('[{"backup_name": "base_000000010000000000000002"}]')

        backups = WalGService(mock_ctx, mock_executor, config).backup_list()

        assert backups == [{"backup_name": "base_000000010000000000000002"}]
        assert mock_executor.run.call_args.kwargs["env"] == {"WALG_S3_PREFIX": "s3://bucket/pg"}

    def test_backup_list_empty(self, mock_ctx, mock_executor, config):
        """Empty output means no backups."""
        mock_executor.which.return_value = "/usr/local/bin/wal-g"
        mock_executor.run.return_value = _result("")
        assert WalGService(mock_ctx, mock_executor, config).backup_list() == []

    def test_disabled(self, mock_ctx, mock_executor):
        """A disabled agent should fail its health check."""
        with pytest.raises(BackupError, match="disabled"):
            WalGService(mock_ctx, mock_executor, WalgConfig()).health()

    def test_no_storage(self, mock_ctx, mock_executor):
        """Missing storage settings should fail with a hint."""
        with pytest.raises(BackupError, match="storage configuration required"):
            WalGService(mock_ctx, mock_executor, WalgConfig(enabled=True)).health()

    def test_binary_missing(self, mock_ctx, mock_executor, config):
        """A missing wal-g binary should fail."""
        mock_executor.which.return_value = None
        with pytest.raises(BackupError, match="not found"):
            WalGService(mock_ctx, mock_executor, config).health()

    def test_invalid_json(self, mock_ctx, mock_executor, config):
        """Garbage output should fail."""
        mock_executor.which.return_value = "/usr/local/bin/wal-g"
        mock_executor.run.return_value = _result("not json")
        with pytest.raises(BackupError, match="invalid JSON"):
            WalGService(mock_ctx, mock_executor, config).health()
