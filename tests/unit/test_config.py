"""Unit tests for configuration loading."""

import pytest
import yaml

from pgfleet.core.config import (
    AppConfig,
    FleetConfig,
    get_example_config,
    init_config,
)
from pgfleet.core.context import create_context
from pgfleet.core.exceptions import ConfigurationError
from pgfleet.core.output import Verbosity


class TestFleetConfig:
    """Tests for FleetConfig."""

    def test_defaults(self):
        """Defaults should describe a local PostgreSQL 17 host."""
        config = FleetConfig()
        assert config.postgres.port == 5432
        assert config.tuning.db_type == "mixed"
        assert config.tuning.enabled is True
        assert config.health.thresholds.memory_percent == 80.0
        assert config.walg.backup_location is None

    def test_example_config_is_valid(self, tmp_path):
        """The example config should load cleanly."""
        path = tmp_path / "config.yaml"
        path.write_text(get_example_config())

        config = FleetConfig.load(path)

        assert config.tuning.include_file == "postgresql.tune.conf"
        assert config.health.listen_port == 8080

    def test_missing_file(self, tmp_path):
        """A missing file should raise ConfigurationError with a hint."""
        with pytest.raises(ConfigurationError, match="not found") as exc_info:
            FleetConfig.load(tmp_path / "config.yaml")
        assert "config init" in exc_info.value.hint

    def test_invalid_yaml(self, tmp_path):
        """Broken YAML should raise ConfigurationError."""
        path = tmp_path / "config.yaml"
        path.write_text("postgres: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            FleetConfig.load(path)

    def test_non_mapping(self, tmp_path):
        """A top-level list should be rejected."""
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            FleetConfig.load(path)

    @pytest.mark.parametrize("content", [
        "tuning:\n  db_type: olap\n",
        "tuning:\n  disk_type: nvme\n",
        "tuning:\n  max_connections: 0\n",
        "postgres:\n  port: 70000\n",
        "postgres:\n  version: latest\n",
        "postgrest:\n  url: localhost:3000\n",
        "health:\n  thresholds:\n    disk_percent: 150\n",
    ])
    def test_invalid_values(self, tmp_path, content):
        """Out-of-range or unknown values should be rejected."""
        path = tmp_path / "config.yaml"
        path.write_text(content)
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            FleetConfig.load(path)

    def test_empty_file_gives_defaults(self, tmp_path):
        """An empty file should load as defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert FleetConfig.load(path) == FleetConfig()

    def test_walg_backup_location(self):
        """A file:// prefix should point the backup check at that directory."""
        config = FleetConfig(walg={"file_prefix": "file:///var/lib/walg"})
        assert str(config.walg.backup_location) == "/var/lib/walg"
        assert config.walg.has_storage

    def test_to_yaml_round_trip(self):
        """to_yaml should drop unset values and reload to the same config."""
        config = FleetConfig(tuning={"db_type": "oltp"})
        text = config.to_yaml()
        assert "bin_dir" not in text
        assert FleetConfig(**yaml.safe_load(text)) == config


class TestAppConfig:
    """Tests for AppConfig and secrets."""

    def test_missing_file_falls_back(self, tmp_path):
        """A missing config path should use defaults."""
        config = AppConfig(config_path=tmp_path / "config.yaml")
        assert config.postgres.host == "localhost"
        assert config.tuning.include_file == "postgresql.tune.conf"

    def test_secrets_from_environment(self, tmp_path, monkeypatch):
        """Secrets should come from environment variables only."""
        monkeypatch.setenv("JWT_SECRET", "jwt")
        monkeypatch.setenv("PGFLEET_PG_PASSWORD", "pg")
        monkeypatch.delenv("PGFLEET_PGBOUNCER_PASSWORD", raising=False)
        monkeypatch.chdir(tmp_path)

        secrets = AppConfig(config_path=tmp_path / "config.yaml").secrets

        assert secrets.jwt_secret == "jwt"
        assert secrets.pg_password == "pg"
        assert secrets.pgbouncer_password is None


class TestInitConfig:
    """Tests for init_config."""

    def test_creates_private_file(self, tmp_path):
        """The file should be written with 0600 permissions."""
        path = tmp_path / "etc" / "config.yaml"
        init_config(path)
        assert path.read_text() == get_example_config()
        assert (path.stat().st_mode & 0o777) == 0o600

    def test_refuses_overwrite(self, tmp_path):
        """An existing file needs force."""
        path = tmp_path / "config.yaml"
        path.write_text("old")
        with pytest.raises(ConfigurationError, match="already exists"):
            init_config(path)
        init_config(path, force=True)
        assert path.read_text() != "old"


class TestCreateContext:
    """Tests for create_context."""

    def test_verbosity(self, tmp_path):
        """Verbose flags raise verbosity; quiet wins."""
        assert create_context(config=tmp_path / "c.yaml").verbosity == Verbosity.NORMAL
        assert create_context(verbose=1, config=tmp_path / "c.yaml").is_verbose
        assert create_context(verbose=5, config=tmp_path / "c.yaml").verbosity == Verbosity.DEBUG
        assert create_context(verbose=2, quiet=True).verbosity == Verbosity.QUIET

    def test_config_is_lazy(self, tmp_path):
        """The config file should only be read on first access."""
        path = tmp_path / "config.yaml"
        ctx = create_context(config=path)
        path.write_text("tuning:\n  db_type: web\n")
        assert ctx.config.tuning.db_type == "web"
        assert ctx.config_path == path
