"""Configuration management using Pydantic.

Provides:
- Typed configuration models with validation
- YAML file loading with defaults
- Environment variable overrides for secrets
- Configuration initialization and display
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pgfleet.core.exceptions import ConfigurationError


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/pgfleet/config.yaml")
DEFAULT_DATA_DIR = Path("/var/lib/postgresql/data")

VALID_DB_TYPES = ("web", "oltp", "dw", "desktop", "mixed")
VALID_DISK_TYPES = ("ssd", "hdd", "san")


def _validate_port(v: int) -> int:
    if not 1 <= v <= 65535:
        raise ValueError(f"Port must be between 1 and 65535, got {v}")
    return v


class PostgresConfig(BaseModel):
    """PostgreSQL connection and installation settings."""

    version: str = "17"
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    database: str = "postgres"
    data_dir: Path = DEFAULT_DATA_DIR
    bin_dir: Optional[Path] = None

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        try:
            float(v)
        except ValueError:
            raise ValueError(f"PostgreSQL version must be numeric, got {v!r}")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        return _validate_port(v)


class PgBouncerConfig(BaseModel):
    """PgBouncer admin console settings."""

    enabled: bool = False
    host: str = "localhost"
    port: int = 6432
    admin_user: str = "pgbouncer"

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        return _validate_port(v)


class PostgrestConfig(BaseModel):
    """PostgREST health check settings."""

    url: Optional[str] = None
    admin_role: str = "postgrest_api"
    timeout: float = 10.0

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(f"PostgREST URL must start with http:// or https://, got {v!r}")
        return v


class WalgConfig(BaseModel):
    """WAL-G backup agent settings."""

    enabled: bool = False
    s3_prefix: Optional[str] = None
    gs_prefix: Optional[str] = None
    az_prefix: Optional[str] = None
    file_prefix: Optional[str] = None

    @property
    def has_storage(self) -> bool:
        """Check if any storage backend is configured."""
        return any((self.s3_prefix, self.gs_prefix, self.az_prefix, self.file_prefix))

    @property
    def backup_location(self) -> Optional[Path]:
        """Local directory holding backups, if a file prefix is used."""
        if not self.file_prefix:
            return None
        return Path(self.file_prefix.removeprefix("file://"))


class TuningSettings(BaseModel):
    """pgtune engine settings."""

    enabled: bool = True
    db_type: str = "mixed"
    max_connections: Optional[int] = None
    disk_type: Optional[str] = None
    auto_conf: Optional[Path] = None
    include_file: str = "postgresql.tune.conf"

    @field_validator("db_type")
    @classmethod
    def validate_db_type(cls, v: str) -> str:
        if v not in VALID_DB_TYPES:
            raise ValueError(f"db_type must be one of: {list(VALID_DB_TYPES)}")
        return v

    @field_validator("disk_type")
    @classmethod
    def validate_disk_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in VALID_DISK_TYPES:
            raise ValueError(f"disk_type must be one of: {list(VALID_DISK_TYPES)}")
        return v

    @field_validator("max_connections")
    @classmethod
    def validate_max_connections(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("max_connections must be positive")
        return v


class HealthThresholds(BaseModel):
    """Alerting thresholds for resource checks."""

    disk_percent: float = 90.0
    memory_percent: float = 80.0
    cpu_percent: float = 90.0
    wal_size_bytes: int = 1024 * 1024 * 1024

    @field_validator("disk_percent", "memory_percent", "cpu_percent")
    @classmethod
    def validate_percent(cls, v: float) -> float:
        if not 0 < v <= 100:
            raise ValueError(f"Percentage threshold must be in (0, 100], got {v}")
        return v


class HealthSettings(BaseModel):
    """Health monitor settings."""

    listen_host: str = "0.0.0.0"
    listen_port: int = 8080
    data_dir: Optional[Path] = None
    wal_dir: Optional[Path] = None
    backup_location: Optional[Path] = None
    backup_max_age_hours: float = 24.0
    supervisor_enabled: bool = False
    enabled_services: list[str] = Field(default_factory=list)
    thresholds: HealthThresholds = Field(default_factory=HealthThresholds)

    @field_validator("listen_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        return _validate_port(v)


class FleetConfig(BaseModel):
    """Root configuration model for a single PostgreSQL host.

    This is the main configuration loaded from /etc/pgfleet/config.yaml.
    Secrets are NOT stored in this file - they come from environment variables.
    """

    hostname: Optional[str] = None

    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    pgbouncer: PgBouncerConfig = Field(default_factory=PgBouncerConfig)
    postgrest: PostgrestConfig = Field(default_factory=PostgrestConfig)
    walg: WalgConfig = Field(default_factory=WalgConfig)
    tuning: TuningSettings = Field(default_factory=TuningSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)

    @classmethod
    def load(cls, path: Path) -> "FleetConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                hint="Create it with: pgfleet config init",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {path}",
                details=[str(e)],
            ) from e
        except PermissionError:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                hint="Check file permissions or run with sudo",
            )

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping: {path}",
            )

        try:
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(
                f"Invalid configuration: {path}",
                details=[str(e)],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "FleetConfig":
        """Load configuration, falling back to defaults if file doesn't exist."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            return cls.load(path)
        return cls()

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        data = self.model_dump(mode="json", exclude_none=True)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


class SecretsConfig(BaseSettings):
    """Secrets loaded from environment variables.

    These are NEVER stored in config files.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: Optional[str] = Field(None, alias="JWT_SECRET")
    pg_password: Optional[str] = Field(None, alias="PGFLEET_PG_PASSWORD")
    pgbouncer_password: Optional[str] = Field(None, alias="PGFLEET_PGBOUNCER_PASSWORD")


class AppConfig:
    """Application configuration combining config file and secrets.

    This is the main interface for accessing configuration throughout the app.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[FleetConfig] = None,
    ) -> None:
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = config or FleetConfig.load_or_default(self.config_path)
        self._secrets = SecretsConfig()

    @property
    def config(self) -> FleetConfig:
        return self._config

    @property
    def secrets(self) -> SecretsConfig:
        return self._secrets

    @property
    def postgres(self) -> PostgresConfig:
        return self._config.postgres

    @property
    def pgbouncer(self) -> PgBouncerConfig:
        return self._config.pgbouncer

    @property
    def postgrest(self) -> PostgrestConfig:
        return self._config.postgrest

    @property
    def walg(self) -> WalgConfig:
        return self._config.walg

    @property
    def tuning(self) -> TuningSettings:
        return self._config.tuning

    @property
    def health(self) -> HealthSettings:
        return self._config.health


def get_example_config() -> str:
    """Generate example configuration file content."""
    return """# pgfleet configuration
# One file per PostgreSQL host
# Secrets are loaded from environment variables, NOT stored here:
#   JWT_SECRET, PGFLEET_PG_PASSWORD, PGFLEET_PGBOUNCER_PASSWORD

postgres:
  version: "17"
  host: localhost
  port: 5432
  data_dir: /var/lib/postgresql/data

pgbouncer:
  enabled: false
  port: 6432
  admin_user: pgbouncer

postgrest:
  # url: http://localhost:3000
  admin_role: postgrest_api
  timeout: 10

walg:
  enabled: false
  # file_prefix: file:///var/lib/walg

tuning:
  enabled: true
  db_type: mixed  # web, oltp, dw, desktop, mixed
  # max_connections: 100
  # disk_type: ssd  # ssd, hdd, san
  include_file: postgresql.tune.conf

health:
  listen_port: 8080
  # data_dir: /var/lib/postgresql/data
  # wal_dir: /var/lib/postgresql/data/pg_wal
  backup_max_age_hours: 24
  supervisor_enabled: false
  enabled_services: []
  thresholds:
    disk_percent: 90
    memory_percent: 80
    cpu_percent: 90
    wal_size_bytes: 1073741824
"""


def init_config(path: Path, force: bool = False) -> None:
    """Initialize a new configuration file.

    Raises:
        ConfigurationError: If file exists and force is False
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_example_config())
    os.chmod(path, 0o600)
