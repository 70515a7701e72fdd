"""Core framework components for pgfleet."""

from pgfleet.core.exceptions import (
    PgFleetError,
    ConfigurationError,
    ValidationError,
    ParseError,
    ExecutionError,
    ConfFileError,
    TuningError,
    HealthCheckError,
    PostgresError,
    PgBouncerError,
    BackupError,
    TokenError,
)

from pgfleet.core.context import ExecutionContext, create_context
from pgfleet.core.output import console, Console, Verbosity
from pgfleet.core.config import AppConfig, FleetConfig
from pgfleet.core.executor import CommandExecutor, CommandResult

__all__ = [
    # Exceptions
    "PgFleetError",
    "ConfigurationError",
    "ValidationError",
    "ParseError",
    "ExecutionError",
    "ConfFileError",
    "TuningError",
    "HealthCheckError",
    "PostgresError",
    "PgBouncerError",
    "BackupError",
    "TokenError",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "FleetConfig",
    # Executor
    "CommandExecutor",
    "CommandResult",
]
