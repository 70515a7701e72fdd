"""Custom exceptions for pgfleet.

All exceptions provide:
- Clear error messages
- Optional hints for resolution
- Optional details for debugging
- Exit codes for proper shell integration
"""

from pathlib import Path
from typing import Optional


class PgFleetError(Exception):
    """Base exception for all pgfleet errors.

    Attributes:
        message: Human-readable error description
        hint: Suggested action to resolve the error
        details: Additional context for debugging
        exit_code: Shell exit code (1-127)
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(PgFleetError):
    """Configuration file or settings errors.

    Raised when:
    - Config file not found or unreadable
    - Invalid YAML syntax
    - Invalid configuration values
    """
    exit_code = 2


class ValidationError(PgFleetError):
    """Input validation errors.

    Raised when:
    - Tuning inputs are missing or out of range
    - A parameter value does not match its declared type
    - A size or duration string cannot be parsed
    """
    exit_code = 3


class ParseError(PgFleetError):
    """Malformed input that aborts a whole parse.

    Raised when:
    - A describe-config line has too few fields
    """
    exit_code = 4

    def __init__(
        self,
        message: str,
        *,
        line: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if line is not None:
            details = (details or []) + [f"Line: {line!r}"]
        super().__init__(message, hint=hint, details=details)
        self.line = line


class ExecutionError(PgFleetError):
    """Command execution failures.

    Raised when:
    - Shell command returns non-zero exit code
    - Shell command times out
    - SQL statement fails
    """
    exit_code = 5

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        stderr: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if not details:
            details = []
        if return_code is not None:
            details.append(f"Exit code: {return_code}")
        if stderr:
            details.append(f"Error output: {stderr}")
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


class ConfFileError(PgFleetError):
    """Errors reading or writing PostgreSQL configuration files.

    Raised when:
    - postgresql.conf is missing where it is required
    - postgresql.auto.conf cannot be read or written
    - postmaster.opts cannot be read
    """
    exit_code = 7

    def __init__(
        self,
        message: str,
        *,
        path: Optional[Path] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.path = path


class TuningError(PgFleetError):
    """Tuning engine errors.

    Raised when:
    - The tuning engine is disabled in configuration
    - A post-processor fails
    """
    exit_code = 8


class HealthCheckError(PgFleetError):
    """A single health check failed.

    Raised inside checks and recorded by the monitor; never escapes it.
    """
    exit_code = 9


# Domain-specific exceptions

class PostgresError(PgFleetError):
    """PostgreSQL-specific errors.

    Raised when:
    - Cannot connect to PostgreSQL
    - SQL execution fails
    - postgres --describe-config fails
    """
    exit_code = 10


class PgBouncerError(PgFleetError):
    """PgBouncer-specific errors.

    Raised when:
    - The admin console is unreachable
    - SHOW POOLS fails
    """
    exit_code = 11


class BackupError(PgFleetError):
    """Backup errors.

    Raised when:
    - WAL-G is disabled or misconfigured
    - No recent backup found
    """
    exit_code = 12


class TokenError(PgFleetError):
    """JWT signing and validation errors.

    Raised when:
    - The signing secret is missing
    - A token is expired, malformed or has a bad signature
    """
    exit_code = 14
