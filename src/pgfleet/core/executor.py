"""Command execution for external PostgreSQL tooling.

Provides:
- Safe command execution with output capture and timeouts
- SQL execution via psql
- Dry-run mode support
"""

import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pgfleet.core.context import ExecutionContext
from pgfleet.core.exceptions import ExecutionError


@dataclass
class CommandResult:
    """Result of a command execution."""
    command: list[str]
    return_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.return_code == 0


class CommandExecutor:
    """Safe command execution with dry-run support and output capture.

    Read-only commands (``read_only=True``) still run in dry-run mode, since
    parsers and health checks need their output to do anything useful.
    """

    def __init__(self, ctx: ExecutionContext) -> None:
        self.ctx = ctx

    def which(self, name: str) -> Optional[str]:
        """Return the full path of an executable on PATH, or None."""
        return shutil.which(name)

    def run(
        self,
        command: list[str],
        *,
        description: Optional[str] = None,
        check: bool = True,
        capture: bool = True,
        sensitive: bool = False,
        read_only: bool = False,
        timeout: Optional[float] = None,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[Path] = None,
    ) -> CommandResult:
        """Execute a command.

        Args:
            command: Command as list of strings
            description: Human-readable description for logging
            check: Raise exception on non-zero exit
            capture: Capture stdout/stderr
            sensitive: Don't log the actual command
            read_only: Run even in dry-run mode
            timeout: Command timeout in seconds
            env: Additional environment variables
            cwd: Working directory

        Returns:
            CommandResult with output

        Raises:
            ExecutionError: If command fails and check=True, or times out
        """
        if description:
            self.ctx.console.step(description)

        cmd_display = "<sensitive command>" if sensitive else shlex.join(command)
        self.ctx.console.debug(f"Running: {cmd_display}")

        if self.ctx.dry_run and not read_only:
            self.ctx.console.dry_run_msg(f"Run: {cmd_display}")
            return CommandResult(command=command, return_code=0, stdout="", stderr="")

        run_env = None
        if env:
            run_env = os.environ.copy()
            run_env.update(env)

        try:
            result = subprocess.run(
                command,
                capture_output=capture,
                text=True,
                timeout=timeout,
                env=run_env,
                cwd=cwd,
            )
        except subprocess.TimeoutExpired:
            raise ExecutionError(
                f"Command timed out after {timeout}s: {description or cmd_display}",
                command=cmd_display,
            )
        except FileNotFoundError as e:
            raise ExecutionError(
                f"Command not found: {command[0]}",
                command=cmd_display,
                hint="Check that the PostgreSQL client tools are installed and on PATH",
            ) from e

        cmd_result = CommandResult(
            command=command,
            return_code=result.returncode,
            stdout=result.stdout if capture else "",
            stderr=result.stderr if capture else "",
        )

        if check and result.returncode != 0:
            raise ExecutionError(
                f"Command failed: {description or cmd_display}",
                command=cmd_display,
                return_code=result.returncode,
                stderr=result.stderr.strip() if capture and result.stderr else None,
            )

        return cmd_result

    def run_sql(
        self,
        sql: str,
        *,
        host: str = "localhost",
        port: int = 5432,
        user: str = "postgres",
        database: str = "postgres",
        password: Optional[str] = None,
        timeout: Optional[float] = 10,
        description: Optional[str] = None,
        headers: bool = False,
    ) -> str:
        """Execute SQL via psql and return unaligned output.

        Output is tuples only unless headers is set, in which case the first
        line holds the column names (the row-count footer is suppressed).

        Raises:
            ExecutionError: If the query fails or times out
        """
        command = [
            "psql",
            "-v", "ON_ERROR_STOP=1",
            "-h", host,
            "-p", str(port),
            "-U", user,
            "-d", database,
            "-A",  # Unaligned output
        ]
        if headers:
            command += ["-P", "footer=off"]
        else:
            command.append("-t")  # Tuples only
        command += ["-c", sql]

        env = {"PGCONNECT_TIMEOUT": str(int(timeout or 10))}
        if password:
            env["PGPASSWORD"] = password

        sql_display = sql[:200] + "..." if len(sql) > 200 else sql
        self.ctx.console.debug(f"SQL: {sql_display}")

        result = self.run(
            command,
            description=description,
            sensitive=True,
            read_only=True,
            timeout=timeout,
            env=env,
        )
        return result.stdout.strip()
