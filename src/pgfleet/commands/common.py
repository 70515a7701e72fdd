"""Options and error handling shared by every command."""

from pathlib import Path
from typing import Annotated, Optional

import typer

from pgfleet.core.config import DEFAULT_CONFIG_PATH
from pgfleet.core.exceptions import ConfFileError, PgFleetError
from pgfleet.core.output import console


DryRunOption = Annotated[
    bool,
    typer.Option(
        "--dry-run",
        help="Preview changes without writing any file.",
        is_flag=True,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. Can be repeated (-v, -vv).",
    ),
]

QuietOption = Annotated[
    bool,
    typer.Option(
        "--quiet",
        "-q",
        help="Suppress non-essential output. Only show errors.",
        is_flag=True,
    ),
]

NoColorOption = Annotated[
    bool,
    typer.Option(
        "--no-color",
        help="Disable colored output.",
        is_flag=True,
    ),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        exists=False,
        file_okay=True,
        dir_okay=False,
    ),
]

JsonOption = Annotated[
    bool,
    typer.Option(
        "--json",
        help="Print machine-readable JSON instead of tables.",
        is_flag=True,
    ),
]


def handle_error(error: PgFleetError) -> None:
    """Print a PgFleetError and exit with its code."""
    console.error(error.message)

    if error.details:
        for detail in error.details:
            console.print(f"  [dim]{detail}[/dim]")

    if error.hint:
        console.hint(error.hint)

    raise typer.Exit(error.exit_code)


def read_input_file(path: Path, what: str) -> str:
    """Read a text file given on the command line.

    Raises:
        ConfFileError: If it cannot be read
    """
    try:
        return path.read_text()
    except OSError as e:
        raise ConfFileError(
            f"Cannot read {what}: {path}",
            path=path,
            details=[str(e)],
        ) from e
