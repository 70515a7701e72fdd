"""Cluster control data command.

Commands:
- pgfleet controldata (run pg_controldata on the configured data directory)
- pgfleet controldata --file controldata.txt (parse saved output)
"""

import json
from pathlib import Path
from typing import Optional

import typer

from pgfleet.commands.common import (
    ConfigOption,
    JsonOption,
    NoColorOption,
    QuietOption,
    VerboseOption,
    handle_error,
    read_input_file,
)
from pgfleet.core import CommandExecutor, PgFleetError, console, create_context
from pgfleet.pgconf.controldata import ControlData, parse_controldata
from pgfleet.services.postgresql import PostgreSQLService


app = typer.Typer(
    name="controldata",
    help="Show pg_controldata output as structured data.",
    no_args_is_help=False,
)


def _display(data: ControlData) -> None:
    items = {}
    for key, value in data.as_dict().items():
        label = key.replace("_", " ").capitalize()
        items[label] = "-" if value in (None, "") else value
    console.summary("Control Data", items)

    console.print()
    if data.is_in_production:
        console.success("Cluster state: in production")
    else:
        console.warn(f"Cluster state: {data.database_cluster_state or 'unknown'}")
    if not data.checksums_enabled:
        console.info("Data page checksums are disabled")


@app.callback(invoke_without_command=True)
def controldata(
    file: Optional[Path] = typer.Option(
        None,
        "--file", "-f",
        help="Parse saved pg_controldata output instead of running it",
        dir_okay=False,
    ),
    data_dir: Optional[Path] = typer.Option(
        None,
        "--data-dir", "-D",
        help="Data directory (default: postgres.data_dir from the configuration)",
        file_okay=False,
    ),
    output_json: JsonOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Read cluster control data.

    Unparseable numeric and timestamp fields are reported as warnings and
    left at zero / empty.

    Examples:

        pgfleet controldata -D /var/lib/postgresql/17/main
        pgfleet controldata --file controldata.txt --json
    """
    ctx = create_context(verbose=verbose, quiet=quiet, no_color=no_color, config=config)

    try:
        if file is not None:
            data = parse_controldata(read_input_file(file, "pg_controldata output"))
        else:
            service = PostgreSQLService(ctx, CommandExecutor(ctx), ctx.config.postgres)
            data = service.controldata(data_dir)

        for warning in data.parse_warnings:
            console.warn(f"Could not parse field: {warning}")

        if output_json:
            payload = data.as_dict()
            payload["parse_warnings"] = list(data.parse_warnings)
            console.raw(json.dumps(payload, indent=2))
        else:
            _display(data)

    except PgFleetError as e:
        handle_error(e)
