"""Parameter metadata command.

Commands:
- pgfleet describe (read from the local postgres binary)
- pgfleet describe --file describe.txt (read saved --describe-config output)
"""

import dataclasses
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
from pgfleet.core import CommandExecutor, ExecutionContext, PgFleetError, console, create_context
from pgfleet.pgconf.describe import (
    Param,
    filter_by_category,
    filter_by_context,
    get_param_by_name,
    parse_describe_config,
)
from pgfleet.services.postgresql import PostgreSQLService


app = typer.Typer(
    name="describe",
    help="Show PostgreSQL parameter metadata.",
    no_args_is_help=False,
)


def load_params(ctx: ExecutionContext, file: Optional[Path]) -> list[Param]:
    """Parameters from a saved describe-config dump, or from the server binary."""
    if file is not None:
        return parse_describe_config(read_input_file(file, "describe-config output"))

    service = PostgreSQLService(ctx, CommandExecutor(ctx), ctx.config.postgres)
    return service.describe_config()


def param_to_json(param: Param) -> dict:
    data = dataclasses.asdict(param)
    data["unit_source"] = param.unit_source.value
    data["enum_source"] = param.enum_source.value
    return data


def _range(param: Param) -> str:
    if param.vartype not in ("integer", "real"):
        return ""
    if param.vartype == "integer":
        return f"{int(param.min_val)} .. {int(param.max_val)}"
    return f"{param.min_val:g} .. {param.max_val:g}"


def _display_param(param: Param) -> None:
    console.summary(param.name, {
        "Type": param.vartype,
        "Context": param.context,
        "Category": param.category,
        "Unit": param.unit,
        "Range": _range(param),
        "Allowed values": param.enum_vals,
        "Default": param.boot_val,
        "Requires restart": param.requires_restart,
        "Description": param.description,
    })


def _display_params(params: list[Param]) -> None:
    rows = [
        [p.name, p.vartype, p.unit, p.context, p.boot_val, _range(p)]
        for p in sorted(params, key=lambda p: p.name)
    ]
    console.table(
        "PostgreSQL Parameters",
        ["Name", "Type", "Unit", "Context", "Default", "Range"],
        rows,
    )
    console.print(f"[dim]{len(params)} parameter(s)[/dim]")


@app.callback(invoke_without_command=True)
def describe(
    file: Optional[Path] = typer.Option(
        None,
        "--file", "-f",
        help="Read saved 'postgres --describe-config' output instead of running postgres",
        dir_okay=False,
    ),
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Show a single parameter",
    ),
    category: Optional[str] = typer.Option(
        None,
        "--category",
        help="Only parameters whose category contains this text",
    ),
    context: Optional[str] = typer.Option(
        None,
        "--context",
        help="Only parameters with this context (postmaster, sighup, user, ...)",
    ),
    output_json: JsonOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Show parameter metadata from postgres --describe-config.

    Examples:

        # Every parameter known to the local server binary
        pgfleet describe

        # Memory parameters from a saved dump, as JSON
        pgfleet describe -f describe.txt --category "Resource Usage / Memory" --json

        # One parameter
        pgfleet describe -n shared_buffers
    """
    ctx = create_context(verbose=verbose, quiet=quiet, no_color=no_color, config=config)

    try:
        params = load_params(ctx, file)

        if name is not None:
            param = get_param_by_name(params, name)
            if param is None:
                console.error(f"Unknown parameter: {name}")
                raise typer.Exit(1)
            if output_json:
                console.raw(json.dumps(param_to_json(param), indent=2))
            else:
                _display_param(param)
            return

        if category:
            params = filter_by_category(params, category)
        if context:
            params = filter_by_context(params, context)

        if output_json:
            console.raw(json.dumps([param_to_json(p) for p in params], indent=2))
        else:
            _display_params(params)

    except PgFleetError as e:
        handle_error(e)
