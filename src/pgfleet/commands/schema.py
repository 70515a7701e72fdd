"""JSON Schema generation command."""

import json
from pathlib import Path
from typing import Optional

import typer

from pgfleet.commands.common import (
    ConfigOption,
    NoColorOption,
    QuietOption,
    VerboseOption,
    handle_error,
)
from pgfleet.commands.describe import load_params
from pgfleet.core import PgFleetError, console, create_context
from pgfleet.schema.generator import SchemaGenerator


app = typer.Typer(
    name="schema",
    help="Generate the configuration JSON Schema.",
    no_args_is_help=False,
)


@app.callback(invoke_without_command=True)
def schema(
    file: Optional[Path] = typer.Option(
        None,
        "--file", "-f",
        help="Read saved 'postgres --describe-config' output instead of running postgres",
        dir_okay=False,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Write the schema to this file (default: stdout)",
        dir_okay=False,
    ),
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Generate a JSON Schema covering postgres and its companion services.

    Examples:

        pgfleet schema -o config.schema.json
        pgfleet schema --file describe.txt > config.schema.json
    """
    ctx = create_context(verbose=verbose, quiet=quiet, no_color=no_color, config=config)

    try:
        params = load_params(ctx, file)
        generator = SchemaGenerator()

        if output is None:
            console.raw(json.dumps(generator.generate_complete_schema(params), indent=2))
            return

        generator.write_schema(params, output)
        console.success(f"Schema with {len(params)} postgres parameters written to {output}")

    except PgFleetError as e:
        handle_error(e)
