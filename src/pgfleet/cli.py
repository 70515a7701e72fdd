"""Main CLI entry point using Typer.

This module defines the root CLI application and global options.
Command groups are registered from submodules.
"""

from typing import Annotated

import typer
from rich.console import Console

from pgfleet import __version__
from pgfleet.commands.common import (
    ConfigOption,
    NoColorOption,
    QuietOption,
    VerboseOption,
    handle_error,
)
from pgfleet.core.context import create_context
from pgfleet.core.config import (
    AppConfig,
    FleetConfig,
    get_example_config,
    init_config,
)
from pgfleet.core.exceptions import PgFleetError


# Create the main Typer app
app = typer.Typer(
    name="pgfleet",
    help="pgfleet - PostgreSQL fleet operations toolkit.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

config_app = typer.Typer(
    name="config",
    help="Configuration management.",
    no_args_is_help=True,
)

# Import sub-commands
from pgfleet.commands.controldata import app as controldata_app
from pgfleet.commands.describe import app as describe_app
from pgfleet.commands.health import app as health_app
from pgfleet.commands.schema import app as schema_app
from pgfleet.commands.tune import app as tune_app

# Register command groups
app.add_typer(config_app, name="config")
app.add_typer(describe_app, name="describe")
app.add_typer(controldata_app, name="controldata")
app.add_typer(tune_app, name="tune")
app.add_typer(schema_app, name="schema")
app.add_typer(health_app, name="health")


ForceOption = Annotated[
    bool,
    typer.Option(
        "--force",
        "-f",
        help="Overwrite an existing file.",
        is_flag=True,
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console = Console()
        console.print(f"pgfleet version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """pgfleet - PostgreSQL fleet operations toolkit.

    Reads PostgreSQL parameter metadata and control data, computes
    pgtune recommendations and serves host health over HTTP.

    [bold]Examples:[/bold]
        pgfleet describe --category "Resource Usage / Memory"
        pgfleet controldata -D /var/lib/postgresql/data
        pgfleet tune --memory 16GB --cpus 4 --db-type oltp
        pgfleet schema -o config.schema.json
        pgfleet health serve
        pgfleet config show
    """
    pass


@app.command("version")
def version_cmd() -> None:
    """Show version."""
    Console().print(f"pgfleet version {__version__}")


# ============================================================================
# Config commands
# ============================================================================

@config_app.command("show")
def config_show(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
) -> None:
    """Show current configuration.

    Displays the loaded configuration from the config file.
    Secrets are not shown.
    """
    ctx = create_context(verbose=verbose, quiet=quiet, no_color=no_color, config=config)

    try:
        app_config = ctx.config

        ctx.console.print()
        ctx.console.print(f"[bold]Configuration file:[/bold] {ctx.config_path}")
        ctx.console.print(f"[bold]File exists:[/bold] {ctx.config_path.exists()}")
        ctx.console.print()

        ctx.console.yaml(app_config.config.to_yaml(), title="Configuration")

        # Show secrets status (not values)
        ctx.console.summary("Secrets (from environment)", {
            "JWT_SECRET": "Set" if app_config.secrets.jwt_secret else "Not set",
            "PGFLEET_PG_PASSWORD": "Set" if app_config.secrets.pg_password else "Not set",
            "PGFLEET_PGBOUNCER_PASSWORD": (
                "Set" if app_config.secrets.pgbouncer_password else "Not set"
            ),
        })

    except PgFleetError as e:
        handle_error(e)


@config_app.command("init")
def config_init(
    config: ConfigOption = None,
    force: ForceOption = False,
    no_color: NoColorOption = False,
) -> None:
    """Initialize a new configuration file.

    Creates a configuration file with sensible defaults and comments.
    """
    ctx = create_context(no_color=no_color, config=config)
    config_path = ctx.config_path

    try:
        init_config(config_path, force=force)
        ctx.console.success(f"Configuration file created: {config_path}")
        ctx.console.info("Edit the file to customize settings, then run commands.")
        ctx.console.hint("Set secrets via environment variables (JWT_SECRET, etc.)")

    except PgFleetError as e:
        handle_error(e)


@config_app.command("validate")
def config_validate(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Validate configuration file.

    Checks that the configuration file exists, is valid YAML,
    and all values pass validation.
    """
    ctx = create_context(verbose=verbose, no_color=no_color, config=config)

    try:
        # Unlike AppConfig, load() refuses a missing file
        fleet_config = FleetConfig.load(ctx.config_path)
        app_config = AppConfig(config_path=ctx.config_path, config=fleet_config)
        ctx.console.success(f"Configuration is valid: {ctx.config_path}")

        if ctx.is_verbose:
            ctx.console.yaml(app_config.config.to_yaml())

        warnings = []

        if app_config.postgrest.url and not app_config.secrets.jwt_secret:
            warnings.append("postgrest.url is set but JWT_SECRET is not; the API check will fail")

        if app_config.walg.enabled and not app_config.walg.has_storage:
            warnings.append("WAL-G is enabled but no storage prefix is configured")

        if not app_config.tuning.enabled:
            warnings.append("pgtune is disabled; 'pgfleet tune' will refuse to run")

        if warnings:
            ctx.console.print()
            for warning in warnings:
                ctx.console.warn(warning)

    except PgFleetError as e:
        handle_error(e)


@config_app.command("example")
def config_example(no_color: NoColorOption = False) -> None:
    """Print example configuration file.

    Outputs a complete example configuration with comments.
    Useful as a starting point for creating your own config.
    """
    ctx = create_context(no_color=no_color)
    ctx.console.raw(get_example_config())


if __name__ == "__main__":
    app()
