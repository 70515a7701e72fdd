"""Health monitoring commands.

Commands:
- pgfleet health serve (run checks periodically and serve them over HTTP)
- pgfleet health check (run every check once and print the result)
"""

import json
from typing import Optional

import typer
import uvicorn

from pgfleet.commands.common import (
    ConfigOption,
    JsonOption,
    NoColorOption,
    QuietOption,
    VerboseOption,
    handle_error,
)
from pgfleet.core import (
    CommandExecutor,
    ExecutionContext,
    HealthCheckError,
    PgFleetError,
    console,
    create_context,
)
from pgfleet.health.builder import build_monitor
from pgfleet.health.monitor import HealthMonitor
from pgfleet.health.result import CheckState, CheckStatus
from pgfleet.health.server import create_app
from pgfleet.services.pgbouncer import PgBouncerService
from pgfleet.services.postgresql import PostgreSQLService
from pgfleet.services.walg import WalGService


app = typer.Typer(
    name="health",
    help="Host health checks.",
    no_args_is_help=True,
)


def monitor_from_context(ctx: ExecutionContext) -> HealthMonitor:
    """Monitor with checks for every service the configuration enables."""
    config = ctx.config
    executor = CommandExecutor(ctx)

    postgres = PostgreSQLService(
        ctx, executor, config.postgres, password=config.secrets.pg_password
    )
    pgbouncer = None
    if config.pgbouncer.enabled:
        pgbouncer = PgBouncerService(
            ctx, executor, config.pgbouncer, password=config.secrets.pgbouncer_password
        )
    walg = None
    if config.walg.enabled:
        walg = WalGService(ctx, executor, config.walg, data_dir=config.postgres.data_dir)

    return build_monitor(config, executor, postgres=postgres, pgbouncer=pgbouncer, walg=walg)


_STATUS_STYLE = {
    CheckStatus.HEALTHY: "[green]healthy[/green]",
    CheckStatus.UNHEALTHY: "[red]unhealthy[/red]",
    CheckStatus.PENDING: "[dim]pending[/dim]",
}


def _details(state: CheckState) -> str:
    if state.error:
        return state.error
    if state.result is None:
        return ""
    payload = state.result.to_json()
    if isinstance(payload, dict):
        return ", ".join(f"{k}={v}" for k, v in payload.items())
    return payload


def _display_states(states: dict[str, CheckState], healthy: bool) -> None:
    rows = [
        [name, _STATUS_STYLE[state.status], "yes" if state.fatal else "", _details(state)]
        for name, state in sorted(states.items())
    ]
    console.table("Health Checks", ["Check", "Status", "Fatal", "Details"], rows)
    console.print()
    if healthy:
        console.success("Host is healthy")
    else:
        console.error("Host is unhealthy")


@app.command("check")
def check(
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Run only this check",
    ),
    output_json: JsonOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Run every configured check once.

    Exits non-zero when a fatal check is unhealthy.
    """
    ctx = create_context(verbose=verbose, quiet=quiet, no_color=no_color, config=config)

    try:
        monitor = monitor_from_context(ctx)
        states = monitor.run_once(name)
        if name is not None:
            states = {name: states[name]}
        healthy = monitor.is_healthy(states)

        if output_json:
            console.raw(json.dumps({
                "status": "healthy" if healthy else "unhealthy",
                "checks": {n: s.to_json() for n, s in sorted(states.items())},
            }, indent=2))
        else:
            _display_states(states, healthy)

        if not healthy:
            raise typer.Exit(HealthCheckError.exit_code)

    except PgFleetError as e:
        handle_error(e)


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(
        None,
        "--host",
        help="Listen address (default: health.listen_host)",
    ),
    port: Optional[int] = typer.Option(
        None,
        "--port", "-p",
        help="Listen port (default: health.listen_port)",
        min=1,
        max=65535,
    ),
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Serve /health and /health/status while checks run in the background."""
    ctx = create_context(verbose=verbose, quiet=quiet, no_color=no_color, config=config)

    try:
        settings = ctx.config.health
        monitor = monitor_from_context(ctx)
        listen_host = host or settings.listen_host
        listen_port = port or settings.listen_port

        names = ", ".join(reg.name for reg in monitor.registrations)
        console.info(f"Registered checks: {names}")
        console.step(f"Serving health on http://{listen_host}:{listen_port}/health")

        uvicorn.run(
            create_app(monitor, manage_monitor=True),
            host=listen_host,
            port=listen_port,
            log_level="debug" if ctx.is_debug else "warning",
        )

    except PgFleetError as e:
        handle_error(e)
