"""PostgreSQL tuning command.

Computes pgtune recommendations from detected (or given) resources and
optionally writes them to postgresql.auto.conf.

Commands:
- pgfleet tune (preview recommendations)
- pgfleet tune --write-auto-conf PATH (merge into an auto.conf file)
- pgfleet tune --include CONF (write the tune file and include it from CONF)
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer

from pgfleet.commands.common import (
    ConfigOption,
    DryRunOption,
    JsonOption,
    NoColorOption,
    QuietOption,
    VerboseOption,
    handle_error,
)
from pgfleet.core import CommandExecutor, ExecutionContext, PgFleetError, console, create_context
from pgfleet.pgconf.files import ensure_include_directive
from pgfleet.tuning.autoconf import get_defaults, update_auto_conf
from pgfleet.tuning.pgtune import (
    PgTune,
    TunedParameters,
    TuningConfig,
    get_recommended_max_connections,
)
from pgfleet.tuning.sysinfo import (
    DBType,
    DiskType,
    SystemInfo,
    SystemInfoDetector,
    detect_os_type,
    detect_postgres_version,
)
from pgfleet.utils.units import format_size, parse_size


app = typer.Typer(
    name="tune",
    help="Compute pgtune recommendations.",
    no_args_is_help=False,  # Allow running without args
)


def resolve_system_info(
    ctx: ExecutionContext,
    memory: Optional[str],
    cpus: Optional[int],
    pg_version: Optional[float],
) -> SystemInfo:
    """Explicit figures when --memory is given, otherwise host detection.

    Raises:
        ValidationError: If --memory cannot be parsed
    """
    if memory is not None:
        return SystemInfo.from_values(
            parse_size(memory),
            cpus or os.cpu_count() or 1,
            os_type=detect_os_type(),
            postgres_version=pg_version or detect_postgres_version(),
        )

    detector = SystemInfoDetector(ctx, CommandExecutor(ctx))
    info = detector.detect(ctx.config.postgres.data_dir)
    if cpus:
        info.system.cpus = cpus
        info.container.cpus = 0
    if pg_version:
        info.postgres_version = pg_version
    return info


def _display_system_info(info: SystemInfo, db_type: DBType, disk_type: DiskType) -> None:
    console.print()
    console.print("[bold]System[/bold]")
    console.print(f"  Memory:        {format_size(info.effective_memory)}")
    console.print(f"  CPUs:          {info.effective_cpu_count}")
    console.print(f"  OS:            {info.os_type.value}")
    console.print(f"  Disk:          {disk_type.value.upper()}")
    console.print(f"  PostgreSQL:    {info.postgres_version:g}")
    if info.is_container:
        console.print(f"  Container:     {info.container}")
    console.print()
    console.print(f"[bold]Workload:[/bold] {db_type.value.upper()}")
    console.print(f"  {db_type.description}")
    console.print()


def _to_json(params: TunedParameters) -> str:
    return json.dumps(
        {
            "parameters": params.managed_values(),
            "warnings": list(params.warnings),
        },
        indent=2,
    )


@app.callback(invoke_without_command=True)
def tune(
    memory: Optional[str] = typer.Option(
        None,
        "--memory", "-m",
        help="Total memory, e.g. 16GB (default: detected)",
    ),
    cpus: Optional[int] = typer.Option(
        None,
        "--cpus",
        help="CPU count (default: detected)",
        min=1,
    ),
    db_type: Optional[DBType] = typer.Option(
        None,
        "--db-type", "-t",
        help="Workload: web, oltp, dw, desktop, mixed (default: tuning.db_type)",
        case_sensitive=False,
    ),
    max_connections: Optional[int] = typer.Option(
        None,
        "--max-connections",
        help="Connection limit (default: tuning.max_connections or the workload's recommendation)",
        min=1,
    ),
    disk_type: Optional[DiskType] = typer.Option(
        None,
        "--disk-type",
        help="Override detected storage: ssd, hdd, san",
        case_sensitive=False,
    ),
    pg_version: Optional[float] = typer.Option(
        None,
        "--pg-version",
        help="Target PostgreSQL version (default: from the environment, else 17)",
    ),
    write_auto_conf: Optional[Path] = typer.Option(
        None,
        "--write-auto-conf",
        help="Merge the recommendations into this postgresql.auto.conf",
        dir_okay=False,
    ),
    include: Optional[Path] = typer.Option(
        None,
        "--include",
        help="Write the tune file next to this postgresql.conf and include it",
        dir_okay=False,
    ),
    with_defaults: bool = typer.Option(
        False,
        "--with-defaults",
        help="Also fill in baseline logging and auth settings missing from auto.conf",
    ),
    output_json: JsonOption = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Compute tuned PostgreSQL settings.

    Memory and CPU figures come from the host (honouring container
    limits) unless given explicitly.

    Examples:

        # Preview for this host
        pgfleet tune

        # Preview for a 16GB, 4 CPU OLTP server
        pgfleet tune --memory 16GB --cpus 4 --db-type oltp

        # Merge into auto.conf
        pgfleet tune --write-auto-conf /var/lib/postgresql/data/postgresql.auto.conf
    """
    ctx = create_context(
        dry_run=dry_run, verbose=verbose, quiet=quiet, no_color=no_color, config=config
    )

    try:
        settings = ctx.config.tuning
        engine = PgTune(enabled=settings.enabled)

        workload = db_type or DBType(settings.db_type)
        connections = (
            max_connections
            or settings.max_connections
            or get_recommended_max_connections(workload)
        )
        disk_override = disk_type or (DiskType(settings.disk_type) if settings.disk_type else None)

        info = resolve_system_info(ctx, memory, cpus, pg_version)
        params = engine.calculate(TuningConfig(
            system_info=info,
            max_connections=connections,
            db_type=workload,
            disk_type=disk_override,
        ))

        if output_json:
            console.raw(_to_json(params))
        else:
            _display_system_info(info, workload, disk_override or info.disk_type)
            console.table(
                "Tuned Parameters",
                ["Parameter", "Value"],
                [[name, value] for name, value in params.as_rows()],
            )
            if ctx.is_verbose:
                console.conf(params.to_conf().as_file(), title="postgresql.conf")

        auto_conf = write_auto_conf or settings.auto_conf
        if auto_conf is not None:
            if ctx.dry_run:
                console.dry_run_msg(f"Merge {len(params.as_rows())} parameters into {auto_conf}")
            else:
                update_auto_conf(
                    auto_conf, params, defaults=get_defaults() if with_defaults else None
                )
                console.success(f"Updated {auto_conf}")

        if include is not None:
            tune_file = include.parent / settings.include_file
            if ctx.dry_run:
                console.dry_run_msg(f"Write {tune_file}")
                console.dry_run_msg(f"Include {settings.include_file} from {include}")
            else:
                update_auto_conf(tune_file, params)
                console.success(f"Wrote {tune_file}")
                if ensure_include_directive(include, settings.include_file):
                    console.success(f"Added include directive to {include}")
                else:
                    console.info(f"{include} already includes {settings.include_file}")

    except PgFleetError as e:
        handle_error(e)
