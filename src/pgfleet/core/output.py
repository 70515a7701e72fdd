"""Rich console for pgfleet.

Every human-facing line goes through the module-level ``console``. Level
messages carry an uppercase tag; warnings, errors and hints go to stderr
so that ``--json`` and conf output on stdout stay pipeable.
"""

from enum import IntEnum
from typing import Any, NamedTuple

from rich import box
from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table


class Verbosity(IntEnum):
    """Output verbosity levels."""
    QUIET = 0    # Errors only
    NORMAL = 1
    VERBOSE = 2  # File writes, parsed fields
    DEBUG = 3    # Commands, check transitions


class _Level(NamedTuple):
    tag: str
    style: str
    minimum: Verbosity
    stderr: bool = False


_LEVELS = {
    "info": _Level("[INFO]", "green", Verbosity.NORMAL),
    "success": _Level("[OK]", "green", Verbosity.NORMAL),
    "step": _Level("->", "blue", Verbosity.NORMAL),
    "debug": _Level("[DEBUG]", "cyan", Verbosity.DEBUG),
    "warn": _Level("[WARN]", "yellow", Verbosity.QUIET, stderr=True),
    "error": _Level("[ERROR]", "red", Verbosity.QUIET, stderr=True),
    "hint": _Level("Hint:", "cyan", Verbosity.QUIET, stderr=True),
}


def _cell(value: Any) -> str:
    if isinstance(value, bool):
        return "[green]Yes[/green]" if value else "[red]No[/red]"
    if value is None or value == "":
        return "[dim]-[/dim]"
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value) or "[dim]-[/dim]"
    return str(value)


class Console:
    """Leveled output with verbosity control.

    The underlying Rich consoles are created without a file, so they
    write to whatever sys.stdout and sys.stderr are at print time.
    """

    def __init__(self) -> None:
        self.verbosity = Verbosity.NORMAL
        self.dry_run = False
        self.no_color = False
        self._build()

    def _build(self) -> None:
        self._out = RichConsole(highlight=False, no_color=self.no_color)
        self._err = RichConsole(stderr=True, highlight=False, no_color=self.no_color)

    def configure(
        self,
        verbosity: int = Verbosity.NORMAL,
        dry_run: bool = False,
        no_color: bool = False,
    ) -> None:
        """Apply CLI flags; verbosity is clamped to the known levels."""
        self.verbosity = Verbosity(max(Verbosity.QUIET, min(verbosity, Verbosity.DEBUG)))
        self.dry_run = dry_run
        if no_color != self.no_color:
            self.no_color = no_color
            self._build()

    def _emit(self, level: str, message: str) -> None:
        lvl = _LEVELS[level]
        if self.verbosity < lvl.minimum:
            return
        target = self._err if lvl.stderr else self._out
        target.print(f"[{lvl.style}]{lvl.tag}[/{lvl.style}] {message}")

    def info(self, message: str) -> None:
        self._emit("info", message)

    def success(self, message: str) -> None:
        self._emit("success", message)

    def step(self, message: str) -> None:
        self._emit("step", message)

    def debug(self, message: str) -> None:
        self._emit("debug", message)

    def warn(self, message: str) -> None:
        self._emit("warn", message)

    def error(self, message: str) -> None:
        self._emit("error", message)

    def hint(self, message: str) -> None:
        self._emit("hint", message)

    def verbose(self, message: str) -> None:
        """Dim detail line, shown with -v."""
        if self.verbosity >= Verbosity.VERBOSE:
            self._out.print(f"[dim]{message}[/dim]")

    def dry_run_msg(self, message: str) -> None:
        """Announce a change that --dry-run skipped."""
        if self.dry_run:
            self._out.print(f"[blue][DRY-RUN][/blue] Would: {message}")

    def print(self, message: Any = "", **kwargs: Any) -> None:
        """Print markup text or any Rich renderable."""
        self._out.print(message, **kwargs)

    def raw(self, text: str) -> None:
        """Print text verbatim, without markup or wrapping (for piping)."""
        self._out.print(text, markup=False, highlight=False, soft_wrap=True)

    def table(
        self,
        title: str,
        columns: list[str],
        rows: list[list[Any]],
        box_style: box.Box = box.ROUNDED,
    ) -> None:
        """Print rows under a titled table; None and bool cells are styled."""
        table = Table(title=title, box=box_style)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*(_cell(value) for value in row))
        self._out.print(table)

    def summary(self, title: str, items: dict[str, Any]) -> None:
        """Print key/value pairs in a panel."""
        content = "\n".join(f"[bold]{key}:[/bold] {_cell(value)}" for key, value in items.items())
        self._out.print(Panel(content, title=title, border_style="blue"))

    def _syntax(self, text: str, lexer: str, title: str) -> None:
        syntax = Syntax(text, lexer, theme="monokai", line_numbers=False)
        self._out.print(Panel(syntax, title=title, border_style="green"))

    def conf(self, conf_text: str, title: str = "postgresql.conf") -> None:
        """Print postgresql.conf style text."""
        self._syntax(conf_text, "ini", title)

    def yaml(self, yaml_text: str, title: str = "Configuration") -> None:
        self._syntax(yaml_text, "yaml", title)


# Global console instance
console = Console()
