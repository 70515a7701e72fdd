"""Per-invocation state shared by commands, services and the executor."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pgfleet.core.config import AppConfig, DEFAULT_CONFIG_PATH
from pgfleet.core.output import Console, Verbosity, console


@dataclass
class ExecutionContext:
    """Flags from the command line plus lazily loaded configuration.

    Building a context configures the global console, so output settings
    follow the most recent invocation.
    """

    dry_run: bool = False
    verbosity: Verbosity = Verbosity.NORMAL
    no_color: bool = False
    config_path: Path = DEFAULT_CONFIG_PATH
    console: Console = field(default=console, repr=False)
    _config: Optional[AppConfig] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.console.configure(
            verbosity=self.verbosity,
            dry_run=self.dry_run,
            no_color=self.no_color,
        )

    @property
    def config(self) -> AppConfig:
        """Configuration file and secrets, read on first access."""
        if self._config is None:
            self._config = AppConfig(config_path=self.config_path)
        return self._config

    @property
    def is_verbose(self) -> bool:
        return self.verbosity >= Verbosity.VERBOSE

    @property
    def is_debug(self) -> bool:
        return self.verbosity >= Verbosity.DEBUG


def create_context(
    dry_run: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    config: Optional[Path] = None,
) -> ExecutionContext:
    """Build a context from the shared CLI options.

    Each -v raises verbosity one level above NORMAL, up to DEBUG;
    --quiet overrides any -v.
    """
    if quiet:
        verbosity = Verbosity.QUIET
    else:
        verbosity = Verbosity(min(Verbosity.NORMAL + verbose, Verbosity.DEBUG))

    return ExecutionContext(
        dry_run=dry_run,
        verbosity=verbosity,
        no_color=no_color,
        config_path=config or DEFAULT_CONFIG_PATH,
    )
