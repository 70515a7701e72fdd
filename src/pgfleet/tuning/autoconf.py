"""Reader and writer for postgresql.auto.conf.

The tuning engine owns a fixed set of parameters (MANAGED_PARAMS). Those
are rewritten on every update and always written first; everything else
in the file is carried over untouched.
"""

import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from pgfleet.core.exceptions import ConfFileError
from pgfleet.core.output import console
from pgfleet.pgconf.files import split_comment
from pgfleet.tuning.pgtune import MANAGED_PARAMS, TunedParameters


PARAM_RE = re.compile(r"^\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*=\s*(.+)$")
COMMENT_RE = re.compile(r"^\s*#(.*)$")

HEADER = (
    "# Do not edit this file manually!\n"
    "# It will be overwritten by pg_tune --update\n"
    "# Last updated: {timestamp}\n"
    "#\n\n"
)
SECTION_RULE = "# -----------------------------\n"

_BARE_VALUE_RE = re.compile(r"^-?\d+(\.\d+)?[a-zA-Z]*$")
_BARE_WORDS = frozenset({"on", "off", "true", "false"})


def conf_literal(value: str) -> str:
    """Quote a value for postgresql.conf unless it is a number or boolean word."""
    if _BARE_VALUE_RE.match(value) or value.lower() in _BARE_WORDS:
        return value
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def get_defaults() -> dict[str, str]:
    """Baseline logging, locale and auth settings for a new cluster."""
    return {
        "archive_mode": "off",
        "archive_timeout": "0",
        "lc_messages": "C",
        "listen_addresses": "*",
        "log_autovacuum_min_duration": "10s",
        "log_checkpoints": "true",
        "log_connections": "false",
        "log_destination": "stderr",
        "log_disconnections": "false",
        "log_line_prefix": "%m [%p] %q[user=%u,db=%d,app=%a]",
        "log_lock_waits": "true",
        "log_min_duration_statement": "10s",
        "log_timezone": "UTC",
        "timezone": "UTC",
        "logging_collector": "true",
        "password_encryption": "scram-sha-256",
        "ssl": "false",
    }


@dataclass
class AutoConfEntry:
    name: str
    value: str
    comment: str = ""

    def render(self) -> str:
        if self.comment:
            return f"{self.name} = {self.value}  # {self.comment}\n"
        return f"{self.name} = {self.value}\n"


@dataclass
class AutoConfFile:
    """In-memory postgresql.auto.conf.

    ``comments`` holds standalone comment lines. They are kept for
    inspection but not written back, since the generated header replaces
    them.
    """

    parameters: dict[str, AutoConfEntry] = field(default_factory=dict)
    comments: list[str] = field(default_factory=list)

    @classmethod
    def parse_text(cls, text: str) -> "AutoConfFile":
        auto_conf = cls()
        for line in text.splitlines():
            if not line.strip():
                continue

            comment = COMMENT_RE.match(line)
            if comment:
                auto_conf.comments.append(comment.group(1).strip())
                continue

            match = PARAM_RE.match(line)
            if match:
                name = match.group(1)
                value, inline = split_comment(match.group(2))
                auto_conf.parameters[name] = AutoConfEntry(name=name, value=value, comment=inline)
        return auto_conf

    @classmethod
    def parse(cls, path: Path) -> "AutoConfFile":
        """Read path. A missing file yields an empty AutoConfFile.

        Raises:
            ConfFileError: If the file exists but cannot be read
        """
        try:
            text = path.read_text()
        except FileNotFoundError:
            console.debug(f"{path} does not exist, starting empty")
            return cls()
        except OSError as e:
            raise ConfFileError(
                f"Failed to read auto.conf: {path}",
                path=path,
                details=[str(e)],
            ) from e
        return cls.parse_text(text)

    def get(self, name: str) -> Optional[str]:
        entry = self.parameters.get(name)
        return entry.value if entry else None

    def set(self, name: str, value: str) -> None:
        """Update a value in place, keeping any inline comment."""
        entry = self.parameters.get(name)
        if entry is not None:
            entry.value = value
        else:
            self.parameters[name] = AutoConfEntry(name=name, value=value)

    def names(self) -> list[str]:
        return list(self.parameters)

    def apply_defaults(self, defaults: dict[str, str]) -> list[str]:
        """Add defaults for names not already present. Returns the names added."""
        added = []
        for name, value in defaults.items():
            if name not in self.parameters:
                self.parameters[name] = AutoConfEntry(name=name, value=conf_literal(value))
                added.append(name)
        return added

    def merge_with_tuned_parameters(self, params: TunedParameters) -> None:
        """Overwrite managed parameters with tuned values.

        Unset optional values in params leave the existing entry alone.
        """
        for name, value in params.managed_values(quote_strings=True).items():
            self.set(name, value)

    def render(self, now: Optional[datetime] = None) -> str:
        """File contents: header, managed parameters, then the rest sorted."""
        now = now or datetime.now()
        parts = [
            HEADER.format(timestamp=now.strftime("%Y-%m-%d %H:%M:%S")),
            SECTION_RULE,
            "# PG_TUNE MANAGED PARAMETERS\n",
            SECTION_RULE,
            "\n",
        ]

        for name in MANAGED_PARAMS:
            entry = self.parameters.get(name)
            if entry is not None:
                parts.append(entry.render())

        others = sorted(n for n in self.parameters if n not in MANAGED_PARAMS)
        if others:
            parts.extend(["\n", SECTION_RULE, "# OTHER PARAMETERS\n", SECTION_RULE, "\n"])
            parts.extend(self.parameters[name].render() for name in others)

        return "".join(parts)

    def write(self, path: Path, now: Optional[datetime] = None) -> None:
        """Replace path with the rendered file.

        The content goes to a temporary file in the same directory which is
        then renamed over path.

        Raises:
            ConfFileError: On any I/O failure
        """
        content = self.render(now)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise ConfFileError(
                f"Failed to write auto.conf: {path}",
                path=path,
                details=[str(e)],
            ) from e
        console.verbose(f"Wrote {len(self.parameters)} parameters to {path}")


def update_auto_conf(
    path: Path,
    params: TunedParameters,
    now: Optional[datetime] = None,
    *,
    defaults: Optional[dict[str, str]] = None,
) -> AutoConfFile:
    """Parse path, merge tuned values and write it back.

    With defaults, missing baseline settings are filled in first; tuned
    values still win.

    Raises:
        ConfFileError: If the file cannot be read or written
    """
    auto_conf = AutoConfFile.parse(path)
    if defaults:
        auto_conf.apply_defaults(defaults)
    auto_conf.merge_with_tuned_parameters(params)
    auto_conf.write(path, now)
    return auto_conf
