"""Parser for ``postgres --describe-config`` output.

Each line describes one parameter as tab-separated fields:

    name, context, category, vartype, boot_val, min_val, max_val,
    short_desc, extra_desc

The output carries no unit or enum columns, so both are inferred. A fixed
table of well-known enum parameters is authoritative; keyword scanning of
the descriptions is a lower-confidence fallback. Every ``Param`` records
where its unit and enum values came from.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pgfleet.core.exceptions import ParseError, ValidationError


class Provenance(str, Enum):
    """Where an inferred field came from."""

    KNOWN = "known"          # Fixed lookup table
    CATEGORY = "category"    # Derived from category and bounds
    HEURISTIC = "heuristic"  # Guessed from description text
    NONE = ""                # Nothing could be inferred


KNOWN_ENUMS: dict[str, list[str]] = {
    "wal_level": ["minimal", "replica", "logical"],
    "log_statement": ["none", "ddl", "mod", "all"],
    "log_min_messages": [
        "debug5", "debug4", "debug3", "debug2", "debug1", "info", "notice",
        "warning", "error", "log", "fatal", "panic",
    ],
    "client_min_messages": [
        "debug5", "debug4", "debug3", "debug2", "debug1", "log", "notice",
        "warning", "error",
    ],
    "archive_mode": ["off", "on", "always"],
    "ssl": ["off", "on"],
    "fsync": ["off", "on"],
    "synchronous_commit": ["off", "local", "remote_write", "remote_apply", "on"],
    "checkpoint_completion_target": ["0.0", "1.0"],
    "default_transaction_isolation": [
        "serializable", "repeatable read", "read committed", "read uncommitted",
    ],
    "password_encryption": ["md5", "scram-sha-256"],
    "wal_compression": ["off", "on", "pglz", "lz4", "zstd"],
    "shared_preload_libraries": [],
}

BOOL_TOKENS = frozenset({"on", "off", "true", "false", "yes", "no", "1", "0"})

_QUOTED_RE = re.compile(r"'([^']+)'")
_INTEGER_RE = re.compile(r"^-?\d+$")
_REAL_RE = re.compile(r"^-?\d*\.?\d+([eE][+-]?\d+)?$")

MEMORY_CATEGORY = "Resource Usage / Memory"
MIN_FIELDS = 8
ALL_FIELDS = 9
# First fields of a column-header row
HEADER_FIELDS = ("name", "context", "category", "vartype")


@dataclass
class Param:
    """A single configuration parameter with full metadata."""

    name: str
    vartype: str
    context: str = ""
    category: str = ""
    short_desc: str = ""
    extra_desc: str = ""
    unit: str = ""
    min_val: float = 0.0
    max_val: float = 0.0
    enum_vals: list[str] = field(default_factory=list)
    boot_val: str = ""
    setting: str = ""
    pending_restart: bool = False
    varclass: str = "configuration"
    unit_source: Provenance = Provenance.NONE
    enum_source: Provenance = Provenance.NONE

    @property
    def description(self) -> str:
        """Short and extended description joined."""
        if self.extra_desc:
            return f"{self.short_desc} {self.extra_desc}"
        return self.short_desc

    @property
    def is_bool(self) -> bool:
        return self.vartype in ("bool", "boolean")

    @property
    def requires_restart(self) -> bool:
        return self.context == "postmaster"

    def validate_value(self, value: str) -> None:
        """Check a candidate value against the declared type.

        Only the format is checked. Range checks against min/max are not
        done because the value may carry a unit that would first need
        normalizing to the parameter's base unit.

        Raises:
            ValidationError: If the value does not fit the type, or the
                type itself is unknown
        """
        if self.is_bool:
            if value.lower() not in BOOL_TOKENS:
                raise ValidationError(f"Invalid boolean value for {self.name}: {value}")
        elif self.vartype == "enum":
            if value not in self.enum_vals:
                raise ValidationError(
                    f"Invalid enum value for {self.name}: {value}",
                    hint=f"Valid values: {', '.join(self.enum_vals) or '(unknown)'}",
                )
        elif self.vartype == "integer":
            if not _INTEGER_RE.match(value):
                raise ValidationError(f"Invalid integer format for {self.name}: {value}")
        elif self.vartype == "real":
            if not _REAL_RE.match(value):
                raise ValidationError(f"Invalid real format for {self.name}: {value}")
        elif self.vartype != "string":
            raise ValidationError(f"Unknown parameter type for {self.name}: {self.vartype}")


def validate_param_value(param: Param, value: str) -> None:
    """Module-level alias for Param.validate_value."""
    param.validate_value(value)


def _parse_float(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return 0.0


def extract_unit(param: Param) -> tuple[str, Provenance]:
    """Infer a parameter's unit from its category, bounds and description."""
    if param.category == MEMORY_CATEGORY and param.vartype == "integer":
        return ("MB" if param.max_val > 128 * 1024 else "kB"), Provenance.CATEGORY

    desc = f"{param.short_desc} {param.extra_desc}".lower()

    if any(word in desc for word in ("memory", "buffer", "cache", "size of")):
        if "page" in desc or "8 kb" in desc:
            return "8kB", Provenance.HEURISTIC
        return "kB", Provenance.HEURISTIC

    if "in milliseconds" in desc or "timeout" in desc:
        return "ms", Provenance.HEURISTIC
    if "in seconds" in desc:
        return "s", Provenance.HEURISTIC
    if "in minutes" in desc:
        return "min", Provenance.HEURISTIC

    if "kilobytes" in desc:
        return "kB", Provenance.HEURISTIC
    if "megabytes" in desc:
        return "MB", Provenance.HEURISTIC
    if "bytes" in desc:
        return "B", Provenance.HEURISTIC

    return "", Provenance.NONE


def extract_enum_values(name: str, short_desc: str, extra_desc: str) -> tuple[list[str], Provenance]:
    """Resolve the permitted values of an enum parameter.

    The known-enum table wins. Otherwise single-quoted tokens in the
    description are used when there are at least two of them, and failing
    that boolean-sounding descriptions yield ``on``/``off``.
    """
    if name in KNOWN_ENUMS:
        return list(KNOWN_ENUMS[name]), Provenance.KNOWN

    desc = f"{short_desc} {extra_desc}"

    quoted = _QUOTED_RE.findall(desc)
    if len(quoted) > 1:
        return quoted, Provenance.HEURISTIC

    lower = desc.lower()
    if any(cue in lower for cue in ("enable", "disable", "on/off", "true/false")):
        return ["on", "off"], Provenance.HEURISTIC

    return [], Provenance.NONE


def parse_describe_config(output: str) -> list[Param]:
    """Parse ``postgres --describe-config`` output into Params.

    A leading column-header row is skipped.

    Raises:
        ParseError: If any non-blank line has fewer than 8 fields
    """
    params: list[Param] = []

    for line_num, raw in enumerate(output.split("\n"), start=1):
        line = raw.strip()
        if not line:
            continue

        fields = line.split("\t")
        if len(fields) < MIN_FIELDS:
            raise ParseError(
                f"Invalid describe-config output at line {line_num}: "
                f"expected at least {MIN_FIELDS} fields, got {len(fields)}",
                line=line,
            )
        if tuple(f.lower() for f in fields[:4]) == HEADER_FIELDS:
            continue
        fields += [""] * (ALL_FIELDS - len(fields))

        param = Param(
            name=fields[0],
            context=fields[1],
            category=fields[2],
            vartype=fields[3].lower(),
            boot_val=fields[4],
            setting=fields[4],
            min_val=_parse_float(fields[5]),
            max_val=_parse_float(fields[6]),
            short_desc=fields[7],
            extra_desc=fields[8],
        )
        param.unit, param.unit_source = extract_unit(param)

        if param.vartype == "enum":
            param.enum_vals, param.enum_source = extract_enum_values(
                param.name, param.short_desc, param.extra_desc
            )

        params.append(param)

    return params


def get_param_by_name(params: list[Param], name: str) -> Optional[Param]:
    """Return the parameter with the given name, or None."""
    for param in params:
        if param.name == name:
            return param
    return None


def filter_by_category(params: list[Param], category: str) -> list[Param]:
    """Return parameters whose category contains the given text."""
    return [p for p in params if category in p.category]


def filter_by_context(params: list[Param], context: str) -> list[Param]:
    """Return parameters settable in exactly the given context."""
    return [p for p in params if p.context == context]
