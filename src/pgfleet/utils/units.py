"""Size and duration helpers for PostgreSQL configuration values.

PostgreSQL accepts memory settings as ``128MB``/``4GB``/``512kB`` and time
settings as ``10s``/``5min``/``250ms``. These helpers parse those forms and
render values back using the largest unit that keeps the number whole.
"""

import re
from datetime import timedelta

from pgfleet.core.exceptions import ValidationError


# Size constants in bytes
KB = 1024
MB = 1024 * KB
GB = 1024 * MB
TB = 1024 * GB

# Duration constants in microseconds
US = 1
MS = 1000 * US
SECOND = 1000 * MS
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE
DAY = 24 * HOUR

_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([KMGT]?B)$")
_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*(us|ms|s|min|h|d)$")

_SIZE_MULTIPLIERS = {"B": 1, "KB": KB, "MB": MB, "GB": GB, "TB": TB}
_DURATION_MULTIPLIERS = {
    "us": US, "ms": MS, "s": SECOND, "min": MINUTE, "h": HOUR, "d": DAY,
}

# Largest first; PostgreSQL spells kilobytes "kB"
_SIZE_UNITS = (("TB", TB), ("GB", GB), ("MB", MB), ("kB", KB))
_DURATION_UNITS = (
    ("d", DAY), ("h", HOUR), ("min", MINUTE), ("s", SECOND), ("ms", MS),
)


def parse_size(value: str) -> int:
    """Parse a size string such as ``128MB`` into bytes.

    A bare number is taken as bytes.

    Raises:
        ValidationError: If the string is empty or not a size
    """
    text = value.strip()
    if not text:
        raise ValidationError("Empty size string")

    if text.isdigit():
        return int(text)

    match = _SIZE_RE.match(text.upper())
    if not match:
        raise ValidationError(
            f"Invalid size format: {value}",
            hint="Use a number followed by B, kB, MB, GB or TB (e.g. 128MB)",
        )

    return int(float(match.group(1)) * _SIZE_MULTIPLIERS[match.group(2)])


def format_size(num_bytes: int) -> str:
    """Render bytes the way postgresql.conf expects.

    Picks the largest unit that divides the value exactly; otherwise the
    largest unit not exceeding it, rounded. Zero renders as ``0``.
    """
    if num_bytes == 0:
        return "0"

    for suffix, size in _SIZE_UNITS:
        if num_bytes >= size and num_bytes % size == 0:
            return f"{num_bytes // size}{suffix}"

    for suffix, size in _SIZE_UNITS:
        if num_bytes >= size:
            return f"{num_bytes / size:.0f}{suffix}"

    return str(num_bytes)


def format_size_mb(num_bytes: int) -> str:
    """Render bytes as whole megabytes, rounded to nearest, minimum 1MB."""
    if num_bytes == 0:
        return "0MB"
    mb = (num_bytes + MB // 2) // MB
    return f"{max(mb, 1)}MB"


def format_kb(kb: int) -> str:
    """Render a kibibyte quantity through format_size."""
    return format_size(kb * KB)


def parse_duration(value: str) -> timedelta:
    """Parse a duration string such as ``5min`` or ``250ms``.

    A bare number is taken as milliseconds, matching PostgreSQL.

    Raises:
        ValidationError: If the string is empty or not a duration
    """
    text = value.strip()
    if not text:
        raise ValidationError("Empty duration string")

    if re.fullmatch(r"-?\d+", text):
        return timedelta(milliseconds=int(text))

    match = _DURATION_RE.match(text.lower())
    if not match:
        raise ValidationError(
            f"Invalid duration format: {value}",
            hint="Use a number followed by us, ms, s, min, h or d (e.g. 30s)",
        )

    micros = float(match.group(1)) * _DURATION_MULTIPLIERS[match.group(2)]
    return timedelta(microseconds=int(micros))


def format_duration(value: timedelta) -> str:
    """Render a duration using the largest unit that keeps it whole."""
    micros = (value.days * 86400 + value.seconds) * SECOND + value.microseconds
    if micros == 0:
        return "0"

    for suffix, size in _DURATION_UNITS:
        if micros >= size and micros % size == 0:
            return f"{micros // size}{suffix}"

    return f"{micros}us"
