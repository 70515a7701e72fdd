"""Readers for postmaster.opts and postgresql.conf, and include management."""

from pathlib import Path

from pgfleet.core.exceptions import ConfFileError
from pgfleet.core.output import console
from pgfleet.pgconf.conf import Conf


INCLUDE_COMMENT = "# Include pg_tune optimizations"


def split_comment(rest: str) -> tuple[str, str]:
    """Split ``value  # comment`` at the first # outside single quotes.

    A doubled quote inside a quoted value is an escaped quote and does not
    end the string.
    """
    in_quotes = False
    i = 0
    while i < len(rest):
        char = rest[i]
        if char == "'":
            if in_quotes and rest[i + 1:i + 2] == "'":
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == "#" and not in_quotes:
            return rest[:i].strip(), rest[i + 1:].strip()
        i += 1
    return rest.strip(), ""


def load_postmaster_opts(path: Path) -> Conf:
    """Read the options a running postmaster was started with.

    Tokens are split on whitespace; surrounding double quotes are removed
    and only ``--name=value`` / ``--name`` tokens are kept. Quoted values
    containing spaces are split apart and therefore not recovered.

    Raises:
        ConfFileError: If the file cannot be read
    """
    try:
        data = path.read_text()
    except OSError as e:
        raise ConfFileError(
            f"Failed to read postmaster.opts: {path}",
            path=path,
            details=[str(e)],
        ) from e

    opts = Conf()
    for token in data.split():
        token = token.strip('"')
        if not token.startswith("--"):
            continue
        name, _, value = token[2:].partition("=")
        opts[name] = value
    return opts


def load_conf_file(path: Path) -> Conf:
    """Read a postgresql.conf style file.

    A missing file yields an empty Conf. Comment lines and trailing
    ``#`` comments are dropped, and surrounding quotes are trimmed from
    values. Later assignments of the same key win.

    Raises:
        ConfFileError: If the file exists but cannot be read
    """
    try:
        data = path.read_text()
    except FileNotFoundError:
        return Conf()
    except OSError as e:
        raise ConfFileError(
            f"Failed to read configuration file: {path}",
            path=path,
            details=[str(e)],
        ) from e

    conf = Conf()
    for raw in data.split("\n"):
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        value, _ = split_comment(value)
        conf[key.strip()] = value.strip("'\"")
    return conf


def _has_include(text: str, include_file: str) -> bool:
    patterns = (f"include '{include_file}'", f"include_if_exists '{include_file}'")
    for raw in text.split("\n"):
        line = raw.strip()
        if line.startswith("#"):
            continue
        if any(p in line for p in patterns):
            return True
    return False


def ensure_include_directive(conf_path: Path, include_file: str) -> bool:
    """Make sure postgresql.conf includes ``include_file``.

    A live ``include`` or ``include_if_exists`` line for the file counts as
    present; commented-out lines do not. When absent, an
    ``include_if_exists`` line is appended.

    Returns:
        True if the file was modified

    Raises:
        ConfFileError: If postgresql.conf does not exist or cannot be
            read or written. When the directory exists, its listing is
            attached to help spot a wrong data directory.
    """
    if not conf_path.exists():
        parent = conf_path.parent
        if parent.is_dir():
            listing = sorted(p.name for p in parent.iterdir())
            raise ConfFileError(
                f"postgresql.conf does not exist at path: {conf_path}",
                path=conf_path,
                details=[f"Directory {parent} contains: {', '.join(listing) or '(empty)'}"],
                hint="Check that the data directory is correct and initialized",
            )
        raise ConfFileError(
            f"postgresql.conf file does not exist at path: {conf_path}",
            path=conf_path,
        )

    try:
        text = conf_path.read_text()
    except OSError as e:
        raise ConfFileError(
            f"Failed to read postgresql.conf: {conf_path}",
            path=conf_path,
            details=[str(e)],
        ) from e

    if _has_include(text, include_file):
        console.debug(f"{conf_path} already includes {include_file}")
        return False

    addition = ""
    if text and not text.endswith("\n"):
        addition += "\n"
    addition += f"\n{INCLUDE_COMMENT}\ninclude_if_exists '{include_file}'\n"

    try:
        with open(conf_path, "a") as f:
            f.write(addition)
    except OSError as e:
        raise ConfFileError(
            f"Failed to write to postgresql.conf: {conf_path}",
            path=conf_path,
            details=[str(e)],
        ) from e

    console.verbose(f"Added include_if_exists '{include_file}' to {conf_path}")
    return True
