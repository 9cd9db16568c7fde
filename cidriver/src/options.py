"""Command-line overrides for a driver run."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Mapping
import re

from .errors import ParseError


JOBS_ENV = "CIDRIVER_JOBS"

# One or two digits, as accepted by the make -j flag on the build machines.
_JOBS_TOKEN = re.compile(r"-j([0-9]{1,2})")
_JOBS_VALUE = re.compile(r"[0-9]{1,2}")

LOG_LEVELS = ("none", "error", "warning", "info", "debug")


@dataclass
class BuildOptions:
    extra_configure_args: List[str] = field(default_factory=list)
    patch_files: List[Path] = field(default_factory=list)
    build_native: bool = True
    parallelism: int | None = None
    dry_run: bool = False
    log_level: str | None = None
    config_path: Path | None = None
    source_dir: Path | None = None

    @property
    def jobs_flag(self) -> str | None:
        return f"-j{self.parallelism}" if self.parallelism else None


def quote_argument(value: str) -> str:
    """Single-quote ``value`` for a POSIX shell, escaping embedded quotes as ``'\\''``.

    ``shlex.split(quote_argument(value)) == [value]`` for any string.
    """
    return "'" + value.replace("'", "'\\''") + "'"


def parse_jobs(value: str | None, *, warn: Callable[[str], None] | None = None) -> int | None:
    """Return a positive job count, or ``None`` when ``value`` is absent or malformed."""
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if _JOBS_VALUE.fullmatch(text) and int(text) > 0:
        return int(text)
    # TODO: decide with the build-farm maintainers whether this should be fatal.
    if warn is not None:
        warn(f"Ignoring malformed parallelism value '{value}'")
    return None


def parse(
    argv: Iterable[str],
    environ: Mapping[str, str] | None = None,
    *,
    warn: Callable[[str], None] | None = None,
) -> BuildOptions:
    """Turn command-line tokens into :class:`BuildOptions`.

    Environment parallelism (``CIDRIVER_JOBS``) is read first; a ``-jN`` token
    overrides it. Unknown tokens and options missing their value raise
    :class:`ParseError`. Nothing is applied here: patches are only collected.
    """
    options = BuildOptions()
    if environ is not None:
        options.parallelism = parse_jobs(environ.get(JOBS_ENV), warn=warn)

    tokens = list(argv)
    index = 0

    def take_value(option: str) -> str:
        nonlocal index
        if index + 1 >= len(tokens):
            raise ParseError(f"Option '{option}' requires a value")
        index += 1
        return tokens[index]

    while index < len(tokens):
        token = tokens[index]
        jobs_match = _JOBS_TOKEN.fullmatch(token)
        if token == "-conf":
            options.extra_configure_args.append(take_value(token))
        elif token == "-patch1":
            options.patch_files.append(Path(take_value(token)))
        elif token == "-no-native":
            options.build_native = False
        elif jobs_match:
            options.parallelism = parse_jobs(jobs_match.group(1), warn=warn)
        elif token == "--dry-run":
            options.dry_run = True
        elif token == "--log":
            level = take_value(token)
            if level not in LOG_LEVELS:
                raise ParseError(f"Unknown log level '{level}' (expected one of: {', '.join(LOG_LEVELS)})")
            options.log_level = level
        elif token == "--config":
            options.config_path = Path(take_value(token))
        elif token == "--source-dir":
            options.source_dir = Path(take_value(token))
        else:
            raise ParseError(f"Unknown option '{token}'")
        index += 1

    return options


__all__ = [
    "BuildOptions",
    "JOBS_ENV",
    "LOG_LEVELS",
    "parse",
    "parse_jobs",
    "quote_argument",
]
