"""
Console and run context for cidriver.
"""
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO, Tuple

from core.command_runner import CommandRunner


class Console:
    """Leveled console output.

    Levels: none < error < warning < info < debug
    Default: 'info', so every attempted command is traced.
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "warning": 2,
        "info": 3,
        "debug": 4,
    }

    def __init__(
        self,
        level: str = "info",
        dry_run: bool = False,
        stream: TextIO | None = None,
        error_stream: TextIO | None = None,
    ):
        if level not in self.LEVELS:
            raise ValueError(f"Unknown log level '{level}'")
        self.level_name = level
        self.level = self.LEVELS[level]
        self.dry_run = dry_run
        self._stream = stream
        self._error_stream = error_stream

    @property
    def out(self) -> TextIO:
        return self._stream or sys.stdout

    @property
    def err(self) -> TextIO:
        return self._error_stream or sys.stderr

    def set_level(self, level: str) -> None:
        if level not in self.LEVELS:
            raise ValueError(f"Unknown log level '{level}'")
        self.level_name = level
        self.level = self.LEVELS[level]

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            print(f"[ERROR] {message}", file=self.err, flush=True)

    def warning(self, message: str) -> None:
        if self.level >= self.LEVELS["warning"]:
            print(f"[WARN] {message}", file=self.err, flush=True)

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            print(f"[INFO] {message}", file=self.out, flush=True)

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            print(f"[DEBUG] {message}", file=self.out, flush=True)

    def dry(self, message: str) -> None:
        if self.dry_run:
            print(f"[DRY] {message}", file=self.out, flush=True)

    def stage(self, name: str) -> None:
        if self.level >= self.LEVELS["info"]:
            print(f"=== {name} ===", file=self.out, flush=True)

    def trace(self, command: str, cwd: Path | None = None) -> None:
        if self.level >= self.LEVELS["info"]:
            suffix = f"  (cwd: {cwd})" if cwd else ""
            print(f"+ {command}{suffix}", file=self.out, flush=True)


@dataclass
class RunContext:
    """Everything a single driver invocation shares between components."""

    console: Console
    runner: CommandRunner
    source_dir: Path
    run_id: str
    home: Path
    flambda: bool = False
    dry_run: bool = False
    cleanup_processes: Tuple[str, ...] | None = None
