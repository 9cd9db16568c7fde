"""Test doubles shared by the cidriver tests."""
from __future__ import annotations

import io
from pathlib import Path
from typing import Dict, List, Mapping, Sequence, Tuple

from core.command_runner import CommandResult, CommandRunner, RecordingCommandRunner

from cidriver.src.context import Console, RunContext


class ScriptedCommandRunner(RecordingCommandRunner):
    """Recording runner whose exit status and output can be scripted per command prefix."""

    def __init__(
        self,
        returncodes: Mapping[Tuple[str, ...], int] | None = None,
        outputs: Mapping[Tuple[str, ...], str] | None = None,
    ) -> None:
        super().__init__()
        self.returncodes: Dict[Tuple[str, ...], int] = dict(returncodes or {})
        self.outputs: Dict[Tuple[str, ...], str] = dict(outputs or {})

    @staticmethod
    def _lookup(table: Mapping[Tuple[str, ...], object], command: Sequence[str]):
        parts = tuple(command)
        best = None
        for prefix, value in table.items():
            if parts[: len(prefix)] == prefix and (best is None or len(prefix) > len(best[0])):
                best = (prefix, value)
        return best[1] if best else None

    def run(self, command, *, cwd=None, env=None, check=True, note=None, stream=False):
        super().run(command, cwd=cwd, env=env, check=check, note=note, stream=stream)
        returncode = self._lookup(self.returncodes, command) or 0
        stdout = self._lookup(self.outputs, command) or ""
        return CommandResult(command=command, returncode=returncode, stdout=stdout, stderr="", streamed=stream)

    @property
    def command_lines(self) -> List[List[str]]:
        return [record.command for record in self.commands]


def make_context(
    runner: CommandRunner,
    source_dir: Path,
    *,
    run_id: str = "1234",
    home: str = "/home/ci",
    flambda: bool = False,
    dry_run: bool = False,
    cleanup_processes=None,
    level: str = "debug",
) -> RunContext:
    console = Console(level=level, dry_run=dry_run, stream=io.StringIO(), error_stream=io.StringIO())
    return RunContext(
        console=console,
        runner=runner,
        source_dir=source_dir,
        run_id=run_id,
        home=Path(home),
        flambda=flambda,
        dry_run=dry_run,
        cleanup_processes=cleanup_processes,
    )


SETTINGS_TEMPLATE = """\
# Settings for the mingw port
PREFIX=C:/ocamlmgw
BINDIR=$(PREFIX)/bin
RUNTIMED=false
FLAMBDA=false
WITH_PREFIX=keep
"""


def write_settings_tree(root: Path, tag: str = "mingw", settings: str = SETTINGS_TEMPLATE) -> None:
    """Lay out the header and settings templates a Windows-native configure copies."""
    (root / "config").mkdir(parents=True, exist_ok=True)
    (root / "config" / "m-nt.h").write_text("#define ARCH_M\n")
    (root / "config" / "s-nt.h").write_text("#define ARCH_S\n")
    (root / "config" / f"Makefile.{tag}").write_text(settings)
