"""File-based configuration for platforms without a POSIX configure script."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple
import re
import shutil

from .context import RunContext
from .errors import StageFailure
from .platforms import PlatformRecord


HEADER_COPIES: Tuple[Tuple[str, str], ...] = (
    ("config/m-nt.h", "runtime/caml/m.h"),
    ("config/s-nt.h", "runtime/caml/s.h"),
)
SETTINGS_TEMPLATE = "config/Makefile.{tag}"
SETTINGS_TARGET = "config/Makefile"


@dataclass(frozen=True, slots=True)
class SettingRewrite:
    name: str
    value: str

    def apply(self, text: str) -> Tuple[str, int]:
        pattern = re.compile(rf"^{re.escape(self.name)}=.*$", re.MULTILINE)
        return pattern.subn(lambda _match: f"{self.name}={self.value}", text)


def settings_rewrites(install_dir: str, *, flambda: bool) -> List[SettingRewrite]:
    rewrites = [
        SettingRewrite("PREFIX", install_dir),
        SettingRewrite("RUNTIMED", "true"),
    ]
    if flambda:
        rewrites.append(SettingRewrite("FLAMBDA", "true"))
    return rewrites


class WindowsSettings:
    """Copies the platform headers and settings file into the tree, then edits the settings."""

    def __init__(self, ctx: RunContext, working_dir: Path) -> None:
        self._ctx = ctx
        self._root = working_dir

    def copies(self, record: PlatformRecord) -> List[Tuple[str, str]]:
        return [*HEADER_COPIES, (SETTINGS_TEMPLATE.format(tag=record.tag), SETTINGS_TARGET)]

    def apply(self, record: PlatformRecord, install_dir: str, *, flambda: bool) -> None:
        console = self._ctx.console
        rewrites = settings_rewrites(install_dir, flambda=flambda)

        for source, target in self.copies(record):
            console.trace(f"cp {source} {target}", self._root)
            if self._ctx.dry_run:
                console.dry(f"Would copy {source} to {target}")
                continue
            source_path = self._root / source
            if not source_path.is_file():
                console.error(f"Missing platform file: {source_path}")
                raise StageFailure("configure", 1, f"cp {source} {target}")
            target_path = self._root / target
            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source_path, target_path)

        for rewrite in rewrites:
            console.trace(f"set {rewrite.name}={rewrite.value} in {SETTINGS_TARGET}", self._root)
        if self._ctx.dry_run:
            console.dry(f"Would rewrite {len(rewrites)} setting(s) in {SETTINGS_TARGET}")
            return

        settings_path = self._root / SETTINGS_TARGET
        text = settings_path.read_text(encoding="utf-8")
        for rewrite in rewrites:
            text, count = rewrite.apply(text)
            if count == 0:
                console.error(f"{SETTINGS_TARGET} has no '{rewrite.name}=' line to rewrite")
                raise StageFailure("configure", 1, f"set {rewrite.name}")
        settings_path.write_text(text, encoding="utf-8")


__all__ = ["HEADER_COPIES", "SETTINGS_TARGET", "SETTINGS_TEMPLATE", "SettingRewrite", "WindowsSettings", "settings_rewrites"]
