"""Environment resolution for child processes.

The resolver never mutates ``os.environ``. It produces an
:class:`EnvironmentOverlay` describing what the platform needs (profile
scripts to source, pinned variables, the working directory), and
:meth:`EnvironmentResolver.materialize` turns that into the ``env`` mapping
handed to every later command.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Tuple

from core.git_api import discover_root

from .context import RunContext
from .errors import ConfigurationError, StageFailure
from .options import quote_argument
from .platforms import PlatformRecord


SYSTEM_PROFILE = "/etc/profile"
USER_PROFILE = ".profile"
TOOLCHAIN_SCRIPTS = {32: ".msenv32", 64: ".msenv64"}
PINNED_VARIABLES = {"LC_ALL": "C", "LANG": "C"}


@dataclass(frozen=True)
class EnvironmentOverlay:
    working_dir: Path
    profiles: Tuple[str, ...] = ()
    variables: Mapping[str, str] = field(default_factory=dict)

    @property
    def needs_sourcing(self) -> bool:
        return bool(self.profiles)


def profile_scripts(record: PlatformRecord, home: Path | str) -> Tuple[str, ...]:
    """Scripts to source for ``record``, in order: system, user, then toolchain."""
    if not record.posix_emulation:
        return ()
    home_text = str(home).rstrip("/")
    scripts = [SYSTEM_PROFILE, f"{home_text}/{USER_PROFILE}"]
    if record.toolchain_bits is not None:
        try:
            scripts.append(f"{home_text}/{TOOLCHAIN_SCRIPTS[record.toolchain_bits]}")
        except KeyError:
            raise ConfigurationError(
                f"No toolchain environment script for {record.toolchain_bits}-bit platform '{record.tag}'"
            ) from None
    return tuple(scripts)


def parse_env_dump(output: str) -> Dict[str, str]:
    """Decode ``env -0`` output."""
    variables: Dict[str, str] = {}
    for entry in output.split("\0"):
        name, sep, value = entry.partition("=")
        if sep and name and "\n" not in name:
            variables[name] = value
    return variables


class EnvironmentResolver:
    def __init__(self, ctx: RunContext) -> None:
        self._ctx = ctx

    def working_dir(self) -> Path:
        source_dir = self._ctx.source_dir.expanduser()
        if not source_dir.is_dir():
            raise ConfigurationError(f"Source directory not found: {source_dir}")
        resolved = source_dir.resolve()
        # The forced clean sweeps everything below the working directory, so a
        # tree nested in some larger checkout must never be run from its root.
        root = discover_root(resolved)
        if root is not None and root != resolved:
            raise ConfigurationError(
                f"Source directory {resolved} lies inside the git work tree {root}; "
                "point --source-dir at the root of the checkout"
            )
        return resolved

    def prepare(self, record: PlatformRecord) -> EnvironmentOverlay:
        return EnvironmentOverlay(
            working_dir=self.working_dir(),
            profiles=profile_scripts(record, self._ctx.home),
            variables=dict(PINNED_VARIABLES),
        )

    def sourcing_command(self, overlay: EnvironmentOverlay) -> list[str]:
        # Later scripts may override earlier ones; the toolchain script is last.
        # Only an unreadable script is fatal: profiles are not errexit-safe, and
        # anything they print goes to stderr so stdout holds the dump alone.
        steps = []
        for script in overlay.profiles:
            quoted = quote_argument(script)
            steps.append(f"[ -r {quoted} ] || {{ echo \"cannot read \"{quoted} >&2; exit 1; }}")
            steps.append(f". {quoted} >&2")
        return ["sh", "-c", "; ".join([*steps, "env -0"])]

    def materialize(self, overlay: EnvironmentOverlay) -> Dict[str, str]:
        """Return the environment mapping for child processes.

        Pinned variables are applied after the sourced profiles so the locale
        stays fixed whatever the profiles export.
        """
        console = self._ctx.console
        environment: Dict[str, str] = {}
        if overlay.needs_sourcing:
            command = self.sourcing_command(overlay)
            console.trace(self._ctx.runner.format_command(command), overlay.working_dir)
            result = self._ctx.runner.run(
                command, cwd=overlay.working_dir, check=False, note="environment"
            )
            if result.returncode != 0:
                if result.stderr:
                    console.error(result.stderr.strip())
                raise StageFailure("environment", result.returncode, " ; ".join(overlay.profiles))
            environment.update(parse_env_dump(result.stdout))
            console.debug(f"Sourced {len(overlay.profiles)} profile script(s), {len(environment)} variables")
        environment.update(overlay.variables)
        return environment


__all__ = [
    "EnvironmentOverlay",
    "EnvironmentResolver",
    "PINNED_VARIABLES",
    "parse_env_dump",
    "profile_scripts",
]
