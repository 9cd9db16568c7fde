"""
Best-effort removal of worker processes left behind by an earlier run.
"""
from typing import Iterable, Mapping, Optional

from .context import RunContext


DEFAULT_STALE_PROCESSES = (
    "ocamlrun.exe",
    "expect_test.exe",
    "ocaml.opt.exe",
    "ocamlopt.opt.exe",
)


def kill_command(name: str) -> list[str]:
    return ["taskkill", "/f", "/im", name]


def kill_stale(
    ctx: RunContext,
    names: Iterable[str],
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """Forcibly terminate every image in ``names``.

    Failures are expected (usually nothing is running) and never raised.
    Returns how many images were actually killed.
    """
    killed = 0
    for name in names:
        command = kill_command(name)
        ctx.console.trace(ctx.runner.format_command(command))
        try:
            result = ctx.runner.run(command, env=env, check=False, note="cleanup")
        except OSError as exc:
            ctx.console.debug(f"Could not run taskkill for {name}: {exc}")
            continue
        if result.returncode == 0:
            killed += 1
        else:
            ctx.console.debug(f"No stale {name} (taskkill exit {result.returncode})")
    return killed
