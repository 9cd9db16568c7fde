"""Command line entry point for the build driver."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping
import os
import sys

from core.command_runner import CommandRunner, RecordingCommandRunner, SubprocessCommandRunner

from .config import DriverConfig, is_truthy, load_driver_config
from .context import Console, RunContext
from .environment import EnvironmentResolver
from .errors import CONFIGURATION_ERROR_EXIT, ConfigurationError, StageFailure
from .options import BuildOptions, parse
from .pipeline import PipelineDriver
from .platforms import PlatformRecord, PlatformRegistry


PLATFORM_ENV = "CIDRIVER_ARCH"
FLAMBDA_ENV = "CIDRIVER_FLAMBDA"


def _exit_status(returncode: int) -> int:
    # A child killed by a signal reports -N; shells report 128+N.
    return 128 - returncode if returncode < 0 else returncode


def _resolve_platform(
    registry: PlatformRegistry, environ: Mapping[str, str], config: DriverConfig
) -> PlatformRecord:
    tag = environ.get(PLATFORM_ENV) or config.platform
    return registry.lookup(tag)


def _emit_dry_run_output(console: Console, runner: RecordingCommandRunner, *, workspace: Path) -> None:
    for line in runner.iter_formatted(workspace=workspace):
        print(line, file=console.out)


def _run(
    argv: Iterable[str],
    *,
    environ: Mapping[str, str],
    console: Console,
    runner: CommandRunner | None,
    run_id: str,
) -> int:
    options: BuildOptions = parse(argv, environ, warn=console.warning)
    if options.log_level:
        console.set_level(options.log_level)
    console.dry_run = options.dry_run

    source_dir = (options.source_dir or Path.cwd()).expanduser()
    config = load_driver_config(explicit=options.config_path, environ=environ, source_dir=source_dir)
    if config.path is not None:
        console.debug(f"Loaded configuration from {config.path}")
    if config.log_level and not options.log_level:
        console.set_level(config.log_level)

    registry = PlatformRegistry.with_builtins()
    registry.apply_overrides(config.platform_overrides)
    record = _resolve_platform(registry, environ, config)

    flambda = is_truthy(environ[FLAMBDA_ENV]) if FLAMBDA_ENV in environ else config.flambda
    options.patch_files = [patch.expanduser().resolve() for patch in options.patch_files]

    if runner is None:
        runner = RecordingCommandRunner() if options.dry_run else SubprocessCommandRunner()

    ctx = RunContext(
        console=console,
        runner=runner,
        source_dir=source_dir,
        run_id=run_id,
        home=Path(environ.get("HOME") or Path.home()),
        flambda=flambda,
        dry_run=options.dry_run,
        cleanup_processes=tuple(config.cleanup_processes) if config.cleanup_processes is not None else None,
    )

    resolver = EnvironmentResolver(ctx)
    overlay = resolver.prepare(record)
    env = resolver.materialize(overlay)

    driver = PipelineDriver(ctx, record, options, working_dir=overlay.working_dir, env=env)
    driver.run()

    if options.dry_run and isinstance(runner, RecordingCommandRunner):
        _emit_dry_run_output(console, runner, workspace=overlay.working_dir)
    return 0


def main(
    argv: Iterable[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    console: Console | None = None,
    runner: CommandRunner | None = None,
    run_id: str | None = None,
) -> int:
    """Run the driver; returns 0, the failing stage's status, or 3 for configuration errors."""
    console = console or Console()
    try:
        return _run(
            sys.argv[1:] if argv is None else argv,
            environ=os.environ if environ is None else environ,
            console=console,
            runner=runner,
            run_id=run_id or str(os.getpid()),
        )
    except ConfigurationError as exc:
        console.error(str(exc))
        return CONFIGURATION_ERROR_EXIT
    except StageFailure as exc:
        console.error(str(exc))
        return _exit_status(exc.returncode)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
