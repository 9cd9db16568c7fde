"""Build pipeline: the fixed sequence of stages run for one platform."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Sequence
import os
import shutil

from core.git_api import GitRepository

from .context import RunContext
from .errors import StageFailure
from .options import BuildOptions
from .platforms import ConfigureMode, PlatformRecord
from .processes import DEFAULT_STALE_PROCESSES, kill_stale
from .settings_file import WindowsSettings


FLAMBDA_CONFIGURE_FLAGS = ("--enable-flambda", "--enable-flambda-invariants")
NATIVE_TARGET = "world.opt"
BYTECODE_TARGET = "world"
DEPEND_TARGET = "alldepend"
TESTSUITE_DIR = "testsuite"
PARALLEL_RUNNER = "parallel"

# Fixed load addresses for the shared stubs that break fork() under the
# emulation layer's dynamic loader when left at their default base.
RELOCATIONS = (
    ("0x7cd20000", "otherlibs/unix/dllunix.so"),
    ("0x7cdc0000", "otherlibs/systhreads/dllthreads.so"),
)


class StageKind(str, Enum):
    CLEAN = "clean"
    APPLY_PATCHES = "apply-patches"
    CONFIGURE = "configure"
    BUILD = "build"
    DEPENDENCY_CHECK = "dependency-check"
    RELOCATE = "relocate"
    INSTALL = "install"
    RUN_TESTS = "run-tests"


@dataclass(slots=True)
class StageResult:
    name: str
    command: List[str]
    returncode: int
    tolerant: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(slots=True)
class Stage:
    kind: StageKind
    enabled: bool
    action: Callable[[], None]


@dataclass
class PipelineState:
    """Cursor through the stages of one run."""

    planned: List[StageKind] = field(default_factory=list)
    executed: List[StageKind] = field(default_factory=list)
    skipped: List[StageKind] = field(default_factory=list)
    current: StageKind | None = None
    failed: StageKind | None = None
    results: List[StageResult] = field(default_factory=list)

    def enter(self, kind: StageKind) -> None:
        self.current = kind

    def complete(self, kind: StageKind) -> None:
        self.executed.append(kind)
        self.current = None

    def fail(self, kind: StageKind) -> None:
        self.failed = kind
        self.current = None

    @property
    def finished(self) -> bool:
        return self.failed is None and len(self.executed) == len(self.planned)


class PipelineDriver:
    def __init__(
        self,
        ctx: RunContext,
        record: PlatformRecord,
        options: BuildOptions,
        *,
        working_dir: Path,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._ctx = ctx
        self._console = ctx.console
        self._runner = ctx.runner
        self.record = record
        self.options = options
        self.working_dir = working_dir
        self.env: Dict[str, str] = dict(env or {})
        self.install_dir = record.render_install_dir(run_id=ctx.run_id, home=ctx.home)
        self.state = PipelineState()

    # --- Stage execution seam ---

    def run_stage(
        self,
        name: str,
        command: Sequence[str],
        *,
        tolerant: bool = False,
        cwd: Path | None = None,
        extra_env: Mapping[str, str] | None = None,
    ) -> StageResult:
        """Run one external command and judge it by exit status alone.

        A non-zero status raises :class:`StageFailure` unless ``tolerant``.
        """
        workdir = cwd or self.working_dir
        env = dict(self.env)
        if extra_env:
            env.update(extra_env)
        self._console.trace(self._runner.format_command(command), workdir)
        result = self._runner.run(list(command), cwd=workdir, env=env, check=False, note=name, stream=True)
        stage_result = StageResult(name=name, command=list(command), returncode=result.returncode, tolerant=tolerant)
        self.state.results.append(stage_result)
        if stage_result.ok:
            return stage_result
        if tolerant:
            self._console.warning(f"{name} exited with {result.returncode}; continuing")
            return stage_result
        raise StageFailure(name, result.returncode, self._runner.format_command(command))

    # --- Derived settings ---

    @property
    def build_native(self) -> bool:
        return self.options.build_native and self.record.builds_native_by_default

    def make(self, *args: str) -> List[str]:
        return [self.record.make_binary, *args]

    def configure_command(self) -> List[str]:
        command = ["./configure", "--prefix", self.install_dir, *self.options.extra_configure_args]
        if self._ctx.flambda:
            command.extend(FLAMBDA_CONFIGURE_FLAGS)
        return command

    def build_command(self) -> List[str]:
        target = NATIVE_TARGET if self.build_native else BYTECODE_TARGET
        jobs = self.options.jobs_flag
        return self.make(*([jobs] if jobs else []), target)

    def use_parallel_tests(self) -> bool:
        if not self.options.parallelism:
            return False
        return shutil.which(PARALLEL_RUNNER, path=self.env.get("PATH")) is not None

    # --- Stages ---

    def stages(self) -> List[Stage]:
        record = self.record
        return [
            Stage(StageKind.CLEAN, True, self.clean),
            Stage(StageKind.APPLY_PATCHES, bool(self.options.patch_files), self.apply_patches),
            Stage(StageKind.CONFIGURE, True, self.configure),
            Stage(StageKind.BUILD, True, self.build),
            Stage(StageKind.DEPENDENCY_CHECK, record.needs_dependency_check, self.check_dependencies),
            Stage(StageKind.RELOCATE, record.needs_binary_relocation, self.relocate),
            Stage(StageKind.INSTALL, True, self.install),
            Stage(StageKind.RUN_TESTS, True, self.run_tests),
        ]

    def clean(self) -> None:
        self.run_stage("distclean", self.make("distclean"), tolerant=True)
        repo = GitRepository(self.working_dir)
        if not self._ctx.dry_run and repo.is_valid:
            self._console.debug(f"{len(repo.untracked_paths())} untracked path(s) before force-clean")
        # distclean misses files left by a different checkout of the tree.
        self.run_stage("force-clean", repo.clean_command())

    def apply_patches(self) -> None:
        for patch in self.options.patch_files:
            self.run_stage("patch", ["patch", "-f", "-p1", "-i", str(patch)])

    def configure(self) -> None:
        if self.record.configure_mode is ConfigureMode.POSIX:
            self.run_stage("configure", self.configure_command())
            return
        WindowsSettings(self._ctx, self.working_dir).apply(
            self.record, self.install_dir, flambda=self._ctx.flambda
        )

    def build(self) -> None:
        self.run_stage("build", self.build_command())

    def check_dependencies(self) -> None:
        self.run_stage("dependency-check", self.make(DEPEND_TARGET))

    def relocate(self) -> None:
        for base, library in RELOCATIONS:
            self.run_stage("relocate", ["rebase", "-b", base, library], tolerant=True)

    def install(self) -> None:
        try:
            self.run_stage("install", self.make("install"))
        finally:
            self.run_stage("remove-install-dir", ["rm", "-rf", self.install_dir], tolerant=True)

    def run_tests(self) -> None:
        testsuite = self.working_dir / TESTSUITE_DIR
        if self.use_parallel_tests():
            inherited = self.env.get("PARALLEL", os.environ.get("PARALLEL", ""))
            parallel = f"{self.options.jobs_flag} {inherited}".strip()
            self.run_stage(
                "run-tests",
                self.make("--no-print-directory", "parallel"),
                cwd=testsuite,
                extra_env={"PARALLEL": parallel},
            )
        else:
            self.run_stage("run-tests", self.make("--no-print-directory", "all"), cwd=testsuite)

    # --- Driver ---

    def describe_source(self) -> None:
        if self._ctx.dry_run:
            return
        repo = GitRepository(self.working_dir)
        if not repo.is_valid:
            self._console.debug(f"{self.working_dir} is not a git work tree")
            return
        commit = repo.get_head_commit()
        if commit is not None:
            branch = repo.get_head_branch() or "detached"
            self._console.info(f"Source {commit.short_oid} ({branch}): {commit.subject}")

    def kill_stale_processes(self) -> None:
        names = self._ctx.cleanup_processes
        if names is None:
            names = DEFAULT_STALE_PROCESSES
        self._console.stage("process-cleanup")
        killed = kill_stale(self._ctx, names, env=self.env)
        self._console.debug(f"Killed {killed} stale process(es)")

    def run(self) -> PipelineState:
        """Run every enabled stage in order; the first fatal failure raises :class:`StageFailure`."""
        self._console.info(
            f"Platform {self.record.tag}: make={self.record.make_binary}, "
            f"configure={self.record.configure_mode.value}, install dir {self.install_dir}"
        )
        self.describe_source()
        if self.record.needs_process_cleanup:
            self.kill_stale_processes()

        stages = self.stages()
        self.state.planned = [stage.kind for stage in stages if stage.enabled]
        for stage in stages:
            if not stage.enabled:
                self.state.skipped.append(stage.kind)
                continue
            self._console.stage(stage.kind.value)
            self.state.enter(stage.kind)
            try:
                stage.action()
            except StageFailure:
                self.state.fail(stage.kind)
                raise
            self.state.complete(stage.kind)
        self._console.info("All stages passed")
        return self.state


__all__ = [
    "BYTECODE_TARGET",
    "DEPEND_TARGET",
    "FLAMBDA_CONFIGURE_FLAGS",
    "NATIVE_TARGET",
    "PipelineDriver",
    "PipelineState",
    "RELOCATIONS",
    "Stage",
    "StageKind",
    "StageResult",
]
