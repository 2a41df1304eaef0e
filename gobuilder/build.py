"""Planning and bounded-concurrency execution of Go function builds."""
from __future__ import annotations

from concurrent.futures import as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping
import threading

from .command_runner import BuildFailure, CommandRunner, compose_build_command, run_build
from .config_loader import SUPPORTED_RUNTIMES, BuildConfig, BuildTarget, ConfigError, ProviderDefaults, TargetState
from .console import Console
from .environment import build_environment
from .limiter import ConcurrencyLimiter
from .packager import Packager
from .paths import ResolvedPaths, resolve_paths


@dataclass(slots=True)
class BuildStep:
    target: BuildTarget
    architecture: str
    paths: ResolvedPaths
    env: Dict[str, str]


class BuildOrchestrator:
    def __init__(
        self,
        config: BuildConfig,
        *,
        command_runner: CommandRunner,
        packager: Packager,
        console: Console,
        provider: ProviderDefaults | None = None,
        root: Path | None = None,
    ) -> None:
        self._config = config
        self._command_runner = command_runner
        self._packager = packager
        self._console = console
        self._provider = provider or ProviderDefaults()
        self._root = Path(root) if root is not None else None

    @property
    def config(self) -> BuildConfig:
        return self._config

    def plan(self, target: BuildTarget) -> BuildStep | None:
        """Return the build step for *target*, or ``None`` if its runtime is not a Go runtime."""
        runtime = target.effective_runtime(self._provider)
        if runtime not in SUPPORTED_RUNTIMES:
            return None
        if not target.handler:
            raise ConfigError(f"Function '{target.name}' has no handler")
        architecture = target.effective_architecture(self._provider)
        return BuildStep(
            target=target,
            architecture=architecture,
            paths=resolve_paths(self._config, target, root=str(self._root) if self._root else None),
            env=build_environment(self._config, architecture),
        )

    def build_all(self, targets: Mapping[str, BuildTarget], *, package: bool = True) -> Dict[str, TargetState]:
        """Build every eligible target, at most ``config.concurrency`` at a time.

        The first failure is raised once it completes. Builds that have not
        started by then never run; running ones finish and are discarded.
        """
        steps: List[BuildStep] = []
        for target in targets.values():
            step = self.plan(target)
            if step is None:
                self._skip(target)
                continue
            steps.append(step)

        if steps:
            aborted = threading.Event()
            try:
                with ConcurrencyLimiter(self._config.concurrency) as gate:
                    futures = {gate.submit(self._compile_in_batch, step, aborted): step for step in steps}
                    try:
                        for future in as_completed(futures):
                            if future.result():
                                self._finish(futures[future], package=package)
                    except BaseException:
                        aborted.set()
                        cancelled = gate.cancel_pending()
                        if cancelled:
                            self._console.debug(f"Cancelled {cancelled} pending build(s)")
                        raise
            except BaseException:
                # The gate has drained; targets still marked BUILDING finished after the failure.
                self._discard_unfinished(steps)
                raise

        return {name: target.state for name, target in targets.items()}

    def build_one(self, target: BuildTarget, *, package: bool = True) -> TargetState:
        step = self.plan(target)
        if step is None:
            self._skip(target)
            return target.state
        self._compile(step)
        self._finish(step, package=package)
        return target.state

    def _skip(self, target: BuildTarget) -> None:
        target.state = TargetState.SKIPPED
        self._console.debug(f"Skipping function {target.name}: runtime is not a Go runtime")

    def _discard_unfinished(self, steps: List[BuildStep]) -> None:
        for step in steps:
            target = step.target
            if target.state is TargetState.BUILDING:
                target.state = TargetState.DISCARDED
                self._console.warning(f"Discarded build of function {target.name} after a failure in the batch")

    def _compile_in_batch(self, step: BuildStep, aborted: threading.Event) -> bool:
        if aborted.is_set():
            return False
        try:
            self._compile(step)
        except BaseException:
            aborted.set()
            raise
        return True

    def _compile(self, step: BuildStep) -> None:
        target = step.target
        paths = step.paths
        target.state = TargetState.BUILDING
        command = compose_build_command(self._config.cmd, paths.output_path, paths.entry_arg)
        self._console.debug(
            f"Building {target.name} ({step.architecture}) in {paths.work_dir}: "
            f"{self._command_runner.format_command(command)}"
        )
        try:
            run_build(
                self._command_runner,
                self._config.cmd,
                paths.output_path,
                paths.entry_arg,
                paths.work_dir,
                step.env,
                root=self._root,
            )
            if self._config.verify_output and not self._console.dry_run:
                self._verify_output(step)
        except BuildFailure as exc:
            target.state = TargetState.FAILED
            exc.target = target.name
            self._console.error(f"Error compiling function (cwd: {exc.work_dir}): {exc.details}")
            raise

    def _verify_output(self, step: BuildStep) -> None:
        produced = (self._root or Path.cwd()) / step.paths.binary_path
        if not produced.is_file():
            raise BuildFailure(
                step.paths.work_dir,
                f"build command succeeded but did not produce {step.paths.binary_path}",
            )

    def _finish(self, step: BuildStep, *, package: bool) -> None:
        target = step.target
        target.output_binary_path = step.paths.binary_path
        target.state = TargetState.BUILT
        self._console.info(f"Compiled function: {target.name}")
        if not package:
            return
        package_info = self._packager.package(step.paths.binary_path, root=self._root)
        if package_info is not None:
            target.package_info = package_info
            target.state = TargetState.PACKAGED
