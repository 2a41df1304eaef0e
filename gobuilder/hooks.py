"""Lifecycle hook table binding the build pipeline to a service description."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Mapping
import os
import time

from .build import BuildOrchestrator
from .command_runner import CommandRunner
from .config_loader import BuildConfig, ServiceDefinition, TargetState
from .console import Console, format_elapsed
from .packager import Packager

BUILD_ALL = "build_all"
BUILD_ONE = "build_one"
BUILD_ONE_NO_PACKAGE = "build_one_no_package"

# Local invocation compiles the function but must leave packaging to the host.
LIFECYCLE_HOOKS: Mapping[str, str] = {
    "before:deploy:function:packageFunction": BUILD_ONE,
    "before:package:createDeploymentArtifacts": BUILD_ALL,
    "before:invoke:local:invoke": BUILD_ONE_NO_PACKAGE,
    "go:build:build": BUILD_ALL,
}

COMMANDS: Mapping[str, object] = {
    "go": {
        "usage": "Manage Go functions",
        "lifecycleEvents": ["go"],
        "commands": {
            "build": {
                "usage": "Build all Go functions",
                "lifecycleEvents": ["build"],
            },
        },
    },
}


class GoPlugin:
    """Builds the Go functions of a service and records the results on it."""

    def __init__(
        self,
        service: ServiceDefinition,
        *,
        command_runner: CommandRunner,
        console: Console,
        function: str | None = None,
        config: BuildConfig | None = None,
        root: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.service = service
        self.function = function
        self.console = console
        self.config = config or BuildConfig.from_mapping(
            service.go_settings,
            environ=os.environ if environ is None else environ,
            console=console,
        )
        self.orchestrator = BuildOrchestrator(
            self.config,
            command_runner=command_runner,
            packager=Packager(console),
            console=console,
            provider=service.provider,
            root=root,
        )
        operations: Dict[str, Callable[[], Dict[str, TargetState]]] = {
            BUILD_ALL: self.build_all,
            BUILD_ONE: self.build_one,
            BUILD_ONE_NO_PACKAGE: self.build_one_no_package,
        }
        self.hooks: Dict[str, Callable[[], Dict[str, TargetState]]] = {
            event: operations[operation] for event, operation in LIFECYCLE_HOOKS.items()
        }

    def run_hook(self, event: str) -> Dict[str, TargetState]:
        if event not in self.hooks:
            available = ", ".join(sorted(self.hooks))
            raise KeyError(f"Unknown lifecycle hook '{event}'. Available hooks: {available}")
        return self.hooks[event]()

    def build_all(self) -> Dict[str, TargetState]:
        targets = self.service.targets()
        started = time.perf_counter()
        try:
            states = self.orchestrator.build_all(targets)
        finally:
            # Successful siblings of a failed build are still recorded.
            for target in targets.values():
                self.service.apply(target)
        self.console.info(f"Compilation time: {format_elapsed(time.perf_counter() - started)}")
        return states

    def build_one(self) -> Dict[str, TargetState]:
        return self._build_single(package=True)

    def build_one_no_package(self) -> Dict[str, TargetState]:
        return self._build_single(package=False)

    def _build_single(self, *, package: bool) -> Dict[str, TargetState]:
        if not self.function:
            raise ValueError("A function name is required for single-function builds")
        target = self.service.target(self.function)
        started = time.perf_counter()
        state = self.orchestrator.build_one(target, package=package)
        self.service.apply(target)
        self.console.info(
            f"Compilation time ({target.name}): {format_elapsed(time.perf_counter() - started)}"
        )
        return {target.name: state}
