"""Build and package the Go functions of a serverless service."""
from __future__ import annotations

from .build import BuildOrchestrator
from .cli import main
from .command_runner import BuildFailure
from .config_loader import BuildConfig, BuildTarget, ServiceDefinition
from .packager import PackagingFailure

__all__ = [
    "BuildConfig",
    "BuildFailure",
    "BuildOrchestrator",
    "BuildTarget",
    "PackagingFailure",
    "ServiceDefinition",
    "main",
]
