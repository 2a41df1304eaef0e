"""Per-target environment for the Go compiler."""
from __future__ import annotations

from typing import Dict

from .config_loader import BuildConfig

ARCH_VARIABLE = "GOARCH"
ARM64 = "arm64"


def build_environment(config: BuildConfig, architecture: str | None) -> Dict[str, str]:
    """Return a fresh environment mapping for a build targeting *architecture*.

    Only ``arm64`` selects an architecture explicitly; any other value leaves the
    compiler on its default (amd64 for the standard command).
    """
    env = {str(key): str(value) for key, value in config.env.items()}
    if architecture == ARM64:
        env[ARCH_VARIABLE] = ARM64
    return env
