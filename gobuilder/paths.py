"""Working directory, entry argument and output path calculation per target."""
from __future__ import annotations

from dataclasses import dataclass
import os

from .config_loader import BuildConfig, BuildTarget

SOURCE_SUFFIX = ".go"


@dataclass(frozen=True, slots=True)
class ResolvedPaths:
    """Paths for one build.

    ``output_path`` is relative to ``work_dir`` because ``go build -o`` resolves
    against the process working directory. ``binary_path`` is the same file
    relative to the invocation directory and is what gets recorded on the target.
    """

    work_dir: str
    entry_arg: str
    output_path: str
    binary_path: str


def _posix(path: str) -> str:
    return path.replace(os.sep, "/") if os.sep != "/" else path


def binary_path_for(config: BuildConfig, name: str) -> str:
    return _posix(os.path.normpath(os.path.join(config.bin_dir, name)))


def resolve_paths(config: BuildConfig, target: BuildTarget, *, root: str | None = None) -> ResolvedPaths:
    """Compute build paths for *target*.

    *root* is the invocation directory that relative configuration paths are
    anchored to; it defaults to the process working directory.
    """
    root = os.path.abspath(root or os.getcwd())
    abs_base = os.path.normpath(os.path.join(root, config.base_dir))
    abs_binary = os.path.normpath(os.path.join(root, config.bin_dir, target.name))

    if not config.monorepo:
        return ResolvedPaths(
            work_dir=config.base_dir,
            entry_arg=target.handler,
            output_path=_posix(os.path.relpath(abs_binary, abs_base)),
            binary_path=binary_path_for(config, target.name),
        )

    abs_handler = os.path.normpath(os.path.join(root, target.handler))
    if target.handler.endswith(SOURCE_SUFFIX):
        abs_work_dir = os.path.dirname(abs_handler)
        entry_arg = os.path.basename(abs_handler)
    else:
        abs_work_dir = abs_handler
        entry_arg = "."

    return ResolvedPaths(
        work_dir=_posix(os.path.relpath(abs_work_dir, root)),
        entry_arg=entry_arg,
        output_path=_posix(os.path.relpath(abs_binary, abs_work_dir)),
        binary_path=binary_path_for(config, target.name),
    )
