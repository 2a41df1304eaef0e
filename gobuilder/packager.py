"""Deployment archive creation for compiled function binaries."""
from __future__ import annotations

from pathlib import Path
import zipfile

from .config_loader import PackageInfo
from .console import Console

ARCHIVE_SUFFIX = ".zip"
# Name the provided.al2 runtime executes on cold start.
ENTRY_NAME = "bootstrap"
ENTRY_MODE = 0o755


class PackagingFailure(RuntimeError):
    """Raised when a binary cannot be read or its archive cannot be written."""

    def __init__(self, binary_path: str, details: str):
        super().__init__(f"error packaging function binary '{binary_path}': {details}")
        self.binary_path = binary_path


class Packager:
    """Write single-entry zip archives. Not safe for concurrent use."""

    def __init__(self, console: Console) -> None:
        self._console = console

    @staticmethod
    def archive_path_for(binary_path: str) -> str:
        return binary_path + ARCHIVE_SUFFIX

    def package(self, binary_path: str, *, root: Path | None = None) -> PackageInfo | None:
        """Archive *binary_path* next to itself and describe the artifact.

        Relative paths are resolved against *root*; the returned artifact path
        keeps the same form as *binary_path*. An existing archive is replaced.
        Returns ``None`` in dry-run mode, where no archive is written.
        """
        archive_path = self.archive_path_for(binary_path)
        base = Path(root) if root is not None else Path()
        if self._console.dry_run:
            self._console.dry(f"Would package {binary_path} to {archive_path}")
            return None

        try:
            payload = (base / binary_path).read_bytes()
            entry = zipfile.ZipInfo(ENTRY_NAME)
            entry.create_system = 3  # unix, so external_attr carries the mode
            entry.external_attr = (0o100000 | ENTRY_MODE) << 16
            entry.compress_type = zipfile.ZIP_DEFLATED
            with zipfile.ZipFile(base / archive_path, mode="w", allowZip64=True) as archive:
                archive.writestr(entry, payload)
        except (OSError, zipfile.BadZipFile) as exc:
            raise PackagingFailure(binary_path, str(exc)) from exc

        self._console.debug(f"Packaged {binary_path} into {archive_path}")
        return PackageInfo(artifact=archive_path)
