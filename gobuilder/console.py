"""Console output for the Go function builder."""
from __future__ import annotations

import sys

LOG_PREFIX = "GoPlugin"


class Console:
    """Level-filtered console output handler.

    Levels: none < error < warning < info < debug
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "warning": 2,
        "info": 3,
        "debug": 4,
    }

    def __init__(self, level: str = "info", dry_run: bool = False):
        if level not in self.LEVELS:
            raise ValueError(f"Unknown console level '{level}'. Choose from: {', '.join(self.LEVELS)}")
        self.level_name = level
        self.level = self.LEVELS[level]
        self.dry_run = dry_run

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            print(f"{LOG_PREFIX}: {message}")

    def warning(self, message: str) -> None:
        if self.level >= self.LEVELS["warning"]:
            print(f"{LOG_PREFIX} [WARNING]: {message}", file=sys.stderr)

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            print(f"{LOG_PREFIX} [ERROR]: {message}", file=sys.stderr)

    def dry(self, message: str) -> None:
        if self.dry_run:
            print(f"[DRY] {message}")

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            print(f"{LOG_PREFIX} [DEBUG]: {message}")


def format_elapsed(seconds: float) -> str:
    """Render an elapsed duration the way build timings are reported."""
    if seconds < 1e-3:
        return f"{seconds * 1e6:.0f} μs"
    if seconds < 1:
        return f"{seconds * 1e3:.0f} ms"
    if seconds < 60:
        return f"{seconds:.2f} s"
    minutes, rest = divmod(seconds, 60)
    return f"{int(minutes)} min {rest:.0f} s"
