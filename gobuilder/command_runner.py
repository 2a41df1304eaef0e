"""Execution of Go build commands, with a recording variant for dry runs."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence
import os
import shlex
import subprocess
import threading


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """Raised when a command exits with a nonzero status."""

    def __init__(self, result: CommandResult):
        message = f"Command failed with exit code {result.returncode}: {' '.join(map(shlex.quote, result.command))}"
        details = (result.stderr or result.stdout or "").strip()
        if details:
            message = f"{message}\n{details}"
        super().__init__(message)
        self.result = result


class BuildFailure(RuntimeError):
    """Raised when compiling a function fails; carries the working directory."""

    def __init__(self, work_dir: str, details: str, *, target: str | None = None):
        super().__init__(f"error compiling function (cwd: {work_dir}): {details}")
        self.work_dir = work_dir
        self.details = details
        self.target = target


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return " ".join(shlex.quote(part) for part in command)


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`."""

    @staticmethod
    def _merge_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
        if env is None:
            return None
        merged = os.environ.copy()
        merged.update(env)
        return merged

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        process = subprocess.run(
            list(command),
            cwd=str(cwd) if cwd else None,
            env=self._merge_environment(env),
            capture_output=True,
            text=True,
            check=False,
        )
        result = CommandResult(
            command=command,
            returncode=process.returncode,
            stdout=process.stdout,
            stderr=process.stderr,
        )
        if result.returncode != 0:
            raise CommandError(result)
        return result


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str]


class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them."""

    def __init__(self) -> None:
        self.commands: List[RecordedCommand] = []
        self._lock = threading.Lock()

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        entry = RecordedCommand(
            command=list(command),
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env else {},
        )
        with self._lock:
            self.commands.append(entry)
        return CommandResult(command=command, returncode=0, stdout="", stderr="")

    def iter_formatted(self) -> Iterable[str]:
        for record in list(self.commands):
            parts: List[str] = ["[dry-run]"]
            if record.cwd:
                parts.append(f"(cwd={record.cwd})")
            parts.append(self.format_command(record.command))
            yield " ".join(parts)


def compose_build_command(template: str, output_path: str, entry_arg: str) -> List[str]:
    """Append the output flag and entry argument to *template*, in that order."""
    return [*shlex.split(template), "-o", output_path, entry_arg]


def run_build(
    runner: CommandRunner,
    template: str,
    output_path: str,
    entry_arg: str,
    work_dir: str,
    env: Mapping[str, str],
    *,
    root: Path | None = None,
) -> CommandResult:
    """Run one Go build, translating any failure into :class:`BuildFailure`.

    *work_dir* is relative to *root* (the process working directory by default).
    """
    command = compose_build_command(template, output_path, entry_arg)
    cwd = Path(root, work_dir) if root is not None else Path(work_dir)
    try:
        return runner.run(command, cwd=cwd, env=env)
    except CommandError as exc:
        raise BuildFailure(work_dir, str(exc)) from exc
    except OSError as exc:
        raise BuildFailure(work_dir, f"unable to start '{command[0]}': {exc}") from exc
