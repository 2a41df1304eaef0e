"""Command line interface for the Go function builder."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable
import json
import sys

from .command_runner import BuildFailure, RecordingCommandRunner, SubprocessCommandRunner
from .config_loader import BuildConfig, ConfigError, ServiceDefinition, find_service_file
from .console import Console
from .hooks import BUILD_ALL, BUILD_ONE, BUILD_ONE_NO_PACKAGE, LIFECYCLE_HOOKS, GoPlugin
from .packager import PackagingFailure


def _add_common_arguments(parser: ArgumentParser) -> None:
    parser.add_argument("--config", help="Service file (default: serverless.{yml,yaml,json,toml} in the working directory)")
    parser.add_argument("--dry-run", action="store_true", help="Print build commands without executing them")
    parser.add_argument("--log-level", choices=list(Console.LEVELS), default="info", help="Console verbosity")
    parser.add_argument("--concurrency", help="Maximum number of concurrent builds")
    parser.add_argument("--show-results", action="store_true", help="Print the updated function table as JSON")


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="gobuilder", description="Build and package Go functions of a service")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Build all Go functions, or a single one")
    build_parser.add_argument("--function", help="Build only this function")
    build_parser.add_argument("--no-package", action="store_true", help="Skip the deployment archive (requires --function)")
    _add_common_arguments(build_parser)

    hook_parser = subparsers.add_parser("hook", help="Run a lifecycle hook by name")
    hook_parser.add_argument("event", choices=sorted(LIFECYCLE_HOOKS), help="Lifecycle event")
    hook_parser.add_argument("--function", help="Function name for single-function hooks")
    _add_common_arguments(hook_parser)

    subparsers.add_parser("hooks", help="List registered lifecycle hooks")

    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    workspace = Path.cwd()

    if args.command == "hooks":
        return _handle_list_hooks()
    if args.command == "build":
        if args.no_package and not args.function:
            print("error: --no-package requires --function", file=sys.stderr)
            return 2
        if args.function:
            operation = BUILD_ONE_NO_PACKAGE if args.no_package else BUILD_ONE
        else:
            operation = BUILD_ALL
        return _run(args, workspace, operation=operation)
    if args.command == "hook":
        return _run(args, workspace, event=args.event)
    raise ValueError(f"Unknown command: {args.command}")


def _handle_list_hooks() -> int:
    for event, operation in LIFECYCLE_HOOKS.items():
        print(f"{event} -> {operation}")
    return 0


def _run(args: Namespace, workspace: Path, *, operation: str | None = None, event: str | None = None) -> int:
    console = Console(level=args.log_level, dry_run=args.dry_run)
    runner: SubprocessCommandRunner | RecordingCommandRunner
    if args.dry_run:
        runner = RecordingCommandRunner()
    else:
        runner = SubprocessCommandRunner()

    try:
        service_path = Path(args.config) if args.config else find_service_file(workspace)
        service = ServiceDefinition.from_file(service_path)
        config = BuildConfig.from_mapping(service.go_settings, console=console)
        if args.concurrency is not None:
            config = config.with_concurrency(args.concurrency, console=console)
        plugin = GoPlugin(
            service,
            command_runner=runner,
            console=console,
            function=args.function,
            config=config,
        )
        if event is not None:
            plugin.run_hook(event)
        elif operation == BUILD_ALL:
            plugin.build_all()
        elif operation == BUILD_ONE:
            plugin.build_one()
        else:
            plugin.build_one_no_package()
    except (BuildFailure, PackagingFailure, ConfigError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except (KeyError, ValueError) as exc:
        print(f"error: {exc.args[0] if exc.args else exc}", file=sys.stderr)
        return 2
    finally:
        if isinstance(runner, RecordingCommandRunner):
            for line in runner.iter_formatted():
                print(line)

    if args.show_results:
        print(json.dumps(service.functions, indent=2, sort_keys=True, default=str))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
