from __future__ import annotations

from pathlib import Path
import io
import tempfile
import unittest
import zipfile
from contextlib import redirect_stdout

from gobuilder.command_runner import CommandResult, RecordingCommandRunner
from gobuilder.config_loader import ServiceDefinition, TargetState
from gobuilder.console import Console
from gobuilder.hooks import COMMANDS, LIFECYCLE_HOOKS, GoPlugin


def _service(**custom) -> ServiceDefinition:
    return ServiceDefinition.from_mapping(
        {
            "provider": {"name": "aws", "runtime": "provided.al2"},
            "custom": {"go": custom},
            "functions": {
                "testFunc1": {"handler": "functions/func1/main.go"},
                "legacy": {"handler": "handler.js", "runtime": "nodejs18.x"},
            },
        }
    )


class GoPluginTests(unittest.TestCase):
    def setUp(self) -> None:
        self.runner = RecordingCommandRunner()
        self.console = Console(level="none", dry_run=True)

    def _plugin(self, service: ServiceDefinition, **kwargs) -> GoPlugin:
        kwargs.setdefault("environ", {})
        return GoPlugin(service, command_runner=self.runner, console=self.console, **kwargs)

    def test_hook_table(self) -> None:
        self.assertEqual(
            dict(LIFECYCLE_HOOKS),
            {
                "before:deploy:function:packageFunction": "build_one",
                "before:package:createDeploymentArtifacts": "build_all",
                "before:invoke:local:invoke": "build_one_no_package",
                "go:build:build": "build_all",
            },
        )
        self.assertIn("build", COMMANDS["go"]["commands"])  # type: ignore[index]

        plugin = self._plugin(_service())
        self.assertEqual(set(plugin.hooks), set(LIFECYCLE_HOOKS))

    def test_package_hook_in_dry_run_records_binary_only(self) -> None:
        service = _service()
        states = self._plugin(service).run_hook("before:package:createDeploymentArtifacts")

        self.assertEqual(states, {"testFunc1": TargetState.BUILT, "legacy": TargetState.SKIPPED})
        self.assertEqual(service.functions["testFunc1"], {"handler": ".bin/testFunc1"})
        self.assertEqual(service.functions["legacy"], {"handler": "handler.js", "runtime": "nodejs18.x"})
        self.assertEqual(len(self.runner.commands), 1)

    def test_deploy_function_hook_builds_one(self) -> None:
        service = _service()
        states = self._plugin(service, function="testFunc1").run_hook("before:deploy:function:packageFunction")

        self.assertEqual(states, {"testFunc1": TargetState.BUILT})
        self.assertNotIn("package", service.functions["testFunc1"])
        self.assertEqual(
            self.runner.commands[0].command,
            ["go", "build", "-ldflags=-s -w", "-o", ".bin/testFunc1", "functions/func1/main.go"],
        )

    def test_invoke_local_hook_skips_packaging(self) -> None:
        service = _service()
        states = self._plugin(service, function="testFunc1").run_hook("before:invoke:local:invoke")

        self.assertEqual(states, {"testFunc1": TargetState.BUILT})
        self.assertEqual(service.functions["testFunc1"], {"handler": ".bin/testFunc1"})

    def test_single_function_hooks_require_a_function(self) -> None:
        with self.assertRaises(ValueError):
            self._plugin(_service()).build_one()

    def test_unknown_function_and_hook(self) -> None:
        with self.assertRaises(KeyError):
            self._plugin(_service(), function="missing").build_one()
        with self.assertRaises(KeyError):
            self._plugin(_service()).run_hook("after:deploy:deploy")

    def test_settings_come_from_custom_block_and_environment(self) -> None:
        plugin = self._plugin(_service(monorepo=True, concurrency=2))
        self.assertTrue(plugin.config.monorepo)
        self.assertEqual(plugin.config.concurrency, 2)

        plugin = self._plugin(_service(concurrency=2), environ={"SP_GO_CONCURRENCY": "10"})
        self.assertEqual(plugin.config.concurrency, 10)

    def test_reports_compiled_functions_and_timing(self) -> None:
        self.console = Console(level="info", dry_run=True)
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            self._plugin(_service()).build_all()
            self._plugin(_service(), function="testFunc1").build_one_no_package()

        output = buffer.getvalue()
        self.assertIn("GoPlugin: Compiled function: testFunc1", output)
        self.assertIn("GoPlugin: Compilation time: ", output)
        self.assertIn("GoPlugin: Compilation time (testFunc1): ", output)

    def test_image_function_without_handler_does_not_block_the_batch(self) -> None:
        service = ServiceDefinition.from_mapping(
            {
                "provider": {"name": "aws"},
                "functions": {
                    "api": {"handler": "cmd/api", "runtime": "provided.al2"},
                    "imageFn": {"image": "repo/image:latest", "runtime": "python3.12"},
                },
            }
        )

        states = self._plugin(service).build_all()

        self.assertEqual(states, {"api": TargetState.BUILT, "imageFn": TargetState.SKIPPED})
        self.assertEqual([record.command[-1] for record in self.runner.commands], ["cmd/api"])
        self.assertEqual(service.functions["imageFn"], {"image": "repo/image:latest", "runtime": "python3.12"})


class BinaryWritingRunner(RecordingCommandRunner):
    def run(self, command, *, cwd=None, env=None) -> CommandResult:
        result = super().run(command, cwd=cwd, env=env)
        output = Path(cwd or ".") / command[list(command).index("-o") + 1]
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(b"binary")
        return result


class PackagingHookTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.root = Path(self.temp_dir.name)

    def _plugin(self, service: ServiceDefinition, **kwargs) -> GoPlugin:
        return GoPlugin(
            service,
            command_runner=BinaryWritingRunner(),
            console=Console(level="none"),
            root=self.root,
            environ={},
            **kwargs,
        )

    def test_package_hook_writes_back_archives(self) -> None:
        service = _service()

        states = self._plugin(service).run_hook("before:package:createDeploymentArtifacts")

        self.assertEqual(states, {"testFunc1": TargetState.PACKAGED, "legacy": TargetState.SKIPPED})
        self.assertEqual(
            service.functions["testFunc1"],
            {
                "handler": ".bin/testFunc1",
                "package": {"individually": True, "artifact": ".bin/testFunc1.zip"},
            },
        )
        with zipfile.ZipFile(self.root / ".bin" / "testFunc1.zip") as archive:
            self.assertEqual(archive.namelist(), ["bootstrap"])

    def test_deploy_function_hook_packages_one(self) -> None:
        service = _service()

        states = self._plugin(service, function="testFunc1").run_hook("before:deploy:function:packageFunction")

        self.assertEqual(states, {"testFunc1": TargetState.PACKAGED})
        self.assertEqual(service.functions["testFunc1"]["package"]["artifact"], ".bin/testFunc1.zip")


if __name__ == "__main__":
    unittest.main()
