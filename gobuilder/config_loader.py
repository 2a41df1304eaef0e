"""Configuration loading: build settings, provider defaults and function targets."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping
import json
import os
import tomllib

import yaml

from .console import Console


ConfigLoader = Callable[[Any], Mapping[str, Any]]

_FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".yml": lambda stream: yaml.safe_load(stream),
    ".yaml": lambda stream: yaml.safe_load(stream),
    ".json": lambda stream: json.load(stream),
    ".toml": lambda stream: tomllib.load(stream),
}

SERVICE_FILE_NAMES = ("serverless.yml", "serverless.yaml", "serverless.json", "serverless.toml")

# Runtimes that are allowed to run Go functions.
SUPPORTED_RUNTIMES = frozenset({"provided.al2"})

DEFAULT_ARCHITECTURE = "x86_64"
CONCURRENCY_ENV_VAR = "SP_GO_CONCURRENCY"
DEFAULT_CONCURRENCY = 5

DEFAULT_ENVIRONMENT: Mapping[str, str] = MappingProxyType({"CGO_ENABLED": "0", "GOOS": "linux"})
DEFAULT_COMMAND = 'go build -ldflags="-s -w"'


class ConfigError(RuntimeError):
    """Raised when a service description cannot be loaded."""


def _load_config_file(path: Path) -> Mapping[str, Any]:
    suffix = path.suffix.lower()
    loader = _FILE_LOADERS.get(suffix)
    if loader is None:
        raise ConfigError(f"Unsupported configuration file extension: {suffix}")
    mode = "rb" if suffix == ".toml" else "r"
    kwargs: Dict[str, Any] = {}
    if mode == "r":
        kwargs["encoding"] = "utf-8"
    try:
        with path.open(mode, **kwargs) as handle:
            data = loader(handle)
    except (yaml.YAMLError, json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Unable to parse '{path}': {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Configuration file '{path}' must contain a mapping at the root")
    return data


def find_service_file(directory: Path) -> Path:
    for name in SERVICE_FILE_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    raise ConfigError(f"No service file found in {directory} (looked for {', '.join(SERVICE_FILE_NAMES)})")


def _parse_concurrency(value: Any, *, source: str, console: Console | None) -> int | None:
    try:
        parsed = int(str(value).strip())
    except ValueError:
        parsed = None
    if parsed is None or parsed < 1:
        if console is not None:
            console.warning(
                f"Ignoring invalid concurrency {value!r} from {source}; using default {DEFAULT_CONCURRENCY}"
            )
        return None
    return parsed


def _as_bool(value: Any, *, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    raise ConfigError(f"{field_name} must be a boolean")


def _env_value(value: Any) -> str:
    # YAML reads `on` and `true` as booleans; Go expects lowercase words.
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True, slots=True)
class BuildConfig:
    """Settings for one build batch, derived from defaults and ``custom.go``."""

    base_dir: str = "."
    bin_dir: str = ".bin"
    env: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_ENVIRONMENT))
    cmd: str = DEFAULT_COMMAND
    monorepo: bool = False
    concurrency: int = DEFAULT_CONCURRENCY
    verify_output: bool = False

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if not self.cmd.strip():
            raise ValueError("cmd must not be empty")
        # Freeze a string-coerced copy so targets never share a mutable mapping.
        object.__setattr__(self, "env", MappingProxyType({str(k): _env_value(v) for k, v in self.env.items()}))

    @classmethod
    def from_mapping(
        cls,
        overrides: Mapping[str, Any] | None,
        *,
        environ: Mapping[str, str] | None = None,
        console: Console | None = None,
    ) -> "BuildConfig":
        data = overrides or {}
        if not isinstance(data, Mapping):
            raise ConfigError("custom.go must be a mapping")
        environ = os.environ if environ is None else environ

        env = dict(DEFAULT_ENVIRONMENT)
        env_section = data.get("env")
        if env_section is not None:
            if not isinstance(env_section, Mapping):
                raise ConfigError("custom.go.env must be a mapping")
            for key, value in env_section.items():
                env[str(key)] = _env_value(value)

        concurrency = DEFAULT_CONCURRENCY
        if "concurrency" in data:
            parsed = _parse_concurrency(data["concurrency"], source="custom.go.concurrency", console=console)
            if parsed is not None:
                concurrency = parsed
        if CONCURRENCY_ENV_VAR in environ:
            parsed = _parse_concurrency(environ[CONCURRENCY_ENV_VAR], source=CONCURRENCY_ENV_VAR, console=console)
            concurrency = parsed if parsed is not None else DEFAULT_CONCURRENCY

        return cls(
            base_dir=str(data.get("baseDir", ".")),
            bin_dir=str(data.get("binDir", ".bin")),
            env=env,
            cmd=str(data.get("cmd", DEFAULT_COMMAND)),
            monorepo=_as_bool(data.get("monorepo", False), field_name="custom.go.monorepo"),
            concurrency=concurrency,
            verify_output=_as_bool(data.get("verifyOutput", False), field_name="custom.go.verifyOutput"),
        )

    def with_concurrency(self, value: Any, *, console: Console | None = None) -> "BuildConfig":
        parsed = _parse_concurrency(value, source="command line", console=console)
        if parsed is None:
            return self
        return BuildConfig(
            base_dir=self.base_dir,
            bin_dir=self.bin_dir,
            env=self.env,
            cmd=self.cmd,
            monorepo=self.monorepo,
            concurrency=parsed,
            verify_output=self.verify_output,
        )


@dataclass(frozen=True, slots=True)
class ProviderDefaults:
    runtime: str | None = None
    architecture: str = DEFAULT_ARCHITECTURE

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ProviderDefaults":
        data = data or {}
        runtime = data.get("runtime")
        architecture = data.get("architecture")
        return cls(
            runtime=str(runtime) if runtime else None,
            architecture=str(architecture) if architecture else DEFAULT_ARCHITECTURE,
        )


class TargetState(str, Enum):
    PENDING = "pending"
    SKIPPED = "skipped"
    BUILDING = "building"
    FAILED = "failed"
    BUILT = "built"
    PACKAGED = "packaged"
    # Finished after another build in the same batch failed.
    DISCARDED = "discarded"


@dataclass(slots=True)
class PackageInfo:
    artifact: str
    individually: bool = True

    def to_mapping(self) -> Dict[str, Any]:
        return {"individually": self.individually, "artifact": self.artifact}


@dataclass(slots=True)
class BuildTarget:
    """One deployable function. Only the orchestrator writes the output fields.

    ``handler`` is ``None`` for image-based functions, which never reach a Go build.
    """

    name: str
    handler: str | None = None
    runtime: str | None = None
    architecture: str | None = None
    output_binary_path: str | None = None
    package_info: PackageInfo | None = None
    state: TargetState = TargetState.PENDING

    def effective_runtime(self, provider: ProviderDefaults) -> str | None:
        return self.runtime or provider.runtime

    def effective_architecture(self, provider: ProviderDefaults) -> str:
        return self.architecture or provider.architecture

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "BuildTarget":
        if not isinstance(data, Mapping):
            raise ConfigError(f"Function '{name}' must be a mapping")
        handler = data.get("handler")
        runtime = data.get("runtime")
        architecture = data.get("architecture")
        return cls(
            name=str(name),
            handler=str(handler) if handler else None,
            runtime=str(runtime) if runtime else None,
            architecture=str(architecture) if architecture else None,
        )


@dataclass(slots=True)
class ServiceDefinition:
    """The parts of a service description the builder reads and writes back."""

    functions: Dict[str, Dict[str, Any]]
    provider: ProviderDefaults
    go_settings: Mapping[str, Any] = field(default_factory=dict)
    path: Path | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, path: Path | None = None) -> "ServiceDefinition":
        functions_section = data.get("functions") or {}
        if not isinstance(functions_section, Mapping):
            raise ConfigError("'functions' must be a mapping of function name to definition")
        functions: Dict[str, Dict[str, Any]] = {}
        for name, definition in functions_section.items():
            if not isinstance(definition, Mapping):
                raise ConfigError(f"Function '{name}' must be a mapping")
            functions[str(name)] = dict(definition)

        provider_section = data.get("provider")
        if provider_section is not None and not isinstance(provider_section, Mapping):
            raise ConfigError("'provider' must be a mapping")

        custom = data.get("custom") or {}
        go_settings = custom.get("go") if isinstance(custom, Mapping) else None
        return cls(
            functions=functions,
            provider=ProviderDefaults.from_mapping(provider_section),
            go_settings=go_settings or {},
            path=path,
        )

    @classmethod
    def from_file(cls, path: Path) -> "ServiceDefinition":
        return cls.from_mapping(_load_config_file(path), path=path)

    def function_names(self) -> Iterable[str]:
        return self.functions.keys()

    def targets(self) -> Dict[str, BuildTarget]:
        return {name: BuildTarget.from_mapping(name, data) for name, data in self.functions.items()}

    def target(self, name: str) -> BuildTarget:
        if name not in self.functions:
            available = ", ".join(sorted(self.functions)) or "<none>"
            raise KeyError(f"Function '{name}' not found. Available functions: {available}")
        return BuildTarget.from_mapping(name, self.functions[name])

    def apply(self, target: BuildTarget) -> None:
        """Write the target's build results back onto its function definition."""
        if target.output_binary_path is None:
            return
        definition = self.functions[target.name]
        definition["handler"] = target.output_binary_path
        if target.package_info is not None:
            definition["package"] = target.package_info.to_mapping()
