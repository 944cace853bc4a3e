from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python < 3.11
    import tomli as tomllib

from sandbox_core.errors import ConfigError


_SECTION_KEYS = ("paths", "runtime", "limits", "logging")
DEFAULT_IMAGE_NAME = "claude-code-sandbox"
DEFAULT_NETWORK = "bridge"
DEFAULT_CONTAINER_LABEL = "claude-sandbox"
DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0
DEFAULT_STARTUP_WAIT_SECONDS = 0.5
DEFAULT_COMMAND_TIMEOUT_SECONDS = 120.0


def _ensure_dict(value: object, *, label: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{label} must be a table/object.")
    return dict(value)


def _ensure_optional_str(value: object, *, label: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{label} must be a string.")
    stripped = value.strip()
    return stripped or None


def _ensure_str(value: object, *, label: str, default: str) -> str:
    return _ensure_optional_str(value, label=label) or default


def _ensure_non_negative_float(value: object, *, label: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{label} must be a number.")
    if value < 0:
        raise ConfigError(f"{label} must not be negative.")
    return float(value)


def _ensure_limit_str(value: object, *, label: str) -> str | None:
    # TOML users write cpus = 2 as often as cpus = "2".
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return _ensure_optional_str(value, label=label)


@dataclass(frozen=True)
class PathsConfig:
    config_root: str | None = None
    values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RuntimeConfig:
    image: str = DEFAULT_IMAGE_NAME
    network: str = DEFAULT_NETWORK
    label: str = DEFAULT_CONTAINER_LABEL
    lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS
    startup_wait_seconds: float = DEFAULT_STARTUP_WAIT_SECONDS
    command_timeout_seconds: float = DEFAULT_COMMAND_TIMEOUT_SECONDS
    values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LimitsConfig:
    memory: str | None = None
    cpus: str | None = None
    values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LoggingConfig:
    values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SandboxConfig:
    paths: PathsConfig = field(default_factory=PathsConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | dict[str, Any]) -> "SandboxConfig":
        if not isinstance(payload, Mapping):
            raise ConfigError("Config payload root must be a table/object.")

        raw = dict(payload)
        missing_sections = [section for section in _SECTION_KEYS if section not in raw]
        if missing_sections:
            raise ConfigError(
                "Config payload missing required sections: " + ", ".join(missing_sections)
            )

        logging = LoggingConfig(values=_ensure_dict(raw.get("logging"), label="section 'logging'"))
        extras = {k: v for k, v in raw.items() if k not in _SECTION_KEYS}
        return cls(
            paths=_parse_paths(raw),
            runtime=_parse_runtime(raw),
            limits=_parse_limits(raw),
            logging=logging,
            extras=extras,
        )

    @classmethod
    def from_toml_path(cls, path: str | Path) -> "SandboxConfig":
        config_path = Path(path)
        try:
            raw = config_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Unable to read config file {config_path}: {exc}") from exc
        try:
            parsed = tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {config_path}: {exc}") from exc
        if not isinstance(parsed, dict):
            raise ConfigError("Config payload root must be a table/object.")
        return cls.from_dict(parsed)


def _parse_paths(raw_root: dict[str, Any]) -> PathsConfig:
    paths_raw = _ensure_dict(raw_root.get("paths"), label="section 'paths'")
    config_root = _ensure_optional_str(paths_raw.pop("config_root", None), label="paths.config_root")
    return PathsConfig(config_root=config_root, values=paths_raw)


def _parse_runtime(raw_root: dict[str, Any]) -> RuntimeConfig:
    runtime_raw = _ensure_dict(raw_root.get("runtime"), label="section 'runtime'")
    return RuntimeConfig(
        image=_ensure_str(runtime_raw.pop("image", None), label="runtime.image", default=DEFAULT_IMAGE_NAME),
        network=_ensure_str(runtime_raw.pop("network", None), label="runtime.network", default=DEFAULT_NETWORK),
        label=_ensure_str(runtime_raw.pop("label", None), label="runtime.label", default=DEFAULT_CONTAINER_LABEL),
        lock_timeout_seconds=_ensure_non_negative_float(
            runtime_raw.pop("lock_timeout_seconds", None),
            label="runtime.lock_timeout_seconds",
            default=DEFAULT_LOCK_TIMEOUT_SECONDS,
        ),
        startup_wait_seconds=_ensure_non_negative_float(
            runtime_raw.pop("startup_wait_seconds", None),
            label="runtime.startup_wait_seconds",
            default=DEFAULT_STARTUP_WAIT_SECONDS,
        ),
        command_timeout_seconds=_ensure_non_negative_float(
            runtime_raw.pop("command_timeout_seconds", None),
            label="runtime.command_timeout_seconds",
            default=DEFAULT_COMMAND_TIMEOUT_SECONDS,
        ),
        values=runtime_raw,
    )


def _parse_limits(raw_root: dict[str, Any]) -> LimitsConfig:
    limits_raw = _ensure_dict(raw_root.get("limits"), label="section 'limits'")
    return LimitsConfig(
        memory=_ensure_limit_str(limits_raw.pop("memory", None), label="limits.memory"),
        cpus=_ensure_limit_str(limits_raw.pop("cpus", None), label="limits.cpus"),
        values=limits_raw,
    )


def load_sandbox_config(path: str | Path) -> SandboxConfig:
    return SandboxConfig.from_toml_path(path)


def load_sandbox_config_dict(payload: Mapping[str, Any] | dict[str, Any]) -> SandboxConfig:
    return SandboxConfig.from_dict(payload)


def load_optional_sandbox_config(path: str | Path) -> SandboxConfig:
    config_path = Path(path)
    if not config_path.exists():
        return SandboxConfig()
    return load_sandbox_config(config_path)


__all__ = [
    "DEFAULT_COMMAND_TIMEOUT_SECONDS",
    "DEFAULT_CONTAINER_LABEL",
    "DEFAULT_IMAGE_NAME",
    "DEFAULT_LOCK_TIMEOUT_SECONDS",
    "DEFAULT_NETWORK",
    "DEFAULT_STARTUP_WAIT_SECONDS",
    "LimitsConfig",
    "LoggingConfig",
    "PathsConfig",
    "RuntimeConfig",
    "SandboxConfig",
    "load_optional_sandbox_config",
    "load_sandbox_config",
    "load_sandbox_config_dict",
]
