from __future__ import annotations

from pathlib import Path

import pytest

from sandbox_core import ConfigError
from sandbox_core.config import (
    DEFAULT_IMAGE_NAME,
    DEFAULT_LOCK_TIMEOUT_SECONDS,
    SandboxConfig,
    load_optional_sandbox_config,
    load_sandbox_config,
    load_sandbox_config_dict,
)
from sandbox_core.paths import CONFIG_ROOT_ENV, SandboxPaths, default_config_root, resolve_config_root


def _sections(**overrides) -> dict:
    payload = {"paths": {}, "runtime": {}, "limits": {}, "logging": {}}
    payload.update(overrides)
    return payload


def test_sandbox_config_defaults() -> None:
    config = load_sandbox_config_dict(_sections())

    assert isinstance(config, SandboxConfig)
    assert config.paths.config_root is None
    assert config.runtime.image == DEFAULT_IMAGE_NAME
    assert config.runtime.network == "bridge"
    assert config.runtime.label == "claude-sandbox"
    assert config.runtime.lock_timeout_seconds == DEFAULT_LOCK_TIMEOUT_SECONDS
    assert config.limits.memory is None
    assert config.limits.cpus is None
    assert config.logging.values == {}
    assert config.extras == {}


def test_sandbox_config_section_parsing() -> None:
    config = load_sandbox_config_dict(
        _sections(
            paths={"config_root": " ~/sandboxes ", "cache": "/tmp/cache"},
            runtime={
                "image": "my-image",
                "lock_timeout_seconds": 2,
                "startup_wait_seconds": 0,
                "command_timeout_seconds": 30,
                "gpus": "all",
            },
            limits={"memory": "8g", "cpus": 4},
            logging={"level": "debug", "domains": {"registry": "info"}},
            custom_key="value",
        )
    )

    assert config.paths.config_root == "~/sandboxes"
    assert config.paths.values == {"cache": "/tmp/cache"}
    assert config.runtime.image == "my-image"
    assert config.runtime.lock_timeout_seconds == 2.0
    assert config.runtime.startup_wait_seconds == 0.0
    assert config.runtime.command_timeout_seconds == 30.0
    assert config.runtime.values == {"gpus": "all"}
    assert config.limits.memory == "8g"
    assert config.limits.cpus == "4"
    assert config.logging.values == {"level": "debug", "domains": {"registry": "info"}}
    assert config.extras == {"custom_key": "value"}


def test_sandbox_config_requires_all_canonical_sections() -> None:
    payload = _sections()
    del payload["limits"]

    with pytest.raises(ConfigError, match="missing required sections: limits"):
        load_sandbox_config_dict(payload)


@pytest.mark.parametrize(
    ("section", "values", "message"),
    [
        ("runtime", {"image": 3}, "runtime.image must be a string"),
        ("runtime", {"lock_timeout_seconds": "soon"}, "must be a number"),
        ("runtime", {"lock_timeout_seconds": -1}, "must not be negative"),
        ("limits", {"memory": ["4g"]}, "limits.memory must be a string"),
    ],
)
def test_sandbox_config_rejects_bad_types(section: str, values: dict, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        load_sandbox_config_dict(_sections(**{section: values}))


def test_sandbox_config_rejects_non_table_section() -> None:
    with pytest.raises(ConfigError, match="section 'runtime' must be a table"):
        load_sandbox_config_dict(_sections(runtime="docker"))


def test_load_sandbox_config_from_toml(tmp_path: Path) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text(
        "[paths]\n\n[runtime]\nimage = \"custom\"\n\n[limits]\ncpus = \"1.5\"\n\n[logging]\nlevel = \"info\"\n",
        encoding="utf-8",
    )

    config = load_sandbox_config(config_file)

    assert config.runtime.image == "custom"
    assert config.limits.cpus == "1.5"
    assert config.logging.values == {"level": "info"}


def test_invalid_toml_is_a_config_error(tmp_path: Path) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("[runtime\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_sandbox_config(config_file)


def test_optional_config_defaults_when_missing(tmp_path: Path) -> None:
    assert load_optional_sandbox_config(tmp_path / "absent.toml") == SandboxConfig()


def test_config_root_resolution_order(tmp_path: Path) -> None:
    env_root = tmp_path / "from-env"

    assert resolve_config_root({CONFIG_ROOT_ENV: str(env_root)}, configured="/ignored") == env_root
    assert resolve_config_root({}, configured=str(tmp_path / "configured")) == tmp_path / "configured"
    assert resolve_config_root({CONFIG_ROOT_ENV: "  "}) == default_config_root()
    assert default_config_root(tmp_path) == tmp_path / ".claude-sandbox"


def test_sandbox_paths_layout(tmp_path: Path) -> None:
    paths = SandboxPaths(tmp_path)

    assert paths.folder_registry_file == tmp_path / "folder_registry.json"
    assert paths.named_sessions_file == tmp_path / "named_sessions.json"
    assert paths.last_session_file == tmp_path / "last_session"
    assert paths.containers_dir == tmp_path / "containers"
    assert paths.config_file == tmp_path / "config.toml"
    assert paths.registry_files() == (
        paths.folder_registry_file,
        paths.named_sessions_file,
        paths.last_session_file,
    )
