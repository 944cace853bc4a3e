from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

CONFIG_ROOT_ENV = "CLAUDE_SANDBOX_CONFIG"
CONFIG_FILE_NAME = "config.toml"
FOLDER_REGISTRY_FILE_NAME = "folder_registry.json"
NAMED_SESSIONS_FILE_NAME = "named_sessions.json"
LAST_SESSION_FILE_NAME = "last_session"
REGISTRY_LOCK_FILE_NAME = ".registry.lock"
CONTAINERS_DIR_NAME = "containers"
DOCKERFILE_NAME = "Dockerfile"


@dataclass(frozen=True)
class SandboxPaths:
    config_root: Path

    @property
    def config_file(self) -> Path:
        return self.config_root / CONFIG_FILE_NAME

    @property
    def folder_registry_file(self) -> Path:
        return self.config_root / FOLDER_REGISTRY_FILE_NAME

    @property
    def named_sessions_file(self) -> Path:
        return self.config_root / NAMED_SESSIONS_FILE_NAME

    @property
    def last_session_file(self) -> Path:
        return self.config_root / LAST_SESSION_FILE_NAME

    @property
    def lock_file(self) -> Path:
        return self.config_root / REGISTRY_LOCK_FILE_NAME

    @property
    def containers_dir(self) -> Path:
        return self.config_root / CONTAINERS_DIR_NAME

    @property
    def dockerfile(self) -> Path:
        return self.config_root / DOCKERFILE_NAME

    def registry_files(self) -> tuple[Path, ...]:
        return (self.folder_registry_file, self.named_sessions_file, self.last_session_file)


def default_config_root(home: Path | None = None) -> Path:
    resolved_home = (home or Path.home()).expanduser()
    return resolved_home / ".claude-sandbox"


def resolve_config_root(environ: Mapping[str, str] | None = None, configured: str | None = None) -> Path:
    """Pick the config root: environment override, then config file, then ~/.claude-sandbox."""
    env = os.environ if environ is None else environ
    from_env = str(env.get(CONFIG_ROOT_ENV) or "").strip()
    if from_env:
        return Path(from_env).expanduser().absolute()
    from_config = str(configured or "").strip()
    if from_config:
        return Path(from_config).expanduser().absolute()
    return default_config_root()
