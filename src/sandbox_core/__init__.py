from __future__ import annotations

from .config import (
    DEFAULT_CONTAINER_LABEL,
    DEFAULT_IMAGE_NAME,
    SandboxConfig,
    load_optional_sandbox_config,
    load_sandbox_config,
    load_sandbox_config_dict,
)
from .errors import (
    ConfigError,
    ConfirmationRequiredError,
    InvalidNameError,
    InvalidPathError,
    NameConflictError,
    RegistryBusyError,
    RegistryCorruptError,
    RuntimeCommandError,
    RuntimeUnavailableError,
    SessionNotFoundError,
    TypedSandboxError,
)
from .folders import FolderSet, normalize_folder, normalize_folders
from .naming import derive_container_name, resolve_container_name
from .partition import MountBinding, MountPlan, StatePartitionPolicy
from .paths import SandboxPaths, default_config_root, resolve_config_root

__all__ = [
    "ConfigError",
    "ConfirmationRequiredError",
    "DEFAULT_CONTAINER_LABEL",
    "DEFAULT_IMAGE_NAME",
    "FolderSet",
    "InvalidNameError",
    "InvalidPathError",
    "MountBinding",
    "MountPlan",
    "NameConflictError",
    "RegistryBusyError",
    "RegistryCorruptError",
    "RuntimeCommandError",
    "RuntimeUnavailableError",
    "SandboxConfig",
    "SandboxPaths",
    "SessionNotFoundError",
    "StatePartitionPolicy",
    "TypedSandboxError",
    "default_config_root",
    "derive_container_name",
    "load_optional_sandbox_config",
    "load_sandbox_config",
    "load_sandbox_config_dict",
    "normalize_folder",
    "normalize_folders",
    "resolve_config_root",
    "resolve_container_name",
]
