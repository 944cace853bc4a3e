"""Split per-user assistant state into shared and per-container mounts.

Layout under the global root::

    <root>/.claude/                  shared: credentials, settings
    <root>/.claude.json              shared: top-level preferences
    <root>/.claude.json.backup       shared
    <root>/.config/                  shared: application config
    <root>/containers/<name>/
        conversations/               isolated: mounted over ~/.claude/projects

Shared paths are mounted at the same container path in every container, so a
login performed in one container is visible to the others on their next
start. The conversations directory belongs to exactly one container name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from .folders import FolderSet
from .naming import validate_container_name
from .paths import CONTAINERS_DIR_NAME

LOGGER = logging.getLogger("claude_sandbox.partition")

DEFAULT_CONTAINER_HOME = "/home/claude"
ISOLATED_SUBDIR_NAME = "conversations"

PATH_CLASS_SHARED = "shared"
PATH_CLASS_ISOLATED = "isolated"
PATH_CLASS_EXTERNAL = "external"

_SHARED_JSON_FILES = (".claude.json", ".claude.json.backup")


@dataclass(frozen=True)
class MountBinding:
    host_path: Path
    container_path: str
    is_file: bool = False

    def volume_spec(self) -> str:
        return f"{self.host_path}:{self.container_path}"


@dataclass(frozen=True)
class MountPlan:
    shared: tuple[MountBinding, ...]
    isolated: tuple[MountBinding, ...]
    workspace: tuple[MountBinding, ...] = ()

    def bindings(self) -> tuple[MountBinding, ...]:
        # Isolated mounts nest inside a shared mount, so they must come after it.
        return (*self.workspace, *self.shared, *self.isolated)

    def volume_specs(self) -> list[str]:
        return [binding.volume_spec() for binding in self.bindings()]


class StatePartitionPolicy:
    def __init__(self, global_root: Path, *, container_home: str = DEFAULT_CONTAINER_HOME) -> None:
        self.global_root = Path(global_root)
        self.container_home = PurePosixPath(container_home)

    @property
    def containers_root(self) -> Path:
        return self.global_root / CONTAINERS_DIR_NAME

    @property
    def workspace_root(self) -> PurePosixPath:
        return self.container_home / "workspace"

    def isolated_dir(self, container_name: str) -> Path:
        name = validate_container_name(container_name)
        return self.containers_root / name / ISOLATED_SUBDIR_NAME

    def shared_bindings(self) -> tuple[MountBinding, ...]:
        bindings = [
            MountBinding(self.global_root / ".claude", str(self.container_home / ".claude")),
        ]
        for file_name in _SHARED_JSON_FILES:
            bindings.append(
                MountBinding(self.global_root / file_name, str(self.container_home / file_name), is_file=True)
            )
        bindings.append(MountBinding(self.global_root / ".config", str(self.container_home / ".config")))
        return tuple(bindings)

    def isolated_bindings(self, container_name: str) -> tuple[MountBinding, ...]:
        return (
            MountBinding(self.isolated_dir(container_name), str(self.container_home / ".claude" / "projects")),
        )

    def workspace_bindings(self, folder_set: FolderSet | None) -> tuple[MountBinding, ...]:
        if folder_set is None:
            return ()
        bindings: list[MountBinding] = []
        used: set[str] = set()
        for folder in folder_set.paths:
            base = folder.name or "project"
            target = base
            suffix = 2
            while target in used:
                target = f"{base}-{suffix}"
                suffix += 1
            used.add(target)
            bindings.append(MountBinding(folder, str(self.workspace_root / target)))
        return tuple(bindings)

    def plan(self, container_name: str, folder_set: FolderSet | None = None) -> MountPlan:
        return MountPlan(
            shared=self.shared_bindings(),
            isolated=self.isolated_bindings(container_name),
            workspace=self.workspace_bindings(folder_set),
        )

    def prepare(self, plan: MountPlan) -> None:
        """Create missing host directories and seed JSON files docker would otherwise create as dirs."""
        for binding in (*plan.shared, *plan.isolated):
            if binding.is_file:
                binding.host_path.parent.mkdir(parents=True, exist_ok=True)
                if not binding.host_path.exists():
                    binding.host_path.write_text("{}", encoding="utf-8")
                continue
            binding.host_path.mkdir(parents=True, exist_ok=True)
            LOGGER.debug("Prepared mount source %s", binding.host_path)

    def classify(self, host_path: Path) -> str:
        candidate = Path(host_path)
        containers_root = self.containers_root
        if candidate == containers_root or containers_root in candidate.parents:
            return PATH_CLASS_ISOLATED
        for binding in self.shared_bindings():
            if candidate == binding.host_path or binding.host_path in candidate.parents:
                return PATH_CLASS_SHARED
        return PATH_CLASS_EXTERNAL
