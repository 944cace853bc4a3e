from __future__ import annotations

import sys
import threading
import time
from pathlib import Path
from typing import Any, Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from sandbox_cli.runtime import (
    RUNTIME_STATE_ABSENT,
    RUNTIME_STATE_CREATED,
    RUNTIME_STATE_RUNNING,
    RUNTIME_STATE_STOPPED,
)
from sandbox_cli.services import BuildService, LifecycleService
from sandbox_core.config import DEFAULT_CONTAINER_LABEL, DEFAULT_IMAGE_NAME
from sandbox_core.errors import RuntimeCommandError, RuntimeUnavailableError
from sandbox_core.launch import AssistantLaunchPlan, ContainerCreateSpec
from sandbox_core.partition import StatePartitionPolicy
from sandbox_core.paths import SandboxPaths
from sandbox_core.store import RegistryStore


class FakeRuntimeGateway:
    """In-memory stand-in for DockerRuntimeGateway shared across threads."""

    def __init__(self, *, available: bool = True, inspect_delay_seconds: float = 0.0) -> None:
        self.available = available
        self.inspect_delay_seconds = inspect_delay_seconds
        self.states: dict[str, str] = {}
        self.created: list[ContainerCreateSpec] = []
        self.started: list[str] = []
        self.stopped: list[str] = []
        self.removed: list[str] = []
        self.exec_plans: list[AssistantLaunchPlan] = []
        self.shells: list[str] = []
        self.images: set[str] = {DEFAULT_IMAGE_NAME}
        self.builds: list[dict[str, Any]] = []
        self.on_exec: Callable[[AssistantLaunchPlan], None] | None = None
        self._lock = threading.Lock()

    def ping(self) -> None:
        if not self.available:
            raise RuntimeUnavailableError("Docker is not running. Please start Docker and try again.")

    def image_exists(self, image: str) -> bool:
        return image in self.images

    def build_image(self, *, image: str, dockerfile: Path, context_dir: Path, no_cache: bool = False) -> None:
        self.builds.append({"image": image, "dockerfile": dockerfile, "context_dir": context_dir, "no_cache": no_cache})
        self.images.add(image)

    def find_by_name(self, name: str) -> str:
        if self.inspect_delay_seconds:
            time.sleep(self.inspect_delay_seconds)
        with self._lock:
            return self.states.get(name, RUNTIME_STATE_ABSENT)

    def create(self, spec: ContainerCreateSpec) -> str:
        with self._lock:
            if spec.name in self.states:
                raise RuntimeCommandError(f'Conflict. The container name "/{spec.name}" is already in use')
            self.states[spec.name] = RUNTIME_STATE_CREATED
            self.created.append(spec)
        return spec.name

    def start(self, name: str) -> None:
        with self._lock:
            if name not in self.states:
                raise RuntimeCommandError(f"No such container: {name}")
            self.states[name] = RUNTIME_STATE_RUNNING
            self.started.append(name)

    def stop(self, name: str) -> None:
        with self._lock:
            self.states[name] = RUNTIME_STATE_STOPPED
            self.stopped.append(name)

    def remove(self, name: str) -> None:
        with self._lock:
            self.states.pop(name, None)
            self.removed.append(name)

    def list_by_label(self, label: str) -> list[str]:
        with self._lock:
            return sorted(self.states)

    def exec_assistant(self, plan: AssistantLaunchPlan) -> int:
        with self._lock:
            self.exec_plans.append(plan)
        if self.on_exec is not None:
            self.on_exec(plan)
        return 0

    def exec_shell(self, name: str) -> int:
        with self._lock:
            self.shells.append(name)
        return 0


def make_lifecycle_service(
    config_root: Path,
    gateway: FakeRuntimeGateway,
    *,
    echo: Callable[..., None] | None = None,
    lock_timeout_seconds: float = 5.0,
) -> LifecycleService:
    paths = SandboxPaths(config_root)
    click_echo = echo or (lambda *args, **kwargs: None)
    return LifecycleService(
        registry=RegistryStore(paths, lock_timeout_seconds=lock_timeout_seconds, poll_interval_seconds=0.01),
        gateway=gateway,
        policy=StatePartitionPolicy(config_root),
        builder=BuildService(gateway=gateway, image=DEFAULT_IMAGE_NAME, paths=paths, click_echo=click_echo),
        image=DEFAULT_IMAGE_NAME,
        label=DEFAULT_CONTAINER_LABEL,
        network="bridge",
        click_echo=click_echo,
    )


@pytest.fixture
def sandbox_root(tmp_path: Path) -> Path:
    root = tmp_path / "sandbox-root"
    root.mkdir()
    return root


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    base = tmp_path / "work"
    base.mkdir()
    return base


@pytest.fixture
def fake_gateway() -> FakeRuntimeGateway:
    return FakeRuntimeGateway()


@pytest.fixture
def echoed() -> list[str]:
    return []


@pytest.fixture
def lifecycle(sandbox_root: Path, fake_gateway: FakeRuntimeGateway, echoed: list[str]) -> LifecycleService:
    return make_lifecycle_service(
        sandbox_root,
        fake_gateway,
        echo=lambda message="", **kwargs: echoed.append(str(message)),
    )
