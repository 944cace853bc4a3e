from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from sandbox_core.config import DEFAULT_COMMAND_TIMEOUT_SECONDS
from sandbox_core.errors import RuntimeCommandError, RuntimeUnavailableError
from sandbox_core.launch import (
    AssistantLaunchPlan,
    ContainerCreateSpec,
    compile_assistant_exec_command,
    compile_docker_create_command,
    compile_shell_exec_command,
)
from sandbox_core.logging import log_extra

LOGGER = logging.getLogger("claude_sandbox.runtime")

RUNTIME_STATE_ABSENT = "absent"
RUNTIME_STATE_CREATED = "created"
RUNTIME_STATE_RUNNING = "running"
RUNTIME_STATE_STOPPED = "stopped"

_DOCKER_STATUS_TO_STATE = {
    "running": RUNTIME_STATE_RUNNING,
    "restarting": RUNTIME_STATE_RUNNING,
    "created": RUNTIME_STATE_CREATED,
    "exited": RUNTIME_STATE_STOPPED,
    "dead": RUNTIME_STATE_STOPPED,
    "paused": RUNTIME_STATE_STOPPED,
    "removing": RUNTIME_STATE_STOPPED,
}
_DAEMON_DOWN_MARKERS = (
    "cannot connect to the docker daemon",
    "error during connect",
    "is the docker daemon running",
)
_NO_SUCH_CONTAINER_MARKERS = ("no such container", "no such object")
INTERRUPTED_EXIT_CODE = 130


def runtime_state_from_docker_status(status: str) -> str:
    return _DOCKER_STATUS_TO_STATE.get(str(status or "").strip().lower(), RUNTIME_STATE_STOPPED)


def _command_output(result: subprocess.CompletedProcess[str]) -> str:
    return ((result.stdout or "") + (result.stderr or "")).strip()


def _is_daemon_down(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _DAEMON_DOWN_MARKERS)


class DockerRuntimeGateway:
    """Thin wrapper over the ``docker`` CLI.

    Every call is bounded by ``command_timeout_seconds`` except image builds
    and ``exec_interactive``, which hands the terminal to the container until
    the user exits.
    """

    def __init__(
        self,
        *,
        runner: Callable[..., subprocess.CompletedProcess[str]] = subprocess.run,
        startup_wait_seconds: float = 0.0,
        command_timeout_seconds: float = DEFAULT_COMMAND_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._runner = runner
        self._startup_wait_seconds = max(float(startup_wait_seconds), 0.0)
        self._command_timeout_seconds = max(float(command_timeout_seconds), 0.0) or None
        self._sleep = sleep

    def _run(
        self,
        cmd: Sequence[str],
        *,
        capture: bool = True,
        check: bool = True,
        bounded: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        kwargs: dict[str, Any] = {"check": False, "text": True}
        if capture:
            kwargs["capture_output"] = True
        if bounded and self._command_timeout_seconds:
            kwargs["timeout"] = self._command_timeout_seconds
        try:
            result = self._runner(list(cmd), **kwargs)
        except FileNotFoundError as exc:
            raise RuntimeUnavailableError("The docker CLI was not found in PATH.") from exc
        except subprocess.TimeoutExpired as exc:
            raise RuntimeCommandError(
                f"Command timed out after {self._command_timeout_seconds:g}s ({' '.join(cmd[:2])})"
            ) from exc
        if check and result.returncode != 0:
            message = _command_output(result) if capture else ""
            if _is_daemon_down(message):
                raise RuntimeUnavailableError(f"Docker is not running: {message}")
            if not message:
                message = f"Command failed ({' '.join(cmd[:2])}) with exit code {result.returncode}"
            raise RuntimeCommandError(message)
        return result

    def ping(self) -> None:
        result = self._run(["docker", "info", "--format", "{{.ServerVersion}}"], check=False)
        if result.returncode != 0:
            detail = _command_output(result) or f"exit code {result.returncode}"
            raise RuntimeUnavailableError(f"Docker is not running. Please start Docker and try again. ({detail})")

    def image_exists(self, image: str) -> bool:
        result = self._run(["docker", "image", "inspect", image], check=False)
        return result.returncode == 0

    def build_image(self, *, image: str, dockerfile: Path, context_dir: Path, no_cache: bool = False) -> None:
        cmd = ["docker", "build", "-t", image]
        if no_cache:
            cmd.append("--no-cache")
        cmd.extend(["-f", str(dockerfile), str(context_dir)])
        self._run(cmd, capture=False, bounded=False)

    def find_by_name(self, name: str) -> str:
        result = self._run(
            ["docker", "container", "inspect", "--format", "{{.State.Status}}", name],
            check=False,
        )
        if result.returncode == 0:
            return runtime_state_from_docker_status(result.stdout)
        message = _command_output(result)
        lowered = message.lower()
        if any(marker in lowered for marker in _NO_SUCH_CONTAINER_MARKERS):
            return RUNTIME_STATE_ABSENT
        if _is_daemon_down(message):
            raise RuntimeUnavailableError(f"Docker is not running: {message}")
        raise RuntimeCommandError(f"Unable to inspect container '{name}': {message}")

    def create(self, spec: ContainerCreateSpec) -> str:
        self._run(compile_docker_create_command(spec))
        LOGGER.info(
            "Created container %s from %s",
            spec.name,
            spec.image,
            extra=log_extra(component="runtime", operation="create", result="ok", container=spec.name),
        )
        return spec.name

    def start(self, name: str) -> None:
        self._run(["docker", "start", name])
        if self._startup_wait_seconds:
            self._sleep(self._startup_wait_seconds)
        LOGGER.info(
            "Started container %s",
            name,
            extra=log_extra(component="runtime", operation="start", result="ok", container=name),
        )

    def stop(self, name: str) -> None:
        self._run(["docker", "stop", name])
        LOGGER.info(
            "Stopped container %s",
            name,
            extra=log_extra(component="runtime", operation="stop", result="ok", container=name),
        )

    def remove(self, name: str) -> None:
        self._run(["docker", "rm", "-f", name])

    def list_by_label(self, label: str) -> list[str]:
        result = self._run(["docker", "ps", "-a", "--filter", f"label={label}", "--format", "{{.Names}}"])
        return sorted({line.strip() for line in (result.stdout or "").splitlines() if line.strip()})

    def exec_interactive(self, cmd: Sequence[str]) -> int:
        try:
            result = self._run(cmd, capture=False, check=False, bounded=False)
        except KeyboardInterrupt:
            # Detaching never stops the container.
            return INTERRUPTED_EXIT_CODE
        return int(result.returncode)

    def exec_assistant(self, plan: AssistantLaunchPlan) -> int:
        return self.exec_interactive(compile_assistant_exec_command(plan))

    def exec_shell(self, name: str) -> int:
        return self.exec_interactive(compile_shell_exec_command(name))
