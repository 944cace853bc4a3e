from __future__ import annotations

from dataclasses import dataclass

from .partition import MountPlan

ASSISTANT_COMMAND = "claude"
SHELL_COMMAND = "bash"
CREDENTIAL_ENV_VAR = "ANTHROPIC_API_KEY"
TERMINAL_ENV = "TERM=xterm-256color"
MANAGED_LABEL_VALUE = "true"


@dataclass(frozen=True)
class ContainerCreateSpec:
    name: str
    image: str
    mount_plan: MountPlan
    label: str
    memory: str | None = None
    cpus: str | None = None
    ports: tuple[str, ...] = ()
    env_vars: tuple[str, ...] = ()
    network: str = "bridge"
    folder_key: str = ""


@dataclass(frozen=True)
class AssistantLaunchPlan:
    container_name: str
    prompt: str | None = None
    skip_permissions: bool = False
    continue_session: bool = False
    resume_id: str | None = None
    pick_conversation: bool = False
    allocate_tty: bool = True


def compile_docker_create_command(spec: ContainerCreateSpec) -> list[str]:
    cmd: list[str] = [
        "docker",
        "create",
        "--name",
        str(spec.name),
        "--label",
        f"{spec.label}={MANAGED_LABEL_VALUE}",
    ]
    if spec.folder_key:
        cmd.extend(["--label", f"{spec.label}.folders={spec.folder_key}"])
    for volume in spec.mount_plan.volume_specs():
        cmd.extend(["-v", volume])
    if spec.memory:
        cmd.extend(["--memory", str(spec.memory)])
    if spec.cpus:
        cmd.extend(["--cpus", str(spec.cpus)])
    for port in spec.ports:
        cmd.extend(["-p", str(port)])
    # Passed by name only: docker copies the value from the caller's environment.
    cmd.extend(["-e", CREDENTIAL_ENV_VAR])
    cmd.extend(["-e", TERMINAL_ENV])
    for entry in spec.env_vars:
        cmd.extend(["-e", str(entry)])
    cmd.extend(["--network", str(spec.network)])
    cmd.append(str(spec.image))
    return cmd


def compile_assistant_exec_command(plan: AssistantLaunchPlan) -> list[str]:
    cmd: list[str] = ["docker", "exec", "-it" if plan.allocate_tty else "-i", str(plan.container_name)]
    cmd.append(ASSISTANT_COMMAND)
    if plan.skip_permissions:
        cmd.append("--dangerously-skip-permissions")
    if plan.resume_id:
        cmd.extend(["-r", str(plan.resume_id)])
    elif plan.pick_conversation:
        cmd.append("-r")
    elif plan.continue_session:
        cmd.append("-c")
    if plan.prompt:
        cmd.append(str(plan.prompt))
    return cmd


def compile_shell_exec_command(container_name: str, *, allocate_tty: bool = True) -> list[str]:
    return ["docker", "exec", "-it" if allocate_tty else "-i", str(container_name), SHELL_COMMAND]
