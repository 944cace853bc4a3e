from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

import click

from sandbox_core.conversations import latest_conversation_id
from sandbox_core.errors import (
    ConfigError,
    InvalidPathError,
    NameConflictError,
    SessionNotFoundError,
    TypedSandboxError,
)
from sandbox_core.folders import FolderSet, normalize_folder, normalize_folders
from sandbox_core.launch import AssistantLaunchPlan, ContainerCreateSpec
from sandbox_core.logging import log_extra
from sandbox_core.naming import (
    derive_container_name,
    resolve_container_name,
    validate_container_name,
    validate_session_name,
)
from sandbox_core.partition import StatePartitionPolicy
from sandbox_core.paths import SandboxPaths
from sandbox_core.shared import normalize_port_mappings, parse_env_vars, short_id
from sandbox_core.store import NamedSession, RegistryStore, write_atomic_text

from .runtime import (
    RUNTIME_STATE_ABSENT,
    RUNTIME_STATE_CREATED,
    RUNTIME_STATE_RUNNING,
    RUNTIME_STATE_STOPPED,
)

LOGGER = logging.getLogger("claude_sandbox.lifecycle")

SESSION_STATE_RESOLVING = "resolving"
SESSION_STATE_RECONCILING = "reconciling"
SESSION_STATE_CREATING = "creating"
SESSION_STATE_ATTACHING = "attaching"
SESSION_STATE_RESUMING = "resuming"
SESSION_STATE_FAILED = "failed"
SESSION_STATE_DONE = "done"

ACTION_ATTACHED = "attached"
ACTION_STARTED = "started"
ACTION_CREATED = "created"
ACTION_RECREATED = "recreated"

IDENTITY_SOURCE_OVERRIDE = "override"
IDENTITY_SOURCE_NAMED_SESSION = "named_session"
IDENTITY_SOURCE_REGISTRY = "registry"
IDENTITY_SOURCE_DERIVED = "derived"
IDENTITY_SOURCE_CONTAINER_NAME = "container_name"
IDENTITY_SOURCE_LAST_SESSION = "last_session"

STOP_ALL_TARGET = "all"
BANNER_WIDTH = 70


def packaged_dockerfile() -> str:
    return resources.files("sandbox_cli").joinpath("docker", "Dockerfile").read_text(encoding="utf-8")


@dataclass(frozen=True)
class SessionRequest:
    folders: tuple[str, ...]
    session_name: str | None = None
    container_override: str | None = None
    memory: str | None = None
    cpus: str | None = None
    ports: tuple[str, ...] = ()
    env_vars: tuple[str, ...] = ()
    prompt: str | None = None
    skip_permissions: bool = False
    continue_session: bool = False
    resume_id: str | None = None
    background: bool = False
    recreate: bool = False


@dataclass(frozen=True)
class ResolvedIdentity:
    container_name: str
    source: str
    folder_set: FolderSet | None = None


@dataclass(frozen=True)
class SessionOutcome:
    container_name: str
    action: str
    attached: bool
    folder_set: FolderSet | None = None
    session_name: str | None = None
    conversation_id: str | None = None
    exit_code: int | None = None


@dataclass(frozen=True)
class StatusReport:
    container_name: str
    runtime_state: str
    registered: bool
    folder_paths: tuple[str, ...] = ()
    session_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class SessionListing:
    container_name: str
    runtime_state: str
    registered: bool
    folder_paths: tuple[str, ...] = ()
    created_at: str = ""


@dataclass(frozen=True)
class ListReport:
    containers: tuple[SessionListing, ...]
    sessions: tuple[NamedSession, ...]
    last_session: str | None


@dataclass
class BuildService:
    gateway: Any
    image: str
    paths: SandboxPaths
    click_echo: Callable[..., None]
    dockerfile_source: Callable[[], str] = packaged_dockerfile

    def build(self, *, no_cache: bool = False) -> None:
        self.click_echo(click.style("Building Claude Code sandbox image...", fg="cyan"))
        write_atomic_text(self.paths.dockerfile, self.dockerfile_source())
        self.gateway.build_image(
            image=self.image,
            dockerfile=self.paths.dockerfile,
            context_dir=self.paths.config_root,
            no_cache=no_cache,
        )
        self.click_echo(click.style("Image built successfully!", fg="green"))

    def ensure_image(self) -> None:
        if self.gateway.image_exists(self.image):
            return
        self.click_echo(click.style("Image not found, building...", fg="yellow"))
        self.build()


@dataclass
class LifecycleService:
    registry: RegistryStore
    gateway: Any
    policy: StatePartitionPolicy
    builder: BuildService
    image: str
    label: str
    network: str
    click_echo: Callable[..., None]
    default_memory: str | None = None
    default_cpus: str | None = None
    invocation_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def _log(
        self,
        message: str,
        *args: Any,
        operation: str,
        result: str = "",
        container: str = "",
        session: str = "",
        level: int = logging.INFO,
    ) -> None:
        LOGGER.log(
            level,
            message,
            *args,
            extra=log_extra(
                component="lifecycle",
                operation=operation,
                result=result,
                container=container,
                session=session,
                invocation_id=self.invocation_id,
            ),
        )

    @contextmanager
    def _tracked(self, operation: str) -> Iterator[None]:
        started = time.monotonic()
        try:
            yield
        except TypedSandboxError as exc:
            LOGGER.warning(
                "%s failed (%s): %s",
                operation,
                exc.metadata()["error_code"],
                exc,
                extra=log_extra(
                    component="lifecycle",
                    operation=operation,
                    result=SESSION_STATE_FAILED,
                    invocation_id=self.invocation_id,
                    duration_ms=int((time.monotonic() - started) * 1000),
                    error_class=type(exc).__name__,
                ),
            )
            raise

    # Resolving

    def _known_folder_set(self, container_name: str) -> FolderSet | None:
        entry = self.registry.folders_for_container(container_name)
        if entry is None or not entry.folder_paths:
            return None
        return FolderSet(paths=tuple(Path(path) for path in entry.folder_paths))

    def resolve_target(self, targets: Sequence[str] | str | None) -> ResolvedIdentity:
        """Resolve folder path(s), a container name, or nothing (last session) to a container."""
        if isinstance(targets, str):
            targets = (targets,)
        values = [str(value).strip() for value in (targets or ()) if str(value).strip()]
        if not values:
            last = self.registry.get_last_session()
            if not last:
                raise SessionNotFoundError("No previous session found. Use 'run <folders>' to start one.")
            return ResolvedIdentity(last, IDENTITY_SOURCE_LAST_SESSION, self._known_folder_set(last))

        if len(values) > 1:
            folder_set = normalize_folders(values)
            bound = self.registry.get_container_for(folder_set)
            if bound:
                return ResolvedIdentity(bound, IDENTITY_SOURCE_REGISTRY, folder_set)
            return self._derived_identity(folder_set)

        value = values[0]
        if Path(value).expanduser().is_dir():
            folder = normalize_folder(value)
            single = FolderSet(paths=(folder,))
            bound = self.registry.get_container_for(single) or self.registry.container_for_folder(folder)
            if bound:
                return ResolvedIdentity(bound, IDENTITY_SOURCE_REGISTRY, self._known_folder_set(bound) or single)
            return self._derived_identity(single)

        # Container names resolve without touching folders, so they survive folder moves.
        name = validate_container_name(value)
        return ResolvedIdentity(name, IDENTITY_SOURCE_CONTAINER_NAME, self._known_folder_set(name))

    def _resolve_run_identity(
        self,
        request: SessionRequest,
        folder_set: FolderSet,
        session_name: str | None,
    ) -> ResolvedIdentity:
        if request.container_override and request.container_override.strip():
            name = resolve_container_name(folder_set, request.container_override)
            return ResolvedIdentity(name, IDENTITY_SOURCE_OVERRIDE, folder_set)
        if session_name:
            named = self.registry.get_session(session_name)
            if named is not None and named.container_name:
                entry = self.registry.folders_for_container(named.container_name)
                # A session name moved to other folders follows them; the old binding is overwritten on exit.
                if entry is not None and entry.key == folder_set.key():
                    return ResolvedIdentity(named.container_name, IDENTITY_SOURCE_NAMED_SESSION, folder_set)
        bound = self.registry.get_container_for(folder_set)
        if bound:
            return ResolvedIdentity(bound, IDENTITY_SOURCE_REGISTRY, folder_set)
        return ResolvedIdentity(resolve_container_name(folder_set), IDENTITY_SOURCE_DERIVED, folder_set)

    def _derived_identity(self, folder_set: FolderSet) -> ResolvedIdentity:
        identity = ResolvedIdentity(derive_container_name(folder_set), IDENTITY_SOURCE_DERIVED, folder_set)
        self._check_name_conflict(identity, folder_set)
        return identity

    def _check_name_conflict(self, identity: ResolvedIdentity, folder_set: FolderSet) -> None:
        if identity.source == IDENTITY_SOURCE_OVERRIDE:
            return
        entry = self.registry.folders_for_container(identity.container_name)
        if entry is None or entry.key == folder_set.key():
            return
        raise NameConflictError(
            f"Container name '{identity.container_name}' is already bound to "
            f"[{', '.join(entry.folder_paths)}], not [{folder_set}]. "
            "Pass --container to choose a name explicitly."
        )

    # Reconciling and creating

    def _create(
        self,
        name: str,
        folder_set: FolderSet,
        *,
        memory: str | None,
        cpus: str | None,
        ports: tuple[str, ...],
        env_vars: tuple[str, ...],
    ) -> None:
        self._log("Creating container %s", name, operation=SESSION_STATE_CREATING, container=name)
        plan = self.policy.plan(name, folder_set)
        self.policy.prepare(plan)
        spec = ContainerCreateSpec(
            name=name,
            image=self.image,
            mount_plan=plan,
            label=self.label,
            memory=memory,
            cpus=cpus,
            ports=ports,
            env_vars=env_vars,
            network=self.network,
            folder_key=folder_set.key(),
        )
        self.gateway.create(spec)
        self.gateway.start(name)

    def _reconcile(self, name: str) -> str:
        state = self.gateway.find_by_name(name)
        self._log("Runtime state of %s is %s", name, state, operation=SESSION_STATE_RECONCILING, result=state, container=name)
        return state

    def _materialize(
        self,
        name: str,
        folder_set: FolderSet,
        *,
        memory: str | None,
        cpus: str | None,
        ports: tuple[str, ...],
        env_vars: tuple[str, ...],
        recreate: bool,
    ) -> str:
        state = self._reconcile(name)
        create_kwargs = {"memory": memory, "cpus": cpus, "ports": ports, "env_vars": env_vars}
        if state != RUNTIME_STATE_ABSENT and recreate:
            self.click_echo(click.style(f"Recreating container '{name}'...", fg="yellow"))
            if state == RUNTIME_STATE_RUNNING:
                self.gateway.stop(name)
            self.gateway.remove(name)
            self._create(name, folder_set, **create_kwargs)
            return ACTION_RECREATED
        if state == RUNTIME_STATE_ABSENT:
            self._create(name, folder_set, **create_kwargs)
            return ACTION_CREATED
        if ports:
            self.click_echo(
                click.style(
                    f"Container '{name}' already exists; ports {', '.join(ports)} need --recreate. "
                    "Continuing without port changes...",
                    fg="yellow",
                )
            )
        if state == RUNTIME_STATE_RUNNING:
            self.click_echo(click.style(f"Container '{name}' is already running, attaching...", fg="cyan"))
            return ACTION_ATTACHED
        self.click_echo(click.style(f"Starting stopped container '{name}'...", fg="cyan"))
        self.gateway.start(name)
        return ACTION_STARTED

    def _ensure_running(self, identity: ResolvedIdentity) -> str:
        name = identity.container_name
        state = self._reconcile(name)
        if state == RUNTIME_STATE_RUNNING:
            return ACTION_ATTACHED
        if state in (RUNTIME_STATE_STOPPED, RUNTIME_STATE_CREATED):
            self.click_echo(click.style(f"Starting stopped container '{name}'...", fg="cyan"))
            self.gateway.start(name)
            return ACTION_STARTED
        if identity.folder_set is None:
            raise SessionNotFoundError(
                f"Container '{name}' does not exist and no folders are registered for it. "
                "Use 'run <folders>' to start it."
            )
        try:
            folder_set = normalize_folders(identity.folder_set.as_strings())
        except InvalidPathError as exc:
            raise SessionNotFoundError(
                f"Container '{name}' does not exist and its folders [{identity.folder_set}] are gone: {exc}"
            ) from exc
        self.click_echo(click.style(f"Container '{name}' is gone, recreating it...", fg="yellow"))
        self._create(
            name,
            folder_set,
            memory=self.default_memory,
            cpus=self.default_cpus,
            ports=(),
            env_vars=(),
        )
        self.registry.put_container_for(folder_set, name)
        return ACTION_CREATED

    def _bind(self, identity: ResolvedIdentity, folder_set: FolderSet, action: str) -> None:
        current = self.registry.get_container_for(folder_set)
        rebind = identity.source == IDENTITY_SOURCE_OVERRIDE
        if current != identity.container_name or rebind or action in (ACTION_CREATED, ACTION_RECREATED):
            self.registry.put_container_for(folder_set, identity.container_name, rebind=rebind)

    # Attaching

    def _record_named_session(self, session_name: str, container_name: str) -> str | None:
        conversation_id = latest_conversation_id(self.policy.isolated_dir(container_name))
        if not conversation_id:
            self.click_echo(
                click.style("⚠", fg="yellow")
                + f" Could not detect conversation ID for session '{session_name}'"
            )
            return None
        self.registry.put_session(session_name, conversation_id, container_name)
        self.click_echo(
            click.style("✓", fg="green")
            + f" Session '{session_name}' saved (conversation: {short_id(conversation_id)})"
        )
        return conversation_id

    def _attach(self, plan: AssistantLaunchPlan, *, session_name: str | None = None) -> int:
        self._log(
            "Attaching to %s",
            plan.container_name,
            operation=SESSION_STATE_ATTACHING,
            container=plan.container_name,
            session=session_name or "",
        )
        return self.gateway.exec_assistant(plan)

    def _echo_banner(
        self,
        container_name: str,
        *,
        session_name: str | None,
        folder_set: FolderSet | None,
        ports: Sequence[str] = (),
    ) -> None:
        bar = click.style("│", fg="cyan")
        self.click_echo("\n" + click.style("═" * BANNER_WIDTH, fg="cyan"))
        if session_name:
            self.click_echo(
                f"{bar}  Claude Code running session '{click.style(session_name, fg='green')}' "
                f"in container '{click.style(container_name, fg='blue')}'"
            )
        else:
            self.click_echo(f"{bar}  Claude Code running in container '{click.style(container_name, fg='green')}'")
        if folder_set is not None:
            self.click_echo(f"{bar}  {click.style('Mapped folders:', bold=True)}")
            for binding in self.policy.workspace_bindings(folder_set):
                self.click_echo(f"{bar}    {click.style('->', fg='green')} {binding.host_path} -> {binding.container_path}")
        if ports:
            self.click_echo(f"{bar}  {click.style('Exposed ports:', bold=True)}")
            for port in ports:
                self.click_echo(f"{bar}    {click.style('->', fg='green')} {port}")
        self.click_echo(
            f"{bar}  Press {click.style('Ctrl+C', fg='yellow', bold=True)} to exit (container keeps running)"
        )
        hint = str(folder_set.paths[0]) if folder_set is not None else container_name
        if session_name:
            self.click_echo(f"{bar}  Reconnect: {click.style(f'claude-sandbox continue {hint} -n {session_name}', fg='green')}")
        else:
            self.click_echo(f"{bar}  Reconnect: {click.style(f'claude-sandbox continue {hint}', fg='green')}")
        self.click_echo(f"{bar}  Resume by id: {click.style(f'claude-sandbox resume -t {hint} <id>', fg='green')}")
        self.click_echo(click.style("═" * BANNER_WIDTH, fg="cyan") + "\n")

    def _echo_exit(self, container_name: str) -> None:
        self.click_echo("\n" + click.style("✓", fg="green") + " Exited Claude session")
        self.click_echo(f"  Container '{container_name}' is still running")

    # Operations

    def run(self, request: SessionRequest) -> SessionOutcome:
        with self._tracked("run"):
            self.gateway.ping()
            folder_set = normalize_folders(request.folders)
            session_name = validate_session_name(request.session_name) if request.session_name else None
            ports = normalize_port_mappings(request.ports, error_factory=ConfigError)
            env_vars = parse_env_vars(request.env_vars, error_factory=ConfigError)
            memory = request.memory or self.default_memory
            cpus = request.cpus or self.default_cpus
            self.builder.ensure_image()

            with self.registry.locked():
                self._log("Resolving %s", folder_set, operation=SESSION_STATE_RESOLVING, session=session_name or "")
                identity = self._resolve_run_identity(request, folder_set, session_name)
                self._check_name_conflict(identity, folder_set)
                name = identity.container_name
                action = self._materialize(
                    name,
                    folder_set,
                    memory=memory,
                    cpus=cpus,
                    ports=ports,
                    env_vars=env_vars,
                    recreate=request.recreate,
                )
                self._bind(identity, folder_set, action)
                self.registry.set_last_session(name)

            if request.background:
                self._log("Left %s running in background", name, operation=SESSION_STATE_DONE, result=action, container=name)
                self.click_echo(click.style("✓", fg="green") + f" Container '{name}' is running ({action})")
                return SessionOutcome(
                    container_name=name,
                    action=action,
                    attached=False,
                    folder_set=folder_set,
                    session_name=session_name,
                )

            self._echo_banner(name, session_name=session_name, folder_set=folder_set, ports=ports)
            plan = AssistantLaunchPlan(
                container_name=name,
                prompt=request.prompt,
                skip_permissions=request.skip_permissions,
                continue_session=request.continue_session or action == ACTION_ATTACHED,
                resume_id=request.resume_id,
            )
            exit_code = self._attach(plan, session_name=session_name)
            conversation_id = self._record_named_session(session_name, name) if session_name else None
            self._echo_exit(name)
            self._log("Session in %s finished", name, operation=SESSION_STATE_DONE, result=action, container=name)
            return SessionOutcome(
                container_name=name,
                action=action,
                attached=True,
                folder_set=folder_set,
                session_name=session_name,
                conversation_id=conversation_id,
                exit_code=exit_code,
            )

    def continue_session(self, targets: Sequence[str] = (), *, session_name: str | None = None) -> SessionOutcome:
        with self._tracked("continue"):
            self.gateway.ping()
            named: NamedSession | None = None
            if session_name:
                session_name = validate_session_name(session_name)
                named = self.registry.get_session(session_name)
                if named is None:
                    raise SessionNotFoundError(
                        f"Named session '{session_name}' not found. Use 'run -n {session_name}' to create it."
                    )
            if not targets and named is not None and named.container_name:
                identity = ResolvedIdentity(
                    named.container_name,
                    IDENTITY_SOURCE_NAMED_SESSION,
                    self._known_folder_set(named.container_name),
                )
            else:
                identity = self.resolve_target(targets)
            name = identity.container_name
            if identity.folder_set is not None:
                self.builder.ensure_image()

            with self.registry.locked():
                action = self._ensure_running(identity)
                self.registry.set_last_session(name)

            if named is not None:
                self.click_echo(
                    click.style(
                        f"Resuming session '{named.name}' (conversation: {short_id(named.conversation_id)}) "
                        f"in container '{name}'...",
                        fg="cyan",
                    )
                )
                plan = AssistantLaunchPlan(container_name=name, resume_id=named.conversation_id)
            else:
                self.click_echo(click.style(f"Continuing last conversation in container '{name}'...", fg="cyan"))
                plan = AssistantLaunchPlan(container_name=name, continue_session=True)
            exit_code = self._attach(plan, session_name=session_name)
            conversation_id = self._record_named_session(named.name, name) if named is not None else None
            self._echo_exit(name)
            self._log("Continued %s", name, operation=SESSION_STATE_DONE, result=action, container=name)
            return SessionOutcome(
                container_name=name,
                action=action,
                attached=True,
                folder_set=identity.folder_set,
                session_name=session_name,
                conversation_id=conversation_id,
                exit_code=exit_code,
            )

    def resume(self, conversation_id: str | None = None, *, target: Sequence[str] | str | None = None) -> SessionOutcome:
        with self._tracked("resume"):
            self.gateway.ping()
            conversation = str(conversation_id or "").strip() or None
            named = self.registry.find_session_by_conversation(conversation) if conversation else None
            if not target and named is not None and named.container_name:
                identity = ResolvedIdentity(
                    named.container_name,
                    IDENTITY_SOURCE_NAMED_SESSION,
                    self._known_folder_set(named.container_name),
                )
            else:
                identity = self.resolve_target(target)
            name = identity.container_name
            if identity.folder_set is not None:
                self.builder.ensure_image()

            with self.registry.locked():
                action = self._ensure_running(identity)
                self.registry.set_last_session(name)

            self._log(
                "Resuming %s in %s",
                conversation or "<picker>",
                name,
                operation=SESSION_STATE_RESUMING,
                container=name,
            )
            if conversation:
                self.click_echo(click.style(f"Resuming conversation '{conversation}' in container '{name}'...", fg="cyan"))
            else:
                self.click_echo(click.style(f"Opening conversation picker in container '{name}'...", fg="cyan"))
            plan = AssistantLaunchPlan(
                container_name=name,
                resume_id=conversation,
                pick_conversation=conversation is None,
            )
            exit_code = self._attach(plan)
            self._echo_exit(name)
            return SessionOutcome(
                container_name=name,
                action=action,
                attached=True,
                folder_set=identity.folder_set,
                session_name=named.name if named is not None else None,
                conversation_id=conversation,
                exit_code=exit_code,
            )

    def shell(self, targets: Sequence[str] | str | None = None) -> int:
        with self._tracked("shell"):
            self.gateway.ping()
            identity = self.resolve_target(targets)
            name = identity.container_name
            with self.registry.locked():
                state = self._reconcile(name)
                if state == RUNTIME_STATE_ABSENT:
                    raise SessionNotFoundError(f"Container '{name}' does not exist. Use 'run <folders>' to start it.")
                if state != RUNTIME_STATE_RUNNING:
                    self.click_echo(click.style(f"Starting stopped container '{name}'...", fg="cyan"))
                    self.gateway.start(name)
                self.registry.set_last_session(name)
            self.click_echo(click.style(f"Opening shell in container '{name}'...", fg="cyan"))
            self._log("Opening shell in %s", name, operation=SESSION_STATE_ATTACHING, container=name)
            return self.gateway.exec_shell(name)

    def stop(self, targets: Sequence[str] | str | None = None) -> list[str]:
        """Stop containers; registry bindings are kept so they can be resumed."""
        with self._tracked("stop"):
            self.gateway.ping()
            if isinstance(targets, str):
                targets = (targets,)
            values = [str(value).strip() for value in (targets or ()) if str(value).strip()]
            if values == [STOP_ALL_TARGET]:
                names = self.gateway.list_by_label(self.label)
                if not names:
                    self.click_echo("No containers to stop.")
                    return []
                self.click_echo(click.style("Stopping all Claude sandbox containers...", fg="cyan"))
            else:
                identity = self.resolve_target(values)
                names = [identity.container_name]
                if self.gateway.find_by_name(identity.container_name) == RUNTIME_STATE_ABSENT:
                    raise SessionNotFoundError(f"Container '{identity.container_name}' does not exist")

            stopped: list[str] = []
            for name in names:
                if self.gateway.find_by_name(name) != RUNTIME_STATE_RUNNING:
                    self.click_echo(f"  Container '{name}' is not running")
                    continue
                self.click_echo(click.style(f"Stopping container '{name}'...", fg="cyan"))
                self.gateway.stop(name)
                stopped.append(name)
            self.click_echo(click.style("✓", fg="green") + f" Stopped {len(stopped)} container(s)")
            return stopped

    def status(self, targets: Sequence[str] | str | None = None) -> StatusReport:
        with self._tracked("status"):
            self.gateway.ping()
            identity = self.resolve_target(targets)
            name = identity.container_name
            state = self._reconcile(name)
            entry = self.registry.folders_for_container(name)
            session_names = tuple(
                session.name for session in self.registry.list_sessions() if session.container_name == name
            )
            return StatusReport(
                container_name=name,
                runtime_state=state,
                registered=entry is not None,
                folder_paths=entry.folder_paths if entry is not None else (),
                session_names=session_names,
            )

    def list_sessions(self) -> ListReport:
        with self._tracked("list"):
            self.gateway.ping()
            listings: list[SessionListing] = []
            seen: set[str] = set()
            for entry in self.registry.list_entries():
                seen.add(entry.container_name)
                listings.append(
                    SessionListing(
                        container_name=entry.container_name,
                        runtime_state=self.gateway.find_by_name(entry.container_name),
                        registered=True,
                        folder_paths=entry.folder_paths,
                        created_at=entry.created_at,
                    )
                )
            for name in self.gateway.list_by_label(self.label):
                if name in seen:
                    continue
                listings.append(
                    SessionListing(
                        container_name=name,
                        runtime_state=self.gateway.find_by_name(name),
                        registered=False,
                    )
                )
            return ListReport(
                containers=tuple(listings),
                sessions=tuple(self.registry.list_sessions()),
                last_session=self.registry.get_last_session(),
            )

    def reset(self, *, force: bool = False, confirm: Callable[[], bool] | None = None) -> bool:
        with self._tracked("reset"):
            return self.registry.reset_all(force=force, confirm=confirm)

    def build(self, *, no_cache: bool = False) -> None:
        with self._tracked("build"):
            self.gateway.ping()
            self.builder.build(no_cache=no_cache)
