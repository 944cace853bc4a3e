from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click
from click.shell_completion import get_completion_class

from sandbox_core.config import SandboxConfig, load_optional_sandbox_config, load_sandbox_config
from sandbox_core.errors import ConfigError, TypedSandboxError, typed_error_exit_code
from sandbox_core.logging import (
    DEFAULT_LOG_LEVEL,
    LOG_LEVEL_CHOICES,
    configure_domain_log_levels,
    configure_structured_logger,
    log_extra,
    normalize_log_level,
)
from sandbox_core.partition import StatePartitionPolicy
from sandbox_core.paths import SandboxPaths, resolve_config_root
from sandbox_core.shared import short_id
from sandbox_core.store import RegistryStore

from .runtime import RUNTIME_STATE_RUNNING, DockerRuntimeGateway
from .services import BuildService, LifecycleService, SessionRequest

LOGGER = logging.getLogger("claude_sandbox")

PROG_NAME = "claude-sandbox"
COMPLETION_VAR = "_CLAUDE_SANDBOX_COMPLETE"
COMPLETION_SHELLS = ("bash", "zsh", "fish")


class SandboxCommandError(click.ClickException):
    """ClickException that keeps the exit code of the typed error it wraps."""

    def __init__(self, exc: BaseException) -> None:
        super().__init__(str(exc))
        self.exit_code = typed_error_exit_code(exc)


@contextmanager
def _surface_typed_errors() -> Iterator[None]:
    try:
        yield
    except TypedSandboxError as exc:
        raise SandboxCommandError(exc) from exc


def _resolve_log_level(log_level: str | None, config: SandboxConfig | None) -> str:
    cli_value = str(log_level or "").strip()
    if cli_value:
        return normalize_log_level(cli_value)
    config_value = ""
    if config is not None and isinstance(config.logging.values, dict):
        config_value = str(config.logging.values.get("level") or "").strip()
    if config_value:
        return normalize_log_level(config_value)
    return DEFAULT_LOG_LEVEL


def _configure_logging(level: str, config: SandboxConfig | None) -> None:
    configure_structured_logger(LOGGER, level=level)
    if config is None or not isinstance(config.logging.values, dict):
        return
    configure_domain_log_levels(
        domains=config.logging.values.get("domains"),
        logger_prefix=LOGGER.name,
        normalize_level=normalize_log_level,
    )


def build_lifecycle_service(
    *,
    config_file: Path | None = None,
    log_level: str | None = None,
    environ: Mapping[str, str] | None = None,
    click_echo: Any = click.echo,
) -> LifecycleService:
    base_paths = SandboxPaths(resolve_config_root(environ))
    if config_file is not None:
        if not Path(config_file).exists():
            raise ConfigError(f"Missing config file: {config_file}")
        config = load_sandbox_config(config_file)
    else:
        config = load_optional_sandbox_config(base_paths.config_file)
    _configure_logging(_resolve_log_level(log_level, config), config)

    paths = SandboxPaths(resolve_config_root(environ, configured=config.paths.config_root))
    gateway = DockerRuntimeGateway(
        startup_wait_seconds=config.runtime.startup_wait_seconds,
        command_timeout_seconds=config.runtime.command_timeout_seconds,
    )
    builder = BuildService(gateway=gateway, image=config.runtime.image, paths=paths, click_echo=click_echo)
    service = LifecycleService(
        registry=RegistryStore(paths, lock_timeout_seconds=config.runtime.lock_timeout_seconds),
        gateway=gateway,
        policy=StatePartitionPolicy(paths.config_root),
        builder=builder,
        image=config.runtime.image,
        label=config.runtime.label,
        network=config.runtime.network,
        click_echo=click_echo,
        default_memory=config.limits.memory,
        default_cpus=config.limits.cpus,
    )
    LOGGER.debug(
        "Using config root %s image=%s",
        paths.config_root,
        config.runtime.image,
        extra=log_extra(
            component="startup",
            operation="configure",
            result="ok",
            invocation_id=service.invocation_id,
        ),
    )
    return service


@click.group(help="Run Claude Code in per-folder Docker sandboxes.")
@click.option(
    "--config-file",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config TOML file (default: <config root>/config.toml when present).",
)
@click.option(
    "--log-level",
    default=None,
    show_default="config logging.level or warning",
    type=click.Choice(LOG_LEVEL_CHOICES, case_sensitive=False),
    help="Diagnostic logging verbosity on stderr.",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Path | None, log_level: str | None) -> None:
    if ctx.obj is not None:
        if log_level:
            _configure_logging(normalize_log_level(log_level), None)
        return
    with _surface_typed_errors():
        ctx.obj = build_lifecycle_service(config_file=config_file, log_level=log_level)


@cli.command(help="Start a sandbox for FOLDERS, or attach to its existing container.")
@click.argument("folders", nargs=-1, required=True)
@click.option("--name", "-n", "session_name", default=None, help="Named session to create or resume later.")
@click.option("--container", "container", default=None, help="Explicit container name; binds the folders to it.")
@click.option("--memory", "-m", default=None, help="Memory limit, e.g. 4g.")
@click.option("--cpus", default=None, help="CPU limit, e.g. 2.")
@click.option("--port", "-p", "ports", multiple=True, help="PORT, HOST:CONTAINER or IP:HOST:CONTAINER.")
@click.option("--env", "-e", "env_vars", multiple=True, help="KEY=VALUE, or KEY to pass through.")
@click.option("--continue-session", "-c", is_flag=True, default=False, help="Continue the last conversation.")
@click.option("--resume", "-r", "resume_id", default=None, help="Resume a conversation by id.")
@click.option("--prompt", default=None, help="Initial prompt for Claude.")
@click.option(
    "--prompt-file",
    "-f",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read the initial prompt from a file.",
)
@click.option(
    "--dangerously-skip-permissions",
    "skip_permissions",
    is_flag=True,
    default=False,
    help="Pass --dangerously-skip-permissions to Claude.",
)
@click.option("--background", is_flag=True, default=False, help="Start the container without attaching.")
@click.option("--recreate", is_flag=True, default=False, help="Recreate an existing container (e.g. to change ports).")
@click.pass_obj
def run(
    service: LifecycleService,
    folders: tuple[str, ...],
    session_name: str | None,
    container: str | None,
    memory: str | None,
    cpus: str | None,
    ports: tuple[str, ...],
    env_vars: tuple[str, ...],
    continue_session: bool,
    resume_id: str | None,
    prompt: str | None,
    prompt_file: Path | None,
    skip_permissions: bool,
    background: bool,
    recreate: bool,
) -> None:
    if prompt and prompt_file is not None:
        raise click.UsageError("--prompt and --prompt-file are mutually exclusive")
    if continue_session and resume_id:
        raise click.UsageError("--continue-session and --resume are mutually exclusive")
    if prompt_file is not None:
        prompt = prompt_file.read_text(encoding="utf-8")
    request = SessionRequest(
        folders=folders,
        session_name=session_name,
        container_override=container,
        memory=memory,
        cpus=cpus,
        ports=ports,
        env_vars=env_vars,
        prompt=prompt,
        skip_permissions=skip_permissions,
        continue_session=continue_session,
        resume_id=resume_id,
        background=background,
        recreate=recreate,
    )
    with _surface_typed_errors():
        service.run(request)


@cli.command(name="continue", help="Continue the last conversation for TARGETS (folders or container name).")
@click.argument("targets", nargs=-1)
@click.option("--name", "-n", "session_name", default=None, help="Resume this named session.")
@click.pass_obj
def continue_command(service: LifecycleService, targets: tuple[str, ...], session_name: str | None) -> None:
    with _surface_typed_errors():
        service.continue_session(targets, session_name=session_name)


@cli.command(help="Resume CONVERSATION_ID, or pick one interactively when omitted.")
@click.argument("conversation_id", required=False)
@click.option("--target", "-t", "target", default=None, help="Folder or container name (default: last session).")
@click.pass_obj
def resume(service: LifecycleService, conversation_id: str | None, target: str | None) -> None:
    with _surface_typed_errors():
        service.resume(conversation_id, target=target)


@cli.command(help="Open a bash shell in the container for TARGETS.")
@click.argument("targets", nargs=-1)
@click.pass_obj
def shell(service: LifecycleService, targets: tuple[str, ...]) -> None:
    with _surface_typed_errors():
        service.shell(targets)


@cli.command(help="Stop the container for TARGETS, or every sandbox container with 'all'.")
@click.argument("targets", nargs=-1)
@click.pass_obj
def stop(service: LifecycleService, targets: tuple[str, ...]) -> None:
    with _surface_typed_errors():
        service.stop(targets)


@cli.command(help="Show runtime state and bindings for TARGETS (default: last session).")
@click.argument("targets", nargs=-1)
@click.pass_obj
def status(service: LifecycleService, targets: tuple[str, ...]) -> None:
    with _surface_typed_errors():
        report = service.status(targets)
    color = "green" if report.runtime_state == RUNTIME_STATE_RUNNING else "yellow"
    click.echo(f"Container: {click.style(report.container_name, fg='blue')}")
    click.echo(f"State:     {click.style(report.runtime_state, fg=color)}")
    if report.folder_paths:
        click.echo("Folders:")
        for folder in report.folder_paths:
            click.echo(f"  {folder}")
    else:
        click.echo("Folders:   (not registered)")
    if report.session_names:
        click.echo(f"Sessions:  {', '.join(report.session_names)}")


@cli.command(name="list", help="List registered containers and named sessions.")
@click.pass_obj
def list_command(service: LifecycleService) -> None:
    with _surface_typed_errors():
        report = service.list_sessions()
    if not report.containers:
        click.echo("No sandbox containers.")
    else:
        width = max(len(listing.container_name) for listing in report.containers)
        click.echo(click.style(f"{'CONTAINER':<{width}}  {'STATE':<8}  FOLDERS", bold=True))
        for listing in report.containers:
            marker = "*" if listing.container_name == report.last_session else " "
            folders = ", ".join(listing.folder_paths) or "(not registered)"
            click.echo(f"{listing.container_name:<{width}}  {listing.runtime_state:<8}  {folders} {marker}".rstrip())
    if report.sessions:
        click.echo("")
        click.echo(click.style("Named sessions:", bold=True))
        for session in report.sessions:
            container = session.container_name or "?"
            click.echo(f"  {session.name}: {short_id(session.conversation_id)} ({container})")


@cli.command(help="Build the sandbox image.")
@click.option("--no-cache", is_flag=True, default=False, help="Build without the docker layer cache.")
@click.pass_obj
def build(service: LifecycleService, no_cache: bool) -> None:
    with _surface_typed_errors():
        service.build(no_cache=no_cache)


@cli.command(help="Forget all folder bindings, named sessions and per-container conversations.")
@click.option("--force", is_flag=True, default=False, help="Skip the confirmation prompt.")
@click.pass_obj
def reset(service: LifecycleService, force: bool) -> None:
    root = service.registry.paths.config_root

    def confirm() -> bool:
        return click.confirm(f"Delete the session registry and per-container conversations under {root}?", default=False)

    with _surface_typed_errors():
        removed = service.reset(force=force, confirm=confirm)
    if removed:
        click.echo(click.style("✓", fg="green") + " Registry reset (shared credentials kept)")
    else:
        click.echo("Aborted.")


@cli.command(help="Print the shell completion script for SHELL.")
@click.argument("shell_name", metavar="SHELL", type=click.Choice(COMPLETION_SHELLS))
def completions(shell_name: str) -> None:
    completion_class = get_completion_class(shell_name)
    if completion_class is None:
        raise click.ClickException(f"Unsupported shell: {shell_name}")
    completion = completion_class(cli, {}, PROG_NAME, COMPLETION_VAR)
    click.echo(completion.source())


def main() -> None:
    cli(prog_name=PROG_NAME)


if __name__ == "__main__":
    main()
