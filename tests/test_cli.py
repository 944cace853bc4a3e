from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from conftest import FakeRuntimeGateway, make_lifecycle_service
from sandbox_cli.cli import build_lifecycle_service, cli
from sandbox_core.errors import ConfigError
from sandbox_core.paths import CONFIG_ROOT_ENV


def _invoke(service, args: list[str], **kwargs):
    return CliRunner().invoke(cli, args, obj=service, catch_exceptions=False, **kwargs)


def test_run_then_status_and_list(sandbox_root, workspace) -> None:
    proj = workspace / "proj"
    proj.mkdir()
    gateway = FakeRuntimeGateway()
    service = make_lifecycle_service(sandbox_root, gateway)

    run_result = _invoke(service, ["run", str(proj), "--background", "-p", "8080"])
    status_result = _invoke(service, ["status"])
    list_result = _invoke(service, ["list"])

    assert run_result.exit_code == 0, run_result.output
    assert gateway.created[0].ports == ("8080:8080",)
    assert status_result.exit_code == 0
    assert "claude-proj" in status_result.output
    assert "running" in status_result.output
    assert str(proj.resolve()) in list_result.output


def test_run_passes_prompt_file_and_flags(sandbox_root, workspace) -> None:
    proj = workspace / "proj"
    proj.mkdir()
    prompt_file = workspace / "prompt.md"
    prompt_file.write_text("Refactor the parser", encoding="utf-8")
    gateway = FakeRuntimeGateway()
    service = make_lifecycle_service(sandbox_root, gateway)

    result = _invoke(service, ["run", str(proj), "-f", str(prompt_file), "--dangerously-skip-permissions"])

    assert result.exit_code == 0, result.output
    plan = gateway.exec_plans[0]
    assert plan.prompt == "Refactor the parser"
    assert plan.skip_permissions is True


def test_typed_errors_map_to_distinct_exit_codes(sandbox_root, workspace) -> None:
    service = make_lifecycle_service(sandbox_root, FakeRuntimeGateway())

    missing = _invoke(service, ["run", str(workspace / "missing")])
    no_session = _invoke(service, ["status"])
    bad_name = _invoke(service, ["continue", "-n", "bad name"])

    assert missing.exit_code == 3
    assert "missing" in missing.output
    assert no_session.exit_code == 9
    assert bad_name.exit_code == 8


def test_runtime_unavailable_exit_code(sandbox_root, workspace) -> None:
    proj = workspace / "proj"
    proj.mkdir()
    service = make_lifecycle_service(sandbox_root, FakeRuntimeGateway(available=False))

    result = _invoke(service, ["run", str(proj)])

    assert result.exit_code == 6
    assert "Docker is not running" in result.output


def test_conflicting_prompt_options_are_usage_errors(sandbox_root, workspace) -> None:
    proj = workspace / "proj"
    proj.mkdir()
    prompt_file = workspace / "prompt.md"
    prompt_file.write_text("x", encoding="utf-8")
    service = make_lifecycle_service(sandbox_root, FakeRuntimeGateway())

    result = CliRunner().invoke(cli, ["run", str(proj), "--prompt", "y", "-f", str(prompt_file)], obj=service)

    assert result.exit_code == 2


def test_stop_all_and_stop_target(sandbox_root, workspace) -> None:
    proj = workspace / "proj"
    proj.mkdir()
    gateway = FakeRuntimeGateway()
    service = make_lifecycle_service(sandbox_root, gateway)
    _invoke(service, ["run", str(proj), "--background"])

    result = _invoke(service, ["stop", "all"])

    assert result.exit_code == 0
    assert gateway.stopped == ["claude-proj"]
    assert _invoke(service, ["stop", "claude-unknown"]).exit_code == 9


def test_reset_prompts_and_can_be_declined(sandbox_root) -> None:
    service = make_lifecycle_service(sandbox_root, FakeRuntimeGateway())
    service.registry.set_last_session("claude-proj")

    declined = _invoke(service, ["reset"], input="n\n")
    assert declined.exit_code == 0
    assert "Aborted" in declined.output
    assert service.registry.get_last_session() == "claude-proj"

    forced = _invoke(service, ["reset", "--force"])
    assert forced.exit_code == 0
    assert service.registry.get_last_session() is None


def test_build_command_forwards_no_cache(sandbox_root) -> None:
    gateway = FakeRuntimeGateway()
    service = make_lifecycle_service(sandbox_root, gateway)

    result = _invoke(service, ["build", "--no-cache"])

    assert result.exit_code == 0
    assert gateway.builds[0]["no_cache"] is True


def test_completions_prints_shell_script(sandbox_root) -> None:
    service = make_lifecycle_service(sandbox_root, FakeRuntimeGateway())

    result = _invoke(service, ["completions", "zsh"])

    assert result.exit_code == 0
    assert "_CLAUDE_SANDBOX_COMPLETE" in result.output


def test_build_lifecycle_service_reads_config_root_from_environment(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    (root / "config.toml").write_text(
        "[paths]\n\n[runtime]\nimage = \"custom-image\"\nlock_timeout_seconds = 1\n\n"
        "[limits]\nmemory = \"2g\"\n\n[logging]\nlevel = \"error\"\n",
        encoding="utf-8",
    )

    service = build_lifecycle_service(environ={CONFIG_ROOT_ENV: str(root)})

    assert service.registry.paths.config_root == root
    assert service.image == "custom-image"
    assert service.default_memory == "2g"
    assert service.policy.global_root == root


def test_build_lifecycle_service_rejects_missing_explicit_config(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Missing config file"):
        build_lifecycle_service(config_file=tmp_path / "nope.toml", environ={CONFIG_ROOT_ENV: str(tmp_path)})
