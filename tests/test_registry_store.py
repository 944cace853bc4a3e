from __future__ import annotations

import json
import os
import threading
from pathlib import Path

import pytest

from sandbox_core.errors import ConfirmationRequiredError, RegistryBusyError, RegistryCorruptError
from sandbox_core.folders import normalize_folders
from sandbox_core.paths import SandboxPaths
from sandbox_core.store import JsonStateFile, RegistryLock, RegistryStore, write_atomic_text
from sandbox_core.store import state_file as state_file_module


def _store(root: Path, **kwargs) -> RegistryStore:
    return RegistryStore(SandboxPaths(root), clock=lambda: "2026-01-02T03:04:05Z", **kwargs)


def _folders(base: Path, *names: str):
    for name in names:
        (base / name).mkdir(parents=True, exist_ok=True)
    return normalize_folders([base / name for name in names])


def test_put_and_get_container_round_trip(sandbox_root, workspace) -> None:
    store = _store(sandbox_root)
    folder_set = _folders(workspace, "proj-a", "lib")

    entry = store.put_container_for(folder_set, "claude-lib-proj-a")

    assert store.get_container_for(folder_set) == "claude-lib-proj-a"
    assert entry.created_at == "2026-01-02T03:04:05Z"
    persisted = json.loads(store.paths.folder_registry_file.read_text(encoding="utf-8"))
    record = persisted["folders"][folder_set.key()]
    assert record["container_name"] == "claude-lib-proj-a"
    assert record["folder_paths"] == folder_set.as_strings()


def test_put_returns_entry_matching_the_stored_record(sandbox_root, workspace) -> None:
    store = _store(sandbox_root)
    folder_set = _folders(workspace, "proj")

    entry = store.put_container_for(folder_set, "claude-proj")

    assert entry == store.get_entry(folder_set)
    assert entry.folder_paths == tuple(folder_set.as_strings())
    assert entry.updated_at == "2026-01-02T03:04:05Z"


def test_lookup_is_independent_of_argument_order(sandbox_root, workspace) -> None:
    store = _store(sandbox_root)
    store.put_container_for(_folders(workspace, "b", "a"), "claude-a-b")

    assert store.get_container_for(_folders(workspace, "a", "b")) == "claude-a-b"


def test_unknown_fields_survive_rewrites(sandbox_root, workspace) -> None:
    store = _store(sandbox_root)
    folder_set = _folders(workspace, "proj")
    store.paths.folder_registry_file.write_text(
        json.dumps(
            {
                "folders": {folder_set.key(): {"container_name": "claude-proj", "pinned": True}},
                "future_table": {"x": 1},
            }
        ),
        encoding="utf-8",
    )

    store.put_container_for(_folders(workspace, "other"), "claude-other")

    persisted = json.loads(store.paths.folder_registry_file.read_text(encoding="utf-8"))
    assert persisted["future_table"] == {"x": 1}
    assert persisted["folders"][folder_set.key()]["pinned"] is True
    assert store.get_container_for(folder_set) == "claude-proj"


def test_rebind_releases_previous_folder_set(sandbox_root, workspace) -> None:
    store = _store(sandbox_root)
    first = _folders(workspace, "one")
    second = _folders(workspace, "two")
    store.put_container_for(first, "box")

    store.put_container_for(second, "box", rebind=True)

    assert store.get_container_for(first) is None
    assert store.folders_for_container("box").key == second.key()


def test_container_for_folder_prefers_exact_binding(sandbox_root, workspace) -> None:
    store = _store(sandbox_root)
    together = _folders(workspace, "app", "lib")
    alone = _folders(workspace, "app")
    store.put_container_for(together, "claude-app-lib")
    store.put_container_for(alone, "claude-app")

    assert store.container_for_folder(alone.paths[0]) == "claude-app"
    assert store.container_for_folder(together.paths[1]) == "claude-app-lib"
    assert store.container_for_folder(workspace / "elsewhere") is None


def test_legacy_session_records_are_read(sandbox_root) -> None:
    store = _store(sandbox_root)
    store.paths.named_sessions_file.write_text(
        json.dumps({"sessions": {"old": "0f8fad5b-d9cb-469f-a165-70867728950e"}}),
        encoding="utf-8",
    )

    session = store.get_session("old")

    assert session is not None
    assert session.conversation_id == "0f8fad5b-d9cb-469f-a165-70867728950e"
    assert session.container_name == ""

    store.put_session("old", "new-conversation", "claude-proj")
    assert store.get_session("old").container_name == "claude-proj"
    assert store.find_session_by_conversation("new-conversation").name == "old"


def test_last_session_pointer_is_overwritten(sandbox_root) -> None:
    store = _store(sandbox_root)
    assert store.get_last_session() is None

    store.set_last_session("claude-a")
    store.set_last_session("claude-b")

    assert store.get_last_session() == "claude-b"


def test_corrupt_registry_is_preserved_and_reported(sandbox_root, workspace) -> None:
    store = _store(sandbox_root)
    store.paths.folder_registry_file.write_text("{not json", encoding="utf-8")

    with pytest.raises(RegistryCorruptError, match="folder_registry.json"):
        store.get_container_for(_folders(workspace, "proj"))

    preserved = list(sandbox_root.glob("folder_registry.json.corrupt-*"))
    assert len(preserved) == 1
    assert preserved[0].read_text(encoding="utf-8") == "{not json"
    assert store.get_container_for(_folders(workspace, "proj")) is None


def test_non_object_registry_is_corrupt(tmp_path) -> None:
    state_file = tmp_path / "state.json"
    state_file.write_text("[]", encoding="utf-8")
    store = JsonStateFile(state_file=state_file, new_state_factory=dict)

    with pytest.raises(RegistryCorruptError, match="JSON object"):
        store.load_raw()


def test_crash_during_write_leaves_previous_value(tmp_path, monkeypatch) -> None:
    target = tmp_path / "last_session"
    write_atomic_text(target, "claude-old\n")

    def crash(src, dst) -> None:
        raise OSError("simulated crash")

    monkeypatch.setattr(state_file_module.os, "replace", crash)
    with pytest.raises(OSError, match="simulated crash"):
        write_atomic_text(target, "claude-new\n")

    assert target.read_text(encoding="utf-8") == "claude-old\n"
    assert [path.name for path in tmp_path.iterdir()] == ["last_session"]


def test_atomic_write_is_private(tmp_path) -> None:
    target = tmp_path / "nested" / "registry.json"

    write_atomic_text(target, "{}\n")

    assert target.read_text(encoding="utf-8") == "{}\n"
    assert (os.stat(target).st_mode & 0o777) == 0o600


def test_lock_held_by_another_holder_times_out(sandbox_root) -> None:
    holder = _store(sandbox_root)
    waiter = _store(sandbox_root, lock_timeout_seconds=0.1, poll_interval_seconds=0.01)

    with holder.locked():
        with pytest.raises(RegistryBusyError, match="locked by another"):
            waiter.get_last_session()

    assert waiter.get_last_session() is None


def test_lock_is_reentrant_for_the_same_store(sandbox_root) -> None:
    lock = RegistryLock(sandbox_root / ".registry.lock", timeout_seconds=0.1)

    with lock.hold():
        with lock.hold():
            assert lock.held is True
        assert lock.held is True
    assert lock.held is False


def test_lock_serializes_read_modify_write_across_stores(sandbox_root, workspace) -> None:
    folder_sets = [_folders(workspace, f"proj-{index}") for index in range(8)]

    def worker(index: int) -> None:
        _store(sandbox_root).put_container_for(folder_sets[index], f"claude-proj-{index}")

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(len(folder_sets))]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(_store(sandbox_root).list_entries()) == len(folder_sets)


def test_reset_requires_force_or_confirmation(sandbox_root) -> None:
    store = _store(sandbox_root)
    store.set_last_session("claude-proj")

    with pytest.raises(ConfirmationRequiredError):
        store.reset_all()
    assert store.reset_all(confirm=lambda: False) is False
    assert store.get_last_session() == "claude-proj"


def test_reset_removes_registry_and_isolated_state_only(sandbox_root, workspace) -> None:
    store = _store(sandbox_root)
    store.put_container_for(_folders(workspace, "proj"), "claude-proj")
    store.put_session("feature", "conversation", "claude-proj")
    store.set_last_session("claude-proj")
    isolated = sandbox_root / "containers" / "claude-proj" / "conversations"
    isolated.mkdir(parents=True)
    shared = sandbox_root / ".claude"
    shared.mkdir()

    assert store.reset_all(confirm=lambda: True) is True

    for path in store.paths.registry_files():
        assert not path.exists()
    assert not (sandbox_root / "containers").exists()
    assert shared.is_dir()
    assert store.list_entries() == []
    assert store.list_sessions() == []
