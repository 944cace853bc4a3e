from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sandbox_core.config import DEFAULT_LOCK_TIMEOUT_SECONDS
from sandbox_core.errors import ConfirmationRequiredError
from sandbox_core.folders import FolderSet
from sandbox_core.logging import log_extra
from sandbox_core.paths import SandboxPaths

from .locking import DEFAULT_POLL_INTERVAL_SECONDS, RegistryLock
from .state_file import JsonStateFile, write_atomic_text

LOGGER = logging.getLogger("claude_sandbox.registry")

REGISTRY_SCHEMA_VERSION = 1


def _iso_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _new_folder_registry() -> dict[str, Any]:
    return {"version": REGISTRY_SCHEMA_VERSION, "folders": {}}


def _new_sessions_registry() -> dict[str, Any]:
    return {"version": REGISTRY_SCHEMA_VERSION, "sessions": {}}


@dataclass(frozen=True)
class RegistryEntry:
    key: str
    container_name: str
    folder_paths: tuple[str, ...]
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class NamedSession:
    name: str
    conversation_id: str
    container_name: str = ""
    updated_at: str = ""


def _table(state: dict[str, Any], key: str) -> dict[str, Any]:
    table = state.get(key)
    if not isinstance(table, dict):
        table = {}
        state[key] = table
    return table


def _entry_from_record(key: str, record: Any) -> RegistryEntry | None:
    if not isinstance(record, dict):
        return None
    container_name = str(record.get("container_name") or "").strip()
    if not container_name:
        return None
    raw_paths = record.get("folder_paths")
    if isinstance(raw_paths, list) and raw_paths:
        folder_paths = tuple(str(path) for path in raw_paths)
    else:
        folder_paths = tuple(part for part in key.split(":") if part)
    return RegistryEntry(
        key=key,
        container_name=container_name,
        folder_paths=folder_paths,
        created_at=str(record.get("created_at") or ""),
        updated_at=str(record.get("updated_at") or ""),
    )


def _session_from_record(name: str, record: Any) -> NamedSession | None:
    # Older registries stored the bare conversation id.
    if isinstance(record, str):
        conversation_id = record.strip()
        return NamedSession(name=name, conversation_id=conversation_id) if conversation_id else None
    if not isinstance(record, dict):
        return None
    conversation_id = str(record.get("conversation_id") or "").strip()
    if not conversation_id:
        return None
    return NamedSession(
        name=name,
        conversation_id=conversation_id,
        container_name=str(record.get("container_name") or "").strip(),
        updated_at=str(record.get("updated_at") or ""),
    )


class RegistryStore:
    """Persistent folder-set, named-session and last-session mappings.

    Every public mutation runs under the registry lock and rewrites its file
    atomically. Reads also take the lock so they never observe a
    half-finished read-modify-write from another process.
    """

    def __init__(
        self,
        paths: SandboxPaths,
        *,
        lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        clock: Callable[[], str] = _iso_now,
    ) -> None:
        self.paths = paths
        self._clock = clock
        self._lock = RegistryLock(
            paths.lock_file,
            timeout_seconds=lock_timeout_seconds,
            poll_interval_seconds=poll_interval_seconds,
        )
        self._folders = JsonStateFile(state_file=paths.folder_registry_file, new_state_factory=_new_folder_registry)
        self._sessions = JsonStateFile(state_file=paths.named_sessions_file, new_state_factory=_new_sessions_registry)

    @contextmanager
    def locked(self) -> Iterator["RegistryStore"]:
        with self._lock.hold():
            yield self

    # Folder set -> container name

    def get_entry(self, folder_set: FolderSet) -> RegistryEntry | None:
        key = folder_set.key()
        with self.locked():
            state = self._folders.load_raw()
        return _entry_from_record(key, _table(state, "folders").get(key))

    def get_container_for(self, folder_set: FolderSet) -> str | None:
        entry = self.get_entry(folder_set)
        return entry.container_name if entry is not None else None

    def put_container_for(self, folder_set: FolderSet, container_name: str, *, rebind: bool = False) -> RegistryEntry:
        """Bind ``folder_set`` to ``container_name``.

        With ``rebind`` any other folder set bound to the same name is
        released, so the name keeps a single binding.
        """
        key = folder_set.key()
        now = self._clock()

        def mutate(state: dict[str, Any]) -> RegistryEntry:
            state["version"] = REGISTRY_SCHEMA_VERSION
            folders = _table(state, "folders")
            if rebind:
                for other_key in [k for k, v in folders.items() if k != key]:
                    other = _entry_from_record(other_key, folders[other_key])
                    if other is not None and other.container_name == container_name:
                        del folders[other_key]
                        LOGGER.info(
                            "Released folder binding %s from %s",
                            other_key,
                            container_name,
                            extra=log_extra(
                                component="registry",
                                operation="rebind",
                                result="released",
                                container=container_name,
                            ),
                        )
            existing = folders.get(key)
            record = dict(existing) if isinstance(existing, dict) else {}
            if record.get("container_name") != container_name or not record.get("created_at"):
                record["created_at"] = now
            record["container_name"] = container_name
            record["folder_paths"] = folder_set.as_strings()
            record["updated_at"] = now
            folders[key] = record
            return RegistryEntry(
                key=key,
                container_name=container_name,
                folder_paths=tuple(folder_set.as_strings()),
                created_at=record["created_at"],
                updated_at=now,
            )

        with self.locked():
            entry = self._folders.update(mutate)
        LOGGER.debug(
            "Bound %s to %s",
            key,
            container_name,
            extra=log_extra(component="registry", operation="put_container", result="ok", container=container_name),
        )
        return entry

    def list_entries(self) -> list[RegistryEntry]:
        with self.locked():
            state = self._folders.load_raw()
        entries = [_entry_from_record(key, record) for key, record in _table(state, "folders").items()]
        return sorted((entry for entry in entries if entry is not None), key=lambda e: (e.container_name, e.key))

    def folders_for_container(self, container_name: str) -> RegistryEntry | None:
        for entry in self.list_entries():
            if entry.container_name == container_name:
                return entry
        return None

    def container_for_folder(self, folder: Path) -> str | None:
        """Find the container for one folder: its own binding first, then any set containing it."""
        folder_text = str(folder)
        entries = self.list_entries()
        for entry in entries:
            if entry.folder_paths == (folder_text,):
                return entry.container_name
        for entry in entries:
            if folder_text in entry.folder_paths:
                return entry.container_name
        return None

    # Session name -> conversation

    def get_session(self, name: str) -> NamedSession | None:
        with self.locked():
            state = self._sessions.load_raw()
        return _session_from_record(name, _table(state, "sessions").get(name))

    def put_session(self, name: str, conversation_id: str, container_name: str) -> NamedSession:
        now = self._clock()

        def mutate(state: dict[str, Any]) -> NamedSession:
            state["version"] = REGISTRY_SCHEMA_VERSION
            sessions = _table(state, "sessions")
            existing = sessions.get(name)
            record = dict(existing) if isinstance(existing, dict) else {}
            record["conversation_id"] = conversation_id
            record["container_name"] = container_name
            record["updated_at"] = now
            sessions[name] = record
            return NamedSession(
                name=name,
                conversation_id=conversation_id,
                container_name=container_name,
                updated_at=now,
            )

        with self.locked():
            session = self._sessions.update(mutate)
        LOGGER.debug(
            "Saved named session %s",
            name,
            extra=log_extra(
                component="registry",
                operation="put_session",
                result="ok",
                container=container_name,
                session=name,
            ),
        )
        return session

    def list_sessions(self) -> list[NamedSession]:
        with self.locked():
            state = self._sessions.load_raw()
        sessions = [_session_from_record(str(name), record) for name, record in _table(state, "sessions").items()]
        return sorted((session for session in sessions if session is not None), key=lambda s: s.name)

    def find_session_by_conversation(self, conversation_id: str) -> NamedSession | None:
        wanted = str(conversation_id or "").strip()
        if not wanted:
            return None
        for session in self.list_sessions():
            if session.conversation_id == wanted:
                return session
        return None

    # Last session pointer

    def get_last_session(self) -> str | None:
        with self.locked():
            path = self.paths.last_session_file
            if not path.exists():
                return None
            value = path.read_text(encoding="utf-8").strip()
        return value or None

    def set_last_session(self, container_name: str) -> None:
        with self.locked():
            write_atomic_text(self.paths.last_session_file, f"{container_name}\n")

    # Reset

    def reset_all(self, *, force: bool = False, confirm: Callable[[], bool] | None = None) -> bool:
        """Delete all registry files and every isolated per-container subtree.

        Returns False when the caller's confirmation declines. Irreversible.
        """
        if not force:
            if confirm is None:
                raise ConfirmationRequiredError(
                    f"Resetting {self.paths.config_root} requires --force or an explicit confirmation."
                )
            if not confirm():
                return False
        with self.locked():
            removed: list[str] = []
            for path in self.paths.registry_files():
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
                removed.append(path.name)
            if self.paths.containers_dir.exists():
                shutil.rmtree(self.paths.containers_dir)
                removed.append(self.paths.containers_dir.name)
        LOGGER.info(
            "Reset registry at %s removed=%s",
            self.paths.config_root,
            ",".join(removed) or "-",
            extra=log_extra(component="registry", operation="reset", result="ok"),
        )
        return True
