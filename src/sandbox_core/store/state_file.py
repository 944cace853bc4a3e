from __future__ import annotations

import json
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from sandbox_core.errors import RegistryCorruptError


def write_atomic_text(path: Path, content: str) -> None:
    """Write ``content`` to a temp file beside ``path`` and rename it over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = path.parent / f".{path.name}.{uuid.uuid4().hex}.tmp"
    fd = os.open(str(tmp_path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fp:
            fp.write(content)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


class JsonStateFile:
    """One JSON object on disk, replaced atomically on every save.

    Callers serialize access with the registry lock; this class only makes
    each individual write crash-safe.
    """

    def __init__(self, *, state_file: Path, new_state_factory: Callable[[], dict[str, Any]]) -> None:
        self.state_file = Path(state_file)
        self._new_state_factory = new_state_factory

    def load_raw(self) -> dict[str, Any]:
        if not self.state_file.exists():
            return self._new_state_factory()
        try:
            loaded = json.loads(self.state_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            preserved_state_path = self._preserve_corrupt_state_file()
            raise RegistryCorruptError(
                f"Registry file {self.state_file.name} is corrupt JSON and was moved to {preserved_state_path}."
            ) from exc
        if not isinstance(loaded, dict):
            preserved_state_path = self._preserve_corrupt_state_file()
            raise RegistryCorruptError(
                f"Registry file {self.state_file.name} must contain a JSON object and was moved to "
                f"{preserved_state_path}."
            )
        return loaded

    def save_raw(self, state: dict[str, Any]) -> None:
        write_atomic_text(self.state_file, json.dumps(state, indent=2, sort_keys=True) + "\n")

    def update(self, mutate: Callable[[dict[str, Any]], Any]) -> Any:
        state = self.load_raw()
        result = mutate(state)
        self.save_raw(state)
        return result

    def _preserve_corrupt_state_file(self) -> Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        base_name = f"{self.state_file.name}.corrupt-{timestamp}"
        preserved_path = self.state_file.with_name(base_name)
        suffix = 1
        while preserved_path.exists():
            preserved_path = self.state_file.with_name(f"{base_name}.{suffix}")
            suffix += 1
        try:
            self.state_file.replace(preserved_path)
        except OSError as exc:
            raise RegistryCorruptError(
                f"Failed to preserve corrupt registry file {self.state_file}: {exc}"
            ) from exc
        return preserved_path
