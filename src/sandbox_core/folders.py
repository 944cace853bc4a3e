from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .errors import InvalidPathError

FOLDER_KEY_SEPARATOR = ":"


@dataclass(frozen=True)
class FolderSet:
    """Canonical, order-independent set of project directories."""

    paths: tuple[Path, ...]

    def __post_init__(self) -> None:
        if not self.paths:
            raise InvalidPathError("A folder set must contain at least one folder.")

    def key(self) -> str:
        return FOLDER_KEY_SEPARATOR.join(str(path) for path in self.paths)

    def as_strings(self) -> list[str]:
        return [str(path) for path in self.paths]

    def names(self) -> list[str]:
        return [path.name for path in self.paths]

    def __contains__(self, path: object) -> bool:
        return path in self.paths

    def __len__(self) -> int:
        return len(self.paths)

    def __str__(self) -> str:
        return ", ".join(self.as_strings())


def _is_case_insensitive_dir(path: Path) -> bool:
    swapped = path.name.swapcase()
    if not path.name or swapped == path.name:
        return False
    probe = path.with_name(swapped)
    try:
        return probe.exists() and os.path.samefile(probe, path)
    except OSError:
        return False


def normalize_folder(raw_path: str | os.PathLike[str]) -> Path:
    """Resolve one folder argument to an absolute, symlink-free directory path."""
    text = os.fspath(raw_path)
    if not str(text).strip():
        raise InvalidPathError("Folder path must not be empty.")
    candidate = Path(text).expanduser()
    if not candidate.exists():
        raise InvalidPathError(f"Cannot access folder: {text} (does not exist)")
    if not candidate.is_dir():
        raise InvalidPathError(f"Cannot access folder: {text} (not a directory)")
    try:
        resolved = candidate.resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        raise InvalidPathError(f"Cannot access folder: {text} ({exc})") from exc
    normalized = Path(os.path.normcase(str(resolved)))
    if normalized == resolved and _is_case_insensitive_dir(resolved):
        normalized = Path(str(resolved).lower())
    return normalized


def normalize_folders(raw_paths: Iterable[str | os.PathLike[str]]) -> FolderSet:
    """Build a FolderSet: resolve, deduplicate and sort lexicographically."""
    resolved: set[Path] = set()
    for raw_path in raw_paths:
        resolved.add(normalize_folder(raw_path))
    if not resolved:
        raise InvalidPathError("At least one folder is required.")
    return FolderSet(paths=tuple(sorted(resolved, key=str)))
