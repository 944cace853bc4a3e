from __future__ import annotations

import re

from .errors import InvalidNameError
from .folders import FolderSet

CONTAINER_PREFIX = "claude"
MAX_CONTAINER_NAME_LENGTH = 64
FALLBACK_TOKEN = "project"

_INVALID_TOKEN_CHARS = re.compile(r"[^a-z0-9-]+")
_REPEATED_DASHES = re.compile(r"-{2,}")
_CONTAINER_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")
_SESSION_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def sanitize_token(value: str) -> str:
    lowered = str(value or "").lower()
    collapsed = _REPEATED_DASHES.sub("-", _INVALID_TOKEN_CHARS.sub("-", lowered))
    return collapsed.strip("-")


def folder_tokens(folder_set: FolderSet) -> list[str]:
    return [sanitize_token(name) or FALLBACK_TOKEN for name in folder_set.names()]


def derive_container_name(folder_set: FolderSet, *, max_length: int = MAX_CONTAINER_NAME_LENGTH) -> str:
    """Derive ``claude-<token>-<token>...`` from folder base names.

    Whole tokens are dropped from the end when the name is too long, so the
    same folder set always yields the same name. Only when the first token
    alone does not fit is it cut.
    """
    prefix = f"{CONTAINER_PREFIX}-"
    name = prefix
    for index, token in enumerate(folder_tokens(folder_set)):
        candidate = f"{name}{token}" if index == 0 else f"{name}-{token}"
        if len(candidate) <= max_length:
            name = candidate
            continue
        if index == 0:
            name = candidate[:max_length].rstrip("-")
        break
    return name


def validate_container_name(name: str) -> str:
    candidate = str(name or "").strip()
    if not candidate:
        raise InvalidNameError("Container name must not be empty.")
    if len(candidate) > 128 or not _CONTAINER_NAME_PATTERN.match(candidate) or candidate in {".", ".."}:
        raise InvalidNameError(
            f"Invalid container name {candidate!r}: use letters, digits, '_', '.' or '-' "
            "and start with a letter or digit."
        )
    return candidate


def validate_session_name(name: str) -> str:
    candidate = str(name or "").strip()
    if not candidate or not _SESSION_NAME_PATTERN.match(candidate):
        raise InvalidNameError(
            f"Invalid session name {candidate!r}: use letters, digits, '_', '.' or '-'."
        )
    return candidate


def resolve_container_name(folder_set: FolderSet, explicit_override: str | None = None) -> str:
    if explicit_override is not None and str(explicit_override).strip():
        return validate_container_name(explicit_override)
    return derive_container_name(folder_set)
