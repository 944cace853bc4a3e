from __future__ import annotations

import re
from collections.abc import Callable, Sequence

_ENV_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _parse_port(text: str, *, label: str, raw: str, error_factory: Callable[[str], Exception]) -> int:
    candidate = text.strip()
    if not candidate.isdigit():
        raise error_factory(f"Invalid {label} in port mapping {raw!r}")
    port = int(candidate)
    if port <= 0 or port > 65535:
        raise error_factory(f"Invalid {label} in port mapping {raw!r}")
    return port


def normalize_port_mapping(port: str, *, error_factory: Callable[[str], Exception]) -> str:
    """Normalize PORT, HOST:CONTAINER or IP:HOST:CONTAINER into a docker ``-p`` value."""
    raw = str(port or "").strip()
    parts = raw.split(":")
    if len(parts) == 1:
        value = _parse_port(parts[0], label="port", raw=raw, error_factory=error_factory)
        return f"{value}:{value}"
    if len(parts) == 2:
        host = _parse_port(parts[0], label="host port", raw=raw, error_factory=error_factory)
        container = _parse_port(parts[1], label="container port", raw=raw, error_factory=error_factory)
        return f"{host}:{container}"
    if len(parts) == 3:
        address = parts[0].strip()
        if not address:
            raise error_factory(f"Invalid bind address in port mapping {raw!r}")
        host = _parse_port(parts[1], label="host port", raw=raw, error_factory=error_factory)
        container = _parse_port(parts[2], label="container port", raw=raw, error_factory=error_factory)
        return f"{address}:{host}:{container}"
    raise error_factory(f"Invalid port format: {raw}. Use PORT, HOST:CONTAINER, or IP:HOST:CONTAINER")


def normalize_port_mappings(ports: Sequence[str], *, error_factory: Callable[[str], Exception]) -> tuple[str, ...]:
    normalized: list[str] = []
    for port in ports:
        value = normalize_port_mapping(port, error_factory=error_factory)
        if value not in normalized:
            normalized.append(value)
    return tuple(normalized)


def parse_env_var(entry: str, *, error_factory: Callable[[str], Exception]) -> str:
    """Accept KEY=VALUE, or a bare KEY that docker copies from the caller's environment."""
    raw = str(entry or "")
    key = raw.split("=", 1)[0].strip()
    if not _ENV_NAME_PATTERN.match(key):
        raise error_factory(f"Invalid environment variable {raw!r}: expected KEY=VALUE")
    if "=" not in raw:
        return key
    return f"{key}={raw.split('=', 1)[1]}"


def parse_env_vars(entries: Sequence[str], *, error_factory: Callable[[str], Exception]) -> tuple[str, ...]:
    return tuple(parse_env_var(entry, error_factory=error_factory) for entry in entries)


def short_id(value: str, length: int = 8) -> str:
    return str(value or "")[: max(int(length), 0)]
