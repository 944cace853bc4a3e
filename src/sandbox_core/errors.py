from __future__ import annotations


class TypedSandboxError(RuntimeError):
    """Base class for typed operational errors surfaced to users."""

    error_code = "INTERNAL_ERROR"
    failure_class = "internal"
    user_message = "An internal error occurred."
    exit_code = 1

    def metadata(self) -> dict[str, str]:
        return {
            "error_code": self.error_code,
            "failure_class": self.failure_class,
            "user_message": self.user_message,
        }

    def payload(self, *, detail: str | None = None) -> dict[str, str]:
        payload = self.metadata()
        payload["detail"] = str(self) if detail is None else str(detail)
        return payload


def typed_error_exit_code(exc: BaseException) -> int:
    if isinstance(exc, TypedSandboxError):
        return int(exc.exit_code)
    return 1


class InvalidPathError(TypedSandboxError):
    """Folder path is missing or is not a directory."""

    error_code = "INVALID_PATH"
    failure_class = "path"
    user_message = "Folder path is invalid."
    exit_code = 3


class NameConflictError(TypedSandboxError):
    """Container name is already bound to a different folder set."""

    error_code = "NAME_CONFLICT"
    failure_class = "naming"
    user_message = "Container name is already bound to different folders."
    exit_code = 4


class RegistryBusyError(TypedSandboxError):
    """Registry lock could not be acquired in time."""

    error_code = "REGISTRY_BUSY"
    failure_class = "registry"
    user_message = "Session registry is busy; retry shortly."
    exit_code = 5


class RuntimeUnavailableError(TypedSandboxError):
    """Container runtime daemon is not reachable."""

    error_code = "RUNTIME_UNAVAILABLE"
    failure_class = "runtime"
    user_message = "Container runtime is not reachable."
    exit_code = 6


class ConfigError(TypedSandboxError):
    """Configuration parsing or validation error."""

    error_code = "CONFIG_ERROR"
    failure_class = "configuration"
    user_message = "Configuration is invalid."
    exit_code = 7


class InvalidNameError(TypedSandboxError):
    """Container or session name is not usable."""

    error_code = "INVALID_NAME"
    failure_class = "naming"
    user_message = "Name is invalid."
    exit_code = 8


class SessionNotFoundError(TypedSandboxError):
    """Target, named session or conversation could not be resolved."""

    error_code = "SESSION_NOT_FOUND"
    failure_class = "session"
    user_message = "Session could not be found."
    exit_code = 9


class RuntimeCommandError(TypedSandboxError):
    """A container runtime command returned a failure."""

    error_code = "RUNTIME_COMMAND_FAILED"
    failure_class = "runtime"
    user_message = "Container runtime command failed."
    exit_code = 10


class RegistryCorruptError(TypedSandboxError):
    """Registry file could not be parsed and was moved aside."""

    error_code = "REGISTRY_CORRUPT"
    failure_class = "registry"
    user_message = "Session registry file is corrupt."
    exit_code = 11


class ConfirmationRequiredError(TypedSandboxError):
    """Destructive operation requested without force or confirmation."""

    error_code = "CONFIRMATION_REQUIRED"
    failure_class = "confirmation"
    user_message = "Operation requires confirmation."
    exit_code = 12
