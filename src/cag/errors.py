"""
Error taxonomy for cag.

Every error carries the backend it concerns (if any) and the resource that
was implicated, plus a stable process exit code so scripts can branch on the
failure class:

- UnknownBackendError (64): explicit selector matches no backend
- NoDefaultBackendError (65): no selector and no default configured
- MissingCredentialError (77): a required credential is absent
- ConfigError (78): malformed configuration or unresolvable credential reference
- BackendNotFoundError (127): backend executable cannot be found or started
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .settings.models import BackendId


EXIT_OK = 0
EXIT_INTERNAL = 70
EXIT_TIMEOUT = 124
EXIT_SIGNALED = 130


class CagError(Exception):
    """Base exception for all cag errors."""

    exit_code: int = EXIT_INTERNAL

    def __init__(
        self,
        message: str,
        backend: BackendId | None = None,
        resource: str | None = None,
    ):
        """
        Initialize the error.

        Args:
            message: Human readable error message
            backend: Backend the error concerns (if any)
            resource: Resource that was implicated (file, variable, executable)
        """
        super().__init__(message)
        self.message = message
        self.backend = backend
        self.resource = resource

    def __str__(self) -> str:
        if self.backend is not None:
            return f"[{self.backend.value}] {self.message}"
        return self.message

    def to_dict(self) -> dict[str, str | int | None]:
        """Convert to dictionary representation."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "backend": self.backend.value if self.backend is not None else None,
            "resource": self.resource,
            "exit_code": self.exit_code,
        }


class UnknownBackendError(CagError):
    """Raised when an explicit selector does not name a known backend."""

    exit_code = 64

    def __init__(self, selector: str, known: list[str] | None = None):
        choices = f" (choose from: {', '.join(known)})" if known else ""
        super().__init__(f"Unknown backend '{selector}'{choices}", resource=selector)
        self.selector = selector


class NoDefaultBackendError(CagError):
    """Raised when no backend was selected and no default is configured."""

    exit_code = 65

    def __init__(self, config_path: str | None = None):
        where = f" in {config_path}" if config_path else ""
        super().__init__(
            f"No backend selected and no default_backend configured{where}",
            resource=config_path,
        )


class MissingCredentialError(CagError):
    """Raised when a backend's required credential is absent."""

    exit_code = 77

    def __init__(self, backend: BackendId, variable: str):
        super().__init__(
            f"Missing credential: {variable} is not set",
            backend=backend,
            resource=variable,
        )
        self.variable = variable


class ConfigError(CagError):
    """Raised for malformed configuration or unresolvable credential references."""

    exit_code = 78


class BackendNotFoundError(CagError):
    """Raised when a backend executable cannot be located or started."""

    exit_code = 127

    def __init__(self, backend: BackendId, executable: str, reason: str = "not found"):
        super().__init__(
            f"Executable '{executable}' {reason}",
            backend=backend,
            resource=executable,
        )
        self.executable = executable
