"""
Settings data models for cag.

This module defines all configuration-related data classes including:
- BackendId: Supported backend identifiers
- BackendSettings: Per-backend configuration
- ResolvedConfig: The merged, read-only configuration for one invocation
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Mapping


class BackendId(Enum):
    """
    Supported agent backends.

    Declaration order is significant: it is the fixed order used for fan-out
    planning, output rendering and exit code tie-breaks.

    - CLAUDE: Claude Code CLI (``claude``)
    - GEMINI: Gemini CLI (``gemini``)
    - CODEX: OpenAI Codex CLI (``codex``)
    """

    CLAUDE = "claude"
    GEMINI = "gemini"
    CODEX = "codex"

    @classmethod
    def names(cls) -> list[str]:
        """Return backend names in declaration order."""
        return [member.value for member in cls]

    @classmethod
    def parse(cls, value: str) -> BackendId | None:
        """Case-insensitive lookup; returns None when nothing matches."""
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return None


@dataclass(frozen=True)
class BackendSettings:
    """
    Configuration for a single backend.

    Attributes:
        executable: Executable path override (None to search PATH).
        credential: Credential reference (``${VAR}``, ``env:VAR``, ``keyring[:name]``).
        args: Extra default arguments placed before user arguments.
        timeout: Per-backend timeout in seconds (None to use the global default).
        require_credential: Whether the backend must have its credential variable.
        env: Extra environment variables for the child process.
    """

    executable: str | None = None
    credential: str | None = None
    args: tuple[str, ...] = ()
    timeout: float | None = None
    require_credential: bool = False
    env: tuple[tuple[str, str], ...] = ()

    @property
    def env_dict(self) -> dict[str, str]:
        """Return the extra environment as a dictionary."""
        return dict(self.env)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation (credential values are never included)."""
        return {
            "path": self.executable,
            "credential": self.credential,
            "args": list(self.args),
            "timeout": self.timeout,
            "require_credential": self.require_credential,
            "env": self.env_dict,
        }


DEFAULT_TIMEOUT_SECONDS = 600.0
DEFAULT_GRACE_PERIOD_SECONDS = 5.0


def _default_backends() -> dict[BackendId, BackendSettings]:
    return {backend_id: BackendSettings() for backend_id in BackendId}


@dataclass(frozen=True)
class ResolvedConfig:
    """
    Resolved runtime configuration.

    Built once per invocation and treated as read-only afterwards. Every
    BackendId has an entry in ``backends``, possibly with default settings.

    Attributes:
        default_backend: Backend used when no selector is given.
        backends: Settings for every backend.
        default_timeout: Global fan-out timeout in seconds.
        grace_period: Seconds to wait between terminate and kill.
        config_path: Configuration file the values came from (if any).
        env: Environment snapshot used for resolution and credential lookup.
    """

    default_backend: BackendId | None = BackendId.CLAUDE
    backends: Mapping[BackendId, BackendSettings] = field(default_factory=_default_backends)
    default_timeout: float = DEFAULT_TIMEOUT_SECONDS
    grace_period: float = DEFAULT_GRACE_PERIOD_SECONDS
    config_path: Path | None = None
    env: Mapping[str, str] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        merged = _default_backends()
        merged.update(self.backends)
        object.__setattr__(self, "backends", merged)

    def settings_for(self, backend_id: BackendId) -> BackendSettings:
        """Return the settings for a backend."""
        return self.backends[backend_id]

    def with_overrides(
        self,
        default_backend: BackendId | None = None,
        timeout: float | None = None,
    ) -> ResolvedConfig:
        """
        Return a copy with invocation-level overrides applied.

        Invocation overrides have the highest precedence, so a timeout
        override replaces every per-backend timeout as well as the default.
        """
        config = self
        if default_backend is not None:
            config = replace(config, default_backend=default_backend)
        if timeout is not None:
            backends = {
                backend_id: replace(settings, timeout=timeout)
                for backend_id, settings in config.backends.items()
            }
            config = replace(config, default_timeout=timeout, backends=backends)
        return config

    def to_dict(self) -> dict[str, Any]:
        """Convert to a YAML-friendly dictionary."""
        return {
            "default_backend": self.default_backend.value if self.default_backend else None,
            "timeout": self.default_timeout,
            "grace_period": self.grace_period,
            "backends": {
                backend_id.value: self.backends[backend_id].to_dict()
                for backend_id in BackendId
            },
        }
