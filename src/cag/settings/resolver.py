"""
Configuration Resolver

Merges built-in defaults, the YAML configuration file and environment
variables into one ResolvedConfig. Invocation-level overrides are applied
afterwards through ResolvedConfig.with_overrides().

Precedence, highest wins:
    invocation override > environment variable > configuration file > built-in default

Environment variables:
    CAG_CONFIG               configuration file path
    CAG_DEFAULT_BACKEND      default backend name ("none" disables the default)
    CAG_TIMEOUT              global timeout in seconds
    CAG_GRACE_PERIOD         seconds between terminate and kill
    CAG_<BACKEND>_PATH       executable override
    CAG_<BACKEND>_TIMEOUT    per-backend timeout
    CAG_<BACKEND>_ARGS       extra default arguments (shell-style quoting)
"""

import logging
import os
import shlex
from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping

from ..errors import ConfigError
from .models import (
    DEFAULT_GRACE_PERIOD_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    BackendId,
    BackendSettings,
    ResolvedConfig,
)
from .storage import SettingsStorage, resolve_config_path
from .validation import ConfigValidator

logger = logging.getLogger(__name__)

ENV_PREFIX = "CAG_"
NO_DEFAULT_VALUES = {"none", "null"}


def backend_env_var(backend_id: BackendId, suffix: str) -> str:
    """Return the per-backend variable name, e.g. CAG_CLAUDE_PATH."""
    return f"{ENV_PREFIX}{backend_id.value.upper()}_{suffix}"


def resolve(
    env: Mapping[str, str] | None = None,
    config_path: str | Path | None = None,
) -> ResolvedConfig:
    """
    Resolve the runtime configuration.

    Args:
        env: Environment mapping (defaults to os.environ)
        config_path: Configuration file override (defaults to CAG_CONFIG,
            then ~/.cag/config.yaml)

    Returns:
        ResolvedConfig with an entry for every backend

    Raises:
        ConfigError: If the configuration file exists but cannot be parsed,
            or a file or environment value is invalid
    """
    env = dict(os.environ if env is None else env)
    path = resolve_config_path(config_path, env)
    storage = SettingsStorage(path)
    data = storage.load_raw()

    validation = ConfigValidator().validate(data)
    for warning in validation.warnings:
        logger.warning(f"{path}: {warning}")
    if not validation.valid:
        raise ConfigError(
            f"Invalid configuration file {path}: " + "; ".join(validation.errors),
            resource=str(path),
        )

    config = _from_file(data, path if storage.exists() else None)
    config = _apply_env(config, env)
    return replace(config, env=env)


def _from_file(data: dict[str, Any], path: Path | None) -> ResolvedConfig:
    """Build a ResolvedConfig from a validated file mapping."""
    default_backend: BackendId | None = BackendId.CLAUDE
    if "default_backend" in data:
        value = data["default_backend"]
        default_backend = BackendId.parse(value) if value is not None else None

    backends: dict[BackendId, BackendSettings] = {}
    for name, section in (data.get("backends") or {}).items():
        backend_id = BackendId.parse(name)
        section = section or {}
        timeout = section.get("timeout")
        backends[backend_id] = BackendSettings(
            executable=section.get("path"),
            credential=section.get("credential"),
            args=tuple(str(arg) for arg in section.get("args") or ()),
            timeout=float(timeout) if timeout is not None else None,
            require_credential=bool(section.get("require_credential", False)),
            env=tuple(sorted((k, _env_value(v)) for k, v in (section.get("env") or {}).items())),
        )

    if path is not None:
        logger.debug(f"Configuration file values taken from {path}")

    return ResolvedConfig(
        default_backend=default_backend,
        backends=backends,
        default_timeout=float(data.get("timeout", DEFAULT_TIMEOUT_SECONDS)),
        grace_period=float(data.get("grace_period", DEFAULT_GRACE_PERIOD_SECONDS)),
        config_path=path,
    )


def _env_value(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _apply_env(config: ResolvedConfig, env: Mapping[str, str]) -> ResolvedConfig:
    """Apply CAG_* environment variables on top of file values."""
    value = env.get(f"{ENV_PREFIX}DEFAULT_BACKEND", "").strip()
    if value:
        if value.lower() in NO_DEFAULT_VALUES:
            config = replace(config, default_backend=None)
        else:
            backend_id = BackendId.parse(value)
            if backend_id is None:
                raise ConfigError(
                    f"{ENV_PREFIX}DEFAULT_BACKEND: unknown backend '{value}'. "
                    f"Valid values: {BackendId.names()}",
                    resource=f"{ENV_PREFIX}DEFAULT_BACKEND",
                )
            config = replace(config, default_backend=backend_id)
        logger.debug(f"default_backend taken from environment: {value}")

    timeout = _env_seconds(env, f"{ENV_PREFIX}TIMEOUT")
    if timeout is not None:
        config = replace(config, default_timeout=timeout)

    grace = _env_seconds(env, f"{ENV_PREFIX}GRACE_PERIOD")
    if grace is not None:
        config = replace(config, grace_period=grace)

    backends = dict(config.backends)
    for backend_id in BackendId:
        settings = backends[backend_id]

        path = env.get(backend_env_var(backend_id, "PATH"), "").strip()
        if path:
            settings = replace(settings, executable=path)

        backend_timeout = _env_seconds(env, backend_env_var(backend_id, "TIMEOUT"))
        if backend_timeout is not None:
            settings = replace(settings, timeout=backend_timeout)

        args_var = backend_env_var(backend_id, "ARGS")
        raw_args = env.get(args_var, "").strip()
        if raw_args:
            try:
                settings = replace(settings, args=tuple(shlex.split(raw_args)))
            except ValueError as e:
                raise ConfigError(
                    f"{args_var}: cannot split arguments: {e}",
                    backend=backend_id,
                    resource=args_var,
                ) from e

        backends[backend_id] = settings

    return replace(config, backends=backends)


def _env_seconds(env: Mapping[str, str], name: str) -> float | None:
    """Parse a positive number of seconds from the environment."""
    raw = env.get(name, "").strip()
    if not raw:
        return None
    try:
        seconds = float(raw)
    except ValueError:
        seconds = -1.0
    if seconds <= 0:
        raise ConfigError(f"{name}: must be a positive number of seconds, got '{raw}'", resource=name)
    return seconds
