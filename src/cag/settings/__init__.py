"""
Settings management module for cag.

This module provides configuration management including:
- Settings data models (BackendId, BackendSettings, ResolvedConfig)
- YAML-based configuration storage
- Secure credential storage using keyring
- Configuration validation
- The configuration resolver (defaults < file < environment < invocation)
"""

from .models import (
    BackendId,
    BackendSettings,
    ResolvedConfig,
)
from .resolver import backend_env_var, resolve
from .storage import SettingsStorage, resolve_config_path
from .validation import ConfigValidator, ValidationResult

__all__ = [
    # Models
    "BackendId",
    "BackendSettings",
    "ResolvedConfig",
    # Resolver
    "resolve",
    "backend_env_var",
    # Storage
    "SettingsStorage",
    "resolve_config_path",
    # Validation
    "ConfigValidator",
    "ValidationResult",
]
