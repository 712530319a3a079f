"""
Configuration validation for cag.

Checks the raw mapping loaded from the configuration file before it is
merged into a ResolvedConfig:
- Top-level keys and the default backend
- Global timeout and grace period values
- Per-backend sections (path, credential, args, timeout, env)
"""

from dataclasses import dataclass, field
from typing import Any, List

from .models import BackendId

TOP_LEVEL_KEYS = {"default_backend", "timeout", "grace_period", "backends"}
BACKEND_KEYS = {"path", "credential", "args", "timeout", "require_credential", "env"}


@dataclass
class ValidationResult:
    """
    Result of a configuration validation.

    Attributes:
        valid: Whether the configuration passed all validation checks.
        errors: List of error messages (validation failures).
        warnings: List of warning messages (non-critical issues).
    """

    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add an error message and mark validation as failed."""
        self.errors.append(message)
        self.valid = False

    def add_warning(self, message: str) -> None:
        """Add a warning message (does not affect validity)."""
        self.warnings.append(message)

    def merge(self, other: "ValidationResult") -> None:
        """Merge another ValidationResult into this one."""
        if not other.valid:
            self.valid = False
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)


def is_positive_number(value: Any) -> bool:
    """Return True for int/float values above zero (bools excluded)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


class ConfigValidator:
    """
    Validator for the raw configuration mapping.

    Only structure and types are checked here. Executables and credentials
    are validated lazily, when a backend is actually selected.
    """

    def validate(self, data: dict[str, Any]) -> ValidationResult:
        """
        Validate the complete configuration mapping.

        Args:
            data: Mapping loaded from the configuration file.

        Returns:
            ValidationResult with any errors or warnings.
        """
        result = ValidationResult()

        for key in data:
            if key not in TOP_LEVEL_KEYS:
                result.add_warning(f"Unknown configuration key '{key}' ignored")

        default_backend = data.get("default_backend")
        if default_backend is not None:
            if not isinstance(default_backend, str) or BackendId.parse(default_backend) is None:
                result.add_error(
                    f"default_backend: unknown backend '{default_backend}'. "
                    f"Valid values: {BackendId.names()}"
                )

        for key in ("timeout", "grace_period"):
            if key in data and not is_positive_number(data[key]):
                result.add_error(f"{key}: must be a positive number, got {data[key]!r}")

        backends = data.get("backends")
        if backends is not None:
            if not isinstance(backends, dict):
                result.add_error("backends: must be a mapping of backend name to settings")
            else:
                for name, section in backends.items():
                    result.merge(self.validate_backend(name, section))

        return result

    def validate_backend(self, name: Any, section: Any) -> ValidationResult:
        """
        Validate one backend section.

        Args:
            name: Backend name as written in the file.
            section: The section mapping (None is allowed and means defaults).

        Returns:
            ValidationResult for the section.
        """
        result = ValidationResult()

        if not isinstance(name, str) or BackendId.parse(name) is None:
            result.add_error(f"backends: unknown backend '{name}'. Valid values: {BackendId.names()}")
            return result

        if section is None:
            return result
        if not isinstance(section, dict):
            result.add_error(f"backends.{name}: must be a mapping")
            return result

        for key in section:
            if key not in BACKEND_KEYS:
                result.add_warning(f"backends.{name}: unknown key '{key}' ignored")

        for key in ("path", "credential"):
            value = section.get(key)
            if value is not None and not (isinstance(value, str) and value.strip()):
                result.add_error(f"backends.{name}.{key}: must be a non-empty string")

        args = section.get("args")
        if args is not None:
            if not isinstance(args, list) or not all(isinstance(a, (str, int, float)) for a in args):
                result.add_error(f"backends.{name}.args: must be a list of strings")

        if "timeout" in section and section["timeout"] is not None:
            if not is_positive_number(section["timeout"]):
                result.add_error(
                    f"backends.{name}.timeout: must be a positive number, got {section['timeout']!r}"
                )

        require_credential = section.get("require_credential")
        if require_credential is not None and not isinstance(require_credential, bool):
            result.add_error(f"backends.{name}.require_credential: must be true or false")

        env = section.get("env")
        if env is not None:
            if not isinstance(env, dict) or not all(
                isinstance(k, str) and isinstance(v, (str, int, float, bool)) for k, v in env.items()
            ):
                result.add_error(f"backends.{name}.env: must be a mapping of names to strings")

        return result
