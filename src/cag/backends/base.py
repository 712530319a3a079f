"""
Base Adapter Abstraction for cag

Provides the abstract base class every backend adapter implements. An adapter
translates a unified invocation into one backend's concrete CLI contract:

1. locate(): find the executable (override, PATH, common locations)
2. translate_args(): map unified flags to the backend's own flags
3. required_env(): credential variables the backend needs
4. build_env(): environment overlay for the child process

Unified flags understood by every adapter:
    --prompt TEXT    run a single non-interactive prompt
    --model NAME     select the backend model
    --auto           skip approval prompts
    --               stop recognizing unified flags

All other arguments pass through verbatim and in order.
"""

import logging
import os
import re
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar, Mapping, Sequence

from ..errors import BackendNotFoundError, ConfigError, MissingCredentialError
from ..settings.models import BackendId, BackendSettings
from ..settings.storage import SettingsStorage
from .detector import expand_path, find_executable, is_executable

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")


@dataclass(frozen=True)
class UnifiedOptions:
    """
    Unified flags extracted from the pass-through arguments.

    Attributes:
        prompt: One-shot prompt text (None for an interactive session)
        model: Model name (None for the backend default)
        auto: Whether approval prompts should be skipped
    """
    prompt: str | None = None
    model: str | None = None
    auto: bool = False


def split_unified_args(args: Sequence[str]) -> tuple[UnifiedOptions, list[str]]:
    """
    Separate unified flags from pass-through arguments.

    Args:
        args: Arguments as given by the user

    Returns:
        Tuple of (UnifiedOptions, remaining arguments in original order)
    """
    prompt: str | None = None
    model: str | None = None
    auto = False
    rest: list[str] = []

    tokens = list(args)
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token == "--":
            rest.extend(tokens[i + 1:])
            break

        name, sep, inline = token.partition("=")
        if name in ("--prompt", "--model"):
            if sep:
                value = inline
            elif i + 1 < len(tokens):
                i += 1
                value = tokens[i]
            else:
                # Flag without a value: leave it for the backend to report
                rest.append(token)
                i += 1
                continue
            if name == "--prompt":
                prompt = value
            else:
                model = value
        elif token == "--auto":
            auto = True
        else:
            rest.append(token)
        i += 1

    return UnifiedOptions(prompt=prompt, model=model, auto=auto), rest


class AgentAdapter(ABC):
    """
    Abstract base class for backend adapters.

    Subclasses set the class attributes and implement build_args().

    Construction resolves the credential reference and checks required
    variables, so it fails with ConfigError or MissingCredentialError for a
    backend that cannot run. Adapters are only constructed for selected
    backends, which keeps this validation lazy.
    """

    backend_id: ClassVar[BackendId]
    command: ClassVar[str]
    credential_env: ClassVar[str]
    install_hint: ClassVar[str] = ""

    def __init__(
        self,
        settings: BackendSettings | None = None,
        env: Mapping[str, str] | None = None,
        storage: SettingsStorage | None = None,
    ):
        """
        Initialize the adapter.

        Args:
            settings: Backend settings (defaults to empty settings)
            env: Environment used for lookups (defaults to os.environ)
            storage: Settings storage for keyring credentials

        Raises:
            ConfigError: If the credential reference cannot be resolved
            MissingCredentialError: If a required variable is absent
        """
        self.settings = settings or BackendSettings()
        self.env = dict(os.environ if env is None else env)
        self.storage = storage
        self._credential = self._resolve_credential()
        self._check_required_env()

    @property
    def name(self) -> str:
        return self.backend_id.value

    # ==================== Capability set ====================

    def required_env(self) -> set[str]:
        """
        Return the credential variables this backend needs.

        Empty unless the settings require a credential or reference one.
        """
        if self.settings.require_credential or self.settings.credential:
            return {self.credential_env}
        return set()

    def locate(self) -> str:
        """
        Locate the backend executable.

        Returns:
            Absolute path to the executable

        Raises:
            BackendNotFoundError: If the executable cannot be found
        """
        override = self.settings.executable
        if override:
            expanded = expand_path(override, self.env)
            if os.sep in expanded or (os.altsep and os.altsep in expanded):
                if is_executable(expanded):
                    return os.path.abspath(expanded)
                raise BackendNotFoundError(self.backend_id, override, "is not an executable file")

            path = shutil.which(expanded, path=self.env.get("PATH"))
            if path:
                return os.path.abspath(path)
            raise BackendNotFoundError(self.backend_id, override, "not found on PATH")

        path, method = find_executable(self.command, self.env)
        if path is None:
            hint = f" (install: {self.install_hint})" if self.install_hint else ""
            raise BackendNotFoundError(self.backend_id, self.command, f"not found on PATH{hint}")

        logger.debug(f"Located {self.name} at {path} via {method}")
        return path

    def translate_args(self, args: Sequence[str]) -> list[str]:
        """
        Translate unified arguments into this backend's argument vector.

        Configured default arguments come first, then translated unified
        flags, then the remaining arguments verbatim.
        """
        options, rest = split_unified_args(args)
        return self.build_args(options, list(self.settings.args), rest)

    def build_env(self) -> dict[str, str]:
        """Return the environment overlay for the child process."""
        overlay = self.settings.env_dict
        if self._credential is not None:
            overlay[self.credential_env] = self._credential
        return overlay

    # ==================== Backend specifics ====================

    @abstractmethod
    def build_args(
        self,
        options: UnifiedOptions,
        defaults: list[str],
        rest: list[str],
    ) -> list[str]:
        """
        Build the backend's argument vector.

        Args:
            options: Unified flags given by the user
            defaults: Configured default arguments
            rest: Remaining pass-through arguments

        Returns:
            Arguments following the executable
        """
        pass

    # ==================== Credentials ====================

    def _resolve_credential(self) -> str | None:
        """Resolve the configured credential reference, if any."""
        reference = self.settings.credential
        if not reference:
            return None
        reference = reference.strip()

        variable = None
        match = _PLACEHOLDER.match(reference)
        if match:
            variable = match.group(1)
        elif reference.startswith("env:"):
            variable = reference[len("env:"):].strip()

        if variable:
            value = self.env.get(variable)
            if not value:
                raise ConfigError(
                    f"Credential reference '{reference}' could not be resolved: "
                    f"{variable} is not set",
                    backend=self.backend_id,
                    resource=variable,
                )
            return value

        if reference == "keyring" or reference.startswith("keyring:"):
            key_name = reference.partition(":")[2].strip() or self.name
            storage = self.storage or SettingsStorage()
            secret = storage.get_credential(key_name)
            if not secret:
                raise ConfigError(
                    f"Credential reference '{reference}' could not be resolved: "
                    f"no keyring entry '{key_name}' in service '{SettingsStorage.KEYRING_SERVICE}'",
                    backend=self.backend_id,
                    resource=f"keyring:{key_name}",
                )
            return secret

        raise ConfigError(
            f"Unsupported credential reference '{reference}' "
            "(use ${VAR}, env:VAR or keyring[:name])",
            backend=self.backend_id,
            resource=reference,
        )

    def _check_required_env(self) -> None:
        for variable in sorted(self.required_env()):
            if variable == self.credential_env and self._credential is not None:
                continue
            if not self.env.get(variable):
                raise MissingCredentialError(self.backend_id, variable)
