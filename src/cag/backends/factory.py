"""
Adapter Factory

Registry from BackendId to adapter class. Adding a backend means adding a
BackendId member and registering an adapter class; the router, engine and
aggregator are untouched.
"""

from typing import TYPE_CHECKING, Dict, Mapping, Optional, Type

from ..settings.models import BackendId
from .base import AgentAdapter
from .claude import ClaudeAdapter
from .codex import CodexAdapter
from .gemini import GeminiAdapter

if TYPE_CHECKING:
    from ..settings.models import ResolvedConfig
    from ..settings.storage import SettingsStorage


# Type alias for adapter classes
AdapterClass = Type[AgentAdapter]


class AdapterFactory:
    """
    Factory for creating adapter instances.

    Example:
        config = resolve()
        adapter = AdapterFactory.create(BackendId.GEMINI, config)
        executable = adapter.locate()
        argv = adapter.translate_args(["--prompt", "hello"])
    """

    # Registry of adapter classes
    _adapters: Dict[BackendId, AdapterClass] = {
        BackendId.CLAUDE: ClaudeAdapter,
        BackendId.GEMINI: GeminiAdapter,
        BackendId.CODEX: CodexAdapter,
    }

    @classmethod
    def register(cls, backend_id: BackendId, adapter_class: AdapterClass) -> None:
        """
        Register an adapter class.

        Args:
            backend_id: Backend the adapter serves
            adapter_class: Adapter class to register
        """
        cls._adapters[backend_id] = adapter_class

    @classmethod
    def unregister(cls, backend_id: BackendId) -> None:
        """
        Unregister an adapter.

        Args:
            backend_id: Backend to unregister
        """
        cls._adapters.pop(backend_id, None)

    @classmethod
    def get_adapter_class(cls, backend_id: BackendId) -> AdapterClass:
        """
        Get the adapter class for a backend.

        Raises:
            KeyError: If no adapter is registered for the backend
        """
        try:
            return cls._adapters[backend_id]
        except KeyError:
            raise KeyError(f"No adapter registered for backend '{backend_id.value}'") from None

    @classmethod
    def create(
        cls,
        backend_id: BackendId,
        config: "ResolvedConfig",
        env: Optional[Mapping[str, str]] = None,
        storage: Optional["SettingsStorage"] = None,
    ) -> AgentAdapter:
        """
        Create an adapter for a backend.

        Args:
            backend_id: Backend to create the adapter for
            config: Resolved configuration
            env: Environment override (defaults to the config's snapshot)
            storage: Settings storage for keyring credentials

        Returns:
            AgentAdapter instance

        Raises:
            ConfigError: If the credential reference cannot be resolved
            MissingCredentialError: If a required credential is absent
        """
        adapter_class = cls.get_adapter_class(backend_id)
        return adapter_class(
            settings=config.settings_for(backend_id),
            env=env if env is not None else (config.env or None),
            storage=storage,
        )

    @classmethod
    def list_backends(cls) -> list[BackendId]:
        """List backends with a registered adapter, in declaration order."""
        return [backend_id for backend_id in BackendId if backend_id in cls._adapters]
