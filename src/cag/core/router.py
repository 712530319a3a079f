"""
Command Router for cag

Turns a parsed Invocation plus the ResolvedConfig into an ExecutionPlan:
one PlanEntry per backend to run, each with its located executable,
translated argument vector, environment overlay and timeout.

Selection policy:
- explicit backend name: one entry (case-insensitive match)
- "all": one entry per BackendId, in declaration order
- no selector: the configured default backend

Planning never spawns processes. In single-backend mode adapter errors
propagate; in fan-out mode they are recorded on the entry so siblings
still run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Mapping

from ..backends.factory import AdapterFactory
from ..errors import CagError, NoDefaultBackendError, UnknownBackendError
from ..settings.models import BackendId, ResolvedConfig

if TYPE_CHECKING:
    from ..settings.storage import SettingsStorage

logger = logging.getLogger(__name__)

ALL_SELECTOR = "all"


class OutputMode(Enum):
    """How fan-out output is reported."""
    TEXT = "text"      # labeled sections after all backends finish
    JSON = "json"      # one JSON document with every result
    STREAM = "stream"  # tagged lines as they arrive, then a summary


@dataclass(frozen=True)
class Invocation:
    """
    The user's unified command.

    Attributes:
        selector: Backend name, "all", or None for the configured default
        args: Pass-through arguments (unified flags included)
        timeout: Per-process timeout override in seconds
        output_mode: Fan-out output mode
    """
    selector: str | None = None
    args: tuple[str, ...] = ()
    timeout: float | None = None
    output_mode: OutputMode = OutputMode.TEXT


@dataclass(frozen=True)
class PlanEntry:
    """
    One backend process to run.

    Attributes:
        backend: Backend identifier
        executable: Located executable (command name if locating failed)
        argv: Arguments following the executable
        env: Environment overlay applied on top of the wrapper's environment
        timeout: Timeout in seconds (None for no timeout)
        error: Preparation error; the entry is reported but never spawned
    """
    backend: BackendId
    executable: str
    argv: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    timeout: float | None = None
    error: CagError | None = None

    @property
    def command_line(self) -> list[str]:
        """Full argument vector including the executable."""
        return [self.executable, *self.argv]


@dataclass(frozen=True)
class ExecutionPlan:
    """
    Ordered, non-empty sequence of plan entries.

    Attributes:
        entries: Entries in BackendId declaration order
        fan_out: Whether the plan came from the "all" selector
        output_mode: How results are reported
        grace_period: Seconds between terminate and kill
    """
    entries: tuple[PlanEntry, ...]
    fan_out: bool = False
    output_mode: OutputMode = OutputMode.TEXT
    grace_period: float = 5.0

    def __post_init__(self) -> None:
        if not self.entries:
            raise ValueError("ExecutionPlan requires at least one entry")

    @property
    def backends(self) -> list[BackendId]:
        return [entry.backend for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


def select_backends(invocation: Invocation, config: ResolvedConfig) -> list[BackendId]:
    """
    Resolve the selector to the backends to run.

    Raises:
        UnknownBackendError: If an explicit selector matches no backend
        NoDefaultBackendError: If no selector is given and no default exists
    """
    selector = invocation.selector
    if selector is None:
        if config.default_backend is None:
            path = str(config.config_path) if config.config_path else None
            raise NoDefaultBackendError(path)
        return [config.default_backend]

    if selector.strip().lower() == ALL_SELECTOR:
        return list(BackendId)

    backend_id = BackendId.parse(selector)
    if backend_id is None:
        raise UnknownBackendError(selector, BackendId.names() + [ALL_SELECTOR])
    return [backend_id]


def plan(
    invocation: Invocation,
    config: ResolvedConfig,
    factory: type[AdapterFactory] = AdapterFactory,
    storage: SettingsStorage | None = None,
) -> ExecutionPlan:
    """
    Build the execution plan for an invocation.

    Args:
        invocation: Parsed user invocation
        config: Resolved configuration
        factory: Adapter factory (injectable for tests)
        storage: Settings storage for keyring credentials

    Returns:
        ExecutionPlan with one entry per selected backend

    Raises:
        UnknownBackendError: If the selector is not recognized
        NoDefaultBackendError: If no backend can be selected
        CagError: Adapter errors in single-backend mode
    """
    backends = select_backends(invocation, config)
    fan_out = len(backends) > 1
    config = config.with_overrides(timeout=invocation.timeout)

    entries = []
    for backend_id in backends:
        try:
            entry = _prepare_entry(backend_id, invocation, config, factory, storage, fan_out)
        except CagError as e:
            if not fan_out:
                raise
            logger.debug(f"{backend_id.value} cannot run: {e}")
            entry = PlanEntry(
                backend=backend_id,
                executable=config.settings_for(backend_id).executable
                or factory.get_adapter_class(backend_id).command,
                argv=tuple(invocation.args),
                error=e,
            )
        entries.append(entry)

    return ExecutionPlan(
        entries=tuple(entries),
        fan_out=fan_out,
        output_mode=invocation.output_mode,
        grace_period=config.grace_period,
    )


def _prepare_entry(
    backend_id: BackendId,
    invocation: Invocation,
    config: ResolvedConfig,
    factory: type[AdapterFactory],
    storage: SettingsStorage | None,
    fan_out: bool,
) -> PlanEntry:
    adapter = factory.create(backend_id, config, storage=storage)
    executable = adapter.locate()
    argv = adapter.translate_args(invocation.args)

    settings = config.settings_for(backend_id)
    timeout = settings.timeout
    if timeout is None and fan_out:
        timeout = config.default_timeout

    logger.debug(f"Planned {backend_id.value}: {executable} ({len(argv)} args, timeout={timeout})")
    return PlanEntry(
        backend=backend_id,
        executable=executable,
        argv=tuple(argv),
        env=adapter.build_env(),
        timeout=timeout,
    )
