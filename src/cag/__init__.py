"""
cag - one command line for several AI-agent CLIs

cag wraps Claude Code (claude), Gemini CLI (gemini) and OpenAI Codex CLI
(codex) behind a single invocation. It resolves configuration, selects one
backend or fans out to all of them, translates a few unified flags into each
backend's own flags, runs the processes and reduces their outcomes to one
exit code.

Pipeline:
    invocation -> resolve() -> plan() -> ExecutionEngine -> aggregate() -> exit code

Example usage:
    from cag import Invocation, ExecutionEngine, aggregate, plan, resolve

    config = resolve()
    execution_plan = plan(Invocation(selector="all", args=("--prompt", "hi")), config)
    results = ExecutionEngine().execute(execution_plan)
    outcome = aggregate(execution_plan, results)
    print(outcome.exit_code)
"""

__version__ = "0.1.0"

from .backends import AdapterFactory, AgentAdapter
from .core import (
    AggregateOutcome,
    ExecutionEngine,
    ExecutionPlan,
    Invocation,
    OutputMode,
    PlanEntry,
    ProcessResult,
    ProcessStatus,
    aggregate,
    plan,
)
from .errors import (
    BackendNotFoundError,
    CagError,
    ConfigError,
    MissingCredentialError,
    NoDefaultBackendError,
    UnknownBackendError,
)
from .settings import BackendId, BackendSettings, ResolvedConfig, resolve

__all__ = [
    "__version__",
    # Settings
    "BackendId",
    "BackendSettings",
    "ResolvedConfig",
    "resolve",
    # Backends
    "AgentAdapter",
    "AdapterFactory",
    # Core
    "Invocation",
    "OutputMode",
    "PlanEntry",
    "ExecutionPlan",
    "plan",
    "ProcessStatus",
    "ProcessResult",
    "ExecutionEngine",
    "AggregateOutcome",
    "aggregate",
    # Errors
    "CagError",
    "UnknownBackendError",
    "NoDefaultBackendError",
    "MissingCredentialError",
    "ConfigError",
    "BackendNotFoundError",
]
