"""
cag Core Module

The orchestration pipeline:
- router: Invocation + ResolvedConfig -> ExecutionPlan
- engine: ExecutionPlan -> ProcessResults (interactive or fan-out)
- aggregator: ProcessResults -> AggregateOutcome with one exit code
"""

from .aggregator import AggregateOutcome, aggregate, result_exit_code
from .engine import (
    SIGNAL_SENTINEL,
    ExecutionEngine,
    FanOutRunner,
    InteractiveRunner,
    ProcessResult,
    ProcessStatus,
)
from .router import (
    ALL_SELECTOR,
    ExecutionPlan,
    Invocation,
    OutputMode,
    PlanEntry,
    plan,
    select_backends,
)

__all__ = [
    # Router
    "ALL_SELECTOR",
    "Invocation",
    "OutputMode",
    "PlanEntry",
    "ExecutionPlan",
    "plan",
    "select_backends",
    # Engine
    "SIGNAL_SENTINEL",
    "ProcessStatus",
    "ProcessResult",
    "InteractiveRunner",
    "FanOutRunner",
    "ExecutionEngine",
    # Aggregator
    "AggregateOutcome",
    "aggregate",
    "result_exit_code",
]
