"""
Result Aggregator for cag

Collects the ProcessResults of a plan into an AggregateOutcome with a
single process exit code.

Per-backend exit codes:
    SUCCEEDED / FAILED   the child's own exit code
    SIGNALED             EXIT_SIGNALED (130)
    TIMEOUT              EXIT_TIMEOUT (124)
    NOT_STARTED          the error's class exit code (EXIT_INTERNAL otherwise)

Overall exit code: the single backend's code, or for fan-out 0 when all
succeeded and otherwise the lowest non-zero per-backend code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from ..errors import EXIT_INTERNAL, EXIT_OK, EXIT_SIGNALED, EXIT_TIMEOUT, CagError
from ..settings.models import BackendId
from .engine import ProcessResult, ProcessStatus
from .router import ExecutionPlan

# Lower rank is surfaced first in the failure summary
FAILURE_RANK = {
    ProcessStatus.SIGNALED: 0,
    ProcessStatus.TIMEOUT: 0,
    ProcessStatus.NOT_STARTED: 1,
    ProcessStatus.FAILED: 2,
}

_BACKEND_ORDER = {backend_id: index for index, backend_id in enumerate(BackendId)}


def result_exit_code(result: ProcessResult) -> int:
    """Map one ProcessResult to the exit code it contributes."""
    if result.status in (ProcessStatus.SUCCEEDED, ProcessStatus.FAILED):
        return result.exit_code
    if result.status == ProcessStatus.SIGNALED:
        return EXIT_SIGNALED
    if result.status == ProcessStatus.TIMEOUT:
        return EXIT_TIMEOUT
    if result.error is not None:
        return result.error.exit_code
    return EXIT_INTERNAL


@dataclass
class AggregateOutcome:
    """
    Combined outcome of a plan.

    Attributes:
        results: Results keyed by backend, in BackendId declaration order
        exit_code: Exit code for the whole invocation
        fan_out: Whether the plan fanned out
    """
    results: dict[BackendId, ProcessResult] = field(default_factory=dict)
    exit_code: int = EXIT_OK
    fan_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_code == EXIT_OK

    def failures(self) -> list[ProcessResult]:
        """
        Failed results in summary order.

        Signal terminations and timeouts come first, then backends that
        never started, then plain non-zero exits. Ties break by exit code,
        then declaration order.
        """
        failed = [r for r in self.results.values() if not r.succeeded]
        return sorted(
            failed,
            key=lambda r: (FAILURE_RANK[r.status], result_exit_code(r), _BACKEND_ORDER[r.backend]),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "exit_code": self.exit_code,
            "fan_out": self.fan_out,
            "results": [result.to_dict() for result in self.results.values()],
            "failures": [
                {"backend": r.backend.value, "status": r.status.value, "detail": r.detail}
                for r in self.failures()
            ],
        }


def aggregate(plan: ExecutionPlan, results: Sequence[ProcessResult]) -> AggregateOutcome:
    """
    Aggregate process results for a plan.

    Args:
        plan: The executed plan
        results: One result per plan entry (any order)

    Returns:
        AggregateOutcome with results in declaration order

    Raises:
        CagError: If a planned backend has no result
    """
    by_backend = {result.backend: result for result in results}
    missing = [b.value for b in plan.backends if b not in by_backend]
    if missing:
        raise CagError(f"No result recorded for: {', '.join(missing)}")

    ordered = {
        backend_id: by_backend[backend_id]
        for backend_id in sorted(plan.backends, key=_BACKEND_ORDER.__getitem__)
    }

    codes = [result_exit_code(result) for result in ordered.values()]
    if len(codes) == 1:
        exit_code = codes[0]
    else:
        failed = [code for code in codes if code != EXIT_OK]
        exit_code = min(failed) if failed else EXIT_OK

    return AggregateOutcome(results=ordered, exit_code=exit_code, fan_out=plan.fan_out)
