"""
Process Execution Engine for cag

Runs an ExecutionPlan with one of two strategies, selected by plan size:

- InteractiveRunner (one entry): the child inherits the terminal's stdin,
  stdout and stderr. Interrupt and termination signals received by the
  wrapper are forwarded to the child.
- FanOutRunner (several entries): all children start concurrently under
  asyncio with stdin closed and stdout/stderr captured per backend. Each
  child has its own timeout, and one failure never cancels its siblings.
  Signals received by the wrapper are broadcast to every running child.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Sequence

from ..errors import BackendNotFoundError, CagError
from ..settings.models import BackendId
from .router import ExecutionPlan, PlanEntry

logger = logging.getLogger(__name__)

# Exit code recorded when no real exit status exists
SIGNAL_SENTINEL = -1

# Large enough for agents that print long JSON lines
STREAM_LIMIT = 10 * 1024 * 1024

# Callback for live output: (backend, "stdout" | "stderr", line without newline)
LineCallback = Callable[[BackendId, str, str], None]


class ProcessStatus(Enum):
    """Outcome of one backend process."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SIGNALED = "signaled"
    TIMEOUT = "timeout"
    NOT_STARTED = "not_started"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


@dataclass
class ProcessResult:
    """
    Result of one backend process.

    Attributes:
        backend: Backend identifier
        status: Process outcome
        exit_code: Child exit code, or SIGNAL_SENTINEL when the child was
            signaled, timed out or never started
        signal: Terminating signal number (if any)
        stdout: Captured standard output (empty in interactive mode)
        stderr: Captured standard error (empty in interactive mode)
        started_at: When the process was started
        finished_at: When the process finished
        error: Error that prevented the process from starting
        message: Extra detail for the summary
    """
    backend: BackendId
    status: ProcessStatus
    exit_code: int = SIGNAL_SENTINEL
    signal: int | None = None
    stdout: str = ""
    stderr: str = ""
    started_at: datetime = field(default_factory=_now)
    finished_at: datetime = field(default_factory=_now)
    error: CagError | None = None
    message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ProcessStatus.SUCCEEDED

    @property
    def duration(self) -> float:
        """Wall-clock duration in seconds."""
        return max(0.0, (self.finished_at - self.started_at).total_seconds())

    @property
    def detail(self) -> str:
        """One-line description of the outcome."""
        if self.status == ProcessStatus.SUCCEEDED:
            return "exit 0"
        if self.status == ProcessStatus.FAILED:
            return f"exit {self.exit_code}"
        if self.status == ProcessStatus.SIGNALED:
            name = _signal_name(self.signal) if self.signal is not None else "signal"
            return f"terminated by {name}"
        if self.status == ProcessStatus.TIMEOUT:
            return self.message or "timed out"
        if self.error is not None:
            return self.error.message
        return self.message or "not started"

    @classmethod
    def from_returncode(
        cls,
        backend: BackendId,
        returncode: int,
        started_at: datetime,
        **kwargs: Any,
    ) -> ProcessResult:
        """Build a result from a Popen-style return code (negative means signaled)."""
        if returncode < 0:
            return cls(
                backend=backend,
                status=ProcessStatus.SIGNALED,
                exit_code=SIGNAL_SENTINEL,
                signal=-returncode,
                started_at=started_at,
                **kwargs,
            )
        status = ProcessStatus.SUCCEEDED if returncode == 0 else ProcessStatus.FAILED
        return cls(
            backend=backend,
            status=status,
            exit_code=returncode,
            started_at=started_at,
            **kwargs,
        )

    @classmethod
    def not_started(
        cls,
        backend: BackendId,
        error: CagError | None = None,
        message: str | None = None,
    ) -> ProcessResult:
        """Build a result for a process that was never spawned."""
        now = _now()
        return cls(
            backend=backend,
            status=ProcessStatus.NOT_STARTED,
            started_at=now,
            finished_at=now,
            error=error,
            message=message,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "backend": self.backend.value,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "signal": self.signal,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": round(self.duration, 3),
            "error": self.error.to_dict() if self.error else None,
            "message": self.message,
        }


def child_env(entry: PlanEntry) -> dict[str, str]:
    """The wrapper's environment with the entry's overlay applied."""
    env = os.environ.copy()
    env.update(entry.env)
    return env


class InteractiveRunner:
    """
    Runs a single backend with full terminal passthrough.

    The child shares the wrapper's stdin, stdout and stderr, so interactive
    backends work unchanged.
    """

    FORWARDED_SIGNALS = tuple(
        getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGHUP") if hasattr(signal, name)
    )

    def __init__(self, grace_period: float = 5.0):
        self.grace_period = grace_period

    def run(self, entry: PlanEntry) -> ProcessResult:
        """
        Run the entry and wait for it to finish.

        Raises:
            CagError: If the entry carries a preparation error
            BackendNotFoundError: If the executable cannot be started
        """
        if entry.error is not None:
            raise entry.error

        logger.debug(f"Starting {entry.backend.value}: {entry.executable} ({len(entry.argv)} args)")
        started_at = _now()
        try:
            process = subprocess.Popen(entry.command_line, env=child_env(entry))
        except OSError as e:
            raise BackendNotFoundError(
                entry.backend, entry.executable, f"could not be started: {e.strerror or e}"
            ) from e

        previous = self._install_forwarding(process)
        timed_out = False
        try:
            try:
                returncode = process.wait(timeout=entry.timeout)
            except subprocess.TimeoutExpired:
                timed_out = True
                logger.warning(f"{entry.backend.value} timed out after {entry.timeout}s, terminating")
                returncode = self._terminate(process)
        finally:
            self._restore_handlers(previous)

        if timed_out:
            return ProcessResult(
                backend=entry.backend,
                status=ProcessStatus.TIMEOUT,
                started_at=started_at,
                finished_at=_now(),
                message=f"timed out after {entry.timeout:g}s",
            )
        return ProcessResult.from_returncode(
            entry.backend, returncode, started_at, finished_at=_now()
        )

    def _terminate(self, process: subprocess.Popen) -> int:
        process.terminate()
        try:
            return process.wait(timeout=self.grace_period)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {process.pid} ignored SIGTERM, killing")
            process.kill()
            return process.wait()

    def _install_forwarding(self, process: subprocess.Popen) -> dict[int, Any]:
        """Forward wrapper signals to the child; returns the previous handlers."""
        if threading.current_thread() is not threading.main_thread():
            return {}

        def _forward(signum, _frame):
            if process.poll() is None:
                logger.debug(f"Forwarding {_signal_name(signum)} to pid {process.pid}")
                process.send_signal(signum)

        previous = {}
        for signum in self.FORWARDED_SIGNALS:
            previous[signum] = signal.signal(signum, _forward)
        return previous

    def _restore_handlers(self, previous: dict[int, Any]) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)


class FanOutRunner:
    """
    Runs several backends concurrently with captured, per-backend output.

    Policy is "run all, fail independently": every entry runs to completion
    or timeout regardless of what happens to the others.
    """

    BROADCAST_SIGNALS = tuple(
        getattr(signal, name) for name in ("SIGINT", "SIGTERM") if hasattr(signal, name)
    )

    def __init__(self, grace_period: float = 5.0, on_line: LineCallback | None = None):
        self.grace_period = grace_period
        self.on_line = on_line
        self._processes: dict[BackendId, asyncio.subprocess.Process] = {}
        self._interrupted: int | None = None

    def run(self, entries: Sequence[PlanEntry]) -> list[ProcessResult]:
        """Run all entries and return their results in entry order."""
        return asyncio.run(self.run_async(entries))

    async def run_async(self, entries: Sequence[PlanEntry]) -> list[ProcessResult]:
        """Async variant of run()."""
        self._processes = {}
        self._interrupted = None
        loop = asyncio.get_running_loop()
        installed = self._install_signal_handlers(loop)

        try:
            tasks = [asyncio.create_task(self._run_entry(entry)) for entry in entries]
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            for signum in installed:
                loop.remove_signal_handler(signum)

        results: list[ProcessResult] = []
        for entry, outcome in zip(entries, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Unexpected error running {entry.backend.value}: {outcome!r}")
                results.append(ProcessResult.not_started(
                    entry.backend, message=f"internal error: {outcome}"
                ))
            else:
                results.append(outcome)
        return results

    async def _run_entry(self, entry: PlanEntry) -> ProcessResult:
        if entry.error is not None:
            return ProcessResult.not_started(entry.backend, error=entry.error)
        if self._interrupted is not None:
            return ProcessResult.not_started(
                entry.backend, message=f"skipped after {_signal_name(self._interrupted)}"
            )

        logger.debug(f"Starting {entry.backend.value}: {entry.executable} ({len(entry.argv)} args)")
        started_at = _now()
        try:
            process = await asyncio.create_subprocess_exec(
                *entry.command_line,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=child_env(entry),
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            error = BackendNotFoundError(
                entry.backend, entry.executable, f"could not be started: {e.strerror or e}"
            )
            return ProcessResult.not_started(entry.backend, error=error)

        self._processes[entry.backend] = process
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        readers = [
            asyncio.create_task(self._pump(entry.backend, process.stdout, "stdout", stdout_lines)),
            asyncio.create_task(self._pump(entry.backend, process.stderr, "stderr", stderr_lines)),
        ]

        timed_out = False
        try:
            await asyncio.wait_for(process.wait(), timeout=entry.timeout)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(f"{entry.backend.value} timed out after {entry.timeout}s, terminating")
            await self._terminate(process)
        finally:
            self._processes.pop(entry.backend, None)

        await self._drain(readers)
        finished_at = _now()
        captured = {"stdout": "".join(stdout_lines), "stderr": "".join(stderr_lines)}

        if timed_out:
            return ProcessResult(
                backend=entry.backend,
                status=ProcessStatus.TIMEOUT,
                started_at=started_at,
                finished_at=finished_at,
                message=f"timed out after {entry.timeout:g}s",
                **captured,
            )

        message = None
        if self._interrupted is not None:
            message = f"interrupted by {_signal_name(self._interrupted)}"
        return ProcessResult.from_returncode(
            entry.backend,
            process.returncode,
            started_at,
            finished_at=finished_at,
            message=message,
            **captured,
        )

    async def _pump(
        self,
        backend: BackendId,
        stream: asyncio.StreamReader | None,
        name: str,
        sink: list[str],
    ) -> None:
        """
        Read one output stream line by line.

        Lines longer than STREAM_LIMIT are collected in pieces and reported
        whole; a final line without a newline is kept as well.
        """
        if stream is None:
            return
        pending = b""
        while True:
            try:
                raw = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                raw = e.partial
            except asyncio.LimitOverrunError as e:
                # readuntil leaves the buffer intact on overrun
                pending += await stream.readexactly(e.consumed)
                continue
            raw, pending = pending + raw, b""
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace")
            sink.append(line)
            if self.on_line is not None:
                self.on_line(backend, name, line.rstrip("\r\n"))

    async def _drain(self, readers: list[asyncio.Task]) -> None:
        """Wait for readers to hit EOF, bounded by the grace period."""
        done, pending = await asyncio.wait(readers, timeout=self.grace_period)
        for task in pending:
            task.cancel()
        for task in done:
            if task.exception() is not None:
                logger.warning(f"Output reader failed: {task.exception()!r}")

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self.grace_period)
        except asyncio.TimeoutError:
            logger.warning(f"Process {process.pid} ignored SIGTERM, killing")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> list[int]:
        installed = []
        for signum in self.BROADCAST_SIGNALS:
            try:
                loop.add_signal_handler(signum, self._broadcast, signum, loop)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows event loops and non-main threads
                continue
            installed.append(signum)
        return installed

    def _broadcast(self, signum: int, loop: asyncio.AbstractEventLoop) -> None:
        """Send a received signal to every running child, then kill after the grace period."""
        self._interrupted = signum
        logger.debug(f"Broadcasting {_signal_name(signum)} to {len(self._processes)} children")
        for process in list(self._processes.values()):
            try:
                process.send_signal(signum)
            except ProcessLookupError:
                pass
        loop.call_later(self.grace_period, self._kill_remaining)

    def _kill_remaining(self) -> None:
        for backend, process in list(self._processes.items()):
            if process.returncode is None:
                logger.warning(f"{backend.value} still running after grace period, killing")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass


class ExecutionEngine:
    """
    Executes a plan and returns one ProcessResult per entry.

    Plans with one entry run interactively; larger plans fan out.
    """

    def __init__(self, on_line: LineCallback | None = None):
        """
        Initialize the engine.

        Args:
            on_line: Live output callback used in fan-out mode
        """
        self.on_line = on_line

    def execute(self, plan: ExecutionPlan) -> list[ProcessResult]:
        """
        Execute the plan.

        Raises:
            CagError: Preparation or start errors in single-backend mode
        """
        if len(plan) == 1:
            runner = InteractiveRunner(grace_period=plan.grace_period)
            return [runner.run(plan.entries[0])]

        fan_out = FanOutRunner(grace_period=plan.grace_period, on_line=self.on_line)
        return fan_out.run(plan.entries)
