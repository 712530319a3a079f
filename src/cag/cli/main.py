#!/usr/bin/env python3
"""
cag CLI

One command line for several AI-agent CLIs:
- cag [ARGS]...                 run the default backend interactively
- cag <backend> [ARGS]...       run one backend (claude, gemini, codex)
- cag all [ARGS]...             fan out to every backend concurrently
- cag backends                  show backend availability
- cag config show|path|...      inspect configuration and credentials

Unified flags (--prompt, --model, --auto) are translated per backend; any
other argument passes through verbatim. Option parsing stops at the first
positional argument, so `cag claude --help` reaches claude.
"""

import logging
import sys
from typing import List, Optional

import click
import typer

from .. import __version__
from ..core.aggregator import AggregateOutcome, aggregate
from ..core.engine import ExecutionEngine, ProcessStatus
from ..core.router import ALL_SELECTOR, Invocation, OutputMode, plan
from ..errors import EXIT_SIGNALED, CagError
from ..settings.models import BackendId
from ..settings.resolver import resolve
from .manage import MANAGEMENT_COMMANDS, manage_app
from .output import OutputManager, get_output

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Wrapper options that consume the following token
VALUE_OPTIONS = {"--backend", "-b", "--timeout", "-t", "--output", "-o", "--config", "-c"}
SHORT_VALUE_FLAGS = "btoc"

PASSTHROUGH_CONTEXT = {
    "allow_extra_args": True,
    "ignore_unknown_options": True,
    "allow_interspersed_args": False,
}

app = typer.Typer(
    name="cag",
    help="cag - one command line for Claude Code, Gemini CLI and Codex",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        get_output().version(__version__)
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def _is_selector(value: str) -> bool:
    return value.strip().lower() == ALL_SELECTOR or BackendId.parse(value) is not None


@app.command(context_settings=PASSTHROUGH_CONTEXT)
def run(
    args: Optional[List[str]] = typer.Argument(None, help="[BACKEND|all] and arguments passed to the backend"),
    backend: str | None = typer.Option(None, "--backend", "-b", help="Backend to run (claude, gemini, codex, all)"),
    timeout: float | None = typer.Option(None, "--timeout", "-t", help="Per-process timeout in seconds"),
    output_mode: OutputMode = typer.Option(
        OutputMode.TEXT, "--output", "-o", case_sensitive=False, help="Fan-out output: text, json or stream"
    ),
    config_path: str | None = typer.Option(None, "--config", "-c", help="Configuration file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """
    Run an agent backend, or all of them.

    Examples:
        cag --prompt "explain this repo"
        cag gemini --model gemini-2.5-pro
        cag all --prompt "review the last commit" -o stream
        cag codex -- --prompt "passed to codex verbatim"
    """
    _configure_logging(verbose)
    output = get_output()
    args = list(args or [])

    if backend is None and args and args[0] in MANAGEMENT_COMMANDS:
        raise typer.Exit(code=_run_management(args, config_path, output))

    if timeout is not None and timeout <= 0:
        raise typer.BadParameter("must be a positive number of seconds", param_hint="'--timeout'")

    selector = backend
    if selector is None and args and _is_selector(args[0]):
        selector = args.pop(0)

    invocation = Invocation(
        selector=selector,
        args=tuple(args),
        timeout=timeout,
        output_mode=output_mode,
    )

    try:
        config = resolve(config_path=config_path)
        execution_plan = plan(invocation, config)
        on_line = output.backend_line if output_mode == OutputMode.STREAM else None
        results = ExecutionEngine(on_line=on_line).execute(execution_plan)
        outcome = aggregate(execution_plan, results)
    except CagError as e:
        logger.debug(f"{type(e).__name__}: {e}")
        output.print_error(str(e))
        raise typer.Exit(code=e.exit_code)
    except KeyboardInterrupt:
        raise typer.Exit(code=EXIT_SIGNALED)

    if outcome.fan_out:
        _render_fan_out(outcome, output_mode, output)
    else:
        _report_single(outcome, output)

    raise typer.Exit(code=outcome.exit_code)


def _render_fan_out(outcome: AggregateOutcome, mode: OutputMode, output: OutputManager) -> None:
    if mode == OutputMode.JSON:
        output.json_report(outcome)
        return
    if mode == OutputMode.TEXT:
        output.fan_out_report(outcome)
    output.summary_table(outcome)


def _report_single(outcome: AggregateOutcome, output: OutputManager) -> None:
    # The child owned the terminal; only outcomes it could not report itself
    for result in outcome.results.values():
        if result.status in (ProcessStatus.TIMEOUT, ProcessStatus.NOT_STARTED):
            output.print_error(f"[{result.backend.value}] {result.detail}")


def _run_management(args: list[str], config_path: str | None, output: OutputManager) -> int:
    """Dispatch reserved management words to the management app."""
    command = typer.main.get_command(manage_app)
    try:
        result = command.main(
            args=args,
            prog_name="cag",
            standalone_mode=False,
            obj={"config_path": config_path},
        )
    except CagError as e:
        output.print_error(str(e))
        return e.exit_code
    except click.exceptions.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Abort:
        output.print_error("Aborted")
        return 1
    return result if isinstance(result, int) else 0


def keep_separator(args: list[str]) -> list[str]:
    """
    Protect a `--` that appears before any positional argument.

    Click consumes the first `--` as its own end-of-options marker; doubling
    it lets the second one reach the backend arguments, where it ends
    unified-flag recognition.
    """
    i = 0
    while i < len(args):
        token = args[i]
        if token == "--":
            return args[:i] + ["--"] + args[i:]
        if not token.startswith("-") or token == "-":
            break
        if _takes_next(token):
            i += 1
        i += 1
    return args


def _takes_next(token: str) -> bool:
    """Whether a wrapper option token consumes the following token as its value."""
    if token in VALUE_OPTIONS:
        return True
    if token.startswith("--"):
        return False
    # Short flag group such as -vb: the first value flag takes the rest of
    # the group, or the next token when it ends the group
    group = token[1:]
    for i, letter in enumerate(group):
        if letter in SHORT_VALUE_FLAGS:
            return i == len(group) - 1
    return False


def main(argv: list[str] | None = None):
    """CLI entry point."""
    args = sys.argv[1:] if argv is None else list(argv)
    app(args=keep_separator(args), prog_name="cag")


if __name__ == "__main__":
    main()
