"""
Rich Terminal Output for cag

Renders fan-out results, summaries, backend tables and configuration.
Captured backend output is printed verbatim: no markup, no highlighting,
no re-wrapping.
"""

import json
from typing import TYPE_CHECKING, Any

import yaml
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from ..backends.detector import AgentInfo
    from ..core.aggregator import AggregateOutcome
    from ..settings.models import BackendId


class OutputManager:
    """
    Manages rich terminal output for the cag CLI.

    Provides consistent styling and formatting for:
    - Tagged live lines and labeled per-backend sections
    - Summary tables for fan-out runs
    - Backend availability tables
    - Error reporting on stderr
    """

    # Per-backend tag colors, by backend name
    BACKEND_COLORS = {
        "claude": "magenta",
        "gemini": "blue",
        "codex": "green",
    }

    # Status icons
    ICONS = {
        "succeeded": "[green]v[/green]",
        "failed": "[red]x[/red]",
        "signaled": "[red]![/red]",
        "timeout": "[yellow]![/yellow]",
        "not_started": "[dim]o[/dim]",
    }

    def __init__(self, console: Console | None = None, err_console: Console | None = None):
        """
        Initialize the output manager.

        Args:
            console: Console for regular output (stdout)
            err_console: Console for errors and diagnostics (stderr)
        """
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)

    # ==================== Basic Output ====================

    def print(self, message: str = "", style: str | None = None) -> None:
        """Print a message with optional styling."""
        self.console.print(message, style=style)

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]v[/green] {message}")

    def print_error(self, message: str) -> None:
        """Print an error message to stderr."""
        self.err_console.print(f"[red]error:[/red] {escape(message)}", highlight=False)

    def print_warning(self, message: str) -> None:
        """Print a warning message to stderr."""
        self.err_console.print(f"[yellow]warning:[/yellow] {escape(message)}", highlight=False)

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[blue]i[/blue] {message}")

    def version(self, version: str) -> None:
        """Print the wrapper version."""
        self.console.print(f"cag {version}", highlight=False)

    # ==================== Backend Output ====================

    def _tag(self, backend: "BackendId") -> Text:
        color = self.BACKEND_COLORS.get(backend.value, "cyan")
        return Text(f"[{backend.value}]", style=f"bold {color}")

    def backend_line(self, backend: "BackendId", stream: str, line: str) -> None:
        """
        Print one live output line tagged with its backend.

        Args:
            backend: Backend that produced the line
            stream: "stdout" or "stderr"
            line: Line content without trailing newline
        """
        text = Text.assemble(
            self._tag(backend),
            " ",
            Text(line, style="dim" if stream == "stderr" else ""),
        )
        self.console.print(text, soft_wrap=True, highlight=False)

    def fan_out_report(self, outcome: "AggregateOutcome") -> None:
        """
        Print each backend's captured output under its label.

        Sections appear in declaration order regardless of completion order.
        """
        for result in outcome.results.values():
            color = self.BACKEND_COLORS.get(result.backend.value, "cyan")
            title = f"[bold {color}]{result.backend.value}[/bold {color}] [dim]{escape(result.detail)} | {result.duration:.1f}s[/dim]"
            self.console.print(Rule(title, align="left", style=color))

            if result.stdout:
                self.console.print(Text(result.stdout.rstrip("\n")), soft_wrap=True, highlight=False)
            if result.stderr:
                self.console.print(
                    Text(result.stderr.rstrip("\n"), style="dim"), soft_wrap=True, highlight=False
                )
            if not result.stdout and not result.stderr:
                self.console.print("[dim](no output)[/dim]")
            self.console.print()

    def summary_table(self, outcome: "AggregateOutcome") -> None:
        """Print the per-backend summary and the overall exit code."""
        table = Table(title="Summary", title_justify="left")

        table.add_column("Backend", style="cyan", width=8)
        table.add_column("Status", width=14)
        table.add_column("Exit", justify="right", width=5)
        table.add_column("Time", justify="right", width=8)
        table.add_column("Detail", style="dim")

        for result in outcome.results.values():
            status = result.status.value
            icon = self.ICONS.get(status, "")
            exit_code = str(result.exit_code) if result.exit_code >= 0 else "-"
            table.add_row(
                result.backend.value,
                f"{icon} {status}",
                exit_code,
                f"{result.duration:.1f}s",
                escape(result.detail) if not result.succeeded else "",
            )

        self.console.print(table)

        failures = outcome.failures()
        if failures:
            first = failures[0]
            self.console.print(
                f"[red]x[/red] {len(failures)} of {len(outcome.results)} backends failed; "
                f"first: [bold]{first.backend.value}[/bold] ({escape(first.detail)})"
            )
        else:
            self.print_success(f"All {len(outcome.results)} backends succeeded")

    def json_report(self, outcome: "AggregateOutcome") -> None:
        """Print the outcome as a JSON document."""
        self.console.out(json.dumps(outcome.to_dict(), indent=2), highlight=False)

    # ==================== Management ====================

    def backends_table(self, infos: list["AgentInfo"], credentials: dict[str, str]) -> None:
        """
        Display backend availability.

        Args:
            infos: Detection results in declaration order
            credentials: Credential state per backend name
        """
        table = Table(title="Backends")

        table.add_column("Backend", style="cyan", width=8)
        table.add_column("Available", width=9)
        table.add_column("Path", style="white")
        table.add_column("Version", style="dim")
        table.add_column("Credential", style="yellow")

        for info in infos:
            available = "[green]yes[/green]" if info.available else "[red]no[/red]"
            path = info.path if info.available else f"[dim]{escape(info.error or '-')}[/dim]"
            table.add_row(
                info.name,
                available,
                path or "-",
                info.version or "-",
                credentials.get(info.name, "-"),
            )

        self.console.print(table)

    def config_display(self, config: dict[str, Any], source: str | None = None) -> None:
        """
        Display configuration as YAML.

        Args:
            config: Configuration dictionary
            source: Where the configuration came from
        """
        content = yaml.dump(config, default_flow_style=False, allow_unicode=True, sort_keys=False)
        self.console.print(Panel(
            Syntax(content.rstrip("\n"), "yaml", background_color="default"),
            title="Configuration",
            subtitle=escape(source) if source else None,
            border_style="cyan",
        ))


# Global output manager instance
_output: OutputManager | None = None


def get_output() -> OutputManager:
    """Get the global output manager instance."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    """Set the global output manager instance."""
    global _output
    _output = output
