"""
Claude Code adapter.

Maps unified flags onto the ``claude`` CLI:
    --prompt TEXT  ->  -p TEXT   (print mode, non-interactive)
    --model NAME   ->  --model NAME
    --auto         ->  --dangerously-skip-permissions
"""

from ..settings.models import BackendId
from .base import AgentAdapter, UnifiedOptions


class ClaudeAdapter(AgentAdapter):
    """Adapter for the Claude Code CLI."""

    backend_id = BackendId.CLAUDE
    command = "claude"
    credential_env = "ANTHROPIC_API_KEY"
    install_hint = "npm install -g @anthropic-ai/claude-code"

    def build_args(
        self,
        options: UnifiedOptions,
        defaults: list[str],
        rest: list[str],
    ) -> list[str]:
        args = list(defaults)
        if options.model:
            args.extend(["--model", options.model])
        if options.auto:
            args.append("--dangerously-skip-permissions")
        if options.prompt is not None:
            args.extend(["-p", options.prompt])
        return args + rest
