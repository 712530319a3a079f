"""
OpenAI Codex CLI adapter.

Maps unified flags onto the ``codex`` CLI. A prompt switches to the
non-interactive ``exec`` subcommand, which has to lead the argument list:
    --prompt TEXT  ->  exec ... TEXT
    --model NAME   ->  -m NAME
    --auto         ->  --full-auto
"""

from ..settings.models import BackendId
from .base import AgentAdapter, UnifiedOptions


class CodexAdapter(AgentAdapter):
    """Adapter for the OpenAI Codex CLI."""

    backend_id = BackendId.CODEX
    command = "codex"
    credential_env = "OPENAI_API_KEY"
    install_hint = "npm install -g @openai/codex"

    def build_args(
        self,
        options: UnifiedOptions,
        defaults: list[str],
        rest: list[str],
    ) -> list[str]:
        flags: list[str] = []
        if options.model:
            flags.extend(["-m", options.model])
        if options.auto:
            flags.append("--full-auto")

        if options.prompt is not None:
            return ["exec", *defaults, *flags, *rest, options.prompt]
        return [*defaults, *flags, *rest]
