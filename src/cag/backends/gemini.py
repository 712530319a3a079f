"""
Gemini CLI adapter.

Maps unified flags onto the ``gemini`` CLI:
    --prompt TEXT  ->  -p TEXT
    --model NAME   ->  -m NAME
    --auto         ->  --yolo
"""

from ..settings.models import BackendId
from .base import AgentAdapter, UnifiedOptions


class GeminiAdapter(AgentAdapter):
    """Adapter for the Gemini CLI."""

    backend_id = BackendId.GEMINI
    command = "gemini"
    credential_env = "GEMINI_API_KEY"
    install_hint = "npm install -g @google/gemini-cli"

    def build_args(
        self,
        options: UnifiedOptions,
        defaults: list[str],
        rest: list[str],
    ) -> list[str]:
        args = list(defaults)
        if options.model:
            args.extend(["-m", options.model])
        if options.auto:
            args.append("--yolo")
        if options.prompt is not None:
            args.extend(["-p", options.prompt])
        return args + rest
