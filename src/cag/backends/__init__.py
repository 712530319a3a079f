"""
cag Backends Module

Contains the adapter layer that maps a unified invocation onto each
supported agent CLI:
- ClaudeAdapter: Claude Code (``claude``)
- GeminiAdapter: Gemini CLI (``gemini``)
- CodexAdapter: OpenAI Codex CLI (``codex``)

Key Components:
- AgentAdapter: Abstract base class for all adapters
- AdapterFactory: Adapter registry and instantiation
- AgentDetector: Availability and version probing
"""

from ..settings.models import BackendId
from .base import AgentAdapter, UnifiedOptions, split_unified_args
from .claude import ClaudeAdapter
from .codex import CodexAdapter
from .detector import AgentDetector, AgentInfo
from .factory import AdapterFactory
from .gemini import GeminiAdapter

__all__ = [
    "BackendId",
    # Base classes
    "AgentAdapter",
    "UnifiedOptions",
    "split_unified_args",
    # Factory
    "AdapterFactory",
    # Detection
    "AgentDetector",
    "AgentInfo",
    # Implementations
    "ClaudeAdapter",
    "GeminiAdapter",
    "CodexAdapter",
]
