"""
Cross-Platform Agent Detection

Locates backend executables using PATH, configured overrides and common
installation locations per platform, and probes versions for reporting.
"""

import logging
import os
import platform
import re
import shutil
import subprocess
import sys
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from .base import AgentAdapter

logger = logging.getLogger(__name__)

# $VAR, ${VAR} and %VAR%
_VARIABLE_PATTERN = re.compile(r"\$(\w+)|\$\{(\w+)\}|%(\w+)%")


class Platform(Enum):
    """Supported operating system platforms."""
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"


COMMON_LOCATIONS: dict[Platform, dict[str, list[str]]] = {
    Platform.WINDOWS: {
        "claude": [
            "%APPDATA%\\npm\\claude.cmd",
            "%USERPROFILE%\\.local\\bin\\claude.exe",
        ],
        "gemini": [
            "%APPDATA%\\npm\\gemini.cmd",
            "%USERPROFILE%\\.local\\bin\\gemini.exe",
        ],
        "codex": [
            "%LOCALAPPDATA%\\Programs\\codex\\codex.exe",
            "%APPDATA%\\npm\\codex.cmd",
            "%USERPROFILE%\\.local\\bin\\codex.exe",
        ],
    },
    Platform.MACOS: {
        "claude": ["/usr/local/bin/claude", "/opt/homebrew/bin/claude", "~/.claude/local/claude"],
        "gemini": ["/usr/local/bin/gemini", "/opt/homebrew/bin/gemini", "~/.local/bin/gemini"],
        "codex": ["/usr/local/bin/codex", "/opt/homebrew/bin/codex", "~/.local/bin/codex"],
    },
    Platform.LINUX: {
        "claude": ["/usr/local/bin/claude", "~/.local/bin/claude", "~/.claude/local/claude"],
        "gemini": ["/usr/local/bin/gemini", "/usr/bin/gemini", "~/.local/bin/gemini"],
        "codex": ["/usr/local/bin/codex", "/usr/bin/codex", "~/.local/bin/codex"],
    },
}


def detect_platform() -> Platform:
    """Detect the current operating system platform."""
    system = platform.system().lower()
    if system == "windows":
        return Platform.WINDOWS
    if system == "darwin":
        return Platform.MACOS
    return Platform.LINUX


def expand_path(path: str, env: Mapping[str, str] | None = None) -> str:
    """
    Expand environment variables and user home in path.

    With ``env``, $VAR, ${VAR} and %VAR% are taken from that mapping and
    unknown variables are left as written; otherwise the process
    environment is used.
    """
    if env is None:
        return os.path.expanduser(os.path.expandvars(path))

    def _lookup(match: re.Match) -> str:
        name = match.group(1) or match.group(2) or match.group(3)
        return env.get(name, match.group(0))

    return os.path.expanduser(_VARIABLE_PATTERN.sub(_lookup, path))


def is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def find_executable(
    command: str,
    env: Mapping[str, str] | None = None,
    current_platform: Platform | None = None,
) -> tuple[str | None, str | None]:
    """
    Find an executable by command name.

    Methods, in order:
    1. PATH (from ``env`` when given, otherwise the process PATH)
    2. Common installation locations for the platform

    Returns:
        Tuple of (absolute path, detection method), or (None, None)
    """
    search_path = env.get("PATH") if env is not None else None
    path = shutil.which(command, path=search_path)
    if path:
        return os.path.abspath(path), "path"

    locations = COMMON_LOCATIONS.get(current_platform or detect_platform(), {}).get(command, [])
    for location in locations:
        expanded = expand_path(location, env)
        if is_executable(expanded):
            return expanded, "common_location"

    return None, None


@dataclass
class AgentInfo:
    """Information about a detected agent."""
    name: str
    available: bool
    path: str | None = None
    version: str | None = None
    detection_method: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "available": self.available,
            "path": self.path,
            "version": self.version,
            "detection_method": self.detection_method,
            "error": self.error,
        }


class AgentDetector:
    """
    Availability and version probing for configured backends.

    Used for reporting only; execution always goes through
    AgentAdapter.locate().
    """

    VERSION_ARGS = ["--version"]

    def __init__(self, check_versions: bool = True, version_timeout: float = 10.0):
        self.check_versions = check_versions
        self.version_timeout = version_timeout

    def detect(self, adapter: "AgentAdapter") -> AgentInfo:
        """Detect a single backend through its adapter."""
        from ..errors import CagError

        name = adapter.backend_id.value
        try:
            path = adapter.locate()
        except CagError as e:
            return AgentInfo(name=name, available=False, error=e.message)

        method = "override" if adapter.settings.executable else "search"
        version = self.get_version(path) if self.check_versions else None
        return AgentInfo(
            name=name,
            available=True,
            path=path,
            version=version,
            detection_method=method,
        )

    def get_version(self, path: str) -> str | None:
        """Return the first non-empty line of ``<path> --version``."""
        try:
            kwargs: dict[str, Any] = {
                "capture_output": True,
                "text": True,
                "timeout": self.version_timeout,
            }
            if sys.platform == "win32":
                kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

            result = subprocess.run([path] + self.VERSION_ARGS, **kwargs)
            if result.returncode == 0:
                output = result.stdout.strip() or result.stderr.strip()
                for line in output.split("\n"):
                    if line.strip():
                        return line.strip()
        except (subprocess.TimeoutExpired, subprocess.SubprocessError, OSError) as e:
            logger.debug(f"Version probe failed for {path}: {e}")

        return None
