"""
cag CLI Module

Contains the command-line interface:
- main: typer entry point (run, fan-out, version)
- manage: reserved management words (backends, config)
- output: rich terminal rendering
"""

from .main import app, main
from .manage import manage_app
from .output import OutputManager, get_output, set_output

__all__ = [
    "app",
    "main",
    "manage_app",
    "OutputManager",
    "get_output",
    "set_output",
]
