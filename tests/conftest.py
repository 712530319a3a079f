"""Pytest configuration and fixtures for cag tests."""

import os
import stat
import sys
from pathlib import Path

import pytest
import yaml
from rich.console import Console

from cag.cli.output import OutputManager, set_output

CREDENTIAL_VARS = ("ANTHROPIC_API_KEY", "GEMINI_API_KEY", "OPENAI_API_KEY")

# Fake agent CLI. Behaviour is driven by FAKE_* environment variables so each
# backend in a fan-out can be configured separately through its `env` section.
FAKE_AGENT = '''\
import json
import os
import signal
import sys
import time

if os.environ.get("FAKE_IGNORE_TERM"):
    signal.signal(signal.SIGTERM, signal.SIG_IGN)

show = os.environ.get("FAKE_SHOW_ENV")
print(json.dumps({"argv": sys.argv[1:], "env": os.environ.get(show) if show else None}))
sys.stdout.flush()

if os.environ.get("FAKE_LONG_LINE"):
    print("A" * int(os.environ["FAKE_LONG_LINE"]))
    print("tail", end="")
    sys.stdout.flush()

if os.environ.get("FAKE_STDERR"):
    print(os.environ["FAKE_STDERR"], file=sys.stderr)
    sys.stderr.flush()

if os.environ.get("FAKE_KILL_SELF"):
    os.kill(os.getpid(), signal.SIGTERM)
    time.sleep(5)

time.sleep(float(os.environ.get("FAKE_SLEEP", "0")))
sys.exit(int(os.environ.get("FAKE_EXIT", "0")))
'''


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep the developer's configuration, credentials and CAG_* overrides out of tests."""
    for name in list(os.environ):
        if name.startswith("CAG_") or name.startswith("FAKE_"):
            monkeypatch.delenv(name, raising=False)
    for name in CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CAG_CONFIG", str(tmp_path / "missing-config.yaml"))


@pytest.fixture(autouse=True)
def plain_output():
    """Render without colors and with a wide console."""
    set_output(OutputManager(
        Console(force_terminal=False, width=200),
        Console(stderr=True, force_terminal=False, width=200),
    ))
    yield


@pytest.fixture
def fake_agent(tmp_path) -> Path:
    """Create an executable fake agent CLI and return its path."""
    if sys.platform == "win32":
        pytest.skip("fake agents are POSIX shell wrappers")

    script = tmp_path / "fake_agent.py"
    script.write_text(FAKE_AGENT)

    wrapper = tmp_path / "fake-agent"
    wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n')
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return wrapper


@pytest.fixture
def write_config(tmp_path):
    """Return a function that writes a YAML configuration file."""
    def _write(data, name: str = "config.yaml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path
    return _write


@pytest.fixture
def fake_backends_config(fake_agent):
    """Configuration mapping pointing every backend at the fake agent."""
    def _config(**env_by_backend) -> dict:
        backends = {}
        for name in ("claude", "gemini", "codex"):
            section = {"path": str(fake_agent)}
            if name in env_by_backend:
                section["env"] = env_by_backend[name]
            backends[name] = section
        return {"grace_period": 1, "backends": backends}
    return _config
