"""Tests for the command router."""

from pathlib import Path

import pytest

from cag.core import ALL_SELECTOR, ExecutionPlan, Invocation, OutputMode, plan, select_backends
from cag.errors import (
    BackendNotFoundError,
    MissingCredentialError,
    NoDefaultBackendError,
    UnknownBackendError,
)
from cag.settings import BackendId, BackendSettings, ResolvedConfig


def _config(executable: Path, **kwargs) -> ResolvedConfig:
    backends = {backend_id: BackendSettings(executable=str(executable)) for backend_id in BackendId}
    backends.update(kwargs.pop("backends", {}))
    return ResolvedConfig(backends=backends, env={"PATH": ""}, **kwargs)


class TestSelectBackends:
    """Tests for selector resolution."""

    def test_default_backend(self):
        """Test that no selector means the configured default."""
        config = ResolvedConfig(default_backend=BackendId.GEMINI)

        assert select_backends(Invocation(), config) == [BackendId.GEMINI]

    def test_all_in_declaration_order(self):
        """Test that "all" selects every backend in order."""
        assert select_backends(Invocation(selector="ALL"), ResolvedConfig()) == list(BackendId)

    def test_case_insensitive(self):
        """Test that backend names ignore case."""
        assert select_backends(Invocation(selector="Codex"), ResolvedConfig()) == [BackendId.CODEX]

    def test_unknown_selector(self):
        """Test that an unknown name lists the valid choices."""
        with pytest.raises(UnknownBackendError) as exc_info:
            select_backends(Invocation(selector="copilot"), ResolvedConfig())

        assert exc_info.value.exit_code == 64
        message = str(exc_info.value)
        assert "copilot" in message
        assert ALL_SELECTOR in message

    def test_no_default(self):
        """Test that no selector and no default fails."""
        with pytest.raises(NoDefaultBackendError) as exc_info:
            select_backends(Invocation(), ResolvedConfig(default_backend=None))

        assert exc_info.value.exit_code == 65


class TestPlan:
    """Tests for execution plan construction."""

    def test_single_backend_plan(self, fake_agent: Path):
        """Test a one-entry plan with translated arguments."""
        config = _config(fake_agent)

        execution_plan = plan(Invocation(selector="gemini", args=("--prompt", "hi", "-v")), config)

        assert len(execution_plan) == 1
        assert not execution_plan.fan_out
        entry = execution_plan.entries[0]
        assert entry.backend == BackendId.GEMINI
        assert entry.executable == str(fake_agent)
        assert entry.argv == ("-p", "hi", "-v")
        assert entry.error is None

    def test_single_backend_has_no_default_timeout(self, fake_agent: Path):
        """Test that interactive runs are not cut off by the global timeout."""
        execution_plan = plan(Invocation(selector="claude"), _config(fake_agent))

        assert execution_plan.entries[0].timeout is None

    def test_fan_out_plan(self, fake_agent: Path):
        """Test that "all" plans every backend with the global timeout."""
        config = _config(fake_agent, default_timeout=90.0, grace_period=2.0)

        execution_plan = plan(
            Invocation(selector="all", args=("--model", "m"), output_mode=OutputMode.JSON),
            config,
        )

        assert execution_plan.fan_out
        assert execution_plan.backends == [BackendId.CLAUDE, BackendId.GEMINI, BackendId.CODEX]
        assert [entry.timeout for entry in execution_plan.entries] == [90.0, 90.0, 90.0]
        assert execution_plan.output_mode == OutputMode.JSON
        assert execution_plan.grace_period == 2.0
        assert execution_plan.entries[0].argv == ("--model", "m")
        assert execution_plan.entries[1].argv == ("-m", "m")

    def test_backend_timeout_beats_global(self, fake_agent: Path):
        """Test that a per-backend timeout applies in fan-out."""
        config = _config(
            fake_agent,
            backends={BackendId.CODEX: BackendSettings(executable=str(fake_agent), timeout=7.0)},
        )

        execution_plan = plan(Invocation(selector="all"), config)

        assert execution_plan.entries[2].timeout == 7.0
        assert execution_plan.entries[0].timeout == 600.0

    def test_invocation_timeout_wins(self, fake_agent: Path):
        """Test that --timeout overrides every configured timeout."""
        config = _config(
            fake_agent,
            backends={BackendId.CLAUDE: BackendSettings(executable=str(fake_agent), timeout=7.0)},
        )

        single = plan(Invocation(selector="claude", timeout=3.0), config)
        fan_out = plan(Invocation(selector="all", timeout=3.0), config)

        assert single.entries[0].timeout == 3.0
        assert [entry.timeout for entry in fan_out.entries] == [3.0, 3.0, 3.0]

    def test_credential_in_entry_env(self, fake_agent: Path):
        """Test that resolved credentials reach the entry's environment overlay."""
        config = ResolvedConfig(
            backends={BackendId.CODEX: BackendSettings(executable=str(fake_agent), credential="env:KEY")},
            env={"KEY": "sk-1"},
        )

        entry = plan(Invocation(selector="codex"), config).entries[0]

        assert entry.env == {"OPENAI_API_KEY": "sk-1"}

    def test_single_backend_errors_propagate(self, tmp_path: Path):
        """Test that a missing executable fails planning in single mode."""
        config = _config(tmp_path / "missing")

        with pytest.raises(BackendNotFoundError):
            plan(Invocation(selector="claude"), config)

    def test_fan_out_records_errors(self, fake_agent: Path, tmp_path: Path):
        """Test that one unusable backend does not stop fan-out planning."""
        config = _config(
            fake_agent,
            backends={
                BackendId.GEMINI: BackendSettings(executable=str(tmp_path / "missing")),
                BackendId.CODEX: BackendSettings(executable=str(fake_agent), require_credential=True),
            },
        )

        execution_plan = plan(Invocation(selector="all"), config)

        claude, gemini, codex = execution_plan.entries
        assert claude.error is None
        assert isinstance(gemini.error, BackendNotFoundError)
        assert isinstance(codex.error, MissingCredentialError)

    def test_empty_plan_rejected(self):
        """Test that an ExecutionPlan always has at least one entry."""
        with pytest.raises(ValueError):
            ExecutionPlan(entries=())
