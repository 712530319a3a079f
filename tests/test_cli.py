"""Tests for the cag command line."""

import json
import sys
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from cag import __version__
from cag.cli.main import app, keep_separator

runner = CliRunner()

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="fake agents are POSIX shell wrappers")


class TestVersion:
    """Tests for --version."""

    def test_version(self):
        """Test that --version prints the version and exits 0."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"cag {__version__}" in result.output

    def test_version_with_broken_config(self, tmp_path):
        """Test that --version works even if the configuration is unusable."""
        path = tmp_path / "config.yaml"
        path.write_text("default_backend: [oops\n")

        result = runner.invoke(app, ["--version"], env={"CAG_CONFIG": str(path)})

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help(self):
        """Test that --help documents the wrapper options."""
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "--backend" in result.output
        assert "--timeout" in result.output


class TestErrorExitCodes:
    """Tests for stable error exit codes."""

    def test_unknown_backend(self):
        """Test that an unknown --backend exits 64."""
        result = runner.invoke(app, ["--backend", "copilot", "--prompt", "hi"])

        assert result.exit_code == 64
        assert "error:" in result.output
        assert "copilot" in result.output

    def test_no_default_backend(self, write_config):
        """Test that no selector and no default exits 65."""
        path = write_config({"default_backend": None})

        result = runner.invoke(app, ["--config", str(path), "--prompt", "hi"])

        assert result.exit_code == 65

    def test_broken_config(self, tmp_path):
        """Test that an unparseable configuration exits 78."""
        path = tmp_path / "config.yaml"
        path.write_text("backends: [\n")

        result = runner.invoke(app, ["-c", str(path), "claude"])

        assert result.exit_code == 78
        assert str(path) in result.output

    @posix_only
    def test_missing_credential(self, write_config, fake_agent):
        """Test that a required credential that is absent exits 77."""
        path = write_config({"backends": {"gemini": {"path": str(fake_agent), "require_credential": True}}})

        result = runner.invoke(app, ["-c", str(path), "gemini", "--prompt", "hi"])

        assert result.exit_code == 77
        assert "GEMINI_API_KEY" in result.output

    def test_backend_not_found(self, tmp_path):
        """Test that a missing executable exits 127."""
        result = runner.invoke(app, ["codex"], env={"CAG_CODEX_PATH": str(tmp_path / "no-codex")})

        assert result.exit_code == 127
        assert "codex" in result.output

    def test_invalid_timeout(self):
        """Test that a non-positive --timeout is a usage error."""
        result = runner.invoke(app, ["--timeout", "0", "claude"])

        assert result.exit_code == 2


@posix_only
class TestSingleBackend:
    """Tests for running one backend."""

    def test_exit_code_passthrough(self, fake_agent):
        """Test that the backend's exit code becomes cag's exit code."""
        env = {"CAG_CLAUDE_PATH": str(fake_agent), "FAKE_EXIT": "3"}

        result = runner.invoke(app, ["claude", "--prompt", "hi"], env=env)

        assert result.exit_code == 3

    def test_default_backend(self, fake_agent, capfd):
        """Test that no selector runs the default backend with translated flags."""
        env = {"CAG_DEFAULT_BACKEND": "gemini", "CAG_GEMINI_PATH": str(fake_agent)}

        result = runner.invoke(app, ["--prompt", "hi", "--sandbox"], env=env)

        assert result.exit_code == 0
        line = capfd.readouterr().out.strip().splitlines()[0]
        assert json.loads(line)["argv"] == ["-p", "hi", "--sandbox"]

    def test_backend_help_passes_through(self, fake_agent, capfd):
        """Test that options after the selector reach the backend."""
        env = {"CAG_CODEX_PATH": str(fake_agent)}

        result = runner.invoke(app, ["codex", "--help", "--version"], env=env)

        assert result.exit_code == 0
        line = capfd.readouterr().out.strip().splitlines()[0]
        assert json.loads(line)["argv"] == ["--help", "--version"]

    def test_timeout(self, fake_agent):
        """Test that --timeout ends a hung backend with exit 124."""
        env = {"CAG_CLAUDE_PATH": str(fake_agent), "CAG_GRACE_PERIOD": "1", "FAKE_SLEEP": "30"}

        result = runner.invoke(app, ["-t", "0.5", "claude"], env=env)

        assert result.exit_code == 124
        assert "timed out" in result.output


@posix_only
class TestFanOut:
    """Tests for `cag all`."""

    def test_json_output(self, write_config, fake_backends_config):
        """Test the JSON document for a clean fan-out."""
        path = write_config(fake_backends_config())

        result = runner.invoke(app, ["-c", str(path), "-o", "json", "all", "--prompt", "hi"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["exit_code"] == 0
        assert data["fan_out"] is True
        assert [r["backend"] for r in data["results"]] == ["claude", "gemini", "codex"]
        argvs = [json.loads(r["stdout"].splitlines()[0])["argv"] for r in data["results"]]
        assert argvs == [["-p", "hi"], ["-p", "hi"], ["exec", "hi"]]

    def test_one_failure_sets_exit_code(self, write_config, fake_backends_config):
        """Test that siblings complete and the failure's code is returned."""
        path = write_config(fake_backends_config(gemini={"FAKE_EXIT": "3"}))

        result = runner.invoke(app, ["-c", str(path), "-o", "json", "all"])

        assert result.exit_code == 3
        statuses = [r["status"] for r in json.loads(result.stdout)["results"]]
        assert statuses == ["succeeded", "failed", "succeeded"]

    def test_minimum_non_zero(self, write_config, fake_backends_config):
        """Test that the lowest non-zero code is returned."""
        path = write_config(fake_backends_config(gemini={"FAKE_EXIT": "5"}, codex={"FAKE_EXIT": "2"}))

        result = runner.invoke(app, ["-c", str(path), "-o", "json", "all"])

        assert result.exit_code == 2

    def test_missing_backend_does_not_stop_others(self, write_config, fake_backends_config, tmp_path):
        """Test that a backend that cannot start is reported alongside the rest."""
        data = fake_backends_config()
        data["backends"]["codex"]["path"] = str(tmp_path / "no-codex")
        path = write_config(data)

        result = runner.invoke(app, ["-c", str(path), "-o", "json", "all"])

        assert result.exit_code == 127
        results = json.loads(result.stdout)["results"]
        assert [r["status"] for r in results] == ["succeeded", "succeeded", "not_started"]
        assert results[2]["error"]["type"] == "BackendNotFoundError"

    def test_text_output(self, write_config, fake_backends_config):
        """Test labeled sections and the summary table."""
        path = write_config(fake_backends_config(codex={"FAKE_STDERR": "codex says hi"}))

        result = runner.invoke(app, ["-c", str(path), "all", "--model", "m"])

        assert result.exit_code == 0
        output = result.stdout
        assert output.index("claude") < output.index("gemini") < output.index("codex")
        assert "codex says hi" in output
        assert "Summary" in output
        assert "All 3 backends succeeded" in output

    def test_stream_output(self, write_config, fake_backends_config):
        """Test that stream mode tags every line with its backend."""
        path = write_config(fake_backends_config(gemini={"FAKE_STDERR": "warning line"}))

        result = runner.invoke(app, ["-c", str(path), "-o", "stream", "all"])

        assert result.exit_code == 0
        assert "[gemini] warning line" in result.stdout
        assert result.stdout.count('"argv"') == 3


class TestManagement:
    """Tests for the reserved management words."""

    def test_config_path(self, tmp_path):
        """Test that `cag config path` prints the file in use."""
        path = tmp_path / "custom.yaml"

        result = runner.invoke(app, ["-c", str(path), "config", "path"])

        assert result.exit_code == 0
        assert str(path) in result.stdout

    def test_config_show_json(self, write_config):
        """Test that `cag config show --json` prints the resolved configuration."""
        path = write_config({"default_backend": "codex", "backends": {"codex": {"credential": "keyring"}}})

        result = runner.invoke(app, ["-c", str(path), "config", "show", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["default_backend"] == "codex"
        assert data["backends"]["codex"]["credential"] == "keyring"

    def test_config_show_rejects_broken_file(self, tmp_path):
        """Test that management commands report configuration errors too."""
        path = tmp_path / "config.yaml"
        path.write_text("timeout: -1\n")

        result = runner.invoke(app, ["-c", str(path), "config", "show"])

        assert result.exit_code == 78

    @posix_only
    def test_backends_json(self, write_config, fake_backends_config, tmp_path):
        """Test availability reporting."""
        data = fake_backends_config()
        data["backends"]["gemini"]["path"] = str(tmp_path / "no-gemini")
        path = write_config(data)

        result = runner.invoke(app, ["-c", str(path), "backends", "--no-versions", "--json"])

        assert result.exit_code == 0
        infos = json.loads(result.stdout)
        assert [i["name"] for i in infos] == ["claude", "gemini", "codex"]
        assert [i["available"] for i in infos] == [True, False, True]

    def test_set_credential(self):
        """Test storing a credential in the keyring."""
        with patch("cag.cli.manage.Prompt.ask", return_value="sk-secret"), \
                patch("keyring.set_password") as set_password:
            result = runner.invoke(app, ["config", "set-credential", "gemini"])

        assert result.exit_code == 0
        set_password.assert_called_once_with("cag", "gemini", "sk-secret")
        assert "sk-secret" not in result.output

    def test_set_credential_unknown_backend(self):
        """Test that an unknown backend name exits 64."""
        result = runner.invoke(app, ["config", "set-credential", "copilot"])

        assert result.exit_code == 64

    def test_delete_credential(self):
        """Test removing a credential from the keyring."""
        with patch("keyring.delete_password") as delete_password:
            result = runner.invoke(app, ["config", "delete-credential", "codex", "--name", "work"])

        assert result.exit_code == 0
        delete_password.assert_called_once_with("cag", "work")

    def test_backend_option_disables_management(self, tmp_path):
        """Test that `-b claude config` sends `config` to the backend."""
        result = runner.invoke(
            app, ["-b", "claude", "config"], env={"CAG_CLAUDE_PATH": str(tmp_path / "none")}
        )

        assert result.exit_code == 127


class TestKeepSeparator:
    """Tests for protecting a leading `--`."""

    def test_leading_separator_doubled(self):
        """Test that `--` before any positional survives option parsing."""
        assert keep_separator(["-t", "5", "--", "--prompt", "x"]) == ["-t", "5", "--", "--", "--prompt", "x"]

    def test_separator_after_positional_untouched(self):
        """Test that a `--` after the selector is left alone."""
        args = ["claude", "--", "--prompt"]

        assert keep_separator(args) == args

    def test_no_separator(self):
        """Test arguments without `--`."""
        assert keep_separator(["--prompt", "x", "y"]) == ["--prompt", "x", "y"]

    def test_grouped_short_flags_ending_in_value_option(self):
        """Test that `-vb claude` counts `claude` as the option's value."""
        args = ["-vb", "claude", "--", "--prompt", "x"]

        assert keep_separator(args) == ["-vb", "claude", "--", "--", "--prompt", "x"]

    def test_attached_short_value(self):
        """Test that `-bclaude` carries its value inline."""
        assert keep_separator(["-bclaude", "--", "x"]) == ["-bclaude", "--", "--", "x"]

    @posix_only
    def test_grouped_flags_keep_arguments_verbatim(self, fake_agent, capfd):
        """Test that arguments after `--` reach the backend untranslated."""
        env = {"CAG_CLAUDE_PATH": str(fake_agent)}

        with patch("cag.cli.main._configure_logging") as configure_logging:
            result = runner.invoke(app, keep_separator(["-vb", "claude", "--", "--prompt", "x"]), env=env)

        assert result.exit_code == 0
        configure_logging.assert_called_once_with(True)
        line = capfd.readouterr().out.strip().splitlines()[0]
        assert json.loads(line)["argv"] == ["--prompt", "x"]
