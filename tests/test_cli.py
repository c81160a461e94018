"""Tests for the claude-relay command line."""

import importlib

import tomli
from click.testing import CliRunner

from claude_relay.cli import util
from claude_relay.cli.main import main

# The command package re-exports the click commands under the module names
init_module = importlib.import_module("claude_relay.cli.command.init")


class TestInit:
    def test_creates_instance(self, tmp_path):
        instance = tmp_path / "relay"

        result = CliRunner().invoke(main, ["init", str(instance)])

        assert result.exit_code == 0, result.output
        assert util.is_initialized(instance)
        assert (instance / "logs").is_dir()
        config = util.load_config(instance)
        assert config["server"] == {"host": "127.0.0.1", "port": 3000}
        assert config["claude"]["binary"] == "claude"
        assert util.get_instance_info(instance)["instance_path"] == str(instance)

    def test_default_config_parses(self):
        config = tomli.loads(init_module.DEFAULT_CONFIG)
        assert {"server", "cors", "claude", "relay", "history", "mcp", "static"} <= set(config)

    def test_refuses_second_init(self, tmp_path):
        CliRunner().invoke(main, ["init", str(tmp_path / "relay")])
        result = CliRunner().invoke(main, ["init", str(tmp_path / "relay")])

        assert result.exit_code != 0
        assert "Already initialized" in result.output

    def test_refuses_non_empty_directory(self, tmp_path):
        (tmp_path / "stuff.txt").write_text("x")
        result = CliRunner().invoke(main, ["init", str(tmp_path)])

        assert result.exit_code != 0
        assert not util.is_initialized(tmp_path)


class TestStart:
    def test_requires_init(self, tmp_path):
        result = CliRunner().invoke(main, ["start", str(tmp_path / "missing")])

        assert result.exit_code != 0
        assert "Not initialized" in result.output

    def test_runs_uvicorn_and_cleans_pid_file(self, tmp_path, monkeypatch):
        instance = tmp_path / "relay"
        CliRunner().invoke(main, ["init", str(instance)])
        calls = []

        def fake_run(app, host, port):
            calls.append((app, host, port))
            assert util.get_pid_file(instance).exists()

        monkeypatch.setattr("uvicorn.run", fake_run)
        result = CliRunner().invoke(main, ["start", str(instance)])

        assert result.exit_code == 0, result.output
        app, host, port = calls[0]
        assert (host, port) == ("127.0.0.1", 3000)
        assert app.state.settings.claude.binary == "claude"
        assert not util.get_pid_file(instance).exists()

    def test_host_and_port_options_override_config(self, tmp_path, monkeypatch):
        instance = tmp_path / "relay"
        CliRunner().invoke(main, ["init", str(instance)])
        (instance / "config.toml").write_text('[claude]\nbinary = "claude"\n')
        calls = []
        monkeypatch.setattr("uvicorn.run", lambda app, host, port: calls.append((host, port)))

        result = CliRunner().invoke(main, ["start", str(instance), "--host", "0.0.0.0", "--port", "8123"])

        assert result.exit_code == 0, result.output
        assert calls == [("0.0.0.0", 8123)]

    def test_missing_server_section(self, tmp_path):
        instance = tmp_path / "relay"
        CliRunner().invoke(main, ["init", str(instance)])
        (instance / "config.toml").write_text('[claude]\nbinary = "claude"\n')

        result = CliRunner().invoke(main, ["start", str(instance)])

        assert result.exit_code != 0
        assert "Missing required config key" in result.output


class TestStop:
    def test_not_running(self, tmp_path):
        instance = tmp_path / "relay"
        CliRunner().invoke(main, ["init", str(instance)])

        result = CliRunner().invoke(main, ["stop", str(instance)])

        assert result.exit_code == 0
        assert "not running" in result.output


class TestUtil:
    def test_default_instance_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert util.get_instance_path() == tmp_path / ".claude-relay"

    def test_stale_pid_file_is_removed(self, tmp_path):
        util.get_pid_file(tmp_path).write_text("999999999")

        assert not util.is_running(tmp_path)
        assert not util.get_pid_file(tmp_path).exists()

    def test_garbage_pid_file(self, tmp_path):
        util.get_pid_file(tmp_path).write_text("not a pid")
        assert util.read_pid(tmp_path) is None
        assert not util.is_running(tmp_path)
