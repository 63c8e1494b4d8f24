"""Tests for the help output in pae."""

from pae.alias_config import AliasConfig
from pae.help_command import HelpCommand


class TestHelpCommandUnit:
    def test_static_help(self, capsys):
        """Without a config only usage, commands and flags are shown."""
        assert HelpCommand.execute() == 0
        out = capsys.readouterr().out
        assert "Usage: pae <alias> [target] [flags]" in out
        assert "install" in out
        assert "--pae-execa-timeout=<ms>" in out
        assert "Available Aliases" not in out

    def test_config_sections(self, sample_config):
        text = HelpCommand.render(sample_config)
        assert "Available Aliases:" in text
        assert "dcc      → dynamicons-core" in text
        assert "b        → build" in text
        assert "ti       → test:integration (from core)" in text
        assert "list     → ls -la" in text
        assert "hello    → echo hello" in text
        assert "-s         → --skip-nx-cache" in text
        assert "-sleep     → shell template (pwsh, linux)" in text
        assert "-sto       → --pae-execa-timeout={duration}" in text
        assert "Install PAE shell integration" in text

    def test_empty_sections_are_omitted(self):
        text = HelpCommand.render(AliasConfig.from_dict({"nxTargets": {"b": "build"}}))
        assert "Available Targets:" in text
        assert "Available Aliases:" not in text
        assert "Feature Targets:" not in text

    def test_execute_returns_zero(self, capsys, sample_config):
        assert HelpCommand.execute(sample_config) == 0
        assert "dynamicons" in capsys.readouterr().out
