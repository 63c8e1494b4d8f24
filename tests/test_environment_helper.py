"""Tests for the environment helper functionality in pae."""

import os

import pytest

from pae.environment_helper import (
    EnvironmentEffects,
    EnvironmentHelper,
    debug_log,
    is_truthy,
)


class TestDebugLogUnit:
    def test_debug_log_enabled(self, mocker, capsys):
        mocker.patch.dict("os.environ", {"PAE_DEBUG": "1"})
        debug_log("hello")
        assert "[DEBUG] hello" in capsys.readouterr().err

    def test_debug_log_disabled(self, mocker, capsys):
        mocker.patch.dict("os.environ", {}, clear=True)
        debug_log("hello")
        captured = capsys.readouterr()
        assert captured.err == ""
        assert captured.out == ""

    @pytest.mark.parametrize("value", ["1", "true", "YES", "on"])
    def test_truthy(self, value):
        assert is_truthy(value)

    @pytest.mark.parametrize("value", [None, "", "0", "false", "off"])
    def test_not_truthy(self, value):
        assert not is_truthy(value)


class TestEnvironmentHelperUnit:
    def test_is_debug_enabled(self):
        assert EnvironmentHelper.is_debug_enabled({"PAE_DEBUG": "1"})
        assert not EnvironmentHelper.is_debug_enabled({})

    def test_verbose_implied_by_debug(self):
        assert EnvironmentHelper.is_verbose_enabled({"PAE_DEBUG": "true"})
        assert EnvironmentHelper.is_verbose_enabled({"PAE_VERBOSE": "1"})
        assert not EnvironmentHelper.is_verbose_enabled({})

    def test_collect_env_effects(self):
        effects, rest = EnvironmentHelper.collect_env_effects(
            ["--pae-debug", "build", "--pae-verbose", "--skip-nx-cache"]
        )
        assert effects.exports == {"PAE_DEBUG": "1", "PAE_VERBOSE": "1"}
        assert rest == ["build", "--skip-nx-cache"]

    def test_collect_echo_variants(self):
        effects, rest = EnvironmentHelper.collect_env_effects(["--pae-echo='short-in'"])
        assert effects.exports == {"PAE_ECHO": "1", "PAE_ECHO_VARIANT": "short-in"}
        assert rest == []

    def test_collect_echo_x(self):
        effects, _ = EnvironmentHelper.collect_env_effects(["--pae-echoX"])
        assert effects.exports == {"PAE_ECHO_X": "1"}

    def test_prefix_lookalikes_are_kept(self):
        effects, rest = EnvironmentHelper.collect_env_effects(["--pae-echoed"])
        assert not effects
        assert rest == ["--pae-echoed"]

    def test_echo_lines_for_variant(self):
        environ = {"PAE_ECHO_VARIANT": "short-in", "PAE_SHORT_IN": "dc b"}
        assert EnvironmentHelper.echo_lines("nx run dynamicons:build", environ) == [
            "[short-in] -> dc b"
        ]

    def test_echo_lines_global_out(self):
        environ = {"PAE_ECHO_VARIANT": "global-out", "PAE_SHORT_IN": "dc b"}
        assert EnvironmentHelper.echo_lines("nx run x:y", environ) == ["[global-out] -> nx run x:y"]

    def test_echo_lines_unknown_variant_shows_everything(self):
        environ = {"PAE_SHORT_IN": "dc b", "PAE_GLOBAL_IN": "pae dc b"}
        assert EnvironmentHelper.echo_lines("nx run x:y", environ) == [
            "[short-in] -> dc b",
            "[global-in] -> pae dc b",
            "[global-out] -> nx run x:y",
        ]


class TestEnvironmentEffectsUnit:
    def test_apply_to_mapping(self):
        environ = {"PATH": "/bin"}
        EnvironmentEffects({"PAE_DEBUG": "1"}).apply(environ)
        assert environ == {"PATH": "/bin", "PAE_DEBUG": "1"}

    def test_apply_defaults_to_os_environ(self, mocker):
        mocker.patch.dict("os.environ", {}, clear=True)
        EnvironmentEffects({"PAE_ECHO": "1"}).apply()
        assert os.environ == {"PAE_ECHO": "1"}

    def test_merge(self):
        merged = EnvironmentEffects({"A": "1"}).merge(EnvironmentEffects({"A": "2", "B": "3"}))
        assert merged.exports == {"A": "2", "B": "3"}

    def test_bool(self):
        assert not EnvironmentEffects()
        effects = EnvironmentEffects()
        effects.set("PAE_DEBUG")
        assert effects
