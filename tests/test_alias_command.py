"""Tests for running alias commands end to end with execution mocked out."""

import pytest

from pae.alias_command import AliasCommand, ExecutionState
from pae.alias_config import AliasConfig


@pytest.fixture
def help_command(mocker):
    return mocker.Mock()


@pytest.fixture
def make_command(mocker, fake_environ, help_command):
    def _make(**kwargs):
        options = {
            "debug": mocker.Mock(),
            "error": mocker.Mock(),
            "shell_type": "linux",
            "environ": fake_environ,
            "help_command": help_command,
            "pool": mocker.Mock(name="pool"),
        }
        options.update(kwargs)
        return AliasCommand(**options)

    return _make


def nx_call(mock_run):
    """The (base, start, end, timeout_ms) arguments of the single run_nx call."""
    mock_run["run_nx"].assert_called_once()
    return mock_run["run_nx"].call_args.args[:4]


class TestAliasCommandUnit:
    def test_package_alias(self, make_command, sample_config, mock_run, fake_environ):
        command = make_command()
        assert command.execute(["dc", "b"], sample_config) == 0
        mock_run["run_nx"].assert_called_once_with(
            ["nx", "run", "dynamicons:build"], [], [], None, "linux", fake_environ
        )

    def test_default_target(self, make_command, sample_config, mock_run):
        make_command().execute(["dcc"], sample_config)
        base, _, _, _ = nx_call(mock_run)
        assert base == ["nx", "run", "dynamicons-core:build"]

    def test_flags_and_passthrough(self, make_command, sample_config, mock_run):
        make_command().execute(["dc", "b", "-s", "--watch", "--", "--foo", "-s"], sample_config)
        base, _, _, _ = nx_call(mock_run)
        assert base == [
            "nx",
            "run",
            "dynamicons:build",
            "--skip-nx-cache",
            "--watch",
            "--",
            "--foo",
            "-s",
        ]

    def test_position_fragments(self, make_command, sample_config, mock_run):
        make_command().execute(["dc", "t", "--watch", "-wrap", "-pre"], sample_config)
        base, start, end, _ = nx_call(mock_run)
        assert base == ["nx", "run", "dynamicons:test", "--verbose", "--watch"]
        assert start == ["time"]
        assert end == []

    def test_flag_with_value(self, make_command, sample_config, mock_run):
        make_command().execute(["dc", "b", "--output-style=static"], sample_config)
        base, _, _, _ = nx_call(mock_run)
        assert base[-1] == "--output-style=static"

    @pytest.mark.parametrize("target,expected", [("l", "--fix"), ("b", "--force")])
    def test_context_aware_flags(self, make_command, sample_config, mock_run, target, expected):
        make_command().execute(["dc", target, "-f"], sample_config)
        base, _, _, _ = nx_call(mock_run)
        assert base[-1] == expected

    def test_injected_context_aware_flags(self, mocker, make_command, sample_config, mock_run):
        lookup = mocker.Mock(return_value={"x": "--custom"})
        make_command(get_context_aware_flags=lookup).execute(["dc", "b", "-x", "-s"], sample_config)

        lookup.assert_called_once_with(sample_config, "b", "build")
        base, _, _, _ = nx_call(mock_run)
        assert base[3:] == ["--custom", "-s"]

    def test_short_flag_bundle(self, make_command, sample_config, mock_run):
        make_command().execute(["dc", "b", "-sx"], sample_config)
        base, _, _, _ = nx_call(mock_run)
        assert base == ["nx", "run", "dynamicons:build", "--skip-nx-cache", "-x"]

    def test_feature_alias(self, make_command, sample_config, mock_run):
        make_command().execute(["ti", "-s"], sample_config)
        base, _, _, _ = nx_call(mock_run)
        assert base == ["nx", "run", "ti-core:test:integration", "--skip-nx-cache"]

    def test_full_package_feature_target(self, make_command, sample_config, mock_run):
        make_command().execute(["gw", "tsc"], sample_config)
        base, _, _, _ = nx_call(mock_run)
        assert base == ["nx", "run", "ghost-writer-ext:test:deps", "--output-style=stream"]

    def test_shell_type_callable(self, make_command, sample_config, mock_run):
        make_command(shell_type=lambda: "pwsh").execute(["dc", "b", "-sleep=3"], sample_config)
        _, start, _, _ = nx_call(mock_run)
        assert start == ["Start-Sleep -Seconds 3;"]


class TestFlagStagesUnit:
    def test_env_flags_are_applied(self, make_command, sample_config, mock_run, fake_environ):
        make_command().execute(["dc", "b", "-debug", "-echo=si"], sample_config)
        base, _, _, _ = nx_call(mock_run)
        assert base == ["nx", "run", "dynamicons:build"]
        assert fake_environ["PAE_DEBUG"] == "1"
        assert fake_environ["PAE_ECHO"] == "1"
        assert fake_environ["PAE_ECHO_VARIANT"] == "short-in"

    def test_literal_control_flags(self, make_command, sample_config, mock_run, fake_environ):
        make_command().execute(["dc", "b", "--pae-verbose"], sample_config)
        assert fake_environ["PAE_VERBOSE"] == "1"
        base, _, _, _ = nx_call(mock_run)
        assert "--pae-verbose" not in base

    @pytest.mark.parametrize(
        "token,expected", [("-sto=5", 5000), ("-sto", 10000), ("-sto:250", 250)]
    )
    def test_timeout_flag(self, make_command, sample_config, mock_run, token, expected):
        make_command().execute(["dc", "b", token], sample_config)
        base, _, _, timeout_ms = nx_call(mock_run)
        assert timeout_ms == expected
        assert base == ["nx", "run", "dynamicons:build"]

    def test_raw_timeout_token(self, make_command, sample_config, mock_run):
        make_command().execute(["dc", "b", "--pae-execa-timeout=1500"], sample_config)
        assert nx_call(mock_run)[3] == 1500

    def test_shell_template(self, make_command, sample_config, mock_run):
        make_command().execute(["dc", "b", "-sleep=2"], sample_config)
        base, start, end, _ = nx_call(mock_run)
        assert start == ["sleep 2;"]
        assert end == []
        assert base == ["nx", "run", "dynamicons:build"]

    def test_state_history(self, make_command, sample_config, mock_run):
        command = make_command()
        command.execute(["dc", "b"], sample_config)
        assert command.history == [
            ExecutionState.IDLE,
            ExecutionState.ENV_FLAGS_PROCESSED,
            ExecutionState.INTERNAL_FLAGS_PROCESSED,
            ExecutionState.EXPANDABLE_FLAGS_PROCESSED,
            ExecutionState.COMMAND_BUILT,
            ExecutionState.EXECUTING,
            ExecutionState.COMPLETED,
        ]

    def test_non_zero_exit_ends_failed(self, make_command, sample_config, mock_run):
        mock_run["run_nx"].return_value = 2
        command = make_command()
        assert command.execute(["dc", "b"], sample_config) == 2
        assert command.state is ExecutionState.FAILED


class TestOtherAliasesUnit:
    def test_not_nx_alias(self, make_command, sample_config, mock_run, fake_environ):
        make_command().execute(["list", "my dir"], sample_config)
        mock_run["run_command"].assert_called_once_with(
            "ls -la 'my dir'", (), None, fake_environ
        )
        mock_run["run_nx"].assert_not_called()

    def test_expandable_command_uses_pool(self, make_command, sample_config, mock_run, fake_environ):
        command = make_command()
        command.execute(["hello", "world"], sample_config)
        mock_run["execute_with_pool"].assert_called_once_with(
            command.pool, "echo hello world", sample_config.default_timeout_ms, fake_environ
        )

    def test_expandable_command_timeout_and_start(self, make_command, sample_config, mock_run):
        make_command().execute(["hello", "-sto=2", "-sleep"], sample_config)
        _, line, timeout_ms, _ = mock_run["execute_with_pool"].call_args.args
        assert line == "sleep 1; echo hello"
        assert timeout_ms == 2000

    def test_shared_pool_when_none_injected(self, mocker, make_command, sample_config, mock_run):
        shared = mocker.Mock(name="shared")
        get_pool = mocker.patch("pae.alias_command.get_process_pool", return_value=shared)
        make_command(pool=None).execute(["hello"], sample_config)
        get_pool.assert_called_once_with(
            sample_config.max_concurrent, sample_config.default_timeout_ms
        )
        assert mock_run["execute_with_pool"].call_args.args[0] is shared


class TestRunManyUnit:
    def test_all_packages(self, make_command, sample_config, mock_run):
        assert make_command().execute(["all", "b", "-s"], sample_config) == 0
        base, _, _, _ = nx_call(mock_run)
        assert base == [
            "nx",
            "run-many",
            "--target=build",
            "--projects=dynamicons,dynamicons-core,dynamicons-ext,ghost-writer",
            "--parallel=4",
            "--skip-nx-cache",
        ]

    def test_only_long_options_are_forwarded(self, make_command, sample_config, mock_run):
        make_command().execute(["core", "t", "extra", "--watch"], sample_config)
        base, _, _, _ = nx_call(mock_run)
        assert base == [
            "nx",
            "run-many",
            "--target=test",
            "--projects=dynamicons-core",
            "--parallel=1",
            "--watch",
        ]

    def test_short_bundle_on_run_many(self, make_command, sample_config, mock_run):
        make_command().execute(["ext", "l", "-sf"], sample_config)
        base, _, _, _ = nx_call(mock_run)
        assert base[2:] == [
            "--target=lint",
            "--projects=dynamicons-ext",
            "--parallel=1",
            "--skip-nx-cache",
            "--fix",
        ]

    @pytest.mark.parametrize(
        "args,expected",
        [
            (["test:full"], ["--output-style=stream"]),
            (["test:full", "--stream"], ["--stream"]),
            (["lint:deps", "--output=json"], ["--output=json"]),
            (["validate:deps"], ["--parallel=false", "--output-style=stream"]),
            (["validate:deps", "--parallel=true"], ["--output-style=stream", "--parallel=true"]),
            (["build"], []),
        ],
    )
    def test_target_defaults_are_injected(self, make_command, sample_config, mock_run, args, expected):
        make_command().execute(["ext", *args], sample_config)
        base, _, _, _ = nx_call(mock_run)
        assert base[5:] == expected

    def test_start_fragments_and_timeout(self, make_command, sample_config, mock_run):
        make_command().execute(["core", "b", "-sleep=2", "-sto=3"], sample_config)
        base, start, _, timeout_ms = nx_call(mock_run)
        assert start == ["sleep 2;"]
        assert timeout_ms == 3000
        assert base[1] == "run-many"

    def test_no_projects_for_scope(self, make_command, mock_run):
        config = AliasConfig.from_dict({"nxPackages": {"a": "plain"}})
        command = make_command()

        assert command.execute(["core", "b"], config) == 1
        command.error.assert_called_once_with("No projects found for 'core'.")
        mock_run["run_nx"].assert_not_called()
        assert command.state is ExecutionState.FAILED


class TestHelpAndReservedUnit:
    @pytest.mark.parametrize(
        "args", [[], ["-h"], ["--help"], ["help"], ["dc", "help"], ["dc", "b", "--help"]]
    )
    def test_help(self, make_command, sample_config, mock_run, help_command, args):
        assert make_command().execute(args, sample_config) == 0
        help_command.execute.assert_called_once_with(sample_config)
        mock_run["run_nx"].assert_not_called()

    def test_install_handler(self, mocker, make_command, sample_config, fake_environ):
        handler = mocker.Mock(return_value=0)
        command = make_command(reserved_handlers={"install": handler})
        assert command.execute(["install", "--force"], sample_config) == 0
        handler.assert_called_once_with(["--force"], sample_config)
        assert fake_environ["PAE_INSTALLING"] == "1"

    def test_reserved_without_handler(self, make_command, sample_config):
        command = make_command()
        assert command.execute(["remove"], sample_config) == 1
        command.error.assert_called_once()


class TestAliasCommandErrorHandling:
    def test_unknown_alias(self, make_command, sample_config, mock_run, capsys):
        command = make_command()
        assert command.execute(["zz"], sample_config) == 1
        command.error.assert_called_once_with("Unknown alias: zz")
        err = capsys.readouterr().err
        assert "Available aliases:" in err
        assert "Packages: dc, dcc, dce, gw" in err
        assert command.state is ExecutionState.FAILED
        mock_run["run_nx"].assert_not_called()

    def test_exceptions_become_exit_code_one(self, make_command, sample_config, mock_run):
        mock_run["run_nx"].side_effect = RuntimeError("boom")
        command = make_command()
        assert command.execute(["dc", "b"], sample_config) == 1
        message, error = command.error.call_args.args
        assert message == "Error handling alias command:"
        assert str(error) == "boom"
        assert command.state is ExecutionState.FAILED
