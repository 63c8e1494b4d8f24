import json
import sys
from pathlib import Path

import pytest


def pytest_configure():
    """Add the src directory to the Python path before any tests run."""
    src_dir = Path(__file__).parent.parent / "src"
    if str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))


SAMPLE_CONFIG = {
    "nxPackages": {
        "desc": "Project aliases",
        "dc": "dynamicons",
        "dcc": {"name": "dynamicons", "suffix": "core"},
        "dce": {"name": "dynamicons", "suffix": "ext"},
        "gw": {"name": "ghost-writer", "full": True},
    },
    "feature-nxTargets": {
        "desc": "Feature-specific targets",
        "ti": {"run-from": "core", "run-target": "test:integration"},
        "tsc": {"run-from": "ext", "run-target": "test:deps --output-style=stream"},
    },
    "nxTargets": {
        "desc": "Target shortcuts",
        "b": "build",
        "t": "test",
        "l": "lint",
    },
    "not-nxTargets": {"list": "ls -la"},
    "expandable-commands": {"hello": "echo hello"},
    "expandable-flags": {
        "s": "--skip-nx-cache",
        "f": "--fix",
        "-output-style": {"template": "--output-style={style}", "defaults": {"style": "stream"}},
        "wrap": {"position": "start", "template": "time"},
        "pre": {"position": "prefix", "template": "--verbose"},
    },
    "internal-flags": {
        "sto": {
            "template": "--pae-execa-timeout={duration}",
            "defaults": {"duration": "10"},
            "mutation": "value >= 100 ? value : parseInt(value.toString() + '000')",
        },
    },
    "env-setting-flags": {
        "debug": "--pae-debug",
        "echo": {
            "template": "--pae-echo={variant}",
            "defaults": {"variant": "global-out"},
            "mutation": "{variant} -replace '^si$', 'short-in' -replace '^go$', 'global-out'",
        },
    },
    "expandable-templates": {
        "sleep": {
            "linux-template": {"position": "start", "template": "sleep {duration};"},
            "pwsh-template": {"position": "start", "template": "Start-Sleep -Seconds {duration};"},
            "defaults": {"duration": "1"},
        },
    },
    "context-aware-flags": {
        "f": {"lint": "--fix", "default": "--force"},
    },
    "commands": {"install": "Install PAE shell integration"},
}


@pytest.fixture
def sample_config_data():
    """A JSON-shaped config covering every alias and flag table."""
    return json.loads(json.dumps(SAMPLE_CONFIG))


@pytest.fixture
def sample_config(sample_config_data):
    from pae.alias_config import AliasConfig

    return AliasConfig.from_dict(sample_config_data, source="sample")


@pytest.fixture
def fake_environ():
    """A private environment mapping so tests never touch os.environ."""
    return {"PATH": "/usr/bin:/bin"}


@pytest.fixture
def temp_config_with_content(tmp_path):
    """Fixture for temporary config files with the given text."""

    def _create_config(content, name="config.json"):
        config_path = tmp_path / name
        config_path.write_text(content, encoding="utf-8")
        return config_path

    return _create_config


@pytest.fixture
def python_sleep_command():
    """Shell command line that sleeps for the given number of seconds."""

    def _command(seconds, exit_code=0):
        code = f"import sys, time; time.sleep({seconds}); sys.exit({exit_code})"
        return f'"{sys.executable}" -c "{code}"'

    return _command


@pytest.fixture
def mock_run(mocker):
    """Mocked execution entry points of CommandExecutor."""
    return {
        "run_nx": mocker.patch("pae.command_executor.CommandExecutor.run_nx", return_value=0),
        "run_command": mocker.patch(
            "pae.command_executor.CommandExecutor.run_command", return_value=0
        ),
        "execute_with_pool": mocker.patch(
            "pae.command_executor.CommandExecutor.execute_with_pool", return_value=0
        ),
    }
