"""Path operations for the project alias expander."""

import os
from pathlib import Path
from typing import Mapping

CONFIG_DIR_NAME = "pae"
CONFIG_FILE_NAME = "config.json"
LOCAL_CONFIG_FILE_NAME = "pae.config.json"


class PathHelper:
    """Utility class for path operations."""

    @staticmethod
    def config_candidates(environ: Mapping[str, str] | None = None) -> list[Path]:
        """Config file locations in lookup order."""
        env = os.environ if environ is None else environ
        candidates: list[Path] = []

        if explicit := env.get("PAE_CONFIG"):
            candidates.append(Path(explicit).expanduser())

        # XDG_CONFIG_HOME first (standard location)
        if xdg_config_home := env.get("XDG_CONFIG_HOME"):
            candidates.append(Path(xdg_config_home) / CONFIG_DIR_NAME / CONFIG_FILE_NAME)

        if home := env.get("HOME"):
            candidates.append(Path(home) / ".config" / CONFIG_DIR_NAME / CONFIG_FILE_NAME)

        candidates.append(Path.cwd() / LOCAL_CONFIG_FILE_NAME)
        return candidates

    @staticmethod
    def get_config_path(environ: Mapping[str, str] | None = None) -> Path | None:
        """Get the path to the first existing config file."""
        for config_path in PathHelper.config_candidates(environ):
            if config_path.is_file():
                return config_path
        return None

    @staticmethod
    def executable_exists(name: str, environ: Mapping[str, str] | None = None) -> bool:
        """Check if executable exists in PATH."""
        env = os.environ if environ is None else environ
        path = env.get("PATH", "")
        if not path:
            return False

        for path_dir in path.split(os.pathsep):
            if PathHelper._is_valid_path_directory(path_dir):
                if PathHelper._is_executable_in_directory(name, path_dir):
                    return True
        return False

    @staticmethod
    def _is_valid_path_directory(path_dir: str) -> bool:
        return bool(path_dir) and Path(path_dir).is_dir()

    @staticmethod
    def _is_executable_in_directory(name: str, path_dir: str) -> bool:
        """Check if executable exists in directory and is executable."""
        names = [name]
        if os.name == "nt":
            names += [name + ext.lower() for ext in os.environ.get("PATHEXT", ".EXE;.CMD").split(";") if ext]
        for candidate in names:
            executable_path = Path(path_dir) / candidate
            if executable_path.is_file() and os.access(executable_path, os.X_OK):
                return True
        return False
