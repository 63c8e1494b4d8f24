"""Configuration management functionality for the project alias expander."""

from pathlib import Path
from typing import Any, Mapping

import json5

from .alias_config import AliasConfig
from .environment_helper import debug_log
from .exceptions import ConfigNotFoundError, InvalidConfigError
from .path_helper import PathHelper

MAX_CONFIG_SIZE = 10 * 1024 * 1024


class ConfigManager:
    """Manages configuration file loading."""

    @staticmethod
    def find_config_file(environ: Mapping[str, str] | None = None) -> Path | None:
        """Find the pae config file path."""
        return PathHelper.get_config_path(environ)

    @staticmethod
    def load_config(config_file: Path) -> AliasConfig:
        """
        Load configuration from a JSON file.

        The file is read as JSON5, so comments and trailing commas are allowed.

        Args:
            config_file: Path to the configuration file

        Returns:
            AliasConfig built from the file; shape problems are kept in
            ``problems`` rather than raised

        Raises:
            ConfigNotFoundError: If the file does not exist
            InvalidConfigError: If the file is too large, not UTF-8 or not JSON
        """
        config_file = Path(config_file)
        if not config_file.is_file():
            raise ConfigNotFoundError(str(config_file))

        # Validate that we're reading a reasonable file size
        file_size = config_file.stat().st_size
        if file_size > MAX_CONFIG_SIZE:
            raise InvalidConfigError(
                str(config_file), message=f"Config file too large ({file_size} bytes)"
            )

        try:
            text = config_file.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise InvalidConfigError(
                str(config_file), message=f"Invalid file encoding: {e}"
            ) from e

        data = ConfigManager.parse_config_text(text, str(config_file))
        debug_log(f"load_config: loaded {config_file}")
        return AliasConfig.from_dict(data, source=str(config_file))

    @staticmethod
    def parse_config_text(text: str, source: str = "config") -> Any:
        try:
            data = json5.loads(text)
        except ValueError as e:
            raise InvalidConfigError(source, message=f"Failed to parse config: {e}") from e

        if not isinstance(data, dict):
            raise InvalidConfigError(source, message="Top-level value must be an object")
        return data

    @staticmethod
    def load_default_config(environ: Mapping[str, str] | None = None) -> AliasConfig:
        """Locate and load the config file.

        Raises:
            ConfigNotFoundError: If no candidate location holds a config file
        """
        config_file = ConfigManager.find_config_file(environ)
        if config_file is None:
            raise ConfigNotFoundError()
        return ConfigManager.load_config(config_file)
