#!/usr/bin/env python3
"""Main application orchestrator for the project alias expander."""

import logging
import os
import sys
from typing import Mapping, Optional

from .alias_command import HELP_TOKENS, AliasCommand
from .alias_config import AliasConfig
from .config_manager import ConfigManager
from .environment_helper import EnvironmentHelper, debug_log
from .exceptions import ConfigNotFoundError, PaeError
from .help_command import HelpCommand
from .process_pool import shutdown_process_pool
from .process_tracker import ProcessTracker, default_tracker
from .types import ArgsList, ExitCode

LOG_FORMAT = "[PAE] %(levelname)s: %(message)s"


def configure_logging(environ: Mapping[str, str] | None = None) -> None:
    """Send log records to stderr; DEBUG when PAE_DEBUG or PAE_VERBOSE is set."""
    verbose = EnvironmentHelper.is_verbose_enabled(environ)
    logging.basicConfig(
        format=LOG_FORMAT,
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
    )


class Application:
    """Main application orchestrator."""

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        alias_command: Optional[AliasCommand] = None,
        help_command: Optional[HelpCommand] = None,
    ):
        self.config_manager = config_manager or ConfigManager()
        self.help_command = help_command or HelpCommand()
        self.alias_command = alias_command or AliasCommand(help_command=self.help_command)

    def load_config(self) -> AliasConfig:
        """Load the config file and report its problems as warnings.

        Raises:
            ConfigNotFoundError: If no config file can be found
            InvalidConfigError: If the config file cannot be parsed
        """
        config = self.config_manager.load_default_config()
        for problem in config.validate():
            logging.warning(f"{config.source}: {problem}")
        return config

    def run(self, args: ArgsList) -> ExitCode:
        """Run the application with the given arguments."""
        debug_log(f"Application.run: args={args}")

        # Help works without a config file
        if not args or args[0] in (*HELP_TOKENS, "help"):
            try:
                config = self.load_config()
            except PaeError as e:
                debug_log(f"Application.run: showing static help ({e.message})")
                config = None
            return self.help_command.execute(config)

        try:
            config = self.load_config()
        except ConfigNotFoundError as e:
            logging.error(e.message)
            logging.error("Set PAE_CONFIG or create $HOME/.config/pae/config.json")
            return 1

        return self.alias_command.execute(args, config)


def main(
    argv: ArgsList | None = None, tracker: ProcessTracker | None = None
) -> ExitCode:
    """Main entry point."""
    configure_logging(os.environ)
    tracker = tracker or default_tracker
    tracker.install_signal_handlers()
    try:
        app = Application()
        return app.run(sys.argv[1:] if argv is None else argv)
    except PaeError as e:
        logging.error(e.message)
        return 1
    except Exception as e:
        logging.error(f"Unexpected error: {e}")
        if EnvironmentHelper.is_debug_enabled():
            logging.error("Stack trace:", exc_info=e)
        return 1
    finally:
        shutdown_process_pool()
        if tracker.stop_all():
            debug_log("main: stopped leftover child processes")
        tracker.restore_signal_handlers()
