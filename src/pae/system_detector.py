"""System detection functionality for the project alias expander."""

import os
import sys
from functools import lru_cache

from .environment_helper import debug_log
from .path_helper import PathHelper
from .types import ShellType

SHELL_TYPES = ("pwsh", "linux", "cmd")


class SystemDetector:
    """Handles environment detection functionality."""

    @staticmethod
    def find_executable(name: str) -> bool:
        """Check if executable exists in PATH."""
        return PathHelper.executable_exists(name)

    @staticmethod
    @lru_cache(maxsize=1)
    def detect_shell_type() -> ShellType:
        """
        Detect the shell the user is running pae from.

        ``PAE_SHELL`` overrides detection. On Windows a PowerShell session is
        recognised by ``PSModulePath``, Git Bash and MSYS by ``MSYSTEM`` or a bash
        ``SHELL``; anything else is cmd. Every other platform is ``linux``.
        The result is cached for the life of the process.
        """
        override = os.environ.get("PAE_SHELL", "").strip().lower()
        if override in SHELL_TYPES:
            debug_log(f"detect_shell_type: PAE_SHELL override -> {override}")
            return override

        if sys.platform != "win32":
            return "linux"

        if os.environ.get("MSYSTEM") or "bash" in os.environ.get("SHELL", "").lower():
            shell_type = "linux"
        elif os.environ.get("PSModulePath"):
            shell_type = "pwsh"
        else:
            shell_type = "cmd"

        debug_log(f"detect_shell_type: {shell_type}")
        return shell_type

    @staticmethod
    def clear_cache() -> None:
        SystemDetector.detect_shell_type.cache_clear()


def detect_shell_type() -> ShellType:
    return SystemDetector.detect_shell_type()
