"""Environment variable operations for the project alias expander."""

import os
import sys
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from typing import Mapping

from .types import ArgsList, EnvExports

TRUTHY_VALUES = ("1", "true", "yes", "on")

PAE_DEBUG = "PAE_DEBUG"
PAE_VERBOSE = "PAE_VERBOSE"
PAE_ECHO = "PAE_ECHO"
PAE_ECHO_VARIANT = "PAE_ECHO_VARIANT"
PAE_ECHO_X = "PAE_ECHO_X"
PAE_INSTALLING = "PAE_INSTALLING"

ECHO_SOURCES = (
    ("short-in", "PAE_SHORT_IN"),
    ("short-out", "PAE_SHORT_OUT"),
    ("global-in", "PAE_GLOBAL_IN"),
)


def is_truthy(value: str | None) -> bool:
    """Return True for the usual on/off spellings of an enabled flag."""
    return (value or "").lower() in TRUTHY_VALUES


def debug_log(message: str) -> None:
    """Log debug message when PAE_DEBUG=1 is set."""
    if is_truthy(os.environ.get(PAE_DEBUG)):
        print(f"[DEBUG] {message}", file=sys.stderr, flush=True)


@dataclass
class EnvironmentEffects:
    """PAE_* variables requested by env-setting flags.

    Flag processing only records what should change; the caller applies the
    effects to a real environment at the process boundary.
    """

    exports: EnvExports = field(default_factory=dict)

    def set(self, name: str, value: str = "1") -> None:
        self.exports[name] = value

    def merge(self, other: "EnvironmentEffects") -> "EnvironmentEffects":
        merged = dict(self.exports)
        merged.update(other.exports)
        return EnvironmentEffects(merged)

    def apply(self, environ: MutableMapping[str, str] | None = None) -> None:
        """Write the recorded variables into *environ* (os.environ by default)."""
        target = os.environ if environ is None else environ
        for name, value in self.exports.items():
            debug_log(f"EnvironmentEffects.apply: {name}={value}")
            target[name] = value

    def __bool__(self) -> bool:
        return bool(self.exports)


class EnvironmentHelper:
    """Utility class for environment variable operations."""

    @staticmethod
    def is_debug_enabled(environ: Mapping[str, str] | None = None) -> bool:
        env = os.environ if environ is None else environ
        return is_truthy(env.get(PAE_DEBUG))

    @staticmethod
    def is_verbose_enabled(environ: Mapping[str, str] | None = None) -> bool:
        env = os.environ if environ is None else environ
        return is_truthy(env.get(PAE_VERBOSE)) or is_truthy(env.get(PAE_DEBUG))

    @staticmethod
    def collect_env_effects(tokens: ArgsList) -> tuple[EnvironmentEffects, ArgsList]:
        """
        Scan tokens for PAE control flags.

        Returns the requested effects and the tokens that are not control flags,
        in their original order.
        """
        effects = EnvironmentEffects()
        rest: ArgsList = []

        for token in tokens:
            if token == "--pae-debug":
                effects.set(PAE_DEBUG)
            elif token == "--pae-verbose":
                effects.set(PAE_VERBOSE)
            elif EnvironmentHelper._record_echo(effects, token, "--pae-echoX", PAE_ECHO_X):
                pass
            elif EnvironmentHelper._record_echo(effects, token, "--pae-echo", PAE_ECHO):
                pass
            else:
                rest.append(token)
                continue
            debug_log(f"collect_env_effects: consumed {token}")

        return effects, rest

    @staticmethod
    def _record_echo(
        effects: EnvironmentEffects, token: str, flag: str, variable: str
    ) -> bool:
        """Record an echo flag, with or without an '=variant' suffix."""
        if not token.startswith(flag):
            return False
        remainder = token[len(flag) :]
        if remainder and not remainder.startswith("="):
            # Some other flag that merely shares the prefix
            return False
        effects.set(variable)
        variant = remainder[1:].replace('"', "").replace("'", "")
        if variant:
            effects.set(PAE_ECHO_VARIANT, variant)
        return True

    @staticmethod
    def echo_lines(command: str, environ: Mapping[str, str]) -> ArgsList:
        """Build the lines printed in echo mode for the selected variant."""
        variant = environ.get(PAE_ECHO_VARIANT, "")
        known = {name for name, _ in ECHO_SOURCES} | {"global-out"}
        show_all = variant not in known

        lines: ArgsList = []
        for name, source in ECHO_SOURCES:
            if (show_all or variant == name) and environ.get(source):
                lines.append(f"[{name}] -> {environ[source]}")
        if show_all or variant == "global-out":
            lines.append(f"[global-out] -> {command}")
        return lines
