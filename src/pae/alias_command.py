"""Alias command execution for the project alias expander."""

import logging
import os
import re
import sys
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from .alias_config import AliasConfig
from .alias_resolver import (
    AliasResolver,
    PackageInvocation,
    Resolution,
    ResolutionType,
    RunManyInvocation,
)
from .command_executor import CommandExecutor
from .environment_helper import (
    PAE_INSTALLING,
    EnvironmentEffects,
    EnvironmentHelper,
    debug_log,
)
from .flag_expander import FlagExpander, FlagExpansionResult
from .flag_expander import get_context_aware_flags as default_context_aware_flags
from .help_command import HelpCommand
from .process_pool import ProcessPool, get_process_pool
from .system_detector import SystemDetector
from .template_engine import construct_wrapped_command
from .types import ArgsList, ExitCode, LogCallback, RawFlagTable, ShellType

HELP_TOKENS = ("-h", "--help")
TIMEOUT_PATTERN = re.compile(r"^--pae-execa-timeout[=:](.+)$")
STREAM_TARGETS = ("test:full", "validate:deps", "lint:deps")
STREAM_FLAGS = ("--stream", "--output-style=stream")
SEQUENTIAL_TARGETS = ("validate:deps",)
PARALLEL_FLAGS = ("--parallel=false", "--parallel=true")

ReservedHandler = Callable[[ArgsList, AliasConfig], ExitCode]


class ExecutionState(Enum):
    IDLE = "Idle"
    ENV_FLAGS_PROCESSED = "EnvFlagsProcessed"
    INTERNAL_FLAGS_PROCESSED = "InternalFlagsProcessed"
    EXPANDABLE_FLAGS_PROCESSED = "ExpandableFlagsProcessed"
    COMMAND_BUILT = "CommandBuilt"
    EXECUTING = "Executing"
    COMPLETED = "Completed"
    FAILED = "Failed"


@dataclass
class InternalControls:
    """What the internal-flags stage found besides ordinary fragments."""

    carried: FlagExpansionResult
    timeout_ms: Optional[int] = None
    help_requested: bool = False


@dataclass
class BuiltCommand:
    resolution: Resolution
    base: ArgsList
    start: ArgsList = field(default_factory=list)
    end: ArgsList = field(default_factory=list)
    timeout_ms: Optional[int] = None

    @property
    def wrapped(self) -> ArgsList:
        return construct_wrapped_command(self.base, self.start, self.end)


def run_many_command(invocation: RunManyInvocation, flags: ArgsList) -> ArgsList:
    """
    Build ``nx run-many`` for *invocation*.

    Stream-heavy targets get ``--output-style=stream`` unless an output flag is
    already present, and ``validate:deps`` runs sequentially unless
    ``--parallel`` is given explicitly.
    """
    target = invocation.target.expanded_target
    flags = list(flags)
    if target in STREAM_TARGETS and not any(
        flag in STREAM_FLAGS or flag.startswith("--output=") for flag in flags
    ):
        flags.insert(0, "--output-style=stream")
    if target in SEQUENTIAL_TARGETS and not any(flag in PARALLEL_FLAGS for flag in flags):
        flags.insert(0, "--parallel=false")
    return [
        "nx",
        "run-many",
        f"--target={target}",
        f"--projects={','.join(invocation.projects)}",
        f"--parallel={len(invocation.projects)}",
        *flags,
    ]


def _default_debug(message: str, *args) -> None:
    debug_log(" ".join([message, *(repr(arg) for arg in args)]))


def _default_error(message: str, *args) -> None:
    logging.error(" ".join([message, *(str(arg) for arg in args)]))


class AliasCommand:
    """
    Runs one ``pae <alias> ...`` invocation.

    Flags are processed in a fixed order: env-setting flags, then internal
    flags, then the (possibly target dependent) expandable flags. The command is
    then built and executed. Package, feature, run-many and not-nx aliases are
    spawned directly; expandable commands go through the process pool. Every failure is
    reported through the ``error`` callback and becomes exit code 1.
    """

    def __init__(
        self,
        debug: LogCallback | None = None,
        error: LogCallback | None = None,
        get_context_aware_flags: Callable[[AliasConfig, str, str], RawFlagTable] | None = None,
        shell_type: ShellType | Callable[[], ShellType] | None = None,
        environ: MutableMapping[str, str] | None = None,
        help_command: type[HelpCommand] | HelpCommand | None = None,
        reserved_handlers: Dict[str, ReservedHandler] | None = None,
        pool: ProcessPool | None = None,
        executor: type[CommandExecutor] | CommandExecutor | None = None,
    ):
        self.debug = debug or _default_debug
        self.error = error or _default_error
        self.get_context_aware_flags = get_context_aware_flags or default_context_aware_flags
        self._shell_type = shell_type or SystemDetector.detect_shell_type
        self.environ = os.environ if environ is None else environ
        self.help_command = help_command or HelpCommand
        self.reserved_handlers = dict(reserved_handlers or {})
        self.pool = pool
        self.executor = executor or CommandExecutor
        self.history: List[ExecutionState] = [ExecutionState.IDLE]

    @property
    def state(self) -> ExecutionState:
        return self.history[-1]

    def _transition(self, state: ExecutionState) -> None:
        self.debug(f"state: {self.state.value} -> {state.value}")
        self.history.append(state)

    @property
    def shell_type(self) -> ShellType:
        return self._shell_type() if callable(self._shell_type) else self._shell_type

    def execute(self, args: ArgsList, config: AliasConfig) -> ExitCode:
        """Run ``args`` (alias first) against *config* and return the exit code."""
        self.history = [ExecutionState.IDLE]
        try:
            if not args or args[0] in HELP_TOKENS:
                return self._show_help(config)

            alias, rest = args[0], list(args[1:])
            self.debug("Processing alias command", alias, rest)
            resolution = AliasResolver.resolve(alias, config)

            if resolution.type is ResolutionType.RESERVED:
                return self._handle_reserved(resolution.token, rest, config)
            if resolution.type is ResolutionType.UNKNOWN:
                return self._report_unknown(alias, config)
            if resolution.type is ResolutionType.PACKAGE and rest[:1] == ["help"]:
                return self._show_help(config)

            return self._handle(resolution, rest, config)
        except Exception as e:
            self._transition(ExecutionState.FAILED)
            self.error("Error handling alias command:", e)
            if EnvironmentHelper.is_debug_enabled(self.environ):
                logging.error("Stack trace:", exc_info=e)
            return 1

    def _handle(self, resolution: Resolution, args: ArgsList, config: AliasConfig) -> ExitCode:
        shell_type = self.shell_type
        args, passthrough = FlagExpander.split_at_separator(args)

        invocation: Optional[PackageInvocation] = None
        run_many: Optional[RunManyInvocation] = None
        if resolution.type is ResolutionType.PACKAGE:
            invocation = AliasResolver.resolve_package_invocation(resolution.token, args, config)
            args = list(invocation.args)
        elif resolution.type is ResolutionType.FEATURE:
            invocation = AliasResolver.resolve_feature_invocation(resolution.token, args, config)
            args = list(invocation.args)
        elif resolution.type is ResolutionType.RUN_MANY:
            run_many = AliasResolver.resolve_run_many_invocation(resolution.token, args, config)
            if not run_many.projects:
                self.error(f"No projects found for '{run_many.scope}'.")
                self._transition(ExecutionState.FAILED)
                return 1
            args = list(run_many.args)
            self.debug("Resolved projects", run_many.projects)
        if invocation is not None:
            self.debug("Resolved project", invocation.package.full_name, invocation.target)

        args = self._process_env_flags(args, config, shell_type)
        self._transition(ExecutionState.ENV_FLAGS_PROCESSED)

        controls = self._process_internal_flags(args, config, shell_type)
        self._transition(ExecutionState.INTERNAL_FLAGS_PROCESSED)
        if controls.help_requested:
            return self._show_help(config)

        if invocation is not None:
            target = invocation.target
        elif run_many is not None:
            target = run_many.target
        else:
            target = None
        if target is not None:
            table = self.get_context_aware_flags(config, target.target, target.expanded_target)
        else:
            table = default_context_aware_flags(config, "", "")
        expanded = FlagExpander.expand_flags(
            controls.carried.remaining_args, table, shell_type
        )
        carried = controls.carried
        carried.remaining_args = []
        final = carried.extend(expanded)
        self.debug("Expanded flags", final)
        self._transition(ExecutionState.EXPANDABLE_FLAGS_PROCESSED)

        built = self._build(
            resolution, invocation, final, passthrough, controls.timeout_ms, run_many
        )
        self.debug("Final command", built.wrapped)
        self._transition(ExecutionState.COMMAND_BUILT)

        self._transition(ExecutionState.EXECUTING)
        exit_code = self._run(built, config, shell_type)
        self._transition(
            ExecutionState.COMPLETED if exit_code == 0 else ExecutionState.FAILED
        )
        return exit_code

    def _process_env_flags(
        self, args: ArgsList, config: AliasConfig, shell_type: ShellType
    ) -> ArgsList:
        """Expand env-setting flags, apply the PAE_* effects and return the other tokens."""
        result = FlagExpander.expand_flags(args, config.env_setting_flags, shell_type)
        effects, rest = EnvironmentHelper.collect_env_effects(result.all_tokens())
        if effects:
            self.debug("Environment effects", effects.exports)
            effects.apply(self.environ)
        return rest

    def _process_internal_flags(
        self, args: ArgsList, config: AliasConfig, shell_type: ShellType
    ) -> InternalControls:
        """Expand internal flags and pull out the timeout and help tokens."""
        table = {**config.internal_flags, **config.expandable_templates}
        result = FlagExpander.expand_flags(args, table, shell_type)
        controls = InternalControls(carried=FlagExpansionResult())

        def keep(token: str) -> bool:
            if token in HELP_TOKENS:
                controls.help_requested = True
                return False
            match = TIMEOUT_PATTERN.match(token)
            if match is None:
                return True
            try:
                controls.timeout_ms = int(match.group(1))
            except ValueError:
                self.debug("Ignoring invalid timeout", token)
            return False

        controls.carried = FlagExpansionResult(
            start=[t for t in result.start if keep(t)],
            prefix=[t for t in result.prefix if keep(t)],
            pre_args=[t for t in result.pre_args if keep(t)],
            suffix=[t for t in result.suffix if keep(t)],
            end=[t for t in result.end if keep(t)],
            remaining_args=[t for t in result.remaining_args if keep(t)],
        )
        self.debug("Internal flags processed", controls)
        return controls

    def _build(
        self,
        resolution: Resolution,
        invocation: Optional[PackageInvocation],
        final: FlagExpansionResult,
        passthrough: ArgsList,
        timeout_ms: Optional[int],
        run_many: Optional[RunManyInvocation] = None,
    ) -> BuiltCommand:
        tokens = [*final.prefix, *final.pre_args, *final.suffix, *final.remaining_args]
        tail = [*tokens, *passthrough]
        if run_many is not None:
            # nx run-many only takes long options
            flags = [token for token in tokens if token.startswith("--")]
            dropped = [token for token in tokens if not token.startswith("--")]
            if dropped:
                self.debug("Ignoring run-many arguments", dropped)
            base = [*run_many_command(run_many, flags), *passthrough]
        elif invocation is not None:
            base = ["nx", "run", invocation.run_spec, *invocation.target.leading_args, *tail]
        else:
            base = [resolution.command, *tail]
        return BuiltCommand(resolution, base, list(final.start), list(final.end), timeout_ms)

    def _run(self, built: BuiltCommand, config: AliasConfig, shell_type: ShellType) -> ExitCode:
        kind = built.resolution.type
        if kind in (ResolutionType.PACKAGE, ResolutionType.FEATURE, ResolutionType.RUN_MANY):
            return self.executor.run_nx(
                built.base, built.start, built.end, built.timeout_ms, shell_type, self.environ
            )

        # The literal command is a shell snippet; only the arguments are quoted
        command, args = built.base[0], built.base[1:]
        line = " ".join(
            part
            for part in [*built.start, command, self.executor.build_command_line(args), *built.end]
            if part
        )
        if kind is ResolutionType.NOT_NX:
            return self.executor.run_command(line, (), built.timeout_ms, self.environ)

        pool = self.pool or get_process_pool(config.max_concurrent, config.default_timeout_ms)
        timeout_ms = built.timeout_ms or config.default_timeout_ms
        return self.executor.execute_with_pool(pool, line, timeout_ms, self.environ)

    def _handle_reserved(self, command: str, args: ArgsList, config: AliasConfig) -> ExitCode:
        if command == "help":
            return self._show_help(config)

        handler = self.reserved_handlers.get(command)
        if handler is None:
            self.error(f"'{command}' is not available in this installation")
            return 1

        if command == "install":
            EnvironmentEffects({PAE_INSTALLING: "1"}).apply(self.environ)
        self._transition(ExecutionState.EXECUTING)
        exit_code = handler(args, config)
        self._transition(
            ExecutionState.COMPLETED if exit_code == 0 else ExecutionState.FAILED
        )
        return exit_code

    def _report_unknown(self, alias: str, config: AliasConfig) -> ExitCode:
        self.error(f"Unknown alias: {alias}")
        lines = ["", "Available aliases:"]
        for category, aliases in AliasResolver.available_aliases(config).items():
            lines.append(f"  {category}: {', '.join(aliases)}")
        lines += ["", 'Use "pae help" for more information.']
        print("\n".join(lines), file=sys.stderr)
        self._transition(ExecutionState.FAILED)
        return 1

    def _show_help(self, config: AliasConfig) -> ExitCode:
        self.help_command.execute(config)
        self._transition(ExecutionState.COMPLETED)
        return 0

