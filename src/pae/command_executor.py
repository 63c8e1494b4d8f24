"""Command building and execution functionality for the project alias expander."""

import codecs
import logging
import os
import selectors
import shlex
import signal
import subprocess
import sys
import time
from typing import Mapping, Sequence

from .environment_helper import PAE_ECHO, PAE_ECHO_X, EnvironmentHelper, debug_log, is_truthy
from .exceptions import ProcessSpawnError
from .path_helper import PathHelper
from .process_pool import (
    NOT_EXECUTABLE_EXIT_CODE,
    NOT_FOUND_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    FailureReason,
    PoolOptions,
    ProcessPool,
    ProcessResult,
)
from .process_tracker import (
    KILL_SIGNAL,
    USE_PROCESS_GROUPS,
    ProcessTracker,
    default_tracker,
    signal_process,
)
from .types import ArgsList, ExitCode, ShellType

POWERSHELL_EXECUTABLES = ("pwsh", "powershell")
READ_CHUNK_SIZE = 4096


def _decoder():
    return codecs.getincrementaldecoder("utf-8")(errors="replace")


class CommandExecutor:
    """Handles command building and execution."""

    @staticmethod
    def run_nonblocking(
        cmd: str | Sequence[str],
        timeout_ms: int | None = None,
        tracker: ProcessTracker | None = None,
    ) -> ExitCode:
        """
        Execute command with non-blocking I/O, forwarding stdout/stderr in real-time.

        A string is run through the system shell, a list is spawned directly.
        Output is forwarded in chunks as it arrives, so partial lines show up
        immediately and never hold up the timeout. When *timeout_ms* elapses the
        child's process group is terminated and 124 is returned.

        Raises:
            ProcessSpawnError: If the command cannot be started
        """
        tracker = tracker or default_tracker
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                shell=isinstance(cmd, str),
                bufsize=0,
                start_new_session=USE_PROCESS_GROUPS,
            )
        except OSError as e:
            raise ProcessSpawnError(CommandExecutor._describe(cmd), e) from e

        task_id = tracker.register(process, group=USE_PROCESS_GROUPS)
        deadline = time.monotonic() + timeout_ms / 1000 if timeout_ms else None

        try:
            sel = selectors.DefaultSelector()
            for fileobj, target in ((process.stdout, sys.stdout), (process.stderr, sys.stderr)):
                if fileobj:
                    sel.register(fileobj, selectors.EVENT_READ, (target, _decoder()))

            while sel.get_map():
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    sel.close()
                    return CommandExecutor._time_out(process, timeout_ms)

                for key, _ in sel.select(timeout=remaining):
                    target, decoder = key.data
                    try:
                        # One read per readiness event never blocks
                        chunk = os.read(key.fd, READ_CHUNK_SIZE)
                    except OSError:
                        chunk = b""
                    text = decoder.decode(chunk, final=not chunk)
                    if text:
                        target.write(text)
                        target.flush()
                    if not chunk:
                        sel.unregister(key.fileobj)
            sel.close()

            remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
            try:
                returncode = process.wait(timeout=remaining)
            except subprocess.TimeoutExpired:
                return CommandExecutor._time_out(process, timeout_ms)
            return 128 - returncode if returncode < 0 else returncode
        finally:
            for stream in (process.stdout, process.stderr):
                if stream:
                    stream.close()
            tracker.unregister(task_id)

    @staticmethod
    def _time_out(process: subprocess.Popen, timeout_ms: int | None) -> ExitCode:
        logging.error(f"Command timed out after {timeout_ms}ms")
        signal_process(process, signal.SIGTERM, group=USE_PROCESS_GROUPS)
        try:
            process.wait(timeout=2)
        except subprocess.TimeoutExpired:
            signal_process(process, KILL_SIGNAL, group=USE_PROCESS_GROUPS)
            process.wait()
        return TIMEOUT_EXIT_CODE

    @staticmethod
    def _describe(cmd: str | Sequence[str]) -> str:
        return cmd if isinstance(cmd, str) else " ".join(cmd)

    @staticmethod
    def build_command_line(
        base: ArgsList, start: Sequence[str] = (), end: Sequence[str] = ()
    ) -> str:
        """
        Build a shell command line.

        Base tokens are quoted; start and end fragments are shell snippets and
        are inserted as they are.
        """
        quoted = [shlex.quote(arg) for arg in base if arg]
        return " ".join([*(f for f in start if f), *quoted, *(f for f in end if f)])

    @staticmethod
    def shell_command(line: str, shell_type: ShellType) -> str | ArgsList:
        """Wrap a command line for the detected shell."""
        if shell_type == "pwsh":
            for executable in POWERSHELL_EXECUTABLES:
                if PathHelper.executable_exists(executable):
                    return [executable, "-NoProfile", "-Command", line]
        return line

    @staticmethod
    def resolve_program(
        command: ArgsList, environ: Mapping[str, str] | None = None
    ) -> ArgsList:
        """Run nx through npx when nx itself is not on PATH."""
        if (
            command
            and command[0] == "nx"
            and not PathHelper.executable_exists("nx", environ)
            and PathHelper.executable_exists("npx", environ)
        ):
            debug_log("resolve_program: nx not on PATH, using npx")
            return ["npx", *command]
        return list(command)

    @staticmethod
    def handle_echo(command_line: str, environ: Mapping[str, str] | None = None) -> bool:
        """
        Print the command in echo mode.

        Returns True when the command must not be executed (``PAE_ECHO``).
        With ``PAE_ECHO_X`` the lines are printed and execution continues.
        """
        env = os.environ if environ is None else environ
        echo = is_truthy(env.get(PAE_ECHO))
        echo_x = is_truthy(env.get(PAE_ECHO_X))
        if not echo and not echo_x:
            return False

        for line in EnvironmentHelper.echo_lines(command_line, env):
            print(line, flush=True)
        return echo and not echo_x

    @staticmethod
    def run_nx(
        base: ArgsList,
        start: Sequence[str] = (),
        end: Sequence[str] = (),
        timeout_ms: int | None = None,
        shell_type: ShellType = "linux",
        environ: Mapping[str, str] | None = None,
    ) -> ExitCode:
        """Run an nx invocation, wrapped with start/end fragments when there are any."""
        base = CommandExecutor.resolve_program(base, environ)
        line = CommandExecutor.build_command_line(base, start, end)
        if CommandExecutor.handle_echo(line, environ):
            return 0

        if start or end:
            cmd = CommandExecutor.shell_command(line, shell_type)
        elif sys.platform == "win32":
            # nx is a .cmd shim on Windows
            cmd = line
        else:
            cmd = base

        debug_log(f"run_nx: {cmd}{f' (timeout: {timeout_ms}ms)' if timeout_ms else ''}")
        return CommandExecutor._run(cmd, timeout_ms)

    @staticmethod
    def run_command(
        command: str,
        args: Sequence[str] = (),
        timeout_ms: int | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> ExitCode:
        """Run a literal shell command with extra arguments appended."""
        line = " ".join([command, *(shlex.quote(arg) for arg in args)])
        if CommandExecutor.handle_echo(line, environ):
            return 0

        debug_log(f"run_command: {line}")
        return CommandExecutor._run(line, timeout_ms)

    @staticmethod
    def _run(cmd: str | ArgsList, timeout_ms: int | None) -> ExitCode:
        try:
            return CommandExecutor.run_nonblocking(cmd, timeout_ms)
        except ProcessSpawnError as e:
            logging.error(e.message)
            if isinstance(e.cause, FileNotFoundError):
                return NOT_FOUND_EXIT_CODE
            if isinstance(e.cause, PermissionError):
                return NOT_EXECUTABLE_EXIT_CODE
            return 1

    @staticmethod
    def execute_with_pool(
        pool: ProcessPool,
        command_line: str,
        timeout_ms: int,
        environ: Mapping[str, str] | None = None,
    ) -> ExitCode:
        """Run a shell command line through *pool* and map the result to an exit code."""
        if CommandExecutor.handle_echo(command_line, environ):
            return 0

        debug_log(f"execute_with_pool: {command_line} (timeout: {timeout_ms}ms)")
        result: ProcessResult = pool.execute_with_pool(
            command_line, [], PoolOptions(timeout_ms=timeout_ms, shell=True)
        )
        error = result.to_error()
        if result.reason is FailureReason.NON_ZERO_EXIT:
            debug_log(f"execute_with_pool: {error.message}")
        elif error is not None:
            logging.error(error.message)
        return result.exit_code
