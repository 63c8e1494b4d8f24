"""Bounded pool for running child processes.

The pool caps how many child processes pae has in flight at once. Each worker
thread of a ``ThreadPoolExecutor`` owns one child process for the lifetime of a
task, so the worker count is the concurrency bound and the executor's work queue
gives FIFO dispatch. Failures come back as ``ProcessResult`` values; only
submitting to a pool that is shutting down raises.
"""

import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import Enum
from itertools import count
from typing import Mapping, Optional, Sequence, Set, Tuple

from .exceptions import (
    PaeError,
    PoolShutdownError,
    ProcessNonZeroExitError,
    ProcessSpawnError,
    ProcessTimeoutError,
)
from .process_tracker import (
    KILL_SIGNAL,
    USE_PROCESS_GROUPS,
    ProcessTracker,
    default_tracker,
    signal_process,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 5
DEFAULT_TIMEOUT_MS = 300000
DEFAULT_KILL_GRACE_MS = 2000
DEFAULT_SHUTDOWN_GRACE_MS = 5000

TIMEOUT_EXIT_CODE = 124
NOT_EXECUTABLE_EXIT_CODE = 126
NOT_FOUND_EXIT_CODE = 127

STDIO_MODES = {
    "inherit": None,
    "pipe": subprocess.PIPE,
    "ignore": subprocess.DEVNULL,
}


class FailureReason(Enum):
    COMPLETED = "completed"
    NON_ZERO_EXIT = "non_zero_exit"
    TIMEOUT = "timeout"
    SPAWN_ERROR = "spawn_error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PoolOptions:
    """
    Per-task execution options.

    ``timeout_ms`` of zero or less disables the timeout. ``stdio`` is one of
    ``inherit``, ``pipe`` or ``ignore``; output is only captured with ``pipe``.
    ``env`` entries are layered over the parent environment.
    """

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    stdio: str = "inherit"
    cwd: Optional[str] = None
    env: Optional[Mapping[str, str]] = None
    shell: bool = False


@dataclass(frozen=True)
class ProcessResult:
    command: str
    args: Tuple[str, ...]
    exit_code: int
    reason: FailureReason
    duration_ms: int = 0
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    error: Optional[str] = None
    pid: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.reason is FailureReason.COMPLETED

    @property
    def command_line(self) -> str:
        return " ".join([self.command, *self.args])

    def to_error(self) -> Optional[PaeError]:
        """The exception describing this failure, or None for a success."""
        if self.reason is FailureReason.TIMEOUT:
            return ProcessTimeoutError(self.command_line, self.duration_ms)
        if self.reason is FailureReason.NON_ZERO_EXIT:
            return ProcessNonZeroExitError(self.command_line, self.exit_code, self.stderr or "")
        if self.reason is FailureReason.SPAWN_ERROR:
            return ProcessSpawnError(self.command_line, OSError(self.error or "spawn failed"))
        if self.reason is FailureReason.CANCELLED:
            return PoolShutdownError()
        return None


@dataclass
class ProcessMetrics:
    """Pool counters. Observability only."""

    tasks_submitted: int = 0
    tasks_started: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    tasks_timed_out: int = 0
    tasks_cancelled: int = 0
    peak_concurrency: int = 0
    active_tasks: int = 0
    queue_depth: int = 0


@dataclass
class PoolTask:
    task_id: str
    command: str
    args: Tuple[str, ...]
    options: PoolOptions
    future: Optional[Future] = None
    submitted_at: float = field(default_factory=time.monotonic)


def _exit_status(returncode: int) -> int:
    # Popen reports death by signal N as -N
    return 128 - returncode if returncode < 0 else returncode


def _spawn_exit_code(error: OSError) -> int:
    if isinstance(error, FileNotFoundError):
        return NOT_FOUND_EXIT_CODE
    if isinstance(error, PermissionError):
        return NOT_EXECUTABLE_EXIT_CODE
    return 1


class ProcessPool:
    """Fixed-capacity pool of child processes."""

    def __init__(
        self,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        tracker: Optional[ProcessTracker] = None,
        kill_grace_ms: int = DEFAULT_KILL_GRACE_MS,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.max_concurrent = max_concurrent
        self.default_timeout_ms = default_timeout_ms
        self.kill_grace_ms = kill_grace_ms
        self._tracker = tracker or default_tracker
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent, thread_name_prefix="PaeProcess"
        )
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._metrics = ProcessMetrics()
        self._running: Set[str] = set()
        self._cancelled: Set[str] = set()
        self._ids = count(1)
        self._shutting_down = False

        logger.debug("ProcessPool created with %d slot(s)", max_concurrent)

    def __enter__(self) -> "ProcessPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    @property
    def is_shutdown(self) -> bool:
        with self._lock:
            return self._shutting_down

    def submit(
        self,
        command: str,
        args: Optional[Sequence[str]] = None,
        options: Optional[PoolOptions] = None,
    ) -> "Future[ProcessResult]":
        """
        Queue a command and return a future for its ProcessResult.

        Raises:
            PoolShutdownError: If shutdown() has been called
        """
        options = options or PoolOptions(timeout_ms=self.default_timeout_ms)
        with self._lock:
            if self._shutting_down:
                raise PoolShutdownError()
            task = PoolTask(
                task_id=f"task-{next(self._ids)}",
                command=command,
                args=tuple(args or ()),
                options=options,
            )
            self._metrics.tasks_submitted += 1
            self._metrics.queue_depth += 1

        task.future = self._executor.submit(self._run_task, task)
        logger.debug("queued %s: %s", task.task_id, command)
        return task.future

    def execute_with_pool(
        self,
        command: str,
        args: Optional[Sequence[str]] = None,
        options: Optional[PoolOptions] = None,
    ) -> ProcessResult:
        """Run a command through the pool and wait for its result. Never raises."""
        try:
            return self.submit(command, args, options).result()
        except (PoolShutdownError, CancelledError) as e:
            return ProcessResult(
                command=command,
                args=tuple(args or ()),
                exit_code=1,
                reason=FailureReason.CANCELLED,
                error=str(e) or "cancelled",
            )

    def get_metrics(self) -> ProcessMetrics:
        """A snapshot of the counters."""
        with self._lock:
            return replace(self._metrics)

    def shutdown(self, grace_period_ms: int = DEFAULT_SHUTDOWN_GRACE_MS) -> None:
        """
        Stop the pool.

        Tasks that have not started resolve as cancelled. In-flight tasks get up to
        *grace_period_ms* to finish, after which their children are terminated
        (and killed if they ignore SIGTERM).
        """
        with self._lock:
            if self._shutting_down:
                return
            self._shutting_down = True
            deadline = time.monotonic() + max(grace_period_ms, 0) / 1000
            while self._running:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._idle.wait(remaining)
            stragglers = list(self._running)
            self._cancelled.update(stragglers)

        if stragglers:
            logger.debug("terminating %d straggling task(s)", len(stragglers))
        processes = [self._tracker.get(task_id) for task_id in stragglers]
        processes = [p for p in processes if p is not None]
        for process in processes:
            signal_process(process, signal.SIGTERM, group=USE_PROCESS_GROUPS)
        kill_deadline = time.monotonic() + self.kill_grace_ms / 1000
        for process in processes:
            try:
                process.wait(timeout=max(kill_deadline - time.monotonic(), 0))
            except subprocess.TimeoutExpired:
                signal_process(process, KILL_SIGNAL, group=USE_PROCESS_GROUPS)

        self._executor.shutdown(wait=True)
        logger.debug("ProcessPool shut down")

    def _run_task(self, task: PoolTask) -> ProcessResult:
        with self._lock:
            self._metrics.queue_depth -= 1
            if self._shutting_down:
                self._metrics.tasks_cancelled += 1
                return ProcessResult(
                    task.command, task.args, 1, FailureReason.CANCELLED,
                    error="pool shut down before the task started",
                )
            self._running.add(task.task_id)
            self._metrics.tasks_started += 1
            self._metrics.active_tasks = len(self._running)
            self._metrics.peak_concurrency = max(
                self._metrics.peak_concurrency, self._metrics.active_tasks
            )

        try:
            result = self._spawn_and_wait(task)
        except Exception as e:
            logger.debug("%s failed: %s", task.task_id, e, exc_info=True)
            result = ProcessResult(
                task.command, task.args, 1, FailureReason.SPAWN_ERROR, error=str(e)
            )
        finally:
            with self._lock:
                self._running.discard(task.task_id)
                self._cancelled.discard(task.task_id)
                self._metrics.active_tasks = len(self._running)
                self._idle.notify_all()

        with self._lock:
            self._record(result)
        return result

    def _record(self, result: ProcessResult) -> None:
        if result.reason is FailureReason.COMPLETED:
            self._metrics.tasks_completed += 1
        elif result.reason is FailureReason.TIMEOUT:
            self._metrics.tasks_timed_out += 1
            self._metrics.tasks_failed += 1
        elif result.reason is FailureReason.CANCELLED:
            self._metrics.tasks_cancelled += 1
        else:
            self._metrics.tasks_failed += 1

    def _popen_args(self, task: PoolTask) -> dict:
        options = task.options
        env = None
        if options.env:
            env = dict(os.environ)
            env.update(options.env)

        if options.shell:
            cmd = " ".join([task.command, *(shlex.quote(arg) for arg in task.args)])
        else:
            cmd = [task.command, *task.args]

        stdio = STDIO_MODES.get(options.stdio, None)
        return {
            "args": cmd,
            "shell": options.shell,
            "cwd": options.cwd,
            "env": env,
            "stdin": subprocess.DEVNULL if options.stdio == "ignore" else None,
            "stdout": stdio,
            "stderr": stdio,
            "text": True,
            "start_new_session": USE_PROCESS_GROUPS,
        }

    def _spawn_and_wait(self, task: PoolTask) -> ProcessResult:
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            process = subprocess.Popen(**self._popen_args(task))
        except OSError as e:
            logger.debug("%s failed to start: %s", task.task_id, e)
            return ProcessResult(
                task.command, task.args, _spawn_exit_code(e), FailureReason.SPAWN_ERROR,
                duration_ms=elapsed_ms(), error=str(e),
            )

        self._tracker.register(process, task.task_id, group=USE_PROCESS_GROUPS)
        timeout = task.options.timeout_ms / 1000 if task.options.timeout_ms > 0 else None
        try:
            try:
                stdout, stderr = process.communicate(timeout=timeout)
            except subprocess.TimeoutExpired:
                logger.debug("%s timed out after %sms", task.task_id, task.options.timeout_ms)
                stdout, stderr = self._stop(process)
                return ProcessResult(
                    task.command, task.args, TIMEOUT_EXIT_CODE, FailureReason.TIMEOUT,
                    duration_ms=elapsed_ms(), stdout=stdout, stderr=stderr,
                    error=f"timed out after {task.options.timeout_ms}ms", pid=process.pid,
                )
        finally:
            self._tracker.unregister(task.task_id)

        exit_code = _exit_status(process.returncode)
        with self._lock:
            cancelled = task.task_id in self._cancelled
        if cancelled:
            reason = FailureReason.CANCELLED
        else:
            reason = FailureReason.COMPLETED if exit_code == 0 else FailureReason.NON_ZERO_EXIT

        return ProcessResult(
            task.command, task.args, exit_code, reason,
            duration_ms=elapsed_ms(), stdout=stdout, stderr=stderr, pid=process.pid,
        )

    def _stop(self, process: subprocess.Popen) -> Tuple[Optional[str], Optional[str]]:
        """SIGTERM the task's process group, then SIGKILL once the grace period runs out."""
        signal_process(process, signal.SIGTERM, group=USE_PROCESS_GROUPS)
        try:
            return process.communicate(timeout=self.kill_grace_ms / 1000)
        except subprocess.TimeoutExpired:
            signal_process(process, KILL_SIGNAL, group=USE_PROCESS_GROUPS)
            return process.communicate()


_default_pool: Optional[ProcessPool] = None
_default_pool_lock = threading.Lock()


def get_process_pool(
    max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> ProcessPool:
    """Get or create the shared pool; a shut down pool is replaced."""
    global _default_pool
    with _default_pool_lock:
        if _default_pool is None or _default_pool.is_shutdown:
            _default_pool = ProcessPool(max_concurrent, default_timeout_ms)
        return _default_pool


def shutdown_process_pool(grace_period_ms: int = DEFAULT_SHUTDOWN_GRACE_MS) -> None:
    global _default_pool
    with _default_pool_lock:
        pool, _default_pool = _default_pool, None
    if pool is not None:
        pool.shutdown(grace_period_ms)

