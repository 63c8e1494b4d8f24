"""Tracking of live child processes for signal forwarding."""

import logging
import os
import signal
import subprocess
import threading
import time
from itertools import count
from typing import Dict, List, Optional, Set

logger = logging.getLogger(__name__)

FORWARDED_SIGNALS = (signal.SIGINT, signal.SIGTERM)
KILL_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)

# Children get their own process group so a shell line's grandchildren can be
# signalled together with the shell.
USE_PROCESS_GROUPS = os.name == "posix"


def signal_process(process: subprocess.Popen, signum: int, group: bool = False) -> bool:
    """
    Send *signum* to *process*, or to its whole process group when *group* is set.

    Returns False when there was nothing left to signal.
    """
    try:
        if group and USE_PROCESS_GROUPS:
            os.killpg(process.pid, signum)
        else:
            process.send_signal(signum)
    except (ProcessLookupError, PermissionError):
        return False
    return True


class ProcessTracker:
    """
    Arena of live child processes keyed by task id.

    Every spawned ``Popen`` is registered here until it exits so that a signal
    delivered to pae can be forwarded to all children before pae itself exits.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._processes: Dict[str, subprocess.Popen] = {}
        self._groups: Set[str] = set()
        self._ids = count(1)
        self._previous_handlers: Dict[int, object] = {}

    def next_id(self, prefix: str = "proc") -> str:
        with self._lock:
            return f"{prefix}-{next(self._ids)}"

    def register(
        self,
        process: subprocess.Popen,
        task_id: Optional[str] = None,
        group: bool = False,
    ) -> str:
        """
        Add *process* to the arena and return its task id.

        *group* marks a process that leads its own process group; signals then go
        to the whole group.
        """
        task_id = task_id or self.next_id()
        with self._lock:
            self._processes[task_id] = process
            if group:
                self._groups.add(task_id)
        logger.debug("tracking %s (pid %s)", task_id, process.pid)
        return task_id

    def unregister(self, task_id: str) -> None:
        with self._lock:
            self._processes.pop(task_id, None)
            self._groups.discard(task_id)

    def get(self, task_id: str) -> Optional[subprocess.Popen]:
        with self._lock:
            return self._processes.get(task_id)

    def is_group(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._groups

    def live(self) -> List[subprocess.Popen]:
        """Processes that are registered and have not exited yet."""
        return [process for _, process, _ in self._live_entries()]

    def __len__(self) -> int:
        return len(self.live())

    def signal_all(self, signum: int) -> int:
        """Send *signum* to every live child; returns how many were signalled."""
        sent = 0
        for _, process, group in self._live_entries():
            if signal_process(process, signum, group):
                sent += 1
        if sent:
            logger.debug("forwarded signal %s to %d child process(es)", signum, sent)
        return sent

    def terminate_all(self) -> int:
        return self.signal_all(signal.SIGTERM)

    def kill_all(self) -> int:
        return self.signal_all(KILL_SIGNAL)

    def stop_all(self, grace_ms: int = 2000) -> int:
        """
        Terminate every live child, then kill whatever is left after *grace_ms*.

        Returns how many children were still running when called.
        """
        stopped = self.terminate_all()
        if not stopped:
            return 0
        deadline = time.monotonic() + grace_ms / 1000
        while self.live() and time.monotonic() < deadline:
            time.sleep(0.05)
        killed = self.kill_all()
        if killed:
            logger.debug("killed %d child process(es) that ignored SIGTERM", killed)
        return stopped

    def _live_entries(self):
        with self._lock:
            entries = [
                (task_id, process, task_id in self._groups)
                for task_id, process in self._processes.items()
            ]
        return [entry for entry in entries if entry[1].poll() is None]

    def install_signal_handlers(self) -> None:
        """
        Forward SIGINT and SIGTERM to tracked children.

        Must be called from the main thread. After forwarding, the previous
        handler runs so pae still exits the way it normally would.
        """
        for signum in FORWARDED_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._forward)

    def restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _forward(self, signum, frame) -> None:
        self.signal_all(signum)
        previous = self._previous_handlers.get(signum)
        if callable(previous):
            previous(signum, frame)
        elif signum == signal.SIGINT:
            raise KeyboardInterrupt
        else:
            raise SystemExit(128 + signum)


default_tracker = ProcessTracker()
