#!/usr/bin/env python3
"""Crash Monitor - detect server process deaths while background work runs.

A monitor watches a set of server nodes while one or more tasks run on
worker threads. Whichever happens first ends ``wait()``: all tasks finish, or
a node is seen dead. A dead node always wins over a task error.

When ``wait()`` fails it sets the monitor's ``cancelled`` event; tasks are
expected to check it between units of work and return early.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, List, Optional, Sequence

from concprobe.cluster.base import Cluster
from concprobe.config.config import NodeConfig


logger = logging.getLogger(__name__)

# Constants
DEFAULT_POLL_INTERVAL = 1.0
WATCHER_JOIN_TIMEOUT = 5.0


class NodeCrashError(Exception):
    """Raised when a monitored server process died.

    Attributes:
        nodes: Nodes whose server process was found dead
    """

    def __init__(self, nodes: Sequence[NodeConfig]) -> None:
        self.nodes = list(nodes)
        names = ", ".join(node.hostname for node in self.nodes)
        super().__init__(f"server process died on: {names}")


class DeadlineExceededError(Exception):
    """Raised when the run's wall-clock deadline passes."""


class MonitorState(Enum):
    """Monitor state."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CRASHED = "crashed"


class CrashMonitor:
    """Supervise server processes while tasks run.

    A monitor is single-use: once ``wait()`` returned or raised, it cannot be
    reused. It only reads process state and never restarts or kills anything.

    Attributes:
        cluster: Cluster to query for dead nodes
        nodes: Monitored server nodes
        poll_interval: Seconds between liveness checks
        state: Current monitor state
        cancelled: Set once wait() failed; running tasks should stop
    """

    def __init__(
        self,
        cluster: Cluster,
        nodes: Optional[Sequence[NodeConfig]] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.cluster = cluster
        self.nodes = list(nodes or cluster.nodes)
        self.poll_interval = poll_interval
        self.state = MonitorState.IDLE

        self.cancelled = threading.Event()
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._pending = 0
        self._task_error: Optional[BaseException] = None
        self._watch_error: Optional[BaseException] = None
        self._dead: List[NodeConfig] = []
        self._threads: List[threading.Thread] = []
        self._watcher: Optional[threading.Thread] = None

    def go(self, task: Callable[[], None]) -> None:
        """Run ``task`` on a worker thread under supervision.

        A task reports failure by raising.

        Raises:
            RuntimeError: If the monitor already finished
        """
        if self.state not in (MonitorState.IDLE, MonitorState.RUNNING):
            raise RuntimeError(f"Monitor already finished ({self.state.value})")

        with self._lock:
            self._pending += 1
        self.state = MonitorState.RUNNING

        thread = threading.Thread(
            target=self._run_task,
            args=(task,),
            daemon=True,
            name=f"monitor-task-{len(self._threads) + 1}",
        )
        self._threads.append(thread)
        thread.start()

        if self._watcher is None:
            self._watcher = threading.Thread(target=self._watch, daemon=True, name="monitor-watch")
            self._watcher.start()

    def _run_task(self, task: Callable[[], None]) -> None:
        try:
            task()
        except Exception as exc:
            logger.debug(f"Monitored task failed: {exc}")
            with self._lock:
                if self._task_error is None:
                    self._task_error = exc
        finally:
            with self._lock:
                self._pending -= 1
                if self._pending == 0:
                    self._wake.set()

    def _watch(self) -> None:
        while not self._stop.is_set():
            try:
                dead = self.cluster.dead_nodes(self.nodes)
            except Exception as exc:
                logger.error(f"Process liveness check failed: {exc}")
                with self._lock:
                    self._watch_error = exc
                self._wake.set()
                return

            if dead:
                names = ", ".join(node.hostname for node in dead)
                logger.warning(f"Detected dead server process on: {names}")
                with self._lock:
                    self._dead = dead
                self._wake.set()
                return

            self._stop.wait(self.poll_interval)

    def _finish(self) -> None:
        self._stop.set()
        if self._watcher is not None and self._watcher is not threading.current_thread():
            self._watcher.join(timeout=WATCHER_JOIN_TIMEOUT)

    def _fail(self, state: MonitorState) -> None:
        self.cancelled.set()
        self.state = state

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until all tasks finished or a monitored process died.

        Args:
            timeout: Maximum seconds to block (None blocks indefinitely)

        Raises:
            NodeCrashError: If a monitored process died, even if tasks succeeded
            DeadlineExceededError: If ``timeout`` expired first
            RuntimeError: If no task was started or the monitor already finished
            Exception: The first task error, if tasks failed and no node died
        """
        if self.state is MonitorState.IDLE:
            raise RuntimeError("Monitor has no tasks to wait for")
        if self.state is not MonitorState.RUNNING:
            raise RuntimeError(f"Monitor already finished ({self.state.value})")

        if not self._wake.wait(timeout):
            self._finish()
            self._fail(MonitorState.FAILED)
            raise DeadlineExceededError(f"Monitored tasks still running after {timeout:.0f}s")

        self._finish()

        with self._lock:
            dead = list(self._dead)
            task_error = self._task_error
            watch_error = self._watch_error
            tasks_done = self._pending == 0

        # The watcher may have slept through a death that happened right
        # before the tasks returned.
        if not dead and tasks_done and watch_error is None:
            try:
                dead = self.cluster.dead_nodes(self.nodes)
            except Exception:
                self._fail(MonitorState.FAILED)
                raise

        if dead:
            self._fail(MonitorState.CRASHED)
            raise NodeCrashError(dead)

        if watch_error is not None:
            self._fail(MonitorState.FAILED)
            raise watch_error

        if task_error is not None:
            self._fail(MonitorState.FAILED)
            raise task_error

        self.state = MonitorState.COMPLETED

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the task threads to exit.

        Args:
            timeout: Maximum seconds to wait for all of them (None waits forever)

        Returns:
            True if no task thread is still alive
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self._threads:
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
            thread.join(remaining)
        return not any(thread.is_alive() for thread in self._threads)
