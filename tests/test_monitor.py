import threading
import time

import pytest

from concprobe.core.monitor import (
    CrashMonitor,
    DeadlineExceededError,
    MonitorState,
    NodeCrashError,
)


@pytest.fixture
def running_cluster(cluster):
    cluster.start()
    return cluster


class TestCrashMonitor:
    def test_successful_task_completes(self, running_cluster):
        calls = []
        monitor = CrashMonitor(running_cluster, poll_interval=0.01)
        monitor.go(lambda: calls.append("ran"))
        monitor.wait(timeout=5)

        assert calls == ["ran"]
        assert monitor.state is MonitorState.COMPLETED

    def test_task_error_is_raised(self, running_cluster):
        def task():
            raise ValueError("batch failed")

        monitor = CrashMonitor(running_cluster, poll_interval=0.01)
        monitor.go(task)
        with pytest.raises(ValueError, match="batch failed"):
            monitor.wait(timeout=5)
        assert monitor.state is MonitorState.FAILED

    def test_node_death_during_task(self, running_cluster):
        release = threading.Event()

        def task():
            running_cluster.kill("node3")
            release.wait(5)

        monitor = CrashMonitor(running_cluster, poll_interval=0.01)
        monitor.go(task)
        try:
            with pytest.raises(NodeCrashError) as exc_info:
                monitor.wait(timeout=5)
        finally:
            release.set()

        assert [node.hostname for node in exc_info.value.nodes] == ["node3"]
        assert monitor.state is MonitorState.CRASHED

    def test_crash_takes_precedence_over_task_error(self, running_cluster):
        def task():
            running_cluster.kill("node1")
            raise RuntimeError("connection refused")

        monitor = CrashMonitor(running_cluster, poll_interval=0.01)
        monitor.go(task)
        with pytest.raises(NodeCrashError):
            monitor.wait(timeout=5)

    def test_death_right_before_task_returns_is_reported(self, running_cluster):
        def task():
            # Let the watcher see a healthy cluster and go to sleep first
            time.sleep(0.1)
            running_cluster.kill("node2")
            time.sleep(0.01)

        monitor = CrashMonitor(running_cluster, poll_interval=30)
        monitor.go(task)
        with pytest.raises(NodeCrashError):
            monitor.wait(timeout=10)

    def test_only_monitored_nodes_count(self, running_cluster):
        def task():
            running_cluster.kill("node3")

        monitor = CrashMonitor(running_cluster, running_cluster.nodes[:2], poll_interval=0.01)
        monitor.go(task)
        monitor.wait(timeout=5)
        assert monitor.state is MonitorState.COMPLETED

    def test_waits_for_all_tasks(self, running_cluster):
        finished = []

        def slow():
            time.sleep(0.05)
            finished.append("slow")

        monitor = CrashMonitor(running_cluster, poll_interval=0.01)
        monitor.go(slow)
        monitor.go(lambda: finished.append("fast"))
        monitor.wait(timeout=5)

        assert sorted(finished) == ["fast", "slow"]

    def test_timeout_raises_deadline_error(self, running_cluster):
        release = threading.Event()
        monitor = CrashMonitor(running_cluster, poll_interval=0.01)
        monitor.go(lambda: release.wait(5))
        try:
            with pytest.raises(DeadlineExceededError):
                monitor.wait(timeout=0.05)
        finally:
            release.set()
        assert monitor.state is MonitorState.FAILED

    def test_single_use(self, running_cluster):
        monitor = CrashMonitor(running_cluster, poll_interval=0.01)
        monitor.go(lambda: None)
        monitor.wait(timeout=5)

        with pytest.raises(RuntimeError):
            monitor.go(lambda: None)
        with pytest.raises(RuntimeError):
            monitor.wait()

    def test_wait_without_tasks(self, running_cluster):
        monitor = CrashMonitor(running_cluster)
        with pytest.raises(RuntimeError):
            monitor.wait()

    def test_liveness_check_failure_is_raised(self, running_cluster):
        release = threading.Event()

        def broken(nodes=None):
            raise OSError("ssh unavailable")

        running_cluster.dead_nodes = broken
        monitor = CrashMonitor(running_cluster, poll_interval=0.01)
        monitor.go(lambda: release.wait(5))
        try:
            with pytest.raises(OSError, match="ssh unavailable"):
                monitor.wait(timeout=5)
        finally:
            release.set()

    def test_final_liveness_check_failure_marks_failed(self, running_cluster):
        def broken(nodes=None):
            raise OSError("ssh unavailable")

        def task():
            # The watcher has already polled once and sleeps for the rest of the test
            time.sleep(0.1)
            running_cluster.dead_nodes = broken

        monitor = CrashMonitor(running_cluster, poll_interval=30)
        monitor.go(task)
        with pytest.raises(OSError, match="ssh unavailable"):
            monitor.wait(timeout=10)

        assert monitor.state is MonitorState.FAILED
        assert monitor.cancelled.is_set()


class TestCancellation:
    def test_not_cancelled_after_success(self, running_cluster):
        monitor = CrashMonitor(running_cluster, poll_interval=0.01)
        monitor.go(lambda: None)
        monitor.wait(timeout=5)

        assert not monitor.cancelled.is_set()
        assert monitor.join(timeout=5)

    def test_cancelled_after_node_death(self, running_cluster):
        monitor = CrashMonitor(running_cluster, poll_interval=0.01)

        def task():
            running_cluster.kill("node1")
            monitor.cancelled.wait(5)

        monitor.go(task)
        with pytest.raises(NodeCrashError):
            monitor.wait(timeout=5)

        assert monitor.cancelled.is_set()
        assert monitor.join(timeout=5)

    def test_cancelled_after_task_error(self, running_cluster):
        def task():
            raise ValueError("batch failed")

        monitor = CrashMonitor(running_cluster, poll_interval=0.01)
        monitor.go(task)
        with pytest.raises(ValueError):
            monitor.wait(timeout=5)

        assert monitor.cancelled.is_set()

    def test_cancelled_after_timeout(self, running_cluster):
        monitor = CrashMonitor(running_cluster, poll_interval=0.01)
        monitor.go(lambda: monitor.cancelled.wait(5))
        with pytest.raises(DeadlineExceededError):
            monitor.wait(timeout=0.05)

        assert monitor.cancelled.is_set()
        assert monitor.join(timeout=5)

    def test_join_reports_running_task(self, running_cluster):
        release = threading.Event()
        monitor = CrashMonitor(running_cluster, poll_interval=0.01)
        monitor.go(lambda: release.wait(5))
        with pytest.raises(DeadlineExceededError):
            monitor.wait(timeout=0.05)

        assert not monitor.join(timeout=0.05)
        release.set()
        assert monitor.join(timeout=5)
