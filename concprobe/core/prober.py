#!/usr/bin/env python3
"""Concurrency Prober.

Runs the whole query catalog at one concurrency level under a single crash
monitor and classifies the level as survived or crashed.
"""

import logging
import time
from typing import Callable, Optional

from concprobe.cluster.base import Cluster, ClusterError
from concprobe.core.monitor import DEFAULT_POLL_INTERVAL, CrashMonitor, NodeCrashError
from concprobe.core.search import ProbeOutcome
from concprobe.workload.catalog import QueryCatalog
from concprobe.workload.runner import WorkloadError, WorkloadRunner, max_ops_for


logger = logging.getLogger(__name__)

# Constants
TASK_JOIN_INTERVAL = 30.0


class ConcurrencyProber:
    """Classify concurrency levels by running the query catalog.

    Expects a freshly restarted, replication-settled, cache-warmed cluster
    for every probe. When a probe ends early the catalog task is cancelled and
    its running batch killed before the outcome is returned, so no load from
    this level reaches the next one. A completed probe leaves no batch behind.

    Attributes:
        cluster: Cluster under test
        runner: Workload runner
        catalog: Queries run in order during every probe
        poll_interval: Seconds between liveness checks of the monitor
    """

    def __init__(
        self,
        cluster: Cluster,
        runner: WorkloadRunner,
        catalog: QueryCatalog,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        monitor_factory: Callable[..., CrashMonitor] = CrashMonitor,
    ) -> None:
        self.cluster = cluster
        self.runner = runner
        self.catalog = catalog
        self.poll_interval = poll_interval
        self.monitor_factory = monitor_factory

    def probe(self, concurrency: int, timeout: Optional[float] = None) -> ProbeOutcome:
        """Run every catalog query at ``concurrency`` and report the outcome.

        A dead server process, or any failing batch, makes the level crashed.

        Args:
            concurrency: Number of client connections
            timeout: Seconds left before the run deadline (None for no limit)

        Returns:
            ProbeOutcome for the level

        Raises:
            DeadlineExceededError: If ``timeout`` expired before the probe ended
        """
        max_ops = max_ops_for(concurrency, self.runner.config.ops_divisor)
        monitor = self.monitor_factory(self.cluster, self.cluster.nodes, self.poll_interval)

        def run_catalog() -> None:
            logger.info(f"Running with concurrency = {concurrency} (max-ops {max_ops})")
            for query_id in self.catalog:
                if monitor.cancelled.is_set():
                    logger.debug(f"Concurrency {concurrency} cancelled before query {query_id}")
                    return
                self.runner.run_batch(query_id, concurrency, max_ops)

        start_time = time.monotonic()
        monitor.go(run_catalog)
        try:
            monitor.wait(timeout=timeout)
        except (NodeCrashError, WorkloadError, ClusterError) as exc:
            duration = time.monotonic() - start_time
            self._stop_catalog(monitor)
            return ProbeOutcome.crashed(concurrency, exc, duration=duration)
        except Exception:
            self._stop_catalog(monitor)
            raise

        return ProbeOutcome.survived(concurrency, duration=time.monotonic() - start_time)

    def _stop_catalog(self, monitor: CrashMonitor) -> None:
        """Kill the batch in flight and wait for the cancelled catalog task to exit."""
        self.runner.kill_stragglers()
        while not monitor.join(timeout=TASK_JOIN_INTERVAL):
            logger.warning("Workload batch still running after cancellation, killing it again")
            self.runner.kill_stragglers()
