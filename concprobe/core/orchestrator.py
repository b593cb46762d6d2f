#!/usr/bin/env python3
"""Probe Orchestrator.

Sets the cluster up once, bisects the concurrency interval with a full
cluster reset before every probe, restarts the cluster at the end and
writes the converged value to ``stats.json``.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional


if TYPE_CHECKING:
    from concprobe.persistence import StateManager

from concprobe.cluster.base import Cluster, ClusterError
from concprobe.cluster.ssh_cluster import SSHCluster
from concprobe.config.config import ProbeConfig
from concprobe.core.monitor import CrashMonitor, DeadlineExceededError, NodeCrashError
from concprobe.core.prober import ConcurrencyProber
from concprobe.core.search import ProbeOutcome, SearchInterval, bisect, max_probes
from concprobe.db.connection import SQLError
from concprobe.db.prepare import (
    TXN_STATS_SAMPLING_OFF,
    ReplicationTimeoutError,
    apply_cluster_settings,
    scatter_tables,
    wait_for_replication,
    warm_tables,
)
from concprobe.workload.catalog import QueryCatalog
from concprobe.workload.runner import WorkloadError, WorkloadRunner


logger = logging.getLogger(__name__)

# Constants
STATS_FILENAME = "stats.json"


class SetupError(Exception):
    """Raised when one-time cluster setup fails. Fatal to the run."""


@dataclass
class FinalResult:
    """Converged answer of a run.

    Attributes:
        max_concurrency: Largest concurrency accepted as sustainable
    """

    max_concurrency: int


class ProbeOrchestrator:
    """Drive a complete concurrency search.

    Attributes:
        config: Probe configuration
        cluster: Cluster under test
        runner: Workload runner on the driver node
        catalog: Query catalog run by every probe
        prober: Concurrency prober
        state: Optional run ledger
        outcomes: Outcomes of the probes run so far
    """

    def __init__(
        self,
        config: ProbeConfig,
        cluster: Optional[Cluster] = None,
        runner: Optional[WorkloadRunner] = None,
        state: Optional["StateManager"] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.cluster = cluster or SSHCluster(config)
        self.runner = runner or WorkloadRunner(self.cluster, config.workload)
        self.catalog = QueryCatalog(config.workload.generator, config.workload.num_queries)
        self.prober = ConcurrencyProber(
            self.cluster, self.runner, self.catalog, poll_interval=config.poll_interval
        )
        self.state = state
        self.clock = clock
        self.outcomes: List[ProbeOutcome] = []
        self._deadline: Optional[float] = None

    # Deadline handling

    def _start_deadline(self) -> None:
        self._deadline = self.clock() + self.config.run_timeout

    def _remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return self._deadline - self.clock()

    def _check_deadline(self) -> None:
        remaining = self._remaining()
        if remaining is not None and remaining <= 0:
            raise DeadlineExceededError(
                f"Run exceeded its {self.config.run_timeout}s deadline"
            )

    # Cluster preparation

    def setup(self) -> None:
        """Distribute binaries, start the cluster, tune it and load data.

        Raises:
            SetupError: On any failure, including a server dying during the load
            DeadlineExceededError: If the run deadline passes during the load
        """
        logger.info("=== Cluster Setup ===")
        cluster_config = self.config.cluster
        db_config = self.config.database

        try:
            for local_path, remote_path in cluster_config.binaries.items():
                self.cluster.put(local_path, remote_path, self.cluster.nodes)
            for local_path, remote_path in cluster_config.driver_binaries.items():
                self.cluster.put(local_path, remote_path, [self.cluster.driver])

            self.cluster.start()

            # Keep ranges where they are so runs stay comparable
            statements = list(db_config.settings)
            if db_config.disable_txn_stats_sampling:
                statements.append(TXN_STATS_SAMPLING_OFF)

            with self.cluster.conn(self.cluster.nodes[0]) as conn:
                apply_cluster_settings(conn, statements)

            # A server dying during the import must fail setup, not the first probe
            monitor = CrashMonitor(self.cluster, self.cluster.nodes, self.config.poll_interval)
            monitor.go(self.runner.load_dataset)
            monitor.wait(timeout=self._remaining())
        except (ClusterError, SQLError, WorkloadError, NodeCrashError) as exc:
            raise SetupError(f"Cluster setup failed: {exc}") from exc

        logger.info("✓ Cluster setup complete")

    def reset_cluster(self) -> None:
        """Bring the cluster to a fresh, settled, warm state.

        Kills leftover generator processes, restarts every server, scatters
        the tables, waits for the replication factor and warms each node's
        range cache. Calling it twice in a row is equivalent to calling it once.

        Raises:
            ClusterError: If the cluster cannot be brought back
        """
        db_config = self.config.database
        nodes = self.cluster.nodes

        self.runner.kill_stragglers()
        self.cluster.restart()

        try:
            with self.cluster.conn(nodes[0]) as conn:
                conn.use(db_config.name)
                scatter_tables(conn, db_config.tables)
                wait_for_replication(
                    conn, db_config.replication_factor, timeout=self.config.replication_timeout
                )

            for node in nodes:
                with self.cluster.conn(node) as conn:
                    conn.use(db_config.name)
                    warm_tables(conn, db_config.tables)
        except (SQLError, ReplicationTimeoutError) as exc:
            raise ClusterError(f"Cluster reset failed: {exc}") from exc

    def check_concurrency(self, concurrency: int) -> ProbeOutcome:
        """Reset the cluster and probe ``concurrency``.

        Raises:
            ClusterError: If the reset fails
            DeadlineExceededError: If the run deadline passes
        """
        self._check_deadline()
        self.reset_cluster()
        self._check_deadline()
        return self.prober.probe(concurrency, timeout=self._remaining())

    def probe_level(self, concurrency: int, with_setup: bool = False) -> ProbeOutcome:
        """Probe a single concurrency level outside of a search.

        The cluster is restarted afterwards, like at the end of a run.
        """
        self._start_deadline()
        if with_setup:
            self.setup()
        outcome = self.check_concurrency(concurrency)
        self.cluster.restart()
        return outcome

    # Search

    def search(self, interval: SearchInterval, run_id: Optional[int] = None) -> int:
        """Bisect ``interval`` and return the converged lower bound."""
        logger.info(
            f"Searching {interval} with at most {max_probes(interval.low, interval.high)} probes"
        )

        probe_id: Optional[int] = None

        def probe(concurrency: int) -> ProbeOutcome:
            nonlocal probe_id
            if self.state is not None and run_id is not None:
                probe_id = self.state.create_probe(run_id, len(self.outcomes) + 1, concurrency)

            outcome = self.check_concurrency(concurrency)
            self.outcomes.append(outcome)
            return outcome

        def record(outcome: ProbeOutcome, current: SearchInterval) -> None:
            nonlocal probe_id
            if self.state is None or probe_id is None:
                return
            self.state.update_probe(
                probe_id,
                result=outcome.result.value,
                error_message=str(outcome.error) if outcome.error else None,
                interval_low=current.low,
                interval_high=current.high,
                end_time=datetime.now(timezone.utc).isoformat(),
                duration=outcome.duration,
            )
            probe_id = None

        return bisect(interval, probe, on_step=record)

    def run(
        self, min_concurrency: Optional[int] = None, max_concurrency: Optional[int] = None
    ) -> FinalResult:
        """Run the complete search.

        Args:
            min_concurrency: Known-good lower bound (default from config)
            max_concurrency: Assumed-bad upper bound (default from config)

        Returns:
            FinalResult with the converged concurrency

        Raises:
            SetupError: If setup fails
            ClusterError: If a cluster reset or the final restart fails
            DeadlineExceededError: If the run deadline passes
        """
        low = min_concurrency if min_concurrency is not None else self.config.min_concurrency
        high = max_concurrency if max_concurrency is not None else self.config.max_concurrency
        interval = SearchInterval(low, high)

        self._start_deadline()
        self.outcomes = []

        run_id = None
        if self.state is not None:
            run_id = self.state.create_run(low, high, config=asdict(self.config))

        logger.info(f"\n=== Starting Concurrency Search [{low}, {high}) ===\n")

        try:
            self.setup()
            max_concurrency = self.search(interval, run_id)

            # A crash in the last probe must not leave the cluster down
            self._check_deadline()
            self.cluster.restart()

            result = FinalResult(max_concurrency=max_concurrency)
            logger.info(f"Max supported concurrency is {max_concurrency}")
            self.write_result(result)
        except Exception as exc:
            if self.state is not None and run_id is not None:
                self.state.update_run(
                    run_id,
                    status="failed",
                    error_message=str(exc),
                    end_time=datetime.now(timezone.utc).isoformat(),
                )
            raise

        if self.state is not None and run_id is not None:
            self.state.update_run(
                run_id,
                status="completed",
                result_concurrency=result.max_concurrency,
                end_time=datetime.now(timezone.utc).isoformat(),
            )

        return result

    def write_result(self, result: FinalResult) -> Path:
        """Write ``{"max_concurrency": N}`` to the artifacts directory.

        Returns:
            Path of the written file
        """
        artifacts_dir = Path(self.config.artifacts_dir)
        artifacts_dir.mkdir(parents=True, exist_ok=True)

        stats_path = artifacts_dir / STATS_FILENAME
        stats_path.write_text(json.dumps(asdict(result)) + "\n")
        logger.info(f"Wrote {stats_path}")
        return stats_path
