#!/usr/bin/env python3
"""Workload runner.

Launches bounded batches of the workload generator on the driver node.
"""

import logging
import os
import shlex
from typing import List, Optional

from concprobe.cluster.base import Cluster
from concprobe.config.config import WorkloadConfig


logger = logging.getLogger(__name__)

# Constants
DEFAULT_OPS_DIVISOR = 10


class WorkloadError(Exception):
    """Raised when a workload batch exits unsuccessfully."""


def max_ops_for(concurrency: int, divisor: int = DEFAULT_OPS_DIVISOR) -> int:
    """Operation cap for one batch at ``concurrency``.

    The generator bumps its global op counter only after an operation
    completes and checks the cap afterwards, so fast connections may issue
    extra queries before the cap stops the round. A cap well below the
    connection count makes every connection run the query about once while
    still leaving time for all of them to start.
    """
    return concurrency // divisor


class WorkloadRunner:
    """Runs workload batches from the cluster's driver node.

    Attributes:
        cluster: Cluster the batches run against
        config: Workload settings
    """

    def __init__(self, cluster: Cluster, config: WorkloadConfig) -> None:
        self.cluster = cluster
        self.config = config

    def build_command(self, query_id: int, concurrency: int, max_ops: int) -> str:
        """Build the generator command line for one batch.

        ``--display-every=1ns`` makes the generator log every query run.
        """
        args: List[str] = [
            self.config.binary,
            "run",
            self.config.generator,
            *self.cluster.pgurls(),
            "--display-every=1ns",
            "--tolerate-errors",
            "--count-errors",
            f"--queries={query_id}",
            f"--concurrency={concurrency}",
            f"--max-ops={max_ops}",
            *self.config.extra_flags,
        ]
        return " ".join(shlex.quote(arg) for arg in args)

    def run_batch(self, query_id: int, concurrency: int, max_ops: Optional[int] = None) -> None:
        """Run one bounded batch of ``query_id`` and block until it exits.

        Args:
            query_id: Catalog query id
            concurrency: Number of client connections
            max_ops: Operation cap (default: derived from concurrency)

        Raises:
            WorkloadError: If the generator exits non-zero
        """
        if max_ops is None:
            max_ops = max_ops_for(concurrency, self.config.ops_divisor)

        command = self.build_command(query_id, concurrency, max_ops)
        logger.debug(f"Query {query_id}: concurrency={concurrency} max-ops={max_ops}")

        ret, stdout, stderr = self.cluster.run(self.cluster.driver, command)
        if ret != 0:
            tail = (stderr or stdout).strip().splitlines()[-5:]
            raise WorkloadError(
                f"Query {query_id} at concurrency {concurrency} exited with {ret}: "
                + " | ".join(tail)
            )

    def kill_stragglers(self) -> None:
        """Kill generator processes left on the driver by a previous probe.

        Having nothing to kill is the normal case, so the exit status is ignored.
        """
        name = os.path.basename(self.config.binary)
        ret, _, _ = self.cluster.run(self.cluster.driver, f"killall {shlex.quote(name)}")
        logger.debug(f"killall {name} exited with {ret}")

    def load_dataset(self) -> None:
        """Run the configured dataset load command on the driver.

        ``{pgurl}`` in the command expands to the first server node's URL and
        ``{pgurls}`` to every server node's URL. Literal braces must be doubled.

        Raises:
            WorkloadError: If the command has an unknown placeholder or fails
        """
        if not self.config.load_command:
            logger.info("No dataset load command configured, skipping data load")
            return

        try:
            command = self.config.load_command.format(
                pgurl=shlex.quote(self.cluster.pgurl(self.cluster.nodes[0])),
                pgurls=" ".join(shlex.quote(url) for url in self.cluster.pgurls()),
            )
        except (KeyError, IndexError, ValueError) as exc:
            raise WorkloadError(f"Invalid load_command {self.config.load_command!r}: {exc}") from exc
        logger.info("Loading dataset...")
        ret, stdout, stderr = self.cluster.run(self.cluster.driver, command)
        if ret != 0:
            raise WorkloadError(f"Dataset load exited with {ret}: {(stderr or stdout).strip()}")
        logger.info("✓ Dataset loaded")
