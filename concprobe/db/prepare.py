#!/usr/bin/env python3
"""Statements that prepare the cluster for a probe.

Covers one-time cluster settings, range scattering, waiting for the
replication factor and warming per-node range caches.
"""

import logging
import time
from typing import Callable, Iterable, Optional, Sequence

from concprobe.db.connection import SQLConnection


logger = logging.getLogger(__name__)

# Constants
REPLICATION_POLL_INTERVAL = 5
REPLICATION_LOG_INTERVAL = 60
MIN_REPLICAS_QUERY = "SELECT min(array_length(replicas, 1)) FROM crdb_internal.ranges_no_leases"
TXN_STATS_SAMPLING_OFF = "SET CLUSTER SETTING sql.txn_stats.sample_rate = 0"


class ReplicationTimeoutError(Exception):
    """Raised when the replication factor is not reached in time."""


def apply_cluster_settings(conn: SQLConnection, statements: Iterable[str]) -> None:
    """Execute cluster setting statements in order.

    Raises:
        SQLError: On the first failing statement
    """
    for statement in statements:
        logger.info(f"Applying: {statement}")
        conn.execute(statement)


def scatter_tables(conn: SQLConnection, tables: Sequence[str]) -> None:
    """Scatter the ranges of every table across the cluster.

    Keeps a poor initial placement after data loading from skewing results.
    """
    for table in tables:
        logger.debug(f"Scattering {table}")
        conn.execute(f"ALTER TABLE {table} SCATTER")


def wait_for_replication(
    conn: SQLConnection,
    min_copies: int,
    timeout: Optional[float] = None,
    poll_interval: float = REPLICATION_POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Block until every range has at least ``min_copies`` replicas.

    Args:
        conn: Connection to any node
        min_copies: Required replica count per range
        timeout: Maximum seconds to wait (None waits forever)
        poll_interval: Seconds between checks
        sleep: Sleep function (injectable for tests)

    Raises:
        ReplicationTimeoutError: If the timeout expires first
    """
    logger.info(f"Waiting for {min_copies}x replication...")
    start_time = time.monotonic()
    last_log = start_time

    while True:
        replicas = conn.query_value(MIN_REPLICAS_QUERY)
        if replicas is not None and int(replicas) >= min_copies:
            elapsed = int(time.monotonic() - start_time)
            logger.info(f"✓ Replication factor {min_copies} reached after {elapsed}s")
            return

        now = time.monotonic()
        if timeout is not None and now - start_time > timeout:
            raise ReplicationTimeoutError(
                f"Replication did not reach {min_copies}x within {timeout}s "
                f"(minimum replicas per range: {replicas})"
            )
        if now - last_log >= REPLICATION_LOG_INTERVAL:
            logger.info(f"Still waiting for replication (min replicas: {replicas})")
            last_log = now

        sleep(poll_interval)


def warm_tables(conn: SQLConnection, tables: Sequence[str]) -> None:
    """Touch every table through ``conn`` to populate the node's range cache."""
    for table in tables:
        conn.execute(f"SELECT count(*) FROM {table}")
