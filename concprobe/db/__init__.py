"""SQL connections and the statements run against the cluster."""

from concprobe.db.connection import SQLConnection, SQLError
from concprobe.db.prepare import (
    ReplicationTimeoutError,
    apply_cluster_settings,
    scatter_tables,
    wait_for_replication,
    warm_tables,
)


__all__ = [
    "ReplicationTimeoutError",
    "SQLConnection",
    "SQLError",
    "apply_cluster_settings",
    "scatter_tables",
    "wait_for_replication",
    "warm_tables",
]
