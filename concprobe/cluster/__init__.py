"""Cluster session: server process lifecycle, remote commands and SQL access."""

from concprobe.cluster.base import Cluster, ClusterError
from concprobe.cluster.ssh_cluster import NodeManager, SSHCluster


__all__ = [
    "Cluster",
    "ClusterError",
    "NodeManager",
    "SSHCluster",
]
