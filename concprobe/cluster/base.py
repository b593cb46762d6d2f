#!/usr/bin/env python3
"""Abstract cluster session.

A cluster is a set of server nodes plus one driver node that runs the
workload generator. Implementations decide how processes are started,
stopped and checked.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from concprobe.config.config import DatabaseConfig, NodeConfig
from concprobe.db.connection import SQLConnection


class ClusterError(Exception):
    """Raised when a cluster lifecycle operation or remote command fails."""


class Cluster(ABC):
    """Capabilities the prober needs from a cluster.

    Attributes:
        nodes: Server nodes
        driver: Workload driver node
        database: SQL settings used for connections and URLs
        artifacts_dir: Directory for run artifacts
    """

    def __init__(
        self,
        nodes: Sequence[NodeConfig],
        driver: NodeConfig,
        database: DatabaseConfig,
        artifacts_dir: str,
    ) -> None:
        if not nodes:
            raise ValueError("A cluster needs at least one server node")
        self.nodes = list(nodes)
        self.driver = driver
        self.database = database
        self.artifacts_dir = Path(artifacts_dir)

    @abstractmethod
    def start(self, nodes: Optional[Sequence[NodeConfig]] = None) -> None:
        """Start the server process on ``nodes`` (default: all server nodes).

        Returns once every process is running.

        Raises:
            ClusterError: If a process fails to come up
        """

    @abstractmethod
    def stop(self, nodes: Optional[Sequence[NodeConfig]] = None) -> None:
        """Stop the server process on ``nodes`` (default: all server nodes).

        Stopping a node that is not running is not an error.

        Raises:
            ClusterError: If a process refuses to go down
        """

    def restart(self, nodes: Optional[Sequence[NodeConfig]] = None) -> None:
        """Stop then start ``nodes``, clearing connections and in-memory state."""
        self.stop(nodes)
        self.start(nodes)

    @abstractmethod
    def run(self, node: NodeConfig, command: str, timeout: Optional[int] = None) -> Tuple[int, str, str]:
        """Run a shell command on ``node``.

        Returns:
            Tuple of (return_code, stdout, stderr)
        """

    def run_or_raise(self, node: NodeConfig, command: str, timeout: Optional[int] = None) -> str:
        """Run a shell command on ``node`` and return its stdout.

        Raises:
            ClusterError: If the command exits non-zero
        """
        ret, stdout, stderr = self.run(node, command, timeout=timeout)
        if ret != 0:
            raise ClusterError(
                f"[{node.hostname}] command {command!r} exited with {ret}: {stderr.strip()}"
            )
        return stdout

    @abstractmethod
    def is_running(self, node: NodeConfig) -> bool:
        """Return True if the server process on ``node`` is running."""

    def dead_nodes(self, nodes: Optional[Sequence[NodeConfig]] = None) -> List[NodeConfig]:
        """Return the nodes among ``nodes`` whose server process is not running."""
        return [node for node in (nodes or self.nodes) if not self.is_running(node)]

    @abstractmethod
    def put(self, local_path: str, remote_path: str, nodes: Sequence[NodeConfig]) -> None:
        """Copy a local file to every node in ``nodes``.

        Raises:
            ClusterError: If any copy fails
        """

    def conn(self, node: NodeConfig, database: Optional[str] = None) -> SQLConnection:
        """Open a SQL connection to ``node``."""
        sql_conn = SQLConnection(
            host=node.hostname,
            port=node.sql_port,
            database=database,
            user=self.database.user,
            password=self.database.password,
            sslmode=self.database.sslmode,
        )
        sql_conn.connect()
        return sql_conn

    def pgurl(self, node: NodeConfig) -> str:
        """Connection URL of ``node`` as understood by the workload generator."""
        auth = self.database.user
        if self.database.password:
            auth = f"{auth}:{self.database.password}"
        return f"postgresql://{auth}@{node.hostname}:{node.sql_port}?sslmode={self.database.sslmode}"

    def pgurls(self, nodes: Optional[Sequence[NodeConfig]] = None) -> List[str]:
        return [self.pgurl(node) for node in (nodes or self.nodes)]
