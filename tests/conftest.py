"""Shared fixtures: an in-memory cluster and a small probe configuration."""

import re
import threading
from typing import Callable, List, Optional, Tuple

import pytest

from concprobe.cluster.base import Cluster, ClusterError
from concprobe.config import ClusterConfig, NodeConfig, ProbeConfig, WorkloadConfig


CONCURRENCY_FLAG = re.compile(r"--concurrency=(\d+)")
QUERY_FLAG = re.compile(r"--queries=(\d+)")


class FakeConnection:
    """Records statements instead of talking to a server."""

    def __init__(self, host: str, replicas: int = 3) -> None:
        self.host = host
        self.replicas = replicas
        self.statements: List[str] = []
        self.database: Optional[str] = None

    def __enter__(self) -> "FakeConnection":
        return self

    def __exit__(self, *exc) -> None:
        pass

    def execute(self, statement: str) -> None:
        self.statements.append(statement)

    def query_value(self, sql: str) -> int:
        self.statements.append(sql)
        return self.replicas

    def use(self, database: str) -> None:
        self.execute(f"USE {database}")
        self.database = database


class FakeCluster(Cluster):
    """Cluster whose processes are entries in a set.

    ``handler`` decides the result of every command run through ``run``.
    """

    def __init__(self, config: ProbeConfig) -> None:
        super().__init__(
            config.cluster.nodes, config.cluster.driver, config.database, config.artifacts_dir
        )
        self.lock = threading.Lock()
        self.down = {node.hostname for node in self.nodes}
        self.events: List[str] = []
        self.commands: List[Tuple[str, str]] = []
        self.puts: List[Tuple[str, str, List[str]]] = []
        self.connections: List[FakeConnection] = []
        self.handler: Optional[Callable[[NodeConfig, str], Tuple[int, str, str]]] = None
        self.fail_start = False

    def start(self, nodes=None) -> None:
        if self.fail_start:
            raise ClusterError("start failed")
        self.events.append("start")
        with self.lock:
            self.down -= {node.hostname for node in (nodes or self.nodes)}

    def stop(self, nodes=None) -> None:
        self.events.append("stop")
        with self.lock:
            self.down |= {node.hostname for node in (nodes or self.nodes)}

    def run(self, node, command, timeout=None):
        with self.lock:
            self.commands.append((node.hostname, command))
        if self.handler is not None:
            return self.handler(node, command)
        return 0, "", ""

    def is_running(self, node) -> bool:
        with self.lock:
            return node.hostname not in self.down

    def put(self, local_path, remote_path, nodes) -> None:
        self.puts.append((local_path, remote_path, [node.hostname for node in nodes]))

    def conn(self, node, database=None) -> FakeConnection:
        connection = FakeConnection(node.hostname)
        self.connections.append(connection)
        return connection

    def kill(self, hostname: str) -> None:
        with self.lock:
            self.down.add(hostname)

    def batch_commands(self) -> List[str]:
        return [command for _, command in self.commands if " run " in command]


def crash_above(cluster: FakeCluster, threshold: int, victim: str = "node2"):
    """Handler that kills ``victim`` for every batch above ``threshold``."""

    def handler(node, command):
        match = CONCURRENCY_FLAG.search(command)
        if match and int(match.group(1)) > threshold:
            cluster.kill(victim)
            return 1, "", "connection refused"
        return 0, "", ""

    return handler


@pytest.fixture
def probe_config(tmp_path):
    """Three server nodes, one driver and fast timings."""
    return ProbeConfig(
        cluster=ClusterConfig(
            nodes=[NodeConfig("node1"), NodeConfig("node2"), NodeConfig("node3")],
            driver=NodeConfig("driver"),
        ),
        workload=WorkloadConfig(num_queries=22),
        poll_interval=0.01,
        artifacts_dir=str(tmp_path / "artifacts"),
        db_path=str(tmp_path / "probe.db"),
    )


@pytest.fixture
def cluster(probe_config):
    return FakeCluster(probe_config)
