#!/usr/bin/env python3
"""Cluster session backed by SSH.

Server processes are managed with configurable shell commands executed on
each node, so the same code drives systemd units, supervisor programs or
plain start scripts.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence, Tuple

from concprobe.cluster.base import Cluster, ClusterError
from concprobe.config.config import NodeConfig, ProbeConfig
from concprobe.remote import SSHClient


logger = logging.getLogger(__name__)

# Constants
PROCESS_POLL_INTERVAL = 2
PROCESS_CHECK_TIMEOUT = 30


class NodeManager:
    """Manages a single node of the cluster.

    Attributes:
        config: Node configuration
        ssh: SSH client for this node
    """

    def __init__(self, node_config: NodeConfig, ssh_connect_timeout: int = 15) -> None:
        self.config = node_config
        self.ssh = SSHClient(node_config.hostname, node_config.ssh_user, ssh_connect_timeout)

    def __repr__(self) -> str:
        return f"<NodeManager(hostname={self.config.hostname})>"


class SSHCluster(Cluster):
    """Cluster whose nodes are reached over SSH.

    Attributes:
        config: Probe configuration
        managers: NodeManager per hostname (server nodes and driver)
    """

    def __init__(self, config: ProbeConfig) -> None:
        super().__init__(
            config.cluster.nodes,
            config.cluster.driver,
            config.database,
            config.artifacts_dir,
        )
        self.config = config
        self.start_command = config.cluster.start_command
        self.stop_command = config.cluster.stop_command
        self.process_check_command = config.cluster.process_check_command
        self.start_timeout = config.start_timeout

        self.managers: Dict[str, NodeManager] = {}
        for node in [*self.nodes, self.driver]:
            self.managers[node.hostname] = NodeManager(node, config.ssh_connect_timeout)
        logger.debug(f"Cluster with {len(self.nodes)} server node(s), driver {self.driver.hostname}")

    def _manager(self, node: NodeConfig) -> NodeManager:
        try:
            return self.managers[node.hostname]
        except KeyError:
            raise ClusterError(f"Unknown node: {node.hostname}") from None

    def run(self, node: NodeConfig, command: str, timeout: Optional[int] = None) -> Tuple[int, str, str]:
        return self._manager(node).ssh.run_command(command, timeout=timeout)

    def is_running(self, node: NodeConfig) -> bool:
        ret, _, _ = self.run(node, self.process_check_command, timeout=PROCESS_CHECK_TIMEOUT)
        return ret == 0

    def _run_everywhere(self, nodes: Sequence[NodeConfig], command: str) -> Dict[str, Tuple[int, str, str]]:
        results = {}
        with ThreadPoolExecutor(max_workers=len(nodes)) as executor:
            futures = {executor.submit(self.run, node, command): node for node in nodes}
            for future in as_completed(futures):
                node = futures[future]
                results[node.hostname] = future.result()
        return results

    def _wait_for(self, nodes: Sequence[NodeConfig], running: bool) -> List[NodeConfig]:
        """Poll until every node's process state matches ``running``.

        Returns:
            Nodes still in the wrong state when the start timeout expired
        """
        deadline = time.monotonic() + self.start_timeout
        pending = list(nodes)
        while pending:
            pending = [node for node in pending if self.is_running(node) != running]
            if not pending or time.monotonic() > deadline:
                break
            time.sleep(PROCESS_POLL_INTERVAL)
        return pending

    def start(self, nodes: Optional[Sequence[NodeConfig]] = None) -> None:
        nodes = list(nodes or self.nodes)
        logger.info(f"Starting {len(nodes)} node(s)...")

        results = self._run_everywhere(nodes, self.start_command)
        for hostname, (ret, _, stderr) in results.items():
            if ret != 0:
                raise ClusterError(f"[{hostname}] start command failed ({ret}): {stderr.strip()}")

        not_up = self._wait_for(nodes, running=True)
        if not_up:
            names = ", ".join(node.hostname for node in not_up)
            raise ClusterError(f"Server process not running after {self.start_timeout}s on: {names}")
        logger.info(f"✓ {len(nodes)} node(s) running")

    def stop(self, nodes: Optional[Sequence[NodeConfig]] = None) -> None:
        nodes = list(nodes or self.nodes)
        logger.info(f"Stopping {len(nodes)} node(s)...")

        # A non-zero exit usually means the process was already gone; the
        # wait below is what decides success.
        results = self._run_everywhere(nodes, self.stop_command)
        for hostname, (ret, _, stderr) in results.items():
            if ret != 0:
                logger.debug(f"[{hostname}] stop command exited with {ret}: {stderr.strip()}")

        still_up = self._wait_for(nodes, running=False)
        if still_up:
            names = ", ".join(node.hostname for node in still_up)
            raise ClusterError(f"Server process still running after {self.start_timeout}s on: {names}")

    def put(self, local_path: str, remote_path: str, nodes: Sequence[NodeConfig]) -> None:
        for node in nodes:
            logger.info(f"[{node.hostname}] Copying {local_path} -> {remote_path}")
            if not self._manager(node).ssh.copy_file(local_path, remote_path):
                raise ClusterError(f"[{node.hostname}] failed to copy {local_path}")

    def unreachable_nodes(self) -> List[NodeConfig]:
        """Return every node (servers and driver) that does not answer over SSH."""
        return [
            manager.config for manager in self.managers.values() if not manager.ssh.is_alive()
        ]
