#!/usr/bin/env python3
"""Configuration classes for concurrency probing.

This module contains the configuration dataclasses used throughout concprobe
and the loader that maps a YAML document onto them.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


logger = logging.getLogger(__name__)

# Constants
DEFAULT_SQL_PORT = 26257
DEFAULT_RUN_TIMEOUT = 18 * 60 * 60
TPCH_TABLES = [
    "customer",
    "lineitem",
    "nation",
    "orders",
    "part",
    "partsupp",
    "region",
    "supplier",
]


class ConfigError(Exception):
    """Raised when a configuration file is missing or malformed."""


@dataclass
class NodeConfig:
    """Configuration for a single cluster node.

    Attributes:
        hostname: Hostname or IP address
        ssh_user: SSH username
        sql_port: Port the SQL server listens on
    """

    hostname: str
    ssh_user: str = "root"
    sql_port: int = DEFAULT_SQL_PORT


@dataclass
class ClusterConfig:
    """Server nodes, the workload driver node and how to manage processes.

    Attributes:
        nodes: Server nodes (the monitored process set)
        driver: Node the workload generator runs on
        start_command: Shell command that starts the server process on a node
        stop_command: Shell command that stops the server process on a node
        process_check_command: Shell command exiting 0 iff the server is running
        binaries: Mapping of local path -> remote path copied to server nodes
        driver_binaries: Mapping of local path -> remote path copied to the driver
    """

    nodes: List[NodeConfig]
    driver: NodeConfig
    start_command: str = "systemctl start cockroach"
    stop_command: str = "systemctl stop cockroach"
    process_check_command: str = "pgrep -f 'cockroach start'"
    binaries: Dict[str, str] = field(default_factory=dict)
    driver_binaries: Dict[str, str] = field(default_factory=dict)


@dataclass
class WorkloadConfig:
    """Workload generator settings.

    Attributes:
        binary: Path of the workload binary on the driver node
        generator: Workload generator name
        num_queries: Number of queries in the catalog (1..N)
        ops_divisor: max-ops for a batch is concurrency // ops_divisor
        extra_flags: Additional flags appended to every batch invocation
        load_command: Shell command run on the driver to load the dataset
    """

    binary: str = "./workload"
    generator: str = "tpch"
    num_queries: int = 22
    ops_divisor: int = 10
    extra_flags: List[str] = field(default_factory=list)
    load_command: Optional[str] = "./workload fixtures import tpch --scale-factor=1 {pgurl}"


@dataclass
class DatabaseConfig:
    """SQL level settings.

    Attributes:
        name: Database holding the workload tables
        user: SQL user
        password: SQL password (optional)
        sslmode: libpq sslmode
        tables: Tables scattered and warmed before every probe
        replication_factor: Minimum replica count to wait for
        settings: Cluster setting statements executed once during setup
        disable_txn_stats_sampling: Also disable transaction stats sampling
    """

    name: str = "tpch"
    user: str = "root"
    password: Optional[str] = None
    sslmode: str = "disable"
    tables: List[str] = field(default_factory=lambda: list(TPCH_TABLES))
    replication_factor: int = 3
    settings: List[str] = field(
        default_factory=lambda: [
            "SET CLUSTER SETTING kv.allocator.min_lease_transfer_interval = '24h'",
            "SET CLUSTER SETTING kv.range_merge.queue_enabled = false",
        ]
    )
    disable_txn_stats_sampling: bool = False


@dataclass
class ProbeConfig:
    """Top level configuration for a probing run.

    Attributes:
        cluster: Cluster layout and process management
        workload: Workload generator settings
        database: SQL level settings
        min_concurrency: Known-good lower bound of the search
        max_concurrency: Assumed-bad upper bound of the search
        run_timeout: Wall-clock ceiling for the whole run in seconds
        ssh_connect_timeout: SSH connection timeout in seconds
        start_timeout: Seconds to wait for server processes to come up or down
        replication_timeout: Seconds to wait for the replication factor
        poll_interval: Seconds between process liveness checks
        artifacts_dir: Directory stats.json is written to
        db_path: Path to the SQLite run ledger
    """

    cluster: ClusterConfig
    workload: WorkloadConfig = field(default_factory=WorkloadConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    # Search bounds
    min_concurrency: int = 32
    max_concurrency: int = 192

    # Timeouts
    run_timeout: int = DEFAULT_RUN_TIMEOUT
    ssh_connect_timeout: int = 15
    start_timeout: int = 300
    replication_timeout: int = 1800
    poll_interval: float = 1.0

    # Output and state
    artifacts_dir: str = "artifacts"
    db_path: str = "probe.db"


def _node_from_dict(node_dict: Any, where: str) -> NodeConfig:
    if isinstance(node_dict, str):
        return NodeConfig(hostname=node_dict)
    if not isinstance(node_dict, dict) or "hostname" not in node_dict:
        raise ConfigError(f"{where}: each node must have a 'hostname' field")
    return NodeConfig(
        hostname=node_dict["hostname"],
        ssh_user=node_dict.get("ssh_user", "root"),
        sql_port=int(node_dict.get("sql_port", DEFAULT_SQL_PORT)),
    )


def _resolve_binaries(
    binaries: Optional[Dict[str, str]], config_dir: Optional[Path]
) -> Dict[str, str]:
    resolved = {}
    for local_path, remote_path in (binaries or {}).items():
        path = Path(local_path)
        if config_dir is not None and not path.is_absolute():
            path = (config_dir / path).resolve()
            logger.debug(f"Resolved binary path: {local_path} -> {path}")
        resolved[str(path)] = remote_path
    return resolved


def create_probe_config(config_dict: Dict[str, Any], config_dir: Optional[Path] = None) -> ProbeConfig:
    """Create ProbeConfig from a configuration dictionary.

    Args:
        config_dict: Configuration dictionary (as loaded from YAML)
        config_dir: Directory relative paths are resolved against

    Returns:
        ProbeConfig object

    Raises:
        ConfigError: If the cluster section is missing or invalid
    """
    cluster_dict = config_dict.get("cluster") or {}
    if not cluster_dict.get("nodes"):
        raise ConfigError("Config file 'cluster.nodes' section is missing or empty")
    if not cluster_dict.get("driver"):
        raise ConfigError("Config file 'cluster.driver' is missing")

    nodes = [_node_from_dict(n, "cluster.nodes") for n in cluster_dict["nodes"]]
    driver = _node_from_dict(cluster_dict["driver"], "cluster.driver")

    binaries = _resolve_binaries(cluster_dict.get("binaries"), config_dir)
    driver_binaries = _resolve_binaries(cluster_dict.get("driver_binaries"), config_dir)

    cluster_defaults = ClusterConfig(nodes=nodes, driver=driver)
    cluster = ClusterConfig(
        nodes=nodes,
        driver=driver,
        start_command=cluster_dict.get("start_command", cluster_defaults.start_command),
        stop_command=cluster_dict.get("stop_command", cluster_defaults.stop_command),
        process_check_command=cluster_dict.get(
            "process_check_command", cluster_defaults.process_check_command
        ),
        binaries=binaries,
        driver_binaries=driver_binaries,
    )

    workload_dict = config_dict.get("workload") or {}
    workload_defaults = WorkloadConfig()
    workload = WorkloadConfig(
        binary=workload_dict.get("binary", workload_defaults.binary),
        generator=workload_dict.get("generator", workload_defaults.generator),
        num_queries=int(workload_dict.get("num_queries", workload_defaults.num_queries)),
        ops_divisor=int(workload_dict.get("ops_divisor", workload_defaults.ops_divisor)),
        extra_flags=list(workload_dict.get("extra_flags") or []),
        load_command=workload_dict.get("load_command", workload_defaults.load_command),
    )

    db_dict = config_dict.get("database") or {}
    db_defaults = DatabaseConfig()
    database = DatabaseConfig(
        name=db_dict.get("name", db_defaults.name),
        user=db_dict.get("user", db_defaults.user),
        password=db_dict.get("password"),
        sslmode=db_dict.get("sslmode", db_defaults.sslmode),
        tables=list(db_dict.get("tables") or db_defaults.tables),
        replication_factor=int(db_dict.get("replication_factor", db_defaults.replication_factor)),
        settings=list(db_dict.get("settings", db_defaults.settings) or []),
        disable_txn_stats_sampling=bool(db_dict.get("disable_txn_stats_sampling", False)),
    )

    search_dict = config_dict.get("search") or {}
    timeouts = config_dict.get("timeouts") or {}

    artifacts_dir = config_dict.get("artifacts_dir", "artifacts")
    db_path = config_dict.get("database_path", "probe.db")
    if config_dir is not None:
        if not Path(artifacts_dir).is_absolute():
            artifacts_dir = str(config_dir / artifacts_dir)
        if not Path(db_path).is_absolute():
            db_path = str(config_dir / db_path)

    return ProbeConfig(
        cluster=cluster,
        workload=workload,
        database=database,
        min_concurrency=int(search_dict.get("min_concurrency", 32)),
        max_concurrency=int(search_dict.get("max_concurrency", 192)),
        run_timeout=int(timeouts.get("run", DEFAULT_RUN_TIMEOUT)),
        ssh_connect_timeout=int(timeouts.get("ssh_connect", 15)),
        start_timeout=int(timeouts.get("start", 300)),
        replication_timeout=int(timeouts.get("replication", 1800)),
        poll_interval=float(timeouts.get("poll_interval", 1.0)),
        artifacts_dir=artifacts_dir,
        db_path=db_path,
    )


def load_config(config_path: str) -> ProbeConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        ProbeConfig object

    Raises:
        ConfigError: If the file does not exist or is not a YAML mapping
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with path.open() as f:
        config_dict = yaml.safe_load(f)

    if not isinstance(config_dict, dict):
        raise ConfigError(f"Config file {config_path} must contain a YAML mapping")

    return create_probe_config(config_dict, config_dir=path.parent.resolve())
