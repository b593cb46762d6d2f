"""Configuration module for concprobe.

This module contains configuration classes for concurrency probing runs.
"""

from concprobe.config.config import (
    ClusterConfig,
    ConfigError,
    DatabaseConfig,
    NodeConfig,
    ProbeConfig,
    WorkloadConfig,
    create_probe_config,
    load_config,
)


__all__ = [
    "ClusterConfig",
    "ConfigError",
    "DatabaseConfig",
    "NodeConfig",
    "ProbeConfig",
    "WorkloadConfig",
    "create_probe_config",
    "load_config",
]
