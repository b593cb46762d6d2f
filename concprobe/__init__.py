"""Concurrency probe - find the highest client concurrency a cluster survives."""

__version__ = "0.1.0"

from concprobe.config import ProbeConfig
from concprobe.core import ProbeOrchestrator
from concprobe.persistence import StateManager


__all__ = [
    "ProbeConfig",
    "ProbeOrchestrator",
    "StateManager",
    "__version__",
]
