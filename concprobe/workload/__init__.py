"""Workload generator invocation and its query catalog."""

from concprobe.workload.catalog import QueryCatalog
from concprobe.workload.runner import WorkloadError, WorkloadRunner, max_ops_for


__all__ = [
    "QueryCatalog",
    "WorkloadError",
    "WorkloadRunner",
    "max_ops_for",
]
