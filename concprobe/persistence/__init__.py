"""Database models and the run ledger."""

from concprobe.persistence.models import Probe, Run
from concprobe.persistence.state_manager import (
    DatabaseError,
    ProbeRecord,
    ProbeRun,
    StateManager,
)


__all__ = [
    # Models
    "Probe",
    "Run",
    # State Manager
    "DatabaseError",
    "ProbeRecord",
    "ProbeRun",
    "StateManager",
]
