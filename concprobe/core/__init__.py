"""Core probing components: search, crash monitor, prober and orchestrator."""

from concprobe.core.monitor import CrashMonitor, DeadlineExceededError, MonitorState, NodeCrashError
from concprobe.core.orchestrator import FinalResult, ProbeOrchestrator, SetupError
from concprobe.core.prober import ConcurrencyProber
from concprobe.core.search import ProbeOutcome, ProbeResult, SearchInterval, bisect


__all__ = [
    "ConcurrencyProber",
    "CrashMonitor",
    "DeadlineExceededError",
    "FinalResult",
    "MonitorState",
    "NodeCrashError",
    "ProbeOrchestrator",
    "ProbeOutcome",
    "ProbeResult",
    "SearchInterval",
    "SetupError",
    "bisect",
]
