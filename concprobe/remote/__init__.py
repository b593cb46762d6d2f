"""Remote command execution on cluster nodes."""

from concprobe.remote.base import RemoteClient
from concprobe.remote.ssh import SSHClient


__all__ = [
    "RemoteClient",
    "SSHClient",
]
