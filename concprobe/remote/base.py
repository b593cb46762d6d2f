#!/usr/bin/env python3
"""Abstract base class for remote clients.

Provides interface for remote command execution and file transfer.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple


class RemoteClient(ABC):
    """Abstract base class for remote clients.

    Implementations run shell commands on a cluster node and copy files to it.

    Attributes:
        host: Remote host hostname or IP address
        user: Username for authentication
    """

    def __init__(self, host: str, user: str) -> None:
        self.host = host
        self.user = user

    @abstractmethod
    def run_command(
        self, command: str, timeout: Optional[int] = None
    ) -> Tuple[int, str, str]:
        """Run command on remote host.

        Args:
            command: Command to execute
            timeout: Command timeout in seconds (None for no timeout)

        Returns:
            Tuple of (return_code, stdout, stderr)
        """

    @abstractmethod
    def is_alive(self) -> bool:
        """Check if remote host is reachable.

        Returns:
            True if host is reachable, False otherwise
        """

    @abstractmethod
    def copy_file(self, local_path: str, remote_path: str) -> bool:
        """Copy file to remote host.

        Args:
            local_path: Local file path
            remote_path: Remote destination path

        Returns:
            True if copy succeeded, False otherwise
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__}({self.user}@{self.host})>"
