#!/usr/bin/env python3
"""SSH client for remote command execution and file transfer.

Uses the system ``ssh`` and ``scp`` binaries, so keys and agent forwarding
work exactly as they do for an interactive shell.
"""

import logging
import subprocess
from typing import List, Optional, Tuple

from concprobe.remote.base import RemoteClient


logger = logging.getLogger(__name__)


class SSHClient(RemoteClient):
    """SSH client for cluster node communication.

    Attributes:
        host: Node hostname or IP
        user: SSH username
        connect_timeout: SSH connection timeout in seconds
    """

    def __init__(self, host: str, user: str = "root", connect_timeout: int = 15) -> None:
        super().__init__(host, user)
        self.connect_timeout = connect_timeout

    def _ssh_options(self) -> List[str]:
        return [
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
            "-o",
            "BatchMode=yes",
        ]

    def run_command(self, command: str, timeout: Optional[int] = None) -> Tuple[int, str, str]:
        """Run command on node via SSH.

        Args:
            command: Command to execute
            timeout: Command timeout in seconds

        Returns:
            Tuple of (return_code, stdout, stderr). Timeouts and local
            failures to spawn ssh are reported as return code -1.
        """
        ssh_command = ["ssh", *self._ssh_options(), f"{self.user}@{self.host}", command]
        logger.debug(f"[{self.host}] $ {command}")

        try:
            result = subprocess.run(
                ssh_command, capture_output=True, text=True, timeout=timeout, check=False
            )
            return result.returncode, result.stdout, result.stderr
        except subprocess.TimeoutExpired:
            logger.error(f"[{self.host}] SSH command timed out after {timeout}s")
            return -1, "", "Timeout"
        except OSError as exc:
            logger.error(f"[{self.host}] SSH command failed: {exc}")
            return -1, "", str(exc)

    def is_alive(self) -> bool:
        """Check if node is reachable via SSH using the configured connect timeout."""
        ret, _, _ = self.run_command("echo alive", timeout=self.connect_timeout)
        return ret == 0

    def copy_file(self, local_path: str, remote_path: str) -> bool:
        """Copy file to node.

        Args:
            local_path: Local file path
            remote_path: Remote destination path

        Returns:
            True if copy succeeded, False otherwise
        """
        scp_command = [
            "scp",
            *self._ssh_options(),
            local_path,
            f"{self.user}@{self.host}:{remote_path}",
        ]

        try:
            result = subprocess.run(scp_command, capture_output=True, text=True, check=False)
        except OSError as exc:
            logger.error(f"[{self.host}] SCP failed: {exc}")
            return False

        if result.returncode != 0:
            logger.error(f"[{self.host}] SCP of {local_path} failed: {result.stderr.strip()}")
            return False
        return True
