import subprocess
from unittest.mock import Mock, patch

from concprobe.remote import SSHClient


def completed(returncode=0, stdout="", stderr=""):
    return Mock(returncode=returncode, stdout=stdout, stderr=stderr)


class TestSSHClient:
    @patch("concprobe.remote.ssh.subprocess.run")
    def test_run_command(self, mock_run):
        mock_run.return_value = completed(0, "ok\n", "")
        client = SSHClient("node1", "ubuntu", connect_timeout=7)

        assert client.run_command("uptime", timeout=30) == (0, "ok\n", "")

        args, kwargs = mock_run.call_args
        command = args[0]
        assert command[0] == "ssh"
        assert "ConnectTimeout=7" in command
        assert "BatchMode=yes" in command
        assert command[-2:] == ["ubuntu@node1", "uptime"]
        assert kwargs["timeout"] == 30

    @patch("concprobe.remote.ssh.subprocess.run")
    def test_non_zero_exit_is_returned(self, mock_run):
        mock_run.return_value = completed(3, "", "nope")
        assert SSHClient("node1").run_command("false") == (3, "", "nope")

    @patch("concprobe.remote.ssh.subprocess.run")
    def test_timeout_returns_minus_one(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="ssh", timeout=5)
        ret, _, stderr = SSHClient("node1").run_command("sleep 60", timeout=5)
        assert ret == -1
        assert stderr == "Timeout"

    @patch("concprobe.remote.ssh.subprocess.run")
    def test_missing_ssh_binary_returns_minus_one(self, mock_run):
        mock_run.side_effect = FileNotFoundError("ssh")
        ret, _, _ = SSHClient("node1").run_command("true")
        assert ret == -1

    @patch("concprobe.remote.ssh.subprocess.run")
    def test_is_alive(self, mock_run):
        mock_run.return_value = completed(0)
        assert SSHClient("node1").is_alive()

        mock_run.return_value = completed(255)
        assert not SSHClient("node1").is_alive()

    @patch("concprobe.remote.ssh.subprocess.run")
    def test_copy_file(self, mock_run):
        mock_run.return_value = completed(0)
        client = SSHClient("node1", "root")

        assert client.copy_file("/tmp/cockroach", "./cockroach")
        command = mock_run.call_args[0][0]
        assert command[0] == "scp"
        assert command[-2:] == ["/tmp/cockroach", "root@node1:./cockroach"]

    @patch("concprobe.remote.ssh.subprocess.run")
    def test_copy_file_failure(self, mock_run):
        mock_run.return_value = completed(1, "", "No such file")
        assert not SSHClient("node1").copy_file("/missing", "./x")
