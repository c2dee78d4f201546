"""Tests for paramiko client construction and command execution (paramiko mocked)."""

from unittest.mock import MagicMock, patch

import paramiko
import pytest

from kubehost.exceptions import CommandError
from kubehost.host import Host
from kubehost.ssh_client import exec_command, new_ssh_client, run_ssh_command

from .conftest import FakeDriver


def mock_client(stdout: bytes = b"", stderr: bytes = b"", exit_code: int = 0) -> MagicMock:
    out = MagicMock()
    out.read.return_value = stdout
    out.channel.recv_exit_status.return_value = exit_code
    err = MagicMock()
    err.read.return_value = stderr
    client = MagicMock()
    client.exec_command.return_value = (MagicMock(), out, err)
    return client


class TestNewSSHClient:
    def test_connects_with_driver_parameters(self) -> None:
        driver = FakeDriver("kvm2", ip="192.168.39.10")
        with patch("kubehost.ssh_client.paramiko.SSHClient") as client_cls:
            client = new_ssh_client(driver, timeout=3.0)

        assert client is client_cls.return_value
        client.set_missing_host_key_policy.assert_called_once()
        client.connect.assert_called_once_with(
            "192.168.39.10",
            port=22,
            username="docker",
            key_filename=None,
            timeout=3.0,
            allow_agent=False,
            look_for_keys=True,
        )

    def test_key_file_auth(self) -> None:
        driver = MagicMock(wraps=FakeDriver("kvm2"))
        driver.get_ssh_key_path.return_value = "/home/u/.minikube/machines/dev/id_rsa"
        with patch("kubehost.ssh_client.paramiko.SSHClient") as client_cls:
            new_ssh_client(driver)

        kwargs = client_cls.return_value.connect.call_args.kwargs
        assert kwargs["key_filename"] == "/home/u/.minikube/machines/dev/id_rsa"
        assert kwargs["look_for_keys"] is False

    def test_connect_failure_closes_client(self) -> None:
        with patch("kubehost.ssh_client.paramiko.SSHClient") as client_cls:
            client_cls.return_value.connect.side_effect = paramiko.AuthenticationException("denied")
            with pytest.raises(paramiko.AuthenticationException):
                new_ssh_client(FakeDriver("kvm2"))

        client_cls.return_value.close.assert_called_once()


class TestExecCommand:
    def test_captures_output_and_status(self) -> None:
        client = mock_client(stdout=b"1700000000.5\n", stderr=b"", exit_code=0)
        result = exec_command(client, "date +%s.%N")

        client.exec_command.assert_called_once_with("date +%s.%N")
        assert result.stdout == "1700000000.5\n"
        assert result.exit_code == 0
        assert result.command == "date +%s.%N"

    def test_run_ssh_command_returns_stdout(self) -> None:
        assert run_ssh_command(mock_client(stdout=b"ok\n"), "true") == "ok\n"

    def test_run_ssh_command_nonzero(self) -> None:
        client = mock_client(stderr=b"sudo: a password is required\n", exit_code=1)
        with pytest.raises(CommandError, match="exit code 1") as exc_info:
            run_ssh_command(client, "sudo date -s @1700000000")
        assert exc_info.value.result.stderr == "sudo: a password is required\n"


class TestHostRunSSHCommand:
    """Host.run_ssh_command opens a client per call and always closes it."""

    async def test_returns_output_and_closes(self) -> None:
        client = mock_client(stdout=b"Buildroot\n")
        host = Host(name="dev", driver_name="kvm2", driver=FakeDriver("kvm2", "dev"))
        with patch("kubehost.host.ssh_client.new_ssh_client", return_value=client) as new_client:
            assert await host.run_ssh_command("cat /etc/hostname") == "Buildroot\n"

        new_client.assert_called_once_with(host.driver, 10.0)
        client.close.assert_called_once()

    async def test_closes_on_failure(self) -> None:
        client = mock_client(exit_code=1)
        host = Host(name="dev", driver_name="kvm2", driver=FakeDriver("kvm2", "dev"))
        with patch("kubehost.host.ssh_client.new_ssh_client", return_value=client):
            with pytest.raises(CommandError):
                await host.run_ssh_command("sudo poweroff")
        client.close.assert_called_once()

    async def test_uses_host_connect_timeout(self) -> None:
        client = mock_client(stdout=b"")
        host = Host(name="dev", driver_name="kvm2", driver=FakeDriver("kvm2", "dev"), ssh_connect_timeout=2.5)
        with patch("kubehost.host.ssh_client.new_ssh_client", return_value=client) as new_client:
            await host.run_ssh_command("sudo poweroff")
        new_client.assert_called_once_with(host.driver, 2.5)
