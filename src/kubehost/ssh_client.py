"""SSH client construction from a driver's reported connection parameters.

Blocking paramiko calls; async callers run these in a worker thread via
asyncio.to_thread().
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import paramiko

from kubehost._logging import get_logger
from kubehost.exceptions import CommandError
from kubehost.models import RunResult

if TYPE_CHECKING:
    from kubehost.drivers import Driver

logger = get_logger(__name__)

DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0


def new_ssh_client(driver: Driver, timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS) -> paramiko.SSHClient:
    """Open an SSH connection to the guest described by ``driver``.

    Guests are freshly generated machines whose host keys are not known in
    advance, so unknown keys are accepted.

    Raises:
        paramiko.SSHException: Handshake or authentication failed
        OSError: Host unreachable
    """
    hostname = driver.get_ssh_hostname()
    port = driver.get_ssh_port()
    username = driver.get_ssh_username()
    key_path = driver.get_ssh_key_path()
    logger.debug(
        "Opening SSH connection",
        extra={"hostname": hostname, "port": port, "username": username, "key_path": key_path},
    )

    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    try:
        client.connect(
            hostname,
            port=port,
            username=username,
            key_filename=key_path or None,
            timeout=timeout,
            allow_agent=False,
            look_for_keys=not key_path,
        )
    except Exception:
        client.close()
        raise
    return client


def exec_command(client: paramiko.SSHClient, command: str) -> RunResult:
    """Run ``command`` through ``client`` and wait for it to exit."""
    _, stdout, stderr = client.exec_command(command)
    # Drain output before waiting on the exit status so a full channel
    # window cannot stall the remote process.
    out = stdout.read().decode(errors="replace")
    err = stderr.read().decode(errors="replace")
    exit_code = stdout.channel.recv_exit_status()
    result = RunResult(args=(command,), stdout=out, stderr=err, exit_code=exit_code)
    logger.debug("SSH command finished", extra={"command": command, "exit_code": exit_code})
    return result


def run_ssh_command(client: paramiko.SSHClient, command: str) -> str:
    """Run ``command`` through ``client``; return stdout.

    Raises:
        CommandError: Command exited non-zero
    """
    result = exec_command(client, command)
    if result.exit_code != 0:
        raise CommandError(f"ssh command failed with exit code {result.exit_code}: {command}", result)
    return result.stdout
