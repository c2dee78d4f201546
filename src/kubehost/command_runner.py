"""Command channels for running setup commands on a host.

Which channel a host gets depends on its backend's capabilities:

    mock backend        -> FakeCommandRunner (unconfigured commands fail)
    bare metal          -> ExecRunner        (local process)
    container-backed    -> KicRunner         (<runtime> exec <container> ...)
    everything else     -> SSHRunner         (paramiko, driver's SSH params)
"""

from __future__ import annotations

import asyncio
import shlex
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from kubehost import ssh_client
from kubehost._logging import get_logger
from kubehost.drivers import DriverDescriptor
from kubehost.exceptions import CommandError, CommandRunnerError
from kubehost.models import RunResult

if TYPE_CHECKING:
    import paramiko

    from kubehost.drivers import DriverRegistry
    from kubehost.host import Host
    from kubehost.settings import Settings

logger = get_logger(__name__)


@runtime_checkable
class CommandRunner(Protocol):
    """Runs argv-style commands on a host.

    Uses structural typing (Protocol) instead of inheritance.
    """

    async def run_cmd(self, args: Sequence[str]) -> RunResult:
        """Run a command and wait for it.

        Raises:
            CommandError: Command exited non-zero (or could not be started)
        """
        ...

    def close(self) -> None:
        """Release the channel (connections, sessions)."""
        ...


def _check(result: RunResult, channel: str) -> RunResult:
    if result.exit_code != 0:
        raise CommandError(
            f"{channel}: {result.command!r} exited with code {result.exit_code}: {result.stderr.strip()}",
            result,
            context={"channel": channel},
        )
    return result


async def _run_local(args: Sequence[str], channel: str) -> RunResult:
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise CommandError(
            f"{channel}: executable not found: {args[0]}",
            RunResult(args=tuple(args), stderr=str(e), exit_code=127),
            context={"channel": channel},
        ) from e
    except OSError as e:
        raise CommandError(
            f"{channel}: cannot execute {args[0]}: {e}",
            RunResult(args=tuple(args), stderr=str(e), exit_code=126),
            context={"channel": channel},
        ) from e
    stdout, stderr = await proc.communicate()
    result = RunResult(
        args=tuple(args),
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        exit_code=proc.returncode if proc.returncode is not None else -1,
    )
    logger.debug(
        "Command finished",
        extra={"channel": channel, "command": result.command, "exit_code": result.exit_code},
    )
    return _check(result, channel)


class FakeCommandRunner:
    """Runner for the mock backend.

    Commands fail unless an output was registered for them with
    set_command_to_output(). Every attempted command is recorded.
    """

    def __init__(self) -> None:
        self._outputs: dict[str, str] = {}
        self.history: list[str] = []

    def set_command_to_output(self, command: str, output: str) -> None:
        self._outputs[command] = output

    async def run_cmd(self, args: Sequence[str]) -> RunResult:
        command = " ".join(args)
        self.history.append(command)
        if command not in self._outputs:
            raise CommandError(
                f"fake runner: unavailable command {command!r}",
                RunResult(args=tuple(args), exit_code=1),
                context={"channel": "fake"},
            )
        return RunResult(args=tuple(args), stdout=self._outputs[command])

    def close(self) -> None:
        pass


class ExecRunner:
    """Runs commands as local processes (bare-metal hosts)."""

    async def run_cmd(self, args: Sequence[str]) -> RunResult:
        return await _run_local(args, "exec")

    def close(self) -> None:
        pass


class KicRunner:
    """Runs commands inside a host's container via the container runtime."""

    def __init__(self, container_name: str, oci_bin: str = "docker") -> None:
        self.container_name = container_name
        self.oci_bin = oci_bin

    async def run_cmd(self, args: Sequence[str]) -> RunResult:
        return await _run_local([self.oci_bin, "exec", self.container_name, *args], "kic")

    def close(self) -> None:
        pass


class SSHRunner:
    """Runs commands on a guest over an established SSH client."""

    def __init__(self, client: paramiko.SSHClient) -> None:
        self._client = client

    async def run_cmd(self, args: Sequence[str]) -> RunResult:
        command = shlex.join(args)
        remote = await asyncio.to_thread(ssh_client.exec_command, self._client, command)
        result = RunResult(args=tuple(args), stdout=remote.stdout, stderr=remote.stderr, exit_code=remote.exit_code)
        return _check(result, "ssh")

    def close(self) -> None:
        self._client.close()


async def select_runner(host: Host, registry: DriverRegistry, settings: Settings) -> CommandRunner:
    """Best available command runner for ``host``.

    Raises:
        CommandRunnerError: SSH client for the host could not be created
    """
    descriptor = registry.lookup(host.driver_name) or DriverDescriptor(host.driver_name)

    if descriptor.mock:
        logger.error("select_runner: returning unconfigured FakeCommandRunner, commands will fail!")
        return FakeCommandRunner()
    if descriptor.bare_metal:
        return ExecRunner()
    if descriptor.container_backed:
        return KicRunner(host.name, settings.docker_bin)

    try:
        client = await asyncio.to_thread(ssh_client.new_ssh_client, host.driver, settings.ssh_connect_timeout_seconds)
    except Exception as e:
        raise CommandRunnerError(
            f"getting ssh client for {host.name}: {e}",
            context={"name": host.name, "driver": host.driver_name},
        ) from e
    return SSHRunner(client)
