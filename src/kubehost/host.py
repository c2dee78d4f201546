"""Host record and the external collaborators that own it.

The host store (persistence) and the provisioner (engine install, TLS
setup, OS detection) are consumed through Protocols; their on-disk and
in-guest formats are defined elsewhere.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from kubehost import ssh_client
from kubehost.config import HostOptions

if TYPE_CHECKING:
    from kubehost.drivers import Driver
    from kubehost.models import OsRelease


@dataclass
class Host:
    """A provisioned machine: persisted record plus live backend handle.

    Attributes:
        name: Machine / profile name
        driver_name: Backend kind recorded at creation
        driver: Live backend handle
        raw_driver: Opaque serialized backend state as persisted by the store
        host_options: Auth and engine options
        ssh_connect_timeout: Connect timeout for run_ssh_command, in seconds
    """

    name: str
    driver_name: str
    driver: Driver
    raw_driver: bytes = b""
    host_options: HostOptions = field(default_factory=HostOptions)
    ssh_connect_timeout: float = ssh_client.DEFAULT_CONNECT_TIMEOUT_SECONDS

    async def run_ssh_command(self, command: str) -> str:
        """Run a shell command on the guest over SSH and return its stdout.

        A fresh client is opened per call and closed afterwards.

        Raises:
            CommandError: Command exited non-zero
            paramiko.SSHException / OSError: Connection failed
        """
        client = await asyncio.to_thread(ssh_client.new_ssh_client, self.driver, self.ssh_connect_timeout)
        try:
            return await asyncio.to_thread(ssh_client.run_ssh_command, client, command)
        finally:
            client.close()


@runtime_checkable
class HostStore(Protocol):
    """Persistence for host records, keyed by machine name."""

    async def exists(self, name: str) -> bool: ...

    async def load(self, name: str) -> Host: ...

    async def new_host(self, driver_name: str, raw_driver: bytes) -> Host:
        """Build (but do not persist) a host for a backend config blob."""
        ...

    async def create(self, host: Host) -> None:
        """Create the machine in its backend and persist the record."""
        ...

    async def save(self, host: Host) -> None: ...

    async def remove(self, name: str) -> None: ...


@runtime_checkable
class Provisioner(Protocol):
    """Guest-side setup: engine provisioning, TLS auth, OS detection."""

    async def provision(self, host: Host) -> None:
        """Install/configure the container engine using host.host_options."""
        ...

    async def configure_auth(self, host: Host) -> None:
        """Generate and install TLS certificates for the engine."""
        ...

    async def os_release(self, host: Host) -> OsRelease:
        """Read and parse /etc/os-release inside the guest."""
        ...
