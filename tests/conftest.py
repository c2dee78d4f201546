"""Shared pytest fixtures for kubehost tests.

Backends, the host store and the provisioner are external collaborators,
so they are replaced by small in-memory fakes that record every call.
Nothing here opens SSH connections or talks to a hypervisor.
"""

from __future__ import annotations

import json
import time
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from kubehost.drivers import default_registry
from kubehost.exceptions import CommandError, HostAlreadyInStateError
from kubehost.host import Host
from kubehost.host_manager import HostManager
from kubehost.models import LifecycleState, OsRelease, RunResult
from kubehost.notify import Event
from kubehost.settings import Settings

# ============================================================================
# Backend fakes
# ============================================================================


def guest_clock_now() -> str:
    """`date +%s.%N` output for the current local time."""
    return f"{time.time():.9f}"


class FakeDriver:
    """In-memory backend handle. Satisfies kubehost.drivers.Driver."""

    def __init__(
        self,
        kind: str,
        name: str = "minikube",
        *,
        state: LifecycleState = LifecycleState.RUNNING,
        ip: str = "192.168.39.10",
    ) -> None:
        self.kind = kind
        self.name = name
        self.state = state
        self.ip = ip
        self.calls: list[str] = []
        self.state_error: Exception | None = None
        self.start_error: Exception | None = None
        self.stop_error: Exception | None = None
        self.remove_error: Exception | None = None

    def driver_name(self) -> str:
        return self.kind

    async def get_state(self) -> LifecycleState:
        self.calls.append("get_state")
        if self.state_error:
            raise self.state_error
        return self.state

    async def start(self) -> None:
        self.calls.append("start")
        if self.start_error:
            raise self.start_error
        self.state = LifecycleState.RUNNING

    async def stop(self) -> None:
        self.calls.append("stop")
        if self.stop_error:
            raise self.stop_error
        if self.state is LifecycleState.STOPPED:
            raise HostAlreadyInStateError(self.name, LifecycleState.STOPPED)
        self.state = LifecycleState.STOPPED

    async def remove(self) -> None:
        self.calls.append("remove")
        if self.remove_error:
            raise self.remove_error
        self.state = LifecycleState.NONEXISTENT

    async def get_ip(self) -> str:
        self.calls.append("get_ip")
        return self.ip

    def get_ssh_hostname(self) -> str:
        return self.ip

    def get_ssh_port(self) -> int:
        return 22

    def get_ssh_username(self) -> str:
        return "docker"

    def get_ssh_key_path(self) -> str:
        return ""


SSHResponse = str | Callable[[], str] | Exception


@dataclass
class FakeHost(Host):
    """Host whose remote shell answers from a table instead of SSH.

    ``ssh_responses`` maps a command prefix to its output (a string, a
    callable producing one, or an exception to raise). Commands matching
    no prefix fail with CommandError.
    """

    ssh_responses: dict[str, SSHResponse] = field(default_factory=dict)
    ssh_commands: list[str] = field(default_factory=list)

    async def run_ssh_command(self, command: str) -> str:
        self.ssh_commands.append(command)
        for prefix, response in self.ssh_responses.items():
            if not command.startswith(prefix):
                continue
            if isinstance(response, Exception):
                raise response
            return response() if callable(response) else response
        raise CommandError(f"unexpected ssh command: {command}", RunResult(args=(command,), exit_code=1))


def default_ssh_responses() -> dict[str, SSHResponse]:
    return {
        "date +%s.%N": guest_clock_now,
        "sudo date -s": "",
        "sudo poweroff": OSError("connection reset by peer"),
    }


class InMemoryStore:
    """Host store keyed by machine name. Satisfies kubehost.host.HostStore."""

    def __init__(self) -> None:
        self.hosts: dict[str, FakeHost] = {}
        self.calls: list[tuple[str, str]] = []
        self.exists_error: Exception | None = None
        self.load_error: Exception | None = None
        self.create_error: Exception | None = None
        self.save_error: Exception | None = None
        self.remove_error: Exception | None = None
        self.create_hook: Callable[[FakeHost], Awaitable[None]] | None = None

    def add(self, host: FakeHost) -> FakeHost:
        self.hosts[host.name] = host
        return host

    def count(self, op: str) -> int:
        return sum(1 for call, _ in self.calls if call == op)

    async def exists(self, name: str) -> bool:
        self.calls.append(("exists", name))
        if self.exists_error:
            raise self.exists_error
        return name in self.hosts

    async def load(self, name: str) -> FakeHost:
        self.calls.append(("load", name))
        if self.load_error:
            raise self.load_error
        if name not in self.hosts:
            raise KeyError(name)
        return self.hosts[name]

    async def new_host(self, driver_name: str, raw_driver: bytes) -> FakeHost:
        name = json.loads(raw_driver)["MachineName"]
        self.calls.append(("new_host", name))
        driver = FakeDriver(driver_name, name, state=LifecycleState.NONEXISTENT)
        return FakeHost(
            name=name,
            driver_name=driver_name,
            driver=driver,
            raw_driver=raw_driver,
            ssh_responses=default_ssh_responses(),
        )

    async def create(self, host: Host) -> None:
        assert isinstance(host, FakeHost)
        self.calls.append(("create", host.name))
        if self.create_hook:
            await self.create_hook(host)
        if self.create_error:
            raise self.create_error
        assert isinstance(host.driver, FakeDriver)
        host.driver.state = LifecycleState.RUNNING
        self.hosts[host.name] = host

    async def save(self, host: Host) -> None:
        assert isinstance(host, FakeHost)
        self.calls.append(("save", host.name))
        if self.save_error:
            raise self.save_error
        self.hosts[host.name] = host

    async def remove(self, name: str) -> None:
        self.calls.append(("remove", name))
        if self.remove_error:
            raise self.remove_error
        del self.hosts[name]


class RecordingProvisioner:
    """Satisfies kubehost.host.Provisioner."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.provision_error: Exception | None = None
        self.auth_error: Exception | None = None
        self.release = OsRelease(id="buildroot", name="Buildroot", version_id="2019.02.7", pretty_name="Buildroot 2019.02.7")

    async def provision(self, host: Host) -> None:
        self.calls.append(("provision", host.name))
        if self.provision_error:
            raise self.provision_error

    async def configure_auth(self, host: Host) -> None:
        self.calls.append(("configure_auth", host.name))
        if self.auth_error:
            raise self.auth_error

    async def os_release(self, host: Host) -> OsRelease:
        self.calls.append(("os_release", host.name))
        return self.release


class RecordingNotifier:
    """Satisfies kubehost.notify.Notifier."""

    def __init__(self) -> None:
        self.events: list[tuple[Event, dict[str, Any]]] = []

    def notify(self, event: Event, **payload: Any) -> None:
        self.events.append((event, payload))

    def kinds(self) -> list[Event]:
        return [event for event, _ in self.events]


class RecordingRunner:
    """Command runner that accepts (or fails) every command and records it."""

    def __init__(self, error: Exception | None = None) -> None:
        self.commands: list[list[str]] = []
        self.error = error
        self.closed = False

    async def run_cmd(self, args: Sequence[str]) -> RunResult:
        self.commands.append(list(args))
        if self.error:
            raise self.error
        return RunResult(args=tuple(args))

    def close(self) -> None:
        self.closed = True


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary storage directory with fast lock polling."""
    return Settings(
        home=tmp_path / ".minikube",
        lock_timeout_seconds=5,
        lock_poll_interval_seconds=0.01,
        docker_bin="docker",
        vboxmanage_bin=Path("VBoxManage"),
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def provisioner() -> RecordingProvisioner:
    return RecordingProvisioner()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def runner() -> Iterator[RecordingRunner]:
    """Command runner handed out by select_runner inside HostManager."""
    recording = RecordingRunner()
    with patch("kubehost.host_manager.select_runner", AsyncMock(return_value=recording)):
        yield recording


@pytest.fixture
def manager(
    store: InMemoryStore,
    provisioner: RecordingProvisioner,
    notifier: RecordingNotifier,
    settings: Settings,
    runner: RecordingRunner,
) -> HostManager:
    return HostManager(store, provisioner, registry=default_registry(), settings=settings, notifier=notifier)


@pytest.fixture
def make_host(store: InMemoryStore) -> Callable[..., FakeHost]:
    """Register an existing host in the store."""

    def _make(
        name: str = "minikube",
        kind: str = "kvm2",
        *,
        state: LifecycleState = LifecycleState.RUNNING,
        ip: str = "192.168.39.10",
        raw_driver: bytes = b"",
    ) -> FakeHost:
        driver = FakeDriver(kind, name, state=state, ip=ip)
        host = FakeHost(
            name=name,
            driver_name=kind,
            driver=driver,
            raw_driver=raw_driver,
            ssh_responses=default_ssh_responses(),
        )
        return store.add(host)

    return _make
