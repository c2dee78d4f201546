"""Driver capability interface and backend registry.

Backends (hypervisors, bare metal, container-as-VM) are external: they
satisfy the Driver protocol and are described by a DriverDescriptor in a
DriverRegistry. Kind-specific behavior (no remote shell on bare metal,
fixed bind address for containers, SSH power-off before stopping Hyper-V)
is expressed as capability flags on the descriptor so the lifecycle code
never compares kind strings.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from kubehost._logging import get_logger
from kubehost.exceptions import UnsupportedDriverError

if TYPE_CHECKING:
    from kubehost.config import MachineConfig
    from kubehost.models import LifecycleState

logger = get_logger(__name__)

# Backend kinds known to the default registry
KVM2 = "kvm2"
HYPERKIT = "hyperkit"
HYPERV = "hyperv"
VIRTUALBOX = "virtualbox"
VMWARE = "vmware"
VMWARE_FUSION = "vmwarefusion"
PARALLELS = "parallels"
NONE = "none"
DOCKER = "docker"
MOCK = "mock"


@runtime_checkable
class Driver(Protocol):
    """Live handle on one host inside a backend.

    Uses structural typing (Protocol) instead of inheritance. Backends that
    are asked to enter the state they are already in raise
    kubehost.exceptions.HostAlreadyInStateError.
    """

    def driver_name(self) -> str:
        """Backend kind, e.g. "kvm2"."""
        ...

    async def get_state(self) -> LifecycleState:
        """Query the backend for the host's current state."""
        ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def remove(self) -> None: ...

    async def get_ip(self) -> str:
        """Address of the guest as reported by the backend."""
        ...

    def get_ssh_hostname(self) -> str: ...

    def get_ssh_port(self) -> int: ...

    def get_ssh_username(self) -> str: ...

    def get_ssh_key_path(self) -> str: ...


class GatewayStrategy(Enum):
    """How the host<->guest gateway address is discovered for a backend."""

    FIXED = "fixed"
    """Well-known virtual switch gateway, returned as a literal."""

    SERIALIZED_CONFIG = "serialized_config"
    """Switch name scraped from the backend's serialized config, then the
    matching local interface's IPv4 address."""

    CONTROL_TOOL = "control_tool"
    """Adapter name reported by the backend's control tool, then the
    matching local interface's IPv4 address."""

    HOST_ONLY_SUBNET = "host_only_subnet"
    """First address of the guest IP's host-only /24 subnet."""


def _default_config(cfg: MachineConfig) -> dict[str, Any]:
    return {
        "MachineName": cfg.name,
        "CPU": cfg.cpus,
        "Memory": cfg.memory_mb,
        "DiskSize": cfg.disk_size_mb,
        "Boot2DockerURL": cfg.iso_url,
    }


@dataclass(frozen=True)
class DriverDescriptor:
    """Registry entry describing one backend kind and its capabilities.

    Attributes:
        name: Backend kind
        bare_metal: Runs directly on the local machine (no isolation, no
            remote shell, no clock sync)
        container_backed: Host is a container; commands go through the
            container runtime and ports are published on the bind address
        mock: Test backend; gets a command runner whose unregistered commands fail
        power_off_before_stop: Native stop can hang; power off over SSH first
        deprecated: Emit a deprecation warning when creating a host
        gateway: Gateway discovery strategy, None when unsupported
        fixed_gateway: Literal gateway for GatewayStrategy.FIXED
        config_factory: Builds the backend-specific config blob
    """

    name: str
    bare_metal: bool = False
    container_backed: bool = False
    mock: bool = False
    power_off_before_stop: bool = False
    deprecated: bool = False
    gateway: GatewayStrategy | None = None
    fixed_gateway: str | None = None
    config_factory: Callable[[MachineConfig], dict[str, Any]] = field(default=_default_config, compare=False)

    def __post_init__(self) -> None:
        if self.gateway is GatewayStrategy.FIXED and not self.fixed_gateway:
            raise ValueError(f"driver {self.name!r}: FIXED gateway strategy requires fixed_gateway")

    @property
    def remote_shell(self) -> bool:
        """Host is reached over SSH for setup, clock sync and power-off."""
        return not (self.bare_metal or self.container_backed or self.mock)

    def configure(self, cfg: MachineConfig) -> bytes:
        """Serialize the backend config blob handed to the host store."""
        return json.dumps(self.config_factory(cfg)).encode()


class DriverRegistry:
    """Backend kinds resolvable by name."""

    def __init__(self, descriptors: list[DriverDescriptor] | None = None) -> None:
        self._drivers: dict[str, DriverDescriptor] = {}
        for descriptor in descriptors or []:
            self.register(descriptor)

    def register(self, descriptor: DriverDescriptor) -> None:
        """Register (or replace) a backend kind."""
        if descriptor.name in self._drivers:
            logger.debug("Replacing driver registration", extra={"driver": descriptor.name})
        self._drivers[descriptor.name] = descriptor

    def lookup(self, kind: str) -> DriverDescriptor | None:
        return self._drivers.get(kind)

    def require(self, kind: str) -> DriverDescriptor:
        """Like lookup(), but an unknown kind is an error."""
        descriptor = self._drivers.get(kind)
        if descriptor is None:
            raise UnsupportedDriverError(f"unsupported/missing driver: {kind}", context={"driver": kind})
        return descriptor

    def list(self) -> list[DriverDescriptor]:
        return sorted(self._drivers.values(), key=lambda d: d.name)

    def __contains__(self, kind: object) -> bool:
        return kind in self._drivers


def default_registry() -> DriverRegistry:
    """Registry pre-populated with the backend kinds kubehost knows about."""
    return DriverRegistry(
        [
            DriverDescriptor(KVM2, gateway=GatewayStrategy.FIXED, fixed_gateway="192.168.39.1"),
            DriverDescriptor(HYPERKIT, gateway=GatewayStrategy.FIXED, fixed_gateway="192.168.64.1"),
            DriverDescriptor(HYPERV, gateway=GatewayStrategy.SERIALIZED_CONFIG, power_off_before_stop=True),
            DriverDescriptor(VIRTUALBOX, gateway=GatewayStrategy.CONTROL_TOOL),
            DriverDescriptor(VMWARE, gateway=GatewayStrategy.HOST_ONLY_SUBNET),
            DriverDescriptor(VMWARE_FUSION, deprecated=True),
            DriverDescriptor(PARALLELS),
            DriverDescriptor(NONE, bare_metal=True),
            DriverDescriptor(DOCKER, container_backed=True),
            DriverDescriptor(MOCK, mock=True),
        ]
    )
