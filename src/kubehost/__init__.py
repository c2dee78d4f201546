"""kubehost: lifecycle management for a local Kubernetes node host.

Creates, starts, stops and deletes one VM or container per profile across
interchangeable backends (hypervisors, bare metal, container-as-VM),
serializing mutations with a cross-process lock and keeping the guest
clock in step with the local machine.

Quick Start:
    ```python
    from kubehost import ConsoleNotifier, HostManager, MachineConfig

    manager = HostManager(store, provisioner, notifier=ConsoleNotifier())
    host = await manager.start_host(MachineConfig(name="dev", vm_driver="kvm2"))
    print(await manager.get_host_status("dev"))  # "Running"
    await manager.stop_host("dev")
    ```

The host store, backends and provisioner are supplied by the caller
(see kubehost.host and kubehost.drivers for their protocols).

Retrying:
    ```python
    from kubehost.retry import retry_transient

    await retry_transient(lambda: manager.stop_host("dev"))
    ```
"""

from kubehost.config import AuthOptions, EngineOptions, HostOptions, MachineConfig
from kubehost.drivers import Driver, DriverDescriptor, DriverRegistry, GatewayStrategy, default_registry
from kubehost.exceptions import (
    AddressNotFoundError,
    AuthConfigurationError,
    ClockMeasureError,
    ClockParseError,
    ClockSyncError,
    CommandError,
    CommandRunnerError,
    HostAlreadyInStateError,
    HostCreateError,
    HostDoesNotExistError,
    HostError,
    HostInfoError,
    HostLoadError,
    HostProvisionError,
    HostRemoveError,
    HostSaveError,
    HostStartError,
    HostStateError,
    HostStopError,
    LockTimeoutError,
    PermanentError,
    TransientError,
    UnsupportedDriverError,
)
from kubehost.host import Host, HostStore, Provisioner
from kubehost.host_manager import HostManager
from kubehost.models import HostInfo, LifecycleState, OsRelease, RunResult
from kubehost.notify import ConsoleNotifier, Event, Notifier, NullNotifier
from kubehost.settings import Settings

__all__ = [
    "AddressNotFoundError",
    "AuthConfigurationError",
    "AuthOptions",
    "ClockMeasureError",
    "ClockParseError",
    "ClockSyncError",
    "CommandError",
    "CommandRunnerError",
    "ConsoleNotifier",
    "Driver",
    "DriverDescriptor",
    "DriverRegistry",
    "EngineOptions",
    "Event",
    "GatewayStrategy",
    "Host",
    "HostAlreadyInStateError",
    "HostCreateError",
    "HostDoesNotExistError",
    "HostError",
    "HostInfo",
    "HostInfoError",
    "HostLoadError",
    "HostManager",
    "HostOptions",
    "HostProvisionError",
    "HostRemoveError",
    "HostSaveError",
    "HostStartError",
    "HostStateError",
    "HostStopError",
    "HostStore",
    "LifecycleState",
    "LockTimeoutError",
    "MachineConfig",
    "Notifier",
    "NullNotifier",
    "OsRelease",
    "PermanentError",
    "Provisioner",
    "RunResult",
    "Settings",
    "TransientError",
    "UnsupportedDriverError",
    "default_registry",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("kubehost")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
