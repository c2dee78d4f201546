"""Local machine probes used for informational sizing notices.

Results are displayed only; nothing in the lifecycle depends on them.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles
import psutil

from kubehost._logging import get_logger
from kubehost.exceptions import HostInfoError
from kubehost.models import HostInfo, OsRelease
from kubehost.notify import Event

if TYPE_CHECKING:
    from kubehost.config import MachineConfig
    from kubehost.drivers import DriverDescriptor
    from kubehost.host import Host, Provisioner
    from kubehost.notify import Notifier

logger = get_logger(__name__)

LOCAL_OS_RELEASE_PATH = Path("/etc/os-release")


def megs(num_bytes: int) -> int:
    return num_bytes // 1024 // 1024


def get_host_info() -> HostInfo:
    """Read CPU count, total memory and total size of ``/``.

    Raises:
        HostInfoError: Any probe failed
    """
    try:
        cpus = psutil.cpu_count() or 0
    except (OSError, RuntimeError) as e:
        logger.warning("Unable to get CPU info", extra={"error": str(e)})
        raise HostInfoError(f"cpu info: {e}") from e
    try:
        memory = psutil.virtual_memory().total
    except (OSError, RuntimeError) as e:
        logger.warning("Unable to get mem info", extra={"error": str(e)})
        raise HostInfoError(f"mem info: {e}") from e
    try:
        disk = psutil.disk_usage("/").total
    except (OSError, RuntimeError) as e:
        logger.warning("Unable to get disk info", extra={"error": str(e)})
        raise HostInfoError(f"disk info: {e}") from e

    return HostInfo(cpus=cpus, memory_mb=megs(memory), disk_size_mb=megs(disk))


def show_host_info(cfg: MachineConfig, descriptor: DriverDescriptor, notifier: Notifier) -> None:
    """Announce what is about to be created, sized for the backend kind."""
    if descriptor.bare_metal:
        try:
            info = get_host_info()
        except HostInfoError:
            return
        notifier.notify(
            Event.STARTING_NONE,
            number_of_cpus=info.cpus,
            memory_size=info.memory_mb,
            disk_size=info.disk_size_mb,
        )
    elif descriptor.container_backed:
        try:
            info = get_host_info()
        except HostInfoError:
            return
        notifier.notify(
            Event.STARTING_VM,
            message=(
                f"Creating Kubernetes in {cfg.vm_driver} container with (CPUs={cfg.cpus}), "
                f"Memory={cfg.memory_mb}MB ({info.memory_mb}MB available) ..."
            ),
            driver_name=cfg.vm_driver,
            number_of_cpus=cfg.cpus,
            number_of_host_cpus=info.cpus,
            memory_size=cfg.memory_mb,
            host_memory_size=info.memory_mb,
        )
    else:
        notifier.notify(
            Event.STARTING_VM,
            message=(
                f"Creating {cfg.vm_driver} VM (CPUs={cfg.cpus}, Memory={cfg.memory_mb}MB, "
                f"Disk={cfg.disk_size_mb}MB) ..."
            ),
            driver_name=cfg.vm_driver,
            number_of_cpus=cfg.cpus,
            memory_size=cfg.memory_mb,
            disk_size=cfg.disk_size_mb,
        )


async def show_local_os_release(notifier: Notifier, path: Path = LOCAL_OS_RELEASE_PATH) -> None:
    """Announce the local distribution (bare-metal hosts). Failures are logged only."""
    try:
        async with aiofiles.open(path) as f:
            content = await f.read()
    except OSError as e:
        logger.error("ReadFile failed", extra={"path": str(path), "error": str(e)})
        return

    try:
        release = OsRelease.parse(content)
    except ValueError as e:
        logger.error("NewOsRelease failed", extra={"path": str(path), "error": str(e)})
        return

    notifier.notify(Event.PROVISIONER, pretty_name=release.pretty_name)


async def show_remote_os_release(host: Host, provisioner: Provisioner) -> None:
    """Log the guest distribution (VM hosts). Failures are logged only."""
    try:
        release = await provisioner.os_release(host)
    except Exception as e:  # noqa: BLE001
        logger.error("GetOsReleaseInfo failed", extra={"host": host.name, "error": str(e)})
        return
    logger.info("Provisioned", extra={"host": host.name, "os_release": release.pretty_name})
