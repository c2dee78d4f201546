"""Host lifecycle controller.

Drives one host per profile through its backend:

    Nonexistent -> (create) -> Running <-> Stopped
                                  any state -> Error on backend failure

State is always re-derived from the backend, never cached. Every mutating
operation runs under the machines lock (kubehost.machine_lock), which
serializes all profiles sharing a storage root.

Failures are classified, never retried here (see kubehost.exceptions):
TransientError subclasses may be retried by the caller, PermanentError
subclasses may not, HostDoesNotExistError is a distinct outcome, and
advisory failures (clock measurement, directory creation, orphan cleanup,
power-off) are logged and swallowed.
"""

from __future__ import annotations

import time
from ipaddress import IPv4Address, IPv6Address, ip_address
from typing import TYPE_CHECKING

import paramiko

from kubehost import constants
from kubehost._logging import get_logger
from kubehost.command_runner import select_runner
from kubehost.config import engine_options
from kubehost.drivers import DriverDescriptor, DriverRegistry, default_registry
from kubehost.exceptions import (
    AddressNotFoundError,
    AuthConfigurationError,
    CommandRunnerError,
    HostAlreadyInStateError,
    HostCreateError,
    HostDoesNotExistError,
    HostError,
    HostLoadError,
    HostProvisionError,
    HostRemoveError,
    HostSaveError,
    HostStartError,
    HostStateError,
    HostStopError,
)
from kubehost.guest_clock import ensure_synced_guest_clock
from kubehost.host_info import show_host_info, show_local_os_release, show_remote_os_release
from kubehost.machine_lock import machines_lock
from kubehost.models import LifecycleState
from kubehost.network import host_port_binding, resolve_gateway_ip
from kubehost.notify import Event, NullNotifier
from kubehost.resource_cleanup import delete_orphaned_container
from kubehost.settings import Settings

if TYPE_CHECKING:
    from kubehost.config import EngineOptions, MachineConfig
    from kubehost.host import Host, HostStore, Provisioner
    from kubehost.notify import Notifier

logger = get_logger(__name__)

_DEPRECATED_DRIVER_WARNING = (
    "The {driver} driver is deprecated and support for it will be removed in a future release. "
    "Consider switching to a supported driver. "
    "To disable this message, set KUBEHOST_SHOW_DRIVER_DEPRECATION_NOTIFICATION=false"
)
_DEFAULT_PROFILE_TIP = (
    "Tip: Use a different profile name to create a new cluster, or delete this one to start over."
)


def _join_host_port(ip: str, port: int) -> str:
    if ":" in ip:
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"


class HostManager:
    """Create, start, stop, delete and inspect hosts.

    All collaborators are explicit; nothing is looked up from global
    configuration. Operations take the profile name as a parameter.

    Usage:
        manager = HostManager(store, provisioner, notifier=ConsoleNotifier())
        host = await manager.start_host(MachineConfig(name="dev", vm_driver="kvm2"))
        await manager.stop_host("dev")
    """

    def __init__(
        self,
        store: HostStore,
        provisioner: Provisioner,
        *,
        registry: DriverRegistry | None = None,
        settings: Settings | None = None,
        notifier: Notifier | None = None,
    ):
        """
        Args:
            store: Host persistence (exists/load/new_host/create/save/remove)
            provisioner: Guest engine provisioning and TLS setup
            registry: Backend kinds; defaults to default_registry()
            settings: Storage root, lock timings, tool paths; defaults to Settings()
            notifier: User-facing notification sink; defaults to NullNotifier()
        """
        self.store = store
        self.provisioner = provisioner
        self.registry = registry if registry is not None else default_registry()
        self.settings = settings if settings is not None else Settings()
        self.notifier = notifier if notifier is not None else NullNotifier()

    def _descriptor(self, host: Host) -> DriverDescriptor:
        # Hosts persisted by a kind this registry doesn't know get no special casing
        return self.registry.lookup(host.driver_name) or DriverDescriptor(host.driver_name)

    def _bind(self, host: Host) -> Host:
        host.ssh_connect_timeout = self.settings.ssh_connect_timeout_seconds
        return host

    # =========================================================================
    # Start
    # =========================================================================

    async def start_host(self, cfg: MachineConfig) -> Host:
        """Create the host for ``cfg``, or start/reuse the existing one, then configure it.

        Raises:
            LockTimeoutError: Machines lock not acquired in time
            UnsupportedDriverError: cfg.vm_driver is not registered
            HostCreateError / HostLoadError / HostStartError / HostSaveError
            HostProvisionError: Engine provisioning failed
            AuthConfigurationError: Auth setup failed (retriable)
            ClockSyncError: Guest clock skewed and could not be corrected
        """
        async with machines_lock(self.settings, cfg.name):
            try:
                exists = await self.store.exists(cfg.name)
            except Exception as e:
                raise HostLoadError(f"exists: {cfg.name}: {e}", context={"name": cfg.name}) from e

            if not exists:
                logger.info("Machine does not exist... provisioning new machine", extra={"host": cfg.name})
                logger.info("Provisioning machine", extra={"host": cfg.name, "config": repr(cfg)})
                host = await self._create_host(cfg)
            else:
                logger.info("Skipping create...Using existing machine configuration", extra={"host": cfg.name})
                host = await self._resume_host(cfg)

            e = engine_options(cfg)
            logger.info("Engine options", extra={"host": cfg.name, "engine_options": repr(e)})
            self.notifier.notify(Event.WAITING)
            await self._configure_host(host, e)
            return host

    async def _resume_host(self, cfg: MachineConfig) -> Host:
        try:
            host = self._bind(await self.store.load(cfg.name))
        except Exception as e:
            raise HostLoadError(
                f"Error loading existing host {cfg.name}: {e}. Delete the host, then start it again.",
                context={"name": cfg.name},
            ) from e

        if cfg.name == constants.DEFAULT_MACHINE_NAME:
            self.notifier.notify(Event.TIP, message=_DEFAULT_PROFILE_TIP)

        try:
            state = await host.driver.get_state()
        except Exception as e:
            raise HostStateError(f"Error getting state for host: {e}", context={"name": cfg.name}) from e
        logger.info("Machine state", extra={"host": cfg.name, "state": str(state)})

        if state is LifecycleState.RUNNING:
            self.notifier.notify(Event.RUNNING, driver_name=cfg.vm_driver, profile_name=cfg.name)
            return host

        self.notifier.notify(Event.RESTARTING, driver_name=cfg.vm_driver, profile_name=cfg.name)
        try:
            await host.driver.start()
        except HostAlreadyInStateError as e:
            if e.state is not LifecycleState.RUNNING:
                raise HostStartError(f"start: {e}", context={"name": cfg.name}) from e
            logger.info("Host was already running", extra={"host": cfg.name})
        except Exception as e:
            raise HostStartError(f"start: {e}", context={"name": cfg.name, "driver": cfg.vm_driver}) from e

        await self._save(host)
        return host

    async def _create_host(self, cfg: MachineConfig) -> Host:
        descriptor = self.registry.require(cfg.vm_driver)
        if descriptor.deprecated and self.settings.show_driver_deprecation_notification:
            self.notifier.notify(Event.WARNING, message=_DEPRECATED_DRIVER_WARNING.format(driver=cfg.vm_driver))
        show_host_info(cfg, descriptor, self.notifier)

        try:
            data = descriptor.configure(cfg)
        except (TypeError, ValueError) as e:
            raise HostCreateError(f"marshal: {e}", context={"name": cfg.name, "driver": cfg.vm_driver}) from e

        try:
            host = self._bind(await self.store.new_host(cfg.vm_driver, data))
        except Exception as e:
            raise HostCreateError(f"new host: {e}", context={"name": cfg.name, "driver": cfg.vm_driver}) from e

        host.host_options.auth_options.cert_dir = self.settings.home
        host.host_options.auth_options.store_path = self.settings.home
        host.host_options.engine_options = engine_options(cfg)

        try:
            await self.store.create(host)
        except Exception as e:
            raise HostCreateError(f"create: {e}", context={"name": cfg.name, "driver": cfg.vm_driver}) from e

        await self._create_required_directories(host, descriptor)

        if descriptor.bare_metal:
            await show_local_os_release(self.notifier)
        elif not descriptor.container_backed:
            await show_remote_os_release(host, self.provisioner)
            # New guests get their clock corrected before any certificate is issued
            await ensure_synced_guest_clock(host)

        await self._save(host)
        return host

    async def _save(self, host: Host) -> None:
        try:
            await self.store.save(host)
        except Exception as e:
            raise HostSaveError(f"save: {e}", context={"name": host.name}) from e

    async def _configure_host(self, host: Host, e: EngineOptions) -> None:
        """Post-powerup configuration shared by the create and resume paths."""
        start = time.monotonic()
        descriptor = self._descriptor(host)
        logger.info("configureHost", extra={"host": host.name, "driver": host.driver_name})
        try:
            await self._create_required_directories(host, descriptor)

            if e.env:
                host.host_options.engine_options.env = list(e.env)
                logger.info("Provisioning host", extra={"host": host.name, "host_options": repr(host.host_options)})
                try:
                    await self.provisioner.provision(host)
                except Exception as err:
                    raise HostProvisionError(f"provision: {err}", context={"name": host.name}) from err

            if descriptor.bare_metal:
                logger.info("Local driver, skipping auth/time setup", extra={"host": host.name, "driver": host.driver_name})
                return

            logger.info("Configuring auth", extra={"host": host.name, "driver": host.driver_name})
            try:
                await self.provisioner.configure_auth(host)
            except Exception as err:
                raise AuthConfigurationError(
                    f"Error configuring auth on host: {err}",
                    context={"name": host.name, "driver": host.driver_name},
                ) from err

            await ensure_synced_guest_clock(host)
        finally:
            logger.info("configureHost completed", extra={"host": host.name, "duration_s": round(time.monotonic() - start, 3)})

    async def _create_required_directories(self, host: Host, descriptor: DriverDescriptor) -> None:
        """``sudo mkdir -p`` the guest directories kubehost expects.

        Failures are logged, never raised: the directories may already exist
        or be meaningless for the backend.
        """
        if descriptor.mock:
            logger.info("skipping createRequiredDirectories")
            return

        dirs = constants.REQUIRED_GUEST_DIRECTORIES
        logger.info("Creating required directories", extra={"host": host.name, "dirs": list(dirs)})
        try:
            runner = await select_runner(host, self.registry, self.settings)
        except CommandRunnerError as e:
            logger.warning("required directories: no command runner", extra={"host": host.name, "error": str(e)})
            return
        try:
            await runner.run_cmd(["sudo", "mkdir", "-p", *dirs])
        except (HostError, OSError, paramiko.SSHException) as e:
            logger.warning(
                "required directories: sudo mkdir failed",
                extra={"host": host.name, "driver": host.driver_name, "error": str(e)},
            )
        finally:
            runner.close()

    # =========================================================================
    # Stop / delete
    # =========================================================================

    async def _try_ssh_power_off(self, host: Host) -> None:
        """Power the guest off over SSH if it is running.

        Raises:
            HostStateError: Backend state could not be read
        """
        try:
            state = await host.driver.get_state()
        except Exception as e:
            logger.warning("Unable to get state", extra={"host": host.name, "error": str(e)})
            raise HostStateError(f"state: {e}", context={"name": host.name}) from e
        if state is not LifecycleState.RUNNING:
            logger.info("Host not running, skipping power off", extra={"host": host.name, "state": str(state)})
            return

        self.notifier.notify(Event.SHUTDOWN, profile_name=host.name)
        try:
            out = await host.run_ssh_command("sudo poweroff")
        except (HostError, OSError, paramiko.SSHException) as e:
            # poweroff drops the connection, so an error here is expected
            logger.info("Poweroff result", extra={"host": host.name, "error": str(e)})
            return
        logger.info("Poweroff result", extra={"host": host.name, "output": out})

    async def stop_host(self, name: str) -> None:
        """Stop the named host. Stopping a stopped host succeeds.

        Raises:
            LockTimeoutError: Machines lock not acquired in time
            HostLoadError: Host record could not be loaded
            HostStopError: Backend stop failed (retriable)
        """
        async with machines_lock(self.settings, name):
            logger.info("Stopping host ...", extra={"host": name})
            start = time.monotonic()
            try:
                try:
                    host = self._bind(await self.store.load(name))
                except Exception as e:
                    raise HostLoadError(f"load: {e}", context={"name": name}) from e

                descriptor = self._descriptor(host)
                self.notifier.notify(Event.STOPPING, profile_name=name, driver_name=host.driver_name)
                if descriptor.power_off_before_stop:
                    logger.info("Native stop can hang, shutting down over SSH first", extra={"host": name, "driver": host.driver_name})
                    try:
                        await self._try_ssh_power_off(host)
                    except HostStateError as e:
                        raise HostStopError(f"ssh power off: {e}", context={"name": name}) from e

                try:
                    await host.driver.stop()
                except HostAlreadyInStateError as e:
                    logger.info("Host already in state", extra={"host": name, "state": str(e.state)})
                    if e.state is LifecycleState.STOPPED:
                        return
                    raise HostStopError(f"Stop: {name}: {e}", context={"name": name}) from e
                except Exception as e:
                    logger.info("Host stop failed", extra={"host": name, "error": str(e)})
                    raise HostStopError(f"Stop: {name}: {e}", context={"name": name}) from e
            finally:
                logger.info("Stop finished", extra={"host": name, "duration_s": round(time.monotonic() - start, 3)})

    async def delete_host(self, name: str) -> None:
        """Remove the named host from its backend and from the store.

        Raises:
            LockTimeoutError: Machines lock not acquired in time
            HostDoesNotExistError: Nothing to delete; no removal attempted
            HostLoadError: Host exists but its record could not be loaded
            HostRemoveError: Backend or store removal failed
        """
        async with machines_lock(self.settings, name):
            host: Host | None = None
            load_error: Exception | None = None
            try:
                host = self._bind(await self.store.load(name))
            except Exception as e:
                load_error = e
                logger.info("Unable to load host, checking for an orphaned container", extra={"host": name, "error": str(e)})
                # Continue even if the store does not know the host
                if await delete_orphaned_container(name, self.settings.docker_bin):
                    logger.info("Found stale container and successfully cleaned it up!")

            status: str | None = None
            try:
                status = await self.get_host_status(name)
            except HostError as e:
                logger.warning("Host status failed", extra={"host": name, "error": str(e)})
                self.notifier.notify(Event.WARNING, message=f"Unable to get the status of the {name} cluster.")

            if status == LifecycleState.NONEXISTENT.value:
                raise HostDoesNotExistError(name)
            if host is None:
                raise HostLoadError(f"load: {load_error}", context={"name": name}) from load_error

            descriptor = self._descriptor(host)
            if descriptor.power_off_before_stop:
                try:
                    await self._try_ssh_power_off(host)
                except HostStateError as e:
                    logger.info("Unable to power off", extra={"host": name, "error": str(e)})
                else:
                    self.notifier.notify(Event.POWERED_OFF, driver_name=host.driver_name)

            self.notifier.notify(Event.DELETING_HOST, profile_name=name, driver_name=host.driver_name)
            try:
                await host.driver.remove()
            except Exception as e:
                raise HostRemoveError(f"host remove: {e}", context={"name": name, "driver": host.driver_name}) from e
            try:
                await self.store.remove(name)
            except Exception as e:
                raise HostRemoveError(f"api remove: {e}", context={"name": name}) from e

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_host_status(self, name: str) -> str:
        """Backend state of the named host as a string ("Nonexistent" if absent).

        Raises:
            HostLoadError: Existence check or load failed
            HostStateError: Backend state query failed
        """
        try:
            exists = await self.store.exists(name)
        except Exception as e:
            raise HostLoadError(f"{name} exists: {e}", context={"name": name}) from e
        if not exists:
            return LifecycleState.NONEXISTENT.value

        try:
            host = self._bind(await self.store.load(name))
        except Exception as e:
            raise HostLoadError(f"load: {e}", context={"name": name}) from e

        try:
            state = await host.driver.get_state()
        except Exception as e:
            raise HostStateError(f"state: {e}", context={"name": name}) from e
        return str(state)

    async def is_host_running(self, name: str) -> bool:
        """True if the named host's backend reports Running. Never raises."""
        try:
            status = await self.get_host_status(name)
        except HostError as e:
            logger.warning("Host status returned error", extra={"host": name, "error": str(e)})
            return False
        if status != LifecycleState.RUNNING.value:
            logger.warning("Host is not running", extra={"host": name, "status": status})
            return False
        return True

    async def check_if_host_exists_and_load(self, name: str) -> Host:
        """Load the named host, distinguishing "absent" from "unloadable".

        Raises:
            HostDoesNotExistError: No such host
            HostLoadError: Existence check or load failed
        """
        logger.info("Checking if host exists", extra={"host": name})
        try:
            exists = await self.store.exists(name)
        except Exception as e:
            raise HostLoadError(f"Error checking that machine exists: {name}: {e}", context={"name": name}) from e
        if not exists:
            raise HostDoesNotExistError(name)

        try:
            return self._bind(await self.store.load(name))
        except Exception as e:
            raise HostLoadError(f"loading machine {name!r}: {e}", context={"name": name}) from e

    async def get_host_driver_ip(self, name: str) -> IPv4Address | IPv6Address:
        """Address the named host is reachable on from the local machine.

        Container-backed hosts publish their ports on the local bind address.

        Raises:
            HostDoesNotExistError: No such host
            AddressNotFoundError: Backend reported no usable address
        """
        host = await self.check_if_host_exists_and_load(name)
        try:
            ip_str = await host.driver.get_ip()
        except Exception as e:
            raise AddressNotFoundError(f"getting IP: {e}", context={"name": name}) from e
        if self._descriptor(host).container_backed:
            ip_str = constants.DEFAULT_BIND_IPV4
        try:
            return ip_address(ip_str.strip())
        except ValueError as e:
            raise AddressNotFoundError(f"parsing IP: {ip_str}", context={"name": name}) from e

    async def get_vm_host_ip(self, host: Host) -> IPv4Address:
        """Address for host -> guest and guest -> host routing.

        Raises:
            UnsupportedDriverError: Backend has no gateway strategy
            AddressNotFoundError: Strategy could not find an address
        """
        return await resolve_gateway_ip(host, self.registry, self.settings)

    async def get_host_docker_env(self, name: str) -> dict[str, str]:
        """Environment pointing a local docker client at the host's engine.

        Raises:
            HostDoesNotExistError: No such host
            AddressNotFoundError: Engine address or published port not found
        """
        host = await self.check_if_host_exists_and_load(name)

        if self._descriptor(host).container_backed:
            # The container's engine port is published on a runtime-allocated host port
            ip = constants.DEFAULT_BIND_IPV4
            port = await host_port_binding(self.settings.docker_bin, name, constants.DOCKER_DAEMON_PORT)
        else:
            try:
                ip = (await host.driver.get_ip()).strip()
            except Exception as e:
                raise AddressNotFoundError(f"Error getting ip from host: {e}", context={"name": name}) from e
            port = constants.DOCKER_DAEMON_PORT

        return {
            "DOCKER_TLS_VERIFY": "1",
            "DOCKER_HOST": f"tcp://{_join_host_port(ip, port)}",
            "DOCKER_CERT_PATH": str(self.settings.certs_dir),
        }
