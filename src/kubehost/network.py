"""Host<->guest gateway address resolution.

Each backend exposes its network topology differently, so resolution is
a strategy table keyed by the descriptor's GatewayStrategy:

    FIXED              -> literal address, no I/O
    SERIALIZED_CONFIG  -> switch name scraped from raw driver data
                          -> local interface IPv4
    CONTROL_TOOL       -> adapter name from VBoxManage showvminfo
                          -> local interface IPv4
    HOST_ONLY_SUBNET   -> guest IPv4 with last octet set to 1

Scraping is isolated in the per-strategy resolvers so a typed accessor
can replace it without touching callers.
"""

from __future__ import annotations

import re
import socket
from ipaddress import IPv4Address, IPv6Address, ip_address
from typing import TYPE_CHECKING, Protocol

import psutil

from kubehost import constants
from kubehost._logging import get_logger
from kubehost.command_runner import ExecRunner
from kubehost.drivers import GatewayStrategy
from kubehost.exceptions import AddressNotFoundError, CommandError, UnsupportedDriverError

if TYPE_CHECKING:
    from kubehost.drivers import DriverDescriptor, DriverRegistry
    from kubehost.host import Host
    from kubehost.settings import Settings

logger = get_logger(__name__)

_HYPERV_VSWITCH_PATTERN = re.compile(r'"VSwitch": "(.*?)",')
_VBOX_HOSTONLY_ADAPTER_PATTERN = re.compile(r'hostonlyadapter2="(.*?)"')


def get_ip_for_interface(name: str) -> IPv4Address:
    """First IPv4 address assigned to local interface ``name``.

    Raises:
        AddressNotFoundError: Interface missing or has no IPv4 address
    """
    for addr in psutil.net_if_addrs().get(name, []):
        if addr.family == socket.AF_INET:
            return IPv4Address(addr.address)
    raise AddressNotFoundError(f"Error finding IPV4 address for {name}", context={"interface": name})


def _extract(pattern: re.Pattern[str], text: str, what: str) -> str:
    match = pattern.search(text)
    if match is None:
        raise AddressNotFoundError(f"{what} not found", context={"pattern": pattern.pattern})
    return match.group(1)


class GatewayResolver(Protocol):
    async def resolve(self, host: Host, descriptor: DriverDescriptor) -> IPv4Address: ...


class FixedGateway:
    """Backends with a well-known virtual switch gateway."""

    async def resolve(self, host: Host, descriptor: DriverDescriptor) -> IPv4Address:
        return IPv4Address(descriptor.fixed_gateway)


class SerializedConfigGateway:
    """Backends whose switch name is only available in their serialized config."""

    async def resolve(self, host: Host, descriptor: DriverDescriptor) -> IPv4Address:
        switch = _extract(_HYPERV_VSWITCH_PATTERN, host.raw_driver.decode(errors="replace"), "virtual switch")
        interface = constants.HYPERV_VIRTUAL_SWITCH_INTERFACE.format(switch=switch)
        try:
            return get_ip_for_interface(interface)
        except AddressNotFoundError as e:
            raise AddressNotFoundError(f"ip for interface ({switch}): {e}", context={"interface": interface}) from e


class ControlToolGateway:
    """Backends whose control tool reports the host-only adapter name."""

    def __init__(self, vboxmanage_bin: str) -> None:
        self.vboxmanage_bin = vboxmanage_bin

    async def resolve(self, host: Host, descriptor: DriverDescriptor) -> IPv4Address:
        try:
            result = await ExecRunner().run_cmd([self.vboxmanage_bin, "showvminfo", host.name, "--machinereadable"])
        except CommandError as e:
            raise AddressNotFoundError(f"showvminfo {host.name}: {e}", context={"host": host.name}) from e
        interface = _extract(_VBOX_HOSTONLY_ADAPTER_PATTERN, result.stdout, "host-only adapter")
        return get_ip_for_interface(interface)


class HostOnlySubnetGateway:
    """Backends whose guest sits on a host-only /24 with the host at .1."""

    async def resolve(self, host: Host, descriptor: DriverDescriptor) -> IPv4Address:
        try:
            ip_str = await host.driver.get_ip()
        except Exception as e:
            raise AddressNotFoundError(f"Error getting VM IP address: {e}", context={"host": host.name}) from e
        try:
            vm_ip = ip_address(ip_str.strip())
        except ValueError as e:
            raise AddressNotFoundError(f"Error parsing VM IP address: {ip_str!r}") from e
        if isinstance(vm_ip, IPv6Address):
            if vm_ip.ipv4_mapped is None:
                raise AddressNotFoundError(f"Error converting VM IP address to IPv4 address: {ip_str}")
            vm_ip = vm_ip.ipv4_mapped
        return IPv4Address(vm_ip.packed[:3] + b"\x01")


async def host_port_binding(oci_bin: str, container: str, port: int) -> int:
    """Host port the container runtime published ``port`` of ``container`` on.

    Parses ``<runtime> port <container> <port>`` output such as
    ``0.0.0.0:32772`` (first mapping wins).

    Raises:
        AddressNotFoundError: Port not published or output unparseable
    """
    try:
        result = await ExecRunner().run_cmd([oci_bin, "port", container, str(port)])
    except CommandError as e:
        raise AddressNotFoundError(f"get host-bind port {port} for {container}: {e}", context={"container": container}) from e

    for line in result.stdout.splitlines():
        _, sep, host_port = line.strip().rpartition(":")
        if not sep:
            continue
        try:
            return int(host_port)
        except ValueError:
            continue
    raise AddressNotFoundError(
        f"no host port bound to {port} for {container}: {result.stdout.strip()!r}",
        context={"container": container, "port": port},
    )


def _resolver_for(strategy: GatewayStrategy, settings: Settings) -> GatewayResolver:
    resolvers: dict[GatewayStrategy, GatewayResolver] = {
        GatewayStrategy.FIXED: FixedGateway(),
        GatewayStrategy.SERIALIZED_CONFIG: SerializedConfigGateway(),
        GatewayStrategy.CONTROL_TOOL: ControlToolGateway(str(settings.vboxmanage_bin)),
        GatewayStrategy.HOST_ONLY_SUBNET: HostOnlySubnetGateway(),
    }
    return resolvers[strategy]


async def resolve_gateway_ip(host: Host, registry: DriverRegistry, settings: Settings) -> IPv4Address:
    """Address used for mapping host -> guest and guest -> host.

    Raises:
        UnsupportedDriverError: Backend has no gateway strategy
        AddressNotFoundError: Strategy could not find an address
    """
    descriptor = registry.lookup(host.driver_name)
    if descriptor is None or descriptor.gateway is None:
        raise UnsupportedDriverError(
            "Error, attempted to get host ip address for unsupported driver",
            context={"driver": host.driver_name},
        )
    ip = await _resolver_for(descriptor.gateway, settings).resolve(host, descriptor)
    logger.debug("Resolved gateway", extra={"driver": host.driver_name, "strategy": descriptor.gateway.value, "ip": str(ip)})
    return ip
