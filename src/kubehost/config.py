"""Machine configuration for kubehost.

MachineConfig describes the desired host for one profile. It is produced
by the caller's configuration loading and consumed read-only by the
lifecycle controller.

Example:
    ```python
    from kubehost import HostManager, MachineConfig

    cfg = MachineConfig(name="minikube", vm_driver="kvm2", cpus=2, memory_mb=2048)
    host = await manager.start_host(cfg)
    ```
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from kubehost import constants


class MachineConfig(BaseModel):
    """Desired host for a profile.

    Attributes:
        name: Profile / machine name. Unique key in the host store.
        vm_driver: Backend kind, resolved through the driver registry.
        cpus: Guest CPU count.
        memory_mb: Guest memory in MB.
        disk_size_mb: Guest disk size in MB.
        iso_url: Boot image source handed to the backend config.
        docker_env: Engine environment, ``KEY=VALUE`` strings. Non-empty
            triggers backend provisioning during configure.
        docker_opt: Arbitrary engine daemon flags.
        insecure_registry: Extra registries trusted without TLS.
        registry_mirror: Registry mirrors for the engine.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    name: str = Field(
        default=constants.DEFAULT_MACHINE_NAME,
        min_length=1,
        pattern=r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$",
        description="Profile / machine name",
    )
    vm_driver: str = Field(min_length=1, description="Backend kind")
    cpus: int = Field(default=2, ge=1)
    memory_mb: int = Field(default=2000, ge=1)
    disk_size_mb: int = Field(default=20000, ge=1)
    iso_url: str = ""
    docker_env: tuple[str, ...] = ()
    docker_opt: tuple[str, ...] = ()
    insecure_registry: tuple[str, ...] = ()
    registry_mirror: tuple[str, ...] = ()


class EngineOptions(BaseModel):
    """Container engine options applied on the host."""

    env: list[str] = Field(default_factory=list)
    insecure_registry: list[str] = Field(default_factory=list)
    registry_mirror: list[str] = Field(default_factory=list)
    arbitrary_flags: list[str] = Field(default_factory=list)
    install_url: str = constants.DEFAULT_ENGINE_INSTALL_URL


class AuthOptions(BaseModel):
    """Where the host's TLS material is generated and stored."""

    cert_dir: Path | None = None
    store_path: Path | None = None


class HostOptions(BaseModel):
    """Options persisted alongside a host record."""

    auth_options: AuthOptions = Field(default_factory=AuthOptions)
    engine_options: EngineOptions = Field(default_factory=EngineOptions)


def engine_options(cfg: MachineConfig) -> EngineOptions:
    """Engine options for a machine config.

    The service CIDR is always trusted so in-cluster registries work
    without TLS.
    """
    return EngineOptions(
        env=list(cfg.docker_env),
        insecure_registry=[constants.DEFAULT_SERVICE_CIDR, *cfg.insecure_registry],
        registry_mirror=list(cfg.registry_mirror),
        arbitrary_flags=list(cfg.docker_opt),
        install_url=constants.DEFAULT_ENGINE_INSTALL_URL,
    )
