"""Runtime configuration from environment variables."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from kubehost import constants
from kubehost.platform_utils import default_vboxmanage_path, get_home_dir


class Settings(BaseSettings):
    """Runtime configuration from environment variables.

    All settings can be overridden via environment variables with KUBEHOST_ prefix.
    Example: KUBEHOST_LOCK_TIMEOUT_SECONDS=60
    """

    model_config = SettingsConfigDict(
        env_prefix="KUBEHOST_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Storage root: machines/, certs/, profiles/ all live below it
    home: Path = Field(default_factory=get_home_dir)

    # Machines lock
    lock_timeout_seconds: float = Field(default=constants.MACHINES_LOCK_TIMEOUT.total_seconds(), gt=0)
    lock_poll_interval_seconds: float = Field(default=constants.MACHINES_LOCK_POLL_INTERVAL_SECONDS, gt=0)

    # Backend tooling
    docker_bin: str = "docker"
    vboxmanage_bin: Path = Field(default_factory=default_vboxmanage_path)

    # Remote shell
    ssh_connect_timeout_seconds: float = Field(default=10.0, gt=0)

    # User-facing notices
    show_driver_deprecation_notification: bool = True

    @property
    def machines_dir(self) -> Path:
        """Shared machines directory; the lock scope for every mutating operation."""
        return self.home / "machines"

    @property
    def certs_dir(self) -> Path:
        """Client certificates used for DOCKER_CERT_PATH."""
        return self.home / "certs"
