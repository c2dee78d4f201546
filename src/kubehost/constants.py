"""Constants for kubehost lifecycle operations."""

from datetime import timedelta
from pathlib import PurePosixPath
from typing import Final

# ============================================================================
# Locking
# ============================================================================

MACHINES_LOCK_TIMEOUT: Final[timedelta] = timedelta(minutes=10)
"""Maximum wait for the machines lock. Provisioning normally completes
within 60 seconds; the margin covers a slow first boot in another profile."""

MACHINES_LOCK_POLL_INTERVAL_SECONDS: Final[float] = 1.0
"""Delay between non-blocking flock attempts while the lock is contended."""

# ============================================================================
# Guest clock
# ============================================================================

MAX_CLOCK_DESYNC_SECONDS: Final[float] = 2.1
"""Maximum the guest clock may be ahead of or behind the local clock.
Large enough to absorb the measurement's SSH round trip, small enough that
freshly minted certificates are still inside their validity window."""

GUEST_CLOCK_QUERY: Final[str] = "date +%s.%N"
"""Guest command returning seconds and nanoseconds since the epoch."""

# ============================================================================
# Guest filesystem layout
# ============================================================================

GUEST_PERSISTENT_DIR: Final[PurePosixPath] = PurePosixPath("/var/lib/minikube")
GUEST_EPHEMERAL_DIR: Final[PurePosixPath] = PurePosixPath("/var/tmp/minikube")
GUEST_ADDONS_DIR: Final[PurePosixPath] = PurePosixPath("/etc/kubernetes/addons")
GUEST_MANIFESTS_DIR: Final[PurePosixPath] = PurePosixPath("/etc/kubernetes/manifests")
GUEST_CERTS_DIR: Final[PurePosixPath] = GUEST_PERSISTENT_DIR / "certs"

REQUIRED_GUEST_DIRECTORIES: Final[tuple[str, ...]] = (
    str(GUEST_ADDONS_DIR),
    str(GUEST_MANIFESTS_DIR),
    str(GUEST_EPHEMERAL_DIR),
    str(GUEST_PERSISTENT_DIR),
    str(GUEST_CERTS_DIR),
    str(GUEST_PERSISTENT_DIR / "images"),
    str(GUEST_PERSISTENT_DIR / "binaries"),
)
"""Directories created inside the guest during setup (sudo mkdir -p)."""

# ============================================================================
# Engine / networking
# ============================================================================

DEFAULT_MACHINE_NAME: Final[str] = "minikube"
"""Profile name used when the caller does not pick one."""

DEFAULT_SERVICE_CIDR: Final[str] = "10.96.0.0/12"
"""Kubernetes service CIDR, always trusted as an insecure registry."""

DEFAULT_ENGINE_INSTALL_URL: Final[str] = "https://get.docker.com"
"""Install script used by provisioners that have to install the engine."""

DOCKER_DAEMON_PORT: Final[int] = 2376
"""TLS port of the guest container engine."""

DEFAULT_BIND_IPV4: Final[str] = "127.0.0.1"
"""Address container-backed hosts publish their ports on."""

HYPERV_VIRTUAL_SWITCH_INTERFACE: Final[str] = "vEthernet ({switch})"
"""Local interface name Hyper-V creates for a virtual switch."""

# ============================================================================
# Caller-side retry (kubehost.retry)
# ============================================================================

TRANSIENT_RETRY_MAX_ATTEMPTS: Final[int] = 3
"""Attempts (including the first) for operations failing with TransientError."""

TRANSIENT_RETRY_MIN_SECONDS: Final[float] = 1.0
TRANSIENT_RETRY_MAX_SECONDS: Final[float] = 10.0
"""Bounds of the jittered exponential wait between attempts."""
