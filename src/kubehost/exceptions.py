"""Exception hierarchy for kubehost.

All exceptions inherit from HostError. The lifecycle controller only
classifies failures; it never retries. Callers decide retry policy by
catching the marker bases.

Hierarchy:
    HostError (base)
    ├── TransientError (retryable marker base)
    │   ├── AuthConfigurationError   ← TLS/auth setup on the guest failed
    │   └── HostStopError            ← backend stop failed
    ├── PermanentError (non-retryable marker base)
    │   ├── LockTimeoutError         ← machines lock contended past timeout
    │   ├── UnsupportedDriverError   ← unknown backend kind / capability
    │   ├── CommandRunnerError       ← no command channel for host
    │   ├── ClockSyncError           ← guest clock correction failed
    │   ├── HostCreateError          ← backend or store create failed
    │   ├── HostLoadError            ← stored host could not be loaded
    │   ├── HostStartError           ← backend start of an existing host failed
    │   ├── HostStateError           ← backend state query failed
    │   ├── HostSaveError            ← store save failed
    │   ├── HostProvisionError       ← engine provisioning failed
    │   ├── HostRemoveError          ← backend or store remove failed
    │   └── HostInfoError            ← local CPU/memory/disk probe failed
    ├── HostDoesNotExistError        ← NotFound: distinct branch, not generic
    ├── HostAlreadyInStateError      ← idempotent success signal from backends
    ├── AddressNotFoundError         ← no IPv4 address for interface/pattern
    ├── CommandError                 ← command ran and exited non-zero
    └── ClockMeasureError            ← advisory: guest clock unreadable
        └── ClockParseError          ← advisory: guest clock output malformed
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from kubehost.models import LifecycleState, RunResult


class HostError(Exception):
    """Base exception for all kubehost errors with structured context.

    Attributes:
        message: Human-readable error message
        context: Dictionary of structured error context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


# =============================================================================
# Transient vs Permanent Error Base Classes
# =============================================================================


class TransientError(HostError):
    """Base for errors that may succeed on retry.

    Callers that implement a retry policy should retry exactly this family
    (see kubehost.retry).
    """


class PermanentError(HostError):
    """Base for errors that won't succeed on retry.

    Raised with the failing sub-step in the message; the original cause is
    chained via ``raise ... from``.
    """


# =============================================================================
# Transient (retryable)
# =============================================================================


class AuthConfigurationError(TransientError):
    """Configuring authentication (certificates, engine TLS) on the host failed."""


class HostStopError(TransientError):
    """Backend stop failed for a reason other than "already stopped"."""


# =============================================================================
# Permanent (non-retryable)
# =============================================================================


class LockTimeoutError(PermanentError):
    """The machines lock could not be acquired within its timeout.

    Another process is mutating a host (any profile) sharing the same
    storage root.
    """


class UnsupportedDriverError(PermanentError):
    """The backend kind is not registered, or lacks the requested capability."""


class CommandRunnerError(PermanentError):
    """No command channel could be constructed for the host.

    Typically the remote-shell client failed to connect.
    """


class ClockSyncError(PermanentError):
    """Setting the guest clock failed after skew was detected."""


class HostCreateError(PermanentError):
    """Creating the host (backend config, store entry or backend create) failed."""


class HostLoadError(PermanentError):
    """An existing host record could not be loaded from the store."""


class HostStartError(PermanentError):
    """Starting an existing, stopped host in its backend failed."""


class HostStateError(PermanentError):
    """The backend could not report the host's state."""


class HostSaveError(PermanentError):
    """Persisting the host record failed; the mutation is not considered done."""


class HostProvisionError(PermanentError):
    """Engine provisioning on the host failed."""


class HostRemoveError(PermanentError):
    """Removing the host from the backend or from the store failed."""


class HostInfoError(PermanentError):
    """Reading local CPU, memory or disk information failed."""


# =============================================================================
# Distinct outcomes
# =============================================================================


class HostDoesNotExistError(HostError):
    """The named host does not exist.

    Kept outside the transient/permanent families: callers branch on it
    (e.g. "nothing to delete") rather than treating it as a failure.
    """

    def __init__(self, name: str, context: dict[str, Any] | None = None):
        ctx = context or {}
        ctx.update({"name": name})
        super().__init__(f'machine "{name}" does not exist', ctx)
        self.name = name


class HostAlreadyInStateError(HostError):
    """Raised by a backend asked to transition into the state it is already in.

    The controller treats the matching target state as success.
    """

    def __init__(self, name: str, state: LifecycleState, context: dict[str, Any] | None = None):
        ctx = context or {}
        ctx.update({"name": name, "state": str(state)})
        super().__init__(f'machine "{name}" is already {state}', ctx)
        self.name = name
        self.state = state


class AddressNotFoundError(HostError):
    """No IPv4 address could be found for an interface or driver pattern."""


class CommandError(HostError):
    """A command ran on the host and exited non-zero.

    Attributes:
        result: RunResult with args, captured output and exit code
    """

    def __init__(self, message: str, result: RunResult, context: dict[str, Any] | None = None):
        ctx = context or {}
        ctx.update({"args": list(result.args), "exit_code": result.exit_code, "stderr": result.stderr})
        super().__init__(message, ctx)
        self.result = result


class ClockMeasureError(HostError):
    """Reading the guest clock failed. Advisory: logged, never propagated."""


class ClockParseError(ClockMeasureError):
    """Guest clock output was not ``<seconds>.<nanoseconds>``."""
