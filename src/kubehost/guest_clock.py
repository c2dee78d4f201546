"""Guest clock skew detection and correction.

A guest whose clock drifts from the local machine rejects freshly minted
certificates as not-yet-valid (or expired). Skew is measured with a single
remote ``date`` call and, beyond tolerance, corrected with ``sudo date -s``.

Measurement is best-effort: any failure is logged and the boot proceeds.
Correction failures are returned to the caller as ClockSyncError.

The delta does not compensate for SSH round-trip latency; in a synced
state the guest reads a few hundred milliseconds ahead, which the 2.1s
tolerance absorbs. The correction samples the local clock again right
before issuing the command, so the value written is as fresh as possible.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import timedelta
from typing import Protocol

from kubehost import constants
from kubehost._logging import get_logger
from kubehost.exceptions import ClockMeasureError, ClockParseError, ClockSyncError

logger = get_logger(__name__)


class RemoteShell(Protocol):
    """Anything that can run a shell command string on the guest (e.g. Host)."""

    async def run_ssh_command(self, command: str) -> str: ...


def parse_guest_clock(output: str) -> float:
    """Parse ``date +%s.%N`` output into epoch seconds.

    Raises:
        ClockParseError: Output is not two integer fields separated by '.'
    """
    parts = output.strip().split(".")
    if len(parts) != 2:
        raise ClockParseError(f"unexpected guest clock output: {output!r}", context={"output": output})
    try:
        secs = int(parts[0].strip())
        nsecs = int(parts[1].strip())
    except ValueError as e:
        raise ClockParseError(f"atoi: {e}", context={"output": output}) from e
    return secs + nsecs / 1e9


async def guest_clock_delta(shell: RemoteShell, local: float) -> timedelta:
    """Approximate guest - local clock difference.

    Args:
        shell: Guest command channel
        local: Local epoch seconds sampled at call time

    Raises:
        ClockMeasureError: Guest clock could not be read
        ClockParseError: Guest clock output was malformed
    """
    try:
        out = await shell.run_ssh_command(constants.GUEST_CLOCK_QUERY)
    except Exception as e:
        raise ClockMeasureError(f"get clock: {e}") from e
    logger.info("Guest clock", extra={"output": out.strip()})

    remote = parse_guest_clock(out)
    delta = timedelta(seconds=remote - local)
    logger.info(
        "Guest clock delta",
        extra={"guest": round(remote, 6), "local": round(local, 6), "delta_s": delta.total_seconds()},
    )
    return delta


async def adjust_guest_clock(shell: RemoteShell, local: float) -> None:
    """Set the guest clock to the local epoch second (sub-second part dropped)."""
    out = await shell.run_ssh_command(f"sudo date -s @{int(local)}")
    logger.info("Guest clock set", extra={"output": out.strip()})


async def ensure_synced_guest_clock(shell: RemoteShell, clock: Callable[[], float] = time.time) -> None:
    """Bring the guest clock within tolerance of the local clock.

    Args:
        shell: Guest command channel
        clock: Local time source in epoch seconds

    Raises:
        ClockSyncError: Skew was detected and correcting it failed
    """
    try:
        delta = await guest_clock_delta(shell, clock())
    except ClockMeasureError as e:
        logger.warning("Unable to measure system clock delta", extra={"error": str(e)})
        return

    if abs(delta.total_seconds()) < constants.MAX_CLOCK_DESYNC_SECONDS:
        logger.info("Guest clock delta is within tolerance", extra={"delta_s": delta.total_seconds()})
        return

    try:
        await adjust_guest_clock(shell, clock())
    except Exception as e:
        raise ClockSyncError(f"adjusting system clock: {e}", context={"delta_seconds": delta.total_seconds()}) from e
