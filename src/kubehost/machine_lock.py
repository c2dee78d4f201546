"""Cross-process machines lock.

Every mutating lifecycle operation holds one exclusive lock keyed on the
shared machines directory, not on the host name: hypervisors such as
Hyper-V and VirtualBox keep global state that two concurrently created
hosts would otherwise race on. Different profiles therefore serialize.

The lock is an advisory ``fcntl.flock`` on ``<machines dir>.lock``,
probed non-blocking and re-tried every ``delay`` seconds until
``timeout`` elapses.

Usage:
    async with machines_lock(settings, cfg.name):
        ...
"""

from __future__ import annotations

import asyncio
import contextlib
import fcntl
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import IO, TYPE_CHECKING

from kubehost import constants
from kubehost._logging import get_logger
from kubehost.exceptions import LockTimeoutError

if TYPE_CHECKING:
    from kubehost.settings import Settings

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LockSpec:
    """What to lock and how long to wait for it.

    Attributes:
        path: Resource the lock protects; the lock file sits beside it
        timeout: Give up after this long
        delay: Pause between acquisition attempts (seconds)
    """

    path: Path
    timeout: timedelta = constants.MACHINES_LOCK_TIMEOUT
    delay: float = constants.MACHINES_LOCK_POLL_INTERVAL_SECONDS

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(f"{self.path.name}.lock")


def machines_lock_spec(settings: Settings) -> LockSpec:
    return LockSpec(
        path=settings.machines_dir,
        timeout=timedelta(seconds=settings.lock_timeout_seconds),
        delay=settings.lock_poll_interval_seconds,
    )


class Releaser:
    """Handle on an acquired lock. release() may be called any number of times."""

    def __init__(self, spec: LockSpec, fd: IO[str]) -> None:
        self.spec = spec
        self._fd: IO[str] | None = fd
        self._acquired_at = time.monotonic()

    @property
    def released(self) -> bool:
        return self._fd is None

    @property
    def held_seconds(self) -> float:
        return time.monotonic() - self._acquired_at

    def release(self) -> None:
        if self._fd is None:
            return
        # Closing the descriptor drops the flock. The lock file itself stays:
        # unlinking it would let two processes lock different inodes.
        self._fd.close()
        self._fd = None


def _try_lock(fd: IO[str]) -> bool:
    try:
        fcntl.flock(fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    return True


async def acquire(spec: LockSpec) -> Releaser:
    """Block (asynchronously) until the lock is held.

    Raises:
        LockTimeoutError: Lock still contended after spec.timeout
    """
    lock_path = spec.lock_path
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fd = lock_path.open("a")
    start = time.monotonic()
    try:
        async with asyncio.timeout(spec.timeout.total_seconds()):
            while not _try_lock(fd):
                await asyncio.sleep(spec.delay)
    except TimeoutError as e:
        fd.close()
        raise LockTimeoutError(
            f"unable to acquire machines lock {lock_path} within {spec.timeout}",
            context={"path": str(lock_path), "timeout_seconds": spec.timeout.total_seconds()},
        ) from e
    except BaseException:
        fd.close()
        raise

    logger.debug("Acquired machines lock", extra={"path": str(lock_path), "waited_s": round(time.monotonic() - start, 3)})
    return Releaser(spec, fd)


@contextlib.asynccontextmanager
async def machines_lock(settings: Settings, name: str) -> AsyncIterator[Releaser]:
    """Hold the machines lock for the duration of the block.

    Args:
        settings: Supplies the storage root and lock timings
        name: Host the caller is working on (logging only)
    """
    spec = machines_lock_spec(settings)
    logger.info("Acquiring machines lock", extra={"host": name, "path": str(spec.lock_path)})
    releaser = await acquire(spec)
    try:
        yield releaser
    finally:
        held = releaser.held_seconds
        releaser.release()
        logger.info("Releasing machines lock", extra={"host": name, "held_s": round(held, 3)})
