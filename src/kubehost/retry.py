"""Retry policy for callers of the lifecycle controller.

HostManager classifies failures but never retries. Front-ends that want
to retry wrap a call with retry_transient(); only TransientError
subclasses are retried, everything else propagates on the first attempt.

Usage:
    await retry_transient(lambda: manager.stop_host(name))
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from kubehost import constants
from kubehost._logging import get_logger
from kubehost.exceptions import TransientError

logger = get_logger(__name__)

T = TypeVar("T")


async def retry_transient(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = constants.TRANSIENT_RETRY_MAX_ATTEMPTS,
    min_wait: float = constants.TRANSIENT_RETRY_MIN_SECONDS,
    max_wait: float = constants.TRANSIENT_RETRY_MAX_SECONDS,
) -> T:
    """Await ``fn()`` until it succeeds, retrying TransientError.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt
        attempts: Total attempts including the first
        min_wait: Lower bound of the jittered backoff (seconds)
        max_wait: Upper bound of the jittered backoff (seconds)

    Raises:
        TransientError: Last transient failure once attempts are exhausted
        HostError: Any non-transient failure, immediately
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_random_exponential(min=min_wait, max=max_wait),
        retry=retry_if_exception_type(TransientError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await fn()

    # Unreachable: AsyncRetrying either returns or raises
    raise AssertionError("Unreachable: AsyncRetrying exhausted without exception")
