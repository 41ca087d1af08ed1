"""Shared readiness polling.

Every readiness check (compute instance accepting SSH, hosting alias
assignment, backend branch provisioning) goes through poll_until so the
interval/timeout handling lives in one place.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from hatchery.errors import PollTimeoutError
from hatchery.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


async def poll_until(
    check: Callable[[], Awaitable[T | None]],
    *,
    resource: str,
    interval: float,
    timeout: float,
    sleep: Sleeper = asyncio.sleep,
    clock: Clock = time.monotonic,
) -> T:
    """Call `check` until it returns something other than None.

    The check is always attempted at least once. Raises PollTimeoutError
    naming `resource` once `timeout` seconds have elapsed without a result.
    """
    started = clock()
    attempts = 0
    while True:
        attempts += 1
        result = await check()
        if result is not None:
            logger.debug("Poll succeeded", resource=resource, attempts=attempts)
            return result

        elapsed = clock() - started
        if elapsed + interval > timeout:
            logger.debug("Poll timed out", resource=resource, attempts=attempts)
            raise PollTimeoutError(resource, timeout)
        await sleep(interval)
