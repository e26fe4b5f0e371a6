"""Bounded retry with a fixed interval."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from bosspilot.exceptions import TransientUIError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_until(
    check: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    interval: float,
    description: str = "condition",
) -> T:
    """Await *check* until it returns something truthy.

    A check that raises counts as a miss. Sleeps *interval* seconds between
    attempts and raises :class:`TransientUIError` once *attempts* are spent.
    """
    for attempt in range(1, attempts + 1):
        try:
            result = await check()
        except Exception as exc:
            logger.debug("%s: attempt %d/%d raised %s", description, attempt, attempts, exc)
            result = None
        if result:
            return result
        if attempt < attempts:
            logger.debug("Waiting for %s (%d/%d)", description, attempt, attempts)
            await asyncio.sleep(interval)
    raise TransientUIError(f"{description} not ready after {attempts} attempt(s)")
