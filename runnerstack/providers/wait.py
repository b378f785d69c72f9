"""Bounded polling for providers.

Polling is an explicit loop with an attempt bound and a fixed interval,
driven by tenacity so the stop/wait policy stays declarative.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeAlias, TypeVar

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from runnerstack.core.exceptions import TimeoutError

log = logger.bind(component="wait")

Sleep: TypeAlias = Callable[[float], Awaitable[None]]

T = TypeVar("T")


async def poll_until(
    poll_fn: Callable[[], Awaitable[T]],
    ready_check: Callable[[T], bool],
    *,
    max_attempts: int,
    interval: float,
    retry_on: tuple[type[BaseException], ...] = (),
    description: str = "resource",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Call poll_fn until its result passes ready_check.

    Args:
        poll_fn: Async function returning the current state.
        ready_check: Returns True when the state is the desired one.
        max_attempts: Total number of polls before giving up.
        interval: Seconds to sleep between polls.
        retry_on: Exception types raised by poll_fn that count as a
            failed attempt instead of aborting the loop.
        description: Used in log and error messages.
        sleep: Sleep function, injectable for tests.

    Returns:
        The first result that passed ready_check.

    Raises:
        TimeoutError: If max_attempts polls did not produce a ready result.
    """

    def before_sleep(state: RetryCallState) -> None:
        log.info(
            "[{attempt}/{total}] Waiting for {what}...",
            attempt=state.attempt_number, total=max_attempts, what=description,
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda r: not ready_check(r)) | retry_if_exception_type(retry_on),
        before_sleep=before_sleep,
        sleep=sleep,
    )

    try:
        return await retrying(poll_fn)
    except RetryError as e:
        raise TimeoutError(
            f"Gave up waiting for {description} after {max_attempts} attempts"
        ) from e
