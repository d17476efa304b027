"""
Bounded, backoff-free retry used by the uniqueness loops.
"""
import inspect
from typing import Awaitable, Callable, TypeVar, Union

import structlog

from ..shared.errors import UniquenessExhaustedError

logger = structlog.get_logger()

T = TypeVar("T")


async def retry_until(
    produce: Callable[[int], Awaitable[T]],
    accept: Callable[[T], Union[bool, Awaitable[bool]]],
    *,
    max_attempts: int,
    label: str,
) -> T:
    """
    Call produce(attempt) until accept(candidate) is true.

    attempt counts from 0. accept may be sync or async. Exceptions from either
    callable propagate immediately; only rejection is retried.

    Raises:
        UniquenessExhaustedError: after max_attempts rejected candidates
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        candidate = await produce(attempt)
        verdict = accept(candidate)
        if inspect.isawaitable(verdict):
            verdict = await verdict
        if verdict:
            if attempt:
                logger.info("retry_accepted", label=label, attempt=attempt + 1)
            return candidate
        logger.info("retry_rejected", label=label, attempt=attempt + 1, max_attempts=max_attempts)

    raise UniquenessExhaustedError(label, max_attempts)
