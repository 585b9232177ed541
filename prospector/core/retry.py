"""
Retry with exponential backoff and jitter for transient source failures.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from prospector.core.errors import RateLimitedError, SourceUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 5xx and 408 are worth a second try; 4xx auth/validation errors are not
RETRYABLE_STATUS = {408, 500, 502, 503, 504}


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, RateLimitedError):
        return False
    if isinstance(exc, SourceUnavailableError):
        return exc.status_code is None or exc.status_code in RETRYABLE_STATUS
    return isinstance(exc, (asyncio.TimeoutError, ConnectionError))


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    retries: int = 2,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    label: str = "call",
) -> T:
    """
    Await fn(), retrying retryable failures with 2**attempt backoff plus jitter.
    The last exception propagates unchanged.
    """
    for attempt in range(retries + 1):
        try:
            return await fn()
        except retry_on as e:
            if attempt >= retries or not is_retryable(e):
                raise
            wait = min(base_delay * (2 ** attempt) + random.uniform(0, base_delay), max_delay)
            logger.info(f"Retrying {label} in {wait:.1f}s (attempt {attempt + 2}/{retries + 1}): {e}")
            await asyncio.sleep(wait)
    raise RuntimeError("unreachable")
