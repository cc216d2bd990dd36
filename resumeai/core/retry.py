"""
Bounded retry with exponential backoff for collaborator calls.

Only wrap idempotent operations. Writes that must survive a retry carry an
idempotency key instead (see quota_service.decrement).
"""
import logging
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_call(
    fn: Callable[[], T],
    attempts: int = 3,
    backoff: float = 0.5,
    max_backoff: float = 8.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Optional[Callable[[float], None]] = None,
    description: str = "",
) -> T:
    """
    Call fn until it succeeds or attempts are exhausted.

    Args:
        fn: Zero-argument callable
        attempts: Total number of tries (>= 1)
        backoff: Initial delay in seconds, doubled after each failure
        max_backoff: Upper bound for a single delay
        retry_on: Exception types that trigger another attempt
        sleep: Sleep function, time.sleep when omitted
        description: Label used in log lines

    Returns:
        Whatever fn returns

    Raises:
        The last exception raised by fn
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    sleep = sleep or time.sleep
    label = description or getattr(fn, "__name__", "call")
    delay = backoff
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as e:
            if attempt == attempts:
                logger.error(f"{label} failed after {attempts} attempts: {e}")
                raise
            logger.warning(f"{label} failed (attempt {attempt}/{attempts}): {e}; retrying in {delay:.2f}s")
            sleep(delay)
            delay = min(delay * 2, max_backoff)
