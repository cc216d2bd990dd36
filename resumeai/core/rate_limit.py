"""
Simple in-memory rate limiter for API endpoints.
"""
import logging
import time
from collections import defaultdict
from typing import Dict, List

from fastapi import Depends, HTTPException, status

from resumeai.core.auth_dependency import SessionContext, get_current_session
from resumeai.core.config import GENERATION_RATE_LIMIT

logger = logging.getLogger(__name__)

# Store for rate limit tracking: {key: [timestamps]}
rate_limit_store: Dict[str, List[float]] = defaultdict(list)


def check_rate_limit(key: str, max_requests: int = 10, window_seconds: int = 60) -> None:
    """
    Check if a caller has exceeded the rate limit (sliding window).

    Args:
        key: Caller identity, e.g. "generate:42"
        max_requests: Maximum number of requests allowed
        window_seconds: Time window in seconds

    Raises:
        HTTPException: 429 if rate limit exceeded
    """
    now = time.time()

    # Clean old entries (older than window)
    cutoff = now - window_seconds
    rate_limit_store[key] = [
        timestamp for timestamp in rate_limit_store[key]
        if timestamp > cutoff
    ]

    request_count = len(rate_limit_store[key])

    if request_count >= max_requests:
        logger.warning(f"Rate limit exceeded for {key} ({request_count} requests in {window_seconds}s)")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Maximum {max_requests} requests per {window_seconds} seconds."
        )

    rate_limit_store[key].append(now)


def generation_rate_limit(session: SessionContext = Depends(get_current_session)) -> SessionContext:
    """Per-user limit on resume generation requests."""
    check_rate_limit(f"generate:{session.user_id}", max_requests=GENERATION_RATE_LIMIT, window_seconds=60)
    return session
