"""
Per-user and per-IP rate limiting with configurable limits per operation.
Uses an in-memory sliding window, so limits are per process.
"""
import time
from collections import defaultdict
from typing import Dict, List
from fastapi import HTTPException, Request, status


# {"{user_id}:{operation}": [timestamp, ...]}
_user_request_counts: Dict[str, List[float]] = defaultdict(list)

# IP-based storage for unauthenticated endpoints
_ip_request_counts: Dict[str, List[float]] = defaultdict(list)

RATE_LIMITS = {
    # Authentication - stricter to slow down credential stuffing
    "auth_login": {"limit": 10, "window": 60},
    "auth_register": {"limit": 5, "window": 60},

    # Marketplace writes
    "booking_create": {"limit": 20, "window": 60},
    "review_create": {"limit": 10, "window": 60},
    "payment_create": {"limit": 20, "window": 60},
    "message_create": {"limit": 30, "window": 60},

    "default": {"limit": 100, "window": 60},
}


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For", "")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _check(store: Dict[str, List[float]], key: str, operation: str, detail: str) -> None:
    config = RATE_LIMITS.get(operation, RATE_LIMITS["default"])
    limit = config["limit"]
    window = config["window"]
    now = time.time()

    store[key] = [t for t in store[key] if now - t < window]

    if len(store[key]) >= limit:
        retry_after = max(1, int(window - (now - store[key][0])))
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail.format(retry_after=retry_after),
            headers={"Retry-After": str(retry_after)},
        )

    store[key].append(now)


def check_user_rate_limit(user_id: int, operation: str) -> None:
    """
    Check rate limit for a specific user and operation.
    Raises HTTPException 429 if rate limit exceeded.
    """
    _check(
        _user_request_counts,
        f"{user_id}:{operation}",
        operation,
        "Rate limit exceeded. Try again in {retry_after} seconds.",
    )


def check_ip_rate_limit(request: Request, operation: str) -> None:
    """Same as check_user_rate_limit, keyed on client IP for anonymous endpoints."""
    _check(
        _ip_request_counts,
        f"{get_client_ip(request)}:{operation}",
        operation,
        "Too many requests. Try again in {retry_after} seconds.",
    )


def clear_rate_limits() -> None:
    """Clear all rate limit data. Useful for testing."""
    _user_request_counts.clear()
    _ip_request_counts.clear()
