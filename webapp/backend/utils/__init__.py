"""
Shared utility functions for the backend.
"""
from .response_builders import build_booking_response, build_session_response, build_tutor_list_item
from .query_helpers import (
    booking_with_relations,
    booking_with_session_relations,
    build_pagination,
    paginate,
)
from .rate_limiter import check_user_rate_limit, RATE_LIMITS, clear_rate_limits

__all__ = [
    "build_booking_response",
    "build_session_response",
    "build_tutor_list_item",
    "booking_with_relations",
    "booking_with_session_relations",
    "build_pagination",
    "paginate",
    "check_user_rate_limit",
    "RATE_LIMITS",
    "clear_rate_limits",
]
