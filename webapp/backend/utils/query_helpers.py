"""
Shared query helper functions.

Centralizes common SQLAlchemy query patterns like joinedload options
and page/limit arithmetic to reduce duplication across routers.
"""
import math

from sqlalchemy.orm import joinedload
from models import Booking, Review, User


def booking_with_relations():
    """
    Standard joinedload options for booking queries.

    Usage:
        query.options(*booking_with_relations())
    """
    return [
        joinedload(Booking.student),
        joinedload(Booking.tutor),
        joinedload(Booking.payment),
    ]


def booking_with_session_relations():
    """Booking options for the session view, which also embeds the tutor profile."""
    return [
        joinedload(Booking.student),
        joinedload(Booking.tutor).joinedload(User.tutor_profile),
        joinedload(Booking.payment),
    ]


def review_with_student():
    return [joinedload(Review.student)]


def tutor_with_profile():
    return [joinedload(User.tutor_profile)]


def paginate(query, page: int, limit: int):
    """
    Apply page/limit to a query.

    Returns (items, pagination dict).
    """
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, build_pagination(total, page, limit)


def build_pagination(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }
