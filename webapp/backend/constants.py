"""
Shared constants for the backend.

Centralizes role and status enums, the booking transition table, and other
constants used across routers and services.
"""
import os
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    """Current time as a naive UTC datetime (matches DB convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class UserRole(str, Enum):
    """
    Account roles. Fixed at registration.

    Using str + Enum allows direct comparison with string values and JSON serialization.
    """
    STUDENT = 'STUDENT'
    TUTOR = 'TUTOR'
    ADMIN = 'ADMIN'


class BookingStatus(str, Enum):
    """All valid booking statuses."""
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'


class PaymentStatus(str, Enum):
    """All valid payment statuses."""
    PENDING = 'PENDING'
    COMPLETED = 'COMPLETED'
    REFUNDED = 'REFUNDED'
    FAILED = 'FAILED'


# Bookings that occupy the tutor's calendar (count for conflict checking)
ACTIVE_BOOKING_STATUSES = [
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
]

# Bookings that can never change status again
TERMINAL_BOOKING_STATUSES = [
    BookingStatus.COMPLETED.value,
    BookingStatus.CANCELLED.value,
]

# Legal status transitions: current status -> allowed next statuses
BOOKING_TRANSITIONS = {
    BookingStatus.PENDING.value: {BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value},
    BookingStatus.CONFIRMED.value: {BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value},
    BookingStatus.COMPLETED.value: set(),
    BookingStatus.CANCELLED.value: set(),
}

# Payment status that mirrors a booking reaching the given status
PAYMENT_STATUS_FOR_BOOKING = {
    BookingStatus.COMPLETED.value: PaymentStatus.COMPLETED.value,
    BookingStatus.CANCELLED.value: PaymentStatus.REFUNDED.value,
}

# Review rating bounds (inclusive)
MIN_RATING = 1
MAX_RATING = 5

# Notification event names pushed over SSE
EVENT_BOOKING_CREATED = 'booking-created'
EVENT_BOOKING_UPDATED = 'booking-updated'
EVENT_REVIEW_CREATED = 'review-created'
EVENT_NEW_MESSAGE = 'new-message'
EVENT_PAYMENT_CREATED = 'payment-created'

# PENDING bookings this many minutes past their start time are auto-cancelled
PENDING_BOOKING_GRACE_MINUTES = int(os.getenv("PENDING_BOOKING_GRACE_MINUTES", "0"))

ALL_BOOKING_STATUSES = [status.value for status in BookingStatus]
