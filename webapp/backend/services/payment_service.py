"""
Payment records.

Only an internal record is kept: amount equals the booking price and the
status follows the booking through apply_status_side_effects.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from constants import EVENT_PAYMENT_CREATED, PAYMENT_STATUS_FOR_BOOKING, PaymentStatus, UserRole
from models import Booking, Payment, User
from schemas import PaymentResponse
from services.errors import Conflict, Forbidden, NotFound
from sse import Notifier, publish_safely

logger = logging.getLogger(__name__)


def create_payment(
    db: Session,
    actor: User,
    booking_id: int,
    notifier: Optional[Notifier] = None,
) -> Payment:
    """
    Attach a payment to a booking that lacks one.

    The new record mirrors the booking's current status: PENDING for open
    bookings, COMPLETED for completed ones, REFUNDED for cancelled ones.
    """
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise NotFound("Booking not found")
    if actor.role != UserRole.ADMIN.value and actor.id != booking.student_id:
        raise Forbidden("Only the booking's student can create its payment")
    if booking.payment is not None:
        raise Conflict("Payment already exists for this booking")

    payment = Payment(
        booking_id=booking.id,
        amount=booking.price,
        status=PAYMENT_STATUS_FOR_BOOKING.get(booking.status, PaymentStatus.PENDING.value),
    )
    try:
        db.add(payment)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Payment already exists for this booking")
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    logger.info("Payment #%d created for booking #%d (%s, %s)", payment.id, booking.id, payment.amount, payment.status)

    publish_safely(
        notifier,
        [booking.student_id, booking.tutor_id],
        EVENT_PAYMENT_CREATED,
        PaymentResponse.model_validate(payment).model_dump(mode="json"),
    )
    return payment
