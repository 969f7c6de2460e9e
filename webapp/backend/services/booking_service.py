"""
Booking lifecycle engine.

Covers booking creation with the tutor conflict check, the status
transition state machine with its payment and earning side effects,
administrative deletion, and expiry of stale PENDING bookings.

Every multi-row write is applied with a single commit; any failure rolls
the whole unit back so a booking never exists without its payment and a
payment never diverges from its booking's status.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from constants import (
    ACTIVE_BOOKING_STATUSES,
    ALL_BOOKING_STATUSES,
    BOOKING_TRANSITIONS,
    EVENT_BOOKING_CREATED,
    EVENT_BOOKING_UPDATED,
    PAYMENT_STATUS_FOR_BOOKING,
    PENDING_BOOKING_GRACE_MINUTES,
    BookingStatus,
    PaymentStatus,
    UserRole,
    to_naive_utc,
    utc_now,
)
from models import Booking, Earning, Payment, TutorProfile, User
from schemas import BookingResponse
from services.errors import (
    Conflict,
    Forbidden,
    InvalidArgument,
    InvalidTransition,
    NotFound,
    SchedulingConflict,
)
from services.review_service import recompute_tutor_rating
from sse import Notifier, publish_safely

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

# Which booking party may request each target status (admins may request any)
TRANSITION_ACTORS = {
    BookingStatus.CONFIRMED.value: {"tutor"},
    BookingStatus.COMPLETED.value: {"tutor"},
    BookingStatus.CANCELLED.value: {"student", "tutor"},
}


def calculate_price(hourly_rate, start_time: datetime, end_time: datetime) -> Decimal:
    """hourly_rate x duration in (fractional) hours, rounded to cents."""
    hours = Decimal(str((end_time - start_time).total_seconds())) / Decimal(3600)
    return (Decimal(str(hourly_rate)) * hours).quantize(CENTS, rounding=ROUND_HALF_UP)


def windows_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval intersection. Touching boundaries do not overlap."""
    return start_a < end_b and start_b < end_a


def find_conflicting_booking(
    db: Session,
    tutor_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_booking_id: Optional[int] = None,
) -> Optional[Booking]:
    """Return an active booking of this tutor intersecting [start_time, end_time), if any."""
    query = db.query(Booking).filter(
        Booking.tutor_id == tutor_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.start_time < end_time,
        Booking.end_time > start_time,
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)
    return query.order_by(Booking.start_time).first()


def lock_tutor_profile(db: Session, tutor_id: int) -> Optional[TutorProfile]:
    """
    Load the tutor's profile row with SELECT ... FOR UPDATE.

    Serializes booking creation and rating aggregation per tutor on stores
    that support row locks. Reads issued after the lock is granted see the
    previous holder's commit because server engines run at READ COMMITTED
    (see database.engine_options). SQLite ignores the clause and serializes
    writers at the database level instead.
    """
    return db.query(TutorProfile).filter(
        TutorProfile.user_id == tutor_id
    ).with_for_update().first()


def booking_payload(booking: Booking) -> dict:
    """JSON-ready booking snapshot for notifications."""
    return BookingResponse.model_validate(booking).model_dump(mode="json")


def _resolve_student_id(requester: User, tutor_id: int, student_id: Optional[int]) -> int:
    if requester.role == UserRole.STUDENT.value:
        if student_id is not None and student_id != requester.id:
            raise Forbidden("Students can only book sessions for themselves")
        return requester.id

    if requester.role == UserRole.TUTOR.value and tutor_id != requester.id:
        raise Forbidden("Tutors can only book sessions on their own calendar")

    if student_id is None:
        raise InvalidArgument("student_id is required")
    return student_id


def create_booking(
    db: Session,
    requester: User,
    tutor_id: int,
    subject: str,
    start_time: datetime,
    end_time: datetime,
    student_id: Optional[int] = None,
    notes: Optional[str] = None,
    is_group_session: bool = False,
    notifier: Optional[Notifier] = None,
) -> Booking:
    """
    Create a PENDING booking and its PENDING payment in one commit.

    Raises:
        InvalidArgument: empty subject or start_time >= end_time
        Forbidden: requester booking on behalf of someone they may not
        NotFound: tutor (or its profile) or student missing
        SchedulingConflict: tutor already has an overlapping active booking
    """
    start_time = to_naive_utc(start_time)
    end_time = to_naive_utc(end_time)
    subject = (subject or "").strip()

    if not subject:
        raise InvalidArgument("Subject is required")
    if start_time >= end_time:
        raise InvalidArgument("start_time must be before end_time")

    student_id = _resolve_student_id(requester, tutor_id, student_id)
    if student_id == tutor_id:
        raise InvalidArgument("A tutor cannot book a session with themselves")

    tutor = db.query(User).filter(
        User.id == tutor_id,
        User.role == UserRole.TUTOR.value,
    ).first()
    profile = lock_tutor_profile(db, tutor_id) if tutor else None
    if not tutor or not profile:
        db.rollback()
        raise NotFound("Tutor not found")

    student = db.query(User).filter(
        User.id == student_id,
        User.role == UserRole.STUDENT.value,
    ).first()
    if not student:
        db.rollback()
        raise NotFound("Student not found")

    price = calculate_price(profile.hourly_rate, start_time, end_time)

    conflict = find_conflicting_booking(db, tutor_id, start_time, end_time)
    if conflict:
        db.rollback()
        raise SchedulingConflict(
            "Tutor is not available at this time",
            details={
                "conflicting_booking_id": conflict.id,
                "conflicting_start_time": conflict.start_time.isoformat(),
                "conflicting_end_time": conflict.end_time.isoformat(),
            },
        )

    booking = Booking(
        student_id=student_id,
        tutor_id=tutor_id,
        subject=subject,
        start_time=start_time,
        end_time=end_time,
        is_group_session=is_group_session,
        price=price,
        notes=notes,
        status=BookingStatus.PENDING.value,
    )
    try:
        db.add(booking)
        db.flush()
        db.add(Payment(
            booking_id=booking.id,
            amount=price,
            status=PaymentStatus.PENDING.value,
        ))
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("Booking insert rejected by store constraint: %s", e)
        raise Conflict("Booking could not be created due to a conflicting record")
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    logger.info(
        "Booking #%d created: student %d with tutor %d, %s - %s, price %s",
        booking.id, student_id, tutor_id, start_time, end_time, price,
    )

    publish_safely(notifier, [booking.tutor_id, booking.student_id], EVENT_BOOKING_CREATED, booking_payload(booking))
    return booking


def get_booking_for_actor(db: Session, actor: User, booking_id: int) -> Booking:
    """Load a booking the actor is a party to (admins see all)."""
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise NotFound("Booking not found")

    if actor.role != UserRole.ADMIN.value and actor.id not in (booking.student_id, booking.tutor_id):
        raise Forbidden("Unauthorized to view this booking")
    return booking


def _party_of(actor: User, booking: Booking) -> Optional[str]:
    if actor.id == booking.tutor_id and actor.role == UserRole.TUTOR.value:
        return "tutor"
    if actor.id == booking.student_id and actor.role == UserRole.STUDENT.value:
        return "student"
    return None


def authorize_transition(actor: User, booking: Booking, new_status: str) -> None:
    """Raise Forbidden unless the actor may request new_status on this booking."""
    if actor.role == UserRole.ADMIN.value:
        return

    party = _party_of(actor, booking)
    if party is None:
        raise Forbidden("Unauthorized to update this booking")

    allowed = TRANSITION_ACTORS.get(new_status)
    # Unlisted targets (e.g. PENDING) fall through to the transition table
    if allowed is not None and party not in allowed:
        raise Forbidden(f"Only the assigned tutor can mark bookings as {new_status}")


def apply_status_side_effects(db: Session, booking: Booking, new_status: str) -> None:
    """Sync the payment and write the earning for a booking that just moved to new_status."""
    payment_status = PAYMENT_STATUS_FOR_BOOKING.get(new_status)
    if payment_status:
        if booking.payment is not None:
            booking.payment.status = payment_status
        else:
            logger.warning("Booking #%d has no payment record to mark %s", booking.id, payment_status)

    if new_status == BookingStatus.COMPLETED.value:
        student_name = booking.student.name if booking.student else f"student #{booking.student_id}"
        db.add(Earning(
            tutor_id=booking.tutor_id,
            booking_id=booking.id,
            amount=booking.price,
            description=f"Earning from session with {student_name} on {booking.start_time:%Y-%m-%d}",
        ))


def transition_booking(
    db: Session,
    actor: User,
    booking_id: int,
    new_status: Optional[str] = None,
    meeting_link: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> Booking:
    """
    Apply a status transition and/or attach a meeting link.

    Raises:
        NotFound: unknown booking
        Forbidden: actor may not request this change
        InvalidTransition: change not allowed from the current status
        InvalidArgument: nothing to update or unknown status value
    """
    if new_status is None and meeting_link is None:
        raise InvalidArgument("Nothing to update: provide status and/or meeting_link")

    booking = db.query(Booking).filter(Booking.id == booking_id).with_for_update().first()
    if not booking:
        db.rollback()
        raise NotFound("Booking not found")

    try:
        if new_status is not None:
            new_status = str(getattr(new_status, "value", new_status))
            if new_status not in ALL_BOOKING_STATUSES:
                raise InvalidArgument(f"Unknown booking status: {new_status}")
            authorize_transition(actor, booking, new_status)
            if new_status not in BOOKING_TRANSITIONS.get(booking.status, set()):
                raise InvalidTransition(
                    f"Cannot change booking from {booking.status} to {new_status}",
                    details={"current_status": booking.status, "requested_status": new_status},
                )

        if meeting_link is not None:
            if actor.role != UserRole.ADMIN.value and _party_of(actor, booking) != "tutor":
                raise Forbidden("Only the assigned tutor can set the meeting link")
            booking.meeting_link = meeting_link

        previous_status = booking.status
        if new_status is not None:
            booking.status = new_status
            apply_status_side_effects(db, booking, new_status)

        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("Booking #%d update rejected by store constraint: %s", booking_id, e)
        raise Conflict("Booking could not be updated due to a conflicting record")
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    if new_status is not None:
        logger.info("Booking #%d: %s -> %s by user %d", booking.id, previous_status, new_status, actor.id)

    publish_safely(notifier, [booking.tutor_id, booking.student_id], EVENT_BOOKING_UPDATED, booking_payload(booking))
    return booking


def delete_booking(db: Session, actor: User, booking_id: int) -> None:
    """Administrative hard delete; cascades payment and review in one commit."""
    if actor.role != UserRole.ADMIN.value:
        raise Forbidden("Only admins can delete bookings")

    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise NotFound("Booking not found")

    tutor_id = booking.tutor_id
    had_review = booking.review is not None
    try:
        if booking.review is not None:
            db.delete(booking.review)
        if booking.payment is not None:
            db.delete(booking.payment)
        # Earnings stay in the ledger, detached from the removed booking
        db.query(Earning).filter(Earning.booking_id == booking_id).update(
            {Earning.booking_id: None}, synchronize_session=False
        )
        db.delete(booking)
        db.flush()
        if had_review:
            recompute_tutor_rating(db, tutor_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Booking #%d deleted by admin %d", booking_id, actor.id)


def expire_stale_bookings(
    db: Session,
    now: Optional[datetime] = None,
    user_id: Optional[int] = None,
    notifier: Optional[Notifier] = None,
    grace_minutes: int = PENDING_BOOKING_GRACE_MINUTES,
) -> List[Booking]:
    """
    Auto-cancel PENDING bookings whose start time passed more than
    grace_minutes ago, refunding their payments.

    Args:
        user_id: only expire bookings where this user is a party (lazy expiry on listing)

    Returns:
        The bookings that were cancelled
    """
    cutoff = (now or utc_now()) - timedelta(minutes=grace_minutes)
    query = db.query(Booking).filter(
        Booking.status == BookingStatus.PENDING.value,
        Booking.start_time < cutoff,
    )
    if user_id is not None:
        query = query.filter((Booking.student_id == user_id) | (Booking.tutor_id == user_id))

    stale = query.with_for_update().all()
    if not stale:
        return []

    try:
        for booking in stale:
            booking.status = BookingStatus.CANCELLED.value
            apply_status_side_effects(db, booking, BookingStatus.CANCELLED.value)
        db.commit()
    except Exception:
        db.rollback()
        raise

    for booking in stale:
        logger.info("Booking #%d expired: still PENDING after start time %s", booking.id, booking.start_time)
        publish_safely(notifier, [booking.tutor_id, booking.student_id], EVENT_BOOKING_UPDATED, booking_payload(booking))
    return stale
