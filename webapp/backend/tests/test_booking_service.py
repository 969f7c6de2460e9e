"""
Tests for the booking lifecycle engine.

Covers:
- Price calculation
- Tutor conflict check (half-open windows, active statuses only)
- Status transition table, actor rules, and payment/earning side effects
- Administrative delete cascade
- Expiry of stale PENDING bookings
"""
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from constants import BOOKING_TRANSITIONS, TERMINAL_BOOKING_STATUSES, BookingStatus, PaymentStatus, UserRole
from models import Booking, Earning, Payment, Review, TutorProfile
from services import booking_service
from services.booking_service import calculate_price, windows_overlap
from services.review_service import create_review
from services.errors import (
    Forbidden,
    InvalidArgument,
    InvalidTransition,
    NotFound,
    SchedulingConflict,
)
from conftest import ExplodingNotifier, future_slot, make_user


def book(db, student, tutor, start, end, notifier=None, subject="Math"):
    return booking_service.create_booking(
        db, student, tutor_id=tutor.id, subject=subject,
        start_time=start, end_time=end, notifier=notifier,
    )


# ============================================================================
# Pricing
# ============================================================================

class TestCalculatePrice:

    def test_ninety_minutes_at_forty_per_hour(self):
        start = datetime(2030, 1, 1, 10, 0)
        assert calculate_price(Decimal("40.00"), start, start + timedelta(minutes=90)) == Decimal("60.00")

    def test_rounds_to_cents(self):
        start = datetime(2030, 1, 1, 10, 0)
        # 25/hr for 50 minutes = 20.8333...
        assert calculate_price(Decimal("25"), start, start + timedelta(minutes=50)) == Decimal("20.83")

    def test_free_tutor(self):
        start = datetime(2030, 1, 1, 10, 0)
        assert calculate_price(0, start, start + timedelta(hours=2)) == Decimal("0.00")


class TestWindowsOverlap:

    @pytest.mark.parametrize("a,b,expected", [
        ((10, 11), (11, 12), False),  # touching
        ((10, 12), (11, 13), True),
        ((10, 13), (11, 12), True),   # containment
        ((11, 12), (9, 10), False),
    ])
    def test_half_open(self, a, b, expected):
        day = datetime(2030, 1, 1)
        h = lambda x: day.replace(hour=x)  # noqa: E731
        assert windows_overlap(h(a[0]), h(a[1]), h(b[0]), h(b[1])) is expected


# ============================================================================
# Creation
# ============================================================================

class TestCreateBooking:

    def test_creates_pending_booking_and_payment(self, db_session, student, tutor, notifier):
        start, end = future_slot(minutes=90)
        booking = book(db_session, student, tutor, start, end, notifier=notifier)

        assert booking.status == BookingStatus.PENDING.value
        assert booking.price == Decimal("60.00")
        assert booking.payment.status == PaymentStatus.PENDING.value
        assert booking.payment.amount == Decimal("60.00")
        assert booking.duration_minutes == 90
        assert "booking-created" in notifier.names_for(tutor.id)
        assert "booking-created" in notifier.names_for(student.id)

    def test_aware_datetimes_are_stored_as_utc(self, db_session, student, tutor):
        start = datetime(2031, 3, 1, 18, 0, tzinfo=timezone(timedelta(hours=8)))
        booking = book(db_session, student, tutor, start, start + timedelta(hours=1))
        assert booking.start_time == datetime(2031, 3, 1, 10, 0)

    @pytest.mark.parametrize("minutes", [0, -30])
    def test_rejects_empty_or_inverted_window(self, db_session, student, tutor, minutes):
        start, _ = future_slot()
        with pytest.raises(InvalidArgument):
            book(db_session, student, tutor, start, start + timedelta(minutes=minutes))
        assert db_session.query(Booking).count() == 0

    def test_rejects_blank_subject(self, db_session, student, tutor):
        start, end = future_slot()
        with pytest.raises(InvalidArgument):
            book(db_session, student, tutor, start, end, subject="   ")

    def test_unknown_tutor(self, db_session, student):
        start, end = future_slot()
        with pytest.raises(NotFound):
            booking_service.create_booking(
                db_session, student, tutor_id=9999, subject="Math", start_time=start, end_time=end,
            )

    def test_student_as_tutor_is_not_found(self, db_session, student, other_student):
        start, end = future_slot()
        with pytest.raises(NotFound):
            book(db_session, student, other_student, start, end)

    def test_tutor_without_profile_is_not_found(self, db_session, student, tutor):
        db_session.query(TutorProfile).filter(TutorProfile.user_id == tutor.id).delete()
        db_session.commit()
        start, end = future_slot()
        with pytest.raises(NotFound):
            book(db_session, student, tutor, start, end)

    def test_tutor_may_only_book_own_calendar(self, db_session, student, tutor, other_tutor):
        start, end = future_slot()
        with pytest.raises(Forbidden):
            booking_service.create_booking(
                db_session, tutor, tutor_id=other_tutor.id, student_id=student.id,
                subject="Math", start_time=start, end_time=end,
            )

        booking = booking_service.create_booking(
            db_session, tutor, tutor_id=tutor.id, student_id=student.id,
            subject="Math", start_time=start, end_time=end,
        )
        assert booking.student_id == student.id

    def test_student_cannot_book_for_someone_else(self, db_session, student, other_student, tutor):
        start, end = future_slot()
        with pytest.raises(Forbidden):
            booking_service.create_booking(
                db_session, student, tutor_id=tutor.id, student_id=other_student.id,
                subject="Math", start_time=start, end_time=end,
            )

    def test_notifier_failure_does_not_fail_booking(self, db_session, student, tutor):
        start, end = future_slot()
        booking = book(db_session, student, tutor, start, end, notifier=ExplodingNotifier())
        assert booking.id is not None
        assert db_session.query(Booking).count() == 1


class TestConflictCheck:

    def test_overlap_with_pending_is_rejected(self, db_session, student, other_student, tutor):
        start, end = future_slot(hour=10, minutes=60)
        first = book(db_session, student, tutor, start, end)

        with pytest.raises(SchedulingConflict) as exc_info:
            book(db_session, other_student, tutor, start + timedelta(minutes=30), end + timedelta(minutes=30))
        assert exc_info.value.details["conflicting_booking_id"] == first.id
        assert db_session.query(Booking).count() == 1
        assert db_session.query(Payment).count() == 1

    def test_overlap_with_confirmed_is_rejected(self, db_session, student, other_student, tutor):
        start, end = future_slot(hour=10, minutes=60)
        first = book(db_session, student, tutor, start, end)
        booking_service.transition_booking(db_session, tutor, first.id, BookingStatus.CONFIRMED)

        with pytest.raises(SchedulingConflict):
            book(db_session, other_student, tutor, start, end)

    def test_touching_boundaries_are_allowed(self, db_session, student, other_student, tutor):
        start, end = future_slot(hour=10, minutes=60)
        book(db_session, student, tutor, start, end)
        second = book(db_session, other_student, tutor, end, end + timedelta(minutes=60))
        assert second.start_time == end

    def test_cancelled_booking_frees_the_slot(self, db_session, student, other_student, tutor):
        start, end = future_slot(hour=10, minutes=60)
        first = book(db_session, student, tutor, start, end)
        booking_service.transition_booking(db_session, student, first.id, BookingStatus.CANCELLED)

        second = book(db_session, other_student, tutor, start, end)
        assert second.status == BookingStatus.PENDING.value

    def test_other_tutors_are_independent(self, db_session, student, tutor, other_tutor):
        start, end = future_slot(hour=10, minutes=60)
        book(db_session, student, tutor, start, end)
        assert book(db_session, student, other_tutor, start, end).tutor_id == other_tutor.id

    def test_active_bookings_never_overlap(self, db_session, student, other_student, tutor):
        base, _ = future_slot(hour=8)
        attempts = [(0, 60), (30, 90), (60, 120), (100, 130), (120, 180), (150, 160), (180, 240)]
        for i, (a, b) in enumerate(attempts):
            requester = student if i % 2 == 0 else other_student
            try:
                book(db_session, requester, tutor, base + timedelta(minutes=a), base + timedelta(minutes=b))
            except SchedulingConflict:
                pass

        active = db_session.query(Booking).filter(Booking.tutor_id == tutor.id).all()
        assert len(active) == 4
        for x in active:
            for y in active:
                if x.id != y.id:
                    assert not windows_overlap(x.start_time, x.end_time, y.start_time, y.end_time)


# ============================================================================
# Transitions
# ============================================================================

@pytest.fixture
def pending_booking(db_session, student, tutor):
    start, end = future_slot(minutes=90)
    return book(db_session, student, tutor, start, end)


class TestTransitions:

    def test_tutor_confirms_then_completes(self, db_session, tutor, student, pending_booking, notifier):
        booking_service.transition_booking(db_session, tutor, pending_booking.id, BookingStatus.CONFIRMED)
        booking = booking_service.transition_booking(
            db_session, tutor, pending_booking.id, BookingStatus.COMPLETED, notifier=notifier,
        )

        assert booking.status == BookingStatus.COMPLETED.value
        assert booking.payment.status == PaymentStatus.COMPLETED.value
        earning = db_session.query(Earning).filter(Earning.booking_id == booking.id).one()
        assert earning.tutor_id == tutor.id
        assert earning.amount == booking.price
        assert student.name in earning.description
        assert notifier.names_for(student.id) == ["booking-updated"]

    def test_student_cancel_refunds_and_second_cancel_fails(self, db_session, student, pending_booking):
        booking = booking_service.transition_booking(db_session, student, pending_booking.id, "CANCELLED")
        assert booking.status == BookingStatus.CANCELLED.value
        assert booking.payment.status == PaymentStatus.REFUNDED.value

        with pytest.raises(InvalidTransition):
            booking_service.transition_booking(db_session, student, pending_booking.id, "CANCELLED")

    def test_student_cannot_confirm(self, db_session, student, pending_booking):
        with pytest.raises(Forbidden):
            booking_service.transition_booking(db_session, student, pending_booking.id, BookingStatus.CONFIRMED)
        db_session.refresh(pending_booking)
        assert pending_booking.status == BookingStatus.PENDING.value

    def test_stranger_cannot_touch_booking(self, db_session, other_student, other_tutor, pending_booking):
        for actor in (other_student, other_tutor):
            with pytest.raises(Forbidden):
                booking_service.transition_booking(db_session, actor, pending_booking.id, BookingStatus.CANCELLED)

    def test_pending_cannot_jump_to_completed(self, db_session, tutor, pending_booking):
        with pytest.raises(InvalidTransition) as exc_info:
            booking_service.transition_booking(db_session, tutor, pending_booking.id, BookingStatus.COMPLETED)
        assert exc_info.value.details == {"current_status": "PENDING", "requested_status": "COMPLETED"}
        assert db_session.query(Earning).count() == 0

    def test_admin_may_cancel_confirmed(self, db_session, admin, tutor, pending_booking):
        booking_service.transition_booking(db_session, tutor, pending_booking.id, BookingStatus.CONFIRMED)
        booking = booking_service.transition_booking(db_session, admin, pending_booking.id, BookingStatus.CANCELLED)
        assert booking.payment.status == PaymentStatus.REFUNDED.value

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_BOOKING_STATUSES))
    def test_terminal_statuses_accept_nothing(self, db_session, admin, tutor, pending_booking, terminal):
        if terminal == BookingStatus.COMPLETED.value:
            booking_service.transition_booking(db_session, tutor, pending_booking.id, BookingStatus.CONFIRMED)
        booking_service.transition_booking(db_session, admin, pending_booking.id, terminal)

        assert BOOKING_TRANSITIONS[terminal] == set()
        for target in BookingStatus:
            with pytest.raises(InvalidTransition):
                booking_service.transition_booking(db_session, admin, pending_booking.id, target)

    def test_unknown_status_is_invalid_argument(self, db_session, tutor, pending_booking):
        with pytest.raises(InvalidArgument):
            booking_service.transition_booking(db_session, tutor, pending_booking.id, "ARCHIVED")

    def test_nothing_to_update(self, db_session, tutor, pending_booking):
        with pytest.raises(InvalidArgument):
            booking_service.transition_booking(db_session, tutor, pending_booking.id)

    def test_missing_booking(self, db_session, tutor):
        with pytest.raises(NotFound):
            booking_service.transition_booking(db_session, tutor, 424242, BookingStatus.CONFIRMED)

    def test_tutor_sets_meeting_link_student_cannot(self, db_session, tutor, student, pending_booking):
        booking = booking_service.transition_booking(
            db_session, tutor, pending_booking.id, meeting_link="https://meet.example.com/abc",
        )
        assert booking.meeting_link == "https://meet.example.com/abc"
        assert booking.status == BookingStatus.PENDING.value

        with pytest.raises(Forbidden):
            booking_service.transition_booking(db_session, student, pending_booking.id, meeting_link="https://evil")

    def test_earning_written_once(self, db_session, tutor, pending_booking):
        booking_service.transition_booking(db_session, tutor, pending_booking.id, BookingStatus.CONFIRMED)
        booking_service.transition_booking(db_session, tutor, pending_booking.id, BookingStatus.COMPLETED)
        with pytest.raises(InvalidTransition):
            booking_service.transition_booking(db_session, tutor, pending_booking.id, BookingStatus.COMPLETED)
        assert db_session.query(Earning).count() == 1


def fail_on_construct(*args, **kwargs):
    raise RuntimeError("store write failed")


class TestAllOrNothing:
    """A failed step leaves neither a half-created booking nor a half-applied transition."""

    def test_failed_payment_insert_leaves_no_booking(self, db_session, student, tutor, notifier, monkeypatch):
        monkeypatch.setattr(booking_service, "Payment", fail_on_construct)
        start, end = future_slot(minutes=90)

        with pytest.raises(RuntimeError):
            book(db_session, student, tutor, start, end, notifier=notifier)

        assert db_session.query(Booking).count() == 0
        assert db_session.query(Payment).count() == 0
        assert notifier.events == []

    def test_failed_earning_insert_keeps_booking_confirmed(self, db_session, tutor, pending_booking, notifier, monkeypatch):
        booking_service.transition_booking(db_session, tutor, pending_booking.id, BookingStatus.CONFIRMED)
        monkeypatch.setattr(booking_service, "Earning", fail_on_construct)

        with pytest.raises(RuntimeError):
            booking_service.transition_booking(
                db_session, tutor, pending_booking.id, BookingStatus.COMPLETED, notifier=notifier,
            )

        db_session.expire_all()
        booking = db_session.query(Booking).filter(Booking.id == pending_booking.id).one()
        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.payment.status == PaymentStatus.PENDING.value
        assert db_session.query(Earning).count() == 0
        assert notifier.events == []


class TestVisibility:

    def test_parties_and_admin_can_view(self, db_session, student, tutor, admin, pending_booking):
        for actor in (student, tutor, admin):
            assert booking_service.get_booking_for_actor(db_session, actor, pending_booking.id).id == pending_booking.id

    def test_stranger_cannot_view(self, db_session, other_student, pending_booking):
        with pytest.raises(Forbidden):
            booking_service.get_booking_for_actor(db_session, other_student, pending_booking.id)


# ============================================================================
# Delete
# ============================================================================

class TestDeleteBooking:

    def test_only_admin(self, db_session, student, pending_booking):
        with pytest.raises(Forbidden):
            booking_service.delete_booking(db_session, student, pending_booking.id)

    def test_cascades_payment_and_review_and_refreshes_rating(self, db_session, admin, tutor, student, pending_booking):
        booking_service.transition_booking(db_session, tutor, pending_booking.id, BookingStatus.CONFIRMED)
        booking_service.transition_booking(db_session, tutor, pending_booking.id, BookingStatus.COMPLETED)
        create_review(db_session, student, pending_booking.id, 4)

        booking_service.delete_booking(db_session, admin, pending_booking.id)

        assert db_session.query(Booking).count() == 0
        assert db_session.query(Payment).count() == 0
        assert db_session.query(Review).count() == 0
        earning = db_session.query(Earning).one()
        assert earning.booking_id is None
        profile = db_session.query(TutorProfile).filter(TutorProfile.user_id == tutor.id).one()
        assert profile.average_rating is None
        assert profile.review_count == 0

    def test_missing_booking(self, db_session, admin):
        with pytest.raises(NotFound):
            booking_service.delete_booking(db_session, admin, 999)


# ============================================================================
# Stale PENDING expiry
# ============================================================================

class TestExpireStaleBookings:

    def _past_booking(self, db, student, tutor):
        # Shift an existing booking into the past
        booking = book(db, student, tutor, *future_slot(days=1))
        booking.start_time -= timedelta(days=2)
        booking.end_time -= timedelta(days=2)
        db.commit()
        return booking

    def test_cancels_and_refunds_past_pending(self, db_session, student, tutor, notifier):
        stale = self._past_booking(db_session, student, tutor)
        fresh = book(db_session, student, tutor, *future_slot(days=5))

        expired = booking_service.expire_stale_bookings(db_session, notifier=notifier)

        assert [b.id for b in expired] == [stale.id]
        db_session.refresh(stale)
        db_session.refresh(fresh)
        assert stale.status == BookingStatus.CANCELLED.value
        assert stale.payment.status == PaymentStatus.REFUNDED.value
        assert fresh.status == BookingStatus.PENDING.value
        assert "booking-updated" in notifier.names_for(tutor.id)

    def test_confirmed_bookings_are_left_alone(self, db_session, student, tutor):
        stale = self._past_booking(db_session, student, tutor)
        booking_service.transition_booking(db_session, tutor, stale.id, BookingStatus.CONFIRMED)

        assert booking_service.expire_stale_bookings(db_session) == []

    def test_grace_period(self, db_session, student, tutor):
        self._past_booking(db_session, student, tutor)
        assert booking_service.expire_stale_bookings(db_session, grace_minutes=7 * 24 * 60) == []

    def test_scoped_to_user(self, db_session, student, tutor, other_tutor):
        mine = self._past_booking(db_session, student, tutor)
        theirs = self._past_booking(db_session, student, other_tutor)

        expired = booking_service.expire_stale_bookings(db_session, user_id=tutor.id)
        assert [b.id for b in expired] == [mine.id]
        db_session.refresh(theirs)
        assert theirs.status == BookingStatus.PENDING.value


def test_group_flag_and_notes_persist(db_session, student, tutor):
    start, end = future_slot()
    booking = booking_service.create_booking(
        db_session, student, tutor_id=tutor.id, subject="Physics",
        start_time=start, end_time=end,
        notes="Bring past papers", is_group_session=True,
    )
    assert booking.is_group_session is True
    assert booking.notes == "Bring past papers"


def test_admin_books_any_pair(db_session, admin, tutor):
    learner = make_user(db_session, "Lee Learner", "lee@example.com", UserRole.STUDENT)
    start, end = future_slot()
    booking = booking_service.create_booking(
        db_session, admin, tutor_id=tutor.id, student_id=learner.id, subject="Math",
        start_time=start, end_time=end,
    )
    assert booking.student_id == learner.id
