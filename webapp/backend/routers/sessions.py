"""
Sessions API endpoints.

A session is the scheduled_for + duration view of a booking. Both views
share the booking service, so conflicts and transitions behave identically.
"""
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user, require_student
from constants import BookingStatus, UserRole, utc_now
from database import get_db
from models import Booking, User
from schemas import BookingUpdate, PaginatedSessionsResponse, SessionCreate, SessionResponse, StudentSessionsResponse
from services import booking_service
from sse import Notifier, get_notifier
from utils.query_helpers import booking_with_session_relations, paginate
from utils.rate_limiter import check_user_rate_limit
from utils.response_builders import build_session_response
from routers.bookings import scoped_booking_query

router = APIRouter()


def _load_session(db: Session, booking_id: int) -> Booking:
    return (
        db.query(Booking)
        .options(*booking_with_session_relations())
        .filter(Booking.id == booking_id)
        .one()
    )


@router.get("/sessions", response_model=PaginatedSessionsResponse)
def list_sessions(
    status_filter: Optional[BookingStatus] = Query(None, alias="status", description="Filter by session status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """List the caller's sessions, soonest first."""
    is_admin = current_user.role == UserRole.ADMIN.value
    booking_service.expire_stale_bookings(
        db, user_id=None if is_admin else current_user.id, notifier=notifier,
    )

    query = scoped_booking_query(db, current_user).options(*booking_with_session_relations())
    if status_filter is not None:
        query = query.filter(Booking.status == status_filter.value)

    bookings, pagination = paginate(query.order_by(Booking.start_time.asc(), Booking.id.asc()), page, limit)
    return {
        "sessions": [build_session_response(b) for b in bookings],
        "pagination": pagination,
    }


@router.get("/sessions/student", response_model=StudentSessionsResponse)
def get_student_sessions(
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    The student's sessions grouped by status.

    upcoming holds CONFIRMED sessions that have not started, soonest first;
    completed is ordered by end time, most recent first.
    """
    booking_service.expire_stale_bookings(db, user_id=current_user.id, notifier=notifier)
    bookings = (
        db.query(Booking)
        .options(*booking_with_session_relations())
        .filter(Booking.student_id == current_user.id)
        .order_by(Booking.start_time.desc(), Booking.id.desc())
        .all()
    )

    now = utc_now()
    upcoming = sorted(
        (b for b in bookings if b.status == BookingStatus.CONFIRMED.value and b.start_time > now),
        key=lambda b: b.start_time,
    )
    completed = sorted(
        (b for b in bookings if b.status == BookingStatus.COMPLETED.value),
        key=lambda b: b.end_time,
        reverse=True,
    )
    return StudentSessionsResponse(
        upcoming=[build_session_response(b) for b in upcoming],
        pending=[build_session_response(b) for b in bookings if b.status == BookingStatus.PENDING.value],
        completed=[build_session_response(b) for b in completed],
        cancelled=[build_session_response(b) for b in bookings if b.status == BookingStatus.CANCELLED.value],
    )


@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def create_session(
    payload: SessionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Schedule a session.

    - student: books for themselves
    - tutor: books a named student on their own calendar
    - admin: books any student with any tutor
    """
    check_user_rate_limit(current_user.id, "booking_create")
    booking = booking_service.create_booking(
        db,
        current_user,
        tutor_id=payload.tutor_id,
        student_id=payload.student_id,
        subject=payload.subject,
        start_time=payload.scheduled_for,
        end_time=payload.scheduled_for + timedelta(minutes=payload.duration),
        notes=payload.notes,
        notifier=notifier,
    )
    return build_session_response(_load_session(db, booking.id))


@router.patch("/sessions/{session_id}", response_model=SessionResponse)
def update_session(
    session_id: int,
    payload: BookingUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Change a session's status and/or meeting link."""
    booking_service.transition_booking(
        db,
        current_user,
        session_id,
        new_status=payload.status,
        meeting_link=payload.meeting_link,
        notifier=notifier,
    )
    return build_session_response(_load_session(db, session_id))
