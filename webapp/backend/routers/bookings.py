"""
Bookings API endpoints.

Thin HTTP layer over services.booking_service: parse, authorize by role,
delegate, and shape the response.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user, require_admin, require_student, require_tutor
from constants import ACTIVE_BOOKING_STATUSES, BookingStatus, UserRole
from database import get_db
from models import Booking, User
from schemas import (
    BookingCreate,
    BookingDetailResponse,
    BookingResponse,
    BookingUpdate,
    PaginatedBookingsResponse,
)
from services import booking_service
from sse import Notifier, get_notifier
from utils.query_helpers import booking_with_relations, paginate
from utils.rate_limiter import check_user_rate_limit

router = APIRouter()


def scoped_booking_query(db: Session, user: User):
    """Bookings visible to the user: own as student or tutor, all for admins."""
    query = db.query(Booking)
    if user.role == UserRole.STUDENT.value:
        query = query.filter(Booking.student_id == user.id)
    elif user.role == UserRole.TUTOR.value:
        query = query.filter(Booking.tutor_id == user.id)
    elif user.role != UserRole.ADMIN.value:
        query = query.filter(or_(Booking.student_id == user.id, Booking.tutor_id == user.id))
    return query


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreate,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Book a tutor for [start_time, end_time).

    The booking and its payment are created PENDING; the price is the
    tutor's hourly rate times the duration.
    """
    check_user_rate_limit(current_user.id, "booking_create")
    return booking_service.create_booking(
        db,
        current_user,
        tutor_id=payload.tutor_id,
        subject=payload.subject,
        start_time=payload.start_time,
        end_time=payload.end_time,
        notes=payload.notes,
        is_group_session=payload.is_group_session,
        notifier=notifier,
    )


@router.get("/bookings", response_model=PaginatedBookingsResponse)
def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status", description="Filter by booking status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    List the caller's bookings, newest start first.

    - students and tutors see their own bookings, admins see all
    - stale PENDING bookings are expired before listing
    """
    is_admin = current_user.role == UserRole.ADMIN.value
    booking_service.expire_stale_bookings(
        db, user_id=None if is_admin else current_user.id, notifier=notifier,
    )

    query = scoped_booking_query(db, current_user).options(*booking_with_relations())
    if status_filter is not None:
        query = query.filter(Booking.status == status_filter.value)

    bookings, pagination = paginate(query.order_by(Booking.start_time.desc(), Booking.id.desc()), page, limit)
    return {"bookings": bookings, "pagination": pagination}


@router.get("/bookings/tutor", response_model=list[BookingResponse])
def list_tutor_bookings(
    current_user: User = Depends(require_tutor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """The tutor's PENDING and CONFIRMED bookings, soonest first."""
    booking_service.expire_stale_bookings(db, user_id=current_user.id, notifier=notifier)
    return (
        db.query(Booking)
        .options(*booking_with_relations())
        .filter(
            Booking.tutor_id == current_user.id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        .order_by(Booking.start_time.asc())
        .all()
    )


@router.get("/bookings/{booking_id}", response_model=BookingDetailResponse)
def get_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """A single booking with its payment and review. Parties and admins only."""
    return booking_service.get_booking_for_actor(db, current_user, booking_id)


@router.patch("/bookings/{booking_id}", response_model=BookingResponse)
def update_booking(
    booking_id: int,
    payload: BookingUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Change a booking's status and/or meeting link.

    - tutor: confirm, complete, cancel, set meeting_link
    - student: cancel
    - admin: anything the transition table allows
    """
    return booking_service.transition_booking(
        db,
        current_user,
        booking_id,
        new_status=payload.status,
        meeting_link=payload.meeting_link,
        notifier=notifier,
    )


@router.delete("/bookings/{booking_id}")
def delete_booking(
    booking_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Hard-delete a booking with its payment and review."""
    booking_service.delete_booking(db, current_user, booking_id)
    return {"message": "Booking deleted successfully"}
