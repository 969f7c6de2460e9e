"""
Payments API endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user
from constants import PaymentStatus, UserRole
from database import get_db
from models import Booking, Payment, User
from schemas import PaginatedPaymentsResponse, PaymentCreate, PaymentResponse
from services.payment_service import create_payment
from sse import Notifier, get_notifier
from utils.query_helpers import paginate
from utils.rate_limiter import check_user_rate_limit

router = APIRouter()


@router.get("/payments", response_model=PaginatedPaymentsResponse)
def list_payments(
    status_filter: Optional[PaymentStatus] = Query(None, alias="status", description="Filter by payment status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Payments for the caller's bookings (all payments for admins), newest first."""
    query = db.query(Payment).join(Booking, Payment.booking_id == Booking.id)
    if current_user.role == UserRole.STUDENT.value:
        query = query.filter(Booking.student_id == current_user.id)
    elif current_user.role == UserRole.TUTOR.value:
        query = query.filter(Booking.tutor_id == current_user.id)

    if status_filter is not None:
        query = query.filter(Payment.status == status_filter.value)

    payments, pagination = paginate(query.order_by(Payment.created_at.desc(), Payment.id.desc()), page, limit)
    return {"payments": payments, "pagination": pagination}


@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def create_booking_payment(
    payload: PaymentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Attach a payment to a booking that has none. 409 if one exists.

    The payment status mirrors the booking (PENDING, COMPLETED or REFUNDED).
    """
    check_user_rate_limit(current_user.id, "payment_create")
    return create_payment(db, current_user, payload.booking_id, notifier=notifier)
