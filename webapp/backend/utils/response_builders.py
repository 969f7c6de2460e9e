"""
Shared response builder functions.

Centralizes building API response objects from SQLAlchemy models with
loaded relationships.
"""
from models import Booking, User
from schemas import (
    BookingDetailResponse,
    BookingResponse,
    PaymentResponse,
    SessionResponse,
    TutorListItem,
    TutorProfileResponse,
    UserBasic,
)


def build_booking_response(booking: Booking, include_review: bool = False) -> BookingResponse:
    if include_review:
        return BookingDetailResponse.model_validate(booking)
    return BookingResponse.model_validate(booking)


def build_session_response(booking: Booking) -> SessionResponse:
    """
    Build the scheduled_for + duration view of a booking.

    Args:
        booking: Booking with student, tutor (and tutor.tutor_profile) loaded
    """
    tutor_profile = booking.tutor.tutor_profile if booking.tutor else None
    return SessionResponse(
        id=booking.id,
        student_id=booking.student_id,
        tutor_id=booking.tutor_id,
        subject=booking.subject,
        scheduled_for=booking.scheduled_for,
        duration=booking.duration_minutes,
        status=booking.status,
        price=booking.price,
        meeting_link=booking.meeting_link,
        notes=booking.notes,
        student=UserBasic.model_validate(booking.student) if booking.student else None,
        tutor=UserBasic.model_validate(booking.tutor) if booking.tutor else None,
        tutor_profile=TutorProfileResponse.model_validate(tutor_profile) if tutor_profile else None,
        payment=PaymentResponse.model_validate(booking.payment) if booking.payment else None,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


def build_tutor_list_item(tutor: User) -> TutorListItem:
    return TutorListItem(
        id=tutor.id,
        name=tutor.name,
        image=tutor.image,
        profile=TutorProfileResponse.model_validate(tutor.tutor_profile),
    )
