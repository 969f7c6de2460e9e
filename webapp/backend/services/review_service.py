"""
Review creation and tutor rating aggregation.

The tutor's average rating is recomputed from every review referencing the
tutor (full scan-and-average) inside the same transaction as the review
insert, while holding the tutor's profile row lock. Two concurrent reviews
for the same tutor therefore serialize on that lock instead of racing to
write a stale average.
"""
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from constants import EVENT_REVIEW_CREATED, MAX_RATING, MIN_RATING, BookingStatus, UserRole
from models import Booking, Review, TutorProfile, User
from services.errors import Conflict, Forbidden, InvalidArgument, NotFound
from sse import Notifier, publish_safely

logger = logging.getLogger(__name__)


def validate_rating(rating) -> int:
    """Ratings are integers in [MIN_RATING, MAX_RATING]."""
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidArgument("Rating must be an integer")
    if rating < MIN_RATING or rating > MAX_RATING:
        raise InvalidArgument(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    return rating


def recompute_tutor_rating(db: Session, tutor_id: int) -> Optional[float]:
    """
    Rewrite the tutor's average_rating and review_count from the reviews table.

    Caller owns the transaction and must have flushed pending review writes.
    Returns the new average, or None when the tutor has no reviews.
    """
    average, count = db.query(
        func.avg(Review.rating),
        func.count(Review.id),
    ).filter(Review.tutor_id == tutor_id).one()

    profile = db.query(TutorProfile).filter(TutorProfile.user_id == tutor_id).first()
    if not profile:
        logger.warning("Tutor %d has reviews but no profile to aggregate into", tutor_id)
        return None

    profile.average_rating = float(average) if count else None
    profile.review_count = count
    return profile.average_rating


def create_review(
    db: Session,
    student: User,
    booking_id: int,
    rating,
    comment: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> Review:
    """
    Review a completed booking and refresh the tutor's average rating.

    Raises:
        InvalidArgument: rating outside 1-5 or booking not COMPLETED
        Forbidden: caller is not the booking's student
        NotFound: unknown booking
        Conflict: booking already reviewed
    """
    if student.role != UserRole.STUDENT.value:
        raise Forbidden("Only students can create reviews")
    rating = validate_rating(rating)

    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise NotFound("Booking not found")
    if booking.student_id != student.id:
        raise Forbidden("You can only review your own bookings")
    if booking.status != BookingStatus.COMPLETED.value:
        raise InvalidArgument("You can only review completed sessions")

    existing = db.query(Review.id).filter(Review.booking_id == booking_id).first()
    if existing:
        raise Conflict("You have already reviewed this session")

    tutor_id = booking.tutor_id
    review = Review(
        booking_id=booking_id,
        student_id=student.id,
        tutor_id=tutor_id,
        rating=rating,
        comment=comment,
    )
    try:
        # Per-tutor lock: serializes concurrent aggregations for this tutor
        db.query(TutorProfile).filter(TutorProfile.user_id == tutor_id).with_for_update().first()
        db.add(review)
        db.flush()
        average = recompute_tutor_rating(db, tutor_id)
        db.commit()
    except IntegrityError:
        # Unique booking_id: a concurrent request reviewed this booking first
        db.rollback()
        raise Conflict("You have already reviewed this session")
    except Exception:
        db.rollback()
        raise

    db.refresh(review)
    logger.info("Review #%d for booking #%d: tutor %d average now %s", review.id, booking_id, tutor_id, average)

    publish_safely(notifier, [tutor_id], EVENT_REVIEW_CREATED, {
        "review_id": review.id,
        "booking_id": booking_id,
        "rating": rating,
        "average_rating": average,
    })
    return review
