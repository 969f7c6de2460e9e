"""
Reviews API endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user
from database import get_db
from models import Review, User
from schemas import PaginatedReviewsResponse, ReviewCreate, ReviewResponse
from services.review_service import create_review
from sse import Notifier, get_notifier
from utils.html_sanitizer import clean_optional_text
from utils.query_helpers import paginate, review_with_student
from utils.rate_limiter import check_user_rate_limit

router = APIRouter()


@router.post("/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
def submit_review(
    payload: ReviewCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Review a completed booking (students only, once per booking).

    Recomputes the tutor's average rating in the same transaction.
    """
    check_user_rate_limit(current_user.id, "review_create")
    return create_review(
        db,
        current_user,
        booking_id=payload.booking_id,
        rating=payload.rating,
        comment=clean_optional_text(payload.comment),
        notifier=notifier,
    )


@router.get("/reviews", response_model=PaginatedReviewsResponse)
def list_reviews(
    tutor_id: Optional[int] = Query(None, description="Filter by tutor"),
    student_id: Optional[int] = Query(None, description="Filter by student"),
    min_rating: Optional[int] = Query(None, ge=1, le=5, description="Only ratings >= this value"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Public review listing, newest first."""
    query = db.query(Review).options(*review_with_student())
    if tutor_id is not None:
        query = query.filter(Review.tutor_id == tutor_id)
    if student_id is not None:
        query = query.filter(Review.student_id == student_id)
    if min_rating is not None:
        query = query.filter(Review.rating >= min_rating)

    reviews, pagination = paginate(query.order_by(Review.created_at.desc(), Review.id.desc()), page, limit)
    return {"reviews": reviews, "pagination": pagination}
