"""
Tutors API endpoints.
Public directory of tutors with their profiles and reviews.
"""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from constants import UserRole
from database import get_db
from models import Review, TutorProfile, User
from schemas import PaginatedTutorsResponse, ReviewResponse, TutorDetailResponse
from services.errors import NotFound
from utils.query_helpers import paginate, review_with_student, tutor_with_profile
from utils.response_builders import build_tutor_list_item

router = APIRouter()

LATEST_REVIEWS_ON_DETAIL = 5


@router.get("/tutors", response_model=PaginatedTutorsResponse)
def get_tutors(
    subject: Optional[str] = Query(None, description="Case-insensitive subject match"),
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    min_rate: Optional[Decimal] = Query(None, ge=0),
    max_rate: Optional[Decimal] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """
    List tutors, best rated first.

    Tutors without reviews sort last and never match a min_rating filter.
    """
    query = (
        db.query(User)
        .join(TutorProfile, TutorProfile.user_id == User.id)
        .options(*tutor_with_profile())
        .filter(User.role == UserRole.TUTOR.value)
    )
    if subject:
        query = query.filter(TutorProfile.subjects.ilike(f"%{subject.strip()}%"))
    if min_rating is not None:
        query = query.filter(TutorProfile.average_rating >= min_rating)
    if min_rate is not None:
        query = query.filter(TutorProfile.hourly_rate >= min_rate)
    if max_rate is not None:
        query = query.filter(TutorProfile.hourly_rate <= max_rate)

    query = query.order_by(
        TutorProfile.average_rating.is_(None),
        TutorProfile.average_rating.desc(),
        User.name,
    )
    tutors, pagination = paginate(query, page, limit)
    return {
        "tutors": [build_tutor_list_item(t) for t in tutors],
        "pagination": pagination,
    }


@router.get("/tutors/{tutor_id}", response_model=TutorDetailResponse)
def get_tutor(tutor_id: int, db: Session = Depends(get_db)):
    """A tutor's profile with their latest reviews."""
    tutor = (
        db.query(User)
        .options(*tutor_with_profile())
        .filter(User.id == tutor_id, User.role == UserRole.TUTOR.value)
        .first()
    )
    if not tutor or not tutor.tutor_profile:
        raise NotFound("Tutor not found")

    reviews = (
        db.query(Review)
        .options(*review_with_student())
        .filter(Review.tutor_id == tutor_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .limit(LATEST_REVIEWS_ON_DETAIL)
        .all()
    )
    item = build_tutor_list_item(tutor)
    return TutorDetailResponse(
        **item.model_dump(),
        reviews=[ReviewResponse.model_validate(r) for r in reviews],
    )
