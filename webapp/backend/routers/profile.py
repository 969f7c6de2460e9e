"""
Profile API endpoints.
The caller reads and edits their own user record and role profile.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user
from constants import UserRole
from database import get_db
from models import StudentProfile, TutorProfile, User
from schemas import ProfileResponse, ProfileUpdate
from services.errors import Forbidden
from utils.html_sanitizer import clean_optional_text

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/profile", response_model=ProfileResponse)
def get_profile(current_user: User = Depends(get_current_user)):
    """The caller with the profile matching their role."""
    return current_user


@router.put("/profile", response_model=ProfileResponse)
def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update name and the caller's own role profile.

    Sending the profile of the other role is Forbidden; the role itself
    never changes.
    """
    is_tutor = current_user.role == UserRole.TUTOR.value
    is_student = current_user.role == UserRole.STUDENT.value
    if payload.tutor_profile is not None and not is_tutor:
        raise Forbidden("Only tutors can update a tutor profile")
    if payload.student_profile is not None and not is_student:
        raise Forbidden("Only students can update a student profile")

    try:
        if payload.name is not None:
            current_user.name = payload.name.strip()

        if payload.tutor_profile is not None:
            profile = current_user.tutor_profile
            if profile is None:
                profile = TutorProfile(user_id=current_user.id, hourly_rate=0)
                db.add(profile)
            changes = payload.tutor_profile.model_dump(exclude_unset=True)
            if "subjects" in changes:
                subjects = [s.strip() for s in (changes.pop("subjects") or []) if s and s.strip()]
                profile.subjects = ",".join(subjects)
            if "hourly_rate" in changes:
                rate = changes.pop("hourly_rate")
                if rate is not None:
                    profile.hourly_rate = rate
            for field in ("bio", "education", "experience"):
                if field in changes:
                    setattr(profile, field, clean_optional_text(changes.pop(field)))
            if "availability" in changes:
                profile.availability = changes.pop("availability")

        if payload.student_profile is not None:
            profile = current_user.student_profile
            if profile is None:
                profile = StudentProfile(user_id=current_user.id)
                db.add(profile)
            for field, value in payload.student_profile.model_dump(exclude_unset=True).items():
                setattr(profile, field, clean_optional_text(value))

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(current_user)
    logger.info("Profile updated for user #%d", current_user.id)
    return current_user
