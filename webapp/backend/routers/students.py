"""
Students API endpoints.
A tutor's view of the students who have booked them.
"""
from collections import OrderedDict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, joinedload

from auth.dependencies import require_tutor
from database import get_db
from models import Booking, User
from schemas import StudentBookingSummary, TutorStudentResponse, TutorStudentsResponse

router = APIRouter()


@router.get("/students", response_model=TutorStudentsResponse)
def get_my_students(
    current_user: User = Depends(require_tutor),
    db: Session = Depends(get_db),
):
    """Distinct students from the tutor's bookings, each with their booking history (newest first)."""
    bookings = (
        db.query(Booking)
        .options(joinedload(Booking.student))
        .filter(Booking.tutor_id == current_user.id)
        .order_by(Booking.start_time.desc(), Booking.id.desc())
        .all()
    )

    students: "OrderedDict[int, TutorStudentResponse]" = OrderedDict()
    for booking in bookings:
        student = booking.student
        if student is None:
            continue
        entry = students.get(student.id)
        if entry is None:
            entry = TutorStudentResponse(
                id=student.id,
                name=student.name,
                email=student.email,
                image=student.image,
                created_at=student.created_at,
            )
            students[student.id] = entry
        entry.bookings.append(StudentBookingSummary.model_validate(booking))

    return TutorStudentsResponse(students=list(students.values()))
