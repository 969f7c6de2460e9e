"""
Earnings API endpoints.
"""
from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from auth.dependencies import require_tutor
from database import get_db
from models import Earning, User
from schemas import EarningsSummaryResponse

router = APIRouter()


@router.get("/earnings", response_model=EarningsSummaryResponse)
def get_earnings(
    current_user: User = Depends(require_tutor),
    db: Session = Depends(get_db),
):
    """The tutor's earning ledger, newest first, with the running total."""
    earnings = (
        db.query(Earning)
        .filter(Earning.tutor_id == current_user.id)
        .order_by(Earning.created_at.desc(), Earning.id.desc())
        .all()
    )
    total = db.query(func.coalesce(func.sum(Earning.amount), 0)).filter(
        Earning.tutor_id == current_user.id
    ).scalar()
    return EarningsSummaryResponse(total=Decimal(str(total)), earnings=earnings)
