"""
Messages API endpoints.
Point-to-point messages between any two users, pushed live over SSE.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user
from database import get_db
from models import User
from schemas import (
    ConversationsResponse,
    MessageCreate,
    MessageResponse,
    PaginatedMessagesResponse,
    UnreadCountResponse,
)
from services import message_service
from sse import Notifier, get_notifier
from utils.query_helpers import build_pagination
from utils.rate_limiter import check_user_rate_limit

router = APIRouter()


@router.post("/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def send_message(
    payload: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Send a message. HTML is stripped; the receiver is notified live if connected."""
    check_user_rate_limit(current_user.id, "message_create")
    return message_service.send_message(
        db, current_user, payload.receiver_id, payload.content, notifier=notifier,
    )


@router.get("/messages", response_model=ConversationsResponse | PaginatedMessagesResponse)
def get_messages(
    user_id: Optional[int] = Query(None, description="Counterpart; omit to list conversations"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Without user_id: one entry per counterpart, most recent first.

    With user_id: the conversation with that user, newest first. Unread
    messages from them are marked read.
    """
    offset = (page - 1) * limit
    if user_id is None:
        conversations = message_service.list_conversations(db, current_user, limit=limit, offset=offset)
        return ConversationsResponse.model_validate({"conversations": conversations}, from_attributes=True)

    messages, total = message_service.get_conversation(
        db, current_user, user_id, limit=limit, offset=offset,
    )
    return PaginatedMessagesResponse(
        messages=[MessageResponse.model_validate(m) for m in messages],
        pagination=build_pagination(total, page, limit),
    )


@router.get("/messages/unread-count", response_model=UnreadCountResponse)
def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Number of unread messages addressed to the caller."""
    return UnreadCountResponse(unread_count=message_service.count_unread(db, current_user))
