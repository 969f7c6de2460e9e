"""
Point-to-point messaging relay.

Messages are persisted first, then pushed best-effort to the receiver's live
connections. A failed push is ignored; the receiver sees the message on the
next fetch.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Session, joinedload

from constants import EVENT_NEW_MESSAGE
from models import Message, User
from schemas import MessageResponse
from services.errors import InvalidArgument, NotFound
from sse import Notifier, publish_safely
from utils.html_sanitizer import strip_html_tags

logger = logging.getLogger(__name__)


def conversation_filter(user_id: int, other_user_id: int):
    """Messages exchanged between two users, in either direction."""
    return or_(
        and_(Message.sender_id == user_id, Message.receiver_id == other_user_id),
        and_(Message.sender_id == other_user_id, Message.receiver_id == user_id),
    )


def send_message(
    db: Session,
    sender: User,
    receiver_id: int,
    content: str,
    notifier: Optional[Notifier] = None,
) -> Message:
    """Persist a message and push it to the receiver."""
    content = strip_html_tags(content or "").strip()
    if not content:
        raise InvalidArgument("Message content cannot be empty")
    if receiver_id == sender.id:
        raise InvalidArgument("Cannot send a message to yourself")

    receiver = db.query(User).filter(User.id == receiver_id).first()
    if not receiver:
        raise NotFound("Receiver not found")

    message = Message(sender_id=sender.id, receiver_id=receiver_id, content=content)
    db.add(message)
    db.commit()
    db.refresh(message)

    payload = MessageResponse.model_validate(message).model_dump(mode="json")
    publish_safely(notifier, [receiver_id], EVENT_NEW_MESSAGE, payload)
    return message


def list_conversations(db: Session, user: User, limit: int = 20, offset: int = 0) -> List[dict]:
    """
    Group the user's messages by counterpart, most recent activity first.

    Returns dicts with other_user, last_message, unread_count, last_message_at.
    """
    other_user_id = case(
        (Message.sender_id == user.id, Message.receiver_id),
        else_=Message.sender_id,
    )
    last_message_at = func.max(Message.created_at)
    unread_count = func.sum(
        case((and_(Message.read.is_(False), Message.receiver_id == user.id), 1), else_=0)
    )

    rows = (
        db.query(
            other_user_id.label("other_user_id"),
            last_message_at.label("last_message_at"),
            unread_count.label("unread_count"),
        )
        .filter(or_(Message.sender_id == user.id, Message.receiver_id == user.id))
        .group_by(other_user_id)
        .order_by(last_message_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    if not rows:
        return []

    other_ids = [row.other_user_id for row in rows]
    users = {u.id: u for u in db.query(User).filter(User.id.in_(other_ids)).all()}

    conversations = []
    for row in rows:
        last_message = (
            db.query(Message)
            .filter(conversation_filter(user.id, row.other_user_id))
            .order_by(Message.created_at.desc(), Message.id.desc())
            .first()
        )
        conversations.append({
            "other_user": users.get(row.other_user_id),
            "last_message": last_message,
            "unread_count": int(row.unread_count or 0),
            "last_message_at": row.last_message_at,
        })
    return conversations


def get_conversation(
    db: Session,
    user: User,
    other_user_id: int,
    limit: int = 20,
    offset: int = 0,
) -> Tuple[List[Message], int]:
    """
    Fetch a page of the conversation (newest first) and mark every unread
    message from the counterpart as read.

    The read flags flip in a single UPDATE committed before the page is
    read, so callers never observe a partially-read conversation.
    """
    other = db.query(User.id).filter(User.id == other_user_id).first()
    if not other:
        raise NotFound("User not found")

    try:
        marked = db.query(Message).filter(
            Message.sender_id == other_user_id,
            Message.receiver_id == user.id,
            Message.read.is_(False),
        ).update({Message.read: True}, synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    if marked:
        logger.info("User %d read %d message(s) from user %d", user.id, marked, other_user_id)
    # Bulk update bypassed the identity map
    db.expire_all()

    query = db.query(Message).filter(conversation_filter(user.id, other_user_id))
    total = query.count()
    messages = (
        query.options(joinedload(Message.sender), joinedload(Message.receiver))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return messages, total


def count_unread(db: Session, user: User) -> int:
    return db.query(func.count(Message.id)).filter(
        Message.receiver_id == user.id,
        Message.read.is_(False),
    ).scalar() or 0
