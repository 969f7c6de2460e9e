"""
Server-Sent Events endpoints: the caller's live event stream and presence.
"""
import asyncio

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from auth.dependencies import get_current_user
from models import User
from sse import ConnectionManager, get_notifier

router = APIRouter()

KEEPALIVE_SECONDS = 30.0


@router.get("/events/stream")
async def event_stream(
    request: Request,
    current_user: User = Depends(get_current_user),
    manager: ConnectionManager = Depends(get_notifier),
):
    """Server-Sent Events stream for the caller.

    Pushes events: booking-created, booking-updated, payment-created,
    review-created, new-message.
    Client connects via EventSource and receives JSON payloads.
    """
    user_id = current_user.id
    queue = manager.connect(user_id)

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    break

                try:
                    message = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                    yield message
                except asyncio.TimeoutError:
                    # Keepalive comment stops proxies closing an idle connection
                    manager.update_presence(user_id)
                    yield ": keepalive\n\n"
        finally:
            manager.disconnect(user_id, queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.get("/events/presence")
def get_presence(
    current_user: User = Depends(get_current_user),
    manager: ConnectionManager = Depends(get_notifier),
):
    """Users with an open stream and recent activity."""
    online = manager.get_online_users()
    return {"online_user_ids": sorted(online.keys())}
