"""
Server-Sent Events (SSE) connection manager for real-time notifications.

Manages per-user async queues so that backend events (booking created or
updated, new reviews, new messages) are pushed instantly to connected
frontend clients.

The manager is built once at application start-up and injected into the
services through the get_notifier dependency, never reached as a global.
"""
import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Protocol

from fastapi import Request

from constants import utc_now

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Fire-and-forget publisher. At-most-once, no ordering across channels."""

    def publish(self, channel_id: int, event_name: str, payload: Any) -> None:
        ...


class ConnectionManager:
    """Manages SSE connections per user using asyncio.Queue."""

    def __init__(self, max_queue_size: int = 100):
        # user_id -> list of queues (one per browser tab / device)
        self._connections: dict[int, list[asyncio.Queue]] = {}
        # queue -> event loop its consumer awaits on
        self._loops: dict[asyncio.Queue, asyncio.AbstractEventLoop] = {}
        # user_id -> last_seen timestamp (for presence)
        self._presence: dict[int, datetime] = {}
        self._max_queue_size = max_queue_size

    def connect(self, user_id: int) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._connections.setdefault(user_id, []).append(queue)
        loop = _running_loop()
        if loop is not None:
            self._loops[queue] = loop
        self._presence[user_id] = utc_now()
        logger.info("SSE connect: user %d (total connections: %d)", user_id, len(self._connections[user_id]))
        return queue

    def disconnect(self, user_id: int, queue: asyncio.Queue):
        queues = self._connections.get(user_id, [])
        if queue in queues:
            queues.remove(queue)
        self._loops.pop(queue, None)
        if not queues:
            self._connections.pop(user_id, None)
            self._presence.pop(user_id, None)
        logger.info("SSE disconnect: user %d (remaining: %d)", user_id, len(self._connections.get(user_id, [])))

    def is_connected(self, user_id: int) -> bool:
        return bool(self._connections.get(user_id))

    def update_presence(self, user_id: int):
        self._presence[user_id] = utc_now()

    def get_online_users(self, within_seconds: int = 300) -> dict[int, datetime]:
        """Return users with activity within the given window."""
        now = utc_now()
        return {
            uid: last_seen
            for uid, last_seen in self._presence.items()
            if (now - last_seen).total_seconds() < within_seconds
            and self.is_connected(uid)
        }

    def publish(self, channel_id: int, event_name: str, payload: Any) -> None:
        """
        Push an event to every open connection of one user. Drops silently when offline.

        Sync routes publish from worker threads; asyncio queues are not
        thread-safe, so those puts are scheduled on the consumer's loop.
        """
        message = format_event(event_name, payload)
        current = _running_loop()
        for queue in list(self._connections.get(channel_id, [])):
            loop = self._loops.get(queue)
            if loop is None or loop is current:
                self._offer(queue, message, channel_id, event_name)
            else:
                try:
                    loop.call_soon_threadsafe(self._offer, queue, message, channel_id, event_name)
                except RuntimeError:
                    # Consumer loop already closed
                    logger.warning("SSE loop closed for user %d, dropping %s", channel_id, event_name)

    def _offer(self, queue: asyncio.Queue, message: str, channel_id: int, event_name: str):
        try:
            queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("SSE queue full for user %d, dropping %s", channel_id, event_name)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def publish_safely(notifier: Notifier | None, recipient_ids: list[int], event_name: str, payload: Any) -> None:
    """Publish to each recipient, logging and swallowing delivery failures."""
    if notifier is None:
        return
    for user_id in dict.fromkeys(recipient_ids):
        try:
            notifier.publish(user_id, event_name, payload)
        except Exception:
            logger.warning("Failed to publish %s to user %d", event_name, user_id, exc_info=True)


def format_event(event_name: str, payload: Any) -> str:
    """Frame a payload as an SSE message."""
    data = json.dumps(payload, default=str)
    return f"event: {event_name}\ndata: {data}\n\n"


def get_notifier(request: Request) -> Notifier:
    """Dependency returning the notifier stored on app.state at start-up."""
    return request.app.state.notifier
