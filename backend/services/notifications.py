"""Best-effort real-time notification delivery.

The hub keeps the open WebSocket connections of each user. ``publish`` is
at-most-once: it schedules a send on the event loop that owns the socket and
returns immediately. A user with no open socket simply misses the live update
and reconciles through ``GET /notifications``.
"""

import asyncio
import logging
from collections import defaultdict
from threading import Lock
from typing import Any, Protocol

from fastapi import WebSocket
from sqlalchemy.orm import Session

from backend.models.notification import Notification

logger = logging.getLogger(__name__)

EVENT_NEW_REQUEST = 'newAppointmentRequest'
EVENT_APPOINTMENT_UPDATE = 'appointmentUpdate'


class Notifier(Protocol):
    def publish(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        ...


class NotificationHub:
    def __init__(self) -> None:
        self._connections: dict[int, list[tuple[WebSocket, asyncio.AbstractEventLoop]]] = defaultdict(list)
        self._lock = Lock()

    def connect(self, user_id: int, websocket: WebSocket) -> None:
        loop = asyncio.get_running_loop()
        with self._lock:
            self._connections[user_id].append((websocket, loop))
        logger.info('Realtime channel opened for user %s', user_id)

    def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        with self._lock:
            remaining = [entry for entry in self._connections.get(user_id, []) if entry[0] is not websocket]
            if remaining:
                self._connections[user_id] = remaining
            else:
                self._connections.pop(user_id, None)
        logger.info('Realtime channel closed for user %s', user_id)

    def connection_count(self, user_id: int) -> int:
        with self._lock:
            return len(self._connections.get(user_id, []))

    def publish(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            targets = list(self._connections.get(user_id, []))

        if not targets:
            logger.debug('No realtime listener for user %s, dropping %s', user_id, event)
            return

        message = {'event': event, 'data': payload}
        for websocket, loop in targets:
            try:
                future = asyncio.run_coroutine_threadsafe(websocket.send_json(message), loop)
            except RuntimeError:
                logger.warning('Event loop closed for user %s, dropping %s', user_id, event)
                continue
            future.add_done_callback(_log_delivery_failure)


def _log_delivery_failure(future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.warning('Realtime notification delivery failed: %s', error)


hub = NotificationHub()


def get_notifier() -> Notifier:
    return hub


def record_notification(
    db: Session,
    user_id: int,
    message: str,
    notification_type: str,
    request_id: int | None = None,
) -> Notification:
    """Stage a notification row; the caller commits it with its own change."""
    notification = Notification(
        user_id=user_id,
        message=message,
        type=notification_type,
        request_id=request_id,
        read=False,
    )
    db.add(notification)
    return notification
