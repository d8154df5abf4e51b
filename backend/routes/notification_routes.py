import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, user_from_token
from backend.database import get_db
from backend.models.notification import Notification
from backend.models.user import User
from backend.routes.appointment_routes import database_unavailable
from backend.services.notifications import hub

router = APIRouter(tags=['notifications'])

logger = logging.getLogger(__name__)

MAX_NOTIFICATIONS = 100


class NotificationResponse(BaseModel):
    id: int
    message: str
    type: str
    request_id: int | None = None
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True


@router.get('/notifications', response_model=list[NotificationResponse])
def list_notifications(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        return db.query(Notification).filter(
            Notification.user_id == current_user.id,
        ).order_by(Notification.created_at.desc(), Notification.id.desc()).limit(MAX_NOTIFICATIONS).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/notifications/{notification_id}/read', response_model=NotificationResponse)
def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        notification = db.query(Notification).filter(Notification.id == notification_id).first()
        if notification is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Notification not found.')
        if notification.user_id != current_user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only the recipient can update this notification.',
            )

        notification.read = True
        db.commit()
        db.refresh(notification)
        return notification
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.websocket('/ws')
async def notifications_socket(websocket: WebSocket, token: str = Query(...), db: Session = Depends(get_db)):
    try:
        user_id = user_from_token(token, db).id
    except HTTPException as exc:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(exc.detail))
        return
    finally:
        # The socket may stay open for hours; do not hold a session meanwhile.
        db.close()

    await websocket.accept()
    hub.connect(user_id, websocket)
    try:
        await websocket.send_json({'event': 'authenticated', 'data': {'userId': user_id}})
        while True:
            # Clients only listen; inbound frames keep the connection alive.
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug('Realtime client for user %s disconnected', user_id)
    finally:
        hub.disconnect(user_id, websocket)
