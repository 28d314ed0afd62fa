import asyncio
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from classroom.core.current_user import get_current_user, user_from_token
from classroom.core.deps import get_db, get_live_push
from classroom.models.user import User
from classroom.schemas.notification import MarkAllRead, NotificationRead, UnreadCount
from classroom.services import notifications
from classroom.services.live_push import NotificationHub

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[NotificationRead])
def my_notifications(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    return notifications.list_notifications(db, me.id, unread_only=unread_only, limit=limit, offset=offset)


@router.get("/unread-count", response_model=UnreadCount)
def my_unread_count(
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    return {"unread": notifications.unread_count(db, me.id)}


@router.post("/read-all", response_model=MarkAllRead)
def mark_all_read(
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    return {"updated": notifications.mark_all_as_read(db, me.id)}


@router.post("/{notification_id}/read", response_model=NotificationRead)
def mark_read(
    notification_id: str,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    return notifications.mark_as_read(db, notification_id, me.id)


@router.websocket("/ws")
async def notification_stream(
    websocket: WebSocket,
    token: str = Query(default=""),
    db: Session = Depends(get_db),
    hub: NotificationHub = Depends(get_live_push),
):
    """Push new notifications to a connected session; history stays available via GET."""
    user = user_from_token(db, token)
    user_id = user.id if user else None

    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    # subscribe before accepting so nothing published after the handshake is missed
    queue = hub.subscribe(user_id)
    try:
        await websocket.accept()
        logger.info("Live notifications connected for %s", user_id)
        while True:
            receive = asyncio.ensure_future(websocket.receive_text())
            deliver = asyncio.ensure_future(queue.get())
            done, pending = await asyncio.wait({receive, deliver}, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            if deliver in done:
                await websocket.send_json(deliver.result())
            if receive in done:
                receive.result()  # raises WebSocketDisconnect when the client leaves
    except WebSocketDisconnect:
        pass
    finally:
        hub.unsubscribe(user_id, queue)
        logger.info("Live notifications disconnected for %s", user_id)
