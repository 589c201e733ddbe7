from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from app.dependencies import CurrentUser, EventLogServiceDep, get_broadcaster
from app.models import EventLogResponse, UserRole
from app.realtime.broadcaster import NotificationBroadcaster

router = APIRouter(tags=["events"])


@router.get("/events", response_model=list[EventLogResponse])
async def get_events(
    current_user: CurrentUser,
    events: EventLogServiceDep,
    user_id: str | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
):
    """Newest events first; non-Admins only ever see their own"""
    if current_user.role != UserRole.ADMIN:
        user_id = current_user.id
    return await events.query(user_id=user_id, limit=limit)


@router.websocket("/ws")
async def task_events(
    websocket: WebSocket, notifier: NotificationBroadcaster = Depends(get_broadcaster)
):
    await notifier.connect(websocket)
    try:
        while True:
            # inbound messages are ignored; the socket is push-only
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        notifier.disconnect(websocket)
