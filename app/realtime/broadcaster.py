import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from app.models import TaskResponse

logger = logging.getLogger(__name__)

TASK_UPDATED = "taskUpdated"
TASK_DELETED = "taskDeleted"


class NotificationBroadcaster:
    """
    Fans task events out to every connected WebSocket client.

    Sends are fire-and-forget: broadcast_* schedules the sends and returns
    immediately. A client whose send fails is dropped; nothing is retried or
    replayed, so a client that misses an event re-reads the task list.
    """

    def __init__(self):
        self._clients: set[WebSocket] = set()
        self._pending: set[asyncio.Task] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        logger.info("Client connected: %s (%d online)", _client_id(websocket), len(self._clients))

    def disconnect(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)
        logger.info(
            "Client disconnected: %s (%d online)", _client_id(websocket), len(self._clients)
        )

    def broadcast_task_updated(self, task: TaskResponse) -> None:
        self._emit(TASK_UPDATED, task.model_dump(mode="json"))

    def broadcast_task_deleted(self, task_id: str) -> None:
        self._emit(TASK_DELETED, {"task_id": task_id})

    def _emit(self, event: str, data: Any) -> None:
        if not self._clients:
            return
        message = {"event": event, "data": data}
        for websocket in list(self._clients):
            job = asyncio.get_running_loop().create_task(self._send(websocket, message))
            self._pending.add(job)
            job.add_done_callback(self._pending.discard)

    async def _send(self, websocket: WebSocket, message: dict) -> None:
        try:
            await websocket.send_json(message)
        except Exception as e:  # any transport failure just drops the client
            logger.debug("Dropping client %s after failed send: %s", _client_id(websocket), e)
            self._clients.discard(websocket)

    async def close(self) -> None:
        """Wait for in-flight sends; used at shutdown."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


def _client_id(websocket: WebSocket) -> str:
    client = getattr(websocket, "client", None)
    if client is None:
        return hex(id(websocket))
    return f"{client.host}:{client.port}"


broadcaster = NotificationBroadcaster()
