import logging
from typing import Any

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.models import EventAction, EventLog

logger = logging.getLogger(__name__)


class EventLogService:
    """Append-only log of user actions."""

    def __init__(self, db: AsyncSession, default_limit: int = 100):
        self.db = db
        self.default_limit = default_limit

    async def append(
        self, action: EventAction, user_id: str, details: dict[str, Any] | None = None
    ) -> EventLog:
        entry = EventLog(action=action, user_id=user_id, details=details or {})
        self.db.add(entry)
        await self.db.commit()
        await self.db.refresh(entry)
        logger.debug("Logged %s by %s", action.value, user_id)
        return entry

    async def query(self, user_id: str | None = None, limit: int | None = None) -> list[EventLog]:
        """Newest first, optionally restricted to one actor."""
        query = select(EventLog)
        if user_id:
            query = query.where(EventLog.user_id == user_id)
        query = query.order_by(EventLog.timestamp.desc(), EventLog.id.desc()).limit(
            limit or self.default_limit
        )
        result = await self.db.exec(query)
        return list(result.all())
