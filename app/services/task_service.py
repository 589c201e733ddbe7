import logging
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.orm import selectinload
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.layer import CacheLayer
from app.core.errors import NotFoundError
from app.models import (
    EventAction,
    Task,
    TaskAssign,
    TaskCreate,
    TaskResponse,
    TaskStatus,
    TaskUpdate,
    User,
    UserRole,
)
from app.realtime.broadcaster import NotificationBroadcaster
from app.services.event_log_service import EventLogService
from app.services.policy import TaskAction, allowed_actions, authorize

logger = logging.getLogger(__name__)

TASKS_CACHE_PREFIX = "tasks"


def tasks_cache_key(user_id: str) -> str:
    return f"{TASKS_CACHE_PREFIX}:{user_id}"


class TaskService:
    """
    Task CRUD and assignment.

    Every mutation runs in the same order: authorize, persist, sweep the
    "tasks" cache prefix, append to the event log, then schedule the realtime
    broadcast. The caller sees success only after the sweep.
    """

    def __init__(
        self,
        db: AsyncSession,
        cache: CacheLayer,
        events: EventLogService,
        broadcaster: NotificationBroadcaster,
        cache_ttl: int = 300,
    ):
        self.db = db
        self.cache = cache
        self.events = events
        self.broadcaster = broadcaster
        self.cache_ttl = cache_ttl

    def _with_people(self, query):
        return query.options(selectinload(Task.creator), selectinload(Task.assignee))

    async def _load(self, task_id: str) -> Task:
        query = self._with_people(select(Task).where(Task.id == task_id)).execution_options(
            populate_existing=True
        )
        result = await self.db.exec(query)
        task = result.first()
        if task is None:
            raise NotFoundError("Task not found")
        return task

    async def _invalidate(self) -> None:
        removed = await self.cache.delete_prefix(TASKS_CACHE_PREFIX)
        logger.debug("Invalidated %d task list cache entries", removed)

    async def create(self, task_data: TaskCreate, creator_id: str) -> TaskResponse:
        if await self.db.get(User, creator_id) is None:
            raise NotFoundError("User not found")

        task = Task(
            **task_data.model_dump(),
            creator_id=creator_id,
            status=TaskStatus.TODO,
        )
        self.db.add(task)
        await self.db.commit()

        saved = TaskResponse.model_validate(await self._load(task.id))
        await self._invalidate()
        await self.events.append(
            EventAction.TASK_CREATED,
            creator_id,
            {"task_id": saved.id, "title": saved.title},
        )
        self.broadcaster.broadcast_task_updated(saved)
        logger.info("Task %s created by %s", saved.id, creator_id)
        return saved

    async def find_all(self, actor: User) -> list[TaskResponse]:
        async def loader():
            query = self._with_people(select(Task))
            if actor.role != UserRole.ADMIN:
                query = query.where(
                    or_(Task.creator_id == actor.id, Task.assignee_id == actor.id)
                )
            query = query.order_by(Task.created_at.desc())
            result = await self.db.exec(query)
            return [TaskResponse.model_validate(t).model_dump(mode="json") for t in result.all()]

        cached = await self.cache.get(tasks_cache_key(actor.id), loader=loader, l2_ttl=self.cache_ttl)
        return [TaskResponse.model_validate(item) for item in cached]

    async def find_one(self, task_id: str) -> TaskResponse:
        return TaskResponse.model_validate(await self._load(task_id))

    async def can_access_task(self, task_id: str, user_id: str, user_role: UserRole) -> bool:
        if user_role == UserRole.ADMIN:
            return True
        task = await self._load(task_id)
        return TaskAction.READ in allowed_actions(user_id, user_role, task)

    async def update(self, task_id: str, task_data: TaskUpdate, actor: User) -> TaskResponse:
        task = await self._load(task_id)
        authorize(actor, TaskAction.UPDATE, task)

        changes = task_data.model_dump(exclude_unset=True)
        task.sqlmodel_update(changes)
        task.updated_at = datetime.now(timezone.utc)
        self.db.add(task)
        await self.db.commit()

        updated = TaskResponse.model_validate(await self._load(task_id))
        await self._invalidate()
        await self.events.append(
            EventAction.TASK_UPDATED,
            actor.id,
            {"task_id": task_id, "changes": task_data.model_dump(exclude_unset=True, mode="json")},
        )
        self.broadcaster.broadcast_task_updated(updated)
        return updated

    async def assign(self, task_id: str, assign_data: TaskAssign, actor: User) -> TaskResponse:
        task = await self._load(task_id)
        authorize(actor, TaskAction.ASSIGN, task)

        assignee_id = assign_data.assignee_id or None
        if assignee_id:
            assignee = await self.db.get(User, assignee_id)
            if assignee is None:
                raise NotFoundError("Assignee not found")
            task.assignee = assignee
        else:
            task.assignee = None
        task.assignee_id = assignee_id
        task.updated_at = datetime.now(timezone.utc)
        self.db.add(task)
        await self.db.commit()

        updated = TaskResponse.model_validate(await self._load(task_id))
        await self._invalidate()
        await self.events.append(
            EventAction.TASK_ASSIGNED,
            actor.id,
            {"task_id": task_id, "assignee_id": assignee_id},
        )
        self.broadcaster.broadcast_task_updated(updated)
        logger.info("Task %s assigned to %s by %s", task_id, assignee_id, actor.id)
        return updated

    async def remove(self, task_id: str, actor: User) -> None:
        task = await self._load(task_id)
        authorize(actor, TaskAction.DELETE, task)

        await self.db.delete(task)
        await self.db.commit()

        await self._invalidate()
        await self.events.append(EventAction.TASK_DELETED, actor.id, {"task_id": task_id})
        self.broadcaster.broadcast_task_deleted(task_id)
        logger.info("Task %s deleted by %s", task_id, actor.id)
