import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import EmailStr, field_validator
from sqlalchemy import JSON, DateTime
from sqlalchemy import Enum as SAEnum
from sqlmodel import Column, Field, Relationship, SQLModel


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def enum_column(enum_cls, name: str, **kwargs) -> Column:
    """Persist enum values ('InProgress') rather than member names."""
    return Column(
        SAEnum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e]),
        **kwargs,
    )


class UserRole(str, Enum):
    ADMIN = "Admin"
    USER = "User"


class TaskStatus(str, Enum):
    TODO = "Todo"
    IN_PROGRESS = "InProgress"
    DONE = "Done"


class EventAction(str, Enum):
    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_DELETED = "TASK_DELETED"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(SQLModel, table=True):
    """Database model"""

    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True)
    email: str = Field(unique=True, index=True, max_length=320)
    password_hash: str
    role: UserRole = Field(
        default=UserRole.USER, sa_column=enum_column(UserRole, "user_role", nullable=False)
    )
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )


class UserResponse(SQLModel):
    """Public user fields; the password hash never leaves the service"""

    id: str
    email: str
    role: UserRole
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class RegisterRequest(SQLModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=72)


class LoginRequest(SQLModel):
    email: EmailStr
    password: str = Field(min_length=1)


class AuthResponse(SQLModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class ProfileUpdate(SQLModel):
    email: EmailStr | None = None


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskBase(SQLModel):
    """Base model with shared fields"""

    title: str = Field(min_length=1, max_length=200, index=True)
    description: str | None = Field(default=None)


class Task(TaskBase, table=True):
    """Database model"""

    __tablename__ = "tasks"

    id: str = Field(default_factory=new_id, primary_key=True)
    status: TaskStatus = Field(
        default=TaskStatus.TODO,
        sa_column=enum_column(TaskStatus, "task_status", nullable=False),
    )
    creator_id: str = Field(foreign_key="users.id", nullable=False, index=True)
    assignee_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    creator: Optional[User] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "Task.creator_id", "lazy": "selectin"}
    )
    assignee: Optional[User] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "Task.assignee_id", "lazy": "selectin"}
    )


class TaskCreate(TaskBase):
    """Schema for creating a task"""

    pass


class TaskUpdate(SQLModel):
    """Schema for updating a task - all fields optional"""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    status: TaskStatus | None = None

    @field_validator("title", "status")
    @classmethod
    def reject_explicit_null(cls, v):
        """Title and status may be omitted but never cleared."""
        if v is None:
            msg = "Field may be omitted but not set to null"
            raise ValueError(msg)
        return v


class TaskAssign(SQLModel):
    """An empty or missing assignee_id unassigns the task"""

    assignee_id: str | None = None


class TaskResponse(TaskBase):
    """Schema for task responses"""

    id: str
    status: TaskStatus
    creator_id: str
    assignee_id: str | None = None
    creator: UserResponse | None = None
    assignee: UserResponse | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Event log
# ---------------------------------------------------------------------------


class EventLog(SQLModel, table=True):
    """Append-only record of user actions"""

    __tablename__ = "event_logs"

    id: int | None = Field(default=None, primary_key=True)
    timestamp: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    action: EventAction = Field(
        sa_column=enum_column(EventAction, "event_action", nullable=False)
    )
    user_id: str = Field(index=True)
    details: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))


class EventLogResponse(SQLModel):
    id: int
    timestamp: datetime
    action: EventAction
    user_id: str
    details: dict[str, Any]

    model_config = {"from_attributes": True}
