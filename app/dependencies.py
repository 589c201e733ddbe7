from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel.ext.asyncio.session import AsyncSession
from typing_extensions import Annotated

from app.cache.layer import CacheLayer, cache_layer
from app.core.config import SettingsDep
from app.core.errors import UnauthorizedError
from app.core.security import TokenSigner
from app.database import get_db
from app.models import User
from app.realtime.broadcaster import NotificationBroadcaster, broadcaster
from app.services.auth_service import AuthService
from app.services.event_log_service import EventLogService
from app.services.task_service import TaskService
from app.services.user_service import UserService

DbDep = Annotated[AsyncSession, Depends(get_db)]

bearer_scheme = HTTPBearer(auto_error=False)


def get_cache() -> CacheLayer:
    return cache_layer


def get_broadcaster() -> NotificationBroadcaster:
    return broadcaster


def get_token_signer(settings: SettingsDep) -> TokenSigner:
    return TokenSigner(settings.secret_key, max_age=settings.access_token_ttl_seconds)


def get_auth_service(
    db: DbDep,
    settings: SettingsDep,
    signer: TokenSigner = Depends(get_token_signer),
) -> AuthService:
    return AuthService(db, signer, bcrypt_rounds=settings.bcrypt_rounds)


def get_event_log_service(db: DbDep, settings: SettingsDep) -> EventLogService:
    return EventLogService(db, default_limit=settings.event_log_limit)


def get_user_service(db: DbDep) -> UserService:
    return UserService(db)


def get_task_service(
    db: DbDep,
    settings: SettingsDep,
    cache: CacheLayer = Depends(get_cache),
    events: EventLogService = Depends(get_event_log_service),
    notifier: NotificationBroadcaster = Depends(get_broadcaster),
) -> TaskService:
    return TaskService(db, cache, events, notifier, cache_ttl=settings.tasks_cache_ttl_seconds)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    signer: TokenSigner = Depends(get_token_signer),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    """Resolve the bearer token to the acting user, re-read on every request."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Missing bearer token")
    payload = signer.verify(credentials.credentials)
    return await auth.validate_user(payload["sub"])


CurrentUser = Annotated[User, Depends(get_current_user)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]
TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]
EventLogServiceDep = Annotated[EventLogService, Depends(get_event_log_service)]
