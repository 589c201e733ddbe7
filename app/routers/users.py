from fastapi import APIRouter

from app.core.errors import ForbiddenError
from app.dependencies import CurrentUser, UserServiceDep
from app.models import ProfileUpdate, UserResponse, UserRole

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/", response_model=list[UserResponse])
async def get_users(current_user: CurrentUser, users: UserServiceDep):
    """Any authenticated user may list users, e.g. to pick an assignee"""
    return await users.find_all()


@router.patch("/profile", response_model=UserResponse)
async def update_profile(data: ProfileUpdate, current_user: CurrentUser, users: UserServiceDep):
    return await users.update_profile(current_user.id, data)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, current_user: CurrentUser, users: UserServiceDep):
    if current_user.role != UserRole.ADMIN and current_user.id != user_id:
        raise ForbiddenError("Access denied")
    return await users.find_one(user_id)
