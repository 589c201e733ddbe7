from datetime import datetime, timezone

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.errors import ConflictError, NotFoundError
from app.models import ProfileUpdate, User


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_all(self) -> list[User]:
        result = await self.db.exec(select(User).order_by(User.created_at))
        return list(result.all())

    async def find_one(self, user_id: str) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def update_profile(self, user_id: str, data: ProfileUpdate) -> User:
        user = await self.find_one(user_id)

        if data.email:
            result = await self.db.exec(select(User).where(User.email == data.email))
            existing = result.first()
            if existing is not None and existing.id != user_id:
                raise ConflictError("Email already in use")
            user.email = data.email
            user.updated_at = datetime.now(timezone.utc)

        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user
