import logging

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.errors import ConflictError, UnauthorizedError
from app.core.security import TokenSigner, hash_password, verify_password
from app.models import AuthResponse, User, UserResponse, UserRole

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: AsyncSession, signer: TokenSigner, bcrypt_rounds: int = 10):
        self.db = db
        self.signer = signer
        self.bcrypt_rounds = bcrypt_rounds

    async def _find_by_email(self, email: str) -> User | None:
        result = await self.db.exec(select(User).where(User.email == email))
        return result.first()

    def _issue(self, user: User) -> AuthResponse:
        payload = {"sub": user.id, "email": user.email, "role": UserRole(user.role).value}
        token = self.signer.sign(payload)
        return AuthResponse(access_token=token, user=UserResponse.model_validate(user))

    async def register(self, email: str, password: str) -> AuthResponse:
        if await self._find_by_email(email):
            logger.info("Registration rejected, email already registered")
            raise ConflictError("User with this email already exists")

        user = User(
            email=email,
            password_hash=hash_password(password, rounds=self.bcrypt_rounds),
            role=UserRole.USER,
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("Registered user %s", user.id)
        return self._issue(user)

    async def login(self, email: str, password: str) -> AuthResponse:
        user = await self._find_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login attempt")
            raise UnauthorizedError("Invalid credentials")
        return self._issue(user)

    async def validate_user(self, user_id: str) -> User:
        """Rehydrate the acting user from a verified token subject."""
        user = await self.db.get(User, user_id)
        if user is None:
            raise UnauthorizedError("User not found")
        return user
