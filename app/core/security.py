"""Password hashing and bearer token signing."""

import logging

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def hash_password(password: str, rounds: int = 10) -> str:
    """One-way salted bcrypt hash; `rounds` is the bcrypt work factor."""
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        logger.warning("Stored password hash could not be parsed")
        return False


class TokenSigner:
    """
    Issues and verifies signed bearer tokens carrying {sub, email, role}.

    Tokens are timestamped by itsdangerous and rejected once older than
    `max_age` seconds.
    """

    def __init__(self, secret_key: str, max_age: int, salt: str = "access-token"):
        self._serializer = URLSafeTimedSerializer(secret_key, salt=salt)
        self.max_age = max_age

    def sign(self, payload: dict) -> str:
        return self._serializer.dumps(payload)

    def verify(self, token: str) -> dict:
        try:
            payload = self._serializer.loads(token, max_age=self.max_age)
        except SignatureExpired as err:
            raise UnauthorizedError("Token expired") from err
        except BadSignature as err:
            raise UnauthorizedError("Invalid token") from err

        if not isinstance(payload, dict) or not payload.get("sub"):
            raise UnauthorizedError("Invalid token")
        return payload
