from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from pydantic import ValidationError

from errors import BadRequest, Unauthorized
from schemas import Principal, User

JWT_ALGO = "HS256"
DEFAULT_ROUNDS = 10
# bcrypt ignores (newer releases reject) anything past 72 bytes.
MAX_PASSWORD_BYTES = 72


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    raw = password.encode()
    if len(raw) > MAX_PASSWORD_BYTES:
        raise BadRequest(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(raw, salt).decode()


def verify_password(password: str, password_hash: str) -> bool:
    raw = password.encode()
    if len(raw) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(raw, password_hash.encode())
    except ValueError:
        # malformed stored hash
        return False


class SessionIssuer:
    """Issues and verifies signed, expiring access tokens."""

    def __init__(self, secret: str, expires_minutes: int = 7 * 24 * 60):
        if not secret:
            raise ValueError("a signing secret is required")
        self._secret = secret
        self.expires = timedelta(minutes=expires_minutes)

    def issue(self, user: User) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "name": user.name,
            "role": user.role.value,
            "iat": now,
            "exp": now + self.expires,
        }
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGO)

    def verify(self, token: str) -> Principal:
        # Every failure looks the same to the caller.
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGO],
                options={"require": ["sub", "exp"]},
            )
            return Principal(id=payload["sub"], name=payload["name"], role=payload["role"])
        except (jwt.PyJWTError, KeyError, TypeError, ValidationError):
            raise Unauthorized("Invalid token") from None
