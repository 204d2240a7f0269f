from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from backend.core import config


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: str | None


class InvalidSubject(jwt.InvalidTokenError):
    pass


def create_access_token(user_id: int, role: str, expires_minutes: int | None = None) -> str:
    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    payload = {"sub": str(user_id), "role": role, "iat": issued_at, "exp": issued_at + lifetime}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> TokenClaims:
    """Verify ``token`` and return the acting user's id and role.

    Raises ``jwt.PyJWTError`` for a bad signature or expiry and
    ``InvalidSubject`` when ``sub`` is not a numeric user id.
    """
    payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise InvalidSubject("Token subject is not a user id")

    return TokenClaims(user_id=int(subject), role=payload.get("role"))
