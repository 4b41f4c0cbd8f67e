"""Access tokens shared with the platform's auth service.

The platform signs HS256 JWTs whose ``sub`` is the numeric user id; this
service only verifies them. ``create_access_token`` exists for local tooling
and tests.
"""
import datetime as dt
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt

from calmspace.core.config import settings


class InvalidTokenError(ValueError):
    """Token is missing, malformed, expired or carries no usable user id."""


def create_access_token(user_id: int, *, expires_minutes: Optional[int] = None) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    lifetime = dt.timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    )
    claims = {"sub": str(user_id), "iat": now, "exp": now + lifetime}
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def user_id_from_token(token: str) -> int:
    try:
        claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        raise InvalidTokenError("Token expired") from e
    except JWTError as e:
        raise InvalidTokenError("Invalid token") from e

    subject = str(claims.get("sub") or "")
    if not subject.isdigit():
        raise InvalidTokenError("Token has no user id")
    return int(subject)
