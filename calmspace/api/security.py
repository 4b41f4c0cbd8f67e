from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from calmspace.api.dependencies import get_db
from calmspace.models.user import User
from calmspace.services.access_tokens import InvalidTokenError, user_id_from_token

_bearer = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the caller from a platform-issued bearer token."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        user_id = user_id_from_token(credentials.credentials)
    except InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e))

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user
