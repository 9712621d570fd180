from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

import store
from database import get_db
from errors import NotAuthenticated


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str] = None


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[CurrentUser]:
    """Signed-in user for the request, or None for anonymous callers."""
    token = _bearer_token(authorization)
    if token is None:
        return None
    profile = store.get_session_profile(db, token)
    if profile is None:
        return None
    return CurrentUser(id=profile.id, email=profile.email)


def require_user(user: Optional[CurrentUser] = Depends(get_current_user)) -> CurrentUser:
    if user is None:
        raise NotAuthenticated()
    return user
