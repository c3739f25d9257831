from __future__ import annotations
import datetime
from fastapi import Header
from .exceptions import ServiceError
from .. import storage
from ..config import get_token_ttl_hours
from ..models import User

TOKEN_TTL = datetime.timedelta(hours=get_token_ttl_hours())


def require_auth(authorization: str | None = None) -> str:
    """Validate token from the ``Authorization`` header and return the user id."""
    if not authorization or not authorization.startswith("Bearer "):
        raise ServiceError("Invalid token", 401)

    token = authorization[7:]

    info = storage.get_token(token)
    if not info:
        raise ServiceError("Invalid token", 401)
    user_id, ts = info
    if datetime.datetime.utcnow() - ts > TOKEN_TTL:
        storage.delete_token(token)
        raise ServiceError("Token expired", 401)
    return user_id


def current_user(authorization: str | None = Header(None)) -> User:
    """FastAPI dependency returning the enabled caller."""
    uid = require_auth(authorization)
    user = storage.get_user(uid)
    if not user:
        raise ServiceError("Invalid token", 401)
    if not user.is_enabled:
        raise ServiceError("Account disabled", 403)
    return user


def require_admin(authorization: str | None = Header(None)) -> User:
    """The one authorization check in front of every admin operation."""
    user = current_user(authorization)
    if not user.is_admin:
        raise ServiceError("Not authorized", 403)
    return user
