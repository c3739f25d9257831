from .exceptions import ServiceError
from ..storage import get_user, get_match
from ..models import Match, User


def get_user_or_404(user_id: str) -> User:
    user = get_user(user_id)
    if not user:
        raise ServiceError("User not found", 404)
    return user


def get_match_or_404(match_id: int) -> Match:
    match = get_match(match_id)
    if not match:
        raise ServiceError("Match not found", 404)
    return match
