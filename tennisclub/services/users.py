from __future__ import annotations
import logging
import secrets
from .exceptions import ServiceError
from ..cli import register_user, check_password, normalize_gender
from ..models import User, ROLES, ROLE_ADMIN, ROLE_USER
from ..storage import (
    load_users,
    get_user_by_email,
    insert_token,
    delete_token,
    create_user as create_user_record,
    save_user,
    delete_user as delete_user_record,
    list_matches,
    load_settings,
    transaction,
)
from .helpers import get_user_or_404
from .stats import lifetime_counters

logger = logging.getLogger(__name__)


def create_user(data) -> str:
    if not load_settings().allow_registration:
        raise ServiceError("Registration is closed", 403)
    users = load_users()
    try:
        user = register_user(users, data.email, data.name, data.password, data.gender)
    except ValueError as e:
        raise ServiceError(str(e), 400)
    try:
        with transaction() as conn:
            create_user_record(user, conn=conn)
    except Exception:
        users.pop(user.user_id, None)
        raise
    logger.info("registered user %s (%s)", user.user_id, user.role)
    return user.user_id


def login(email: str, password: str) -> tuple[str, str]:
    """Return ``(token, user_id)`` for valid credentials."""
    user = get_user_by_email(email)
    if not user or not check_password(user, password):
        logger.info("failed login for %s", email)
        raise ServiceError("Invalid credentials", 401)
    if not user.is_enabled:
        raise ServiceError("Account disabled", 403)
    token = secrets.token_hex(16)
    insert_token(token, user.user_id)
    return token, user.user_id


def logout(token: str) -> None:
    delete_token(token)


def user_info(user: User) -> dict[str, object]:
    return {
        "user_id": user.user_id,
        "email": user.email,
        "name": user.name,
        "gender": user.gender,
        "role": user.role,
        "is_enabled": user.is_enabled,
        "created_at": user.created_at.isoformat(),
        "total_points": user.total_points,
        "total_matches": user.total_matches,
        "won_matches": user.won_matches,
    }


def update_profile(user: User, name: str | None = None, gender: str | None = None) -> User:
    """Let a user change their own display name or gender."""
    new_name = user.name
    new_gender = user.gender
    if name is not None:
        new_name = name.strip()
        if not new_name:
            raise ServiceError("Name required", 400)
        for other in load_users().values():
            if other.user_id != user.user_id and other.name == new_name:
                raise ServiceError("Name already taken", 400)
    if gender is not None:
        try:
            new_gender = normalize_gender(gender)
        except ValueError as e:
            raise ServiceError(str(e), 400)
    # the user object is shared with the roster cache
    user.name = new_name
    user.gender = new_gender
    save_user(user)
    return user


def roster() -> list[dict[str, str]]:
    """Id and name of every enabled user, for opponent pickers."""
    return [
        {"user_id": u.user_id, "name": u.name}
        for u in load_users().values()
        if u.is_enabled
    ]


# ---- administration ----

def list_users(query: str | None = None) -> list[dict[str, object]]:
    """Users matching ``query`` by name or email, newest first."""
    q = query.strip().lower() if query else None
    result = []
    for u in load_users().values():
        if q and q not in u.name.lower() and q not in u.email.lower():
            continue
        result.append(user_info(u))
    result.sort(key=lambda x: x["created_at"], reverse=True)
    return result


def set_role(actor: User, user_id: str, role: str | None = None) -> User:
    """Set ``role`` or toggle between admin and user when it is omitted."""
    target = get_user_or_404(user_id)
    if role is None:
        role = ROLE_USER if target.is_admin else ROLE_ADMIN
    if role not in ROLES:
        raise ServiceError("Invalid role", 400)
    if target.user_id == actor.user_id and role != ROLE_ADMIN:
        raise ServiceError("Cannot remove your own admin role", 400)
    target.role = role
    save_user(target)
    logger.info("%s set role of %s to %s", actor.user_id, target.user_id, role)
    return target


def set_enabled(actor: User, user_id: str, enabled: bool | None = None) -> User:
    """Enable or disable an account, toggling when ``enabled`` is omitted."""
    target = get_user_or_404(user_id)
    if enabled is None:
        enabled = not target.is_enabled
    if target.user_id == actor.user_id and not enabled:
        raise ServiceError("Cannot disable yourself", 400)
    target.is_enabled = enabled
    save_user(target)
    logger.info("%s set enabled=%s for %s", actor.user_id, enabled, target.user_id)
    return target


def enable_by_email(actor: User, email: str) -> User:
    user = get_user_by_email(email)
    if not user:
        raise ServiceError("User not found", 404)
    return set_enabled(actor, user.user_id, True)


def delete_user(actor: User, user_id: str) -> None:
    """Delete an account and every match it took part in."""
    target = get_user_or_404(user_id)
    if target.user_id == actor.user_id:
        raise ServiceError("Cannot delete yourself", 400)
    with transaction() as conn:
        delete_user_record(target.user_id, conn=conn)
    logger.info("%s deleted user %s", actor.user_id, target.user_id)


def recompute_counters() -> int:
    """Rebuild lifetime counters from match history and persist them."""
    users = load_users()
    counters = lifetime_counters(list_matches(), users)
    changed = 0
    with transaction() as conn:
        for uid, values in counters.items():
            user = users[uid]
            if (
                user.total_points == values["total_points"]
                and user.total_matches == values["total_matches"]
                and user.won_matches == values["won_matches"]
            ):
                continue
            user.total_points = values["total_points"]
            user.total_matches = values["total_matches"]
            user.won_matches = values["won_matches"]
            save_user(user, conn=conn)
            changed += 1
    logger.info("recomputed lifetime counters for %d users", changed)
    return changed
