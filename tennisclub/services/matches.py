from __future__ import annotations
import datetime
import logging
from .exceptions import ServiceError
from .helpers import get_match_or_404
from .. import scoring, storage
from ..models import (
    Match,
    User,
    DOUBLES_TYPES,
    MATCH_STATUSES,
    STATUS_COMPLETED,
    STATUS_PENDING,
)

logger = logging.getLogger(__name__)


def _check_players(match_type, player1_id, player2_id, teammate_id, opponent2_id) -> None:
    try:
        scoring.validate_participants(match_type, player1_id, player2_id, teammate_id, opponent2_id)
    except ValueError as e:
        raise ServiceError(str(e), 400)
    users = storage.load_users()
    for uid in (player1_id, player2_id, teammate_id, opponent2_id):
        if uid and uid not in users:
            raise ServiceError(f"Unknown player {uid}", 400)


def _parse_sets(raw_sets, match_type: str):
    raw = [s.model_dump() if hasattr(s, "model_dump") else s for s in raw_sets or []]
    try:
        return scoring.parse_sets(raw, match_type)
    except ValueError as e:
        raise ServiceError(str(e), 400)


def _check_daily_limit(actor: User, match_date: datetime.date) -> None:
    limit = storage.load_settings().max_matches_per_day
    if limit and storage.count_matches_created(actor.user_id, match_date) >= limit:
        raise ServiceError("Daily match limit reached", 400)


def match_info(match: Match) -> dict[str, object]:
    users = storage.load_users()

    def name(uid):
        if not uid:
            return None
        user = users.get(uid)
        return user.name if user else None

    sets = []
    for s in match.sets:
        item: dict[str, object] = {"player1_score": s.player1_score, "player2_score": s.player2_score}
        if s.tiebreak is not None:
            item["tiebreak"] = {
                "player1_score": s.tiebreak.player1_score,
                "player2_score": s.tiebreak.player2_score,
            }
        sets.append(item)
    return {
        "id": match.id,
        "match_date": match.match_date.isoformat(),
        "match_type": match.match_type,
        "player1_id": match.player1_id,
        "player1_name": name(match.player1_id),
        "teammate_id": match.teammate_id,
        "teammate_name": name(match.teammate_id),
        "player2_id": match.player2_id,
        "player2_name": name(match.player2_id),
        "opponent2_id": match.opponent2_id,
        "opponent2_name": name(match.opponent2_id),
        "sets": sets,
        "player1_score": match.player1_score,
        "player2_score": match.player2_score,
        "status": match.status,
        "created_by": match.created_by,
        "created_at": match.created_at.isoformat(),
    }


def create_match(actor: User, data) -> Match:
    """Record a completed scorecard submitted by ``actor``.

    The submitter is always side A's first player. When the club requires
    approval the match starts out pending.
    """
    match_date = data.match_date or datetime.date.today()
    _check_players(data.match_type, actor.user_id, data.player2_id, data.teammate_id, data.opponent2_id)
    sets = _parse_sets(data.sets, data.match_type)
    if not sets:
        raise ServiceError("At least one set is required", 400)
    _check_daily_limit(actor, match_date)
    status = STATUS_PENDING if storage.load_settings().match_approval_required else STATUS_COMPLETED
    match = Match(
        match_date=match_date,
        match_type=data.match_type,
        player1_id=actor.user_id,
        player2_id=data.player2_id,
        teammate_id=data.teammate_id,
        opponent2_id=data.opponent2_id,
        sets=sets,
        status=status,
        created_by=actor.user_id,
    )
    scoring.apply_totals(match)
    storage.create_match(match)
    logger.info("match %s recorded by %s (%s)", match.id, actor.user_id, status)
    return match


def schedule_match(actor: User, data) -> Match:
    """Create a pending match without scores."""
    match_date = data.match_date or datetime.date.today()
    _check_players(data.match_type, actor.user_id, data.player2_id, data.teammate_id, data.opponent2_id)
    _check_daily_limit(actor, match_date)
    match = Match(
        match_date=match_date,
        match_type=data.match_type,
        player1_id=actor.user_id,
        player2_id=data.player2_id,
        teammate_id=data.teammate_id,
        opponent2_id=data.opponent2_id,
        status=STATUS_PENDING,
        created_by=actor.user_id,
    )
    storage.create_match(match)
    logger.info("match %s scheduled by %s", match.id, actor.user_id)
    return match


def list_matches(
    start: datetime.date | None = None,
    end: datetime.date | None = None,
    user_id: str | None = None,
    status: str | None = None,
) -> list[Match]:
    if status is not None and status not in MATCH_STATUSES:
        raise ServiceError("Invalid status", 400)
    return storage.list_matches(start, end, user_id=user_id, status=status)


def update_match(actor: User, match_id: int, changes) -> Match:
    """Administrator edit of players, date, type or sets."""
    match = get_match_or_404(match_id)
    fields = changes.model_dump(exclude_unset=True)
    for key in ("match_date", "match_type", "player1_id", "player2_id", "teammate_id", "opponent2_id"):
        if key in fields and fields[key] is not None:
            setattr(match, key, fields[key])
    # switching to singles drops the second slot on each side
    if "match_type" in fields and match.match_type not in DOUBLES_TYPES:
        if "teammate_id" not in fields:
            match.teammate_id = None
        if "opponent2_id" not in fields:
            match.opponent2_id = None
    if "teammate_id" in fields and fields["teammate_id"] is None:
        match.teammate_id = None
    if "opponent2_id" in fields and fields["opponent2_id"] is None:
        match.opponent2_id = None
    _check_players(match.match_type, match.player1_id, match.player2_id, match.teammate_id, match.opponent2_id)
    if fields.get("sets") is not None:
        match.sets = _parse_sets(fields["sets"], match.match_type)
    else:
        try:
            scoring.validate_sets(match.sets, match.match_type)
        except ValueError as e:
            raise ServiceError(str(e), 400)
    scoring.apply_totals(match)
    storage.update_match(match)
    logger.info("match %s updated by %s", match.id, actor.user_id)
    return match


def set_status(actor: User, match_id: int, status: str) -> Match:
    if status not in MATCH_STATUSES:
        raise ServiceError("Invalid status", 400)
    match = get_match_or_404(match_id)
    if status == STATUS_COMPLETED and not match.sets:
        raise ServiceError("Cannot complete a match without sets", 400)
    match.status = status
    storage.update_match(match)
    logger.info("match %s marked %s by %s", match.id, status, actor.user_id)
    return match


def delete_match(actor: User, match_id: int) -> None:
    """Delete a match as its creator, a participant or an administrator."""
    match = get_match_or_404(match_id)
    allowed = (
        actor.is_admin
        or actor.user_id == match.created_by
        or actor.user_id in scoring.participants(match)
    )
    if not allowed:
        raise ServiceError("Not authorized", 403)
    storage.delete_match(match.id)
    logger.info("match %s deleted by %s", match.id, actor.user_id)
