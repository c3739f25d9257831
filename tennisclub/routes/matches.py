import datetime
from fastapi import APIRouter, Depends
from pydantic import BaseModel, StrictInt
from ..services import matches as match_service
from ..services.auth import current_user
from ..services.exceptions import ServiceError
from ..services.helpers import get_match_or_404
from ..services.stats import window_for
from ..models import User

router = APIRouter()


class TiebreakIn(BaseModel):
    player1_score: StrictInt
    player2_score: StrictInt


class SetIn(BaseModel):
    player1_score: StrictInt
    player2_score: StrictInt
    tiebreak: TiebreakIn | None = None


class MatchCreate(BaseModel):
    match_type: str
    player2_id: str
    teammate_id: str | None = None
    opponent2_id: str | None = None
    match_date: datetime.date | None = None
    sets: list[SetIn] = []


class MatchSchedule(BaseModel):
    match_type: str
    player2_id: str
    teammate_id: str | None = None
    opponent2_id: str | None = None
    match_date: datetime.date | None = None


def month_bounds(month: str | None):
    """Return ``(start, end)`` for an optional ``YYYY-MM`` query value."""
    if not month:
        return None, None
    try:
        return window_for(month)
    except ValueError as e:
        raise ServiceError(str(e), 400)


@router.post("/matches")
def create_match_api(data: MatchCreate, user: User = Depends(current_user)):
    match = match_service.create_match(user, data)
    return {"status": match.status, "id": match.id}


@router.post("/matches/schedule")
def schedule_match_api(data: MatchSchedule, user: User = Depends(current_user)):
    match = match_service.schedule_match(user, data)
    return {"status": match.status, "id": match.id}


@router.get("/matches")
def list_matches_api(
    month: str | None = None,
    user_id: str | None = None,
    status: str | None = None,
    user: User = Depends(current_user),
):
    start, end = month_bounds(month)
    matches = match_service.list_matches(start, end, user_id=user_id, status=status)
    return [match_service.match_info(m) for m in matches]


@router.get("/matches/{match_id}")
def get_match_api(match_id: int, user: User = Depends(current_user)):
    return match_service.match_info(get_match_or_404(match_id))


@router.delete("/matches/{match_id}")
def delete_match_api(match_id: int, user: User = Depends(current_user)):
    match_service.delete_match(user, match_id)
    return {"status": "ok"}
