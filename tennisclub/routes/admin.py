import datetime
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from ..services import users as user_service
from ..services import matches as match_service
from ..services.auth import require_admin
from ..models import User
from .matches import SetIn

router = APIRouter(prefix="/admin")


class RoleUpdate(BaseModel):
    role: str | None = None


class EnabledUpdate(BaseModel):
    enabled: bool | None = None


class EmailRequest(BaseModel):
    email: str


class MatchUpdate(BaseModel):
    match_date: datetime.date | None = None
    match_type: str | None = None
    player1_id: str | None = None
    player2_id: str | None = None
    teammate_id: str | None = None
    opponent2_id: str | None = None
    sets: list[SetIn] | None = None


class StatusUpdate(BaseModel):
    status: str


@router.get("/users")
def search_users(query: str | None = None, admin: User = Depends(require_admin)):
    return user_service.list_users(query)


@router.post("/users/enable")
def enable_user_by_email(data: EmailRequest, admin: User = Depends(require_admin)):
    user = user_service.enable_by_email(admin, data.email)
    return user_service.user_info(user)


@router.post("/users/{user_id}/role")
def update_role(user_id: str, data: RoleUpdate, admin: User = Depends(require_admin)):
    user = user_service.set_role(admin, user_id, data.role)
    return user_service.user_info(user)


@router.post("/users/{user_id}/enabled")
def update_enabled(user_id: str, data: EnabledUpdate, admin: User = Depends(require_admin)):
    user = user_service.set_enabled(admin, user_id, data.enabled)
    return user_service.user_info(user)


@router.delete("/users/{user_id}")
def remove_user(user_id: str, admin: User = Depends(require_admin)):
    user_service.delete_user(admin, user_id)
    return {"status": "ok"}


@router.patch("/matches/{match_id}")
def edit_match(match_id: int, data: MatchUpdate, admin: User = Depends(require_admin)):
    match = match_service.update_match(admin, match_id, data)
    return match_service.match_info(match)


@router.post("/matches/{match_id}/status")
def update_match_status(match_id: int, data: StatusUpdate, admin: User = Depends(require_admin)):
    match = match_service.set_status(admin, match_id, data.status)
    return match_service.match_info(match)
