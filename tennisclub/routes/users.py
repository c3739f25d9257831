from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel
from ..services import users as user_service
from ..services.auth import current_user
from ..models import User

router = APIRouter()


class UserCreate(BaseModel):
    email: str
    password: str
    name: str
    gender: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ProfileUpdate(BaseModel):
    name: str | None = None
    gender: str | None = None


@router.post("/users")
def register_user_api(data: UserCreate):
    uid = user_service.create_user(data)
    return {"status": "ok", "user_id": uid}


@router.post("/login")
def login_api(data: LoginRequest):
    token, uid = user_service.login(data.email, data.password)
    return {"token": token, "user_id": uid}


@router.post("/logout")
def logout_api(authorization: str | None = Header(None), user: User = Depends(current_user)):
    user_service.logout(authorization[7:])
    return {"status": "ok"}


@router.get("/me")
def get_me(user: User = Depends(current_user)):
    return user_service.user_info(user)


@router.patch("/me")
def update_me(data: ProfileUpdate, user: User = Depends(current_user)):
    updated = user_service.update_profile(user, name=data.name, gender=data.gender)
    return user_service.user_info(updated)


@router.get("/users")
def list_roster(user: User = Depends(current_user)):
    return user_service.roster()
