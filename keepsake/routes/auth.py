from __future__ import annotations

from fastapi import APIRouter, Depends

from keepsake.auth import UserService
from keepsake.dependencies import get_current_user_id, get_user_service
from keepsake.schemas import (
    ApiResponse,
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
)

router = APIRouter()


@router.post("/register", response_model=ApiResponse, status_code=201)
def register(payload: RegisterRequest, users: UserService = Depends(get_user_service)):
    return ApiResponse(message="registered", data=users.register(payload))


@router.post("/login", response_model=ApiResponse)
def login(payload: LoginRequest, users: UserService = Depends(get_user_service)):
    return ApiResponse(message="logged in", data=users.login(payload))


@router.get("/profile", response_model=ApiResponse)
def get_profile(
    user_id: str = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
):
    return ApiResponse(data={"user": users.profile(user_id)})


@router.put("/profile", response_model=ApiResponse)
def update_profile(
    payload: ProfileUpdate,
    user_id: str = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
):
    user = users.update_profile(user_id, payload)
    return ApiResponse(message="profile updated", data={"user": user})


@router.post("/change-password", response_model=ApiResponse)
def change_password(
    payload: ChangePasswordRequest,
    user_id: str = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
):
    users.change_password(user_id, payload)
    return ApiResponse(message="password changed")
