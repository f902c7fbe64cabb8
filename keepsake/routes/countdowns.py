from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from keepsake.countdowns import CountdownService
from keepsake.dependencies import get_countdown_service, get_current_user_id
from keepsake.schemas import ApiResponse, CountdownCreate, CountdownUpdate
from keepsake.types import CountdownDirection, CountdownType

router = APIRouter()


@router.get("", response_model=ApiResponse)
def list_countdowns(
    type: CountdownType | None = Query(None),
    direction: CountdownDirection | None = Query(None),
    user_id: str = Depends(get_current_user_id),
    countdowns: CountdownService = Depends(get_countdown_service),
):
    items = countdowns.list(
        user_id,
        type=type.value if type else None,
        direction=direction.value if direction else None,
    )
    return ApiResponse(data={"countdowns": items})


@router.post("", response_model=ApiResponse, status_code=201)
def create_countdown(
    payload: CountdownCreate,
    user_id: str = Depends(get_current_user_id),
    countdowns: CountdownService = Depends(get_countdown_service),
):
    countdown = countdowns.create(user_id, payload)
    return ApiResponse(message="countdown created", data={"countdown": countdown})


@router.get("/{countdown_id}", response_model=ApiResponse)
def get_countdown(
    countdown_id: str,
    user_id: str = Depends(get_current_user_id),
    countdowns: CountdownService = Depends(get_countdown_service),
):
    return ApiResponse(data={"countdown": countdowns.get(user_id, countdown_id)})


@router.put("/{countdown_id}", response_model=ApiResponse)
def update_countdown(
    countdown_id: str,
    payload: CountdownUpdate,
    user_id: str = Depends(get_current_user_id),
    countdowns: CountdownService = Depends(get_countdown_service),
):
    countdown = countdowns.update(user_id, countdown_id, payload)
    return ApiResponse(message="countdown updated", data={"countdown": countdown})


@router.delete("/{countdown_id}", response_model=ApiResponse)
def delete_countdown(
    countdown_id: str,
    user_id: str = Depends(get_current_user_id),
    countdowns: CountdownService = Depends(get_countdown_service),
):
    countdowns.delete(user_id, countdown_id)
    return ApiResponse(message="countdown deleted")
