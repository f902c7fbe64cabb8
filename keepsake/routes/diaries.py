from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from keepsake.dependencies import get_current_user_id, get_diary_service
from keepsake.diaries import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, DiaryService
from keepsake.schemas import ApiResponse, AttachPhotosRequest, DiaryCreate, DiaryUpdate
from keepsake.types import Mood

router = APIRouter()


@router.get("", response_model=ApiResponse)
def list_diaries(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    category: str | None = Query(None),
    mood: Mood | None = Query(None),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    search: str | None = Query(None),
    user_id: str = Depends(get_current_user_id),
    diaries: DiaryService = Depends(get_diary_service),
):
    result = diaries.list(
        user_id,
        page=page,
        limit=limit,
        category=category,
        mood=mood.value if mood else None,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )
    return ApiResponse(data=result)


@router.post("", response_model=ApiResponse, status_code=201)
def create_diary(
    payload: DiaryCreate,
    user_id: str = Depends(get_current_user_id),
    diaries: DiaryService = Depends(get_diary_service),
):
    return ApiResponse(message="diary created", data={"diary": diaries.create(user_id, payload)})


# Declared before "/{diary_id}" so "meta" is not taken for an id.
@router.get("/meta/categories", response_model=ApiResponse)
def list_categories(
    user_id: str = Depends(get_current_user_id),
    diaries: DiaryService = Depends(get_diary_service),
):
    return ApiResponse(data={"categories": diaries.categories(user_id)})


@router.get("/meta/tags", response_model=ApiResponse)
def list_tags(
    user_id: str = Depends(get_current_user_id),
    diaries: DiaryService = Depends(get_diary_service),
):
    return ApiResponse(data={"tags": diaries.tags(user_id)})


@router.get("/{diary_id}", response_model=ApiResponse)
def get_diary(
    diary_id: str,
    user_id: str = Depends(get_current_user_id),
    diaries: DiaryService = Depends(get_diary_service),
):
    return ApiResponse(data={"diary": diaries.get(user_id, diary_id)})


@router.put("/{diary_id}", response_model=ApiResponse)
def update_diary(
    diary_id: str,
    payload: DiaryUpdate,
    user_id: str = Depends(get_current_user_id),
    diaries: DiaryService = Depends(get_diary_service),
):
    diary = diaries.update(user_id, diary_id, payload)
    return ApiResponse(message="diary updated", data={"diary": diary})


@router.delete("/{diary_id}", response_model=ApiResponse)
def delete_diary(
    diary_id: str,
    user_id: str = Depends(get_current_user_id),
    diaries: DiaryService = Depends(get_diary_service),
):
    diaries.delete(user_id, diary_id)
    return ApiResponse(message="diary deleted")


@router.post("/{diary_id}/photos", response_model=ApiResponse)
def attach_photos(
    diary_id: str,
    payload: AttachPhotosRequest,
    user_id: str = Depends(get_current_user_id),
    diaries: DiaryService = Depends(get_diary_service),
):
    diary = diaries.attach_photos(user_id, diary_id, payload.photo_ids)
    return ApiResponse(message="photos attached", data={"diary": diary})


@router.delete("/{diary_id}/photos/{photo_id}", response_model=ApiResponse)
def detach_photo(
    diary_id: str,
    photo_id: str,
    user_id: str = Depends(get_current_user_id),
    diaries: DiaryService = Depends(get_diary_service),
):
    diary = diaries.detach_photo(user_id, diary_id, photo_id)
    return ApiResponse(message="photo detached", data={"diary": diary})
