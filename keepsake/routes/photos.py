from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.concurrency import run_in_threadpool

from keepsake.albums import DEFAULT_PHOTO_PAGE_SIZE, AlbumService, PhotoService
from keepsake.dependencies import (
    get_album_service,
    get_current_user_id,
    get_photo_service,
)
from keepsake.schemas import AlbumCreate, AlbumUpdate, ApiResponse
from keepsake.uploads import IncomingFile

router = APIRouter()


# Albums


@router.get("/albums", response_model=ApiResponse)
def list_albums(
    user_id: str = Depends(get_current_user_id),
    albums: AlbumService = Depends(get_album_service),
):
    return ApiResponse(data={"albums": albums.list(user_id)})


@router.post("/albums", response_model=ApiResponse, status_code=201)
def create_album(
    payload: AlbumCreate,
    user_id: str = Depends(get_current_user_id),
    albums: AlbumService = Depends(get_album_service),
):
    return ApiResponse(message="album created", data={"album": albums.create(user_id, payload)})


@router.put("/albums/{album_id}", response_model=ApiResponse)
def update_album(
    album_id: str,
    payload: AlbumUpdate,
    user_id: str = Depends(get_current_user_id),
    albums: AlbumService = Depends(get_album_service),
):
    album = albums.update(user_id, album_id, payload)
    return ApiResponse(message="album updated", data={"album": album})


@router.delete("/albums/{album_id}", response_model=ApiResponse)
def delete_album(
    album_id: str,
    user_id: str = Depends(get_current_user_id),
    albums: AlbumService = Depends(get_album_service),
):
    albums.delete(user_id, album_id)
    return ApiResponse(message="album deleted")


# Photos


@router.get("", response_model=ApiResponse)
def list_photos(
    album_id: str | None = Query(None, alias="albumId"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PHOTO_PAGE_SIZE, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    photos: PhotoService = Depends(get_photo_service),
):
    return ApiResponse(data=photos.list(user_id, album_id=album_id, page=page, limit=limit))


@router.post("/upload", response_model=ApiResponse, status_code=201)
async def upload_photos(
    photos: list[UploadFile] | None = File(None),
    album_id: str | None = Form(None, alias="albumId"),
    description: str | None = Form(None),
    tags: str | None = Form(None),
    user_id: str = Depends(get_current_user_id),
    service: PhotoService = Depends(get_photo_service),
):
    incoming = []
    for upload in photos or []:
        incoming.append(
            IncomingFile(
                filename=upload.filename or "",
                content_type=upload.content_type or "",
                data=await upload.read(),
            )
        )
    # Storage and image work is blocking; keep it off the event loop.
    result = await run_in_threadpool(
        service.upload,
        user_id,
        incoming,
        album_id=album_id,
        description=description,
        tags=tags,
    )
    return ApiResponse(message="photos uploaded", data=result)


@router.delete("/{photo_id}", response_model=ApiResponse)
def delete_photo(
    photo_id: str,
    user_id: str = Depends(get_current_user_id),
    photos: PhotoService = Depends(get_photo_service),
):
    photos.delete(user_id, photo_id)
    return ApiResponse(message="photo deleted")
