"""
Albums and photos.

Deleting an album cascades to its photos (records and stored files). The
cascade is not atomic: a crash part-way can leave orphaned files or rows.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from keepsake.db import AlbumRecord, DbClient, PhotoRecord, new_id
from keepsake.errors import NotFound, ValidationFailed
from keepsake.schemas import AlbumCreate, AlbumUpdate, clean_tags, pagination
from keepsake.uploads import IncomingFile, UploadProcessor

logger = logging.getLogger(__name__)

DEFAULT_ALBUM_NAME = "Default album"
DEFAULT_PHOTO_PAGE_SIZE = 20
_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def format_size(size: int) -> str:
    if size <= 0:
        return "0 Byte"
    exponent = 0
    value = float(size)
    while value >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[exponent]}"


def serialize_photo(record: PhotoRecord) -> dict:
    payload = record.as_dict()
    payload["sizeFormatted"] = format_size(record.size)
    return payload


def parse_tags_field(raw: Optional[str]) -> list[str]:
    """Tags arrive as a JSON array inside a multipart form; anything unparsable is ignored."""
    if not raw:
        return []
    try:
        tags = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(tags, list):
        return []
    try:
        return clean_tags([str(tag) for tag in tags])
    except ValueError as e:
        raise ValidationFailed(str(e)) from e


class AlbumService:
    def __init__(self, db: DbClient, uploads: UploadProcessor):
        self.db = db
        self.uploads = uploads

    def _require(self, user_id: str, album_id: str) -> AlbumRecord:
        album = self.db.get_album(user_id, album_id)
        if album is None:
            raise NotFound("album not found")
        return album

    def serialize(self, album: AlbumRecord, photo_count: int = 0) -> dict:
        payload = album.as_dict()
        payload["photoCount"] = photo_count
        return payload

    def list(self, user_id: str) -> list[dict]:
        counts = self.db.count_photos_by_album(user_id)
        return [
            self.serialize(album, counts.get(album.id, 0))
            for album in self.db.list_albums(user_id)
        ]

    def create(self, user_id: str, payload: AlbumCreate) -> dict:
        album = self.db.create_album(
            AlbumRecord(
                id=new_id(),
                user_id=user_id,
                name=payload.name,
                description=payload.description,
                is_default=payload.is_default,
            )
        )
        if album.is_default:
            self.db.clear_default_albums(user_id, except_id=album.id)
        logger.info("Created album %s for user %s", album.id, user_id)
        return self.serialize(album)

    def update(self, user_id: str, album_id: str, payload: AlbumUpdate) -> dict:
        self._require(user_id, album_id)
        changes = payload.to_changes()
        cover = changes.get("cover_photo")
        if cover and self.db.get_photo(user_id, cover) is None:
            raise NotFound("photo not found")
        album = self.db.update_album(user_id, album_id, changes)
        if album is None:
            raise NotFound("album not found")
        if changes.get("is_default"):
            self.db.clear_default_albums(user_id, except_id=album_id)
        counts = self.db.count_photos_by_album(user_id)
        return self.serialize(album, counts.get(album_id, 0))

    def delete(self, user_id: str, album_id: str) -> None:
        album = self._require(user_id, album_id)
        if album.is_default:
            raise ValidationFailed("cannot delete the default album")

        photos = self.db.list_photos(user_id, album_id)
        for photo in photos:
            self.uploads.remove(photo.path)
        self.db.remove_photos_from_diaries(user_id, [photo.id for photo in photos])
        removed = self.db.delete_photos_in_album(user_id, album_id)
        self.db.delete_album(user_id, album_id)
        logger.info(
            "Deleted album %s for user %s with %d photos", album_id, user_id, removed
        )

    def resolve_for_upload(self, user_id: str, album_id: Optional[str]) -> AlbumRecord:
        """The named album, or the caller's default album (created on first use)."""
        if album_id:
            return self._require(user_id, album_id)
        album = self.db.get_default_album(user_id)
        if album is not None:
            return album
        album = self.db.create_album(
            AlbumRecord(
                id=new_id(),
                user_id=user_id,
                name=DEFAULT_ALBUM_NAME,
                is_default=True,
            )
        )
        logger.info("Created default album %s for user %s", album.id, user_id)
        return album


class PhotoService:
    def __init__(self, db: DbClient, uploads: UploadProcessor, albums: AlbumService):
        self.db = db
        self.uploads = uploads
        self.albums = albums

    def list(
        self,
        user_id: str,
        *,
        album_id: Optional[str] = None,
        page: int = 1,
        limit: int = DEFAULT_PHOTO_PAGE_SIZE,
    ) -> dict:
        records, total = self.db.query_photos(user_id, album_id or None, page, limit)
        return {
            "photos": [serialize_photo(record) for record in records],
            "pagination": pagination(page, limit, total),
        }

    def upload(
        self,
        user_id: str,
        files: list[IncomingFile],
        *,
        album_id: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[str] = None,
    ) -> dict:
        description = (description or "").strip()
        if len(description) > 200:
            raise ValidationFailed("description must be at most 200 characters")
        tag_list = parse_tags_field(tags)
        # A named album must exist before anything is stored; the default one is
        # only resolved (and possibly created) once a file has been accepted.
        album = self.albums.resolve_for_upload(user_id, album_id) if album_id else None

        result = self.uploads.process(files)
        if not result.stored:
            reasons = "; ".join(f"{r.filename}: {r.reason}" for r in result.rejected)
            raise ValidationFailed(f"no photos were accepted ({reasons})")
        if album is None:
            album = self.albums.resolve_for_upload(user_id, None)

        photos = []
        for stored in result.stored:
            photo = self.db.create_photo(
                PhotoRecord(
                    id=new_id(),
                    user_id=user_id,
                    album_id=album.id,
                    filename=stored.filename,
                    original_name=stored.original_name,
                    path=stored.key,
                    url=stored.url,
                    thumbnail_url=stored.thumbnail_url,
                    size=stored.size,
                    mimetype=stored.mimetype,
                    description=description,
                    tags=list(tag_list),
                    exif=stored.exif,
                )
            )
            photos.append(serialize_photo(photo))
        logger.info(
            "Stored %d photos (%d rejected) in album %s for user %s",
            len(photos),
            len(result.rejected),
            album.id,
            user_id,
        )
        return {
            "photos": photos,
            "rejected": [r.as_dict() for r in result.rejected],
        }

    def delete(self, user_id: str, photo_id: str) -> None:
        photo = self.db.get_photo(user_id, photo_id)
        if photo is None:
            raise NotFound("photo not found")
        self.uploads.remove(photo.path)
        self.db.delete_photo(user_id, photo_id)
        self.db.clear_cover_photo(user_id, photo_id)
        self.db.remove_photos_from_diaries(user_id, [photo_id])
