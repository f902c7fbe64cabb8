"""
Diary entries: filtered/paginated listing, CRUD and photo attachments.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timezone
from typing import Optional

from keepsake.albums import serialize_photo
from keepsake.db import DbClient, DiaryQuery, DiaryRecord, PhotoRecord, new_id
from keepsake.errors import NotFound, ValidationFailed
from keepsake.schemas import DiaryCreate, DiaryUpdate, pagination, parse_datetime

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def word_count(content: str) -> int:
    return len(content.split())


def _parse_bound(value: Optional[str], *, end: bool) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = parse_datetime(value)
    except ValueError as e:
        raise ValidationFailed(str(e)) from e
    # A bare date as the upper bound covers that whole day.
    if end and len(value.strip()) == 10:
        return datetime.combine(parsed.date(), time.max, tzinfo=timezone.utc)
    return parsed


class DiaryService:
    def __init__(self, db: DbClient):
        self.db = db

    def _photo_map(self, user_id: str, records: list[DiaryRecord]) -> dict[str, PhotoRecord]:
        wanted = list({pid for record in records for pid in record.attached_photos})
        return {photo.id: photo for photo in self.db.get_photos(user_id, wanted)}

    def serialize(self, record: DiaryRecord, photos: dict[str, PhotoRecord]) -> dict:
        payload = record.as_dict()
        payload["formattedDate"] = record.date.strftime("%Y-%m-%d")
        payload["wordCount"] = word_count(record.content)
        payload["attachedPhotos"] = [
            serialize_photo(photos[pid]) for pid in record.attached_photos if pid in photos
        ]
        return payload

    def _serialize_one(self, user_id: str, record: DiaryRecord) -> dict:
        return self.serialize(record, self._photo_map(user_id, [record]))

    def _require(self, user_id: str, diary_id: str) -> DiaryRecord:
        record = self.db.get_diary(user_id, diary_id)
        if record is None:
            raise NotFound("diary not found")
        return record

    def _check_photos(self, user_id: str, photo_ids: list[str]) -> None:
        if not photo_ids:
            return
        found = {photo.id for photo in self.db.get_photos(user_id, photo_ids)}
        if any(pid not in found for pid in photo_ids):
            raise NotFound("photo not found")

    def list(
        self,
        user_id: str,
        *,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        category: Optional[str] = None,
        mood: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        search: Optional[str] = None,
    ) -> dict:
        query = DiaryQuery(
            category=category or None,
            mood=mood or None,
            start=_parse_bound(start_date, end=False),
            end=_parse_bound(end_date, end=True),
            search=(search or "").strip() or None,
            page=page,
            limit=limit,
        )
        records, total = self.db.query_diaries(user_id, query)
        photos = self._photo_map(user_id, records)
        return {
            "diaries": [self.serialize(record, photos) for record in records],
            "pagination": pagination(page, limit, total),
        }

    def get(self, user_id: str, diary_id: str) -> dict:
        return self._serialize_one(user_id, self._require(user_id, diary_id))

    def create(self, user_id: str, payload: DiaryCreate) -> dict:
        self._check_photos(user_id, payload.attached_photos)
        record = DiaryRecord(
            id=new_id(),
            user_id=user_id,
            title=payload.title,
            content=payload.content,
            mood=payload.mood.value,
            category=payload.category,
            tags=payload.tags,
            is_public=payload.is_public,
            attached_photos=payload.attached_photos,
        )
        if payload.date is not None:
            record.date = payload.date
        created = self.db.create_diary(record)
        logger.info("Created diary %s for user %s", created.id, user_id)
        return self._serialize_one(user_id, created)

    def update(self, user_id: str, diary_id: str, payload: DiaryUpdate) -> dict:
        self._require(user_id, diary_id)
        changes = payload.to_changes()
        self._check_photos(user_id, changes.get("attached_photos", []))
        updated = self.db.update_diary(user_id, diary_id, changes)
        if updated is None:
            raise NotFound("diary not found")
        return self._serialize_one(user_id, updated)

    def delete(self, user_id: str, diary_id: str) -> None:
        if not self.db.delete_diary(user_id, diary_id):
            raise NotFound("diary not found")

    def categories(self, user_id: str) -> list[str]:
        return self.db.diary_categories(user_id)

    def tags(self, user_id: str) -> list[str]:
        return self.db.diary_tags(user_id)

    def attach_photos(self, user_id: str, diary_id: str, photo_ids: list[str]) -> dict:
        record = self._require(user_id, diary_id)
        photo_ids = list(dict.fromkeys(photo_ids))
        self._check_photos(user_id, photo_ids)
        attached = list(record.attached_photos)
        for photo_id in photo_ids:
            if photo_id not in attached:
                attached.append(photo_id)
        if attached != record.attached_photos:
            record = self.db.update_diary(user_id, diary_id, {"attached_photos": attached})
            if record is None:
                raise NotFound("diary not found")
        return self._serialize_one(user_id, record)

    def detach_photo(self, user_id: str, diary_id: str, photo_id: str) -> dict:
        record = self._require(user_id, diary_id)
        if photo_id in record.attached_photos:
            remaining = [pid for pid in record.attached_photos if pid != photo_id]
            record = self.db.update_diary(user_id, diary_id, {"attached_photos": remaining})
            if record is None:
                raise NotFound("diary not found")
        return self._serialize_one(user_id, record)
