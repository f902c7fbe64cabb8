"""
Database abstraction for SQL backends and an in-memory test implementation.

Every collection except users is owned by exactly one user; all reads and
writes below take the owning ``user_id`` and filter by it.
"""

from __future__ import annotations

import copy
import threading
import uuid
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Type, TypeVar

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    func,
    or_,
    select,
    text,
    update,
)
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def _iso(value: Optional[datetime | date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class UserRecord:
    id: str
    username: str
    email: str
    password_hash: str
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class DiaryRecord:
    id: str
    user_id: str
    title: str
    content: str
    category: str
    mood: str = "happy"
    tags: list[str] = field(default_factory=list)
    date: datetime = field(default_factory=_utcnow)
    is_public: bool = False
    attached_photos: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user": self.user_id,
            "title": self.title,
            "content": self.content,
            "mood": self.mood,
            "category": self.category,
            "tags": list(self.tags),
            "date": _iso(self.date),
            "isPublic": self.is_public,
            "attachedPhotos": list(self.attached_photos),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class AlbumRecord:
    id: str
    user_id: str
    name: str
    description: str = ""
    cover_photo: str = ""
    is_default: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user": self.user_id,
            "name": self.name,
            "description": self.description,
            "coverPhoto": self.cover_photo,
            "isDefault": self.is_default,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class PhotoRecord:
    id: str
    user_id: str
    album_id: str
    filename: str
    original_name: str
    path: str
    url: str
    thumbnail_url: str
    size: int
    mimetype: str
    compressed_url: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    location: Optional[dict] = None
    exif: Optional[dict] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user": self.user_id,
            "album": self.album_id,
            "filename": self.filename,
            "originalName": self.original_name,
            "path": self.path,
            "url": self.url,
            "thumbnailUrl": self.thumbnail_url,
            "compressedUrl": self.compressed_url,
            "size": self.size,
            "mimetype": self.mimetype,
            "description": self.description,
            "tags": list(self.tags),
            "location": self.location,
            "exif": self.exif,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class CountdownRecord:
    id: str
    user_id: str
    title: str
    target_date: date
    direction: str
    type: str = "other"
    description: str = ""
    is_recurring: bool = False
    recurring_type: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user": self.user_id,
            "title": self.title,
            "description": self.description,
            "targetDate": _iso(self.target_date),
            "type": self.type,
            "direction": self.direction,
            "isRecurring": self.is_recurring,
            "recurringType": self.recurring_type,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class DiaryQuery:
    category: Optional[str] = None
    mood: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    search: Optional[str] = None
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class DbClient(Protocol):
    """Interface for database access."""

    # Users
    def create_user(self, record: UserRecord) -> UserRecord:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    def find_user_conflict(
        self, username: str, email: str, exclude_id: str | None = None
    ) -> Optional[UserRecord]:
        ...

    def update_user(self, user_id: str, changes: dict) -> Optional[UserRecord]:
        ...

    # Diaries
    def create_diary(self, record: DiaryRecord) -> DiaryRecord:
        ...

    def get_diary(self, user_id: str, diary_id: str) -> Optional[DiaryRecord]:
        ...

    def update_diary(
        self, user_id: str, diary_id: str, changes: dict
    ) -> Optional[DiaryRecord]:
        ...

    def delete_diary(self, user_id: str, diary_id: str) -> bool:
        ...

    def query_diaries(
        self, user_id: str, query: DiaryQuery
    ) -> tuple[list[DiaryRecord], int]:
        ...

    def list_diaries(self, user_id: str) -> list[DiaryRecord]:
        ...

    def diary_categories(self, user_id: str) -> list[str]:
        ...

    def diary_tags(self, user_id: str) -> list[str]:
        ...

    # Albums
    def create_album(self, record: AlbumRecord) -> AlbumRecord:
        ...

    def get_album(self, user_id: str, album_id: str) -> Optional[AlbumRecord]:
        ...

    def get_default_album(self, user_id: str) -> Optional[AlbumRecord]:
        ...

    def list_albums(self, user_id: str) -> list[AlbumRecord]:
        ...

    def update_album(
        self, user_id: str, album_id: str, changes: dict
    ) -> Optional[AlbumRecord]:
        ...

    def clear_default_albums(self, user_id: str, except_id: str | None = None) -> int:
        ...

    def clear_cover_photo(self, user_id: str, photo_id: str) -> int:
        ...

    def remove_photos_from_diaries(self, user_id: str, photo_ids: list[str]) -> int:
        """Drop the given photo ids from every diary's attachedPhotos; returns diaries touched."""
        ...

    def delete_album(self, user_id: str, album_id: str) -> bool:
        ...

    # Photos
    def create_photo(self, record: PhotoRecord) -> PhotoRecord:
        ...

    def get_photo(self, user_id: str, photo_id: str) -> Optional[PhotoRecord]:
        ...

    def get_photos(self, user_id: str, photo_ids: list[str]) -> list[PhotoRecord]:
        ...

    def query_photos(
        self, user_id: str, album_id: str | None, page: int, limit: int
    ) -> tuple[list[PhotoRecord], int]:
        ...

    def list_photos(
        self, user_id: str, album_id: str | None = None
    ) -> list[PhotoRecord]:
        ...

    def count_photos_by_album(self, user_id: str) -> dict[str, int]:
        ...

    def delete_photo(self, user_id: str, photo_id: str) -> bool:
        ...

    def delete_photos_in_album(self, user_id: str, album_id: str) -> int:
        ...

    # Countdowns
    def create_countdown(self, record: CountdownRecord) -> CountdownRecord:
        ...

    def get_countdown(
        self, user_id: str, countdown_id: str
    ) -> Optional[CountdownRecord]:
        ...

    def list_countdowns(
        self,
        user_id: str,
        type: str | None = None,
        direction: str | None = None,
    ) -> list[CountdownRecord]:
        ...

    def update_countdown(
        self, user_id: str, countdown_id: str, changes: dict
    ) -> Optional[CountdownRecord]:
        ...

    def delete_countdown(self, user_id: str, countdown_id: str) -> bool:
        ...

    def ping(self) -> None:
        ...

    def close(self) -> None:
        ...


RecordT = TypeVar("RecordT")


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self._lock = threading.RLock()
        self.users: Dict[str, UserRecord] = {}
        self.diaries: Dict[str, DiaryRecord] = {}
        self.albums: Dict[str, AlbumRecord] = {}
        self.photos: Dict[str, PhotoRecord] = {}
        self.countdowns: Dict[str, CountdownRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            self.diaries.clear()
            self.albums.clear()
            self.photos.clear()
            self.countdowns.clear()

    # Records handed out are copies so callers can't mutate stored state.
    def _insert(self, table: dict, record: RecordT) -> RecordT:
        with self._lock:
            table[record.id] = copy.deepcopy(record)
            return copy.deepcopy(record)

    def _owned(self, table: dict, user_id: str, record_id: str):
        record = table.get(record_id)
        if record is None or record.user_id != user_id:
            return None
        return record

    def _get(self, table: dict, user_id: str, record_id: str):
        with self._lock:
            record = self._owned(table, user_id, record_id)
            return copy.deepcopy(record) if record else None

    def _update(self, table: dict, user_id: str, record_id: str, changes: dict):
        with self._lock:
            record = self._owned(table, user_id, record_id)
            if record is None:
                return None
            for key, value in changes.items():
                setattr(record, key, copy.deepcopy(value))
            record.updated_at = _utcnow()
            return copy.deepcopy(record)

    def _delete(self, table: dict, user_id: str, record_id: str) -> bool:
        with self._lock:
            if self._owned(table, user_id, record_id) is None:
                return False
            del table[record_id]
            return True

    def _select(self, table: dict, user_id: str, predicate=None) -> list:
        with self._lock:
            return [
                copy.deepcopy(record)
                for record in table.values()
                if record.user_id == user_id and (predicate is None or predicate(record))
            ]

    def create_user(self, record: UserRecord) -> UserRecord:
        return self._insert(self.users, record)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            record = self.users.get(user_id)
            return copy.deepcopy(record) if record else None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self._lock:
            for record in self.users.values():
                if record.email == email:
                    return copy.deepcopy(record)
        return None

    def find_user_conflict(
        self, username: str, email: str, exclude_id: str | None = None
    ) -> Optional[UserRecord]:
        with self._lock:
            for record in self.users.values():
                if record.id == exclude_id:
                    continue
                if record.email == email or record.username == username:
                    return copy.deepcopy(record)
        return None

    def update_user(self, user_id: str, changes: dict) -> Optional[UserRecord]:
        with self._lock:
            record = self.users.get(user_id)
            if record is None:
                return None
            for key, value in changes.items():
                setattr(record, key, value)
            record.updated_at = _utcnow()
            return copy.deepcopy(record)

    def create_diary(self, record: DiaryRecord) -> DiaryRecord:
        return self._insert(self.diaries, record)

    def get_diary(self, user_id: str, diary_id: str) -> Optional[DiaryRecord]:
        return self._get(self.diaries, user_id, diary_id)

    def update_diary(
        self, user_id: str, diary_id: str, changes: dict
    ) -> Optional[DiaryRecord]:
        return self._update(self.diaries, user_id, diary_id, changes)

    def delete_diary(self, user_id: str, diary_id: str) -> bool:
        return self._delete(self.diaries, user_id, diary_id)

    def query_diaries(
        self, user_id: str, query: DiaryQuery
    ) -> tuple[list[DiaryRecord], int]:
        needle = query.search.lower() if query.search else None

        def matches(record: DiaryRecord) -> bool:
            if query.category and record.category != query.category:
                return False
            if query.mood and record.mood != query.mood:
                return False
            if query.start and record.date < query.start:
                return False
            if query.end and record.date > query.end:
                return False
            if needle:
                haystacks = [record.title, record.content, *record.tags]
                if not any(needle in value.lower() for value in haystacks):
                    return False
            return True

        matched = self._select(self.diaries, user_id, matches)
        matched.sort(key=lambda r: (r.date, r.created_at), reverse=True)
        return matched[query.offset : query.offset + query.limit], len(matched)

    def list_diaries(self, user_id: str) -> list[DiaryRecord]:
        records = self._select(self.diaries, user_id)
        records.sort(key=lambda r: (r.date, r.created_at), reverse=True)
        return records

    def diary_categories(self, user_id: str) -> list[str]:
        return sorted({r.category for r in self._select(self.diaries, user_id)})

    def diary_tags(self, user_id: str) -> list[str]:
        return sorted(
            {tag for r in self._select(self.diaries, user_id) for tag in r.tags}
        )

    def create_album(self, record: AlbumRecord) -> AlbumRecord:
        return self._insert(self.albums, record)

    def get_album(self, user_id: str, album_id: str) -> Optional[AlbumRecord]:
        return self._get(self.albums, user_id, album_id)

    def get_default_album(self, user_id: str) -> Optional[AlbumRecord]:
        defaults = self._select(self.albums, user_id, lambda r: r.is_default)
        defaults.sort(key=lambda r: r.created_at)
        return defaults[0] if defaults else None

    def list_albums(self, user_id: str) -> list[AlbumRecord]:
        records = self._select(self.albums, user_id)
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def update_album(
        self, user_id: str, album_id: str, changes: dict
    ) -> Optional[AlbumRecord]:
        return self._update(self.albums, user_id, album_id, changes)

    def clear_default_albums(self, user_id: str, except_id: str | None = None) -> int:
        cleared = 0
        with self._lock:
            for record in self.albums.values():
                if record.user_id == user_id and record.is_default and record.id != except_id:
                    record.is_default = False
                    record.updated_at = _utcnow()
                    cleared += 1
        return cleared

    def clear_cover_photo(self, user_id: str, photo_id: str) -> int:
        cleared = 0
        with self._lock:
            for record in self.albums.values():
                if record.user_id == user_id and record.cover_photo == photo_id:
                    record.cover_photo = ""
                    record.updated_at = _utcnow()
                    cleared += 1
        return cleared

    def remove_photos_from_diaries(self, user_id: str, photo_ids: list[str]) -> int:
        gone = set(photo_ids)
        touched = 0
        with self._lock:
            for record in self.diaries.values():
                if record.user_id != user_id:
                    continue
                kept = [p for p in record.attached_photos if p not in gone]
                if len(kept) != len(record.attached_photos):
                    record.attached_photos = kept
                    record.updated_at = _utcnow()
                    touched += 1
        return touched

    def delete_album(self, user_id: str, album_id: str) -> bool:
        return self._delete(self.albums, user_id, album_id)

    def create_photo(self, record: PhotoRecord) -> PhotoRecord:
        return self._insert(self.photos, record)

    def get_photo(self, user_id: str, photo_id: str) -> Optional[PhotoRecord]:
        return self._get(self.photos, user_id, photo_id)

    def get_photos(self, user_id: str, photo_ids: list[str]) -> list[PhotoRecord]:
        wanted = set(photo_ids)
        return self._select(self.photos, user_id, lambda r: r.id in wanted)

    def query_photos(
        self, user_id: str, album_id: str | None, page: int, limit: int
    ) -> tuple[list[PhotoRecord], int]:
        records = self.list_photos(user_id, album_id)
        offset = (page - 1) * limit
        return records[offset : offset + limit], len(records)

    def list_photos(
        self, user_id: str, album_id: str | None = None
    ) -> list[PhotoRecord]:
        records = self._select(
            self.photos,
            user_id,
            (lambda r: r.album_id == album_id) if album_id else None,
        )
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def count_photos_by_album(self, user_id: str) -> dict[str, int]:
        counts: dict[str, int] = {}
        for record in self._select(self.photos, user_id):
            counts[record.album_id] = counts.get(record.album_id, 0) + 1
        return counts

    def delete_photo(self, user_id: str, photo_id: str) -> bool:
        return self._delete(self.photos, user_id, photo_id)

    def delete_photos_in_album(self, user_id: str, album_id: str) -> int:
        with self._lock:
            doomed = [
                record.id
                for record in self.photos.values()
                if record.user_id == user_id and record.album_id == album_id
            ]
            for photo_id in doomed:
                del self.photos[photo_id]
            return len(doomed)

    def create_countdown(self, record: CountdownRecord) -> CountdownRecord:
        return self._insert(self.countdowns, record)

    def get_countdown(
        self, user_id: str, countdown_id: str
    ) -> Optional[CountdownRecord]:
        return self._get(self.countdowns, user_id, countdown_id)

    def list_countdowns(
        self,
        user_id: str,
        type: str | None = None,
        direction: str | None = None,
    ) -> list[CountdownRecord]:
        records = self._select(
            self.countdowns,
            user_id,
            lambda r: (not type or r.type == type)
            and (not direction or r.direction == direction),
        )
        records.sort(key=lambda r: r.target_date)
        return records

    def update_countdown(
        self, user_id: str, countdown_id: str, changes: dict
    ) -> Optional[CountdownRecord]:
        return self._update(self.countdowns, user_id, countdown_id, changes)

    def delete_countdown(self, user_id: str, countdown_id: str) -> bool:
        return self._delete(self.countdowns, user_id, countdown_id)

    def ping(self) -> None:
        return None

    def close(self) -> None:
        return None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _as_utc(value: Any) -> Any:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        url = make_url(database_url)
        engine_kwargs: dict[str, Any] = {"future": True, "pool_pre_ping": True}
        if url.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                engine_kwargs["poolclass"] = StaticPool
            else:
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        else:
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def ping(self) -> None:
        with self.Session() as session:
            session.execute(text("SELECT 1"))

    @staticmethod
    def _to_record(row: Any, record_cls: Type[RecordT]) -> RecordT:
        return record_cls(
            **{f.name: _as_utc(getattr(row, f.name)) for f in fields(record_cls)}
        )

    @staticmethod
    def _to_row(record: Any, row_cls: Type[Any]) -> Any:
        return row_cls(**{f.name: getattr(record, f.name) for f in fields(record)})

    def _insert(self, record: RecordT, row_cls: Type[Any]) -> RecordT:
        with self.Session() as session:
            row = self._to_row(record, row_cls)
            session.add(row)
            session.commit()
            return self._to_record(row, type(record))

    def _get(
        self, row_cls: Type[Any], record_cls: Type[RecordT], user_id: str, record_id: str
    ) -> Optional[RecordT]:
        with self.Session() as session:
            row = session.get(row_cls, record_id)
            if row is None or row.user_id != user_id:
                return None
            return self._to_record(row, record_cls)

    def _update(
        self,
        row_cls: Type[Any],
        record_cls: Type[RecordT],
        user_id: str,
        record_id: str,
        changes: dict,
    ) -> Optional[RecordT]:
        with self.Session() as session:
            row = session.get(row_cls, record_id)
            if row is None or row.user_id != user_id:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = _utcnow()
            if row_cls is DiaryRow and "tags" in changes:
                self._write_tags(session, row)
            session.commit()
            return self._to_record(row, record_cls)

    def _delete(self, row_cls: Type[Any], user_id: str, record_id: str) -> bool:
        with self.Session() as session:
            row = session.get(row_cls, record_id)
            if row is None or row.user_id != user_id:
                return False
            if row_cls is DiaryRow:
                session.execute(delete(DiaryTagRow).where(DiaryTagRow.diary_id == record_id))
            session.delete(row)
            session.commit()
            return True

    def _select(
        self, row_cls: Type[Any], record_cls: Type[RecordT], stmt
    ) -> list[RecordT]:
        with self.Session() as session:
            return [self._to_record(row, record_cls) for row in session.scalars(stmt).all()]

    @staticmethod
    def _write_tags(session: Session, row: "DiaryRow") -> None:
        session.execute(delete(DiaryTagRow).where(DiaryTagRow.diary_id == row.id))
        for tag in row.tags or []:
            session.add(DiaryTagRow(diary_id=row.id, user_id=row.user_id, tag=tag))

    def create_user(self, record: UserRecord) -> UserRecord:
        return self._insert(record, UserRow)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_record(row, UserRecord) if row else None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        rows = self._select(
            UserRow, UserRecord, select(UserRow).where(UserRow.email == email).limit(1)
        )
        return rows[0] if rows else None

    def find_user_conflict(
        self, username: str, email: str, exclude_id: str | None = None
    ) -> Optional[UserRecord]:
        stmt = select(UserRow).where(
            or_(UserRow.email == email, UserRow.username == username)
        )
        if exclude_id:
            stmt = stmt.where(UserRow.id != exclude_id)
        rows = self._select(UserRow, UserRecord, stmt.limit(1))
        return rows[0] if rows else None

    def update_user(self, user_id: str, changes: dict) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = _utcnow()
            session.commit()
            return self._to_record(row, UserRecord)

    def create_diary(self, record: DiaryRecord) -> DiaryRecord:
        with self.Session() as session:
            row = self._to_row(record, DiaryRow)
            session.add(row)
            self._write_tags(session, row)
            session.commit()
            return self._to_record(row, DiaryRecord)

    def get_diary(self, user_id: str, diary_id: str) -> Optional[DiaryRecord]:
        return self._get(DiaryRow, DiaryRecord, user_id, diary_id)

    def update_diary(
        self, user_id: str, diary_id: str, changes: dict
    ) -> Optional[DiaryRecord]:
        return self._update(DiaryRow, DiaryRecord, user_id, diary_id, changes)

    def delete_diary(self, user_id: str, diary_id: str) -> bool:
        return self._delete(DiaryRow, user_id, diary_id)

    def query_diaries(
        self, user_id: str, query: DiaryQuery
    ) -> tuple[list[DiaryRecord], int]:
        stmt = select(DiaryRow).where(DiaryRow.user_id == user_id)
        if query.category:
            stmt = stmt.where(DiaryRow.category == query.category)
        if query.mood:
            stmt = stmt.where(DiaryRow.mood == query.mood)
        if query.start:
            stmt = stmt.where(DiaryRow.date >= query.start)
        if query.end:
            stmt = stmt.where(DiaryRow.date <= query.end)
        if query.search:
            pattern = f"%{_escape_like(query.search)}%"
            tagged = select(DiaryTagRow.diary_id).where(
                DiaryTagRow.user_id == user_id,
                DiaryTagRow.tag.ilike(pattern, escape="\\"),
            )
            stmt = stmt.where(
                or_(
                    DiaryRow.title.ilike(pattern, escape="\\"),
                    DiaryRow.content.ilike(pattern, escape="\\"),
                    DiaryRow.id.in_(tagged),
                )
            )
        with self.Session() as session:
            total = session.scalar(select(func.count()).select_from(stmt.subquery()))
            rows = session.scalars(
                stmt.order_by(DiaryRow.date.desc(), DiaryRow.created_at.desc())
                .offset(query.offset)
                .limit(query.limit)
            ).all()
            return [self._to_record(row, DiaryRecord) for row in rows], total or 0

    def list_diaries(self, user_id: str) -> list[DiaryRecord]:
        stmt = (
            select(DiaryRow)
            .where(DiaryRow.user_id == user_id)
            .order_by(DiaryRow.date.desc(), DiaryRow.created_at.desc())
        )
        return self._select(DiaryRow, DiaryRecord, stmt)

    def diary_categories(self, user_id: str) -> list[str]:
        with self.Session() as session:
            stmt = (
                select(DiaryRow.category)
                .where(DiaryRow.user_id == user_id)
                .distinct()
                .order_by(DiaryRow.category)
            )
            return list(session.scalars(stmt).all())

    def diary_tags(self, user_id: str) -> list[str]:
        with self.Session() as session:
            stmt = (
                select(DiaryTagRow.tag)
                .where(DiaryTagRow.user_id == user_id)
                .distinct()
                .order_by(DiaryTagRow.tag)
            )
            return list(session.scalars(stmt).all())

    def create_album(self, record: AlbumRecord) -> AlbumRecord:
        return self._insert(record, AlbumRow)

    def get_album(self, user_id: str, album_id: str) -> Optional[AlbumRecord]:
        return self._get(AlbumRow, AlbumRecord, user_id, album_id)

    def get_default_album(self, user_id: str) -> Optional[AlbumRecord]:
        stmt = (
            select(AlbumRow)
            .where(AlbumRow.user_id == user_id, AlbumRow.is_default.is_(True))
            .order_by(AlbumRow.created_at.asc())
            .limit(1)
        )
        rows = self._select(AlbumRow, AlbumRecord, stmt)
        return rows[0] if rows else None

    def list_albums(self, user_id: str) -> list[AlbumRecord]:
        stmt = (
            select(AlbumRow)
            .where(AlbumRow.user_id == user_id)
            .order_by(AlbumRow.created_at.desc())
        )
        return self._select(AlbumRow, AlbumRecord, stmt)

    def update_album(
        self, user_id: str, album_id: str, changes: dict
    ) -> Optional[AlbumRecord]:
        return self._update(AlbumRow, AlbumRecord, user_id, album_id, changes)

    def clear_default_albums(self, user_id: str, except_id: str | None = None) -> int:
        stmt = update(AlbumRow).where(
            AlbumRow.user_id == user_id, AlbumRow.is_default.is_(True)
        )
        if except_id:
            stmt = stmt.where(AlbumRow.id != except_id)
        with self.Session() as session:
            result = session.execute(
                stmt.values(is_default=False, updated_at=_utcnow()),
                execution_options={"synchronize_session": False},
            )
            session.commit()
            return result.rowcount or 0

    def clear_cover_photo(self, user_id: str, photo_id: str) -> int:
        with self.Session() as session:
            result = session.execute(
                update(AlbumRow)
                .where(AlbumRow.user_id == user_id, AlbumRow.cover_photo == photo_id)
                .values(cover_photo="", updated_at=_utcnow()),
                execution_options={"synchronize_session": False},
            )
            session.commit()
            return result.rowcount or 0

    def remove_photos_from_diaries(self, user_id: str, photo_ids: list[str]) -> int:
        gone = set(photo_ids)
        if not gone:
            return 0
        touched = 0
        with self.Session() as session:
            # attached_photos is a JSON column, so filtering happens row by row.
            for row in session.scalars(select(DiaryRow).where(DiaryRow.user_id == user_id)):
                attached = row.attached_photos or []
                kept = [p for p in attached if p not in gone]
                if len(kept) != len(attached):
                    row.attached_photos = kept
                    row.updated_at = _utcnow()
                    touched += 1
            session.commit()
        return touched

    def delete_album(self, user_id: str, album_id: str) -> bool:
        return self._delete(AlbumRow, user_id, album_id)

    def create_photo(self, record: PhotoRecord) -> PhotoRecord:
        return self._insert(record, PhotoRow)

    def get_photo(self, user_id: str, photo_id: str) -> Optional[PhotoRecord]:
        return self._get(PhotoRow, PhotoRecord, user_id, photo_id)

    def get_photos(self, user_id: str, photo_ids: list[str]) -> list[PhotoRecord]:
        if not photo_ids:
            return []
        stmt = select(PhotoRow).where(
            PhotoRow.user_id == user_id, PhotoRow.id.in_(photo_ids)
        )
        return self._select(PhotoRow, PhotoRecord, stmt)

    def query_photos(
        self, user_id: str, album_id: str | None, page: int, limit: int
    ) -> tuple[list[PhotoRecord], int]:
        stmt = select(PhotoRow).where(PhotoRow.user_id == user_id)
        if album_id:
            stmt = stmt.where(PhotoRow.album_id == album_id)
        with self.Session() as session:
            total = session.scalar(select(func.count()).select_from(stmt.subquery()))
            rows = session.scalars(
                stmt.order_by(PhotoRow.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            return [self._to_record(row, PhotoRecord) for row in rows], total or 0

    def list_photos(
        self, user_id: str, album_id: str | None = None
    ) -> list[PhotoRecord]:
        stmt = select(PhotoRow).where(PhotoRow.user_id == user_id)
        if album_id:
            stmt = stmt.where(PhotoRow.album_id == album_id)
        return self._select(PhotoRow, PhotoRecord, stmt.order_by(PhotoRow.created_at.desc()))

    def count_photos_by_album(self, user_id: str) -> dict[str, int]:
        with self.Session() as session:
            stmt = (
                select(PhotoRow.album_id, func.count())
                .where(PhotoRow.user_id == user_id)
                .group_by(PhotoRow.album_id)
            )
            return {album_id: count for album_id, count in session.execute(stmt).all()}

    def delete_photo(self, user_id: str, photo_id: str) -> bool:
        return self._delete(PhotoRow, user_id, photo_id)

    def delete_photos_in_album(self, user_id: str, album_id: str) -> int:
        with self.Session() as session:
            result = session.execute(
                delete(PhotoRow).where(
                    PhotoRow.user_id == user_id, PhotoRow.album_id == album_id
                ),
                execution_options={"synchronize_session": False},
            )
            session.commit()
            return result.rowcount or 0

    def create_countdown(self, record: CountdownRecord) -> CountdownRecord:
        return self._insert(record, CountdownRow)

    def get_countdown(
        self, user_id: str, countdown_id: str
    ) -> Optional[CountdownRecord]:
        return self._get(CountdownRow, CountdownRecord, user_id, countdown_id)

    def list_countdowns(
        self,
        user_id: str,
        type: str | None = None,
        direction: str | None = None,
    ) -> list[CountdownRecord]:
        stmt = select(CountdownRow).where(CountdownRow.user_id == user_id)
        if type:
            stmt = stmt.where(CountdownRow.type == type)
        if direction:
            stmt = stmt.where(CountdownRow.direction == direction)
        return self._select(
            CountdownRow, CountdownRecord, stmt.order_by(CountdownRow.target_date.asc())
        )

    def update_countdown(
        self, user_id: str, countdown_id: str, changes: dict
    ) -> Optional[CountdownRecord]:
        return self._update(CountdownRow, CountdownRecord, user_id, countdown_id, changes)

    def delete_countdown(self, user_id: str, countdown_id: str) -> bool:
        return self._delete(CountdownRow, user_id, countdown_id)


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String(30), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class DiaryRow(Base):
    __tablename__ = "diaries"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String(100), nullable=False)
    content = Column(Text, nullable=False)
    mood = Column(String(20), nullable=False, index=True)
    category = Column(String(20), nullable=False, index=True)
    tags = Column(JSON, nullable=False, default=list)
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    is_public = Column(Boolean, nullable=False, default=False)
    attached_photos = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class DiaryTagRow(Base):
    __tablename__ = "diary_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    diary_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    tag = Column(String(20), nullable=False)


class AlbumRow(Base):
    __tablename__ = "albums"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String(50), nullable=False)
    description = Column(String(200), nullable=False, default="")
    cover_photo = Column(String, nullable=False, default="")
    is_default = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class PhotoRow(Base):
    __tablename__ = "photos"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    album_id = Column(String, nullable=False, index=True)
    filename = Column(String, nullable=False)
    original_name = Column(String, nullable=False)
    path = Column(String, nullable=False)
    url = Column(String, nullable=False)
    thumbnail_url = Column(String, nullable=False)
    compressed_url = Column(String, nullable=False, default="")
    size = Column(Integer, nullable=False)
    mimetype = Column(String(100), nullable=False)
    description = Column(String(200), nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    location = Column(JSON, nullable=True)
    exif = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class CountdownRow(Base):
    __tablename__ = "countdowns"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String(50), nullable=False)
    description = Column(String(200), nullable=False, default="")
    target_date = Column(Date, nullable=False, index=True)
    type = Column(String(20), nullable=False, default="other")
    direction = Column(String(20), nullable=False)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_type = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
