"""
Pydantic schemas for the keepsake API.

Request bodies use the camelCase keys the web client sends; attribute names
stay snake_case on the Python side.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timezone
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
    model_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

from keepsake.types import CountdownDirection, CountdownType, Mood, RecurringType

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

Username = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=30)]
Password = Annotated[str, StringConstraints(min_length=6, max_length=128)]
DiaryTitle = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
Category = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=20)]
AlbumName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]
CountdownTitle = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]
Description = Annotated[str, StringConstraints(strip_whitespace=True, max_length=200)]


def parse_datetime(value: Any) -> datetime:
    """Accept a date, datetime or ISO string and return an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                parsed = datetime.combine(date.fromisoformat(text), time.min)
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"invalid date: {value!r}") from None
    else:
        raise ValueError(f"invalid date: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_calendar_date(value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return parse_datetime(value).date()


def clean_tags(tags: list[str]) -> list[str]:
    """Trim, drop blanks and de-duplicate, keeping first-seen order."""
    cleaned: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if not tag or tag in cleaned:
            continue
        if len(tag) > 20:
            raise ValueError("tags must be at most 20 characters")
        cleaned.append(tag)
    return cleaned


def _dedupe(ids: list[str]) -> list[str]:
    return list(dict.fromkeys(i for i in ids if i))


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_changes(self) -> dict:
        """Fields the client actually sent, as record attribute names; null means unchanged."""
        changes = {}
        for name, value in self.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            changes[name] = getattr(value, "value", value)
        return changes


class ApiResponse(BaseModel):
    """The `{success, message?, data?}` envelope every endpoint answers with."""

    success: bool = True
    message: Optional[str] = None
    data: Optional[dict] = None

    @model_serializer(mode="wrap")
    def _drop_unset(self, handler):
        payload = handler(self)
        return {k: v for k, v in payload.items() if k == "success" or v is not None}


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


# Auth


class RegisterRequest(ApiModel):
    username: Username
    email: str
    password: Password

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        value = value.strip().lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("invalid email address")
        return value


class LoginRequest(ApiModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return value.strip().lower()


class ProfileUpdate(ApiModel):
    username: Optional[Username] = None
    email: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("invalid email address")
        return value


class ChangePasswordRequest(ApiModel):
    current_password: str
    new_password: Password


# Diaries


class DiaryCreate(ApiModel):
    title: DiaryTitle
    content: str = Field(..., max_length=10000)
    mood: Mood = Mood.HAPPY
    category: Category
    tags: list[str] = Field(default_factory=list)
    date: Optional[datetime] = None
    is_public: bool = False
    attached_photos: list[str] = Field(default_factory=list)

    @field_validator("content")
    @classmethod
    def _content(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be empty")
        return value

    @field_validator("tags")
    @classmethod
    def _tags(cls, value: list[str]) -> list[str]:
        return clean_tags(value)

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, value: Any) -> Any:
        return None if value in (None, "") else parse_datetime(value)

    @field_validator("attached_photos")
    @classmethod
    def _photos(cls, value: list[str]) -> list[str]:
        return _dedupe(value)


class DiaryUpdate(ApiModel):
    title: Optional[DiaryTitle] = None
    content: Optional[str] = Field(default=None, max_length=10000)
    mood: Optional[Mood] = None
    category: Optional[Category] = None
    tags: Optional[list[str]] = None
    date: Optional[datetime] = None
    is_public: Optional[bool] = None
    attached_photos: Optional[list[str]] = None

    @field_validator("content")
    @classmethod
    def _content(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("content must not be empty")
        return value

    @field_validator("tags")
    @classmethod
    def _tags(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return None if value is None else clean_tags(value)

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, value: Any) -> Any:
        return None if value in (None, "") else parse_datetime(value)

    @field_validator("attached_photos")
    @classmethod
    def _photos(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return None if value is None else _dedupe(value)


class AttachPhotosRequest(ApiModel):
    photo_ids: list[str] = Field(..., min_length=1)


# Albums


class AlbumCreate(ApiModel):
    name: AlbumName
    description: Description = ""
    is_default: bool = False


class AlbumUpdate(ApiModel):
    name: Optional[AlbumName] = None
    description: Optional[Description] = None
    cover_photo: Optional[str] = None
    is_default: Optional[bool] = None


# Countdowns


class CountdownCreate(ApiModel):
    title: CountdownTitle
    description: Description = ""
    target_date: date
    type: CountdownType = CountdownType.OTHER
    direction: Optional[CountdownDirection] = None
    is_recurring: bool = False
    recurring_type: Optional[RecurringType] = None

    @field_validator("target_date", mode="before")
    @classmethod
    def _target_date(cls, value: Any) -> Any:
        return parse_calendar_date(value)

    @model_validator(mode="after")
    def _recurrence(self) -> "CountdownCreate":
        if self.is_recurring and self.recurring_type is None:
            raise ValueError("recurringType is required when isRecurring is true")
        return self


class CountdownUpdate(ApiModel):
    title: Optional[CountdownTitle] = None
    description: Optional[Description] = None
    target_date: Optional[date] = None
    type: Optional[CountdownType] = None
    direction: Optional[CountdownDirection] = None
    is_recurring: Optional[bool] = None
    recurring_type: Optional[RecurringType] = None

    @field_validator("target_date", mode="before")
    @classmethod
    def _target_date(cls, value: Any) -> Any:
        return None if value in (None, "") else parse_calendar_date(value)
