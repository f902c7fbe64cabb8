"""
Countdown day/status derivation and the countdown service.

Derived values (``days``, ``absoluteDays``, ``status``,
``formattedTargetDate``) are recomputed every time a record is serialized and
are never written back to the database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Optional

from keepsake.db import CountdownRecord, DbClient, new_id
from keepsake.errors import NotFound, ValidationFailed
from keepsake.schemas import CountdownCreate, CountdownUpdate
from keepsake.types import CountdownDirection, CountdownStatus

logger = logging.getLogger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass(frozen=True)
class CountdownView:
    days: int
    absolute_days: int
    status: CountdownStatus
    formatted_target_date: str

    def as_dict(self) -> dict:
        return {
            "days": self.days,
            "absoluteDays": self.absolute_days,
            "status": self.status.value,
            "formattedTargetDate": self.formatted_target_date,
        }


def _status_for(direction: CountdownDirection, days: int) -> CountdownStatus:
    if direction == CountdownDirection.COUNTUP:
        if days <= -365:
            return CountdownStatus.LONG_TIME
        if days <= -30:
            return CountdownStatus.MONTH
        return CountdownStatus.RECENT
    if days <= 0:
        return CountdownStatus.TODAY
    if days <= 7:
        return CountdownStatus.URGENT
    if days <= 30:
        return CountdownStatus.SOON
    return CountdownStatus.UPCOMING


def derive_countdown(
    target_date: date,
    direction: CountdownDirection | str,
    today: Optional[date] = None,
) -> CountdownView:
    """
    Compute the signed/absolute day counts and status for a countdown.

    Both dates are plain calendar dates, so there is no time-of-day skew.
    For ``countup`` the milestone day itself counts as day one, which is why
    a milestone dated today yields ``days == -1``.
    """
    direction = CountdownDirection(direction)
    if isinstance(target_date, datetime):
        target_date = target_date.date()
    today = today or utc_today()

    raw_days = (target_date - today).days
    days = raw_days - 1 if direction == CountdownDirection.COUNTUP else raw_days
    return CountdownView(
        days=days,
        absolute_days=abs(days),
        status=_status_for(direction, days),
        formatted_target_date=target_date.strftime("%Y-%m-%d"),
    )


def infer_direction(target_date: date, today: Optional[date] = None) -> CountdownDirection:
    today = today or utc_today()
    if target_date < today:
        return CountdownDirection.COUNTUP
    return CountdownDirection.COUNTDOWN


class CountdownService:
    def __init__(self, db: DbClient, today: Optional[Callable[[], date]] = None):
        self.db = db
        self._today = today

    def today(self) -> date:
        return self._today() if self._today else utc_today()

    def serialize(self, record: CountdownRecord) -> dict:
        payload = record.as_dict()
        payload.update(
            derive_countdown(record.target_date, record.direction, self.today()).as_dict()
        )
        return payload

    def _require(self, user_id: str, countdown_id: str) -> CountdownRecord:
        record = self.db.get_countdown(user_id, countdown_id)
        if record is None:
            raise NotFound("countdown not found")
        return record

    def list(
        self,
        user_id: str,
        type: str | None = None,
        direction: str | None = None,
    ) -> list[dict]:
        records = self.db.list_countdowns(user_id, type=type, direction=direction)
        return [self.serialize(record) for record in records]

    def get(self, user_id: str, countdown_id: str) -> dict:
        return self.serialize(self._require(user_id, countdown_id))

    def create(self, user_id: str, payload: CountdownCreate) -> dict:
        direction = payload.direction or infer_direction(payload.target_date, self.today())
        record = CountdownRecord(
            id=new_id(),
            user_id=user_id,
            title=payload.title,
            description=payload.description or "",
            target_date=payload.target_date,
            type=payload.type.value,
            direction=CountdownDirection(direction).value,
            is_recurring=payload.is_recurring,
            recurring_type=payload.recurring_type.value if payload.is_recurring else None,
        )
        created = self.db.create_countdown(record)
        logger.info("Created countdown %s for user %s", created.id, user_id)
        return self.serialize(created)

    def update(self, user_id: str, countdown_id: str, payload: CountdownUpdate) -> dict:
        current = self._require(user_id, countdown_id)
        changes = payload.to_changes()

        is_recurring = changes.get("is_recurring", current.is_recurring)
        recurring_type = changes.get("recurring_type", current.recurring_type)
        if is_recurring and not recurring_type:
            raise ValidationFailed("recurringType is required when isRecurring is true")
        if not is_recurring:
            changes["recurring_type"] = None

        updated = self.db.update_countdown(user_id, countdown_id, changes)
        if updated is None:
            raise NotFound("countdown not found")
        return self.serialize(updated)

    def delete(self, user_id: str, countdown_id: str) -> None:
        if not self.db.delete_countdown(user_id, countdown_id):
            raise NotFound("countdown not found")
