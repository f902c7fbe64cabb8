"""
Enumerations shared by the persistence layer, services and schemas.
"""

from __future__ import annotations

from enum import Enum


class Mood(str, Enum):
    HAPPY = "happy"
    SAD = "sad"
    EXCITED = "excited"
    CALM = "calm"
    ANGRY = "angry"
    TIRED = "tired"
    LOVED = "loved"
    GRATEFUL = "grateful"


class CountdownType(str, Enum):
    ANNIVERSARY = "anniversary"
    BIRTHDAY = "birthday"
    EVENT = "event"
    OTHER = "other"


class CountdownDirection(str, Enum):
    # Past milestone, elapsed days counted forward.
    COUNTUP = "countup"
    # Future event, remaining days counted backward.
    COUNTDOWN = "countdown"


class RecurringType(str, Enum):
    YEARLY = "yearly"
    MONTHLY = "monthly"
    DAILY = "daily"


class CountdownStatus(str, Enum):
    LONG_TIME = "long-time"
    MONTH = "month"
    RECENT = "recent"
    TODAY = "today"
    URGENT = "urgent"
    SOON = "soon"
    UPCOMING = "upcoming"
