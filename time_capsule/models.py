from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 with explicit offset at seconds precision, e.g. 2026-01-10T23:59:00+00:00."""
    return moment.isoformat(timespec="seconds")


class Capsule(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    unlock_date: datetime
    created_at: datetime

    def is_unlocked(self, now: datetime) -> bool:
        return now >= self.unlock_date

    def remaining(self, now: datetime) -> timedelta:
        return self.unlock_date - now


class LockedCapsule(BaseModel):
    model_config = ConfigDict(frozen=True)

    unlock_date: datetime
    created_at: datetime
    remaining_time: str


class UnlockedCapsule(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    unlock_date: datetime
    created_at: datetime


# Reminder kinds, shared by the Celery tasks and the countdown controller.
ONE_HOUR = "one_hour"
UNLOCK = "unlock"
