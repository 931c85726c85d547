import logging
from datetime import datetime, timedelta
from typing import Optional, Union

from .clock import Clock, SystemClock
from .errors import CapsuleNotFound, CapsuleValidationError
from .models import Capsule, LockedCapsule, UnlockedCapsule
from .reminders import NullReminderScheduler, ReminderScheduler
from .store import CapsuleStore
from .validation import UNLOCK_DATE_PAST

logger = logging.getLogger(__name__)


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


def format_remaining_time(delta: timedelta) -> str:
    """Human readable days/hours/minutes left, e.g. "2 days 1 hour 0 minutes".

    Units are floored. Days and hours are left out when zero; minutes are
    always shown.
    """
    total_minutes = max(int(delta.total_seconds()), 0) // 60
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    parts = []
    if days:
        parts.append(_plural(days, "day"))
    if hours:
        parts.append(_plural(hours, "hour"))
    parts.append(_plural(minutes, "minute"))
    return " ".join(parts)


class CapsuleService:
    """Create, read and delete the capsule.

    Lock state is never stored: every ``get()`` compares the clock with the
    stored unlock date.
    """

    def __init__(
        self,
        store: CapsuleStore,
        clock: Optional[Clock] = None,
        reminders: Optional[ReminderScheduler] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.reminders = reminders or NullReminderScheduler()

    def create(self, message: str, unlock_date: datetime) -> Capsule:
        now = self.clock.now()
        if unlock_date <= now:
            raise CapsuleValidationError({"unlockDate": UNLOCK_DATE_PAST})
        capsule = Capsule(message=message, unlock_date=unlock_date, created_at=now)
        self.store.save(capsule)
        logger.info(f"Capsule created, unlocks at {unlock_date.isoformat()}")
        self.reminders.schedule(capsule)
        return capsule

    def get(self) -> Union[LockedCapsule, UnlockedCapsule]:
        capsule = self.store.load()
        if capsule is None:
            raise CapsuleNotFound("No capsule found")
        now = self.clock.now()
        if capsule.is_unlocked(now):
            return UnlockedCapsule(
                message=capsule.message,
                unlock_date=capsule.unlock_date,
                created_at=capsule.created_at,
            )
        return LockedCapsule(
            unlock_date=capsule.unlock_date,
            created_at=capsule.created_at,
            remaining_time=format_remaining_time(capsule.remaining(now)),
        )

    def delete(self) -> None:
        self.store.delete()
        self.reminders.cancel()
        logger.info("Capsule deleted")
