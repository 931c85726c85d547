import logging
from datetime import timedelta
from typing import List, Optional, Protocol

from .clock import Clock, SystemClock
from .models import ONE_HOUR, UNLOCK, Capsule, format_timestamp
from .tasks import send_capsule_reminder

logger = logging.getLogger(__name__)

REMINDER_LEAD = timedelta(hours=1)


class ReminderScheduler(Protocol):
    def schedule(self, capsule: Capsule) -> None: ...

    def cancel(self) -> None: ...


class NullReminderScheduler:
    def schedule(self, capsule: Capsule) -> None:
        pass

    def cancel(self) -> None:
        pass


class CeleryReminderScheduler:
    """Queues the one-hour and unlock reminders as delayed Celery tasks.

    Task ids are kept so a new capsule or a delete revokes the old reminders.
    The task itself also checks the stored capsule before sending.
    """

    def __init__(self, clock: Optional[Clock] = None, lead: timedelta = REMINDER_LEAD):
        self.clock = clock or SystemClock()
        self.lead = lead
        self.task_ids: List[str] = []

    def schedule(self, capsule: Capsule) -> None:
        self.cancel()
        created_at = format_timestamp(capsule.created_at)
        remaining = capsule.remaining(self.clock.now())
        try:
            if remaining > self.lead:
                result = send_capsule_reminder.apply_async(
                    (ONE_HOUR, created_at), eta=capsule.unlock_date - self.lead
                )
                self.task_ids.append(result.id)
            result = send_capsule_reminder.apply_async(
                (UNLOCK, created_at), eta=capsule.unlock_date
            )
            self.task_ids.append(result.id)
        except Exception as e:
            logger.error(f"Error scheduling capsule reminders: {e}")
            return
        logger.info(f"Scheduled {len(self.task_ids)} reminder(s) for capsule created at {created_at}")

    def cancel(self) -> None:
        task_ids, self.task_ids = self.task_ids, []
        for task_id in task_ids:
            try:
                send_capsule_reminder.AsyncResult(task_id).revoke()
            except Exception as e:
                logger.error(f"Error revoking reminder {task_id}: {e}")
