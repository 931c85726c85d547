"""Client-side countdown and reminder scheduling.

The controller shows one of three views (create form, locked countdown,
unlocked message) from what the API reports. While locked it ticks locally
from the last known unlock date and asks the server again only once the
countdown reaches zero. The server decides whether the message is released.

Every timer is cancelled before a new view is rendered, so reminders never
fire for a capsule that was deleted or replaced.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol

from .client import ABSENT, LOCKED, CapsuleApiClient, CapsuleState
from .clock import Clock, SystemClock
from .errors import CapsuleApiError, CapsuleValidationError
from .models import ONE_HOUR, UNLOCK
from .validation import MESSAGE_EMPTY, UNLOCK_DATE_PAST

logger = logging.getLogger(__name__)

REMINDER_LEAD = timedelta(hours=1)


def _unit(value: int, unit: str) -> str:
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


def format_countdown(delta: timedelta) -> str:
    """Countdown text whose precision depends on how much time is left."""
    total = max(int(delta.total_seconds()), 0)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    if days == 0 and hours == 0:
        return f"{_unit(minutes, 'minute')} {_unit(seconds, 'second')}"
    if days == 0:
        return f"{_unit(hours, 'hour')} {_unit(minutes, 'minute')}"
    if days > 7:
        return f"{_unit(days, 'day')} {_unit(hours, 'hour')}"
    return f"{days}d {hours}h {minutes}m {seconds}s"


def progress_percent(now: datetime, created_at: datetime, unlock_date: datetime) -> float:
    """Share of the lock period already elapsed, between 0 and 100."""
    total = (unlock_date - created_at).total_seconds()
    if total <= 0:
        return 100.0
    elapsed = (now - created_at).total_seconds()
    return min(100.0, max(0.0, elapsed / total * 100))


def is_urgent(delta: timedelta) -> bool:
    return delta < timedelta(hours=1)


class CapsuleView(Protocol):
    def show_create_form(self) -> None: ...

    def show_form_error(self, message: str) -> None: ...

    def show_locked(self, state: CapsuleState) -> None: ...

    def show_countdown(self, text: str, progress: Optional[float], urgent: bool) -> None: ...

    def show_unlocked(self, state: CapsuleState) -> None: ...

    def show_error(self, message: str) -> None: ...


Notifier = Callable[[str, CapsuleState], None]


class CountdownController:
    def __init__(
        self,
        api: CapsuleApiClient,
        view: CapsuleView,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
        tick_interval: float = 1.0,
        reminder_lead: timedelta = REMINDER_LEAD,
    ):
        self.api = api
        self.view = view
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.tick_interval = tick_interval
        self.reminder_lead = reminder_lead
        self.state: Optional[CapsuleState] = None
        self.current_view = "loading"
        self._countdown_task: Optional[asyncio.Task] = None
        self._reminders: List[asyncio.TimerHandle] = []
        self._generation = 0

    @property
    def pending_reminders(self) -> int:
        return sum(1 for handle in self._reminders if not handle.cancelled())

    @property
    def countdown_running(self) -> bool:
        return self._countdown_task is not None and not self._countdown_task.done()

    async def start(self) -> None:
        await self.refresh()

    async def refresh(self) -> None:
        generation = self._generation
        try:
            state = await self.api.fetch_state()
        except CapsuleApiError as e:
            if generation != self._generation:
                return
            self.cancel_timers()
            self.current_view = "error"
            self.view.show_error(str(e))
            return
        if generation != self._generation:
            # Timers were cancelled while fetching; the answer is stale.
            logger.info("Discarding capsule state fetched before the view changed")
            return
        self.render(state)

    def render(self, state: CapsuleState) -> None:
        self.cancel_timers()
        self.state = state
        if state.status == ABSENT:
            self.current_view = "create"
            self.view.show_create_form()
        elif state.status == LOCKED:
            self._render_locked(state)
        else:
            self.current_view = "unlocked"
            self.view.show_unlocked(state)

    def _render_locked(self, state: CapsuleState) -> None:
        self.current_view = "locked"
        self.view.show_locked(state)
        self._tick()
        loop = asyncio.get_running_loop()
        self._countdown_task = loop.create_task(self._run_countdown())
        self._schedule_reminders(loop, state)

    def _tick(self) -> bool:
        """Redraw the countdown; False once it has reached zero."""
        state = self.state
        now = self.clock.now()
        remaining = state.unlock_date - now
        if remaining <= timedelta(0):
            return False
        progress = None
        if state.created_at is not None:
            progress = progress_percent(now, state.created_at, state.unlock_date)
        self.view.show_countdown(format_countdown(remaining), progress, is_urgent(remaining))
        return True

    async def _run_countdown(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            if not self._tick():
                break
        # Detach before refreshing so the re-render does not cancel this task.
        self._countdown_task = None
        logger.info("Countdown reached zero, checking capsule status")
        await self.refresh()

    def _schedule_reminders(self, loop: asyncio.AbstractEventLoop, state: CapsuleState) -> None:
        if self.notifier is None:
            return
        remaining = (state.unlock_date - self.clock.now()).total_seconds()
        lead = self.reminder_lead.total_seconds()
        if remaining > lead:
            self._reminders.append(loop.call_later(remaining - lead, self._notify, ONE_HOUR, state))
        if remaining > 0:
            self._reminders.append(loop.call_later(remaining, self._notify, UNLOCK, state))

    def _notify(self, kind: str, state: CapsuleState) -> None:
        if self.state is not state:
            return
        logger.info(f"Firing {kind} reminder")
        self.notifier(kind, state)

    def cancel_timers(self) -> None:
        self._generation += 1
        for handle in self._reminders:
            handle.cancel()
        self._reminders = []
        if self._countdown_task is not None:
            self._countdown_task.cancel()
            self._countdown_task = None

    async def create(self, message: str, unlock_date: datetime) -> bool:
        if unlock_date.tzinfo is None:
            unlock_date = unlock_date.astimezone()
        errors = []
        if not message.strip():
            errors.append(MESSAGE_EMPTY)
        if unlock_date <= self.clock.now():
            errors.append(UNLOCK_DATE_PAST)
        if errors:
            self.view.show_form_error(", ".join(errors))
            return False
        try:
            await self.api.create(message, unlock_date)
        except CapsuleValidationError as e:
            self.view.show_form_error(", ".join(e.errors.values()))
            return False
        except CapsuleApiError as e:
            self.view.show_form_error(str(e))
            return False
        self.cancel_timers()
        await self.refresh()
        return True

    async def delete(self) -> None:
        self.cancel_timers()
        self.state = None
        try:
            await self.api.delete()
        except CapsuleApiError as e:
            self.current_view = "error"
            self.view.show_error(str(e))
            return
        self.render(CapsuleState(status=ABSENT))

    def close(self) -> None:
        self.cancel_timers()
