"""Tests for the capsule lifecycle: create, lock projection, delete."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from time_capsule.clock import FrozenClock
from time_capsule.errors import CapsuleNotFound, CapsuleValidationError, StorageCorruptError
from time_capsule.models import LockedCapsule, UnlockedCapsule
from time_capsule.service import CapsuleService, format_remaining_time
from time_capsule.store import InMemoryCapsuleStore, JsonFileCapsuleStore

NOW = datetime(2025, 12, 31, 23, 59, 59, tzinfo=timezone.utc)

UNLOCK = datetime(2026, 1, 1, tzinfo=timezone.utc)


class RecordingReminders:
    def __init__(self):
        self.calls = []

    def schedule(self, capsule):
        self.calls.append(("schedule", capsule.created_at))

    def cancel(self):
        self.calls.append(("cancel", None))


class TestFormatRemainingTime:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(seconds=1), "0 minutes"),
            (timedelta(seconds=59), "0 minutes"),
            (timedelta(minutes=1), "1 minute"),
            (timedelta(minutes=1, seconds=59), "1 minute"),
            (timedelta(minutes=45), "45 minutes"),
            (timedelta(hours=1), "1 hour 0 minutes"),
            (timedelta(hours=2, minutes=1), "2 hours 1 minute"),
            (timedelta(days=1), "1 day 0 minutes"),
            (timedelta(days=1, minutes=5), "1 day 5 minutes"),
            (timedelta(days=3, hours=1, minutes=2), "3 days 1 hour 2 minutes"),
            (timedelta(days=45, hours=23, minutes=59, seconds=59), "45 days 23 hours 59 minutes"),
        ],
    )
    def test_breakdown(self, delta, expected):
        assert format_remaining_time(delta) == expected

    @given(seconds=st.integers(min_value=1, max_value=10 ** 8))
    def test_minutes_always_last(self, seconds):
        parts = format_remaining_time(timedelta(seconds=seconds)).split(" ")
        assert parts[-1] in ("minute", "minutes")
        values = [int(v) for v in parts[0::2]]
        units = parts[1::2]
        # larger units only appear when non-zero
        for value, unit in zip(values[:-1], units[:-1]):
            assert value > 0
            assert unit.rstrip("s") in ("day", "hour")


class TestCreate:
    def test_create_then_locked(self, service):
        service.create("hello", UNLOCK)
        result = service.get()
        assert isinstance(result, LockedCapsule)
        assert result.remaining_time == "0 minutes"
        assert result.unlock_date == UNLOCK
        assert result.created_at == NOW

    def test_unlocks_when_time_passes(self, service, clock):
        service.create("hello", UNLOCK)
        clock.advance(seconds=1)
        result = service.get()
        assert isinstance(result, UnlockedCapsule)
        assert result.message == "hello"

    def test_unlocked_exactly_at_unlock_date(self, service, clock):
        service.create("hello", UNLOCK)
        clock.set(UNLOCK)
        assert isinstance(service.get(), UnlockedCapsule)

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(seconds=-1), timedelta(days=-400)])
    def test_rejects_unlock_not_in_future(self, service, offset):
        with pytest.raises(CapsuleValidationError) as excinfo:
            service.create("hello", NOW + offset)
        assert set(excinfo.value.errors) == {"unlockDate"}
        with pytest.raises(CapsuleNotFound):
            service.get()

    def test_overwrite(self, service, clock):
        service.create("first", UNLOCK)
        service.create("second", UNLOCK + timedelta(days=1))
        clock.set(UNLOCK + timedelta(days=2))
        assert service.get().message == "second"

    def test_created_at_comes_from_clock(self, memory_store, clock):
        svc = CapsuleService(memory_store, clock)
        capsule = svc.create("hello", UNLOCK)
        assert capsule.created_at == NOW
        assert memory_store.load().created_at == NOW

    def test_reminders_follow_lifecycle(self, memory_store, clock):
        reminders = RecordingReminders()
        svc = CapsuleService(memory_store, clock, reminders)
        svc.create("hello", UNLOCK)
        svc.delete()
        assert reminders.calls == [("schedule", NOW), ("cancel", None)]


class TestGetAndDelete:
    def test_get_absent(self, service):
        with pytest.raises(CapsuleNotFound):
            service.get()

    def test_delete_absent(self, service):
        service.delete()
        with pytest.raises(CapsuleNotFound):
            service.get()

    def test_delete_existing(self, service):
        service.create("hello", UNLOCK)
        service.delete()
        with pytest.raises(CapsuleNotFound):
            service.get()

    def test_corrupt_unlock_date(self, service, capsule_path):
        capsule_path.parent.mkdir(parents=True)
        capsule_path.write_text(
            '{"message": "hi", "unlockDate": "soon", "createdAt": "2025-01-01T00:00:00+00:00"}',
            encoding="utf-8",
        )
        with pytest.raises(StorageCorruptError):
            service.get()

    def test_lock_state_is_not_persisted(self, service, capsule_path):
        service.create("hello", UNLOCK)
        assert "locked" not in capsule_path.read_text(encoding="utf-8").lower()


messages = st.text(
    alphabet=st.characters(blacklist_categories=("Cs",)), min_size=1, max_size=300
).filter(lambda s: s.strip())


@settings(max_examples=50)
@given(message=messages, lock_seconds=st.integers(min_value=1, max_value=10 ** 8))
def test_message_survives_file_round_trip(message, lock_seconds):
    clock = FrozenClock(NOW)
    with tempfile.TemporaryDirectory() as tmp:
        svc = CapsuleService(JsonFileCapsuleStore(Path(tmp) / "capsule.json"), clock)
        unlock = NOW + timedelta(seconds=lock_seconds)
        svc.create(message, unlock)
        locked = svc.get()
        assert isinstance(locked, LockedCapsule)
        assert locked.remaining_time.endswith(("minute", "minutes"))
        clock.set(unlock)
        unlocked = svc.get()
        assert unlocked.message == message


@given(seconds_ago=st.integers(min_value=0, max_value=10 ** 8))
def test_create_in_past_always_rejected(seconds_ago):
    svc = CapsuleService(InMemoryCapsuleStore(), FrozenClock(NOW))
    with pytest.raises(CapsuleValidationError):
        svc.create("valid message", NOW - timedelta(seconds=seconds_ago))
