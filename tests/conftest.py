"""Shared fixtures for the time capsule test suite."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from time_capsule.clock import FrozenClock
from time_capsule.config import Settings
from time_capsule.main import create_app
from time_capsule.service import CapsuleService
from time_capsule.store import InMemoryCapsuleStore, JsonFileCapsuleStore

NOW = datetime(2025, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def capsule_path(tmp_path):
    return tmp_path / "data" / "capsule.json"


@pytest.fixture
def file_store(capsule_path) -> JsonFileCapsuleStore:
    return JsonFileCapsuleStore(capsule_path)


@pytest.fixture
def memory_store() -> InMemoryCapsuleStore:
    return InMemoryCapsuleStore()


@pytest.fixture
def service(file_store, clock) -> CapsuleService:
    return CapsuleService(file_store, clock)


@pytest.fixture
def client(tmp_path, service):
    app = create_app(settings=Settings(data_dir=tmp_path / "data"), service=service)
    with TestClient(app) as test_client:
        yield test_client
