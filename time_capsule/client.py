import logging
from datetime import datetime
from typing import Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict

from .errors import CapsuleApiError, CapsuleValidationError
from .models import format_timestamp

logger = logging.getLogger(__name__)

API_PATH = "/api/capsule"

ABSENT = "absent"
LOCKED = "locked"
UNLOCKED = "unlocked"


class CapsuleState(BaseModel):
    """What the server says about the capsule right now."""

    model_config = ConfigDict(frozen=True)

    status: str
    message: Optional[str] = None
    unlock_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    remaining_time: Optional[str] = None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class CapsuleApiClient:
    """Async client for the capsule HTTP API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(
                method, API_PATH, headers={"Accept": "application/json"}, **kwargs
            )
        except httpx.TimeoutException as e:
            logger.error(f"Capsule API timed out: {e}")
            raise CapsuleApiError("The server is taking too long to respond") from e
        except httpx.HTTPError as e:
            logger.error(f"Capsule API error: {e}")
            raise CapsuleApiError("Could not connect to the server") from e

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise CapsuleApiError("Unexpected capsule state", response.status_code) from e
        if not isinstance(data, dict):
            raise CapsuleApiError("Unexpected capsule state", response.status_code)
        return data

    async def fetch_state(self) -> CapsuleState:
        response = await self._request("GET")
        if response.status_code == 404:
            return CapsuleState(status=ABSENT)
        data = self._json(response)
        try:
            if response.status_code == 403 and data.get("status") == LOCKED:
                return CapsuleState(
                    status=LOCKED,
                    unlock_date=_parse_time(data["unlockDate"]),
                    created_at=_parse_time(data.get("createdAt")),
                    remaining_time=data.get("remainingTime"),
                )
            if response.status_code == 200 and data.get("status") == UNLOCKED:
                return CapsuleState(
                    status=UNLOCKED,
                    message=data["message"],
                    unlock_date=_parse_time(data["unlockDate"]),
                    created_at=_parse_time(data.get("createdAt")),
                )
        except (KeyError, TypeError, ValueError) as e:
            raise CapsuleApiError("Unexpected capsule state", response.status_code) from e
        raise CapsuleApiError("Unexpected capsule state", response.status_code)

    async def create(self, message: str, unlock_date: Union[datetime, str]) -> dict:
        if isinstance(unlock_date, datetime):
            unlock_date = format_timestamp(unlock_date)
        response = await self._request(
            "POST", json={"message": message, "unlockDate": unlock_date}
        )
        data = self._json(response)
        if response.status_code == 201:
            return data
        if response.status_code == 400 and data.get("errors"):
            raise CapsuleValidationError(data["errors"])
        raise CapsuleApiError(data.get("message") or "Error while creating the capsule", response.status_code)

    async def delete(self) -> None:
        response = await self._request("DELETE")
        if response.status_code not in (200, 204):
            raise CapsuleApiError("Error while deleting the capsule", response.status_code)
