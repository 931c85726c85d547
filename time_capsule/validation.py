"""Validation of capsule creation requests.

Each field is checked format first, then semantics, and only the first
failure per field is reported. All invalid fields are reported together.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

MESSAGE_MAX_LENGTH = 5000
UNLOCK_DATE_PATTERN = re.compile(
    r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}[+-]([0-9]{2}):([0-9]{2})"
)

MESSAGE_EMPTY = "Message cannot be empty"
MESSAGE_TOO_LONG = f"Message cannot exceed {MESSAGE_MAX_LENGTH} characters"
MESSAGE_ENCODING = "Message contains invalid characters"
UNLOCK_DATE_REQUIRED = "Unlock date is required"
UNLOCK_DATE_FORMAT = "Unlock date must be in ISO 8601 format (example: 2026-01-10T23:59:00+00:00)"
UNLOCK_DATE_INVALID = "Unlock date is not a valid calendar date"
UNLOCK_DATE_PAST = "Unlock date must be in the future"


class CapsuleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    message: str = Field(default="", strict=True, validate_default=True)
    unlock_date: datetime = Field(default="", alias="unlockDate", validate_default=True)

    @field_validator("message")
    @classmethod
    def check_message(cls, value: str) -> str:
        if not value.strip():
            raise PydanticCustomError("message_empty", MESSAGE_EMPTY)
        if len(value) > MESSAGE_MAX_LENGTH:
            raise PydanticCustomError("message_too_long", MESSAGE_TOO_LONG)
        try:
            value.encode("utf-8")
        except UnicodeEncodeError:
            raise PydanticCustomError("message_encoding", MESSAGE_ENCODING)
        return value

    @field_validator("unlock_date", mode="before")
    @classmethod
    def check_unlock_date(cls, value: Any, info: ValidationInfo) -> datetime:
        if value is None or value == "":
            raise PydanticCustomError("unlock_date_required", UNLOCK_DATE_REQUIRED)
        match = UNLOCK_DATE_PATTERN.fullmatch(value) if isinstance(value, str) else None
        if match is None:
            raise PydanticCustomError("unlock_date_format", UNLOCK_DATE_FORMAT)
        # fromisoformat folds out-of-range offset minutes into hours
        if int(match.group(1)) > 23 or int(match.group(2)) > 59:
            raise PydanticCustomError("unlock_date_invalid", UNLOCK_DATE_INVALID)
        try:
            moment = datetime.fromisoformat(value)
        except ValueError:
            raise PydanticCustomError("unlock_date_invalid", UNLOCK_DATE_INVALID)
        now = (info.context or {}).get("now")
        if now is not None and moment <= now:
            raise PydanticCustomError("unlock_date_past", UNLOCK_DATE_PAST)
        return moment


@dataclass
class ValidationResult:
    request: Optional[CapsuleRequest] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return self.request is not None and not self.errors


def _field_name(loc) -> str:
    if not loc:
        return "request"
    return "unlockDate" if loc[0] in ("unlockDate", "unlock_date") else str(loc[0])


def validate_capsule_request(payload: Dict[str, Any], now: datetime) -> ValidationResult:
    """Validate a decoded create request against ``now``."""
    data = {key: payload[key] for key in ("message", "unlockDate") if payload.get(key) is not None}
    try:
        request = CapsuleRequest.model_validate(data, context={"now": now})
    except ValidationError as e:
        errors: Dict[str, str] = {}
        for error in e.errors():
            errors.setdefault(_field_name(error["loc"]), error["msg"])
        return ValidationResult(errors=errors)
    return ValidationResult(request=request)
