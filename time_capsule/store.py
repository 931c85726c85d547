import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from .errors import StorageCorruptError, StorageWriteError
from .models import Capsule, format_timestamp

logger = logging.getLogger(__name__)

RECORD_FIELDS = ("message", "unlockDate", "createdAt")


class CapsuleStore(Protocol):
    def save(self, capsule: Capsule) -> None: ...

    def load(self) -> Optional[Capsule]: ...

    def delete(self) -> None: ...


def capsule_to_record(capsule: Capsule) -> dict:
    return {
        "message": capsule.message,
        "unlockDate": format_timestamp(capsule.unlock_date),
        "createdAt": format_timestamp(capsule.created_at),
    }


def _parse_timestamp(field: str, value: str) -> datetime:
    try:
        moment = datetime.fromisoformat(value)
    except ValueError as e:
        raise StorageCorruptError(f"Stored {field} is not a valid timestamp") from e
    if moment.tzinfo is None:
        raise StorageCorruptError(f"Stored {field} has no timezone offset")
    return moment


def capsule_from_record(record) -> Capsule:
    if not isinstance(record, dict):
        raise StorageCorruptError("Stored capsule is not a JSON object")
    for field in RECORD_FIELDS:
        if field not in record:
            raise StorageCorruptError(f"Stored capsule is missing {field}")
        if not isinstance(record[field], str):
            raise StorageCorruptError(f"Stored {field} is not a string")
    return Capsule(
        message=record["message"],
        unlock_date=_parse_timestamp("unlockDate", record["unlockDate"]),
        created_at=_parse_timestamp("createdAt", record["createdAt"]),
    )


class JsonFileCapsuleStore:
    """Keeps the single capsule as a JSON file.

    Writes go to a temporary file in the same directory which then replaces
    the target, so a concurrent reader sees either the old record or the new
    one, never a partial file.
    """

    def __init__(self, path):
        self.path = Path(path)

    def save(self, capsule: Capsule) -> None:
        payload = json.dumps(capsule_to_record(capsule), ensure_ascii=False, indent=4)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            logger.error(f"Failed to save capsule: {e}")
            if tmp_name is not None and os.path.exists(tmp_name):
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning(f"Could not remove temporary file {tmp_name}")
            raise StorageWriteError("Failed to save capsule") from e

    def load(self) -> Optional[Capsule]:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageCorruptError("Failed to read capsule file") from e
        try:
            record = json.loads(content)
        except json.JSONDecodeError as e:
            raise StorageCorruptError(f"Corrupted JSON in capsule file: {e.msg}") from e
        return capsule_from_record(record)

    def delete(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error(f"Failed to delete capsule: {e}")
            raise StorageWriteError("Failed to delete capsule") from e


class InMemoryCapsuleStore:
    """Store for tests and throwaway runs; keeps the serialized record in memory."""

    def __init__(self):
        self._record: Optional[dict] = None

    def save(self, capsule: Capsule) -> None:
        self._record = capsule_to_record(capsule)

    def load(self) -> Optional[Capsule]:
        if self._record is None:
            return None
        return capsule_from_record(self._record)

    def delete(self) -> None:
        self._record = None
