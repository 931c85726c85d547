import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

CAPSULE_FILE_NAME = "capsule.json"


@dataclass(frozen=True)
class Settings:
    data_dir: Path = Path("var/data")
    reminders: str = "none"
    broker_url: str = "redis://localhost:6379/0"
    result_backend: str = "redis://localhost:6379/0"
    log_level: str = "INFO"

    @property
    def capsule_path(self) -> Path:
        return self.data_dir / CAPSULE_FILE_NAME

    @classmethod
    def from_env(cls) -> "Settings":
        reminders = os.environ.get("CAPSULE_REMINDERS", "none").strip().lower()
        if reminders not in ("none", "celery"):
            raise ValueError(f"CAPSULE_REMINDERS must be 'none' or 'celery', got {reminders!r}")
        return cls(
            data_dir=Path(os.environ.get("CAPSULE_DATA_DIR", "var/data")),
            reminders=reminders,
            broker_url=os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0"),
            result_backend=os.environ.get("CELERY_RESULT_BACKEND", "redis://localhost:6379/0"),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
