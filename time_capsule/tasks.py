import logging

from .celery_app import app
from .config import Settings
from .errors import StorageError
from .models import ONE_HOUR, format_timestamp
from .store import JsonFileCapsuleStore

logger = logging.getLogger(__name__)


def reminder_text(kind: str, unlock_date: str) -> str:
    if kind == ONE_HOUR:
        return f"Reminder: your capsule unlocks in one hour ({unlock_date})"
    return f"Your capsule is now unlocked ({unlock_date})"


@app.task
def send_capsule_reminder(kind: str, created_at: str):
    """Send a reminder unless the capsule it was scheduled for is gone."""
    logger.info(f"Starting task: send_capsule_reminder ({kind})")
    store = JsonFileCapsuleStore(Settings.from_env().capsule_path)
    try:
        capsule = store.load()
    except StorageError as e:
        logger.error(f"Error in send_capsule_reminder: {e}")
        raise
    if capsule is None or format_timestamp(capsule.created_at) != created_at:
        logger.info(f"Skipping stale {kind} reminder for capsule created at {created_at}")
        return None
    message = reminder_text(kind, format_timestamp(capsule.unlock_date))
    logger.info(message)
    return message
