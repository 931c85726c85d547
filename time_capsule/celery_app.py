from celery import Celery

from .config import Settings

settings = Settings.from_env()

app = Celery('time_capsule', broker=settings.broker_url, backend=settings.result_backend)
app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
)

from . import tasks  # noqa: E402,F401
