import json
import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .clock import SystemClock
from .config import Settings, configure_logging
from .errors import CapsuleNotFound, CapsuleValidationError, StorageError
from .models import LockedCapsule, format_timestamp
from .reminders import CeleryReminderScheduler, NullReminderScheduler
from .service import CapsuleService
from .store import JsonFileCapsuleStore
from .validation import validate_capsule_request

logger = logging.getLogger(__name__)


class CapsuleCreated(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "success"
    message: str = "Capsule created successfully"
    unlock_date: str = Field(alias="unlockDate")


class UnlockedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "unlocked"
    message: str
    unlock_date: str = Field(alias="unlockDate")
    created_at: str = Field(alias="createdAt")


class LockedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "locked"
    message: str
    unlock_date: str = Field(alias="unlockDate")
    created_at: str = Field(alias="createdAt")
    remaining_time: str = Field(alias="remainingTime")


class ErrorResponse(BaseModel):
    status: str = "error"
    message: str


def build_service(settings: Settings) -> CapsuleService:
    clock = SystemClock()
    if settings.reminders == "celery":
        reminders = CeleryReminderScheduler(clock=clock)
    else:
        reminders = NullReminderScheduler()
    return CapsuleService(JsonFileCapsuleStore(settings.capsule_path), clock, reminders)


def get_service(request: Request) -> CapsuleService:
    return request.app.state.capsule_service


def _json(model: BaseModel, status_code: int) -> JSONResponse:
    return JSONResponse(model.model_dump(by_alias=True), status_code=status_code)


def create_app(settings: Optional[Settings] = None, service: Optional[CapsuleService] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings)

    app = FastAPI(
        title="TimeCapsule API",
        description="API for storing a message that unlocks at a future date",
        version="1.0.0",
    )
    app.state.capsule_service = service or build_service(settings)

    @app.exception_handler(CapsuleValidationError)
    async def validation_error_handler(request: Request, exc: CapsuleValidationError):
        logger.warning(f"Rejected capsule request: {sorted(exc.errors)}")
        return JSONResponse(
            {"status": "error", "errors": exc.errors},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(CapsuleNotFound)
    async def not_found_handler(request: Request, exc: CapsuleNotFound):
        return _json(ErrorResponse(message="No capsule found"), status.HTTP_404_NOT_FOUND)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(f"Storage failure on {request.method} {request.url.path}", exc_info=exc)
        return _json(ErrorResponse(message="Internal storage error"), status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.get("/status")
    async def get_status():
        return {"status": "running"}

    @app.post("/api/capsule", status_code=status.HTTP_201_CREATED)
    async def create_capsule(request: Request, service: CapsuleService = Depends(get_service)):
        """
        Create the capsule, replacing any existing one.
        - **message**: Content of the capsule, 1 to 5000 characters.
        - **unlockDate**: ISO 8601 date with offset, e.g. 2026-01-10T23:59:00+00:00.
        """
        body = await request.body()
        received = body.decode("utf-8", errors="replace")
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return _invalid_json(f"Invalid JSON: {e}", received)
        if not isinstance(payload, dict):
            return _invalid_json("Invalid JSON: expected an object", received)

        result = validate_capsule_request(payload, service.clock.now())
        if not result.is_valid:
            raise CapsuleValidationError(result.errors)
        await run_in_threadpool(service.create, result.request.message, result.request.unlock_date)
        return _json(CapsuleCreated(unlock_date=payload["unlockDate"]), status.HTTP_201_CREATED)

    @app.get("/api/capsule")
    def get_capsule(service: CapsuleService = Depends(get_service)):
        """
        Get the capsule.
        Returns 403 with the remaining time if it is not yet open.
        """
        capsule = service.get()
        if isinstance(capsule, LockedCapsule):
            return _json(
                LockedResponse(
                    message=f"Capsule locked. Unlocks in {capsule.remaining_time}",
                    unlock_date=format_timestamp(capsule.unlock_date),
                    created_at=format_timestamp(capsule.created_at),
                    remaining_time=capsule.remaining_time,
                ),
                status.HTTP_403_FORBIDDEN,
            )
        return _json(
            UnlockedResponse(
                message=capsule.message,
                unlock_date=format_timestamp(capsule.unlock_date),
                created_at=format_timestamp(capsule.created_at),
            ),
            status.HTTP_200_OK,
        )

    @app.delete("/api/capsule")
    def delete_capsule(service: CapsuleService = Depends(get_service)):
        """
        Delete the capsule. Succeeds when there is none.
        """
        service.delete()
        return {"status": "success", "message": "Capsule deleted"}

    return app


def _invalid_json(message: str, received: str) -> JSONResponse:
    logger.warning("Rejected capsule request with an unparsable body")
    return JSONResponse(
        {"status": "error", "message": message, "received": received},
        status_code=status.HTTP_400_BAD_REQUEST,
    )
