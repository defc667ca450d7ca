import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shared.database import create_all

from . import config
from .db import engine
from .errors import (
    Forbidden,
    InvalidArgument,
    InvalidState,
    NotFound,
    SchedulingError,
    SlotUnavailable,
    StorageFailure,
)
from .reminder_worker import reminder_loop
from .routes import router
from .services import container, publisher

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
log = logging.getLogger("appointment_service")

ERROR_STATUS = {
    InvalidArgument: 400,
    Forbidden: 403,
    NotFound: 404,
    SlotUnavailable: 409,
    InvalidState: 409,
    StorageFailure: 503,
}

app = FastAPI(title="Appointment Service")
app.include_router(router)

_stop_event = asyncio.Event()
_reminder_task = None


def status_for(exc: SchedulingError) -> int:
    for kind, status in ERROR_STATUS.items():
        if isinstance(exc, kind):
            return status
    return 500


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    status = status_for(exc)
    if status >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status, content={"error": exc.code, "detail": exc.message})


@app.get("/health")
async def health():
    return {"status": "ok", "service": "appointment-service", "events_enabled": publisher.enabled}


@app.on_event("startup")
async def startup():
    global _reminder_task
    if config.CREATE_TABLES_ON_STARTUP:
        await create_all(engine)

    # never crash the service if RabbitMQ is temporarily unavailable
    try:
        await publisher.connect()
    except Exception:
        log.warning("RabbitMQ connect failed at startup; continuing without notifications")

    if config.REMINDER_WORKER_ENABLED:
        _stop_event.clear()
        _reminder_task = asyncio.create_task(reminder_loop(container, _stop_event))


@app.on_event("shutdown")
async def shutdown():
    global _reminder_task
    _stop_event.set()
    if _reminder_task:
        try:
            await _reminder_task
        except Exception:
            log.exception("reminder worker stopped with an error")
        _reminder_task = None
    try:
        await publisher.close()
    except Exception:
        log.warning("RabbitMQ close failed", exc_info=True)
    await engine.dispose()
