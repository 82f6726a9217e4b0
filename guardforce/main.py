import asyncio
from contextlib import suppress
from datetime import datetime, timezone
import logging
import time
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from guardforce.broker import get_broker
from guardforce.consumers import register_consumers
from guardforce.errors import ApiError, error_response
from guardforce.logging_utils import log_context, setup_json_logging
from guardforce.routers import attendance, shifts
from guardforce.services.schema_guard import (
    SchemaGuardResult,
    default_service_schemas,
    prepare_service_schemas,
)
from guardforce.settings import get_cors_origins, get_settings

settings = get_settings()
setup_json_logging(level=settings.log_level, service=settings.app_name)
logger = logging.getLogger("guardforce.request")
broker_worker_logger = logging.getLogger("guardforce.broker_worker")
schema_logger = logging.getLogger("guardforce.schema")

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_consumers(get_broker())


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    request.state.request_id = request_id

    start = time.perf_counter()
    status_code = 500
    try:
        with log_context(request_id=request_id):
            response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-Id"] = request_id
        return response
    finally:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "request_complete",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": status_code,
                "latency_ms": latency_ms,
                "guard_id": getattr(request.state, "guard_id", None),
                "attendance_record_id": getattr(request.state, "attendance_record_id", None),
            },
        )


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
    )


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    code_map = {
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
    }
    message = str(exc.detail) if exc.detail else "Request failed."
    return error_response(
        request,
        status_code=exc.status_code,
        code=code_map.get(exc.status_code, "HTTP_ERROR"),
        message=message,
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        status_code=422,
        code="VALIDATION_ERROR",
        message=str(exc.errors()),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "path": request.url.path,
            "method": request.method,
        },
    )
    return error_response(
        request,
        status_code=500,
        code="INTERNAL_ERROR",
        message="Unexpected server error.",
    )


app.include_router(attendance.router)
app.include_router(shifts.router)


def _default_schema_guard_result() -> SchemaGuardResult:
    return SchemaGuardResult(
        ok=False,
        checked_at_utc=datetime.now(timezone.utc),
        issues=["SCHEMA_GUARD_NOT_RUN"],
        warnings=[],
    )


async def _broker_worker_loop(stop_event: asyncio.Event) -> None:
    interval_seconds = max(1, int(settings.broker_poll_interval_seconds))
    broker = get_broker()
    while not stop_event.is_set():
        try:
            processed = await asyncio.to_thread(broker.dispatch_pending, settings.broker_batch_size)
        except Exception:
            broker_worker_logger.exception("broker_worker_tick_failed")
        else:
            if processed:
                broker_worker_logger.info(
                    "broker_worker_tick",
                    extra={"processed_messages": len(processed)},
                )
                # Drain backlog without waiting a full interval.
                continue

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue


@app.on_event("startup")
async def prepare_schemas() -> None:
    result = await asyncio.to_thread(
        prepare_service_schemas,
        default_service_schemas(),
        auto_create=settings.schema_auto_create,
    )
    app.state.schema_guard_result = result
    if result.ok:
        schema_logger.info("schema_guard_ok", extra=result.to_dict())
        return

    schema_logger.error("schema_guard_failed", extra=result.to_dict())
    if settings.schema_guard_strict:
        joined_issues = "; ".join(result.issues)
        raise RuntimeError(f"Runtime schema guard failed: {joined_issues}")


@app.on_event("startup")
async def start_broker_worker() -> None:
    if not settings.broker_worker_enabled:
        return
    if getattr(app.state, "broker_worker_task", None) is not None:
        return

    stop_event = asyncio.Event()
    task = asyncio.create_task(_broker_worker_loop(stop_event))
    app.state.broker_worker_stop_event = stop_event
    app.state.broker_worker_task = task
    broker_worker_logger.info(
        "broker_worker_started",
        extra={
            "interval_seconds": max(1, int(settings.broker_poll_interval_seconds)),
            "batch_size": settings.broker_batch_size,
            "max_attempts": settings.broker_max_attempts,
        },
    )


@app.on_event("shutdown")
async def stop_broker_worker() -> None:
    stop_event: asyncio.Event | None = getattr(app.state, "broker_worker_stop_event", None)
    task: asyncio.Task[None] | None = getattr(app.state, "broker_worker_task", None)
    if stop_event is not None:
        stop_event.set()
    if task is not None:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    app.state.broker_worker_stop_event = None
    app.state.broker_worker_task = None
    get_broker().shutdown()


@app.get("/health")
def health() -> dict[str, Any]:
    schema_guard_result: SchemaGuardResult = getattr(app.state, "schema_guard_result", _default_schema_guard_result())
    try:
        broker_queues: dict[str, Any] = get_broker().queue_stats()
    except Exception as exc:
        broker_queues = {"error": exc.__class__.__name__}
    return {
        "status": "ok" if schema_guard_result.ok else "degraded",
        "schema_guard": schema_guard_result.to_dict(),
        "broker_queues": broker_queues,
    }
