from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from guardforce.broker import BrokerError, MessageBroker, get_broker
from guardforce.db import ShiftsSessionLocal
from guardforce.events import GetShiftLocationRequest, GetShiftLocationResponse, ShiftLocation
from guardforce.services.clock import normalize_ts
from guardforce.settings import get_settings
from guardforce.shifts_models import Shift

logger = logging.getLogger("guardforce.shift_location")


def request_shift_location(
    shift_id: uuid.UUID,
    *,
    broker: MessageBroker | None = None,
) -> ShiftLocation | None:
    """Ask the Shifts service for the site coordinates and schedule of a shift.

    Any timeout, transport error or negative answer yields ``None``.
    """
    active_broker = broker or get_broker()
    timeout_seconds = get_settings().shift_location_timeout_seconds
    try:
        response = active_broker.request(
            GetShiftLocationRequest(shift_id=shift_id),
            GetShiftLocationResponse,
            timeout_seconds=timeout_seconds,
        )
    except BrokerError as exc:
        logger.warning(
            "shift_location_request_failed",
            extra={"shift_id": str(shift_id), "error": str(exc)[:500]},
        )
        return None

    if not response.success or response.location is None:
        logger.warning(
            "shift_location_unavailable",
            extra={"shift_id": str(shift_id), "error_message": response.error_message},
        )
        return None
    return response.location


def answer_shift_location(
    request: GetShiftLocationRequest,
    *,
    db: Session | None = None,
) -> GetShiftLocationResponse:
    if db is None:
        with ShiftsSessionLocal() as managed_db:
            return answer_shift_location(request, db=managed_db)

    try:
        shift = db.scalar(
            select(Shift).where(
                Shift.id == request.shift_id,
                Shift.is_deleted.is_(False),
            )
        )
    except SQLAlchemyError:
        logger.exception("shift_location_lookup_failed", extra={"shift_id": str(request.shift_id)})
        return GetShiftLocationResponse(success=False, error_message="Failed to load shift location.")

    if shift is None:
        return GetShiftLocationResponse(
            success=False,
            error_message=f"Shift {request.shift_id} not found.",
        )
    if shift.location_latitude is None or shift.location_longitude is None:
        return GetShiftLocationResponse(
            success=False,
            error_message=f"Shift {request.shift_id} has no site coordinates.",
        )

    return GetShiftLocationResponse(
        success=True,
        location=ShiftLocation(
            shift_id=shift.id,
            latitude=shift.location_latitude,
            longitude=shift.location_longitude,
            scheduled_start_time=normalize_ts(shift.shift_start),
            scheduled_end_time=normalize_ts(shift.shift_end),
        ),
    )
