from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from guardforce.db import get_shifts_db
from guardforce.schemas import BulkCancelShiftsRequest
from guardforce.services.leave_cancellation import bulk_cancel_guard_shifts

router = APIRouter(prefix="/api/shifts", tags=["shifts"])


@router.post("/bulk-cancel")
def bulk_cancel_shifts(
    payload: BulkCancelShiftsRequest,
    request: Request,
    db: Session = Depends(get_shifts_db),
) -> Any:
    result = bulk_cancel_guard_shifts(
        db,
        guard_id=payload.guard_id,
        from_date=payload.from_date,
        to_date=payload.to_date,
        cancellation_reason=payload.cancellation_reason,
        leave_type=payload.leave_type,
        cancelled_by=payload.cancelled_by,
        evidence_image_url=payload.evidence_image_url,
    )
    request.state.guard_id = str(payload.guard_id)
    if not result.success:
        return JSONResponse(status_code=400, content=result.to_dict())
    return result.to_dict()
