from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from guardforce.db import AttendanceSessionLocal
from guardforce.events import ShiftAssignmentCancelled
from guardforce.models import TERMINAL_ATTENDANCE_STATUSES, AttendanceRecord, AttendanceStatus
from guardforce.services.clock import to_local, utcnow

logger = logging.getLogger("guardforce.attendance_sync")


def _append_note(existing: str | None, note: str) -> str:
    if not existing:
        return note
    if note in existing:
        return existing
    return f"{existing}\n{note}"


def consume_assignment_cancelled(event: ShiftAssignmentCancelled, *, db: Session | None = None) -> str | None:
    """Bring the attendance record of a cancelled assignment in line.

    Returns the action taken (``cancelled``, ``flagged_incomplete``,
    ``noted``) or ``None`` when there is no record to update.
    """
    if db is None:
        with AttendanceSessionLocal() as managed_db:
            return consume_assignment_cancelled(event, db=managed_db)

    note = (
        f"Assignment cancelled ({event.leave_type}) at "
        f"{to_local(event.cancelled_at):%Y-%m-%d %H:%M}: {event.cancellation_reason}"
    )
    try:
        record = db.scalar(
            select(AttendanceRecord).where(
                AttendanceRecord.shift_assignment_id == event.shift_assignment_id,
                AttendanceRecord.is_deleted.is_(False),
            )
        )
        if record is None:
            logger.info(
                "attendance_cancel_no_record",
                extra={"shift_assignment_id": str(event.shift_assignment_id)},
            )
            return None

        now_utc = utcnow()
        if record.status in TERMINAL_ATTENDANCE_STATUSES:
            action = "noted"
        elif record.check_in_time is None:
            record.status = AttendanceStatus.CANCELLED
            record.is_deleted = True
            record.deleted_at = now_utc
            action = "cancelled"
        elif record.check_out_time is None:
            record.status = AttendanceStatus.INCOMPLETE
            record.is_incomplete = True
            record.flags_for_review = True
            record.flag_reason = f"Shift assignment cancelled after check-in ({event.leave_type})."
            action = "flagged_incomplete"
        else:
            action = "noted"
        record.manager_notes = _append_note(record.manager_notes, note)
        record.updated_at = now_utc
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "attendance_cancel_consume_failed",
            extra={"shift_assignment_id": str(event.shift_assignment_id)},
        )
        raise

    logger.info(
        "attendance_cancel_applied",
        extra={
            "shift_assignment_id": str(event.shift_assignment_id),
            "attendance_record_id": str(record.id),
            "action": action,
        },
    )
    return action
