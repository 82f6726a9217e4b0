from __future__ import annotations

import logging

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from guardforce.db import ShiftsSessionLocal
from guardforce.events import GuardCheckedIn, GuardCheckedOut
from guardforce.services.clock import normalize_ts, utcnow
from guardforce.shifts_models import AssignmentStatus, Shift, ShiftAssignment

logger = logging.getLogger("guardforce.shifts")


def consume_guard_checked_in(event: GuardCheckedIn, *, db: Session | None = None) -> bool:
    """Mark the assignment checked in and bump the shift counters once.

    Returns ``False`` when the assignment was already checked in (redelivery)
    or does not exist; counters are only touched when the assignment row
    actually changed.
    """
    if db is None:
        with ShiftsSessionLocal() as managed_db:
            return consume_guard_checked_in(event, db=managed_db)

    now_utc = utcnow()
    try:
        assignment_result = db.execute(
            update(ShiftAssignment)
            .where(
                ShiftAssignment.id == event.shift_assignment_id,
                ShiftAssignment.checked_in_at.is_(None),
            )
            .values(
                confirmed_at=normalize_ts(event.confirmed_at),
                checked_in_at=normalize_ts(event.check_in_time),
                status=AssignmentStatus.CHECKED_IN,
                is_late=event.is_late,
                late_minutes=event.late_minutes,
                updated_at=now_utc,
            )
            .execution_options(synchronize_session=False)
        )
        if assignment_result.rowcount == 0:
            db.rollback()
            logger.info(
                "shift_check_in_already_applied",
                extra={
                    "shift_assignment_id": str(event.shift_assignment_id),
                    "shift_id": str(event.shift_id),
                },
            )
            return False

        db.execute(
            update(Shift)
            .where(Shift.id == event.shift_id)
            .values(
                confirmed_guards_count=func.coalesce(Shift.confirmed_guards_count, 0) + 1,
                checked_in_guards_count=func.coalesce(Shift.checked_in_guards_count, 0) + 1,
                updated_at=now_utc,
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "shift_check_in_consume_failed",
            extra={"shift_assignment_id": str(event.shift_assignment_id), "shift_id": str(event.shift_id)},
        )
        raise

    logger.info(
        "shift_check_in_applied",
        extra={
            "shift_assignment_id": str(event.shift_assignment_id),
            "shift_id": str(event.shift_id),
            "guard_id": str(event.guard_id),
            "is_late": event.is_late,
        },
    )
    return True


def consume_guard_checked_out(event: GuardCheckedOut, *, db: Session | None = None) -> bool:
    if db is None:
        with ShiftsSessionLocal() as managed_db:
            return consume_guard_checked_out(event, db=managed_db)

    try:
        result = db.execute(
            update(ShiftAssignment)
            .where(
                ShiftAssignment.id == event.shift_assignment_id,
                ShiftAssignment.checked_out_at.is_(None),
            )
            .values(
                checked_out_at=normalize_ts(event.check_out_time),
                completed_at=normalize_ts(event.completed_at),
                status=AssignmentStatus.COMPLETED,
                actual_work_minutes=event.actual_work_duration_minutes,
                is_early_leave=event.is_early_leave,
                has_overtime=event.has_overtime,
                overtime_minutes=event.overtime_minutes,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            logger.info(
                "shift_check_out_already_applied",
                extra={"shift_assignment_id": str(event.shift_assignment_id)},
            )
            return False
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "shift_check_out_consume_failed",
            extra={"shift_assignment_id": str(event.shift_assignment_id), "shift_id": str(event.shift_id)},
        )
        raise

    logger.info(
        "shift_check_out_applied",
        extra={
            "shift_assignment_id": str(event.shift_assignment_id),
            "shift_id": str(event.shift_id),
            "total_hours": event.total_hours,
            "overtime_minutes": event.overtime_minutes,
        },
    )
    return True
