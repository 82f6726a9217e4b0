from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from guardforce.broker import MessageBroker, get_broker
from guardforce.events import ShiftAssignmentCancelled
from guardforce.services.clock import normalize_ts
from guardforce.shifts_models import AssignmentStatus, Guard, Shift, ShiftAssignment, ShiftIssue, ShiftStatus

logger = logging.getLogger("guardforce.leave_cancellation")

LEAVE_TYPES = ("SICK_LEAVE", "MATERNITY_LEAVE", "LONG_TERM_LEAVE", "OTHER")
_CLOSED_SHIFT_STATUSES = (ShiftStatus.CANCELLED, ShiftStatus.COMPLETED)
_CLOSED_ASSIGNMENT_STATUSES = (AssignmentStatus.CANCELLED, AssignmentStatus.COMPLETED)


@dataclass(slots=True)
class CancelledShiftDetail:
    shift_id: uuid.UUID
    shift_date: date
    assignments_cancelled: int
    guard_ids: list[uuid.UUID] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "shiftId": str(self.shift_id),
            "shiftDate": self.shift_date.isoformat(),
            "assignmentsCancelled": self.assignments_cancelled,
            "guardIds": [str(item) for item in self.guard_ids],
        }


@dataclass(slots=True)
class BulkCancelResult:
    success: bool
    message: str
    total_shifts_processed: int = 0
    shifts_cancelled: int = 0
    assignments_cancelled: int = 0
    guards_affected: int = 0
    details: list[CancelledShiftDetail] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "totalShiftsProcessed": self.total_shifts_processed,
            "shiftsCancelled": self.shifts_cancelled,
            "assignmentsCancelled": self.assignments_cancelled,
            "guardsAffected": self.guards_affected,
            "details": [item.to_dict() for item in self.details],
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


def _failure(message: str) -> BulkCancelResult:
    return BulkCancelResult(success=False, message=message, errors=[message])


def bulk_cancel_guard_shifts(
    db: Session,
    *,
    guard_id: uuid.UUID,
    from_date: date,
    to_date: date,
    cancellation_reason: str,
    leave_type: str,
    cancelled_by: uuid.UUID | None = None,
    evidence_image_url: str | None = None,
    now_utc: datetime | None = None,
    broker: MessageBroker | None = None,
) -> BulkCancelResult:
    if from_date > to_date:
        return _failure("fromDate must be on or before toDate.")
    reason = (cancellation_reason or "").strip()
    if not reason:
        return _failure("cancellationReason is required.")
    normalized_leave_type = (leave_type or "").strip().upper()
    if normalized_leave_type not in LEAVE_TYPES:
        return _failure(f"leaveType must be one of: {', '.join(LEAVE_TYPES)}.")

    guard = db.get(Guard, guard_id)
    if guard is None or guard.is_deleted:
        return _failure(f"Guard {guard_id} not found.")

    guard_shift_ids = select(ShiftAssignment.shift_id).where(
        ShiftAssignment.guard_id == guard_id,
        ShiftAssignment.is_deleted.is_(False),
        ShiftAssignment.status.not_in(_CLOSED_ASSIGNMENT_STATUSES),
    )
    shifts = list(
        db.scalars(
            select(Shift)
            .where(
                Shift.id.in_(guard_shift_ids),
                Shift.shift_date >= from_date,
                Shift.shift_date <= to_date,
                Shift.status.not_in(_CLOSED_SHIFT_STATUSES),
                Shift.is_deleted.is_(False),
            )
            .order_by(Shift.shift_date.asc(), Shift.shift_start.asc())
            .with_for_update()
        ).all()
    )
    if not shifts:
        db.rollback()
        return BulkCancelResult(
            success=True,
            message="No active shifts found for the guard in the selected period.",
        )

    cancelled_at = normalize_ts(now_utc)
    details: list[CancelledShiftDetail] = []
    events: list[ShiftAssignmentCancelled] = []
    affected_guards: set[uuid.UUID] = set()
    try:
        for shift in shifts:
            assignments = list(
                db.scalars(
                    select(ShiftAssignment).where(
                        ShiftAssignment.shift_id == shift.id,
                        ShiftAssignment.is_deleted.is_(False),
                        ShiftAssignment.status.not_in(_CLOSED_ASSIGNMENT_STATUSES),
                    )
                ).all()
            )
            for assignment in assignments:
                assignment.status = AssignmentStatus.CANCELLED
                assignment.cancelled_at = cancelled_at
                assignment.cancellation_reason = reason
                assignment.updated_at = cancelled_at
                affected_guards.add(assignment.guard_id)
                events.append(
                    ShiftAssignmentCancelled(
                        shift_assignment_id=assignment.id,
                        shift_id=shift.id,
                        guard_id=assignment.guard_id,
                        cancellation_reason=reason,
                        leave_type=normalized_leave_type,
                        cancelled_at=cancelled_at,
                        cancelled_by=cancelled_by,
                        evidence_image_url=evidence_image_url,
                    )
                )

            shift.status = ShiftStatus.CANCELLED
            shift.cancelled_at = cancelled_at
            shift.cancellation_reason = reason
            shift.version = (shift.version or 0) + 1
            shift.updated_at = cancelled_at
            details.append(
                CancelledShiftDetail(
                    shift_id=shift.id,
                    shift_date=shift.shift_date,
                    assignments_cancelled=len(assignments),
                    guard_ids=[item.guard_id for item in assignments],
                )
            )

        db.add(
            ShiftIssue(
                issue_type=normalized_leave_type,
                guard_id=guard_id,
                start_date=from_date,
                end_date=to_date,
                reason=reason,
                evidence_image_url=evidence_image_url,
                total_shifts_affected=len(shifts),
                total_guards_affected=len(affected_guards),
                created_by=cancelled_by,
                created_at=cancelled_at,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "bulk_cancel_failed",
            extra={"guard_id": str(guard_id), "from_date": from_date.isoformat(), "to_date": to_date.isoformat()},
        )
        raise

    warnings: list[str] = []
    active_broker = broker or get_broker()
    for event in events:
        try:
            active_broker.publish(event)
        except Exception as exc:
            logger.exception(
                "bulk_cancel_event_publish_failed",
                extra={"shift_assignment_id": str(event.shift_assignment_id)},
            )
            warnings.append(f"Failed to publish cancellation for assignment {event.shift_assignment_id}: {exc}")

    logger.info(
        "bulk_cancel_completed",
        extra={
            "guard_id": str(guard_id),
            "leave_type": normalized_leave_type,
            "shifts_cancelled": len(shifts),
            "assignments_cancelled": len(events),
            "guards_affected": len(affected_guards),
        },
    )
    return BulkCancelResult(
        success=True,
        message=f"Cancelled {len(shifts)} shift(s) and {len(events)} assignment(s).",
        total_shifts_processed=len(shifts),
        shifts_cancelled=len(shifts),
        assignments_cancelled=len(events),
        guards_affected=len(affected_guards),
        details=details,
        warnings=warnings,
    )
