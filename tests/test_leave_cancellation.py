from __future__ import annotations

import unittest
import uuid
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from guardforce.db import ShiftsBase
from guardforce.events import ShiftAssignmentCancelled
from guardforce.services.leave_cancellation import bulk_cancel_guard_shifts
from guardforce.shifts_models import (
    AssignmentStatus,
    Guard,
    Shift,
    ShiftAssignment,
    ShiftIssue,
    ShiftStatus,
)

NOW = datetime(2026, 3, 1, 2, 0, tzinfo=timezone.utc)


class _FakeBroker:
    def __init__(self, *, fail: bool = False):
        self.published: list[ShiftAssignmentCancelled] = []
        self.fail = fail

    def publish(self, message, **_kwargs):  # type: ignore[no-untyped-def]
        if self.fail:
            raise RuntimeError("broker offline")
        self.published.append(message)
        return str(uuid.uuid4())


class BulkCancelShiftsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        ShiftsBase.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

        self.guard_id = uuid.uuid4()
        self.colleague_id = uuid.uuid4()
        with self.Session() as db:
            db.add(
                Guard(
                    id=self.guard_id,
                    email="guard@example.com",
                    full_name="Guard",
                    employee_code="GRD-1",
                )
            )
            self.in_range = self._add_shift(db, date(2026, 3, 2), [self.guard_id, self.colleague_id])
            self.in_range_2 = self._add_shift(db, date(2026, 3, 3), [self.guard_id])
            self.out_of_range = self._add_shift(db, date(2026, 3, 10), [self.guard_id])
            self.completed = self._add_shift(db, date(2026, 3, 4), [self.guard_id], status=ShiftStatus.COMPLETED)
            self.other_guard_only = self._add_shift(db, date(2026, 3, 2), [self.colleague_id])
            db.commit()

    def tearDown(self) -> None:
        self.engine.dispose()

    def _add_shift(self, db, shift_date: date, guard_ids: list[uuid.UUID], *, status=ShiftStatus.SCHEDULED):  # type: ignore[no-untyped-def]
        start = datetime(shift_date.year, shift_date.month, shift_date.day, 1, 0, tzinfo=timezone.utc)
        shift = Shift(
            shift_date=shift_date,
            shift_start=start,
            shift_end=start + timedelta(hours=9),
            status=status,
            assigned_guards_count=len(guard_ids),
        )
        db.add(shift)
        db.flush()
        for guard_id in guard_ids:
            db.add(ShiftAssignment(shift_id=shift.id, guard_id=guard_id, status=AssignmentStatus.ASSIGNED))
        return shift.id

    def _cancel(self, *, broker: _FakeBroker, **overrides):  # type: ignore[no-untyped-def]
        values = {
            "guard_id": self.guard_id,
            "from_date": date(2026, 3, 1),
            "to_date": date(2026, 3, 5),
            "cancellation_reason": "Hospitalised",
            "leave_type": "SICK_LEAVE",
            "now_utc": NOW,
            "broker": broker,
        }
        values.update(overrides)
        with self.Session() as db:
            return bulk_cancel_guard_shifts(db, **values)

    def _shift(self, shift_id: uuid.UUID) -> Shift:
        with self.Session() as db:
            shift = db.get(Shift, shift_id)
        assert shift is not None
        return shift

    def test_cancels_active_shifts_in_range_and_publishes_after_commit(self) -> None:
        broker = _FakeBroker()

        result = self._cancel(broker=broker, cancelled_by=self.colleague_id)

        self.assertTrue(result.success)
        self.assertEqual(result.shifts_cancelled, 2)
        self.assertEqual(result.total_shifts_processed, 2)
        self.assertEqual(result.assignments_cancelled, 3)
        self.assertEqual(result.guards_affected, 2)
        self.assertEqual(result.warnings, [])
        self.assertEqual([item.shift_id for item in result.details], [self.in_range, self.in_range_2])

        for shift_id in (self.in_range, self.in_range_2):
            shift = self._shift(shift_id)
            self.assertEqual(shift.status, ShiftStatus.CANCELLED)
            self.assertEqual(shift.cancellation_reason, "Hospitalised")
            self.assertEqual(shift.version, 2)
        self.assertEqual(self._shift(self.out_of_range).status, ShiftStatus.SCHEDULED)
        self.assertEqual(self._shift(self.completed).status, ShiftStatus.COMPLETED)
        self.assertEqual(self._shift(self.other_guard_only).status, ShiftStatus.SCHEDULED)

        with self.Session() as db:
            cancelled = db.scalars(
                select(ShiftAssignment).where(ShiftAssignment.status == AssignmentStatus.CANCELLED)
            ).all()
            issues = db.scalars(select(ShiftIssue)).all()
        self.assertEqual(len(cancelled), 3)
        self.assertEqual(len(issues), 1)
        self.assertEqual(issues[0].issue_type, "SICK_LEAVE")
        self.assertEqual(issues[0].total_shifts_affected, 2)
        self.assertEqual(issues[0].total_guards_affected, 2)

        self.assertEqual(len(broker.published), 3)
        self.assertEqual({item.shift_assignment_id for item in broker.published}, {item.id for item in cancelled})
        self.assertTrue(all(item.leave_type == "SICK_LEAVE" for item in broker.published))
        self.assertTrue(all(item.cancelled_by == self.colleague_id for item in broker.published))

    def test_publish_failures_become_warnings(self) -> None:
        result = self._cancel(broker=_FakeBroker(fail=True))

        self.assertTrue(result.success)
        self.assertEqual(len(result.warnings), 3)
        self.assertEqual(self._shift(self.in_range).status, ShiftStatus.CANCELLED)

    def test_empty_range_succeeds_without_changes(self) -> None:
        broker = _FakeBroker()

        result = self._cancel(broker=broker, from_date=date(2026, 4, 1), to_date=date(2026, 4, 30))

        self.assertTrue(result.success)
        self.assertEqual(result.shifts_cancelled, 0)
        self.assertEqual(broker.published, [])

    def test_invalid_requests_are_rejected(self) -> None:
        broker = _FakeBroker()

        reversed_range = self._cancel(broker=broker, from_date=date(2026, 3, 5), to_date=date(2026, 3, 1))
        bad_leave_type = self._cancel(broker=broker, leave_type="HOLIDAY")
        blank_reason = self._cancel(broker=broker, cancellation_reason="   ")
        unknown_guard = self._cancel(broker=broker, guard_id=uuid.uuid4())

        for result in (reversed_range, bad_leave_type, blank_reason, unknown_guard):
            self.assertFalse(result.success)
            self.assertEqual(result.errors, [result.message])
        self.assertIn("leaveType", bad_leave_type.message)
        self.assertIn("not found", unknown_guard.message)
        self.assertEqual(broker.published, [])
        self.assertEqual(self._shift(self.in_range).status, ShiftStatus.SCHEDULED)

    def test_to_dict_uses_camel_case(self) -> None:
        payload = self._cancel(broker=_FakeBroker()).to_dict()

        self.assertEqual(payload["shiftsCancelled"], 2)
        self.assertEqual(payload["assignmentsCancelled"], 3)
        self.assertEqual(payload["details"][0]["shiftDate"], "2026-03-02")
        self.assertEqual(payload["details"][0]["assignmentsCancelled"], 2)


if __name__ == "__main__":
    unittest.main()
