from __future__ import annotations

import base64
import unittest
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from guardforce.db import AttendanceBase
from guardforce.events import GuardCheckedIn, GuardCheckedOut, ShiftLocation
from guardforce.models import (
    AttendanceRecord,
    AttendanceStatus,
    BiometricEventType,
    BiometricLog,
    VerificationStatus,
)
from guardforce.services.attendance import (
    MSG_ALREADY_CHECKED_IN,
    MSG_ALREADY_CHECKED_OUT,
    MSG_LOCATION_UNAVAILABLE,
    MSG_NO_TEMPLATE,
    MSG_RECORD_NOT_FOUND,
    ImageUpload,
    check_in_guard,
    check_out_guard,
)
from guardforce.services.biometrics import FaceRegistration, FaceVerification
from guardforce.services.face_registration import REQUIRED_POSES, PoseImage, register_guard_face

SITE_LAT = 10.7769
SITE_LON = 106.7009
SHIFT_START = datetime(2026, 3, 2, 1, 0, tzinfo=timezone.utc)
SHIFT_END = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


class _FakeBroker:
    def __init__(self, *, fail: bool = False):
        self.published: list[object] = []
        self.fail = fail

    def publish(self, message, **_kwargs):  # type: ignore[no-untyped-def]
        if self.fail:
            raise RuntimeError("broker offline")
        self.published.append(message)
        return str(uuid.uuid4())


def _good_match() -> FaceVerification:
    return FaceVerification(is_match=True, confidence=92.5, face_detected=True, face_quality=81.0)


def _image() -> ImageUpload:
    return ImageUpload(content=b"\xff\xd8jpeg-bytes", content_type="image/jpeg", filename="face.jpg")


class AttendanceWorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        AttendanceBase.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

        self.guard_id = uuid.uuid4()
        self.shift_id = uuid.uuid4()
        self.assignment_id = uuid.uuid4()
        self.broker = _FakeBroker()
        self.location = ShiftLocation(
            shift_id=self.shift_id,
            latitude=SITE_LAT,
            longitude=SITE_LON,
            scheduled_start_time=SHIFT_START,
            scheduled_end_time=SHIFT_END,
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _seed_template(self) -> None:
        with self.Session() as db:
            db.add(
                BiometricLog(
                    guard_id=self.guard_id,
                    event_type=BiometricEventType.REGISTRATION,
                    registered_face_template_url="s3://templates/guard.npy",
                    face_quality_score=85.0,
                    verification_status=VerificationStatus.SUCCESS,
                    is_verified=True,
                )
            )
            db.commit()

    def _seed_record(self, **values) -> uuid.UUID:  # type: ignore[no-untyped-def]
        record = AttendanceRecord(
            guard_id=self.guard_id,
            shift_assignment_id=self.assignment_id,
            shift_id=self.shift_id,
            **values,
        )
        with self.Session() as db:
            db.add(record)
            db.commit()
        return record.id

    def _check_in(self, *, now_utc: datetime, latitude: float = SITE_LAT, broker=None):  # type: ignore[no-untyped-def]
        with self.Session() as db:
            return check_in_guard(
                db,
                guard_id=self.guard_id,
                shift_assignment_id=self.assignment_id,
                shift_id=self.shift_id,
                image=_image(),
                latitude=latitude,
                longitude=SITE_LON,
                accuracy=8.0,
                now_utc=now_utc,
                broker=broker or self.broker,
            )

    def _check_out(self, *, now_utc: datetime):  # type: ignore[no-untyped-def]
        with self.Session() as db:
            return check_out_guard(
                db,
                guard_id=self.guard_id,
                shift_assignment_id=self.assignment_id,
                shift_id=self.shift_id,
                image=_image(),
                latitude=SITE_LAT,
                longitude=SITE_LON,
                now_utc=now_utc,
                broker=self.broker,
            )

    def _count(self, model) -> int:  # type: ignore[no-untyped-def]
        with self.Session() as db:
            return int(db.scalar(select(func.count()).select_from(model)) or 0)

    def _record(self) -> AttendanceRecord:
        with self.Session() as db:
            record = db.scalar(select(AttendanceRecord).where(AttendanceRecord.shift_id == self.shift_id))
        assert record is not None
        return record

    @patch("guardforce.services.attendance.upload_image", return_value="https://bucket/check-in.jpg")
    @patch("guardforce.services.attendance.request_shift_location")
    @patch("guardforce.services.attendance.verify_face")
    def test_successful_check_in_creates_record_and_publishes_once(
        self,
        mock_verify,
        mock_location,
        mock_upload,
    ) -> None:
        self._seed_template()
        mock_verify.return_value = _good_match()
        mock_location.return_value = self.location

        result = self._check_in(now_utc=SHIFT_START + timedelta(minutes=5))

        self.assertTrue(result.success)
        self.assertTrue(result.is_late)
        self.assertEqual(result.late_minutes, 5)
        self.assertEqual(result.face_match_score, 92.5)
        self.assertEqual(result.distance_from_site, 0.0)
        self.assertEqual(result.check_in_image_url, "https://bucket/check-in.jpg")
        mock_verify.assert_called_once()
        self.assertEqual(mock_verify.call_args.kwargs["event_type"], "check_in")
        self.assertEqual(mock_verify.call_args.kwargs["template_url"], "s3://templates/guard.npy")
        mock_upload.assert_called_once()
        self.assertTrue(mock_upload.call_args.kwargs["key"].startswith(f"check-in/{self.guard_id}/{self.shift_id}/"))

        self.assertEqual(self._count(AttendanceRecord), 1)
        record = self._record()
        self.assertEqual(record.status, AttendanceStatus.CHECKED_IN)
        self.assertEqual(record.id, result.attendance_record_id)
        self.assertEqual(record.check_in_distance_from_site, 0.0)
        self.assertEqual(record.check_in_location_accuracy, 8.0)
        self.assertEqual(record.late_minutes, 5)
        self.assertEqual(record.break_duration_minutes, 60)

        with self.Session() as db:
            check_in_logs = db.scalars(
                select(BiometricLog).where(BiometricLog.event_type == BiometricEventType.CHECK_IN)
            ).all()
        self.assertEqual(len(check_in_logs), 1)
        self.assertEqual(check_in_logs[0].attendance_record_id, record.id)

        self.assertEqual(len(self.broker.published), 1)
        event = self.broker.published[0]
        self.assertIsInstance(event, GuardCheckedIn)
        assert isinstance(event, GuardCheckedIn)
        self.assertEqual(event.attendance_record_id, record.id)
        self.assertEqual(event.shift_assignment_id, self.assignment_id)
        self.assertEqual(event.shift_id, self.shift_id)
        self.assertEqual(event.late_minutes, 5)
        self.assertTrue(event.is_late)
        self.assertEqual(event.face_match_score, 92.5)

    @patch("guardforce.services.attendance.upload_image", return_value="https://bucket/check-in.jpg")
    @patch("guardforce.services.attendance.request_shift_location")
    @patch("guardforce.services.attendance.verify_face")
    def test_check_in_promotes_pending_record(self, mock_verify, mock_location, _mock_upload) -> None:
        self._seed_template()
        record_id = self._seed_record(status=AttendanceStatus.PENDING, break_duration_minutes=30)
        mock_verify.return_value = _good_match()
        mock_location.return_value = self.location

        result = self._check_in(now_utc=SHIFT_START - timedelta(minutes=2))

        self.assertTrue(result.success)
        self.assertFalse(result.is_late)
        self.assertEqual(result.attendance_record_id, record_id)
        record = self._record()
        self.assertEqual(record.status, AttendanceStatus.CHECKED_IN)
        self.assertEqual(record.break_duration_minutes, 30)
        self.assertEqual(self._count(AttendanceRecord), 1)

    @patch("guardforce.services.attendance.upload_image")
    @patch("guardforce.services.attendance.request_shift_location")
    @patch("guardforce.services.attendance.verify_face")
    def test_check_in_rejected_when_already_checked_in(self, mock_verify, mock_location, mock_upload) -> None:
        self._seed_template()
        self._seed_record(status=AttendanceStatus.CHECKED_IN, check_in_time=SHIFT_START)

        result = self._check_in(now_utc=SHIFT_START + timedelta(minutes=10))

        self.assertFalse(result.success)
        self.assertEqual(result.error_message, MSG_ALREADY_CHECKED_IN)
        mock_verify.assert_not_called()
        mock_location.assert_not_called()
        mock_upload.assert_not_called()
        self.assertEqual(self.broker.published, [])

    @patch("guardforce.services.attendance.verify_face")
    def test_check_in_without_template_is_rejected(self, mock_verify) -> None:
        result = self._check_in(now_utc=SHIFT_START)

        self.assertFalse(result.success)
        self.assertEqual(result.error_message, MSG_NO_TEMPLATE)
        mock_verify.assert_not_called()
        self.assertEqual(self._count(AttendanceRecord), 0)

    @patch("guardforce.services.attendance.upload_image")
    @patch("guardforce.services.attendance.request_shift_location")
    @patch("guardforce.services.attendance.verify_face")
    def test_low_confidence_rejects_before_location_lookup(self, mock_verify, mock_location, mock_upload) -> None:
        self._seed_template()
        mock_verify.return_value = FaceVerification(
            is_match=False,
            confidence=41.237,
            face_detected=True,
            face_quality=80.0,
        )

        result = self._check_in(now_utc=SHIFT_START)

        self.assertFalse(result.success)
        self.assertIn("Face verification failed", result.error_message or "")
        self.assertEqual(result.face_match_score, 41.24)
        mock_location.assert_not_called()
        mock_upload.assert_not_called()
        self.assertEqual(self._count(AttendanceRecord), 0)

    @patch("guardforce.services.attendance.upload_image")
    @patch("guardforce.services.attendance.request_shift_location")
    @patch("guardforce.services.attendance.verify_face")
    def test_geofence_rejection_reports_distance_and_score(self, mock_verify, mock_location, mock_upload) -> None:
        self._seed_template()
        mock_verify.return_value = _good_match()
        mock_location.return_value = self.location

        result = self._check_in(now_utc=SHIFT_START, latitude=SITE_LAT + 0.01)

        self.assertFalse(result.success)
        self.assertIn("too far from the site", result.error_message or "")
        self.assertEqual(result.face_match_score, 92.5)
        self.assertAlmostEqual(result.distance_from_site or 0.0, 1111.95, delta=1.0)
        mock_upload.assert_not_called()
        self.assertEqual(self._count(AttendanceRecord), 0)
        self.assertEqual(self.broker.published, [])

    @patch("guardforce.services.attendance.upload_image")
    @patch("guardforce.services.attendance.request_shift_location", return_value=None)
    @patch("guardforce.services.attendance.verify_face")
    def test_missing_shift_location_fails_closed(self, mock_verify, _mock_location, mock_upload) -> None:
        self._seed_template()
        mock_verify.return_value = _good_match()

        result = self._check_in(now_utc=SHIFT_START)

        self.assertFalse(result.success)
        self.assertEqual(result.error_message, MSG_LOCATION_UNAVAILABLE)
        mock_upload.assert_not_called()
        self.assertEqual(self._count(AttendanceRecord), 0)

    @patch("guardforce.services.attendance.upload_image", return_value="https://bucket/check-in.jpg")
    @patch("guardforce.services.attendance.request_shift_location")
    @patch("guardforce.services.attendance.verify_face")
    def test_publish_failure_does_not_undo_check_in(self, mock_verify, mock_location, _mock_upload) -> None:
        self._seed_template()
        mock_verify.return_value = _good_match()
        mock_location.return_value = self.location

        with self.assertLogs("guardforce.attendance", level="ERROR") as captured:
            result = self._check_in(now_utc=SHIFT_START, broker=_FakeBroker(fail=True))

        self.assertTrue(result.success)
        self.assertEqual(self._record().status, AttendanceStatus.CHECKED_IN)
        self.assertTrue(any("attendance_event_publish_failed" in line for line in captured.output))

    @patch("guardforce.services.attendance.upload_image")
    @patch("guardforce.services.attendance.request_shift_location")
    @patch("guardforce.services.attendance.verify_face")
    def test_check_out_without_check_in_writes_nothing(self, mock_verify, mock_location, mock_upload) -> None:
        self._seed_template()

        result = self._check_out(now_utc=SHIFT_END)

        self.assertFalse(result.success)
        self.assertEqual(result.error_message, MSG_RECORD_NOT_FOUND)
        mock_verify.assert_not_called()
        mock_location.assert_not_called()
        mock_upload.assert_not_called()
        self.assertEqual(self._count(AttendanceRecord), 0)
        self.assertEqual(self._count(BiometricLog), 1)
        self.assertEqual(self.broker.published, [])

    @patch("guardforce.services.attendance.upload_image", return_value="https://bucket/check-out.jpg")
    @patch("guardforce.services.attendance.request_shift_location")
    @patch("guardforce.services.attendance.verify_face")
    def test_check_out_computes_metrics_and_publishes(self, mock_verify, mock_location, _mock_upload) -> None:
        self._seed_template()
        self._seed_record(
            status=AttendanceStatus.CHECKED_IN,
            check_in_time=datetime(2026, 3, 2, 1, 0, tzinfo=timezone.utc),
            scheduled_end_time=SHIFT_END,
            break_duration_minutes=60,
        )
        mock_verify.return_value = _good_match()
        mock_location.return_value = self.location

        result = self._check_out(now_utc=SHIFT_END + timedelta(minutes=30))

        self.assertTrue(result.success)
        self.assertEqual(result.actual_work_duration_minutes, 570)
        self.assertEqual(result.total_hours, 8.5)
        self.assertTrue(result.has_overtime)
        self.assertEqual(result.overtime_minutes, 30)
        self.assertEqual(mock_verify.call_args.kwargs["event_type"], "check_out")

        record = self._record()
        self.assertEqual(record.status, AttendanceStatus.CHECKED_OUT)
        self.assertEqual(record.actual_work_duration_minutes, 570)
        self.assertAlmostEqual(record.total_hours or 0.0, 8.5)
        self.assertEqual(record.check_out_face_image_url, "https://bucket/check-out.jpg")

        self.assertEqual(len(self.broker.published), 1)
        event = self.broker.published[0]
        self.assertIsInstance(event, GuardCheckedOut)
        assert isinstance(event, GuardCheckedOut)
        self.assertEqual(event.total_hours, 8.5)
        self.assertEqual(event.overtime_minutes, 30)

    def _concurrent_update(self, record_id: uuid.UUID, **values):  # type: ignore[no-untyped-def]
        """Location lookup stand-in that lets a competing request write first."""

        def _side_effect(*_args, **_kwargs):  # type: ignore[no-untyped-def]
            with self.Session() as other_db:
                record = other_db.get(AttendanceRecord, record_id)
                assert record is not None
                for key, value in values.items():
                    setattr(record, key, value)
                other_db.commit()
            return self.location

        return _side_effect

    @patch("guardforce.services.attendance.upload_image", return_value="https://bucket/check-in.jpg")
    @patch("guardforce.services.attendance.request_shift_location")
    @patch("guardforce.services.attendance.verify_face")
    def test_check_in_losing_race_on_pending_record_changes_nothing(
        self, mock_verify, mock_location, _mock_upload
    ) -> None:
        self._seed_template()
        record_id = self._seed_record(status=AttendanceStatus.PENDING)
        mock_verify.return_value = _good_match()
        mock_location.side_effect = self._concurrent_update(
            record_id,
            status=AttendanceStatus.CHECKED_IN,
            check_in_time=SHIFT_START,
            check_in_face_image_url="https://bucket/winner.jpg",
        )

        result = self._check_in(now_utc=SHIFT_START + timedelta(minutes=1))

        self.assertFalse(result.success)
        self.assertEqual(result.error_message, MSG_ALREADY_CHECKED_IN)
        record = self._record()
        self.assertEqual(record.status, AttendanceStatus.CHECKED_IN)
        self.assertEqual(record.check_in_face_image_url, "https://bucket/winner.jpg")
        self.assertEqual(self._count(BiometricLog), 1)
        self.assertEqual(self.broker.published, [])

    @patch("guardforce.services.attendance.upload_image", return_value="https://bucket/check-out.jpg")
    @patch("guardforce.services.attendance.request_shift_location")
    @patch("guardforce.services.attendance.verify_face")
    def test_check_out_losing_race_publishes_nothing(self, mock_verify, mock_location, _mock_upload) -> None:
        self._seed_template()
        record_id = self._seed_record(
            status=AttendanceStatus.CHECKED_IN,
            check_in_time=SHIFT_START,
            scheduled_end_time=SHIFT_END,
        )
        mock_verify.return_value = _good_match()
        mock_location.side_effect = self._concurrent_update(
            record_id,
            status=AttendanceStatus.CHECKED_OUT,
            check_out_time=SHIFT_END,
            check_out_face_image_url="https://bucket/winner.jpg",
        )

        result = self._check_out(now_utc=SHIFT_END + timedelta(minutes=5))

        self.assertFalse(result.success)
        self.assertEqual(result.error_message, MSG_ALREADY_CHECKED_OUT)
        self.assertEqual(result.attendance_record_id, record_id)
        record = self._record()
        self.assertEqual(record.status, AttendanceStatus.CHECKED_OUT)
        self.assertEqual(record.check_out_face_image_url, "https://bucket/winner.jpg")
        self.assertIsNone(record.actual_work_duration_minutes)
        self.assertEqual(self._count(BiometricLog), 1)
        self.assertEqual(self.broker.published, [])

    @patch("guardforce.services.attendance.upload_image")
    @patch("guardforce.services.attendance.request_shift_location")
    @patch("guardforce.services.attendance.verify_face")
    @patch("guardforce.services.face_registration.register_face")
    def test_enroll_check_in_check_out_then_second_check_out_fails(
        self,
        mock_register,
        mock_verify,
        mock_location,
        mock_upload,
    ) -> None:
        mock_register.return_value = FaceRegistration(
            success=True,
            template_url="s3://templates/enrolled.npy",
            average_quality=88.0,
            quality_scores={pose: 88.0 for pose in REQUIRED_POSES},
        )
        mock_verify.return_value = _good_match()
        mock_location.return_value = self.location
        mock_upload.side_effect = lambda *, key, content, content_type: f"https://bucket/{key}"
        encoded = base64.b64encode(b"\xff\xd8pose").decode("ascii")

        with self.Session() as db:
            enrollment = register_guard_face(
                db,
                guard_id=self.guard_id,
                employee_code="GRD-001",
                images=[PoseImage(pose_type=pose, image_base64=encoded) for pose in REQUIRED_POSES],
            )
        self.assertTrue(enrollment.success)

        check_in = self._check_in(now_utc=SHIFT_START)
        self.assertTrue(check_in.success)
        self.assertFalse(check_in.is_late)
        self.assertEqual(mock_verify.call_args.kwargs["template_url"], "s3://templates/enrolled.npy")

        check_out = self._check_out(now_utc=SHIFT_END)
        self.assertTrue(check_out.success)
        self.assertEqual(check_out.total_hours, 8.0)
        self.assertFalse(check_out.has_overtime)
        self.assertFalse(check_out.is_early_leave)

        uploads_before = mock_upload.call_count
        second = self._check_out(now_utc=SHIFT_END + timedelta(minutes=5))
        self.assertFalse(second.success)
        self.assertEqual(second.error_message, MSG_ALREADY_CHECKED_OUT)
        self.assertEqual(mock_upload.call_count, uploads_before)

        self.assertEqual([type(item) for item in self.broker.published], [GuardCheckedIn, GuardCheckedOut])
        self.assertEqual(self._record().status, AttendanceStatus.CHECKED_OUT)

    def test_invalid_inputs_are_rejected_before_any_lookup(self) -> None:
        with self.Session() as db:
            result = check_in_guard(
                db,
                guard_id=self.guard_id,
                shift_assignment_id=None,
                shift_id=self.shift_id,
                image=_image(),
                latitude=SITE_LAT,
                longitude=SITE_LON,
                broker=self.broker,
            )
        self.assertFalse(result.success)
        self.assertEqual(result.error_message, "shiftAssignmentId is required and must be a valid GUID.")

        with self.Session() as db:
            result = check_in_guard(
                db,
                guard_id=self.guard_id,
                shift_assignment_id=self.assignment_id,
                shift_id=self.shift_id,
                image=_image(),
                latitude=91.0,
                longitude=SITE_LON,
                broker=self.broker,
            )
        self.assertFalse(result.success)
        self.assertEqual(result.error_message, "Latitude must be between -90 and 90.")
        self.assertEqual(self._count(AttendanceRecord), 0)

    @patch("guardforce.services.attendance.request_shift_location")
    @patch("guardforce.services.attendance.verify_face")
    def test_check_out_invalid_inputs_and_corrupt_record_stop_early(self, mock_verify, mock_location) -> None:
        with self.Session() as db:
            result = check_out_guard(
                db,
                guard_id=self.guard_id,
                shift_assignment_id=self.assignment_id,
                shift_id=self.shift_id,
                image=None,
                latitude=SITE_LAT,
                longitude=None,
                broker=self.broker,
            )
        self.assertFalse(result.success)
        self.assertEqual(result.error_message, "checkOutImage is required.")

        record_id = self._seed_record(status=AttendanceStatus.CHECKED_IN)
        result = self._check_out(now_utc=SHIFT_END)

        self.assertFalse(result.success)
        self.assertEqual(
            result.error_message,
            "Attendance record is missing its check-in time. Please contact a manager.",
        )
        self.assertEqual(result.attendance_record_id, record_id)
        mock_verify.assert_not_called()
        mock_location.assert_not_called()
        self.assertEqual(self._record().status, AttendanceStatus.CHECKED_IN)


if __name__ == "__main__":
    unittest.main()
