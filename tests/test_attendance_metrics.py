from __future__ import annotations

import unittest
import uuid
from datetime import datetime, timezone

from guardforce.services.attendance import (
    CheckInResult,
    ImageUpload,
    compute_check_out_metrics,
    late_minutes_for,
    parse_guid,
    rejection_data,
    validate_image,
)


def _utc(hour: int, minute: int, second: int = 0) -> datetime:
    return datetime(2026, 3, 2, hour, minute, second, tzinfo=timezone.utc)


class CheckOutMetricsTests(unittest.TestCase):
    def test_full_day_with_one_hour_break(self) -> None:
        metrics = compute_check_out_metrics(
            check_in_time=_utc(8, 0),
            check_out_time=_utc(17, 30),
            scheduled_end_time=_utc(17, 30),
            break_duration_minutes=60,
        )
        self.assertEqual(metrics.actual_work_duration_minutes, 570)
        self.assertEqual(metrics.net_work_minutes, 510)
        self.assertEqual(metrics.total_hours, 8.5)
        self.assertFalse(metrics.is_early_leave)
        self.assertFalse(metrics.has_overtime)

    def test_early_leave_minutes(self) -> None:
        metrics = compute_check_out_metrics(
            check_in_time=_utc(8, 0),
            check_out_time=_utc(16, 45),
            scheduled_end_time=_utc(17, 0),
            break_duration_minutes=60,
        )
        self.assertTrue(metrics.is_early_leave)
        self.assertEqual(metrics.early_leave_minutes, 15)
        self.assertFalse(metrics.has_overtime)
        self.assertEqual(metrics.overtime_minutes, 0)

    def test_overtime_minutes(self) -> None:
        metrics = compute_check_out_metrics(
            check_in_time=_utc(8, 0),
            check_out_time=_utc(17, 30),
            scheduled_end_time=_utc(17, 0),
            break_duration_minutes=60,
        )
        self.assertTrue(metrics.has_overtime)
        self.assertEqual(metrics.overtime_minutes, 30)
        self.assertFalse(metrics.is_early_leave)
        self.assertEqual(metrics.early_leave_minutes, 0)

    def test_shift_shorter_than_break_has_zero_hours(self) -> None:
        metrics = compute_check_out_metrics(
            check_in_time=_utc(8, 0),
            check_out_time=_utc(8, 30),
            scheduled_end_time=_utc(17, 0),
            break_duration_minutes=60,
        )
        self.assertEqual(metrics.actual_work_duration_minutes, 30)
        self.assertEqual(metrics.net_work_minutes, 0)
        self.assertEqual(metrics.total_hours, 0.0)

    def test_naive_timestamps_are_treated_as_utc(self) -> None:
        metrics = compute_check_out_metrics(
            check_in_time=datetime(2026, 3, 2, 8, 0),
            check_out_time=_utc(12, 0),
            scheduled_end_time=_utc(12, 0),
            break_duration_minutes=0,
        )
        self.assertEqual(metrics.actual_work_duration_minutes, 240)
        self.assertEqual(metrics.total_hours, 4.0)


class LateMinutesTests(unittest.TestCase):
    def test_on_time_is_not_late(self) -> None:
        self.assertEqual(late_minutes_for(_utc(7, 55), _utc(8, 0)), 0)
        self.assertEqual(late_minutes_for(_utc(8, 0), _utc(8, 0)), 0)

    def test_partial_minutes_round_up(self) -> None:
        self.assertEqual(late_minutes_for(_utc(8, 5, 30), _utc(8, 0)), 6)


class RequestValidationTests(unittest.TestCase):
    def test_parse_guid_rejects_empty_invalid_and_nil(self) -> None:
        self.assertIsNone(parse_guid(None))
        self.assertIsNone(parse_guid("  "))
        self.assertIsNone(parse_guid("not-a-guid"))
        self.assertIsNone(parse_guid("00000000-0000-0000-0000-000000000000"))

        value = uuid.uuid4()
        self.assertEqual(parse_guid(f" {value} "), value)

    def test_validate_image_rules(self) -> None:
        self.assertEqual(validate_image(None, field_name="checkInImage"), "checkInImage is required.")
        self.assertEqual(
            validate_image(ImageUpload(content=b"", content_type="image/jpeg"), field_name="checkInImage"),
            "checkInImage is required.",
        )
        self.assertEqual(
            validate_image(ImageUpload(content=b"gif", content_type="image/gif"), field_name="checkInImage"),
            "checkInImage must be a JPEG or PNG image.",
        )
        self.assertIsNone(validate_image(ImageUpload(content=b"jpeg", content_type="image/jpeg")))

    def test_validate_image_rejects_oversized_content(self) -> None:
        oversized = ImageUpload(content=b"x" * (10 * 1024 * 1024 + 1), content_type="image/png")
        message = validate_image(oversized, field_name="checkOutImage")
        self.assertEqual(message, "checkOutImage exceeds the maximum size of 10MB.")


class ResultSerializationTests(unittest.TestCase):
    def test_rejection_data_only_carries_measured_values(self) -> None:
        self.assertEqual(rejection_data(None, None), {})
        self.assertEqual(rejection_data(65.0, None), {"faceMatchScore": 65.0})
        self.assertEqual(
            rejection_data(92.5, 812.4),
            {"faceMatchScore": 92.5, "distanceFromSite": 812.4},
        )

    def test_check_in_result_to_dict_uses_camel_case(self) -> None:
        record_id = uuid.uuid4()
        payload = CheckInResult(
            success=True,
            attendance_record_id=record_id,
            check_in_time=_utc(8, 5),
            is_late=True,
            late_minutes=5,
            face_match_score=92.5,
            distance_from_site=12.3,
            check_in_image_url="https://bucket/check-in.jpg",
        ).to_dict()
        self.assertEqual(payload["attendanceRecordId"], str(record_id))
        self.assertEqual(payload["checkInTime"], "2026-03-02T08:05:00+00:00")
        self.assertTrue(payload["isLate"])
        self.assertEqual(payload["lateMinutes"], 5)
        self.assertEqual(payload["checkInImageUrl"], "https://bucket/check-in.jpg")


if __name__ == "__main__":
    unittest.main()
