from __future__ import annotations

import base64
import unittest
import uuid
from unittest.mock import patch

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from guardforce.db import AttendanceBase
from guardforce.models import BiometricEventType, BiometricLog
from guardforce.services.attendance import ImageUpload
from guardforce.services.biometrics import FaceRegistration
from guardforce.services.face_registration import (
    REGISTRATION_DEVICE_ID,
    REQUIRED_POSES,
    PoseImage,
    pose_images_from_files,
    register_guard_face,
    validate_pose_images,
)

ENCODED = base64.b64encode(b"\xff\xd8pose-image").decode("ascii")


def _poses(**overrides: str) -> list[PoseImage]:
    return [PoseImage(pose_type=pose, image_base64=overrides.get(pose, ENCODED)) for pose in REQUIRED_POSES]


class PoseValidationTests(unittest.TestCase):
    def test_accepts_all_six_poses(self) -> None:
        self.assertIsNone(validate_pose_images(_poses()))

    def test_accepts_data_url_prefix(self) -> None:
        self.assertIsNone(validate_pose_images(_poses(front=f"data:image/jpeg;base64,{ENCODED}")))

    def test_rejects_wrong_count(self) -> None:
        message = validate_pose_images(_poses()[:5])
        self.assertEqual(message, "Exactly 6 face images are required (front, left, right, up, down, smile).")

    def test_rejects_duplicate_pose(self) -> None:
        images = _poses()
        images[-1] = PoseImage(pose_type="front", image_base64=ENCODED)
        self.assertEqual(validate_pose_images(images), "Pose 'front' was provided more than once.")

    def test_rejects_unknown_pose_and_bad_base64(self) -> None:
        images = _poses()
        images[0] = PoseImage(pose_type="back", image_base64=ENCODED)
        self.assertIn("Unknown pose type 'back'", validate_pose_images(images) or "")

        self.assertEqual(
            validate_pose_images(_poses(left="***not base64***")),
            "Image for pose 'left' is not valid base64.",
        )

    def test_pose_images_from_files_requires_every_pose(self) -> None:
        files: dict[str, ImageUpload | None] = {
            pose: ImageUpload(content=b"\xff\xd8img", content_type="image/jpeg") for pose in REQUIRED_POSES
        }
        images, error = pose_images_from_files(files)
        self.assertIsNone(error)
        self.assertEqual([item.pose_type for item in images], list(REQUIRED_POSES))
        self.assertEqual(images[1].angle, -30.0)

        files["smile"] = None
        images, error = pose_images_from_files(files)
        self.assertEqual(images, [])
        self.assertEqual(error, "image_smile is required.")


class RegisterGuardFaceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        AttendanceBase.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self.guard_id = uuid.uuid4()

    def tearDown(self) -> None:
        self.engine.dispose()

    def _registrations(self) -> list[BiometricLog]:
        with self.Session() as db:
            return list(
                db.scalars(
                    select(BiometricLog).where(BiometricLog.event_type == BiometricEventType.REGISTRATION)
                ).all()
            )

    @patch("guardforce.services.face_registration.register_face")
    def test_re_enrollment_updates_the_single_template_row(self, mock_register) -> None:
        mock_register.side_effect = [
            FaceRegistration(success=True, template_url="s3://templates/v1.npy", average_quality=80.0),
            FaceRegistration(success=True, template_url="s3://templates/v2.npy", average_quality=90.0),
        ]

        with self.Session() as db:
            first = register_guard_face(db, guard_id=self.guard_id, employee_code="GRD-1", images=_poses())
        with self.Session() as db:
            second = register_guard_face(db, guard_id=self.guard_id, employee_code="GRD-1", images=_poses())

        self.assertTrue(first.success)
        self.assertTrue(second.success)
        self.assertEqual(first.biometric_log_id, second.biometric_log_id)
        (row,) = self._registrations()
        self.assertEqual(row.registered_face_template_url, "s3://templates/v2.npy")
        self.assertEqual(row.face_quality_score, 90.0)
        self.assertEqual(row.device_id, REGISTRATION_DEVICE_ID)
        self.assertTrue(row.is_verified)

        sent_images = mock_register.call_args.kwargs["images"]
        self.assertEqual([item["pose_type"] for item in sent_images], list(REQUIRED_POSES))
        self.assertEqual(sent_images[2]["angle"], 30.0)

    @patch("guardforce.services.face_registration.register_face", return_value=None)
    def test_gateway_unavailable_writes_nothing(self, _mock_register) -> None:
        with self.Session() as db:
            result = register_guard_face(db, guard_id=self.guard_id, employee_code=None, images=_poses())

        self.assertFalse(result.success)
        self.assertIn("unavailable", result.error_message or "")
        self.assertEqual(self._registrations(), [])

    @patch("guardforce.services.face_registration.register_face")
    def test_rejected_enrollment_reports_quality(self, mock_register) -> None:
        mock_register.return_value = FaceRegistration(
            success=False,
            template_url=None,
            average_quality=35.0,
            quality_scores={"front": 35.0},
            message="Image quality too low for pose front",
        )

        with self.Session() as db:
            result = register_guard_face(db, guard_id=self.guard_id, employee_code=None, images=_poses())

        self.assertFalse(result.success)
        self.assertEqual(result.error_message, "Image quality too low for pose front")
        self.assertEqual(result.to_dict()["qualityScores"], {"front": 35.0})
        self.assertEqual(self._registrations(), [])

    @patch("guardforce.services.face_registration.register_face")
    def test_invalid_request_never_reaches_gateway(self, mock_register) -> None:
        with self.Session() as db:
            missing_guard = register_guard_face(db, guard_id=uuid.UUID(int=0), employee_code=None, images=_poses())
            too_few = register_guard_face(db, guard_id=self.guard_id, employee_code=None, images=_poses()[:3])

        self.assertFalse(missing_guard.success)
        self.assertFalse(too_few.success)
        mock_register.assert_not_called()


if __name__ == "__main__":
    unittest.main()
