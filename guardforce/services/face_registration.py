from __future__ import annotations

import base64
import binascii
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from guardforce.models import BiometricEventType, BiometricLog, VerificationStatus
from guardforce.services.attendance import ImageUpload, validate_image
from guardforce.services.biometrics import register_face
from guardforce.services.clock import utcnow
from guardforce.settings import get_settings

logger = logging.getLogger("guardforce.face_registration")

REQUIRED_POSES: tuple[str, ...] = ("front", "left", "right", "up", "down", "smile")
DEFAULT_POSE_ANGLES: dict[str, float] = {
    "front": 0.0,
    "left": -30.0,
    "right": 30.0,
    "up": 15.0,
    "down": -15.0,
    "smile": 0.0,
}
REGISTRATION_DEVICE_ID = "REGISTRATION_SYSTEM"


@dataclass(frozen=True, slots=True)
class PoseImage:
    pose_type: str
    image_base64: str
    angle: float | None = None


@dataclass(slots=True)
class FaceRegistrationResult:
    success: bool
    message: str | None = None
    error_message: str | None = None
    guard_id: uuid.UUID | None = None
    template_url: str | None = None
    average_quality: float | None = None
    quality_scores: dict[str, float] = field(default_factory=dict)
    biometric_log_id: uuid.UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "guardId": str(self.guard_id) if self.guard_id else None,
            "templateUrl": self.template_url,
            "averageQuality": self.average_quality,
            "qualityScores": dict(self.quality_scores),
            "biometricLogId": str(self.biometric_log_id) if self.biometric_log_id else None,
        }


def _strip_data_url(value: str) -> str:
    raw = value.strip()
    if raw.startswith("data:") and "," in raw:
        return raw.split(",", 1)[1]
    return raw


def validate_pose_images(images: list[PoseImage]) -> str | None:
    if len(images) != len(REQUIRED_POSES):
        return f"Exactly {len(REQUIRED_POSES)} face images are required ({', '.join(REQUIRED_POSES)})."

    seen: set[str] = set()
    max_bytes = get_settings().max_image_size_bytes
    for image in images:
        pose = (image.pose_type or "").strip().lower()
        if pose not in REQUIRED_POSES:
            return f"Unknown pose type '{image.pose_type}'. Expected one of: {', '.join(REQUIRED_POSES)}."
        if pose in seen:
            return f"Pose '{pose}' was provided more than once."
        seen.add(pose)
        try:
            decoded = base64.b64decode(_strip_data_url(image.image_base64), validate=True)
        except (binascii.Error, ValueError):
            return f"Image for pose '{pose}' is not valid base64."
        if not decoded:
            return f"Image for pose '{pose}' is empty."
        if len(decoded) > max_bytes:
            return f"Image for pose '{pose}' exceeds the maximum size of {max_bytes // (1024 * 1024)}MB."

    missing = [pose for pose in REQUIRED_POSES if pose not in seen]
    if missing:
        return f"Missing poses: {', '.join(missing)}."
    return None


def pose_images_from_files(files: dict[str, ImageUpload | None]) -> tuple[list[PoseImage], str | None]:
    images: list[PoseImage] = []
    for pose in REQUIRED_POSES:
        upload = files.get(pose)
        image_error = validate_image(upload, field_name=f"image_{pose}")
        if image_error or upload is None:
            return [], image_error
        images.append(
            PoseImage(
                pose_type=pose,
                image_base64=base64.b64encode(upload.content).decode("ascii"),
                angle=DEFAULT_POSE_ANGLES[pose],
            )
        )
    return images, None


def upsert_registration_log(
    db: Session,
    *,
    guard_id: uuid.UUID,
    template_url: str,
    average_quality: float,
) -> BiometricLog:
    """Keep exactly one verified REGISTRATION row per guard, updating it on re-enrollment."""
    for _ in range(2):
        existing = db.scalar(
            select(BiometricLog)
            .where(
                BiometricLog.guard_id == guard_id,
                BiometricLog.event_type == BiometricEventType.REGISTRATION,
                BiometricLog.is_verified.is_(True),
            )
            .with_for_update()
        )
        now_utc = utcnow()
        if existing is not None:
            existing.registered_face_template_url = template_url
            existing.face_quality_score = average_quality
            existing.verification_status = VerificationStatus.SUCCESS
            existing.failure_reason = None
            existing.device_id = REGISTRATION_DEVICE_ID
            existing.updated_at = now_utc
            db.commit()
            return existing

        log = BiometricLog(
            guard_id=guard_id,
            event_type=BiometricEventType.REGISTRATION,
            registered_face_template_url=template_url,
            face_quality_score=average_quality,
            verification_status=VerificationStatus.SUCCESS,
            is_verified=True,
            device_id=REGISTRATION_DEVICE_ID,
            created_at=now_utc,
            updated_at=now_utc,
        )
        db.add(log)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent enrollment inserted first; update that row instead.
            db.rollback()
            continue
        return log

    raise RuntimeError(f"Could not upsert face registration for guard {guard_id}")


def register_guard_face(
    db: Session,
    *,
    guard_id: uuid.UUID | None,
    employee_code: str | None,
    images: list[PoseImage],
) -> FaceRegistrationResult:
    if guard_id is None or guard_id.int == 0:
        return FaceRegistrationResult(success=False, error_message="guardId is required and must be a valid GUID.")

    validation_error = validate_pose_images(images)
    if validation_error:
        return FaceRegistrationResult(success=False, error_message=validation_error, guard_id=guard_id)

    payload_images = [
        {
            "image_base64": _strip_data_url(image.image_base64),
            "pose_type": image.pose_type.strip().lower(),
            "angle": image.angle if image.angle is not None else DEFAULT_POSE_ANGLES[image.pose_type.strip().lower()],
        }
        for image in images
    ]
    registration = register_face(guard_id=guard_id, employee_code=employee_code, images=payload_images)
    if registration is None:
        return FaceRegistrationResult(
            success=False,
            error_message="Face registration service is currently unavailable. Please try again later.",
            guard_id=guard_id,
        )
    if not registration.success or not registration.template_url:
        return FaceRegistrationResult(
            success=False,
            error_message=registration.message or "Face registration was rejected by the recognition service.",
            guard_id=guard_id,
            average_quality=registration.average_quality,
            quality_scores=registration.quality_scores,
        )

    log = upsert_registration_log(
        db,
        guard_id=guard_id,
        template_url=registration.template_url,
        average_quality=registration.average_quality,
    )
    logger.info(
        "face_registration_completed",
        extra={
            "guard_id": str(guard_id),
            "biometric_log_id": str(log.id),
            "average_quality": registration.average_quality,
        },
    )
    return FaceRegistrationResult(
        success=True,
        message="Face registration successful.",
        guard_id=guard_id,
        template_url=registration.template_url,
        average_quality=registration.average_quality,
        quality_scores=registration.quality_scores,
        biometric_log_id=log.id,
    )
