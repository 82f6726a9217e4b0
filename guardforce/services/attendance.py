from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from guardforce.broker import MessageBroker, get_broker
from guardforce.events import GuardCheckedIn, GuardCheckedOut
from guardforce.models import (
    AttendanceRecord,
    AttendanceStatus,
    BiometricEventType,
    BiometricLog,
    VerificationStatus,
)
from guardforce.services.biometrics import verification_rejection, verify_face
from guardforce.services.clock import normalize_ts
from guardforce.services.location import evaluate_geofence, is_valid_latitude, is_valid_longitude
from guardforce.services.shift_location import request_shift_location
from guardforce.services.storage import StorageError, attendance_image_key, upload_image
from guardforce.settings import get_settings

logger = logging.getLogger("guardforce.attendance")

ALLOWED_IMAGE_CONTENT_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png"})

MSG_RECORD_NOT_FOUND = "Attendance record not found. Please check in first."
MSG_ALREADY_CHECKED_IN = "Guard has already checked in for this shift."
MSG_ALREADY_CHECKED_OUT = "Guard has already checked out for this shift."
MSG_NO_TEMPLATE = "Guard has no registered face template. Please complete face registration first."
MSG_FACE_SERVICE_UNAVAILABLE = "Face verification is currently unavailable. Please try again later."
MSG_LOCATION_UNAVAILABLE = "Failed to retrieve shift location information. Cannot verify location."
MSG_UPLOAD_FAILED = "Failed to store the verification image. Please try again."


@dataclass(frozen=True, slots=True)
class ImageUpload:
    content: bytes
    content_type: str
    filename: str | None = None


@dataclass(slots=True)
class CheckInResult:
    success: bool
    message: str | None = None
    error_message: str | None = None
    attendance_record_id: uuid.UUID | None = None
    check_in_time: datetime | None = None
    is_late: bool = False
    late_minutes: int = 0
    face_match_score: float | None = None
    distance_from_site: float | None = None
    check_in_image_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attendanceRecordId": str(self.attendance_record_id) if self.attendance_record_id else None,
            "checkInTime": self.check_in_time.isoformat() if self.check_in_time else None,
            "isLate": self.is_late,
            "lateMinutes": self.late_minutes,
            "faceMatchScore": self.face_match_score,
            "distanceFromSite": self.distance_from_site,
            "checkInImageUrl": self.check_in_image_url,
        }


@dataclass(slots=True)
class CheckOutResult:
    success: bool
    message: str | None = None
    error_message: str | None = None
    attendance_record_id: uuid.UUID | None = None
    check_out_time: datetime | None = None
    actual_work_duration_minutes: int | None = None
    total_hours: float | None = None
    is_early_leave: bool = False
    early_leave_minutes: int = 0
    has_overtime: bool = False
    overtime_minutes: int = 0
    face_match_score: float | None = None
    distance_from_site: float | None = None
    check_out_image_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attendanceRecordId": str(self.attendance_record_id) if self.attendance_record_id else None,
            "checkOutTime": self.check_out_time.isoformat() if self.check_out_time else None,
            "actualWorkDurationMinutes": self.actual_work_duration_minutes,
            "totalHours": self.total_hours,
            "isEarlyLeave": self.is_early_leave,
            "earlyLeaveMinutes": self.early_leave_minutes,
            "hasOvertime": self.has_overtime,
            "overtimeMinutes": self.overtime_minutes,
            "faceMatchScore": self.face_match_score,
            "distanceFromSite": self.distance_from_site,
            "checkOutImageUrl": self.check_out_image_url,
        }


def rejection_data(face_match_score: float | None, distance_from_site: float | None) -> dict[str, float]:
    data: dict[str, float] = {}
    if face_match_score is not None:
        data["faceMatchScore"] = face_match_score
    if distance_from_site is not None:
        data["distanceFromSite"] = distance_from_site
    return data


@dataclass(frozen=True, slots=True)
class CheckOutMetrics:
    actual_work_duration_minutes: int
    net_work_minutes: int
    total_hours: float
    is_early_leave: bool
    early_leave_minutes: int
    has_overtime: bool
    overtime_minutes: int


def _minutes_between(start: datetime, end: datetime) -> float:
    return (normalize_ts(end) - normalize_ts(start)).total_seconds() / 60


def late_minutes_for(check_in_time: datetime, scheduled_start_time: datetime) -> int:
    diff = _minutes_between(scheduled_start_time, check_in_time)
    if diff <= 0:
        return 0
    return math.ceil(diff)


def compute_check_out_metrics(
    *,
    check_in_time: datetime,
    check_out_time: datetime,
    scheduled_end_time: datetime,
    break_duration_minutes: int,
) -> CheckOutMetrics:
    actual_minutes = max(0, math.ceil(_minutes_between(check_in_time, check_out_time)))
    # A shift shorter than its break does not produce negative hours.
    net_minutes = max(0, actual_minutes - break_duration_minutes)
    total_hours = (Decimal(net_minutes) / Decimal(60)).quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN)

    end_diff = _minutes_between(scheduled_end_time, check_out_time)
    is_early_leave = end_diff < 0
    has_overtime = end_diff > 0
    return CheckOutMetrics(
        actual_work_duration_minutes=actual_minutes,
        net_work_minutes=net_minutes,
        total_hours=float(total_hours),
        is_early_leave=is_early_leave,
        early_leave_minutes=math.ceil(-end_diff) if is_early_leave else 0,
        has_overtime=has_overtime,
        overtime_minutes=math.floor(end_diff) if has_overtime else 0,
    )


def parse_guid(raw: str | None) -> uuid.UUID | None:
    value = (raw or "").strip()
    if not value:
        return None
    try:
        parsed = uuid.UUID(value)
    except ValueError:
        return None
    if parsed.int == 0:
        return None
    return parsed


def validate_image(image: ImageUpload | None, *, field_name: str = "image") -> str | None:
    if image is None or not image.content:
        return f"{field_name} is required."
    max_bytes = get_settings().max_image_size_bytes
    if len(image.content) > max_bytes:
        return f"{field_name} exceeds the maximum size of {max_bytes // (1024 * 1024)}MB."
    content_type = (image.content_type or "").strip().lower()
    if content_type not in ALLOWED_IMAGE_CONTENT_TYPES:
        return f"{field_name} must be a JPEG or PNG image."
    return None


def _validate_request(
    *,
    guard_id: uuid.UUID | None,
    shift_assignment_id: uuid.UUID | None,
    shift_id: uuid.UUID | None,
    image: ImageUpload | None,
    latitude: float | None,
    longitude: float | None,
    image_field: str,
) -> str | None:
    for name, value in (
        ("guardId", guard_id),
        ("shiftAssignmentId", shift_assignment_id),
        ("shiftId", shift_id),
    ):
        if value is None or value.int == 0:
            return f"{name} is required and must be a valid GUID."

    image_error = validate_image(image, field_name=image_field)
    if image_error:
        return image_error

    if latitude is None or not is_valid_latitude(latitude):
        return "Latitude must be between -90 and 90."
    if longitude is None or not is_valid_longitude(longitude):
        return "Longitude must be between -180 and 180."
    return None


def _find_record(
    db: Session,
    *,
    guard_id: uuid.UUID,
    shift_assignment_id: uuid.UUID,
    shift_id: uuid.UUID,
) -> AttendanceRecord | None:
    return db.scalar(
        select(AttendanceRecord).where(
            AttendanceRecord.guard_id == guard_id,
            AttendanceRecord.shift_assignment_id == shift_assignment_id,
            AttendanceRecord.shift_id == shift_id,
        )
    )


def _registered_template_url(db: Session, guard_id: uuid.UUID) -> str | None:
    return db.scalar(
        select(BiometricLog.registered_face_template_url)
        .where(
            BiometricLog.guard_id == guard_id,
            BiometricLog.event_type == BiometricEventType.REGISTRATION,
            BiometricLog.is_verified.is_(True),
            BiometricLog.registered_face_template_url.is_not(None),
        )
        .order_by(BiometricLog.created_at.desc())
        .limit(1)
    )


def _check_in_state_rejection(record: AttendanceRecord) -> str | None:
    if record.is_deleted or record.status == AttendanceStatus.CANCELLED:
        return "This shift assignment has been cancelled."
    if record.status == AttendanceStatus.CHECKED_IN:
        return MSG_ALREADY_CHECKED_IN
    if record.status == AttendanceStatus.CHECKED_OUT:
        return MSG_ALREADY_CHECKED_OUT
    if record.status != AttendanceStatus.PENDING:
        return f"Cannot check in: attendance record is in status {record.status.value}."
    return None


def _check_out_state_rejection(record: AttendanceRecord | None) -> str | None:
    if record is None or record.is_deleted:
        return MSG_RECORD_NOT_FOUND
    if record.status == AttendanceStatus.CHECKED_OUT:
        return MSG_ALREADY_CHECKED_OUT
    if record.status != AttendanceStatus.CHECKED_IN:
        return f"Guard has not checked in for this shift (current status: {record.status.value})."
    if record.check_in_time is None:
        return "Attendance record is missing its check-in time. Please contact a manager."
    return None


def _verification_log(
    *,
    guard_id: uuid.UUID,
    event_type: BiometricEventType,
    template_url: str,
    face_quality: float,
    confidence: float,
    attendance_record_id: uuid.UUID,
) -> BiometricLog:
    return BiometricLog(
        guard_id=guard_id,
        event_type=event_type,
        registered_face_template_url=template_url,
        face_quality_score=face_quality,
        face_match_confidence=confidence,
        verification_status=VerificationStatus.SUCCESS,
        is_verified=True,
        attendance_record_id=attendance_record_id,
    )


def _publish_after_commit(broker: MessageBroker, event: GuardCheckedIn | GuardCheckedOut) -> None:
    try:
        broker.publish(event)
    except Exception:
        # The attendance change is already durable; consumers converge on the next publish or replay.
        logger.exception(
            "attendance_event_publish_failed",
            extra={
                "message_type": type(event).__name__,
                "attendance_record_id": str(event.attendance_record_id),
                "shift_assignment_id": str(event.shift_assignment_id),
            },
        )


def check_in_guard(
    db: Session,
    *,
    guard_id: uuid.UUID | None,
    shift_assignment_id: uuid.UUID | None,
    shift_id: uuid.UUID | None,
    image: ImageUpload | None,
    latitude: float | None,
    longitude: float | None,
    accuracy: float | None = None,
    now_utc: datetime | None = None,
    broker: MessageBroker | None = None,
) -> CheckInResult:
    validation_error = _validate_request(
        guard_id=guard_id,
        shift_assignment_id=shift_assignment_id,
        shift_id=shift_id,
        image=image,
        latitude=latitude,
        longitude=longitude,
        image_field="checkInImage",
    )
    if (
        validation_error
        or guard_id is None
        or shift_assignment_id is None
        or shift_id is None
        or image is None
        or latitude is None
        or longitude is None
    ):
        return CheckInResult(success=False, error_message=validation_error)

    log_context = {
        "guard_id": str(guard_id),
        "shift_assignment_id": str(shift_assignment_id),
        "shift_id": str(shift_id),
    }

    record = _find_record(db, guard_id=guard_id, shift_assignment_id=shift_assignment_id, shift_id=shift_id)
    if record is not None:
        state_error = _check_in_state_rejection(record)
        if state_error:
            logger.info("attendance_check_in_rejected", extra={**log_context, "reason": "state"})
            return CheckInResult(success=False, error_message=state_error, attendance_record_id=record.id)

    template_url = _registered_template_url(db, guard_id)
    if template_url is None:
        return CheckInResult(success=False, error_message=MSG_NO_TEMPLATE)

    verification = verify_face(
        guard_id=guard_id,
        image_bytes=image.content,
        template_url=template_url,
        event_type="check_in",
    )
    if verification is None:
        return CheckInResult(success=False, error_message=MSG_FACE_SERVICE_UNAVAILABLE)
    face_score = round(verification.confidence, 2)
    face_error = verification_rejection(verification)
    if face_error:
        logger.info("attendance_check_in_rejected", extra={**log_context, "reason": "face", "score": face_score})
        return CheckInResult(success=False, error_message=face_error, face_match_score=face_score)

    location = request_shift_location(shift_id, broker=broker)
    if location is None:
        return CheckInResult(success=False, error_message=MSG_LOCATION_UNAVAILABLE, face_match_score=face_score)

    geofence = evaluate_geofence(
        site_lat=location.latitude,
        site_lon=location.longitude,
        lat=latitude,
        lon=longitude,
        radius_m=get_settings().geofence_radius_m,
    )
    if not geofence.within:
        logger.info(
            "attendance_check_in_rejected",
            extra={**log_context, "reason": "geofence", "distance_m": geofence.distance_m},
        )
        return CheckInResult(
            success=False,
            error_message=(
                f"You are too far from the site ({geofence.distance_m:.0f}m away, "
                f"maximum {geofence.radius_m:.0f}m)."
            ),
            face_match_score=face_score,
            distance_from_site=geofence.distance_m,
        )

    check_in_time = normalize_ts(now_utc)
    late_minutes = late_minutes_for(check_in_time, location.scheduled_start_time)

    image_key = attendance_image_key(
        action="check-in",
        guard_id=guard_id,
        shift_id=shift_id,
        taken_at_utc=check_in_time,
    )
    try:
        image_url = upload_image(key=image_key, content=image.content, content_type=image.content_type)
    except StorageError:
        return CheckInResult(
            success=False,
            error_message=MSG_UPLOAD_FAILED,
            face_match_score=face_score,
            distance_from_site=geofence.distance_m,
        )

    values: dict[str, Any] = {
        "status": AttendanceStatus.CHECKED_IN,
        "scheduled_start_time": normalize_ts(location.scheduled_start_time),
        "scheduled_end_time": normalize_ts(location.scheduled_end_time),
        "check_in_time": check_in_time,
        "check_in_latitude": latitude,
        "check_in_longitude": longitude,
        "check_in_location_accuracy": accuracy,
        "check_in_distance_from_site": geofence.distance_m,
        "check_in_face_match_score": face_score,
        "check_in_face_image_url": image_url,
        "is_late": late_minutes > 0,
        "late_minutes": late_minutes,
        "updated_at": check_in_time,
    }

    try:
        record_id = _persist_check_in(
            db,
            record=record,
            guard_id=guard_id,
            shift_assignment_id=shift_assignment_id,
            shift_id=shift_id,
            values=values,
        )
        if record_id is not None:
            db.add(
                _verification_log(
                    guard_id=guard_id,
                    event_type=BiometricEventType.CHECK_IN,
                    template_url=template_url,
                    face_quality=verification.face_quality,
                    confidence=verification.confidence,
                    attendance_record_id=record_id,
                )
            )
            db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("attendance_orphaned_image", extra={**log_context, "image_key": image_key})
        raise

    if record_id is None:
        logger.warning("attendance_orphaned_image", extra={**log_context, "image_key": image_key, "reason": "race"})
        return CheckInResult(
            success=False,
            error_message=MSG_ALREADY_CHECKED_IN,
            face_match_score=face_score,
            distance_from_site=geofence.distance_m,
        )

    _publish_after_commit(
        broker or get_broker(),
        GuardCheckedIn(
            attendance_record_id=record_id,
            guard_id=guard_id,
            shift_assignment_id=shift_assignment_id,
            shift_id=shift_id,
            check_in_time=check_in_time,
            confirmed_at=check_in_time,
            is_late=late_minutes > 0,
            late_minutes=late_minutes,
            face_match_score=face_score,
            distance_from_site=geofence.distance_m,
        ),
    )
    logger.info(
        "attendance_check_in_completed",
        extra={
            **log_context,
            "attendance_record_id": str(record_id),
            "late_minutes": late_minutes,
            "distance_m": geofence.distance_m,
            "face_match_score": face_score,
        },
    )
    message = "Check-in successful."
    if late_minutes > 0:
        message = f"Check-in successful. You are {late_minutes} minutes late."
    return CheckInResult(
        success=True,
        message=message,
        attendance_record_id=record_id,
        check_in_time=check_in_time,
        is_late=late_minutes > 0,
        late_minutes=late_minutes,
        face_match_score=face_score,
        distance_from_site=geofence.distance_m,
        check_in_image_url=image_url,
    )


def _persist_check_in(
    db: Session,
    *,
    record: AttendanceRecord | None,
    guard_id: uuid.UUID,
    shift_assignment_id: uuid.UUID,
    shift_id: uuid.UUID,
    values: dict[str, Any],
) -> uuid.UUID | None:
    """Write the CHECKED_IN state; ``None`` means a concurrent request won."""
    if record is None:
        new_record = AttendanceRecord(
            guard_id=guard_id,
            shift_assignment_id=shift_assignment_id,
            shift_id=shift_id,
            break_duration_minutes=get_settings().default_break_duration_minutes,
            **values,
        )
        db.add(new_record)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            return None
        return new_record.id

    result = db.execute(
        update(AttendanceRecord)
        .where(
            AttendanceRecord.id == record.id,
            AttendanceRecord.status == AttendanceStatus.PENDING,
            AttendanceRecord.is_deleted.is_(False),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        return None
    return record.id


def check_out_guard(
    db: Session,
    *,
    guard_id: uuid.UUID | None,
    shift_assignment_id: uuid.UUID | None,
    shift_id: uuid.UUID | None,
    image: ImageUpload | None,
    latitude: float | None,
    longitude: float | None,
    accuracy: float | None = None,
    now_utc: datetime | None = None,
    broker: MessageBroker | None = None,
) -> CheckOutResult:
    validation_error = _validate_request(
        guard_id=guard_id,
        shift_assignment_id=shift_assignment_id,
        shift_id=shift_id,
        image=image,
        latitude=latitude,
        longitude=longitude,
        image_field="checkOutImage",
    )
    if (
        validation_error
        or guard_id is None
        or shift_assignment_id is None
        or shift_id is None
        or image is None
        or latitude is None
        or longitude is None
    ):
        return CheckOutResult(success=False, error_message=validation_error)

    log_context = {
        "guard_id": str(guard_id),
        "shift_assignment_id": str(shift_assignment_id),
        "shift_id": str(shift_id),
    }

    record = _find_record(db, guard_id=guard_id, shift_assignment_id=shift_assignment_id, shift_id=shift_id)
    state_error = _check_out_state_rejection(record)
    if state_error or record is None or record.check_in_time is None:
        logger.info("attendance_check_out_rejected", extra={**log_context, "reason": "state"})
        return CheckOutResult(
            success=False,
            error_message=state_error,
            attendance_record_id=record.id if record is not None else None,
        )

    template_url = _registered_template_url(db, guard_id)
    if template_url is None:
        return CheckOutResult(success=False, error_message=MSG_NO_TEMPLATE, attendance_record_id=record.id)

    verification = verify_face(
        guard_id=guard_id,
        image_bytes=image.content,
        template_url=template_url,
        event_type="check_out",
    )
    if verification is None:
        return CheckOutResult(
            success=False,
            error_message=MSG_FACE_SERVICE_UNAVAILABLE,
            attendance_record_id=record.id,
        )
    face_score = round(verification.confidence, 2)
    face_error = verification_rejection(verification)
    if face_error:
        logger.info("attendance_check_out_rejected", extra={**log_context, "reason": "face", "score": face_score})
        return CheckOutResult(
            success=False,
            error_message=face_error,
            attendance_record_id=record.id,
            face_match_score=face_score,
        )

    location = request_shift_location(shift_id, broker=broker)
    if location is None:
        return CheckOutResult(
            success=False,
            error_message=MSG_LOCATION_UNAVAILABLE,
            attendance_record_id=record.id,
            face_match_score=face_score,
        )

    geofence = evaluate_geofence(
        site_lat=location.latitude,
        site_lon=location.longitude,
        lat=latitude,
        lon=longitude,
        radius_m=get_settings().geofence_radius_m,
    )
    if not geofence.within:
        logger.info(
            "attendance_check_out_rejected",
            extra={**log_context, "reason": "geofence", "distance_m": geofence.distance_m},
        )
        return CheckOutResult(
            success=False,
            error_message=(
                f"You are too far from the site ({geofence.distance_m:.0f}m away, "
                f"maximum {geofence.radius_m:.0f}m)."
            ),
            attendance_record_id=record.id,
            face_match_score=face_score,
            distance_from_site=geofence.distance_m,
        )

    check_out_time = normalize_ts(now_utc)
    scheduled_end_time = normalize_ts(location.scheduled_end_time or record.scheduled_end_time)
    break_minutes = record.break_duration_minutes
    if break_minutes is None:
        break_minutes = get_settings().default_break_duration_minutes
    metrics = compute_check_out_metrics(
        check_in_time=normalize_ts(record.check_in_time),
        check_out_time=check_out_time,
        scheduled_end_time=scheduled_end_time,
        break_duration_minutes=break_minutes,
    )

    image_key = attendance_image_key(
        action="check-out",
        guard_id=guard_id,
        shift_id=shift_id,
        taken_at_utc=check_out_time,
    )
    try:
        image_url = upload_image(key=image_key, content=image.content, content_type=image.content_type)
    except StorageError:
        return CheckOutResult(
            success=False,
            error_message=MSG_UPLOAD_FAILED,
            attendance_record_id=record.id,
            face_match_score=face_score,
            distance_from_site=geofence.distance_m,
        )

    try:
        result = db.execute(
            update(AttendanceRecord)
            .where(
                AttendanceRecord.id == record.id,
                AttendanceRecord.status == AttendanceStatus.CHECKED_IN,
                AttendanceRecord.is_deleted.is_(False),
            )
            .values(
                status=AttendanceStatus.CHECKED_OUT,
                check_out_time=check_out_time,
                check_out_latitude=latitude,
                check_out_longitude=longitude,
                check_out_location_accuracy=accuracy,
                check_out_distance_from_site=geofence.distance_m,
                check_out_face_match_score=face_score,
                check_out_face_image_url=image_url,
                actual_work_duration_minutes=metrics.actual_work_duration_minutes,
                total_hours=metrics.total_hours,
                is_early_leave=metrics.is_early_leave,
                early_leave_minutes=metrics.early_leave_minutes,
                has_overtime=metrics.has_overtime,
                overtime_minutes=metrics.overtime_minutes,
                updated_at=check_out_time,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            logger.warning(
                "attendance_orphaned_image",
                extra={**log_context, "image_key": image_key, "reason": "race"},
            )
            return CheckOutResult(
                success=False,
                error_message=MSG_ALREADY_CHECKED_OUT,
                attendance_record_id=record.id,
                face_match_score=face_score,
                distance_from_site=geofence.distance_m,
            )
        db.add(
            _verification_log(
                guard_id=guard_id,
                event_type=BiometricEventType.CHECK_OUT,
                template_url=template_url,
                face_quality=verification.face_quality,
                confidence=verification.confidence,
                attendance_record_id=record.id,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("attendance_orphaned_image", extra={**log_context, "image_key": image_key})
        raise

    _publish_after_commit(
        broker or get_broker(),
        GuardCheckedOut(
            attendance_record_id=record.id,
            guard_id=guard_id,
            shift_assignment_id=shift_assignment_id,
            shift_id=shift_id,
            check_out_time=check_out_time,
            completed_at=check_out_time,
            is_early_leave=metrics.is_early_leave,
            early_leave_minutes=metrics.early_leave_minutes,
            has_overtime=metrics.has_overtime,
            overtime_minutes=metrics.overtime_minutes,
            actual_work_duration_minutes=metrics.actual_work_duration_minutes,
            total_hours=metrics.total_hours,
            face_match_score=face_score,
            distance_from_site=geofence.distance_m,
        ),
    )
    logger.info(
        "attendance_check_out_completed",
        extra={
            **log_context,
            "attendance_record_id": str(record.id),
            "actual_work_duration_minutes": metrics.actual_work_duration_minutes,
            "total_hours": metrics.total_hours,
            "early_leave_minutes": metrics.early_leave_minutes,
            "overtime_minutes": metrics.overtime_minutes,
        },
    )
    return CheckOutResult(
        success=True,
        message=f"Check-out successful. Total hours worked: {metrics.total_hours:.2f}.",
        attendance_record_id=record.id,
        check_out_time=check_out_time,
        actual_work_duration_minutes=metrics.actual_work_duration_minutes,
        total_hours=metrics.total_hours,
        is_early_leave=metrics.is_early_leave,
        early_leave_minutes=metrics.early_leave_minutes,
        has_overtime=metrics.has_overtime,
        overtime_minutes=metrics.overtime_minutes,
        face_match_score=face_score,
        distance_from_site=geofence.distance_m,
        check_out_image_url=image_url,
    )
