from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from guardforce.db import AttendanceBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttendanceStatus(str, enum.Enum):
    PENDING = "PENDING"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    INCOMPLETE = "INCOMPLETE"
    CANCELLED = "CANCELLED"


class BiometricEventType(str, enum.Enum):
    REGISTRATION = "REGISTRATION"
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"


class VerificationStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


TERMINAL_ATTENDANCE_STATUSES = frozenset(
    {
        AttendanceStatus.CHECKED_OUT,
        AttendanceStatus.INCOMPLETE,
        AttendanceStatus.CANCELLED,
    }
)


class AttendanceRecord(AttendanceBase):
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint(
            "guard_id",
            "shift_assignment_id",
            "shift_id",
            name="uq_attendance_records_guard_assignment_shift",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    guard_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    shift_assignment_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    shift_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    status: Mapped[AttendanceStatus] = mapped_column(
        Enum(AttendanceStatus, name="attendance_status"),
        nullable=False,
        default=AttendanceStatus.PENDING,
        index=True,
    )

    scheduled_start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    check_in_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_in_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_location_accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_distance_from_site: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_face_match_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_face_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    check_out_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_location_accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_distance_from_site: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_face_match_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_face_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    actual_work_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    break_duration_minutes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=60,
        server_default=text("60"),
    )
    total_hours: Mapped[float | None] = mapped_column(Numeric(6, 2, asdecimal=False), nullable=True)

    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    late_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    is_early_leave: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    early_leave_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    has_overtime: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))

    is_incomplete: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    flags_for_review: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    flag_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class BiometricLog(AttendanceBase):
    __tablename__ = "biometric_logs"
    __table_args__ = (
        # One canonical verified template per guard.
        Index(
            "uq_biometric_logs_guard_registration",
            "guard_id",
            unique=True,
            postgresql_where=text("event_type = 'REGISTRATION' AND is_verified = true"),
            sqlite_where=text("event_type = 'REGISTRATION' AND is_verified = 1"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    guard_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    event_type: Mapped[BiometricEventType] = mapped_column(
        Enum(BiometricEventType, name="biometric_event_type"),
        nullable=False,
    )
    registered_face_template_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    face_quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    face_match_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    verification_status: Mapped[VerificationStatus] = mapped_column(
        Enum(VerificationStatus, name="biometric_verification_status"),
        nullable=False,
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    failure_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    device_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    attendance_record_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
