from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from guardforce.db import ShiftsBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShiftStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class AssignmentStatus(str, enum.Enum):
    ASSIGNED = "ASSIGNED"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class EmploymentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    TERMINATED = "TERMINATED"


class Availability(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    UNAVAILABLE = "UNAVAILABLE"


class SyncType(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    DEACTIVATE = "DEACTIVATE"


class SyncStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


TEMPLATE_STATUS_AWAIT_CREATE_SHIFT = "await_create_shift"


class Shift(ShiftsBase):
    __tablename__ = "shifts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contract_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    shift_template_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    shift_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    shift_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    shift_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    location_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    required_guards_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default=text("1"))
    assigned_guards_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    confirmed_guards_count: Mapped[int | None] = mapped_column(Integer, nullable=True, default=0)
    checked_in_guards_count: Mapped[int | None] = mapped_column(Integer, nullable=True, default=0)
    status: Mapped[ShiftStatus] = mapped_column(
        Enum(ShiftStatus, name="shift_status"),
        nullable=False,
        default=ShiftStatus.SCHEDULED,
        index=True,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default=text("1"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

    assignments: Mapped[list[ShiftAssignment]] = relationship(back_populates="shift")


class ShiftAssignment(ShiftsBase):
    __tablename__ = "shift_assignments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    shift_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("shifts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    guard_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    status: Mapped[AssignmentStatus] = mapped_column(
        Enum(AssignmentStatus, name="shift_assignment_status"),
        nullable=False,
        default=AssignmentStatus.ASSIGNED,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    checked_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    late_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    actual_work_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_early_leave: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    has_overtime: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

    shift: Mapped[Shift] = relationship(back_populates="assignments")


class Guard(ShiftsBase):
    __tablename__ = "guards"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    employee_code: Mapped[str] = mapped_column(String(50), nullable=False)
    identity_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    hire_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    contract_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    certification_level: Mapped[str | None] = mapped_column(String(50), nullable=True)
    employment_status: Mapped[EmploymentStatus] = mapped_column(
        Enum(EmploymentStatus, name="employment_status"),
        nullable=False,
        default=EmploymentStatus.ACTIVE,
    )
    current_availability: Mapped[Availability] = mapped_column(
        Enum(Availability, name="guard_availability"),
        nullable=False,
        default=Availability.AVAILABLE,
    )
    termination_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    termination_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    sync_status: Mapped[str] = mapped_column(String(20), nullable=False, default="SYNCED")
    user_service_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Manager(ShiftsBase):
    __tablename__ = "managers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    employee_code: Mapped[str] = mapped_column(String(50), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="manager")
    employment_status: Mapped[EmploymentStatus] = mapped_column(
        Enum(EmploymentStatus, name="employment_status"),
        nullable=False,
        default=EmploymentStatus.ACTIVE,
    )
    current_availability: Mapped[Availability] = mapped_column(
        Enum(Availability, name="guard_availability"),
        nullable=False,
        default=Availability.AVAILABLE,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    sync_status: Mapped[str] = mapped_column(String(20), nullable=False, default="SYNCED")
    user_service_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class UserSyncLog(ShiftsBase):
    __tablename__ = "user_sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    user_type: Mapped[str] = mapped_column(String(20), nullable=False)
    sync_type: Mapped[SyncType] = mapped_column(Enum(SyncType, name="user_sync_type"), nullable=False)
    sync_status: Mapped[SyncStatus] = mapped_column(Enum(SyncStatus, name="user_sync_status"), nullable=False)
    sync_initiated_by: Mapped[str] = mapped_column(String(20), nullable=False, default="EVENT")
    message_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    user_service_version: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sync_duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ShiftTemplate(ShiftsBase):
    __tablename__ = "shift_templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    template_code: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    template_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contract_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    contract_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    location_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_hours: Mapped[float] = mapped_column(Float, nullable=False)
    break_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    crosses_midnight: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    applies_monday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    applies_tuesday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    applies_wednesday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    applies_thursday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    applies_friday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    applies_saturday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    applies_sunday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    min_guards_required: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=TEMPLATE_STATUS_AWAIT_CREATE_SHIFT)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


class ShiftIssue(ShiftsBase):
    __tablename__ = "shift_issues"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    issue_type: Mapped[str] = mapped_column(String(50), nullable=False)
    guard_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_shifts_affected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_guards_affected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
