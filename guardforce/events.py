"""Integration contracts exchanged over the message broker.

Every message is a pydantic model; the broker stores ``model_dump(mode="json")``
and consumers receive the re-validated model, so the JSON form is the wire
format between services.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class IntegrationMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GuardCheckedIn(IntegrationMessage):
    attendance_record_id: uuid.UUID
    guard_id: uuid.UUID
    shift_assignment_id: uuid.UUID
    shift_id: uuid.UUID
    check_in_time: datetime
    confirmed_at: datetime
    is_late: bool
    late_minutes: int
    face_match_score: float
    distance_from_site: float


class GuardCheckedOut(IntegrationMessage):
    attendance_record_id: uuid.UUID
    guard_id: uuid.UUID
    shift_assignment_id: uuid.UUID
    shift_id: uuid.UUID
    check_out_time: datetime
    completed_at: datetime
    is_early_leave: bool
    early_leave_minutes: int
    has_overtime: bool
    overtime_minutes: int
    actual_work_duration_minutes: int
    total_hours: float
    face_match_score: float
    distance_from_site: float


class GetShiftLocationRequest(IntegrationMessage):
    shift_id: uuid.UUID


class ShiftLocation(IntegrationMessage):
    shift_id: uuid.UUID
    latitude: float
    longitude: float
    scheduled_start_time: datetime
    scheduled_end_time: datetime


class GetShiftLocationResponse(IntegrationMessage):
    success: bool
    location: ShiftLocation | None = None
    error_message: str | None = None


class ContractLocation(IntegrationMessage):
    location_id: uuid.UUID
    location_name: str
    location_code: str | None = None
    guards_required: int = 1
    latitude: float | None = None
    longitude: float | None = None
    geofence_radius_meters: float | None = None


class ContractShiftSchedule(IntegrationMessage):
    schedule_id: uuid.UUID
    schedule_name: str
    schedule_type: str | None = None
    location_id: uuid.UUID | None = None
    shift_start_time: str
    shift_end_time: str
    crosses_midnight: bool = False
    duration_hours: float
    break_minutes: int = 0
    guards_per_shift: int = 1
    applies_monday: bool = True
    applies_tuesday: bool = True
    applies_wednesday: bool = True
    applies_thursday: bool = True
    applies_friday: bool = True
    applies_saturday: bool = False
    applies_sunday: bool = False
    effective_from: date | None = None
    effective_to: date | None = None


class ContractActivated(IntegrationMessage):
    contract_id: uuid.UUID
    contract_number: str
    contract_title: str | None = None
    customer_id: uuid.UUID | None = None
    customer_name: str | None = None
    start_date: date
    end_date: date | None = None
    auto_generate_shifts: bool = False
    generate_shifts_advance_days: int = 0
    locations: list[ContractLocation] = Field(default_factory=list)
    shift_schedules: list[ContractShiftSchedule] = Field(default_factory=list)
    activated_at: datetime
    activated_by: uuid.UUID | None = None


class UserCreated(IntegrationMessage):
    user_id: uuid.UUID
    email: str
    full_name: str
    role_name: str
    identity_number: str | None = None
    phone: str | None = None
    avatar_url: str | None = None
    employee_code: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    address: str | None = None
    hire_date: date | None = None
    contract_type: str | None = None
    certification_level: str | None = None
    created_at: datetime
    version: int = 1


class UserUpdated(IntegrationMessage):
    user_id: uuid.UUID
    email: str
    full_name: str
    role_name: str
    phone: str | None = None
    avatar_url: str | None = None
    employee_code: str | None = None
    address: str | None = None
    status: str | None = None
    contract_type: str | None = None
    termination_date: date | None = None
    termination_reason: str | None = None
    updated_at: datetime
    version: int = 1
    changed_fields: list[str] = Field(default_factory=list)


class UserDeleted(IntegrationMessage):
    user_id: uuid.UUID
    email: str | None = None
    role_name: str
    deleted_at: datetime
    deleted_by: uuid.UUID | None = None
    reason: str | None = None


class DeactivateGuard(IntegrationMessage):
    # Upstream services without the internal id send the nil UUID.
    guard_id: uuid.UUID | None = None
    email: str | None = None
    reason: str | None = None
    deactivated_at: datetime


class DeactivateManager(IntegrationMessage):
    manager_id: uuid.UUID | None = None
    email: str | None = None
    reason: str | None = None
    deactivated_at: datetime


LeaveType = Literal["SICK_LEAVE", "MATERNITY_LEAVE", "LONG_TERM_LEAVE", "OTHER"]


class ShiftAssignmentCancelled(IntegrationMessage):
    shift_assignment_id: uuid.UUID
    shift_id: uuid.UUID
    guard_id: uuid.UUID
    cancellation_reason: str
    leave_type: LeaveType
    cancelled_at: datetime
    cancelled_by: uuid.UUID | None = None
    evidence_image_url: str | None = None
