"""Initial shifts schema

Revision ID: s0001_shifts_initial
Revises:
Create Date: 2026-10-17 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "s0001_shifts_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = ("shifts",)
depends_on: Union[str, Sequence[str], None] = None

shift_status = postgresql.ENUM(
    "SCHEDULED",
    "IN_PROGRESS",
    "COMPLETED",
    "CANCELLED",
    name="shift_status",
    create_type=False,
)
shift_assignment_status = postgresql.ENUM(
    "ASSIGNED",
    "CONFIRMED",
    "CHECKED_IN",
    "COMPLETED",
    "CANCELLED",
    name="shift_assignment_status",
    create_type=False,
)
employment_status = postgresql.ENUM("ACTIVE", "TERMINATED", name="employment_status", create_type=False)
guard_availability = postgresql.ENUM("AVAILABLE", "UNAVAILABLE", name="guard_availability", create_type=False)
user_sync_type = postgresql.ENUM("CREATE", "UPDATE", "DELETE", "DEACTIVATE", name="user_sync_type", create_type=False)
user_sync_status = postgresql.ENUM("SUCCESS", "FAILED", name="user_sync_status", create_type=False)

_ENUMS = (
    shift_status,
    shift_assignment_status,
    employment_status,
    guard_availability,
    user_sync_type,
    user_sync_status,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def _user_cache_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("employee_code", sa.String(length=50), nullable=False),
        sa.Column("employment_status", employment_status, nullable=False),
        sa.Column("current_availability", guard_availability, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("sync_status", sa.String(length=20), nullable=False, server_default=sa.text("'SYNCED'")),
        sa.Column("user_service_version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in _ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "shifts",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("contract_id", sa.Uuid(), nullable=True),
        sa.Column("shift_template_id", sa.Uuid(), nullable=True),
        sa.Column("shift_date", sa.Date(), nullable=False),
        sa.Column("shift_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("shift_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location_id", sa.Uuid(), nullable=True),
        sa.Column("location_name", sa.String(length=255), nullable=True),
        sa.Column("location_latitude", sa.Float(), nullable=True),
        sa.Column("location_longitude", sa.Float(), nullable=True),
        sa.Column("required_guards_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("assigned_guards_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("confirmed_guards_count", sa.Integer(), nullable=True, server_default=sa.text("0")),
        sa.Column("checked_in_guards_count", sa.Integer(), nullable=True, server_default=sa.text("0")),
        sa.Column("status", shift_status, nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=1000), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_index("ix_shifts_contract_id", "shifts", ["contract_id"])
    op.create_index("ix_shifts_shift_date", "shifts", ["shift_date"])
    op.create_index("ix_shifts_status", "shifts", ["status"])

    op.create_table(
        "shift_assignments",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("shift_id", sa.Uuid(), nullable=False),
        sa.Column("guard_id", sa.Uuid(), nullable=False),
        sa.Column("status", shift_assignment_status, nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_late", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("late_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("actual_work_minutes", sa.Integer(), nullable=True),
        sa.Column("is_early_leave", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("has_overtime", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("overtime_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=1000), nullable=True),
        *_timestamps(),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_shift_assignments_shift_id", "shift_assignments", ["shift_id"])
    op.create_index("ix_shift_assignments_guard_id", "shift_assignments", ["guard_id"])

    op.create_table(
        "guards",
        *_user_cache_columns(),
        sa.Column("identity_number", sa.String(length=50), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(length=20), nullable=True),
        sa.Column("address", sa.String(length=500), nullable=True),
        sa.Column("hire_date", sa.Date(), nullable=True),
        sa.Column("contract_type", sa.String(length=50), nullable=True),
        sa.Column("certification_level", sa.String(length=50), nullable=True),
        sa.Column("termination_date", sa.Date(), nullable=True),
        sa.Column("termination_reason", sa.String(length=1000), nullable=True),
    )
    op.create_index("ix_guards_email", "guards", ["email"])

    op.create_table(
        "managers",
        *_user_cache_columns(),
        sa.Column("role", sa.String(length=50), nullable=False, server_default=sa.text("'manager'")),
    )
    op.create_index("ix_managers_email", "managers", ["email"])

    op.create_table(
        "user_sync_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("user_type", sa.String(length=20), nullable=False),
        sa.Column("sync_type", user_sync_type, nullable=False),
        sa.Column("sync_status", user_sync_status, nullable=False),
        sa.Column("sync_initiated_by", sa.String(length=20), nullable=False, server_default=sa.text("'EVENT'")),
        sa.Column("message_type", sa.String(length=100), nullable=True),
        sa.Column("user_service_version", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sync_duration_ms", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_user_sync_logs_user_id", "user_sync_logs", ["user_id"])

    op.create_table(
        "shift_templates",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("template_code", sa.String(length=100), nullable=False),
        sa.Column("template_name", sa.String(length=255), nullable=False),
        sa.Column("contract_id", sa.Uuid(), nullable=False),
        sa.Column("contract_number", sa.String(length=100), nullable=True),
        sa.Column("location_id", sa.Uuid(), nullable=True),
        sa.Column("location_name", sa.String(length=255), nullable=True),
        sa.Column("location_latitude", sa.Float(), nullable=True),
        sa.Column("location_longitude", sa.Float(), nullable=True),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("duration_hours", sa.Float(), nullable=False),
        sa.Column("break_duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("crosses_midnight", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("applies_monday", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("applies_tuesday", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("applies_wednesday", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("applies_thursday", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("applies_friday", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("applies_saturday", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("applies_sunday", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("min_guards_required", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("effective_from", sa.Date(), nullable=True),
        sa.Column("effective_to", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False, server_default=sa.text("'await_create_shift'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.UniqueConstraint("template_code", name="uq_shift_templates_template_code"),
    )
    op.create_index("ix_shift_templates_contract_id", "shift_templates", ["contract_id"])

    op.create_table(
        "shift_issues",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("issue_type", sa.String(length=50), nullable=False),
        sa.Column("guard_id", sa.Uuid(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("evidence_image_url", sa.Text(), nullable=True),
        sa.Column("total_shifts_affected", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_guards_affected", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_shift_issues_guard_id", "shift_issues", ["guard_id"])


def downgrade() -> None:
    op.drop_table("shift_issues")
    op.drop_table("shift_templates")
    op.drop_table("user_sync_logs")
    op.drop_table("managers")
    op.drop_table("guards")
    op.drop_table("shift_assignments")
    op.drop_table("shifts")

    bind = op.get_bind()
    for enum_type in reversed(_ENUMS):
        enum_type.drop(bind, checkfirst=True)
