"""Initial attendances schema

Revision ID: a0001_attendances_initial
Revises:
Create Date: 2026-10-17 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a0001_attendances_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = ("attendances",)
depends_on: Union[str, Sequence[str], None] = None

attendance_status = postgresql.ENUM(
    "PENDING",
    "CHECKED_IN",
    "CHECKED_OUT",
    "INCOMPLETE",
    "CANCELLED",
    name="attendance_status",
    create_type=False,
)
biometric_event_type = postgresql.ENUM(
    "REGISTRATION",
    "CHECK_IN",
    "CHECK_OUT",
    name="biometric_event_type",
    create_type=False,
)
biometric_verification_status = postgresql.ENUM(
    "SUCCESS",
    "FAILED",
    name="biometric_verification_status",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    attendance_status.create(bind, checkfirst=True)
    biometric_event_type.create(bind, checkfirst=True)
    biometric_verification_status.create(bind, checkfirst=True)

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("guard_id", sa.Uuid(), nullable=False),
        sa.Column("shift_assignment_id", sa.Uuid(), nullable=False),
        sa.Column("shift_id", sa.Uuid(), nullable=False),
        sa.Column("status", attendance_status, nullable=False),
        sa.Column("scheduled_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_in_latitude", sa.Float(), nullable=True),
        sa.Column("check_in_longitude", sa.Float(), nullable=True),
        sa.Column("check_in_location_accuracy", sa.Float(), nullable=True),
        sa.Column("check_in_distance_from_site", sa.Float(), nullable=True),
        sa.Column("check_in_face_match_score", sa.Float(), nullable=True),
        sa.Column("check_in_face_image_url", sa.Text(), nullable=True),
        sa.Column("check_out_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_out_latitude", sa.Float(), nullable=True),
        sa.Column("check_out_longitude", sa.Float(), nullable=True),
        sa.Column("check_out_location_accuracy", sa.Float(), nullable=True),
        sa.Column("check_out_distance_from_site", sa.Float(), nullable=True),
        sa.Column("check_out_face_match_score", sa.Float(), nullable=True),
        sa.Column("check_out_face_image_url", sa.Text(), nullable=True),
        sa.Column("actual_work_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("break_duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("total_hours", sa.Numeric(6, 2), nullable=True),
        sa.Column("is_late", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("late_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_early_leave", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("early_leave_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("has_overtime", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("overtime_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_incomplete", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("flags_for_review", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("flag_reason", sa.String(length=1000), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("manager_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "guard_id",
            "shift_assignment_id",
            "shift_id",
            name="uq_attendance_records_guard_assignment_shift",
        ),
    )
    op.create_index("ix_attendance_records_guard_id", "attendance_records", ["guard_id"])
    op.create_index("ix_attendance_records_shift_assignment_id", "attendance_records", ["shift_assignment_id"])
    op.create_index("ix_attendance_records_shift_id", "attendance_records", ["shift_id"])
    op.create_index("ix_attendance_records_status", "attendance_records", ["status"])

    op.create_table(
        "biometric_logs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("guard_id", sa.Uuid(), nullable=False),
        sa.Column("event_type", biometric_event_type, nullable=False),
        sa.Column("registered_face_template_url", sa.Text(), nullable=True),
        sa.Column("face_quality_score", sa.Float(), nullable=True),
        sa.Column("face_match_confidence", sa.Float(), nullable=True),
        sa.Column("verification_status", biometric_verification_status, nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("failure_reason", sa.String(length=1000), nullable=True),
        sa.Column("device_id", sa.String(length=255), nullable=True),
        sa.Column("attendance_record_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_biometric_logs_guard_id", "biometric_logs", ["guard_id"])
    op.create_index("ix_biometric_logs_attendance_record_id", "biometric_logs", ["attendance_record_id"])
    op.create_index(
        "uq_biometric_logs_guard_registration",
        "biometric_logs",
        ["guard_id"],
        unique=True,
        postgresql_where=sa.text("event_type = 'REGISTRATION' AND is_verified = true"),
    )


def downgrade() -> None:
    op.drop_index("uq_biometric_logs_guard_registration", table_name="biometric_logs")
    op.drop_index("ix_biometric_logs_attendance_record_id", table_name="biometric_logs")
    op.drop_index("ix_biometric_logs_guard_id", table_name="biometric_logs")
    op.drop_table("biometric_logs")
    op.drop_index("ix_attendance_records_status", table_name="attendance_records")
    op.drop_index("ix_attendance_records_shift_id", table_name="attendance_records")
    op.drop_index("ix_attendance_records_shift_assignment_id", table_name="attendance_records")
    op.drop_index("ix_attendance_records_guard_id", table_name="attendance_records")
    op.drop_table("attendance_records")

    bind = op.get_bind()
    biometric_verification_status.drop(bind, checkfirst=True)
    biometric_event_type.drop(bind, checkfirst=True)
    attendance_status.drop(bind, checkfirst=True)
