from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import MetaData, inspect, text
from sqlalchemy.engine import Engine

logger = logging.getLogger("guardforce.schema_guard")


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


@dataclass(frozen=True, slots=True)
class ServiceSchema:
    name: str
    engine: Engine
    metadata: MetaData
    required_columns: dict[str, set[str]]
    required_enum_values: dict[str, set[str]] = field(default_factory=dict)


ATTENDANCE_REQUIRED_COLUMNS: dict[str, set[str]] = {
    "attendance_records": {
        "id",
        "guard_id",
        "shift_assignment_id",
        "shift_id",
        "status",
        "check_in_time",
        "check_out_time",
        "break_duration_minutes",
        "is_deleted",
    },
    "biometric_logs": {"id", "guard_id", "event_type", "registered_face_template_url", "is_verified"},
}

ATTENDANCE_REQUIRED_ENUM_VALUES: dict[str, set[str]] = {
    "attendance_status": {"PENDING", "CHECKED_IN", "CHECKED_OUT", "INCOMPLETE", "CANCELLED"},
}

SHIFTS_REQUIRED_COLUMNS: dict[str, set[str]] = {
    "shifts": {"id", "location_latitude", "location_longitude", "confirmed_guards_count", "checked_in_guards_count"},
    "shift_assignments": {"id", "shift_id", "guard_id", "confirmed_at", "checked_in_at", "status"},
    "guards": {"id", "email", "employment_status", "is_deleted"},
    "managers": {"id", "email", "employment_status", "is_deleted"},
    "user_sync_logs": {"id", "sync_type", "sync_status", "sync_duration_ms"},
    "shift_templates": {"id", "template_code", "status"},
    "shift_issues": {"id", "issue_type", "guard_id"},
}

BROKER_REQUIRED_COLUMNS: dict[str, set[str]] = {
    "broker_messages": {"id", "message_id", "queue", "status", "attempts", "scheduled_at_utc"},
}


def verify_runtime_schema(
    engine: Engine,
    *,
    required_columns: dict[str, set[str]],
    required_enum_values: dict[str, set[str]] | None = None,
    require_alembic_version: bool = True,
) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    for table_name, columns in required_columns.items():
        try:
            column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except Exception as exc:  # pragma: no cover - defensive
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue

        missing_columns = sorted(item for item in columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    if required_enum_values:
        try:
            enums = inspector.get_enums() or []
        except Exception as exc:
            # Only PostgreSQL exposes named enums.
            warnings.append(f"ENUM_INSPECTION_UNAVAILABLE:{exc.__class__.__name__}")
            enums = []

        enum_values_by_name: dict[str, set[str]] = {}
        for enum_item in enums:
            name = str(enum_item.get("name") or "").strip()
            labels = enum_item.get("labels")
            if name and isinstance(labels, list):
                enum_values_by_name[name] = {str(label) for label in labels}

        for enum_name, values in required_enum_values.items():
            if enum_name not in enum_values_by_name:
                warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
                continue
            missing_values = sorted(item for item in values if item not in enum_values_by_name[enum_name])
            if missing_values:
                issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing_values)}")

    if require_alembic_version:
        try:
            with engine.connect() as connection:
                row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
                version = str(row).strip() if row is not None else ""
                if not version:
                    issues.append("ALEMBIC_VERSION_EMPTY")
        except Exception as exc:  # pragma: no cover - defensive
            issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )


def prepare_service_schemas(services: list[ServiceSchema], *, auto_create: bool) -> SchemaGuardResult:
    """Create missing tables when enabled, then verify every service schema.

    Runs once at process start, before the broker worker and before traffic
    is accepted. ``create_all`` only adds missing tables so re-running it is
    harmless.
    """
    issues: list[str] = []
    warnings: list[str] = []
    for service in services:
        if auto_create:
            service.metadata.create_all(service.engine)
            logger.info("schema_bootstrap_applied", extra={"service": service.name})

        result = verify_runtime_schema(
            service.engine,
            required_columns=service.required_columns,
            required_enum_values=service.required_enum_values,
            require_alembic_version=not auto_create,
        )
        issues.extend(f"{service.name}:{item}" for item in result.issues)
        warnings.extend(f"{service.name}:{item}" for item in result.warnings)

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=datetime.now(timezone.utc),
        issues=issues,
        warnings=warnings,
    )


def default_service_schemas() -> list[ServiceSchema]:
    from guardforce import broker, models, shifts_models  # noqa: F401  registers tables on the metadata
    from guardforce.db import (
        AttendanceBase,
        BrokerBase,
        ShiftsBase,
        attendance_engine,
        broker_engine,
        shifts_engine,
    )

    return [
        ServiceSchema(
            name="attendances",
            engine=attendance_engine,
            metadata=AttendanceBase.metadata,
            required_columns=ATTENDANCE_REQUIRED_COLUMNS,
            required_enum_values=ATTENDANCE_REQUIRED_ENUM_VALUES,
        ),
        ServiceSchema(
            name="shifts",
            engine=shifts_engine,
            metadata=ShiftsBase.metadata,
            required_columns=SHIFTS_REQUIRED_COLUMNS,
        ),
        ServiceSchema(
            name="broker",
            engine=broker_engine,
            metadata=BrokerBase.metadata,
            required_columns=BROKER_REQUIRED_COLUMNS,
        ),
    ]
