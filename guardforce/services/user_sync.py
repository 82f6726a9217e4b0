"""Guard and manager caches kept in step with the Users service.

The Users service is the source of truth. Every consumer here is an upsert or
a soft delete keyed by user id, so redelivered events converge on the same
row, and every consumption leaves a ``user_sync_logs`` entry.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from guardforce.audit import log_user_sync
from guardforce.db import ShiftsSessionLocal
from guardforce.events import DeactivateGuard, DeactivateManager, UserCreated, UserDeleted, UserUpdated
from guardforce.services.clock import normalize_ts, utcnow
from guardforce.shifts_models import Availability, EmploymentStatus, Guard, Manager, SyncType

logger = logging.getLogger("guardforce.user_sync")

USER_TYPE_GUARD = "GUARD"
USER_TYPE_MANAGER = "MANAGER"
USER_TYPE_OTHER = "OTHER"

SYNC_NOTE_ROLE_SKIPPED = "role skipped"
SYNC_NOTE_TARGET_MISSING = "target missing"
SYNC_NOTE_STALE_VERSION = "stale version ignored"

GUARD_ROLES = frozenset({"guard"})
MANAGER_ROLES = frozenset({"manager", "director", "supervisor"})
INACTIVE_USER_STATUSES = frozenset({"inactive", "suspended", "terminated"})


def resolve_user_type(role_name: str | None) -> str | None:
    role = (role_name or "").strip().lower()
    if role in GUARD_ROLES:
        return USER_TYPE_GUARD
    if role in MANAGER_ROLES:
        return USER_TYPE_MANAGER
    return None


def _log_role_skipped(
    db: Session,
    *,
    user_id: uuid.UUID,
    role_name: str | None,
    sync_type: SyncType,
    message_type: str,
    started_at: datetime,
    user_service_version: int | None = None,
) -> bool:
    logger.info("user_sync_role_skipped", extra={"user_id": str(user_id), "role": role_name})
    log_user_sync(
        db,
        user_id=user_id,
        user_type=USER_TYPE_OTHER,
        sync_type=sync_type,
        success=True,
        started_at=started_at,
        message_type=message_type,
        user_service_version=user_service_version,
        error_message=f"{SYNC_NOTE_ROLE_SKIPPED}: {role_name}",
    )
    return False


def _default_employee_code(user_type: str, user_id: uuid.UUID) -> str:
    prefix = "GRD" if user_type == USER_TYPE_GUARD else "MGR"
    return f"{prefix}-{str(user_id)[:8].upper()}"


@dataclass(frozen=True, slots=True)
class ById:
    id: uuid.UUID


@dataclass(frozen=True, slots=True)
class ByEmail:
    email: str


LookupKey = ById | ByEmail


def resolve_lookup_key(entity_id: uuid.UUID | None, email: str | None) -> LookupKey | None:
    if entity_id is not None and entity_id.int != 0:
        return ById(entity_id)
    normalized_email = (email or "").strip().lower()
    if normalized_email:
        return ByEmail(normalized_email)
    return None


def _find_by_key(db: Session, model: type[Guard] | type[Manager], key: LookupKey) -> Guard | Manager | None:
    if isinstance(key, ById):
        return db.scalar(select(model).where(model.id == key.id))
    return db.scalar(
        select(model).where(
            func.lower(model.email) == key.email,
            model.is_deleted.is_(False),
        )
    )


def _is_stale(row: Guard | Manager, version: int) -> bool:
    return (row.user_service_version or 0) > version


def _apply_created(row: Guard | Manager, event: UserCreated, *, user_type: str, now_utc: datetime) -> None:
    row.email = event.email.strip()
    row.full_name = event.full_name
    row.phone = event.phone
    row.avatar_url = event.avatar_url
    row.employee_code = event.employee_code or _default_employee_code(user_type, event.user_id)
    row.sync_status = "SYNCED"
    row.user_service_version = event.version
    row.last_synced_at = now_utc
    if isinstance(row, Guard):
        row.identity_number = event.identity_number
        row.date_of_birth = event.date_of_birth
        row.gender = event.gender
        row.address = event.address
        row.hire_date = event.hire_date
        row.contract_type = event.contract_type
        row.certification_level = event.certification_level
    else:
        row.role = event.role_name.strip().lower()


def consume_user_created(event: UserCreated, *, db: Session | None = None) -> bool:
    if db is None:
        with ShiftsSessionLocal() as managed_db:
            return consume_user_created(event, db=managed_db)

    started_at = utcnow()
    user_type = resolve_user_type(event.role_name)
    if user_type is None:
        return _log_role_skipped(
            db,
            user_id=event.user_id,
            role_name=event.role_name,
            sync_type=SyncType.CREATE,
            message_type="UserCreated",
            started_at=started_at,
            user_service_version=event.version,
        )

    model = Guard if user_type == USER_TYPE_GUARD else Manager
    note: str | None = None
    try:
        row = db.get(model, event.user_id)
        if row is not None and _is_stale(row, event.version):
            note = SYNC_NOTE_STALE_VERSION
            logger.info(
                "user_sync_stale_event_ignored",
                extra={"user_id": str(event.user_id), "version": event.version},
            )
        else:
            if row is None:
                row = model(
                    id=event.user_id,
                    employment_status=EmploymentStatus.ACTIVE,
                    current_availability=Availability.AVAILABLE,
                    is_active=True,
                    is_deleted=False,
                )
                db.add(row)
            _apply_created(row, event, user_type=user_type, now_utc=started_at)
            db.commit()
    except Exception as exc:
        db.rollback()
        log_user_sync(
            db,
            user_id=event.user_id,
            user_type=user_type,
            sync_type=SyncType.CREATE,
            success=False,
            started_at=started_at,
            message_type="UserCreated",
            user_service_version=event.version,
            error_message=str(exc),
        )
        raise

    log_user_sync(
        db,
        user_id=event.user_id,
        user_type=user_type,
        sync_type=SyncType.CREATE,
        success=True,
        started_at=started_at,
        message_type="UserCreated",
        user_service_version=event.version,
        error_message=note,
    )
    return True


def _apply_updated(row: Guard | Manager, event: UserUpdated, *, user_type: str, now_utc: datetime) -> None:
    row.email = event.email.strip()
    row.full_name = event.full_name
    row.phone = event.phone
    row.avatar_url = event.avatar_url
    if event.employee_code:
        row.employee_code = event.employee_code
    elif not row.employee_code:
        row.employee_code = _default_employee_code(user_type, event.user_id)
    row.sync_status = "SYNCED"
    row.user_service_version = event.version
    row.last_synced_at = now_utc

    status = (event.status or "").strip().lower()
    if status:
        row.is_active = status not in INACTIVE_USER_STATUSES
        if status == "terminated":
            row.employment_status = EmploymentStatus.TERMINATED
            row.current_availability = Availability.UNAVAILABLE
        elif status == "active":
            row.employment_status = EmploymentStatus.ACTIVE

    if isinstance(row, Guard):
        row.address = event.address
        row.contract_type = event.contract_type
        if event.termination_date is not None:
            row.termination_date = event.termination_date
            row.termination_reason = event.termination_reason
    else:
        row.role = event.role_name.strip().lower()


def consume_user_updated(event: UserUpdated, *, db: Session | None = None) -> bool:
    if db is None:
        with ShiftsSessionLocal() as managed_db:
            return consume_user_updated(event, db=managed_db)

    started_at = utcnow()
    user_type = resolve_user_type(event.role_name)
    if user_type is None:
        return _log_role_skipped(
            db,
            user_id=event.user_id,
            role_name=event.role_name,
            sync_type=SyncType.UPDATE,
            message_type="UserUpdated",
            started_at=started_at,
            user_service_version=event.version,
        )

    model = Guard if user_type == USER_TYPE_GUARD else Manager
    note: str | None = None
    try:
        row = db.get(model, event.user_id)
        if row is not None and _is_stale(row, event.version):
            note = SYNC_NOTE_STALE_VERSION
            logger.info(
                "user_sync_stale_event_ignored",
                extra={"user_id": str(event.user_id), "version": event.version},
            )
        else:
            if row is None:
                row = model(
                    id=event.user_id,
                    employment_status=EmploymentStatus.ACTIVE,
                    current_availability=Availability.AVAILABLE,
                    is_active=True,
                    is_deleted=False,
                )
                db.add(row)
            _apply_updated(row, event, user_type=user_type, now_utc=started_at)
            db.commit()
    except Exception as exc:
        db.rollback()
        log_user_sync(
            db,
            user_id=event.user_id,
            user_type=user_type,
            sync_type=SyncType.UPDATE,
            success=False,
            started_at=started_at,
            message_type="UserUpdated",
            user_service_version=event.version,
            error_message=str(exc),
        )
        raise

    log_user_sync(
        db,
        user_id=event.user_id,
        user_type=user_type,
        sync_type=SyncType.UPDATE,
        success=True,
        started_at=started_at,
        message_type="UserUpdated",
        user_service_version=event.version,
        error_message=note,
    )
    return True


def consume_user_deleted(event: UserDeleted, *, db: Session | None = None) -> bool:
    if db is None:
        with ShiftsSessionLocal() as managed_db:
            return consume_user_deleted(event, db=managed_db)

    started_at = utcnow()
    user_type = resolve_user_type(event.role_name)
    if user_type is None:
        return _log_role_skipped(
            db,
            user_id=event.user_id,
            role_name=event.role_name,
            sync_type=SyncType.DELETE,
            message_type="UserDeleted",
            started_at=started_at,
        )

    model = Guard if user_type == USER_TYPE_GUARD else Manager
    try:
        row = db.get(model, event.user_id)
        if row is None:
            logger.warning("user_sync_delete_target_missing", extra={"user_id": str(event.user_id)})
            log_user_sync(
                db,
                user_id=event.user_id,
                user_type=user_type,
                sync_type=SyncType.DELETE,
                success=True,
                started_at=started_at,
                message_type="UserDeleted",
                error_message=SYNC_NOTE_TARGET_MISSING,
            )
            return False
        if not row.is_deleted:
            deleted_at = normalize_ts(event.deleted_at)
            row.is_deleted = True
            row.deleted_at = deleted_at
            row.is_active = False
            row.employment_status = EmploymentStatus.TERMINATED
            row.current_availability = Availability.UNAVAILABLE
            row.last_synced_at = started_at
            if isinstance(row, Guard):
                row.termination_date = deleted_at.date()
                row.termination_reason = event.reason or "User deleted"
            db.commit()
    except Exception as exc:
        db.rollback()
        log_user_sync(
            db,
            user_id=event.user_id,
            user_type=user_type,
            sync_type=SyncType.DELETE,
            success=False,
            started_at=started_at,
            message_type="UserDeleted",
            error_message=str(exc),
        )
        raise

    log_user_sync(
        db,
        user_id=event.user_id,
        user_type=user_type,
        sync_type=SyncType.DELETE,
        success=True,
        started_at=started_at,
        message_type="UserDeleted",
    )
    return True


def _deactivate(
    db: Session,
    *,
    model: type[Guard] | type[Manager],
    user_type: str,
    key: LookupKey | None,
    reason: str | None,
    deactivated_at: datetime,
    message_type: str,
) -> bool:
    if key is None:
        logger.warning("user_deactivate_without_identity", extra={"user_type": user_type})
        return False

    started_at = utcnow()
    try:
        row = _find_by_key(db, model, key)
        if row is None:
            logger.warning(
                "user_deactivate_target_missing",
                extra={"user_type": user_type, "lookup": type(key).__name__},
            )
            return False
        row.is_active = False
        row.employment_status = EmploymentStatus.TERMINATED
        row.current_availability = Availability.UNAVAILABLE
        row.last_synced_at = started_at
        if isinstance(row, Guard):
            row.termination_date = row.termination_date or normalize_ts(deactivated_at).date()
            row.termination_reason = reason or row.termination_reason
        row_id = row.id
        db.commit()
    except Exception as exc:
        db.rollback()
        log_user_sync(
            db,
            user_id=key.id if isinstance(key, ById) else None,
            user_type=user_type,
            sync_type=SyncType.DEACTIVATE,
            success=False,
            started_at=started_at,
            message_type=message_type,
            error_message=str(exc),
        )
        raise

    log_user_sync(
        db,
        user_id=row_id,
        user_type=user_type,
        sync_type=SyncType.DEACTIVATE,
        success=True,
        started_at=started_at,
        message_type=message_type,
    )
    return True


def consume_deactivate_guard(event: DeactivateGuard, *, db: Session | None = None) -> bool:
    if db is None:
        with ShiftsSessionLocal() as managed_db:
            return consume_deactivate_guard(event, db=managed_db)

    return _deactivate(
        db,
        model=Guard,
        user_type=USER_TYPE_GUARD,
        key=resolve_lookup_key(event.guard_id, event.email),
        reason=event.reason,
        deactivated_at=event.deactivated_at,
        message_type="DeactivateGuard",
    )


def consume_deactivate_manager(event: DeactivateManager, *, db: Session | None = None) -> bool:
    if db is None:
        with ShiftsSessionLocal() as managed_db:
            return consume_deactivate_manager(event, db=managed_db)

    return _deactivate(
        db,
        model=Manager,
        user_type=USER_TYPE_MANAGER,
        key=resolve_lookup_key(event.manager_id, event.email),
        reason=event.reason,
        deactivated_at=event.deactivated_at,
        message_type="DeactivateManager",
    )
