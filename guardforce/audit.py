from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy.orm import Session

from guardforce.services.clock import utcnow
from guardforce.shifts_models import SyncStatus, SyncType, UserSyncLog

logger = logging.getLogger("guardforce.audit")


def log_user_sync(
    db: Session,
    *,
    user_id: uuid.UUID | None,
    user_type: str,
    sync_type: SyncType,
    success: bool,
    started_at: datetime,
    message_type: str | None = None,
    user_service_version: int | None = None,
    error_message: str | None = None,
) -> None:
    completed_at = utcnow()
    duration_ms = max(0, int((completed_at - started_at).total_seconds() * 1000))
    sync_status = SyncStatus.SUCCESS if success else SyncStatus.FAILED
    entry = UserSyncLog(
        user_id=user_id,
        user_type=user_type,
        sync_type=sync_type,
        sync_status=sync_status,
        sync_initiated_by="EVENT",
        message_type=message_type,
        user_service_version=user_service_version,
        error_message=error_message[:4000] if error_message else None,
        started_at=started_at,
        completed_at=completed_at,
        sync_duration_ms=duration_ms,
    )
    db.add(entry)
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "user_sync_log_write_failed",
            extra={
                "user_id": str(user_id) if user_id else None,
                "user_type": user_type,
                "sync_type": sync_type.value,
                "success": success,
            },
        )
        return

    logger.info(
        "user_sync_event",
        extra={
            "user_id": str(user_id) if user_id else None,
            "user_type": user_type,
            "sync_type": sync_type.value,
            "sync_status": sync_status.value,
            "message_type": message_type,
            "sync_duration_ms": duration_ms,
            "error_message": error_message,
        },
    )
