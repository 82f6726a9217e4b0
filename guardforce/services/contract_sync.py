from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import time

from sqlalchemy import select
from sqlalchemy.orm import Session

from guardforce.db import ShiftsSessionLocal
from guardforce.events import ContractActivated, ContractLocation, ContractShiftSchedule
from guardforce.services.clock import utcnow
from guardforce.shifts_models import TEMPLATE_STATUS_AWAIT_CREATE_SHIFT, ShiftTemplate

logger = logging.getLogger("guardforce.contract_sync")


@dataclass(slots=True)
class TemplateImportSummary:
    contract_id: str
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def template_code_for(contract_number: str, schedule: ContractShiftSchedule, location: ContractLocation) -> str:
    return f"{contract_number}-{schedule.schedule_id.hex[:8]}-{location.location_id.hex[:8]}".upper()


def _parse_clock(value: str) -> time:
    return time.fromisoformat(value.strip())


def _locations_for(event: ContractActivated, schedule: ContractShiftSchedule) -> list[ContractLocation]:
    if schedule.location_id is None:
        return list(event.locations)
    return [item for item in event.locations if item.location_id == schedule.location_id]


def import_shift_templates(event: ContractActivated, *, db: Session | None = None) -> TemplateImportSummary:
    """Upsert one shift template per (schedule, location) of an activated contract.

    Template codes are derived from the contract number and ids, so a
    redelivered activation updates the same rows instead of duplicating them.
    Any error propagates so the broker re-schedules the message.
    """
    if db is None:
        with ShiftsSessionLocal() as managed_db:
            return import_shift_templates(event, db=managed_db)

    summary = TemplateImportSummary(contract_id=str(event.contract_id))
    now_utc = utcnow()
    try:
        for schedule in event.shift_schedules:
            locations = _locations_for(event, schedule)
            if not locations:
                summary.skipped.append(str(schedule.schedule_id))
                logger.warning(
                    "contract_schedule_without_location",
                    extra={"contract_id": str(event.contract_id), "schedule_id": str(schedule.schedule_id)},
                )
                continue

            start_time = _parse_clock(schedule.shift_start_time)
            end_time = _parse_clock(schedule.shift_end_time)
            for location in locations:
                code = template_code_for(event.contract_number, schedule, location)
                template = db.scalar(select(ShiftTemplate).where(ShiftTemplate.template_code == code))
                if template is None:
                    template = ShiftTemplate(template_code=code, status=TEMPLATE_STATUS_AWAIT_CREATE_SHIFT)
                    db.add(template)
                    summary.created.append(code)
                else:
                    summary.updated.append(code)

                template.template_name = f"{schedule.schedule_name} - {location.location_name}"
                template.contract_id = event.contract_id
                template.contract_number = event.contract_number
                template.location_id = location.location_id
                template.location_name = location.location_name
                template.location_latitude = location.latitude
                template.location_longitude = location.longitude
                template.start_time = start_time
                template.end_time = end_time
                template.duration_hours = schedule.duration_hours
                template.break_duration_minutes = schedule.break_minutes
                template.crosses_midnight = schedule.crosses_midnight or end_time <= start_time
                template.applies_monday = schedule.applies_monday
                template.applies_tuesday = schedule.applies_tuesday
                template.applies_wednesday = schedule.applies_wednesday
                template.applies_thursday = schedule.applies_thursday
                template.applies_friday = schedule.applies_friday
                template.applies_saturday = schedule.applies_saturday
                template.applies_sunday = schedule.applies_sunday
                template.min_guards_required = max(1, schedule.guards_per_shift or location.guards_required)
                template.effective_from = schedule.effective_from or event.start_date
                template.effective_to = schedule.effective_to or event.end_date
                template.is_active = True
                template.updated_at = now_utc
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "contract_template_import_failed",
            extra={"contract_id": str(event.contract_id), "contract_number": event.contract_number},
        )
        raise

    logger.info(
        "contract_templates_imported",
        extra={
            "contract_id": str(event.contract_id),
            "contract_number": event.contract_number,
            "templates_created": len(summary.created),
            "templates_updated": len(summary.updated),
            "templates_skipped": len(summary.skipped),
        },
    )
    return summary
