from __future__ import annotations

from guardforce.broker import MessageBroker
from guardforce.events import (
    ContractActivated,
    DeactivateGuard,
    DeactivateManager,
    GetShiftLocationRequest,
    GuardCheckedIn,
    GuardCheckedOut,
    ShiftAssignmentCancelled,
    UserCreated,
    UserDeleted,
    UserUpdated,
)
from guardforce.services.attendance_sync import consume_assignment_cancelled
from guardforce.services.contract_sync import import_shift_templates
from guardforce.services.shift_events import consume_guard_checked_in, consume_guard_checked_out
from guardforce.services.shift_location import answer_shift_location
from guardforce.services.user_sync import (
    consume_deactivate_guard,
    consume_deactivate_manager,
    consume_user_created,
    consume_user_deleted,
    consume_user_updated,
)


def register_consumers(broker: MessageBroker) -> None:
    broker.respond(GetShiftLocationRequest, answer_shift_location)

    broker.subscribe(GuardCheckedIn, queue="shifts.guard-checked-in", handler=consume_guard_checked_in)
    broker.subscribe(GuardCheckedOut, queue="shifts.guard-checked-out", handler=consume_guard_checked_out)
    broker.subscribe(ContractActivated, queue="shifts.contract-activated", handler=import_shift_templates)
    broker.subscribe(UserCreated, queue="shifts.user-created", handler=consume_user_created)
    broker.subscribe(UserUpdated, queue="shifts.user-updated", handler=consume_user_updated)
    broker.subscribe(UserDeleted, queue="shifts.user-deleted", handler=consume_user_deleted)
    broker.subscribe(DeactivateGuard, queue="shifts.deactivate-guard", handler=consume_deactivate_guard)
    broker.subscribe(DeactivateManager, queue="shifts.deactivate-manager", handler=consume_deactivate_manager)

    broker.subscribe(
        ShiftAssignmentCancelled,
        queue="attendances.shift-assignment-cancelled",
        handler=consume_assignment_cancelled,
    )
