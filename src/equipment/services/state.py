"""Equipment state machine and manual transition validation."""

import logging

from django.db import transaction as db_transaction

from ..exceptions import InvalidState, NotFound, PreconditionFailed
from ..models import Equipment
from .events import record_event

logger = logging.getLogger(__name__)


def get_equipment(equipment_id, for_update=False) -> Equipment:
    """Fetch an equipment item or raise NotFound.

    With ``for_update`` the row is locked until the surrounding
    transaction ends.
    """
    qs = Equipment.objects.all()
    if for_update:
        qs = qs.select_for_update()
    try:
        return qs.get(pk=equipment_id)
    except (Equipment.DoesNotExist, ValueError, TypeError):
        raise NotFound(
            f"Equipment '{equipment_id}' does not exist.",
            equipment_id=equipment_id,
        ) from None


def get_equipment_status(equipment_id) -> dict:
    """Read-only projection of an item's custody state."""
    equipment = get_equipment(equipment_id)
    return {
        "equipment_id": equipment.pk,
        "asset_tag": equipment.asset_tag,
        "status": equipment.status,
        "pending_assignment_id": equipment.pending_assignment_id,
    }


def validate_transition(equipment: Equipment, new_status: str) -> None:
    """Validate and raise if the manual status transition is not allowed.

    Statuses owned by the custody transfer workflow
    (pending_validation, assigned) can never be entered or left here.
    """
    if new_status == equipment.status:
        return  # No-op transition is always fine

    if new_status not in dict(Equipment.STATUS_CHOICES):
        raise InvalidState(
            f"'{new_status}' is not a valid status.", status=new_status
        )

    if new_status in Equipment.TRANSFER_STATUSES:
        raise PreconditionFailed(
            f"'{equipment.get_status_display()}' equipment can only become "
            f"'{new_status}' through a custody transfer.",
            equipment_id=equipment.pk,
        )

    if not equipment.can_transition_to(new_status):
        allowed = Equipment.VALID_TRANSITIONS.get(equipment.status, [])
        raise PreconditionFailed(
            f"Cannot transition from '{equipment.get_status_display()}' to "
            f"'{new_status}'. Allowed transitions: "
            f"{', '.join(allowed) or 'none'}.",
            equipment_id=equipment.pk,
        )


def transition_equipment(
    equipment_id, new_status: str, performed_by=None, notes: str = ""
) -> Equipment:
    """Validate and perform a manual status transition.

    Returns the updated (saved) equipment.
    """
    with db_transaction.atomic():
        equipment = get_equipment(equipment_id, for_update=True)
        old_status = equipment.status
        validate_transition(equipment, new_status)
        if new_status == old_status:
            return equipment
        equipment.status = new_status
        equipment.save(update_fields=["status", "updated_at"])
        record_event(
            equipment,
            "status_changed",
            performed_by=performed_by,
            from_status=old_status,
            to_status=new_status,
            notes=notes,
        )
    logger.info(
        "Equipment %s status %s -> %s", equipment.pk, old_status, new_status
    )
    return equipment
