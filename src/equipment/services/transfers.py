"""Custody transfer engine: create, approve, reject, revert and restore
equipment hand-outs and hand-backs.

Every command runs in one database transaction. The equipment row is
locked before the assignment row, all preconditions are checked before
anything is written, and the equipment status / pending_assignment pair
is saved together with the assignment it belongs to.
"""

import logging

from django.db import transaction as db_transaction
from django.utils import timezone

from ..exceptions import NotFound, PreconditionFailed
from ..models import VALIDATION_ACTORS, Assignment, Equipment
from .events import record_event
from .state import get_equipment

logger = logging.getLogger(__name__)

ASSIGNMENT_LEDGER_FIELDS = [
    f"{actor}_{suffix}"
    for actor in VALIDATION_ACTORS
    for suffix in ("validated", "validated_by", "validated_at")
]


def get_assignment(assignment_id) -> Assignment:
    """Fetch an assignment or raise NotFound."""
    try:
        return Assignment.objects.select_related(
            "equipment", "user", "manager"
        ).get(pk=assignment_id)
    except (Assignment.DoesNotExist, ValueError, TypeError):
        raise NotFound(
            f"Assignment '{assignment_id}' does not exist.",
            assignment_id=assignment_id,
        ) from None


def _lock_assignment(assignment_id):
    """Lock and return (assignment, equipment) inside a transaction.

    Equipment is locked first so every command takes locks in the same
    order.
    """
    equipment_id = get_assignment(assignment_id).equipment_id
    equipment = get_equipment(equipment_id, for_update=True)
    assignment = (
        Assignment.objects.select_for_update()
        .select_related("user", "manager")
        .get(pk=assignment_id)
    )
    return assignment, equipment


def _refuse(message, **details):
    logger.warning("Transfer command refused: %s %s", message, details)
    return PreconditionFailed(message, **details)


def _is_superseded(assignment: Assignment) -> bool:
    """True if a newer, non-rejected transfer exists for the equipment."""
    return (
        Assignment.objects.filter(
            equipment_id=assignment.equipment_id, pk__gt=assignment.pk
        )
        .exclude(status="rejected")
        .exists()
    )


def _check_actor(actor):
    if actor not in VALIDATION_ACTORS:
        raise PreconditionFailed(
            f"'{actor}' is not a validation actor. "
            f"Expected one of: {', '.join(VALIDATION_ACTORS)}.",
            actor=actor,
        )


def _check_gating(assignment: Assignment, equipment: Equipment):
    """A pending assignment must be the one gating its equipment."""
    if equipment.pending_assignment_id != assignment.pk:
        raise _refuse(
            f"Equipment '{equipment.asset_tag}' is not awaiting this "
            f"transfer.",
            assignment_id=assignment.pk,
            pending_assignment_id=equipment.pending_assignment_id,
        )


def _gate(equipment: Equipment, assignment: Assignment):
    equipment.status = "pending_validation"
    equipment.pending_assignment = assignment


def _release(equipment: Equipment, new_status: str):
    equipment.status = new_status
    equipment.pending_assignment = None


def create_transfer(
    action,
    equipment_id,
    user,
    manager,
    signature="",
    requested_by=None,
    condition="",
    return_notes="",
) -> Assignment:
    """Open a custody transfer and put the equipment under validation.

    Returns the new pending Assignment.
    """
    if action not in dict(Assignment.ACTION_CHOICES):
        raise PreconditionFailed(
            f"'{action}' is not a transfer action.", action=action
        )

    with db_transaction.atomic():
        equipment = get_equipment(equipment_id, for_update=True)
        if equipment.status in ("pending_validation", "decommissioned"):
            raise _refuse(
                f"Equipment '{equipment.asset_tag}' is "
                f"{equipment.get_status_display().lower()} and cannot "
                f"start a new transfer.",
                equipment_id=equipment.pk,
                status=equipment.status,
            )

        old_status = equipment.status
        assignment = Assignment.objects.create(
            action=action,
            equipment=equipment,
            user=user,
            manager=manager,
            requested_by=requested_by,
            signature=signature,
            condition=condition if action == "return" else "",
            return_notes=return_notes if action == "return" else "",
        )
        _gate(equipment, assignment)
        equipment.save(
            update_fields=["status", "pending_assignment", "updated_at"]
        )
        record_event(
            equipment,
            "transfer_created",
            assignment=assignment,
            performed_by=requested_by,
            from_status=old_status,
            notes=f"{assignment.get_action_display()} requested for {user}",
        )

    logger.info(
        "Transfer %s (%s) created for equipment %s",
        assignment.pk,
        action,
        equipment.pk,
    )
    return assignment


def approve(assignment_id, actor, approver) -> Assignment:
    """Record ``actor``'s validation, performed by ``approver``.

    When this completes the ledger, the assignment becomes approved and
    the equipment leaves pending validation in the same transaction.
    """
    _check_actor(actor)
    with db_transaction.atomic():
        assignment, equipment = _lock_assignment(assignment_id)

        if assignment.status != "pending":
            raise _refuse(
                f"Assignment is {assignment.get_status_display().lower()}; "
                f"only pending transfers can be approved.",
                assignment_id=assignment.pk,
                status=assignment.status,
            )
        if assignment.is_validated(actor):
            raise _refuse(
                f"'{actor}' has already validated this transfer.",
                assignment_id=assignment.pk,
                actor=actor,
            )
        missing = [
            p
            for p in assignment.prerequisites_for(actor)
            if not assignment.is_validated(p)
        ]
        if missing:
            raise _refuse(
                f"'{actor}' cannot validate before "
                f"{', '.join(missing)}.",
                assignment_id=assignment.pk,
                actor=actor,
                waiting_for=missing,
            )

        _check_gating(assignment, equipment)

        assignment.mark_validated(actor, approver, timezone.now())
        update_fields = [
            f"{actor}_validated",
            f"{actor}_validated_by",
            f"{actor}_validated_at",
            "updated_at",
        ]
        completed = assignment.is_fully_validated
        if completed:
            assignment.status = "approved"
            update_fields.append("status")
        assignment.save(update_fields=update_fields)

        record_event(
            equipment,
            "approved",
            assignment=assignment,
            performed_by=approver,
            actor=actor,
            from_status=equipment.status,
        )

        if completed:
            old_status = equipment.status
            _release(equipment, assignment.approved_equipment_status)
            equipment.save(
                update_fields=["status", "pending_assignment", "updated_at"]
            )
            record_event(
                equipment,
                "transfer_approved",
                assignment=assignment,
                performed_by=approver,
                from_status=old_status,
            )

    logger.info(
        "Assignment %s validated by %s (%s)%s",
        assignment.pk,
        actor,
        getattr(approver, "pk", None),
        " - fully approved" if completed else "",
    )
    return assignment


def reject(assignment_id, reason, performed_by=None) -> Assignment:
    """Reject a pending transfer and make the equipment available.

    Any approvals collected so far are discarded.
    """
    reason = (reason or "").strip()
    with db_transaction.atomic():
        assignment, equipment = _lock_assignment(assignment_id)
        if assignment.is_terminal:
            raise _refuse(
                f"Assignment is already "
                f"{assignment.get_status_display().lower()}.",
                assignment_id=assignment.pk,
                status=assignment.status,
            )
        if not reason:
            raise _refuse(
                "A rejection reason is required.",
                assignment_id=assignment.pk,
            )
        _check_gating(assignment, equipment)

        assignment.status = "rejected"
        assignment.rejection_reason = reason
        assignment.clear_all_validation()
        assignment.save(
            update_fields=["status", "rejection_reason", "updated_at"]
            + ASSIGNMENT_LEDGER_FIELDS
        )

        old_status = equipment.status
        _release(equipment, "available")
        equipment.save(
            update_fields=["status", "pending_assignment", "updated_at"]
        )
        record_event(
            equipment,
            "rejected",
            assignment=assignment,
            performed_by=performed_by,
            from_status=old_status,
            notes=reason,
        )

    logger.info("Assignment %s rejected", assignment.pk)
    return assignment


def revert(assignment_id, actor, performed_by=None) -> Assignment:
    """Withdraw a single actor's validation.

    Reverting an approved transfer reopens it: the assignment returns to
    pending and the equipment to pending validation, gated by this
    assignment again.
    """
    _check_actor(actor)
    with db_transaction.atomic():
        assignment, equipment = _lock_assignment(assignment_id)
        if assignment.status == "rejected":
            raise _refuse(
                "Rejected transfers have no validations to revert; "
                "restore the transfer instead.",
                assignment_id=assignment.pk,
            )
        if not assignment.is_validated(actor):
            raise _refuse(
                f"'{actor}' has not validated this transfer.",
                assignment_id=assignment.pk,
                actor=actor,
            )

        was_approved = assignment.status == "approved"
        if was_approved:
            expected = assignment.approved_equipment_status
            if equipment.status != expected:
                raise _refuse(
                    f"Equipment '{equipment.asset_tag}' is no longer "
                    f"'{expected}'; the approval cannot be reverted.",
                    assignment_id=assignment.pk,
                    equipment_status=equipment.status,
                )
            if _is_superseded(assignment):
                raise _refuse(
                    "A newer transfer exists for this equipment; the "
                    "approval cannot be reverted.",
                    assignment_id=assignment.pk,
                )
        else:
            _check_gating(assignment, equipment)

        assignment.clear_validation(actor)
        assignment.status = "pending"
        assignment.save(
            update_fields=[
                f"{actor}_validated",
                f"{actor}_validated_by",
                f"{actor}_validated_at",
                "status",
                "updated_at",
            ]
        )

        old_status = equipment.status
        if was_approved:
            _gate(equipment, assignment)
            equipment.save(
                update_fields=["status", "pending_assignment", "updated_at"]
            )
        record_event(
            equipment,
            "reverted",
            assignment=assignment,
            performed_by=performed_by,
            actor=actor,
            from_status=old_status,
        )

    logger.info(
        "Assignment %s: %s validation reverted%s",
        assignment.pk,
        actor,
        " - reopened" if was_approved else "",
    )
    return assignment


def restore_rejected(assignment_id, performed_by=None) -> Assignment:
    """Reopen a rejected transfer with a clean ledger."""
    with db_transaction.atomic():
        assignment, equipment = _lock_assignment(assignment_id)
        if assignment.status != "rejected":
            raise _refuse(
                "Only rejected transfers can be restored.",
                assignment_id=assignment.pk,
                status=assignment.status,
            )
        if equipment.status in ("pending_validation", "decommissioned"):
            raise _refuse(
                f"Equipment '{equipment.asset_tag}' is "
                f"{equipment.get_status_display().lower()}; the transfer "
                f"cannot be restored.",
                assignment_id=assignment.pk,
                equipment_status=equipment.status,
            )
        if _is_superseded(assignment):
            raise _refuse(
                "A newer transfer exists for this equipment; the rejected "
                "transfer cannot be restored.",
                assignment_id=assignment.pk,
            )

        assignment.status = "pending"
        assignment.rejection_reason = ""
        assignment.clear_all_validation()
        assignment.save(
            update_fields=["status", "rejection_reason", "updated_at"]
            + ASSIGNMENT_LEDGER_FIELDS
        )

        old_status = equipment.status
        _gate(equipment, assignment)
        equipment.save(
            update_fields=["status", "pending_assignment", "updated_at"]
        )
        record_event(
            equipment,
            "restored",
            assignment=assignment,
            performed_by=performed_by,
            from_status=old_status,
        )

    logger.info("Assignment %s restored to pending", assignment.pk)
    return assignment
