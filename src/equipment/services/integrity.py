"""Store-wide custody consistency checks."""

import logging

from django.db.models import Q

from ..models import Assignment, Equipment

logger = logging.getLogger(__name__)


def find_inconsistencies() -> list:
    """Return human-readable violations of the custody invariants.

    Checks that approved assignments are fully validated (and only
    those), that pending validation gates reference a pending assignment
    for the same equipment, and that no equipment carries a gate outside
    pending validation.
    """
    problems = []

    fully_validated = Q(
        it_validated=True, manager_validated=True, user_validated=True
    )
    for a in Assignment.objects.filter(status="approved").exclude(
        fully_validated
    ):
        problems.append(
            f"Assignment {a.pk} is approved but not fully validated."
        )
    for a in Assignment.objects.filter(fully_validated).exclude(
        status="approved"
    ):
        problems.append(
            f"Assignment {a.pk} is fully validated but {a.status}."
        )

    gated = Equipment.objects.filter(
        status="pending_validation"
    ).select_related("pending_assignment")
    for equipment in gated:
        pending = equipment.pending_assignment
        if pending is None:
            problems.append(
                f"Equipment {equipment.asset_tag} is pending validation "
                f"without a pending assignment."
            )
        elif pending.status != "pending":
            problems.append(
                f"Equipment {equipment.asset_tag} is gated by assignment "
                f"{pending.pk}, which is {pending.status}."
            )
        elif pending.equipment_id != equipment.pk:
            problems.append(
                f"Equipment {equipment.asset_tag} is gated by assignment "
                f"{pending.pk}, which belongs to other equipment."
            )

    stray = Equipment.objects.exclude(status="pending_validation").filter(
        pending_assignment__isnull=False
    )
    for equipment in stray:
        problems.append(
            f"Equipment {equipment.asset_tag} is {equipment.status} but "
            f"still gated by assignment {equipment.pending_assignment_id}."
        )

    orphaned = Assignment.objects.filter(
        status="pending", gated_equipment__isnull=True
    )
    for a in orphaned:
        problems.append(
            f"Assignment {a.pk} is pending but does not gate its equipment."
        )

    if problems:
        logger.warning("Found %d custody inconsistencies", len(problems))
    return problems
