"""Validation actor resolution.

Turns "who is asking" into one of the three validation actors
('it', 'manager', 'user') before the transfer engine is called, so the
engine itself never looks at identities or permissions.
"""

from django.contrib.auth import get_user_model
from django.db.models import Q

from ..exceptions import PreconditionFailed
from ..models import VALIDATION_ACTORS, Assignment

User = get_user_model()


def is_it_admin(user: User) -> bool:
    """IT admins validate the 'it' step and may validate on behalf of
    the other parties."""
    if user.is_superuser:
        return True
    return user.has_perm("equipment.can_validate_as_it")


def is_party(assignment: Assignment, user: User, actor: str) -> bool:
    """True if ``user`` is the person ``actor`` stands for."""
    if actor == "manager":
        return user.pk == assignment.manager_id
    if actor == "user":
        return user.pk == assignment.user_id
    return is_it_admin(user)


def resolve_actor(
    assignment: Assignment, user: User, requested: str = None
) -> str:
    """Determine which actor ``user`` validates as.

    An explicit ``requested`` actor is honoured when the user is that
    party or an IT admin. Otherwise the manager match wins, then the
    employee match, then the IT admin role.

    Raises PreconditionFailed if no actor can be resolved.
    """
    if requested:
        if requested not in VALIDATION_ACTORS:
            raise PreconditionFailed(
                f"'{requested}' is not a validation actor.",
                actor=requested,
            )
        if is_party(assignment, user, requested) or is_it_admin(user):
            return requested
        raise PreconditionFailed(
            f"{user} cannot validate as '{requested}' on this transfer.",
            assignment_id=assignment.pk,
            actor=requested,
        )

    if user.pk == assignment.manager_id:
        return "manager"
    if user.pk == assignment.user_id:
        return "user"
    if is_it_admin(user):
        return "it"
    raise PreconditionFailed(
        f"{user} is not a party to this transfer.",
        assignment_id=assignment.pk,
    )


def actor_for_user(assignment: Assignment, user: User):
    """Return the actor ``user`` may validate as right now, or None.

    Unlike resolve_actor this respects approval order: it only returns
    an actor whose turn has come.
    """
    if assignment.status != "pending":
        return None
    for actor in assignment.APPROVAL_ORDER[assignment.action]:
        if not assignment.can_approve(actor):
            continue
        if actor == "it" and is_it_admin(user):
            return actor
        if actor != "it" and is_party(assignment, user, actor):
            return actor
    return None


def pending_approvals_for(user: User):
    """Pending transfers waiting on ``user``'s validation, oldest first."""
    candidates = Assignment.objects.filter(
        status="pending",
        equipment__status="pending_validation",
    ).select_related("equipment", "user", "manager")
    if not is_it_admin(user):
        candidates = candidates.filter(Q(user=user) | Q(manager=user))
    return [
        a
        for a in candidates.order_by("created_at", "pk")
        if actor_for_user(a, user) is not None
    ]
