"""Custody event log writer."""

from ..models import CustodyEvent


def record_event(
    equipment,
    action,
    *,
    assignment=None,
    audit_session=None,
    performed_by=None,
    actor="",
    from_status="",
    to_status="",
    notes="",
):
    """Append an immutable custody event. Returns the CustodyEvent."""
    return CustodyEvent.objects.create(
        equipment=equipment,
        action=action,
        assignment=assignment,
        audit_session=audit_session,
        performed_by=performed_by,
        actor=actor,
        from_status=from_status,
        to_status=to_status or equipment.status,
        notes=notes,
    )
