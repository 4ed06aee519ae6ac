"""Audit session engine: start, scan, pause, complete and cancel
department audits.

An audit only confirms presence and may relocate equipment. It never
touches an item's custody status, so it cannot contradict a transfer
that is awaiting validation.
"""

import json
import logging
from dataclasses import dataclass

from django.db import IntegrityError
from django.db import transaction as db_transaction

from ..exceptions import InvalidState, NotFound, PreconditionFailed
from ..models import AuditSession, Department, Equipment
from .events import record_event

logger = logging.getLogger(__name__)

# Scan outcomes
CONFIRMED = "confirmed"
ALREADY_CONFIRMED = "already_confirmed"
RELOCATION_REQUIRED = "relocation_required"
RELOCATED = "relocated"
UNEXPECTED_RECORDED = "unexpected_recorded"
ALREADY_RECORDED = "already_recorded"


@dataclass(frozen=True)
class ScanResult:
    """Outcome of a single scan."""

    outcome: str
    session: AuditSession
    equipment: Equipment | None = None

    @property
    def needs_confirmation(self):
        return self.outcome == RELOCATION_REQUIRED


def get_audit_session(session_id, for_update=False) -> AuditSession:
    qs = AuditSession.objects.select_related("department__site")
    if for_update:
        qs = qs.select_for_update(of=("self",))
    try:
        return qs.get(pk=session_id)
    except (AuditSession.DoesNotExist, ValueError, TypeError):
        raise NotFound(
            f"Audit session '{session_id}' does not exist.",
            session_id=session_id,
        ) from None


def parse_scan_code(text):
    """Extract an asset tag from a scanned code.

    QR labels carry a JSON payload with a ``serialNumber`` key; plain
    barcodes are the tag itself. Returns (asset_tag, qr_data) where
    qr_data is the decoded payload or None.
    """
    text = (text or "").strip()
    try:
        data = json.loads(text)
    except ValueError:
        return text, None
    if not isinstance(data, dict):
        return text, None
    return str(data.get("serialNumber") or "").strip(), data


def start_audit_session(department_id, user):
    """Start an audit for a department, or resume its open one.

    Returns (session, created) like get_or_create.
    """
    try:
        department = Department.objects.get(pk=department_id)
    except (Department.DoesNotExist, ValueError, TypeError):
        raise NotFound(
            f"Department '{department_id}' does not exist.",
            department_id=department_id,
        ) from None

    with db_transaction.atomic():
        existing = (
            AuditSession.objects.select_for_update()
            .filter(
                department=department,
                status__in=AuditSession.OPEN_STATUSES,
            )
            .first()
        )
        if existing:
            existing.status = "in_progress"
            existing.touch()
            existing.save(update_fields=["status", "updated_at"])
            logger.info(
                "Audit session %s resumed for department %s",
                existing.pk,
                department.pk,
            )
            return existing, False

        try:
            with db_transaction.atomic():
                session = AuditSession.objects.create(
                    department=department, started_by=user
                )
        except IntegrityError:
            logger.warning(
                "Concurrent audit start for department %s", department.pk
            )
            raise PreconditionFailed(
                f"An audit of {department} is already open.",
                department_id=department.pk,
            ) from None

    logger.info(
        "Audit session %s started for department %s by %s",
        session.pk,
        department.pk,
        getattr(user, "pk", None),
    )
    return session, True


def _require_in_progress(session, command):
    if session.status != "in_progress":
        raise InvalidState(
            f"Cannot {command} an audit that is "
            f"{session.get_status_display().lower()}.",
            session_id=session.pk,
            status=session.status,
        )


def scan(session_id, code, performed_by=None, relocate=None) -> ScanResult:
    """Record a scanned code against an in-progress audit.

    ``relocate`` only matters for equipment registered to another
    department: None asks the caller to decide (nothing is written),
    True moves the item here and confirms it, False records it as an
    unexpected find.
    """
    asset_tag, qr_data = parse_scan_code(code)
    if not asset_tag:
        raise PreconditionFailed(
            "Scanned code has no asset tag.", code=code
        )

    with db_transaction.atomic():
        session = get_audit_session(session_id, for_update=True)
        _require_in_progress(session, "scan into")

        equipment = (
            Equipment.objects.select_for_update(of=("self",))
            .select_related("site", "department", "equipment_model")
            .filter(asset_tag=asset_tag)
            .first()
        )
        if equipment is None:
            raise NotFound(
                f"No equipment with asset tag '{asset_tag}'.",
                asset_tag=asset_tag,
                qr_data=qr_data,
            )

        if session.has_scanned(equipment.pk):
            return ScanResult(ALREADY_CONFIRMED, session, equipment)

        if equipment.department_id == session.department_id:
            _confirm(session, equipment, performed_by)
            return ScanResult(CONFIRMED, session, equipment)

        if relocate is None:
            return ScanResult(RELOCATION_REQUIRED, session, equipment)

        if relocate:
            _relocate(session, equipment, performed_by)
            return ScanResult(RELOCATED, session, equipment)

        if session.has_unexpected(equipment.asset_tag):
            return ScanResult(ALREADY_RECORDED, session, equipment)
        _record_unexpected(session, equipment, performed_by)
        return ScanResult(UNEXPECTED_RECORDED, session, equipment)


def _confirm(session, equipment, performed_by):
    session.scanned_item_ids = session.scanned_item_ids + [equipment.pk]
    session.touch()
    session.save(update_fields=["scanned_item_ids", "updated_at"])
    record_event(
        equipment,
        "audit_confirmed",
        audit_session=session,
        performed_by=performed_by,
        from_status=equipment.status,
        notes=f"Confirmed during audit #{session.pk}",
    )
    logger.info(
        "Audit %s confirmed equipment %s", session.pk, equipment.pk
    )


def _relocate(session, equipment, performed_by):
    old_location = equipment.location_display
    department = session.department
    equipment.site = department.site
    equipment.department = department
    equipment.save(update_fields=["site", "department", "updated_at"])

    session.unexpected_items = [
        item
        for item in session.unexpected_items
        if item.get("assetTag") != equipment.asset_tag
    ]
    session.scanned_item_ids = session.scanned_item_ids + [equipment.pk]
    session.touch()
    session.save(
        update_fields=["scanned_item_ids", "unexpected_items", "updated_at"]
    )
    record_event(
        equipment,
        "audit_relocated",
        audit_session=session,
        performed_by=performed_by,
        from_status=equipment.status,
        notes=(
            f"Relocated from {old_location} to {department} during "
            f"audit #{session.pk}"
        ),
    )
    logger.info(
        "Audit %s relocated equipment %s from %s",
        session.pk,
        equipment.pk,
        old_location,
    )


def _record_unexpected(session, equipment, performed_by):
    entry = {
        "assetTag": equipment.asset_tag,
        "modelName": equipment.model_name,
        "originalLocation": equipment.location_display,
    }
    session.unexpected_items = session.unexpected_items + [entry]
    session.touch()
    session.save(update_fields=["unexpected_items", "updated_at"])
    record_event(
        equipment,
        "audit_unexpected",
        audit_session=session,
        performed_by=performed_by,
        from_status=equipment.status,
        notes=(
            f"Found during audit #{session.pk}, registered at "
            f"{entry['originalLocation']}"
        ),
    )
    logger.info(
        "Audit %s recorded unexpected equipment %s", session.pk, equipment.pk
    )


def pause_audit_session(session_id) -> AuditSession:
    with db_transaction.atomic():
        session = get_audit_session(session_id, for_update=True)
        _require_in_progress(session, "pause")
        session.status = "paused"
        session.touch()
        session.save(update_fields=["status", "updated_at"])
    logger.info("Audit session %s paused", session.pk)
    return session


def complete_audit_session(session_id) -> AuditSession:
    """Complete an audit, freezing its expected equipment set."""
    with db_transaction.atomic():
        session = get_audit_session(session_id, for_update=True)
        _require_in_progress(session, "complete")
        session.expected_item_ids = list(
            Equipment.objects.filter(department_id=session.department_id)
            .order_by("pk")
            .values_list("pk", flat=True)
        )
        session.status = "completed"
        session.touch()
        session.completed_at = session.updated_at
        session.save(
            update_fields=[
                "status",
                "expected_item_ids",
                "updated_at",
                "completed_at",
            ]
        )
    logger.info(
        "Audit session %s completed (%d expected, %d scanned)",
        session.pk,
        len(session.expected_item_ids),
        len(session.scanned_item_ids),
    )
    return session


def cancel_audit_session(session_id) -> None:
    """Discard an open audit and all of its progress."""
    with db_transaction.atomic():
        session = get_audit_session(session_id, for_update=True)
        if not session.is_open:
            raise InvalidState(
                "Completed audits cannot be cancelled.",
                session_id=session.pk,
                status=session.status,
            )
        pk = session.pk
        session.delete()
    logger.info("Audit session %s cancelled", pk)
