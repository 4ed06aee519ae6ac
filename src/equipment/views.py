"""JSON endpoints for the custody transfer and audit engines.

Commands are POST with a JSON body, queries are GET. Engine errors map
to HTTP statuses through ERROR_STATUS.
"""

import functools
import json

from django.contrib.auth import get_user_model
from django.contrib.auth.decorators import login_required
from django.http import JsonResponse

from .exceptions import (
    CustodyError,
    InvalidState,
    NotFound,
    PreconditionFailed,
)
from .services import audits, transfers
from .services.actors import is_it_admin, pending_approvals_for, resolve_actor
from .services.reconciliation import (
    get_session_reconciliation,
    recent_scans,
    reconcile,
    registry_snapshot,
)
from .services.state import get_equipment_status, transition_equipment

User = get_user_model()

ERROR_STATUS = {
    NotFound: 404,
    PreconditionFailed: 409,
    InvalidState: 409,
}


class InvalidPayload(Exception):
    pass


def _error(code, message, status, **extra):
    return JsonResponse(
        {"error": code, "message": message, **extra}, status=status
    )


def custody_endpoint(method):
    """Restrict a view to ``method`` and translate engine errors."""

    def decorator(view):
        @login_required
        @functools.wraps(view)
        def wrapper(request, *args, **kwargs):
            if request.method != method:
                return _error(
                    "method_not_allowed", f"{method} required", 405
                )
            try:
                return view(request, *args, **kwargs)
            except InvalidPayload as e:
                return _error("bad_request", str(e), 400)
            except CustodyError as e:
                status = ERROR_STATUS.get(type(e), 409)
                return _error(e.code, e.message, status, details=e.details)

        return wrapper

    return decorator


def _body(request):
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, ValueError):
        raise InvalidPayload("Invalid JSON") from None
    if not isinstance(data, dict):
        raise InvalidPayload("Expected a JSON object")
    return data


def _str_field(data, key, default=""):
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise InvalidPayload(f"{key} must be a string")
    return value


def _get_user(user_id, role):
    try:
        return User.objects.get(pk=user_id)
    except (User.DoesNotExist, ValueError, TypeError):
        raise NotFound(
            f"{role.capitalize()} '{user_id}' does not exist.",
            user_id=user_id,
        ) from None


def _forbidden():
    return _error("permission_denied", "Permission denied", 403)


def _can_run_audits(user):
    return is_it_admin(user) or user.has_perm("equipment.can_run_audits")


def _iso(value):
    return value.isoformat() if value else None


def serialize_assignment(assignment):
    return {
        "id": assignment.pk,
        "action": assignment.action,
        "equipment_id": assignment.equipment_id,
        "user_id": assignment.user_id,
        "manager_id": assignment.manager_id,
        "status": assignment.status,
        "rejection_reason": assignment.rejection_reason,
        "validation": assignment.validation,
        "validated_by": assignment.validated_by,
        "validated_at": {
            actor: _iso(when)
            for actor, when in assignment.validated_at.items()
        },
        "next_required_actor": assignment.next_required_actor,
        "created_at": _iso(assignment.created_at),
    }


def serialize_session(session):
    return {
        "id": session.pk,
        "department_id": session.department_id,
        "status": session.status,
        "scanned_item_ids": list(session.scanned_item_ids),
        "unexpected_items": list(session.unexpected_items),
        "started_at": _iso(session.started_at),
        "updated_at": _iso(session.updated_at),
        "completed_at": _iso(session.completed_at),
    }


def _assignment_response(assignment, status=200):
    data = serialize_assignment(assignment)
    data["equipment"] = get_equipment_status(assignment.equipment_id)
    return JsonResponse(data, status=status)


# --- Custody transfers ---


@custody_endpoint("POST")
def transfer_create(request):
    if not is_it_admin(request.user):
        return _forbidden()
    data = _body(request)
    user = _get_user(data.get("user_id"), "user")
    manager_id = data.get("manager_id") or user.manager_id
    if not manager_id:
        raise InvalidPayload(f"{user} has no manager; pass manager_id")
    manager = _get_user(manager_id, "manager")
    assignment = transfers.create_transfer(
        _str_field(data, "action"),
        data.get("equipment_id"),
        user,
        manager,
        signature=_str_field(data, "signature"),
        requested_by=request.user,
        condition=_str_field(data, "condition"),
        return_notes=_str_field(data, "return_notes"),
    )
    return _assignment_response(assignment, status=201)


@custody_endpoint("GET")
def transfer_detail(request, pk):
    return _assignment_response(transfers.get_assignment(pk))


@custody_endpoint("GET")
def transfer_pending(request):
    """Transfers waiting on the current user's validation."""
    return JsonResponse(
        {
            "results": [
                serialize_assignment(a)
                for a in pending_approvals_for(request.user)
            ]
        }
    )


@custody_endpoint("POST")
def transfer_approve(request, pk):
    data = _body(request)
    assignment = transfers.get_assignment(pk)
    actor = resolve_actor(
        assignment, request.user, _str_field(data, "actor", None)
    )
    assignment = transfers.approve(pk, actor, request.user)
    return _assignment_response(assignment)


@custody_endpoint("POST")
def transfer_reject(request, pk):
    data = _body(request)
    assignment = transfers.get_assignment(pk)
    # Any party to the transfer may refuse it
    resolve_actor(assignment, request.user)
    assignment = transfers.reject(
        pk, _str_field(data, "reason"), performed_by=request.user
    )
    return _assignment_response(assignment)


@custody_endpoint("POST")
def transfer_revert(request, pk):
    if not is_it_admin(request.user):
        return _forbidden()
    data = _body(request)
    assignment = transfers.revert(
        pk, _str_field(data, "actor"), performed_by=request.user
    )
    return _assignment_response(assignment)


@custody_endpoint("POST")
def transfer_restore(request, pk):
    if not is_it_admin(request.user):
        return _forbidden()
    assignment = transfers.restore_rejected(pk, performed_by=request.user)
    return _assignment_response(assignment)


# --- Equipment ---


@custody_endpoint("GET")
def equipment_status(request, pk):
    return JsonResponse(get_equipment_status(pk))


@custody_endpoint("POST")
def equipment_transition(request, pk):
    if not is_it_admin(request.user):
        return _forbidden()
    data = _body(request)
    transition_equipment(
        pk,
        _str_field(data, "status"),
        performed_by=request.user,
        notes=_str_field(data, "notes"),
    )
    return JsonResponse(get_equipment_status(pk))


# --- Audits ---


@custody_endpoint("POST")
def audit_start(request):
    if not _can_run_audits(request.user):
        return _forbidden()
    data = _body(request)
    session, created = audits.start_audit_session(
        data.get("department_id"), request.user
    )
    payload = serialize_session(session)
    payload["resumed"] = not created
    return JsonResponse(payload, status=201 if created else 200)


@custody_endpoint("POST")
def audit_scan(request, pk):
    if not _can_run_audits(request.user):
        return _forbidden()
    data = _body(request)
    relocate = data.get("relocate")
    if relocate is not None and not isinstance(relocate, bool):
        raise InvalidPayload("relocate must be true, false or null")
    result = audits.scan(
        pk,
        _str_field(data, "code"),
        performed_by=request.user,
        relocate=relocate,
    )
    equipment = result.equipment
    return JsonResponse(
        {
            "outcome": result.outcome,
            "needs_confirmation": result.needs_confirmation,
            "equipment": {
                "id": equipment.pk,
                "asset_tag": equipment.asset_tag,
                "model_name": equipment.model_name,
                "location": equipment.location_display,
            },
            "session": serialize_session(result.session),
        }
    )


@custody_endpoint("POST")
def audit_pause(request, pk):
    if not _can_run_audits(request.user):
        return _forbidden()
    return JsonResponse(serialize_session(audits.pause_audit_session(pk)))


@custody_endpoint("POST")
def audit_complete(request, pk):
    if not _can_run_audits(request.user):
        return _forbidden()
    session = audits.complete_audit_session(pk)
    payload = serialize_session(session)
    payload["reconciliation"] = get_session_reconciliation(pk).as_dict()
    return JsonResponse(payload)


@custody_endpoint("POST")
def audit_cancel(request, pk):
    if not _can_run_audits(request.user):
        return _forbidden()
    audits.cancel_audit_session(pk)
    return JsonResponse({"id": pk, "cancelled": True})


@custody_endpoint("GET")
def audit_reconciliation(request, pk):
    session = audits.get_audit_session(pk)
    registry = registry_snapshot(session)
    payload = reconcile(session, registry).as_dict()
    payload["recent_scans"] = [
        {"id": item.pk, "asset_tag": item.asset_tag}
        for item in recent_scans(session, registry)
    ]
    return JsonResponse(payload)
