"""Tests for the custody JSON endpoints."""

import json

import pytest

from django.urls import reverse

from equipment.models import Assignment, AuditSession
from equipment.services.transfers import approve


def post_json(client, url, data=None):
    return client.post(
        url, json.dumps(data or {}), content_type="application/json"
    )


class TestAuthentication:
    def test_login_required(self, client, pending_assign):
        response = client.get(
            reverse("equipment:transfer_detail", args=[pending_assign.pk])
        )
        assert response.status_code == 302

    def test_wrong_method(self, it_client, pending_assign):
        response = it_client.get(
            reverse("equipment:transfer_approve", args=[pending_assign.pk])
        )
        assert response.status_code == 405
        assert response.json()["error"] == "method_not_allowed"


class TestTransferViews:
    def test_create(self, it_client, equipment, employee):
        response = post_json(
            it_client,
            reverse("equipment:transfer_create"),
            {
                "action": "assign",
                "equipment_id": equipment.pk,
                "user_id": employee.pk,
                "signature": "tablet",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["manager_id"] == employee.manager_id
        assert data["next_required_actor"] == "it"
        assert data["equipment"]["status"] == "pending_validation"

    def test_create_requires_it_admin(
        self, employee_client, equipment, employee
    ):
        response = post_json(
            employee_client,
            reverse("equipment:transfer_create"),
            {
                "action": "assign",
                "equipment_id": equipment.pk,
                "user_id": employee.pk,
            },
        )
        assert response.status_code == 403
        assert not Assignment.objects.exists()

    def test_create_unknown_equipment(self, it_client, employee):
        response = post_json(
            it_client,
            reverse("equipment:transfer_create"),
            {"action": "assign", "equipment_id": 999, "user_id": employee.pk},
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_create_without_manager(self, it_client, equipment, outsider):
        response = post_json(
            it_client,
            reverse("equipment:transfer_create"),
            {
                "action": "assign",
                "equipment_id": equipment.pk,
                "user_id": outsider.pk,
            },
        )
        assert response.status_code == 400

    def test_invalid_json(self, it_client):
        response = it_client.post(
            reverse("equipment:transfer_create"),
            "{not json",
            content_type="application/json",
        )
        assert response.status_code == 400
        assert response.json()["error"] == "bad_request"

    def test_detail(self, employee_client, pending_assign):
        response = employee_client.get(
            reverse("equipment:transfer_detail", args=[pending_assign.pk])
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending"
        assert data["validation"] == {
            "it": False,
            "manager": False,
            "user": False,
        }

    def test_detail_not_found(self, employee_client):
        response = employee_client.get(
            reverse("equipment:transfer_detail", args=[999])
        )
        assert response.status_code == 404

    def test_approve_resolves_actor(self, it_client, pending_assign):
        response = post_json(
            it_client,
            reverse("equipment:transfer_approve", args=[pending_assign.pk]),
        )
        assert response.status_code == 200
        assert response.json()["validation"]["it"] is True

    def test_out_of_order_approval_conflict(
        self, employee_client, pending_assign
    ):
        response = post_json(
            employee_client,
            reverse("equipment:transfer_approve", args=[pending_assign.pk]),
        )
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "precondition_failed"
        assert body["message"]
        pending_assign.refresh_from_db()
        assert pending_assign.user_validated is False

    def test_full_approval_over_http(
        self, client, password, pending_assign, it_admin, manager, employee
    ):
        url = reverse("equipment:transfer_approve", args=[pending_assign.pk])
        for person in (it_admin, manager, employee):
            client.login(username=person.username, password=password)
            response = post_json(client, url)
            assert response.status_code == 200
        data = response.json()
        assert data["status"] == "approved"
        assert data["equipment"]["status"] == "assigned"

    def test_reject(self, employee_client, pending_assign):
        response = post_json(
            employee_client,
            reverse("equipment:transfer_reject", args=[pending_assign.pk]),
            {"reason": "Not my laptop"},
        )
        assert response.status_code == 200
        assert response.json()["equipment"]["status"] == "available"

    def test_reject_by_outsider(
        self, client, password, outsider, pending_assign
    ):
        client.login(username=outsider.username, password=password)
        response = post_json(
            client,
            reverse("equipment:transfer_reject", args=[pending_assign.pk]),
            {"reason": "Because"},
        )
        assert response.status_code == 409
        pending_assign.refresh_from_db()
        assert pending_assign.status == "pending"

    def test_revert_and_restore(self, it_client, pending_assign, it_admin):
        approve(pending_assign.pk, "it", it_admin)
        response = post_json(
            it_client,
            reverse("equipment:transfer_revert", args=[pending_assign.pk]),
            {"actor": "it"},
        )
        assert response.status_code == 200
        assert response.json()["validation"]["it"] is False

        post_json(
            it_client,
            reverse("equipment:transfer_reject", args=[pending_assign.pk]),
            {"reason": "Duplicate"},
        )
        response = post_json(
            it_client,
            reverse("equipment:transfer_restore", args=[pending_assign.pk]),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "pending"

    def test_revert_requires_it_admin(self, employee_client, pending_assign):
        response = post_json(
            employee_client,
            reverse("equipment:transfer_revert", args=[pending_assign.pk]),
            {"actor": "it"},
        )
        assert response.status_code == 403

    def test_pending_list(self, it_client, pending_assign):
        response = it_client.get(reverse("equipment:transfer_pending"))
        assert response.status_code == 200
        results = response.json()["results"]
        assert [r["id"] for r in results] == [pending_assign.pk]


class TestEquipmentViews:
    def test_status(self, employee_client, equipment):
        response = employee_client.get(
            reverse("equipment:equipment_status", args=[equipment.pk])
        )
        assert response.status_code == 200
        assert response.json()["status"] == "available"

    def test_transition(self, it_client, equipment):
        response = post_json(
            it_client,
            reverse("equipment:equipment_transition", args=[equipment.pk]),
            {"status": "in_repair", "notes": "Keyboard"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "in_repair"

    def test_transition_to_transfer_status_refused(self, it_client, equipment):
        response = post_json(
            it_client,
            reverse("equipment:equipment_transition", args=[equipment.pk]),
            {"status": "assigned"},
        )
        assert response.status_code == 409

    def test_transition_unknown_status(self, it_client, equipment):
        response = post_json(
            it_client,
            reverse("equipment:equipment_transition", args=[equipment.pk]),
            {"status": "stolen"},
        )
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_state"


class TestAuditViews:
    @pytest.fixture
    def session_id(self, auditor_client, department):
        response = post_json(
            auditor_client,
            reverse("equipment:audit_start"),
            {"department_id": department.pk},
        )
        assert response.status_code == 201
        return response.json()["id"]

    def test_start_resumes(self, auditor_client, department, session_id):
        response = post_json(
            auditor_client,
            reverse("equipment:audit_start"),
            {"department_id": department.pk},
        )
        assert response.status_code == 200
        assert response.json()["id"] == session_id
        assert response.json()["resumed"] is True

    def test_start_requires_permission(self, employee_client, department):
        response = post_json(
            employee_client,
            reverse("equipment:audit_start"),
            {"department_id": department.pk},
        )
        assert response.status_code == 403

    def test_scan(self, auditor_client, session_id, equipment):
        response = post_json(
            auditor_client,
            reverse("equipment:audit_scan", args=[session_id]),
            {"code": "SN-0001"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["outcome"] == "confirmed"
        assert data["session"]["scanned_item_ids"] == [equipment.pk]

    def test_scan_unknown_tag(self, auditor_client, session_id):
        response = post_json(
            auditor_client,
            reverse("equipment:audit_scan", args=[session_id]),
            {"code": "GHOST"},
        )
        assert response.status_code == 404
        assert response.json()["details"]["asset_tag"] == "GHOST"

    def test_scan_bad_relocate_flag(self, auditor_client, session_id):
        response = post_json(
            auditor_client,
            reverse("equipment:audit_scan", args=[session_id]),
            {"code": "SN-0001", "relocate": "yes"},
        )
        assert response.status_code == 400

    def test_scan_paused_conflict(self, auditor_client, session_id, equipment):
        post_json(
            auditor_client, reverse("equipment:audit_pause", args=[session_id])
        )
        response = post_json(
            auditor_client,
            reverse("equipment:audit_scan", args=[session_id]),
            {"code": "SN-0001"},
        )
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_state"

    def test_complete_returns_reconciliation(
        self, auditor_client, session_id, equipment
    ):
        response = post_json(
            auditor_client,
            reverse("equipment:audit_complete", args=[session_id]),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["reconciliation"]["counts"]["confirmed"] == 1

    def test_cancel(self, auditor_client, session_id):
        response = post_json(
            auditor_client,
            reverse("equipment:audit_cancel", args=[session_id]),
        )
        assert response.status_code == 200
        assert not AuditSession.objects.exists()

    def test_reconciliation(self, auditor_client, session_id, equipment):
        post_json(
            auditor_client,
            reverse("equipment:audit_scan", args=[session_id]),
            {"code": "SN-0001"},
        )
        response = auditor_client.get(
            reverse("equipment:audit_reconciliation", args=[session_id])
        )
        assert response.status_code == 200
        data = response.json()
        assert data["confirmed"] == [equipment.pk]
        assert data["missing"] == []
        assert data["recent_scans"] == [
            {"id": equipment.pk, "asset_tag": "SN-0001"}
        ]

    def test_reconciliation_not_found(self, auditor_client, db):
        response = auditor_client.get(
            reverse("equipment:audit_reconciliation", args=[999])
        )
        assert response.status_code == 404


class TestPayloadTypes:
    def test_numeric_scan_code(self, auditor_client, department):
        response = post_json(
            auditor_client,
            reverse("equipment:audit_start"),
            {"department_id": department.pk},
        )
        session_id = response.json()["id"]
        response = post_json(
            auditor_client,
            reverse("equipment:audit_scan", args=[session_id]),
            {"code": 12345},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "bad_request"

    def test_numeric_reject_reason(self, employee_client, pending_assign):
        response = post_json(
            employee_client,
            reverse("equipment:transfer_reject", args=[pending_assign.pk]),
            {"reason": 5},
        )
        assert response.status_code == 400
        pending_assign.refresh_from_db()
        assert pending_assign.status == "pending"

    def test_list_action(self, it_client, equipment, employee):
        response = post_json(
            it_client,
            reverse("equipment:transfer_create"),
            {
                "action": ["assign"],
                "equipment_id": equipment.pk,
                "user_id": employee.pk,
            },
        )
        assert response.status_code == 400
        assert not Assignment.objects.exists()

    def test_list_status(self, it_client, equipment):
        response = post_json(
            it_client,
            reverse("equipment:equipment_transition", args=[equipment.pk]),
            {"status": ["in_repair"]},
        )
        assert response.status_code == 400
        equipment.refresh_from_db()
        assert equipment.status == "available"

    def test_numeric_actor(self, it_client, pending_assign):
        response = post_json(
            it_client,
            reverse("equipment:transfer_approve", args=[pending_assign.pk]),
            {"actor": 1},
        )
        assert response.status_code == 400

    def test_null_fields_use_defaults(self, it_client, pending_assign):
        response = post_json(
            it_client,
            reverse("equipment:transfer_approve", args=[pending_assign.pk]),
            {"actor": None},
        )
        assert response.status_code == 200
