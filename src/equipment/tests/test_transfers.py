"""Tests for the custody transfer engine."""

import pytest

from equipment.exceptions import NotFound, PreconditionFailed
from equipment.factories import EquipmentFactory
from equipment.models import Assignment, CustodyEvent, Equipment
from equipment.services.integrity import find_inconsistencies
from equipment.services.transfers import (
    approve,
    create_transfer,
    get_assignment,
    reject,
    restore_rejected,
    revert,
)


def _approve_all(assignment, it_admin, manager, employee):
    approvers = {"it": it_admin, "manager": manager, "user": employee}
    for actor in Assignment.APPROVAL_ORDER[assignment.action]:
        assignment = approve(assignment.pk, actor, approvers[actor])
    return assignment


def _ledger(assignment):
    assignment.refresh_from_db()
    return assignment.validation


class TestCreateTransfer:
    def test_create_gates_equipment(self, equipment, employee, manager):
        assignment = create_transfer(
            "assign", equipment.pk, employee, manager, signature="pad-01"
        )
        equipment.refresh_from_db()
        assert assignment.status == "pending"
        assert assignment.validation == {
            "it": False,
            "manager": False,
            "user": False,
        }
        assert assignment.signature == "pad-01"
        assert equipment.status == "pending_validation"
        assert equipment.pending_assignment_id == assignment.pk

    def test_create_records_event(
        self, equipment, employee, manager, it_admin
    ):
        assignment = create_transfer(
            "assign", equipment.pk, employee, manager, requested_by=it_admin
        )
        event = CustodyEvent.objects.get(assignment=assignment)
        assert event.action == "transfer_created"
        assert event.from_status == "available"
        assert event.to_status == "pending_validation"
        assert event.performed_by == it_admin

    def test_unknown_equipment_not_found(self, db, employee, manager):
        with pytest.raises(NotFound):
            create_transfer("assign", 999999, employee, manager)
        assert not Assignment.objects.exists()

    def test_invalid_action(self, equipment, employee, manager):
        with pytest.raises(PreconditionFailed, match="not a transfer action"):
            create_transfer("lend", equipment.pk, employee, manager)

    def test_refuses_equipment_already_pending(
        self, pending_assign, employee, manager
    ):
        with pytest.raises(PreconditionFailed):
            create_transfer(
                "assign", pending_assign.equipment_id, employee, manager
            )
        assert Assignment.objects.count() == 1

    def test_refuses_decommissioned_equipment(
        self, department, employee, manager
    ):
        item = EquipmentFactory(department=department, status="decommissioned")
        with pytest.raises(PreconditionFailed, match="decommissioned"):
            create_transfer("assign", item.pk, employee, manager)
        item.refresh_from_db()
        assert item.status == "decommissioned"
        assert item.pending_assignment_id is None

    def test_condition_only_kept_for_returns(
        self, equipment, employee, manager
    ):
        assignment = create_transfer(
            "assign",
            equipment.pk,
            employee,
            manager,
            condition="poor",
            return_notes="scratched",
        )
        assert assignment.condition == ""
        assert assignment.return_notes == ""

    def test_return_keeps_condition(self, pending_return):
        assert pending_return.condition == "good"

    def test_get_assignment_not_found(self, db):
        with pytest.raises(NotFound):
            get_assignment(424242)


class TestApprovalOrdering:
    @pytest.mark.parametrize(
        "action, actor, prerequisites",
        [
            ("assign", "it", ()),
            ("assign", "manager", ("it",)),
            ("assign", "user", ("it", "manager")),
            ("return", "it", ()),
            ("return", "user", ("it",)),
            ("return", "manager", ("it", "user")),
        ],
    )
    def test_prerequisite_table(self, action, actor, prerequisites):
        assert Assignment(action=action).prerequisites_for(actor) == (
            prerequisites
        )

    def test_scenario_a_assign_in_order(
        self, pending_assign, it_admin, manager, employee
    ):
        a = approve(pending_assign.pk, "it", it_admin)
        assert a.status == "pending"
        a = approve(a.pk, "manager", manager)
        assert a.status == "pending"
        a = approve(a.pk, "user", employee)

        equipment = Equipment.objects.get(pk=a.equipment_id)
        assert a.status == "approved"
        assert equipment.status == "assigned"
        assert equipment.pending_assignment_id is None
        assert find_inconsistencies() == []

    def test_scenario_b_user_before_manager(
        self, pending_assign, it_admin, employee
    ):
        approve(pending_assign.pk, "it", it_admin)
        with pytest.raises(PreconditionFailed) as exc:
            approve(pending_assign.pk, "user", employee)

        assert exc.value.details["waiting_for"] == ["manager"]
        assert _ledger(pending_assign) == {
            "it": True,
            "manager": False,
            "user": False,
        }
        equipment = Equipment.objects.get(pk=pending_assign.equipment_id)
        assert equipment.status == "pending_validation"

    def test_scenario_c_return_in_order(
        self, pending_return, it_admin, manager, employee
    ):
        a = approve(pending_return.pk, "it", it_admin)
        a = approve(a.pk, "user", employee)
        assert a.status == "pending"
        a = approve(a.pk, "manager", manager)

        equipment = Equipment.objects.get(pk=a.equipment_id)
        assert a.status == "approved"
        assert equipment.status == "available"
        assert equipment.pending_assignment_id is None

    def test_return_manager_before_user_fails(
        self, pending_return, it_admin, manager
    ):
        approve(pending_return.pk, "it", it_admin)
        with pytest.raises(PreconditionFailed):
            approve(pending_return.pk, "manager", manager)
        assert _ledger(pending_return)["manager"] is False

    @pytest.mark.parametrize("actor", ["manager", "user"])
    def test_nobody_before_it(self, pending_assign, manager, actor):
        with pytest.raises(PreconditionFailed):
            approve(pending_assign.pk, actor, manager)
        assert _ledger(pending_assign) == {
            "it": False,
            "manager": False,
            "user": False,
        }

    def test_double_approval_refused(self, pending_assign, it_admin):
        first = approve(pending_assign.pk, "it", it_admin)
        stamp = first.it_validated_at
        with pytest.raises(PreconditionFailed, match="already validated"):
            approve(pending_assign.pk, "it", it_admin)
        pending_assign.refresh_from_db()
        assert pending_assign.it_validated_at == stamp

    def test_unknown_actor(self, pending_assign, it_admin):
        with pytest.raises(PreconditionFailed, match="not a validation actor"):
            approve(pending_assign.pk, "ceo", it_admin)

    def test_attribution_recorded(self, pending_assign, it_admin):
        a = approve(pending_assign.pk, "it", it_admin)
        assert a.it_validated_by == it_admin
        assert a.it_validated_at is not None
        assert a.validated_by == {"it": it_admin.pk}

    def test_approve_rejected_refused(
        self, pending_assign, it_admin, manager
    ):
        reject(pending_assign.pk, "Wrong model")
        with pytest.raises(PreconditionFailed, match="only pending"):
            approve(pending_assign.pk, "it", it_admin)

    def test_approval_events(
        self, pending_assign, it_admin, manager, employee
    ):
        _approve_all(pending_assign, it_admin, manager, employee)
        actions = list(
            CustodyEvent.objects.filter(assignment=pending_assign)
            .order_by("pk")
            .values_list("action", "actor")
        )
        assert actions == [
            ("transfer_created", ""),
            ("approved", "it"),
            ("approved", "manager"),
            ("approved", "user"),
            ("transfer_approved", ""),
        ]

    def test_next_required_actor(self, pending_return, it_admin):
        assert pending_return.next_required_actor == "it"
        a = approve(pending_return.pk, "it", it_admin)
        assert a.next_required_actor == "user"


class TestReject:
    def test_reject_after_partial_approval(
        self, pending_assign, it_admin, manager
    ):
        approve(pending_assign.pk, "it", it_admin)
        approve(pending_assign.pk, "manager", manager)

        a = reject(pending_assign.pk, "Budget cut", performed_by=manager)

        equipment = Equipment.objects.get(pk=a.equipment_id)
        assert a.status == "rejected"
        assert a.rejection_reason == "Budget cut"
        assert a.validation == {"it": False, "manager": False, "user": False}
        assert a.it_validated_by is None
        assert equipment.status == "available"
        assert equipment.pending_assignment_id is None
        assert find_inconsistencies() == []

    def test_reject_return_makes_available(self, pending_return):
        a = reject(pending_return.pk, "Lost charger")
        equipment = Equipment.objects.get(pk=a.equipment_id)
        assert equipment.status == "available"

    def test_reject_requires_reason(self, pending_assign):
        with pytest.raises(PreconditionFailed, match="reason"):
            reject(pending_assign.pk, "   ")
        pending_assign.refresh_from_db()
        assert pending_assign.status == "pending"

    def test_reject_terminal_refused(
        self, pending_assign, it_admin, manager, employee
    ):
        _approve_all(pending_assign, it_admin, manager, employee)
        with pytest.raises(PreconditionFailed, match="already approved"):
            reject(pending_assign.pk, "Too late")
        equipment = Equipment.objects.get(pk=pending_assign.equipment_id)
        assert equipment.status == "assigned"

    def test_reject_twice_refused(self, pending_assign):
        reject(pending_assign.pk, "No")
        with pytest.raises(PreconditionFailed):
            reject(pending_assign.pk, "Still no")

    def test_reject_unknown(self, db):
        with pytest.raises(NotFound):
            reject(123456, "Missing")


class TestRevert:
    def test_revert_last_actor_reopens(
        self, pending_assign, it_admin, manager, employee
    ):
        _approve_all(pending_assign, it_admin, manager, employee)

        a = revert(pending_assign.pk, "user", performed_by=it_admin)

        equipment = Equipment.objects.get(pk=a.equipment_id)
        assert a.status == "pending"
        assert a.validation == {"it": True, "manager": True, "user": False}
        assert a.user_validated_by is None
        assert a.user_validated_at is None
        assert equipment.status == "pending_validation"
        assert equipment.pending_assignment_id == a.pk
        assert find_inconsistencies() == []

    def test_revert_then_reapprove(
        self, pending_assign, it_admin, manager, employee
    ):
        _approve_all(pending_assign, it_admin, manager, employee)
        revert(pending_assign.pk, "user")
        a = approve(pending_assign.pk, "user", employee)
        assert a.status == "approved"
        equipment = Equipment.objects.get(pk=a.equipment_id)
        assert equipment.status == "assigned"

    def test_revert_earlier_actor_on_pending(
        self, pending_assign, it_admin, manager
    ):
        approve(pending_assign.pk, "it", it_admin)
        approve(pending_assign.pk, "manager", manager)

        a = revert(pending_assign.pk, "it")

        assert a.validation == {"it": False, "manager": True, "user": False}
        equipment = Equipment.objects.get(pk=a.equipment_id)
        assert equipment.status == "pending_validation"
        assert equipment.pending_assignment_id == a.pk

    def test_revert_unvalidated_actor_refused(self, pending_assign):
        with pytest.raises(PreconditionFailed, match="has not validated"):
            revert(pending_assign.pk, "manager")

    def test_revert_rejected_refused(self, pending_assign, it_admin):
        approve(pending_assign.pk, "it", it_admin)
        reject(pending_assign.pk, "No")
        with pytest.raises(PreconditionFailed, match="restore"):
            revert(pending_assign.pk, "it")

    def test_revert_approved_after_custody_moved_on(
        self, pending_assign, it_admin, manager, employee
    ):
        _approve_all(pending_assign, it_admin, manager, employee)
        hand_back = create_transfer(
            "return", pending_assign.equipment_id, employee, manager
        )

        with pytest.raises(PreconditionFailed, match="no longer"):
            revert(pending_assign.pk, "user")

        pending_assign.refresh_from_db()
        assert pending_assign.status == "approved"
        equipment = Equipment.objects.get(pk=pending_assign.equipment_id)
        assert equipment.pending_assignment_id == hand_back.pk

    def test_revert_superseded_approval_refused(
        self, pending_assign, it_admin, manager, employee
    ):
        _approve_all(pending_assign, it_admin, manager, employee)
        hand_back = create_transfer(
            "return", pending_assign.equipment_id, employee, manager
        )
        _approve_all(hand_back, it_admin, manager, employee)
        # Equipment is available again, but from the later return
        reassign = create_transfer(
            "assign", pending_assign.equipment_id, employee, manager
        )
        _approve_all(reassign, it_admin, manager, employee)

        with pytest.raises(PreconditionFailed, match="newer transfer"):
            revert(pending_assign.pk, "user")

    def test_revert_records_event(self, pending_assign, it_admin):
        approve(pending_assign.pk, "it", it_admin)
        revert(pending_assign.pk, "it", performed_by=it_admin)
        event = CustodyEvent.objects.filter(action="reverted").get()
        assert event.actor == "it"
        assert event.performed_by == it_admin


class TestRestoreRejected:
    def test_restore_reopens_with_clean_ledger(
        self, pending_assign, it_admin
    ):
        approve(pending_assign.pk, "it", it_admin)
        reject(pending_assign.pk, "Oops")

        a = restore_rejected(pending_assign.pk, performed_by=it_admin)

        equipment = Equipment.objects.get(pk=a.equipment_id)
        assert a.status == "pending"
        assert a.rejection_reason == ""
        assert a.validation == {"it": False, "manager": False, "user": False}
        assert equipment.status == "pending_validation"
        assert equipment.pending_assignment_id == a.pk
        assert Assignment.objects.count() == 1
        assert find_inconsistencies() == []

    def test_restore_pending_refused(self, pending_assign):
        with pytest.raises(PreconditionFailed, match="Only rejected"):
            restore_rejected(pending_assign.pk)

    def test_restore_when_equipment_decommissioned(self, pending_assign):
        from equipment.services.state import transition_equipment

        reject(pending_assign.pk, "Broken")
        transition_equipment(pending_assign.equipment_id, "decommissioned")

        with pytest.raises(PreconditionFailed, match="decommissioned"):
            restore_rejected(pending_assign.pk)

    def test_restore_when_equipment_gated_elsewhere(
        self, pending_assign, employee, manager
    ):
        reject(pending_assign.pk, "Wrong person")
        create_transfer(
            "assign", pending_assign.equipment_id, employee, manager
        )
        with pytest.raises(PreconditionFailed, match="pending validation"):
            restore_rejected(pending_assign.pk)

    def test_restore_superseded_refused(
        self, pending_assign, it_admin, manager, employee
    ):
        reject(pending_assign.pk, "Wrong person")
        later = create_transfer(
            "assign", pending_assign.equipment_id, employee, manager
        )
        _approve_all(later, it_admin, manager, employee)

        with pytest.raises(PreconditionFailed, match="newer transfer"):
            restore_rejected(pending_assign.pk)

    def test_restore_ignores_rejected_successors(
        self, pending_assign, employee, manager
    ):
        reject(pending_assign.pk, "First")
        later = create_transfer(
            "assign", pending_assign.equipment_id, employee, manager
        )
        reject(later.pk, "Second")

        a = restore_rejected(pending_assign.pk)
        assert a.status == "pending"
