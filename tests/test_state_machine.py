"""Tests for the expense request state machine."""

from uuid import uuid4

import pytest

from sacco_expenses.services.errors import InvalidTransitionError
from sacco_expenses.services.state_machine import (
    Actor,
    ExpenseAction,
    ExpenseStateMachine,
    ExpenseStatus,
    Role,
)


def actor(role: Role) -> Actor:
    return Actor(user_id=uuid4(), role=role.value)


class TestExpenseStateMachine:
    """Test transition legality and role gating."""

    def test_happy_path_transitions(self):
        """Each stage is reachable by its owning role."""
        steps = [
            ("SUBMITTED", "approve_accountant", Role.ACCOUNTANT, "ACCOUNTANT_APPROVED"),
            ("ACCOUNTANT_APPROVED", "approve_manager", Role.MANAGER, "MANAGER_APPROVED"),
            ("MANAGER_APPROVED", "process", Role.CASHIER, "PROCESSED"),
            ("PROCESSED", "complete", Role.CASHIER, "COMPLETED"),
        ]
        for from_status, action, role, to_status in steps:
            transition = ExpenseStateMachine.resolve(from_status, action, actor(role))
            assert transition.to_status == to_status

    def test_creator_can_submit_own_draft(self):
        """The requester submits regardless of role; other staff cannot."""
        owner = actor(Role.STAFF)
        assert ExpenseStateMachine.can_apply("DRAFT", "submit", owner, owner.user_id) is True
        assert ExpenseStateMachine.can_apply("DRAFT", "submit", actor(Role.STAFF), owner.user_id) is False

    def test_admin_can_perform_every_action(self):
        """Admin is authorized on every row of the table."""
        admin = actor(Role.ADMIN)
        for (from_status, action) in ExpenseStateMachine.TRANSITIONS:
            assert ExpenseStateMachine.can_apply(from_status, action, admin) is True

    def test_reject_is_owned_by_pending_stage(self):
        """Only the role owning the pending stage can reject there."""
        assert ExpenseStateMachine.can_apply("SUBMITTED", "reject", actor(Role.ACCOUNTANT)) is True
        assert ExpenseStateMachine.can_apply("SUBMITTED", "reject", actor(Role.MANAGER)) is False
        assert ExpenseStateMachine.can_apply("ACCOUNTANT_APPROVED", "reject", actor(Role.MANAGER)) is True
        assert ExpenseStateMachine.can_apply("ACCOUNTANT_APPROVED", "reject", actor(Role.CASHIER)) is False
        assert ExpenseStateMachine.can_apply("MANAGER_APPROVED", "reject", actor(Role.CASHIER)) is True

    def test_wrong_stage_raises(self):
        """Accountant approval on a manager-approved request is illegal."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            ExpenseStateMachine.resolve("MANAGER_APPROVED", "approve_accountant", actor(Role.ACCOUNTANT))

        assert exc_info.value.current_status == "MANAGER_APPROVED"
        assert exc_info.value.action == "approve_accountant"
        assert exc_info.value.role == "accountant"

    def test_wrong_role_raises(self):
        """A manager cannot process payment."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            ExpenseStateMachine.resolve("MANAGER_APPROVED", "process", actor(Role.MANAGER))

        assert exc_info.value.reason == "role not authorized for this stage"

    def test_terminal_statuses_are_closed(self):
        """Nothing leaves COMPLETED or REJECTED, not even for admin."""
        admin = actor(Role.ADMIN)
        for status in ("COMPLETED", "REJECTED"):
            assert ExpenseStateMachine.is_terminal(status) is True
            assert ExpenseStateMachine.allowed_actions(status, admin) == []
            for action in ExpenseAction:
                with pytest.raises(InvalidTransitionError) as exc_info:
                    ExpenseStateMachine.resolve(status, action, admin)
                assert exc_info.value.reason == "request is closed"

    def test_allowed_actions(self):
        """Allowed actions reflect role and status."""
        assert ExpenseStateMachine.allowed_actions("SUBMITTED", actor(Role.ACCOUNTANT)) == [
            "approve_accountant",
            "reject",
        ]
        assert ExpenseStateMachine.allowed_actions("SUBMITTED", actor(Role.CASHIER)) == []
        assert ExpenseStateMachine.allowed_actions(
            ExpenseStatus.MANAGER_APPROVED, actor(Role.CASHIER)
        ) == ["process", "reject"]

    def test_get_next_statuses(self):
        assert ExpenseStateMachine.get_next_statuses("SUBMITTED") == [
            "ACCOUNTANT_APPROVED",
            "REJECTED",
        ]
        assert ExpenseStateMachine.get_next_statuses("PROCESSED") == ["COMPLETED"]
        assert ExpenseStateMachine.get_next_statuses("COMPLETED") == []

    def test_every_transition_moves_forward(self):
        """The table only moves forward or into REJECTED."""
        for transition in ExpenseStateMachine.TRANSITIONS.values():
            assert ExpenseStateMachine.is_forward(transition.from_status, transition.to_status)

        assert ExpenseStateMachine.is_forward("PROCESSED", "MANAGER_APPROVED") is False
        assert ExpenseStateMachine.is_forward("PROCESSED", "REJECTED") is False
        assert ExpenseStateMachine.is_forward("DRAFT", "REJECTED") is False

    def test_can_modify_items(self):
        """Items are editable only while DRAFT."""
        assert ExpenseStateMachine.can_modify_items("DRAFT") is True
        assert ExpenseStateMachine.can_modify_items("SUBMITTED") is False
        assert ExpenseStateMachine.can_modify_items("PROCESSED") is False

    def test_role_is_case_insensitive(self):
        """Roles from headers may arrive in any case."""
        shouting = Actor(user_id=uuid4(), role="CASHIER")
        assert ExpenseStateMachine.can_apply("MANAGER_APPROVED", "process", shouting) is True
