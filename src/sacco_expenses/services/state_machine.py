"""Expense request state machine with role-gated transitions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sacco_expenses.services.errors import InvalidTransitionError


class ExpenseStatus(str, Enum):
    """Expense request status values."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    ACCOUNTANT_APPROVED = "ACCOUNTANT_APPROVED"
    MANAGER_APPROVED = "MANAGER_APPROVED"
    PROCESSED = "PROCESSED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class ExpenseAction(str, Enum):
    """Workflow actions a dashboard user can request."""

    SUBMIT = "submit"
    APPROVE_ACCOUNTANT = "approve_accountant"
    APPROVE_MANAGER = "approve_manager"
    REJECT = "reject"
    PROCESS = "process"
    COMPLETE = "complete"


class Role(str, Enum):
    """Dashboard roles that take part in the expense workflow."""

    ADMIN = "admin"
    ACCOUNTANT = "accountant"
    MANAGER = "manager"
    CASHIER = "cashier"
    STAFF = "staff"


def _value(member: Enum | str) -> str:
    return member.value if isinstance(member, Enum) else str(member)


@dataclass(frozen=True)
class Actor:
    """The user performing an action, passed explicitly into the workflow."""

    user_id: UUID | None
    role: str

    @property
    def role_value(self) -> str:
        return _value(self.role).lower()


@dataclass(frozen=True)
class Transition:
    """One row of the transition table."""

    from_status: str
    action: str
    to_status: str
    roles: frozenset[str]
    creator_allowed: bool = False


def _transition(
    from_status: ExpenseStatus,
    action: ExpenseAction,
    to_status: ExpenseStatus,
    *roles: Role,
    creator_allowed: bool = False,
) -> Transition:
    return Transition(
        from_status=from_status.value,
        action=action.value,
        to_status=to_status.value,
        roles=frozenset(r.value for r in roles),
        creator_allowed=creator_allowed,
    )


_TABLE = [
    _transition(
        ExpenseStatus.DRAFT, ExpenseAction.SUBMIT, ExpenseStatus.SUBMITTED,
        Role.ADMIN, creator_allowed=True,
    ),
    _transition(
        ExpenseStatus.SUBMITTED, ExpenseAction.APPROVE_ACCOUNTANT, ExpenseStatus.ACCOUNTANT_APPROVED,
        Role.ACCOUNTANT, Role.ADMIN,
    ),
    _transition(
        ExpenseStatus.SUBMITTED, ExpenseAction.REJECT, ExpenseStatus.REJECTED,
        Role.ACCOUNTANT, Role.ADMIN,
    ),
    _transition(
        ExpenseStatus.ACCOUNTANT_APPROVED, ExpenseAction.APPROVE_MANAGER, ExpenseStatus.MANAGER_APPROVED,
        Role.MANAGER, Role.ADMIN,
    ),
    _transition(
        ExpenseStatus.ACCOUNTANT_APPROVED, ExpenseAction.REJECT, ExpenseStatus.REJECTED,
        Role.MANAGER, Role.ADMIN,
    ),
    _transition(
        ExpenseStatus.MANAGER_APPROVED, ExpenseAction.PROCESS, ExpenseStatus.PROCESSED,
        Role.CASHIER, Role.ADMIN,
    ),
    _transition(
        ExpenseStatus.MANAGER_APPROVED, ExpenseAction.REJECT, ExpenseStatus.REJECTED,
        Role.CASHIER, Role.ADMIN,
    ),
    _transition(
        ExpenseStatus.PROCESSED, ExpenseAction.COMPLETE, ExpenseStatus.COMPLETED,
        Role.CASHIER, Role.ADMIN,
    ),
]


class ExpenseStateMachine:
    """State machine for expense request status transitions.

    Allowed transitions (action, authorized roles):
    - DRAFT → SUBMITTED (submit: request creator, admin)
    - SUBMITTED → ACCOUNTANT_APPROVED (approve_accountant: accountant, admin)
    - ACCOUNTANT_APPROVED → MANAGER_APPROVED (approve_manager: manager, admin)
    - MANAGER_APPROVED → PROCESSED (process: cashier, admin)
    - PROCESSED → COMPLETED (complete: cashier, admin)
    - SUBMITTED / ACCOUNTANT_APPROVED / MANAGER_APPROVED → REJECTED
      (reject: the role owning the pending stage, admin)
    """

    # Keyed by (from_status, action)
    TRANSITIONS: dict[tuple[str, str], Transition] = {
        (t.from_status, t.action): t for t in _TABLE
    }

    # Forward order of the happy path; REJECTED sits outside it
    FORWARD_ORDER: tuple[str, ...] = (
        ExpenseStatus.DRAFT.value,
        ExpenseStatus.SUBMITTED.value,
        ExpenseStatus.ACCOUNTANT_APPROVED.value,
        ExpenseStatus.MANAGER_APPROVED.value,
        ExpenseStatus.PROCESSED.value,
        ExpenseStatus.COMPLETED.value,
    )

    TERMINAL = {
        ExpenseStatus.COMPLETED.value,
        ExpenseStatus.REJECTED.value,
    }

    # Statuses with a pending approval stage
    REJECTABLE = {
        ExpenseStatus.SUBMITTED.value,
        ExpenseStatus.ACCOUNTANT_APPROVED.value,
        ExpenseStatus.MANAGER_APPROVED.value,
    }

    # Statuses where line items can still be edited
    ITEMS_MUTABLE = {
        ExpenseStatus.DRAFT.value,
    }

    @classmethod
    def get_transition(
        cls, from_status: ExpenseStatus | str, action: ExpenseAction | str
    ) -> Transition | None:
        """Look up the table row for a status and action, if any."""
        return cls.TRANSITIONS.get((_value(from_status), _value(action)))

    @classmethod
    def is_authorized(
        cls,
        transition: Transition,
        actor: Actor,
        requester_id: UUID | None = None,
    ) -> bool:
        """Check whether the actor may perform a transition."""
        if actor.role_value in transition.roles:
            return True
        return (
            transition.creator_allowed
            and actor.user_id is not None
            and actor.user_id == requester_id
        )

    @classmethod
    def can_apply(
        cls,
        from_status: ExpenseStatus | str,
        action: ExpenseAction | str,
        actor: Actor,
        requester_id: UUID | None = None,
    ) -> bool:
        """Check if an action is legal for this actor in this status."""
        transition = cls.get_transition(from_status, action)
        return transition is not None and cls.is_authorized(transition, actor, requester_id)

    @classmethod
    def resolve(
        cls,
        from_status: ExpenseStatus | str,
        action: ExpenseAction | str,
        actor: Actor,
        requester_id: UUID | None = None,
    ) -> Transition:
        """Return the transition to apply, raising InvalidTransitionError if illegal."""
        status = _value(from_status)
        transition = cls.get_transition(status, action)
        if transition is None:
            reason = "request is closed" if cls.is_terminal(status) else None
            raise InvalidTransitionError(status, _value(action), actor.role_value, reason)
        if not cls.is_authorized(transition, actor, requester_id):
            raise InvalidTransitionError(
                status, _value(action), actor.role_value, "role not authorized for this stage"
            )
        return transition

    @classmethod
    def allowed_actions(
        cls,
        status: ExpenseStatus | str,
        actor: Actor,
        requester_id: UUID | None = None,
    ) -> list[str]:
        """Actions this actor may take on a request in the given status."""
        status = _value(status)
        return [
            t.action
            for (from_status, _), t in cls.TRANSITIONS.items()
            if from_status == status and cls.is_authorized(t, actor, requester_id)
        ]

    @classmethod
    def get_next_statuses(cls, current_status: ExpenseStatus | str) -> list[str]:
        """Get list of statuses reachable in one step from current status."""
        status = _value(current_status)
        return sorted({t.to_status for (s, _), t in cls.TRANSITIONS.items() if s == status})

    @classmethod
    def is_terminal(cls, status: ExpenseStatus | str) -> bool:
        """Check whether no further transition exists."""
        return _value(status) in cls.TERMINAL

    @classmethod
    def can_modify_items(cls, status: ExpenseStatus | str) -> bool:
        """Check if line items can be added or changed."""
        return _value(status) in cls.ITEMS_MUTABLE

    @classmethod
    def is_forward(cls, from_status: ExpenseStatus | str, to_status: ExpenseStatus | str) -> bool:
        """Check that a status change moves forward or into REJECTED."""
        src, dst = _value(from_status), _value(to_status)
        if dst == ExpenseStatus.REJECTED.value:
            return src in cls.REJECTABLE
        if src not in cls.FORWARD_ORDER or dst not in cls.FORWARD_ORDER:
            return False
        return cls.FORWARD_ORDER.index(dst) > cls.FORWARD_ORDER.index(src)
