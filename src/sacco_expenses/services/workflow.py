"""Expense workflow service - single entry point for approval transitions.

Every dashboard action (submit, accountant approval, manager approval,
rejection, payment processing, completion) goes through apply_transition:

1. Load the expense request (ExpenseNotFoundError)
2. Check the transition table for status, action and actor (InvalidTransitionError)
3. Validate the stage payload (InvalidPayloadError)
4. Evaluate the budget where the stage requires it (BudgetExceededError)
5. Write trail fields and the new status with compare-and-swap
   (ConcurrentModificationError)
6. Commit budget usage (processing only) and record an audit event

Steps 1-4 never write. Steps 5-6 run inside a savepoint, so a failure in
any of them undoes the others. The service does not commit: the caller's
session scope commits the whole unit or rolls it back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from sacco_expenses.config import get_settings
from sacco_expenses.models import ExpenseAuditEvent, ExpenseRequest, utcnow
from sacco_expenses.services.budget_evaluator import (
    BudgetEvaluation,
    BudgetWarning,
    EnforcementMode,
    evaluate_budget,
)
from sacco_expenses.services.budget_ledger import BudgetLedgerService, UsageCommit
from sacco_expenses.services.errors import (
    BudgetCategoryNotFoundError,
    BudgetExceededError,
    ExpenseNotFoundError,
    InvalidPayloadError,
    InvalidTransitionError,
)
from sacco_expenses.services.expense_store import ExpenseStore
from sacco_expenses.services.state_machine import (
    Actor,
    ExpenseAction,
    ExpenseStateMachine,
    Transition,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionPayload:
    """Stage-specific input for a transition.

    Which fields are required depends on the action:
    - approve_accountant: budget_allocation_ids
    - reject: rejection_reason
    - process: transaction_details
    """

    notes: str | None = None
    budget_allocation_ids: Sequence[UUID] = ()
    rejection_reason: str | None = None
    transaction_details: str | None = None
    override_budget_limit: bool = False
    requested_amount: Decimal | None = None


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of an applied transition."""

    request: ExpenseRequest
    previous_status: str
    status: str
    warnings: list[BudgetWarning] = field(default_factory=list)
    budget_override: bool = False
    usage: list[UsageCommit] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


@dataclass
class _Plan:
    """Writes a handler wants applied once all checks have passed."""

    changes: dict[str, Any]
    evaluation: BudgetEvaluation | None = None
    commit_usage: bool = False
    budget_override: bool = False


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


class ExpenseWorkflowService:
    """Applies role-gated workflow transitions to expense requests."""

    def __init__(
        self,
        session: AsyncSession,
        store: ExpenseStore | None = None,
        ledger: BudgetLedgerService | None = None,
    ):
        self.session = session
        self.store = store or ExpenseStore(session)
        self.ledger = ledger or BudgetLedgerService(session)
        self._handlers: dict[
            str, Callable[[ExpenseRequest, Actor, TransitionPayload], Awaitable[_Plan]]
        ] = {
            ExpenseAction.SUBMIT.value: self._plan_submit,
            ExpenseAction.APPROVE_ACCOUNTANT.value: self._plan_accountant_approval,
            ExpenseAction.APPROVE_MANAGER.value: self._plan_manager_approval,
            ExpenseAction.REJECT.value: self._plan_rejection,
            ExpenseAction.PROCESS.value: self._plan_processing,
            ExpenseAction.COMPLETE.value: self._plan_completion,
        }

    async def apply_transition(
        self,
        actor: Actor,
        request_id: UUID,
        action: ExpenseAction | str,
        payload: TransitionPayload | None = None,
    ) -> TransitionResult:
        """Apply a workflow action to an expense request.

        Args:
            actor: The acting user and role
            request_id: The expense request
            action: One of ExpenseAction
            payload: Stage-specific fields

        Returns:
            TransitionResult with the new status and any budget warnings

        Raises:
            ExpenseNotFoundError, InvalidTransitionError, InvalidPayloadError,
            BudgetExceededError, ConcurrentModificationError
        """
        payload = payload or TransitionPayload()

        record = await self.store.get(request_id)
        if record is None:
            raise ExpenseNotFoundError(request_id)

        expected_version = record.version
        from_status = record.status

        transition = ExpenseStateMachine.resolve(
            from_status, action, actor, record.requester_id
        )
        plan = await self._handlers[transition.action](record, actor, payload)
        plan.changes["status"] = transition.to_status

        # Record, ledger and audit writes land together or not at all
        usage: list[UsageCommit] = []
        async with self.session.begin_nested():
            updated = await self.store.compare_and_swap(
                record.id, expected_version, plan.changes
            )
            if plan.commit_usage and plan.evaluation is not None:
                for attribution in plan.evaluation.attributions:
                    usage.append(
                        await self.ledger.commit_usage(attribution.category_id, attribution.amount)
                    )
            await self._record_audit(updated, transition, actor, payload, plan)

        warnings = plan.evaluation.warnings if plan.evaluation else []

        logger.info(
            "Expense request %s: %s -> %s by %s (%s)",
            updated.request_number,
            from_status,
            transition.to_status,
            actor.role_value,
            transition.action,
        )
        if warnings:
            logger.warning(
                "Expense request %s exceeds budget in %d categor%s (outcome=%s, override=%s)",
                updated.request_number,
                len(warnings),
                "y" if len(warnings) == 1 else "ies",
                plan.evaluation.outcome if plan.evaluation else "pass",
                plan.budget_override,
            )

        return TransitionResult(
            request=updated,
            previous_status=from_status,
            status=transition.to_status,
            warnings=list(warnings),
            budget_override=plan.budget_override,
            usage=usage,
        )

    # ------------------------------------------------------------------
    # Dashboard actions
    # ------------------------------------------------------------------

    async def submit(self, actor: Actor, request_id: UUID) -> TransitionResult:
        """Submit a draft for approval."""
        return await self.apply_transition(actor, request_id, ExpenseAction.SUBMIT)

    async def approve_by_accountant(
        self,
        actor: Actor,
        request_id: UUID,
        budget_allocation_ids: Sequence[UUID],
        notes: str | None = None,
        requested_amount: Decimal | None = None,
    ) -> TransitionResult:
        """Accountant approval; budget warnings are advisory."""
        return await self.apply_transition(
            actor,
            request_id,
            ExpenseAction.APPROVE_ACCOUNTANT,
            TransitionPayload(
                notes=notes,
                budget_allocation_ids=tuple(budget_allocation_ids),
                requested_amount=requested_amount,
            ),
        )

    async def approve_by_manager(
        self,
        actor: Actor,
        request_id: UUID,
        notes: str | None = None,
    ) -> TransitionResult:
        """Manager approval."""
        return await self.apply_transition(
            actor, request_id, ExpenseAction.APPROVE_MANAGER, TransitionPayload(notes=notes)
        )

    async def reject(
        self,
        actor: Actor,
        request_id: UUID,
        rejection_reason: str,
    ) -> TransitionResult:
        """Reject a request at its pending stage."""
        return await self.apply_transition(
            actor,
            request_id,
            ExpenseAction.REJECT,
            TransitionPayload(rejection_reason=rejection_reason),
        )

    async def process_payment(
        self,
        actor: Actor,
        request_id: UUID,
        transaction_details: str,
        notes: str | None = None,
        override_budget_limit: bool = False,
        requested_amount: Decimal | None = None,
    ) -> TransitionResult:
        """Cashier processing; budget warnings block unless overridden."""
        return await self.apply_transition(
            actor,
            request_id,
            ExpenseAction.PROCESS,
            TransitionPayload(
                notes=notes,
                transaction_details=transaction_details,
                override_budget_limit=override_budget_limit,
                requested_amount=requested_amount,
            ),
        )

    async def mark_completed(self, actor: Actor, request_id: UUID) -> TransitionResult:
        """Close a processed request."""
        return await self.apply_transition(actor, request_id, ExpenseAction.COMPLETE)

    # ------------------------------------------------------------------
    # Stage handlers (no writes)
    # ------------------------------------------------------------------

    async def _plan_submit(
        self, record: ExpenseRequest, actor: Actor, payload: TransitionPayload
    ) -> _Plan:
        if not record.items:
            raise InvalidTransitionError(
                record.status, ExpenseAction.SUBMIT.value, actor.role_value,
                "request has no items",
            )
        return _Plan(changes={})

    async def _plan_accountant_approval(
        self, record: ExpenseRequest, actor: Actor, payload: TransitionPayload
    ) -> _Plan:
        category_ids = self._require_categories(payload.budget_allocation_ids)
        requested = self._requested_amount(record, payload)
        evaluation = await self._evaluate(
            requested, category_ids, EnforcementMode.ADVISORY, "budget_allocation_ids"
        )
        return _Plan(
            changes={
                "accountant_approval_user_id": actor.user_id,
                "accountant_approval_at": utcnow(),
                "accountant_notes": payload.notes,
                "budget_allocation_ids": [str(c) for c in category_ids],
            },
            evaluation=evaluation,
        )

    async def _plan_manager_approval(
        self, record: ExpenseRequest, actor: Actor, payload: TransitionPayload
    ) -> _Plan:
        return _Plan(
            changes={
                "manager_approval_user_id": actor.user_id,
                "manager_approval_at": utcnow(),
                "manager_notes": payload.notes,
            }
        )

    async def _plan_rejection(
        self, record: ExpenseRequest, actor: Actor, payload: TransitionPayload
    ) -> _Plan:
        if _blank(payload.rejection_reason):
            raise InvalidPayloadError("rejection_reason", "a rejection reason is required")
        return _Plan(
            changes={
                "rejected_by_user_id": actor.user_id,
                "rejected_at": utcnow(),
                "rejected_by_role": actor.role_value,
                "rejection_reason": payload.rejection_reason.strip(),
            }
        )

    async def _plan_processing(
        self, record: ExpenseRequest, actor: Actor, payload: TransitionPayload
    ) -> _Plan:
        if _blank(payload.transaction_details):
            raise InvalidPayloadError(
                "transaction_details", "transaction details are required"
            )
        if not record.budget_allocation_ids:
            raise InvalidTransitionError(
                record.status, ExpenseAction.PROCESS.value, actor.role_value,
                "no budget categories were chosen at accountant approval",
            )

        category_ids = [UUID(str(c)) for c in record.budget_allocation_ids]
        requested = self._requested_amount(record, payload)
        evaluation = await self._evaluate(
            requested, category_ids, EnforcementMode.BINDING, "budget_allocation_ids"
        )

        override_used = False
        if evaluation.blocking:
            if not payload.override_budget_limit:
                raise BudgetExceededError(record.status, evaluation.warnings)
            override_used = True
            logger.warning(
                "Budget override on expense request %s by %s %s (total deficit %s %s)",
                record.request_number,
                actor.role_value,
                actor.user_id,
                evaluation.total_deficit,
                get_settings().currency,
            )

        return _Plan(
            changes={
                "processed_by_user_id": actor.user_id,
                "processed_at": utcnow(),
                "transaction_details": payload.transaction_details.strip(),
                "cashier_notes": payload.notes,
                "budget_override": override_used,
                "budget_override_role": actor.role_value if override_used else None,
            },
            evaluation=evaluation,
            commit_usage=True,
            budget_override=override_used,
        )

    async def _plan_completion(
        self, record: ExpenseRequest, actor: Actor, payload: TransitionPayload
    ) -> _Plan:
        return _Plan(changes={"completed_at": utcnow()})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_categories(self, category_ids: Sequence[UUID]) -> list[UUID]:
        """Non-empty category list, duplicates dropped, order kept."""
        if not category_ids:
            raise InvalidPayloadError(
                "budget_allocation_ids", "select at least one budget allocation"
            )
        ordered: list[UUID] = []
        for category_id in category_ids:
            if category_id not in ordered:
                ordered.append(category_id)
        return ordered

    def _requested_amount(self, record: ExpenseRequest, payload: TransitionPayload) -> Decimal:
        total = record.total_estimated_amount
        if payload.requested_amount is None:
            return total
        if payload.requested_amount <= 0:
            raise InvalidPayloadError("requested_amount", "must be positive")
        if payload.requested_amount > total:
            raise InvalidPayloadError(
                "requested_amount", f"must not exceed the request total of {total}"
            )
        return payload.requested_amount

    async def _evaluate(
        self,
        requested: Decimal,
        category_ids: Sequence[UUID],
        mode: EnforcementMode,
        field_name: str,
    ) -> BudgetEvaluation:
        try:
            allocations = await self.ledger.get_allocations(category_ids)
        except BudgetCategoryNotFoundError as exc:
            raise InvalidPayloadError(
                field_name, f"unknown budget category {exc.category_id}"
            ) from exc
        return evaluate_budget(requested, allocations, mode)

    async def _record_audit(
        self,
        record: ExpenseRequest,
        transition: Transition,
        actor: Actor,
        payload: TransitionPayload,
        plan: _Plan,
    ) -> None:
        """Record an audit event for an applied transition."""
        details: dict[str, Any] = {}
        if payload.notes:
            details["notes"] = payload.notes
        if transition.action == ExpenseAction.REJECT.value:
            details["rejection_reason"] = plan.changes.get("rejection_reason")
        if plan.evaluation is not None:
            details["budget"] = {
                "mode": plan.evaluation.mode.value,
                "outcome": plan.evaluation.outcome,
                "requested_amount": str(plan.evaluation.requested_amount),
                "attributions": [
                    {"category_id": str(a.category_id), "amount": str(a.amount)}
                    for a in plan.evaluation.attributions
                ],
                "warnings": [w.to_dict() for w in plan.evaluation.warnings],
            }
        if transition.action == ExpenseAction.PROCESS.value:
            details["override_budget_limit"] = payload.override_budget_limit
            details["budget_override"] = plan.budget_override

        event = ExpenseAuditEvent(
            expense_request_id=record.id,
            actor_user_id=actor.user_id,
            actor_role=actor.role_value,
            action=transition.action,
            from_status=transition.from_status,
            to_status=transition.to_status,
            details_json=details or None,
        )
        self.session.add(event)
        await self.session.flush()
