"""Expense workflow services."""

from sacco_expenses.services.budget_evaluator import (
    BudgetAllocation,
    BudgetEvaluation,
    BudgetWarning,
    EnforcementMode,
    evaluate_budget,
)
from sacco_expenses.services.budget_ledger import BudgetLedgerService, UsageCommit
from sacco_expenses.services.errors import (
    BudgetCategoryNotFoundError,
    BudgetExceededError,
    ConcurrentModificationError,
    ExpenseNotFoundError,
    ExpenseWorkflowError,
    InvalidPayloadError,
    InvalidTransitionError,
)
from sacco_expenses.services.expense_service import ExpenseRequestService, ItemInput
from sacco_expenses.services.expense_store import ExpenseStore
from sacco_expenses.services.state_machine import (
    Actor,
    ExpenseAction,
    ExpenseStateMachine,
    ExpenseStatus,
    Role,
)
from sacco_expenses.services.workflow import (
    ExpenseWorkflowService,
    TransitionPayload,
    TransitionResult,
)

__all__ = [
    "Actor",
    "BudgetAllocation",
    "BudgetCategoryNotFoundError",
    "BudgetEvaluation",
    "BudgetExceededError",
    "BudgetLedgerService",
    "BudgetWarning",
    "ConcurrentModificationError",
    "EnforcementMode",
    "ExpenseAction",
    "ExpenseNotFoundError",
    "ExpenseRequestService",
    "ExpenseStateMachine",
    "ExpenseStatus",
    "ExpenseStore",
    "ExpenseWorkflowError",
    "ExpenseWorkflowService",
    "InvalidPayloadError",
    "InvalidTransitionError",
    "ItemInput",
    "Role",
    "TransitionPayload",
    "TransitionResult",
    "UsageCommit",
    "evaluate_budget",
]
