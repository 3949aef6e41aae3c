"""Workflow error taxonomy.

Every failure of the expense workflow is one of these exceptions. Each carries
a stable ``code`` and enough structured data (current status, warning list)
for the caller to decide what to do next without re-querying.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from sacco_expenses.services.budget_evaluator import BudgetWarning


class ExpenseWorkflowError(Exception):
    """Base class for expense workflow failures."""

    code = "WORKFLOW_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for API responses and logs."""
        return {"code": self.code, "message": str(self)}


class ExpenseNotFoundError(ExpenseWorkflowError):
    """Raised when an expense request id is unknown."""

    code = "NOT_FOUND"

    def __init__(self, request_id: UUID | str):
        self.request_id = request_id
        super().__init__(f"Expense request {request_id} not found")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "request_id": str(self.request_id)}


class InvalidTransitionError(ExpenseWorkflowError):
    """Raised when a state/role/action combination is not in the transition table."""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        current_status: str,
        action: str,
        role: str,
        reason: str | None = None,
    ):
        self.current_status = current_status
        self.action = action
        self.role = role
        self.reason = reason
        msg = f"Action '{action}' is not allowed for role '{role}' in status '{current_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "current_status": self.current_status,
            "action": self.action,
            "role": self.role,
        }


class InvalidPayloadError(ExpenseWorkflowError):
    """Raised when a stage-specific payload field is missing or malformed."""

    code = "INVALID_PAYLOAD"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid '{field}': {reason}")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "field": self.field}


class BudgetExceededError(ExpenseWorkflowError):
    """Raised when a binding budget check fails without an override."""

    code = "BUDGET_EXCEEDED"

    def __init__(self, current_status: str, warnings: list[BudgetWarning]):
        self.current_status = current_status
        self.warnings = list(warnings)
        names = ", ".join(w.category_name for w in self.warnings)
        super().__init__(f"Budget exceeded for: {names}")

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "current_status": self.current_status,
            "warnings": [w.to_dict() for w in self.warnings],
        }


class ConcurrentModificationError(ExpenseWorkflowError):
    """Raised when the record changed between read and conditional write."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, request_id: UUID | str, expected_version: int):
        self.request_id = request_id
        self.expected_version = expected_version
        super().__init__(
            f"Expense request {request_id} was modified concurrently "
            f"(expected version {expected_version}); re-read and retry"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "request_id": str(self.request_id),
            "expected_version": self.expected_version,
        }


class BudgetCategoryNotFoundError(ExpenseWorkflowError):
    """Raised when a budget category id is unknown to the ledger."""

    code = "NOT_FOUND"

    def __init__(self, category_id: UUID | str):
        self.category_id = category_id
        super().__init__(f"Budget category {category_id} not found")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "category_id": str(self.category_id)}
