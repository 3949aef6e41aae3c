"""ORM models."""

from sacco_expenses.models.base import Base, TimestampMixin, utcnow
from sacco_expenses.models.budget import BudgetCategory
from sacco_expenses.models.expense import (
    EXPENSE_STATUSES,
    ExpenseAuditEvent,
    ExpenseItem,
    ExpenseRequest,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "utcnow",
    "BudgetCategory",
    "EXPENSE_STATUSES",
    "ExpenseAuditEvent",
    "ExpenseItem",
    "ExpenseRequest",
]
