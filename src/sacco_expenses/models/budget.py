"""Budget category models."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sacco_expenses.models.base import Base, TimestampMixin


class BudgetCategory(Base, TimestampMixin):
    """A ledger bucket with an allocated ceiling and accumulated usage.

    ``used_amount`` only grows, and only through the budget ledger's usage
    commit. Available budget is ``allocated_amount - used_amount`` and may go
    negative when a payment was processed under an explicit override.
    """

    __tablename__ = "budget_category"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_type: Mapped[str] = mapped_column(String, nullable=False, default="expense")
    fiscal_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    allocated_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    used_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )

    __table_args__ = (
        CheckConstraint(
            "category_type IN ('income', 'expense', 'capital')",
            name="budget_category_type_check",
        ),
        CheckConstraint("allocated_amount >= 0", name="budget_category_allocated_check"),
        CheckConstraint("used_amount >= 0", name="budget_category_used_check"),
    )

    @property
    def available_amount(self) -> Decimal:
        """Allocated minus used; negative when over-committed."""
        return self.allocated_amount - self.used_amount
