"""Expense request, expense item, and audit event models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sacco_expenses.models.base import Base, TimestampMixin, utcnow

EXPENSE_STATUSES = (
    "DRAFT",
    "SUBMITTED",
    "ACCOUNTANT_APPROVED",
    "MANAGER_APPROVED",
    "PROCESSED",
    "COMPLETED",
    "REJECTED",
)


class ExpenseRequest(Base, TimestampMixin):
    """Expense request aggregate: header, line items, and approval trail.

    Only the workflow service changes ``status`` and the trail columns, and
    every such change bumps ``version``.
    """

    __tablename__ = "expense_request"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    request_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    requester_id: Mapped[UUID] = mapped_column(nullable=False)
    department_id: Mapped[UUID] = mapped_column(nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_estimated_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Accountant stage
    accountant_approval_user_id: Mapped[UUID | None] = mapped_column(nullable=True)
    accountant_approval_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    accountant_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    budget_allocation_ids: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    # Manager stage
    manager_approval_user_id: Mapped[UUID | None] = mapped_column(nullable=True)
    manager_approval_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    manager_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Cashier stage
    processed_by_user_id: Mapped[UUID | None] = mapped_column(nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    transaction_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    cashier_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    budget_override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    budget_override_role: Mapped[str | None] = mapped_column(String, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Rejection
    rejected_by_user_id: Mapped[UUID | None] = mapped_column(nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejected_by_role: Mapped[str | None] = mapped_column(String, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'ACCOUNTANT_APPROVED', 'MANAGER_APPROVED', "
            "'PROCESSED', 'COMPLETED', 'REJECTED')",
            name="expense_request_status_check",
        ),
        CheckConstraint("total_estimated_amount >= 0", name="expense_request_total_check"),
        CheckConstraint("version >= 1", name="expense_request_version_check"),
    )

    # Relationships
    items: Mapped[list[ExpenseItem]] = relationship(
        back_populates="expense_request",
        cascade="all, delete-orphan",
        order_by="ExpenseItem.position",
        lazy="selectin",
    )

    def items_total(self) -> Decimal:
        """Sum of the estimated amounts of all items."""
        return sum((item.estimated_amount for item in self.items), Decimal("0"))

    def recompute_total(self) -> Decimal:
        """Set ``total_estimated_amount`` from the items and return it."""
        self.total_estimated_amount = self.items_total()
        return self.total_estimated_amount


class ExpenseItem(Base, TimestampMixin):
    """Line item owned by an expense request."""

    __tablename__ = "expense_item"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    expense_request_id: Mapped[UUID] = mapped_column(
        ForeignKey("expense_request.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("budget_category.id"), nullable=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    estimated_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="expense_item_quantity_check"),
        CheckConstraint("unit_price >= 0", name="expense_item_unit_price_check"),
        CheckConstraint("estimated_amount >= 0", name="expense_item_estimate_check"),
    )

    # Relationships
    expense_request: Mapped[ExpenseRequest] = relationship(back_populates="items")


class ExpenseAuditEvent(Base):
    """Append-only record of an applied workflow transition."""

    __tablename__ = "expense_audit_event"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    expense_request_id: Mapped[UUID] = mapped_column(
        ForeignKey("expense_request.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    actor_user_id: Mapped[UUID | None] = mapped_column(nullable=True)
    actor_role: Mapped[str] = mapped_column(String, nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    from_status: Mapped[str] = mapped_column(String, nullable=False)
    to_status: Mapped[str] = mapped_column(String, nullable=False)
    details_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
