"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ErrorResponse(BaseModel):
    """Error body returned for workflow failures."""

    detail: str
    code: str


# ============================================================================
# Expense request schemas
# ============================================================================


class ExpenseItemCreate(BaseModel):
    """Schema for a line item on a new or draft expense request."""

    description: str = Field(min_length=1)
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    category_id: UUID | None = None
    estimated_amount: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None


class ExpenseCreate(BaseModel):
    """Schema for creating a new expense request in DRAFT."""

    title: str = Field(min_length=1)
    description: str | None = None
    department_id: UUID
    items: list[ExpenseItemCreate] = Field(default_factory=list)


class ExpenseItemResponse(BaseModel):
    """Schema for expense item response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    position: int
    category_id: UUID | None = None
    description: str
    quantity: int
    unit_price: Decimal
    estimated_amount: Decimal
    notes: str | None = None


class ExpenseResponse(BaseModel):
    """Schema for expense request response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    request_number: str
    requester_id: UUID
    department_id: UUID
    title: str
    description: str | None = None
    total_estimated_amount: Decimal
    status: str
    version: int
    accountant_approval_user_id: UUID | None = None
    accountant_approval_at: datetime | None = None
    accountant_notes: str | None = None
    budget_allocation_ids: list[str] | None = None
    manager_approval_user_id: UUID | None = None
    manager_approval_at: datetime | None = None
    manager_notes: str | None = None
    processed_by_user_id: UUID | None = None
    processed_at: datetime | None = None
    transaction_details: str | None = None
    cashier_notes: str | None = None
    budget_override: bool = False
    budget_override_role: str | None = None
    completed_at: datetime | None = None
    rejected_by_user_id: UUID | None = None
    rejected_at: datetime | None = None
    rejected_by_role: str | None = None
    rejection_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    items: list[ExpenseItemResponse] = Field(default_factory=list)


class ExpenseListResponse(BaseModel):
    """Schema for listing expense requests."""

    items: list[ExpenseResponse]
    total: int
    page: int
    page_size: int


class AllowedActionsResponse(BaseModel):
    """Actions the calling user may take on a request."""

    request_id: UUID
    status: str
    actions: list[str]


# ============================================================================
# Workflow transition schemas
# ============================================================================


class AccountantApprovalRequest(BaseModel):
    """Schema for accountant approval."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    notes: str | None = None
    budget_allocation_ids: list[UUID] = Field(default_factory=list)
    requested_amount: Decimal | None = None


class ManagerApprovalRequest(BaseModel):
    """Schema for manager approval."""

    notes: str | None = None


class RejectionRequest(BaseModel):
    """Schema for rejecting a request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    rejection_reason: str = ""


class ProcessRequest(BaseModel):
    """Schema for cashier payment processing."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    transaction_details: str = ""
    notes: str | None = None
    override_budget_limit: bool = False
    requested_amount: Decimal | None = None


class BudgetWarningResponse(BaseModel):
    """A budget category the request would push over its allocation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    category_id: UUID
    category_name: str
    allocated: Decimal
    currently_used: Decimal
    requested: Decimal
    deficit: Decimal


class TransitionResponse(BaseModel):
    """Schema for the result of a workflow transition."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    data: ExpenseResponse
    status: str
    previous_status: str
    budget_warnings: list[BudgetWarningResponse] = Field(default_factory=list)
    budget_override: bool = False


class AuditEventResponse(BaseModel):
    """Schema for an applied transition."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    actor_user_id: UUID | None = None
    actor_role: str
    action: str
    from_status: str
    to_status: str
    details_json: dict[str, Any] | None = None
    created_at: datetime


# ============================================================================
# Budget schemas
# ============================================================================


class BudgetCategoryCreate(BaseModel):
    """Schema for creating a budget category."""

    code: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1)
    category_type: str = Field(default="expense", pattern="^(income|expense|capital)$")
    allocated_amount: Decimal = Field(default=Decimal("0"), ge=0)
    fiscal_year: int | None = None
    description: str | None = None


class BudgetAllocateRequest(BaseModel):
    """Schema for setting a category's allocation."""

    allocated_amount: Decimal = Field(ge=0)
    fiscal_year: int | None = None


class BudgetCategoryResponse(BaseModel):
    """Schema for budget category response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    description: str | None = None
    category_type: str
    fiscal_year: int | None = None
    allocated_amount: Decimal
    used_amount: Decimal
    available_amount: Decimal
