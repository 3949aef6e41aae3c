"""Budget category API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from sacco_expenses.api.dependencies import CurrentActor, DbSession
from sacco_expenses.api.schemas import (
    BudgetAllocateRequest,
    BudgetCategoryCreate,
    BudgetCategoryResponse,
    ErrorResponse,
)
from sacco_expenses.services.budget_ledger import BudgetLedgerService
from sacco_expenses.services.errors import BudgetCategoryNotFoundError
from sacco_expenses.services.state_machine import Actor, Role

router = APIRouter(prefix="/budget", tags=["budget"])

BUDGET_MANAGERS = {Role.ADMIN.value, Role.ACCOUNTANT.value}


def _require_budget_manager(actor: Actor) -> None:
    if actor.role_value not in BUDGET_MANAGERS:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only accountants and administrators can manage budgets",
        )


@router.get("/categories", response_model=list[BudgetCategoryResponse])
async def list_categories(
    db: DbSession,
    actor: CurrentActor,
    category_type: Annotated[str | None, Query(alias="type")] = None,
    fiscal_year: Annotated[int | None, Query(alias="fiscalYear")] = None,
) -> list[BudgetCategoryResponse]:
    """List budget categories with their available amounts."""
    categories = await BudgetLedgerService(db).list_categories(category_type, fiscal_year)
    return [BudgetCategoryResponse.model_validate(c) for c in categories]


@router.post(
    "/categories",
    response_model=BudgetCategoryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}},
)
async def create_category(
    db: DbSession,
    actor: CurrentActor,
    payload: BudgetCategoryCreate,
) -> BudgetCategoryResponse:
    """Create a budget category."""
    _require_budget_manager(actor)
    category = await BudgetLedgerService(db).create_category(
        code=payload.code,
        name=payload.name,
        category_type=payload.category_type,
        allocated_amount=payload.allocated_amount,
        fiscal_year=payload.fiscal_year,
        description=payload.description,
    )
    await db.commit()
    return BudgetCategoryResponse.model_validate(category)


@router.get(
    "/categories/{category_id}",
    response_model=BudgetCategoryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_category(
    db: DbSession,
    actor: CurrentActor,
    category_id: Annotated[UUID, Path()],
) -> BudgetCategoryResponse:
    """Get one budget category."""
    category = await BudgetLedgerService(db).get_category(category_id)
    if category is None:
        raise BudgetCategoryNotFoundError(category_id)
    return BudgetCategoryResponse.model_validate(category)


@router.post(
    "/categories/{category_id}/allocate",
    response_model=BudgetCategoryResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def allocate_budget(
    db: DbSession,
    actor: CurrentActor,
    category_id: Annotated[UUID, Path()],
    payload: BudgetAllocateRequest,
) -> BudgetCategoryResponse:
    """Set the allocated amount of a budget category."""
    _require_budget_manager(actor)
    category = await BudgetLedgerService(db).allocate(
        category_id, payload.allocated_amount, payload.fiscal_year
    )
    await db.commit()
    return BudgetCategoryResponse.model_validate(category)
