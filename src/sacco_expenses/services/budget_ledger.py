"""Budget ledger service - allocations and usage commits.

Holds, per budget category, an allocated amount and a used-to-date amount.
Usage is committed with an in-database increment so that two commits against
the same category never lose an update. The ledger does not re-check the
budget on commit; the workflow resolves override semantics before calling it
and the ledger only reports whether the category is now over-allocated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sacco_expenses.models import BudgetCategory
from sacco_expenses.services.budget_evaluator import BudgetAllocation
from sacco_expenses.services.errors import BudgetCategoryNotFoundError

logger = logging.getLogger(__name__)

CATEGORY_TYPES = ("income", "expense", "capital")


@dataclass(frozen=True)
class UsageCommit:
    """Result of a usage commit.

    ``over_allocated`` is True when the category's used amount now exceeds
    its allocation. It is a signal, not a failure.
    """

    category_id: UUID
    amount: Decimal
    used_after: Decimal
    allocated: Decimal

    @property
    def over_allocated(self) -> bool:
        return self.used_after > self.allocated

    @property
    def available_after(self) -> Decimal:
        return self.allocated - self.used_after


def to_allocation(category: BudgetCategory) -> BudgetAllocation:
    """Snapshot a category row for the budget evaluator."""
    return BudgetAllocation(
        category_id=category.id,
        name=category.name,
        code=category.code,
        allocated=category.allocated_amount,
        used=category.used_amount,
    )


class BudgetLedgerService:
    """Budget category ledger backed by the ``budget_category`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_category(self, category_id: UUID) -> BudgetCategory | None:
        """Load a budget category by id."""
        return await self.session.get(BudgetCategory, category_id)

    async def get_allocation(self, category_id: UUID) -> BudgetAllocation:
        """Current allocated/used snapshot for a category."""
        result = await self.session.execute(
            select(BudgetCategory)
            .where(BudgetCategory.id == category_id)
            .execution_options(populate_existing=True)
        )
        category = result.scalar_one_or_none()
        if category is None:
            raise BudgetCategoryNotFoundError(category_id)
        return to_allocation(category)

    async def get_allocations(self, category_ids: Sequence[UUID]) -> list[BudgetAllocation]:
        """Snapshots for several categories, in the order given."""
        return [await self.get_allocation(category_id) for category_id in category_ids]

    async def commit_usage(self, category_id: UUID, amount: Decimal) -> UsageCommit:
        """Add ``amount`` to a category's used amount.

        Raises:
            ValueError: If amount is not positive
            BudgetCategoryNotFoundError: If the category does not exist
        """
        if amount <= 0:
            raise ValueError("Usage amount must be positive")

        result = await self.session.execute(
            update(BudgetCategory)
            .where(BudgetCategory.id == category_id)
            .values(used_amount=BudgetCategory.used_amount + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise BudgetCategoryNotFoundError(category_id)

        allocation = await self.get_allocation(category_id)
        commit = UsageCommit(
            category_id=category_id,
            amount=amount,
            used_after=allocation.used,
            allocated=allocation.allocated,
        )
        if commit.over_allocated:
            logger.warning(
                "Budget category %s (%s) over-allocated by %s after usage commit of %s",
                allocation.code,
                category_id,
                -commit.available_after,
                amount,
            )
        else:
            logger.info("Committed usage %s to budget category %s", amount, allocation.code)
        return commit

    # ------------------------------------------------------------------
    # Category management
    # ------------------------------------------------------------------

    async def list_categories(
        self,
        category_type: str | None = None,
        fiscal_year: int | None = None,
    ) -> list[BudgetCategory]:
        """List budget categories, optionally filtered by type and fiscal year."""
        stmt = select(BudgetCategory).order_by(BudgetCategory.code)
        if category_type:
            stmt = stmt.where(BudgetCategory.category_type == category_type)
        if fiscal_year is not None:
            stmt = stmt.where(BudgetCategory.fiscal_year == fiscal_year)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create_category(
        self,
        *,
        code: str,
        name: str,
        category_type: str = "expense",
        allocated_amount: Decimal = Decimal("0"),
        fiscal_year: int | None = None,
        description: str | None = None,
    ) -> BudgetCategory:
        """Create a budget category with an initial allocation."""
        if category_type not in CATEGORY_TYPES:
            raise ValueError(f"category_type must be one of {CATEGORY_TYPES}")
        if allocated_amount < 0:
            raise ValueError("Allocated amount must not be negative")

        category = BudgetCategory(
            code=code,
            name=name,
            category_type=category_type,
            allocated_amount=allocated_amount,
            used_amount=Decimal("0"),
            fiscal_year=fiscal_year,
            description=description,
        )
        self.session.add(category)
        await self.session.flush()
        return category

    async def allocate(
        self,
        category_id: UUID,
        allocated_amount: Decimal,
        fiscal_year: int | None = None,
    ) -> BudgetCategory:
        """Set the allocated amount of a category.

        Usage is never touched here; lowering the allocation below usage is
        allowed and leaves the category over-committed.
        """
        if allocated_amount < 0:
            raise ValueError("Allocated amount must not be negative")

        category = await self.get_category(category_id)
        if category is None:
            raise BudgetCategoryNotFoundError(category_id)

        category.allocated_amount = allocated_amount
        if fiscal_year is not None:
            category.fiscal_year = fiscal_year
        await self.session.flush()
        logger.info("Allocated %s to budget category %s", allocated_amount, category.code)
        return category
