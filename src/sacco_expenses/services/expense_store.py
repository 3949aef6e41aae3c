"""Expense record store with optimistic concurrency."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sacco_expenses.models import ExpenseRequest
from sacco_expenses.services.errors import ConcurrentModificationError

logger = logging.getLogger(__name__)

# Columns a transition may write; everything else is owned by request editing
TRANSITION_COLUMNS = frozenset({
    "status",
    "accountant_approval_user_id",
    "accountant_approval_at",
    "accountant_notes",
    "budget_allocation_ids",
    "manager_approval_user_id",
    "manager_approval_at",
    "manager_notes",
    "processed_by_user_id",
    "processed_at",
    "transaction_details",
    "cashier_notes",
    "budget_override",
    "budget_override_role",
    "completed_at",
    "rejected_by_user_id",
    "rejected_at",
    "rejected_by_role",
    "rejection_reason",
})


class ExpenseStore:
    """Reads expense requests and writes transitions with compare-and-swap.

    Every successful write increments ``version``. A write whose expected
    version no longer matches the stored one is refused with
    ConcurrentModificationError and changes nothing.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, request_id: UUID) -> ExpenseRequest | None:
        """Load an expense request with its items."""
        result = await self.session.execute(
            select(ExpenseRequest)
            .where(ExpenseRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def compare_and_swap(
        self,
        request_id: UUID,
        expected_version: int,
        changes: dict[str, Any],
    ) -> ExpenseRequest:
        """Apply ``changes`` only if the stored version equals ``expected_version``.

        Returns:
            The refreshed expense request

        Raises:
            ValueError: If changes touch columns a transition may not write
            ConcurrentModificationError: If the record changed since it was read
        """
        unknown = set(changes) - TRANSITION_COLUMNS
        if unknown:
            raise ValueError(f"Not writable by a transition: {sorted(unknown)}")

        await self._swap(request_id, expected_version, changes)

        record = await self.get(request_id)
        if record is None:
            # Deleted between the update and the reload
            raise ConcurrentModificationError(request_id, expected_version)
        return record

    async def swap_draft_total(
        self,
        request_id: UUID,
        expected_version: int,
        total: Decimal,
    ) -> None:
        """Set the total of a request that is still a DRAFT at ``expected_version``.

        Raises:
            ConcurrentModificationError: If the record changed or left DRAFT
        """
        await self._swap(
            request_id,
            expected_version,
            {"total_estimated_amount": total},
            ExpenseRequest.status == "DRAFT",
        )

    async def _swap(
        self,
        request_id: UUID,
        expected_version: int,
        values: dict[str, Any],
        *conditions: Any,
    ) -> None:
        result = await self.session.execute(
            update(ExpenseRequest)
            .where(
                ExpenseRequest.id == request_id,
                ExpenseRequest.version == expected_version,
                *conditions,
            )
            .values(**values, version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            logger.warning(
                "Concurrent modification of expense request %s (expected version %s)",
                request_id,
                expected_version,
            )
            raise ConcurrentModificationError(request_id, expected_version)
