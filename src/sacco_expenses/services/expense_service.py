"""Expense request service - creation, line items, and queries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sacco_expenses.config import get_settings
from sacco_expenses.models import ExpenseAuditEvent, ExpenseItem, ExpenseRequest, utcnow
from sacco_expenses.services.budget_ledger import BudgetLedgerService
from sacco_expenses.services.errors import (
    ExpenseNotFoundError,
    InvalidPayloadError,
    InvalidTransitionError,
)
from sacco_expenses.services.expense_store import ExpenseStore
from sacco_expenses.services.state_machine import Actor, ExpenseStateMachine

logger = logging.getLogger(__name__)

# Fresh numbers to try when a concurrent create takes ours
REQUEST_NUMBER_ATTEMPTS = 3


@dataclass(frozen=True)
class ItemInput:
    """A line item as entered by the requester.

    ``estimated_amount`` overrides ``quantity * unit_price`` when supplied.
    """

    description: str
    unit_price: Decimal
    quantity: int = 1
    category_id: UUID | None = None
    estimated_amount: Decimal | None = None
    notes: str | None = None

    def resolve_estimate(self) -> Decimal:
        if self.estimated_amount is not None:
            return self.estimated_amount
        return self.unit_price * self.quantity


def _validate_item(item: ItemInput) -> None:
    if not item.description or not item.description.strip():
        raise InvalidPayloadError("items.description", "description is required")
    if item.quantity < 1:
        raise InvalidPayloadError("items.quantity", "quantity must be at least 1")
    if item.unit_price < 0:
        raise InvalidPayloadError("items.unit_price", "unit price must not be negative")
    if item.estimated_amount is not None and item.estimated_amount < 0:
        raise InvalidPayloadError("items.estimated_amount", "estimate must not be negative")


class ExpenseRequestService:
    """Service for creating and querying expense requests.

    Operations:
    - create_request: New DRAFT request with items and a request number
    - add_item: Append an item while the request is still a DRAFT
    - get_request / list_requests: Reads with dashboard filters
    - get_audit_trail: Applied transitions, oldest first
    """

    def __init__(self, session: AsyncSession, store: ExpenseStore | None = None):
        self.session = session
        self.store = store or ExpenseStore(session)

    async def create_request(
        self,
        *,
        requester: Actor,
        department_id: UUID,
        title: str,
        description: str | None = None,
        items: Sequence[ItemInput] = (),
    ) -> ExpenseRequest:
        """Create a DRAFT expense request owned by ``requester``.

        The request number is taken again if a concurrent create claimed it
        first; after REQUEST_NUMBER_ATTEMPTS collisions the IntegrityError
        propagates.
        """
        if requester.user_id is None:
            raise InvalidPayloadError("requester", "requester identity is required")
        if not title or not title.strip():
            raise InvalidPayloadError("title", "title is required")
        for item in items:
            _validate_item(item)
            await self._check_category(item)

        for attempt in range(1, REQUEST_NUMBER_ATTEMPTS + 1):
            request = ExpenseRequest(
                request_number=await self._next_request_number(),
                requester_id=requester.user_id,
                department_id=department_id,
                title=title.strip(),
                description=description,
                status="DRAFT",
                version=1,
                items=[self._build_item(item, position) for position, item in enumerate(items)],
            )
            request.recompute_total()

            try:
                async with self.session.begin_nested():
                    self.session.add(request)
                    await self.session.flush()
            except IntegrityError:
                if attempt == REQUEST_NUMBER_ATTEMPTS:
                    raise
                logger.warning(
                    "Request number %s already taken, retrying", request.request_number
                )
                continue
            break

        logger.info(
            "Created expense request %s (%s) for %s",
            request.request_number,
            request.id,
            request.total_estimated_amount,
        )
        return request

    async def add_item(
        self,
        request_id: UUID,
        item: ItemInput,
        actor: Actor,
    ) -> ExpenseRequest:
        """Add a line item to a DRAFT request and recompute its total.

        The total and version are written with a compare-and-swap that also
        requires the stored status to still be DRAFT, so an edit racing a
        submit fails with ConcurrentModificationError instead of landing on
        a submitted request.
        """
        request = await self.store.get(request_id)
        if request is None:
            raise ExpenseNotFoundError(request_id)
        if not ExpenseStateMachine.can_modify_items(request.status):
            raise InvalidTransitionError(
                request.status, "add_item", actor.role_value, "items are locked after submission"
            )
        if actor.role_value != "admin" and actor.user_id != request.requester_id:
            raise InvalidTransitionError(
                request.status, "add_item", actor.role_value, "only the requester may edit items"
            )
        _validate_item(item)
        await self._check_category(item)

        new_item = self._build_item(item, len(request.items))
        new_item.expense_request_id = request.id
        async with self.session.begin_nested():
            await self.store.swap_draft_total(
                request.id, request.version, request.items_total() + new_item.estimated_amount
            )
            self.session.add(new_item)
            await self.session.flush()

        return await self.store.get(request_id)

    async def get_request(self, request_id: UUID) -> ExpenseRequest:
        """Load a request or raise ExpenseNotFoundError."""
        result = await self.session.execute(
            select(ExpenseRequest).where(ExpenseRequest.id == request_id)
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise ExpenseNotFoundError(request_id)
        return request

    async def list_requests(
        self,
        *,
        status: str | None = None,
        department_id: UUID | None = None,
        requester_id: UUID | None = None,
        search: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[ExpenseRequest], int]:
        """List requests matching the filters, newest first, with total count."""
        stmt = select(ExpenseRequest)
        if status:
            stmt = stmt.where(ExpenseRequest.status == status)
        if department_id is not None:
            stmt = stmt.where(ExpenseRequest.department_id == department_id)
        if requester_id is not None:
            stmt = stmt.where(ExpenseRequest.requester_id == requester_id)
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(
                or_(
                    ExpenseRequest.title.ilike(pattern),
                    ExpenseRequest.description.ilike(pattern),
                    ExpenseRequest.request_number.ilike(pattern),
                )
            )
        if created_from is not None:
            stmt = stmt.where(ExpenseRequest.created_at >= created_from)
        if created_to is not None:
            stmt = stmt.where(ExpenseRequest.created_at <= created_to)

        total = await self.session.scalar(
            select(func.count()).select_from(stmt.subquery())
        )
        result = await self.session.execute(
            stmt.order_by(ExpenseRequest.created_at.desc(), ExpenseRequest.request_number.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def get_audit_trail(self, request_id: UUID) -> list[ExpenseAuditEvent]:
        """Audit events for a request, oldest first."""
        await self.get_request(request_id)
        result = await self.session.execute(
            select(ExpenseAuditEvent)
            .where(ExpenseAuditEvent.expense_request_id == request_id)
            .order_by(ExpenseAuditEvent.created_at)
        )
        return list(result.scalars().all())

    async def _next_request_number(self) -> str:
        """Next ``<prefix>-<year>-<sequence>`` number for the current year."""
        prefix = f"{get_settings().request_number_prefix}-{utcnow().year}-"
        # Sequences are zero-padded, so the string maximum is the numeric one
        last = await self.session.scalar(
            select(func.max(ExpenseRequest.request_number))
            .where(ExpenseRequest.request_number.like(f"{prefix}%"))
        )
        sequence = int(last[len(prefix):]) if last else 0
        return f"{prefix}{sequence + 1:05d}"

    async def _check_category(self, item: ItemInput) -> None:
        if item.category_id is None:
            return
        category = await BudgetLedgerService(self.session).get_category(item.category_id)
        if category is None:
            raise InvalidPayloadError(
                "items.category_id", f"unknown budget category {item.category_id}"
            )

    def _build_item(self, item: ItemInput, position: int) -> ExpenseItem:
        return ExpenseItem(
            position=position,
            category_id=item.category_id,
            description=item.description.strip(),
            quantity=item.quantity,
            unit_price=item.unit_price,
            estimated_amount=item.resolve_estimate(),
            notes=item.notes,
        )
