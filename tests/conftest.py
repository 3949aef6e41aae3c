"""Pytest fixtures for expense workflow tests."""

from __future__ import annotations

from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sacco_expenses.models import Base, BudgetCategory, ExpenseRequest
from sacco_expenses.services import (
    Actor,
    ExpenseRequestService,
    ExpenseWorkflowService,
    ItemInput,
    Role,
)

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DEPARTMENT_ID = uuid4()


@pytest.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ----------------------------------------------------------------------
# Actors
# ----------------------------------------------------------------------


@pytest.fixture
def requester() -> Actor:
    return Actor(user_id=uuid4(), role=Role.STAFF.value)


@pytest.fixture
def accountant() -> Actor:
    return Actor(user_id=uuid4(), role=Role.ACCOUNTANT.value)


@pytest.fixture
def manager() -> Actor:
    return Actor(user_id=uuid4(), role=Role.MANAGER.value)


@pytest.fixture
def cashier() -> Actor:
    return Actor(user_id=uuid4(), role=Role.CASHIER.value)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=uuid4(), role=Role.ADMIN.value)


# ----------------------------------------------------------------------
# Budget categories and requests
# ----------------------------------------------------------------------


@pytest.fixture
async def office_budget(session: AsyncSession) -> BudgetCategory:
    """Category with allocated=600,000 and used=200,000 (available 400,000)."""
    category = BudgetCategory(
        code="OFFICE",
        name="Office Supplies",
        category_type="expense",
        fiscal_year=2024,
        allocated_amount=Decimal("600000"),
        used_amount=Decimal("200000"),
    )
    session.add(category)
    await session.flush()
    return category


@pytest.fixture
async def travel_budget(session: AsyncSession) -> BudgetCategory:
    """Category with allocated=300,000 and nothing used."""
    category = BudgetCategory(
        code="TRAVEL",
        name="Travel",
        category_type="expense",
        fiscal_year=2024,
        allocated_amount=Decimal("300000"),
        used_amount=Decimal("0"),
    )
    session.add(category)
    await session.flush()
    return category


@pytest.fixture
def make_request(
    session: AsyncSession, requester: Actor
) -> Callable[..., Awaitable[ExpenseRequest]]:
    """Factory for DRAFT requests; amounts are item estimates."""

    async def _make(*amounts: str, title: str = "Office chairs") -> ExpenseRequest:
        items = [
            ItemInput(description=f"Item {i + 1}", unit_price=Decimal(amount))
            for i, amount in enumerate(amounts or ("500000",))
        ]
        return await ExpenseRequestService(session).create_request(
            requester=requester,
            department_id=DEPARTMENT_ID,
            title=title,
            items=items,
        )

    return _make


@pytest.fixture
def advance(
    session: AsyncSession,
    requester: Actor,
    accountant: Actor,
    manager: Actor,
) -> Callable[..., Awaitable[ExpenseRequest]]:
    """Drive a request to a given status through the workflow."""

    async def _advance(request: ExpenseRequest, status: str, category_ids=()) -> ExpenseRequest:
        workflow = ExpenseWorkflowService(session)
        result = await workflow.submit(requester, request.id)
        if status == "SUBMITTED":
            return result.request
        result = await workflow.approve_by_accountant(
            accountant, request.id, budget_allocation_ids=list(category_ids)
        )
        if status == "ACCOUNTANT_APPROVED":
            return result.request
        result = await workflow.approve_by_manager(manager, request.id, notes="ok")
        return result.request

    return _advance
