"""Integration test fixtures: the FastAPI app over an in-memory database."""

from collections.abc import AsyncGenerator
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from sacco_expenses.api.app import create_app
from sacco_expenses.api.dependencies import get_db_session
from sacco_expenses.models import BudgetCategory


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = create_app()

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def office_category(session_factory) -> BudgetCategory:
    """Committed category with 400,000 available."""
    async with session_factory() as session:
        category = BudgetCategory(
            code="OFFICE",
            name="Office Supplies",
            allocated_amount=Decimal("600000"),
            used_amount=Decimal("200000"),
        )
        session.add(category)
        await session.commit()
        return category
