"""API routes."""

from sacco_expenses.api.routes.budget import router as budget_router
from sacco_expenses.api.routes.expenses import router as expenses_router
from sacco_expenses.api.routes.health import router as health_router

__all__ = ["budget_router", "expenses_router", "health_router"]
