"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sacco_expenses import __version__
from sacco_expenses.api.routes import budget_router, expenses_router, health_router
from sacco_expenses.config import configure_logging, get_settings
from sacco_expenses.database import create_schema, dispose_db, init_db
from sacco_expenses.services.errors import (
    BudgetExceededError,
    ConcurrentModificationError,
    ExpenseWorkflowError,
    InvalidPayloadError,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    InvalidTransitionError.code: status.HTTP_409_CONFLICT,
    InvalidPayloadError.code: status.HTTP_422_UNPROCESSABLE_ENTITY,
    BudgetExceededError.code: status.HTTP_409_CONFLICT,
    ConcurrentModificationError.code: status.HTTP_409_CONFLICT,
}


def error_content(exc: ExpenseWorkflowError) -> dict:
    """Response body for a workflow error."""
    content = {"detail": str(exc), **exc.to_dict()}
    if isinstance(exc, BudgetExceededError):
        content["status"] = "budget_exceeded"
        content["data"] = {
            "exceededItems": content.pop("warnings"),
            "currentStatus": exc.current_status,
        }
    return content


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(settings)
    init_db()
    if settings.create_schema:
        await create_schema()
        logger.info("Database schema ensured")
    yield
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="SACCO Expense Workflow API",
        description="Expense requests with staged approvals and budget control",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(ExpenseWorkflowError)
    async def workflow_exception_handler(
        request: Request, exc: ExpenseWorkflowError
    ) -> JSONResponse:
        """Map workflow failures to HTTP responses."""
        return JSONResponse(
            status_code=ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST),
            content=error_content(exc),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(expenses_router, prefix="/api/v1")
    app.include_router(budget_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
