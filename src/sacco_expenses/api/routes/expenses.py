"""Expense request API endpoints."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from sacco_expenses.api.dependencies import CurrentActor, DbSession
from sacco_expenses.api.schemas import (
    AccountantApprovalRequest,
    AllowedActionsResponse,
    AuditEventResponse,
    BudgetWarningResponse,
    ErrorResponse,
    ExpenseCreate,
    ExpenseItemCreate,
    ExpenseListResponse,
    ExpenseResponse,
    ManagerApprovalRequest,
    ProcessRequest,
    RejectionRequest,
    TransitionResponse,
)
from sacco_expenses.services.expense_service import ExpenseRequestService, ItemInput
from sacco_expenses.services.state_machine import ExpenseStateMachine
from sacco_expenses.services.workflow import ExpenseWorkflowService, TransitionResult

router = APIRouter(prefix="/expenses", tags=["expenses"])

WORKFLOW_ERRORS = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


def _to_item_input(item: ExpenseItemCreate) -> ItemInput:
    return ItemInput(
        description=item.description,
        unit_price=item.unit_price,
        quantity=item.quantity,
        category_id=item.category_id,
        estimated_amount=item.estimated_amount,
        notes=item.notes,
    )


def _transition_response(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(
        data=ExpenseResponse.model_validate(result.request),
        status=result.status,
        previous_status=result.previous_status,
        budget_warnings=[
            BudgetWarningResponse(
                category_id=w.category_id,
                category_name=w.category_name,
                allocated=w.allocated,
                currently_used=w.currently_used,
                requested=w.requested,
                deficit=w.deficit,
            )
            for w in result.warnings
        ],
        budget_override=result.budget_override,
    )


# ============================================================================
# Expense request CRUD
# ============================================================================


@router.post(
    "",
    response_model=ExpenseResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_expense(
    db: DbSession,
    actor: CurrentActor,
    payload: ExpenseCreate,
) -> ExpenseResponse:
    """Create a new expense request in DRAFT status."""
    service = ExpenseRequestService(db)
    request = await service.create_request(
        requester=actor,
        department_id=payload.department_id,
        title=payload.title,
        description=payload.description,
        items=[_to_item_input(i) for i in payload.items],
    )
    await db.commit()
    return ExpenseResponse.model_validate(request)


@router.get("", response_model=ExpenseListResponse)
async def list_expenses(
    db: DbSession,
    actor: CurrentActor,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    department_id: Annotated[UUID | None, Query()] = None,
    search: Annotated[str | None, Query()] = None,
    created_from: Annotated[datetime | None, Query()] = None,
    created_to: Annotated[datetime | None, Query()] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
) -> ExpenseListResponse:
    """List expense requests with dashboard filters."""
    service = ExpenseRequestService(db)
    requests, total = await service.list_requests(
        status=status_filter,
        department_id=department_id,
        search=search,
        created_from=created_from,
        created_to=created_to,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    return ExpenseListResponse(
        items=[ExpenseResponse.model_validate(r) for r in requests],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{request_id}",
    response_model=ExpenseResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_expense(
    db: DbSession,
    actor: CurrentActor,
    request_id: Annotated[UUID, Path()],
) -> ExpenseResponse:
    """Get an expense request with its items."""
    request = await ExpenseRequestService(db).get_request(request_id)
    return ExpenseResponse.model_validate(request)


@router.post(
    "/{request_id}/items",
    response_model=ExpenseResponse,
    status_code=status.HTTP_201_CREATED,
    responses=WORKFLOW_ERRORS,
)
async def add_expense_item(
    db: DbSession,
    actor: CurrentActor,
    request_id: Annotated[UUID, Path()],
    payload: ExpenseItemCreate,
) -> ExpenseResponse:
    """Add a line item to a draft request."""
    request = await ExpenseRequestService(db).add_item(
        request_id, _to_item_input(payload), actor
    )
    await db.commit()
    return ExpenseResponse.model_validate(request)


@router.get(
    "/{request_id}/actions",
    response_model=AllowedActionsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_allowed_actions(
    db: DbSession,
    actor: CurrentActor,
    request_id: Annotated[UUID, Path()],
) -> AllowedActionsResponse:
    """Workflow actions the calling user may take on this request."""
    request = await ExpenseRequestService(db).get_request(request_id)
    return AllowedActionsResponse(
        request_id=request.id,
        status=request.status,
        actions=ExpenseStateMachine.allowed_actions(request.status, actor, request.requester_id),
    )


@router.get(
    "/{request_id}/audit",
    response_model=list[AuditEventResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_audit_trail(
    db: DbSession,
    actor: CurrentActor,
    request_id: Annotated[UUID, Path()],
) -> list[AuditEventResponse]:
    """Applied transitions for a request, oldest first."""
    events = await ExpenseRequestService(db).get_audit_trail(request_id)
    return [AuditEventResponse.model_validate(e) for e in events]


# ============================================================================
# Workflow transitions
# ============================================================================


@router.post(
    "/{request_id}/submit",
    response_model=TransitionResponse,
    responses=WORKFLOW_ERRORS,
)
async def submit_expense(
    db: DbSession,
    actor: CurrentActor,
    request_id: Annotated[UUID, Path()],
) -> TransitionResponse:
    """Submit a draft request for approval."""
    result = await ExpenseWorkflowService(db).submit(actor, request_id)
    await db.commit()
    return _transition_response(result)


@router.post(
    "/{request_id}/approve/accountant",
    response_model=TransitionResponse,
    responses=WORKFLOW_ERRORS,
)
async def approve_by_accountant(
    db: DbSession,
    actor: CurrentActor,
    request_id: Annotated[UUID, Path()],
    payload: AccountantApprovalRequest,
) -> TransitionResponse:
    """Accountant approval with budget allocation; budget warnings are advisory."""
    result = await ExpenseWorkflowService(db).approve_by_accountant(
        actor,
        request_id,
        budget_allocation_ids=payload.budget_allocation_ids,
        notes=payload.notes,
        requested_amount=payload.requested_amount,
    )
    await db.commit()
    return _transition_response(result)


@router.post(
    "/{request_id}/approve/manager",
    response_model=TransitionResponse,
    responses=WORKFLOW_ERRORS,
)
async def approve_by_manager(
    db: DbSession,
    actor: CurrentActor,
    request_id: Annotated[UUID, Path()],
    payload: ManagerApprovalRequest,
) -> TransitionResponse:
    """Manager approval."""
    result = await ExpenseWorkflowService(db).approve_by_manager(
        actor, request_id, notes=payload.notes
    )
    await db.commit()
    return _transition_response(result)


@router.post(
    "/{request_id}/reject",
    response_model=TransitionResponse,
    responses=WORKFLOW_ERRORS,
)
async def reject_expense(
    db: DbSession,
    actor: CurrentActor,
    request_id: Annotated[UUID, Path()],
    payload: RejectionRequest,
) -> TransitionResponse:
    """Reject a request at its pending stage."""
    result = await ExpenseWorkflowService(db).reject(
        actor, request_id, payload.rejection_reason
    )
    await db.commit()
    return _transition_response(result)


@router.post(
    "/{request_id}/process",
    response_model=TransitionResponse,
    responses=WORKFLOW_ERRORS,
)
async def process_expense(
    db: DbSession,
    actor: CurrentActor,
    request_id: Annotated[UUID, Path()],
    payload: ProcessRequest,
) -> TransitionResponse:
    """Process payment; fails with budget_exceeded unless the override flag is set."""
    result = await ExpenseWorkflowService(db).process_payment(
        actor,
        request_id,
        transaction_details=payload.transaction_details,
        notes=payload.notes,
        override_budget_limit=payload.override_budget_limit,
        requested_amount=payload.requested_amount,
    )
    await db.commit()
    return _transition_response(result)


@router.post(
    "/{request_id}/complete",
    response_model=TransitionResponse,
    responses=WORKFLOW_ERRORS,
)
async def complete_expense(
    db: DbSession,
    actor: CurrentActor,
    request_id: Annotated[UUID, Path()],
) -> TransitionResponse:
    """Mark a processed request as completed."""
    result = await ExpenseWorkflowService(db).mark_completed(actor, request_id)
    await db.commit()
    return _transition_response(result)
