"""API endpoint integration tests.

Tests the FastAPI endpoints for expense requests and budget categories.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient

from sacco_expenses.models import BudgetCategory

STAFF_ID = uuid4()


def headers(user_id, role: str) -> dict[str, str]:
    return {"X-User-ID": str(user_id), "X-User-Role": role}


STAFF = headers(STAFF_ID, "staff")
ACCOUNTANT = headers(uuid4(), "accountant")
MANAGER = headers(uuid4(), "manager")
CASHIER = headers(uuid4(), "cashier")
ADMIN = headers(uuid4(), "admin")


async def create_expense(client: AsyncClient, amount: str = "500000") -> dict:
    response = await client.post(
        "/api/v1/expenses",
        headers=STAFF,
        json={
            "title": "Office chairs",
            "department_id": str(uuid4()),
            "items": [{"description": "Ergonomic chair", "unit_price": amount}],
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


async def manager_approved(client: AsyncClient, category_id, amount: str = "500000") -> dict:
    expense = await create_expense(client, amount)
    base = f"/api/v1/expenses/{expense['id']}"

    response = await client.post(f"{base}/submit", headers=STAFF)
    assert response.status_code == 200, response.text
    response = await client.post(
        f"{base}/approve/accountant",
        headers=ACCOUNTANT,
        json={"budget_allocation_ids": [str(category_id)]},
    )
    assert response.status_code == 200, response.text
    response = await client.post(f"{base}/approve/manager", headers=MANAGER, json={})
    assert response.status_code == 200, response.text
    return response.json()["data"]


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        """Health endpoint should return 200."""
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"

    async def test_readiness_check(self, client: AsyncClient):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    async def test_liveness_check(self, client: AsyncClient):
        response = await client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestExpenseCRUD:
    """Test expense request endpoints."""

    async def test_create_expense(self, client: AsyncClient):
        data = await create_expense(client, "125000")

        assert data["status"] == "DRAFT"
        assert data["version"] == 1
        assert data["requester_id"] == str(STAFF_ID)
        assert Decimal(data["total_estimated_amount"]) == Decimal("125000")
        assert len(data["items"]) == 1

    async def test_identity_headers_required(self, client: AsyncClient):
        response = await client.get("/api/v1/expenses")
        assert response.status_code == 400

    async def test_unknown_role_rejected(self, client: AsyncClient):
        response = await client.get("/api/v1/expenses", headers=headers(uuid4(), "auditor"))
        assert response.status_code == 400

    async def test_get_unknown_expense(self, client: AsyncClient):
        response = await client.get(f"/api/v1/expenses/{uuid4()}", headers=STAFF)

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_list_expenses_by_status(self, client: AsyncClient):
        draft = await create_expense(client)
        submitted = await create_expense(client)
        await client.post(f"/api/v1/expenses/{submitted['id']}/submit", headers=STAFF)

        response = await client.get(
            "/api/v1/expenses", headers=ACCOUNTANT, params={"status": "SUBMITTED"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == submitted["id"]
        assert draft["id"] not in [i["id"] for i in data["items"]]

    async def test_add_item_to_draft(self, client: AsyncClient):
        expense = await create_expense(client, "1000")

        response = await client.post(
            f"/api/v1/expenses/{expense['id']}/items",
            headers=STAFF,
            json={"description": "Cushion", "unit_price": "500", "quantity": 2},
        )

        assert response.status_code == 201, response.text
        assert Decimal(response.json()["total_estimated_amount"]) == Decimal("2000")

    async def test_allowed_actions(self, client: AsyncClient):
        expense = await create_expense(client)

        owner = await client.get(f"/api/v1/expenses/{expense['id']}/actions", headers=STAFF)
        cashier = await client.get(f"/api/v1/expenses/{expense['id']}/actions", headers=CASHIER)

        assert owner.json()["actions"] == ["submit"]
        assert cashier.json()["actions"] == []


class TestWorkflowEndpoints:
    """Test transition endpoints and their error mapping."""

    async def test_accountant_approval_returns_warnings(
        self, client: AsyncClient, office_category: BudgetCategory
    ):
        expense = await create_expense(client)
        base = f"/api/v1/expenses/{expense['id']}"
        await client.post(f"{base}/submit", headers=STAFF)

        response = await client.post(
            f"{base}/approve/accountant",
            headers=ACCOUNTANT,
            json={"budget_allocation_ids": [str(office_category.id)], "notes": "tight"},
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["status"] == "ACCOUNTANT_APPROVED"
        assert data["previousStatus"] == "SUBMITTED"
        assert len(data["budgetWarnings"]) == 1
        warning = data["budgetWarnings"][0]
        assert warning["categoryId"] == str(office_category.id)
        assert Decimal(warning["deficit"]) == Decimal("100000")

    async def test_process_over_budget_is_blocked(
        self, client: AsyncClient, office_category: BudgetCategory
    ):
        expense = await manager_approved(client, office_category.id)

        response = await client.post(
            f"/api/v1/expenses/{expense['id']}/process",
            headers=CASHIER,
            json={"transaction_details": "Cheque 00123"},
        )

        assert response.status_code == 409
        body = response.json()
        assert body["status"] == "budget_exceeded"
        assert body["code"] == "BUDGET_EXCEEDED"
        assert body["data"]["currentStatus"] == "MANAGER_APPROVED"
        exceeded = body["data"]["exceededItems"]
        assert len(exceeded) == 1
        assert Decimal(exceeded[0]["deficit"]) == Decimal("100000")

        current = await client.get(f"/api/v1/expenses/{expense['id']}", headers=CASHIER)
        assert current.json()["status"] == "MANAGER_APPROVED"

        category = await client.get(
            f"/api/v1/budget/categories/{office_category.id}", headers=CASHIER
        )
        assert Decimal(category.json()["used_amount"]) == Decimal("200000")

    async def test_process_with_override(
        self, client: AsyncClient, office_category: BudgetCategory
    ):
        expense = await manager_approved(client, office_category.id)

        response = await client.post(
            f"/api/v1/expenses/{expense['id']}/process",
            headers=CASHIER,
            json={"transaction_details": "Cheque 00123", "override_budget_limit": True},
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["status"] == "PROCESSED"
        assert data["budgetOverride"] is True
        assert data["data"]["budget_override_role"] == "cashier"

        category = await client.get(
            f"/api/v1/budget/categories/{office_category.id}", headers=CASHIER
        )
        assert Decimal(category.json()["used_amount"]) == Decimal("700000")
        assert Decimal(category.json()["available_amount"]) == Decimal("-100000")

        audit = await client.get(f"/api/v1/expenses/{expense['id']}/audit", headers=CASHIER)
        assert [e["action"] for e in audit.json()][-1] == "process"

    async def test_camel_case_payloads(
        self, client: AsyncClient, office_category: BudgetCategory
    ):
        """The dashboard sends camelCase bodies and reads camelCase results."""
        expense = await create_expense(client)
        base = f"/api/v1/expenses/{expense['id']}"
        await client.post(f"{base}/submit", headers=STAFF)

        approved = await client.post(
            f"{base}/approve/accountant",
            headers=ACCOUNTANT,
            json={"budgetAllocationIds": [str(office_category.id)]},
        )
        assert approved.status_code == 200, approved.text
        assert len(approved.json()["budgetWarnings"]) == 1

        await client.post(f"{base}/approve/manager", headers=MANAGER, json={})
        processed = await client.post(
            f"{base}/process",
            headers=CASHIER,
            json={"transactionDetails": "Cheque 1", "overrideBudgetLimit": True},
        )
        assert processed.status_code == 200, processed.text
        assert processed.json()["status"] == "PROCESSED"
        assert processed.json()["budgetOverride"] is True
        assert processed.json()["data"]["transaction_details"] == "Cheque 1"

    async def test_camel_case_rejection_reason(self, client: AsyncClient):
        expense = await create_expense(client)
        base = f"/api/v1/expenses/{expense['id']}"
        await client.post(f"{base}/submit", headers=STAFF)

        response = await client.post(
            f"{base}/reject", headers=ACCOUNTANT, json={"rejectionReason": "No quote"}
        )

        assert response.status_code == 200, response.text
        assert response.json()["data"]["rejection_reason"] == "No quote"

    async def test_wrong_stage_is_conflict(
        self, client: AsyncClient, office_category: BudgetCategory
    ):
        expense = await manager_approved(client, office_category.id)

        response = await client.post(
            f"/api/v1/expenses/{expense['id']}/approve/accountant",
            headers=ACCOUNTANT,
            json={"budget_allocation_ids": [str(office_category.id)]},
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "INVALID_TRANSITION"
        assert body["current_status"] == "MANAGER_APPROVED"

    async def test_missing_rejection_reason(self, client: AsyncClient):
        expense = await create_expense(client)
        base = f"/api/v1/expenses/{expense['id']}"
        await client.post(f"{base}/submit", headers=STAFF)

        response = await client.post(f"{base}/reject", headers=ACCOUNTANT, json={})

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_PAYLOAD"

    async def test_complete_flow(self, client: AsyncClient, office_category: BudgetCategory):
        expense = await manager_approved(client, office_category.id, amount="100000")
        base = f"/api/v1/expenses/{expense['id']}"

        processed = await client.post(
            f"{base}/process", headers=CASHIER, json={"transaction_details": "EFT 55"}
        )
        completed = await client.post(f"{base}/complete", headers=CASHIER)

        assert processed.status_code == 200, processed.text
        assert completed.status_code == 200, completed.text
        assert completed.json()["status"] == "COMPLETED"
        assert completed.json()["data"]["completed_at"] is not None


class TestBudgetEndpoints:
    """Test budget category endpoints."""

    async def test_create_and_allocate(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/budget/categories",
            headers=ACCOUNTANT,
            json={"code": "TRAIN", "name": "Staff Training", "allocated_amount": "100000"},
        )
        assert response.status_code == 201, response.text
        category = response.json()

        response = await client.post(
            f"/api/v1/budget/categories/{category['id']}/allocate",
            headers=ADMIN,
            json={"allocated_amount": "250000"},
        )
        assert response.status_code == 200, response.text
        assert Decimal(response.json()["available_amount"]) == Decimal("250000")

        listing = await client.get("/api/v1/budget/categories", headers=STAFF)
        assert [c["code"] for c in listing.json()] == ["TRAIN"]

    async def test_staff_cannot_manage_budget(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/budget/categories",
            headers=STAFF,
            json={"code": "X", "name": "X"},
        )
        assert response.status_code == 403

    async def test_unknown_category(self, client: AsyncClient):
        response = await client.get(f"/api/v1/budget/categories/{uuid4()}", headers=STAFF)
        assert response.status_code == 404
