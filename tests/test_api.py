import pytest
from fastapi.testclient import TestClient

from database import Base, build_engine, make_sessionmaker
from identity import HouseholdContext, issue_session_token
from main import app, get_db
from models import UserRole
from services import HouseholdService


@pytest.fixture(autouse=True)
def _clear_overrides():
    yield
    app.dependency_overrides.clear()


def _client():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    TestingSession = make_sessionmaker(engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestingSession() as session:
        household = HouseholdService(session).register("Home", created_by=1)
        ctx = HouseholdContext(
            user_id=1, household_id=household.id, role=UserRole.admin
        )
    token = issue_session_token(ctx)
    client = TestClient(app)
    client.headers.update({"Authorization": f"Bearer {token}"})
    return client


def test_requests_without_session_are_unauthorized() -> None:
    client = _client()
    response = client.get(
        "/api/dashboard", params={"month": "2024-01"}, headers={"Authorization": ""}
    )
    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"

    response = client.get(
        "/api/dashboard", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


def test_budget_flow_over_http() -> None:
    client = _client()
    accounts = client.get("/api/accounts").json()
    primary, shared = accounts[0]["id"], accounts[1]["id"]

    category = client.post(
        "/api/categories", json={"name": "Housing", "type": "mandatory"}
    ).json()

    response = client.post(
        "/api/income",
        json={
            "month_year": "2024-01",
            "total_amount": "5000",
            "allocations": [
                {"account_id": primary, "amount": "3000"},
                {"account_id": shared, "amount": "1999.98"},
            ],
        },
    )
    assert response.status_code == 422
    assert response.json()["error"] == "allocation_mismatch"

    response = client.post(
        "/api/income",
        json={
            "month_year": "2024-01",
            "total_amount": "5000",
            "allocations": [
                {"account_id": primary, "amount": "3000"},
                {"account_id": shared, "amount": "2000"},
            ],
        },
    )
    assert response.status_code == 201
    assert response.json()["allocations"][0]["amount"] == "3000.00"

    item = client.post(
        "/api/budget-items",
        json={
            "month_year": "2024-01",
            "description": "Rent",
            "amount": "1500",
            "category_id": category["id"],
            "account_id": primary,
        },
    ).json()
    assert item["color"] == "blue"

    response = client.post(
        "/api/transactions",
        json={
            "occurred_at": "2024-01-03T10:00:00Z",
            "description": "Rent",
            "amount": "1500",
            "category_id": category["id"],
            "account_id": primary,
            "budget_item_id": item["id"],
        },
    )
    assert response.status_code == 201

    dashboard = client.get("/api/dashboard", params={"month": "2024-01"}).json()
    assert dashboard["income"] == "5000.00"
    assert dashboard["total_planned_actual"] == "1500.00"
    assert dashboard["net_cash_flow"] == "3500.00"
    balances = {b["account_id"]: b for b in dashboard["account_balances"]}
    assert balances[primary]["remaining"] == "1500.00"

    response = client.post(
        "/api/budget-items/copy",
        json={"source_month": "2024-01", "target_month": "2024-02"},
    )
    assert response.json() == {"count": 1}
    response = client.post(
        "/api/budget-items/copy",
        json={"source_month": "2024-01", "target_month": "2024-02"},
    )
    assert response.status_code == 409
    assert response.json()["error"] == "target_not_empty"

    report = client.get(
        "/api/reports", params=[("months", "2024-01"), ("months", "2024-02")]
    ).json()
    assert [m["month_year"] for m in report["months"]] == ["2024-01", "2024-02"]
    assert report["summary"]["income_trend"] == "5000.00"

    assert client.get("/api/months").json() == ["2024-02", "2024-01"]

    response = client.delete(f"/api/accounts/{primary}")
    assert response.status_code == 409
    assert response.json()["error"] == "in_use"

    response = client.delete("/api/budget-items/999")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"
