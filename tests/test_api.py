import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from errors import WriteConflictError
from main import app, get_db
from models import Account, Category, TransactionType
from services import MonthlyExpenseService


@pytest.fixture()
def client_and_ids():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    with TestingSession() as session:
        housing = Category(user_id=1, name="Housing", type=TransactionType.expense)
        salary = Category(user_id=1, name="Salary", type=TransactionType.income)
        checking = Account(
            user_id=1,
            name="Checking",
            initial_balance_cents=50_000_000,
            current_balance_cents=50_000_000,
        )
        session.add_all([housing, salary, checking])
        session.commit()
        ids = {"housing": housing.id, "salary": salary.id, "checking": checking.id}

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app), ids
    finally:
        app.dependency_overrides.clear()


def test_monthly_view_generates_then_pay_and_undo(client_and_ids):
    client, ids = client_and_ids
    created = client.post(
        "/api/recurring-expenses",
        json={"concept": "Rent", "category_id": ids["housing"], "currency_code": "ars"},
    )
    assert created.status_code == 201
    assert created.json()["currency_code"] == "ARS"

    listing = client.get("/api/monthly-expenses/11/2024")
    assert listing.status_code == 200
    body = listing.json()
    assert body["count"] == 1
    (instance,) = body["monthly_expenses"]
    assert instance["status"] == "pending"
    assert instance["amount_cents"] == 0

    paid = client.put(
        f"/api/monthly-expenses/{instance['id']}/pay",
        json={
            "amount_cents": 15_000_000,
            "account_id": ids["checking"],
            "paid_date": "2024-11-05T10:00:00",
        },
    )
    assert paid.status_code == 200
    assert paid.json()["monthly_expense"]["status"] == "paid"
    assert paid.json()["transaction"]["amount_cents"] == 15_000_000
    assert paid.json()["transaction"]["type"] == "expense"

    again = client.put(
        f"/api/monthly-expenses/{instance['id']}/pay",
        json={"amount_cents": 1, "account_id": ids["checking"]},
    )
    assert again.status_code == 400

    edited = client.put(
        f"/api/monthly-expenses/{instance['id']}", json={"notes": "landlord"}
    )
    assert edited.status_code == 200
    assert edited.json()["notes"] == "landlord"

    undone = client.put(f"/api/monthly-expenses/{instance['id']}/undo")
    assert undone.status_code == 200
    assert undone.json()["status"] == "pending"
    assert undone.json()["amount_cents"] == 0

    regenerated = client.post(
        "/api/monthly-expenses/generate", json={"month": 11, "year": 2024}
    )
    assert regenerated.json() == {
        "created": 0,
        "skipped": 1,
        "errors": 0,
        "month": 11,
        "year": 2024,
    }


def test_template_requires_expense_category(client_and_ids):
    client, ids = client_and_ids
    response = client.post(
        "/api/recurring-expenses",
        json={"concept": "Salary", "category_id": ids["salary"], "currency_code": "ARS"},
    )
    assert response.status_code == 400

    missing = client.post(
        "/api/recurring-expenses",
        json={"concept": "Rent", "category_id": 999, "currency_code": "ARS"},
    )
    assert missing.status_code == 404


def test_error_kinds_map_to_status_codes(client_and_ids, monkeypatch):
    client, ids = client_and_ids

    assert client.get("/api/monthly-expenses/13/2024").status_code == 400
    assert (
        client.put(
            "/api/monthly-expenses/999/pay",
            json={"amount_cents": 100, "account_id": ids["checking"]},
        ).status_code
        == 404
    )
    assert client.put("/api/monthly-expenses/999/undo").status_code == 404
    assert (
        client.put(
            "/api/monthly-expenses/1/pay",
            json={"amount_cents": 0, "account_id": ids["checking"]},
        ).status_code
        == 422
    )

    def conflicted(self, instance_id, data):
        raise WriteConflictError("Concurrent update while running pay; please retry")

    monkeypatch.setattr(MonthlyExpenseService, "pay", conflicted)
    response = client.put(
        "/api/monthly-expenses/1/pay",
        json={"amount_cents": 100, "account_id": ids["checking"]},
    )
    assert response.status_code == 409


def test_deactivated_template_stops_generation(client_and_ids):
    client, ids = client_and_ids
    template = client.post(
        "/api/recurring-expenses",
        json={"concept": "Gym", "category_id": ids["housing"], "currency_code": "ARS"},
    ).json()

    deactivated = client.post(f"/api/recurring-expenses/{template['id']}/deactivate")
    assert deactivated.status_code == 200
    assert deactivated.json()["is_active"] is False

    listing = client.get("/api/monthly-expenses/12/2024").json()
    assert listing["count"] == 0
    active = client.get("/api/recurring-expenses", params={"active_only": True}).json()
    assert active == []


def test_template_update_leaves_generated_instances_alone(client_and_ids):
    client, ids = client_and_ids
    template = client.post(
        "/api/recurring-expenses",
        json={
            "concept": "Streaming",
            "category_id": ids["housing"],
            "currency_code": "USD",
            "due_day": 15,
        },
    ).json()
    client.get("/api/monthly-expenses/11/2024")

    updated = client.patch(
        f"/api/recurring-expenses/{template['id']}",
        json={"concept": "Streaming (family plan)", "due_day": None},
    )
    assert updated.status_code == 200
    assert updated.json()["concept"] == "Streaming (family plan)"
    assert updated.json()["due_day"] is None
    assert updated.json()["currency_code"] == "USD"

    november = client.get("/api/monthly-expenses/11/2024").json()
    assert [i["concept"] for i in november["monthly_expenses"]] == ["Streaming"]
    december = client.get("/api/monthly-expenses/12/2024").json()
    assert [i["concept"] for i in december["monthly_expenses"]] == [
        "Streaming (family plan)"
    ]


def test_get_recurring_expense_and_blank_concept_rejected(client_and_ids):
    client, ids = client_and_ids
    template = client.post(
        "/api/recurring-expenses",
        json={"concept": "Rent", "category_id": ids["housing"], "currency_code": "ARS"},
    ).json()

    fetched = client.get(f"/api/recurring-expenses/{template['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["concept"] == "Rent"
    assert client.get("/api/recurring-expenses/999").status_code == 404

    blank = client.patch(
        f"/api/recurring-expenses/{template['id']}", json={"concept": "   "}
    )
    assert blank.status_code == 422
    trimmed = client.patch(
        f"/api/recurring-expenses/{template['id']}", json={"concept": "  Rent flat "}
    )
    assert trimmed.json()["concept"] == "Rent flat"
