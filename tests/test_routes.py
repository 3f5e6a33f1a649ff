from __future__ import annotations

import csv
import io

from fastapi.testclient import TestClient

from conftest import BrokenCollection, FakeCollection


def _post(client, day, amount, type, reason, description=""):
    res = client.post("/api/transactions", json={
        "date": day, "amount": amount, "type": type, "reason": reason, "description": description,
    })
    assert res.status_code == 201, res.text
    return res.json()["id"]


def _seed(client):
    _post(client, "2024-02-20", 4000, "income", "Salary Feb")
    _post(client, "2024-03-01", 3000, "income", "Salary")
    _post(client, "2024-03-05", 150, "expense", "Lunch, \"fancy\"", "team")
    _post(client, "2024-03-12", 450, "expense", "Groceries")
    _post(client, "2024-03-14", 600, "saved", "Savings")


def test_list_starts_empty(client) -> None:
    res = client.get("/api/transactions")
    assert res.status_code == 200
    assert res.json() == []


def test_create_then_list(client) -> None:
    new_id = _post(client, "2024-03-02", "1500", "expense", "  Taxi  ")
    assert new_id == 1
    rows = client.get("/api/transactions").json()
    assert len(rows) == 1
    assert rows[0]["amount"] == 1500
    assert rows[0]["reason"] == "Taxi"
    assert rows[0]["description"] == ""


def test_create_rejects_missing_fields(client, collection) -> None:
    res = client.post("/api/transactions", json={"date": "2024-03-02", "amount": 10, "type": "expense"})
    assert res.status_code == 400
    assert res.json()["detail"] == "Missing required fields: date, amount, type, reason"
    assert collection.docs == []


def test_create_rejects_bad_amount(client) -> None:
    for amount in ("-5", 0, "abc", "Infinity", "-Infinity", "NaN"):
        res = client.post("/api/transactions", json={
            "date": "2024-03-02", "amount": amount, "type": "expense", "reason": "Bus",
        })
        assert res.status_code == 400
        assert res.json()["detail"] == "Amount must be a positive number"


def test_infinite_amount_never_reaches_the_view(client, collection) -> None:
    res = client.post("/api/transactions", json={
        "date": "2024-03-10", "amount": "Infinity", "type": "expense", "reason": "Bus",
    })
    assert res.status_code == 400
    assert collection.docs == []

    _post(client, "2024-03-11", 20, "expense", "Bus")
    view = client.get("/api/transactions/view")
    assert view.status_code == 200
    assert view.json()["month_groups"][0]["total"] == -20


def test_create_rejects_non_object_bodies(client, collection) -> None:
    for body in ("[1, 2]", "not json", "", '"text"'):
        res = client.post("/api/transactions", content=body, headers={"Content-Type": "application/json"})
        assert res.status_code == 400
        assert res.json()["detail"] == "Request body must be a JSON object"
    assert collection.docs == []


def test_create_rejects_unknown_type(client) -> None:
    res = client.post("/api/transactions", json={
        "date": "2024-03-02", "amount": 5, "type": "transfer", "reason": "Bus",
    })
    assert res.status_code == 400
    assert res.json()["detail"].startswith("Type must be one of")


def test_create_rejects_blank_reason(client) -> None:
    res = client.post("/api/transactions", json={
        "date": "2024-03-02", "amount": 5, "type": "expense", "reason": "   ",
    })
    assert res.status_code == 400


def test_delete(client) -> None:
    new_id = _post(client, "2024-03-02", 10, "expense", "Bus")
    assert client.delete("/api/transactions").status_code == 400
    assert client.delete("/api/transactions", params={"id": "abc"}).status_code == 400
    assert client.delete("/api/transactions", params={"id": 999}).status_code == 404
    res = client.delete("/api/transactions", params={"id": new_id})
    assert res.status_code == 200
    assert res.json() == {"message": "Transaction deleted"}
    assert client.get("/api/transactions").json() == []


def test_view_defaults_to_current_month(client) -> None:
    _seed(client)
    body = client.get("/api/transactions/view").json()
    assert [t["reason"] for t in body["transactions"]] == ["Savings", "Groceries", "Lunch, \"fancy\"", "Salary"]
    assert [g["label"] for g in body["month_groups"]] == ["March 2024"]
    assert body["month_groups"][0]["total"] == 3000 - 150 - 450 - 600

    insights = body["insights"]
    assert insights["has_data"] is True
    assert insights["liquid_balance"] == 1800
    assert insights["month_outflow"] == 1200
    assert insights["daily_burn"] == 40
    assert insights["savings_rate"] == 20
    assert insights["runway"] == 45
    assert insights["top_reasons"][0] == {"reason": "groceries", "total": 450}
    assert len(insights["last_7_days"]) == 7


def test_view_all_months_sorted_by_amount(client) -> None:
    _seed(client)
    body = client.get("/api/transactions/view", params={
        "all_months": "true", "sort_by": "amount", "sort_order": "desc",
    }).json()
    assert [t["amount"] for t in body["transactions"]] == [4000, 3000, 150, 450, 600]
    assert [g["label"] for g in body["month_groups"]] == ["March 2024", "February 2024"]
    assert body["insights"]["liquid_balance"] == 5800


def test_view_ignores_malformed_amount_bound(client) -> None:
    _seed(client)
    res = client.get("/api/transactions/view", params={"min_amount": "lots", "max_amount": "500", "type": "expense"})
    assert res.status_code == 200
    assert [t["amount"] for t in res.json()["transactions"]] == [450, 150]


def test_view_rejects_unknown_sort_field(client) -> None:
    assert client.get("/api/transactions/view", params={"sort_by": "reason"}).status_code == 400
    assert client.get("/api/transactions/view", params={"sort_order": "up"}).status_code == 400
    assert client.get("/api/transactions/view", params={"type": "transfer"}).status_code == 400


def test_view_empty_state(client) -> None:
    insights = client.get("/api/transactions/view").json()["insights"]
    assert insights["has_data"] is False
    assert insights["runway"] == "unbounded"
    assert insights["savings_rate"] == 0


def test_export_csv(client) -> None:
    _seed(client)
    res = client.get("/api/transactions/export", params={"search": "lunch"})
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert "transactions.csv" in res.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(res.text)))
    assert rows[0] == ["id", "date", "amount", "type", "reason", "description"]
    assert rows[1] == ["3", "2024-03-05", "150", "expense", "Lunch, \"fancy\"", "team"]


def test_database_unavailable_returns_503() -> None:
    from main import app
    app.dependency_overrides.clear()
    res = TestClient(app).get("/api/transactions")
    assert res.status_code == 503
    assert res.json()["detail"] == "Database service not available."


def test_connected_collection_reaches_routes_through_request_state(monkeypatch) -> None:
    import main
    collection = FakeCollection()
    collection.docs.append({
        "id": 1, "date": "2024-03-02", "amount": 10, "type": "expense", "reason": "Bus", "description": "",
    })
    main.app.dependency_overrides.clear()
    monkeypatch.setitem(main.app_state, "transactions_collection", collection)
    res = TestClient(main.app).get("/api/transactions")
    assert res.status_code == 200
    assert [t["id"] for t in res.json()] == [1]
    assert "db" not in main.app_state


def test_driver_failure_returns_503() -> None:
    from main import app
    from routes import get_transactions_collection
    app.dependency_overrides[get_transactions_collection] = lambda: BrokenCollection()
    try:
        res = TestClient(app).get("/api/transactions/view")
    finally:
        app.dependency_overrides.clear()
    assert res.status_code == 503
