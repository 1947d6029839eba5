"""
HTTP API and CLI tests through the Flask test client.
"""

import pytest

ADMIN = {"X-Actor-Id": "admin", "X-Actor-Name": "Admin"}
CASHIER = {"X-Actor-Id": "op-1", "X-Actor-Name": "Omar"}


@pytest.fixture
def item_id(client):
    resp = client.post(
        "/api/items",
        json={"name": "Cola", "section": "store", "sell_price_cents": 1000, "cost_price_cents": 600, "current_amount": 10},
        headers=ADMIN,
    )
    assert resp.status_code == 201
    return resp.get_json()["item"]["id"]


def _start(client, section="store"):
    resp = client.post("/api/shifts/start", json={"section": section}, headers=CASHIER)
    assert resp.status_code == 201
    return resp.get_json()["shift"]


class TestCatalogRoutes:
    def test_item_crud(self, client, item_id):
        resp = client.get("/api/items?section=store")
        assert [i["id"] for i in resp.get_json()["items"]] == [item_id]

        resp = client.patch(f"/api/items/{item_id}", json={"sell_price_cents": 1100}, headers=ADMIN)
        assert resp.status_code == 200
        assert resp.get_json()["item"]["sell_price_cents"] == 1100

        assert client.delete(f"/api/items/{item_id}", headers=ADMIN).status_code == 200
        assert client.get(f"/api/items/{item_id}").status_code == 404

    def test_validation_errors_are_400(self, client):
        resp = client.post("/api/items", json={"name": "X", "section": "store"}, headers=ADMIN)
        assert resp.status_code == 400
        assert "Missing required fields" in resp.get_json()["error"]

    def test_list_requires_known_section(self, client):
        assert client.get("/api/items?section=garage").status_code == 400


class TestShiftRoutes:
    def test_sale_and_close_flow(self, client, item_id):
        shift = _start(client)
        assert client.post("/api/shifts/start", json={"section": "store"}, headers=CASHIER).status_code == 409

        resp = client.post(
            "/api/shifts/sales",
            json={"section": "store", "lines": [{"item_id": item_id, "quantity": 2}]},
            headers=CASHIER,
        )
        assert resp.status_code == 201
        assert resp.get_json()["total_cents"] == 2000

        resp = client.post("/api/shifts/expenses", json={"section": "store", "amount_cents": 500, "reason": "ice"}, headers=CASHIER)
        assert resp.status_code == 201

        resp = client.post("/api/shifts/close", json={"section": "store", "final_cash_cents": 1000}, headers=CASHIER)
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["reason_required"] is True
        assert body["discrepancies"] == ["5.00 cash missing"]
        assert body["reconciliation"]["expected_cash_cents"] == 1500

        resp = client.post(
            "/api/shifts/close",
            json={"section": "store", "final_cash_cents": 1000, "reason": "short change"},
            headers=CASHIER,
        )
        assert resp.status_code == 200
        assert resp.get_json()["reconciliation"]["validation_status"] == "discrepancy"

        details = client.get(f"/api/shifts/{shift['id']}").get_json()
        assert details["shift"]["status"] == "closed"
        assert details["shift"]["closed_by"] == "op-1"
        assert client.get("/api/shifts/active?section=store").get_json()["shift"] is None

    def test_sale_beyond_stock_is_409(self, client, item_id):
        _start(client)
        resp = client.post(
            "/api/shifts/sales",
            json={"section": "store", "lines": [{"item_id": item_id, "quantity": 11}]},
            headers=CASHIER,
        )
        assert resp.status_code == 409
        assert client.get(f"/api/items/{item_id}").get_json()["item"]["current_amount"] == 10

    def test_dry_run_close(self, client):
        _start(client)
        resp = client.post("/api/shifts/close", json={"section": "store", "final_cash_cents": 0, "dry_run": True}, headers=CASHIER)
        assert resp.status_code == 200
        assert resp.get_json()["reconciliation"]["committed"] is False
        assert client.get("/api/shifts/active?section=store").get_json()["shift"] is not None

    def test_external_money_edit_and_delete(self, client):
        _start(client)
        entry = client.post(
            "/api/shifts/external-money",
            json={"section": "store", "amount_cents": 2500, "reason": "float"},
            headers=CASHIER,
        ).get_json()["external_money"]

        resp = client.patch(f"/api/shifts/external-money/{entry['id']}", json={"amount_cents": 2000}, headers=ADMIN)
        assert resp.status_code == 200
        assert client.get("/api/shifts/active?section=store").get_json()["shift"]["total_amount_cents"] == 2000

        assert client.delete(f"/api/shifts/external-money/{entry['id']}", headers=ADMIN).status_code == 200
        assert client.delete(f"/api/shifts/external-money/{entry['id']}", headers=ADMIN).status_code == 404


class TestDebtRoutes:
    def test_unpaid_sale_then_payment(self, client, item_id):
        _start(client)
        customer = client.post("/api/customers", json={"name": "Ahmed", "section": "store"}, headers=ADMIN).get_json()["customer"]

        resp = client.post(
            "/api/shifts/sales",
            json={"section": "store", "lines": [{"item_id": item_id, "quantity": 1}], "is_paid": False, "customer_id": customer["id"]},
            headers=CASHIER,
        )
        assert resp.status_code == 201

        debt = client.get(f"/api/debts/customers/{customer['id']}").get_json()["debt"]
        assert debt["total_cents"] == 1000

        resp = client.post(f"/api/debts/customers/{customer['id']}/payments", json={"amount_cents": 2000}, headers=CASHIER)
        assert resp.status_code == 400

        resp = client.post(f"/api/debts/customers/{customer['id']}/payments", json={"amount_cents": 400}, headers=CASHIER)
        assert resp.status_code == 201
        assert resp.get_json()["remaining_debt_cents"] == 600

        debtors = client.get("/api/debts/debtors?section=store").get_json()["debtors"]
        assert [d["total_cents"] for d in debtors] == [600]
        assert client.get("/api/debts/customers/ghost").status_code == 404


class TestSupplierAndArchiveRoutes:
    def test_supplier_transactions(self, client):
        resp = client.post("/api/supplier-debt/transactions", json={"type": "debt", "amount_cents": 3000}, headers=ADMIN)
        assert resp.status_code == 201
        resp = client.post("/api/supplier-debt/transactions", json={"type": "payment", "amount_cents": 5000}, headers=ADMIN)
        assert resp.get_json()["debt"]["amount_cents"] == 0
        assert resp.get_json()["transaction"]["applied_cents"] == -3000
        assert client.get("/api/supplier-debt/verify").get_json() == {"consistent": True}

    def test_supplier_transaction_requires_actor(self, client):
        resp = client.post("/api/supplier-debt/transactions", json={"type": "debt", "amount_cents": 3000})
        assert resp.status_code == 400

    def test_archive_flow(self, client, item_id):
        _start(client)
        client.post("/api/shifts/sales", json={"section": "store", "lines": [{"item_id": item_id, "quantity": 1}]}, headers=CASHIER)

        resp = client.post("/api/archives", json={"section": "store", "month": "2026-09"}, headers=ADMIN)
        assert resp.status_code == 409

        client.post("/api/shifts/close", json={"section": "store", "final_cash_cents": 1000}, headers=CASHIER)
        assert client.get("/api/archives/summary?section=store").get_json()["summary"]["total_revenue_cents"] == 1000

        resp = client.post("/api/archives", json={"section": "store", "month": "2026-09"}, headers=ADMIN)
        assert resp.status_code == 201
        archive = resp.get_json()["archive"]
        assert client.get(f"/api/archives/{archive['id']}").get_json()["archive"]["total_revenue_cents"] == 1000
        assert client.get("/api/shifts?section=store").get_json()["shifts"] == []


class TestSystemRoutes:
    def test_health(self, client):
        resp = client.get("/api/system/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["persistence"]["mode"] == "online"
        assert body["checks"]["local_cache"]["status"] == "healthy"
        assert body["peers"] == {"enabled": False, "connected": False}

    def test_admin_logs(self, client, item_id):
        logs = client.get("/api/admin-logs?section=store&limit=5").get_json()["logs"]
        assert logs[0]["action_type"] == "item_created"
        assert logs[0]["actor"] == "admin"

    def test_relay_endpoints(self, client):
        a = client.post("/api/realtime/peers", json={"actor_id": "terminal-a"}).get_json()
        b = client.post("/api/realtime/peers", json={"actor_id": "terminal-b"}).get_json()

        resp = client.post("/api/realtime/events", json={"peer_id": a["peer_id"], "event": {"event_type": "item-changed"}})
        assert resp.status_code == 202

        resp = client.get(f"/api/realtime/events?peer_id={b['peer_id']}&cursor={b['cursor']}")
        assert [e["event_type"] for e in resp.get_json()["events"]] == ["item-changed"]

        assert client.get("/api/realtime/events?peer_id=ghost").status_code == 404
        assert client.delete(f"/api/realtime/peers/{a['peer_id']}").status_code == 200
        assert len(client.get("/api/realtime/peers").get_json()["peers"]) == 1


class TestCli:
    def test_status_and_supplier_debt(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["ledger", "status"])
        assert result.exit_code == 0
        assert "Mode: online" in result.output

        result = runner.invoke(args=["ledger", "supplier-debt", "--apply", "debt", "--amount", "2500", "--note", "Invoice 7"])
        assert result.exit_code == 0
        assert "Supplier debt: 25.00" in result.output

        result = runner.invoke(args=["ledger", "verify-supplier-debt"])
        assert result.exit_code == 0
        assert result.output.startswith("PASS")

    def test_archive_command(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["ledger", "archive", "--section", "store", "--month", "2026-08", "--yes"])
        assert result.exit_code == 0
        assert "PASS Archived store 2026-08" in result.output

        result = runner.invoke(args=["ledger", "archive", "--section", "store", "--month", "2026-08", "--yes"])
        assert result.exit_code != 0
        assert "already archived" in result.output
