"""
API tests: identity headers, role and location checks, error envelope.
"""

from stockledger.services import period_service, reconciliation_service

from conftest import add_stock, identity_headers


def test_health(client, db_session):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json["status"] == "healthy"


def test_missing_identity_is_unauthorized(client, db_session, open_period, kitchen):
    response = client.get(f"/api/locations/{kitchen.id}/stock")

    assert response.status_code == 401
    assert response.json["error"]["code"] == "UNAUTHORIZED"


def test_location_scope_is_enforced(client, db_session, open_period, kitchen, store):
    headers = identity_headers(role="OPERATOR", locations=[store.id])

    response = client.get(f"/api/locations/{kitchen.id}/stock", headers=headers)
    assert response.status_code == 403

    response = client.get(f"/api/locations/{store.id}/stock", headers=headers)
    assert response.status_code == 200
    assert response.json["items"] == []
    assert response.json["total_value"] == "0.00"


def test_post_delivery_returns_ncrs(client, db_session, open_period, kitchen, supplier, rice):
    response = client.post(
        f"/api/locations/{kitchen.id}/deliveries",
        json={
            "supplier_id": supplier.id,
            "invoice_no": "INV-API-1",
            "lines": [{"item_id": rice.id, "quantity": "10", "unit_price": "26.00"}],
        },
        headers=identity_headers(locations=[kitchen.id]),
    )

    assert response.status_code == 201
    body = response.json
    assert body["delivery"]["status"] == "POSTED"
    assert body["delivery"]["total_amount"] == "260.00"
    assert body["ncr_count"] == 1
    assert body["ncrs_created"][0]["value"] == "10.00"

    stock = client.get(f"/api/locations/{kitchen.id}/stock", headers=identity_headers())
    assert stock.json["items"][0]["on_hand"] == "10.0000"


def test_error_envelope(client, db_session, open_period, kitchen, supplier, rice):
    response = client.post(
        f"/api/locations/{kitchen.id}/deliveries",
        json={
            "supplier_id": supplier.id,
            "lines": [{"item_id": rice.id, "quantity": "10", "unit_price": "25.00"}],
        },
        headers=identity_headers(),
    )

    assert response.status_code == 400
    error = response.json["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"]["field"] == "invoice_no"


def test_insufficient_stock_issue(client, db_session, open_period, kitchen, rice):
    add_stock(kitchen.id, rice.id, 5, "10.00")

    response = client.post(
        f"/api/locations/{kitchen.id}/issues",
        json={"cost_centre": "FOOD", "lines": [{"item_id": rice.id, "quantity": "6"}]},
        headers=identity_headers(),
    )

    assert response.status_code == 400
    assert response.json["error"]["code"] == "INSUFFICIENT_STOCK"
    assert response.json["error"]["details"]["available"] == "5.0000"


def test_operator_cannot_approve_transfer(client, db_session, open_period, kitchen, store, oil):
    add_stock(kitchen.id, oil.id, 100, "8.00")

    created = client.post(
        "/api/transfers",
        json={
            "from_location_id": kitchen.id,
            "to_location_id": store.id,
            "lines": [{"item_id": oil.id, "quantity": "10"}],
        },
        headers=identity_headers(locations=[kitchen.id]),
    )
    assert created.status_code == 201
    transfer_id = created.json["transfer"]["id"]
    assert created.json["transfer"]["status"] == "PENDING_APPROVAL"

    denied = client.patch(f"/api/transfers/{transfer_id}/approve", json={}, headers=identity_headers())
    assert denied.status_code == 403

    approved = client.patch(
        f"/api/transfers/{transfer_id}/approve",
        json={"comment": "ok"},
        headers=identity_headers(user_id=9, role="SUPERVISOR"),
    )
    assert approved.status_code == 200
    assert approved.json["transfer"]["status"] == "COMPLETED"
    assert approved.json["transfer"]["total_value"] == "80.00"


def test_period_close_needs_admin(client, db_session, open_period, kitchen, store):
    for location in (kitchen, store):
        reconciliation_service.save_reconciliation_adjustments(open_period.id, location.id, {})
        period_service.mark_location_ready(open_period.id, location.id)

    requested = client.post(
        f"/api/periods/{open_period.id}/close",
        headers=identity_headers(role="ADMIN"),
    )
    assert requested.status_code == 201
    approval_id = requested.json["approval"]["id"]

    supervisor = client.patch(
        f"/api/approvals/{approval_id}/approve",
        json={},
        headers=identity_headers(role="SUPERVISOR"),
    )
    assert supervisor.status_code == 403

    admin = client.patch(
        f"/api/approvals/{approval_id}/approve",
        json={"comment": "Month end"},
        headers=identity_headers(user_id=99, role="ADMIN"),
    )
    assert admin.status_code == 200
    assert admin.json["approval"]["status"] == "APPROVED"

    period = client.get(f"/api/periods/{open_period.id}", headers=identity_headers())
    assert period.json["period"]["status"] == "CLOSED"


def test_close_request_reports_unready_locations(client, db_session, open_period, kitchen, store):
    response = client.post(
        f"/api/periods/{open_period.id}/close",
        headers=identity_headers(role="ADMIN"),
    )

    assert response.status_code == 400
    assert response.json["error"]["code"] == "LOCATIONS_NOT_READY"
    assert len(response.json["error"]["details"]["locations"]) == 2


def test_price_update_on_open_period_is_locked(client, db_session, open_period, rice):
    response = client.post(
        f"/api/periods/{open_period.id}/prices",
        json={"prices": [{"item_id": rice.id, "price": "30.00"}]},
        headers=identity_headers(role="ADMIN"),
    )

    assert response.status_code == 400
    assert response.json["error"]["code"] == "PERIOD_CLOSED"


def test_reconciliation_roundtrip(client, db_session, open_period, kitchen):
    patched = client.patch(
        f"/api/locations/{kitchen.id}/reconciliations/{open_period.id}",
        json={"adjustments": "-15.00"},
        headers=identity_headers(role="SUPERVISOR"),
    )
    assert patched.status_code == 200
    assert patched.json["exists"] is True
    assert patched.json["breakdown"]["adjustments"] == "-15.00"
    assert patched.json["breakdown"]["consumption"] == "-15.00"

    fetched = client.get(
        f"/api/locations/{kitchen.id}/reconciliations/{open_period.id}",
        headers=identity_headers(locations=[kitchen.id]),
    )
    assert fetched.json["reconciliation"]["adjustments"] == "-15.00"


def test_mandays_endpoint(client, db_session, open_period, kitchen):
    response = client.post(
        f"/api/locations/{kitchen.id}/mandays",
        json={
            "period_id": open_period.id,
            "entries": [{"date": "2026-03-01", "crew_count": 40, "extra_count": 2}],
        },
        headers=identity_headers(locations=[kitchen.id]),
    )

    assert response.status_code == 200
    assert response.json["total_mandays"] == 42


def test_ncr_settlement_needs_elevated_role(client, db_session, open_period, kitchen):
    created = client.post(
        "/api/ncrs",
        json={"location_id": kitchen.id, "reason": "Broken seal", "value": "12.50"},
        headers=identity_headers(locations=[kitchen.id]),
    )
    assert created.status_code == 201
    ncr_id = created.json["ncr"]["id"]

    sent = client.patch(f"/api/ncrs/{ncr_id}", json={"status": "SENT"}, headers=identity_headers())
    assert sent.status_code == 200

    denied = client.patch(f"/api/ncrs/{ncr_id}", json={"status": "CREDITED"}, headers=identity_headers())
    assert denied.status_code == 403

    credited = client.patch(
        f"/api/ncrs/{ncr_id}",
        json={"status": "CREDITED"},
        headers=identity_headers(role="SUPERVISOR"),
    )
    assert credited.status_code == 200
    assert credited.json["ncr"]["status"] == "CREDITED"


def test_manual_ncr_with_malformed_line_is_rejected(client, db_session, open_period, kitchen, rice):
    headers = identity_headers(locations=[kitchen.id])

    response = client.post(
        "/api/ncrs",
        json={"location_id": kitchen.id, "reason": "Bad lines", "lines": ["oops"]},
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json["error"]["code"] == "VALIDATION_ERROR"
    assert response.json["error"]["details"]["line"] == 1

    response = client.post(
        "/api/ncrs",
        json={
            "location_id": kitchen.id,
            "reason": "Bad lines",
            "lines": [{"item_id": rice.id, "quantity": "abc", "unit_value": "3.00"}],
        },
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json["error"]["code"] == "VALIDATION_ERROR"

    summary = client.get(
        f"/api/ncrs/summary?period_id={open_period.id}&location_id={kitchen.id}",
        headers=headers,
    )
    assert summary.json["summary"]["open"]["count"] == 0


def test_document_lists_are_location_scoped(client, db_session, open_period, kitchen, store, oil):
    add_stock(kitchen.id, oil.id, 50, "8.00")
    client.post(
        f"/api/locations/{kitchen.id}/issues",
        json={"cost_centre": "CLEAN", "lines": [{"item_id": oil.id, "quantity": "2"}]},
        headers=identity_headers(),
    )
    client.post(
        "/api/transfers",
        json={
            "from_location_id": kitchen.id,
            "to_location_id": store.id,
            "lines": [{"item_id": oil.id, "quantity": "5"}],
        },
        headers=identity_headers(),
    )

    issues = client.get(f"/api/locations/{kitchen.id}/issues", headers=identity_headers())
    assert len(issues.json["issues"]) == 1

    deliveries = client.get(f"/api/locations/{kitchen.id}/deliveries", headers=identity_headers())
    assert deliveries.json["deliveries"] == []

    store_only = identity_headers(locations=[store.id])
    transfers = client.get("/api/transfers", headers=store_only)
    assert len(transfers.json["transfers"]) == 1

    denied = client.get(f"/api/transfers?location_id={kitchen.id}", headers=store_only)
    assert denied.status_code == 403
