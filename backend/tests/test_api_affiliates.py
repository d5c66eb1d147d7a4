import os
from uuid import uuid4

os.environ["DATABASE_URL"] = f"sqlite:///./ledger_{uuid4().hex}.db"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"
os.environ["SKIP_MIGRATIONS"] = "1"

from fastapi.testclient import TestClient  # noqa: E402

from affiliate_ledger.main import app  # noqa: E402
from affiliate_ledger.core.db import Base, SessionLocal, engine  # noqa: E402
from tests.factories import configure_program, make_affiliate, make_approved_commission, make_coupon  # noqa: E402


client = TestClient(app)
Base.metadata.create_all(bind=engine)

ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token"}


def _funded_affiliate(subtotal=4000):
    with SessionLocal() as db:
        configure_program(db, min_withdrawal_amount=100)
        affiliate = make_affiliate(db)
        make_approved_commission(db, affiliate=affiliate, subtotal=subtotal)
        return affiliate.id, affiliate.promo_code


def test_health_and_metrics():
    assert client.get("/health").json() == {"status": "ok"}
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "affiliate_commission_events_total" in resp.text


def test_enroll_affiliate():
    with SessionLocal() as db:
        configure_program(db)
    user_id = f"user_{uuid4().hex[:10]}"
    resp = client.post("/affiliates", json={"user_id": user_id, "full_name": "Jane Doe"})
    assert resp.status_code == 201
    body = resp.json()
    assert body["promo_code"].startswith("JAN")
    assert body["status"] == "active"
    assert body["current_level"] == 1
    assert body["available_balance"] == 0
    assert body["link"].endswith(f"/?ref={body['promo_code']}")

    duplicate = client.post("/affiliates", json={"user_id": user_id})
    assert duplicate.status_code == 422
    assert duplicate.headers["X-Error-Code"] == "validation_error"


def test_enroll_rejected_when_program_disabled():
    with SessionLocal() as db:
        configure_program(db, enabled=False)
    resp = client.post("/affiliates", json={"user_id": f"user_{uuid4().hex[:10]}"})
    assert resp.status_code == 403
    assert resp.json()["code"] == "inactive_or_disabled"
    with SessionLocal() as db:
        configure_program(db)


def test_unknown_affiliate_is_404():
    resp = client.get("/affiliates/999999")
    assert resp.status_code == 404
    assert resp.headers["X-Error-Code"] == "not_found"
    assert resp.json()["context"] == {"affiliate_id": 999999}


def test_attribution_endpoints():
    with SessionLocal() as db:
        configure_program(db, cookie_expiry_days=30)
        affiliate = make_affiliate(db)
        promo_code = affiliate.promo_code

    resp = client.post("/attribution", json={"promo_code": promo_code.lower()})
    assert resp.status_code == 200
    body = resp.json()
    assert body["attributed"] is True
    assert body["promo_code"] == promo_code
    assert body["cookie_name"] == "affiliate_ref"

    validated = client.post("/attribution/validate", json={"token": body["token"]})
    assert validated.json()["status"] == "valid"
    assert validated.json()["affiliate_id"] == affiliate.id

    invalid = client.post("/attribution/validate", json={"token": body["token"] + "x"})
    assert invalid.json()["status"] == "invalid"

    unknown = client.post("/attribution", json={"promo_code": "NOPE12345678"})
    assert unknown.status_code == 200
    assert unknown.json()["attributed"] is False

    # An unknown code leaves the visitor's existing token in place.
    kept = client.post("/attribution", json={"promo_code": "NOPE12345678", "token": body["token"]})
    assert kept.json()["attributed"] is True
    assert kept.json()["affiliate_id"] == affiliate.id


def test_progress_and_commissions_endpoints():
    affiliate_id, _ = _funded_affiliate()
    progress = client.get(f"/affiliates/{affiliate_id}/progress").json()
    assert progress["current_level"] == 1
    assert progress["delivered_orders"] == 1
    assert progress["next_level"] == 2
    assert progress["next_level_required_sales"] == 10
    assert progress["progress"] == 0.1

    commissions = client.get(f"/affiliates/{affiliate_id}/commissions").json()
    assert commissions["meta"]["total"] == 1
    assert commissions["data"][0]["status"] == "approved"
    assert commissions["data"][0]["commission_amount"] == 200.0

    summary = client.get(f"/affiliates/{affiliate_id}/summary").json()
    assert summary["available_balance"] == 200.0


def test_withdrawal_flow_over_http():
    affiliate_id, _ = _funded_affiliate()

    too_much = client.post(
        f"/affiliates/{affiliate_id}/withdrawals",
        json={
            "amount": 250,
            "payment_method": "bank_transfer",
            "payment_details": {"accountName": "Jane", "accountNumber": "123", "bankName": "City"},
        },
    )
    assert too_much.status_code == 422

    missing_mobile = client.post(
        f"/affiliates/{affiliate_id}/withdrawals",
        json={"amount": 150, "payment_method": "bkash", "payment_details": {"accountName": "Jane"}},
    )
    assert missing_mobile.status_code == 422

    created = client.post(
        f"/affiliates/{affiliate_id}/withdrawals",
        json={
            "amount": 150,
            "payment_method": "bank_transfer",
            "payment_details": {"accountName": "Jane", "accountNumber": "123", "bankName": "City"},
        },
    )
    assert created.status_code == 201
    withdrawal = created.json()
    assert withdrawal["status"] == "pending"
    assert withdrawal["payment_details"]["account_number"] == "123"
    assert client.get(f"/affiliates/{affiliate_id}").json()["available_balance"] == 50.0

    listed = client.get(f"/affiliates/{affiliate_id}/withdrawals").json()
    assert [row["id"] for row in listed] == [withdrawal["id"]]

    unauthorized = client.post(
        f"/admin/affiliates/withdrawals/{withdrawal['id']}/approve",
        json={"processed_by": "ops"},
    )
    assert unauthorized.status_code == 401

    early = client.post(
        f"/admin/affiliates/withdrawals/{withdrawal['id']}/complete",
        json={"processed_by": "ops"},
        headers=ADMIN_HEADERS,
    )
    assert early.status_code == 409
    assert early.json()["context"]["current_status"] == "pending"

    approved = client.post(
        f"/admin/affiliates/withdrawals/{withdrawal['id']}/approve",
        json={"processed_by": "ops"},
        headers=ADMIN_HEADERS,
    )
    assert approved.json()["status"] == "approved"
    completed = client.post(
        f"/admin/affiliates/withdrawals/{withdrawal['id']}/complete",
        json={"processed_by": "ops", "notes": "paid"},
        headers=ADMIN_HEADERS,
    )
    assert completed.json()["status"] == "completed"

    account = client.get(f"/affiliates/{affiliate_id}").json()
    assert account["total_withdrawn"] == 150.0
    assert account["available_balance"] == 50.0

    report = client.get(f"/admin/affiliates/{affiliate_id}/reconcile", headers=ADMIN_HEADERS).json()
    assert report["consistent"] is True


def test_admin_settings_endpoints():
    with SessionLocal() as db:
        configure_program(db)
    current = client.get("/admin/affiliates/settings", headers=ADMIN_HEADERS)
    assert current.status_code == 200
    assert current.json()["commission_levels"]["2"]["percentage"] == 8.0

    rejected = client.patch(
        "/admin/affiliates/settings",
        json={"cookie_expiry_days": 0},
        headers=ADMIN_HEADERS,
    )
    assert rejected.status_code == 422
    assert rejected.headers["X-Error-Code"] == "validation_error"

    updated = client.patch(
        "/admin/affiliates/settings",
        json={"cookie_expiry_days": 45},
        headers=ADMIN_HEADERS,
    )
    assert updated.status_code == 200
    assert updated.json()["cookie_expiry_days"] == 45

    assert client.get("/admin/affiliates/settings").status_code == 401
    with SessionLocal() as db:
        configure_program(db)


def test_admin_affiliate_management():
    with SessionLocal() as db:
        configure_program(db)
        affiliate = make_affiliate(db, full_name="Searchable Name")
        coupon = make_coupon(db)
        affiliate_id, coupon_id = affiliate.id, coupon.id

    listed = client.get("/admin/affiliates", params={"search": "Searchable"}, headers=ADMIN_HEADERS).json()
    assert any(item["id"] == affiliate_id for item in listed["data"])

    suspended = client.patch(
        f"/admin/affiliates/{affiliate_id}/status",
        json={"status": "suspended"},
        headers=ADMIN_HEADERS,
    )
    assert suspended.json()["status"] == "suspended"
    bad_status = client.patch(
        f"/admin/affiliates/{affiliate_id}/status",
        json={"status": "deleted"},
        headers=ADMIN_HEADERS,
    )
    assert bad_status.status_code == 422

    assigned = client.put(
        f"/admin/affiliates/{affiliate_id}/coupon",
        json={"coupon_id": coupon_id},
        headers=ADMIN_HEADERS,
    )
    assert assigned.json()["assigned_coupon_id"] == coupon_id
    cleared = client.put(
        f"/admin/affiliates/{affiliate_id}/coupon",
        json={"coupon_id": "undefined"},
        headers=ADMIN_HEADERS,
    )
    assert cleared.json()["assigned_coupon_id"] is None
    missing = client.put(
        f"/admin/affiliates/{affiliate_id}/coupon",
        json={"coupon_id": 987654},
        headers=ADMIN_HEADERS,
    )
    assert missing.status_code == 404


def test_admin_coupons():
    code = f"save{uuid4().hex[:6]}"
    created = client.post(
        "/admin/affiliates/coupons",
        json={"code": code, "discount_type": "flat", "discount_value": 15},
        headers=ADMIN_HEADERS,
    )
    assert created.status_code == 201
    assert created.json()["code"] == code.upper()

    duplicate = client.post(
        "/admin/affiliates/coupons",
        json={"code": code, "discount_type": "flat", "discount_value": 15},
        headers=ADMIN_HEADERS,
    )
    assert duplicate.status_code == 422
    bad_type = client.post(
        "/admin/affiliates/coupons",
        json={"code": f"x{uuid4().hex[:6]}", "discount_type": "bogo", "discount_value": 1},
        headers=ADMIN_HEADERS,
    )
    assert bad_type.status_code == 422

    codes = [row["code"] for row in client.get("/admin/affiliates/coupons", headers=ADMIN_HEADERS).json()]
    assert code.upper() in codes


def test_order_events_endpoint():
    with SessionLocal() as db:
        configure_program(db)
        affiliate = make_affiliate(db)
        promo_code = affiliate.promo_code
    token = client.post("/attribution", json={"promo_code": promo_code}).json()["token"]
    order_id = f"order_{uuid4().hex[:12]}"

    created = client.post(
        "/order-events",
        json={
            "type": "order.created",
            "order_id": order_id,
            "commissionable_subtotal": 1000,
            "affiliate_attribution": token,
        },
        headers=ADMIN_HEADERS,
    )
    assert created.status_code == 200
    [commission] = created.json()["commissions"]
    assert commission["status"] == "pending"
    assert commission["commission_amount"] == 50.0

    delivered = client.post(
        "/order-events",
        json={"type": "order.delivered", "order_id": order_id},
        headers=ADMIN_HEADERS,
    )
    assert [row["status"] for row in delivered.json()["commissions"]] == ["approved"]

    cancel = client.post(
        f"/admin/affiliates/commissions/{commission['id']}/cancel",
        json={"reason": "fraud"},
        headers=ADMIN_HEADERS,
    )
    assert cancel.json()["status"] == "cancelled"
    assert cancel.json()["cancel_reason"] == "fraud"

    unknown = client.post(
        "/order-events",
        json={"type": "order.cancelled", "order_id": f"order_{uuid4().hex[:12]}"},
        headers=ADMIN_HEADERS,
    )
    assert unknown.json()["commissions"] == []

    bad_type = client.post(
        "/order-events",
        json={"type": "order.exploded", "order_id": order_id},
        headers=ADMIN_HEADERS,
    )
    assert bad_type.status_code == 422
    assert client.post("/order-events", json={"type": "order.delivered", "order_id": order_id}).status_code == 401
