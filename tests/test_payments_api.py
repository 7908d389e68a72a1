import time
from types import SimpleNamespace

from study_generator import runtime as app_module


def _checkout_event(session_id="cs_test_1", uid="pay-u1", plan="premium"):
    return {
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "payment_status": "paid",
                "status": "complete",
                "amount_total": 150000,
                "currency": "pkr",
                "payment_intent": "pi_123",
                "metadata": {"uid": uid, "plan": plan},
            },
        },
    }


def test_checkout_invalid_plan_returns_400(client, seed_user, sign_in):
    seed_user("pay-u0")
    sign_in("pay-u0")

    response = client.post("/api/create-checkout-session", json={"plan": "free"})

    assert response.status_code == 400
    assert "invalid plan" in response.get_json()["error"].lower()


def test_checkout_session_carries_plan_metadata(client, seed_user, sign_in, monkeypatch):
    seed_user("pay-u2")
    sign_in("pay-u2")
    captured = {}

    def _create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(url="https://checkout.stripe.test/session")

    monkeypatch.setattr(app_module.stripe.checkout.Session, "create", _create)

    response = client.post("/api/create-checkout-session", json={"plan": "basic"})

    assert response.status_code == 200
    assert response.get_json()["checkout_url"] == "https://checkout.stripe.test/session"
    assert captured["metadata"] == {"uid": "pay-u2", "plan": "basic"}
    assert captured["line_items"][0]["price_data"]["unit_amount"] == 50000


def test_stripe_webhook_requires_secret(client, monkeypatch):
    monkeypatch.setattr(app_module, "STRIPE_WEBHOOK_SECRET", "")

    response = client.post("/api/stripe-webhook", data=b"{}", headers={"Content-Type": "application/json"})

    assert response.status_code == 500
    assert response.get_json().get("error") == "Webhook not configured"


def test_stripe_webhook_activates_plan_once(client, fake_db, seed_user, monkeypatch):
    seed_user("pay-u1")
    monkeypatch.setattr(app_module, "STRIPE_WEBHOOK_SECRET", "whsec_test")
    monkeypatch.setattr(app_module.stripe.Webhook, "construct_event", lambda _payload, _sig, _secret: _checkout_event())

    first = client.post("/api/stripe-webhook", data=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"})
    second = client.post("/api/stripe-webhook", data=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"})

    assert first.status_code == 200
    assert second.status_code == 200
    profile = fake_db.data("users", "pay-u1")
    assert profile["plan"] == "premium"
    assert profile["badge"] == "gold_star"
    assert profile["plan_expires_at"] > 0
    payments = list(fake_db.all("payments").values())
    assert len(payments) == 1
    assert payments[0]["status"] == "confirmed"
    assert payments[0]["payment_method"] == "stripe"


def test_stripe_webhook_rejects_bad_signature(client, monkeypatch):
    monkeypatch.setattr(app_module, "STRIPE_WEBHOOK_SECRET", "whsec_test")

    def _raise(_payload, _sig, _secret):
        raise ValueError("bad payload")

    monkeypatch.setattr(app_module.stripe.Webhook, "construct_event", _raise)

    response = client.post("/api/stripe-webhook", data=b"garbage")

    assert response.status_code == 400


def test_manual_payment_then_admin_confirmation(client, fake_db, seed_user, sign_in):
    seed_user("pay-u3")
    seed_user("pay-admin", role="admin")
    sign_in("pay-u3")

    submitted = client.post("/api/payments/manual", json={"plan": "basic", "transaction_ref": "EP-77881"})
    duplicate = client.post("/api/payments/manual", json={"plan": "basic", "transaction_ref": "EP-77881"})

    assert submitted.status_code == 201
    payment = submitted.get_json()["payment"]
    assert payment["status"] == "pending"
    assert payment["payment_method"] == "easypaisa"
    assert duplicate.status_code == 409
    assert fake_db.data("users", "pay-u3")["plan"] == "free"

    sign_in("pay-admin")
    pending = client.get("/api/admin/payments").get_json()["payments"]
    assert [item["id"] for item in pending] == [payment["id"]]

    confirmed = client.post(f"/api/admin/payments/{payment['id']}/confirm")
    again = client.post(f"/api/admin/payments/{payment['id']}/reject")

    assert confirmed.status_code == 200
    assert again.status_code == 409
    assert fake_db.data("users", "pay-u3")["plan"] == "basic"
    assert fake_db.data("payments", payment["id"])["confirmed_by"] == "pay-admin"

    sign_in("pay-u3")
    history = client.get("/api/payments").get_json()["payments"]
    assert history[0]["status"] == "confirmed"


def test_rejected_manual_payment_leaves_plan(client, fake_db, seed_user, sign_in):
    seed_user("pay-u4")
    seed_user("pay-admin-2", role="admin")
    sign_in("pay-u4")
    payment_id = client.post(
        "/api/payments/manual", json={"plan": "premium", "transaction_ref": "EP-1"}
    ).get_json()["payment"]["id"]

    sign_in("pay-admin-2")
    response = client.post(f"/api/admin/payments/{payment_id}/reject")

    assert response.status_code == 200
    assert fake_db.data("payments", payment_id)["status"] == "rejected"
    assert fake_db.data("users", "pay-u4")["plan"] == "free"


def test_manual_payment_validation(client, seed_user, sign_in):
    seed_user("pay-u5")
    sign_in("pay-u5")

    assert client.post("/api/payments/manual", json={"plan": "basic", "transaction_ref": ""}).status_code == 400
    assert client.post("/api/payments/manual", json={"plan": "gold", "transaction_ref": "EP-2"}).status_code == 400


def test_early_renewal_keeps_remaining_days(client, fake_db, seed_user, monkeypatch):
    current_expiry = time.time() + 10 * 24 * 60 * 60
    seed_user("pay-u6", plan="premium", badge="gold_star", plan_expires_at=current_expiry)
    monkeypatch.setattr(app_module, "STRIPE_WEBHOOK_SECRET", "whsec_test")
    monkeypatch.setattr(
        app_module.stripe.Webhook,
        "construct_event",
        lambda _payload, _sig, _secret: _checkout_event(session_id="cs_renew", uid="pay-u6"),
    )

    response = client.post("/api/stripe-webhook", data=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"})

    assert response.status_code == 200
    period = app_module.PLAN_DURATION_DAYS * 24 * 60 * 60
    assert fake_db.data("users", "pay-u6")["plan_expires_at"] == current_expiry + period


def test_failed_activation_leaves_payment_pending(client, fake_db, seed_user, sign_in, monkeypatch):
    seed_user("pay-u7")
    seed_user("pay-admin-3", role="admin")
    sign_in("pay-u7")
    payment_id = client.post(
        "/api/payments/manual", json={"plan": "basic", "transaction_ref": "EP-9"}
    ).get_json()["payment"]["id"]

    def _activation_down(*_args, **_kwargs):
        raise RuntimeError("users collection unavailable")

    monkeypatch.setattr(app_module.payments_api_service, "activate_plan", _activation_down)
    sign_in("pay-admin-3")

    response = client.post(f"/api/admin/payments/{payment_id}/confirm")

    assert response.status_code == 500
    assert fake_db.data("payments", payment_id)["status"] == "pending"
    assert fake_db.data("users", "pay-u7")["plan"] == "free"
