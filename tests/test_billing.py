"""
Subscriptions and Stripe webhooks; the Stripe SDK is stubbed per test
"""
import hashlib
import hmac
import json
import time

import pytest
import stripe

from app.config import settings

CUSTOMER_ID = "cus_test_123"


def _subscription(customer=CUSTOMER_ID, status="active", price_id="price_basic_monthly", **extra):
    data = {
        "id": "sub_test_1",
        "customer": customer,
        "status": status,
        "current_period_end": 1735689600,
        "cancel_at_period_end": False,
        "items": {"data": [{"id": "si_test_1", "price": {"id": price_id}}]},
    }
    data.update(extra)
    return data


@pytest.fixture
def fake_stripe(monkeypatch):
    """Record calls made to the Stripe SDK and answer with plain dicts"""
    calls = []

    def record(name, response):
        def _call(*args, **kwargs):
            calls.append((name, args, kwargs))
            return response(*args, **kwargs) if callable(response) else response
        return _call

    monkeypatch.setattr(stripe.Customer, "create", record("customer.create", {"id": CUSTOMER_ID}))
    monkeypatch.setattr(stripe.checkout.Session, "create", record(
        "checkout.create", {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}
    ))
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", record("checkout.retrieve", {
        "id": "cs_test_1",
        "customer": CUSTOMER_ID,
        "status": "complete",
        "payment_status": "paid",
        "subscription": _subscription(),
        "metadata": {"plan": "basic"},
    }))
    monkeypatch.setattr(stripe.billing_portal.Session, "create", record(
        "portal.create", {"url": "https://billing.stripe.test/session"}
    ))
    monkeypatch.setattr(stripe.Subscription, "list", record("subscription.list", {"data": [_subscription()]}))
    monkeypatch.setattr(stripe.Subscription, "retrieve", record("subscription.retrieve", _subscription()))
    monkeypatch.setattr(stripe.Subscription, "modify", record(
        "subscription.modify",
        lambda subscription_id, items: _subscription(price_id=items[0]["price"]),
    ))
    monkeypatch.setattr(stripe.Subscription, "cancel", record(
        "subscription.cancel", _subscription(status="canceled")
    ))
    return calls


def _checkout(client, user):
    return client.post(
        "/api/subscriptions/checkout-session", json={"price_id": "price_basic_monthly"}, headers=user["headers"]
    )


def test_plans_are_public(client):
    response = client.get("/api/subscriptions/plans")
    assert response.status_code == 200
    plans = {p["plan"]: p for p in response.json()}
    assert set(plans) == {"basic", "pro", "enterprise"}
    assert {p["interval"] for p in plans["pro"]["prices"]} == {"monthly", "annual"}


def test_checkout_creates_customer_once(client, creator, fake_stripe):
    first = _checkout(client, creator)
    assert first.status_code == 200, first.text
    assert first.json() == {"session_id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}

    assert _checkout(client, creator).status_code == 200
    names = [name for name, _, _ in fake_stripe]
    assert names.count("customer.create") == 1
    assert names.count("checkout.create") == 2

    _, _, kwargs = [c for c in fake_stripe if c[0] == "checkout.create"][0]
    assert kwargs["customer"] == CUSTOMER_ID
    assert kwargs["mode"] == "subscription"
    assert kwargs["line_items"] == [{"price": "price_basic_monthly", "quantity": 1}]


def test_checkout_rejects_unknown_configured_price(client, creator, fake_stripe, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_PRICE_BASIC_MONTHLY", "price_real_basic")
    response = _checkout(client, creator)
    assert response.status_code == 400


def test_students_cannot_manage_billing(client, student, fake_stripe):
    assert _checkout(client, student).status_code == 403


def test_billing_unconfigured(client, creator, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)
    response = _checkout(client, creator)
    assert response.status_code == 503


def test_provider_error_is_bad_gateway(client, creator, monkeypatch):
    def boom(**kwargs):
        raise stripe.StripeError("card network down")

    monkeypatch.setattr(stripe.Customer, "create", boom)
    assert _checkout(client, creator).status_code == 502


def test_portal_requires_customer(client, creator, fake_stripe):
    before = client.post("/api/subscriptions/portal-session", headers=creator["headers"])
    assert before.status_code == 400

    _checkout(client, creator)
    after = client.post("/api/subscriptions/portal-session", headers=creator["headers"])
    assert after.status_code == 200
    assert after.json()["url"] == "https://billing.stripe.test/session"


def test_my_subscriptions(client, creator, fake_stripe):
    empty = client.get("/api/subscriptions/me", headers=creator["headers"]).json()
    assert empty == {"customer_id": None, "subscriptions": []}

    _checkout(client, creator)
    mine = client.get("/api/subscriptions/me", headers=creator["headers"]).json()
    assert mine["customer_id"] == CUSTOMER_ID
    assert mine["subscriptions"][0]["id"] == "sub_test_1"
    assert mine["subscriptions"][0]["price_id"] == "price_basic_monthly"


def test_verify_checkout_session(client, creator, fake_stripe):
    _checkout(client, creator)
    response = client.get("/api/subscriptions/verify-session/cs_test_1", headers=creator["headers"])
    assert response.status_code == 200
    body = response.json()
    assert body["payment_status"] == "paid"
    assert body["subscription"]["status"] == "active"
    assert body["metadata"] == {"plan": "basic"}


def test_subscription_management(client, creator, fake_stripe):
    _checkout(client, creator)

    fetched = client.get("/api/subscriptions/sub_test_1", headers=creator["headers"])
    assert fetched.status_code == 200
    assert fetched.json()["status"] == "active"

    updated = client.post(
        "/api/subscriptions/update/sub_test_1", json={"new_price_id": "price_pro_monthly"}, headers=creator["headers"]
    )
    assert updated.status_code == 200
    assert updated.json()["price_id"] == "price_pro_monthly"
    _, args, kwargs = [c for c in fake_stripe if c[0] == "subscription.modify"][0]
    assert args == ("sub_test_1",)
    assert kwargs["items"] == [{"id": "si_test_1", "price": "price_pro_monthly"}]

    cancelled = client.post("/api/subscriptions/cancel/sub_test_1", headers=creator["headers"])
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "canceled"


def test_foreign_subscription_is_forbidden(client, creator, make_user, fake_stripe, monkeypatch):
    _checkout(client, creator)
    monkeypatch.setattr(
        stripe.Subscription, "retrieve", lambda subscription_id: _subscription(customer="cus_someone_else")
    )
    assert client.get("/api/subscriptions/sub_test_1", headers=creator["headers"]).status_code == 403
    assert client.post("/api/subscriptions/cancel/sub_test_1", headers=creator["headers"]).status_code == 403


def _signed(payload: bytes, secret: str = "whsec_test_secret", timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signed_payload = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def _event(event_type="checkout.session.completed") -> bytes:
    return json.dumps({
        "id": "evt_test_1",
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": "cs_test_1", "object": "checkout.session", "customer": CUSTOMER_ID}},
    }).encode("utf-8")


def test_webhook_accepts_signed_event(client):
    payload = _event()
    response = client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": _signed(payload), "Content-Type": "application/json"},
    )
    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_webhook_acknowledges_unhandled_event_types(client):
    payload = _event("customer.created")
    response = client.post("/webhooks/stripe", content=payload, headers={"Stripe-Signature": _signed(payload)})
    assert response.status_code == 200


def test_webhook_rejects_bad_or_missing_signature(client):
    payload = _event()
    forged = client.post(
        "/webhooks/stripe", content=payload, headers={"Stripe-Signature": _signed(payload, secret="whsec_wrong")}
    )
    assert forged.status_code == 400

    missing = client.post("/webhooks/stripe", content=payload)
    assert missing.status_code == 400


def test_webhook_without_secret_is_misconfigured(client, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)
    payload = _event()
    response = client.post("/webhooks/stripe", content=payload, headers={"Stripe-Signature": _signed(payload)})
    assert response.status_code == 500
