"""
Unit tests for billing: orders, payment confirmation, webhooks and the gateways.
"""
import json
from types import SimpleNamespace

import pytest
import requests
import stripe

from conftest import FakeGateway, make_subscription
from resumeai.core.errors import (
    CollaboratorError,
    PaymentVerificationError,
    RowNotFound,
    SectionValidationError,
    SubscriptionConflict,
)
from resumeai.db.models.subscription import Subscription, SubscriptionStatus
from resumeai.services import billing_service, quota_service
from resumeai.services.payment_gateway import (
    PaymentConfirmation,
    RazorpayGateway,
    StripeGateway,
    WebhookEvent,
    get_payment_gateway,
    hmac_sha256_hex,
    stripe_idempotency_key,
)


# ✅ ORDERS

def test_create_order_writes_pending_subscription(db, session, fake_gateway):
    order = billing_service.create_order(db, session, "Elite", fake_gateway)

    assert order["amount"] == 12900
    assert order["currency"] == "INR"
    assert order["key_id"] == "pk_fake"
    assert order["user_email"] == session.email

    sub = db.query(Subscription).filter(Subscription.id == order["subscription_id"]).one()
    assert sub.status == SubscriptionStatus.PENDING
    assert sub.resumes_remaining == 0
    assert sub.gateway_order_id == order["order_id"]
    assert fake_gateway.orders[0]["notes"] == {"user_id": session.user_id, "plan_name": "Elite"}
    assert fake_gateway.orders[0]["receipt"].startswith(f"receipt_{session.user_id}_")


def test_create_order_rejects_unknown_plan(db, session, fake_gateway):
    with pytest.raises(SectionValidationError):
        billing_service.create_order(db, session, "Platinum", fake_gateway)
    assert fake_gateway.orders == []


def test_create_order_rejects_when_already_active(db, session, active_subscription, fake_gateway):
    with pytest.raises(SubscriptionConflict):
        billing_service.create_order(db, session, "Pro", fake_gateway)


def test_create_order_gateway_failure_writes_nothing(db, session):
    class BrokenGateway(FakeGateway):
        def create_order(self, amount, currency, receipt, notes):
            raise CollaboratorError("Failed to create payment order")

    with pytest.raises(CollaboratorError):
        billing_service.create_order(db, session, "Starter", BrokenGateway())
    assert db.query(Subscription).count() == 0


# ✅ CONFIRMATION

def _pending(db, session, plan="Starter"):
    return make_subscription(
        db, session.user_id, remaining=0, status=SubscriptionStatus.PENDING, plan_name=plan, order_id="order_1"
    )


def test_confirm_payment_activates_plan_quota(db, session, fake_gateway):
    _pending(db, session, plan="Pro")

    sub = billing_service.confirm_payment(
        db, session, PaymentConfirmation("order_1", "pay_1", "sig"), fake_gateway
    )

    assert sub.status == SubscriptionStatus.ACTIVE
    assert sub.resumes_remaining == 30
    assert sub.gateway_payment_id == "pay_1"


def test_forged_confirmation_does_not_touch_ledger(db, session):
    sub = _pending(db, session)

    with pytest.raises(PaymentVerificationError):
        billing_service.confirm_payment(
            db, session, PaymentConfirmation("order_1", "pay_forged", "bad"), FakeGateway(verified=False)
        )

    db.expire_all()
    sub = db.query(Subscription).filter(Subscription.id == sub.id).one()
    assert sub.status == SubscriptionStatus.PENDING
    assert sub.resumes_remaining == 0


def test_confirm_payment_for_other_users_order(db, session, fake_gateway):
    from resumeai.core.auth_dependency import SessionContext

    _pending(db, session)
    stranger = SessionContext(user_id=session.user_id + 1, email="x@example.com")

    with pytest.raises(RowNotFound):
        billing_service.confirm_payment(db, stranger, PaymentConfirmation("order_1", "pay_1", "s"), fake_gateway)


def test_confirm_payment_twice_is_idempotent(db, session, fake_gateway):
    _pending(db, session)
    confirmation = PaymentConfirmation("order_1", "pay_1", "sig")

    billing_service.confirm_payment(db, session, confirmation, fake_gateway)
    quota_service.check_and_reserve(db, session.user_id)
    again = billing_service.confirm_payment(db, session, confirmation, fake_gateway)

    assert again.resumes_remaining == 9
    assert len(fake_gateway.verifications) == 1


def test_confirm_payment_on_cancelled_order_conflicts(db, session, fake_gateway):
    make_subscription(db, session.user_id, status=SubscriptionStatus.CANCELLED, order_id="order_1")
    with pytest.raises(SubscriptionConflict):
        billing_service.confirm_payment(db, session, PaymentConfirmation("order_1", "pay_1", "s"), fake_gateway)


def test_confirm_payment_after_declined_attempt(db, session, fake_gateway):
    _pending(db, session)
    fake_gateway.webhook_event = WebhookEvent(kind="failed", order_id="order_1", payment_id="pay_declined")
    billing_service.handle_webhook(db, b"{}", "sig", fake_gateway)

    sub = billing_service.confirm_payment(
        db, session, PaymentConfirmation("order_1", "pay_retry", "sig"), fake_gateway
    )

    assert sub.status == SubscriptionStatus.ACTIVE
    assert sub.resumes_remaining == 10
    assert sub.gateway_payment_id == "pay_retry"


# ✅ WEBHOOKS

def test_webhook_captured_activates(db, session, fake_gateway):
    sub = _pending(db, session, plan="Elite")
    fake_gateway.webhook_event = WebhookEvent(kind="captured", order_id="order_1", payment_id="pay_9")

    result = billing_service.handle_webhook(db, b"{}", "sig", fake_gateway)

    assert result == {"status": "activated", "subscription_id": sub.id}
    assert quota_service.get_active_subscription(db, session.user_id).resumes_remaining == 20


def test_webhook_redelivery_is_ignored(db, session, fake_gateway):
    _pending(db, session)
    fake_gateway.webhook_event = WebhookEvent(kind="captured", order_id="order_1", payment_id="pay_9")

    billing_service.handle_webhook(db, b"{}", "sig", fake_gateway)
    quota_service.check_and_reserve(db, session.user_id)
    result = billing_service.handle_webhook(db, b"{}", "sig", fake_gateway)

    assert result["status"] == "ignored"
    assert quota_service.get_active_subscription(db, session.user_id).resumes_remaining == 9


def test_webhook_failed_attempt_keeps_order_open(db, session, fake_gateway):
    sub = _pending(db, session)
    fake_gateway.webhook_event = WebhookEvent(kind="failed", order_id="order_1")

    assert billing_service.handle_webhook(db, b"{}", "sig", fake_gateway)["status"] == "payment_failed"
    db.expire_all()
    assert db.query(Subscription).filter(Subscription.id == sub.id).one().status == SubscriptionStatus.PENDING


def test_webhook_captured_after_failed_attempt_activates(db, session, fake_gateway):
    sub = _pending(db, session, plan="Elite")

    fake_gateway.webhook_event = WebhookEvent(kind="failed", order_id="order_1", payment_id="pay_declined")
    billing_service.handle_webhook(db, b"{}", "sig", fake_gateway)
    fake_gateway.webhook_event = WebhookEvent(kind="captured", order_id="order_1", payment_id="pay_ok")
    result = billing_service.handle_webhook(db, b"{}", "sig", fake_gateway)

    assert result == {"status": "activated", "subscription_id": sub.id}
    active = quota_service.get_active_subscription(db, session.user_id)
    assert active.id == sub.id
    assert active.resumes_remaining == 20


def test_webhook_captures_legacy_failed_subscription(db, session, fake_gateway):
    sub = make_subscription(db, session.user_id, remaining=0, status=SubscriptionStatus.FAILED, order_id="order_1")
    fake_gateway.webhook_event = WebhookEvent(kind="captured", order_id="order_1", payment_id="pay_ok")

    assert billing_service.handle_webhook(db, b"{}", "sig", fake_gateway)["status"] == "activated"
    assert quota_service.get_active_subscription(db, session.user_id).id == sub.id


def test_webhook_after_confirmation_keeps_consumed_quota(db, session, fake_gateway):
    # The webhook read the row while it was still pending, then lost the race
    sub = _pending(db, session)
    billing_service.confirm_payment(db, session, PaymentConfirmation("order_1", "pay_1", "sig"), fake_gateway)
    quota_service.check_and_reserve(db, session.user_id)

    again = quota_service.activate(db, sub.id, 10, payment_id="pay_1")

    assert again.resumes_remaining == 9
    assert again.activation_count == 1


def test_webhook_unknown_order(db, fake_gateway):
    fake_gateway.webhook_event = WebhookEvent(kind="captured", order_id="order_missing")
    assert billing_service.handle_webhook(db, b"{}", "sig", fake_gateway) == {"status": "ignored"}


def test_cancel_subscription(db, session, active_subscription):
    cancelled = billing_service.cancel_subscription(db, session)
    assert cancelled.status == SubscriptionStatus.CANCELLED
    assert quota_service.get_active_subscription(db, session.user_id) is None

    with pytest.raises(RowNotFound):
        billing_service.cancel_subscription(db, session)


# ✅ RAZORPAY

class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = json.dumps(self._payload)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code}")


class FakeHttp:
    def __init__(self, post_response=None, get_responses=None):
        self.post_response = post_response
        self.get_responses = list(get_responses or [])
        self.posts = []
        self.gets = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        return self.post_response

    def get(self, url, **kwargs):
        self.gets.append(url)
        response = self.get_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _razorpay(http, **kwargs):
    return RazorpayGateway(
        key_id="rzp_test_key",
        key_secret="secret",
        webhook_secret="whsec",
        api_url="https://rzp.test/v1",
        http=http,
        **kwargs,
    )


def test_razorpay_not_configured():
    with pytest.raises(CollaboratorError):
        RazorpayGateway(key_id="", key_secret="")


def test_razorpay_create_order():
    http = FakeHttp(post_response=FakeResponse(payload={"id": "order_abc", "amount": 9900}))
    order = _razorpay(http).create_order(9900, "INR", "receipt_1", {"plan_name": "Starter"})

    assert order.order_id == "order_abc"
    url, kwargs = http.posts[0]
    assert url == "https://rzp.test/v1/orders"
    assert kwargs["auth"] == ("rzp_test_key", "secret")
    assert kwargs["json"]["amount"] == 9900


def test_razorpay_create_order_rejected():
    http = FakeHttp(post_response=FakeResponse(status_code=400, payload={"error": {}}))
    with pytest.raises(CollaboratorError):
        _razorpay(http).create_order(9900, "INR", "receipt_1", {})


def test_razorpay_signature():
    gateway = _razorpay(FakeHttp())
    good = hmac_sha256_hex("secret", b"order_1|pay_1")

    assert gateway.signature_valid("order_1", "pay_1", good)
    assert not gateway.signature_valid("order_1", "pay_2", good)
    assert not gateway.signature_valid("order_1", "pay_1", "")


def test_razorpay_verify_payment_checks_signature_before_lookup():
    http = FakeHttp()
    gateway = _razorpay(http)

    assert gateway.verify_payment(PaymentConfirmation("order_1", "pay_1", "forged")) is False
    assert http.gets == []


def test_razorpay_verify_payment_retries_transient_errors(monkeypatch):
    monkeypatch.setattr("resumeai.core.retry.time.sleep", lambda _: None)
    http = FakeHttp(get_responses=[
        requests.ConnectionError("reset"),
        FakeResponse(payload={"id": "pay_1", "order_id": "order_1", "status": "captured"}),
    ])
    gateway = _razorpay(http, retry_attempts=3)
    signature = hmac_sha256_hex("secret", b"order_1|pay_1")

    assert gateway.verify_payment(PaymentConfirmation("order_1", "pay_1", signature)) is True
    assert len(http.gets) == 2


def test_razorpay_verify_payment_rejects_unpaid():
    http = FakeHttp(get_responses=[FakeResponse(payload={"order_id": "order_1", "status": "failed"})])
    signature = hmac_sha256_hex("secret", b"order_1|pay_1")
    assert _razorpay(http).verify_payment(PaymentConfirmation("order_1", "pay_1", signature)) is False


def test_razorpay_webhook():
    body = json.dumps({
        "event": "payment.captured",
        "payload": {"payment": {"entity": {"id": "pay_1", "order_id": "order_1"}}},
    }).encode()
    gateway = _razorpay(FakeHttp())

    event = gateway.parse_webhook(body, hmac_sha256_hex("whsec", body))
    assert (event.kind, event.order_id, event.payment_id) == ("captured", "order_1", "pay_1")

    with pytest.raises(PaymentVerificationError):
        gateway.parse_webhook(body, "bad")
    with pytest.raises(PaymentVerificationError):
        gateway.parse_webhook(body, None)


# ✅ STRIPE

def test_stripe_verify_payment(monkeypatch):
    intents = {
        "pi_ok": SimpleNamespace(id="pi_ok", status="succeeded"),
        "pi_pending": SimpleNamespace(id="pi_pending", status="requires_payment_method"),
    }
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", lambda intent_id: intents[intent_id])
    gateway = StripeGateway(secret_key="sk_test", publishable_key="pk_test", webhook_secret="whsec")

    assert gateway.verify_payment(PaymentConfirmation("pi_ok", "")) is True
    assert gateway.verify_payment(PaymentConfirmation("pi_pending", "")) is False
    assert gateway.public_key == "pk_test"


def test_stripe_create_order(monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="pi_1", client_secret="pi_1_secret")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    order = StripeGateway(secret_key="sk_test").create_order(19900, "INR", "receipt_9", {"user_id": 7})

    assert order.order_id == "pi_1"
    assert order.raw["client_secret"] == "pi_1_secret"
    assert captured["currency"] == "inr"
    assert captured["metadata"] == {"user_id": "7", "receipt": "receipt_9"}
    assert captured["idempotency_key"] == "order:7:receipt_9"


def test_stripe_idempotency_key_differs_per_user():
    assert stripe_idempotency_key({"user_id": 1}, "receipt_1700000000000") != stripe_idempotency_key(
        {"user_id": 2}, "receipt_1700000000000"
    )


def test_stripe_webhook_bad_signature(monkeypatch):
    def fake_construct(body, signature, secret):
        raise stripe.SignatureVerificationError("bad", signature)

    monkeypatch.setattr(stripe.Webhook, "construct_event", fake_construct)
    gateway = StripeGateway(secret_key="sk_test", webhook_secret="whsec")

    with pytest.raises(PaymentVerificationError):
        gateway.parse_webhook(b"{}", "t=1,v1=bad")


def test_get_payment_gateway_unknown():
    with pytest.raises(CollaboratorError):
        get_payment_gateway("paypal")
