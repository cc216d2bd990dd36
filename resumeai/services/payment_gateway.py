"""
Payment gateway clients for order creation and payment verification.

Activation of a subscription must never trust the browser: the client posts
the gateway's confirmation (order id, payment id, signature) and the server
verifies it here before the ledger is touched.
"""
import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests
import stripe

from resumeai.core import config
from resumeai.core.errors import CollaboratorError, PaymentVerificationError
from resumeai.core.retry import retry_call

logger = logging.getLogger(__name__)


@dataclass
class GatewayOrder:
    order_id: str
    amount: int  # minor units
    currency: str
    receipt: str
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentConfirmation:
    order_id: str
    payment_id: str
    signature: str = ""


@dataclass
class WebhookEvent:
    """Normalised webhook event. kind is 'captured', 'failed' or 'ignored'."""
    kind: str
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    name: str = ""

    @property
    @abstractmethod
    def public_key(self) -> str:
        """Key the browser checkout needs (never the secret)."""
        pass

    @abstractmethod
    def create_order(self, amount: int, currency: str, receipt: str, notes: Dict[str, Any]) -> GatewayOrder:
        """
        Create an order for a one-off payment.

        Args:
            amount: Amount in minor currency units
            currency: ISO currency code
            receipt: Merchant receipt id
            notes: Metadata stored with the order

        Raises:
            CollaboratorError: The gateway rejected or failed the request
        """
        pass

    @abstractmethod
    def verify_payment(self, confirmation: PaymentConfirmation) -> bool:
        """Return True only if the gateway confirms this payment for this order."""
        pass

    @abstractmethod
    def parse_webhook(self, body: bytes, signature: Optional[str]) -> WebhookEvent:
        """
        Verify and normalise a webhook delivery.

        Raises:
            PaymentVerificationError: Signature missing or invalid
        """
        pass


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class RazorpayGateway(PaymentGateway):
    """Razorpay Orders API client."""

    name = "razorpay"

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
        retry_attempts: Optional[int] = None,
    ):
        self.key_id = key_id or config.RAZORPAY_KEY_ID
        self.key_secret = key_secret or config.RAZORPAY_KEY_SECRET
        self.webhook_secret = webhook_secret or config.RAZORPAY_WEBHOOK_SECRET
        if not self.key_id or not self.key_secret:
            raise CollaboratorError("Razorpay is not configured (RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET)")
        self.api_url = (api_url or config.RAZORPAY_API_URL).rstrip("/")
        self.timeout = timeout or config.HTTP_TIMEOUT_SECONDS
        self.http = http or requests.Session()
        self.retry_attempts = retry_attempts or config.COLLABORATOR_RETRY_ATTEMPTS

    @property
    def public_key(self) -> str:
        return self.key_id

    def create_order(self, amount: int, currency: str, receipt: str, notes: Dict[str, Any]) -> GatewayOrder:
        try:
            response = self.http.post(
                f"{self.api_url}/orders",
                auth=(self.key_id, self.key_secret),
                json={
                    "amount": amount,
                    "currency": currency,
                    "receipt": receipt,
                    "notes": notes,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Razorpay network error creating order: {e}", exc_info=True)
            raise CollaboratorError("Unable to reach the payment gateway. Please retry.") from e

        if not response.ok:
            logger.error(f"Razorpay rejected order: status={response.status_code}, body={response.text[:300]}")
            raise CollaboratorError("Failed to create payment order")

        data = response.json()
        order_id = data.get("id")
        if not order_id:
            raise CollaboratorError("Payment gateway did not return an order id")

        logger.info(f"Created Razorpay order: order_id={order_id}, amount={amount}, receipt={receipt}")
        return GatewayOrder(order_id=order_id, amount=amount, currency=currency, receipt=receipt, raw=data)

    def signature_valid(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not (order_id and payment_id and signature):
            return False
        expected = hmac_sha256_hex(self.key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
        return hmac.compare_digest(expected, signature)

    def _fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        response = self.http.get(
            f"{self.api_url}/payments/{payment_id}",
            auth=(self.key_id, self.key_secret),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def verify_payment(self, confirmation: PaymentConfirmation) -> bool:
        if not self.signature_valid(confirmation.order_id, confirmation.payment_id, confirmation.signature):
            logger.warning(f"Razorpay signature mismatch: order_id={confirmation.order_id}")
            return False

        # Signature proves the pair came from Razorpay; the lookup proves it was paid
        try:
            payment = retry_call(
                lambda: self._fetch_payment(confirmation.payment_id),
                attempts=self.retry_attempts,
                retry_on=(requests.RequestException,),
                description="razorpay.fetch_payment",
            )
        except requests.RequestException as e:
            raise CollaboratorError("Unable to verify payment with the gateway. Please retry.") from e

        if payment.get("order_id") != confirmation.order_id:
            logger.warning(f"Razorpay payment/order mismatch: payment_id={confirmation.payment_id}")
            return False
        if payment.get("status") not in ("authorized", "captured"):
            logger.warning(f"Razorpay payment not completed: status={payment.get('status')}")
            return False
        return True

    def parse_webhook(self, body: bytes, signature: Optional[str]) -> WebhookEvent:
        if not self.webhook_secret:
            raise PaymentVerificationError("Webhook secret not configured")
        if not signature or not hmac.compare_digest(hmac_sha256_hex(self.webhook_secret, body), signature):
            raise PaymentVerificationError("Invalid webhook signature")

        try:
            event = json.loads(body)
        except ValueError as e:
            raise PaymentVerificationError("Invalid webhook payload") from e

        event_type = event.get("event", "")
        payload = event.get("payload", {})
        payment = payload.get("payment", {}).get("entity", {})
        order = payload.get("order", {}).get("entity", {})
        order_id = payment.get("order_id") or order.get("id")

        if event_type in ("payment.captured", "order.paid"):
            kind = "captured"
        elif event_type == "payment.failed":
            kind = "failed"
        else:
            kind = "ignored"

        return WebhookEvent(kind=kind, order_id=order_id, payment_id=payment.get("id"), raw=event)


def stripe_idempotency_key(notes: Dict[str, Any], receipt: str) -> str:
    return f"order:{notes.get('user_id', 'anon')}:{receipt}"


class StripeGateway(PaymentGateway):
    """Stripe PaymentIntents as one-off orders."""

    name = "stripe"

    def __init__(
        self,
        secret_key: Optional[str] = None,
        publishable_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        retry_attempts: Optional[int] = None,
    ):
        self.secret_key = secret_key or config.STRIPE_SECRET_KEY
        if not self.secret_key:
            raise CollaboratorError("Stripe is not configured (STRIPE_SECRET_KEY)")
        self.publishable_key = publishable_key or config.STRIPE_PUBLISHABLE_KEY or ""
        self.webhook_secret = webhook_secret or config.STRIPE_WEBHOOK_SECRET
        self.retry_attempts = retry_attempts or config.COLLABORATOR_RETRY_ATTEMPTS
        stripe.api_key = self.secret_key

    @property
    def public_key(self) -> str:
        return self.publishable_key

    def create_order(self, amount: int, currency: str, receipt: str, notes: Dict[str, Any]) -> GatewayOrder:
        metadata = {k: str(v) for k, v in notes.items()}
        metadata["receipt"] = receipt
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                idempotency_key=stripe_idempotency_key(notes, receipt),
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent: {e}")
            raise CollaboratorError("Failed to create payment order") from e

        logger.info(f"Created Stripe payment intent: id={intent.id}, amount={amount}")
        return GatewayOrder(
            order_id=intent.id,
            amount=amount,
            currency=currency,
            receipt=receipt,
            raw={"client_secret": intent.client_secret},
        )

    def verify_payment(self, confirmation: PaymentConfirmation) -> bool:
        try:
            intent = retry_call(
                lambda: stripe.PaymentIntent.retrieve(confirmation.order_id),
                attempts=self.retry_attempts,
                retry_on=(stripe.APIConnectionError,),
                description="stripe.retrieve_payment_intent",
            )
        except stripe.InvalidRequestError:
            logger.warning(f"Stripe payment intent not found: id={confirmation.order_id}")
            return False
        except stripe.StripeError as e:
            raise CollaboratorError("Unable to verify payment with the gateway. Please retry.") from e

        if intent.id != confirmation.order_id:
            return False
        if intent.status != "succeeded":
            logger.warning(f"Stripe payment intent not succeeded: id={intent.id}, status={intent.status}")
            return False
        return True

    def parse_webhook(self, body: bytes, signature: Optional[str]) -> WebhookEvent:
        if not self.webhook_secret:
            raise PaymentVerificationError("Webhook secret not configured")
        try:
            event = stripe.Webhook.construct_event(body, signature, self.webhook_secret)
        except ValueError as e:
            raise PaymentVerificationError(f"Invalid webhook payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise PaymentVerificationError("Invalid webhook signature") from e

        obj = event["data"]["object"]
        if event["type"] == "payment_intent.succeeded":
            kind = "captured"
        elif event["type"] == "payment_intent.payment_failed":
            kind = "failed"
        else:
            kind = "ignored"

        return WebhookEvent(kind=kind, order_id=obj.get("id"), payment_id=obj.get("latest_charge"), raw=dict(event))


GATEWAYS = {
    "razorpay": RazorpayGateway,
    "stripe": StripeGateway,
}


def get_payment_gateway(name: Optional[str] = None) -> PaymentGateway:
    """Build the configured payment gateway."""
    gateway_name = (name or config.PAYMENT_GATEWAY).lower()
    gateway_cls = GATEWAYS.get(gateway_name)
    if not gateway_cls:
        raise CollaboratorError(f"Unknown payment gateway: {gateway_name}")
    return gateway_cls()
