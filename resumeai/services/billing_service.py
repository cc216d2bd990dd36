"""
Billing service: order creation, payment confirmation and webhooks.

The ledger is only activated after the gateway has verified the payment,
either through the client's confirmation (signature checked server-side) or
through a signed webhook delivery.
"""
import logging
import time
from datetime import timedelta
from typing import Dict, Any, Optional

from sqlalchemy.orm import Session

from resumeai.core.auth_dependency import SessionContext
from resumeai.core.errors import (
    PaymentVerificationError,
    RowNotFound,
    SubscriptionConflict,
    SectionValidationError,
)
from resumeai.core.logging_config import sanitize_log_data
from resumeai.core.plans import CURRENCY, SUBSCRIPTION_PERIOD_DAYS, get_plan, get_plan_amount_minor, get_plan_quota
from resumeai.db.models.subscription import Subscription, SubscriptionStatus
from resumeai.services import quota_service
from resumeai.services.payment_gateway import PaymentConfirmation, PaymentGateway

logger = logging.getLogger(__name__)


def make_receipt_id(user_id: int) -> str:
    return f"receipt_{user_id}_{int(time.time() * 1000)}"


def create_order(db: Session, session: SessionContext, plan_name: str, gateway: PaymentGateway) -> Dict[str, Any]:
    """
    Create a gateway order and a pending subscription for it.

    Raises:
        SectionValidationError: Unknown plan
        SubscriptionConflict: User already has an active subscription
        CollaboratorError: Gateway failure (no subscription row is written)
    """
    if not get_plan(plan_name):
        raise SectionValidationError(f"Invalid plan name: {plan_name}")

    if quota_service.get_active_subscription(db, session.user_id):
        raise SubscriptionConflict("User already has an active subscription")

    amount = get_plan_amount_minor(plan_name)
    order = gateway.create_order(
        amount=amount,
        currency=CURRENCY,
        receipt=make_receipt_id(session.user_id),
        notes={"user_id": session.user_id, "plan_name": plan_name},
    )

    now = quota_service.utcnow()
    subscription = Subscription(
        user_id=session.user_id,
        plan_name=plan_name,
        status=SubscriptionStatus.PENDING,
        resumes_remaining=0,
        start_date=now,
        end_date=now + timedelta(days=SUBSCRIPTION_PERIOD_DAYS),
        gateway=gateway.name,
        gateway_order_id=order.order_id,
    )
    db.add(subscription)
    db.commit()
    db.refresh(subscription)

    logger.info(
        f"Pending subscription created: subscription_id={subscription.id}, user_id={session.user_id}, "
        f"plan={plan_name}, order_id={order.order_id}"
    )

    return {
        "subscription_id": subscription.id,
        "user_email": session.email,
        "plan_name": plan_name,
        "order_id": order.order_id,
        "amount": amount,
        "currency": CURRENCY,
        "key_id": gateway.public_key,
        "gateway": gateway.name,
        "client_secret": order.raw.get("client_secret"),
    }


def _get_subscription_by_order(db: Session, order_id: str) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.gateway_order_id == order_id).first()


def confirm_payment(
    db: Session,
    session: SessionContext,
    confirmation: PaymentConfirmation,
    gateway: PaymentGateway,
) -> Subscription:
    """
    Verify a client-reported payment with the gateway and activate the ledger.

    Raises:
        RowNotFound: No subscription of this user carries the order id
        PaymentVerificationError: Verification failed; the ledger is untouched
    """
    subscription = _get_subscription_by_order(db, confirmation.order_id)
    if not subscription or subscription.user_id != session.user_id:
        raise RowNotFound("Subscription not found for this order", order_id=confirmation.order_id)

    if subscription.status == SubscriptionStatus.ACTIVE:
        logger.info(f"Payment already confirmed: subscription_id={subscription.id}")
        return subscription
    if subscription.status not in quota_service.ACTIVATABLE_STATUSES:
        raise SubscriptionConflict(f"Subscription is {subscription.status}", subscription_id=subscription.id)

    if not gateway.verify_payment(confirmation):
        logger.warning(
            "Payment verification failed: %s",
            sanitize_log_data({
                "subscription_id": subscription.id,
                "order_id": confirmation.order_id,
                "payment_id": confirmation.payment_id,
                "signature": confirmation.signature,
            }),
        )
        raise PaymentVerificationError("Payment could not be verified", subscription_id=subscription.id)

    return quota_service.activate(
        db,
        subscription.id,
        get_plan_quota(subscription.plan_name),
        payment_id=confirmation.payment_id,
    )


def handle_webhook(db: Session, body: bytes, signature: Optional[str], gateway: PaymentGateway) -> Dict[str, Any]:
    """
    Apply a signed gateway webhook to the ledger.

    Captured payments activate the pending subscription. A failed payment only
    declines one attempt: the customer may retry on the same order, so the
    subscription stays pending. Unknown orders and repeated deliveries are
    acknowledged and ignored.
    """
    event = gateway.parse_webhook(body, signature)

    if event.kind == "ignored" or not event.order_id:
        return {"status": "ignored"}

    subscription = _get_subscription_by_order(db, event.order_id)
    if not subscription:
        logger.warning(f"Webhook for unknown order: order_id={event.order_id}")
        return {"status": "ignored"}

    if event.kind == "captured":
        if subscription.status in quota_service.ACTIVATABLE_STATUSES:
            quota_service.activate(
                db,
                subscription.id,
                get_plan_quota(subscription.plan_name),
                payment_id=event.payment_id,
            )
            return {"status": "activated", "subscription_id": subscription.id}
        return {"status": "ignored", "subscription_id": subscription.id}

    if event.kind == "failed" and subscription.status == SubscriptionStatus.PENDING:
        logger.warning(
            f"Payment attempt failed, order left open for retry: subscription_id={subscription.id}, "
            f"order_id={event.order_id}, payment_id={event.payment_id}"
        )
        return {"status": "payment_failed", "subscription_id": subscription.id}

    return {"status": "ignored", "subscription_id": subscription.id}


def cancel_subscription(db: Session, session: SessionContext) -> Subscription:
    """Cancel the user's active subscription; remaining quota is forfeited."""
    subscription = quota_service.get_active_subscription(db, session.user_id)
    if not subscription:
        raise RowNotFound("No active subscription to cancel")
    return quota_service.set_status(db, subscription, SubscriptionStatus.CANCELLED)
