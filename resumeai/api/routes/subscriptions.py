import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from resumeai.api.deps import payment_gateway_dep
from resumeai.core.auth_dependency import SessionContext, get_current_session, get_db
from resumeai.core.plans import CURRENCY, PLANS
from resumeai.schemas.subscription import (
    CreateOrderRequest,
    CreateOrderResponse,
    PaymentConfirmationRequest,
    PlanResponse,
    SubscriptionSummary,
    WebhookAck,
)
from resumeai.services import billing_service, quota_service
from resumeai.services.payment_gateway import PaymentConfirmation, PaymentGateway

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])
logger = logging.getLogger(__name__)


@router.get("/plans", response_model=List[PlanResponse])
def list_plans():
    return [
        {"name": name, "resumes_per_day": plan["resumes_per_day"], "price_inr": plan["price_inr"], "currency": CURRENCY}
        for name, plan in PLANS.items()
    ]


# ✅ CURRENT LEDGER
@router.get("/me", response_model=SubscriptionSummary)
def my_subscription(
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    return quota_service.get_ledger_summary(db, session.user_id)


@router.post("/orders", response_model=CreateOrderResponse)
def create_order(
    payload: CreateOrderRequest,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(payment_gateway_dep),
):
    return billing_service.create_order(db, session, payload.plan_name, gateway)


# ✅ CLIENT CONFIRMATION (verified server-side before activation)
@router.post("/confirm", response_model=SubscriptionSummary)
def confirm_payment(
    payload: PaymentConfirmationRequest,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(payment_gateway_dep),
):
    confirmation = PaymentConfirmation(
        order_id=payload.order_id,
        payment_id=payload.payment_id,
        signature=payload.signature,
    )
    billing_service.confirm_payment(db, session, confirmation, gateway)
    return quota_service.get_ledger_summary(db, session.user_id)


# ✅ GATEWAY WEBHOOK (no session: authenticated by signature)
@router.post("/webhook", response_model=WebhookAck, response_model_exclude_none=True)
async def payment_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(payment_gateway_dep),
):
    body = await request.body()
    signature = x_razorpay_signature or stripe_signature
    result = billing_service.handle_webhook(db, body, signature, gateway)
    logger.info(f"Webhook processed: gateway={gateway.name}, result={result}")
    return result


@router.post("/cancel", response_model=SubscriptionSummary)
def cancel_subscription(
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    billing_service.cancel_subscription(db, session)
    return quota_service.get_ledger_summary(db, session.user_id)
