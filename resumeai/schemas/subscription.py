"""
Pydantic schemas for subscription and billing endpoints.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class PlanResponse(BaseModel):
    name: str
    resumes_per_day: int
    price_inr: int
    currency: str = "INR"


class CreateOrderRequest(BaseModel):
    """Request schema for creating a payment order."""
    plan_name: str = Field(..., description="Plan name: Starter, Elite or Pro")

    class Config:
        json_schema_extra = {"example": {"plan_name": "Elite"}}


class CreateOrderResponse(BaseModel):
    """Everything the browser checkout needs to collect the payment."""
    subscription_id: int
    user_email: str
    plan_name: str
    order_id: str
    amount: int = Field(..., description="Amount in minor units (paise)")
    currency: str
    key_id: str = Field(..., description="Public gateway key")
    gateway: str
    client_secret: Optional[str] = Field(None, description="Stripe only")


class PaymentConfirmationRequest(BaseModel):
    """Gateway confirmation posted by the client after checkout."""
    order_id: str = Field(..., description="Gateway order id")
    payment_id: str = Field(..., description="Gateway payment id")
    signature: str = Field("", description="Gateway signature (Razorpay)")

    class Config:
        json_schema_extra = {
            "example": {
                "order_id": "order_NXb0a1b2c3",
                "payment_id": "pay_NXb0d4e5f6",
                "signature": "9f0c..."
            }
        }


class SubscriptionSummary(BaseModel):
    active: bool
    subscription_id: Optional[int] = None
    plan_name: Optional[str] = None
    status: Optional[str] = None
    resumes_remaining: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class WebhookAck(BaseModel):
    status: str
    subscription_id: Optional[int] = None
