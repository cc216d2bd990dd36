"""
Subscription model: the per-user quota ledger.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.sql import func
from resumeai.db.base import Base


class SubscriptionStatus:
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    FAILED = "failed"

    ALL = (PENDING, ACTIVE, CANCELLED, FAILED)


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    plan_name = Column(String, nullable=False)  # Starter | Elite | Pro
    status = Column(String, nullable=False, default=SubscriptionStatus.PENDING, index=True)
    resumes_remaining = Column(Integer, nullable=False, default=0)
    # Bumped on every activation; reservations only refund within the same one
    activation_count = Column(Integer, nullable=False, default=0)

    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)

    gateway = Column(String, nullable=False, default="razorpay")  # razorpay | stripe
    gateway_order_id = Column(String, nullable=True, unique=True, index=True)
    gateway_payment_id = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("resumes_remaining >= 0", name="ck_subscriptions_remaining_non_negative"),
        Index("idx_subscriptions_user_status", "user_id", "status"),
    )

    def __repr__(self):
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, plan='{self.plan_name}', "
            f"status='{self.status}', remaining={self.resumes_remaining})>"
        )
