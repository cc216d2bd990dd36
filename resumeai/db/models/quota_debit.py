from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from resumeai.db.base import Base


class QuotaDebit(Base):
    """
    One row per committed quota decrement.

    The unique idempotency_key makes a retried decrement a no-op.
    """
    __tablename__ = "quota_debits"

    id = Column(Integer, primary_key=True, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=False, index=True)
    idempotency_key = Column(String, nullable=False, unique=True, index=True)
    amount = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
