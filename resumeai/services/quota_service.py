"""
Quota ledger service.

Tracks each user's subscription and remaining resume count. Every change to
resumes_remaining is a single conditional UPDATE so concurrent requests for the
same account can never push the counter below zero:

    UPDATE subscriptions SET resumes_remaining = resumes_remaining - 1
    WHERE id = :id AND status = 'active' AND resumes_remaining > 0

The affected-row count is the success signal.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from resumeai.core.errors import NoActiveSubscription, QuotaExhausted, RowNotFound, SubscriptionConflict
from resumeai.core.plans import SUBSCRIPTION_PERIOD_DAYS
from resumeai.db.models.quota_debit import QuotaDebit
from resumeai.db.models.subscription import Subscription, SubscriptionStatus
from resumeai.services.ledger_events import publish_ledger_change

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    """One resume's worth of quota taken ahead of a generation."""
    subscription_id: int
    user_id: int
    remaining_after: int
    activation_count: int = 0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_active_subscription(db: Session, user_id: int) -> Optional[Subscription]:
    """
    Get the user's current active subscription.

    Returns the newest active row whose end_date is still in the future, or None.
    """
    return db.query(Subscription).filter(
        Subscription.user_id == user_id,
        Subscription.status == SubscriptionStatus.ACTIVE,
        Subscription.end_date > utcnow(),
    ).order_by(Subscription.created_at.desc(), Subscription.id.desc()).first()


def get_subscription(db: Session, subscription_id: int) -> Subscription:
    subscription = db.query(Subscription).filter(Subscription.id == subscription_id).first()
    if not subscription:
        raise RowNotFound(f"Subscription {subscription_id} not found", subscription_id=subscription_id)
    return subscription


def _conditional_decrement(db: Session, subscription_id: int, activation_count: Optional[int] = None) -> int:
    conditions = [
        Subscription.id == subscription_id,
        Subscription.status == SubscriptionStatus.ACTIVE,
        Subscription.resumes_remaining > 0,
    ]
    if activation_count is not None:
        conditions.append(Subscription.activation_count == activation_count)
    result = db.execute(
        update(Subscription)
        .where(*conditions)
        .values(resumes_remaining=Subscription.resumes_remaining - 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def check_and_reserve(db: Session, user_id: int) -> Reservation:
    """
    Check the user's quota and take one unit in the same statement.

    The reservation remembers which activation it was taken from, so a
    reactivation in the meantime is never topped up by its release.

    Raises:
        NoActiveSubscription: The user has no active subscription
        QuotaExhausted: resumes_remaining is already 0
    """
    subscription = get_active_subscription(db, user_id)
    if not subscription:
        logger.info(f"Reservation refused, no active subscription: user_id={user_id}")
        raise NoActiveSubscription(user_id)

    activation_count = subscription.activation_count
    affected = _conditional_decrement(db, subscription.id, activation_count)
    if affected != 1:
        db.rollback()
        logger.warning(f"Quota exhausted: user_id={user_id}, subscription_id={subscription.id}")
        raise QuotaExhausted(subscription.id)
    db.commit()

    db.refresh(subscription)
    logger.info(
        f"Quota reserved: user_id={user_id}, subscription_id={subscription.id}, "
        f"remaining={subscription.resumes_remaining}"
    )
    publish_ledger_change("reserved", subscription)
    return Reservation(
        subscription_id=subscription.id,
        user_id=user_id,
        remaining_after=subscription.resumes_remaining,
        activation_count=activation_count,
    )


def commit_reservation(db: Session, reservation: Reservation, idempotency_key: str) -> bool:
    """
    Record a reservation as a consumed debit.

    Returns:
        True if recorded, False if this idempotency key was already recorded
    """
    if db.query(QuotaDebit).filter(QuotaDebit.idempotency_key == idempotency_key).first():
        return False

    db.add(QuotaDebit(subscription_id=reservation.subscription_id, idempotency_key=idempotency_key, amount=1))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"Debit already recorded: key={idempotency_key}")
        return False

    logger.info(f"Quota debit committed: subscription_id={reservation.subscription_id}, key={idempotency_key}")
    return True


def release_reservation(db: Session, reservation: Reservation) -> bool:
    """
    Give back a reservation whose generation did not complete.

    The unit only goes back to the activation it was taken from. A subscription
    that was cancelled or reactivated since the reservation is left alone.

    Returns:
        True if the unit was refunded
    """
    result = db.execute(
        update(Subscription)
        .where(
            Subscription.id == reservation.subscription_id,
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.activation_count == reservation.activation_count,
        )
        .values(resumes_remaining=Subscription.resumes_remaining + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    if result.rowcount != 1:
        logger.info(
            f"Release skipped, subscription changed since reservation: "
            f"subscription_id={reservation.subscription_id}, user_id={reservation.user_id}"
        )
        return False

    subscription = get_subscription(db, reservation.subscription_id)
    db.refresh(subscription)
    logger.info(
        f"Quota released: subscription_id={subscription.id}, remaining={subscription.resumes_remaining}"
    )
    publish_ledger_change("released", subscription)
    return True


def decrement(db: Session, subscription_id: int, idempotency_key: str) -> bool:
    """
    Decrement resumes_remaining by one, at most once per idempotency key.

    Returns:
        True if the counter was decremented, False if the key was already used

    Raises:
        QuotaExhausted: The counter is already 0 (or the subscription is not active)
    """
    if db.query(QuotaDebit).filter(QuotaDebit.idempotency_key == idempotency_key).first():
        logger.info(f"Decrement skipped, key already used: key={idempotency_key}")
        return False

    affected = _conditional_decrement(db, subscription_id)
    if affected != 1:
        db.rollback()
        raise QuotaExhausted(subscription_id)

    db.add(QuotaDebit(subscription_id=subscription_id, idempotency_key=idempotency_key, amount=1))
    try:
        db.commit()
    except IntegrityError:
        # Another request with the same key won the race; undo our decrement with it
        db.rollback()
        logger.info(f"Decrement raced on key={idempotency_key}, rolled back")
        return False

    subscription = get_subscription(db, subscription_id)
    db.refresh(subscription)
    logger.info(f"Quota decremented: subscription_id={subscription_id}, remaining={subscription.resumes_remaining}")
    publish_ledger_change("decremented", subscription)
    return True


ACTIVATABLE_STATUSES = (SubscriptionStatus.PENDING, SubscriptionStatus.FAILED)


def activate(db: Session, subscription_id: int, quota: int, payment_id: Optional[str] = None) -> Subscription:
    """
    Mark a subscription active and set its quota.

    Only call this after the payment was verified with the gateway. The status
    change is a conditional UPDATE from pending/failed, so when a client
    confirmation and a webhook race, exactly one of them activates and the
    other leaves the counter alone. Any other active subscription of the same
    user is cancelled so one stays active.

    Raises:
        RowNotFound: Unknown subscription
        SubscriptionConflict: The subscription was cancelled
    """
    if quota < 0:
        raise ValueError("quota must be >= 0")

    subscription = get_subscription(db, subscription_id)
    now = utcnow()

    values = {
        "status": SubscriptionStatus.ACTIVE,
        "resumes_remaining": quota,
        "start_date": now,
        "end_date": now + timedelta(days=SUBSCRIPTION_PERIOD_DAYS),
        "activation_count": Subscription.activation_count + 1,
    }
    if payment_id:
        values["gateway_payment_id"] = payment_id

    result = db.execute(
        update(Subscription)
        .where(
            Subscription.id == subscription_id,
            Subscription.status.in_(ACTIVATABLE_STATUSES),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.refresh(subscription)
        if subscription.status == SubscriptionStatus.ACTIVE:
            logger.info(f"Subscription already active, quota left as is: subscription_id={subscription.id}")
            return subscription
        raise SubscriptionConflict(f"Subscription is {subscription.status}", subscription_id=subscription.id)

    superseded = db.query(Subscription).filter(
        Subscription.user_id == subscription.user_id,
        Subscription.status == SubscriptionStatus.ACTIVE,
        Subscription.id != subscription.id,
    ).all()
    for old in superseded:
        old.status = SubscriptionStatus.CANCELLED
        logger.info(f"Superseded subscription cancelled: subscription_id={old.id}, user_id={old.user_id}")

    db.commit()
    db.refresh(subscription)

    logger.info(
        f"Subscription activated: subscription_id={subscription.id}, user_id={subscription.user_id}, "
        f"plan={subscription.plan_name}, quota={quota}"
    )
    publish_ledger_change("activated", subscription)
    return subscription


def set_status(db: Session, subscription: Subscription, new_status: str) -> Subscription:
    """Move a subscription to cancelled/failed (no quota change)."""
    if new_status not in SubscriptionStatus.ALL:
        raise ValueError(f"Invalid subscription status: {new_status}")
    subscription.status = new_status
    db.commit()
    db.refresh(subscription)
    logger.info(f"Subscription status changed: subscription_id={subscription.id}, status={new_status}")
    publish_ledger_change(new_status, subscription)
    return subscription


def get_ledger_summary(db: Session, user_id: int) -> Dict[str, Any]:
    """
    Ledger data formatted for GET /subscriptions/me.

    Falls back to the latest subscription of any status when none is active.
    """
    subscription = get_active_subscription(db, user_id)
    active = subscription is not None
    if not subscription:
        subscription = db.query(Subscription).filter(
            Subscription.user_id == user_id
        ).order_by(Subscription.created_at.desc(), Subscription.id.desc()).first()

    if not subscription:
        return {
            "active": False,
            "subscription_id": None,
            "plan_name": None,
            "status": None,
            "resumes_remaining": 0,
            "start_date": None,
            "end_date": None,
        }

    return {
        "active": active,
        "subscription_id": subscription.id,
        "plan_name": subscription.plan_name,
        "status": subscription.status,
        "resumes_remaining": subscription.resumes_remaining,
        "start_date": subscription.start_date,
        "end_date": subscription.end_date,
    }
