"""
Grant a plan to a user without a payment (support/comp accounts).
Run: python -m scripts.grant_plan user@example.com Elite
"""
import argparse
import logging
import sys
import os
from datetime import timedelta

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from resumeai.core.plans import PLANS, SUBSCRIPTION_PERIOD_DAYS, get_plan_quota
from resumeai.db.session import SessionLocal
from resumeai.db.models.user import User
from resumeai.db.models.subscription import Subscription, SubscriptionStatus
from resumeai.services import quota_service

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def grant_plan(email: str, plan_name: str) -> bool:
    """Create a comp subscription for the user and activate it through the ledger."""
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.lower()).first()
        if not user:
            logger.error(f"User {email} not found")
            return False

        now = quota_service.utcnow()
        subscription = Subscription(
            user_id=user.id,
            plan_name=plan_name,
            status=SubscriptionStatus.PENDING,
            resumes_remaining=0,
            start_date=now,
            end_date=now + timedelta(days=SUBSCRIPTION_PERIOD_DAYS),
            gateway="manual",
        )
        db.add(subscription)
        db.commit()
        db.refresh(subscription)

        quota_service.activate(db, subscription.id, get_plan_quota(plan_name))
        logger.info(f"Granted {plan_name} to {email} (subscription_id={subscription.id})")
        return True
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("email")
    parser.add_argument("plan_name", choices=sorted(PLANS))
    args = parser.parse_args()

    if not grant_plan(args.email, args.plan_name):
        print(f"\n[ERROR] Failed to grant {args.plan_name} to {args.email}")
        sys.exit(1)
    print(f"\n[SUCCESS] {args.email} is now on the {args.plan_name} plan")
