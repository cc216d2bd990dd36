"""
Subscription plan catalogue.

Single source of truth for plan prices and resume quotas.
Prices are in whole INR; gateways are charged in paise (minor units).
"""
from typing import Dict, Any, Optional

CURRENCY = "INR"
SUBSCRIPTION_PERIOD_DAYS = 30

PLANS: Dict[str, Dict[str, Any]] = {
    "Starter": {
        "resumes_per_day": 10,
        "price_inr": 99,
    },
    "Elite": {
        "resumes_per_day": 20,
        "price_inr": 129,
    },
    "Pro": {
        "resumes_per_day": 30,
        "price_inr": 199,
    },
}


def get_plan(plan_name: str) -> Optional[Dict[str, Any]]:
    """Look up a plan by its exact display name."""
    return PLANS.get(plan_name)


def get_plan_quota(plan_name: str) -> int:
    """Resume quota granted when a plan is activated."""
    plan = PLANS.get(plan_name)
    if not plan:
        raise ValueError(f"Invalid plan name: {plan_name}")
    return plan["resumes_per_day"]


def get_plan_amount_minor(plan_name: str) -> int:
    """Plan price in minor currency units (paise)."""
    plan = PLANS.get(plan_name)
    if not plan:
        raise ValueError(f"Invalid plan name: {plan_name}")
    return plan["price_inr"] * 100
