"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.

All models must be imported here to be included in database migrations and table creation.
"""
from resumeai.db.models.user import User
from resumeai.db.models.profile import Profile, WorkExperience, Education, Skill, Project, Achievement
from resumeai.db.models.subscription import Subscription, SubscriptionStatus
from resumeai.db.models.quota_debit import QuotaDebit
from resumeai.db.models.job_description import JobDescription

# Explicitly export all models for clarity
__all__ = [
    "User",
    "Profile",
    "WorkExperience",
    "Education",
    "Skill",
    "Project",
    "Achievement",
    "Subscription",
    "SubscriptionStatus",
    "QuotaDebit",
    "JobDescription",
]
