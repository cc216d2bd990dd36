"""
Domain exceptions for the ResumeAI API.

Services raise these; main.py converts them into JSON error responses with a
stable error code. Nothing here knows about HTTP beyond the status code hint.
"""
from typing import Any, Dict, Optional

from fastapi import status


class ResumeAIError(Exception):
    """Base class for all domain errors."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.code, "detail": self.message}
        if self.context:
            payload.update(self.context)
        return payload


# Validation errors: raised before any network or database call

class SectionValidationError(ResumeAIError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class JobDescriptionTooShort(SectionValidationError):
    def __init__(self, length: int, minimum: int):
        super().__init__(
            f"Please enter a detailed job description (at least {minimum} characters)",
            length=length,
            minimum=minimum,
        )


# Quota ledger

class NoActiveSubscription(ResumeAIError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "no_active_subscription"

    def __init__(self, user_id: Optional[int] = None):
        super().__init__("No active subscription. Please choose a plan.", user_id=user_id)


class QuotaExhausted(ResumeAIError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "quota_exhausted"

    def __init__(self, subscription_id: Optional[int] = None):
        super().__init__(
            "You have no resumes remaining. Please upgrade your plan.",
            subscription_id=subscription_id,
        )


# Billing

class PaymentVerificationError(ResumeAIError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "payment_verification_failed"


class SubscriptionConflict(ResumeAIError):
    status_code = status.HTTP_409_CONFLICT
    code = "subscription_conflict"


# Lookups

class RowNotFound(ResumeAIError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ArtifactNotFound(RowNotFound):
    pass


# Orchestration

class InvalidTransition(ResumeAIError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_transition"


class SectionSaveError(ResumeAIError):
    code = "section_save_failed"


class CollaboratorError(ResumeAIError):
    """An external collaborator (LLM, PDF renderer, storage, payment gateway) failed."""
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "collaborator_error"


class GenerationFailed(ResumeAIError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "generation_failed"
