"""
Shared fixtures: in-memory SQLite, users, ledger rows and collaborator fakes.
"""
from datetime import timedelta
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from resumeai.core.auth_dependency import SessionContext
from resumeai.core.errors import ArtifactNotFound, CollaboratorError
from resumeai.core.security import hash_password
from resumeai.db.base import Base
import resumeai.db.models  # noqa: F401
from resumeai.db.models.subscription import Subscription, SubscriptionStatus
from resumeai.db.models.user import User
from resumeai.schemas.generation import GeneratedResumeContent
from resumeai.services.content_service import ContentGenerator
from resumeai.services.payment_gateway import (
    GatewayOrder,
    PaymentConfirmation,
    PaymentGateway,
    WebhookEvent,
)
from resumeai.services.pdf_service import PdfOptions, PdfRenderer
from resumeai.services.quota_service import utcnow
from resumeai.services.storage_service import ArtifactStore


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def test_user(db):
    user = User(
        full_name="Test User",
        email="test@example.com",
        password_hash=hash_password("testpass123"),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def session(test_user):
    return SessionContext(user_id=test_user.id, email=test_user.email)


def make_subscription(
    db,
    user_id: int,
    remaining: int = 10,
    status: str = SubscriptionStatus.ACTIVE,
    plan_name: str = "Starter",
    order_id: Optional[str] = None,
    days_left: int = 30,
) -> Subscription:
    now = utcnow()
    sub = Subscription(
        user_id=user_id,
        plan_name=plan_name,
        status=status,
        resumes_remaining=remaining,
        start_date=now,
        end_date=now + timedelta(days=days_left),
        gateway="fake",
        gateway_order_id=order_id,
    )
    db.add(sub)
    db.commit()
    db.refresh(sub)
    return sub


@pytest.fixture
def active_subscription(db, test_user):
    return make_subscription(db, test_user.id, remaining=10)


# ✅ COLLABORATOR FAKES

class FakeGateway(PaymentGateway):
    name = "fake"

    def __init__(self, verified: bool = True):
        self.verified = verified
        self.orders: List[Dict] = []
        self.verifications: List[PaymentConfirmation] = []
        self.webhook_event: Optional[WebhookEvent] = None

    @property
    def public_key(self) -> str:
        return "pk_fake"

    def create_order(self, amount, currency, receipt, notes):
        order = GatewayOrder(
            order_id=f"order_{len(self.orders) + 1}",
            amount=amount,
            currency=currency,
            receipt=receipt,
        )
        self.orders.append({"amount": amount, "currency": currency, "receipt": receipt, "notes": notes})
        return order

    def verify_payment(self, confirmation):
        self.verifications.append(confirmation)
        return self.verified

    def parse_webhook(self, body, signature):
        return self.webhook_event or WebhookEvent(kind="ignored")


class FakeContentGenerator(ContentGenerator):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def generate(self, job_description, profile_record):
        self.calls.append((job_description, profile_record))
        if self.fail:
            raise CollaboratorError("AI service temporarily unavailable. Please try again later.")
        return GeneratedResumeContent(
            keywords=["python", "fastapi"],
            ats_score=82,
            professional_summary="Backend engineer with payments experience.",
            suggestions=["Quantify impact"],
            highlighted_skills=["Python"],
        )


class FakePdfRenderer(PdfRenderer):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.rendered: List[str] = []

    def render(self, html_content: str, options: PdfOptions) -> bytes:
        if self.fail:
            raise CollaboratorError("Failed to render PDF")
        self.rendered.append(html_content)
        return b"%PDF-1.7 fake " + str(len(self.rendered)).encode()


class InMemoryArtifactStore(ArtifactStore):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.objects: Dict[str, bytes] = {}
        self.puts: List[str] = []

    def put(self, key, data, content_type="application/pdf"):
        if self.fail:
            raise CollaboratorError("Failed to store the generated resume")
        self.puts.append(key)
        self.objects[key] = data

    def get(self, key):
        if key not in self.objects:
            raise ArtifactNotFound("No generated resume found", key=key)
        return self.objects[key]


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def content_generator():
    return FakeContentGenerator()


@pytest.fixture
def pdf_renderer():
    return FakePdfRenderer()


@pytest.fixture
def artifact_store():
    return InMemoryArtifactStore()
