"""
Unit tests for the resume generation workflow.
"""
import pytest

from conftest import FakeContentGenerator, FakePdfRenderer, InMemoryArtifactStore, make_subscription
from resumeai.core.errors import (
    ArtifactNotFound,
    GenerationFailed,
    JobDescriptionTooShort,
    NoActiveSubscription,
    QuotaExhausted,
)
from resumeai.db.models.job_description import JobDescription
from resumeai.db.models.quota_debit import QuotaDebit
from resumeai.db.models.subscription import Subscription
from resumeai.services import generation_service, profile_service

JD = "Backend engineer with Python, FastAPI and PostgreSQL experience building payment APIs."


@pytest.fixture
def profile(db, session):
    profile_service.save_personal_info(db, session, {"name": "Jane Doe"})
    profile_service.save_skills(db, session.user_id, "Python, SQL")


def _generate(db, session, content_generator, pdf_renderer, artifact_store, jd=JD):
    return generation_service.generate_resume(
        db,
        session,
        jd,
        content_generator=content_generator,
        pdf_renderer=pdf_renderer,
        artifact_store=artifact_store,
    )


def _remaining(db, subscription_id):
    db.expire_all()
    return db.query(Subscription).filter(Subscription.id == subscription_id).one().resumes_remaining


# ✅ VALIDATION

def test_job_description_boundary():
    with pytest.raises(JobDescriptionTooShort):
        generation_service.validate_job_description("x" * 49)
    assert generation_service.validate_job_description("x" * 50) == "x" * 50


def test_job_description_is_stripped_before_measuring():
    with pytest.raises(JobDescriptionTooShort):
        generation_service.validate_job_description("  " + "x" * 49 + "   ")


def test_short_job_description_touches_nothing(db, session, active_subscription, content_generator, pdf_renderer, artifact_store):
    with pytest.raises(JobDescriptionTooShort):
        _generate(db, session, content_generator, pdf_renderer, artifact_store, jd="too short")

    assert _remaining(db, active_subscription.id) == 10
    assert db.query(JobDescription).count() == 0
    assert content_generator.calls == []


# ✅ QUOTA REFUSAL

def test_no_subscription_persists_nothing(db, session, content_generator, pdf_renderer, artifact_store):
    with pytest.raises(NoActiveSubscription):
        _generate(db, session, content_generator, pdf_renderer, artifact_store)

    assert db.query(JobDescription).count() == 0
    assert artifact_store.puts == []


def test_exhausted_quota_persists_nothing(db, session, content_generator, pdf_renderer, artifact_store):
    make_subscription(db, session.user_id, remaining=0)

    with pytest.raises(QuotaExhausted):
        _generate(db, session, content_generator, pdf_renderer, artifact_store)

    assert db.query(JobDescription).count() == 0
    assert artifact_store.puts == []
    assert content_generator.calls == []


# ✅ SUCCESS

def test_generate_resume_success(db, session, profile, active_subscription, content_generator, pdf_renderer, artifact_store):
    result = _generate(db, session, content_generator, pdf_renderer, artifact_store)

    assert result.resumes_remaining == 9
    assert result.artifact_key == f"{session.user_id}/resume.pdf"
    assert result.content.ats_score == 82
    assert _remaining(db, active_subscription.id) == 9

    jd = db.query(JobDescription).one()
    assert jd.id == result.job_description_id
    assert jd.content == JD

    debit = db.query(QuotaDebit).one()
    assert debit.idempotency_key == f"generation:{jd.id}"

    jd_text, record = content_generator.calls[0]
    assert jd_text == JD
    assert record["name"] == "Jane Doe"
    assert record["skills"] == ["Python", "SQL"]
    assert "Jane Doe" in pdf_renderer.rendered[0]
    assert generation_service.get_latest_resume(session.user_id, artifact_store) == artifact_store.objects[result.artifact_key]


def test_second_generation_overwrites_artifact(db, session, profile, active_subscription, content_generator, pdf_renderer, artifact_store):
    _generate(db, session, content_generator, pdf_renderer, artifact_store)
    second = _generate(db, session, content_generator, pdf_renderer, artifact_store)

    assert list(artifact_store.objects) == [second.artifact_key]
    assert generation_service.get_latest_resume(session.user_id, artifact_store).endswith(b"2")
    assert _remaining(db, active_subscription.id) == 8
    assert db.query(QuotaDebit).count() == 2


def test_last_unit_can_be_used(db, session, profile, content_generator, pdf_renderer, artifact_store):
    sub = make_subscription(db, session.user_id, remaining=1)

    _generate(db, session, content_generator, pdf_renderer, artifact_store)
    with pytest.raises(QuotaExhausted):
        _generate(db, session, content_generator, pdf_renderer, artifact_store)

    assert _remaining(db, sub.id) == 0


# ✅ FAILURES RELEASE THE RESERVATION

@pytest.mark.parametrize("failing", ["content", "pdf", "storage"])
def test_collaborator_failure_refunds_quota(db, session, profile, active_subscription, failing):
    content_generator = FakeContentGenerator(fail=failing == "content")
    pdf_renderer = FakePdfRenderer(fail=failing == "pdf")
    artifact_store = InMemoryArtifactStore(fail=failing == "storage")

    with pytest.raises(GenerationFailed) as exc_info:
        _generate(db, session, content_generator, pdf_renderer, artifact_store)

    assert _remaining(db, active_subscription.id) == 10
    assert db.query(QuotaDebit).count() == 0
    # The job description stays on record for the failed attempt
    jd = db.query(JobDescription).one()
    assert exc_info.value.context["job_description_id"] == jd.id
    assert artifact_store.objects == {}


def test_failure_reports_stage(db, session, profile, active_subscription, content_generator, artifact_store):
    with pytest.raises(GenerationFailed) as exc_info:
        _generate(db, session, content_generator, FakePdfRenderer(fail=True), artifact_store)
    assert exc_info.value.context["stage"] == "render_pdf"


def test_latest_resume_missing(artifact_store):
    with pytest.raises(ArtifactNotFound):
        generation_service.get_latest_resume(1, artifact_store)
