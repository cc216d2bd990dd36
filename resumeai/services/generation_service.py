"""
Resume generation workflow.

validate -> reserve quota -> persist job description -> generate content ->
render PDF -> upload artifact -> commit the reservation.

A reservation is either committed (one QuotaDebit row) or released; a failed
generation never consumes quota. Quota refusal happens before anything is
written or uploaded.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from resumeai.core.auth_dependency import SessionContext
from resumeai.core.errors import GenerationFailed, JobDescriptionTooShort
from resumeai.db.models.job_description import JobDescription
from resumeai.schemas.generation import GeneratedResumeContent
from resumeai.services import profile_service, quota_service
from resumeai.services.content_service import ContentGenerator
from resumeai.services.pdf_service import PdfOptions, PdfRenderer, render_resume_html
from resumeai.services.storage_service import ArtifactStore, PDF_CONTENT_TYPE, resume_artifact_key

logger = logging.getLogger(__name__)

MIN_JOB_DESCRIPTION_LENGTH = 50


@dataclass
class GenerationResult:
    job_description_id: int
    subscription_id: int
    resumes_remaining: int
    artifact_key: str
    content: GeneratedResumeContent
    generated_at: datetime


def validate_job_description(job_description: str) -> str:
    text = (job_description or "").strip()
    if len(text) < MIN_JOB_DESCRIPTION_LENGTH:
        raise JobDescriptionTooShort(len(text), MIN_JOB_DESCRIPTION_LENGTH)
    return text


def generation_idempotency_key(job_description_id: int) -> str:
    return f"generation:{job_description_id}"


def _persist_job_description(db: Session, user_id: int, text: str) -> JobDescription:
    row = JobDescription(user_id=user_id, content=text)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _release(db: Session, reservation: quota_service.Reservation) -> None:
    try:
        quota_service.release_reservation(db, reservation)
    except SQLAlchemyError:
        db.rollback()
        logger.error(
            f"Failed to release reservation: subscription_id={reservation.subscription_id}, "
            f"user_id={reservation.user_id}",
            exc_info=True,
        )


def generate_resume(
    db: Session,
    session: SessionContext,
    job_description: str,
    content_generator: ContentGenerator,
    pdf_renderer: PdfRenderer,
    artifact_store: ArtifactStore,
    pdf_options: PdfOptions = None,
) -> GenerationResult:
    """
    Generate a tailored resume PDF for the user and store it.

    Raises:
        JobDescriptionTooShort: Fewer than 50 characters after stripping
        NoActiveSubscription / QuotaExhausted: Nothing was persisted or uploaded
        GenerationFailed: A step after the reservation failed; quota was released
    """
    text = validate_job_description(job_description)
    reservation = quota_service.check_and_reserve(db, session.user_id)

    stage = "persist_job_description"
    jd_id = None
    try:
        jd = _persist_job_description(db, session.user_id, text)
        jd_id = jd.id

        stage = "generate_content"
        profile_record = profile_service.build_profile_record(db, session.user_id)
        content = content_generator.generate(text, profile_record)

        stage = "render_pdf"
        html_content = render_resume_html(profile_record, content)
        pdf = pdf_renderer.render(html_content, pdf_options or PdfOptions())

        stage = "upload_artifact"
        key = resume_artifact_key(session.user_id)
        artifact_store.put(key, pdf, PDF_CONTENT_TYPE)
    except Exception as e:
        db.rollback()
        logger.error(
            f"Resume generation failed: user_id={session.user_id}, stage={stage}, "
            f"job_description_id={jd_id}, error={type(e).__name__}: {e}"
        )
        _release(db, reservation)
        raise GenerationFailed(
            "Failed to generate resume. No quota was used, please try again.",
            stage=stage,
            job_description_id=jd_id,
        ) from e

    quota_service.commit_reservation(db, reservation, generation_idempotency_key(jd_id))
    logger.info(
        f"Resume generated: user_id={session.user_id}, job_description_id={jd_id}, "
        f"ats_score={content.ats_score}, remaining={reservation.remaining_after}"
    )

    return GenerationResult(
        job_description_id=jd_id,
        subscription_id=reservation.subscription_id,
        resumes_remaining=reservation.remaining_after,
        artifact_key=key,
        content=content,
        generated_at=quota_service.utcnow(),
    )


def get_latest_resume(user_id: int, artifact_store: ArtifactStore) -> bytes:
    """
    Raises:
        ArtifactNotFound: The user has not generated a resume yet
    """
    return artifact_store.get(resume_artifact_key(user_id))
