from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from resumeai.api.deps import artifact_store_dep, content_generator_dep, pdf_renderer_dep
from resumeai.core.auth_dependency import SessionContext, get_current_session, get_db
from resumeai.core.rate_limit import generation_rate_limit
from resumeai.schemas.generation import GenerateResumeRequest, GenerationResponse
from resumeai.services import generation_service
from resumeai.services.content_service import ContentGenerator
from resumeai.services.pdf_service import PdfRenderer
from resumeai.services.storage_service import ArtifactStore, PDF_CONTENT_TYPE

router = APIRouter(prefix="/resumes", tags=["Resumes"])


# ✅ GENERATE TAILORED RESUME
@router.post("/generate", response_model=GenerationResponse, response_model_by_alias=False)
def generate_resume(
    payload: GenerateResumeRequest,
    session: SessionContext = Depends(generation_rate_limit),
    db: Session = Depends(get_db),
    content_generator: ContentGenerator = Depends(content_generator_dep),
    pdf_renderer: PdfRenderer = Depends(pdf_renderer_dep),
    artifact_store: ArtifactStore = Depends(artifact_store_dep),
):
    """
    Reserve one resume from the quota, generate content and the PDF, and store it.

    A failed generation does not consume quota.
    """
    result = generation_service.generate_resume(
        db,
        session,
        payload.job_description,
        content_generator=content_generator,
        pdf_renderer=pdf_renderer,
        artifact_store=artifact_store,
    )
    return {
        "job_description_id": result.job_description_id,
        "subscription_id": result.subscription_id,
        "resumes_remaining": result.resumes_remaining,
        "artifact_key": result.artifact_key,
        "content": result.content,
        "generated_at": result.generated_at,
    }


@router.get("/latest")
def download_latest(
    session: SessionContext = Depends(get_current_session),
    artifact_store: ArtifactStore = Depends(artifact_store_dep),
):
    pdf = generation_service.get_latest_resume(session.user_id, artifact_store)
    return Response(
        content=pdf,
        media_type=PDF_CONTENT_TYPE,
        headers={"Content-Disposition": 'attachment; filename="resume.pdf"'},
    )
